"""
FastAPI application exposing the harvest operations over HTTP.

Route names and payloads follow the original scraper server so existing
clients keep working. Failures are answered with the service's structured
body: HTTP 400 for a rejected page range, 500 for everything else.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, ConfigDict, Field

from propharvest.config.config import Config, load_config
from propharvest.observability import export_prometheus
from propharvest.service import INVALID_RANGE, HarvestService

logger = structlog.get_logger(__name__)

_LIVE_PHASES = {"running", "dispatching", "waiting", "adapting"}


class ScrapeRequest(BaseModel):
    """Body of ``POST /start-scraping``. Missing bounds default to the full dataset."""

    model_config = ConfigDict(populate_by_name=True)

    start_page: Optional[int] = Field(default=None, alias="startPage")
    end_page: Optional[int] = Field(default=None, alias="endPage")


def get_service(request: Request) -> HarvestService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        config = request.app.state.config
        service = HarvestService(config if config is not None else load_config())
        request.app.state.service = service
    return service


def _respond(result: Dict[str, Any]) -> JSONResponse:
    if result.get("success"):
        return JSONResponse(result)
    if result.get("message") == INVALID_RANGE:
        return JSONResponse(result, status_code=status.HTTP_400_BAD_REQUEST)
    return JSONResponse(result, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle."""
    app.state.start_time = time.time()
    logger.info("PropHarvest API starting")
    yield
    service: Optional[HarvestService] = getattr(app.state, "service", None)
    if service is not None and service.cancel():
        logger.info("Cancelled running scrape on shutdown")
    logger.info("PropHarvest API stopped")


def create_app(config: Optional[Config] = None, service: Optional[HarvestService] = None) -> FastAPI:
    """Build the API. The service is created on first use unless one is given."""
    app = FastAPI(title="PropHarvest", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.service = service

    @app.middleware("http")
    async def add_request_context(request: Request, call_next: Callable) -> Any:
        """Bind a request id to every log line and report processing time."""
        request_id = uuid4().hex
        start_time = time.time()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(process_time * 1000, 2),
            )
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        logger.warning("Rejected request", path=request.url.path, error=error)
        return JSONResponse(
            {"success": False, "message": "Invalid request", "error": error},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            {"success": False, "message": "Internal server error", "error": str(exc)},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.get("/")
    async def index(service: HarvestService = Depends(get_service)) -> Dict[str, Any]:
        """Health check listing the available endpoints."""
        return service.describe()

    @app.post("/start-scraping")
    async def start_scraping(
        body: Optional[ScrapeRequest] = None, service: HarvestService = Depends(get_service)
    ) -> JSONResponse:
        """Scrape a page range and respond once the JSON artifact is written."""
        body = body or ScrapeRequest()
        logger.info("Scrape requested", start_page=body.start_page, end_page=body.end_page)
        return _respond(await service.start_scrape(body.start_page, body.end_page))

    @app.get("/fetch-page/{page_no}")
    async def fetch_page(page_no: int, service: HarvestService = Depends(get_service)) -> JSONResponse:
        return _respond(await service.fetch_single_page(page_no))

    @app.get("/status")
    async def get_status(service: HarvestService = Depends(get_service)) -> JSONResponse:
        return _respond(service.status())

    @app.post("/combine-pages")
    async def combine_pages(service: HarvestService = Depends(get_service)) -> JSONResponse:
        return _respond(await service.combine_pages())

    @app.get("/progress")
    async def get_progress(service: HarvestService = Depends(get_service)) -> Dict[str, Any]:
        """Live counters of the running (or last) scrape."""
        snapshot = service.progress()
        running = snapshot is not None and snapshot["phase"] in _LIVE_PHASES
        return {"success": True, "running": running, "progress": snapshot}

    @app.post("/cancel")
    async def cancel(service: HarvestService = Depends(get_service)) -> Dict[str, Any]:
        cancelled = service.cancel()
        return {
            "success": True,
            "cancelled": cancelled,
            "message": "Cancellation requested" if cancelled else "No scrape is running",
        }

    @app.get("/metrics")
    async def get_prometheus_metrics() -> Response:
        """Endpoint for Prometheus to scrape."""
        return Response(export_prometheus(), media_type=CONTENT_TYPE_LATEST)

    return app

app = create_app()


def run_web_server(host: str = "127.0.0.1", port: int = 3000, config: Optional[Config] = None) -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    logger.info("Starting PropHarvest API", url=f"http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
