"""End-to-end tests of the HTTP API with the remote listing mocked."""

import pytest
from aioresponses import aioresponses
from fastapi.testclient import TestClient

from propharvest.crawler.http_client import build_page_url
from propharvest.web.main import create_app
from tests.helpers import BASE_URL, page_with_serials


@pytest.fixture
def client(test_config):
    with TestClient(create_app(test_config)) as test_client:
        yield test_client


@pytest.fixture
def remote():
    with aioresponses() as m:
        yield m


def mock_page(m, page_number, body):
    m.get(build_page_url(BASE_URL, page_number), status=200, body=body)


@pytest.mark.integration
class TestWebApi:
    def test_index_lists_endpoints(self, client):
        response = client.get("/")

        assert response.status_code == 200
        payload = response.json()
        assert payload["message"] == "PropHarvest is running!"
        assert "combinePages" in payload["endpoints"]
        assert response.headers["X-Request-ID"]

    def test_start_scraping_range(self, client, remote, test_config):
        mock_page(remote, 1, page_with_serials(1, 2))
        mock_page(remote, 2, page_with_serials(3))

        response = client.post("/start-scraping", json={"startPage": 1, "endPage": 2})

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["totalProperties"] == 3
        assert payload["pagesProcessed"] == 2
        assert payload["summary"] == {"totalRecords": 3, "averagePerPage": 2}
        assert (test_config.storage.output_dir / payload["jsonFile"]).is_file()

    def test_start_scraping_without_body_covers_every_page(self, client, remote, test_config):
        test_config.source.total_pages = 2
        mock_page(remote, 1, page_with_serials(1))
        mock_page(remote, 2, page_with_serials(2))

        response = client.post("/start-scraping")

        assert response.status_code == 200
        assert response.json()["pagesProcessed"] == 2

    def test_invalid_range_is_bad_request(self, client):
        response = client.post("/start-scraping", json={"startPage": 9, "endPage": 3})

        assert response.status_code == 400
        payload = response.json()
        assert payload["success"] is False
        assert payload["message"] == "Invalid page range"

    def test_checkpoint_fault_is_server_error(self, test_config, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        test_config.storage.pages_dir = blocker

        with TestClient(create_app(test_config)) as test_client:
            response = test_client.post("/start-scraping", json={"startPage": 1, "endPage": 1})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "Traceback" not in response.text

    def test_fetch_page(self, client, remote):
        mock_page(remote, 3, page_with_serials(30, 31))

        response = client.get("/fetch-page/3")

        assert response.status_code == 200
        payload = response.json()
        assert payload["pageNo"] == 3
        assert payload["count"] == 2
        assert payload["properties"][1]["slNo"] == "31"

    def test_fetch_page_requires_integer(self, client):
        response = client.get("/fetch-page/abc")

        assert response.status_code == 400
        payload = response.json()
        assert payload["success"] is False
        assert payload["message"] == "Invalid request"
        assert "page_no" in payload["error"]

    def test_malformed_scrape_body_is_bad_request(self, client):
        response = client.post("/start-scraping", json={"startPage": "abc"})

        assert response.status_code == 400
        payload = response.json()
        assert payload == {"success": False, "message": "Invalid request", "error": payload["error"]}
        assert "startPage" in payload["error"]

    def test_status_and_combine(self, client, remote):
        mock_page(remote, 1, page_with_serials(1))
        mock_page(remote, 2, page_with_serials(2, 3))
        client.post("/start-scraping", json={"startPage": 1, "endPage": 2})

        status = client.get("/status").json()
        combined = client.post("/combine-pages").json()

        assert status == {"success": True, "totalPages": 20, "completedPages": 2, "progress": 10, "remaining": 18}
        assert combined["success"] is True
        assert combined["totalProperties"] == 3
        assert combined["filesProcessed"] == 2

    def test_progress_and_cancel_when_idle(self, client):
        progress = client.get("/progress").json()
        cancel = client.post("/cancel").json()

        assert progress == {"success": True, "running": False, "progress": None}
        assert cancel["cancelled"] is False

    def test_progress_after_run(self, client, remote):
        mock_page(remote, 1, page_with_serials(1))
        client.post("/start-scraping", json={"startPage": 1, "endPage": 1})

        progress = client.get("/progress").json()

        assert progress["running"] is False
        assert progress["progress"]["phase"] == "done"
        assert progress["progress"]["completed"] == 1

    def test_metrics_endpoint(self, client, remote):
        mock_page(remote, 1, page_with_serials(1))
        client.post("/start-scraping", json={"startPage": 1, "endPage": 1})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "propharvest_pages_total" in response.text
        assert "propharvest_scheduler_concurrency" in response.text
