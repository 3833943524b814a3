"""
File-backed checkpoint store for raw listing pages.

Each successfully fetched page is kept verbatim as ``page-NNNN.txt`` inside a
dedicated directory, keyed by page number. The store doubles as the
write-through cache of a live scrape and as the only input of replay mode.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Optional, Set

import structlog

from propharvest.errors import CheckpointError
from propharvest.utils.atomic import atomic_write_text

logger = structlog.get_logger(__name__)

PAGE_FILE_PREFIX = "page-"
PAGE_FILE_SUFFIX = ".txt"
PAGE_NUMBER_WIDTH = 4

_PAGE_FILE_RE = re.compile(rf"^{re.escape(PAGE_FILE_PREFIX)}(\d+){re.escape(PAGE_FILE_SUFFIX)}$")


def page_filename(page_number: int) -> str:
    """Return the checkpoint file name for a page, e.g. ``page-0042.txt``."""
    return f"{PAGE_FILE_PREFIX}{page_number:0{PAGE_NUMBER_WIDTH}d}{PAGE_FILE_SUFFIX}"


def parse_page_filename(name: str) -> Optional[int]:
    """Return the page number encoded in a checkpoint file name, or None for foreign files."""
    match = _PAGE_FILE_RE.match(name)
    if match is None:
        return None
    page_number = int(match.group(1))
    # Only canonical names map back to a readable checkpoint.
    return page_number if page_filename(page_number) == name else None


class PageCheckpointStore:
    """Durable page-number -> raw content mapping on the local filesystem."""

    def __init__(self, directory: Path, encoding: str = "utf-8") -> None:
        self.directory = Path(directory)
        self.encoding = encoding

    def ensure(self) -> None:
        """Create the checkpoint directory."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CheckpointError(f"Cannot create checkpoint directory {self.directory}: {e}") from e

    def path_for(self, page_number: int) -> Path:
        return self.directory / page_filename(page_number)

    def put(self, page_number: int, content: str) -> Path:
        """Store raw content for a page. Last write wins."""
        path = self.path_for(page_number)
        try:
            atomic_write_text(path, content, encoding=self.encoding)
        except OSError as e:
            logger.error("Checkpoint write failed", page=page_number, path=str(path), error=str(e))
            raise CheckpointError(f"Cannot checkpoint page {page_number}: {e}") from e
        return path

    def exists(self, page_number: int) -> bool:
        return self.path_for(page_number).is_file()

    def read(self, page_number: int) -> str:
        path = self.path_for(page_number)
        try:
            return path.read_text(encoding=self.encoding)
        except OSError as e:
            raise CheckpointError(f"Cannot read checkpoint for page {page_number}: {e}") from e

    def enumerate_stored(self) -> List[int]:
        """Stored page numbers in directory listing order (not sorted)."""
        try:
            names = os.listdir(self.directory)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CheckpointError(f"Cannot list checkpoint directory {self.directory}: {e}") from e

        pages: List[int] = []
        for name in names:
            page_number = parse_page_filename(name)
            if page_number is not None:
                pages.append(page_number)
        return pages

    def list_stored(self) -> Set[int]:
        return set(self.enumerate_stored())

    def count(self) -> int:
        return len(self.list_stored())
