"""Checkpoint storage for raw pages."""

from __future__ import annotations

from .page_store import PageCheckpointStore, page_filename, parse_page_filename

__all__ = ["PageCheckpointStore", "page_filename", "parse_page_filename"]
