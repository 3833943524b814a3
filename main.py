#!/usr/bin/env python3
"""Entry point for PropHarvest: ``python main.py scrape --start 1 --end 10``."""

from __future__ import annotations

from propharvest.cli import main

if __name__ == "__main__":
    main()
