"""
PropHarvest - Adaptive bulk harvester for paginated property listings.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .service import HarvestService

__all__ = ["__version__", "Config", "HarvestService"]
