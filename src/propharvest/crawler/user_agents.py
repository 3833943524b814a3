"""
User agent rotation for outbound page requests.

A fresh identity is drawn from a fixed pool on every request to spread load
across what the remote host sees as different browsers.
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence

DEFAULT_USER_AGENTS: List[str] = [
    # Chrome
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    # Edge
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
]

BASE_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class UserAgentRotator:
    """Picks a random user agent from a fixed pool and builds request headers around it."""

    def __init__(self, agents: Optional[Sequence[str]] = None, rng: Optional[random.Random] = None) -> None:
        self.agents = list(agents) if agents else list(DEFAULT_USER_AGENTS)
        self._rng = rng or random.Random()

    def get_random_user_agent(self) -> str:
        return self._rng.choice(self.agents)

    def build_headers(self) -> Dict[str, str]:
        """Browser-like request headers with a freshly drawn User-Agent."""
        return {"User-Agent": self.get_random_user_agent(), **BASE_HEADERS}

    def get_stats(self) -> Dict[str, int]:
        return {"total_agents": len(self.agents)}
