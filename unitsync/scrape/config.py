"""Configuration for catalog page fetching."""

import os
from typing import Optional

from unitsync import __version__
from unitsync.core.constants import get_env_bool, get_env_float, get_env_int


class ScrapeConfig:
    """Configuration for rendering catalog pages."""

    def __init__(
        self,
        rate_limit: float = 1.5,
        timeout: int = 30,
        max_retries: int = 3,
        backoff: float = 0.75,
        marker_selector: str = "h1",
        marker_timeout: float = 8.0,
        settle_delay: float = 1.0,
        headless: bool = True,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize scraping configuration.

        Args:
            rate_limit: Minimum seconds between the end of one request and the
                start of the next (default: 1.5)
            timeout: Navigation timeout in seconds (default: 30)
            max_retries: Attempts per URL before giving up (default: 3)
            backoff: Linear backoff unit; attempt N waits backoff * N seconds (default: 0.75)
            marker_selector: Element that signals the page has rendered (default: "h1")
            marker_timeout: Seconds to wait for the marker; absence is not an error (default: 8)
            settle_delay: Extra seconds after the marker for late content (default: 1.0)
            headless: Run the browser without a window (default: True)
            user_agent: Custom user agent string
        """
        self.rate_limit = rate_limit
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.marker_selector = marker_selector
        self.marker_timeout = marker_timeout
        self.settle_delay = settle_delay
        self.headless = headless
        self.user_agent = user_agent or self._default_user_agent()

    @staticmethod
    def _default_user_agent() -> str:
        """Get default user agent string."""
        return (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            f"(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36 unitsync/{__version__}"
        )

    @classmethod
    def from_env(cls) -> "ScrapeConfig":
        """Load configuration from UNITSYNC_SCRAPE_* environment variables."""
        return cls(
            rate_limit=get_env_float("UNITSYNC_SCRAPE_RATE_LIMIT", 1.5),
            timeout=get_env_int("UNITSYNC_SCRAPE_TIMEOUT", 30),
            max_retries=get_env_int("UNITSYNC_SCRAPE_MAX_RETRIES", 3),
            backoff=get_env_float("UNITSYNC_SCRAPE_BACKOFF", 0.75),
            marker_selector=os.getenv("UNITSYNC_SCRAPE_MARKER", "h1") or "h1",
            marker_timeout=get_env_float("UNITSYNC_SCRAPE_MARKER_TIMEOUT", 8.0),
            settle_delay=get_env_float("UNITSYNC_SCRAPE_SETTLE_DELAY", 1.0),
            headless=get_env_bool("UNITSYNC_SCRAPE_HEADLESS", True),
            user_agent=os.getenv("UNITSYNC_SCRAPE_USER_AGENT"),
        )

    def as_respectful(self) -> "ScrapeConfig":
        """Return a copy with slower, gentler settings."""
        return ScrapeConfig(
            rate_limit=max(self.rate_limit, 3.0),  # Slower
            timeout=self.timeout,
            max_retries=1,  # Fewer retries
            backoff=self.backoff * 2,
            marker_selector=self.marker_selector,
            marker_timeout=self.marker_timeout,
            settle_delay=self.settle_delay,
            headless=self.headless,
            user_agent=self.user_agent,
        )

    def __repr__(self) -> str:
        return (
            f"ScrapeConfig(rate_limit={self.rate_limit}, timeout={self.timeout}, "
            f"max_retries={self.max_retries}, backoff={self.backoff})"
        )
