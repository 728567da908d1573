import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not an integer, using {default}")
        return default


class Settings:
    """Service settings read from the environment."""

    def __init__(self):
        self.env = os.getenv("JOBLENS_ENV", "production").lower()
        self.upstream_url = os.getenv("JOBLENS_UPSTREAM_URL", DEFAULT_UPSTREAM_URL)

        # Per-client quota on the search endpoint
        self.rate_limit_max = _int_env("JOBLENS_RATE_LIMIT_MAX", 10)
        self.rate_limit_window_seconds = _int_env("JOBLENS_RATE_LIMIT_WINDOW_SECONDS", 60 * 60)

        # Upstream paging
        self.page_delay_ms = _int_env("JOBLENS_PAGE_DELAY_MS", 350)
        self.max_pages = _int_env("JOBLENS_MAX_PAGES", 10)

        # Outbound HTTP
        self.http_timeout = float(_int_env("JOBLENS_HTTP_TIMEOUT", 30))
        self.http_retries = _int_env("JOBLENS_HTTP_RETRIES", 1)

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


settings = Settings()
