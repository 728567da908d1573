"""
HTTP client for the upstream job search pages.
Browser-like headers, redirects followed, retries with backoff on transport errors.
"""
import time
import logging
from typing import Dict, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

SEARCH_PAGE_URL = "https://www.linkedin.com/jobs/search/"
DEFAULT_LANGUAGE_TAG = "en_US"
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 1

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
)

RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.ConnectError)


def build_browser_headers(language_tag: str = DEFAULT_LANGUAGE_TAG, referer_qs: str = "") -> Dict[str, str]:
    """
    Build the header set of a desktop browser navigating the search page.

    Args:
        language_tag: Locale like en_US, sent as Accept-Language en-US
        referer_qs: Encoded search filters reflected in the Referer
    """
    accept_language = language_tag.replace("_", "-") + ",en;q=0.8"
    referer = f"{SEARCH_PAGE_URL}?{referer_qs}" if referer_qs else SEARCH_PAGE_URL

    return {
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
            "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
        ),
        "Accept-Language": accept_language,
        "priority": "u=0, i",
        "Referer": referer,
        "sec-ch-ua": '"Not;A=Brand";v="99", "Google Chrome";v="139", "Chromium";v="139"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "same-origin",
        "sec-fetch-user": "?1",
        "upgrade-insecure-requests": "1",
        "User-Agent": DESKTOP_UA,
    }


class HTTPClient:
    """HTTP client with retries for fetching upstream markup"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, retries: int = MAX_RETRIES,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = httpx.Timeout(timeout)
        self.retries = max(0, retries)
        # Injected in tests (httpx.MockTransport)
        self.transport = transport

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    async def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[int, str]:
        """
        GET a page and return its status and decoded body.

        Transport errors are retried, then re-raised to the caller.

        Returns:
            (status_code, body)
        """
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True,
                                     transport=self.transport) as client:
            start_time = time.time()
            try:
                async for attempt in self._retrying():
                    with attempt:
                        response = await client.get(url, headers=headers)
            except httpx.TimeoutException as e:
                logger.error(f"[net] Timeout fetching {url}: {e}")
                raise
            except httpx.HTTPError as e:
                logger.error(f"[net] Error fetching {url}: {e}")
                raise

            body = response.text
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.info(f"[net] GET {url} -> HTTP {response.status_code}, bytes={len(body)} ({elapsed_ms}ms)")
            return response.status_code, body
