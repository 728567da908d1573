import re
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from core.net import DEFAULT_LANGUAGE_TAG, HTTPClient, build_browser_headers
from pipeline import ExtractionEngine, JobPosting
from pipeline.models import dedupe_by_id

from app.config import DEFAULT_UPSTREAM_URL

logger = logging.getLogger(__name__)

PAGE_SIZE = 25
MAX_PAGES = 10
DEFAULT_PAGE_DELAY_SECONDS = 0.35

# Accept-Language must stay printable ASCII
UNSAFE_HEADER_CHARS_RE = re.compile(r"[^\x20-\x7e]")
LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

FetchText = Callable[[str, Dict[str, str]], Awaitable[Tuple[int, str]]]


def _lenient_int(value: Any, default: int) -> int:
    """Parse the leading integer of a value, falling back to a default."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    match = LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else default


def _clean(value: Optional[str]) -> str:
    return value.strip() if value else ""


@dataclass
class SearchParams:
    """Normalized search request. Bad values are clamped, never rejected."""

    keywords: str = ""
    location: str = ""
    language_tag: str = DEFAULT_LANGUAGE_TAG
    start: int = 0
    pages: int = 1
    geo_id: str = ""
    work_type: str = ""
    time_posted_range: str = ""
    experience_level: str = ""
    job_type: str = ""
    sort_by: str = ""

    @classmethod
    def from_raw(
        cls,
        keywords: Optional[str] = None,
        location: Optional[str] = None,
        language_tag: Optional[str] = None,
        start: Any = None,
        pages: Any = None,
        geo_id: Optional[str] = None,
        work_type: Optional[str] = None,
        time_posted_range: Optional[str] = None,
        experience_level: Optional[str] = None,
        job_type: Optional[str] = None,
        sort_by: Optional[str] = None,
        max_pages: int = MAX_PAGES,
    ) -> "SearchParams":
        lang = _clean(language_tag)
        if UNSAFE_HEADER_CHARS_RE.search(lang):
            logger.debug(f"[search] Ignoring language tag unusable in a header {lang!r}")
            lang = ""
        lang = lang or DEFAULT_LANGUAGE_TAG

        return cls(
            keywords=_clean(keywords),
            location=_clean(location),
            language_tag=lang,
            start=max(0, _lenient_int(start, 0)),
            pages=max(1, min(max_pages, MAX_PAGES, _lenient_int(pages, 1))),
            geo_id=_clean(geo_id),
            work_type=_clean(work_type),
            time_posted_range=_clean(time_posted_range),
            experience_level=_clean(experience_level),
            job_type=_clean(job_type),
            sort_by=_clean(sort_by),
        )

    def _filters(self) -> Dict[str, str]:
        return {
            "f_WT": self.work_type,
            "f_TPR": self.time_posted_range,
            "f_E": self.experience_level,
            "f_JT": self.job_type,
        }

    def page_query(self, page_index: int, page_size: int = PAGE_SIZE) -> Dict[str, str]:
        """Upstream query for one page of results."""
        query = {
            "keywords": self.keywords,
            "location": self.location,
            "geoId": self.geo_id,
            "start": str(self.start + page_index * page_size),
            "_l": self.language_tag,
        }
        query.update(self._filters())
        query["sortBy"] = self.sort_by
        return {k: v for k, v in query.items() if v}

    def referer_query(self) -> Dict[str, str]:
        """Same filters as the page query, without pagination."""
        query = {
            "keywords": self.keywords,
            "location": self.location,
            "sortBy": self.sort_by,
            "geoId": self.geo_id,
        }
        query.update(self._filters())
        return {k: v for k, v in query.items() if v}


def encode_query(query: Dict[str, str]) -> str:
    # commas stay literal so CSV filters read the same upstream and in the referer
    return urlencode(query, safe=",")


@dataclass
class PacingPolicy:
    """Fixed delay between consecutive upstream page fetches."""

    interval_seconds: float = DEFAULT_PAGE_DELAY_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)

    async def wait(self):
        if self.interval_seconds > 0:
            await self.sleep(self.interval_seconds)


class PageOrchestrator:
    """Fetches search result pages one at a time and merges their postings."""

    def __init__(
        self,
        fetch_text: Optional[FetchText] = None,
        engine: Optional[ExtractionEngine] = None,
        pacing: Optional[PacingPolicy] = None,
        base_url: str = DEFAULT_UPSTREAM_URL,
        page_size: int = PAGE_SIZE,
    ):
        self.fetch_text = fetch_text or HTTPClient().fetch_text
        self.engine = engine or ExtractionEngine()
        self.pacing = pacing or PacingPolicy()
        self.base_url = base_url
        self.page_size = page_size

    async def _fetch_page(self, url: str, headers: Dict[str, str]) -> str:
        """Fetch one page; any failure comes back as an empty body."""
        try:
            status, body = await self.fetch_text(url, headers)
        except httpx.HTTPError as e:
            logger.warning(f"[search] Upstream fetch failed for {url}: {e}")
            return ""
        if status < 200 or status >= 300:
            logger.warning(f"[search] Upstream returned HTTP {status} for {url}")
            return ""
        return body or ""

    async def search(self, params: SearchParams) -> List[JobPosting]:
        """
        Retrieve up to params.pages pages of postings.

        Pages are fetched strictly in sequence with the pacing delay between
        them. An empty page body ends the loop early and whatever was
        collected so far is returned.

        Returns:
            Postings deduplicated by id, the last one fetched for an id winning.
        """
        referer_qs = encode_query(params.referer_query())
        headers = build_browser_headers(params.language_tag, referer_qs)

        collected: List[JobPosting] = []
        for page_index in range(params.pages):
            if page_index > 0:
                await self.pacing.wait()

            url = f"{self.base_url}?{encode_query(params.page_query(page_index, self.page_size))}"
            html = await self._fetch_page(url, headers)
            if not html:
                logger.info(f"[search] Empty page {page_index + 1}/{params.pages}, stopping")
                break

            postings = self.engine.parse(html)
            logger.debug(f"[search] Page {page_index + 1}/{params.pages}: {len(postings)} postings")
            collected.extend(postings)

        results = dedupe_by_id(collected)
        logger.info(f"[search] {len(results)} postings for keywords={params.keywords!r} location={params.location!r}")
        return results
