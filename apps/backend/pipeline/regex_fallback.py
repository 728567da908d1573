"""
Regex fallback extractor.

Used when the structured pass finds nothing. Splits the raw markup into one
chunk per job card and pulls each field out with ordered patterns, trading
precision for resilience to markup drift.
"""

import html as html_lib
import logging
import re
from typing import List, Optional, Sequence

from .models import JobPosting, dedupe_by_id, id_from_urn, normalize_link, strip_text

logger = logging.getLogger(__name__)

CARD_SPLIT_PATTERN = re.compile(
    r"""<div[^>]+class=["'][^"']*base-card[^"']*job-search-card[^"']*["'][^>]*data-entity-urn=""",
    re.IGNORECASE,
)

_FLAGS = re.IGNORECASE | re.DOTALL

LINK_PATTERNS = [
    re.compile(
        r"""<a[^>]*class=["'][^"']*base-card__full-link[^"']*["'][^>]*href=["']([^"']*/jobs/view/[^"']*)["']""",
        _FLAGS,
    ),
    re.compile(r"""<a[^>]*href=["']([^"']*/jobs/view/[^"']*)["']""", _FLAGS),
]

# (pattern, group) pairs tried in order
TITLE_PATTERNS = [
    (re.compile(r"""<h3[^>]*class=["'][^"']*base-search-card__title[^"']*["'][^>]*>(.*?)</h3>""", _FLAGS), 1),
    (re.compile(r"""<span[^>]*class=["'][^"']*(sr-only|visually-hidden)[^"']*["'][^>]*>(.*?)</span>""", _FLAGS), 2),
]
COMPANY_PATTERNS = [
    (re.compile(
        r"""<h4[^>]*class=["'][^"']*base-search-card__subtitle[^"']*["'][^>]*>.*?<a[^>]*>(.*?)</a>.*?</h4>""",
        _FLAGS,
    ), 1),
    (re.compile(r"""<h4[^>]*>(.*?)</h4>""", _FLAGS), 1),
]
LOCATION_PATTERNS = [
    (re.compile(r"""<span[^>]*class=["'][^"']*job-search-card__location[^"']*["'][^>]*>(.*?)</span>""", _FLAGS), 1),
    (re.compile(r"""<div[^>]*class=["'][^"']*job-search-card__location[^"']*["'][^>]*>(.*?)</div>""", _FLAGS), 1),
]
DATE_PATTERN = re.compile(r"""<time[^>]*datetime=["']([^"']+)["'][^>]*>""", re.IGNORECASE)
LOGO_PATTERN = re.compile(r"""<img[^>]+data-delayed-url=["']([^"']+)["'][^>]*>""", re.IGNORECASE)


def _clean(value: Optional[str]) -> str:
    return strip_text(html_lib.unescape(value or ""))


class RegexCardExtractor:
    """Extracts job cards from raw markup with regular expressions."""

    def split_cards(self, html: str) -> List[str]:
        """Split markup into one chunk per card, dropping the preamble."""
        parts = CARD_SPLIT_PATTERN.split(html)
        return ["data-entity-urn=" + part for part in parts[1:]]

    def extract(self, html: str) -> List[JobPosting]:
        if not html:
            return []

        postings = []
        for chunk in self.split_cards(html):
            posting = self._extract_chunk(chunk)
            if posting:
                postings.append(posting)

        logger.debug(f"[extract] Regex fallback read {len(postings)} cards")
        return dedupe_by_id(postings)

    def _extract_chunk(self, chunk: str) -> Optional[JobPosting]:
        job_id = id_from_urn(chunk)

        link = ""
        for pattern in LINK_PATTERNS:
            match = pattern.search(chunk)
            if match:
                link = normalize_link(html_lib.unescape(match.group(1)))
                break

        if not job_id or not link:
            return None

        date_match = DATE_PATTERN.search(chunk)
        logo_match = LOGO_PATTERN.search(chunk)

        return JobPosting(
            id=job_id,
            title=self._first_group(chunk, TITLE_PATTERNS),
            company=self._first_group(chunk, COMPANY_PATTERNS),
            location=self._first_group(chunk, LOCATION_PATTERNS),
            date=date_match.group(1) if date_match else "",
            url=link,
            logo=html_lib.unescape(logo_match.group(1)) if logo_match else "",
        )

    @staticmethod
    def _first_group(chunk: str, patterns: Sequence) -> str:
        for pattern, group in patterns:
            match = pattern.search(chunk)
            if match:
                return _clean(match.group(group))
        return ""
