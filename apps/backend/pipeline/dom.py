"""
Structured card extractor.

Walks the parsed search results document and reads each job card through
CSS selectors. Returns a tagged result so the caller decides whether the
regex fallback has to run.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from bs4 import BeautifulSoup, Tag

from .models import (
    JobPosting,
    VIEW_PATH_MARKER,
    dedupe_by_id,
    id_from_link,
    id_from_urn,
    normalize_link,
    strip_text,
)

logger = logging.getLogger(__name__)

CARD_CLASS_SELECTOR = ".base-card.job-search-card"
CARD_CANDIDATE_SELECTOR = f"{CARD_CLASS_SELECTOR}, li:has({CARD_CLASS_SELECTOR})"

LINK_SELECTORS = [
    f"a.base-card__full-link[href*='{VIEW_PATH_MARKER}']",
    f"a[href*='{VIEW_PATH_MARKER}']",
]
TITLE_SELECTOR = "h3.base-search-card__title"
HIDDEN_TITLE_SELECTOR = ".sr-only, .visually-hidden"
COMPANY_SELECTORS = [
    ".base-search-card__subtitle .hidden-nested-link",
    ".base-search-card__subtitle",
    ".job-search-card__subtitle",
]
LOCATION_SELECTORS = [
    ".job-search-card__location",
    ".job-card-container__metadata-item",
]
LOGO_SELECTOR = ".search-entity-media img"
LOGO_ATTRIBUTE = "data-delayed-url"


@dataclass
class Structured:
    """Structured pass produced at least one record."""

    records: List[JobPosting]


@dataclass
class NeedsFallback:
    """Structured pass produced nothing usable."""

    reason: str
    error: Optional[Exception] = field(default=None, repr=False)


StructuredResult = Union[Structured, NeedsFallback]


class DOMCardExtractor:
    """Extracts job cards from a parsed search results page."""

    def __init__(self, parser: str = "lxml"):
        self.parser = parser

    def extract(self, html: str) -> StructuredResult:
        """
        Run the structured pass over one page of markup.

        Returns:
            Structured(records) when at least one card was read, otherwise
            NeedsFallback with the reason (no cards, or traversal error).
        """
        try:
            soup = BeautifulSoup(html, self.parser)
            records = []
            for candidate in soup.select(CARD_CANDIDATE_SELECTOR):
                posting = self._extract_card(candidate)
                if posting:
                    records.append(posting)
        except Exception as e:
            logger.warning(f"[extract] Structured pass failed: {e}")
            return NeedsFallback(reason="error", error=e)

        if not records:
            return NeedsFallback(reason="no_cards")
        return Structured(records=dedupe_by_id(records))

    def _resolve_card(self, candidate: Tag) -> Optional[Tag]:
        if "base-card" in (candidate.get("class") or []):
            return candidate
        return candidate.select_one(CARD_CLASS_SELECTOR)

    def _extract_card(self, candidate: Tag) -> Optional[JobPosting]:
        card = self._resolve_card(candidate)
        if card is None:
            return None

        urn = card.get("data-entity-urn")
        if not urn:
            nested = card.select_one("[data-entity-urn]")
            urn = nested.get("data-entity-urn") if nested else ""
        job_id = id_from_urn(urn)

        anchor = self._first(card, LINK_SELECTORS)
        if anchor is None:
            return None
        link = normalize_link(anchor.get("href"))
        if not link:
            return None

        if not job_id:
            job_id = id_from_link(link)
            if not job_id:
                logger.debug(f"[extract] Card without id skipped: {link}")
                return None

        title = self._text(card.select_one(TITLE_SELECTOR)) or self._text(
            anchor.select_one(HIDDEN_TITLE_SELECTOR)
        )

        time_el = card.select_one("time")
        date = (time_el.get("datetime") or "") if time_el else ""

        logo = ""
        img = card.select_one(LOGO_SELECTOR)
        if img is not None:
            # src holds a placeholder until the page lazy-loads the image
            logo = img.get(LOGO_ATTRIBUTE) or ""

        return JobPosting(
            id=job_id,
            title=title,
            company=self._first_text(card, COMPANY_SELECTORS),
            location=self._first_text(card, LOCATION_SELECTORS),
            date=date.strip(),
            url=link,
            logo=logo.strip(),
        )

    @staticmethod
    def _first(card: Tag, selectors: Sequence[str]) -> Optional[Tag]:
        for selector in selectors:
            element = card.select_one(selector)
            if element is not None:
                return element
        return None

    @staticmethod
    def _text(element: Optional[Tag]) -> str:
        if element is None:
            return ""
        return strip_text(element.get_text())

    def _first_text(self, card: Tag, selectors: Sequence[str]) -> str:
        """First non-empty text among selectors, tried in priority order."""
        for selector in selectors:
            text = self._text(card.select_one(selector))
            if text:
                return text
        return ""
