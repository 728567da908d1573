"""
Main extraction orchestrator.

Implements a two-stage pipeline with a deterministic fallback:
1. Structured pass over the parsed document (CSS selectors)
2. Regex fallback over the raw markup

The fallback runs only when the structured pass yields no records, either
because no card matched or because traversal raised.
"""

import logging
from typing import List, Optional

from .dom import DOMCardExtractor, NeedsFallback, Structured
from .models import JobPosting
from .regex_fallback import RegexCardExtractor

logger = logging.getLogger(__name__)


class ExtractionEngine:
    """Converts one page of search results markup into job postings."""

    def __init__(self, dom_extractor: Optional[DOMCardExtractor] = None,
                 regex_extractor: Optional[RegexCardExtractor] = None):
        self.dom_extractor = dom_extractor or DOMCardExtractor()
        self.regex_extractor = regex_extractor or RegexCardExtractor()

    def parse(self, html: Optional[str]) -> List[JobPosting]:
        """
        Extract job postings from one page.

        Args:
            html: Raw markup of a search results page (may be empty or None)

        Returns:
            Postings deduplicated by id, the last card seen for an id winning.
            Never raises for malformed markup.
        """
        if not html:
            return []

        result = self.dom_extractor.extract(html)
        if isinstance(result, Structured):
            logger.debug(f"[extract] Structured pass read {len(result.records)} cards")
            return result.records

        if isinstance(result, NeedsFallback):
            logger.debug(f"[extract] Falling back to regex scan (reason: {result.reason})")

        postings = self.regex_extractor.extract(html)
        if postings:
            logger.info(f"[extract] Regex fallback recovered {len(postings)} cards")
        return postings
