"""
Job posting record and the normalization helpers shared by both extraction tiers.
"""

import re
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional
from urllib.parse import urljoin

SITE_ORIGIN = "https://www.linkedin.com"
VIEW_PATH_MARKER = "/jobs/view/"

URN_ID_PATTERN = re.compile(r"jobPosting:(\d+)")
# /jobs/view/3912345678 or /jobs/view/software-engineer-at-acme-3912345678
VIEW_ID_PATTERN = re.compile(r"/jobs/view/(?:[^/?#]*?-)?(\d+)(?:[/?#]|$)")

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


@dataclass
class JobPosting:
    """One normalized job listing from a search results page."""

    id: str
    title: str = ""
    company: str = ""
    location: str = ""
    date: str = ""
    url: str = ""
    logo: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def strip_text(value: Optional[str]) -> str:
    """Drop any markup and collapse whitespace."""
    if not value:
        return ""
    return _WS_RE.sub(" ", _TAG_RE.sub("", value)).strip()


def normalize_link(href: Optional[str]) -> str:
    """Make a job link absolute and drop its query string."""
    if not href:
        return ""
    href = href.strip()
    if not href.startswith("http"):
        href = urljoin(SITE_ORIGIN + "/", href)
    return href.split("?")[0]


def id_from_urn(urn: Optional[str]) -> str:
    match = URN_ID_PATTERN.search(urn or "")
    return match.group(1) if match else ""


def id_from_link(link: str) -> str:
    match = VIEW_ID_PATTERN.search(link or "")
    return match.group(1) if match else ""


def dedupe_by_id(postings: Iterable[JobPosting]) -> List[JobPosting]:
    """
    Collapse postings sharing an id.

    The last posting seen for an id wins; ids keep the position of their
    first appearance.
    """
    by_id: Dict[str, JobPosting] = {}
    for posting in postings:
        by_id[posting.id] = posting
    return list(by_id.values())
