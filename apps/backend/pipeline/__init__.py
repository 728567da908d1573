"""
Job card extraction pipeline.

Turns one page of job search results markup into normalized JobPosting
records, with a structured pass and a regex fallback for markup drift.
"""

from .extractor import ExtractionEngine
from .models import JobPosting

__version__ = "1.0.0"

__all__ = ["ExtractionEngine", "JobPosting"]
