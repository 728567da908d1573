"""
Unit tests for the job card extraction pipeline.
"""

import pytest

from pipeline import ExtractionEngine, JobPosting
from pipeline.dom import DOMCardExtractor, NeedsFallback, Structured
from pipeline.models import dedupe_by_id, id_from_link, normalize_link, strip_text
from pipeline.regex_fallback import RegexCardExtractor

from cards import make_card, page


class TestHelpers:
    """Test normalization helpers."""

    def test_strip_text_removes_tags_and_collapses_whitespace(self):
        assert strip_text("  <b>Senior</b>\n\n   Developer  ") == "Senior Developer"

    def test_strip_text_empty(self):
        assert strip_text(None) == ""
        assert strip_text("") == ""

    def test_normalize_link_relative(self):
        assert normalize_link("/jobs/view/123456?refId=1") == "https://www.linkedin.com/jobs/view/123456"

    def test_normalize_link_absolute_keeps_host(self):
        link = normalize_link("https://it.linkedin.com/jobs/view/123?trk=x")
        assert link == "https://it.linkedin.com/jobs/view/123"

    def test_id_from_link_plain_and_slugged(self):
        assert id_from_link("https://www.linkedin.com/jobs/view/123456") == "123456"
        assert id_from_link("https://www.linkedin.com/jobs/view/python-dev-2-at-acme-987654") == "987654"
        assert id_from_link("https://www.linkedin.com/company/acme") == ""

    def test_dedupe_last_wins_first_position(self):
        postings = [
            JobPosting(id="1", title="old"),
            JobPosting(id="2", title="other"),
            JobPosting(id="1", title="new"),
        ]
        result = dedupe_by_id(postings)
        assert [p.id for p in result] == ["1", "2"]
        assert result[0].title == "new"


class TestStructuredExtraction:
    """Test the DOM card pass."""

    def test_extracts_all_fields(self):
        result = DOMCardExtractor().extract(page(make_card()))
        assert isinstance(result, Structured)
        assert len(result.records) == 1

        job = result.records[0]
        assert job.id == "3912345678"
        assert job.title == "Senior Python Developer"
        assert job.company == "Acme Corp"
        assert job.location == "Milan, Lombardy, Italy"
        assert job.date == "2025-01-15"
        assert job.url == "https://it.linkedin.com/jobs/view/senior-python-developer-at-acme-3912345678"
        assert job.logo == "https://media.licdn.com/logo-acme.png"

    def test_no_cards_needs_fallback(self):
        result = DOMCardExtractor().extract("<html><body><p>No matching jobs found.</p></body></html>")
        assert isinstance(result, NeedsFallback)
        assert result.reason == "no_cards"

    def test_card_without_view_link_is_skipped(self):
        html = page(make_card(href="https://www.linkedin.com/company/acme"))
        result = DOMCardExtractor().extract(html)
        assert isinstance(result, NeedsFallback)

    def test_id_from_link_when_urn_missing(self):
        html = page(make_card(job_id="555")).replace('data-entity-urn="urn:li:jobPosting:555"', "")
        result = DOMCardExtractor().extract(html)
        assert isinstance(result, Structured)
        assert result.records[0].id == "555"

    def test_title_falls_back_to_hidden_link_text(self):
        html = page(make_card(title="Data Engineer")).replace("base-search-card__title", "other-title")
        result = DOMCardExtractor().extract(html)
        assert result.records[0].title == "Data Engineer"

    def test_company_without_nested_link(self):
        card = """
        <div class="base-card job-search-card" data-entity-urn="urn:li:jobPosting:42">
          <a class="base-card__full-link" href="/jobs/view/42"></a>
          <h4 class="base-search-card__subtitle">  Globex   Inc </h4>
          <div class="job-card-container__metadata-item">Remote</div>
        </div>
        """
        result = DOMCardExtractor().extract(card)
        job = result.records[0]
        assert job.company == "Globex Inc"
        assert job.location == "Remote"
        assert job.date == ""
        assert job.logo == ""

    def test_traversal_error_needs_fallback(self, monkeypatch):
        extractor = DOMCardExtractor()

        def boom(candidate):
            raise ValueError("unexpected markup")

        monkeypatch.setattr(extractor, "_extract_card", boom)
        result = extractor.extract(page(make_card()))
        assert isinstance(result, NeedsFallback)
        assert result.reason == "error"
        assert isinstance(result.error, ValueError)


class TestRegexFallback:
    """Test the regex fallback pass."""

    def test_split_cards(self):
        chunks = RegexCardExtractor().split_cards(page(make_card(job_id="1"), make_card(job_id="2")))
        assert len(chunks) == 2
        assert all(chunk.startswith("data-entity-urn=") for chunk in chunks)

    def test_extracts_all_fields(self):
        jobs = RegexCardExtractor().extract(page(make_card(company="H&amp;M")))
        assert len(jobs) == 1
        job = jobs[0]
        assert job.id == "3912345678"
        assert job.title == "Senior Python Developer"
        assert job.company == "H&M"
        assert job.location == "Milan, Lombardy, Italy"
        assert job.date == "2025-01-15"
        assert job.url == "https://it.linkedin.com/jobs/view/senior-python-developer-at-acme-3912345678"
        assert job.logo == "https://media.licdn.com/logo-acme.png"

    def test_chunk_without_link_is_skipped(self):
        html = page(make_card(job_id="1", href="https://www.linkedin.com/company/acme"), make_card(job_id="2"))
        jobs = RegexCardExtractor().extract(html)
        assert [j.id for j in jobs] == ["2"]

    def test_duplicate_ids_keep_later_card(self):
        html = page(make_card(job_id="7", title="First"), make_card(job_id="7", title="Second"))
        jobs = RegexCardExtractor().extract(html)
        assert len(jobs) == 1
        assert jobs[0].title == "Second"

    def test_placeholder_image_gives_empty_logo(self):
        jobs = RegexCardExtractor().extract(page(make_card(logo_attrs="")))
        assert jobs[0].logo == ""


class TestExtractionEngine:
    """Test the two-stage engine."""

    @pytest.mark.parametrize("html", ["", None])
    def test_empty_input(self, html):
        assert ExtractionEngine().parse(html) == []

    def test_garbage_input_returns_empty(self):
        assert ExtractionEngine().parse("<<<div class=>>> </ul></li>") == []

    def test_duplicate_urn_keeps_later_block(self):
        html = page(
            make_card(job_id="1001", title="Backend Engineer", company="Initech"),
            make_card(job_id="1002", title="Frontend Engineer"),
            make_card(job_id="1001", title="Backend Engineer II", company="Initrode"),
        )
        jobs = ExtractionEngine().parse(html)
        assert len(jobs) == 2
        by_id = {j.id: j for j in jobs}
        assert by_id["1001"].title == "Backend Engineer II"
        assert by_id["1001"].company == "Initrode"

    def test_relative_link_becomes_absolute_without_query(self):
        html = page(make_card(job_id="123456", href="/jobs/view/123456?refId=abc&amp;position=1"))
        job = ExtractionEngine().parse(html)[0]
        assert job.url == "https://www.linkedin.com/jobs/view/123456"

    def test_placeholder_only_image_gives_empty_logo(self):
        job = ExtractionEngine().parse(page(make_card(logo_attrs="")))[0]
        assert job.logo == ""

    def test_falls_back_to_regex_when_structured_pass_fails(self, monkeypatch):
        engine = ExtractionEngine()
        monkeypatch.setattr(
            engine.dom_extractor, "extract",
            lambda html: NeedsFallback(reason="error", error=RuntimeError("parser crashed")),
        )
        jobs = engine.parse(page(make_card(job_id="77")))
        assert [j.id for j in jobs] == ["77"]

    def test_structured_result_skips_regex(self, monkeypatch):
        engine = ExtractionEngine()

        def fail(html):
            raise AssertionError("regex fallback should not run")

        monkeypatch.setattr(engine.regex_extractor, "extract", fail)
        jobs = engine.parse(page(make_card()))
        assert len(jobs) == 1

    def test_to_dict_shape(self):
        job = ExtractionEngine().parse(page(make_card()))[0]
        assert set(job.to_dict()) == {"id", "title", "company", "location", "date", "url", "logo"}
