"""
Tests for nomination HTML rendering.

Tests cover:
- Evaluation section selection and ordering
- Sanitization of free-text sections
- Row visibility
- Schema lookup failures
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from conftest import make_nomination
from premiers_awards_backend.errors import SchemaUnavailable
from premiers_awards_backend.models import Nominator, Nominee, Partner
from premiers_awards_backend.templating import NominationRenderer, html_list, sanitize_html

CREATED = datetime(2023, 5, 1, 9, 30, 0, tzinfo=ZoneInfo("America/Vancouver"))


class StaticSchema:
    """In-memory SchemaLookup: section headings are the upper-cased keys."""

    def __init__(self, sections):
        self.sections = sections

    def options(self, key):
        return []

    def lookup(self, key, value):
        return value.upper()

    def sections_for(self, category):
        return list(self.sections.get(category, []))

    def has_category(self, category):
        return category in self.sections


class TestSanitizeHtml:
    def test_keeps_allowed_tags(self):
        assert str(sanitize_html("<p>Hello <strong>there</strong></p>")) == "<p>Hello <strong>there</strong></p>"

    def test_removes_scripts_and_attributes(self):
        cleaned = str(sanitize_html('<p onclick="x()">Hi<script>alert(1)</script></p><a href="y">link</a>'))
        assert "script" not in cleaned
        assert "onclick" not in cleaned
        assert "<a" not in cleaned
        assert "link" in cleaned

    def test_empty_text(self):
        assert str(sanitize_html("")) == ""


class TestHtmlList:
    def test_escapes_items(self):
        assert str(html_list(["<b>", "x"])) == "<ul><li>&lt;b&gt;</li><li>x</li></ul>"

    def test_ordered(self):
        assert str(html_list(["a"], ordered=True)) == "<ol><li>a</li></ol>"

    def test_empty(self):
        assert str(html_list([])) == ""


class TestEvaluation:
    def test_only_declared_sections_in_declared_order(self, renderer):
        # "valuing_people" is not a section of the innovation category
        nomination = make_nomination(
            evaluation={
                "impact": "Lasting impact",
                "summary": "Short summary",
                "valuing_people": "Not rendered",
            }
        )
        html = str(renderer.evaluation_html(nomination))
        assert "Not rendered" not in html
        assert html.index("Summary") < html.index("Impact")
        assert "<h3>Summary</h3><div>Short summary</div>" in html

    def test_blank_sections_skipped(self, renderer):
        nomination = make_nomination(evaluation={"summary": "   ", "context": "Context text"})
        html = str(renderer.evaluation_html(nomination))
        assert "<h3>Summary</h3>" not in html
        assert "<h3>Context</h3>" in html

    def test_section_text_is_sanitized(self, renderer):
        nomination = make_nomination(evaluation={"summary": "<p>ok</p><img src=x onerror=alert(1)>"})
        html = str(renderer.evaluation_html(nomination))
        assert "<p>ok</p>" in html
        assert "img" not in html

    def test_membership_comes_from_the_injected_lookup(self):
        """Any SchemaLookup decides which sections apply, not just the YAML tables."""
        renderer = NominationRenderer(StaticSchema({"innovation": ["impact", "summary"]}))
        nomination = make_nomination(
            evaluation={"summary": "Short summary", "context": "Dropped", "impact": "Lasting impact"}
        )
        html = str(renderer.evaluation_html(nomination))
        assert "Dropped" not in html
        assert html.index("IMPACT") < html.index("SUMMARY")


class TestRender:
    def test_document_contents(self, renderer):
        nomination = make_nomination(
            seq=42,
            nominee=Nominee(firstname="Ada", lastname="Lovelace"),
            nominees=3,
            partners=[Partner(organization="City of Victoria")],
            nominators=[Nominator(firstname="Grace", lastname="Hopper", title="Director")],
        )
        html = renderer.render(nomination, created=CREATED)
        assert "Submission ID 00042" in html
        assert "Innovation" in html
        assert "Transportation and Infrastructure" in html
        assert "Ada Lovelace" in html
        assert "<li>City of Victoria</li>" in html
        assert "Grace Hopper, Director" in html
        assert "2023-05-01, 09:30:00 AM" in html

    def test_hidden_rows_are_omitted(self, renderer):
        nomination = make_nomination(title="", nominees=0)
        html = renderer.render(nomination, created=CREATED)
        assert "Nomination Title" not in html
        assert "Number of Nominees" not in html
        assert "Partners" not in html
        assert "Attachments" not in html
        assert "Application Category" in html

    def test_values_are_escaped(self, renderer):
        nomination = make_nomination(title="<script>alert(1)</script>")
        html = renderer.render(nomination, created=CREATED)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_unknown_organization_raises(self, renderer):
        nomination = make_nomination(organizations=["org-999"])
        with pytest.raises(SchemaUnavailable):
            renderer.render(nomination, created=CREATED)
