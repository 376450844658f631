"""Tests for the report type registry and structure generation."""
import pytest

from backend.shared.errors import NotFoundError, ValidationError
from backend.shared.models import SectionType
from backend.shared.report_types import (
    VALID_REPORT_TYPE_IDS,
    build_structure,
    get_enabled_report_types,
    get_report_type_config,
    get_report_types_for_dropdown,
)


class TestLookups:
    """Tests for report type lookups."""

    def test_only_enabled_types_are_listed(self):
        ids = [config.id for config in get_enabled_report_types()]
        assert ids == ["research_paper"]

    def test_dropdown_entries(self):
        entry = get_report_types_for_dropdown()[0]
        assert entry["value"] == "research_paper"
        assert set(entry) == {"value", "label", "description", "category", "difficulty", "estimatedTime"}

    def test_unknown_id_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            get_report_type_config("novel")
        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"validIds": VALID_REPORT_TYPE_IDS}

    def test_disabled_type_is_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            get_report_type_config("thesis")
        assert exc_info.value.message == "Report type is disabled: thesis"


class TestBuildStructure:
    """Tests for turning templates into placeholder sections."""

    def test_research_paper_sections_in_order(self):
        drafts = build_structure("research_paper")
        assert [d.title for d in drafts] == [
            "Abstract", "Introduction", "Literature Review", "Methodology",
            "Results", "Discussion", "Conclusion", "References",
        ]
        assert drafts[0].type == SectionType.ABSTRACT
        assert drafts[-1].type == SectionType.REFERENCES
        assert drafts[2].type == SectionType.TEXT

    def test_placeholder_content(self):
        intro = build_structure("research_paper")[1]
        lines = intro.content.split("\n")
        assert lines[0].startswith("% ")
        assert lines[1] == "% Word count: 500-1000"
        assert lines[-1] == "[Your introduction content here]"
        assert intro.metadata["wordCountRange"] == [500, 1000]
        assert intro.metadata["templateSectionId"] == "introduction"

    def test_word_limit_scales_ranges(self):
        intro = build_structure("research_paper", word_limit=4000)[1]
        assert intro.metadata["wordCountRange"] == [250, 500]

    def test_references_have_variable_word_count(self):
        references = build_structure("research_paper")[-1]
        assert "% Word count: Variable" in references.content

    def test_custom_sections_go_before_references(self):
        drafts = build_structure("research_paper", custom_sections=["Ethics Statement", " "])
        titles = [d.title for d in drafts]
        assert titles[-2:] == ["Ethics Statement", "References"]
        assert drafts[-2].metadata["custom"] is True
        assert len(drafts) == 9

    def test_disabled_type_cannot_be_built(self):
        with pytest.raises(NotFoundError):
            build_structure("thesis")
