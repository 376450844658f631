"""Tests for the ordered section store and editor selections."""
import pytest

from backend.editor.section_store import SectionStore
from backend.editor.selection import EditorSelections
from backend.shared.errors import NotFoundError, ValidationError
from backend.shared.models import SectionDraft, SectionType


async def _seed(store: SectionStore, report_id: str = "r1", count: int = 3):
    return [await store.create_section(report_id, f"Section {i}", f"Body {i}") for i in range(1, count + 1)]


def _orders(store: SectionStore, report_id: str = "r1"):
    return [(s.title, s.order) for s in store.list_sections(report_id)]


# =============================================================================
# Create / Delete Tests
# =============================================================================


class TestCreateAndDelete:
    """Tests for inserting and removing sections."""

    @pytest.mark.asyncio
    async def test_append_assigns_next_position(self):
        store = SectionStore()
        await _seed(store)
        assert _orders(store) == [("Section 1", 1), ("Section 2", 2), ("Section 3", 3)]

    @pytest.mark.asyncio
    async def test_insert_shifts_later_sections(self):
        store = SectionStore()
        await _seed(store)
        await store.create_section("r1", "Inserted", "x", order=2)
        assert _orders(store) == [("Section 1", 1), ("Inserted", 2), ("Section 2", 3), ("Section 3", 4)]

    @pytest.mark.asyncio
    async def test_out_of_range_order_is_clamped(self):
        store = SectionStore()
        await _seed(store, count=2)
        created = await store.create_section("r1", "Last", "x", order=99)
        assert created.order == 3

    @pytest.mark.asyncio
    async def test_delete_closes_the_gap(self):
        store = SectionStore()
        sections = await _seed(store)
        await store.delete_section("r1", sections[0].id)
        assert _orders(store) == [("Section 2", 1), ("Section 3", 2)]

    @pytest.mark.asyncio
    async def test_reports_are_independent(self):
        store = SectionStore()
        await _seed(store, "r1", 2)
        await _seed(store, "r2", 1)
        assert len(store.list_sections("r1")) == 2
        assert len(store.list_sections("r2")) == 1

    @pytest.mark.asyncio
    async def test_replace_sections(self):
        store = SectionStore()
        await _seed(store)
        replaced = await store.replace_sections("r1", [
            SectionDraft(title="Abstract", content="a", type=SectionType.ABSTRACT),
            SectionDraft(title="Introduction", content="b", type=SectionType.INTRODUCTION),
        ])
        assert [(s.title, s.order) for s in replaced] == [("Abstract", 1), ("Introduction", 2)]


# =============================================================================
# Update Tests
# =============================================================================


class TestUpdates:
    """Tests for content and partial updates."""

    @pytest.mark.asyncio
    async def test_update_content(self):
        store = SectionStore()
        sections = await _seed(store)
        updated = await store.update_section_content("r1", sections[1].id, "New body")
        assert updated.content == "New body"
        assert updated.updated_at >= sections[1].updated_at

    @pytest.mark.asyncio
    async def test_update_unknown_section_has_no_side_effect(self):
        store = SectionStore()
        await _seed(store)
        before = store.list_sections("r1")
        with pytest.raises(NotFoundError):
            await store.update_section_content("r1", "missing", "x")
        assert store.list_sections("r1") == before

    @pytest.mark.asyncio
    async def test_section_of_other_report_is_not_found(self):
        store = SectionStore()
        sections = await _seed(store, "r1", 1)
        with pytest.raises(NotFoundError):
            store.get_section("r2", sections[0].id)

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self):
        store = SectionStore()
        sections = await _seed(store, count=1)
        updated = await store.update_section("r1", sections[0].id, title="Renamed")
        assert updated.title == "Renamed"
        assert updated.content == "Body 1"
        assert updated.type == SectionType.TEXT

    @pytest.mark.asyncio
    async def test_returned_sections_are_copies(self):
        store = SectionStore()
        sections = await _seed(store, count=1)
        sections[0].content = "mutated outside"
        assert store.get_section("r1", sections[0].id).content == "Body 1"


# =============================================================================
# Reorder Tests
# =============================================================================


class TestReorder:
    """Tests for all-or-nothing reordering."""

    @pytest.mark.asyncio
    async def test_reorder_changes_only_positions(self):
        store = SectionStore()
        a, b, c = await _seed(store)

        reordered = await store.reorder_sections("r1", [c.id, a.id, b.id])

        assert [(s.id, s.order) for s in reordered] == [(c.id, 1), (a.id, 2), (b.id, 3)]
        assert {s.id: s.content for s in reordered} == {a.id: "Body 1", b.id: "Body 2", c.id: "Body 3"}

    @pytest.mark.asyncio
    async def test_reorder_with_missing_id_changes_nothing(self):
        store = SectionStore()
        a, b, c = await _seed(store)
        with pytest.raises(ValidationError) as exc_info:
            await store.reorder_sections("r1", [c.id, a.id])
        assert exc_info.value.details["missing"] == [b.id]
        assert [s.id for s in store.list_sections("r1")] == [a.id, b.id, c.id]

    @pytest.mark.asyncio
    async def test_reorder_rejects_duplicates_and_unknown_ids(self):
        store = SectionStore()
        a, b, c = await _seed(store)
        with pytest.raises(ValidationError) as exc_info:
            await store.reorder_sections("r1", [a.id, a.id, b.id, "ghost"])
        assert exc_info.value.details["duplicates"] == [a.id]
        assert exc_info.value.details["unknown"] == ["ghost"]


# =============================================================================
# Selection Tests
# =============================================================================


class TestEditorSelections:
    """Tests for per-connection selection tracking."""

    def test_select_and_clear(self):
        selections = EditorSelections()
        selections.select("c1", "r1", "s1")
        selections.select("c2", "r1", "s1")
        assert selections.selected("c1") == "s1"
        assert selections.selected("c1", report_id="r2") is None
        assert selections.editors_of("r1", "s1") == 2

        selections.clear("c1")
        assert selections.selected("c1") is None
        assert selections.editors_of("r1", "s1") == 1
