"""
Section Store - ordered document sections per report.

Writes to one report are serialised by a per-report lock; edits arriving from
different clients are applied in arrival order (last write wins).
"""
import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.shared.errors import NotFoundError, ValidationError
from backend.shared.models import Section, SectionDraft, SectionType

logger = logging.getLogger(__name__)


class SectionStore:
    """
    In-memory section collections keyed by report id.

    Section orders within a report always form the dense sequence 1..N.
    """

    def __init__(self):
        self._reports: Dict[str, Dict[str, Section]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, report_id: str) -> asyncio.Lock:
        lock = self._locks.get(report_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[report_id] = lock
        return lock

    def _ordered(self, report_id: str) -> List[Section]:
        return sorted(self._reports.get(report_id, {}).values(), key=lambda s: s.order)

    def _renumber(self, sections: List[Section]) -> None:
        for position, section in enumerate(sections, start=1):
            if section.order != position:
                section.order = position

    def _require(self, report_id: str, section_id: str) -> Section:
        section = self._reports.get(report_id, {}).get(section_id)
        if section is None:
            raise NotFoundError("Section not found")
        return section

    # ========================================================================
    # READS
    # ========================================================================

    def list_sections(self, report_id: str) -> List[Section]:
        """Sections of a report in document order."""
        return [s.model_copy() for s in self._ordered(report_id)]

    def get_section(self, report_id: str, section_id: str) -> Section:
        return self._require(report_id, section_id).model_copy()

    # ========================================================================
    # WRITES
    # ========================================================================

    async def create_section(
        self,
        report_id: str,
        title: str,
        content: str,
        section_type: SectionType = SectionType.TEXT,
        order: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Section:
        """
        Insert a section at ``order`` (appended when omitted) and shift the rest.
        """
        async with self._lock_for(report_id):
            ordered = self._ordered(report_id)
            position = len(ordered) + 1 if order is None else max(1, min(order, len(ordered) + 1))

            section = Section(
                report_id=report_id,
                order=position,
                title=title,
                type=section_type,
                content=content,
                metadata=metadata or {}
            )
            ordered.insert(position - 1, section)
            self._renumber(ordered)
            self._reports.setdefault(report_id, {})[section.id] = section

            logger.info(f"Created section {section.id} at position {position} in report {report_id}")
            return section.model_copy()

    async def replace_sections(self, report_id: str, drafts: List[SectionDraft]) -> List[Section]:
        """Replace every section of a report with the drafts, in the given order."""
        async with self._lock_for(report_id):
            sections = {}
            for position, draft in enumerate(drafts, start=1):
                section = Section(
                    report_id=report_id,
                    order=position,
                    title=draft.title,
                    type=draft.type,
                    content=draft.content,
                    metadata=dict(draft.metadata)
                )
                sections[section.id] = section
            self._reports[report_id] = sections

            logger.info(f"Replaced sections of report {report_id} ({len(sections)} sections)")
            return self.list_sections(report_id)

    async def update_section_content(self, report_id: str, section_id: str, content: str) -> Section:
        """
        Replace a section's content.

        Raises:
            NotFoundError: the section does not belong to the report
        """
        async with self._lock_for(report_id):
            section = self._require(report_id, section_id)
            section.content = content
            section.updated_at = datetime.now()
            return section.model_copy()

    async def update_section(
        self,
        report_id: str,
        section_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        section_type: Optional[SectionType] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Section:
        """Apply a partial update; fields left as None are unchanged."""
        async with self._lock_for(report_id):
            section = self._require(report_id, section_id)
            if title is not None:
                section.title = title
            if content is not None:
                section.content = content
            if section_type is not None:
                section.type = section_type
            if metadata is not None:
                section.metadata = metadata
            section.updated_at = datetime.now()
            return section.model_copy()

    async def delete_section(self, report_id: str, section_id: str) -> None:
        """Remove a section and close the gap it leaves."""
        async with self._lock_for(report_id):
            self._require(report_id, section_id)
            del self._reports[report_id][section_id]
            self._renumber(self._ordered(report_id))
            logger.info(f"Deleted section {section_id} from report {report_id}")

    async def reorder_sections(self, report_id: str, ordered_ids: List[str]) -> List[Section]:
        """
        Assign positions 1..N following ``ordered_ids``, all or nothing.

        Raises:
            ValidationError: the ids are not exactly the report's current section ids
        """
        async with self._lock_for(report_id):
            current = self._reports.get(report_id, {})

            duplicates = sorted(sid for sid, count in Counter(ordered_ids).items() if count > 1)
            missing = sorted(set(current) - set(ordered_ids))
            unknown = sorted(set(ordered_ids) - set(current))
            if duplicates or missing or unknown:
                raise ValidationError(
                    "Section ids must be exactly the report's current sections",
                    details={"duplicates": duplicates, "missing": missing, "unknown": unknown}
                )

            now = datetime.now()
            for position, section_id in enumerate(ordered_ids, start=1):
                section = current[section_id]
                if section.order != position:
                    section.order = position
                    section.updated_at = now

            logger.info(f"Reordered {len(ordered_ids)} sections in report {report_id}")
            return self.list_sections(report_id)

    async def delete_report(self, report_id: str) -> None:
        async with self._lock_for(report_id):
            self._reports.pop(report_id, None)
        self._locks.pop(report_id, None)
