"""
Editor selections - which section each editing connection has active.

Read-side state only: nothing here is persisted and nothing mutates sections.
"""
from typing import Dict, Optional, Tuple


class EditorSelections:
    """Tracks the active (report, section) per editing connection."""

    def __init__(self):
        self._selected: Dict[str, Tuple[str, str]] = {}

    def select(self, connection_id: str, report_id: str, section_id: str) -> None:
        self._selected[connection_id] = (report_id, section_id)

    def selected(self, connection_id: str, report_id: Optional[str] = None) -> Optional[str]:
        """Active section id for a connection, optionally only within one report."""
        entry = self._selected.get(connection_id)
        if entry is None:
            return None
        if report_id is not None and entry[0] != report_id:
            return None
        return entry[1]

    def editors_of(self, report_id: str, section_id: str) -> int:
        """Number of connections currently focused on a section."""
        return sum(1 for entry in self._selected.values() if entry == (report_id, section_id))

    def clear(self, connection_id: str) -> None:
        self._selected.pop(connection_id, None)
