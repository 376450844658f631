"""
Splits generated paper markdown into editable section drafts.
"""
import re
from typing import List, Optional

from backend.shared.models import ResearchOutline, SectionDraft, SectionType

STANDARD_SECTIONS = [
    "abstract", "introduction", "literature review", "methodology", "methods",
    "results", "findings", "discussion", "analysis", "conclusion", "references",
    "bibliography", "appendix",
]

_SECTION_SPLIT_RE = re.compile(r"^## ", re.MULTILINE)


def is_standard_section(title: str) -> bool:
    lowered = title.lower()
    return any(name in lowered for name in STANDARD_SECTIONS)


def section_type_for_title(title: str) -> SectionType:
    lowered = title.lower()
    if "abstract" in lowered:
        return SectionType.ABSTRACT
    if "introduction" in lowered:
        return SectionType.INTRODUCTION
    if "conclusion" in lowered:
        return SectionType.CONCLUSION
    if "reference" in lowered or "bibliograph" in lowered or "citation" in lowered:
        return SectionType.REFERENCES
    return SectionType.TEXT


def _draft(title: str, content: str) -> SectionDraft:
    return SectionDraft(
        title=title,
        content=content,
        type=section_type_for_title(title),
        metadata={"generatedByAI": True, "wordCount": len(content.split())}
    )


def parse_content_into_sections(content: str, outline: Optional[ResearchOutline] = None) -> List[SectionDraft]:
    """
    Cut content at ``## `` headings, keeping outline and standard academic sections.

    When nothing matches, placeholder sections are derived from the outline.
    """
    outline_titles = [s.title for s in outline.sections] if outline else []
    drafts: List[SectionDraft] = []

    for part in _SECTION_SPLIT_RE.split(content or ""):
        if not part.strip():
            continue
        lines = part.strip().split("\n")
        title = lines[0].strip()
        body = "\n".join(lines[1:]).strip()
        if title in outline_titles or is_standard_section(title):
            drafts.append(_draft(title, body))

    if not drafts and outline is not None:
        for section in outline.sections:
            points = "\n".join(f"- {point}" for point in section.key_points)
            body = (
                f"### {section.title}\n\nContent for {section.title} section. This section covers the key "
                f"aspects and analysis related to the research topic.\n\n{points}"
            ).strip()
            drafts.append(_draft(section.title, body))

    return drafts
