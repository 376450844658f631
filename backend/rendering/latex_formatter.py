"""
LaTeX formatting - assembles ordered report sections into a LaTeX document.

Section content is authored as lightweight markdown (or raw LaTeX for tables)
and converted here. The document skeleton comes from the report type's LaTeX
template.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from backend.shared.models import Citation, CitationStyle, Section, SectionType
from backend.shared.report_types import DEFAULT_REPORT_TYPE, REPORT_TYPES_CONFIG, LatexTemplate

logger = logging.getLogger(__name__)


@dataclass
class LatexDocument:
    source: str
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# ESCAPING
# ============================================================================

_LATEX_SPECIALS = {
    "\\": r"\textbackslash{}",
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
}
_LATEX_SPECIALS_RE = re.compile("|".join(re.escape(ch) for ch in _LATEX_SPECIALS))

# Characters escaped inside prose that may also contain hand-written LaTeX commands
_PROSE_SPECIALS_RE = re.compile(r"(?<!\\)([&%$#_])")


def escape_latex(value: Any) -> str:
    """Escape every LaTeX special character in plain text."""
    text = "" if value is None else str(value)
    return _LATEX_SPECIALS_RE.sub(lambda m: _LATEX_SPECIALS[m.group(0)], text)


def _escape_prose(line: str) -> str:
    return _PROSE_SPECIALS_RE.sub(r"\\\1", line)


def sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", (value or "").strip())
    return cleaned.strip("_.-") or "report"


def section_label(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", title.lower()).strip("_")
    return f"sec:{slug or 'section'}"


# ============================================================================
# MARKDOWN CONVERSION
# ============================================================================

_CODE_BLOCK_RE = re.compile(r"```(\w+)?\n(.*?)```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_TABLE_RE = re.compile(r"^\|(.+)\|[ \t]*\n\|[-: \t|]+\|[ \t]*\n((?:\|.*\|[ \t]*(?:\n|$))+)", re.MULTILINE)
_HEADING_RE = re.compile(r"^(#{1,4})\s+(.*)$")
_BULLET_RE = re.compile(r"^\s*[*-]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*\d+\.\s+(.*)$")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?!\s)(.+?)(?<!\s)\*(?![*\w])")
_STASH_RE = re.compile("\x00(\\d+)\x00")

_HEADING_COMMANDS = {1: r"\subsection", 2: r"\subsection", 3: r"\subsubsection", 4: r"\paragraph"}


def _table_from_markdown(header: str, body: str) -> str:
    def cells(row: str) -> List[str]:
        return [escape_latex(c.strip()) for c in row.strip().strip("|").split("|")]

    header_cells = cells(header)
    lines = [
        r"\begin{center}",
        r"\begin{tabular}{" + "l" * len(header_cells) + "}",
        r"\toprule",
        " & ".join(header_cells) + r" \\",
        r"\midrule",
    ]
    for row in body.strip().splitlines():
        row_cells = cells(row)
        if any(row_cells):
            row_cells = (row_cells + [""] * len(header_cells))[:len(header_cells)]
            lines.append(" & ".join(row_cells) + r" \\")
    lines += [r"\bottomrule", r"\end{tabular}", r"\end{center}"]
    return "\n".join(lines)


def markdown_to_latex(content: str) -> str:
    """
    Convert section markdown to LaTeX.

    Lines starting with % are kept as LaTeX comments; existing LaTeX commands
    pass through untouched.
    """
    stash: List[str] = []

    def keep(latex: str) -> str:
        stash.append(latex)
        return f"\x00{len(stash) - 1}\x00"

    text = (content or "").replace("\r\n", "\n")
    text = _CODE_BLOCK_RE.sub(
        lambda m: keep("\\begin{verbatim}\n" + m.group(2).rstrip("\n") + "\n\\end{verbatim}"), text
    )
    text = _TABLE_RE.sub(lambda m: keep(_table_from_markdown(m.group(1), m.group(2))) + "\n", text)
    text = _INLINE_CODE_RE.sub(lambda m: keep(r"\texttt{" + escape_latex(m.group(1)) + "}"), text)
    text = _IMAGE_RE.sub(
        lambda m: keep("\\begin{center}\n\\textbf{Figure:} " + escape_latex(m.group(1) or "Image") + "\n\\end{center}"),
        text
    )
    text = _LINK_RE.sub(lambda m: keep(escape_latex(m.group(1)) + r" (\url{" + m.group(2) + "})"), text)

    out: List[str] = []
    list_env: Optional[str] = None

    def close_list():
        nonlocal list_env
        if list_env:
            out.append(f"\\end{{{list_env}}}")
            list_env = None

    for line in text.split("\n"):
        if line.lstrip().startswith("%"):
            close_list()
            out.append(line)
            continue

        heading = _HEADING_RE.match(line)
        bullet = _BULLET_RE.match(line)
        numbered = _NUMBERED_RE.match(line)

        if heading:
            close_list()
            command = _HEADING_COMMANDS[len(heading.group(1))]
            out.append(f"{command}{{{_escape_prose(heading.group(2).strip())}}}")
        elif bullet or numbered:
            env = "itemize" if bullet else "enumerate"
            if list_env != env:
                close_list()
                out.append(f"\\begin{{{env}}}")
                list_env = env
            out.append(r"\item " + _escape_prose((bullet or numbered).group(1)))
        else:
            if line.strip() or list_env is None:
                close_list()
            out.append(_escape_prose(line))
    close_list()

    latex = "\n".join(out)
    latex = _BOLD_RE.sub(r"\\textbf{\1}", latex)
    latex = _ITALIC_RE.sub(r"\\textit{\1}", latex)

    # Link text may wrap stashed inline code
    while _STASH_RE.search(latex):
        latex = _STASH_RE.sub(lambda m: stash[int(m.group(1))], latex)
    return latex.strip()


# ============================================================================
# DOCUMENT ASSEMBLY
# ============================================================================


RAW_LATEX_TYPES = (SectionType.TABLE, SectionType.CHART)
CONTENT_PACKAGES = (
    ("\\toprule", "booktabs"),
    ("\\begin{axis}", "pgfplots"),
    ("\\pie[", "pgf-pie"),
)


def _content_packages(sections: List[Section], loaded: List[str]) -> List[str]:
    """Packages needed by raw LaTeX in TABLE and CHART sections."""
    raw = [s.content or "" for s in sections if s.type in RAW_LATEX_TYPES]
    return [
        package for marker, package in CONTENT_PACKAGES
        if package not in loaded and any(marker in content for content in raw)
    ]


def _section_body(section: Section) -> str:
    content = section.content or ""
    if section.type == SectionType.CODE:
        return "\\begin{verbatim}\n" + content.rstrip("\n") + "\n\\end{verbatim}"
    if section.type in RAW_LATEX_TYPES and "\\begin{" in content:
        return content.strip()
    return markdown_to_latex(content)


def _format_section(section: Section, template: LatexTemplate) -> str:
    body = f"\\label{{{section_label(section.title)}}}\n\n{_section_body(section)}"
    if template.section_template:
        return (
            template.section_template
            .replace("{{SECTION_TITLE}}", escape_latex(section.title))
            .replace("{{SECTION_CONTENT}}", body)
            .strip()
        )
    return f"\\section{{{escape_latex(section.title)}}}\n{body}"


def _format_bibliography(
    citations: List[Citation],
    style: CitationStyle,
    reference_sections: List[Section]
) -> Optional[str]:
    if citations:
        key = style.lower()
        items = [r"\item " + escape_latex(getattr(c.formatted, key)) for c in citations]
        return "\\section*{References}\n\\begin{enumerate}\n" + "\n".join(items) + "\n\\end{enumerate}"

    written = [s for s in reference_sections if (s.content or "").strip()]
    if not written:
        return None
    return "\n\n".join(
        f"\\section*{{{escape_latex(s.title)}}}\n{markdown_to_latex(s.content)}" for s in written
    )


def _title_page(template: LatexTemplate, title: str, author: str, institution: str) -> str:
    if not template.title_page_template:
        return "\\maketitle\n"
    return (
        template.title_page_template
        .replace("{{TITLE}}", escape_latex(title))
        .replace("{{AUTHOR}}", escape_latex(author))
        .replace("{{INSTITUTION}}", escape_latex(institution))
        .replace("{{DATE}}", r"\today")
    )


def collect_warnings(document: str, sections: List[Section]) -> List[str]:
    """Static checks on an assembled document."""
    warnings = []

    if "\\maketitle" not in document and "\\begin{titlepage}" not in document:
        warnings.append("No title page found in document")
    if not sections:
        warnings.append("No sections provided for formatting")
    if "TODO" in document or "FIXME" in document:
        warnings.append("Document contains TODO or FIXME markers")

    for env in ("itemize", "enumerate", "table", "figure", "equation", "tabular"):
        begins = document.count(f"\\begin{{{env}}}")
        ends = document.count(f"\\end{{{env}}}")
        if begins != ends:
            warnings.append(f"Unmatched {env} environment ({begins} begin, {ends} end)")

    return warnings


def build_document(
    title: str,
    sections: List[Section],
    author: str = "Research Agent",
    institution: str = "",
    citations: Optional[List[Citation]] = None,
    citation_style: CitationStyle = "APA",
    report_type_id: str = DEFAULT_REPORT_TYPE,
) -> LatexDocument:
    """
    Render sections, in order, into a complete LaTeX document.

    ABSTRACT sections become the abstract environment and REFERENCES sections
    are replaced by the formatted citation list when citations are given.
    """
    report_type = REPORT_TYPES_CONFIG.get(report_type_id) or REPORT_TYPES_CONFIG[DEFAULT_REPORT_TYPE]
    template = report_type.template.latex_template
    ordered = sorted(sections, key=lambda s: s.order)

    parts = [f"\\documentclass[11pt]{{{template.document_class}}}"]
    parts += [f"\\usepackage{{{package}}}" for package in template.packages]
    parts += [f"\\usepackage{{{package}}}" for package in _content_packages(ordered, template.packages)]
    parts.append(template.preamble.strip())
    parts.append(f"\\title{{{escape_latex(title)}}}")
    parts.append(f"\\author{{{escape_latex(author)}}}")
    parts.append("\\date{\\today}")
    parts.append("")
    parts.append("\\begin{document}")
    parts.append(_title_page(template, title, author, institution).strip())
    parts.append("\\tableofcontents\n\\newpage")

    abstracts = [s for s in ordered if s.type == SectionType.ABSTRACT]
    references = [s for s in ordered if s.type == SectionType.REFERENCES]
    main = [s for s in ordered if s.type not in (SectionType.ABSTRACT, SectionType.REFERENCES)]

    for abstract in abstracts:
        parts.append("\\begin{abstract}\n" + markdown_to_latex(abstract.content) + "\n\\end{abstract}\n\\newpage")

    parts.append("% Main content")
    for section in main:
        parts.append(_format_section(section, template))

    bibliography = _format_bibliography(citations or [], citation_style, references)
    if bibliography:
        parts.append(bibliography)

    parts.append("\\end{document}")
    source = "\n\n".join(p for p in parts if p is not None) + "\n"

    metadata = {
        "totalSections": len(ordered),
        "wordCount": sum(len((s.content or "").split()) for s in ordered),
        "tableCount": source.count("\\begin{tabular}"),
        "figureCount": (source.count("\\textbf{Figure:}") + source.count("\\includegraphics")
                        + source.count("\\begin{tikzpicture}")),
        "citationCount": len(citations or []),
        "reportType": report_type.id,
    }
    warnings = collect_warnings(source, ordered)
    if warnings:
        logger.info(f"LaTeX document '{title}' assembled with {len(warnings)} warning(s)")
    return LatexDocument(source=source, warnings=warnings, metadata=metadata)
