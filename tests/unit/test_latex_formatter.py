"""Tests for markdown conversion and LaTeX document assembly."""
import pytest

from backend.rendering.latex_formatter import (
    build_document,
    collect_warnings,
    escape_latex,
    markdown_to_latex,
    sanitize_filename,
    section_label,
)
from backend.rendering.pdf_renderer import add_missing_packages
from backend.shared.citation_formatter import build_citation
from backend.shared.models import CitationType, Section, SectionType


def _section(order, title, content, section_type=SectionType.TEXT):
    return Section(report_id="r1", order=order, title=title, content=content, type=section_type)


# =============================================================================
# Escaping Tests
# =============================================================================


class TestEscaping:
    """Tests for escaping helpers."""

    def test_escape_all_specials(self):
        assert escape_latex("50% of $x_1 & y#") == r"50\% of \$x\_1 \& y\#"
        assert escape_latex("a\\b") == r"a\textbackslash{}b"
        assert escape_latex(None) == ""

    def test_sanitize_filename(self):
        assert sanitize_filename("Deep Learning: A Survey!") == "Deep_Learning_A_Survey"
        assert sanitize_filename("???") == "report"

    def test_section_label(self):
        assert section_label("Results & Discussion") == "sec:results_discussion"


# =============================================================================
# Markdown Conversion Tests
# =============================================================================


class TestMarkdownToLatex:
    """Tests for section markdown conversion."""

    def test_headings(self):
        latex = markdown_to_latex("### Data Sources\n#### Notes")
        assert r"\subsubsection{Data Sources}" in latex
        assert r"\paragraph{Notes}" in latex

    def test_lists(self):
        latex = markdown_to_latex("- first\n- second\n\n1. one\n2. two")
        assert latex.count(r"\begin{itemize}") == 1
        assert latex.count(r"\end{itemize}") == 1
        assert r"\item first" in latex
        assert latex.count(r"\begin{enumerate}") == 1
        assert r"\item two" in latex

    def test_emphasis(self):
        latex = markdown_to_latex("This is **important** and *subtle*.")
        assert latex == r"This is \textbf{important} and \textit{subtle}."

    def test_prose_specials_escaped(self):
        assert markdown_to_latex("Accuracy rose 5% & cost fell") == r"Accuracy rose 5\% \& cost fell"

    def test_existing_latex_commands_pass_through(self):
        assert markdown_to_latex(r"See \cite{smith2020}.") == r"See \cite{smith2020}."

    def test_comment_lines_kept(self):
        latex = markdown_to_latex("% Word count: 150-300\n\n[Your abstract content here]")
        assert latex.startswith("% Word count: 150-300")

    def test_code_block_is_verbatim(self):
        latex = markdown_to_latex("```python\nx_1 = 50 % 3\n```")
        assert "\\begin{verbatim}\nx_1 = 50 % 3\n\\end{verbatim}" in latex

    def test_inline_code_and_link(self):
        latex = markdown_to_latex("Run `make_all` then see [the docs](https://example.org/a_b).")
        assert r"\texttt{make\_all}" in latex
        assert r"the docs (\url{https://example.org/a_b})" in latex

    def test_markdown_table(self):
        latex = markdown_to_latex("| Model | F1 |\n|---|---|\n| A | 0.9 |\n| B | 0.8 |\n")
        assert r"\begin{tabular}{ll}" in latex
        assert r"Model & F1 \\" in latex
        assert r"B & 0.8 \\" in latex


# =============================================================================
# Document Assembly Tests
# =============================================================================


class TestBuildDocument:
    """Tests for whole-document assembly."""

    @pytest.fixture
    def sections(self):
        return [
            _section(3, "Conclusion", "We conclude.", SectionType.CONCLUSION),
            _section(1, "Abstract", "Short summary.", SectionType.ABSTRACT),
            _section(2, "Introduction", "Intro text here.", SectionType.INTRODUCTION),
            _section(4, "References", "- Manual reference", SectionType.REFERENCES),
        ]

    def test_sections_follow_order(self, sections):
        document = build_document("My Paper", sections)
        source = document.source
        assert source.index(r"\section{Introduction}") < source.index(r"\section{Conclusion}")
        assert "\\begin{abstract}\nShort summary.\n\\end{abstract}" in source
        assert r"\section{Abstract}" not in source
        assert source.rstrip().endswith(r"\end{document}")

    def test_reference_sections_used_without_citations(self, sections):
        source = build_document("My Paper", sections).source
        assert r"\section*{References}" in source
        assert r"\item Manual reference" in source

    def test_citations_replace_reference_sections(self, sections):
        citation = build_citation(CitationType.WEBSITE, "Data Portal", url="https://data.example")
        document = build_document("My Paper", sections, citations=[citation], citation_style="IEEE")
        assert '\\item "Data Portal." https://data.example' in document.source
        assert "Manual reference" not in document.source
        assert document.metadata["citationCount"] == 1

    def test_metadata(self, sections):
        document = build_document("My Paper", sections)
        assert document.metadata["totalSections"] == 4
        assert document.metadata["wordCount"] == 10
        assert document.metadata["reportType"] == "research_paper"

    def test_table_section_passes_through(self):
        table = "\\begin{table}[h]\n\\begin{tabular}{l}\nA \\\\\n\\end{tabular}\n\\end{table}"
        document = build_document("T", [_section(1, "Data", table, SectionType.TABLE)])
        assert table in document.source
        assert document.metadata["tableCount"] == 1

    def test_chart_section_loads_pgfplots_once(self):
        chart = "\\begin{figure}[h]\n\\begin{tikzpicture}\n\\begin{axis}[]\n\\end{axis}\n\\end{tikzpicture}\n\\end{figure}"
        document = build_document("T", [
            _section(1, "Trend", chart, SectionType.CHART),
            _section(2, "Trend again", chart, SectionType.CHART),
        ])
        assert chart in document.source
        assert document.source.count("\\usepackage{pgfplots}") == 1
        assert "\\usepackage{pgf-pie}" not in document.source
        assert document.metadata["figureCount"] == 2

    def test_title_is_escaped(self):
        source = build_document("R&D in 2024", [_section(1, "Intro", "x")]).source
        assert r"\title{R\&D in 2024}" in source


class TestWarnings:
    """Tests for static document checks."""

    def test_unmatched_environment(self):
        warnings = collect_warnings("\\maketitle\n\\begin{itemize}\n", [_section(1, "A", "x")])
        assert warnings == ["Unmatched itemize environment (1 begin, 0 end)"]

    def test_todo_and_missing_sections(self):
        warnings = collect_warnings("\\maketitle TODO", [])
        assert "No sections provided for formatting" in warnings
        assert "Document contains TODO or FIXME markers" in warnings


class TestMissingPackages:
    """Tests for the renderer's package auto-fix."""

    def test_missing_style_file_is_added(self):
        source = "\\documentclass{article}\n\\begin{document}\\end{document}"
        log = "! LaTeX Error: File `booktabs.sty' not found."
        fixed = add_missing_packages(source, log)
        assert "\\documentclass{article}\n\\usepackage{booktabs}" in fixed

    def test_nothing_to_fix(self):
        source = "\\documentclass{article}\n\\begin{document}\\end{document}"
        assert add_missing_packages(source, "Output written") == source
