"""
Report type registry - read-only configuration of supported document types.

Each report type carries the section template used by generate-structure and
the LaTeX template used when sections are compiled.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import Field

from backend.shared.errors import NotFoundError, ValidationError
from backend.shared.models import SectionDraft, SectionType, WireModel

logger = logging.getLogger(__name__)


AcademicLevel = Literal["high_school", "undergraduate", "graduate", "doctoral", "professional"]


class SectionConfig(WireModel):
    id: str
    title: str
    type: Literal["TEXT", "CODE", "MATH", "TABLE", "FIGURE"] = "TEXT"
    description: str
    word_count_range: Tuple[int, int]
    required: bool = True
    order: int
    subsections: Optional[List[str]] = None
    guidelines: Optional[str] = None


class ReportMetadata(WireModel):
    word_count_range: Tuple[int, int]
    default_citation_style: Literal["APA", "MLA", "CHICAGO", "IEEE"] = "APA"
    recommended_academic_levels: List[AcademicLevel]
    estimated_time_hours: Tuple[int, int]
    difficulty: Literal["beginner", "intermediate", "advanced"]
    tags: List[str] = Field(default_factory=list)


class LatexTemplate(WireModel):
    document_class: str = "article"
    packages: List[str] = Field(default_factory=list)
    preamble: str = ""
    title_page_template: str = ""
    section_template: str = ""
    bibliography_template: str = ""


class ReportTemplate(WireModel):
    sections: List[SectionConfig]
    metadata: ReportMetadata
    latex_template: LatexTemplate


class ReportExample(WireModel):
    title: str
    description: str
    field_of_study: Optional[str] = None


class ReportTypeConfig(WireModel):
    id: str
    label: str
    description: str
    long_description: str
    enabled: bool
    category: Literal["academic", "professional", "scientific", "business"]
    template: ReportTemplate
    examples: List[ReportExample] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: str = "1.0.0"


# ============================================================================
# LATEX TEMPLATES
# ============================================================================

ACADEMIC_PREAMBLE = r"""
\geometry{margin=1in}
\usepackage[utf8]{inputenc}
\usepackage[T1]{fontenc}
\usepackage{times}
\usepackage{setspace}
\doublespacing

% Header and footer
\pagestyle{fancy}
\fancyhf{}
\rhead{\thepage}
\renewcommand{\headrulewidth}{0pt}

% Section formatting
\titleformat{\section}{\normalfont\Large\bfseries}{\thesection}{1em}{}
\titleformat{\subsection}{\normalfont\large\bfseries}{\thesubsection}{1em}{}

\hypersetup{
    colorlinks=true,
    linkcolor=black,
    filecolor=magenta,
    urlcolor=blue,
    citecolor=black
}
"""

ACADEMIC_TITLE_PAGE = r"""
\begin{titlepage}
\centering
\vspace*{1in}

{\Large \textbf{{{TITLE}}} \par}
\vspace{0.5in}
{\large {{AUTHOR}} \par}
\vspace{0.3in}
{\large {{INSTITUTION}} \par}
\vspace{0.5in}
{\large {{DATE}} \par}

\vfill
\end{titlepage}
"""

ACADEMIC_SECTION = r"""
\section{{{SECTION_TITLE}}}
{{SECTION_CONTENT}}
"""

ACADEMIC_BIBLIOGRAPHY = r"""
\bibliographystyle{apalike}
\bibliography{references}
"""

ACADEMIC_PACKAGES = [
    "geometry", "amsmath", "amsfonts", "amssymb", "graphicx", "booktabs", "array",
    "parskip", "fancyhdr", "titlesec", "natbib", "url", "hyperref",
]


def _academic_latex() -> LatexTemplate:
    return LatexTemplate(
        document_class="article",
        packages=list(ACADEMIC_PACKAGES),
        preamble=ACADEMIC_PREAMBLE,
        title_page_template=ACADEMIC_TITLE_PAGE,
        section_template=ACADEMIC_SECTION,
        bibliography_template=ACADEMIC_BIBLIOGRAPHY
    )


# ============================================================================
# REGISTRY
# ============================================================================

REPORT_TYPES_CONFIG: Dict[str, ReportTypeConfig] = {
    "research_paper": ReportTypeConfig(
        id="research_paper",
        label="Research Paper",
        description="Academic research paper with methodology and analysis",
        long_description=(
            "A comprehensive academic research paper that presents original research, methodology, "
            "findings, and analysis. Includes literature review, research methodology, results, and "
            "detailed discussion of findings."
        ),
        enabled=True,
        category="academic",
        template=ReportTemplate(
            sections=[
                SectionConfig(
                    id="abstract", title="Abstract", order=1, word_count_range=(150, 300),
                    description="Concise summary of the research question, methodology, key findings, and conclusions",
                    guidelines="Should be written last, summarizing the entire paper in a single paragraph."
                ),
                SectionConfig(
                    id="introduction", title="Introduction", order=2, word_count_range=(500, 1000),
                    description="Background information, research problem, objectives, and paper structure",
                    guidelines="Start broad and narrow down to your specific research question."
                ),
                SectionConfig(
                    id="literature_review", title="Literature Review", order=3, word_count_range=(1000, 2500),
                    description="Critical analysis of existing research and theoretical framework",
                    guidelines="Synthesize existing research, identify gaps, and position your work within the field."
                ),
                SectionConfig(
                    id="methodology", title="Methodology", order=4, word_count_range=(500, 1500),
                    description="Research design, data collection methods, and analytical procedures",
                    subsections=["Research Design", "Data Collection", "Data Analysis", "Limitations"],
                    guidelines="Describe your approach in enough detail for replication."
                ),
                SectionConfig(
                    id="results", title="Results", order=5, word_count_range=(1000, 2000),
                    description="Presentation of findings with tables, figures, and statistical analysis",
                    guidelines="Present findings objectively without interpretation."
                ),
                SectionConfig(
                    id="discussion", title="Discussion", order=6, word_count_range=(1000, 2000),
                    description="Interpretation of results, implications, and connection to existing literature",
                    subsections=["Key Findings", "Implications", "Limitations", "Future Research"],
                    guidelines="Interpret your results and relate them back to your research questions."
                ),
                SectionConfig(
                    id="conclusion", title="Conclusion", order=7, word_count_range=(300, 800),
                    description="Summary of key findings, contributions, and future research directions",
                    guidelines="Summarize key findings and suggest concrete directions for future research."
                ),
                SectionConfig(
                    id="references", title="References", order=8, word_count_range=(0, 0),
                    description="Complete bibliography of all cited sources",
                    guidelines="Follow citation style guidelines precisely."
                ),
            ],
            metadata=ReportMetadata(
                word_count_range=(4000, 8000),
                default_citation_style="APA",
                recommended_academic_levels=["undergraduate", "graduate", "doctoral"],
                estimated_time_hours=(40, 80),
                difficulty="intermediate",
                tags=["academic", "research", "empirical", "peer-reviewed"]
            ),
            latex_template=_academic_latex()
        ),
        examples=[
            ReportExample(
                title="The Impact of Social Media on Academic Performance",
                description="Quantitative study examining the relationship between social media usage and GPA",
                field_of_study="Psychology"
            ),
            ReportExample(
                title="Machine Learning Approaches to Climate Prediction",
                description="Comparative analysis of different ML algorithms for long-term climate forecasting",
                field_of_study="Computer Science"
            ),
            ReportExample(
                title="Economic Effects of Remote Work Policies",
                description="Mixed-methods research on productivity and cost implications of remote work",
                field_of_study="Economics"
            ),
        ]
    ),
    "thesis": ReportTypeConfig(
        id="thesis",
        label="Thesis",
        description="Graduate-level thesis structure",
        long_description=(
            "A graduate thesis with an extended literature review, detailed methodology and "
            "multi-chapter presentation of results."
        ),
        enabled=False,
        category="academic",
        template=ReportTemplate(
            sections=[
                SectionConfig(id="abstract", title="Abstract", order=1, word_count_range=(300, 500),
                              description="Comprehensive summary of the thesis"),
                SectionConfig(id="introduction", title="Introduction", order=2, word_count_range=(2000, 4000),
                              description="Research context, questions, and significance",
                              subsections=["Problem Statement", "Research Questions", "Significance of Study"]),
                SectionConfig(id="literature_review", title="Literature Review", order=3,
                              word_count_range=(5000, 10000),
                              description="Comprehensive review of relevant literature"),
                SectionConfig(id="methodology", title="Methodology", order=4, word_count_range=(3000, 6000),
                              description="Detailed research methodology and design"),
                SectionConfig(id="results", title="Results", order=5, word_count_range=(5000, 10000),
                              description="Detailed presentation of findings"),
                SectionConfig(id="discussion", title="Discussion", order=6, word_count_range=(4000, 8000),
                              description="Analysis and interpretation of results"),
                SectionConfig(id="conclusion", title="Conclusion", order=7, word_count_range=(1500, 3000),
                              description="Summary and future research directions"),
                SectionConfig(id="references", title="References", order=8, word_count_range=(0, 0),
                              description="Complete bibliography"),
                SectionConfig(id="appendices", title="Appendices", order=9, word_count_range=(0, 0),
                              required=False, description="Supporting materials and additional data"),
            ],
            metadata=ReportMetadata(
                word_count_range=(20000, 45000),
                recommended_academic_levels=["graduate", "doctoral"],
                estimated_time_hours=(300, 900),
                difficulty="advanced",
                tags=["academic", "thesis", "graduate"]
            ),
            latex_template=_academic_latex()
        )
    ),
}

VALID_REPORT_TYPE_IDS: List[str] = list(REPORT_TYPES_CONFIG.keys())

DEFAULT_REPORT_TYPE = "research_paper"

# Template section ids that map onto dedicated heading section types
_HEADING_TYPES = {
    "abstract": SectionType.ABSTRACT,
    "introduction": SectionType.INTRODUCTION,
    "conclusion": SectionType.CONCLUSION,
    "references": SectionType.REFERENCES,
}


# ============================================================================
# LOOKUPS
# ============================================================================


def get_enabled_report_types() -> List[ReportTypeConfig]:
    return [config for config in REPORT_TYPES_CONFIG.values() if config.enabled]


def get_report_types_for_dropdown() -> List[Dict[str, Any]]:
    """Condensed view of the enabled report types for selection lists."""
    return [
        {
            "value": config.id,
            "label": config.label,
            "description": config.description,
            "category": config.category,
            "difficulty": config.template.metadata.difficulty,
            "estimatedTime": list(config.template.metadata.estimated_time_hours),
        }
        for config in get_enabled_report_types()
    ]


def get_report_type_config(report_type_id: str) -> ReportTypeConfig:
    """
    Look up an enabled report type.

    Raises:
        ValidationError: the id is not a known report type
        NotFoundError: the report type exists but is disabled
    """
    if report_type_id not in REPORT_TYPES_CONFIG:
        raise ValidationError(
            f"Invalid report type ID: {report_type_id}",
            details={"validIds": VALID_REPORT_TYPE_IDS}
        )

    config = REPORT_TYPES_CONFIG[report_type_id]
    if not config.enabled:
        raise NotFoundError(f"Report type is disabled: {report_type_id}")
    return config


# ============================================================================
# STRUCTURE GENERATION
# ============================================================================


def _scaled_range(word_range: Tuple[int, int], factor: Optional[float]) -> Tuple[int, int]:
    if factor is None:
        return word_range
    return (int(round(word_range[0] * factor)), int(round(word_range[1] * factor)))


def _section_type(section: SectionConfig) -> SectionType:
    if section.id in _HEADING_TYPES:
        return _HEADING_TYPES[section.id]
    # MATH has no editor counterpart and is edited as text
    return SectionType.__members__.get(section.type, SectionType.TEXT)


def _placeholder(title: str, description: str, word_range: Optional[Tuple[int, int]]) -> str:
    if word_range and word_range[1] > 0:
        words = f"{word_range[0]}-{word_range[1]}"
    else:
        words = "Variable"
    return f"% {description}\n% Word count: {words}\n\n[Your {title.lower()} content here]"


def build_structure(
    report_type_id: str = DEFAULT_REPORT_TYPE,
    academic_level: str = "undergraduate",
    field_of_study: Optional[str] = None,
    word_limit: Optional[int] = None,
    custom_sections: Optional[List[str]] = None,
) -> List[SectionDraft]:
    """
    Turn a report type template into placeholder section drafts.

    Word ranges are scaled proportionally when a word limit is given. Custom
    sections are inserted before the references section.
    """
    config = get_report_type_config(report_type_id)
    template = config.template

    factor = None
    if word_limit:
        upper = template.metadata.word_count_range[1]
        factor = word_limit / upper if upper else None

    drafts: List[SectionDraft] = []
    for section in sorted(template.sections, key=lambda s: s.order):
        word_range = _scaled_range(section.word_count_range, factor)
        drafts.append(SectionDraft(
            title=section.title,
            content=_placeholder(section.title, section.description, word_range),
            type=_section_type(section),
            metadata={
                "templateSectionId": section.id,
                "description": section.description,
                "wordCountRange": list(word_range),
                "required": section.required,
                "academicLevel": academic_level,
                "fieldOfStudy": field_of_study,
            }
        ))

    if custom_sections:
        insert_at = next(
            (i for i, d in enumerate(drafts) if d.metadata.get("templateSectionId") == "references"),
            len(drafts)
        )
        for offset, title in enumerate(t for t in custom_sections if t and t.strip()):
            drafts.insert(insert_at + offset, SectionDraft(
                title=title.strip(),
                content=_placeholder(title.strip(), "Custom section", None),
                type=SectionType.TEXT,
                metadata={"custom": True, "required": False, "academicLevel": academic_level}
            ))

    logger.info(f"Built {report_type_id} structure with {len(drafts)} sections")
    return drafts
