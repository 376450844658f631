"""
Pydantic models for the Research Paper Studio backend.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate an opaque identifier."""
    return uuid.uuid4().hex


class WireModel(BaseModel):
    """Base model serialised with camelCase keys, accepting either case on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# ENUMERATIONS
# ============================================================================


class ProjectStatus(str, Enum):
    DRAFT = "DRAFT"
    RESEARCHING = "RESEARCHING"
    WRITING = "WRITING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PAUSED = "PAUSED"


class AgentType(str, Enum):
    RESEARCH = "RESEARCH"
    SEARCH = "SEARCH"
    ANALYSIS = "ANALYSIS"
    WRITING = "WRITING"
    MEMORY = "MEMORY"


class SectionType(str, Enum):
    TEXT = "TEXT"
    TABLE = "TABLE"
    CHART = "CHART"
    FIGURE = "FIGURE"
    CODE = "CODE"
    # Heading types assigned to sections parsed out of generated content
    ABSTRACT = "ABSTRACT"
    INTRODUCTION = "INTRODUCTION"
    CONCLUSION = "CONCLUSION"
    REFERENCES = "REFERENCES"


class CitationType(str, Enum):
    WEBSITE = "WEBSITE"
    JOURNAL = "JOURNAL"
    BOOK = "BOOK"
    NEWS = "NEWS"
    REPORT = "REPORT"


class MessageType(str, Enum):
    PROGRESS_UPDATE = "PROGRESS_UPDATE"
    AGENT_LOG = "AGENT_LOG"
    TOOL_USAGE = "TOOL_USAGE"
    ERROR = "ERROR"
    COMPLETION = "COMPLETION"
    STATUS_CHANGE = "STATUS_CHANGE"


CitationStyle = Literal["APA", "MLA", "CHICAGO", "IEEE"]


# ============================================================================
# PROJECTS
# ============================================================================


class UserPreferences(WireModel):
    """Generation preferences supplied when a project is created."""
    detail_level: Optional[Literal["BRIEF", "MODERATE", "COMPREHENSIVE"]] = None
    citation_style: Optional[CitationStyle] = None
    max_sources: Optional[int] = Field(default=None, ge=1, le=50)
    include_images: Optional[bool] = None


class OutlineSection(WireModel):
    id: str = Field(default_factory=new_id)
    title: str
    subsections: List[str] = Field(default_factory=list)
    estimated_words: int = 0
    key_points: List[str] = Field(default_factory=list)
    sources: Optional[List[str]] = None


class ResearchOutline(WireModel):
    title: str
    abstract: str = ""
    sections: List[OutlineSection] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    estimated_length: int = 0
    difficulty: Literal["BEGINNER", "INTERMEDIATE", "ADVANCED"] = "INTERMEDIATE"


class Project(WireModel):
    """A user's research paper request and its generated results."""
    id: str = Field(default_factory=new_id)
    title: str
    topic: str
    status: ProjectStatus = ProjectStatus.DRAFT
    outline: Optional[ResearchOutline] = None
    content: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ProjectFile(WireModel):
    """A rendered artifact stored for a project."""
    id: str = Field(default_factory=new_id)
    project_id: str
    file_name: str
    file_path: str
    file_type: Literal["PDF", "LATEX"] = "PDF"
    file_size: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# SESSIONS AND AGENT ACTIVITY
# ============================================================================


class AgentLog(WireModel):
    """Immutable record of one workflow step."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_type: AgentType
    action: str
    input: Any = None
    output: Any = None
    success: bool = True
    duration: int = 0  # milliseconds
    error: Optional[str] = None


class ToolUsage(WireModel):
    """Immutable record of one tool invocation inside a workflow step."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    session_id: Optional[str] = None
    tool_name: str
    input: Any = None
    output: Any = None
    duration: int = 0
    success: bool = True
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class ResearchSource(WireModel):
    """A search result collected by a generation run."""
    title: str
    url: Optional[str] = None
    domain: Optional[str] = None
    content: str = ""
    relevance: float = 0.0
    project_id: str
    session_id: Optional[str] = None


class ResearchSession(WireModel):
    """One generation run for a project."""
    id: str = Field(default_factory=new_id)
    project_id: str
    agent_logs: List[AgentLog] = Field(default_factory=list)
    tool_usage: List[ToolUsage] = Field(default_factory=list)
    memory: Optional[Dict[str, Any]] = None
    status: SessionStatus = SessionStatus.ACTIVE
    progress: float = Field(default=0.0, ge=0, le=100)
    current_step: str = "Initializing research"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None


# ============================================================================
# DOCUMENT SECTIONS
# ============================================================================


class Section(WireModel):
    """One ordered unit of a report's document content."""
    id: str = Field(default_factory=new_id)
    report_id: str
    order: int = Field(ge=1)
    title: str
    type: SectionType = SectionType.TEXT
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class SectionDraft(WireModel):
    """Section content before it has been assigned an id and position."""
    title: str
    content: str = ""
    type: SectionType = SectionType.TEXT
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContentSuggestion(WireModel):
    """A ranked suggestion returned by the suggestion service."""
    type: Literal["similar_section", "relevant_table", "related_chart", "citation_opportunity"]
    content: Dict[str, Any] = Field(default_factory=dict)
    relevance: float = 0.0
    reason: str = ""


# ============================================================================
# CITATIONS
# ============================================================================


class FormattedCitations(WireModel):
    apa: str
    mla: str
    chicago: str
    ieee: str


class Citation(WireModel):
    """A source with its pre-formatted reference strings."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    type: CitationType
    title: str
    authors: List[str] = Field(default_factory=list)
    url: Optional[str] = None
    published_date: Optional[datetime] = None
    publisher: Optional[str] = None
    doi: Optional[str] = None
    formatted: FormattedCitations


# ============================================================================
# STREAMING MESSAGES
# ============================================================================


class ProgressUpdate(WireModel):
    session_id: Optional[str] = None
    progress: float = Field(ge=0, le=100)
    current_step: str
    message: str = ""
    eta: Optional[int] = None  # milliseconds remaining


class ErrorPayload(WireModel):
    message: str
    project_id: Optional[str] = None
    session_id: Optional[str] = None


class CompletionPayload(WireModel):
    project_id: str
    session_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    pdf_path: Optional[str] = None


class StatusChangePayload(WireModel):
    old_status: str
    new_status: str


class _MessageBase(WireModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    session_id: Optional[str] = None


class ProgressUpdateMessage(_MessageBase):
    type: Literal["PROGRESS_UPDATE"] = "PROGRESS_UPDATE"
    payload: ProgressUpdate


class AgentLogMessage(_MessageBase):
    type: Literal["AGENT_LOG"] = "AGENT_LOG"
    payload: AgentLog


class ToolUsageMessage(_MessageBase):
    type: Literal["TOOL_USAGE"] = "TOOL_USAGE"
    payload: ToolUsage


class ErrorMessage(_MessageBase):
    type: Literal["ERROR"] = "ERROR"
    payload: ErrorPayload


class CompletionMessage(_MessageBase):
    type: Literal["COMPLETION"] = "COMPLETION"
    payload: CompletionPayload


class StatusChangeMessage(_MessageBase):
    type: Literal["STATUS_CHANGE"] = "STATUS_CHANGE"
    payload: StatusChangePayload


WebSocketMessage = Annotated[
    Union[
        ProgressUpdateMessage,
        AgentLogMessage,
        ToolUsageMessage,
        ErrorMessage,
        CompletionMessage,
        StatusChangeMessage,
    ],
    Field(discriminator="type"),
]

websocket_message_adapter: TypeAdapter = TypeAdapter(WebSocketMessage)


# ============================================================================
# GENERATION
# ============================================================================


class GenerationOptions(WireModel):
    include_images: Optional[bool] = None
    max_sources: Optional[int] = Field(default=None, ge=1, le=50)
    citation_style: Optional[CitationStyle] = None
    output_format: Optional[Literal["PDF", "DOCX", "MARKDOWN"]] = None


class GenerationResult(WireModel):
    """What the orchestrator hands back when a run succeeds."""
    outline: ResearchOutline
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    memory: Optional[Dict[str, Any]] = None


# ============================================================================
# API REQUESTS
# ============================================================================


class CreateProjectRequest(WireModel):
    title: str = Field(min_length=1, max_length=200)
    topic: str = Field(min_length=1, max_length=500)
    preferences: Optional[UserPreferences] = None


class GenerateRequest(WireModel):
    options: Optional[GenerationOptions] = None


class CompileRequest(WireModel):
    format: Literal["pdf", "latex"] = "pdf"


class CreateSectionRequest(WireModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    type: SectionType = SectionType.TEXT
    order: Optional[int] = Field(default=None, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UpdateSectionRequest(WireModel):
    title: Optional[str] = None
    content: Optional[str] = None
    type: Optional[SectionType] = None
    metadata: Optional[Dict[str, Any]] = None


class SectionOrder(WireModel):
    id: str
    order: int


class ReorderSectionsRequest(WireModel):
    section_orders: List[SectionOrder]


class GenerateStructureRequest(WireModel):
    report_type: str = "research_paper"
    academic_level: str = "undergraduate"
    field_of_study: Optional[str] = None
    word_limit: Optional[int] = None
    custom_sections: Optional[List[str]] = None


class TableData(WireModel):
    headers: List[str] = Field(min_length=1)
    rows: List[List[Union[str, int, float]]] = Field(default_factory=list)
    caption: Optional[str] = None
    label: Optional[str] = None


class TableOptions(WireModel):
    style: Literal["simple", "booktabs", "fancy"] = "booktabs"
    alignment: Optional[str] = None  # e.g. "lcc"
    position: str = "h"


class GenerateTableRequest(WireModel):
    data: TableData
    options: TableOptions = Field(default_factory=TableOptions)
    # When set, the table is also stored as a TABLE section
    add_section: bool = False
    title: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=1)


class ChartDataset(WireModel):
    label: str
    data: List[float]


class ChartData(WireModel):
    labels: List[str] = Field(min_length=1)
    datasets: List[ChartDataset] = Field(min_length=1)


class AxisOptions(WireModel):
    title: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None


class ChartAxes(WireModel):
    x: AxisOptions = Field(default_factory=AxisOptions)
    y: AxisOptions = Field(default_factory=AxisOptions)


class ChartOptions(WireModel):
    type: Literal["line", "bar", "pie", "scatter", "area"] = "bar"
    title: Optional[str] = None
    width: float = Field(default=10, gt=0)  # cm
    height: float = Field(default=6, gt=0)  # cm
    legend: bool = True
    grid: bool = True
    axes: ChartAxes = Field(default_factory=ChartAxes)


class GenerateChartRequest(WireModel):
    data: ChartData
    options: ChartOptions = Field(default_factory=ChartOptions)
    add_section: bool = False
    title: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=1)
