"""Data models and schemas for chat turns, search and the code agents."""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
import uuid


# ============== Enums ==============

class MessageRole(str, Enum):
    """Author of a chat message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ModelCapability(str, Enum):
    """What kind of input a model accepts."""
    TEXT = "text"
    VISION = "vision"  # Accepts image_url content parts


class AgentRole(str, Enum):
    """Specialization of a coding agent."""
    ARCHITECT = "architect"
    FRONTEND = "frontend"
    BACKEND = "backend"


class FailureKind(str, Enum):
    """Classification of a failed upstream attempt."""
    RATE_LIMITED = "rate_limited"  # 429
    SERVICE_BUSY = "service_busy"  # 502 / 503
    AUTH_INVALID = "auth_invalid"  # 401 / 403
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


class FocusMode(str, Enum):
    """Answer style requested by the client."""
    GENERAL = "general"
    ACADEMIC = "academic"
    WRITING = "writing"
    CODE = "code"


class EngineState(str, Enum):
    """Lifecycle of one failover turn."""
    IDLE = "idle"
    SELECTING = "selecting"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED_FAILED = "exhausted_failed"


class ProjectPhase(str, Enum):
    """Phases of the multi-agent code pipeline."""
    ANALYZING = "analyzing"
    PLANNING = "planning"
    DEVELOPMENT = "development"
    INTEGRATING = "integrating"
    DONE = "done"
    FAILED = "failed"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# ============== Chat Models ==============

class ChatMessage(BaseModel):
    """One message of a conversation; immutable once built."""
    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(description="Message author")
    content: str = Field(default="", description="Text content")
    image: Optional[str] = Field(default=None, description="data:image/... URL")

    @property
    def has_image(self) -> bool:
        return bool(self.image)


class ModelDescriptor(BaseModel):
    """Static description of an upstream model."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider model identifier")
    name: str = Field(description="Display name")
    provider: str = Field(default="openrouter")
    description: str = Field(default="")
    capability: ModelCapability = Field(default=ModelCapability.TEXT)
    role: Optional[AgentRole] = Field(default=None, description="Coding agent role, if any")

    @property
    def supports_vision(self) -> bool:
        return self.capability == ModelCapability.VISION


class AttemptOutcome(BaseModel):
    """Result of exactly one upstream attempt.

    ``kind`` is None on success. Build instances through ``success`` and
    ``failure`` rather than directly.
    """
    model_config = ConfigDict(frozen=True)

    model: str
    content: str = ""
    kind: Optional[FailureKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, model: str, content: str) -> "AttemptOutcome":
        return cls(model=model, content=content)

    @classmethod
    def failure(cls, model: str, kind: FailureKind, message: str = "") -> "AttemptOutcome":
        return cls(model=model, kind=kind, message=message)


class TurnResult(BaseModel):
    """Final result of a failover turn."""
    content: str = Field(description="Answer text, or a localized failure message")
    success: bool
    model: Optional[str] = Field(default=None, description="Model that produced the answer")
    failure_kind: Optional[FailureKind] = None
    language: str = Field(default="ar", description="Detected user language (ar/en)")
    models_tried: List[str] = Field(default_factory=list)
    state: EngineState = Field(default=EngineState.IDLE, description="Where the turn's state machine ended")


# ============== Search Models ==============

class SearchResult(BaseModel):
    """A single web search hit."""
    title: str
    snippet: str = Field(default="", description="Short description of the page")
    url: str
    domain: str = ""
    favicon: str = ""


class ForecastDay(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    max: float
    min: float
    condition: str


class WeatherInfo(BaseModel):
    """Current conditions plus a short daily forecast."""
    model_config = ConfigDict(populate_by_name=True)

    location: str = Field(description="'<name>, <country>'")
    temperature: float
    feels_like: float = Field(alias="feelsLike")
    humidity: float
    wind_speed: float = Field(alias="windSpeed")
    condition: str
    precipitation: float = 0.0
    forecast: List[ForecastDay] = Field(default_factory=list)


# ============== Code Agent Models ==============

class AgentTask(BaseModel):
    """A unit of work assigned to one coding agent.

    Status moves pending -> in_progress -> completed|failed, each step once.
    A pending task may also go straight to failed.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    agent_id: AgentRole
    description: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def start(self) -> None:
        if self.status != TaskStatus.PENDING:
            raise RuntimeError(f"Task {self.id} cannot start from {self.status.value}")
        self.status = TaskStatus.IN_PROGRESS
        self.started_at = datetime.now()

    def complete(self) -> None:
        self._finish(TaskStatus.COMPLETED)

    def fail(self) -> None:
        # A task that never started may still be failed when its stage aborts
        if self.status == TaskStatus.PENDING:
            self.status = TaskStatus.IN_PROGRESS
        self._finish(TaskStatus.FAILED)

    def _finish(self, status: TaskStatus) -> None:
        if self.status != TaskStatus.IN_PROGRESS:
            raise RuntimeError(f"Task {self.id} cannot finish from {self.status.value}")
        self.status = status
        self.finished_at = datetime.now()


class AgentMessage(BaseModel):
    """Progress entry emitted by an agent."""
    model_config = ConfigDict(frozen=True)

    agent_id: AgentRole
    phase: ProjectPhase
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ProjectPlan(BaseModel):
    """Architect's plan for a generated project."""
    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(default="", alias="projectName")
    description: str = ""
    frontend_tasks: List[str] = Field(default_factory=list, alias="frontendTasks")
    backend_tasks: List[str] = Field(default_factory=list, alias="backendTasks")
    shared_requirements: List[str] = Field(default_factory=list, alias="sharedRequirements")


class CodeFile(BaseModel):
    """A file extracted from a fenced code block."""
    path: str
    language: str = "text"
    content: str


class ProjectResult(BaseModel):
    """Everything produced by one pipeline run."""
    plan: ProjectPlan
    plan_parsed: bool = Field(default=True, description="False when the plan fell back to empty")
    architect_output: str = ""
    frontend_code: str = ""
    backend_code: str = ""
    integrated_code: str = ""
    files: List[CodeFile] = Field(default_factory=list)
    tasks: List[AgentTask] = Field(default_factory=list)
    messages: List[AgentMessage] = Field(default_factory=list)
