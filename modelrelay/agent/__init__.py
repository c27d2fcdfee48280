"""Agent layer - failover engine, web augmentation and coding agents.

Key components:
- FailoverEngine: model selection and failover across the free model pool
- WebSearchGatherer: concurrent web search with ranking and de-duplication
- WeatherClient: geocoding + forecast lookups for weather questions
- CodeOrchestrator: architect -> frontend || backend -> integration pipeline
"""

from modelrelay.agent.schemas import (
    # Enums
    MessageRole,
    ModelCapability,
    AgentRole,
    FailureKind,
    FocusMode,
    EngineState,
    ProjectPhase,
    TaskStatus,
    # Chat
    ChatMessage,
    ModelDescriptor,
    AttemptOutcome,
    TurnResult,
    # Search
    SearchResult,
    WeatherInfo,
    ForecastDay,
    # Code agents
    AgentTask,
    AgentMessage,
    ProjectPlan,
    CodeFile,
    ProjectResult,
)

__all__ = [
    "MessageRole",
    "ModelCapability",
    "AgentRole",
    "FailureKind",
    "FocusMode",
    "EngineState",
    "ProjectPhase",
    "TaskStatus",
    "ChatMessage",
    "ModelDescriptor",
    "AttemptOutcome",
    "TurnResult",
    "SearchResult",
    "WeatherInfo",
    "ForecastDay",
    "AgentTask",
    "AgentMessage",
    "ProjectPlan",
    "CodeFile",
    "ProjectResult",
]
