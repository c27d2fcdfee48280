"""Pydantic models for API requests and responses.

Field names follow the browser client's camelCase wire format through
aliases; either spelling is accepted on input.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any

from modelrelay.agent.schemas import (
    ChatMessage,
    CodeFile,
    FocusMode,
    MessageRole,
    ProjectPlan,
    SearchResult,
    WeatherInfo,
)


# ============== Chat Models ==============

class ChatMessageIn(BaseModel):
    """Single chat message as sent by the client."""
    role: MessageRole = Field(..., description="Message role: system, user or assistant")
    content: str = Field(default="", description="Message content")
    image: Optional[str] = Field(default=None, description="Attached image as a data URL")

    def to_domain(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content, image=self.image)


class ChatRequest(BaseModel):
    """Chat request model."""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessageIn] = Field(..., min_length=1, description="Conversation so far")
    model: Optional[str] = Field(default="auto", description="Model id, or 'auto' for automatic selection")
    deep_thinking: bool = Field(default=False, alias="deepThinking")
    deep_search: bool = Field(default=False, alias="deepSearch")
    is_voice_mode: bool = Field(default=False, alias="isVoiceMode")
    streaming: bool = Field(default=False, description="Stream the answer as server-sent events")
    focus_mode: FocusMode = Field(default=FocusMode.GENERAL, alias="focusMode")


class ChatResponse(BaseModel):
    """Non-streaming chat response."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="Assistant response or a failure message")
    model: Optional[str] = Field(default=None, description="Model that answered")
    sources: Optional[List[Dict[str, Any]]] = Field(default=None)
    weather_info: Optional[WeatherInfo] = Field(default=None, alias="weatherInfo")
    is_search_result: Optional[bool] = Field(default=None, alias="isSearchResult")
    error: Optional[str] = Field(default=None)


# ============== Code Models ==============

class CodeRequest(BaseModel):
    """Code generation request."""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessageIn] = Field(..., min_length=1)
    model: Optional[str] = Field(default=None, description="Model id; defaults to the architect model")
    agent_mode: bool = Field(default=False, alias="agentMode", description="Run the multi-agent pipeline")


class CodeResponse(BaseModel):
    """Code generation response."""
    content: str
    model: str
    files: Optional[List[CodeFile]] = None
    plan: Optional[ProjectPlan] = None


# ============== Search / Weather Models ==============

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=5000)
    language: Optional[str] = Field(default=None, description="'ar' or 'en'; detected when omitted")


class SearchResponse(BaseModel):
    results: List[SearchResult]


class WeatherRequest(BaseModel):
    location: str = Field(..., min_length=1, max_length=200)
    language: Optional[str] = Field(default=None, description="'ar' or 'en'; detected when omitted")


class WeatherResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    weather_info: WeatherInfo = Field(..., alias="weatherInfo")


# ============== Catalog ==============

class ModelInfo(BaseModel):
    id: str
    name: str
    description: str = ""
    capability: str = "text"


class ModelsResponse(BaseModel):
    models: List[ModelInfo]
    default: str = "auto"
