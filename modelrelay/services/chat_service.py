"""Chat service - plain and deep-search chat turns on top of the failover engine.

Non-streaming calls return a ChatReply (status code plus JSON body). Streaming
calls push frames through an ``emit`` coroutine; the router serializes them
as server-sent events.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from modelrelay.agent.failover import ChatTurnRequest, FailoverEngine, last_user_content
from modelrelay.agent.prompts import (
    CONFIG_MISSING_MESSAGE,
    EMPTY_QUERY_MESSAGES,
    SEARCH_ERROR_MESSAGES,
    build_search_prompt,
    detect_language,
    localized,
)
from modelrelay.agent.schemas import ChatMessage, MessageRole, SearchResult, TurnResult, WeatherInfo
from modelrelay.agent.weather import WeatherClient, detect_weather_location, format_weather_message
from modelrelay.agent.web_search import CONTEXT_RESULT_LIMIT, WebSearchGatherer, format_search_context
from modelrelay.core.config import Settings
from modelrelay.core.exceptions import ConfigurationError, WeatherLookupError

logger = logging.getLogger(__name__)

Frame = Dict[str, Any]
Emit = Callable[[Frame], Awaitable[None]]


@dataclass
class ChatReply:
    status_code: int
    body: Dict[str, Any]


def source_payload(results: List[SearchResult], limit: int = CONTEXT_RESULT_LIMIT) -> List[Dict[str, str]]:
    """Client-facing source cards."""
    return [
        {
            "title": r.title,
            "url": r.url or "#",
            "description": r.snippet,
            "domain": r.domain,
            "favicon": r.favicon,
        }
        for r in results[:limit]
    ]


def weather_payload(info: WeatherInfo) -> Dict[str, Any]:
    return info.model_dump(by_alias=True)


class ChatService:
    """Runs chat turns, optionally augmented with web search or weather data."""

    def __init__(
        self,
        engine: FailoverEngine,
        gatherer: WebSearchGatherer,
        weather_client: WeatherClient,
        settings: Settings,
    ):
        self.engine = engine
        self.gatherer = gatherer
        self.weather_client = weather_client
        self.settings = settings

    # ============== Helpers ==============

    def _search_turn(self, turn: ChatTurnRequest, prompt: str, language: str) -> ChatTurnRequest:
        return dataclasses.replace(
            turn,
            messages=[ChatMessage(role=MessageRole.USER, content=prompt)],
            language=language,
        )

    async def _lookup_weather(self, query: str, language: str) -> Optional[WeatherInfo]:
        location = detect_weather_location(query, self.settings.default_weather_location)
        if location is None:
            return None
        logger.info(f"Weather query detected for location: {location}")
        try:
            return await self.weather_client.get_weather(location, language)
        except WeatherLookupError as e:
            logger.warning(f"Weather lookup failed for {location}, falling back to web search: {e}")
            return None

    async def _search(self, query: str, language: str) -> List[SearchResult]:
        """Gather web results for a turn that will go to the model.

        Raises:
            ConfigurationError: no usable API key; checked before any search request
        """
        if not self.settings.has_api_key:
            raise ConfigurationError(CONFIG_MISSING_MESSAGE)
        results = await self.gatherer.search(query, language)
        logger.info(f"Deep search gathered {len(results)} results")
        return results

    @staticmethod
    def _status_for(result: TurnResult) -> int:
        return 200 if result.success else 503

    # ============== Non-streaming ==============

    async def respond(self, turn: ChatTurnRequest, deep_search: bool = False) -> ChatReply:
        """Answer one turn without streaming.

        Raises:
            ConfigurationError: no usable API key
        """
        if deep_search:
            return await self._respond_deep_search(turn)

        result = await self.engine.run_turn(turn)
        body: Dict[str, Any] = {"message": result.content}
        if result.success:
            body["model"] = result.model
        else:
            body["error"] = result.failure_kind.value if result.failure_kind else "unknown"
        return ChatReply(self._status_for(result), body)

    async def _respond_deep_search(self, turn: ChatTurnRequest) -> ChatReply:
        query = last_user_content(turn.messages).strip()
        language = turn.language or detect_language(query)
        if not query:
            return ChatReply(400, {"message": localized(EMPTY_QUERY_MESSAGES, language)})

        weather = await self._lookup_weather(query, language)
        if weather is not None:
            message = format_weather_message(weather, language, turn.is_voice_mode)
            if turn.is_voice_mode:
                return ChatReply(200, {"message": message, "weatherInfo": weather_payload(weather)})
            return ChatReply(200, {
                "message": message,
                "weatherInfo": weather_payload(weather),
                "isSearchResult": True,
            })

        results = await self._search(query, language)
        prompt = build_search_prompt(query, format_search_context(results), language, turn.is_voice_mode)
        result = await self.engine.run_turn(self._search_turn(turn, prompt, language))

        if not result.success:
            return ChatReply(503, {"message": result.content, "isSearchResult": True})
        if turn.is_voice_mode:
            return ChatReply(200, {"message": result.content})
        return ChatReply(200, {
            "message": result.content,
            "sources": source_payload(results),
            "isSearchResult": True,
        })

    # ============== Streaming ==============

    async def stream(self, turn: ChatTurnRequest, deep_search: bool, emit: Emit) -> None:
        """Answer one turn as a sequence of frames passed to ``emit``.

        A missing API key is reported as a final frame rather than raised.
        """
        if deep_search:
            await self._stream_deep_search(turn, emit)
            return

        async def sink(fragment: str) -> None:
            await emit({"chunk": fragment})

        try:
            result = await self.engine.run_turn(turn, sink=sink)
        except ConfigurationError as e:
            await emit({"chunk": e.message})
            return
        if not result.success:
            await emit({"chunk": result.content})

    async def _stream_deep_search(self, turn: ChatTurnRequest, emit: Emit) -> None:
        query = last_user_content(turn.messages).strip()
        language = turn.language or detect_language(query)
        if not query:
            await emit({"type": "error", "content": localized(EMPTY_QUERY_MESSAGES, language)})
            return

        weather = await self._lookup_weather(query, language)
        if weather is not None:
            await emit({"type": "weather", "weatherInfo": weather_payload(weather)})
            await emit({"type": "text", "content": format_weather_message(weather, language, turn.is_voice_mode)})
            return

        try:
            results = await self._search(query, language)
        except ConfigurationError as e:
            await emit({"type": "text", "content": e.message})
            return
        except Exception as e:
            logger.error(f"Streaming search failed: {e}")
            await emit({"type": "error", "content": localized(SEARCH_ERROR_MESSAGES, language)})
            return

        if results:
            await emit({"type": "sources", "sources": source_payload(results)})

        prompt = build_search_prompt(query, format_search_context(results), language, turn.is_voice_mode)

        async def sink(fragment: str) -> None:
            await emit({"type": "text", "content": fragment})

        try:
            result = await self.engine.run_turn(self._search_turn(turn, prompt, language), sink=sink)
        except ConfigurationError as e:
            await emit({"type": "text", "content": e.message})
            return
        if not result.success:
            await emit({"type": "error", "content": result.content})
