"""Failover Engine - model selection and failover for one chat turn.

The engine is responsible for:
1. Choosing the starting model (text vs vision, or the caller's pinned model)
2. Building the candidate queue for the turn
3. Driving transport attempts under the retry policy
4. Producing either the answer or a localized failure message

States: IDLE -> SELECTING -> ATTEMPTING -> SUCCEEDED | EXHAUSTED_FAILED.
The engine holds no per-turn state; each TurnResult records where its turn ended.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from modelrelay.agent.prompts import (
    CONFIG_MISSING_MESSAGE,
    detect_language,
    exhausted_message,
    get_system_prompt,
    get_temperature,
)
from modelrelay.agent.schemas import (
    AttemptOutcome,
    ChatMessage,
    EngineState,
    FailureKind,
    FocusMode,
    MessageRole,
    TurnResult,
)
from modelrelay.core import model_registry
from modelrelay.core.config import Settings
from modelrelay.core.llm_transport import ChunkSink, LLMTransport
from modelrelay.core.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

# Substrings that mark an otherwise-unclassified failure as a credential problem
CREDENTIAL_MARKERS = ("api key", "api_key", "apikey", "unauthorized", "credential", "مفتاح")

# Pinned model hit SERVICE_BUSY on its first attempt -> at most this many fallbacks
MAX_PINNED_FALLBACKS = 2


@dataclass
class ChatTurnRequest:
    """Input for one failover turn."""
    messages: List[ChatMessage]
    model: Optional[str] = model_registry.AUTO_MODEL_ID
    deep_thinking: bool = False
    is_voice_mode: bool = False
    focus_mode: FocusMode = FocusMode.GENERAL
    # Overrides the prompt chosen from voice/deep-thinking/focus
    system_prompt: Optional[str] = None
    # Language override; detected from the last user message when unset
    language: Optional[str] = None


@dataclass
class ModelSelection:
    model: str
    messages: List[ChatMessage]
    pinned: bool


class CandidateQueue:
    """Ordered models to try in one turn. May grow at most once."""

    def __init__(self, models: Iterable[str]):
        self._models: List[str] = list(models)
        self._position = 0
        self._grown = False

    @property
    def position(self) -> int:
        """Index of the next model to be taken."""
        return self._position

    @property
    def models(self) -> List[str]:
        return list(self._models)

    @property
    def grown(self) -> bool:
        return self._grown

    def has_next(self) -> bool:
        return self._position < len(self._models)

    def pop(self) -> str:
        model = self._models[self._position]
        self._position += 1
        return model

    def grow_once(self, candidates: Iterable[str], exclude: str, limit: int) -> List[str]:
        """Append up to ``limit`` new candidates, unless the queue already grew."""
        if self._grown:
            return []
        added = [m for m in candidates if m != exclude and m not in self._models][:limit]
        self._models.extend(added)
        self._grown = True
        return added


def last_user_content(messages: List[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == MessageRole.USER:
            return message.content
    return messages[-1].content if messages else ""


def is_credential_failure(outcome: AttemptOutcome) -> bool:
    if outcome.kind == FailureKind.AUTH_INVALID:
        return True
    if outcome.kind != FailureKind.UNKNOWN:
        return False
    message = (outcome.message or "").lower()
    return any(marker in message for marker in CREDENTIAL_MARKERS)


class FailoverEngine:
    """Runs one chat turn across the candidate models."""

    def __init__(
        self,
        transport: LLMTransport,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy(
            base_delay=settings.retry_base_delay,
            cap_delay=settings.retry_cap_delay,
        )
        self.max_retries = settings.max_same_model_retries
        self._sleep = sleep

    def select_model(self, messages: List[ChatMessage], requested: Optional[str]) -> ModelSelection:
        """Pick the starting model for a turn.

        In auto mode an image in the current message selects the vision
        model. An image earlier in the conversation also selects it and is
        re-attached to the outgoing last user message. Otherwise the text
        model is used. An explicit model is used as-is.
        """
        if not model_registry.is_auto(requested):
            if model_registry.get_model(requested) is None:
                logger.info(f"Pinned model {requested} is not in the catalog, sending it as-is")
            return ModelSelection(model=requested, messages=list(messages), pinned=True)

        if messages and messages[-1].has_image:
            logger.info("Image in current message, using vision model")
            return ModelSelection(model=model_registry.vision_model().id, messages=list(messages), pinned=False)

        context_image = next((m.image for m in reversed(messages[:-1]) if m.has_image), None)
        if context_image:
            logger.info("Image in context, using vision model with context image")
            outgoing = list(messages)
            last = outgoing[-1]
            if last.role == MessageRole.USER:
                outgoing[-1] = last.model_copy(update={"image": context_image})
            return ModelSelection(model=model_registry.vision_model().id, messages=outgoing, pinned=False)

        return ModelSelection(model=model_registry.text_model().id, messages=list(messages), pinned=False)

    def build_candidates(self, selection: ModelSelection) -> CandidateQueue:
        if selection.pinned:
            return CandidateQueue([selection.model])
        pool = model_registry.failover_pool()
        return CandidateQueue([selection.model] + [m for m in pool if m != selection.model])

    async def _attempt_with_retries(
        self,
        model: str,
        messages: List[ChatMessage],
        system_prompt: str,
        temperature: float,
        sink: Optional[ChunkSink],
    ) -> AttemptOutcome:
        attempt = 0
        while True:
            outcome = await self.transport.attempt(
                messages, model, system_prompt=system_prompt, temperature=temperature, sink=sink
            )
            if outcome.ok and self._is_usable(outcome.content):
                return outcome
            if outcome.ok:
                outcome = AttemptOutcome.failure(model, FailureKind.EMPTY_RESPONSE, "Unusable response")
            if not self.retry_policy.should_retry(outcome.kind, attempt, self.max_retries):
                return outcome
            delay = self.retry_policy.delay(attempt)
            logger.info(f"Retrying {model} in {delay:.1f}s after {outcome.kind.value}")
            await self._sleep(delay)
            attempt += 1

    @staticmethod
    def _is_usable(content: str) -> bool:
        return bool(content and content.strip()) and content.strip() != CONFIG_MISSING_MESSAGE

    async def run_turn(self, request: ChatTurnRequest, sink: Optional[ChunkSink] = None) -> TurnResult:
        """Run one turn; streams through ``sink`` when given.

        Raises:
            ConfigurationError: no usable API key
            InvalidRequestError: nothing sendable in the conversation
        """
        language = request.language or detect_language(last_user_content(request.messages))
        selection = self.select_model(request.messages, request.model)
        queue = self.build_candidates(selection)

        system_prompt = request.system_prompt or get_system_prompt(
            request.is_voice_mode, request.deep_thinking, language, request.focus_mode
        )
        temperature = get_temperature(request.is_voice_mode, request.deep_thinking)

        tried: List[str] = []
        last_failure: Optional[AttemptOutcome] = None
        rate_limit_hit = False

        while queue.has_next():
            index = queue.position
            model = queue.pop()
            logger.info(f"Trying model {index + 1}/{len(queue.models)}: {model}")

            outcome = await self._attempt_with_retries(
                model, selection.messages, system_prompt, temperature, sink
            )
            tried.append(model)

            if outcome.ok:
                logger.info(f"Success with model: {model}")
                return TurnResult(
                    content=outcome.content,
                    success=True,
                    model=model,
                    language=language,
                    models_tried=tried,
                    state=EngineState.SUCCEEDED,
                )

            last_failure = outcome

            if is_credential_failure(outcome):
                logger.error(f"Credential failure on {model}, aborting turn")
                return TurnResult(
                    content=outcome.message,
                    success=False,
                    failure_kind=FailureKind.AUTH_INVALID,
                    language=language,
                    models_tried=tried,
                    state=EngineState.EXHAUSTED_FAILED,
                )

            if outcome.kind == FailureKind.RATE_LIMITED:
                rate_limit_hit = True
                if selection.pinned:
                    break
                continue

            if outcome.kind == FailureKind.SERVICE_BUSY:
                if selection.pinned and index == 0:
                    added = queue.grow_once(
                        model_registry.failover_pool(), exclude=model, limit=MAX_PINNED_FALLBACKS
                    )
                    if added:
                        logger.info(f"Pinned model {model} busy, adding fallbacks: {added}")
                if queue.has_next():
                    await self._sleep(self.settings.service_busy_delay)
            elif queue.has_next():
                await self._sleep(self.settings.failover_delay)

        if rate_limit_hit:
            failure_kind = FailureKind.RATE_LIMITED
        elif last_failure is not None:
            failure_kind = last_failure.kind
        else:
            failure_kind = FailureKind.UNKNOWN
        logger.warning(f"All models failed ({', '.join(tried)}), last failure: {failure_kind.value}")
        return TurnResult(
            content=exhausted_message(failure_kind, language),
            success=False,
            failure_kind=failure_kind,
            language=language,
            models_tried=tried,
            state=EngineState.EXHAUSTED_FAILED,
        )
