"""Streaming transport for OpenAI-compatible chat-completions endpoints.

Responsibilities:
1. Build the outbound request (headers, multimodal message parts)
2. Stream SSE fragments under a hard wall-clock timeout
3. Filter CJK characters out of every fragment
4. Classify failures into FailureKind without retrying anything itself
"""

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from modelrelay.agent.prompts import CONFIG_MISSING_MESSAGE, DEFAULT_SYSTEM_PROMPT, INVALID_API_KEY_MESSAGE
from modelrelay.agent.schemas import AttemptOutcome, ChatMessage, FailureKind, MessageRole
from modelrelay.core.config import Settings
from modelrelay.core.exceptions import AttemptFailure, ConfigurationError, InvalidRequestError

logger = logging.getLogger(__name__)

# CJK Unified Ideographs, Hiragana, Katakana, Hangul syllables
CJK_PATTERN = re.compile("[\u4E00-\u9FFF\u3040-\u309F\u30A0-\u30FF\uAC00-\uD7AF]")

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"

# Receives each filtered fragment in arrival order
ChunkSink = Callable[[str], Awaitable[None]]


def strip_cjk(text: str) -> str:
    """Remove CJK/Hangul/Kana characters. Idempotent."""
    return CJK_PATTERN.sub("", text)


def classify_status(status_code: int) -> FailureKind:
    """Map a non-2xx upstream status to a FailureKind."""
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if status_code in (502, 503):
        return FailureKind.SERVICE_BUSY
    if status_code in (401, 403):
        return FailureKind.AUTH_INVALID
    return FailureKind.UNKNOWN


def _provider_error_message(body: bytes) -> str:
    """Pull error.message out of a provider error body, falling back to raw text."""
    text = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        return text[:500]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return text[:500]


def _failure_from_status(status_code: int, provider_message: str) -> AttemptFailure:
    kind = classify_status(status_code)
    if kind == FailureKind.AUTH_INVALID:
        return AttemptFailure(kind, INVALID_API_KEY_MESSAGE, status_code)
    return AttemptFailure(kind, provider_message or f"HTTP {status_code}", status_code)


def parse_sse_line(line: str) -> Tuple[Optional[str], bool]:
    """Parse one SSE line.

    Returns:
        (fragment, done). ``fragment`` is None for lines that carry no
        content; malformed JSON is dropped silently.

    Raises:
        AttemptFailure: the provider embedded an error object in the stream
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None, False

    data = line[len(SSE_DATA_PREFIX):].strip()
    if data == SSE_DONE:
        return None, True

    try:
        parsed = json.loads(data)
    except ValueError:
        return None, False
    if not isinstance(parsed, dict):
        return None, False

    error = parsed.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        status_code = code if isinstance(code, int) else 0
        raise _failure_from_status(status_code, str(error.get("message", "")))

    try:
        content = parsed["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None, False
    if not content or not isinstance(content, str):
        return None, False
    return strip_cjk(content), False


def format_messages(messages: List[ChatMessage], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
    """Convert chat messages to the provider wire format.

    Empty messages are dropped. A message carrying an image becomes
    multimodal content parts. A system prompt is prepended unless the caller
    passed None and the conversation already has its own system message.
    """
    formatted: List[Dict[str, Any]] = []
    for message in messages:
        content = (message.content or "").strip()
        if not content and not message.has_image:
            continue
        if message.has_image:
            formatted.append({
                "role": message.role.value,
                "content": [
                    {"type": "image_url", "image_url": {"url": message.image}},
                    {"type": "text", "text": content},
                ],
            })
        else:
            formatted.append({"role": message.role.value, "content": content})

    if not formatted:
        raise InvalidRequestError("No valid messages to send", error_code="empty_messages")

    has_system = any(m["role"] == MessageRole.SYSTEM.value for m in formatted)
    if system_prompt is not None and system_prompt.strip():
        formatted = [m for m in formatted if m["role"] != MessageRole.SYSTEM.value]
        formatted.insert(0, {"role": "system", "content": system_prompt})
    elif not has_system:
        formatted.insert(0, {"role": "system", "content": DEFAULT_SYSTEM_PROMPT})
    return formatted


class LLMTransport:
    """One-shot client for the chat-completions endpoint.

    Each call is a single attempt. Retries and failover belong to the
    caller (see FailoverEngine).
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    @property
    def completions_url(self) -> str:
        return f"{self.settings.llm_base_url.rstrip('/')}/chat/completions"

    def _api_key(self) -> str:
        """Return the configured key or raise before any network I/O."""
        if not self.settings.has_api_key:
            logger.error("OPENROUTER_API_KEY is missing or still a placeholder")
            raise ConfigurationError(CONFIG_MISSING_MESSAGE)
        return self.settings.openrouter_api_key.strip()

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.settings.site_url,
            "X-Title": self.settings.app_title,
        }

    def build_payload(
        self,
        messages: List[ChatMessage],
        model: str,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
        stream: bool,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": format_messages(messages, system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens or self.settings.max_tokens,
            "stream": stream,
        }

    async def stream_completion(
        self,
        messages: List[ChatMessage],
        model: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Yield CJK-filtered text fragments from a streaming completion.

        The whole stream shares one wall-clock budget of
        ``stream_timeout_seconds``. Leaving the ``async with`` block, whether
        by timeout, cancellation or the consumer closing the generator,
        closes the upstream connection.

        Raises:
            ConfigurationError: no usable API key (raised before any request)
            AttemptFailure: classified upstream failure
        """
        api_key = self._api_key()
        payload = self.build_payload(messages, model, system_prompt, temperature, max_tokens, stream=True)
        timeout = self.settings.stream_timeout_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            async with self.http_client.stream(
                "POST",
                self.completions_url,
                json=payload,
                headers=self._headers(api_key),
                timeout=timeout,
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    provider_message = _provider_error_message(body)
                    logger.warning(f"Model {model} returned HTTP {response.status_code}: {body[:500]!r}")
                    raise _failure_from_status(response.status_code, provider_message)

                lines = response.aiter_lines()
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    try:
                        line = await asyncio.wait_for(lines.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    fragment, done = parse_sse_line(line)
                    if done:
                        break
                    if fragment:
                        yield fragment
        except asyncio.TimeoutError:
            logger.warning(f"Model {model} stream exceeded {timeout}s")
            raise AttemptFailure(FailureKind.TIMEOUT, f"Stream timed out after {timeout}s")
        except httpx.TimeoutException as e:
            logger.warning(f"Model {model} timed out: {e}")
            raise AttemptFailure(FailureKind.TIMEOUT, str(e) or "Request timed out")
        except httpx.TransportError as e:
            logger.warning(f"Network error calling {model}: {e}")
            raise AttemptFailure(FailureKind.NETWORK_ERROR, str(e) or type(e).__name__)

    async def complete(
        self,
        messages: List[ChatMessage],
        model: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Run a non-streaming completion and return the filtered text.

        Raises:
            ConfigurationError: no usable API key
            AttemptFailure: classified upstream failure, including EMPTY_RESPONSE
        """
        api_key = self._api_key()
        payload = self.build_payload(messages, model, system_prompt, temperature, max_tokens, stream=False)
        timeout = self.settings.request_timeout_seconds

        try:
            response = await asyncio.wait_for(
                self.http_client.post(
                    self.completions_url,
                    json=payload,
                    headers=self._headers(api_key),
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"Model {model} exceeded {timeout}s")
            raise AttemptFailure(FailureKind.TIMEOUT, f"Request timed out after {timeout}s")
        except httpx.TransportError as e:
            logger.warning(f"Network error calling {model}: {e}")
            raise AttemptFailure(FailureKind.NETWORK_ERROR, str(e) or type(e).__name__)

        if not response.is_success:
            logger.warning(f"Model {model} returned HTTP {response.status_code}: {response.content[:500]!r}")
            raise _failure_from_status(response.status_code, _provider_error_message(response.content))

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Unexpected completion payload from {model}: {e}")
            raise AttemptFailure(FailureKind.EMPTY_RESPONSE, "Malformed completion payload")

        content = strip_cjk(content).strip()
        if not content:
            raise AttemptFailure(FailureKind.EMPTY_RESPONSE, "Model returned an empty response")
        return content

    async def attempt(
        self,
        messages: List[ChatMessage],
        model: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        sink: Optional[ChunkSink] = None,
    ) -> AttemptOutcome:
        """Run exactly one attempt and report it as an AttemptOutcome.

        With a sink the attempt streams and every fragment is awaited on the
        sink once, in order; without one it uses the non-streaming endpoint.
        ConfigurationError and InvalidRequestError propagate unchanged.
        """
        logger.info(f"Attempting model {model} (streaming={sink is not None})")
        try:
            if sink is None:
                content = await self.complete(messages, model, system_prompt, temperature)
            else:
                parts: List[str] = []
                async for fragment in self.stream_completion(messages, model, system_prompt, temperature):
                    parts.append(fragment)
                    await sink(fragment)
                content = "".join(parts)
                if not content.strip():
                    raise AttemptFailure(FailureKind.EMPTY_RESPONSE, "Model returned an empty response")
        except AttemptFailure as failure:
            logger.warning(f"Model {model} failed: {failure.kind.value} - {failure.message}")
            return AttemptOutcome.failure(model, failure.kind, failure.message)

        logger.info(f"Model {model} succeeded ({len(content)} chars)")
        return AttemptOutcome.success(model, content)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
