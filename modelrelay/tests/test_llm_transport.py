"""Unit tests for the streaming LLM transport."""

import asyncio

import httpx
import pytest

from modelrelay.agent.prompts import CONFIG_MISSING_MESSAGE, DEFAULT_SYSTEM_PROMPT, INVALID_API_KEY_MESSAGE
from modelrelay.agent.schemas import ChatMessage, FailureKind, MessageRole
from modelrelay.core.exceptions import AttemptFailure, ConfigurationError, InvalidRequestError
from modelrelay.core.llm_transport import (
    LLMTransport,
    classify_status,
    format_messages,
    parse_sse_line,
    strip_cjk,
)

from conftest import completion_response, error_response, sse_response

MODEL = "xiaomi/mimo-v2-flash:free"
IMAGE = "data:image/png;base64,iVBORw0KGgo="


def user(content: str, image=None) -> ChatMessage:
    return ChatMessage(role=MessageRole.USER, content=content, image=image)


class TestCjkFilter:
    """CJK/Kana/Hangul stripping."""

    def test_strips_cjk(self):
        assert strip_cjk("Hello 你好 world こんにちは 안녕") == "Hello  world  "

    def test_keeps_arabic_and_latin(self):
        text = "مرحبا Hello 123"
        assert strip_cjk(text) == text

    def test_idempotent(self):
        text = "mixed 中文 text カタカナ"
        assert strip_cjk(strip_cjk(text)) == strip_cjk(text)


class TestClassifyStatus:

    @pytest.mark.parametrize("status_code,kind", [
        (429, FailureKind.RATE_LIMITED),
        (502, FailureKind.SERVICE_BUSY),
        (503, FailureKind.SERVICE_BUSY),
        (401, FailureKind.AUTH_INVALID),
        (403, FailureKind.AUTH_INVALID),
        (500, FailureKind.UNKNOWN),
        (400, FailureKind.UNKNOWN),
    ])
    def test_mapping(self, status_code, kind):
        assert classify_status(status_code) == kind


class TestParseSseLine:
    """One SSE line at a time."""

    def test_content_fragment(self):
        line = 'data: {"choices": [{"delta": {"content": "Hi"}}]}'
        assert parse_sse_line(line) == ("Hi", False)

    def test_done_marker(self):
        assert parse_sse_line("data: [DONE]") == (None, True)

    def test_comment_and_blank_lines_ignored(self):
        assert parse_sse_line(": keep-alive") == (None, False)
        assert parse_sse_line("") == (None, False)

    def test_malformed_json_ignored(self):
        assert parse_sse_line("data: {not json") == (None, False)

    def test_role_only_delta_ignored(self):
        assert parse_sse_line('data: {"choices": [{"delta": {"role": "assistant"}}]}') == (None, False)

    def test_fragment_is_cjk_filtered(self):
        line = 'data: {"choices": [{"delta": {"content": "ok你"}}]}'
        assert parse_sse_line(line) == ("ok", False)

    def test_embedded_error_raises(self):
        line = 'data: {"error": {"code": 429, "message": "slow down"}}'
        with pytest.raises(AttemptFailure) as exc_info:
            parse_sse_line(line)
        assert exc_info.value.kind == FailureKind.RATE_LIMITED


class TestFormatMessages:
    """Wire format of outbound messages."""

    def test_default_system_prompt_added(self):
        formatted = format_messages([user("hello")], None)
        assert formatted[0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}
        assert formatted[1] == {"role": "user", "content": "hello"}

    def test_explicit_system_prompt_replaces_existing(self):
        messages = [ChatMessage(role=MessageRole.SYSTEM, content="old"), user("hello")]
        formatted = format_messages(messages, "new prompt")
        assert [m["content"] for m in formatted if m["role"] == "system"] == ["new prompt"]

    def test_existing_system_message_kept_without_override(self):
        messages = [ChatMessage(role=MessageRole.SYSTEM, content="custom"), user("hello")]
        formatted = format_messages(messages, None)
        assert formatted[0] == {"role": "system", "content": "custom"}
        assert len(formatted) == 2

    def test_empty_messages_dropped(self):
        formatted = format_messages([user("   "), user("real")], None)
        assert [m["content"] for m in formatted[1:]] == ["real"]

    def test_image_becomes_content_parts(self):
        formatted = format_messages([user("what is this?", image=IMAGE)], None)
        parts = formatted[1]["content"]
        assert parts[0] == {"type": "image_url", "image_url": {"url": IMAGE}}
        assert parts[1] == {"type": "text", "text": "what is this?"}

    def test_nothing_to_send_raises(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            format_messages([user(""), user("  ")], None)
        assert exc_info.value.error_code == "empty_messages"


class TestStreaming:
    """Streaming attempts against a mock provider."""

    @pytest.mark.asyncio
    async def test_fragments_reach_sink_in_order(self, transport, upstream):
        upstream.script(MODEL, sse_response("Hel", "lo", " there"))
        received = []

        async def sink(fragment):
            received.append(fragment)

        outcome = await transport.attempt([user("hi")], MODEL, sink=sink)

        assert outcome.ok
        assert outcome.content == "Hello there"
        assert received == ["Hel", "lo", " there"]

    @pytest.mark.asyncio
    async def test_request_shape(self, transport, upstream, settings):
        upstream.script(MODEL, sse_response("ok"))

        async def sink(fragment):
            pass

        await transport.attempt([user("hi")], MODEL, system_prompt="sys", temperature=0.9, sink=sink)

        payload = upstream.calls[0]
        assert payload["model"] == MODEL
        assert payload["stream"] is True
        assert payload["temperature"] == 0.9
        assert payload["max_tokens"] == settings.max_tokens
        assert payload["messages"][0] == {"role": "system", "content": "sys"}

    @pytest.mark.asyncio
    async def test_malformed_lines_skipped(self, transport, upstream):
        body = (
            'data: {"choices": [{"delta": {"content": "a"}}]}\n\n'
            "data: {broken\n\n"
            ": comment\n\n"
            'data: {"choices": [{"delta": {"content": "b"}}]}\n\n'
            "data: [DONE]\n\n"
        )
        upstream.script(MODEL, httpx.Response(200, content=body.encode()))

        chunks = [c async for c in transport.stream_completion([user("hi")], MODEL)]
        assert chunks == ["a", "b"]

    @pytest.mark.asyncio
    async def test_lines_after_done_ignored(self, transport, upstream):
        body = (
            'data: {"choices": [{"delta": {"content": "a"}}]}\n\n'
            "data: [DONE]\n\n"
            'data: {"choices": [{"delta": {"content": "late"}}]}\n\n'
        )
        upstream.script(MODEL, httpx.Response(200, content=body.encode()))

        chunks = [c async for c in transport.stream_completion([user("hi")], MODEL)]
        assert chunks == ["a"]

    @pytest.mark.asyncio
    async def test_empty_stream_is_empty_response(self, transport, upstream):
        upstream.script(MODEL, sse_response())

        async def sink(fragment):
            pass

        outcome = await transport.attempt([user("hi")], MODEL, sink=sink)
        assert outcome.kind == FailureKind.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_wall_clock_timeout(self, settings, upstream):
        async def slow_body():
            yield b'data: {"choices": [{"delta": {"content": "first"}}]}\n\n'
            await asyncio.sleep(10)
            yield b"data: [DONE]\n\n"

        upstream.script(MODEL, lambda request: httpx.Response(200, content=slow_body()))
        fast = settings.model_copy(update={"stream_timeout_seconds": 0.2})
        transport = LLMTransport(fast, httpx.AsyncClient(transport=httpx.MockTransport(upstream)))
        received = []

        async def sink(fragment):
            received.append(fragment)

        outcome = await transport.attempt([user("hi")], MODEL, sink=sink)

        assert outcome.kind == FailureKind.TIMEOUT
        assert received == ["first"]


class TestFailureClassification:
    """HTTP and network failures become AttemptOutcome kinds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,kind", [
        (429, FailureKind.RATE_LIMITED),
        (503, FailureKind.SERVICE_BUSY),
        (502, FailureKind.SERVICE_BUSY),
        (500, FailureKind.UNKNOWN),
    ])
    async def test_status_codes(self, transport, upstream, status_code, kind):
        upstream.script(MODEL, error_response(status_code))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert not outcome.ok
        assert outcome.kind == kind

    @pytest.mark.asyncio
    async def test_invalid_key_message(self, transport, upstream):
        upstream.script(MODEL, error_response(401, "No auth credentials found"))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert outcome.kind == FailureKind.AUTH_INVALID
        assert outcome.message == INVALID_API_KEY_MESSAGE

    @pytest.mark.asyncio
    async def test_network_error(self, transport, upstream):
        upstream.script(MODEL, httpx.ConnectError("connection refused"))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert outcome.kind == FailureKind.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_streaming_network_error(self, transport, upstream):
        upstream.script(MODEL, httpx.ConnectError("connection refused"))

        async def sink(fragment):
            pass

        outcome = await transport.attempt([user("hi")], MODEL, sink=sink)
        assert outcome.kind == FailureKind.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_http_timeout(self, transport, upstream):
        upstream.script(MODEL, httpx.ReadTimeout("read timed out"))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert outcome.kind == FailureKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_blank_completion_is_empty_response(self, transport, upstream):
        upstream.script(MODEL, completion_response("   "))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert outcome.kind == FailureKind.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_malformed_completion_is_empty_response(self, transport, upstream):
        upstream.script(MODEL, httpx.Response(200, json={"unexpected": True}))
        outcome = await transport.attempt([user("hi")], MODEL)
        assert outcome.kind == FailureKind.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_completion_success(self, transport, upstream):
        upstream.script(MODEL, completion_response("Answer 中"))
        content = await transport.complete([user("hi")], MODEL)
        assert content == "Answer"
        assert upstream.calls[0]["stream"] is False


class TestConfiguration:
    """Missing credentials fail before any network I/O."""

    @pytest.mark.asyncio
    async def test_placeholder_key_makes_no_request(self, unconfigured_settings, upstream, http_client):
        transport = LLMTransport(unconfigured_settings, http_client)

        with pytest.raises(ConfigurationError) as exc_info:
            await transport.attempt([user("hi")], MODEL)

        assert exc_info.value.message == CONFIG_MISSING_MESSAGE
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_placeholder_key_streaming(self, unconfigured_settings, upstream, http_client):
        transport = LLMTransport(unconfigured_settings, http_client)

        async def sink(fragment):
            pass

        with pytest.raises(ConfigurationError):
            await transport.attempt([user("hi")], MODEL, sink=sink)
        assert upstream.calls == []

    def test_headers(self, transport, settings):
        headers = transport._headers("key-123")
        assert headers["Authorization"] == "Bearer key-123"
        assert headers["HTTP-Referer"] == settings.site_url
        assert headers["X-Title"] == settings.app_title


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
