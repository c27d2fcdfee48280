"""Chat router - failover chat with optional deep search and SSE streaming."""

import asyncio
import contextlib
import json
import logging
import traceback
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from modelrelay.agent.failover import ChatTurnRequest, last_user_content
from modelrelay.agent.prompts import GENERIC_ERROR_MESSAGES, detect_language, localized
from modelrelay.agent.schemas import ChatMessage
from modelrelay.core import model_registry
from modelrelay.core.exceptions import InvalidRequestError
from modelrelay.core.security import sanitize_input, validate_image_data
from modelrelay.models.schemas import ChatMessageIn, ChatRequest, ChatResponse, ModelsResponse
from modelrelay.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

_STREAM_END = object()


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def clean_messages(messages: List[ChatMessageIn]) -> List[ChatMessage]:
    """Sanitize text and validate attached images.

    Raises:
        InvalidRequestError: an image is malformed or too large, or nothing
            sendable is left after sanitizing
    """
    cleaned = []
    for message in messages:
        if message.image and not validate_image_data(message.image):
            raise InvalidRequestError("صورة غير صالحة", error_code="invalid_image")
        cleaned.append(ChatMessage(
            role=message.role,
            content=sanitize_input(message.content),
            image=message.image or None,
        ))

    if not any(m.content or m.has_image for m in cleaned):
        raise InvalidRequestError("طلب غير صالح", error_code="empty_messages")
    return cleaned


def sse_frame(frame: dict) -> str:
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


async def stream_events(service: ChatService, turn: ChatTurnRequest, deep_search: bool, language: str):
    """Serialize a streamed turn as SSE frames, ending with ``[DONE]``.

    The turn runs in its own task and hands frames over a queue. Closing
    this generator (the client went away) cancels that task, which closes
    the upstream stream too.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def produce():
        try:
            await service.stream(turn, deep_search, queue.put)
        except Exception as e:
            logger.error(f"Streaming error: {e}\n{traceback.format_exc()}")
            message = localized(GENERIC_ERROR_MESSAGES, language)
            await queue.put({"type": "error", "content": message} if deep_search else {"chunk": message})
        finally:
            await queue.put(_STREAM_END)

    producer = asyncio.create_task(produce())
    try:
        while True:
            frame = await queue.get()
            if frame is _STREAM_END:
                break
            yield sse_frame(frame)
        yield "data: [DONE]\n\n"
    finally:
        if not producer.done():
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer


@router.post("", responses={200: {"model": ChatResponse, "description": "JSON answer, or SSE when streaming"}})
async def chat(body: ChatRequest, service: ChatService = Depends(get_chat_service)):
    """Answer a chat turn, as JSON or as a server-sent event stream."""
    messages = clean_messages(body.messages)
    turn = ChatTurnRequest(
        messages=messages,
        model=body.model,
        deep_thinking=body.deep_thinking,
        is_voice_mode=body.is_voice_mode,
        focus_mode=body.focus_mode,
    )
    logger.info(
        f"Chat request: model={body.model} streaming={body.streaming} "
        f"deep_search={body.deep_search} messages={len(messages)}"
    )

    if not body.streaming:
        reply = await service.respond(turn, deep_search=body.deep_search)
        payload = ChatResponse.model_validate(reply.body).model_dump(mode="json", by_alias=True, exclude_none=True)
        return JSONResponse(status_code=reply.status_code, content=payload)

    language = detect_language(last_user_content(messages))
    return StreamingResponse(
        stream_events(service, turn, body.deep_search, language),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/models", response_model=ModelsResponse)
async def list_models():
    """Selectable models, with 'auto' first."""
    return ModelsResponse(models=model_registry.selectable_models(), default=model_registry.AUTO_MODEL_ID)
