# simgateway/core/relay.py
"""
Streaming relay: pumps an adapter's event stream to the client.

SSE streams always end with the [DONE] frame, on success and on failure.
Errors raised before the first event never reach this module's generators:
`prime` surfaces them while the response can still carry a status code.
"""

import json
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from fastapi.responses import StreamingResponse

from simgateway.config import log
from simgateway.core.errors import GatewayError
from simgateway.models.chat_models import ChatDelta, ConversationHandle
from simgateway.models.speech_models import AUDIO_MPEG

EVENT_STREAM = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
DONE_FRAME = "data: [DONE]\n\n"

Envelope = Callable[[Any], Optional[Dict[str, Any]]]
DisconnectCheck = Callable[[], Awaitable[bool]]


def create_sse_event(data: dict) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


# --- ENVELOPES ---

def _common_envelope(event: Any) -> Optional[Dict[str, Any]]:
    if isinstance(event, ConversationHandle):
        return {"threadId": event.thread_id}
    if isinstance(event, ChatDelta) and event.usage is not None and not event.text:
        return {"usage": {"total_tokens": event.usage.total_tokens}}
    return None


def delta_envelope(event: Any) -> Optional[Dict[str, Any]]:
    """{"delta": text}"""
    common = _common_envelope(event)
    if common is not None:
        return common
    if isinstance(event, ChatDelta) and event.text:
        return {"delta": event.text}
    return None


def choices_envelope(event: Any) -> Optional[Dict[str, Any]]:
    """{"choices": [{"delta": {"content": text}}]}, the shape OpenAI chunk parsers expect."""
    common = _common_envelope(event)
    if common is not None:
        return common
    if isinstance(event, ChatDelta) and event.text:
        return {"choices": [{"delta": {"content": event.text}}]}
    return None


# --- PRIMING ---

async def _close(iterator: AsyncIterator) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        log.warning(f"Error while closing upstream stream: {e}")


async def prime(events: AsyncIterator) -> AsyncIterator:
    """
    Pulls the first event so that failures to establish the upstream call are
    raised here, before any header is sent. Returns an iterator replaying it.
    """
    iterator = events.__aiter__()
    try:
        first = await iterator.__anext__()
    except StopAsyncIteration:
        return _replay(iterator, ())
    except BaseException:
        await _close(iterator)
        raise
    return _replay(iterator, (first,))


async def _replay(iterator: AsyncIterator, head: tuple) -> AsyncIterator:
    try:
        for item in head:
            yield item
        async for item in iterator:
            yield item
    finally:
        await _close(iterator)


# --- RELAYS ---

def _error_message(exc: Exception) -> str:
    if isinstance(exc, GatewayError):
        return exc.error
    return str(exc) or exc.__class__.__name__


async def relay_sse(
    events: AsyncIterator,
    envelope: Envelope = delta_envelope,
    is_disconnected: Optional[DisconnectCheck] = None,
    label: str = "stream",
) -> AsyncIterator[str]:
    """Yields one SSE frame per event, in arrival order, then the [DONE] frame."""
    try:
        async for event in events:
            if is_disconnected is not None and await is_disconnected():
                log.info(f"[{label}] Client disconnected, abandoning upstream stream.")
                return
            payload = envelope(event)
            if payload is not None:
                yield create_sse_event(payload)
    except Exception as e:
        log.error(f"[{label}] Upstream failed mid-stream: {e}", exc_info=True)
        yield create_sse_event({"error": _error_message(e)})
    finally:
        await _close(events)
    log.info(f"[{label}] Stream finished.")
    yield DONE_FRAME


async def relay_bytes(
    chunks: AsyncIterator[bytes],
    is_disconnected: Optional[DisconnectCheck] = None,
    label: str = "stream",
) -> AsyncIterator[bytes]:
    """
    Forwards upstream chunks verbatim. A mid-stream failure cannot be signalled
    in-band: it is logged and the connection ends.
    """
    try:
        async for chunk in chunks:
            if is_disconnected is not None and await is_disconnected():
                log.info(f"[{label}] Client disconnected, abandoning upstream stream.")
                return
            if chunk:
                yield chunk
    except Exception as e:
        log.error(f"[{label}] Upstream failed mid-stream, closing connection: {e}", exc_info=True)
    finally:
        await _close(chunks)


# --- RESPONSES ---

async def open_sse_response(
    events: AsyncIterator,
    envelope: Envelope = delta_envelope,
    is_disconnected: Optional[DisconnectCheck] = None,
    label: str = "stream",
) -> StreamingResponse:
    primed = await prime(events)
    return StreamingResponse(
        relay_sse(primed, envelope, is_disconnected, label),
        media_type=EVENT_STREAM,
        headers=SSE_HEADERS,
    )


async def open_byte_response(
    chunks: AsyncIterator[bytes],
    media_type: str = AUDIO_MPEG,
    is_disconnected: Optional[DisconnectCheck] = None,
    label: str = "stream",
) -> StreamingResponse:
    primed = await prime(chunks)
    return StreamingResponse(
        relay_bytes(primed, is_disconnected, label),
        media_type=media_type,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
