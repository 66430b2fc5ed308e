# simgateway/modules/vertex_client.py

from typing import AsyncIterator, List

from google.api_core import exceptions as google_exceptions
from vertexai.generative_models import Content, Part

from simgateway.config import log
from simgateway.core.errors import UpstreamError
from simgateway.models.chat_models import ChatDelta, ChatMessage

# --- HELPERS ---

def prepare_contents(messages: List[ChatMessage]) -> List[Content]:
    """Flattens the conversation into a single user turn of 'ROLE: content' lines."""
    prompt_text = "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)
    return [Content(role="user", parts=[Part.from_text(prompt_text)])]


def extract_text(response) -> str:
    # response.text raises when the candidate has no text part (e.g. safety blocks)
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        return ""
    return getattr(parts[0], "text", "") or ""


def _upstream_error(e: google_exceptions.GoogleAPICallError) -> UpstreamError:
    return UpstreamError("Vertex AI request failed", details=e.message, status_code=e.code or 500)


# --- GENERATION ---

async def generate(model, messages: List[ChatMessage]) -> str:
    try:
        response = await model.generate_content_async(prepare_contents(messages))
    except google_exceptions.GoogleAPICallError as e:
        log.error(f"Vertex AI batch error: {e}", exc_info=True)
        raise _upstream_error(e) from e
    return extract_text(response)


async def stream_generate(model, messages: List[ChatMessage]) -> AsyncIterator[ChatDelta]:
    try:
        responses = await model.generate_content_async(prepare_contents(messages), stream=True)
        async for chunk in responses:
            text = extract_text(chunk)
            if text:
                yield ChatDelta(text=text)
    except google_exceptions.GoogleAPICallError as e:
        raise _upstream_error(e) from e
