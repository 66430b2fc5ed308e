# simgateway/modules/openai_client.py

import asyncio
from typing import AsyncIterator, List, Optional, Union

import openai
from openai import AsyncOpenAI

from simgateway.config import log
from simgateway.core.errors import AssistantRunFailed, UpstreamError
from simgateway.models.chat_models import ChatDelta, ConversationHandle, TokenUsage

# Tool calls are never submitted, so requires_action cannot progress
TERMINAL_RUN_STATUSES = ("completed", "failed", "cancelled", "expired", "incomplete", "requires_action")

BATCH_TTS_INSTRUCTIONS = "Speak in a gentle, slow and friendly way."
STREAMING_TTS_INSTRUCTIONS = "Speak in a cheerful and positive tone."


# --- CHAT COMPLETIONS ---

async def stream_chat(
    client: AsyncOpenAI,
    model: Optional[str],
    messages: List[dict],
    include_usage: bool = False,
) -> AsyncIterator[ChatDelta]:
    """Streams chat completion deltas; with include_usage, a usage-only delta closes the stream."""
    params = {"model": model, "messages": messages, "stream": True}
    if include_usage:
        params["stream_options"] = {"include_usage": True}

    total_tokens = 0
    try:
        stream = await client.chat.completions.create(**params)
        async for part in stream:
            if part.choices:
                content = part.choices[0].delta.content
                if content:
                    yield ChatDelta(text=content)
            if part.usage is not None:
                total_tokens = part.usage.total_tokens
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "OpenAI chat request failed") from e

    if include_usage:
        yield ChatDelta(usage=TokenUsage(total_tokens=total_tokens))


# --- ASSISTANTS (THREADS + RUNS) ---

def _first_text(message) -> str:
    for part in message.content or []:
        if part.type == "text" and part.text is not None:
            return part.text.value
    return ""


async def run_assistant(
    client: AsyncOpenAI,
    assistant_id: str,
    messages: List[dict],
    poll_interval: float = 1.0,
    timeout: float = 300.0,
) -> str:
    """
    Creates a thread and a run, then polls the run until it reaches a terminal
    status or the timeout elapses. Returns the text of the most recent thread message.
    """
    deadline = asyncio.get_running_loop().time() + timeout
    try:
        thread = await client.beta.threads.create(messages=messages)
        run = await client.beta.threads.runs.create(thread_id=thread.id, assistant_id=assistant_id)
        log.info(f"Assistant run {run.id} created on thread {thread.id}")

        while True:
            await asyncio.sleep(poll_interval)
            run = await client.beta.threads.runs.retrieve(run.id, thread_id=thread.id)
            status = run.status
            if status in TERMINAL_RUN_STATUSES:
                break
            if asyncio.get_running_loop().time() >= deadline:
                log.error(f"Assistant run {run.id} still '{status}' after {timeout}s")
                raise AssistantRunFailed(status)

        if status != "completed":
            log.error(f"Assistant run {run.id} ended with status '{status}'")
            raise AssistantRunFailed(status)

        page = await client.beta.threads.messages.list(thread.id, limit=1, order="desc")
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "OpenAI assistant request failed") from e

    return _first_text(page.data[0]) if page.data else ""


async def stream_assistant(
    client: AsyncOpenAI,
    assistant_id: str,
    messages: List[dict],
    thread_id: Optional[str] = None,
) -> AsyncIterator[Union[ConversationHandle, ChatDelta]]:
    """
    Streams an assistant run. A new thread is announced first with its handle;
    an existing thread gets the messages appended and no handle event.
    """
    try:
        if thread_id:
            for message in messages:
                await client.beta.threads.messages.create(
                    thread_id, role=message["role"], content=message["content"]
                )
        else:
            thread = await client.beta.threads.create(messages=messages)
            thread_id = thread.id
            yield ConversationHandle(thread_id=thread_id)

        stream = await client.beta.threads.runs.create(
            thread_id=thread_id, assistant_id=assistant_id, stream=True
        )
        async for event in stream:
            if event.event == "thread.message.delta":
                for part in event.data.delta.content or []:
                    if part.type == "text" and part.text is not None and part.text.value:
                        yield ChatDelta(text=part.text.value)
            elif event.event in (
                "thread.run.failed",
                "thread.run.cancelled",
                "thread.run.expired",
                "thread.run.incomplete",
                "thread.run.requires_action",
            ):
                raise AssistantRunFailed(event.data.status)
            elif event.event == "error":
                log.error(f"Assistant stream error: {event.data.message}")
                raise UpstreamError("OpenAI assistant request failed", details=event.data.message)
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "OpenAI assistant request failed") from e


# --- AUDIO ---

async def synthesize_speech(
    client: AsyncOpenAI,
    model: str,
    text: str,
    voice: str,
    instructions: str = BATCH_TTS_INSTRUCTIONS,
) -> bytes:
    try:
        response = await client.audio.speech.create(
            model=model,
            input=text,
            voice=voice,
            instructions=instructions,
            response_format="mp3",
        )
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "OpenAI TTS failed") from e
    return response.content


async def stream_speech(
    client: AsyncOpenAI,
    model: str,
    text: str,
    voice: str,
    instructions: str = STREAMING_TTS_INSTRUCTIONS,
) -> AsyncIterator[bytes]:
    try:
        async with client.audio.speech.with_streaming_response.create(
            model=model,
            input=text,
            voice=voice,
            instructions=instructions,
            response_format="mp3",
        ) as response:
            async for chunk in response.iter_bytes():
                yield chunk
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "OpenAI TTS failed") from e


async def transcribe(client: AsyncOpenAI, model: str, filename: str, content: bytes) -> dict:
    try:
        transcription = await client.audio.transcriptions.create(model=model, file=(filename, content))
    except openai.APIError as e:
        raise UpstreamError.from_openai_error(e, "Transcription failed") from e
    log.info(f"Transcription received ({len(transcription.text or '')} chars)")
    return transcription.model_dump(exclude_none=True)
