# simgateway/modules/azure_openai_client.py

from typing import AsyncIterator

import httpx

from simgateway.config import log
from simgateway.core.errors import UpstreamError


def deployment_url(endpoint: str, deployment: str, operation: str, api_version: str) -> str:
    return f"{endpoint.rstrip('/')}/openai/deployments/{deployment}/{operation}?api-version={api_version}"


async def stream_chat_passthrough(
    http: httpx.AsyncClient,
    url: str,
    api_key: str,
    body: dict,
) -> AsyncIterator[bytes]:
    """
    Forwards the client body verbatim and yields the upstream SSE bytes as-is,
    only undoing any HTTP content-encoding.
    The upstream already speaks SSE, so no framing is added here.
    """
    request = http.build_request(
        "POST", url, json=body, headers={"api-key": api_key, "Content-Type": "application/json"}
    )
    try:
        response = await http.send(request, stream=True)
    except httpx.HTTPError as e:
        raise UpstreamError("Azure OpenAI request failed", details=str(e)) from e

    try:
        if response.is_error:
            await response.aread()
            log.error(f"Azure OpenAI answered {response.status_code}")
            raise UpstreamError.from_httpx_response(response, "Azure OpenAI request failed")
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()


async def chat_completion(http: httpx.AsyncClient, url: str, api_key: str, body: dict) -> dict:
    """Batch chat completion; the upstream JSON is returned unmodified."""
    try:
        response = await http.post(url, json=body, headers={"api-key": api_key})
    except httpx.HTTPError as e:
        raise UpstreamError("Azure OpenAI analysis failed", details=str(e)) from e

    if response.is_error:
        log.error(f"Azure OpenAI analysis answered {response.status_code}")
        raise UpstreamError.from_httpx_response(response, "Azure OpenAI analysis failed")
    return response.json()


async def synthesize_speech(http: httpx.AsyncClient, url: str, api_key: str, text: str, voice: str) -> bytes:
    try:
        response = await http.post(
            url,
            json={"model": "tts-1", "input": text, "voice": voice},
            headers={"api-key": api_key, "Accept": "audio/mpeg"},
        )
    except httpx.HTTPError as e:
        raise UpstreamError("Azure TTS failed", details=str(e)) from e

    if response.is_error:
        log.error(f"Azure TTS answered {response.status_code}")
        raise UpstreamError.from_httpx_response(response, "Azure TTS failed")
    return response.content
