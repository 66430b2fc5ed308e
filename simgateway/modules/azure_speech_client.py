# simgateway/modules/azure_speech_client.py

import httpx

from simgateway.config import log
from simgateway.core.errors import UpstreamError


async def issue_token(http: httpx.AsyncClient, api_key: str, region: str) -> str:
    """Exchanges the subscription key for a short-lived token usable by the browser SDK."""
    try:
        response = await http.post(
            f"https://{region}.api.cognitive.microsoft.com/sts/v1.0/issueToken",
            headers={"Ocp-Apim-Subscription-Key": api_key},
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        log.error(f"Failed to generate Azure token: {e}")
        raise UpstreamError("Failed to generate token", status_code=500) from e
    return response.text


async def synthesize_ssml(
    http: httpx.AsyncClient,
    api_key: str,
    region: str,
    ssml: str,
    output_format: str,
) -> bytes:
    try:
        response = await http.post(
            f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1",
            content=ssml.encode("utf-8"),
            headers={
                "Ocp-Apim-Subscription-Key": api_key,
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": output_format,
                "User-Agent": "simgateway",
            },
        )
    except httpx.HTTPError as e:
        raise UpstreamError("Azure Speech TTS failed", details=str(e)) from e

    if response.is_error:
        log.error(f"Azure Speech TTS answered {response.status_code}")
        raise UpstreamError.from_httpx_response(response, "Azure Speech TTS failed")
    return response.content
