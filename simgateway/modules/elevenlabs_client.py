# simgateway/modules/elevenlabs_client.py

import httpx

from simgateway.config import log
from simgateway.core.errors import UpstreamError

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"

VOICE_SETTINGS = {"stability": 0.6, "similarity_boost": 0.7, "style": 0.1}


async def synthesize_speech(http: httpx.AsyncClient, api_key: str, voice_id: str, text: str, model_id: str) -> bytes:
    """Requests the whole clip from the streaming endpoint and returns it as one buffer."""
    try:
        response = await http.post(
            f"{ELEVENLABS_API_URL}/text-to-speech/{voice_id}/stream",
            json={"text": text, "model_id": model_id, "voice_settings": VOICE_SETTINGS},
            headers={"xi-api-key": api_key},
        )
    except httpx.HTTPError as e:
        log.error(f"ElevenLabs request failed: {e}")
        raise UpstreamError("Unknown error with ElevenLabs", details=str(e)) from e

    if response.is_error:
        # Error bodies come back on an audio endpoint, so they are decoded from bytes
        error = UpstreamError.from_httpx_response(response, "ElevenLabs TTS failed")
        log.error(f"ElevenLabs error {response.status_code}: {error.details}")
        raise error

    log.info(f"Audio received from ElevenLabs ({len(response.content)} bytes)")
    return response.content
