# simgateway/models/speech_models.py

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

AUDIO_MPEG = "audio/mpeg"


class SpeechRequest(BaseModel):
    """Body of the text-to-speech services. Field names follow the client's camelCase."""
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    text: Optional[str] = None
    selected_voice: Optional[str] = Field(None, alias="selectedVoice")
    selected_language: Optional[str] = Field(None, alias="selectedLanguage")
    voice_id: Optional[str] = Field(None, alias="voiceId", description="Overrides the language table.")

    # --- Azure Speech (SSML) ---
    locale: Optional[str] = None
    style: Optional[str] = None
    style_degree: Optional[float] = Field(None, alias="styleDegree")
    rate: Optional[str] = None
    pitch: Optional[str] = None
    volume: Optional[str] = None
    leading_silence_ms: Optional[int] = Field(None, alias="leadingSilenceMs", ge=0)
    trailing_silence_ms: Optional[int] = Field(None, alias="trailingSilenceMs", ge=0)


@dataclass(frozen=True)
class AudioResult:
    """A complete synthesized audio buffer."""
    content: bytes
    media_type: str = AUDIO_MPEG
