# simgateway/core/voices.py

from typing import Optional

from simgateway.core.errors import ClientInputError

# --- OpenAI / Azure OpenAI TTS ---
OPENAI_VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
DEFAULT_OPENAI_VOICE = "fable"

# --- ElevenLabs: client language name -> voice id ---
ELEVENLABS_VOICES = {
    "espagnol": "l1zE9xgNpUTaQCZzpNJa",
    "français": "1a3lMdKLUcfcMtvN772u",
    "anglais": "7tRwuZTD1EWi6nydVerp",
}

# --- Azure Speech: client language name -> neural voice ---
AZURE_SPEECH_VOICES = {
    "espagnol": "es-ES-ElviraNeural",
    "français": "fr-FR-DeniseNeural",
    "anglais": "en-US-JennyNeural",
    "italien": "it-IT-ElsaNeural",
}
DEFAULT_AZURE_SPEECH_VOICE = "fr-FR-DeniseNeural"

# Voices a client may pick explicitly; anything else falls back
AZURE_SPEECH_VOICE_NAMES = frozenset(AZURE_SPEECH_VOICES.values()) | {
    "fr-FR-HenriNeural",
    "es-ES-AlvaroNeural",
    "en-US-GuyNeural",
    "en-GB-SoniaNeural",
    "it-IT-DiegoNeural",
}


def resolve_openai_voice(selected_voice: Optional[str]) -> str:
    """Returns the requested voice when allowed, the default voice otherwise. Never fails."""
    voice = (selected_voice or "").strip().lower()
    return voice if voice in OPENAI_VOICES else DEFAULT_OPENAI_VOICE


def resolve_language_voice(table: dict, selected_language: Optional[str], override: Optional[str] = None) -> str:
    """Maps a language to a provider voice; unmapped languages are a client error."""
    if override and override.strip():
        return override.strip()
    voice = table.get((selected_language or "").strip().lower())
    if not voice:
        raise ClientInputError("Not supported language")
    return voice


def resolve_azure_speech_voice(selected_voice: Optional[str], selected_language: Optional[str]) -> str:
    """An unknown voice is ignored: the language table decides, then the default voice."""
    voice = (selected_voice or "").strip()
    if voice in AZURE_SPEECH_VOICE_NAMES:
        return voice
    if not selected_language:
        return DEFAULT_AZURE_SPEECH_VOICE
    return resolve_language_voice(AZURE_SPEECH_VOICES, selected_language)
