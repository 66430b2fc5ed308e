# simgateway/config.py
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger("simgateway")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- OpenAI (chat, assistants, TTS, Whisper) ---
    OPENAI_API_KEY_SIMULATEUR: Optional[str] = None
    OPENAI_ASSISTANTID: Optional[str] = None
    OPENAI_TTS_MODEL: str = "gpt-4o-mini-tts"
    OPENAI_STREAMING_TTS_MODEL: str = "tts-1"
    OPENAI_TRANSCRIBE_MODEL: str = "whisper-1"

    # --- Azure OpenAI ---
    AZURE_OPENAI_KEY_SIMULATEUR: Optional[str] = None
    AZURE_OPENAI_ENDPOINT_SIMULATEUR: Optional[str] = None
    AZURE_OPENAI_DEPLOYMENT_SIMULATEUR: Optional[str] = None
    AZURE_OPENAI_API_VERSION: Optional[str] = None
    AZURE_OPENAI_DEPLOYMENT_COACH: Optional[str] = None
    AZURE_OPENAI_API_VERSION_COACH: Optional[str] = None
    AZURE_TTS_ENDPOINT: Optional[str] = None
    AZURE_TTS_KEY: Optional[str] = None
    AZURE_TTS_DEPLOYMENT: str = "tts"
    AZURE_TTS_API_VERSION: str = "2025-03-01-preview"

    # --- Azure Speech (token + SSML synthesis) ---
    AZURE_SPEECH_API_KEY: Optional[str] = None
    AZURE_REGION: Optional[str] = None
    AZURE_SPEECH_OUTPUT_FORMAT: str = "audio-24khz-48kbitrate-mono-mp3"

    # --- ElevenLabs ---
    ELEVENLAB_API_KEY: Optional[str] = None
    ELEVENLABS_MODEL_ID: str = "eleven_flash_v2_5"

    # --- Vertex AI ---
    GCLOUD_PROJECT: Optional[str] = None
    VERTEX_LOCATION: Optional[str] = None
    VERTEX_MODEL_ID: Optional[str] = None
    GOOGLE_SERVICE_ACCOUNT_KEY: Optional[str] = None
    VERTEX_MAX_OUTPUT_TOKENS: int = 2048

    # --- PostgreSQL ---
    PG_CONNECTION: Optional[str] = None
    PG_SSL_VERIFY: bool = False
    PG_POOL_MIN_SIZE: int = 1
    PG_POOL_MAX_SIZE: int = 10

    # --- Upstream calls ---
    UPSTREAM_TIMEOUT_SECONDS: float = 300.0
    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = 10.0
    ASSISTANT_POLL_INTERVAL_SECONDS: float = 1.0

    # --- API ---
    API_TITLE: str = "Simulateur Gateway API"
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    CLOUD_LOGGING: bool = False

    @property
    def cors_origins(self) -> List[str]:
        raw = self.CORS_ORIGINS.strip()
        if not raw or raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def vertex_enabled(self) -> bool:
        return bool(self.GCLOUD_PROJECT and self.VERTEX_LOCATION and self.VERTEX_MODEL_ID)


@lru_cache
def get_settings() -> Settings:
    return Settings()


def setup_logging(settings: Settings) -> None:
    """Configures the process loggers. Cloud Logging is attached only when enabled."""
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if settings.CLOUD_LOGGING:
        import google.cloud.logging

        client = google.cloud.logging.Client()
        client.setup_logging()
        log.info("Google Cloud Logging attached.")

    # Keep HTTP client debug output (request headers carry API keys) out of the logs
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
