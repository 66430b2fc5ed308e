# simgateway/core/services.py
"""
Service table for POST /api/{service}.

Each service name maps to one handler and one delivery mode. Handlers
validate the body and fail before any upstream call on bad input; for the
streaming modes they return the adapter's iterator, which the relay pumps.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from simgateway.config import log
from simgateway.core import relay, ssml, voices
from simgateway.core.errors import ClientInputError
from simgateway.core.upstreams import Upstreams
from simgateway.models.chat_models import ChatRequest
from simgateway.models.speech_models import AUDIO_MPEG, AudioResult, SpeechRequest
from simgateway.models.user_models import UserRecord
from simgateway.modules import (
    azure_openai_client,
    azure_speech_client,
    elevenlabs_client,
    openai_client,
    postgres_client,
    vertex_client,
)

M = TypeVar("M", bound=BaseModel)


class Service(str, Enum):
    AZURE_OPENAI_SIMULATEUR = "azureOpenaiSimulateur"
    VERTEX_CHAT = "vertexChat"
    OPENAI_SIMULATEUR = "openaiSimulateur"
    OPENAI_ANALYSE = "openaiAnalyse"
    ASSISTANT_ANALYSE = "assistantOpenaiAnalyse"
    ASSISTANT_ANALYSE_STREAMING = "assistantOpenaiAnalyseStreaming"
    AZURE_OPENAI_ANALYSE = "azureOpenaiAnalyse"
    OPENAI_TTS = "openai-tts"
    STREAMING_OPENAI_TTS = "streaming-openai-tts"
    AZURE_TEXT_TO_SPEECH = "azureTextToSpeech"
    ELEVENLABS = "elevenlabs"
    AZURE_SPEECH_TTS = "azureSpeechTts"
    USER_LIST = "userList"
    UPDATE_USER_LIST = "updateUserList"


class DeliveryMode(str, Enum):
    BATCH = "batch"
    SSE = "sse"
    RAW = "raw"


@dataclass(frozen=True)
class BatchResult:
    payload: Any
    status_code: int = 200


Handler = Callable[[dict, Upstreams, "DeliveryMode"], Awaitable[Any]]


@dataclass(frozen=True)
class ServiceDefinition:
    handler: Handler
    mode: DeliveryMode
    # Streaming services that also answer in batch when the body says stream=false
    batch_capable: bool = False
    envelope: relay.Envelope = field(default=relay.delta_envelope)
    media_type: str = relay.EVENT_STREAM

    def resolve_mode(self, body: dict) -> DeliveryMode:
        if self.batch_capable and str(body.get("stream", "")).strip().lower() in ("false", "0"):
            return DeliveryMode.BATCH
        return self.mode


# --- HELPERS ---

def parse_body(model: Type[M], body: dict) -> M:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        details = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise ClientInputError("Invalid request body", details=details) from e


def _require_text(request: SpeechRequest) -> str:
    if not request.text or not request.text.strip():
        raise ClientInputError("Text is required")
    return request.text


# --- CHAT ---

async def azure_openai_simulateur(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    api_key = upstreams.require_setting("AZURE_OPENAI_KEY_SIMULATEUR", "Azure OpenAI key missing")
    endpoint = upstreams.require_setting("AZURE_OPENAI_ENDPOINT_SIMULATEUR", "Azure OpenAI endpoint missing")
    deployment = upstreams.require_setting("AZURE_OPENAI_DEPLOYMENT_SIMULATEUR", "Azure OpenAI deployment missing")
    api_version = upstreams.require_setting("AZURE_OPENAI_API_VERSION", "Azure OpenAI API version missing")
    url = azure_openai_client.deployment_url(endpoint, deployment, "chat/completions", api_version)
    return azure_openai_client.stream_chat_passthrough(upstreams.http, url, api_key, body)


async def vertex_chat(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(ChatRequest, body)
    model = upstreams.require_vertex()
    if mode is DeliveryMode.BATCH:
        text = await vertex_client.generate(model, request.messages)
        return BatchResult({"text": text})
    return vertex_client.stream_generate(model, request.messages)


async def openai_simulateur(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(ChatRequest, body)
    client = upstreams.require_openai()
    return openai_client.stream_chat(client, request.model, request.message_dicts(), include_usage=True)


async def openai_analyse(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(ChatRequest, body)
    client = upstreams.require_openai()
    return openai_client.stream_chat(client, request.model, request.message_dicts())


async def assistant_analyse(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(ChatRequest, body)
    client = upstreams.require_openai()
    assistant_id = upstreams.require_setting("OPENAI_ASSISTANTID", "OpenAI assistant id missing")
    answer = await openai_client.run_assistant(
        client,
        assistant_id,
        request.message_dicts(),
        poll_interval=upstreams.settings.ASSISTANT_POLL_INTERVAL_SECONDS,
        timeout=upstreams.settings.UPSTREAM_TIMEOUT_SECONDS,
    )
    return BatchResult({"answer": answer})


async def assistant_analyse_streaming(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(ChatRequest, body)
    client = upstreams.require_openai()
    assistant_id = upstreams.require_setting("OPENAI_ASSISTANTID", "OpenAI assistant id missing")
    return openai_client.stream_assistant(client, assistant_id, request.message_dicts(), thread_id=request.thread_id)


async def azure_openai_analyse(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    api_key = upstreams.require_setting("AZURE_OPENAI_KEY_SIMULATEUR", "Azure OpenAI key missing")
    endpoint = upstreams.require_setting("AZURE_OPENAI_ENDPOINT_SIMULATEUR", "Azure OpenAI endpoint missing")
    deployment = upstreams.require_setting("AZURE_OPENAI_DEPLOYMENT_COACH", "Azure OpenAI deployment missing")
    api_version = upstreams.require_setting("AZURE_OPENAI_API_VERSION_COACH", "Azure OpenAI API version missing")
    url = azure_openai_client.deployment_url(endpoint, deployment, "chat/completions", api_version)
    return BatchResult(await azure_openai_client.chat_completion(upstreams.http, url, api_key, body))


# --- TEXT TO SPEECH ---

async def openai_tts(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    client = upstreams.require_openai()
    request = parse_body(SpeechRequest, body)
    text = _require_text(request)
    voice = voices.resolve_openai_voice(request.selected_voice)
    audio = await openai_client.synthesize_speech(client, upstreams.settings.OPENAI_TTS_MODEL, text, voice)
    return AudioResult(audio)


async def streaming_openai_tts(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(SpeechRequest, body)
    text = _require_text(request)
    client = upstreams.require_openai()
    voice = voices.resolve_openai_voice(request.selected_voice)
    return openai_client.stream_speech(client, upstreams.settings.OPENAI_STREAMING_TTS_MODEL, text, voice)


async def azure_text_to_speech(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    s = upstreams.settings
    request = parse_body(SpeechRequest, body)
    text = _require_text(request)
    api_key = upstreams.require_setting("AZURE_TTS_KEY", "Azure TTS key missing")
    endpoint = upstreams.require_setting("AZURE_TTS_ENDPOINT", "Azure TTS endpoint missing")
    url = azure_openai_client.deployment_url(endpoint, s.AZURE_TTS_DEPLOYMENT, "audio/speech", s.AZURE_TTS_API_VERSION)
    voice = voices.resolve_openai_voice(request.selected_voice)
    return AudioResult(await azure_openai_client.synthesize_speech(upstreams.http, url, api_key, text, voice))


async def elevenlabs(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    api_key = upstreams.require_setting("ELEVENLAB_API_KEY", "ElevenLabs API key missing")
    request = parse_body(SpeechRequest, body)
    voice_id = voices.resolve_language_voice(voices.ELEVENLABS_VOICES, request.selected_language, request.voice_id)
    text = _require_text(request)
    audio = await elevenlabs_client.synthesize_speech(
        upstreams.http, api_key, voice_id, text, upstreams.settings.ELEVENLABS_MODEL_ID
    )
    return AudioResult(audio)


async def azure_speech_tts(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    request = parse_body(SpeechRequest, body)
    text = _require_text(request)
    voice = voices.resolve_azure_speech_voice(request.selected_voice, request.selected_language)
    api_key = upstreams.require_setting("AZURE_SPEECH_API_KEY", "Azure keys missing in the backend")
    region = upstreams.require_setting("AZURE_REGION", "Azure keys missing in the backend")
    document = ssml.build_ssml(
        text,
        voice,
        style=request.style,
        style_degree=request.style_degree,
        rate=request.rate,
        pitch=request.pitch,
        volume=request.volume,
        leading_silence_ms=request.leading_silence_ms,
        trailing_silence_ms=request.trailing_silence_ms,
        locale=request.locale,
    )
    audio = await azure_speech_client.synthesize_ssml(
        upstreams.http, api_key, region, document, upstreams.settings.AZURE_SPEECH_OUTPUT_FORMAT
    )
    return AudioResult(audio)


# --- USER RECORDS ---

async def user_list(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    record = parse_body(UserRecord, body)
    row = await postgres_client.insert_user_record(upstreams.require_pg_pool(), record)
    return BatchResult({"message": "Utente inserito!", "data": row}, status_code=201)


async def update_user_list(body: dict, upstreams: Upstreams, mode: DeliveryMode):
    record = parse_body(UserRecord, body)
    row = await postgres_client.update_user_record(upstreams.require_pg_pool(), record)
    return BatchResult({"message": "Utente aggiornato!", "data": row})


SERVICES: Dict[Service, ServiceDefinition] = {
    Service.AZURE_OPENAI_SIMULATEUR: ServiceDefinition(azure_openai_simulateur, DeliveryMode.RAW),
    Service.VERTEX_CHAT: ServiceDefinition(vertex_chat, DeliveryMode.SSE, batch_capable=True),
    Service.OPENAI_SIMULATEUR: ServiceDefinition(
        openai_simulateur, DeliveryMode.SSE, envelope=relay.choices_envelope
    ),
    Service.OPENAI_ANALYSE: ServiceDefinition(openai_analyse, DeliveryMode.SSE),
    Service.ASSISTANT_ANALYSE: ServiceDefinition(assistant_analyse, DeliveryMode.BATCH),
    Service.ASSISTANT_ANALYSE_STREAMING: ServiceDefinition(assistant_analyse_streaming, DeliveryMode.SSE),
    Service.AZURE_OPENAI_ANALYSE: ServiceDefinition(azure_openai_analyse, DeliveryMode.BATCH),
    Service.OPENAI_TTS: ServiceDefinition(openai_tts, DeliveryMode.BATCH),
    Service.STREAMING_OPENAI_TTS: ServiceDefinition(streaming_openai_tts, DeliveryMode.RAW, media_type=AUDIO_MPEG),
    Service.AZURE_TEXT_TO_SPEECH: ServiceDefinition(azure_text_to_speech, DeliveryMode.BATCH),
    Service.ELEVENLABS: ServiceDefinition(elevenlabs, DeliveryMode.BATCH),
    Service.AZURE_SPEECH_TTS: ServiceDefinition(azure_speech_tts, DeliveryMode.BATCH),
    Service.USER_LIST: ServiceDefinition(user_list, DeliveryMode.BATCH),
    Service.UPDATE_USER_LIST: ServiceDefinition(update_user_list, DeliveryMode.BATCH),
}

_unmapped = set(Service) - set(SERVICES)
if _unmapped:
    raise RuntimeError(f"Services without a handler: {sorted(s.value for s in _unmapped)}")


# --- DISPATCH ---

def parse_service(name: str) -> Service:
    try:
        return Service(name)
    except ValueError:
        raise ClientInputError("Invalid service") from None


def render_batch(result: Any) -> Response:
    if isinstance(result, AudioResult):
        return Response(content=result.content, media_type=result.media_type)
    if isinstance(result, BatchResult):
        return JSONResponse(content=jsonable_encoder(result.payload), status_code=result.status_code)
    return JSONResponse(content=jsonable_encoder(result))


async def dispatch(
    name: str,
    body: dict,
    upstreams: Upstreams,
    is_disconnected: Optional[relay.DisconnectCheck] = None,
) -> Response:
    service = parse_service(name)
    definition = SERVICES[service]
    mode = definition.resolve_mode(body)
    log.info(f"Service '{service.value}' dispatched in {mode.value} mode")

    result = await definition.handler(body, upstreams, mode)

    if mode is DeliveryMode.SSE:
        return await relay.open_sse_response(result, definition.envelope, is_disconnected, label=service.value)
    if mode is DeliveryMode.RAW:
        return await relay.open_byte_response(result, definition.media_type, is_disconnected, label=service.value)
    return render_batch(result)
