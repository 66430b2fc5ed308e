# simgateway/main.py

import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from simgateway.config import Settings, get_settings, log, setup_logging
from simgateway.core import services
from simgateway.core.errors import ClientInputError, ConfigurationError, GatewayError
from simgateway.core.upstreams import Upstreams, close_upstreams, create_upstreams, get_upstreams
from simgateway.modules import azure_speech_client, openai_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Upstreams injected by the caller (tests) are left untouched
    owned = getattr(app.state, "upstreams", None) is None
    if owned:
        app.state.upstreams = await create_upstreams(app.state.settings)
    yield
    if owned:
        await close_upstreams(app.state.upstreams)


async def read_body(request: Request) -> dict:
    """Accepts JSON as well as form-encoded bodies."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise ClientInputError("Malformed JSON body") from None
    if not isinstance(body, dict):
        raise ClientInputError("JSON body must be an object")
    return body


def create_app(settings: Optional[Settings] = None, upstreams: Optional[Upstreams] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.API_TITLE,
        description="Gateway multiplexing chat, speech synthesis and transcription providers.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstreams = upstreams

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    # --- ENDPOINTS ---

    @app.get("/status", tags=["Status"])
    def read_status():
        return {"status": "ok", "message": "Simulateur gateway running."}

    @app.post("/api/transcribe", tags=["Speech"])
    async def transcribe_handler(
        audio: Optional[UploadFile] = File(None),
        upstreams: Upstreams = Depends(get_upstreams),
    ):
        """Transcribes an uploaded audio file with Whisper."""
        log.info(f"/api/transcribe file={audio.filename if audio else None} size={audio.size if audio else None}")
        client = upstreams.require_openai()
        if audio is None:
            raise ClientInputError("No audio file uploaded")
        content = await audio.read()
        return await openai_client.transcribe(
            client, upstreams.settings.OPENAI_TRANSCRIBE_MODEL, audio.filename or "audio", content
        )

    @app.post("/api/{service}", tags=["Services"])
    async def service_handler(service: str, request: Request, upstreams: Upstreams = Depends(get_upstreams)):
        """Dispatches the request to the provider named by `service`."""
        body = await read_body(request)
        log.info(f"Service received: {service}")
        log.info(f"Body received: {json.dumps(body, ensure_ascii=False, default=str)}")
        try:
            return await services.dispatch(service, body, upstreams, request.is_disconnected)
        except GatewayError:
            raise
        except Exception as e:
            log.error(f"API error {service}: {e}", exc_info=True)
            raise GatewayError("API request error") from e

    @app.get("/get-azure-token", tags=["Speech"])
    async def azure_token_handler(upstreams: Upstreams = Depends(get_upstreams)):
        """Issues a short-lived Azure Speech token for the browser SDK."""
        s = upstreams.settings
        if not s.AZURE_SPEECH_API_KEY or not s.AZURE_REGION:
            raise ConfigurationError("Azure keys missing in the backend")
        token = await azure_speech_client.issue_token(upstreams.http, s.AZURE_SPEECH_API_KEY, s.AZURE_REGION)
        return {"token": token, "region": s.AZURE_REGION}

    return app


app = create_app()

if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run("simgateway.main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))
