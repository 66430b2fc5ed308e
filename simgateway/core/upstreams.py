# simgateway/core/upstreams.py

import json
import ssl
from dataclasses import dataclass
from typing import Any, Optional

import asyncpg
import httpx
from fastapi import Request
from openai import AsyncOpenAI

from simgateway.config import Settings, log
from simgateway.core.errors import ConfigurationError


@dataclass
class Upstreams:
    """
    Process-wide upstream handles, built once at startup and shared by every
    request. Handles whose credentials are missing stay None; the matching
    `require_*` call fails with a configuration error at first use.
    """
    settings: Settings
    http: httpx.AsyncClient
    openai: Optional[AsyncOpenAI] = None
    vertex_model: Any = None
    pg_pool: Optional[asyncpg.Pool] = None

    def require_openai(self) -> AsyncOpenAI:
        if self.openai is None:
            raise ConfigurationError("OpenAI API key missing")
        return self.openai

    def require_vertex(self) -> Any:
        if self.vertex_model is None:
            raise ConfigurationError("Vertex AI is not configured")
        return self.vertex_model

    def require_pg_pool(self) -> asyncpg.Pool:
        if self.pg_pool is None:
            raise ConfigurationError("Database is not configured")
        return self.pg_pool

    def require_setting(self, name: str, message: str) -> str:
        value = getattr(self.settings, name)
        if not value:
            raise ConfigurationError(message)
        return value


def upstream_timeout(settings: Settings) -> httpx.Timeout:
    return httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS, connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS)


def _init_vertex_model(settings: Settings) -> Any:
    import vertexai
    from vertexai.generative_models import GenerationConfig, GenerativeModel

    credentials = None
    if settings.GOOGLE_SERVICE_ACCOUNT_KEY:
        from google.oauth2 import service_account

        credentials = service_account.Credentials.from_service_account_info(
            json.loads(settings.GOOGLE_SERVICE_ACCOUNT_KEY),
            scopes=["https://www.googleapis.com/auth/cloud-platform"],
        )

    vertexai.init(project=settings.GCLOUD_PROJECT, location=settings.VERTEX_LOCATION, credentials=credentials)
    model = GenerativeModel(
        settings.VERTEX_MODEL_ID,
        generation_config=GenerationConfig(max_output_tokens=settings.VERTEX_MAX_OUTPUT_TOKENS),
    )
    log.info(f"Vertex AI initialized, model '{settings.VERTEX_MODEL_ID}' loaded.")
    return model


def _pg_ssl_context(settings: Settings) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not settings.PG_SSL_VERIFY:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def create_upstreams(settings: Settings) -> Upstreams:
    upstreams = Upstreams(
        settings=settings,
        http=httpx.AsyncClient(timeout=upstream_timeout(settings)),
    )

    if settings.OPENAI_API_KEY_SIMULATEUR:
        # No retries anywhere: a failed upstream call fails the request once
        upstreams.openai = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY_SIMULATEUR,
            timeout=upstream_timeout(settings),
            max_retries=0,
        )
    else:
        log.warning("OPENAI_API_KEY_SIMULATEUR not set; OpenAI services will answer 500.")

    if settings.vertex_enabled:
        try:
            upstreams.vertex_model = _init_vertex_model(settings)
        except Exception as e:
            log.critical(f"Could not initialize Vertex AI: {e}", exc_info=True)

    if settings.PG_CONNECTION:
        try:
            upstreams.pg_pool = await asyncpg.create_pool(
                settings.PG_CONNECTION,
                min_size=settings.PG_POOL_MIN_SIZE,
                max_size=settings.PG_POOL_MAX_SIZE,
                ssl=_pg_ssl_context(settings),
            )
            log.info("PostgreSQL pool ready.")
        except Exception as e:
            log.critical(f"Could not create the PostgreSQL pool: {e}", exc_info=True)

    return upstreams


async def close_upstreams(upstreams: Upstreams) -> None:
    await upstreams.http.aclose()
    if upstreams.openai is not None:
        await upstreams.openai.close()
    if upstreams.pg_pool is not None:
        await upstreams.pg_pool.close()


def get_upstreams(request: Request) -> Upstreams:
    return request.app.state.upstreams
