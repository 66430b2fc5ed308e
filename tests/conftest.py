"""Shared pytest fixtures for testing."""

import json
from typing import AsyncGenerator, Callable, List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from simgateway.config import Settings
from simgateway.core.upstreams import Upstreams
from simgateway.main import create_app


# =============================================================================
# Helpers
# =============================================================================


async def aiter_items(items, error: Exception = None):
    """Async iterator over items, optionally failing after the last one."""
    for item in items:
        yield item
    if error is not None:
        raise error


def sse_frames(body: str) -> List[str]:
    """Splits an SSE body into the payload of each 'data:' frame."""
    return [frame[len("data: "):] for frame in body.split("\n\n") if frame]


def sse_payloads(body: str) -> list:
    return [frame if frame == "[DONE]" else json.loads(frame) for frame in sse_frames(body)]


class FakeUpstreamHTTP:
    """httpx.MockTransport handler recording every upstream request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(404)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


# =============================================================================
# Settings & Upstreams
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        OPENAI_API_KEY_SIMULATEUR="sk-test",
        OPENAI_ASSISTANTID="asst_test",
        AZURE_OPENAI_KEY_SIMULATEUR="azure-key",
        AZURE_OPENAI_ENDPOINT_SIMULATEUR="https://aoai.example.com",
        AZURE_OPENAI_DEPLOYMENT_SIMULATEUR="simulateur",
        AZURE_OPENAI_API_VERSION="2024-10-21",
        AZURE_OPENAI_DEPLOYMENT_COACH="coach",
        AZURE_OPENAI_API_VERSION_COACH="2024-10-21",
        AZURE_TTS_ENDPOINT="https://tts.example.com",
        AZURE_TTS_KEY="azure-tts-key",
        AZURE_SPEECH_API_KEY="speech-key",
        AZURE_REGION="westeurope",
        ELEVENLAB_API_KEY="el-key",
        ASSISTANT_POLL_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def fake_http() -> FakeUpstreamHTTP:
    return FakeUpstreamHTTP()


@pytest.fixture
def openai_mock() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.beta.threads.create = AsyncMock()
    client.beta.threads.runs.create = AsyncMock()
    client.beta.threads.runs.retrieve = AsyncMock()
    client.beta.threads.messages.create = AsyncMock()
    client.beta.threads.messages.list = AsyncMock()
    client.audio.speech.create = AsyncMock()
    client.audio.transcriptions.create = AsyncMock()
    return client


@pytest.fixture
def vertex_mock() -> MagicMock:
    model = MagicMock()
    model.generate_content_async = AsyncMock()
    return model


@pytest.fixture
def pg_pool_mock() -> MagicMock:
    pool = MagicMock()
    pool.fetchrow = AsyncMock()
    return pool


@pytest_asyncio.fixture
async def upstreams(settings, fake_http, openai_mock, vertex_mock, pg_pool_mock) -> AsyncGenerator[Upstreams, None]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_http))
    yield Upstreams(
        settings=settings,
        http=http,
        openai=openai_mock,
        vertex_model=vertex_mock,
        pg_pool=pg_pool_mock,
    )
    await http.aclose()


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(settings, upstreams) -> FastAPI:
    return create_app(settings, upstreams)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def unconfigured_client(fake_http) -> AsyncGenerator[AsyncClient, None]:
    """Client for an app started without any credential."""
    bare = Settings(_env_file=None)
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_http))
    app = create_app(bare, Upstreams(settings=bare, http=http))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await http.aclose()
