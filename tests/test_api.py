"""
API Tests for routing, transcription, token issuance and user records
"""

import httpx
import pytest
from openai.types.audio import Transcription

from simgateway.core.services import SERVICES, DeliveryMode, Service, ServiceDefinition


# =============================================================================
# Router
# =============================================================================


class TestRouter:

    def test_every_service_has_a_definition(self):
        assert set(SERVICES) == set(Service)

    def test_stream_false_selects_batch_only_when_capable(self):
        assert SERVICES[Service.VERTEX_CHAT].resolve_mode({"stream": False}) is DeliveryMode.BATCH
        assert SERVICES[Service.VERTEX_CHAT].resolve_mode({"stream": "false"}) is DeliveryMode.BATCH
        assert SERVICES[Service.VERTEX_CHAT].resolve_mode({}) is DeliveryMode.SSE
        assert SERVICES[Service.OPENAI_ANALYSE].resolve_mode({"stream": False}) is DeliveryMode.SSE

    def test_definition_defaults(self):
        definition = ServiceDefinition(handler=None, mode=DeliveryMode.RAW)

        assert definition.media_type == "text/event-stream"
        assert definition.batch_capable is False

    @pytest.mark.asyncio
    async def test_invalid_service(self, client, fake_http, openai_mock):
        response = await client.post("/api/doesNotExist", json={"text": "hi"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid service"}
        assert fake_http.requests == []
        openai_mock.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_json(self, client):
        response = await client.post(
            "/api/openaiAnalyse", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Malformed JSON body"}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic(self, client, openai_mock):
        openai_mock.audio.speech.create.side_effect = KeyError("boom")

        response = await client.post("/api/openai-tts", json={"text": "Bonjour"})

        assert response.status_code == 500
        assert response.json() == {"error": "API request error"}

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/status")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client):
        response = await client.options(
            "/api/openai-tts",
            headers={
                "Origin": "https://simulateur.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]


# =============================================================================
# Missing configuration
# =============================================================================


class TestMissingConfiguration:

    @pytest.mark.asyncio
    async def test_openai_key_missing(self, unconfigured_client):
        response = await unconfigured_client.post("/api/openai-tts", json={"text": "Bonjour"})

        assert response.status_code == 500
        assert response.json() == {"error": "OpenAI API key missing"}

    @pytest.mark.asyncio
    async def test_elevenlabs_key_missing(self, unconfigured_client, fake_http):
        response = await unconfigured_client.post("/api/elevenlabs", json={"text": "Hola", "selectedLanguage": "espagnol"})

        assert response.status_code == 500
        assert response.json() == {"error": "ElevenLabs API key missing"}
        assert fake_http.requests == []

    @pytest.mark.asyncio
    async def test_database_missing(self, unconfigured_client):
        response = await unconfigured_client.post("/api/userList", json={"userID": "u1"})

        assert response.status_code == 500
        assert response.json() == {"error": "Database is not configured"}

    @pytest.mark.asyncio
    async def test_azure_token_keys_missing(self, unconfigured_client):
        response = await unconfigured_client.get("/get-azure-token")

        assert response.status_code == 500
        assert response.json() == {"error": "Azure keys missing in the backend"}


# =============================================================================
# Transcription
# =============================================================================


class TestTranscribe:

    @pytest.mark.asyncio
    async def test_transcription(self, client, openai_mock):
        openai_mock.audio.transcriptions.create.return_value = Transcription(text="Bonjour madame")

        response = await client.post(
            "/api/transcribe", files={"audio": ("answer.webm", b"\x1a\x45\xdf\xa3", "audio/webm")}
        )

        assert response.status_code == 200
        assert response.json() == {"text": "Bonjour madame"}
        kwargs = openai_mock.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["file"] == ("answer.webm", b"\x1a\x45\xdf\xa3")

    @pytest.mark.asyncio
    async def test_missing_file(self, client, openai_mock):
        response = await client.post("/api/transcribe", files={"other": ("x.txt", b"x", "text/plain")})

        assert response.status_code == 400
        assert response.json() == {"error": "No audio file uploaded"}
        openai_mock.audio.transcriptions.create.assert_not_awaited()


# =============================================================================
# Azure Speech token
# =============================================================================


class TestAzureToken:

    @pytest.mark.asyncio
    async def test_token_issued(self, client, fake_http):
        fake_http.responder = lambda request: httpx.Response(200, text="eyJ0b2tlbiI6dHJ1ZX0")

        response = await client.get("/get-azure-token")

        assert response.status_code == 200
        assert response.json() == {"token": "eyJ0b2tlbiI6dHJ1ZX0", "region": "westeurope"}
        [request] = fake_http.requests
        assert str(request.url) == "https://westeurope.api.cognitive.microsoft.com/sts/v1.0/issueToken"
        assert request.headers["ocp-apim-subscription-key"] == "speech-key"

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client, fake_http):
        fake_http.responder = lambda request: httpx.Response(401, text="invalid key")

        response = await client.get("/get-azure-token")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate token"}


# =============================================================================
# User records
# =============================================================================


USER_BODY = {
    "clientName": "acme",
    "userID": "u-42",
    "userName": "Camille",
    "userScore": 7.5,
    "historique": "USER: Bonjour\nASSISTANT: Bonjour !",
    "rapport": "Bonne écoute active.",
    "userTime": 312,
}


class TestUserRecords:

    @pytest.mark.asyncio
    async def test_insert(self, client, pg_pool_mock):
        pg_pool_mock.fetchrow.return_value = {"id": 1, "user_id": "u-42", "name": "Camille", "score": 7.5}

        response = await client.post("/api/userList", json=USER_BODY)

        assert response.status_code == 201
        assert response.json() == {
            "message": "Utente inserito!",
            "data": {"id": 1, "user_id": "u-42", "name": "Camille", "score": 7.5},
        }
        args = pg_pool_mock.fetchrow.call_args.args
        assert args[0].strip().startswith("INSERT INTO userlist")
        assert args[1:] == ("acme", "u-42", "Camille", 7.5, USER_BODY["historique"], USER_BODY["rapport"], 312)

    @pytest.mark.asyncio
    async def test_update(self, client, pg_pool_mock):
        pg_pool_mock.fetchrow.return_value = {"id": 1, "user_id": "u-42", "score": 9.0}

        response = await client.post("/api/updateUserList", json={"clientName": "acme", "userID": "u-42", "userScore": 9})

        assert response.status_code == 200
        assert response.json()["data"]["score"] == 9.0
        assert pg_pool_mock.fetchrow.call_args.args[0].strip().startswith("UPDATE userlist")

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, client, pg_pool_mock):
        pg_pool_mock.fetchrow.return_value = None

        response = await client.post("/api/updateUserList", json={"userID": "ghost"})

        assert response.status_code == 404
        assert response.json() == {"error": "User record not found", "details": "ghost"}

    @pytest.mark.asyncio
    async def test_user_id_required(self, client, pg_pool_mock):
        response = await client.post("/api/userList", json={"userName": "Camille"})

        assert response.status_code == 400
        pg_pool_mock.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_numeric_user_id_is_stored_as_text(self, client, pg_pool_mock):
        pg_pool_mock.fetchrow.return_value = {"id": 2, "user_id": "42"}

        response = await client.post("/api/userList", json={"clientName": "acme", "userID": 42})

        assert response.status_code == 201
        assert pg_pool_mock.fetchrow.call_args.args[2] == "42"

    @pytest.mark.asyncio
    async def test_update_targets_a_single_session(self, client, pg_pool_mock):
        pg_pool_mock.fetchrow.return_value = {"id": 7, "user_id": "u-42", "score": 9.0}

        await client.post("/api/updateUserList", json={"clientName": "acme", "userID": "u-42", "userScore": 9})
        await client.post("/api/updateUserList", json={"id": 7, "clientName": "acme", "userID": "u-42"})

        latest_call, by_id_call = pg_pool_mock.fetchrow.call_args_list
        sql = latest_call.args[0]
        assert "WHERE id = (" in sql
        assert "SELECT max(id) FROM userlist" in sql
        assert latest_call.args[-1] is None
        assert by_id_call.args[-1] == 7
