# simgateway/core/errors.py

import json
from typing import Any, Optional

import httpx
import openai

# Upstream headers that may carry a request id worth echoing to the client
REQUEST_ID_HEADERS = ("x-request-id", "apim-request-id", "request-id", "x-ms-request-id")


class GatewayError(Exception):
    """Base error rendered as a JSON body with at least an 'error' field."""

    status_code: int = 500

    def __init__(
        self,
        error: str,
        details: Any = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(error)
        self.error = error
        self.details = details
        self.request_id = request_id
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict:
        payload = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        if self.request_id:
            payload["requestId"] = self.request_id
        return payload


class ClientInputError(GatewayError):
    status_code = 400


class ConfigurationError(GatewayError):
    status_code = 500


class RecordNotFound(GatewayError):
    status_code = 404


class AssistantRunFailed(GatewayError):
    status_code = 500

    def __init__(self, status: str):
        super().__init__("Assistant run failed", details=status)


class UpstreamError(GatewayError):
    """An upstream provider call failed; the status is mirrored when known."""

    status_code = 500

    @classmethod
    def from_httpx_response(cls, response: httpx.Response, error: str) -> "UpstreamError":
        # The body must already be read (response.aread() for streamed responses)
        return cls(
            error,
            details=decode_error_body(response.content),
            status_code=response.status_code,
            request_id=extract_request_id(response.headers),
        )

    @classmethod
    def from_openai_error(cls, exc: openai.APIError, error: str) -> "UpstreamError":
        if isinstance(exc, openai.APIStatusError):
            return cls(
                error,
                details=exc.body if exc.body is not None else exc.message,
                status_code=exc.status_code,
                request_id=exc.request_id,
            )
        return cls(error, details=exc.message)


def extract_request_id(headers: httpx.Headers) -> Optional[str]:
    for name in REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def decode_error_body(content: bytes) -> Any:
    """Best effort: JSON when the upstream sent JSON, text otherwise (audio endpoints answer in bytes)."""
    if not content:
        return None
    text = content.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text
