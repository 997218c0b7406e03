from __future__ import annotations

import httpx
import pytest
from postgrest.exceptions import APIError

from compliance_store.core.errors import (
    RemoteGatewayError,
    RemotePermissionError,
    TransientExternalError,
    ValidationError,
)
from compliance_store.infrastructure.gateway_errors import (
    classify_status_code,
    map_gateway_exception,
)


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://project.supabase.co/rest/v1/profiles")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        ({"message": "permission denied for table profiles", "code": "42501"}, RemotePermissionError),
        ({"message": "JWT expired", "code": "PGRST301"}, RemotePermissionError),
        ({"message": "connection failure", "code": "08006"}, TransientExternalError),
        ({"message": "canceling statement due to statement timeout", "code": "57014"}, TransientExternalError),
        ({"message": "duplicate key value", "code": "23505"}, RemoteGatewayError),
    ],
)
def test_postgrest_errors_are_classified(error: dict, expected: type) -> None:
    mapped = map_gateway_exception(APIError(error))

    assert type(mapped) is expected
    assert str(mapped) == error["message"]


@pytest.mark.parametrize(
    ("status_code", "expected"),
    [
        (401, RemotePermissionError),
        (403, RemotePermissionError),
        (429, TransientExternalError),
        (503, TransientExternalError),
        (404, RemoteGatewayError),
    ],
)
def test_http_status_errors_are_classified(status_code: int, expected: type) -> None:
    assert type(map_gateway_exception(_status_error(status_code))) is expected


def test_transport_and_socket_errors_are_transient() -> None:
    request = httpx.Request("GET", "https://project.supabase.co")

    assert isinstance(map_gateway_exception(httpx.ConnectError("refused", request=request)), TransientExternalError)
    assert isinstance(map_gateway_exception(TimeoutError("slow")), TransientExternalError)


def test_app_errors_pass_through() -> None:
    original = ValidationError("bad input")

    assert map_gateway_exception(original) is original


def test_unknown_errors_use_attached_status_code() -> None:
    class _StorageError(Exception):
        def __init__(self) -> None:
            super().__init__("storage quota")
            self.response = type("Response", (), {"status_code": 502})()

    assert isinstance(map_gateway_exception(_StorageError()), TransientExternalError)
    assert type(map_gateway_exception(RuntimeError("weird"))) is RemoteGatewayError


def test_classify_status_code_default_messages() -> None:
    assert str(classify_status_code(503, "")) == "Remote service unavailable (HTTP 503)."
    assert str(classify_status_code(418, "")) == "Remote service error (HTTP 418)."
