from __future__ import annotations

import httpx
from postgrest.exceptions import APIError

from compliance_store.core.errors import (
    AppError,
    RemoteGatewayError,
    RemotePermissionError,
    TransientExternalError,
)

_PERMISSION_CODES = {"42501", "PGRST301", "PGRST302"}
_TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def normalize_error_text(text: str) -> str:
    return text.strip().lower()


def classify_status_code(status_code: int | None, message: str) -> AppError:
    if status_code in {401, 403}:
        return RemotePermissionError(message or "Access to the remote service was denied.")
    if status_code in _TRANSIENT_STATUS_CODES:
        return TransientExternalError(message or f"Remote service unavailable (HTTP {status_code}).")
    return RemoteGatewayError(message or f"Remote service error (HTTP {status_code}).")


def classify_api_error(ex: APIError) -> AppError:
    code = str(getattr(ex, "code", "") or "")
    message = str(getattr(ex, "message", "") or str(ex))
    text_lower = normalize_error_text(message)
    if code in _PERMISSION_CODES or "permission denied" in text_lower or "jwt expired" in text_lower:
        return RemotePermissionError(message)
    if code.startswith("08") or code == "57014":
        return TransientExternalError(message)
    return RemoteGatewayError(message)


def map_gateway_exception(ex: Exception) -> AppError:
    if isinstance(ex, AppError):
        return ex
    if isinstance(ex, APIError):
        return classify_api_error(ex)
    if isinstance(ex, httpx.HTTPStatusError):
        return classify_status_code(ex.response.status_code, str(ex))
    if isinstance(ex, httpx.TransportError):
        return TransientExternalError(f"Could not reach the remote service: {ex}")
    if isinstance(ex, (ConnectionError, TimeoutError)):
        return TransientExternalError(str(ex))
    status_code = extract_response_status_code(ex)
    if status_code is not None:
        return classify_status_code(status_code, str(ex))
    return RemoteGatewayError(str(ex))
