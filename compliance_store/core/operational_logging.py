from __future__ import annotations

import logging
from typing import Any

from compliance_store.core.observability import get_correlation_id

operational_logger = logging.getLogger("compliance_store.operational_error")


def operational_metadata(
    operation: str,
    exc: BaseException,
    *,
    record_id: str | None = None,
    user_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"operation": operation, "error_type": type(exc).__name__}
    if record_id is not None:
        metadata["record_id"] = record_id
    if user_id is not None:
        metadata["user_id"] = user_id
    metadata.update(extra or {})
    correlation_id = metadata.get("correlation_id") or get_correlation_id()
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    return metadata


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    operation: str,
    record_id: str | None = None,
    user_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Logs a failed store operation with its record/user scope attached to the event."""
    metadata = operational_metadata(operation, exc, record_id=record_id, user_id=user_id, extra=extra)
    operational_logger.error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"correlation_id": metadata.get("correlation_id"), "extra": metadata},
    )
