from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from pathlib import Path
from types import TracebackType

from compliance_store.bootstrap.logging import CRASH_LOG_NAME
from compliance_store.bootstrap.settings import resolve_log_dir
from compliance_store.core.observability import generate_correlation_id, get_correlation_id, set_correlation_id


def generate_incident_id() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _ensure_correlation_id() -> str:
    correlation_id = get_correlation_id()
    if correlation_id:
        return correlation_id
    correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _write_fallback_crash_log(
    *,
    log_dir: Path,
    incident_id: str,
    correlation_id: str,
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    crash_file = log_dir / CRASH_LOG_NAME
    payload = {
        "incident_id": incident_id,
        "correlation_id": correlation_id,
        "error_type": exc_type.__name__,
        "error_message": str(exc_value),
        "stacktrace": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
    }
    with crash_file.open("a", encoding="utf-8") as handler:
        handler.write(json.dumps(payload, ensure_ascii=False) + "\n")


def handle_global_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
    *,
    log_dir: Path | None = None,
) -> str:
    incident_id = generate_incident_id()
    correlation_id = _ensure_correlation_id()
    logger = logging.getLogger("compliance_store.global_exception")

    try:
        logger.critical(
            "Unhandled exception. incident_id=%s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={"incident_id": incident_id, "correlation_id": correlation_id},
        )
    except Exception:  # noqa: BLE001
        _write_fallback_crash_log(
            log_dir=log_dir or resolve_log_dir(),
            incident_id=incident_id,
            correlation_id=correlation_id,
            exc_type=exc_type,
            exc_value=exc_value,
            exc_traceback=exc_traceback,
        )

    return incident_id


def install_exception_hook(log_dir: Path | None = None) -> None:
    def _handler(exc_type, exc, tb) -> None:
        handle_global_exception(exc_type, exc, tb, log_dir=log_dir)

    sys.excepthook = _handler
