from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any


_KEY_VALUE_PATTERNS = [
    re.compile(
        r'(?i)("?(?:access_token|refresh_token|token|apikey|api_key|supabase_key|service_role_key|resend_api_key)"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^,\s}\]]+)'  # noqa: E501
    ),
    re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)([^\s,;]+)"),
]
_JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b")
_EMAIL_PATTERN = re.compile(r"\b([A-Za-z0-9._%+-]{1,5})[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def redact_text(text: str) -> str:
    redacted = text
    for pattern in _KEY_VALUE_PATTERNS:
        redacted = pattern.sub(r"\1<REDACTED>", redacted)
    redacted = _JWT_PATTERN.sub("<JWT>", redacted)
    redacted = _EMAIL_PATTERN.sub(r"\1...@\2", redacted)
    return redacted


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return {key: _redact_value(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_redact_value(item) for item in value]
    return value


class LoggingSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)

        if isinstance(record.args, Mapping):
            record.args = {key: _redact_value(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_redact_value(value) for value in record.args)

        extra_payload = getattr(record, "extra", None)
        if isinstance(extra_payload, Mapping):
            record.extra = {key: _redact_value(value) for key, value in extra_payload.items()}

        return True
