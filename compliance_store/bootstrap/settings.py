from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from compliance_store.application.state_container import DEFAULT_MAX_LISTENERS
from compliance_store.infrastructure.change_feed import DEFAULT_POLL_SECONDS
from compliance_store.infrastructure.local_config import GatewayConfigStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_key: str
    poll_interval_seconds: float = DEFAULT_POLL_SECONDS
    max_listeners: int = DEFAULT_MAX_LISTENERS
    device_id: str = ""


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("COMPLIANCE_STORE_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "ComplianceStore" / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def _env_float(name: str, default: float) -> float:
    raw_value = os.environ.get(name)
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw_value)
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    raw_value = os.environ.get(name)
    if raw_value is None:
        return default
    try:
        value = int(raw_value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw_value)
        return default
    return value if value > 0 else default


def load_settings(config_store: GatewayConfigStore | None = None) -> Settings:
    """Environment first, then ``config.json`` for whatever is still missing."""
    stored = (config_store or GatewayConfigStore()).load()
    supabase_url = os.environ.get("SUPABASE_URL", "").strip() or (stored.supabase_url if stored else "")
    supabase_key = os.environ.get("SUPABASE_KEY", "").strip() or (stored.supabase_key if stored else "")
    return Settings(
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        poll_interval_seconds=_env_float("COMPLIANCE_STORE_POLL_SECONDS", DEFAULT_POLL_SECONDS),
        max_listeners=_env_int("COMPLIANCE_STORE_MAX_LISTENERS", DEFAULT_MAX_LISTENERS),
        device_id=stored.device_id if stored else "",
    )
