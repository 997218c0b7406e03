from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayConfig:
    supabase_url: str
    supabase_key: str
    device_id: str


def resolve_appdata_dir() -> Path:
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / "ComplianceStore"


class GatewayConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> GatewayConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read config.json: %s", exc)
            return None
        supabase_url = str(payload.get("supabase_url", "")).strip()
        supabase_key = str(payload.get("supabase_key", "")).strip()
        device_id = str(payload.get("device_id", "")).strip()
        if not device_id:
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)
        if not supabase_url and not supabase_key:
            return None
        return GatewayConfig(supabase_url=supabase_url, supabase_key=supabase_key, device_id=device_id)

    def save(self, config: GatewayConfig) -> GatewayConfig:
        payload = {
            "supabase_url": config.supabase_url,
            "supabase_key": config.supabase_key,
            "device_id": config.device_id or self._generate_device_id(),
        }
        self._write_payload(payload)
        return GatewayConfig(
            supabase_url=payload["supabase_url"],
            supabase_key=payload["supabase_key"],
            device_id=payload["device_id"],
        )

    def _write_payload(self, payload: dict[str, str]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())
