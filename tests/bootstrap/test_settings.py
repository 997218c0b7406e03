from __future__ import annotations

import json
from pathlib import Path

from compliance_store.bootstrap import settings
from compliance_store.infrastructure.local_config import GatewayConfigStore


def _store_with(tmp_path: Path, payload: dict) -> GatewayConfigStore:
    (tmp_path / "config.json").write_text(json.dumps(payload), encoding="utf-8")
    return GatewayConfigStore(base_dir=tmp_path)


def test_environment_overrides_config_file(monkeypatch, tmp_path: Path) -> None:
    store = _store_with(
        tmp_path,
        {"supabase_url": "https://file.supabase.co", "supabase_key": "file-key", "device_id": "dev-1"},
    )
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    monkeypatch.setenv("COMPLIANCE_STORE_POLL_SECONDS", "2.5")
    monkeypatch.setenv("COMPLIANCE_STORE_MAX_LISTENERS", "10")

    loaded = settings.load_settings(store)

    assert loaded.supabase_url == "https://env.supabase.co"
    assert loaded.supabase_key == "file-key"
    assert loaded.poll_interval_seconds == 2.5
    assert loaded.max_listeners == 10
    assert loaded.device_id == "dev-1"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("COMPLIANCE_STORE_POLL_SECONDS", "soon")
    monkeypatch.setenv("COMPLIANCE_STORE_MAX_LISTENERS", "-4")

    loaded = settings.load_settings(GatewayConfigStore(base_dir=tmp_path))

    assert loaded.poll_interval_seconds == settings.DEFAULT_POLL_SECONDS
    assert loaded.max_listeners == settings.DEFAULT_MAX_LISTENERS
    assert loaded.device_id == ""


def test_resolve_log_dir_uses_env_path(monkeypatch, tmp_path: Path) -> None:
    env_dir = tmp_path / "env_logs"
    monkeypatch.setenv("COMPLIANCE_STORE_LOG_DIR", str(env_dir))

    resolved = settings.resolve_log_dir()

    assert resolved == env_dir
    assert resolved.exists()


def test_resolve_log_dir_falls_back_to_project_root(monkeypatch, tmp_path: Path) -> None:
    project_root = tmp_path / "project"
    monkeypatch.delenv("COMPLIANCE_STORE_LOG_DIR", raising=False)
    monkeypatch.setattr(settings, "project_root", lambda: project_root)
    monkeypatch.setattr(settings.tempfile, "gettempdir", lambda: str(tmp_path / "tmpbase"))

    original_mkdir = Path.mkdir

    def failing_candidate_mkdir(self: Path, parents: bool = False, exist_ok: bool = False):
        if self in {project_root / "logs", tmp_path / "tmpbase" / "ComplianceStore" / "logs"}:
            raise OSError("cannot create candidate")
        return original_mkdir(self, parents=parents, exist_ok=exist_ok)

    monkeypatch.setattr(Path, "mkdir", failing_candidate_mkdir)

    resolved = settings.resolve_log_dir()

    assert resolved == project_root
    assert resolved.exists()
