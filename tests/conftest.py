from __future__ import annotations

import importlib
import logging
import os
import platform
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _is_linux_headless() -> bool:
    if platform.system() != "Linux":
        return False
    return not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


if _is_linux_headless():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


_UI_BACKEND_ERROR: str | None = None


def _detect_ui_backend_issue() -> str | None:
    try:
        importlib.import_module("PySide6")
        importlib.import_module("PySide6.QtCore")
        return None
    except Exception as exc:  # pragma: no cover - depends on the host
        return f"PySide6/Qt not available for UI tests: {exc}"


def pytest_configure(config: pytest.Config) -> None:
    global _UI_BACKEND_ERROR
    config.addinivalue_line("markers", "ui: PySide6 bridge tests")
    _UI_BACKEND_ERROR = _detect_ui_backend_issue()


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    skip_ui = None
    if _UI_BACKEND_ERROR is not None:
        skip_ui = pytest.mark.skip(reason=_UI_BACKEND_ERROR)

    for item in items:
        if "tests/ui/" in item.nodeid:
            item.add_marker(pytest.mark.ui)
        if skip_ui is not None and "ui" in item.keywords:
            item.add_marker(skip_ui)


from compliance_store.application.integration_store import IntegrationStore
from tests.fakes import FakeGateway, seeded_gateway, sequence_clock


@pytest.fixture
def gateway() -> FakeGateway:
    return seeded_gateway()


@pytest.fixture
def store(gateway: FakeGateway) -> IntegrationStore:
    instance = IntegrationStore(gateway, clock=sequence_clock())
    yield instance
    instance.cleanup()


@pytest.fixture
def loaded_store(store: IntegrationStore) -> IntegrationStore:
    store.initialize("user-1", "AP", "basic")
    return store


@pytest.fixture
def restore_root_logging():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
