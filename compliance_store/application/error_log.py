from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from compliance_store.application.state_container import StateContainer
from compliance_store.domain.state import MAX_SYNC_ERRORS, IntegrationState


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorLog:
    def __init__(
        self,
        container: StateContainer,
        *,
        clock: Callable[[], str] = _now_iso,
        max_sync_errors: int = MAX_SYNC_ERRORS,
    ) -> None:
        self._container = container
        self._clock = clock
        self._max_sync_errors = max_sync_errors

    def set_error(self, error: str | None) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.error = error

        self._container.set_state(_mutate)

    def clear_error(self) -> None:
        self.set_error(None)

    def add_sync_error(self, error: str) -> None:
        entry = f"{self._clock()}: {error}"

        def _mutate(state: IntegrationState) -> None:
            state.sync_errors.append(entry)
            overflow = len(state.sync_errors) - self._max_sync_errors
            if overflow > 0:
                del state.sync_errors[:overflow]

        self._container.set_state(_mutate)

    def clear_sync_errors(self) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.sync_errors = []

        self._container.set_state(_mutate)
