from __future__ import annotations

import logging
import threading
from typing import Callable

from compliance_store.core.errors import ListenerLimitError
from compliance_store.domain.state import IntegrationState

logger = logging.getLogger(__name__)

DEFAULT_MAX_LISTENERS = 100

StateListener = Callable[[], None]
StateMutator = Callable[[IntegrationState], None]


class Unsubscribe:
    """Token returned by :meth:`StateContainer.subscribe`; calling it twice is harmless."""

    def __init__(self, container: "StateContainer", token: int) -> None:
        self._container = container
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def __call__(self) -> None:
        if not self._active:
            return
        self._active = False
        self._container._remove_listener(self._token)


class StateContainer:
    def __init__(
        self,
        initial_state: IntegrationState | None = None,
        *,
        max_listeners: int = DEFAULT_MAX_LISTENERS,
    ) -> None:
        self._state = initial_state or IntegrationState()
        self._max_listeners = max_listeners
        self._listeners: dict[int, StateListener] = {}
        self._next_token = 0
        self._lock = threading.RLock()

    def get_state(self) -> IntegrationState:
        with self._lock:
            return self._state.clone(detach_records=True)

    def read(self, reader: Callable[[IntegrationState], object]) -> object:
        """Runs ``reader`` against the canonical snapshot without copying it.

        Only for read-only projections computed inside the store; callers
        outside the package should use :meth:`get_state`.
        """
        with self._lock:
            return reader(self._state)

    def set_state(self, mutator: StateMutator) -> None:
        with self._lock:
            draft = self._state.clone()
            mutator(draft)
            self._state = draft
            listeners = list(self._listeners.values())
        self._notify(listeners)

    def subscribe(self, listener: StateListener) -> Unsubscribe:
        with self._lock:
            if len(self._listeners) >= self._max_listeners:
                raise ListenerLimitError(f"Listener limit reached ({self._max_listeners})")
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = listener
        return Unsubscribe(self, token)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _remove_listener(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    @staticmethod
    def _notify(listeners: list[StateListener]) -> None:
        for listener in listeners:
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("State listener failed")
