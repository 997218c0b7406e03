from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Generic, Mapping, TypeVar, Union, get_origin

from compliance_store.application.performance_tracker import PerformanceTracker
from compliance_store.application.state_container import StateContainer
from compliance_store.core.errors import ValidationError
from compliance_store.domain.state import IntegrationState

T = TypeVar("T")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SharedKey(Generic[T]):
    """Namespaced key for the shared-data bag.

    Two features can only collide if they pick the same namespace and name;
    the declared type is checked on every write.
    """

    namespace: str
    name: str
    value_type: type[T]

    def __post_init__(self) -> None:
        if not self.namespace or not self.name:
            raise ValidationError("Shared key needs a namespace and a name")
        # isinstance() only accepts plain classes; dict[str, int] and Optional[...] are rejected here.
        if get_origin(self.value_type) is not None or not isinstance(self.value_type, type):
            raise ValidationError(
                f"Shared key {self.namespace}:{self.name} needs a plain class, got {self.value_type!r}"
            )

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}:{self.name}"


SharedDataKey = Union[str, SharedKey[Any]]


def _resolve_key(key: SharedDataKey) -> str:
    if isinstance(key, SharedKey):
        return key.qualified_name
    if not key:
        raise ValidationError("Shared data key must not be empty")
    return key


class ComponentRegistry:
    def __init__(self, container: StateContainer, tracker: PerformanceTracker) -> None:
        self._container = container
        self._tracker = tracker

    def register_component(self, component_id: str, initial_state: Mapping[str, Any] | None = None) -> None:
        def _mutate(state: IntegrationState) -> None:
            already_registered = component_id in state.component_states
            state.component_states[component_id] = {
                **dict(initial_state or {}),
                "_registered_at": _now_iso(),
                "_render_count": 0,
            }
            if not already_registered:
                state.performance_metrics.memory_usage.component_count += 1

        self._container.set_state(_mutate)

    def update_component_state(self, component_id: str, updates: Mapping[str, Any]) -> None:
        started = perf_counter()

        def _mutate(state: IntegrationState) -> None:
            current = state.component_states.get(component_id)
            if current is None:
                return
            state.component_states[component_id] = {
                **current,
                **dict(updates),
                "_last_updated": _now_iso(),
            }

        self._container.set_state(_mutate)
        self._tracker.track_state_update(f"component:{component_id}", (perf_counter() - started) * 1000)

    def get_component_state(self, component_id: str) -> dict[str, Any] | None:
        state = self._container.get_state()
        return state.component_states.get(component_id)

    def unregister_component(self, component_id: str) -> None:
        def _mutate(state: IntegrationState) -> None:
            if state.component_states.pop(component_id, None) is not None:
                state.performance_metrics.memory_usage.component_count -= 1

        self._container.set_state(_mutate)


class SharedDataRegistry:
    def __init__(self, container: StateContainer) -> None:
        self._container = container

    def set_shared_data(self, key: SharedDataKey, data: Any) -> None:
        if isinstance(key, SharedKey) and not isinstance(data, key.value_type):
            raise ValidationError(
                f"Shared data {key.qualified_name} expects {key.value_type.__name__}, "
                f"got {type(data).__name__}"
            )
        resolved = _resolve_key(key)

        def _mutate(state: IntegrationState) -> None:
            state.shared_data[resolved] = {"data": data, "_set_at": _now_iso()}

        self._container.set_state(_mutate)

    def get_shared_data(self, key: SharedDataKey) -> Any:
        resolved = _resolve_key(key)
        item = self._container.get_state().shared_data.get(resolved)
        return item["data"] if item else None

    def remove_shared_data(self, key: SharedDataKey) -> None:
        resolved = _resolve_key(key)

        def _mutate(state: IntegrationState) -> None:
            state.shared_data.pop(resolved, None)

        self._container.set_state(_mutate)
