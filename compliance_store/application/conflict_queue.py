from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol

from compliance_store.application.state_container import StateContainer
from compliance_store.core.errors import ValidationError
from compliance_store.domain.models import ComplianceRecord
from compliance_store.domain.state import (
    ConflictItem,
    ConflictResolution,
    ConflictType,
    IntegrationState,
)

logger = logging.getLogger(__name__)


def generate_conflict_id() -> str:
    return f"conflict-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_conflict(
    conflict_type: ConflictType,
    component: str,
    local_data: Mapping[str, Any] | None,
    remote_data: Mapping[str, Any] | None,
    metadata: Mapping[str, Any] | None = None,
    *,
    id_factory: Callable[[], str] = generate_conflict_id,
    clock: Callable[[], str] = _now_iso,
) -> ConflictItem:
    return ConflictItem(
        id=id_factory(),
        type=ConflictType(conflict_type),
        component=component,
        timestamp=clock(),
        local_data=dict(local_data) if local_data is not None else None,
        remote_data=dict(remote_data) if remote_data is not None else None,
        metadata=dict(metadata or {}),
    )


def compute_resolution(
    conflict: ConflictItem,
    resolution: ConflictResolution,
    merged_data: Mapping[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Payload that wins under ``resolution``.

    ``merge`` without explicit data is a shallow spread where local fields
    override remote ones; it is only safe for flat, non-overlapping edits.
    """
    if resolution == ConflictResolution.LOCAL:
        return dict(conflict.local_data) if conflict.local_data is not None else None
    if resolution == ConflictResolution.REMOTE:
        return dict(conflict.remote_data) if conflict.remote_data is not None else None
    if resolution == ConflictResolution.MERGE:
        if merged_data is not None:
            return dict(merged_data)
        return {**(conflict.remote_data or {}), **(conflict.local_data or {})}
    if merged_data is None:
        raise ValidationError("Manual conflict resolution requires merged data")
    return dict(merged_data)


class ConflictQueue:
    def __init__(
        self,
        container: StateContainer,
        *,
        id_factory: Callable[[], str] = generate_conflict_id,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self._container = container
        self._id_factory = id_factory
        self._clock = clock

    def new_conflict(
        self,
        conflict_type: ConflictType,
        component: str,
        local_data: Mapping[str, Any] | None,
        remote_data: Mapping[str, Any] | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ConflictItem:
        return build_conflict(
            conflict_type,
            component,
            local_data,
            remote_data,
            metadata,
            id_factory=self._id_factory,
            clock=self._clock,
        )

    def add_conflict(
        self,
        conflict_type: ConflictType,
        component: str,
        local_data: Mapping[str, Any] | None,
        remote_data: Mapping[str, Any] | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ConflictItem:
        conflict = self.new_conflict(conflict_type, component, local_data, remote_data, metadata)

        def _mutate(state: IntegrationState) -> None:
            state.conflict_queue.append(conflict)

        self._container.set_state(_mutate)
        logger.info(
            "conflict_queued id=%s type=%s component=%s record_id=%s",
            conflict.id,
            conflict.type.value,
            conflict.component,
            conflict.record_id,
        )
        return conflict

    def get_conflict(self, conflict_id: str) -> ConflictItem | None:
        for conflict in self._container.get_state().conflict_queue:
            if conflict.id == conflict_id:
                return conflict
        return None

    def remove_conflict(self, conflict_id: str) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.conflict_queue = [item for item in state.conflict_queue if item.id != conflict_id]

        self._container.set_state(_mutate)

    def clear_conflicts(self) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.conflict_queue = []

        self._container.set_state(_mutate)

    def set_resolving(self, resolving: bool) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.is_resolving_conflicts = resolving

        self._container.set_state(_mutate)


class RecordWriter(Protocol):
    def update_compliance_record(
        self,
        record_id: str,
        updates: Mapping[str, Any],
        *,
        base_version: str | None = ...,
    ) -> ComplianceRecord | None:
        ...

    def adopt_remote_record(self, row: Mapping[str, Any]) -> None:
        ...


class ConflictResolver:
    def __init__(self, queue: ConflictQueue, writer: RecordWriter) -> None:
        self._queue = queue
        self._writer = writer

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: ConflictResolution | str,
        merged_data: Mapping[str, Any] | None = None,
    ) -> bool:
        """Applies ``resolution`` and drops the conflict; ``False`` if the id is unknown.

        If applying the payload fails the conflict stays queued and the error
        propagates to the caller.
        """
        chosen = ConflictResolution(resolution)
        conflict = self._queue.get_conflict(conflict_id)
        if conflict is None:
            logger.info("conflict_not_found id=%s", conflict_id)
            return False

        resolved = compute_resolution(conflict, chosen, merged_data)
        self._queue.set_resolving(True)
        try:
            if conflict.concerns_record and resolved is not None:
                self._apply(conflict, chosen, resolved)
            self._queue.remove_conflict(conflict_id)
        finally:
            self._queue.set_resolving(False)
        logger.info("conflict_resolved id=%s resolution=%s", conflict_id, chosen.value)
        return True

    def _apply(self, conflict: ConflictItem, resolution: ConflictResolution, resolved: dict[str, Any]) -> None:
        record_id = conflict.record_id
        assert record_id is not None
        if resolution == ConflictResolution.REMOTE:
            self._writer.adopt_remote_record({**resolved, "id": resolved.get("id", record_id)})
            return
        remote_version = (conflict.remote_data or {}).get("updated_at")
        updates = {key: value for key, value in resolved.items() if key not in {"id", "updated_at"}}
        self._writer.update_compliance_record(record_id, updates, base_version=remote_version)
