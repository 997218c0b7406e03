from __future__ import annotations

import pytest

from compliance_store.application.conflict_queue import build_conflict, compute_resolution
from compliance_store.application.integration_store import IntegrationStore
from compliance_store.core.errors import RemoteGatewayError, ValidationError
from compliance_store.domain.models import ComplianceStatus
from compliance_store.domain.ports import ChangeEventType
from compliance_store.domain.state import ConflictResolution, ConflictType
from tests.fakes import RECORDS_TABLE, FakeGateway, make_record

T1 = "2025-01-01T00:00:00+00:00"
T2 = "2025-02-01T00:00:00+00:00"


def _cached_row(store: IntegrationStore, record_id: str) -> dict:
    found = store.get_state().find_record(record_id)
    assert found is not None
    return found[1].to_row()


def _queue_version_conflict(store: IntegrationStore, gateway: FakeGateway, *, move_server: bool) -> dict:
    remote = make_record("r1", "compliant", updated_at=T2, notes="remote edit")
    if move_server:
        gateway.tables[RECORDS_TABLE][0] = dict(remote)
    gateway.emit(ChangeEventType.UPDATE, new=remote)
    return remote


def test_remote_resolution_adopts_server_row_without_writing(
    loaded_store: IntegrationStore, gateway: FakeGateway
) -> None:
    remote = _queue_version_conflict(loaded_store, gateway, move_server=True)
    conflict_id = loaded_store.get_state().conflict_queue[0].id

    assert loaded_store.resolve_conflict(conflict_id, "remote") is True

    assert _cached_row(loaded_store, "r1") == remote
    assert gateway.count_calls("update") == 0
    state = loaded_store.get_state()
    assert state.conflict_queue == []
    assert state.is_resolving_conflicts is False


def test_local_resolution_writes_against_remote_version(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    _queue_version_conflict(loaded_store, gateway, move_server=True)
    conflict_id = loaded_store.get_state().conflict_queue[0].id

    loaded_store.resolve_conflict(conflict_id, ConflictResolution.LOCAL)

    assert gateway.update_filters[-1] == {"id": "r1", "updated_at": T2}
    server_row = gateway.row(RECORDS_TABLE, "r1")
    assert server_row["compliance_status"] == "pending"
    assert _cached_row(loaded_store, "r1") == server_row
    assert loaded_store.get_state().conflict_queue == []


def test_default_merge_lets_local_fields_win(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    remote_row = gateway.row(RECORDS_TABLE, "r1")
    conflict = loaded_store.add_conflict(
        ConflictType.DATA_CONFLICT,
        "ComplianceRecord",
        {"notes": "local note"},
        {**remote_row, "notes": "remote note", "compliance_status": "warning"},
        {"record_id": "r1"},
    )

    loaded_store.resolve_conflict(conflict.id, "merge")

    server_row = gateway.row(RECORDS_TABLE, "r1")
    assert server_row["notes"] == "local note"
    assert server_row["compliance_status"] == "warning"
    assert gateway.update_filters[-1] == {"id": "r1", "updated_at": T1}


def test_manual_resolution_requires_merged_data(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    conflict = loaded_store.add_conflict("data_conflict", "ComplianceRecord", {"a": 1}, {"a": 2}, {"record_id": "r1"})

    with pytest.raises(ValidationError):
        loaded_store.resolve_conflict(conflict.id, "manual")

    assert [item.id for item in loaded_store.get_state().conflict_queue] == [conflict.id]

    loaded_store.resolve_conflict(conflict.id, "manual", {"compliance_status": "compliant"})

    assert gateway.row(RECORDS_TABLE, "r1")["compliance_status"] == "compliant"
    assert loaded_store.get_state().conflict_queue == []


def test_unknown_conflict_id_is_ignored(loaded_store: IntegrationStore) -> None:
    loaded_store.add_conflict("state_conflict", "Dashboard", {"a": 1}, {"a": 2})

    assert loaded_store.resolve_conflict("conflict-missing", "local") is False
    assert len(loaded_store.get_state().conflict_queue) == 1


def test_non_record_conflicts_are_just_dropped(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    conflict = loaded_store.add_conflict("state_conflict", "Dashboard", {"tab": "a"}, {"tab": "b"})

    assert loaded_store.resolve_conflict(conflict.id, "local") is True

    assert gateway.count_calls("update") == 0
    assert loaded_store.get_state().conflict_queue == []


def test_failed_resolution_keeps_conflict_and_raises(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    _queue_version_conflict(loaded_store, gateway, move_server=True)
    conflict_id = loaded_store.get_state().conflict_queue[0].id
    gateway.failures["update"] = RemoteGatewayError("write refused")

    with pytest.raises(RemoteGatewayError):
        loaded_store.resolve_conflict(conflict_id, "local")

    state = loaded_store.get_state()
    assert conflict_id in [item.id for item in state.conflict_queue]
    assert [item.type for item in state.conflict_queue] == [ConflictType.VERSION_CONFLICT, ConflictType.DATA_CONFLICT]
    assert state.is_resolving_conflicts is False


def test_clear_conflicts_empties_queue(loaded_store: IntegrationStore) -> None:
    loaded_store.add_conflict("state_conflict", "Dashboard", None, None)
    loaded_store.add_conflict("state_conflict", "Sidebar", None, None)

    loaded_store.clear_conflicts()

    assert loaded_store.get_state().conflict_queue == []


def test_compute_resolution_policies() -> None:
    conflict = build_conflict(
        ConflictType.DATA_CONFLICT,
        "ComplianceRecord",
        {"a": 1, "b": 1},
        {"b": 2, "c": 2},
        id_factory=lambda: "conflict-1",
        clock=lambda: T1,
    )

    assert compute_resolution(conflict, ConflictResolution.LOCAL) == {"a": 1, "b": 1}
    assert compute_resolution(conflict, ConflictResolution.REMOTE) == {"b": 2, "c": 2}
    assert compute_resolution(conflict, ConflictResolution.MERGE) == {"a": 1, "b": 1, "c": 2}
    assert compute_resolution(conflict, ConflictResolution.MERGE, {"z": 0}) == {"z": 0}
    assert compute_resolution(conflict, ConflictResolution.MANUAL, {"b": 3}) == {"b": 3}
    assert conflict.id == "conflict-1"
    assert conflict.timestamp == T1


def test_remote_status_matches_after_remote_resolution(loaded_store: IntegrationStore, gateway: FakeGateway) -> None:
    _queue_version_conflict(loaded_store, gateway, move_server=False)
    conflict_id = loaded_store.get_state().conflict_queue[0].id

    loaded_store.resolve_conflict(conflict_id, "remote")

    found = loaded_store.get_state().find_record("r1")
    assert found is not None
    assert found[1].status == ComplianceStatus.COMPLIANT
