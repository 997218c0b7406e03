from __future__ import annotations

import threading

import pytest

from compliance_store.application.state_container import StateContainer
from compliance_store.core.errors import ListenerLimitError
from compliance_store.domain.models import ComplianceRecord
from compliance_store.domain.state import IntegrationState
from tests.fakes import make_record


def _append_record(record_id: str):
    def _mutate(state: IntegrationState) -> None:
        state.user_compliance_records.append(ComplianceRecord.from_row(make_record(record_id)))

    return _mutate


def test_get_state_returns_independent_copy() -> None:
    container = StateContainer()
    container.set_state(_append_record("r1"))

    snapshot = container.get_state()
    snapshot.user_compliance_records.clear()
    snapshot.shared_data["leak"] = {"data": 1}
    snapshot.performance_metrics.memory_usage.component_count = 99

    fresh = container.get_state()
    assert [record.id for record in fresh.user_compliance_records] == ["r1"]
    assert fresh.shared_data == {}
    assert fresh.performance_metrics.memory_usage.component_count == 0


def test_listeners_run_once_per_mutation_in_registration_order() -> None:
    container = StateContainer()
    calls: list[str] = []
    container.subscribe(lambda: calls.append("first"))
    container.subscribe(lambda: calls.append("second"))

    container.set_state(_append_record("r1"))
    container.set_state(_append_record("r2"))

    assert calls == ["first", "second", "first", "second"]


def test_listener_sees_new_snapshot() -> None:
    container = StateContainer()
    seen: list[int] = []
    container.subscribe(lambda: seen.append(len(container.get_state().user_compliance_records)))

    container.set_state(_append_record("r1"))

    assert seen == [1]


def test_unsubscribe_is_idempotent_and_stops_notifications() -> None:
    container = StateContainer()
    calls: list[int] = []
    unsubscribe = container.subscribe(lambda: calls.append(1))

    unsubscribe()
    unsubscribe()
    container.set_state(_append_record("r1"))

    assert calls == []
    assert container.listener_count == 0
    assert unsubscribe.active is False


def test_listener_limit_is_enforced() -> None:
    container = StateContainer(max_listeners=2)
    container.subscribe(lambda: None)
    unsubscribe = container.subscribe(lambda: None)

    with pytest.raises(ListenerLimitError):
        container.subscribe(lambda: None)

    unsubscribe()
    container.subscribe(lambda: None)
    assert container.listener_count == 2


def test_failing_listener_does_not_block_the_rest(caplog: pytest.LogCaptureFixture) -> None:
    container = StateContainer()
    calls: list[str] = []

    def _boom() -> None:
        raise RuntimeError("listener exploded")

    container.subscribe(_boom)
    container.subscribe(lambda: calls.append("after"))

    container.set_state(_append_record("r1"))

    assert calls == ["after"]
    assert "State listener failed" in caplog.text


def test_mutator_error_leaves_state_untouched() -> None:
    container = StateContainer()
    container.set_state(_append_record("r1"))
    calls: list[int] = []
    container.subscribe(lambda: calls.append(1))

    def _broken(state: IntegrationState) -> None:
        state.user_compliance_records.clear()
        raise ValueError("bad mutation")

    with pytest.raises(ValueError):
        container.set_state(_broken)

    assert [record.id for record in container.get_state().user_compliance_records] == ["r1"]
    assert calls == []


def test_snapshot_rows_are_detached_but_caller_values_are_shared() -> None:
    container = StateContainer()
    container.set_state(_append_record("r1"))
    handle = threading.Lock()

    def _share(state: IntegrationState) -> None:
        state.shared_data["handle"] = {"data": handle}

    container.set_state(_share)
    snapshot = container.get_state()
    snapshot.user_compliance_records[0].row["compliance_status"] = "compliant"

    fresh = container.get_state()
    assert fresh.user_compliance_records[0].row["compliance_status"] == "pending"
    assert fresh.shared_data["handle"]["data"] is handle


def test_failed_mutator_leaves_state_untouched() -> None:
    container = StateContainer()
    container.set_state(_append_record("r1"))

    def _broken(state: IntegrationState) -> None:
        state.user_compliance_records.clear()
        state.sync_errors.append("half-applied")
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        container.set_state(_broken)

    state = container.get_state()
    assert [record.id for record in state.user_compliance_records] == ["r1"]
    assert state.sync_errors == []
