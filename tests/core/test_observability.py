from __future__ import annotations

import logging

from compliance_store.core.observability import (
    OperationContext,
    generate_correlation_id,
    get_correlation_id,
    get_result_id,
    log_event,
)


def test_operation_context_generates_uuid4_correlation_id() -> None:
    with OperationContext("unit_test") as operation:
        correlation_id = operation.correlation_id
        assert get_correlation_id() == correlation_id

    assert isinstance(correlation_id, str)
    assert len(correlation_id) == 36
    assert correlation_id.count("-") == 4


def test_nested_context_keeps_outer_correlation_id() -> None:
    with OperationContext("update_compliance_record") as outer:
        with OperationContext("reconcile_record") as inner:
            assert inner.correlation_id == outer.correlation_id


def test_log_event_returns_structured_event_dict() -> None:
    logger = logging.getLogger("tests.observability")

    with OperationContext("notify"):
        event = log_event(logger, "notification_sent", {"type": "INFO", "result_id": "res-1"}, "cid-123")
        assert get_result_id() == "res-1"

    assert event["event"] == "notification_sent"
    assert event["correlation_id"] == "cid-123"
    assert "timestamp" in event
    assert event["payload"] == {"type": "INFO", "result_id": "res-1"}
    assert get_result_id() is None


def test_generate_correlation_id_is_unique() -> None:
    assert generate_correlation_id() != generate_correlation_id()
