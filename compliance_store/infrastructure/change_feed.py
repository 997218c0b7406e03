from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from compliance_store.core.operational_logging import log_operational_error
from compliance_store.domain.ports import ChangeCallback, ChangeEvent, ChangeEventType

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 5.0

Snapshot = dict[str, dict[str, Any]]
Fetcher = Callable[[], list[dict[str, Any]]]


def index_rows(rows: list[dict[str, Any]]) -> Snapshot:
    return {str(row["id"]): row for row in rows if row.get("id") is not None}


def diff_snapshots(table: str, previous: Snapshot, current: Snapshot) -> list[ChangeEvent]:
    """Row-level events that turn ``previous`` into ``current``.

    A row counts as updated when its ``updated_at`` moved; rows without
    ``updated_at`` fall back to a full comparison.
    """
    events: list[ChangeEvent] = []
    for row_id, row in current.items():
        old = previous.get(row_id)
        if old is None:
            events.append(ChangeEvent(ChangeEventType.INSERT, table, new=row))
        elif _changed(old, row):
            events.append(ChangeEvent(ChangeEventType.UPDATE, table, new=row, old=old))
    for row_id, old in previous.items():
        if row_id not in current:
            events.append(ChangeEvent(ChangeEventType.DELETE, table, old=old))
    return events


def _changed(old: dict[str, Any], new: dict[str, Any]) -> bool:
    if "updated_at" in old or "updated_at" in new:
        return old.get("updated_at") != new.get("updated_at")
    return old != new


class PollingChangeFeed:
    """Polls a filtered table and reports row changes to ``callback``.

    The first poll only takes the baseline; events start with the second.
    Poll failures are logged and the feed keeps its last good snapshot.
    """

    def __init__(
        self,
        channel_name: str,
        table: str,
        fetch: Fetcher,
        callback: ChangeCallback,
        *,
        interval_seconds: float = DEFAULT_POLL_SECONDS,
    ) -> None:
        self._channel_name = channel_name
        self._table = table
        self._fetch = fetch
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._snapshot: Snapshot | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def channel_name(self) -> str:
        return self._channel_name

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "PollingChangeFeed":
        if self._thread is not None:
            return self
        self.poll_once()
        self._thread = threading.Thread(target=self._run, name=f"feed-{self._channel_name}", daemon=True)
        self._thread.start()
        logger.info("change_feed_started channel=%s table=%s", self._channel_name, self._table)
        return self

    def stop(self) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        logger.info("change_feed_stopped channel=%s", self._channel_name)

    def poll_once(self) -> list[ChangeEvent]:
        try:
            current = index_rows(self._fetch())
        except Exception as exc:  # noqa: BLE001
            log_operational_error(
                "Change feed poll failed",
                exc=exc,
                operation="change_feed_poll",
                extra={"channel": self._channel_name},
            )
            return []
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return []
        events = diff_snapshots(self._table, previous, current)
        for event in events:
            try:
                self._callback(event)
            except Exception as exc:  # noqa: BLE001
                log_operational_error(
                    "Change feed callback failed",
                    exc=exc,
                    operation="change_feed_callback",
                    extra={"channel": self._channel_name},
                )
        return events

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_seconds):
            self.poll_once()
