from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping, TypeVar

from supabase import Client, create_client

from compliance_store.core.errors import ConfigurationError, RemotePermissionError
from compliance_store.core.operational_logging import log_operational_error
from compliance_store.domain.ports import ChangeCallback, Filters, SubscriptionHandle
from compliance_store.infrastructure.change_feed import DEFAULT_POLL_SECONDS, PollingChangeFeed
from compliance_store.infrastructure.gateway_errors import map_gateway_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SupabaseGateway:
    """``RemoteGateway`` backed by the synchronous supabase client.

    Real-time subscriptions are served by a polling change feed per channel.
    """

    def __init__(self, client: Client, *, poll_interval_seconds: float = DEFAULT_POLL_SECONDS) -> None:
        self._client = client
        self._poll_interval_seconds = poll_interval_seconds
        self._feeds: dict[str, PollingChangeFeed] = {}
        self._read_calls_count = 0
        self._write_calls_count = 0

    @classmethod
    def from_credentials(
        cls, url: str, key: str, *, poll_interval_seconds: float = DEFAULT_POLL_SECONDS
    ) -> "SupabaseGateway":
        if not url or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY must both be set.")
        return cls(create_client(url, key), poll_interval_seconds=poll_interval_seconds)

    @property
    def read_calls_count(self) -> int:
        return self._read_calls_count

    @property
    def write_calls_count(self) -> int:
        return self._write_calls_count

    # Tables

    def select(self, table: str, filters: Filters | None = None, columns: str = "*") -> list[dict[str, Any]]:
        def _run() -> list[dict[str, Any]]:
            query = self._client.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            return list(query.execute().data or [])

        self._read_calls_count += 1
        return self._call(f"select({table})", _run)

    def insert(self, table: str, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._write_calls_count += 1
        return self._call(
            f"insert({table})",
            lambda: list(self._client.table(table).insert(dict(values)).execute().data or []),
        )

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> list[dict[str, Any]]:
        def _run() -> list[dict[str, Any]]:
            query = self._client.table(table).update(dict(values))
            for column, value in filters.items():
                query = query.eq(column, value)
            return list(query.execute().data or [])

        self._write_calls_count += 1
        return self._call(f"update({table})", _run)

    def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        def _run() -> list[dict[str, Any]]:
            query = self._client.table(table).delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            return list(query.execute().data or [])

        self._write_calls_count += 1
        return self._call(f"delete({table})", _run)

    # Edge functions

    def invoke(self, function_name: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        raw = self._call(
            f"functions.invoke({function_name})",
            lambda: self._client.functions.invoke(function_name, invoke_options={"body": dict(payload)}),
        )
        return _decode_function_response(raw)

    # Storage

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self._write_calls_count += 1
        self._call(
            f"storage.upload({bucket})",
            lambda: self._client.storage.from_(bucket).upload(
                path,
                content,
                {"content-type": content_type, "upsert": "true"},
            ),
        )
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return str(
            self._call(
                f"storage.get_public_url({bucket})",
                lambda: self._client.storage.from_(bucket).get_public_url(path),
            )
        )

    # Real-time

    def subscribe(self, channel_name: str, table: str, filters: Filters, callback: ChangeCallback) -> SubscriptionHandle:
        if channel_name in self._feeds:
            self._feeds.pop(channel_name).stop()
        frozen_filters = dict(filters)
        feed = PollingChangeFeed(
            channel_name,
            table,
            lambda: self.select(table, frozen_filters),
            callback,
            interval_seconds=self._poll_interval_seconds,
        )
        self._feeds[channel_name] = feed
        return feed.start()

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        feed = self._feeds.pop(handle.channel_name, None)
        if feed is not None:
            feed.stop()

    def close(self) -> None:
        for channel_name in list(self._feeds):
            self._feeds.pop(channel_name).stop()

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except Exception as exc:
            mapped_error = map_gateway_exception(exc)
            if mapped_error is exc:
                raise
            if isinstance(mapped_error, RemotePermissionError):
                log_operational_error(
                    "Remote permission denied",
                    exc=mapped_error,
                    operation=operation,
                )
            raise mapped_error from exc


def _decode_function_response(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return {"raw": raw}
    if isinstance(raw, Mapping):
        return dict(raw)
    return {"data": raw}
