from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from compliance_store.domain.models import ComplianceRecord, TierInfo


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """Row-level change pushed by the gateway for a subscribed table."""

    event_type: ChangeEventType
    table: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str | None:
        source = self.old if self.event_type == ChangeEventType.DELETE else self.new
        value = source.get("id")
        return str(value) if value is not None else None


ChangeCallback = Callable[[ChangeEvent], None]
Filters = Mapping[str, Any]


class SubscriptionHandle(Protocol):
    @property
    def channel_name(self) -> str:
        ...


class RemoteGateway(Protocol):
    def select(self, table: str, filters: Filters | None = None, columns: str = "*") -> list[dict[str, Any]]:
        ...

    def insert(self, table: str, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        ...

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> list[dict[str, Any]]:
        ...

    def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        ...

    def invoke(self, function_name: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        ...

    def subscribe(
        self, channel_name: str, table: str, filters: Filters, callback: ChangeCallback
    ) -> SubscriptionHandle:
        ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        ...

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        ...

    def get_public_url(self, bucket: str, path: str) -> str:
        ...

    def close(self) -> None:
        ...


class ComplianceReportRenderer(Protocol):
    def build_file_name(self, user_id: str, generated_at: str) -> str:
        ...

    def render(
        self,
        records: list[ComplianceRecord],
        tier_info: TierInfo | None,
        destination: Path,
        *,
        user_id: str,
        pending_conflicts: int,
    ) -> Path:
        ...
