"""Append-only history of committed reservation transitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from fleetdesk.db.repositories import AuditRepository


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AuditRecord:
    action: str
    component: str
    reservation_code: str | None
    user_id: str | None
    from_status: str | None = None
    to_status: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_timestamp)
    id: str = field(default_factory=lambda: str(uuid4()))

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AuditRecord:
        return cls(**{name: row.get(name) for name in cls.__dataclass_fields__ if name in row})

    def to_row(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


class AuditStore:
    def __init__(
        self,
        repository: AuditRepository | None = None,
        timestamp: Callable[[], str] = _timestamp,
    ) -> None:
        self.repository = repository or AuditRepository()
        self._timestamp = timestamp

    def reset(self) -> None:
        self.repository.reset()

    def log(
        self,
        action: str,
        component: str,
        reservation_code: str | None = None,
        user_id: str | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> AuditRecord:
        record = AuditRecord(
            action=action,
            component=component,
            reservation_code=reservation_code,
            user_id=user_id,
            from_status=from_status,
            to_status=to_status,
            detail=dict(detail or {}),
            timestamp=self._timestamp(),
        )
        return AuditRecord.from_row(self.repository.insert(record.to_row()))

    def get_history(self, reservation_code: str) -> list[AuditRecord]:
        """Transitions of one reservation, oldest first."""
        records = [AuditRecord.from_row(row) for row in self.repository.get_by_reservation_code(reservation_code)]
        return sorted(records, key=lambda record: record.timestamp)
