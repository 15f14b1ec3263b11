from __future__ import annotations

import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from fleetdesk.db.supabase_client import get_client
from fleetdesk.errors import UniquenessViolation

logger = logging.getLogger(__name__)

_PG_UNIQUE_VIOLATION = "23505"


class StorageBackend(str, Enum):
    MEMORY = "memory"
    SUPABASE = "supabase"


def get_storage_backend() -> StorageBackend:
    raw = os.getenv("FLEETDESK_STORAGE_BACKEND", StorageBackend.MEMORY.value).strip().lower()
    if raw == StorageBackend.SUPABASE.value:
        return StorageBackend.SUPABASE
    return StorageBackend.MEMORY


def _code_number(code: str) -> int:
    digits = "".join(ch for ch in code if ch.isdigit())
    return int(digits) if digits else 0


@dataclass
class _MemoryState:
    reservations: dict[str, dict[str, Any]] = field(default_factory=dict)
    vehicles: dict[str, dict[str, Any]] = field(default_factory=dict)
    payments: dict[str, dict[str, Any]] = field(default_factory=dict)
    audit_log: list[dict[str, Any]] = field(default_factory=list)

    def reset(self) -> None:
        self.reservations.clear()
        self.vehicles.clear()
        self.payments.clear()
        self.audit_log.clear()


_MEMORY_STATE = _MemoryState()


class UnitOfWork:
    """Groups the writes of one transition.

    Repositories record an undo step for every write made under the unit of
    work. Leaving the block with an exception replays the undo log in
    reverse, so either every write of the transition stands or none does.
    """

    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []
        self.committed = False

    def __enter__(self) -> UnitOfWork:
        self._undo.clear()
        self.committed = False
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False

    def record_undo(self, step: Callable[[], None]) -> None:
        self._undo.append(step)

    def commit(self) -> None:
        self._undo.clear()
        self.committed = True

    def rollback(self) -> None:
        logger.warning("Rolling back unit of work, undoing %d writes", len(self._undo))
        while self._undo:
            step = self._undo.pop()
            try:
                step()
            except Exception:
                logger.exception("Undo step failed during rollback")


class _BaseRepository:
    table: str = ""

    def __init__(self) -> None:
        self.backend = get_storage_backend()
        self.client = get_client() if self.backend == StorageBackend.SUPABASE else None

    def _rows(self) -> dict[str, dict[str, Any]]:
        raise NotImplementedError

    def reset(self) -> None:
        if self.backend == StorageBackend.MEMORY:
            self._rows().clear()
            return
        self.client.table(self.table).delete().neq("id", "").execute()

    def get(self, row_id: str) -> dict[str, Any] | None:
        if self.backend == StorageBackend.MEMORY:
            row = self._rows().get(row_id)
            return deepcopy(row) if row is not None else None
        response = self.client.table(self.table).select("*").eq("id", row_id).limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def list_all(self) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [deepcopy(row) for row in self._rows().values()]
        response = self.client.table(self.table).select("*").execute()
        return response.data or []

    def insert(self, row: dict[str, Any], uow: UnitOfWork | None = None) -> dict[str, Any]:
        self._check_unique(row)
        if self.backend == StorageBackend.MEMORY:
            self._rows()[row["id"]] = deepcopy(row)
            stored = deepcopy(row)
        else:
            try:
                response = self.client.table(self.table).insert(row).execute()
            except Exception as exc:
                if getattr(exc, "code", None) == _PG_UNIQUE_VIOLATION:
                    raise UniquenessViolation(f"Duplicate key in {self.table}", target=self.table) from exc
                raise
            stored = (response.data or [row])[0]
        if uow is not None:
            uow.record_undo(lambda: self._delete(row["id"]))
        return stored

    def update(self, row_id: str, values: dict[str, Any], uow: UnitOfWork | None = None) -> dict[str, Any]:
        before = self.get(row_id)
        if before is None:
            raise KeyError(f"{self.table} row {row_id} not found")
        if self.backend == StorageBackend.MEMORY:
            self._rows()[row_id].update(deepcopy(values))
            stored = deepcopy(self._rows()[row_id])
        else:
            response = self.client.table(self.table).update(values).eq("id", row_id).execute()
            stored = (response.data or [{**before, **values}])[0]
        if uow is not None:
            uow.record_undo(lambda: self._restore(before))
        return stored

    def _check_unique(self, row: dict[str, Any]) -> None:
        if self.backend == StorageBackend.MEMORY and row["id"] in self._rows():
            raise UniquenessViolation(f"Duplicate id in {self.table}", target="id")

    def _delete(self, row_id: str) -> None:
        if self.backend == StorageBackend.MEMORY:
            self._rows().pop(row_id, None)
            return
        self.client.table(self.table).delete().eq("id", row_id).execute()

    def _restore(self, before: dict[str, Any]) -> None:
        if self.backend == StorageBackend.MEMORY:
            self._rows()[before["id"]] = before
            return
        self.client.table(self.table).upsert(before, on_conflict="id").execute()

    def _max_by(self, column: str) -> str | None:
        if self.backend == StorageBackend.MEMORY:
            codes = [row[column] for row in self._rows().values() if row.get(column)]
            return max(codes, key=_code_number) if codes else None
        response = self.client.table(self.table).select(column).order(column, desc=True).limit(1).execute()
        rows = response.data or []
        return rows[0][column] if rows else None


class ReservationRepository(_BaseRepository):
    table = "reservations"

    def _rows(self) -> dict[str, dict[str, Any]]:
        return _MEMORY_STATE.reservations

    def _check_unique(self, row: dict[str, Any]) -> None:
        super()._check_unique(row)
        if self.backend == StorageBackend.MEMORY and any(
            existing["reservation_code"] == row["reservation_code"] for existing in self._rows().values()
        ):
            raise UniquenessViolation("Reservation code is already in use", target="reservation_code")

    def max_code(self) -> str | None:
        return self._max_by("reservation_code")

    def list_by_vehicle(self, vehicle_id: str) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [deepcopy(row) for row in self._rows().values() if row.get("vehicle_id") == vehicle_id]
        response = self.client.table(self.table).select("*").eq("vehicle_id", vehicle_id).execute()
        return response.data or []


class VehicleRepository(_BaseRepository):
    table = "vehicles"

    def _rows(self) -> dict[str, dict[str, Any]]:
        return _MEMORY_STATE.vehicles


class PaymentRepository(_BaseRepository):
    table = "payments"

    def _rows(self) -> dict[str, dict[str, Any]]:
        return _MEMORY_STATE.payments

    def _check_unique(self, row: dict[str, Any]) -> None:
        super()._check_unique(row)
        if self.backend == StorageBackend.MEMORY and any(
            existing["payment_number"] == row["payment_number"] for existing in self._rows().values()
        ):
            raise UniquenessViolation("Payment number is already in use", target="payment_number")

    def max_number(self) -> str | None:
        return self._max_by("payment_number")

    def list_by_reservation(self, reservation_id: str) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [deepcopy(row) for row in self._rows().values() if row.get("reservation_id") == reservation_id]
        response = self.client.table(self.table).select("*").eq("reservation_id", reservation_id).execute()
        return response.data or []


class AuditRepository(_BaseRepository):
    table = "audit_log"

    def reset(self) -> None:
        if self.backend == StorageBackend.MEMORY:
            _MEMORY_STATE.audit_log.clear()
            return
        self.client.table(self.table).delete().neq("action", "").execute()

    def insert(self, row: dict[str, Any], uow: UnitOfWork | None = None) -> dict[str, Any]:
        if self.backend == StorageBackend.MEMORY:
            _MEMORY_STATE.audit_log.append(deepcopy(row))
            return row
        response = self.client.table(self.table).insert(row).execute()
        return (response.data or [row])[0]

    def get_by_reservation_code(self, reservation_code: str) -> list[dict[str, Any]]:
        if self.backend == StorageBackend.MEMORY:
            return [deepcopy(row) for row in _MEMORY_STATE.audit_log if row.get("reservation_code") == reservation_code]
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("reservation_code", reservation_code)
            .order("timestamp")
            .execute()
        )
        return response.data or []


def reset_memory_backend() -> None:
    _MEMORY_STATE.reset()
