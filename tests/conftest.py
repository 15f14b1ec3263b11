from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from fleetdesk.audit.trail import AuditStore
from fleetdesk.bus.event_bus import EventBus
from fleetdesk.db.repositories import VehicleRepository, reset_memory_backend
from fleetdesk.models.entities import Reservation, ReservationStatus, Vehicle
from fleetdesk.models.events import DomainEventType
from fleetdesk.services.reservation_service import ReservationService

FIXED_NOW = datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch: pytest.MonkeyPatch) -> Any:
    monkeypatch.setenv("FLEETDESK_STORAGE_BACKEND", "memory")
    for name in ("SLACK_WEBHOOK_URL", "ACCOUNTING_API_KEY", "ACCOUNTING_BASE_URL", "FLEETDESK_BUS_RELAY"):
        monkeypatch.delenv(name, raising=False)
    reset_memory_backend()
    yield
    reset_memory_backend()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(bus: EventBus) -> list[tuple[DomainEventType, Any]]:
    events: list[tuple[DomainEventType, Any]] = []

    def recorder(kind: DomainEventType):
        async def handler(payload: Any) -> None:
            events.append((kind, payload))

        return handler

    for kind in DomainEventType:
        bus.on(kind, recorder(kind))
    return events


@pytest.fixture
def service(bus: EventBus) -> ReservationService:
    return ReservationService(bus, audit_store=AuditStore(), clock=lambda: FIXED_NOW)


@pytest.fixture
def add_vehicle():
    repository = VehicleRepository()
    counter = {"n": 0}

    def _add(vehicle_class_id: str = "class-c", **overrides: Any) -> Vehicle:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "vehicle_code": f"V-{counter['n']:03d}",
            "vehicle_class_id": vehicle_class_id,
            "maker": "Toyota",
            "model_name": "Corolla",
            "mileage": 9_500,
        }
        fields.update(overrides)
        vehicle = Vehicle(**fields)
        return Vehicle.model_validate(repository.insert(vehicle.model_dump(mode="json")))

    return _add


def reservation_input(
    pickup: datetime = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
    return_: datetime = datetime(2026, 3, 3, 18, 0, tzinfo=timezone.utc),
    **overrides: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "vehicle_class_id": "class-c",
        "customer_name": "Hanako Yamada",
        "customer_name_kana": "ヤマダ ハナコ",
        "customer_phone": "090-1234-5678",
        "pickup_date": pickup,
        "return_date": return_,
        "pickup_office_id": "office-1",
        "return_office_id": "office-1",
        "estimated_amount": 15000,
        "entity_type": 1,
    }
    data.update(overrides)
    return data


@pytest.fixture
def reservation_in():
    """Build a reservation and drive it to the requested status."""

    def _build(service: ReservationService, add_vehicle, status: ReservationStatus, **overrides: Any) -> Reservation:
        async def _run() -> Reservation:
            reservation = await service.create(reservation_input(**overrides))
            if status == ReservationStatus.RESERVED:
                return reservation
            if status == ReservationStatus.CANCELLED:
                return await service.cancel(reservation.id)
            vehicle = add_vehicle(reservation.vehicle_class_id)
            reservation = await service.assign_vehicle(reservation.id, vehicle.id)
            if status == ReservationStatus.CONFIRMED:
                return reservation
            reservation = await service.depart(reservation.id, reservation.pickup_date, 10_000)
            if status == ReservationStatus.DEPARTED:
                return reservation
            reservation = await service.return_vehicle(reservation.id, reservation.return_date, 10_250, "FULL")
            if status == ReservationStatus.RETURNED:
                return reservation
            return await service.settle(reservation.id, 16_500)

        return asyncio.run(_run())

    return _build


@pytest.fixture
def make_input():
    return reservation_input
