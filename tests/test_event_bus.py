import asyncio
import logging

import pytest

from fleetdesk.bus.event_bus import EventBus
from fleetdesk.models.entities import Payment, Reservation
from fleetdesk.models.events import DomainEventType, ReservationEventPayload, ReservationSettledPayload


def _payload(code: str = "RS-00001") -> ReservationEventPayload:
    reservation = Reservation(
        reservation_code=code,
        vehicle_class_id="class-c",
        customer_name="Taro",
        pickup_date="2026-03-01T09:00:00Z",
        return_date="2026-03-03T18:00:00Z",
    )
    return ReservationEventPayload(reservation=reservation, user_id="u1")


def test_emit_without_handlers_is_a_no_op() -> None:
    bus = EventBus()
    result = asyncio.run(bus.emit(DomainEventType.RESERVATION_CREATED, _payload()))
    assert result.handled == 0
    assert result.failed == []


def test_failing_handler_does_not_stop_siblings(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    seen: list[str] = []

    async def broken(payload: ReservationEventPayload) -> None:
        raise RuntimeError("accounting is down")

    async def notifier(payload: ReservationEventPayload) -> None:
        seen.append(payload.reservation.reservation_code)

    bus.on(DomainEventType.RESERVATION_SETTLED, broken)
    bus.on("reservation.settled", notifier)

    base = _payload()
    payload = ReservationSettledPayload(
        reservation=base.reservation,
        user_id="u1",
        payment=Payment(payment_number="PM-00001", amount=16500, payer_name="Taro"),
    )
    with caplog.at_level(logging.ERROR, logger="fleetdesk.bus.event_bus"):
        result = asyncio.run(bus.emit(DomainEventType.RESERVATION_SETTLED, payload))

    assert seen == ["RS-00001"]
    assert result.handled == 1
    assert len(result.failed) == 1
    assert "broken" in result.failed[0]
    assert "reservation.settled" in caplog.text
    assert "accounting is down" in caplog.text


def test_handlers_run_concurrently() -> None:
    bus = EventBus()
    order: list[str] = []

    async def scenario() -> None:
        gate = asyncio.Event()

        async def waits_for_sibling(payload: ReservationEventPayload) -> None:
            order.append("waiting")
            await asyncio.wait_for(gate.wait(), timeout=1)
            order.append("released")

        async def releases(payload: ReservationEventPayload) -> None:
            order.append("releasing")
            gate.set()

        bus.on(DomainEventType.RESERVATION_CREATED, waits_for_sibling)
        bus.on(DomainEventType.RESERVATION_CREATED, releases)
        result = await bus.emit(DomainEventType.RESERVATION_CREATED, _payload())
        assert result.failed == []

    asyncio.run(scenario())
    assert order == ["waiting", "releasing", "released"]


def test_sync_handlers_are_supported() -> None:
    bus = EventBus()
    seen: list[str] = []
    bus.on(DomainEventType.RESERVATION_UPDATED, lambda payload: seen.append(payload.user_id))
    asyncio.run(bus.emit(DomainEventType.RESERVATION_UPDATED, _payload()))
    assert seen == ["u1"]


def test_handlers_receive_a_copy_of_the_payload() -> None:
    bus = EventBus()
    received: list[ReservationEventPayload] = []

    async def handler(payload: ReservationEventPayload) -> None:
        received.append(payload)

    bus.on(DomainEventType.RESERVATION_CREATED, handler)
    original = _payload()
    asyncio.run(bus.emit(DomainEventType.RESERVATION_CREATED, original))
    assert received[0] == original
    assert received[0] is not original
    assert received[0].reservation is not original.reservation


def test_emit_rejects_mismatched_payload() -> None:
    bus = EventBus()
    with pytest.raises(TypeError):
        asyncio.run(bus.emit(DomainEventType.RESERVATION_SETTLED, _payload()))


def test_registry_lists_kinds_with_handlers() -> None:
    bus = EventBus()

    async def handler(payload: ReservationEventPayload) -> None:
        return None

    bus.on(DomainEventType.RESERVATION_APPROVED, handler)
    bus.on(DomainEventType.RESERVATION_APPROVED, handler)
    assert bus.registered_kinds() == [DomainEventType.RESERVATION_APPROVED]
    assert len(bus.handlers_for(DomainEventType.RESERVATION_APPROVED)) == 2
    assert bus.handlers_for(DomainEventType.RESERVATION_REJECTED) == []


def test_vehicle_assignment_kind_uses_the_rental_name() -> None:
    bus = EventBus()
    assert DomainEventType.RESERVATION_VEHICLE_ASSIGNED.value == "reservation.vehicleAssigned"
    with pytest.raises(ValueError):
        bus.on("reservation.resourceAssigned", lambda payload: None)
