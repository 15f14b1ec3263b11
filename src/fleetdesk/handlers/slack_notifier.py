from __future__ import annotations

from fleetdesk.bus.event_bus import EventBus
from fleetdesk.integrations.slack.client import SlackClient
from fleetdesk.integrations.slack.templates import (
    reservation_approved_message,
    reservation_rejected_message,
    reservation_settled_message,
)
from fleetdesk.models.events import DomainEventType, ReservationEventPayload, ReservationSettledPayload


class SlackNotifier:
    def __init__(self, client: SlackClient) -> None:
        self.client = client

    def register(self, bus: EventBus) -> None:
        bus.on(DomainEventType.RESERVATION_APPROVED, self.on_approved)
        bus.on(DomainEventType.RESERVATION_REJECTED, self.on_rejected)
        bus.on(DomainEventType.RESERVATION_SETTLED, self.on_settled)

    async def on_approved(self, payload: ReservationEventPayload) -> None:
        await self.client.send(reservation_approved_message(payload.reservation))

    async def on_rejected(self, payload: ReservationEventPayload) -> None:
        await self.client.send(reservation_rejected_message(payload.reservation))

    async def on_settled(self, payload: ReservationSettledPayload) -> None:
        await self.client.send(reservation_settled_message(payload.reservation, payload.payment))
