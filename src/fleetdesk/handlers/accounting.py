from __future__ import annotations

import logging
from typing import Any

from fleetdesk.bus.event_bus import EventBus
from fleetdesk.integrations.accounting.client import AccountingClient
from fleetdesk.models.events import DomainEventType, ReservationSettledPayload

logger = logging.getLogger(__name__)


def sales_record(payload: ReservationSettledPayload) -> dict[str, Any]:
    reservation = payload.reservation
    payment = payload.payment
    return {
        "reference": reservation.reservation_code,
        "customer_name": reservation.customer_name,
        "customer_code": reservation.customer_code,
        "company_code": reservation.company_code,
        "amount": str(payment.amount),
        "payment_number": payment.payment_number,
        "payment_category": payment.payment_category.value,
        "settled_at": reservation.settled_at.isoformat() if reservation.settled_at else None,
        "revenue_date": reservation.revenue_date.date().isoformat() if reservation.revenue_date else None,
    }


class AccountingSync:
    """Pushes settled reservations to the external accounting system.

    Delivery is best effort: HTTP errors propagate to the event bus, which
    logs them; nothing is retried.
    """

    def __init__(self, client: AccountingClient) -> None:
        self.client = client

    def register(self, bus: EventBus) -> None:
        bus.on(DomainEventType.RESERVATION_SETTLED, self.on_settled)

    async def on_settled(self, payload: ReservationSettledPayload) -> None:
        result = await self.client.create_sales_record(sales_record(payload))
        if result:
            logger.info(
                "Synced %s to accounting as %s", payload.reservation.reservation_code, result.get("id")
            )
