from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from fleetdesk.db.repositories import PaymentRepository, UnitOfWork
from fleetdesk.db.sequences import PAYMENT_NUMBER_PREFIX, next_code
from fleetdesk.models.entities import (
    EntityType,
    Payment,
    PaymentCategory,
    PaymentStatus,
    Reservation,
)

logger = logging.getLogger(__name__)


def revenue_date_for(reservation: Reservation, settled_at: datetime) -> datetime | None:
    """Revenue is recognised at settlement for individual customers only.

    Corporate reservations get their revenue date when the invoice is raised.
    """
    if reservation.entity_type == EntityType.INDIVIDUAL:
        return settled_at
    return None


class SettlementEngine:
    def __init__(self, repository: PaymentRepository | None = None) -> None:
        self.repository = repository or PaymentRepository()

    def reset(self) -> None:
        self.repository.reset()

    def next_payment_number(self) -> str:
        return next_code(PAYMENT_NUMBER_PREFIX, self.repository.max_number())

    def record_payment(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        amount: Decimal,
        category: PaymentCategory | None = None,
        paid_at: datetime | None = None,
    ) -> Payment:
        """Write the unallocated payment for a settled reservation.

        Runs inside the caller's unit of work; a collision on the payment
        number raises ``UniquenessViolation`` and is not retried.
        """
        payment = Payment(
            payment_number=self.next_payment_number(),
            amount=amount,
            payment_category=category or PaymentCategory.CASH,
            payer_name=reservation.customer_name,
            status=PaymentStatus.UNALLOCATED,
            reservation_id=reservation.id,
            **({"payment_date": paid_at} if paid_at else {}),
        )
        row = self.repository.insert(payment.model_dump(mode="json"), uow=uow)
        logger.info(
            "Recorded payment %s of %s for reservation %s",
            payment.payment_number,
            amount,
            reservation.reservation_code,
        )
        return Payment.model_validate(row)

    def payments_for(self, reservation_id: str) -> list[Payment]:
        rows = self.repository.list_by_reservation(reservation_id)
        rows.sort(key=lambda row: row["payment_number"])
        return [Payment.model_validate(row) for row in rows]

    def list_payments(self, status: PaymentStatus | None = None) -> list[Payment]:
        payments = [Payment.model_validate(row) for row in self.repository.list_all()]
        if status:
            payments = [payment for payment in payments if payment.status == status]
        payments.sort(key=lambda payment: payment.created_at, reverse=True)
        return payments
