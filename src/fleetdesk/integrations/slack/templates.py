from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fleetdesk.integrations.slack.client import SlackMessage
from fleetdesk.models.entities import Payment, Reservation


def _format_date(value: datetime) -> str:
    return value.date().isoformat()


def _format_amount(value: Decimal) -> str:
    return f"¥{value:,.0f}"


def _message(text: str, header: str, lines: list[str]) -> SlackMessage:
    return SlackMessage(
        text=text,
        blocks=[
            {"type": "header", "text": {"type": "plain_text", "text": header}},
            {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(line for line in lines if line)}},
        ],
    )


def reservation_approved_message(reservation: Reservation) -> SlackMessage:
    return _message(
        f"Reservation approved: {reservation.reservation_code}",
        "Reservation approved",
        [
            f"*Reservation:* {reservation.reservation_code}",
            f"*Customer:* {reservation.customer_name}",
            f"*Pickup:* {_format_date(reservation.pickup_date)}",
            f"*Return:* {_format_date(reservation.return_date)}",
        ],
    )


def reservation_rejected_message(reservation: Reservation) -> SlackMessage:
    return _message(
        f"Reservation rejected: {reservation.reservation_code}",
        "Reservation rejected",
        [
            f"*Reservation:* {reservation.reservation_code}",
            f"*Customer:* {reservation.customer_name}",
            f"*Reason:* {reservation.approval_comment}" if reservation.approval_comment else "",
        ],
    )


def reservation_settled_message(reservation: Reservation, payment: Payment) -> SlackMessage:
    return _message(
        f"Reservation {reservation.reservation_code} settled",
        "Reservation settled",
        [
            f"*Reservation:* {reservation.reservation_code}",
            f"*Customer:* {reservation.customer_name}",
            f"*Amount:* {_format_amount(payment.amount)}",
            f"*Payment:* {payment.payment_number}",
        ],
    )
