from __future__ import annotations

import httpx

from fleetdesk.bus.event_bus import EventBus
from fleetdesk.bus.factory import build_relay_from_settings
from fleetdesk.config import Settings
from fleetdesk.handlers.accounting import AccountingSync
from fleetdesk.handlers.slack_notifier import SlackNotifier
from fleetdesk.integrations.accounting.client import AccountingClient
from fleetdesk.integrations.slack.client import SlackClient


def register_default_handlers(
    bus: EventBus,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[object]:
    """Wire every side-effect consumer onto ``bus`` and return them."""
    handlers: list[object] = [
        SlackNotifier(SlackClient(settings.slack_webhook_url, transport=transport)),
        AccountingSync(
            AccountingClient(settings.accounting_base_url, settings.accounting_api_key, transport=transport)
        ),
    ]
    relay = build_relay_from_settings(settings)
    if relay is not None:
        handlers.append(relay)
    for handler in handlers:
        handler.register(bus)
    return handlers


__all__ = ["AccountingSync", "SlackNotifier", "register_default_handlers"]
