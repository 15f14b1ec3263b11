from __future__ import annotations

from fleetdesk.bus.kafka import KafkaEventRelay
from fleetdesk.config import Settings


def build_relay_from_settings(settings: Settings) -> KafkaEventRelay | None:
    if settings.bus_relay == "none":
        return None
    if settings.bus_relay == "kafka":
        return KafkaEventRelay(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            client_id=settings.kafka_client_id,
        )
    raise ValueError("Unsupported FLEETDESK_BUS_RELAY. Use 'none' or 'kafka'.")
