from __future__ import annotations

import json
from functools import partial

from kafka import KafkaProducer

from fleetdesk.bus.event_bus import EventBus
from fleetdesk.bus.routing import EVENT_TOPIC_MAP
from fleetdesk.models.events import DomainEventType, ReservationEventPayload


class KafkaEventRelay:
    """Forwards domain events to Kafka topics, keyed by reservation code.

    Registered on the event bus like any other handler, so a broker outage
    is logged by the bus and never fails the transition.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str = "fleetdesk-producer",
        producer: KafkaProducer | None = None,
    ) -> None:
        self._owns_producer = producer is None
        self._producer = producer or KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            client_id=client_id,
            linger_ms=10,
            acks="all",
            value_serializer=lambda payload: json.dumps(payload).encode("utf-8"),
            key_serializer=lambda key: key.encode("utf-8"),
        )

    def register(self, bus: EventBus) -> None:
        for event_type in EVENT_TOPIC_MAP:
            bus.on(event_type, partial(self.publish, event_type))

    def publish(self, event_type: DomainEventType, payload: ReservationEventPayload) -> None:
        topic = EVENT_TOPIC_MAP[event_type]
        value = {"type": event_type.value, "payload": payload.model_dump(mode="json")}
        self._producer.send(topic, key=payload.reservation.reservation_code, value=value)
        self._producer.flush()

    def close(self) -> None:
        if self._owns_producer:
            self._producer.flush()
            self._producer.close()
