"""
In-process domain event bus.

Handlers for a kind run concurrently and every one of them is awaited.
A failing handler is logged and swallowed: the transition that emitted the
event has already committed and never observes side-effect failures.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from fleetdesk.models.events import EVENT_PAYLOADS, DomainEventType, ReservationEventPayload

logger = logging.getLogger(__name__)

EventHandler = Callable[[ReservationEventPayload], Union[Awaitable[None], None]]


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


@dataclass
class EmitResult:
    event_type: DomainEventType
    handled: int = 0
    failed: list[str] = field(default_factory=list)


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[DomainEventType, list[EventHandler]] = defaultdict(list)

    def on(self, event_type: DomainEventType, handler: EventHandler) -> None:
        event_type = DomainEventType(event_type)
        self._handlers[event_type].append(handler)
        logger.debug("Registered handler %s for %s", _handler_name(handler), event_type.value)

    def handlers_for(self, event_type: DomainEventType) -> list[EventHandler]:
        return list(self._handlers.get(DomainEventType(event_type), []))

    def registered_kinds(self) -> list[DomainEventType]:
        return [kind for kind, handlers in self._handlers.items() if handlers]

    async def emit(self, event_type: DomainEventType, payload: ReservationEventPayload) -> EmitResult:
        event_type = DomainEventType(event_type)
        expected = EVENT_PAYLOADS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(f"{event_type.value} expects {expected.__name__}, got {type(payload).__name__}")

        result = EmitResult(event_type=event_type)
        handlers = self.handlers_for(event_type)
        if not handlers:
            return result

        outcomes = await asyncio.gather(
            *(self._invoke(handler, payload.model_copy(deep=True)) for handler in handlers),
            return_exceptions=True,
        )
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                result.failed.append(_handler_name(handler))
                logger.error(
                    "[EventBus] %s handler %s error: %s",
                    event_type.value,
                    _handler_name(handler),
                    outcome,
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
            else:
                result.handled += 1
        return result

    @staticmethod
    async def _invoke(handler: EventHandler, payload: ReservationEventPayload) -> None:
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
            await handler(payload)
            return
        outcome = await asyncio.to_thread(handler, payload)
        if inspect.isawaitable(outcome):
            await outcome
