from .event_bus import EmitResult, EventBus, EventHandler

__all__ = ["EmitResult", "EventBus", "EventHandler"]
