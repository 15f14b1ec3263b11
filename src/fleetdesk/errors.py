from __future__ import annotations


class FleetDeskError(Exception):
    """Base class for errors surfaced to the caller of a transition."""


class ValidationError(FleetDeskError):
    def __init__(self, message: str, field_errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors


class UniquenessViolation(ValidationError):
    def __init__(self, message: str, target: str | None = None) -> None:
        super().__init__(message)
        self.target = target


class NotFoundError(FleetDeskError):
    pass


class StateConflictError(FleetDeskError):
    def __init__(self, message: str, current_status: str) -> None:
        super().__init__(message)
        self.current_status = current_status


class PermissionDeniedError(FleetDeskError):
    pass
