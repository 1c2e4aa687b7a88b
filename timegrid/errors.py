from typing import Optional


class TimeGridError(Exception):
    """Base class for every error raised by the time grid."""


class ValidationError(TimeGridError):
    """Input rejected before it reaches storage (empty name, bad date or time)."""


class InvalidTransition(ValidationError):
    """An interaction event that the selection state machine cannot accept right now."""


class DuplicateNameError(TimeGridError):
    def __init__(self, name: str):
        super().__init__(f"Category with name {name!r} already exists")
        self.name = name


class NotFoundError(TimeGridError):
    def __init__(self, kind: str, key):
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class PersistenceError(TimeGridError):
    """Storage failure. Carries the operation that was attempted; the write may not have happened."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        super().__init__(f"Storage operation {operation!r} failed")
        self.operation = operation
        self.cause = cause
