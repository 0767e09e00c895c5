"""Expected, user-facing failures raised by the scheduling engine."""


class SchedulingError(Exception):
    """Base class for every engine error a caller is expected to handle."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed input, rejected before the ledger is touched."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        return f'{self.field}: {self.message}'


class PastTimeError(SchedulingError):
    """The requested slot does not start strictly in the future."""


class ConflictError(SchedulingError):
    """The slot overlaps active bookings beyond the counsellor's capacity."""


class IllegalTransitionError(SchedulingError):
    """The booking's state or the caller's role does not permit the transition."""


class NotFoundError(SchedulingError):
    """The record does not exist or is not visible to the caller."""
