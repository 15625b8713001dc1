"""
Failure taxonomy surfaced by the services
Every failure is a ValueError so callers written against plain ValueError keep working
"""


class BookingEngineError(ValueError):
    """Base class for every failure raised by the services"""


class ValidationFailure(BookingEngineError):
    """Malformed or missing field"""


class NotFoundFailure(BookingEngineError):
    """Referenced flight, booking, passenger, ticket or account is absent"""


class ConflictFailure(BookingEngineError):
    """Resource already held or uniqueness rule violated"""


class InvalidTransition(ConflictFailure):
    """A status change the state machine does not allow"""

    def __init__(self, kind: str, current, target):
        current_value = getattr(current, 'value', current)
        target_value = getattr(target, 'value', target)
        super().__init__(f"Cannot move {kind} from '{current_value}' to '{target_value}'")
        self.kind = kind
        self.current = current
        self.target = target


class TransactionFailure(BookingEngineError):
    """The store rejected a write or commit"""


class BookingCreationFailed(TransactionFailure):
    """The booking transaction was rolled back by the store"""


class GenerationFailure(BookingEngineError):
    """The ticket number sequence could not produce a number"""
