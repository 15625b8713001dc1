"""
Value objects describing a booking request
"""
import re
from dataclasses import dataclass
from typing import Optional

from database import LuggageType
from .errors import ValidationFailure


class _Unset:
    """Marker for a patch field that was not supplied"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()

_SSN_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9-]{0,31}$')
TICKET_NUMBER_LENGTH = 13


def validate_ssn(ssn) -> str:
    """Normalize and validate a passenger identity key"""
    if not isinstance(ssn, str) or not ssn.strip():
        raise ValidationFailure("Passenger SSN is required")
    ssn = ssn.strip()
    if not _SSN_PATTERN.match(ssn):
        raise ValidationFailure(f"Invalid passenger SSN '{ssn}'")
    return ssn


def validate_ticket_number(ticket_number) -> str:
    """A ticket number is exactly 13 decimal digits"""
    if not isinstance(ticket_number, str) or len(ticket_number) != TICKET_NUMBER_LENGTH \
            or not ticket_number.isdigit():
        raise ValidationFailure(f"Invalid ticket number '{ticket_number}'")
    return ticket_number


@dataclass(frozen=True)
class PassengerPatch:
    """
    Passenger data carried by a booking request

    Only ``ssn`` is required. Each other field is either UNSET (leave the stored
    value alone) or a value to write; None counts as not supplied.
    """
    ssn: str
    first_name: object = UNSET
    last_name: object = UNSET
    birth_date: object = UNSET

    FIELDS = ('first_name', 'last_name', 'birth_date')

    def __post_init__(self):
        object.__setattr__(self, 'ssn', validate_ssn(self.ssn))

    def present_fields(self) -> dict:
        """Fields that carry a value to write, in column order"""
        values = {}
        for name in self.FIELDS:
            value = getattr(self, name)
            if value is not UNSET and value is not None:
                values[name] = value
        return values


@dataclass(frozen=True)
class TicketRequest:
    """One ticket of a booking: passenger, optional number, optional zero-based seat"""
    passenger_ssn: str
    ticket_number: Optional[str] = None
    seat: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'passenger_ssn', validate_ssn(self.passenger_ssn))
        if self.ticket_number is not None:
            validate_ticket_number(self.ticket_number)
        if self.seat is not None and (isinstance(self.seat, bool) or not isinstance(self.seat, int)):
            raise ValidationFailure(f"Seat must be an integer, got {self.seat!r}")


@dataclass(frozen=True)
class LuggageRequest:
    """
    One luggage item, owned by a ticket of the same request

    The owner is given either by ticket number or by position in the ticket list
    (needed when ticket numbers are allocated by the engine).
    """
    luggage_type: LuggageType
    ticket_number: Optional[str] = None
    ticket_index: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.luggage_type, LuggageType):
            try:
                object.__setattr__(self, 'luggage_type', LuggageType(self.luggage_type))
            except ValueError:
                raise ValidationFailure(f"Invalid luggage type {self.luggage_type!r}") from None
        if (self.ticket_number is None) == (self.ticket_index is None):
            raise ValidationFailure("Luggage needs exactly one of ticket_number or ticket_index")
