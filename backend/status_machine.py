"""
Status state machines for flights, bookings and luggage
"""
from database import FlightStatus, BookingStatus, LuggageStatus
from .errors import InvalidTransition

# programmed is only ever an initial state; nothing transitions into it
FLIGHT_TRANSITIONS = {
    FlightStatus.PROGRAMMED: {FlightStatus.ABOUT_TO_DEPART, FlightStatus.DELAYED, FlightStatus.CANCELLED},
    FlightStatus.ABOUT_TO_DEPART: {FlightStatus.ABOUT_TO_DEPART, FlightStatus.DEPARTED,
                                   FlightStatus.DELAYED, FlightStatus.CANCELLED},
    FlightStatus.DELAYED: {FlightStatus.DELAYED, FlightStatus.ABOUT_TO_DEPART,
                           FlightStatus.DEPARTED, FlightStatus.CANCELLED},
    FlightStatus.DEPARTED: {FlightStatus.LANDED, FlightStatus.CANCELLED},
    FlightStatus.LANDED: set(),
    FlightStatus.CANCELLED: set(),
}

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
}

LUGGAGE_TRANSITIONS = {
    LuggageStatus.BOOKED: {LuggageStatus.LOADED, LuggageStatus.LOST},
    LuggageStatus.LOADED: {LuggageStatus.WITHDRAWABLE, LuggageStatus.LOST},
    LuggageStatus.WITHDRAWABLE: {LuggageStatus.LOST},
    LuggageStatus.LOST: set(),
}

# Statuses in which a booking can still be taken or changed
BOOKABLE_FLIGHT_STATUSES = {FlightStatus.PROGRAMMED, FlightStatus.ABOUT_TO_DEPART, FlightStatus.DELAYED}

INITIAL_BOOKING_STATUSES = {BookingStatus.PENDING, BookingStatus.CONFIRMED}


def is_terminal(status) -> bool:
    """Whether no transition leaves the given status"""
    for table in (FLIGHT_TRANSITIONS, BOOKING_TRANSITIONS, LUGGAGE_TRANSITIONS):
        if status in table:
            return not table[status]
    raise KeyError(status)


def check_flight_transition(current: FlightStatus, target: FlightStatus) -> FlightStatus:
    if target not in FLIGHT_TRANSITIONS[current]:
        raise InvalidTransition('flight', current, target)
    return target


def check_booking_transition(current: BookingStatus, target: BookingStatus) -> BookingStatus:
    if target not in BOOKING_TRANSITIONS[current]:
        raise InvalidTransition('booking', current, target)
    return target


def check_luggage_transition(current: LuggageStatus, target: LuggageStatus) -> LuggageStatus:
    if target not in LUGGAGE_TRANSITIONS[current]:
        raise InvalidTransition('luggage', current, target)
    return target
