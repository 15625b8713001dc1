"""
Database models for the airport booking engine
Plain Python classes and enums (no ORM)
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
import enum


class UserRole(enum.Enum):
    """User role enumeration (customers and admins are disjoint)"""
    ADMIN = "admin"
    CUSTOMER = "customer"


class BookingStatus(enum.Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class FlightStatus(enum.Enum):
    """Flight status enumeration"""
    PROGRAMMED = "programmed"
    ABOUT_TO_DEPART = "aboutToDepart"
    DEPARTED = "departed"
    DELAYED = "delayed"
    LANDED = "landed"
    CANCELLED = "cancelled"


class LuggageType(enum.Enum):
    """Luggage type enumeration"""
    CARRY_ON = "carry_on"
    CHECKED = "checked"


class LuggageStatus(enum.Enum):
    """Luggage status enumeration"""
    BOOKED = "BOOKED"
    LOADED = "LOADED"
    WITHDRAWABLE = "WITHDRAWABLE"
    LOST = "LOST"


def seat_to_store(seat: Optional[int]) -> Optional[int]:
    """Zero-based seat index to the one-based persisted form"""
    return None if seat is None else seat + 1


def seat_from_store(seat: Optional[int]) -> Optional[int]:
    """One-based persisted seat to the zero-based index used by the services"""
    return None if seat is None else seat - 1


@dataclass
class User:
    """Customer or admin account"""
    id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password_hash: Optional[str] = None
    role: Optional[UserRole] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = None

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role={self.role.value if self.role else None})>"


@dataclass
class Flight:
    """Flight with schedule, capacity, gate and status"""
    id: Optional[str] = None
    company_name: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    max_seats: Optional[int] = None
    free_seats: Optional[int] = None
    delay_minutes: int = 0
    status: Optional[FlightStatus] = None
    gate: Optional[int] = None
    is_arriving: bool = False
    city: Optional[str] = None

    @property
    def date(self) -> Optional[date]:
        """Scheduled date of the flight"""
        return self.departure_time.date() if self.departure_time else None

    def __repr__(self):
        direction = 'from' if self.is_arriving else 'to'
        return f"<Flight(id='{self.id}', {direction}='{self.city}', status={self.status.value if self.status else None})>"


@dataclass
class Passenger:
    """Passenger keyed by national identity string"""
    ssn: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birth_date: Optional[date] = None

    def __repr__(self):
        return f"<Passenger(ssn='{self.ssn}', name='{self.first_name} {self.last_name}')>"


@dataclass
class Booking:
    """Booking of one or more passengers on one flight"""
    id: Optional[int] = None
    customer_id: Optional[int] = None
    flight_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    created_at: Optional[datetime] = None

    # For joined queries
    flight: Optional[Flight] = None
    customer: Optional[User] = None
    tickets: Optional[list] = None

    def __repr__(self):
        return f"<Booking(id={self.id}, flight='{self.flight_id}', status={self.status.value if self.status else None})>"


@dataclass
class Ticket:
    """Per-passenger unit of a booking (seat is zero-based)"""
    ticket_number: Optional[str] = None
    booking_id: Optional[int] = None
    flight_id: Optional[str] = None
    passenger_ssn: Optional[str] = None
    seat: Optional[int] = None
    checked_in: bool = False

    # For joined queries
    passenger: Optional[Passenger] = None

    def __repr__(self):
        return f"<Ticket(number='{self.ticket_number}', booking={self.booking_id}, seat={self.seat})>"


@dataclass
class Luggage:
    """Luggage item registered on a ticket"""
    id: Optional[int] = None
    luggage_type: Optional[LuggageType] = None
    status: Optional[LuggageStatus] = None
    ticket_number: Optional[str] = None
    tracking_id: Optional[str] = None

    # For joined queries
    ticket: Optional[Ticket] = None
    booking: Optional[Booking] = None
    flight: Optional[Flight] = None

    def __repr__(self):
        return f"<Luggage(id={self.id}, type={self.luggage_type.value if self.luggage_type else None}, status={self.status.value if self.status else None})>"


def row_to_user(row) -> User:
    """Convert database row to User object"""
    if not row:
        return None
    return User(
        id=row['id'],
        username=row['username'],
        email=row['email'],
        password_hash=row['password_hash'],
        role=UserRole(row['role']) if row['role'] else None,
        is_deleted=bool(row.get('is_deleted', False)),
        created_at=row.get('created_at')
    )


def row_to_flight(row) -> Flight:
    """Convert database row to Flight object"""
    if not row:
        return None
    return Flight(
        id=row['id'],
        company_name=row['company_name'],
        departure_time=row['departure_time'],
        arrival_time=row['arrival_time'],
        max_seats=row['max_seats'],
        free_seats=row['free_seats'],
        delay_minutes=row['delay_minutes'],
        status=FlightStatus(row['status']) if row['status'] else None,
        gate=row.get('gate'),
        is_arriving=bool(row['is_arriving']),
        city=row['city']
    )


def row_to_passenger(row) -> Passenger:
    """Convert database row to Passenger object"""
    if not row:
        return None
    return Passenger(
        ssn=row['ssn'],
        first_name=row.get('first_name'),
        last_name=row.get('last_name'),
        birth_date=row.get('birth_date')
    )


def row_to_booking(row) -> Booking:
    """Convert database row to Booking object"""
    if not row:
        return None
    return Booking(
        id=row['id'],
        customer_id=row['customer_id'],
        flight_id=row['flight_id'],
        status=BookingStatus(row['status']) if row['status'] else None,
        created_at=row.get('created_at')
    )


def row_to_ticket(row) -> Ticket:
    """Convert database row to Ticket object"""
    if not row:
        return None
    return Ticket(
        ticket_number=row['ticket_number'],
        booking_id=row['booking_id'],
        flight_id=row['flight_id'],
        passenger_ssn=row['passenger_ssn'],
        seat=seat_from_store(row.get('seat')),
        checked_in=bool(row.get('checked_in', False))
    )


def row_to_luggage(row) -> Luggage:
    """Convert database row to Luggage object"""
    if not row:
        return None
    return Luggage(
        id=row['id'],
        luggage_type=LuggageType(row['luggage_type']) if row['luggage_type'] else None,
        status=LuggageStatus(row['status']) if row['status'] else None,
        ticket_number=row['ticket_number'],
        tracking_id=row.get('tracking_id')
    )
