"""
Flight management service
Handles flight creation, lookups and the operational status changes
"""
import logging
import re
from datetime import datetime
from typing import List, Optional

from database import Flight, FlightStatus, row_to_flight, get_db_manager
from database.config import get_settings
from .booking_service import BookingService
from .errors import ConflictFailure, ValidationFailure
from .gate_service import FLIGHT_COLUMNS, GateService, is_gate_collision, load_flight
from .status_machine import check_flight_transition, is_terminal
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

_FLIGHT_CODE = re.compile(r'^[A-Za-z0-9]{1,10}$')


class FlightService:
    """Service for flight management operations"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    def create_flight(self, flight_id: str, company_name: str, departure_time: datetime,
                      arrival_time: datetime, max_seats: int, city: str,
                      is_arriving: bool = False) -> Flight:
        """
        Create a new flight

        Args:
            flight_id: Unique alphanumeric flight code
            company_name: Operating company
            departure_time: Scheduled departure
            arrival_time: Scheduled arrival
            max_seats: Cabin size
            city: Origin for arriving flights, destination for departing ones
            is_arriving: Direction of the flight

        Returns:
            Created flight object (status programmed, every seat free)
        """
        if not isinstance(flight_id, str) or not _FLIGHT_CODE.match(flight_id):
            raise ValidationFailure(f"Invalid flight code {flight_id!r}")
        if not company_name or not city:
            raise ValidationFailure("Company name and city are required")
        if isinstance(max_seats, bool) or not isinstance(max_seats, int) or max_seats <= 0:
            raise ValidationFailure("Max seats must be a positive integer")
        if not isinstance(departure_time, datetime) or not isinstance(arrival_time, datetime):
            raise ValidationFailure("Departure and arrival times are required")
        if arrival_time <= departure_time:
            raise ValidationFailure("Arrival time must be after departure time")

        def work(tx):
            if tx.fetch_one("SELECT id FROM flights WHERE id = %s", (flight_id,)):
                raise ConflictFailure(f"Flight {flight_id} already exists")

            tx.execute("""
                INSERT INTO flights (id, company_name, departure_time, arrival_time,
                                     max_seats, free_seats, delay_minutes, status,
                                     gate, is_arriving, city)
                VALUES (%s, %s, %s, %s, %s, %s, 0, %s, NULL, %s, %s)
            """, (flight_id, company_name, departure_time, arrival_time, max_seats, max_seats,
                  FlightStatus.PROGRAMMED.value, bool(is_arriving), city))
            return load_flight(tx, flight_id)

        def duplicate(exc):
            return ConflictFailure(f"Flight {flight_id} already exists")

        flight = run_in_transaction(self.db_manager, work, on_integrity=duplicate,
                                    description="flight creation")
        logger.info("Created flight %s (%s %s)", flight_id,
                    'from' if flight.is_arriving else 'to', flight.city)
        return flight

    def get_flight(self, flight_id: str) -> Optional[Flight]:
        """Get flight by code"""

        def work(tx):
            return row_to_flight(tx.fetch_one(
                f"SELECT {FLIGHT_COLUMNS} FROM flights WHERE id = %s", (flight_id,)
            ))

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="flight lookup")

    def list_flights(self, limit: int = 100, offset: int = 0) -> List[Flight]:
        """
        List flights with pagination

        Args:
            limit: Maximum number of flights to return
            offset: Number of flights to skip

        Returns:
            Flights, latest departure first
        """

        def work(tx):
            rows = tx.fetch_all(f"""
                SELECT {FLIGHT_COLUMNS} FROM flights
                ORDER BY departure_time DESC, id
                LIMIT %s OFFSET %s
            """, (limit, offset))
            return [row_to_flight(row) for row in rows]

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="flight listing")

    def start_check_in(self, flight_id: str) -> Optional[int]:
        """
        Open check-in for a departing flight

        Moves the flight to aboutToDepart and gives it a gate if it has none.

        Returns:
            The flight's gate, or None if every gate is held
        """
        gate_count = get_settings().gate_count

        def work(tx):
            flight = load_flight(tx, flight_id, for_update=True)
            if flight.is_arriving:
                raise ValidationFailure(f"Flight {flight_id} is arriving; check-in applies to departures")

            check_flight_transition(flight.status, FlightStatus.ABOUT_TO_DEPART)
            tx.execute("UPDATE flights SET status = %s WHERE id = %s",
                       (FlightStatus.ABOUT_TO_DEPART.value, flight_id))
            return GateService.assign_gate_in(tx, flight, gate_count)

        gate = run_in_transaction(self.db_manager, work, retry_if=is_gate_collision,
                                  description="check-in start")
        logger.info("Check-in open for flight %s (gate %s)", flight_id, gate)
        return gate

    def add_delay(self, minutes: int, flight_id: str) -> int:
        """
        Add minutes to a flight's accumulated delay

        Returns:
            Total delay in minutes
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            raise ValidationFailure(f"Delay must be a non-negative number of minutes, got {minutes!r}")

        def work(tx):
            flight = load_flight(tx, flight_id, for_update=True)
            if is_terminal(flight.status):
                raise ConflictFailure(f"Flight {flight_id} is {flight.status.value}; delay not recorded")

            tx.execute("UPDATE flights SET delay_minutes = delay_minutes + %s WHERE id = %s",
                       (minutes, flight_id))
            return flight.delay_minutes + minutes

        total = run_in_transaction(self.db_manager, work, description="delay update")
        logger.info("Flight %s delayed by %d minutes (total %d)", flight_id, minutes, total)
        return total

    def set_flight_status(self, status, flight_id: str) -> Flight:
        """
        Move a flight to a new status

        Cancelling a flight cancels its active bookings and frees their seats.

        Raises:
            NotFoundFailure: If the flight does not exist
            InvalidTransition: If the move is not allowed
        """
        try:
            status = FlightStatus(status)
        except ValueError:
            raise ValidationFailure(f"Invalid flight status {status!r}") from None

        def work(tx):
            flight = load_flight(tx, flight_id, for_update=True)
            check_flight_transition(flight.status, status)
            tx.execute("UPDATE flights SET status = %s WHERE id = %s", (status.value, flight_id))
            flight.status = status

            if status == FlightStatus.CANCELLED:
                cancelled = BookingService.cancel_bookings_for_flight(tx, flight)
                logger.info("Flight %s cancelled with %d active booking(s)", flight_id, cancelled)
                flight.free_seats = flight.max_seats
            return flight

        flight = run_in_transaction(self.db_manager, work, description="flight status update")
        logger.info("Flight %s is now %s", flight_id, status.value)
        return flight
