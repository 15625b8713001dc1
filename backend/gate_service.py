"""
Gate allocator
Hands out gates from a fixed pool shared by all flights that currently hold one
"""
import logging
from typing import Optional, Set

from database import Flight, FlightStatus, row_to_flight, get_db_manager
from database.config import get_settings
from .errors import ConflictFailure, NotFoundFailure, ValidationFailure
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

# Flights in these statuses no longer occupy their gate
GATE_RELEASING_STATUSES = (FlightStatus.CANCELLED, FlightStatus.LANDED)


def holds_gate(flight: Flight) -> bool:
    """Whether the flight occupies a gate in its current status (departures leave theirs)"""
    if flight.status in GATE_RELEASING_STATUSES:
        return False
    return flight.is_arriving or flight.status != FlightStatus.DEPARTED


FLIGHT_COLUMNS = """id, company_name, departure_time, arrival_time, max_seats, free_seats,
                    delay_minutes, status, gate, is_arriving, city"""


def load_flight(tx, flight_id: str, for_update: bool = False) -> Flight:
    """Read a flight inside a transaction or raise NotFoundFailure"""
    query = f"SELECT {FLIGHT_COLUMNS} FROM flights WHERE id = %s"
    if for_update and tx.dialect == 'postgresql':
        query += " FOR UPDATE"
    flight = row_to_flight(tx.fetch_one(query, (flight_id,)))
    if flight is None:
        raise NotFoundFailure(f"Flight {flight_id} not found")
    return flight


def is_gate_collision(exc) -> bool:
    """Whether a store integrity error comes from the active gate index"""
    return exc.touches('ux_flights_active_gate') or exc.touches('flights.gate')


class GateService:
    """Service for gate assignment"""

    def __init__(self, db_manager=None, gate_count: Optional[int] = None):
        self.db_manager = db_manager or get_db_manager()
        self.gate_count = gate_count or get_settings().gate_count

    @staticmethod
    def held_gates(tx, exclude_flight_id: Optional[str] = None) -> Set[int]:
        """Gates held by gate-holding flights"""
        query = """
            SELECT gate FROM flights
            WHERE gate IS NOT NULL AND status NOT IN (%s, %s)
              AND (is_arriving = %s OR status <> %s)
        """
        params = [status.value for status in GATE_RELEASING_STATUSES]
        params += [True, FlightStatus.DEPARTED.value]
        if exclude_flight_id is not None:
            query += " AND id <> %s"
            params.append(exclude_flight_id)
        return {row['gate'] for row in tx.fetch_all(query, params)}

    @staticmethod
    def _check_gate_holder(flight: Flight) -> None:
        if not holds_gate(flight):
            raise ConflictFailure(
                f"Flight {flight.id} is {flight.status.value} and cannot hold a gate"
            )

    @staticmethod
    def assign_gate_in(tx, flight: Flight, gate_count: int) -> Optional[int]:
        """
        Give the flight the lowest free gate within an open transaction

        Returns:
            The flight's gate, or None when every gate is held
        """
        if flight.gate is not None:
            return flight.gate

        held = GateService.held_gates(tx)
        for gate in range(1, gate_count + 1):
            if gate not in held:
                tx.execute("UPDATE flights SET gate = %s WHERE id = %s", (gate, flight.id))
                flight.gate = gate
                return gate

        logger.warning("No gate available for flight %s (all %d gates held)", flight.id, gate_count)
        return None

    def assign_gate(self, flight_id: str) -> Optional[int]:
        """
        Assign the lowest free gate to a flight

        A flight that already has a gate keeps it.

        Args:
            flight_id: Flight code

        Returns:
            Gate number, or None if every gate is held

        Raises:
            NotFoundFailure: If the flight does not exist
            ConflictFailure: If the flight is landed, cancelled or a departed departure
        """

        def work(tx):
            flight = load_flight(tx, flight_id, for_update=True)
            self._check_gate_holder(flight)
            return self.assign_gate_in(tx, flight, self.gate_count)

        gate = run_in_transaction(self.db_manager, work, retry_if=is_gate_collision,
                                  description="gate assignment")
        if gate is not None:
            logger.info("Flight %s at gate %d", flight_id, gate)
        return gate

    def set_gate(self, flight_id: str, gate: int) -> int:
        """
        Put a flight at a specific gate (operator override)

        Raises:
            ValidationFailure: If the gate is outside the pool
            ConflictFailure: If another flight holds the gate
        """
        if isinstance(gate, bool) or not isinstance(gate, int) or not 1 <= gate <= self.gate_count:
            raise ValidationFailure(f"Gate must be between 1 and {self.gate_count}, got {gate!r}")

        def work(tx):
            flight = load_flight(tx, flight_id, for_update=True)
            self._check_gate_holder(flight)
            if gate in self.held_gates(tx, exclude_flight_id=flight_id):
                raise ConflictFailure(f"Gate {gate} is held by another flight")
            tx.execute("UPDATE flights SET gate = %s WHERE id = %s", (gate, flight_id))
            return gate

        def gate_taken(exc):
            return ConflictFailure(f"Gate {gate} is held by another flight")

        gate = run_in_transaction(self.db_manager, work, on_integrity=gate_taken,
                                  description="gate override")
        logger.info("Flight %s moved to gate %d", flight_id, gate)
        return gate

    def release_gate(self, flight_id: str) -> None:
        """Clear a flight's gate"""

        def work(tx):
            load_flight(tx, flight_id)
            tx.execute("UPDATE flights SET gate = NULL WHERE id = %s", (flight_id,))

        run_in_transaction(self.db_manager, work, description="gate release")
