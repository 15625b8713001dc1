"""
Seat allocator
Reports seat occupancy per flight and guards seat claims made by bookings
"""
from typing import Iterable, Optional, Set

from database import Flight, BookingStatus, seat_to_store, seat_from_store, get_db_manager
from .errors import ConflictFailure, NotFoundFailure, ValidationFailure
from .transactions import run_in_transaction


class SeatService:
    """Service for seat occupancy and seat claims"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def booked_seats(tx, flight_id: str, exclude_booking_id: Optional[int] = None) -> Set[int]:
        """Zero-based seats held by tickets of non-cancelled bookings"""
        query = """
            SELECT sc.seat
            FROM seat_claims sc
            JOIN tickets t ON sc.ticket_number = t.ticket_number
            JOIN bookings b ON t.booking_id = b.id
            WHERE sc.flight_id = %s AND b.status <> %s
        """
        params = [flight_id, BookingStatus.CANCELLED.value]
        if exclude_booking_id is not None:
            query += " AND b.id <> %s"
            params.append(exclude_booking_id)

        return {seat_from_store(row['seat']) for row in tx.fetch_all(query, params)}

    def get_booked_seats(self, flight_id: str, exclude_booking_id: Optional[int] = None) -> Set[int]:
        """
        Get the seats already taken on a flight

        Args:
            flight_id: Flight code
            exclude_booking_id: Booking whose seats are ignored (the one being modified)

        Returns:
            Set of zero-based seat indices

        Raises:
            NotFoundFailure: If the flight does not exist
        """

        def work(tx):
            if tx.fetch_one("SELECT id FROM flights WHERE id = %s", (flight_id,)) is None:
                raise NotFoundFailure(f"Flight {flight_id} not found")
            return self.booked_seats(tx, flight_id, exclude_booking_id)

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="seat lookup")

    @staticmethod
    def check_seats(tx, flight: Flight, seats: Iterable[Optional[int]],
                    exclude_booking_id: Optional[int] = None) -> None:
        """
        Validate the seats requested for a flight before any ticket is written

        Tickets without a seat are skipped.

        Raises:
            ValidationFailure: Seat outside the cabin
            ConflictFailure: Seat requested twice or already held
        """
        requested = [seat for seat in seats if seat is not None]
        if not requested:
            return

        seen = set()
        for seat in requested:
            if not 0 <= seat < flight.max_seats:
                raise ValidationFailure(
                    f"Seat {seat} is outside flight {flight.id} (0..{flight.max_seats - 1})"
                )
            if seat in seen:
                raise ConflictFailure(f"Seat {seat} is requested more than once")
            seen.add(seat)

        taken = seen & SeatService.booked_seats(tx, flight.id, exclude_booking_id)
        if taken:
            raise ConflictFailure(
                f"Seat(s) {', '.join(str(s) for s in sorted(taken))} already taken on flight {flight.id}"
            )

    @staticmethod
    def claim_seat(tx, flight_id: str, seat: Optional[int], ticket_number: str) -> None:
        """Record the claim backing a ticket's seat; the primary key rejects double claims"""
        if seat is None:
            return
        tx.execute("""
            INSERT INTO seat_claims (flight_id, seat, ticket_number)
            VALUES (%s, %s, %s)
        """, (flight_id, seat_to_store(seat), ticket_number))

    @staticmethod
    def release_booking_seats(tx, booking_id: int) -> int:
        """Drop every seat claim held by a booking's tickets"""
        return tx.execute("""
            DELETE FROM seat_claims
            WHERE ticket_number IN (
                SELECT ticket_number FROM tickets WHERE booking_id = %s
            )
        """, (booking_id,))

    @staticmethod
    def is_seat_collision(exc) -> bool:
        """Whether a store integrity error comes from the seat claim key"""
        return exc.touches('seat_claims')
