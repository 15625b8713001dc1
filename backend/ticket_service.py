"""
Ticket service: ticket number sequence, ticket reads and passenger check-in
"""
import logging
from typing import Dict, Iterable, List, Optional

from database import (
    Ticket, Passenger, BookingStatus, FlightStatus,
    row_to_ticket, get_db_manager
)
from .errors import GenerationFailure, NotFoundFailure, ConflictFailure, ValidationFailure
from .luggage_service import LuggageService
from .requests import TICKET_NUMBER_LENGTH, validate_ticket_number
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

# Temporary tickets used while a booking is modified carry this prefix
PLACEHOLDER_PREFIX = 'TMP'
MAX_TICKET_NUMBER = 10 ** TICKET_NUMBER_LENGTH - 1

CHECK_IN_OPEN_STATUSES = {FlightStatus.ABOUT_TO_DEPART, FlightStatus.DELAYED}


class TicketService:
    """Service for ticket numbering, ticket lookups and check-in"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def _parse_number(value: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise GenerationFailure(f"Stored ticket number '{value}' is not a valid number") from None

    @staticmethod
    def render_number(number: int) -> str:
        """Render a ticket number as a zero-padded 13 digit string"""
        if number > MAX_TICKET_NUMBER:
            raise GenerationFailure("Ticket number space is exhausted")
        return str(number).zfill(TICKET_NUMBER_LENGTH)

    @staticmethod
    def highest_issued(tx) -> Optional[int]:
        """
        Highest ticket number ever issued, re-read from the store

        Combines the live tickets with the sequence high-water mark so numbers
        of replaced tickets are never handed out again. None when no ticket was
        ever issued.
        """
        row = tx.fetch_one("""
            SELECT MAX(ticket_number) AS max_ticket_number
            FROM tickets
            WHERE ticket_number NOT LIKE %s
        """, (PLACEHOLDER_PREFIX + '%',))
        seq_row = tx.fetch_one("SELECT last_issued FROM ticket_sequence WHERE id = 1")

        candidates = []
        if row and row['max_ticket_number'] is not None:
            candidates.append(TicketService._parse_number(row['max_ticket_number']))
        if seq_row and seq_row['last_issued'] is not None:
            candidates.append(TicketService._parse_number(seq_row['last_issued']))

        highest = max(candidates, default=0)
        return highest or None

    @staticmethod
    def record_issued(tx, ticket_numbers: Iterable[str]) -> None:
        """Raise the sequence high-water mark to cover the given numbers"""
        numbers = [n for n in ticket_numbers if not n.startswith(PLACEHOLDER_PREFIX)]
        if not numbers:
            return
        top = max(numbers)
        tx.execute("""
            UPDATE ticket_sequence
            SET last_issued = %s
            WHERE id = 1 AND last_issued < %s
        """, (top, top))

    def next_ticket_number(self, offset: int = 0) -> str:
        """
        Preview the next ticket number

        Args:
            offset: How many numbers to skip (the i-th ticket of a request uses i)

        Returns:
            13 digit zero-padded ticket number; nothing is reserved

        Raises:
            GenerationFailure: If there is nothing to seed from or the stored
                value is not a number
        """
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationFailure(f"Offset must be a non-negative integer, got {offset!r}")

        def work(tx):
            highest = self.highest_issued(tx)
            if highest is None:
                raise GenerationFailure("No ticket has been issued yet; cannot seed the sequence")
            return self.render_number(highest + offset + 1)

        return run_in_transaction(self.db_manager, work, description="ticket number generation")

    def get_tickets_for_booking(self, booking_id: int) -> List[Ticket]:
        """Tickets of a booking with their passenger attached"""

        def work(tx):
            rows = tx.fetch_all("""
                SELECT t.ticket_number, t.booking_id, t.flight_id, t.passenger_ssn,
                       t.seat, t.checked_in,
                       p.first_name, p.last_name, p.birth_date
                FROM tickets t
                JOIN passengers p ON t.passenger_ssn = p.ssn
                WHERE t.booking_id = %s
                ORDER BY t.ticket_number
            """, (booking_id,))

            tickets = []
            for row in rows:
                ticket = row_to_ticket(row)
                ticket.passenger = Passenger(
                    ssn=row['passenger_ssn'],
                    first_name=row['first_name'],
                    last_name=row['last_name'],
                    birth_date=row['birth_date']
                )
                tickets.append(ticket)
            return tickets

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="ticket lookup")

    def set_check_ins(self, checked_in: Iterable[str],
                      not_checked_in: Iterable[str] = ()) -> Dict[str, List[str]]:
        """
        Record which passengers checked in

        Newly checked-in tickets get a tracking id on each of their luggage
        items, which is how baggage handling follows the bag from then on.

        Args:
            checked_in: Ticket numbers to mark as checked in
            not_checked_in: Ticket numbers to mark as not checked in

        Returns:
            Tracking ids per checked-in ticket
        """
        checked_in = [validate_ticket_number(n) for n in checked_in]
        not_checked_in = [validate_ticket_number(n) for n in not_checked_in]

        overlap = set(checked_in) & set(not_checked_in)
        if overlap:
            raise ValidationFailure(f"Tickets listed both ways: {', '.join(sorted(overlap))}")

        def work(tx):
            for ticket_number in checked_in + not_checked_in:
                row = tx.fetch_one("""
                    SELECT b.status AS booking_status, f.status AS flight_status
                    FROM tickets t
                    JOIN bookings b ON t.booking_id = b.id
                    JOIN flights f ON t.flight_id = f.id
                    WHERE t.ticket_number = %s
                """, (ticket_number,))
                if row is None:
                    raise NotFoundFailure(f"Ticket {ticket_number} not found")
                if row['booking_status'] == BookingStatus.CANCELLED.value:
                    raise ConflictFailure(f"Ticket {ticket_number} belongs to a cancelled booking")
                if FlightStatus(row['flight_status']) not in CHECK_IN_OPEN_STATUSES:
                    raise ConflictFailure(
                        f"Check-in is not open for ticket {ticket_number} "
                        f"(flight status: {row['flight_status']})"
                    )

            tracking = {}
            for ticket_number in checked_in:
                tx.execute("UPDATE tickets SET checked_in = %s WHERE ticket_number = %s",
                           (True, ticket_number))
                tracking[ticket_number] = LuggageService.assign_tracking_ids(tx, ticket_number)

            for ticket_number in not_checked_in:
                tx.execute("UPDATE tickets SET checked_in = %s WHERE ticket_number = %s",
                           (False, ticket_number))

            return tracking

        tracking = run_in_transaction(self.db_manager, work, description="check-in")
        logger.info("Checked in %d ticket(s), reset %d", len(checked_in), len(not_checked_in))
        return tracking

    def get_tracking_ids(self, ticket_numbers: Iterable[str]) -> Dict[str, List[str]]:
        """Tracking ids assigned to the luggage of each ticket"""
        ticket_numbers = list(ticket_numbers)

        def work(tx):
            result = {}
            for ticket_number in ticket_numbers:
                rows = tx.fetch_all("""
                    SELECT tracking_id FROM luggage
                    WHERE ticket_number = %s AND tracking_id IS NOT NULL
                    ORDER BY id
                """, (ticket_number,))
                result[ticket_number] = [row['tracking_id'] for row in rows]
            return result

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="tracking id lookup")
