"""
Luggage service: registration, baggage handling statuses and lost luggage
"""
import logging
from typing import List, Optional

from database import (
    Luggage, LuggageType, LuggageStatus, Ticket, Passenger,
    row_to_luggage, row_to_booking, row_to_flight, seat_from_store, get_db_manager
)
from .errors import NotFoundFailure, ValidationFailure
from .status_machine import check_luggage_transition
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

TRACKING_PREFIX = 'BAG'


def tracking_id_for(luggage_id: int) -> str:
    """Tracking id printed on the bag tag at check-in"""
    return f"{TRACKING_PREFIX}{luggage_id:010d}"


class LuggageService:
    """Service for luggage operations"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def insert_luggage(tx, ticket_number: str, luggage_type: LuggageType) -> None:
        """Register a luggage item on a ticket with status BOOKED"""
        tx.execute("""
            INSERT INTO luggage (luggage_type, status, ticket_number)
            VALUES (%s, %s, %s)
        """, (luggage_type.value, LuggageStatus.BOOKED.value, ticket_number))

    @staticmethod
    def assign_tracking_ids(tx, ticket_number: str) -> List[str]:
        """
        Give every luggage item of the ticket a tracking id

        Items that already carry one keep it.

        Returns:
            All tracking ids of the ticket, in registration order
        """
        rows = tx.fetch_all("""
            SELECT id, tracking_id FROM luggage
            WHERE ticket_number = %s
            ORDER BY id
        """, (ticket_number,))

        tracking_ids = []
        for row in rows:
            tracking_id = row['tracking_id']
            if tracking_id is None:
                tracking_id = tracking_id_for(row['id'])
                tx.execute("UPDATE luggage SET tracking_id = %s WHERE id = %s",
                           (tracking_id, row['id']))
            tracking_ids.append(tracking_id)
        return tracking_ids

    def get_luggage_for_booking(self, booking_id: int) -> List[Luggage]:
        """Luggage registered on the tickets of a booking"""

        def work(tx):
            rows = tx.fetch_all("""
                SELECT l.id, l.luggage_type, l.status, l.ticket_number, l.tracking_id
                FROM luggage l
                JOIN tickets t ON l.ticket_number = t.ticket_number
                WHERE t.booking_id = %s
                ORDER BY l.id
            """, (booking_id,))
            return [row_to_luggage(row) for row in rows]

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="luggage lookup")

    @staticmethod
    def _get_by_tracking_id(tx, tracking_id: str) -> Optional[Luggage]:
        return row_to_luggage(tx.fetch_one("""
            SELECT id, luggage_type, status, ticket_number, tracking_id
            FROM luggage
            WHERE tracking_id = %s
        """, (tracking_id,)))

    def report_luggage_lost(self, tracking_id: str) -> bool:
        """
        Mark the bag carrying the given tracking id as lost

        Args:
            tracking_id: Tracking id assigned at check-in

        Returns:
            True if the bag was marked lost, False if no bag carries the id
            or it was already lost
        """
        if not isinstance(tracking_id, str) or not tracking_id.strip():
            raise ValidationFailure("Tracking id is required")
        tracking_id = tracking_id.strip()

        def work(tx):
            luggage = self._get_by_tracking_id(tx, tracking_id)
            if luggage is None or luggage.status == LuggageStatus.LOST:
                return False

            check_luggage_transition(luggage.status, LuggageStatus.LOST)
            tx.execute("UPDATE luggage SET status = %s WHERE id = %s",
                       (LuggageStatus.LOST.value, luggage.id))
            return True

        reported = run_in_transaction(self.db_manager, work, description="lost luggage report")
        if reported:
            logger.info("Luggage %s reported lost", tracking_id)
        else:
            logger.debug("Lost report for %s changed nothing", tracking_id)
        return reported

    def set_luggage_status(self, tracking_id: str, status) -> Luggage:
        """
        Advance a bag through baggage handling (BOOKED -> LOADED -> WITHDRAWABLE)

        Raises:
            NotFoundFailure: If no bag carries the tracking id
            InvalidTransition: If the move is not allowed
        """
        try:
            status = LuggageStatus(status)
        except ValueError:
            raise ValidationFailure(f"Invalid luggage status {status!r}") from None

        def work(tx):
            luggage = self._get_by_tracking_id(tx, tracking_id)
            if luggage is None:
                raise NotFoundFailure(f"No luggage with tracking id {tracking_id}")

            luggage.status = check_luggage_transition(luggage.status, status)
            tx.execute("UPDATE luggage SET status = %s WHERE id = %s",
                       (status.value, luggage.id))
            return luggage

        return run_in_transaction(self.db_manager, work, description="luggage status update")

    def get_lost_luggage_report(self) -> List[Luggage]:
        """
        Lost luggage with ticket, passenger, booking and flight attached

        Luggage of deleted customers is left out. Newest departures come first.
        """

        def work(tx):
            rows = tx.fetch_all("""
                SELECT
                    l.id, l.luggage_type, l.status, l.ticket_number, l.tracking_id,
                    t.booking_id, t.passenger_ssn, t.seat, t.checked_in,
                    p.first_name, p.last_name, p.birth_date,
                    b.customer_id, b.status AS b_status, b.created_at AS b_created_at,
                    f.id AS f_id, f.company_name, f.departure_time, f.arrival_time,
                    f.max_seats, f.free_seats, f.delay_minutes, f.status AS f_status,
                    f.gate, f.is_arriving, f.city
                FROM luggage l
                JOIN tickets t ON l.ticket_number = t.ticket_number
                JOIN passengers p ON t.passenger_ssn = p.ssn
                JOIN bookings b ON t.booking_id = b.id
                JOIN users u ON b.customer_id = u.id
                JOIN flights f ON t.flight_id = f.id
                WHERE l.status = %s AND u.is_deleted = %s
                ORDER BY f.departure_time DESC, l.id
            """, (LuggageStatus.LOST.value, False))

            report = []
            for row in rows:
                luggage = row_to_luggage(row)
                luggage.ticket = Ticket(
                    ticket_number=row['ticket_number'],
                    booking_id=row['booking_id'],
                    flight_id=row['f_id'],
                    passenger_ssn=row['passenger_ssn'],
                    seat=seat_from_store(row['seat']),
                    checked_in=bool(row['checked_in']),
                    passenger=Passenger(
                        ssn=row['passenger_ssn'],
                        first_name=row['first_name'],
                        last_name=row['last_name'],
                        birth_date=row['birth_date']
                    )
                )
                luggage.booking = row_to_booking({
                    'id': row['booking_id'],
                    'customer_id': row['customer_id'],
                    'flight_id': row['f_id'],
                    'status': row['b_status'],
                    'created_at': row['b_created_at']
                })
                luggage.flight = row_to_flight({
                    'id': row['f_id'],
                    'company_name': row['company_name'],
                    'departure_time': row['departure_time'],
                    'arrival_time': row['arrival_time'],
                    'max_seats': row['max_seats'],
                    'free_seats': row['free_seats'],
                    'delay_minutes': row['delay_minutes'],
                    'status': row['f_status'],
                    'gate': row['gate'],
                    'is_arriving': row['is_arriving'],
                    'city': row['city']
                })
                report.append(luggage)
            return report

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="lost luggage report")
