"""
Booking service
Creates, modifies and cancels bookings as single SERIALIZABLE transactions
spanning bookings, passengers, tickets, seat claims and luggage
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from database import (
    Booking, Flight, BookingStatus,
    row_to_booking, row_to_flight, seat_to_store, get_db_manager
)
from .errors import (
    BookingEngineError, BookingCreationFailed, ConflictFailure,
    GenerationFailure, NotFoundFailure, ValidationFailure
)
from .gate_service import load_flight
from .luggage_service import LuggageService
from .passenger_service import PassengerService
from .requests import PassengerPatch, TicketRequest, LuggageRequest
from .seat_service import SeatService
from .status_machine import (
    BOOKABLE_FLIGHT_STATUSES, INITIAL_BOOKING_STATUSES, check_booking_transition
)
from .ticket_service import PLACEHOLDER_PREFIX, TicketService
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

_BOOKING_COLS = "id, customer_id, flight_id, status, created_at"


def _is_ticket_collision(exc) -> bool:
    return exc.touches('tickets_pkey') or exc.touches('tickets.ticket_number')


def _booking_integrity_failure(exc) -> Exception:
    """Failure reported for an integrity violation that survived the retries"""
    if SeatService.is_seat_collision(exc):
        return ConflictFailure("A requested seat was taken by a concurrent booking")
    if _is_ticket_collision(exc):
        return ConflictFailure("A requested ticket number has already been issued")
    logger.error("Booking rejected by the store: %s", exc)
    return BookingCreationFailed(f"Booking could not be stored: {exc}")


def _coerce(items, cls, label):
    if items is None:
        return []
    coerced = []
    for item in items:
        if isinstance(item, cls):
            coerced.append(item)
        elif isinstance(item, dict):
            coerced.append(cls(**item))
        else:
            raise ValidationFailure(f"Invalid {label} entry: {item!r}")
    return coerced


class BookingService:
    """Service for booking operations with transaction safety"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def recompute_free_seats(tx, flight: Flight) -> int:
        """Set free seats to capacity minus tickets of non-cancelled bookings"""
        row = tx.fetch_one("""
            SELECT COUNT(*) AS ticket_count
            FROM tickets t
            JOIN bookings b ON t.booking_id = b.id
            WHERE t.flight_id = %s AND b.status <> %s
        """, (flight.id, BookingStatus.CANCELLED.value))

        free_seats = flight.max_seats - row['ticket_count']
        if free_seats < 0:
            raise ConflictFailure(f"Flight {flight.id} has no seats left")

        tx.execute("UPDATE flights SET free_seats = %s WHERE id = %s", (free_seats, flight.id))
        flight.free_seats = free_seats
        return free_seats

    @staticmethod
    def cancel_bookings_for_flight(tx, flight: Flight) -> int:
        """Cancel every active booking of a flight and free their seats"""
        rows = tx.fetch_all("""
            SELECT id, status FROM bookings
            WHERE flight_id = %s AND status <> %s
        """, (flight.id, BookingStatus.CANCELLED.value))

        for row in rows:
            check_booking_transition(BookingStatus(row['status']), BookingStatus.CANCELLED)
            tx.execute("UPDATE bookings SET status = %s WHERE id = %s",
                       (BookingStatus.CANCELLED.value, row['id']))
            SeatService.release_booking_seats(tx, row['id'])

        BookingService.recompute_free_seats(tx, flight)
        return len(rows)

    @staticmethod
    def _load_booking(tx, booking_id: int) -> Booking:
        booking = row_to_booking(tx.fetch_one(
            f"SELECT {_BOOKING_COLS} FROM bookings WHERE id = %s", (booking_id,)
        ))
        if booking is None:
            raise NotFoundFailure(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _validate_request(passengers: List[PassengerPatch], tickets: List[TicketRequest],
                          luggages: List[LuggageRequest]) -> None:
        if not passengers:
            raise ValidationFailure("A booking needs at least one passenger")
        if not tickets:
            raise ValidationFailure("A booking needs at least one ticket")

        ssns = [p.ssn for p in passengers]
        if len(set(ssns)) != len(ssns):
            raise ValidationFailure("The same passenger appears more than once")

        ticket_ssns = [t.passenger_ssn for t in tickets]
        if len(set(ticket_ssns)) != len(ticket_ssns):
            raise ValidationFailure("A passenger can hold only one ticket per booking")
        if set(ticket_ssns) != set(ssns):
            raise ValidationFailure("Every passenger needs exactly one ticket")

        supplied = [t.ticket_number for t in tickets if t.ticket_number is not None]
        if len(set(supplied)) != len(supplied):
            raise ValidationFailure("The same ticket number is requested more than once")

        for luggage in luggages:
            if luggage.ticket_index is not None:
                if isinstance(luggage.ticket_index, bool) or \
                        not 0 <= luggage.ticket_index < len(tickets):
                    raise ValidationFailure(f"Luggage refers to unknown ticket #{luggage.ticket_index}")
            elif luggage.ticket_number not in supplied:
                raise ValidationFailure(
                    f"Luggage refers to ticket {luggage.ticket_number}, which is not part of the booking"
                )

    @staticmethod
    def _check_bookable(flight: Flight) -> None:
        if flight.status not in BOOKABLE_FLIGHT_STATUSES:
            raise ConflictFailure(
                f"Flight {flight.id} is not available for booking (status: {flight.status.value})"
            )

    @staticmethod
    def _resolve_ticket_numbers(tx, tickets: List[TicketRequest],
                                reissuable: Sequence[str] = ()) -> List[str]:
        """
        Final ticket numbers for a request

        Supplied numbers must lie above every number issued so far, unless they
        belong to ``reissuable`` (the tickets of the booking being modified).
        Missing numbers are allocated above everything issued or supplied.
        """
        highest = TicketService.highest_issued(tx) or 0

        supplied = [t.ticket_number for t in tickets if t.ticket_number is not None]
        for number in supplied:
            if number not in reissuable and int(number) <= highest:
                raise ConflictFailure(f"Ticket number {number} has already been issued")

        missing = sum(1 for t in tickets if t.ticket_number is None)
        if missing:
            base = max([highest] + [int(n) for n in supplied if n not in reissuable])
            if base == 0:
                raise GenerationFailure("No ticket has been issued yet; supply the first ticket number")
            allocated = iter(TicketService.render_number(base + i + 1) for i in range(missing))
        else:
            allocated = iter(())

        return [t.ticket_number if t.ticket_number is not None else next(allocated)
                for t in tickets]

    @staticmethod
    def _insert_tickets(tx, booking_id: int, flight: Flight, passengers: List[PassengerPatch],
                        tickets: List[TicketRequest], luggages: List[LuggageRequest],
                        ticket_numbers: List[str]) -> None:
        """Upsert passengers, then write tickets with their seat claims, then luggage"""
        for patch in passengers:
            PassengerService.upsert_passenger(tx, patch)

        for ticket, number in zip(tickets, ticket_numbers):
            tx.execute("""
                INSERT INTO tickets (ticket_number, booking_id, flight_id, passenger_ssn, seat, checked_in)
                VALUES (%s, %s, %s, %s, %s, %s)
            """, (number, booking_id, flight.id, ticket.passenger_ssn,
                  seat_to_store(ticket.seat), False))
            SeatService.claim_seat(tx, flight.id, ticket.seat, number)

        TicketService.record_issued(tx, ticket_numbers)

        for luggage in luggages:
            owner = luggage.ticket_number
            if owner is None:
                owner = ticket_numbers[luggage.ticket_index]
            LuggageService.insert_luggage(tx, owner, luggage.luggage_type)

    def create_booking(self, customer_id: int, flight_id: str, booking_status,
                       passengers, tickets, luggages=()) -> int:
        """
        Create a booking with its passengers, tickets and luggage in one transaction

        Args:
            customer_id: Booking customer
            flight_id: Booked flight
            booking_status: Initial status, pending or confirmed
            passengers: PassengerPatch per passenger
            tickets: TicketRequest per passenger
            luggages: LuggageRequest per luggage item

        Returns:
            ID of the created booking

        Raises:
            ValidationFailure, NotFoundFailure, ConflictFailure: Request rejected
            BookingCreationFailed: The store failed to write the booking
        """
        passengers = _coerce(passengers, PassengerPatch, 'passenger')
        tickets = _coerce(tickets, TicketRequest, 'ticket')
        luggages = _coerce(luggages, LuggageRequest, 'luggage')

        try:
            booking_status = BookingStatus(booking_status)
        except ValueError:
            raise ValidationFailure(f"Invalid booking status {booking_status!r}") from None
        if booking_status not in INITIAL_BOOKING_STATUSES:
            raise ValidationFailure(f"A booking cannot start as {booking_status.value}")

        self._validate_request(passengers, tickets, luggages)

        def work(tx):
            customer = tx.fetch_one("""
                SELECT id FROM users
                WHERE id = %s AND role = 'customer' AND is_deleted = %s
            """, (customer_id, False))
            if customer is None:
                raise NotFoundFailure(f"Customer {customer_id} not found")

            flight = load_flight(tx, flight_id, for_update=True)
            self._check_bookable(flight)
            if len(tickets) > flight.free_seats:
                raise ConflictFailure(
                    f"Flight {flight_id} has {flight.free_seats} free seat(s), {len(tickets)} requested"
                )
            SeatService.check_seats(tx, flight, [t.seat for t in tickets])
            ticket_numbers = self._resolve_ticket_numbers(tx, tickets)

            row = tx.fetch_one("""
                INSERT INTO bookings (customer_id, flight_id, status, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING id
            """, (customer_id, flight_id, booking_status.value, datetime.now()))
            booking_id = row['id']

            self._insert_tickets(tx, booking_id, flight, passengers, tickets, luggages, ticket_numbers)
            self.recompute_free_seats(tx, flight)
            return booking_id, ticket_numbers

        try:
            booking_id, ticket_numbers = run_in_transaction(
                self.db_manager, work,
                retry_if=_is_ticket_collision,
                on_integrity=_booking_integrity_failure,
                failure=BookingCreationFailed,
                description="booking creation"
            )
        except BookingEngineError as e:
            logger.warning("Booking on flight %s rejected: %s", flight_id, e)
            raise

        logger.info("Created booking %d on flight %s with tickets %s",
                    booking_id, flight_id, ', '.join(ticket_numbers))
        return booking_id

    def modify_booking(self, booking_id: int, flight_id: str, passengers, tickets,
                       luggages=(), booking_status=None) -> None:
        """
        Replace the tickets and luggage of a booking in one transaction

        A placeholder ticket keeps the booking non-empty while its tickets are
        swapped; any failure restores the previous tickets and luggage.

        Args:
            booking_id: Booking to modify
            flight_id: Must match the booking's flight
            passengers: PassengerPatch per passenger of the new state
            tickets: TicketRequest per passenger of the new state
            luggages: LuggageRequest per luggage item of the new state
            booking_status: New status, or None to keep the current one
        """
        passengers = _coerce(passengers, PassengerPatch, 'passenger')
        tickets = _coerce(tickets, TicketRequest, 'ticket')
        luggages = _coerce(luggages, LuggageRequest, 'luggage')

        if booking_status is not None:
            try:
                booking_status = BookingStatus(booking_status)
            except ValueError:
                raise ValidationFailure(f"Invalid booking status {booking_status!r}") from None

        self._validate_request(passengers, tickets, luggages)

        def work(tx):
            booking = self._load_booking(tx, booking_id)
            if booking.flight_id != flight_id:
                raise ValidationFailure(
                    f"Booking {booking_id} is for flight {booking.flight_id}, not {flight_id}"
                )
            if booking.status == BookingStatus.CANCELLED:
                raise ConflictFailure(f"Booking {booking_id} is cancelled")

            new_status = booking.status if booking_status is None else booking_status
            check_booking_transition(booking.status, new_status)

            flight = load_flight(tx, flight_id, for_update=True)
            self._check_bookable(flight)

            old_tickets = tx.fetch_all("""
                SELECT ticket_number, passenger_ssn FROM tickets
                WHERE booking_id = %s
                ORDER BY ticket_number
            """, (booking_id,))
            old_numbers = [row['ticket_number'] for row in old_tickets]

            if len(tickets) > flight.free_seats + len(old_tickets):
                raise ConflictFailure(
                    f"Flight {flight_id} cannot hold {len(tickets)} passenger(s) for this booking"
                )
            SeatService.check_seats(tx, flight, [t.seat for t in tickets],
                                    exclude_booking_id=booking_id)
            ticket_numbers = self._resolve_ticket_numbers(tx, tickets, reissuable=old_numbers)

            placeholder = f"{PLACEHOLDER_PREFIX}{booking_id}"
            if old_tickets:
                tx.execute("""
                    INSERT INTO tickets (ticket_number, booking_id, flight_id, passenger_ssn, seat, checked_in)
                    VALUES (%s, %s, %s, %s, NULL, %s)
                """, (placeholder, booking_id, flight_id, old_tickets[0]['passenger_ssn'], False))

            # Luggage and seat claims of the old tickets cascade
            tx.execute("DELETE FROM tickets WHERE booking_id = %s AND ticket_number <> %s",
                       (booking_id, placeholder))

            self._insert_tickets(tx, booking_id, flight, passengers, tickets, luggages, ticket_numbers)

            tx.execute("DELETE FROM tickets WHERE ticket_number = %s", (placeholder,))

            tx.execute("UPDATE bookings SET status = %s WHERE id = %s", (new_status.value, booking_id))
            if new_status == BookingStatus.CANCELLED:
                SeatService.release_booking_seats(tx, booking_id)
            self.recompute_free_seats(tx, flight)
            return ticket_numbers

        try:
            ticket_numbers = run_in_transaction(
                self.db_manager, work,
                retry_if=_is_ticket_collision,
                on_integrity=_booking_integrity_failure,
                description="booking modification"
            )
        except BookingEngineError as e:
            logger.warning("Modification of booking %s rejected: %s", booking_id, e)
            raise

        logger.info("Modified booking %d, tickets now %s", booking_id, ', '.join(ticket_numbers))

    def delete_booking(self, booking_id: int) -> None:
        """
        Cancel a booking (bookings are never physically removed)

        Raises:
            NotFoundFailure: If the booking does not exist
            InvalidTransition: If the booking is already cancelled
        """

        def work(tx):
            booking = self._load_booking(tx, booking_id)
            check_booking_transition(booking.status, BookingStatus.CANCELLED)

            tx.execute("UPDATE bookings SET status = %s WHERE id = %s",
                       (BookingStatus.CANCELLED.value, booking_id))
            SeatService.release_booking_seats(tx, booking_id)
            self.recompute_free_seats(tx, load_flight(tx, booking.flight_id, for_update=True))

        run_in_transaction(self.db_manager, work, description="booking cancellation")
        logger.info("Cancelled booking %d", booking_id)

    def confirm_booking(self, booking_id: int) -> None:
        """Move a pending booking to confirmed"""

        def work(tx):
            booking = self._load_booking(tx, booking_id)
            check_booking_transition(booking.status, BookingStatus.CONFIRMED)
            tx.execute("UPDATE bookings SET status = %s WHERE id = %s",
                       (BookingStatus.CONFIRMED.value, booking_id))

        run_in_transaction(self.db_manager, work, description="booking confirmation")
        logger.info("Confirmed booking %d", booking_id)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        """Get booking by ID with its flight and tickets"""

        def work(tx):
            booking = row_to_booking(tx.fetch_one(
                f"SELECT {_BOOKING_COLS} FROM bookings WHERE id = %s", (booking_id,)
            ))
            if booking is None:
                return None
            booking.flight = load_flight(tx, booking.flight_id)
            return booking

        booking = run_in_transaction(self.db_manager, work, serializable=False,
                                     description="booking lookup")
        if booking is not None:
            booking.tickets = TicketService(self.db_manager).get_tickets_for_booking(booking_id)
        return booking

    def get_bookings_for_customer(self, customer_id: int,
                                  flight_id: Optional[str] = None) -> List[Booking]:
        """
        Get a customer's bookings with their flights

        Args:
            customer_id: Customer ID
            flight_id: Restrict to one flight

        Returns:
            Bookings ordered by departure time
        """

        def work(tx):
            query = """
                SELECT
                    b.id, b.customer_id, b.flight_id, b.status, b.created_at,
                    f.company_name, f.departure_time, f.arrival_time, f.max_seats,
                    f.free_seats, f.delay_minutes, f.status AS f_status, f.gate,
                    f.is_arriving, f.city
                FROM bookings b
                JOIN flights f ON b.flight_id = f.id
                WHERE b.customer_id = %s
            """
            params = [customer_id]
            if flight_id is not None:
                query += " AND b.flight_id = %s"
                params.append(flight_id)
            query += " ORDER BY f.departure_time, b.id"

            bookings = []
            for row in tx.fetch_all(query, params):
                booking = row_to_booking(row)
                booking.flight = row_to_flight({
                    'id': row['flight_id'],
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
                bookings.append(booking)
            return bookings

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="customer bookings lookup")
