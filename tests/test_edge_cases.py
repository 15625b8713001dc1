"""
Edge case tests for the booking engine
Tests request validation, seat conflicts, overbooking prevention and rollback
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.booking_service import BookingService
from backend.errors import (
    BookingCreationFailed, ConflictFailure, TransactionFailure, ValidationFailure
)
from backend.flight_service import FlightService
from backend.luggage_service import LuggageService
from backend.requests import PassengerPatch, TicketRequest, LuggageRequest
from backend.seat_service import SeatService
from backend.ticket_service import TicketService
from database import StoreError


def count_rows(db_manager, table):
    with db_manager.transaction() as tx:
        return tx.fetch_one(f"SELECT COUNT(*) AS n FROM {table}")['n']


def snapshot(db_manager, booking_id):
    """Tickets and luggage of a booking as comparable tuples"""
    tickets = TicketService(db_manager).get_tickets_for_booking(booking_id)
    luggage = LuggageService(db_manager).get_luggage_for_booking(booking_id)
    return (
        sorted((t.ticket_number, t.passenger_ssn, t.seat) for t in tickets),
        sorted((item.id, item.ticket_number, item.luggage_type.value) for item in luggage),
    )


class TestSeatConflicts:
    """Test seat validation and double booking prevention"""

    def test_duplicate_seat_in_request(self, db_manager, test_flight, seeded_booking, book):
        """Test seats {5, 5} in one request is a conflict and writes nothing"""
        bookings_before = count_rows(db_manager, 'bookings')

        with pytest.raises(ConflictFailure):
            book(test_flight.id, ['P-1', 'P-2'], seats=[5, 5])

        assert count_rows(db_manager, 'bookings') == bookings_before
        assert FlightService(db_manager).get_flight(test_flight.id).free_seats == 99

    def test_seat_held_by_other_booking(self, db_manager, test_flight, seeded_booking, book):
        """Test a held seat cannot be booked again"""
        book(test_flight.id, ['P-1'], seats=[12])
        with pytest.raises(ConflictFailure):
            book(test_flight.id, ['P-2'], seats=[12])

    def test_seat_freed_by_cancellation(self, db_manager, test_flight, seeded_booking, book):
        """Test a cancelled booking's seat can be taken"""
        booking_id = book(test_flight.id, ['P-1'], seats=[12])
        BookingService(db_manager).delete_booking(booking_id)
        book(test_flight.id, ['P-2'], seats=[12])
        assert 12 in SeatService(db_manager).get_booked_seats(test_flight.id)

    def test_seat_out_of_range(self, db_manager, test_flight, seeded_booking, book):
        """Test seats must exist on the aircraft"""
        with pytest.raises(ValidationFailure):
            book(test_flight.id, ['P-1'], seats=[100])
        with pytest.raises(ValidationFailure):
            book(test_flight.id, ['P-1'], seats=[-1])

    def test_booked_seats_exclude_booking(self, db_manager, test_flight, seeded_booking, book):
        """Test occupancy can ignore the booking being modified"""
        booking_id = book(test_flight.id, ['P-1'], seats=[30])
        service = SeatService(db_manager)
        assert service.get_booked_seats(test_flight.id) == {0, 30}
        assert service.get_booked_seats(test_flight.id, exclude_booking_id=booking_id) == {0}


class TestOverbooking:
    """Test capacity limits"""

    def test_more_passengers_than_seats(self, db_manager, flight_factory, seeded_booking, book):
        """Test a booking larger than the free seats is rejected"""
        flight_factory(flight_id='SMALL', max_seats=2)
        with pytest.raises(ConflictFailure):
            book('SMALL', ['P-1', 'P-2', 'P-3'])

    def test_full_flight(self, db_manager, flight_factory, seeded_booking, book):
        """Test a full flight takes no more bookings"""
        flight_factory(flight_id='SMALL', max_seats=2)
        book('SMALL', ['P-1', 'P-2'])
        assert FlightService(db_manager).get_flight('SMALL').free_seats == 0
        with pytest.raises(ConflictFailure):
            book('SMALL', ['P-3'])

    def test_departed_flight_not_bookable(self, db_manager, test_flight, seeded_booking, book):
        """Test bookings close when the flight leaves"""
        service = FlightService(db_manager)
        service.set_flight_status('aboutToDepart', test_flight.id)
        service.set_flight_status('departed', test_flight.id)
        with pytest.raises(ConflictFailure):
            book(test_flight.id, ['P-1'])


class TestRequestValidation:
    """Test malformed booking requests"""

    def test_empty_request(self, db_manager, test_flight, seeded_booking, book):
        """Test a booking needs passengers"""
        with pytest.raises(ValidationFailure):
            book(test_flight.id, [])

    def test_duplicate_passenger(self, db_manager, test_user, test_flight, seeded_booking):
        """Test the same SSN twice in one request"""
        with pytest.raises(ValidationFailure):
            BookingService(db_manager).create_booking(
                test_user.id, test_flight.id, 'pending',
                [PassengerPatch('P-1'), PassengerPatch('P-1')],
                [TicketRequest('P-1'), TicketRequest('P-1')]
            )

    def test_passenger_without_ticket(self, db_manager, test_user, test_flight, seeded_booking):
        """Test every passenger needs a ticket"""
        with pytest.raises(ValidationFailure):
            BookingService(db_manager).create_booking(
                test_user.id, test_flight.id, 'pending',
                [PassengerPatch('P-1'), PassengerPatch('P-2')],
                [TicketRequest('P-1')]
            )

    def test_luggage_for_foreign_ticket(self, db_manager, test_user, test_flight, seeded_booking):
        """Test luggage must belong to a ticket of the request"""
        with pytest.raises(ValidationFailure):
            BookingService(db_manager).create_booking(
                test_user.id, test_flight.id, 'pending',
                [PassengerPatch('P-1')],
                [TicketRequest('P-1')],
                [LuggageRequest('checked', ticket_number='0000000000005')]
            )
        with pytest.raises(ValidationFailure):
            LuggageRequest('checked')
        with pytest.raises(ValidationFailure):
            LuggageRequest('golf_bag', ticket_index=0)

    def test_failures_are_value_errors(self, db_manager, test_flight, seeded_booking, book):
        """Test callers catching ValueError keep working"""
        with pytest.raises(ValueError):
            book(test_flight.id, ['P-1', 'P-2'], seats=[5, 5])


class TestAtomicity:
    """Test that failed transactions leave no trace"""

    @staticmethod
    def _break_luggage(monkeypatch):
        def fail(tx, ticket_number, luggage_type):
            raise StoreError("disk I/O error")

        monkeypatch.setattr(LuggageService, 'insert_luggage', staticmethod(fail))

    def test_create_rolls_back(self, db_manager, test_flight, seeded_booking, book, monkeypatch):
        """Test a store failure on the last write undoes the whole booking"""
        counts = {table: count_rows(db_manager, table)
                  for table in ('bookings', 'passengers', 'tickets', 'seat_claims', 'luggage')}
        self._break_luggage(monkeypatch)

        with pytest.raises(BookingCreationFailed):
            book(test_flight.id, ['NEW-1'], seats=[44], luggage=[(0, 'checked')])

        assert {table: count_rows(db_manager, table) for table in counts} == counts
        assert FlightService(db_manager).get_flight(test_flight.id).free_seats == 99
        assert TicketService(db_manager).next_ticket_number() == '0000000000006'

    def test_modify_rolls_back(self, db_manager, test_flight, seeded_booking, book, monkeypatch):
        """Test a failed modification restores the previous tickets and luggage"""
        booking_id = book(test_flight.id, ['P-1', 'P-2'], seats=[1, 2], luggage=[(1, 'carry_on')])
        before = snapshot(db_manager, booking_id)
        self._break_luggage(monkeypatch)

        with pytest.raises(TransactionFailure):
            BookingService(db_manager).modify_booking(
                booking_id, test_flight.id,
                [PassengerPatch('P-3')],
                [TicketRequest('P-3', seat=50)],
                [LuggageRequest('checked', ticket_index=0)]
            )

        assert snapshot(db_manager, booking_id) == before
        assert SeatService(db_manager).get_booked_seats(test_flight.id) == {0, 1, 2}
        with db_manager.transaction() as tx:
            assert tx.fetch_one("SELECT ticket_number FROM tickets WHERE ticket_number LIKE %s",
                                ('TMP%',)) is None

    def test_modify_seat_conflict_keeps_booking(self, db_manager, test_flight, seeded_booking, book):
        """Test a rejected modification changes nothing"""
        booking_id = book(test_flight.id, ['P-1'], seats=[1])
        before = snapshot(db_manager, booking_id)

        with pytest.raises(ConflictFailure):
            BookingService(db_manager).modify_booking(
                booking_id, test_flight.id, [PassengerPatch('P-1')], [TicketRequest('P-1', seat=0)]
            )
        assert snapshot(db_manager, booking_id) == before

    def test_modify_cancelled_booking(self, db_manager, test_flight, seeded_booking):
        """Test cancelled bookings cannot be modified"""
        service = BookingService(db_manager)
        service.delete_booking(seeded_booking)
        with pytest.raises(ConflictFailure):
            service.modify_booking(seeded_booking, test_flight.id,
                                   [PassengerPatch('SEED-1')], [TicketRequest('SEED-1')])


class TestLostLuggage:
    """Test lost luggage reports"""

    def test_unknown_tracking_id_is_noop(self, db_manager, test_flight, seeded_booking, book):
        """Test reporting an unknown tracking id changes nothing"""
        booking_id = book(test_flight.id, ['P-1'], luggage=[(0, 'checked')])
        before = LuggageService(db_manager).get_luggage_for_booking(booking_id)

        assert LuggageService(db_manager).report_luggage_lost('BAG9999999999') is False
        assert LuggageService(db_manager).get_luggage_for_booking(booking_id) == before
        assert LuggageService(db_manager).get_lost_luggage_report() == []

    def test_luggage_without_tracking_id_cannot_be_reported(self, db_manager, test_flight,
                                                            seeded_booking, book):
        """Test bags are only found by the tag assigned at check-in"""
        booking_id = book(test_flight.id, ['P-1'], luggage=[(0, 'checked')])
        luggage = LuggageService(db_manager).get_luggage_for_booking(booking_id)[0]
        assert LuggageService(db_manager).report_luggage_lost(str(luggage.id)) is False

    def test_check_in_of_cancelled_booking(self, db_manager, test_flight, seeded_booking):
        """Test tickets of cancelled bookings cannot check in"""
        FlightService(db_manager).start_check_in(test_flight.id)
        BookingService(db_manager).delete_booking(seeded_booking)
        with pytest.raises(ConflictFailure):
            TicketService(db_manager).set_check_ins(['0000000000005'])


class TestSeatClaimKey:
    """Test the seat claim key when the occupancy check misses a holder"""

    @staticmethod
    def _blind_check(monkeypatch):
        def no_seat_check(tx, flight, seats, exclude_booking_id=None):
            return None

        monkeypatch.setattr(SeatService, 'check_seats', staticmethod(no_seat_check))

    def test_create_collision(self, db_manager, test_flight, seeded_booking, book, monkeypatch):
        """Test a second claim on a seat is rejected and leaves no rows"""
        book(test_flight.id, ['P-1'], seats=[12])
        counts = {table: count_rows(db_manager, table)
                  for table in ('bookings', 'passengers', 'tickets', 'seat_claims', 'luggage')}
        self._blind_check(monkeypatch)

        with pytest.raises(ConflictFailure):
            book(test_flight.id, ['P-2'], seats=[12], luggage=[(0, 'checked')])

        assert {table: count_rows(db_manager, table) for table in counts} == counts
        assert SeatService(db_manager).get_booked_seats(test_flight.id) == {0, 12}
        assert FlightService(db_manager).get_flight(test_flight.id).free_seats == 98
        assert TicketService(db_manager).next_ticket_number() == '0000000000007'

    def test_modify_collision(self, db_manager, test_flight, seeded_booking, book, monkeypatch):
        """Test a modification onto another booking's seat keeps the old tickets"""
        book(test_flight.id, ['P-1'], seats=[1])
        booking_id = book(test_flight.id, ['P-2'], seats=[2], luggage=[(0, 'carry_on')])
        before = snapshot(db_manager, booking_id)
        self._blind_check(monkeypatch)

        with pytest.raises(ConflictFailure):
            BookingService(db_manager).modify_booking(
                booking_id, test_flight.id, [PassengerPatch('P-2')], [TicketRequest('P-2', seat=1)]
            )

        assert snapshot(db_manager, booking_id) == before
        assert SeatService(db_manager).get_booked_seats(test_flight.id) == {0, 1, 2}
