"""
State machine tests for flight, booking and luggage statuses
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.errors import ConflictFailure, InvalidTransition
from backend.status_machine import (
    BOOKABLE_FLIGHT_STATUSES, FLIGHT_TRANSITIONS,
    check_flight_transition, check_booking_transition, check_luggage_transition, is_terminal
)
from database import FlightStatus, BookingStatus, LuggageStatus


class TestFlightTransitions:
    """Test flight status moves"""

    @pytest.mark.parametrize('current,target', [
        (FlightStatus.PROGRAMMED, FlightStatus.ABOUT_TO_DEPART),
        (FlightStatus.PROGRAMMED, FlightStatus.DELAYED),
        (FlightStatus.ABOUT_TO_DEPART, FlightStatus.ABOUT_TO_DEPART),
        (FlightStatus.ABOUT_TO_DEPART, FlightStatus.DEPARTED),
        (FlightStatus.DELAYED, FlightStatus.ABOUT_TO_DEPART),
        (FlightStatus.DELAYED, FlightStatus.DEPARTED),
        (FlightStatus.DEPARTED, FlightStatus.LANDED),
        (FlightStatus.DEPARTED, FlightStatus.CANCELLED),
    ])
    def test_allowed(self, current, target):
        """Test allowed moves return the target"""
        assert check_flight_transition(current, target) == target

    @pytest.mark.parametrize('current,target', [
        (FlightStatus.PROGRAMMED, FlightStatus.DEPARTED),
        (FlightStatus.PROGRAMMED, FlightStatus.LANDED),
        (FlightStatus.DEPARTED, FlightStatus.DELAYED),
        (FlightStatus.LANDED, FlightStatus.DEPARTED),
        (FlightStatus.CANCELLED, FlightStatus.PROGRAMMED),
    ])
    def test_rejected(self, current, target):
        """Test rejected moves raise InvalidTransition"""
        with pytest.raises(InvalidTransition):
            check_flight_transition(current, target)

    def test_nothing_returns_to_programmed(self):
        """Test programmed is only an initial state"""
        for status, targets in FLIGHT_TRANSITIONS.items():
            assert FlightStatus.PROGRAMMED not in targets, status

    def test_terminal_states_have_no_exit(self):
        """Test landed and cancelled are absorbing"""
        for terminal in (FlightStatus.LANDED, FlightStatus.CANCELLED):
            assert is_terminal(terminal)
            for target in FlightStatus:
                with pytest.raises(InvalidTransition):
                    check_flight_transition(terminal, target)

    def test_bookable_statuses(self):
        """Test bookings are taken until the flight leaves"""
        assert BOOKABLE_FLIGHT_STATUSES == {
            FlightStatus.PROGRAMMED, FlightStatus.ABOUT_TO_DEPART, FlightStatus.DELAYED
        }


class TestBookingTransitions:
    """Test booking status moves"""

    def test_pending_moves(self):
        """Test pending can stay, confirm or cancel"""
        for target in BookingStatus:
            assert check_booking_transition(BookingStatus.PENDING, target) == target

    def test_confirmed_cannot_go_back(self):
        """Test confirmed never returns to pending"""
        with pytest.raises(InvalidTransition):
            check_booking_transition(BookingStatus.CONFIRMED, BookingStatus.PENDING)
        assert check_booking_transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED) \
            == BookingStatus.CANCELLED

    def test_cancelled_is_terminal(self):
        """Test cancelled bookings stay cancelled"""
        assert is_terminal(BookingStatus.CANCELLED)
        for target in BookingStatus:
            with pytest.raises(InvalidTransition):
                check_booking_transition(BookingStatus.CANCELLED, target)


class TestLuggageTransitions:
    """Test luggage status moves"""

    def test_handling_path(self):
        """Test the normal handling path"""
        assert check_luggage_transition(LuggageStatus.BOOKED, LuggageStatus.LOADED) == LuggageStatus.LOADED
        assert check_luggage_transition(LuggageStatus.LOADED, LuggageStatus.WITHDRAWABLE) \
            == LuggageStatus.WITHDRAWABLE

    def test_lost_from_any_open_state(self):
        """Test LOST is reachable from BOOKED, LOADED and WITHDRAWABLE"""
        for current in (LuggageStatus.BOOKED, LuggageStatus.LOADED, LuggageStatus.WITHDRAWABLE):
            assert check_luggage_transition(current, LuggageStatus.LOST) == LuggageStatus.LOST

    def test_no_skipping(self):
        """Test BOOKED cannot jump to WITHDRAWABLE"""
        with pytest.raises(InvalidTransition):
            check_luggage_transition(LuggageStatus.BOOKED, LuggageStatus.WITHDRAWABLE)

    def test_lost_is_the_only_terminal_state(self):
        """Test a collectable bag can still go missing but a lost one stays lost"""
        assert not is_terminal(LuggageStatus.WITHDRAWABLE)
        assert [s for s in LuggageStatus if is_terminal(s)] == [LuggageStatus.LOST]
        with pytest.raises(InvalidTransition):
            check_luggage_transition(LuggageStatus.WITHDRAWABLE, LuggageStatus.LOADED)

    def test_invalid_transition_is_conflict(self):
        """Test callers catching ConflictFailure see state machine rejections"""
        with pytest.raises(ConflictFailure) as exc_info:
            check_luggage_transition(LuggageStatus.LOST, LuggageStatus.LOADED)
        assert "from 'LOST' to 'LOADED'" in str(exc_info.value)
