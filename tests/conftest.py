"""Pytest configuration and fixtures."""
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import UserRole, row_to_user, create_db_manager, set_db_manager
from backend.booking_service import BookingService
from backend.flight_service import FlightService
from backend.requests import PassengerPatch, TicketRequest, LuggageRequest

SEED_TICKET = '0000000000005'


def create_user_directly(db, username: str, role: UserRole):
    """Create a user directly in the database without AccountService."""
    with db.transaction() as tx:
        row = tx.fetch_one("""
            INSERT INTO users (username, email, password_hash, role, is_deleted, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id, username, email, password_hash, role, is_deleted, created_at
        """, (username, f'{username}@example.com', 'not_used', role.value, False, datetime.now()))
        return row_to_user(row)


def pytest_configure(config):
    """Declare custom markers to avoid pytest warnings."""
    config.addinivalue_line(
        "markers",
        "postgres: tests that need real concurrent transactions (TEST_DATABASE_URL)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip PostgreSQL-only tests when running against SQLite."""
    if os.getenv('TEST_DATABASE_URL', '').startswith('postgresql'):
        return

    skip_marker = pytest.mark.skip(
        reason="Needs a PostgreSQL database in TEST_DATABASE_URL",
    )
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture(scope='function')
def db_manager():
    """
    Create a test database manager

    A fresh in-memory SQLite store per test, or the PostgreSQL database named by
    TEST_DATABASE_URL when it is set.
    """
    test_db_url = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    db = create_db_manager(test_db_url)
    db.drop_tables()  # Clean slate for each test
    db.create_tables()
    set_db_manager(db)
    yield db
    set_db_manager(None)
    db.drop_tables()  # Cleanup after test
    db.close_all_connections()


@pytest.fixture(scope='function')
def test_user(db_manager):
    """Create a test customer"""
    return create_user_directly(db_manager, 'customer', UserRole.CUSTOMER)


@pytest.fixture(scope='function')
def test_admin(db_manager):
    """Create a test admin user"""
    return create_user_directly(db_manager, 'admin', UserRole.ADMIN)


@pytest.fixture(scope='function')
def flight_factory(db_manager):
    """Create flights with sensible defaults"""
    service = FlightService(db_manager)

    def create(flight_id='AB123', max_seats=100, is_arriving=False, days=7, city='Paris'):
        departure = datetime.now().replace(microsecond=0) + timedelta(days=days)
        return service.create_flight(
            flight_id=flight_id,
            company_name='Test Air',
            departure_time=departure,
            arrival_time=departure + timedelta(hours=3),
            max_seats=max_seats,
            city=city,
            is_arriving=is_arriving
        )

    return create


@pytest.fixture(scope='function')
def test_flight(flight_factory):
    """Create a departing test flight with 100 seats"""
    return flight_factory()


@pytest.fixture(scope='function')
def book(db_manager, test_user):
    """
    Create a booking from a compact description

    Each passenger is a SSN; seats, ticket numbers and luggage are optional
    lists aligned with the passengers.
    """
    service = BookingService(db_manager)

    def create(flight_id, ssns, seats=None, ticket_numbers=None, luggage=(),
               status='pending', customer_id=None):
        seats = seats or [None] * len(ssns)
        ticket_numbers = ticket_numbers or [None] * len(ssns)
        passengers = [PassengerPatch(ssn, first_name=f'First{ssn}', last_name='Traveller')
                      for ssn in ssns]
        tickets = [TicketRequest(ssn, ticket_number=number, seat=seat)
                   for ssn, seat, number in zip(ssns, seats, ticket_numbers)]
        luggages = [LuggageRequest(kind, ticket_index=index) for index, kind in luggage]
        return service.create_booking(
            customer_id=customer_id or test_user.id,
            flight_id=flight_id,
            booking_status=status,
            passengers=passengers,
            tickets=tickets,
            luggages=luggages
        )

    return create


@pytest.fixture(scope='function')
def seeded_booking(book, test_flight):
    """A booking holding ticket 0000000000005, which seeds the ticket sequence"""
    return book(test_flight.id, ['SEED-1'], seats=[0], ticket_numbers=[SEED_TICKET])
