"""Database package initialization"""
from .models import (
    User, Flight, Passenger, Booking, Ticket, Luggage,
    UserRole, BookingStatus, FlightStatus, LuggageType, LuggageStatus,
    seat_to_store, seat_from_store,
    row_to_user, row_to_flight, row_to_passenger, row_to_booking,
    row_to_ticket, row_to_luggage
)
from .errors import StoreError, StoreIntegrityError, StoreSerializationError
from .database import (
    DatabaseManager, PostgresDatabaseManager, SQLiteDatabaseManager, Transaction,
    create_db_manager, get_db_manager, set_db_manager
)

__all__ = [
    'User', 'Flight', 'Passenger', 'Booking', 'Ticket', 'Luggage',
    'UserRole', 'BookingStatus', 'FlightStatus', 'LuggageType', 'LuggageStatus',
    'seat_to_store', 'seat_from_store',
    'row_to_user', 'row_to_flight', 'row_to_passenger', 'row_to_booking',
    'row_to_ticket', 'row_to_luggage',
    'StoreError', 'StoreIntegrityError', 'StoreSerializationError',
    'DatabaseManager', 'PostgresDatabaseManager', 'SQLiteDatabaseManager', 'Transaction',
    'create_db_manager', 'get_db_manager', 'set_db_manager'
]
