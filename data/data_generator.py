"""
Sample data generator for populating the database with valid entries
Everything is created through the services so all invariants hold
"""
from datetime import datetime, timedelta
import random
from typing import Optional
import sys
import os

from faker import Faker

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import LuggageType, BookingStatus, get_db_manager
from backend.account_service import AccountService
from backend.booking_service import BookingService
from backend.errors import BookingEngineError, ConflictFailure, GenerationFailure
from backend.flight_service import FlightService
from backend.requests import PassengerPatch, TicketRequest, LuggageRequest
from backend.seat_service import SeatService
from backend.ticket_service import TicketService

# First ticket number handed out on an empty database
FIRST_TICKET_NUMBER = '1000000000001'


class DataGenerator:
    """Generate realistic sample data for the airport booking engine"""

    def __init__(self, db_manager=None, seed: Optional[int] = None):
        """
        Initialize data generator

        Args:
            db_manager: Store to populate (process default if omitted)
            seed: Random seed for reproducibility
        """
        if seed:
            random.seed(seed)
            Faker.seed(seed)

        self.faker = Faker()
        self.db_manager = db_manager or get_db_manager()

        self.accounts = AccountService(self.db_manager)
        self.flights = FlightService(self.db_manager)
        self.bookings = BookingService(self.db_manager)
        self.seats = SeatService(self.db_manager)

        self.cities = [
            'New York', 'Los Angeles', 'Chicago', 'Dallas', 'Denver',
            'San Francisco', 'Seattle', 'Las Vegas', 'Orlando', 'Miami',
            'Atlanta', 'Boston', 'Houston', 'Phoenix', 'Philadelphia'
        ]

        self.companies = [
            ('AA', 'American Airlines'),
            ('DL', 'Delta Air Lines'),
            ('UA', 'United Airlines'),
            ('B6', 'JetBlue'),
            ('AS', 'Alaska Airlines'),
        ]

        self.cabin_sizes = [50, 120, 150, 180, 220]

    def generate_customers(self, count: int = 20):
        """
        Generate customer accounts

        Args:
            count: Number of customers to generate

        Returns:
            List of created users
        """
        customers = []

        print(f"Generating {count} customers...")

        for _ in range(count):
            try:
                user = self.accounts.register_customer(
                    username=self.faker.unique.user_name(),
                    email=self.faker.unique.email(),
                    password='password123'
                )
                customers.append(user)
            except BookingEngineError as e:
                print(f"  Error creating customer: {e}")

        print(f"Generated {len(customers)} customers")
        return customers

    def generate_flights(self, count: int = 30, days_ahead: int = 30):
        """
        Generate flights

        Args:
            count: Number of flights to generate
            days_ahead: How many days in the future to schedule flights

        Returns:
            List of created flights
        """
        flights = []
        base_date = datetime.now().replace(minute=0, second=0, microsecond=0)

        print(f"Generating {count} flights...")

        for _ in range(count):
            code, company = random.choice(self.companies)
            departure = base_date + timedelta(
                days=random.randint(1, days_ahead),
                hours=random.randint(0, 23),
                minutes=random.choice([0, 15, 30, 45])
            )
            duration = timedelta(hours=random.randint(1, 6), minutes=random.choice([0, 15, 30, 45]))

            try:
                flight = self.flights.create_flight(
                    flight_id=f"{code}{random.randint(100, 9999)}",
                    company_name=company,
                    departure_time=departure,
                    arrival_time=departure + duration,
                    max_seats=random.choice(self.cabin_sizes),
                    city=random.choice(self.cities),
                    is_arriving=random.random() < 0.4
                )
                flights.append(flight)
            except BookingEngineError as e:
                print(f"  Skipping flight: {e}")

        print(f"Generated {len(flights)} flights")
        return flights

    def _passenger(self) -> PassengerPatch:
        return PassengerPatch(
            ssn=self.faker.unique.bothify(text='???-#########', letters='ABCDEFGHIJKLMNOPQRSTUVWXYZ'),
            first_name=self.faker.first_name(),
            last_name=self.faker.last_name(),
            birth_date=self.faker.date_of_birth(minimum_age=1, maximum_age=90)
        )

    def generate_bookings(self, customer_ids, flight_ids, count: int = 50):
        """
        Generate bookings with passengers, seats and luggage

        The first booking on an empty database carries an explicit ticket number
        so the sequence has something to continue from.

        Args:
            customer_ids: Customers to book for
            flight_ids: Flights to book on
            count: Number of bookings to generate

        Returns:
            List of created booking IDs
        """
        booking_ids = []
        try:
            TicketService(self.db_manager).next_ticket_number()
            first_ticket = None
        except GenerationFailure:
            first_ticket = FIRST_TICKET_NUMBER

        print(f"Generating {count} bookings...")

        for i in range(count):
            flight_id = random.choice(flight_ids)
            flight = self.flights.get_flight(flight_id)
            if flight is None or flight.free_seats == 0:
                continue

            party = min(random.randint(1, 4), flight.free_seats)
            passengers = [self._passenger() for _ in range(party)]

            taken = self.seats.get_booked_seats(flight_id)
            free = [seat for seat in range(flight.max_seats) if seat not in taken]
            seats = random.sample(free, party)

            tickets = []
            for index, (passenger, seat) in enumerate(zip(passengers, seats)):
                number = first_ticket if index == 0 else None
                tickets.append(TicketRequest(passenger.ssn, ticket_number=number, seat=seat))

            luggages = []
            for index in range(party):
                for _ in range(random.randint(0, 2)):
                    luggages.append(LuggageRequest(random.choice(list(LuggageType)), ticket_index=index))

            try:
                booking_id = self.bookings.create_booking(
                    customer_id=random.choice(customer_ids),
                    flight_id=flight_id,
                    booking_status=random.choice([BookingStatus.PENDING, BookingStatus.CONFIRMED]),
                    passengers=passengers,
                    tickets=tickets,
                    luggages=luggages
                )
                booking_ids.append(booking_id)
                first_ticket = None
            except BookingEngineError as e:
                print(f"  Booking failed: {e}")

            if (i + 1) % 25 == 0:
                print(f"  Processed {i + 1}/{count} bookings")

        print(f"Generated {len(booking_ids)} bookings")
        return booking_ids

    def generate_sample_dataset(self, customers: int = 20, flights: int = 30, bookings: int = 50):
        """
        Generate a sample dataset

        Returns:
            Dictionary with all generated data
        """
        print("=" * 60)
        print("GENERATING SAMPLE DATASET")
        print("=" * 60)

        try:
            self.accounts.register_admin('admin', 'admin@airport.example', 'admin123')
        except ConflictFailure:
            print("Admin account already present")

        customer_list = self.generate_customers(count=customers)
        flight_list = self.generate_flights(count=flights)
        booking_ids = []
        if customer_list and flight_list:
            booking_ids = self.generate_bookings(
                customer_ids=[c.id for c in customer_list],
                flight_ids=[f.id for f in flight_list],
                count=bookings
            )

        print("\n" + "=" * 60)
        print("SAMPLE DATASET GENERATION COMPLETE")
        print("=" * 60)
        print(f"Customers: {len(customer_list)}")
        print(f"Flights: {len(flight_list)}")
        print(f"Bookings: {len(booking_ids)}")
        print("=" * 60)

        return {
            'customers': customer_list,
            'flights': flight_list,
            'booking_ids': booking_ids
        }


def main():
    """Main function for command-line usage"""
    import argparse

    parser = argparse.ArgumentParser(description='Generate sample data for the airport booking engine')
    parser.add_argument('--customers', type=int, default=20, help='Number of customers')
    parser.add_argument('--flights', type=int, default=30, help='Number of flights')
    parser.add_argument('--bookings', type=int, default=50, help='Number of bookings')
    parser.add_argument('--seed', type=int, help='Random seed for reproducibility')

    args = parser.parse_args()

    # Initialize database
    db_manager = get_db_manager()
    db_manager.create_tables()

    generator = DataGenerator(db_manager, seed=args.seed)
    generator.generate_sample_dataset(
        customers=args.customers,
        flights=args.flights,
        bookings=args.bookings
    )


if __name__ == '__main__':
    main()
