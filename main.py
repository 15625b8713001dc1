"""
Main entry point for the airport booking engine
Provides operator commands for schema management and flight operations
"""
import argparse
import logging
import sys

from database import get_db_manager
from database.config import get_settings
from backend.errors import BookingEngineError
from backend.flight_service import FlightService
from backend.gate_service import GateService
from backend.luggage_service import LuggageService
from backend.ticket_service import TicketService

logger = logging.getLogger('airport')


def cmd_init_db(args):
    get_db_manager().create_tables()
    print("Database ready!")


def cmd_drop_db(args):
    if not args.yes:
        print("Refusing to drop tables without --yes")
        return 1
    get_db_manager().drop_tables()
    print("All tables dropped")


def cmd_generate_data(args):
    from data.data_generator import DataGenerator

    db_manager = get_db_manager()
    db_manager.create_tables()
    generator = DataGenerator(db_manager, seed=args.seed)
    generator.generate_sample_dataset(
        customers=args.customers,
        flights=args.flights,
        bookings=args.bookings
    )


def cmd_assign_gate(args):
    gate = GateService().assign_gate(args.flight_id)
    if gate is None:
        print(f"No gate available for flight {args.flight_id}")
        return 1
    print(f"Flight {args.flight_id}: gate {gate}")


def cmd_set_gate(args):
    gate = GateService().set_gate(args.flight_id, args.gate)
    print(f"Flight {args.flight_id}: gate {gate}")


def cmd_start_checkin(args):
    gate = FlightService().start_check_in(args.flight_id)
    gate_text = gate if gate is not None else 'unavailable'
    print(f"Check-in open for flight {args.flight_id} (gate {gate_text})")


def cmd_add_delay(args):
    total = FlightService().add_delay(args.minutes, args.flight_id)
    print(f"Flight {args.flight_id} delayed by {total} minutes in total")


def cmd_set_status(args):
    flight = FlightService().set_flight_status(args.status, args.flight_id)
    print(f"Flight {flight.id} is now {flight.status.value}")


def cmd_next_ticket(args):
    print(TicketService().next_ticket_number(args.offset))


def cmd_report_lost(args):
    if LuggageService().report_luggage_lost(args.tracking_id):
        print(f"Luggage {args.tracking_id} reported lost")
    else:
        print(f"Nothing to report for {args.tracking_id}")


def cmd_lost_report(args):
    report = LuggageService().get_lost_luggage_report()
    if not report:
        print("No lost luggage")
        return
    for item in report:
        passenger = item.ticket.passenger
        print(f"{item.tracking_id or '-':<14} {item.luggage_type.value:<9} "
              f"ticket {item.ticket_number}  flight {item.flight.id} "
              f"({item.flight.departure_time:%Y-%m-%d %H:%M})  "
              f"{passenger.first_name or ''} {passenger.last_name or ''}".rstrip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Airport booking engine')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init-db', help='Create the schema').set_defaults(func=cmd_init_db)

    p = sub.add_parser('drop-db', help='Drop every table')
    p.add_argument('--yes', action='store_true', help='Confirm dropping all data')
    p.set_defaults(func=cmd_drop_db)

    p = sub.add_parser('generate-data', help='Populate the database with sample data')
    p.add_argument('--customers', type=int, default=20)
    p.add_argument('--flights', type=int, default=30)
    p.add_argument('--bookings', type=int, default=50)
    p.add_argument('--seed', type=int, help='Random seed for reproducibility')
    p.set_defaults(func=cmd_generate_data)

    p = sub.add_parser('assign-gate', help='Give a flight the lowest free gate')
    p.add_argument('flight_id')
    p.set_defaults(func=cmd_assign_gate)

    p = sub.add_parser('set-gate', help='Put a flight at a specific gate')
    p.add_argument('flight_id')
    p.add_argument('gate', type=int)
    p.set_defaults(func=cmd_set_gate)

    p = sub.add_parser('start-checkin', help='Open check-in for a departing flight')
    p.add_argument('flight_id')
    p.set_defaults(func=cmd_start_checkin)

    p = sub.add_parser('add-delay', help='Add minutes to a flight delay')
    p.add_argument('flight_id')
    p.add_argument('minutes', type=int)
    p.set_defaults(func=cmd_add_delay)

    p = sub.add_parser('set-status', help='Move a flight to a new status')
    p.add_argument('flight_id')
    p.add_argument('status', choices=['programmed', 'aboutToDepart', 'departed',
                                      'delayed', 'landed', 'cancelled'])
    p.set_defaults(func=cmd_set_status)

    p = sub.add_parser('next-ticket', help='Preview the next ticket number')
    p.add_argument('--offset', type=int, default=0)
    p.set_defaults(func=cmd_next_ticket)

    p = sub.add_parser('report-lost', help='Report a bag lost by its tracking id')
    p.add_argument('tracking_id')
    p.set_defaults(func=cmd_report_lost)

    sub.add_parser('lost-report', help='List lost luggage').set_defaults(func=cmd_lost_report)

    return parser


def main(argv=None):
    """Main entry point"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    args = build_parser().parse_args(argv)
    try:
        return args.func(args) or 0
    except BookingEngineError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        get_db_manager().close_all_connections()


if __name__ == '__main__':
    sys.exit(main())
