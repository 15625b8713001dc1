"""
Passenger management service
Passengers are keyed by SSN and shared by every ticket that references them
"""
from typing import Optional

from database import Passenger, row_to_passenger, get_db_manager
from .requests import PassengerPatch, validate_ssn
from .transactions import run_in_transaction

_PASSENGER_COLS = "ssn, first_name, last_name, birth_date"


class PassengerService:
    """Service for passenger lookups and the engine's upsert step"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def upsert_passenger(tx, patch: PassengerPatch) -> Passenger:
        """
        Insert the passenger if the SSN is new, otherwise apply the patch

        Args:
            tx: Open transaction
            patch: SSN plus the fields supplied by the caller

        Returns:
            Passenger as stored after the write
        """
        values = patch.present_fields()

        existing = tx.fetch_one(
            f"SELECT {_PASSENGER_COLS} FROM passengers WHERE ssn = %s", (patch.ssn,)
        )

        if existing is None:
            columns = ['ssn'] + list(values)
            placeholders = ', '.join(['%s'] * len(columns))
            tx.execute(
                f"INSERT INTO passengers ({', '.join(columns)}) VALUES ({placeholders})",
                [patch.ssn] + list(values.values())
            )
            return Passenger(ssn=patch.ssn, **values)

        if values:
            # Column names come from PassengerPatch.FIELDS, never from the caller
            assignments = ', '.join(f"{name} = %s" for name in values)
            tx.execute(
                f"UPDATE passengers SET {assignments} WHERE ssn = %s",
                list(values.values()) + [patch.ssn]
            )
            existing.update(values)

        return row_to_passenger(existing)

    def get_passenger(self, ssn: str) -> Optional[Passenger]:
        """Get passenger by SSN"""
        ssn = validate_ssn(ssn)

        def work(tx):
            return row_to_passenger(tx.fetch_one(
                f"SELECT {_PASSENGER_COLS} FROM passengers WHERE ssn = %s", (ssn,)
            ))

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="passenger lookup")
