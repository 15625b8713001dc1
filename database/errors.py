"""
Store-level errors raised by the transaction handle
Driver exceptions (psycopg2, sqlite3) never leave the database package
"""


class StoreError(Exception):
    """A statement or commit failed in the underlying store"""


class StoreIntegrityError(StoreError):
    """A unique, foreign key or check constraint rejected a write"""

    def __init__(self, message: str, constraint: str | None = None):
        super().__init__(message)
        self.constraint = constraint or ''

    def touches(self, name: str) -> bool:
        """Whether the violated constraint mentions the given table/index name"""
        haystack = f"{self.constraint} {self.args[0] if self.args else ''}".lower()
        return name.lower() in haystack


class StoreSerializationError(StoreError):
    """A concurrent transaction won; the whole transaction may be retried"""
