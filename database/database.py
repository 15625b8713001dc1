"""
Store adapter: connection management and transaction scopes
PostgreSQL (psycopg2) in production, SQLite for local runs and the test suite
"""
import logging
import sqlite3
import sys
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

import psycopg2
from psycopg2 import pool, extras, sql, errorcodes
from psycopg2.extensions import ISOLATION_LEVEL_SERIALIZABLE, ISOLATION_LEVEL_READ_COMMITTED

# Support running this module directly (``python database/database.py``)
if __package__ in (None, ""):
    current_dir = Path(__file__).resolve().parent
    repo_root = current_dir.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from database.config import get_settings
from database.errors import StoreError, StoreIntegrityError, StoreSerializationError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent

# SQLite stores these as ISO text; declared column types drive the conversion back
sqlite3.register_adapter(datetime, lambda value: value.isoformat(' '))
sqlite3.register_adapter(date, lambda value: value.isoformat())
sqlite3.register_converter('TIMESTAMP', lambda raw: datetime.fromisoformat(raw.decode()))
sqlite3.register_converter('DATE', lambda raw: date.fromisoformat(raw.decode()))
sqlite3.register_converter('BOOLEAN', lambda raw: bool(int(raw)))


def _translate_postgres_error(exc):
    """Map a psycopg2 exception onto the store error hierarchy"""
    if isinstance(exc, psycopg2.extensions.TransactionRollbackError) or \
            getattr(exc, 'pgcode', None) == errorcodes.SERIALIZATION_FAILURE:
        return StoreSerializationError(str(exc))
    if isinstance(exc, psycopg2.IntegrityError):
        constraint = exc.diag.constraint_name if exc.diag else None
        return StoreIntegrityError(str(exc), constraint)
    return StoreError(str(exc))


def _translate_sqlite_error(exc):
    """Map a sqlite3 exception onto the store error hierarchy"""
    if isinstance(exc, sqlite3.IntegrityError):
        return StoreIntegrityError(str(exc))
    if isinstance(exc, sqlite3.OperationalError) and 'locked' in str(exc):
        return StoreSerializationError(str(exc))
    return StoreError(str(exc))


class Transaction:
    """
    Scoped transaction handle handed to the services

    Queries are written with ``%s`` placeholders; the handle rewrites them for
    drivers that use a different paramstyle. Every row comes back as a dict.
    """

    def __init__(self, conn, dialect: str, echo: bool = False):
        self.conn = conn
        self.dialect = dialect
        self.echo = echo

    def _prepare(self, query: str) -> str:
        if self.dialect == 'sqlite':
            query = query.replace('%s', '?')
        if self.echo:
            logger.debug("SQL: %s", ' '.join(query.split()))
        return query

    def _run(self, query, params):
        query = self._prepare(query)
        if self.dialect == 'postgresql':
            cursor = self.conn.cursor(cursor_factory=extras.RealDictCursor)
            try:
                cursor.execute(query, tuple(params))
            except psycopg2.Error as e:
                cursor.close()
                raise _translate_postgres_error(e) from e
            return cursor

        cursor = self.conn.cursor()
        try:
            cursor.execute(query, tuple(params))
        except sqlite3.Error as e:
            cursor.close()
            raise _translate_sqlite_error(e) from e
        return cursor

    def fetch_one(self, query: str, params=()):
        """Execute a read and return the first row (or None)"""
        cursor = self._run(query, params)
        try:
            row = cursor.fetchone()
            return dict(row) if row is not None else None
        finally:
            cursor.close()

    def fetch_all(self, query: str, params=()) -> list:
        """Execute a read and return every row"""
        cursor = self._run(query, params)
        try:
            return [dict(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def execute(self, query: str, params=()) -> int:
        """Execute a write and return the affected row count"""
        cursor = self._run(query, params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()


def _dict_row_factory(cursor, row):
    return {column[0]: row[idx] for idx, column in enumerate(cursor.description)}


class DatabaseManager:
    """
    Database manager with transaction support

    Subclasses provide connection handling for one driver; the transaction
    scopes, schema management and error translation are shared.
    """

    dialect = None
    schema_file = None

    def __init__(self, database_url=None, echo=False):
        """
        Initialize database manager

        Args:
            database_url: Database connection URL (defaults to settings)
            echo: Whether to log SQL statements
        """
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.echo = echo or settings.echo

    def get_connection(self):
        raise NotImplementedError

    def return_connection(self, conn):
        raise NotImplementedError

    def close_all_connections(self):
        raise NotImplementedError

    def _begin(self, conn, isolation_level):
        raise NotImplementedError

    def _commit(self, conn):
        raise NotImplementedError

    def _rollback(self, conn):
        raise NotImplementedError

    def create_tables(self):
        """Create all database tables from the dialect's schema file"""
        schema_file = SCHEMA_DIR / self.schema_file

        if not schema_file.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_file}")

        with open(schema_file, 'r') as f:
            schema_sql = f.read()

        self._run_script(schema_sql)
        logger.info("Schema created from %s", schema_file.name)

    def _run_script(self, script):
        raise NotImplementedError

    def drop_tables(self):
        raise NotImplementedError

    @contextmanager
    def transaction(self, isolation_level=None):
        """
        Provide a transactional scope

        Args:
            isolation_level: 'serializable' or None for the driver default

        Usage:
            with db.transaction() as tx:
                tx.execute("INSERT INTO users ...", (...))
        """
        conn = self.get_connection()
        try:
            self._begin(conn, isolation_level)
            tx = Transaction(conn, self.dialect, self.echo)
            try:
                yield tx
            except BaseException:
                self._rollback(conn)
                raise
            self._commit(conn)
        finally:
            self.return_connection(conn)

    @contextmanager
    def serializable_transaction(self):
        """
        Provide a SERIALIZABLE transaction scope for allocation operations
        Concurrent conflicting writers fail with StoreSerializationError
        """
        with self.transaction(isolation_level='serializable') as tx:
            yield tx


class PostgresDatabaseManager(DatabaseManager):
    """PostgreSQL store backed by a psycopg2 threaded connection pool"""

    dialect = 'postgresql'
    schema_file = 'schema.sql'

    def __init__(self, database_url=None, echo=False):
        super().__init__(database_url, echo)
        settings = get_settings()

        # Parse database URL
        self.db_config = self._parse_database_url(self.database_url)

        try:
            self.connection_pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=settings.pool_min,
                maxconn=settings.pool_max,
                **self.db_config
            )
        except psycopg2.Error as e:
            raise StoreError(f"Failed to create database connection pool: {e}") from e

    def _parse_database_url(self, url):
        """Parse database URL into connection parameters"""
        url = url.replace('postgresql://', '').replace('postgres://', '')

        # Parse user:password@host:port/database
        if '@' in url:
            auth, location = url.split('@', 1)
            if ':' in auth:
                user, password = auth.split(':', 1)
            else:
                user, password = auth, None
        else:
            user, password = None, None
            location = url

        if '/' in location:
            host_port, database = location.split('/', 1)
        else:
            host_port, database = location, 'airport'

        if ':' in host_port:
            host, port = host_port.split(':', 1)
            port = int(port)
        else:
            host, port = host_port or 'localhost', 5432

        config = {
            'database': database,
            'host': host,
            'port': port,
        }

        if user:
            config['user'] = user
        if password:
            config['password'] = password

        return config

    def get_connection(self):
        """Get a connection from the pool"""
        return self.connection_pool.getconn()

    def return_connection(self, conn):
        """Return a connection to the pool"""
        self.connection_pool.putconn(conn)

    def close_all_connections(self):
        """Close all connections in the pool"""
        if self.connection_pool:
            self.connection_pool.closeall()

    def _begin(self, conn, isolation_level):
        if isolation_level == 'serializable':
            conn.set_isolation_level(ISOLATION_LEVEL_SERIALIZABLE)
        else:
            conn.set_isolation_level(ISOLATION_LEVEL_READ_COMMITTED)

    def _commit(self, conn):
        try:
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise _translate_postgres_error(e) from e

    def _rollback(self, conn):
        conn.rollback()

    def _run_script(self, script):
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(script)
            conn.commit()
        finally:
            self.return_connection(conn)

    def drop_tables(self):
        """Drop all database tables (use with caution!)"""
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute("""
                    SELECT tablename FROM pg_tables
                    WHERE schemaname = 'public'
                """)
                tables = [row[0] for row in cursor.fetchall()]

                for table in tables:
                    cursor.execute(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(
                        sql.Identifier(table)
                    ))
            conn.commit()
        finally:
            self.return_connection(conn)


class SQLiteDatabaseManager(DatabaseManager):
    """
    SQLite store on a single shared connection

    SQLite allows one writer at a time, so transactions are serialized by a
    lock and opened with BEGIN IMMEDIATE. ``sqlite://`` gives an in-memory
    store, which is what the test suite runs against.
    """

    dialect = 'sqlite'
    schema_file = 'schema_sqlite.sql'

    def __init__(self, database_url=None, echo=False):
        super().__init__(database_url, echo)
        self.path = self._parse_database_url(self.database_url)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            self.path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
            isolation_level=None,
            timeout=30,
        )
        self._conn.row_factory = _dict_row_factory
        self._conn.execute("PRAGMA foreign_keys = ON")

    @staticmethod
    def _parse_database_url(url):
        path = url[len('sqlite://'):]
        if path in ('', '/', '/:memory:'):
            return ':memory:'
        return path[1:] if path.startswith('/') else path

    def get_connection(self):
        self._lock.acquire()
        return self._conn

    def return_connection(self, conn):
        self._lock.release()

    def close_all_connections(self):
        with self._lock:
            self._conn.close()

    def _begin(self, conn, isolation_level):
        conn.execute("BEGIN IMMEDIATE")

    def _commit(self, conn):
        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise _translate_sqlite_error(e) from e

    def _rollback(self, conn):
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _run_script(self, script):
        with self._lock:
            self._conn.executescript(script)

    def drop_tables(self):
        """Drop all database tables (use with caution!)"""
        with self._lock:
            rows = self._conn.execute("""
                SELECT name FROM sqlite_master
                WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            """).fetchall()
            self._conn.execute("PRAGMA foreign_keys = OFF")
            try:
                for row in rows:
                    self._conn.execute(f'DROP TABLE IF EXISTS "{row["name"]}"')
            finally:
                self._conn.execute("PRAGMA foreign_keys = ON")


def create_db_manager(database_url=None, echo=False) -> DatabaseManager:
    """Build the manager matching the URL scheme"""
    url = database_url or get_settings().database_url
    if url.startswith('postgresql://') or url.startswith('postgres://'):
        return PostgresDatabaseManager(url, echo)
    if url.startswith('sqlite:'):
        return SQLiteDatabaseManager(url, echo)
    raise ValueError(f"Unsupported database URL: {url}")


# Global database manager instance
_db_manager = None


def get_db_manager() -> DatabaseManager:
    """Get or create global database manager instance"""
    global _db_manager
    if _db_manager is None:
        _db_manager = create_db_manager()
    return _db_manager


def set_db_manager(db_manager: DatabaseManager | None) -> None:
    """Override the global database manager instance.

    Services constructed without an explicit manager fall back to this one.
    Passing ``None`` resets the singleton so the next ``get_db_manager`` call
    recreates it from settings.
    """
    global _db_manager
    _db_manager = db_manager


def init_db():
    """Initialize database with tables"""
    db_manager = get_db_manager()
    db_manager.create_tables()
    logger.info("Database initialized at %s", db_manager.database_url)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    init_db()
