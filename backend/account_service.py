"""
Account service
Implements password hashing and customer/admin account management
"""
import logging
from typing import Optional

import bcrypt

from database import User, UserRole, row_to_user, get_db_manager
from .errors import ConflictFailure, NotFoundFailure, ValidationFailure
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

_USER_COLS = "id, username, email, password_hash, role, is_deleted, created_at"


class AccountService:
    """Service for account registration and credential checks"""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or get_db_manager()

    @staticmethod
    def hash_password(password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        """
        Verify a password against its hash

        Args:
            password: Plain text password
            password_hash: Hashed password

        Returns:
            True if password matches, False otherwise
        """
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))

    def _register(self, username: str, email: str, password: str, role: UserRole) -> User:
        if not username or not username.strip():
            raise ValidationFailure("Username is required")
        if not email or '@' not in email:
            raise ValidationFailure(f"Invalid email address {email!r}")
        if not password:
            raise ValidationFailure("Password is required")

        username = username.strip()
        email = email.strip().lower()
        password_hash = self.hash_password(password)

        def work(tx):
            taken = tx.fetch_one("""
                SELECT username, email FROM users
                WHERE username = %s OR email = %s
            """, (username, email))
            if taken:
                field = 'username' if taken['username'] == username else 'email'
                raise ConflictFailure(f"An account with this {field} already exists")

            return row_to_user(tx.fetch_one(f"""
                INSERT INTO users (username, email, password_hash, role, is_deleted, created_at)
                VALUES (%s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
                RETURNING {_USER_COLS}
            """, (username, email, password_hash, role.value, False)))

        def already_registered(exc):
            return ConflictFailure("An account with this username or email already exists")

        user = run_in_transaction(self.db_manager, work, on_integrity=already_registered,
                                  description="account registration")
        logger.info("Registered %s account %s", role.value, username)
        return user

    def register_customer(self, username: str, email: str, password: str) -> User:
        """Create a customer account"""
        return self._register(username, email, password, UserRole.CUSTOMER)

    def register_admin(self, username: str, email: str, password: str) -> User:
        """Create an admin account"""
        return self._register(username, email, password, UserRole.ADMIN)

    def authenticate(self, login: str, password: str) -> User:
        """
        Authenticate a user

        Args:
            login: Username or email
            password: Plain text password

        Returns:
            The authenticated user

        Raises:
            NotFoundFailure: If no active account matches the credentials
        """
        login = (login or '').strip()

        def work(tx):
            return row_to_user(tx.fetch_one(f"""
                SELECT {_USER_COLS} FROM users
                WHERE (username = %s OR email = %s) AND is_deleted = %s
            """, (login, login.lower(), False)))

        user = run_in_transaction(self.db_manager, work, serializable=False,
                                  description="authentication")
        if user is None or not password or not self.verify_password(password, user.password_hash):
            raise NotFoundFailure("Invalid username or password")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        """Get user by ID"""

        def work(tx):
            return row_to_user(tx.fetch_one(
                f"SELECT {_USER_COLS} FROM users WHERE id = %s", (user_id,)
            ))

        return run_in_transaction(self.db_manager, work, serializable=False,
                                  description="account lookup")

    def delete_customer(self, user_id: int) -> None:
        """Soft-delete a customer account; the bookings stay on record"""

        def work(tx):
            user = row_to_user(tx.fetch_one(
                f"SELECT {_USER_COLS} FROM users WHERE id = %s", (user_id,)
            ))
            if user is None or user.role != UserRole.CUSTOMER or user.is_deleted:
                raise NotFoundFailure(f"Customer {user_id} not found")
            tx.execute("UPDATE users SET is_deleted = %s WHERE id = %s", (True, user_id))

        run_in_transaction(self.db_manager, work, description="customer deletion")
        logger.info("Deleted customer %d", user_id)
