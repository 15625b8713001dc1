"""
Transaction runner shared by the services
Translates store errors into the failure taxonomy and retries serialization conflicts
"""
import logging
import time
from typing import Callable, Optional

from database import StoreError, StoreIntegrityError, StoreSerializationError
from database.config import get_settings
from .errors import TransactionFailure, ConflictFailure

logger = logging.getLogger(__name__)


def run_in_transaction(db_manager, work: Callable, *, serializable: bool = True,
                       retry_if: Optional[Callable[[StoreIntegrityError], bool]] = None,
                       on_integrity: Optional[Callable[[StoreIntegrityError], Exception]] = None,
                       failure=TransactionFailure, description: str = 'transaction'):
    """
    Run ``work(tx)`` inside one transaction and return its result

    Args:
        db_manager: Store adapter
        work: Callable receiving the transaction handle
        serializable: Use the SERIALIZABLE scope (all allocating operations do)
        retry_if: Integrity violations for which the whole transaction is retried
            (collisions on engine-allocated resources)
        on_integrity: Builds the failure raised for other integrity violations
        failure: TransactionFailure subclass raised for store failures
        description: Operation name used in logs and messages

    Service failures raised by ``work`` roll back and propagate unchanged.
    """
    settings = get_settings()
    max_retries = max(1, settings.max_retries)
    retry_delay = settings.retry_delay

    for attempt in range(max_retries):
        last_attempt = attempt == max_retries - 1
        try:
            scope = db_manager.serializable_transaction() if serializable else db_manager.transaction()
            with scope as tx:
                return work(tx)
        except StoreSerializationError as e:
            if not last_attempt:
                logger.debug("%s: serialization conflict, retry %d", description, attempt + 1)
                time.sleep(retry_delay * (2 ** attempt))
                continue
            logger.warning("%s: gave up after %d conflicting attempts", description, max_retries)
            raise failure(f"Unable to complete {description} due to concurrent updates. "
                          f"Please try again.") from e
        except StoreIntegrityError as e:
            if retry_if is not None and retry_if(e) and not last_attempt:
                logger.debug("%s: allocation collision (%s), retry %d", description, e, attempt + 1)
                time.sleep(retry_delay * (2 ** attempt))
                continue
            if on_integrity is not None:
                raise on_integrity(e) from e
            logger.warning("%s: constraint violation: %s", description, e)
            raise ConflictFailure(f"{description} violates a store constraint: {e}") from e
        except StoreError as e:
            logger.exception("%s failed in the store", description)
            raise failure(f"{description} failed: {e}") from e
