"""
Transaction helpers for operations that take row locks.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from django.conf import settings
from django.db import OperationalError, connection, transaction

from .exceptions import Unexpected

logger = logging.getLogger(__name__)


def _set_local_timeouts(lock_timeout_ms: int, statement_timeout_ms: int):
    # set_config(..., true) is the parameterisable form of SET LOCAL
    with connection.cursor() as cursor:
        cursor.execute("SELECT set_config('lock_timeout', %s, true)", [f"{lock_timeout_ms}ms"])
        cursor.execute("SELECT set_config('statement_timeout', %s, true)", [f"{statement_timeout_ms}ms"])


@contextmanager
def locked_atomic(lock_timeout_ms: Optional[int] = None):
    """
    transaction.atomic() with bounded lock waits.

    The outermost block on PostgreSQL gets transaction-local lock and
    statement timeouts. Nested blocks are plain savepoints, so services
    can call each other inside a single transaction.

    A timeout surfaces as Unexpected; the caller may retry.
    """
    outermost = not connection.in_atomic_block
    lock_ms = lock_timeout_ms or settings.LOCK_TIMEOUT_MS
    statement_ms = max(settings.STATEMENT_TIMEOUT_MS, lock_ms)

    try:
        with transaction.atomic():
            if outermost and connection.vendor == 'postgresql':
                _set_local_timeouts(lock_ms, statement_ms)
            yield
    except OperationalError as e:
        logger.warning(f"Locked transaction aborted: {e}")
        raise Unexpected("The operation timed out waiting for a lock. Please retry.") from e
