# Overview: Retry and row-lock helpers shared by the persistence gateway and ledger services.

from __future__ import annotations

import time

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError


# SQLSTATE codes for connection loss / server not accepting connections
TRANSIENT_SQLSTATES = {"57P01", "57P02", "57P03", "08000", "08001", "08003", "08004", "08006"}

# Deadlock detected / serialization failure: the whole transaction can simply run again
CONFLICT_SQLSTATES = {"40P01", "40001"}

# Statement timeout: the transaction is aborted and the caller sees the failure
QUERY_CANCELED_SQLSTATE = "57014"

TRANSIENT_MESSAGES = (
    "connection refused",
    "connection reset",
    "connection terminated",
    "connection timed out",
    "timeout expired",
    "server closed the connection",
    "terminating connection",
    "could not connect",
    "connection is closed",
    "connection already closed",
    "database is locked",
)


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_transient_error(exc: BaseException) -> bool:
    """
    Classify a failure as transient (worth retrying) or permanent.

    Connection refused/reset/timeout, "backend terminated the connection"
    and lock conflicts (deadlock, serialization failure) are transient. Constraint violations, syntax errors and statement
    timeouts are not.
    """
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True

    if isinstance(exc, DisconnectionError):
        return True

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        state = _sqlstate(exc)
        if state == QUERY_CANCELED_SQLSTATE:
            return False
        if state in TRANSIENT_SQLSTATES or state in CONFLICT_SQLSTATES:
            return True
        if isinstance(exc, (OperationalError, InterfaceError)):
            message = str(exc.orig if exc.orig is not None else exc).lower()
            return any(fragment in message for fragment in TRANSIENT_MESSAGES)

    return False


def backoff_delays(attempts: int, backoff_base: float) -> list[float]:
    """Delays before each retry: base * 2**n (1s, 2s, 4s for base 1.0)."""
    return [backoff_base * (2 ** n) for n in range(attempts)]


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 1.0,
    on_retry=None,
    sleep=time.sleep,
):
    """
    Execute a DB operation, retrying transient failures.

    `attempts` is the number of retries after the first call. Non-transient
    errors propagate immediately. `on_retry(attempt, delay, exc)` is called
    before each sleep.
    """
    delays = backoff_delays(attempts, backoff_base)
    for attempt in range(attempts + 1):
        try:
            return func()
        except Exception as exc:
            if not is_transient_error(exc) or attempt >= attempts:
                raise
            delay = delays[attempt]
            if on_retry is not None:
                on_retry(attempt + 1, delay, exc)
            sleep(delay)


def run_orm_with_retry(
    session,
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    sleep=time.sleep,
):
    """
    ORM variant for CRUD paths: rolls the session back between attempts and
    also retries optimistic locking conflicts.

    `attempts` counts retries after the first call, as in run_with_retry.
    """
    delays = backoff_delays(attempts, backoff_base)
    for attempt in range(attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if isinstance(exc, OperationalError) and not is_transient_error(exc):
                raise
            if attempt >= attempts:
                raise
            sleep(delays[attempt])


def for_update_suffix(dialect_name: str) -> str:
    """
    Row-level lock clause for the backing engine.

    NOTE: SQLite has no SELECT ... FOR UPDATE; writers are serialized with
    BEGIN IMMEDIATE at transaction start instead.
    """
    if dialect_name == "sqlite":
        return ""
    return " FOR UPDATE"
