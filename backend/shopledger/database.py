# Overview: Persistence gateway over the SQLAlchemy engine; parameterized queries, retries, transactions and health monitoring.

"""
Persistence Gateway

WHY: Ledger operations need explicit transaction scoping with row locks,
and every round-trip must survive a pool connection being dropped by the
server. The ORM session is fine for CRUD; the ledger goes through here.

CONTRACT:
- run(statement, params)   -> RunResult(changes, last_insert_id)
- get(query, params)       -> dict | None
- all(query, params)       -> list[dict]
- exec_raw(ddl)
- transaction(fn, *args)   -> fn(tx, *args), committed or rolled back as one unit

Statements are SQL strings using `?` positional placeholders (rewritten to
named binds for the engine) or SQLAlchemy executables.

RETRIES:
- Transient failures (refused/reset/timeout/terminated) are retried with
  exponential backoff (1s, 2s, 4s by default) and surface as
  TransientConnectionError once exhausted.
- Constraint violations surface as ConstraintViolation and are never retried.
- A transaction is retried as a whole: a failed attempt is always rolled back.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Sequence

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.expression import Executable

from .services.concurrency import for_update_suffix, is_transient_error, run_with_retry
from .time_utils import utcnow, to_utc_z


class DatabaseError(Exception):
    """Base class for gateway failures."""


class TransientConnectionError(DatabaseError):
    """Raised when a transient connection failure outlives all retries."""


class ConstraintViolation(DatabaseError):
    """Raised when the backend rejects a write on an integrity constraint."""

    def __init__(self, message: str, *, constraint: str | None = None, is_unique: bool = False):
        super().__init__(message)
        self.constraint = constraint
        self.is_unique = is_unique


@dataclass(frozen=True)
class RunResult:
    changes: int
    last_insert_id: int | None = None


def convert_placeholders(sql: str) -> tuple[str, list[str]]:
    """
    Rewrite `?` positional placeholders to `:p1 .. :pn` named binds.

    Question marks inside single- or double-quoted literals are left alone.
    """
    out = []
    names: list[str] = []
    quote = None
    for ch in sql:
        if quote:
            if ch == quote:
                quote = None
            out.append(ch)
        elif ch in ("'", '"'):
            quote = ch
            out.append(ch)
        elif ch == "?":
            name = f"p{len(names) + 1}"
            names.append(name)
            out.append(f":{name}")
        else:
            out.append(ch)
    return "".join(out), names


def _bind_value(value: Any, dialect_name: str) -> Any:
    if dialect_name != "sqlite":
        return value
    # sqlite3 has no adapter for Decimal and deprecated its date adapters
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


def _constraint_violation(exc: IntegrityError) -> ConstraintViolation:
    orig = exc.orig
    message = str(orig) if orig is not None else str(exc)
    state = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    lowered = message.lower()
    is_unique = state == "23505" or "unique constraint" in lowered or "duplicate key" in lowered

    constraint = None
    diag = getattr(orig, "diag", None)
    if diag is not None:
        constraint = getattr(diag, "constraint_name", None)
    if constraint is None and "constraint failed:" in lowered:
        # SQLite: "UNIQUE constraint failed: inventory.sku"
        constraint = message.split("constraint failed:", 1)[1].strip()
    return ConstraintViolation(message, constraint=constraint, is_unique=is_unique)


def _is_insert(statement: Any) -> bool:
    if isinstance(statement, str):
        return statement.lstrip().upper().startswith("INSERT")
    return bool(getattr(statement, "is_insert", False))


class TransactionHandle:
    """
    Transaction-scoped view of the gateway, bound to one connection.

    Offers the same get/all/run contract; nothing is committed until the
    enclosing Database.transaction() returns.
    """

    def __init__(self, database: "Database", conn):
        self._database = database
        self._conn = conn

    @property
    def dialect_name(self) -> str:
        return self._conn.dialect.name

    def get(self, query, params: Sequence | dict = (), *, for_update: bool = False) -> dict | None:
        if for_update and isinstance(query, str):
            query = query.rstrip().rstrip(";") + for_update_suffix(self.dialect_name)
        elif for_update:
            query = query.with_for_update()
        result = self._database._execute(self._conn, query, params)
        row = result.mappings().first()
        return dict(row) if row is not None else None

    def all(self, query, params: Sequence | dict = ()) -> list[dict]:
        result = self._database._execute(self._conn, query, params)
        return [dict(row) for row in result.mappings().all()]

    def run(self, statement, params: Sequence | dict = ()) -> RunResult:
        result = self._database._execute(self._conn, statement, params)
        last_id = None
        if _is_insert(statement):
            last_id = self._database._last_insert_id(self._conn, result, statement)
        return RunResult(changes=result.rowcount, last_insert_id=last_id)


class Database:
    """
    Gateway around the Flask-SQLAlchemy engine and its connection pool.

    The pool owns reconnection; the health monitor only observes it.
    """

    def __init__(self, sqlalchemy_ext=None):
        self._db = sqlalchemy_ext
        self._app = None
        self.retry_attempts = 3
        self.retry_backoff = 1.0
        self.statement_timeout_ms = 30000

        self._state_lock = threading.Lock()
        self._is_healthy = True
        self._consecutive_failures = 0
        self._last_checked_at = None
        self._last_error = None

        self._monitor: threading.Thread | None = None
        self._stop_event = threading.Event()

    def init_app(self, app) -> None:
        self._app = app
        self.retry_attempts = app.config.get("DB_RETRY_ATTEMPTS", 3)
        self.retry_backoff = app.config.get("DB_RETRY_BACKOFF_SECONDS", 1.0)
        self.statement_timeout_ms = app.config.get("DB_STATEMENT_TIMEOUT_MS", 30000)
        app.extensions["shopledger.database"] = self

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    @property
    def logger(self) -> logging.Logger:
        if has_app_context():
            return current_app.logger
        if self._app is not None:
            return self._app.logger
        return logging.getLogger(__name__)

    @property
    def engine(self):
        return self._db.engine

    def _execute(self, conn, statement, params: Sequence | dict = ()):
        dialect_name = conn.dialect.name
        if isinstance(statement, str):
            sql, names = convert_placeholders(statement)
            if isinstance(params, dict):
                bound = {k: _bind_value(v, dialect_name) for k, v in params.items()}
            else:
                params = list(params or ())
                if len(params) != len(names):
                    raise ValueError(
                        f"Statement expects {len(names)} parameters, got {len(params)}"
                    )
                bound = {name: _bind_value(v, dialect_name) for name, v in zip(names, params)}
            statement = text(sql)
        elif isinstance(statement, Executable):
            bound = dict(params) if isinstance(params, dict) else None
        else:
            raise TypeError(f"Unsupported statement type: {type(statement).__name__}")

        try:
            if bound:
                return conn.execute(statement, bound)
            return conn.execute(statement)
        except IntegrityError as exc:
            raise _constraint_violation(exc) from exc

    def _last_insert_id(self, conn, result, statement) -> int | None:
        if not isinstance(statement, str):
            pk = result.inserted_primary_key
            return pk[0] if pk else None
        if conn.dialect.name == "postgresql":
            if "RETURNING" in statement.upper():
                return None
            return conn.exec_driver_sql("SELECT lastval()").scalar()
        return result.lastrowid

    def _with_retry(self, op: Callable[[], Any]):
        def _log_retry(attempt: int, delay: float, exc: BaseException) -> None:
            self.logger.warning(
                "Database connection issue (attempt %s/%s), retrying in %.1fs: %s",
                attempt, self.retry_attempts, delay, exc,
            )

        try:
            return run_with_retry(
                op,
                attempts=self.retry_attempts,
                backoff_base=self.retry_backoff,
                on_retry=_log_retry,
            )
        except Exception as exc:
            if is_transient_error(exc):
                self.logger.error(
                    "Database operation failed after %s attempt(s): %s",
                    self.retry_attempts + 1, exc,
                )
                with self._state_lock:
                    self._is_healthy = False
                    self._last_error = str(exc)
                raise TransientConnectionError(str(exc)) from exc
            raise

    def _begin(self, conn) -> None:
        dialect_name = conn.dialect.name
        if dialect_name == "sqlite":
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        elif dialect_name == "postgresql":
            conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}")

    # ------------------------------------------------------------------
    # contract
    # ------------------------------------------------------------------

    def run(self, statement, params: Sequence | dict = ()) -> RunResult:
        """Execute an INSERT/UPDATE/DELETE in its own short transaction."""
        def _op():
            with self.engine.connect() as conn:
                result = TransactionHandle(self, conn).run(statement, params)
                conn.commit()
                return result
        return self._with_retry(_op)

    def get(self, query, params: Sequence | dict = ()) -> dict | None:
        def _op():
            with self.engine.connect() as conn:
                return TransactionHandle(self, conn).get(query, params)
        return self._with_retry(_op)

    def all(self, query, params: Sequence | dict = ()) -> list[dict]:
        def _op():
            with self.engine.connect() as conn:
                return TransactionHandle(self, conn).all(query, params)
        return self._with_retry(_op)

    def exec_raw(self, ddl: str) -> None:
        """Execute raw SQL (schema statements) without placeholder rewriting."""
        def _op():
            with self.engine.connect() as conn:
                conn.exec_driver_sql(ddl)
                conn.commit()
        return self._with_retry(_op)

    def transaction(self, fn: Callable[..., Any], *args, **kwargs):
        """
        Run fn(tx, *args, **kwargs) on one exclusive connection.

        Commits when fn returns, rolls back and re-raises on any error
        (business-rule errors raised by fn included).
        """
        def _attempt():
            with self.engine.connect() as conn:
                try:
                    self._begin(conn)
                    result = fn(TransactionHandle(self, conn), *args, **kwargs)
                    conn.commit()
                    return result
                except Exception as exc:
                    conn.rollback()
                    self.logger.warning("Transaction rolled back: %s", exc)
                    raise
        return self._with_retry(_attempt)

    # ------------------------------------------------------------------
    # health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Round-trip `SELECT 1` without retries; records the outcome."""
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except Exception as exc:
            self._record_health(False, exc)
            return False
        self._record_health(True, None)
        return True

    def _record_health(self, ok: bool, exc: BaseException | None) -> None:
        with self._state_lock:
            was_healthy = self._is_healthy
            self._last_checked_at = utcnow()
            if ok:
                recovered = not was_healthy or self._consecutive_failures > 0
                self._is_healthy = True
                self._consecutive_failures = 0
                self._last_error = None
            else:
                recovered = False
                self._is_healthy = False
                self._consecutive_failures += 1
                self._last_error = str(exc)
            failures = self._consecutive_failures

        if not ok:
            self.logger.error("Database health check FAILED (%s consecutive): %s", failures, exc)
        elif recovered:
            self.logger.info("Database health check PASSED - connection restored")

    def start_health_check(self, interval: float = 30.0) -> None:
        if self._monitor is not None and self._monitor.is_alive():
            self.logger.info("Health check already running")
            return
        if interval <= 0:
            return

        self._stop_event = threading.Event()
        app = self._app
        stop_event = self._stop_event

        def _loop():
            while not stop_event.wait(interval):
                with app.app_context():
                    self.ping()

        self._monitor = threading.Thread(target=_loop, name="db-health-check", daemon=True)
        self._monitor.start()
        self.logger.info("Starting database health check (interval: %ss)", interval)

    def stop_health_check(self) -> None:
        if self._monitor is None:
            return
        self._stop_event.set()
        self._monitor.join(timeout=5)
        self._monitor = None
        self.logger.info("Database health check stopped")

    @property
    def is_healthy(self) -> bool:
        with self._state_lock:
            return self._is_healthy

    def health_status(self) -> dict:
        with self._state_lock:
            status = {
                "is_healthy": self._is_healthy,
                "consecutive_failures": self._consecutive_failures,
                "last_checked_at": to_utc_z(self._last_checked_at),
                "last_error": self._last_error,
                "monitor_running": self._monitor is not None and self._monitor.is_alive(),
            }

        pool = self.engine.pool
        stats = {}
        for key, attr in (("size", "size"), ("checked_out", "checkedout"), ("overflow", "overflow")):
            fn = getattr(pool, attr, None)
            if callable(fn):
                stats[key] = fn()
        status["pool"] = stats
        return status

    def close(self) -> None:
        self.stop_health_check()
        self.engine.dispose()
        self.logger.info("Database connection pool closed")
