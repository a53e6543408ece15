"""SQLAlchemy Core implementation of the counter store.

Notes:
- Any dialect supporting ``RETURNING`` and ``INSERT ... ON CONFLICT`` works
  (SQLite >= 3.35, PostgreSQL).
- In-memory SQLite shares one connection across threads; transactions on it
  are serialized by a store-level lock held from begin until close.
- SQLite: pysqlite's implicit transaction handling is switched off and the
  ``BEGIN`` statement is emitted explicitly, so write transactions take the
  database write lock up front (``BEGIN IMMEDIATE``) instead of upgrading a
  read lock mid-transaction.
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from typing import Any, Callable, Mapping

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine, RootTransaction, make_url
from sqlalchemy.engine.url import URL
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from sql_rate_limit.adapters.store.base import (
    AbstractStore,
    AbstractTransaction,
    Row,
    TransactionMode,
)
from sql_rate_limit.core.errors import ConfigurationError, StoreError

logger = logging.getLogger(__name__)

_SQLITE_BEGIN: dict[str, str] = {
    "write": "BEGIN IMMEDIATE",
    "read": "BEGIN DEFERRED",
    "deferred": "BEGIN",
}

_MODE_INFO_KEY = "rate_limit_transaction_mode"


def _store_error(exc: Exception, *, code: str, operation: str) -> StoreError:
    return StoreError(
        code=code,
        message=f"Store {operation} failed: {type(exc).__name__}",
        details={"operation": operation, "error_type": type(exc).__name__},
    )


def normalize_store_url(url: str | None, credential: str | None = None) -> URL:
    """Parse a store location into a SQLAlchemy URL.

    Accepts regular SQLAlchemy URLs plus the ``file:`` shorthand
    (``file:./rate-limit.db``, ``file::memory:``) for local SQLite files.

    Args:
        url: Connection string.
        credential: Optional password/token placed in the URL password slot.

    Returns:
        Parsed URL.

    Raises:
        ConfigurationError: If the URL is empty or cannot be parsed.
    """
    if url is None or not url.strip():
        raise ConfigurationError(
            code="store_url_missing",
            message="A store URL is required",
            details={"hint": "Set RATE_LIMIT_STORE_URL or pass url= explicitly"},
        )

    raw = url.strip()
    if raw.startswith("file:"):
        path = raw[len("file:"):]
        raw = "sqlite://" if path in ("", ":memory:") else f"sqlite:///{path}"

    try:
        parsed = make_url(raw)
    except ArgumentError as exc:
        raise ConfigurationError(
            code="store_url_invalid",
            message="Store URL could not be parsed",
            details={"hint": "Expected a SQLAlchemy URL such as sqlite:///./rate-limit.db"},
        ) from exc

    if credential:
        if parsed.get_backend_name() == "sqlite":
            logger.warning(
                "store.credential_ignored",
                extra={"dialect": "sqlite", "reason": "sqlite_has_no_authentication"},
            )
        else:
            parsed = parsed.set(password=credential)

    return parsed


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class SQLAlchemyTransaction(AbstractTransaction):
    """Transaction bound to a single pooled connection."""

    def __init__(
        self,
        connection: Connection,
        mode: TransactionMode,
        *,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._connection = connection
        self._mode = mode
        self._on_close = on_close
        self._transaction: RootTransaction | None = None

    def begin(self) -> "SQLAlchemyTransaction":
        self._connection.info[_MODE_INFO_KEY] = self._mode
        try:
            self._transaction = self._connection.begin()
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_begin_failed", operation="begin") from exc
        finally:
            self._connection.info.pop(_MODE_INFO_KEY, None)
        return self

    @property
    def is_active(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Row]:
        if not self.is_active:
            raise StoreError(
                code="transaction_inactive",
                message="Transaction is no longer active",
                details={"operation": "execute"},
            )
        try:
            result = self._connection.execute(text(statement), dict(params or {}))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_execute_failed", operation="execute") from exc

    def commit(self) -> None:
        if self._transaction is None:
            return
        try:
            self._transaction.commit()
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_commit_failed", operation="commit") from exc

    def rollback(self) -> None:
        if not self.is_active:
            return
        try:
            self._transaction.rollback()  # type: ignore[union-attr]
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_rollback_failed", operation="rollback") from exc

    def close(self) -> None:
        try:
            if self.is_active:
                self._transaction.rollback()  # type: ignore[union-attr]
        except SQLAlchemyError:
            logger.warning("store.rollback_on_close_failed", exc_info=True)
        finally:
            self._transaction = None
            try:
                self._connection.close()
            finally:
                if self._on_close is not None:
                    on_close, self._on_close = self._on_close, None
                    on_close()


class SQLAlchemyStore(AbstractStore):
    """Counter store backed by a SQLAlchemy engine.

    The engine (and its pool) is a long-lived shared resource: build one
    store per process and call ``close()`` once during shutdown.
    """

    def __init__(
        self,
        url: str | URL,
        *,
        credential: str | None = None,
        busy_timeout_seconds: float = 30.0,
        **engine_kwargs: Any,
    ) -> None:
        """Create the engine for ``url``.

        Args:
            url: SQLAlchemy URL or ``file:`` shorthand.
            credential: Optional password/token for networked databases.
            busy_timeout_seconds: SQLite wait time for a competing writer.
            **engine_kwargs: Extra keyword arguments for ``create_engine``.

        Raises:
            ConfigurationError: If the URL is invalid or its driver is missing.
        """
        parsed = url if isinstance(url, URL) else normalize_store_url(url, credential)
        self.dialect = parsed.get_backend_name()
        self._closed = False
        # One shared connection serves every thread for in-memory SQLite;
        # a transaction owns it from begin until close.
        self._connection_lock: threading.RLock | None = None

        kwargs: dict[str, Any] = dict(engine_kwargs)
        if self.dialect == "sqlite":
            connect_args = kwargs.setdefault("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
            if _is_memory_sqlite(parsed):
                kwargs.setdefault("poolclass", StaticPool)
                self._connection_lock = threading.RLock()
            else:
                connect_args.setdefault("timeout", busy_timeout_seconds)
        else:
            kwargs.setdefault("pool_pre_ping", True)

        try:
            self._engine: Engine = create_engine(parsed, **kwargs)
        except (ArgumentError, ImportError) as exc:
            raise ConfigurationError(
                code="store_driver_unavailable",
                message=f"Cannot create engine for dialect '{self.dialect}'",
                details={"dialect": self.dialect, "error_type": type(exc).__name__},
            ) from exc

        if self.dialect == "sqlite":
            self._install_sqlite_transaction_hooks()

        logger.debug("store.engine_created", extra={"dialect": self.dialect})

    def _install_sqlite_transaction_hooks(self) -> None:
        @event.listens_for(self._engine, "connect")
        def _disable_pysqlite_autobegin(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(self._engine, "begin")
        def _emit_begin(conn: Connection) -> None:
            mode = conn.info.get(_MODE_INFO_KEY, "deferred")
            conn.exec_driver_sql(_SQLITE_BEGIN[mode])

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError(
                code="store_closed",
                message="Store has been closed",
                details={"dialect": self.dialect},
            )

    def _connect(self) -> Connection:
        self._ensure_open()
        try:
            return self._engine.connect()
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_unavailable", operation="connect") from exc

    def transaction(self, mode: TransactionMode = "write") -> SQLAlchemyTransaction:
        lock = self._connection_lock
        if lock is None:
            connection = self._connect()
            try:
                return SQLAlchemyTransaction(connection, mode).begin()
            except StoreError:
                connection.close()
                raise

        # Blocks while another thread's transaction holds the shared connection.
        lock.acquire()
        try:
            connection = self._connect()
        except StoreError:
            lock.release()
            raise
        try:
            return SQLAlchemyTransaction(connection, mode, on_close=lock.release).begin()
        except StoreError:
            try:
                connection.close()
            finally:
                lock.release()
            raise

    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Row]:
        tx = self.transaction("write")
        try:
            rows = tx.execute(statement, params)
            tx.commit()
            return rows
        finally:
            tx.close()

    def table_exists(self, name: str) -> bool:
        self._ensure_open()
        lock = self._connection_lock or nullcontext()
        try:
            with lock:
                return inspect(self._engine).has_table(name)
        except SQLAlchemyError as exc:
            raise _store_error(exc, code="store_inspect_failed", operation="inspect") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.debug("store.closed", extra={"dialect": self.dialect})
