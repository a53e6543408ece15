"""Store-backed fixed-window rate limiter.

Counters live in a shared SQL table, so every process pointed at the same
database enforces one common limit per key. Each ``limit`` call is a single
write transaction: the conditional update (or insert) both decides whether
the window rolled over and bumps the counter, and ``RETURNING`` hands back
the row this call wrote. No in-process lock is held; same-key callers are
serialized by the database.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from sql_rate_limit.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from sql_rate_limit.adapters.store.base import AbstractStore, Row
from sql_rate_limit.adapters.store.factory import create_store
from sql_rate_limit.core.config import RateLimitSettings
from sql_rate_limit.core.errors import InitializationError, StoreError, ValidationAppError
from sql_rate_limit.core.logging import hash_key

logger = logging.getLogger(__name__)

TABLE_NAME = "rate_limits"

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    key TEXT PRIMARY KEY,
    count INTEGER NOT NULL,
    reset_at BIGINT NOT NULL
)
"""

# Inside the window: count + 1, reset_at kept. Window elapsed: a new window
# starting now. Both CASE expressions read the pre-update row.
UPDATE_COUNTER_SQL = f"""
UPDATE {TABLE_NAME}
SET count = CASE WHEN reset_at <= :now THEN 1 ELSE count + 1 END,
    reset_at = CASE WHEN reset_at <= :now THEN :reset_at ELSE reset_at END
WHERE key = :key
RETURNING count, reset_at
"""

# A concurrent caller may insert the same key between our UPDATE and INSERT;
# the conflict branch then applies the same transition to its row.
INSERT_COUNTER_SQL = f"""
INSERT INTO {TABLE_NAME} (key, count, reset_at)
VALUES (:key, 1, :reset_at)
ON CONFLICT (key) DO UPDATE
SET count = CASE WHEN {TABLE_NAME}.reset_at <= :now THEN 1 ELSE {TABLE_NAME}.count + 1 END,
    reset_at = CASE WHEN {TABLE_NAME}.reset_at <= :now THEN :reset_at ELSE {TABLE_NAME}.reset_at END
RETURNING count, reset_at
"""


def epoch_millis() -> int:
    """Current UNIX time in milliseconds."""
    return time.time_ns() // 1_000_000


class RateLimiter(AbstractRateLimiter):
    """Fixed-window rate limiter persisted in a transactional store.

    Lifecycle is explicit: construct, call ``limit`` as often as needed,
    then ``close()`` once on shutdown. The counter table is created lazily
    before the first ``limit`` call (or eagerly via ``initialize()``).

    Example:
        >>> limiter = RateLimiter(create_store("sqlite:///./rate-limit.db"))
        >>> result = limiter.limit(key="ip:1.2.3.4", limit=5, window=60_000)
        >>> result.success, result.remaining
        (True, 4)
        >>> limiter.close()
    """

    def __init__(
        self,
        store: AbstractStore,
        *,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Transactional store holding the counters.
            clock: Time source returning UNIX time in milliseconds.
        """
        self._store = store
        self._clock = clock
        self._initialized = False
        self._closed = False

    def __enter__(self) -> "RateLimiter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def store(self) -> AbstractStore:
        return self._store

    def initialize(self) -> None:
        """Create the counter table if it does not exist yet.

        Safe to call repeatedly and from several processes at once; existing
        counters are never touched.

        Raises:
            InitializationError: If the table cannot be created.
        """
        self._ensure_open()

        try:
            self._store.execute(CREATE_TABLE_SQL)
        except StoreError as exc:
            # Another process may have created the table between our
            # IF NOT EXISTS check and our CREATE.
            if not self._table_visible():
                logger.error(
                    "store.initialization_failed",
                    extra={"table": TABLE_NAME, "error_code": exc.code},
                )
                raise InitializationError(
                    code="schema_creation_failed",
                    message=f"Could not create the {TABLE_NAME} table",
                    details={"table": TABLE_NAME, "error_type": exc.code},
                ) from exc
            logger.info(
                "store.initialization_raced",
                extra={"table": TABLE_NAME, "error_code": exc.code},
            )

        self._initialized = True
        logger.debug("store.initialized", extra={"table": TABLE_NAME})

    def _table_visible(self) -> bool:
        try:
            return self._store.table_exists(TABLE_NAME)
        except StoreError:
            return False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError(
                code="limiter_closed",
                message="Rate limiter has been closed",
            )

    @staticmethod
    def _validate(key: str, limit: int, window: int) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationAppError(
                code="invalid_key",
                message="key must be a non-empty string",
                details={"field": "key"},
            )
        for field, value in (("limit", limit), ("window", window)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationAppError(
                    code=f"invalid_{field}",
                    message=f"{field} must be a positive integer",
                    details={"field": field, "actual_value": value},
                )

    def _record_request(self, key: str, now: int, reset_at: int) -> Row:
        """Apply one request to the counter of ``key`` atomically.

        Returns:
            The ``count``/``reset_at`` row written by this call.

        Raises:
            StoreError: If the transaction fails; nothing is persisted.
        """
        params = {"key": key, "now": now, "reset_at": reset_at}
        tx = self._store.transaction("write")
        try:
            rows = tx.execute(UPDATE_COUNTER_SQL, params)
            if not rows:
                rows = tx.execute(INSERT_COUNTER_SQL, params)
            if not rows:
                raise StoreError(
                    code="counter_not_returned",
                    message="Store did not return the updated counter",
                    details={"table": TABLE_NAME},
                )
            tx.commit()
            return rows[0]
        except Exception:
            try:
                tx.rollback()
            except StoreError:
                logger.warning("rate_limit.rollback_failed", exc_info=True)
            raise
        finally:
            tx.close()

    def limit(self, *, key: str, limit: int, window: int) -> RateLimitResult:
        """Record one request for ``key`` and decide whether it is allowed.

        Args:
            key: Rate limit subject; callers namespace it (``ip:...``,
                ``user:...``).
            limit: Maximum requests per window (> 0).
            window: Window length in milliseconds (> 0).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValidationAppError: If an argument is invalid.
            InitializationError: If the counter table cannot be created.
            StoreError: If the store fails; the counter is left unchanged.
        """
        self._validate(key, limit, window)
        self._ensure_open()
        if not self._initialized:
            self.initialize()

        now = self._clock()
        new_reset_at = now + window

        try:
            row = self._record_request(key, now, new_reset_at)
        except StoreError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={"key_hash": hash_key(key), "error_code": exc.code},
            )
            raise

        count = int(row["count"])
        reset_at = int(row["reset_at"])

        return RateLimitResult(
            success=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset=max(0, reset_at - now),
        )

    def close(self) -> None:
        """Release the store connection. ``limit`` fails afterwards."""
        if self._closed:
            return
        self._closed = True
        self._store.close()


def create_rate_limiter(
    url: str | None = None,
    credential: str | None = None,
    *,
    rate_limit_settings: RateLimitSettings | None = None,
    clock: Callable[[], int] = epoch_millis,
) -> RateLimiter:
    """Build a limiter over a new store.

    Args:
        url: Store URL; defaults to ``RATE_LIMIT_STORE_URL``.
        credential: Store password/token; defaults to
            ``RATE_LIMIT_STORE_CREDENTIAL``.
        rate_limit_settings: Settings to read defaults from.
        clock: Time source returning UNIX time in milliseconds.

    Raises:
        ConfigurationError: If the store location is missing or invalid.
    """
    store = create_store(url, credential, rate_limit_settings=rate_limit_settings)
    return RateLimiter(store, clock=clock)
