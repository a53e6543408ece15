"""Store interfaces consumed by the rate limiter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal, Mapping

TransactionMode = Literal["write", "read", "deferred"]

Row = dict[str, Any]


class AbstractTransaction(ABC):
    """One unit of work against the store.

    Every transaction must end in ``commit()`` or ``rollback()`` followed by
    ``close()``. Closing a transaction that is still open rolls it back.
    """

    @abstractmethod
    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Row]:
        """Run one statement inside the transaction.

        Args:
            statement: SQL text with named (``:name``) placeholders.
            params: Bind parameters.

        Returns:
            Rows produced by the statement (``RETURNING`` or ``SELECT``),
            empty for statements that return nothing.

        Raises:
            StoreError: If the statement fails.
        """
        raise NotImplementedError

    @abstractmethod
    def commit(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class AbstractStore(ABC):
    """Interface for transactional counter stores."""

    @abstractmethod
    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Row]:
        """Run one statement in its own transaction and return its rows."""
        raise NotImplementedError

    @abstractmethod
    def transaction(self, mode: TransactionMode = "write") -> AbstractTransaction:
        """Open a transaction.

        Args:
            mode: ``write`` takes the write lock up front where the backend
                supports it, ``read`` and ``deferred`` take locks lazily.

        Raises:
            StoreError: If the store is closed or unreachable.
        """
        raise NotImplementedError

    @abstractmethod
    def table_exists(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection(s)."""
        raise NotImplementedError
