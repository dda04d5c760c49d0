"""
Abstract Storage Interfaces

DESIGN DECISION: The conversation engine only talks to these interfaces.
This allows us to:
1. Swap Google Sheets for another tabular backend later
2. Use in-memory fakes for testing
3. Keep the state machine decoupled from spreadsheet layout

The interfaces are intentionally small: the engine needs to look users up,
read reference lists, append rows and attach a link to a row it appended.
"""

from abc import ABC, abstractmethod
from typing import Optional

from cashflow_bot.errors import DirectoryError, ExternalServiceError, LedgerWriteError
from cashflow_bot.models.audit import AuditEvent
from cashflow_bot.models.ledger import LedgerRecord, UserProfile


class DirectoryInterface(ABC):
    """
    User roster and reference lists.

    Every call re-reads the backend. Nothing is cached: access revoked in
    the sheet takes effect on the user's next message.
    """

    @abstractmethod
    async def lookup_user(self, identity: int) -> Optional[UserProfile]:
        """
        Find a user by numeric identity.

        Returns:
            The profile, or None if the identity is not listed

        Raises:
            DirectoryError: If the roster cannot be read
        """
        pass

    @abstractmethod
    async def list_wallets(self) -> list[str]:
        """Wallet names, in sheet order."""
        pass

    @abstractmethod
    async def list_directions(self) -> list[str]:
        """Business direction names, in sheet order."""
        pass

    @abstractmethod
    async def list_categories(
        self,
        category_type: Optional[str] = None,
        exclude_marker: Optional[str] = None,
    ) -> list[str]:
        """
        Ledger categories, in sheet order.

        Args:
            category_type: Only categories of this type ("Выбытие", "Поступление")
            exclude_marker: Drop categories whose name contains this text
        """
        pass


class LedgerInterface(ABC):
    """
    The ledger sheet.

    Rows are appended, and the only later write is the receipt link
    of a row this process appended itself.
    """

    @abstractmethod
    async def append_record(self, record: LedgerRecord) -> int:
        """
        Write a record to the next free row.

        Returns:
            The 1-based row number written

        Raises:
            LedgerWriteError: On any failure. The row must be treated as
                not committed.
        """
        pass

    @abstractmethod
    async def attach_link(self, row: int, link: str) -> None:
        """
        Write a receipt link into an already appended row.

        Raises:
            LedgerWriteError: If the cell could not be written
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(ExternalServiceError):
    """Base exception for storage backend failures."""

    service = "storage"


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DirectoryError",
    "DirectoryInterface",
    "LedgerInterface",
    "LedgerWriteError",
    "StorageError",
]
