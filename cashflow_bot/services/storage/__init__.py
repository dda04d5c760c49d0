"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the directory,
the ledger and the audit log. Google Sheets is the only backend today, but
the conversation engine only depends on the interfaces.
"""

from cashflow_bot.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DirectoryError,
    DirectoryInterface,
    LedgerInterface,
    LedgerWriteError,
    StorageError,
)
from cashflow_bot.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDirectory,
    GoogleSheetsLedger,
    column_number,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DirectoryInterface",
    "LedgerInterface",
    # Exceptions
    "ConnectionError",
    "DirectoryError",
    "LedgerWriteError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDirectory",
    "GoogleSheetsLedger",
    "column_number",
]
