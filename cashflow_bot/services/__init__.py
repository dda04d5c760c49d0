"""Services package."""

from cashflow_bot.services.attachments import (
    AttachmentError,
    AttachmentInterface,
    CloudinaryAttachmentService,
    ReceiptRejectedError,
)
from cashflow_bot.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DirectoryError,
    DirectoryInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDirectory,
    GoogleSheetsLedger,
    LedgerInterface,
    LedgerWriteError,
    StorageError,
)

__all__ = [
    # Receipt storage
    "AttachmentError",
    "AttachmentInterface",
    "CloudinaryAttachmentService",
    "ReceiptRejectedError",
    # Directory, ledger and audit storage
    "AuditStorageInterface",
    "ConnectionError",
    "DirectoryError",
    "DirectoryInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDirectory",
    "GoogleSheetsLedger",
    "LedgerInterface",
    "LedgerWriteError",
    "StorageError",
]
