"""
Google Sheets Storage Implementation

DESIGN DECISION: The ledger, the user roster and the reference lists all
live in one spreadsheet that the accounting team already maintains by hand.
We read and write it in place rather than keeping a copy.

TRADEOFFS:
- No transactions. A transfer is two independent appends.
- No atomic append. The next free row is found by scanning the primary key
  column (first_column) and writing one row below the last value. Two
  processes appending at the same time can pick the same row and one
  record overwrites the other. Within one process appends are serialized
  by a lock; running more than one writer process is not supported.
- gspread is synchronous, so every call runs in a worker thread to keep
  other users' conversations moving.
"""

import asyncio
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import a1_to_rowcol
from tenacity import retry, stop_after_attempt, wait_exponential

from cashflow_bot.config import GoogleSheetsSettings, get_settings
from cashflow_bot.models.audit import AUDIT_COLUMNS, AuditEvent
from cashflow_bot.models.ledger import LedgerRecord, UserProfile
from cashflow_bot.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DirectoryError,
    DirectoryInterface,
    LedgerInterface,
    LedgerWriteError,
)


logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
]


def column_number(column: str) -> int:
    """Convert a column letter ("C", "AA") to its 1-based number."""
    return a1_to_rowcol(f"{column}1")[1]


def _cell(row: list, index: int, default: str = "") -> str:
    try:
        return str(row[index]).strip() if row[index] is not None else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found or not shared with the service account: "
                    f"{self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def worksheet(self, name: str) -> gspread.Worksheet:
        """Get an existing worksheet by title."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(name)
        except gspread.WorksheetNotFound:
            raise ConnectionError(f"Worksheet not found: {name!r}")

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the audit worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.audit_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.audit_sheet_name,
                rows=5000,
                cols=len(AUDIT_COLUMNS),
            )
            sheet.append_row(AUDIT_COLUMNS)
        return sheet

    def describe(self) -> tuple[str, list[str]]:
        """Return the spreadsheet title and the titles of all its sheets."""
        spreadsheet = self.get_spreadsheet()
        return spreadsheet.title, [ws.title for ws in spreadsheet.worksheets()]

    def configured_sheet_names(self) -> dict[str, str]:
        s = self._settings
        return {
            "ledger": s.ledger_sheet_name,
            "users": s.users_sheet_name,
            "directions": s.directions_sheet_name,
            "wallets": s.wallets_sheet_name,
            "categories": s.categories_sheet_name,
        }


class GoogleSheetsDirectory(DirectoryInterface):
    """
    Users and reference lists read from their sheets.

    Users sheet columns: identity, handle, full name, position.
    Categories sheet columns: name, type.
    Wallet and direction sheets: names in the first column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._settings = self._client.settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _read(self, sheet_name: str, cell_range: str) -> list[list]:
        def read() -> list[list]:
            return self._client.worksheet(sheet_name).get_values(cell_range)

        try:
            return await asyncio.to_thread(read) or []
        except Exception as e:
            raise DirectoryError(f"Failed to read {sheet_name}!{cell_range}: {e}")

    async def _first_column(self, sheet_name: str, cell_range: str) -> list[str]:
        rows = await self._read(sheet_name, cell_range)
        return [value for value in (_cell(row, 0) for row in rows) if value]

    async def lookup_user(self, identity: int) -> Optional[UserProfile]:
        rows = await self._read(self._settings.users_sheet_name, self._settings.users_range)
        for row in rows:
            try:
                row_identity = int(_cell(row, 0))
            except ValueError:
                continue  # Blank or malformed id cell
            if row_identity == identity:
                return UserProfile(
                    identity=row_identity,
                    handle=_cell(row, 1),
                    full_name=_cell(row, 2),
                    position=_cell(row, 3),
                )
        return None

    async def list_wallets(self) -> list[str]:
        return await self._first_column(
            self._settings.wallets_sheet_name, self._settings.wallets_range
        )

    async def list_directions(self) -> list[str]:
        return await self._first_column(
            self._settings.directions_sheet_name, self._settings.directions_range
        )

    async def list_categories(
        self,
        category_type: Optional[str] = None,
        exclude_marker: Optional[str] = None,
    ) -> list[str]:
        rows = await self._read(
            self._settings.categories_sheet_name, self._settings.categories_range
        )
        categories = []
        for row in rows:
            name = _cell(row, 0)
            if not name:
                continue
            if category_type and _cell(row, 1) != category_type:
                continue
            if exclude_marker and exclude_marker in name:
                continue
            categories.append(name)
        return categories


class GoogleSheetsLedger(LedgerInterface):
    """
    The ledger sheet.

    A record is written with one batch update: core fields into
    first_column..last_core_column, submitter name and id into their own
    columns, and the receipt link if the record already has one.

    Appends are NOT retried. An append that failed after reaching Google may
    still have been written, and a retry would then duplicate the row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._settings = self._client.settings
        self._append_lock = asyncio.Lock()

    def _ledger_sheet(self) -> gspread.Worksheet:
        return self._client.worksheet(self._settings.ledger_sheet_name)

    def _next_free_row(self, sheet: gspread.Worksheet) -> int:
        key_values = sheet.col_values(column_number(self._settings.first_column))
        return len(key_values) + 1

    def _record_ranges(self, record: LedgerRecord, row: int) -> list[dict]:
        s = self._settings
        ranges = [
            {
                "range": f"{s.first_column}{row}:{s.last_core_column}{row}",
                "values": [record.core_values()],
            },
            {
                "range": f"{s.submitter_name_column}{row}",
                "values": [[record.submitter_name]],
            },
            {
                "range": f"{s.submitter_id_column}{row}",
                "values": [[record.submitter_id]],
            },
        ]
        if record.attachment_link:
            ranges.append({
                "range": f"{s.attachment_column}{row}",
                "values": [[record.attachment_link]],
            })
        return ranges

    def _append_sync(self, record: LedgerRecord) -> int:
        sheet = self._ledger_sheet()
        row = self._next_free_row(sheet)
        sheet.batch_update(
            self._record_ranges(record, row),
            value_input_option="USER_ENTERED",
        )
        return row

    async def append_record(self, record: LedgerRecord) -> int:
        async with self._append_lock:
            try:
                row = await asyncio.to_thread(self._append_sync, record)
            except Exception as e:
                raise LedgerWriteError(f"Failed to append ledger record: {e}")

        logger.info(
            "ledger_row_written",
            row=row,
            amount=record.amount_text,
            wallet=record.wallet,
            submitter_id=record.submitter_id,
        )
        return row

    async def attach_link(self, row: int, link: str) -> None:
        cell = f"{self._settings.attachment_column}{row}"

        def write() -> None:
            self._ledger_sheet().update(
                range_name=cell,
                values=[[link]],
                value_input_option="USER_ENTERED",
            )

        try:
            await asyncio.to_thread(write)
        except Exception as e:
            raise LedgerWriteError(f"Failed to write receipt link to {cell}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""

        def append() -> None:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

        try:
            await asyncio.to_thread(append)
            return True
        except Exception as e:
            # Audit logging must not break the conversation
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False
