"""
Shared fixtures.

The engine is exercised against in-memory fakes of the directory, the
ledger and the receipt store. No test talks to Google or Cloudinary.
"""

from datetime import date
from pathlib import Path
from typing import Optional

import pytest

from cashflow_bot.config import AppSettings, get_settings
from cashflow_bot.engine import ConversationEngine, SessionStore
from cashflow_bot.errors import DirectoryError, LedgerWriteError
from cashflow_bot.models.conversation import INFLOW, OUTFLOW
from cashflow_bot.models.ledger import LedgerRecord, UserProfile
from cashflow_bot.services.attachments import AttachmentInterface
from cashflow_bot.services.storage import DirectoryInterface, LedgerInterface


ADMIN_ID = 1001
STAFF_ID = 1002
STRANGER_ID = 9999
TODAY = date(2025, 8, 30)


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Set deterministic test env and reset cached Settings."""
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}")

    monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
    monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "test-spreadsheet")
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "test-cloud")
    monkeypatch.setenv("CLOUDINARY_API_KEY", "test-key")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "test-secret")
    monkeypatch.delenv("EXTERNAL_CALL_TIMEOUT_SECONDS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeDirectory(DirectoryInterface):
    """Directory backed by plain lists. Set `fail` to make every call raise."""

    def __init__(self):
        self.users = {
            ADMIN_ID: UserProfile(
                identity=ADMIN_ID, handle="boss", full_name="Иван Петров", position="Администратор"
            ),
            STAFF_ID: UserProfile(
                identity=STAFF_ID, handle="clerk", full_name="Анна Смирнова", position="Бухгалтер"
            ),
        }
        self.wallets = ["Касса", "Расчетный счет"]
        self.directions = ["Розница", "Опт"]
        self.categories = [
            ("Аренда", OUTFLOW),
            ("Зарплата", OUTFLOW),
            ("Выручка", INFLOW),
            ("Выбытие: Перевод между счетами", OUTFLOW),
            ("Поступление: Перевод между счетами", INFLOW),
        ]
        self.fail = False
        self.lookups = 0

    def _check(self):
        if self.fail:
            raise DirectoryError("directory unavailable")

    async def lookup_user(self, identity: int) -> Optional[UserProfile]:
        self._check()
        self.lookups += 1
        return self.users.get(identity)

    async def list_wallets(self) -> list[str]:
        self._check()
        return list(self.wallets)

    async def list_directions(self) -> list[str]:
        self._check()
        return list(self.directions)

    async def list_categories(self, category_type=None, exclude_marker=None) -> list[str]:
        self._check()
        return [
            name
            for name, kind in self.categories
            if (category_type is None or kind == category_type)
            and not (exclude_marker and exclude_marker in name)
        ]


class FakeLedger(LedgerInterface):
    """
    Ledger kept in a list. Rows start at 2, below the header.

    fail_on_call makes the n-th append (1-based) raise instead of writing.
    """

    def __init__(self):
        self.records: list[LedgerRecord] = []
        self.links: dict[int, str] = {}
        self.append_calls = 0
        self.fail_on_call: Optional[int] = None
        self.fail_links = False

    async def append_record(self, record: LedgerRecord) -> int:
        self.append_calls += 1
        if self.fail_on_call == self.append_calls:
            raise LedgerWriteError("quota exceeded")
        self.records.append(record)
        return len(self.records) + 1

    async def attach_link(self, row: int, link: str) -> None:
        if self.fail_links:
            raise LedgerWriteError("cell locked")
        self.links[row] = link


class FakeAttachments(AttachmentInterface):
    def __init__(self):
        self.uploads: list[tuple[bytes, str, str]] = []
        self.error: Optional[Exception] = None

    async def upload(self, data: bytes, display_name: str, description: str = "") -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((data, display_name, description))
        return f"https://res.cloudinary.com/test/{len(self.uploads)}.jpg"


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def attachments() -> FakeAttachments:
    return FakeAttachments()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def engine(directory, ledger, attachments, app_settings) -> ConversationEngine:
    return ConversationEngine(
        directory=directory,
        ledger=ledger,
        attachments=attachments,
        sessions=SessionStore(),
        settings=app_settings,
        today_provider=lambda: TODAY,
    )


@pytest.fixture
def admin() -> UserProfile:
    return UserProfile(identity=ADMIN_ID, handle="boss", full_name="Иван Петров", position="Администратор")

