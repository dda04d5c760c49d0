"""
Tests for the Cash Flow Bot models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Engine scenarios against in-memory fakes (see test_engine.py)
3. No real API calls in tests (use fakes and monkeypatch)
"""

import json
import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from cashflow_bot.config import AppSettings
from cashflow_bot.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from cashflow_bot.models.conversation import (
    INFLOW,
    OUTFLOW,
    OperationKind,
    Step,
    TransactionDraft,
    UserSession,
    next_step,
)
from cashflow_bot.models.events import (
    AttachmentChoice,
    AttachmentDecision,
    Cancel,
    DatePreset,
    DatePresetChoice,
    ImageSubmitted,
    OperationChosen,
    Prompt,
    PromptOption,
    SelectionChosen,
    event_from_action,
)
from cashflow_bot.models.ledger import (
    TRANSFER_PURPOSE,
    LedgerRecord,
    UserProfile,
    fallback_transfer_category,
    transfer_legs,
)


def complete_expense_draft(**overrides) -> TransactionDraft:
    fields = dict(
        date="30.08.2025",
        amount=Decimal("-1000"),
        wallet="Касса",
        direction="Розница",
        counterparty="ООО Ромашка",
        purpose="Аренда",
        category="Аренда офиса",
    )
    fields.update(overrides)
    return TransactionDraft(**fields)


class TestUserProfile:
    """Tests for directory user rows."""

    def test_admin_detected_from_position(self, admin):
        assert admin.is_admin

    def test_admin_check_is_case_insensitive(self):
        user = UserProfile(identity=1, position="Главный АДМИН")
        assert user.is_admin

    def test_staff_is_not_admin(self):
        user = UserProfile(identity=1, position="Бухгалтер")
        assert not user.is_admin

    def test_display_name_fallbacks(self):
        """Full name, then handle, then the placeholder."""
        assert UserProfile(identity=1, full_name="  Иван  ").display_name == "Иван"
        assert UserProfile(identity=1, handle="ivan").display_name == "ivan"
        assert UserProfile(identity=1).display_name == "Неизвестный"


class TestConversationModels:
    """Tests for drafts, sessions and step sequencing."""

    def test_single_entry_sequence(self):
        assert next_step(OperationKind.EXPENSE, Step.AWAITING_AMOUNT) == Step.AWAITING_WALLET
        assert next_step(OperationKind.INCOME, Step.AWAITING_CATEGORY) == Step.AWAITING_ATTACHMENT_DECISION

    def test_transfer_sequence_skips_single_entry_fields(self):
        assert next_step(OperationKind.TRANSFER, Step.AWAITING_AMOUNT) == Step.AWAITING_DIRECTION
        assert next_step(OperationKind.TRANSFER, Step.AWAITING_DIRECTION) == Step.AWAITING_SOURCE_WALLET

    def test_next_step_rejects_foreign_step(self):
        with pytest.raises(ValueError):
            next_step(OperationKind.TRANSFER, Step.AWAITING_CATEGORY)
        with pytest.raises(ValueError):
            next_step(OperationKind.EXPENSE, Step.SUBMITTED)

    def test_category_type_follows_operation(self):
        assert OperationKind.INCOME.category_type == INFLOW
        assert OperationKind.EXPENSE.category_type == OUTFLOW
        assert OperationKind.TRANSFER.category_type == OUTFLOW

    def test_draft_missing_fields(self):
        draft = TransactionDraft(date="30.08.2025")
        assert "amount" in draft.missing_fields(OperationKind.EXPENSE)
        assert not draft.is_complete(OperationKind.EXPENSE)
        assert complete_expense_draft().is_complete(OperationKind.EXPENSE)

    def test_draft_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="Unknown draft fields"):
            TransactionDraft().with_fields(colour="red")

    def test_draft_is_immutable(self):
        draft = TransactionDraft()
        with pytest.raises(PydanticValidationError):
            draft.date = "01.01.2025"

    def test_session_advance_returns_new_value(self):
        """The original session is left untouched."""
        session = UserSession.start(1, OperationKind.EXPENSE)
        moved = session.advance(date="30.08.2025")

        assert session.step == Step.AWAITING_DATE
        assert session.draft.date is None
        assert moved.step == Step.AWAITING_AMOUNT
        assert moved.draft.date == "30.08.2025"
        assert moved.correlation_id == session.correlation_id

    def test_session_advance_resets_overlays(self):
        session = UserSession.start(1, OperationKind.EXPENSE).expecting_custom_date()
        assert session.awaiting_freeform_date

        moved = session.advance(date="30.08.2025")
        assert not moved.awaiting_freeform_date

    def test_session_enters_upload_overlay(self):
        session = UserSession(
            identity=1,
            operation_kind=OperationKind.EXPENSE,
            step=Step.AWAITING_ATTACHMENT_DECISION,
            ledger_row=7,
        )
        moved = session.advance()
        assert moved.step == Step.AWAITING_ATTACHMENT_UPLOAD
        assert moved.awaiting_attachment
        assert moved.ledger_row == 7

    def test_session_keeps_selection_list(self):
        session = UserSession.start(1, OperationKind.EXPENSE)
        session = session.advance(date="30.08.2025")
        session = session.advance(amount=Decimal("-5"), pending_selection=["Касса", "Банк"])
        assert session.expects_selection
        assert session.pending_selection == ("Касса", "Банк")


class TestLedgerModels:
    """Tests for ledger rows and transfer legs."""

    def test_record_from_draft(self, admin):
        record = LedgerRecord.from_draft(complete_expense_draft(), OperationKind.EXPENSE, admin)
        assert record.core_values() == [
            "30.08.2025",
            "-1000",
            "Касса",
            "Розница",
            "ООО Ромашка",
            "Аренда",
            "Аренда офиса",
        ]
        assert record.attribution_values() == ["Иван Петров", admin.identity]

    def test_record_requires_complete_draft(self, admin):
        draft = complete_expense_draft(category=None)
        with pytest.raises(ValueError, match="category"):
            LedgerRecord.from_draft(draft, OperationKind.EXPENSE, admin)

    def test_transfer_not_built_as_single_record(self, admin):
        with pytest.raises(ValueError, match="transfer_legs"):
            LedgerRecord.from_draft(complete_expense_draft(), OperationKind.TRANSFER, admin)

    def test_transfer_legs(self, admin):
        draft = TransactionDraft(
            date="15.08.2025",
            amount=Decimal("5000"),
            direction="Опт",
            source_wallet="Касса",
            destination_wallet="Банк",
        )
        inbound, outbound = transfer_legs(draft, admin, "in-cat", "out-cat")

        assert (inbound.wallet, inbound.counterparty, inbound.amount) == ("Банк", "Касса", Decimal("5000"))
        assert (outbound.wallet, outbound.counterparty, outbound.amount) == ("Касса", "Банк", Decimal("-5000"))
        assert inbound.category == "in-cat"
        assert outbound.category == "out-cat"
        assert inbound.purpose == outbound.purpose == TRANSFER_PURPOSE

    def test_transfer_legs_reject_same_wallet(self, admin):
        draft = TransactionDraft(
            date="15.08.2025",
            amount=Decimal("5000"),
            direction="Опт",
            source_wallet="Касса",
            destination_wallet="Касса",
        )
        with pytest.raises(ValueError, match="differ"):
            transfer_legs(draft, admin, "in-cat", "out-cat")

    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("-0.0000001"), "-0.0000001"),
            (Decimal("1E+3"), "1000"),
            (Decimal("-12345678901234567890123456789.5"), "-12345678901234567890123456789.5"),
        ],
    )
    def test_amount_never_in_exponent_form(self, admin, amount, expected):
        record = LedgerRecord.from_draft(
            complete_expense_draft(amount=amount), OperationKind.EXPENSE, admin
        )
        assert record.amount_text == expected
        assert record.core_values()[1] == expected

    def test_transfer_legs_do_not_round_long_amounts(self, admin):
        draft = TransactionDraft(
            date="15.08.2025",
            amount=Decimal("12345678901234567890123456789.5"),
            direction="Опт",
            source_wallet="Касса",
            destination_wallet="Банк",
        )
        inbound, outbound = transfer_legs(draft, admin, "in-cat", "out-cat")
        assert inbound.amount_text == "12345678901234567890123456789.5"
        assert outbound.amount_text == "-12345678901234567890123456789.5"

    def test_fallback_transfer_category(self):
        assert fallback_transfer_category(INFLOW) == "Поступление — Перевод между счетами"
        assert fallback_transfer_category(OUTFLOW) == "Выбытие — Перевод между счетами"


class TestEvents:
    """Tests for button actions and prompts."""

    def test_actions_map_to_events(self):
        assert event_from_action("cancel") == Cancel()
        assert event_from_action("select_3", message_id=9) == SelectionChosen(index=3, message_id=9)
        assert event_from_action("transfer") == OperationChosen(kind=OperationKind.TRANSFER)
        assert event_from_action("date_yesterday") == DatePreset(preset=DatePresetChoice.YESTERDAY)
        assert event_from_action("attach") == AttachmentDecision(decision=AttachmentChoice.ATTACH)

    @pytest.mark.parametrize("action", ["", "select_", "select_x", "date_tomorrow", "delete"])
    def test_unknown_actions_rejected(self, action):
        with pytest.raises(ValueError):
            event_from_action(action)

    def test_image_event_carries_bytes_only(self):
        event = ImageSubmitted(data=b"\xff\xd8jpeg", message_id=7)
        assert set(ImageSubmitted.model_fields) == {"message_id", "data"}
        assert "jpeg" not in repr(event)

    def test_prompt_selection_labels(self):
        prompt = Prompt(
            text="Выберите кошелек:",
            options=(
                PromptOption(label="Касса", action="select_0"),
                PromptOption(label="Банк", action="select_1"),
                PromptOption(label="❌ Отмена", action="cancel"),
            ),
        )
        assert prompt.selection_labels == ["Касса", "Банк"]
        assert prompt.cancellable


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            description="Operation started: expense",
        )
        assert event.event_type == AuditEventType.SESSION_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.record_appended(
            user_id=1001,
            row=12,
            amount="-1000",
            category="Аренда",
            correlation_id=uuid4(),
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "record_appended"
        assert log_dict["details"]["row"] == 12

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.attachment_failed(
            user_id=1001,
            row=12,
            error_message="timeout",
            correlation_id=uuid4(),
        )
        row = event.to_sheets_row()
        assert len(row) == len(AUDIT_COLUMNS)
        assert row[2] == "attachment_failed"
        assert row[3] == "warning"
        assert json.loads(row[7]) == {"row": 12}
        assert row[8] == "timeout"

    def test_partial_transfer_is_critical(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.transfer_partially_committed(
            user_id=1001,
            inbound_row=5,
            missing_leg={"wallet": "Касса", "amount": "-5000"},
            error_message="quota exceeded",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.CRITICAL
        assert event.correlation_id == correlation_id
        assert "Касса" in event.to_sheets_row()[7]

    def test_rejections_are_debug_only(self):
        event = AuditEventBuilder.validation_rejected(1001, "awaiting_amount", "bad", None)
        assert event.severity == AuditSeverity.DEBUG


class TestAppSettings:
    """Application settings read by the engine and the attachment service."""

    def test_defaults(self):
        settings = AppSettings()
        assert set(AppSettings.model_fields) == {
            "max_upload_size_mb",
            "external_call_timeout_seconds",
            "processed_message_cache_size",
            "transfer_marker",
        }
        assert settings.external_call_timeout_seconds is None
        assert settings.processed_message_cache_size == 100
