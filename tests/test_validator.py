"""Tests for field validation."""

import pytest
from datetime import date
from decimal import Decimal

from cashflow_bot.errors import ValidationError
from cashflow_bot.validation import FieldValidator


@pytest.fixture
def validator() -> FieldValidator:
    return FieldValidator()


class TestDates:

    @pytest.mark.parametrize("text", ["30.08.2025", "01.01.1999", "31.02.2025"])
    def test_accepts_dd_mm_yyyy(self, validator, text):
        """Only the shape is checked, not the calendar."""
        assert validator.validate_date(text) == text

    @pytest.mark.parametrize(
        "text",
        ["2025-08-30", "30/08/2025", "30.8.2025", "30.08.25", "30.08.2025 ", "30.08.2025\n", ""],
    )
    def test_rejects_other_formats(self, validator, text):
        with pytest.raises(ValidationError, match="ДД.ММ.ГГГГ"):
            validator.validate_date(text)

    def test_rejects_non_ascii_digits(self, validator):
        with pytest.raises(ValidationError):
            validator.validate_date("٣٠.٠٨.٢٠٢٥")

    def test_format_date(self, validator):
        assert validator.format_date(date(2025, 8, 5)) == "05.08.2025"


class TestAmounts:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1000", Decimal("1000")),
            ("1234,50", Decimal("1234.50")),
            ("0.5", Decimal("0.5")),
            ("0", Decimal("0")),
        ],
    )
    def test_accepts_plain_numbers(self, validator, text, expected):
        assert validator.validate_amount(text) == expected

    def test_keeps_digits_as_typed(self, validator):
        assert str(validator.validate_amount("1234,50")) == "1234.50"

    def test_tiny_fraction(self, validator):
        assert validator.validate_amount("0,0000001") == Decimal("0.0000001")

    def test_more_digits_than_decimal_context(self, validator):
        amount = validator.validate_amount("12345678901234567890123456789.5")
        assert amount.as_tuple().digits == tuple(int(d) for d in "123456789012345678901234567895")

    @pytest.mark.parametrize("text", ["1 234,50", "-100", "+100", "1e5", "12.", ".5", "1,2,3", "abc", ""])
    def test_rejects_everything_else(self, validator, text):
        with pytest.raises(ValidationError, match="Неверный формат суммы"):
            validator.validate_amount(text)


class TestSelections:

    def test_resolves_index(self, validator):
        assert validator.resolve_selection(1, ("Касса", "Банк")) == "Банк"

    @pytest.mark.parametrize("index", [-1, 2, 100])
    def test_out_of_range(self, validator, index):
        with pytest.raises(ValidationError, match="Такого варианта нет"):
            validator.resolve_selection(index, ("Касса", "Банк"))

    def test_no_list_shown(self, validator):
        with pytest.raises(ValidationError, match="устарел"):
            validator.resolve_selection(0, None)

    def test_empty_reference_list(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.ensure_not_empty([], "статей")
        assert exc_info.value.message == "❌ Список статей пуст."

    def test_non_empty_list_becomes_tuple(self, validator):
        assert validator.ensure_not_empty(["Опт"], "направлений") == ("Опт",)

    def test_transfer_wallets_must_differ(self, validator):
        validator.validate_transfer_wallets("Касса", "Банк")
        with pytest.raises(ValidationError, match="одинаковыми"):
            validator.validate_transfer_wallets("Касса", "Касса")


class TestText:

    def test_strips_text(self, validator):
        assert validator.validate_text("  ООО Ромашка ", "counterparty") == "ООО Ромашка"

    def test_rejects_blank(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_text("   ", "purpose")
        assert exc_info.value.field == "purpose"
