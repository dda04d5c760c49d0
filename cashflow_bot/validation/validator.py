"""
Field Validation

Each conversation step validates exactly one field. Validators either return
the normalized value or raise ValidationError carrying the message shown to
the user; the engine then re-prompts the same step.

IMPORTANT: Dates are checked against the DD.MM.YYYY pattern only.
31.02.2025 passes. The ledger sheet is the place where calendar checks
happen, and tightening this would reject input the accountants rely on.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from cashflow_bot.errors import ValidationError


DATE_PATTERN = re.compile(r"\d{2}\.\d{2}\.\d{4}", re.ASCII)
AMOUNT_PATTERN = re.compile(r"\d+(\.\d+)?", re.ASCII)
DATE_FORMAT = "%d.%m.%Y"


class FieldValidator:
    """
    Validates and normalizes the fields of a transaction draft.

    Stateless; one instance is shared by the engine.
    """

    def validate_date(self, text: str) -> str:
        """
        Accept DD.MM.YYYY exactly.

        Returns:
            The text unchanged
        """
        if not DATE_PATTERN.fullmatch(text):
            raise ValidationError(
                "❌ Неверный формат даты. Используйте ДД.ММ.ГГГГ\nНапример: 30.08.2025",
                field="date",
            )
        return text

    def format_date(self, value: date) -> str:
        return value.strftime(DATE_FORMAT)

    def validate_amount(self, text: str) -> Decimal:
        """
        Accept a non-negative decimal with an optional comma or dot separator.

        The first comma is read as the decimal separator. Spaces, signs and
        thousands separators are rejected. The returned Decimal keeps the
        digits as typed ("1234,50" -> Decimal("1234.50")).
        """
        normalized = text.replace(",", ".", 1)
        if not AMOUNT_PATTERN.fullmatch(normalized):
            raise ValidationError(
                "❌ Неверный формат суммы. Введите положительное число.",
                field="amount",
            )
        try:
            return Decimal(normalized)
        except InvalidOperation:
            raise ValidationError(
                "❌ Неверный формат суммы. Введите положительное число.",
                field="amount",
            )

    def validate_text(self, text: str, field: str) -> str:
        """Free text fields (counterparty, purpose) only need to be non-blank."""
        value = text.strip()
        if not value:
            raise ValidationError("❌ Значение не может быть пустым. Введите текст.", field=field)
        return value

    def resolve_selection(
        self,
        index: int,
        options: Optional[Sequence[str]],
    ) -> str:
        """Look up a selection index in the list the user was shown."""
        if not options:
            raise ValidationError(
                "❌ Список для выбора устарел. Отмените операцию и начните заново.",
                field="selection",
            )
        if index < 0 or index >= len(options):
            raise ValidationError(
                "❌ Такого варианта нет в списке. Выберите вариант из списка.",
                field="selection",
            )
        return options[index]

    def validate_transfer_wallets(self, source: str, destination: str) -> None:
        if source == destination:
            raise ValidationError(
                "❌ Кошельки не могут быть одинаковыми.",
                field="destination_wallet",
            )

    def ensure_not_empty(self, options: Sequence[str], list_name: str) -> tuple[str, ...]:
        """
        Reference lists must have at least one entry before we show them.

        Args:
            options: The freshly fetched list
            list_name: Genitive name for the message ("кошельков", "статей")
        """
        if not options:
            raise ValidationError(f"❌ Список {list_name} пуст.", field="selection")
        return tuple(options)
