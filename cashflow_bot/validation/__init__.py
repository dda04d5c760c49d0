"""Field validation package."""

from cashflow_bot.validation.validator import (
    AMOUNT_PATTERN,
    DATE_FORMAT,
    DATE_PATTERN,
    FieldValidator,
)

__all__ = ["AMOUNT_PATTERN", "DATE_FORMAT", "DATE_PATTERN", "FieldValidator"]
