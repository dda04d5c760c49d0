"""
Ledger and Directory Models

LedgerRecord is the flattened, immutable row written to the ledger sheet.
It is only ever built from a complete draft.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cashflow_bot.models.conversation import OperationKind, TransactionDraft


TRANSFER_PURPOSE = "Перевод между счетами"
UNKNOWN_SUBMITTER = "Неизвестный"


class UserProfile(BaseModel):
    """A row of the users sheet."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    identity: int
    handle: str = ""
    full_name: str = ""
    position: str = ""

    @property
    def is_admin(self) -> bool:
        return "админ" in self.position.lower()

    @property
    def display_name(self) -> str:
        return self.full_name or self.handle or UNKNOWN_SUBMITTER


class LedgerRecord(BaseModel):
    """
    One committed ledger row.

    Columns, in sheet order: date, signed amount, wallet, business direction,
    counterparty, purpose, category, then submitter name and identity, then
    the optional receipt link.
    """
    model_config = ConfigDict(frozen=True)

    date: str
    amount: Decimal
    wallet: str
    direction: str
    counterparty: str = ""
    purpose: str = ""
    category: str
    submitter_name: str = Field(..., min_length=1)
    submitter_id: int
    attachment_link: Optional[str] = None

    @property
    def amount_text(self) -> str:
        """Positional notation with every typed digit, never exponent form."""
        return format(self.amount, "f")

    def core_values(self) -> list[str]:
        return [
            self.date,
            self.amount_text,
            self.wallet,
            self.direction,
            self.counterparty,
            self.purpose,
            self.category,
        ]

    def attribution_values(self) -> list:
        return [self.submitter_name, self.submitter_id]

    @classmethod
    def from_draft(
        cls,
        draft: TransactionDraft,
        kind: OperationKind,
        submitter: UserProfile,
    ) -> "LedgerRecord":
        """Build the single record of an expense or income."""
        if kind == OperationKind.TRANSFER:
            raise ValueError("Transfers produce two records, use transfer_legs()")
        missing = draft.missing_fields(kind)
        if missing:
            raise ValueError(f"Draft is incomplete, missing: {', '.join(missing)}")

        return cls(
            date=draft.date,
            amount=draft.amount,
            wallet=draft.wallet,
            direction=draft.direction,
            counterparty=draft.counterparty,
            purpose=draft.purpose,
            category=draft.category,
            submitter_name=submitter.display_name,
            submitter_id=submitter.identity,
            attachment_link=draft.attachment_link,
        )


def transfer_legs(
    draft: TransactionDraft,
    submitter: UserProfile,
    inbound_category: str,
    outbound_category: str,
) -> tuple[LedgerRecord, LedgerRecord]:
    """
    Build the (inbound, outbound) records of a transfer.

    Both legs share date, amount magnitude and direction. Each names the
    other wallet as its counterparty.
    """
    missing = draft.missing_fields(OperationKind.TRANSFER)
    if missing:
        raise ValueError(f"Draft is incomplete, missing: {', '.join(missing)}")
    if draft.source_wallet == draft.destination_wallet:
        raise ValueError("Transfer wallets must differ")

    magnitude = draft.amount.copy_abs()
    common = dict(
        date=draft.date,
        direction=draft.direction,
        purpose=TRANSFER_PURPOSE,
        submitter_name=submitter.display_name,
        submitter_id=submitter.identity,
    )
    inbound = LedgerRecord(
        amount=magnitude,
        wallet=draft.destination_wallet,
        counterparty=draft.source_wallet,
        category=inbound_category,
        **common,
    )
    outbound = LedgerRecord(
        amount=magnitude.copy_negate() if magnitude else magnitude,
        wallet=draft.source_wallet,
        counterparty=draft.destination_wallet,
        category=outbound_category,
        **common,
    )
    return inbound, outbound


def fallback_transfer_category(category_type: str, marker: str = TRANSFER_PURPOSE) -> str:
    """Category name used when the category sheet has no transfer entry."""
    return f"{category_type} — {marker}"

