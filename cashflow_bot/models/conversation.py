"""
Conversation State Models

A UserSession is the engine's view of one user's in-progress operation.
Sessions and drafts are frozen pydantic models: every transition returns a
new value, and the engine swaps it into the session store only once the
whole event has been handled. A half-handled event therefore never leaves
a half-updated session behind.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class OperationKind(str, Enum):
    """What the user is recording."""
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"

    @property
    def label(self) -> str:
        return _OPERATION_LABELS[self]

    @property
    def category_type(self) -> str:
        """Value of the category sheet's type column for this operation."""
        if self == OperationKind.INCOME:
            return INFLOW
        return OUTFLOW


INFLOW = "Поступление"
OUTFLOW = "Выбытие"

_OPERATION_LABELS = {
    OperationKind.EXPENSE: "Расход",
    OperationKind.INCOME: "Поступление",
    OperationKind.TRANSFER: "Перевод",
}


class Step(str, Enum):
    """
    Conversation steps.

    Which steps an operation goes through, and in what order, is fixed by
    STEP_SEQUENCES. There is no going back except by cancelling.
    """
    AWAITING_DATE = "awaiting_date"
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_WALLET = "awaiting_wallet"
    AWAITING_DIRECTION = "awaiting_direction"
    AWAITING_COUNTERPARTY = "awaiting_counterparty"
    AWAITING_PURPOSE = "awaiting_purpose"
    AWAITING_CATEGORY = "awaiting_category"
    AWAITING_ATTACHMENT_DECISION = "awaiting_attachment_decision"
    AWAITING_ATTACHMENT_UPLOAD = "awaiting_attachment_upload"
    AWAITING_SOURCE_WALLET = "awaiting_source_wallet"
    AWAITING_DESTINATION_WALLET = "awaiting_destination_wallet"
    SUBMITTED = "submitted"


_SINGLE_ENTRY_STEPS = (
    Step.AWAITING_DATE,
    Step.AWAITING_AMOUNT,
    Step.AWAITING_WALLET,
    Step.AWAITING_DIRECTION,
    Step.AWAITING_COUNTERPARTY,
    Step.AWAITING_PURPOSE,
    Step.AWAITING_CATEGORY,
    Step.AWAITING_ATTACHMENT_DECISION,
    Step.AWAITING_ATTACHMENT_UPLOAD,
    Step.SUBMITTED,
)

STEP_SEQUENCES: dict[OperationKind, tuple[Step, ...]] = {
    OperationKind.EXPENSE: _SINGLE_ENTRY_STEPS,
    OperationKind.INCOME: _SINGLE_ENTRY_STEPS,
    OperationKind.TRANSFER: (
        Step.AWAITING_DATE,
        Step.AWAITING_AMOUNT,
        Step.AWAITING_DIRECTION,
        Step.AWAITING_SOURCE_WALLET,
        Step.AWAITING_DESTINATION_WALLET,
        Step.SUBMITTED,
    ),
}

# Steps answered by typing
FREE_TEXT_STEPS = frozenset({
    Step.AWAITING_DATE,
    Step.AWAITING_AMOUNT,
    Step.AWAITING_COUNTERPARTY,
    Step.AWAITING_PURPOSE,
})

# Steps answered by picking from pending_selection
SELECTION_STEPS = frozenset({
    Step.AWAITING_WALLET,
    Step.AWAITING_DIRECTION,
    Step.AWAITING_CATEGORY,
    Step.AWAITING_SOURCE_WALLET,
    Step.AWAITING_DESTINATION_WALLET,
})

# Steps counted in "Шаг N из M" prompt headers
DATA_ENTRY_STEPS: dict[OperationKind, tuple[Step, ...]] = {
    OperationKind.EXPENSE: _SINGLE_ENTRY_STEPS[:6],
    OperationKind.INCOME: _SINGLE_ENTRY_STEPS[:6],
    OperationKind.TRANSFER: STEP_SEQUENCES[OperationKind.TRANSFER][:5],
}


def next_step(kind: OperationKind, step: Step) -> Step:
    """Return the step that follows `step` for this kind of operation."""
    sequence = STEP_SEQUENCES[kind]
    try:
        index = sequence.index(step)
    except ValueError:
        raise ValueError(f"{step.value} is not a step of a {kind.value} operation")
    if index + 1 >= len(sequence):
        raise ValueError(f"{step.value} is the last step of a {kind.value} operation")
    return sequence[index + 1]


# =============================================================================
# DRAFT
# =============================================================================

REQUIRED_FIELDS: dict[OperationKind, tuple[str, ...]] = {
    OperationKind.EXPENSE: (
        "date", "amount", "wallet", "direction",
        "counterparty", "purpose", "category",
    ),
    OperationKind.INCOME: (
        "date", "amount", "wallet", "direction",
        "counterparty", "purpose", "category",
    ),
    OperationKind.TRANSFER: (
        "date", "amount", "direction", "source_wallet", "destination_wallet",
    ),
}


class TransactionDraft(BaseModel):
    """
    Fields collected so far.

    `date` is kept as the DD.MM.YYYY text the user typed: it is not checked
    against the calendar. `amount` is already signed (expenses negative).
    """
    model_config = ConfigDict(frozen=True)

    date: Optional[str] = None
    amount: Optional[Decimal] = None
    wallet: Optional[str] = None
    direction: Optional[str] = None
    counterparty: Optional[str] = None
    purpose: Optional[str] = None
    category: Optional[str] = None
    attachment_link: Optional[str] = None

    # Transfer legs
    source_wallet: Optional[str] = None
    destination_wallet: Optional[str] = None

    def missing_fields(self, kind: OperationKind) -> list[str]:
        return [name for name in REQUIRED_FIELDS[kind] if getattr(self, name) is None]

    def is_complete(self, kind: OperationKind) -> bool:
        return not self.missing_fields(kind)

    def with_fields(self, **fields) -> "TransactionDraft":
        unknown = set(fields) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")
        return self.model_copy(update=fields)


# =============================================================================
# SESSION
# =============================================================================

class UserSession(BaseModel):
    """
    One user's in-progress operation.

    pending_selection holds the list the user is currently choosing from;
    a SelectionChosen index is resolved against it. The awaiting_* flags mark
    overlays (custom date entry, receipt upload) that take the next event
    before normal per-step dispatch does.
    """
    model_config = ConfigDict(frozen=True)

    identity: int
    operation_kind: OperationKind
    step: Step = Step.AWAITING_DATE
    draft: TransactionDraft = Field(default_factory=TransactionDraft)
    pending_selection: Optional[tuple[str, ...]] = None
    awaiting_freeform_date: bool = False
    awaiting_attachment: bool = False

    # Row of the committed base record (single-entry, after submission)
    ledger_row: Optional[int] = None

    # Ties all audit events of this operation together
    correlation_id: UUID = Field(default_factory=uuid4)

    @classmethod
    def start(cls, identity: int, kind: OperationKind) -> "UserSession":
        return cls(identity=identity, operation_kind=kind)

    def advance(
        self,
        *,
        pending_selection: Optional[tuple[str, ...]] = None,
        ledger_row: Optional[int] = None,
        **draft_fields,
    ) -> "UserSession":
        """
        Move to the next step, recording draft fields on the way.

        The selection list and overlay flags are reset; pass the list the
        next step chooses from, if any.
        """
        step = next_step(self.operation_kind, self.step)
        return self.model_copy(update={
            "step": step,
            "draft": self.draft.with_fields(**draft_fields) if draft_fields else self.draft,
            "pending_selection": tuple(pending_selection) if pending_selection is not None else None,
            "awaiting_freeform_date": False,
            "awaiting_attachment": step == Step.AWAITING_ATTACHMENT_UPLOAD,
            "ledger_row": ledger_row if ledger_row is not None else self.ledger_row,
        })

    def reprompt(self, pending_selection: Optional[tuple[str, ...]] = None) -> "UserSession":
        """Stay on the current step with a freshly fetched selection list."""
        return self.model_copy(update={
            "pending_selection": tuple(pending_selection) if pending_selection is not None else None,
        })

    def expecting_custom_date(self) -> "UserSession":
        return self.model_copy(update={"awaiting_freeform_date": True})

    @property
    def expects_selection(self) -> bool:
        return self.step in SELECTION_STEPS

    @property
    def expects_free_text(self) -> bool:
        return self.step in FREE_TEXT_STEPS
