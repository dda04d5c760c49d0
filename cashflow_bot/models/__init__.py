"""
Data Models Package

Pydantic models for conversation state, ledger rows, transport events and
audit events. Conversation models are frozen: transitions produce new values.
"""

from cashflow_bot.models.conversation import (
    DATA_ENTRY_STEPS,
    FREE_TEXT_STEPS,
    INFLOW,
    OUTFLOW,
    SELECTION_STEPS,
    STEP_SEQUENCES,
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
    Event,
    FreeTextInput,
    ImageSubmitted,
    OperationChosen,
    Prompt,
    PromptOption,
    SelectionChosen,
    Start,
    event_from_action,
)
from cashflow_bot.models.ledger import (
    TRANSFER_PURPOSE,
    LedgerRecord,
    UserProfile,
    fallback_transfer_category,
    transfer_legs,
)
from cashflow_bot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Conversation models
    "DATA_ENTRY_STEPS",
    "FREE_TEXT_STEPS",
    "INFLOW",
    "OUTFLOW",
    "SELECTION_STEPS",
    "STEP_SEQUENCES",
    "OperationKind",
    "Step",
    "TransactionDraft",
    "UserSession",
    "next_step",
    # Events and prompts
    "AttachmentChoice",
    "AttachmentDecision",
    "Cancel",
    "DatePreset",
    "DatePresetChoice",
    "Event",
    "FreeTextInput",
    "ImageSubmitted",
    "OperationChosen",
    "Prompt",
    "PromptOption",
    "SelectionChosen",
    "Start",
    "event_from_action",
    # Ledger models
    "TRANSFER_PURPOSE",
    "LedgerRecord",
    "UserProfile",
    "fallback_transfer_category",
    "transfer_legs",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
