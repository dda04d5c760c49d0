"""
Audit Models for the Cash Flow Bot

Every significant action in a conversation is logged for audit purposes:
who started what, what was rejected, and above all which ledger rows were
written. When a transfer is only half written, the audit trail is what the
accountant reconciles from.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Conversation
    SESSION_STARTED = "session_started"
    SESSION_CANCELLED = "session_cancelled"
    VALIDATION_REJECTED = "validation_rejected"
    ACCESS_DENIED = "access_denied"
    DUPLICATE_MESSAGE_IGNORED = "duplicate_message_ignored"

    # Persistence
    RECORD_APPENDED = "record_appended"
    ATTACHMENT_LINKED = "attachment_linked"
    ATTACHMENT_FAILED = "attachment_failed"
    TRANSFER_COMMITTED = "transfer_committed"
    TRANSFER_PARTIALLY_COMMITTED = "transfer_partially_committed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and which operation
    user_id: Optional[int] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Session correlation id, shared by all events of one operation"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """Convert to a row in AUDIT_COLUMNS order."""
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.user_id) if self.user_id is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_appended(user_id, row, ...)
    """

    @staticmethod
    def session_started(
        user_id: int,
        operation: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Operation started: {operation}",
            details={"operation": operation},
        )

    @staticmethod
    def session_cancelled(
        user_id: int,
        step: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CANCELLED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Operation cancelled" if step else "Cancel without active operation",
            details={"step": step},
        )

    @staticmethod
    def validation_rejected(
        user_id: int,
        step: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_REJECTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Input rejected at {step}",
            details={"step": step, "reason": reason},
        )

    @staticmethod
    def access_denied(user_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            description=f"Access denied for user {user_id}",
        )

    @staticmethod
    def duplicate_message_ignored(user_id: int, message_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_MESSAGE_IGNORED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            description="Redelivered message ignored",
            details={"message_id": message_id},
        )

    @staticmethod
    def record_appended(
        user_id: int,
        row: int,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_APPENDED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Ledger row {row} written: {amount} ({category})",
            details={"row": row, "amount": amount, "category": category},
        )

    @staticmethod
    def attachment_linked(
        user_id: int,
        row: int,
        link: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_LINKED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Receipt linked to ledger row {row}",
            details={"row": row, "link": link},
        )

    @staticmethod
    def attachment_failed(
        user_id: int,
        row: Optional[int],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Receipt not linked, ledger row {row} kept without it",
            details={"row": row},
            error_message=error_message,
        )

    @staticmethod
    def transfer_committed(
        user_id: int,
        inbound_row: int,
        outbound_row: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMMITTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transfer written to rows {inbound_row} and {outbound_row}",
            details={"inbound_row": inbound_row, "outbound_row": outbound_row},
        )

    @staticmethod
    def transfer_partially_committed(
        user_id: int,
        inbound_row: int,
        missing_leg: dict,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        """Reconciliation alert: one transfer leg is in the ledger, the other is not."""
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_PARTIALLY_COMMITTED,
            severity=AuditSeverity.CRITICAL,
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Transfer inbound leg written to row {inbound_row}, "
                "outbound leg NOT written - reconcile manually"
            ),
            details={"inbound_row": inbound_row, "missing_leg": missing_leg},
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        user_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
        )
