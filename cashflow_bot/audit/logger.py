"""
Audit Logger

DESIGN DECISION: Every significant action in a conversation is logged.
This provides:
1. A record of which ledger rows came from which user and operation
2. Reconciliation alerts when a transfer is only half written
3. Debugging capability

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't break the conversation if logging fails)
- Carries the session correlation id so one operation's events can be grouped
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog

from cashflow_bot.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from cashflow_bot.models.ledger import LedgerRecord
from cashflow_bot.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_LOG_METHODS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit sheet (for persistence), when storage is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            timeout_seconds: Upper bound for one storage write.
                    None waits as long as the backend takes.
        """
        self._storage = storage
        self._timeout = timeout_seconds
        self._logger = structlog.get_logger("cashflow_bot.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Debug events are not persisted.

        Returns True if storage write succeeded (or was not needed).
        """
        log_method = getattr(self._logger, _LOG_METHODS[event.severity])
        log_method("audit_event", **event.to_log_dict())

        if self._storage and event.severity != AuditSeverity.DEBUG:
            try:
                return await asyncio.wait_for(self._storage.append_event(event), self._timeout)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_session_started(self, user_id: int, operation: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_started(user_id, operation, correlation_id))

    async def log_session_cancelled(
        self,
        user_id: int,
        step: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.session_cancelled(user_id, step, correlation_id))

    async def log_validation_rejected(
        self,
        user_id: int,
        step: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.validation_rejected(user_id, step, reason, correlation_id))

    async def log_access_denied(self, user_id: int) -> None:
        await self.log(AuditEventBuilder.access_denied(user_id))

    async def log_duplicate_message(self, user_id: int, message_id: int) -> None:
        await self.log(AuditEventBuilder.duplicate_message_ignored(user_id, message_id))

    async def log_record_appended(
        self,
        record: LedgerRecord,
        row: int,
        correlation_id: UUID,
    ) -> None:
        """Log a ledger row written."""
        event = AuditEventBuilder.record_appended(
            user_id=record.submitter_id,
            row=row,
            amount=record.amount_text,
            category=record.category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_attachment_linked(
        self,
        user_id: int,
        row: int,
        link: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.attachment_linked(user_id, row, link, correlation_id))

    async def log_attachment_failed(
        self,
        user_id: int,
        row: Optional[int],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.attachment_failed(user_id, row, error_message, correlation_id)
        )

    async def log_transfer_committed(
        self,
        user_id: int,
        inbound_row: int,
        outbound_row: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.transfer_committed(user_id, inbound_row, outbound_row, correlation_id)
        )

    async def log_transfer_partially_committed(
        self,
        inbound_row: int,
        missing_leg: LedgerRecord,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Raise the reconciliation alert for a half-written transfer."""
        event = AuditEventBuilder.transfer_partially_committed(
            user_id=missing_leg.submitter_id,
            inbound_row=inbound_row,
            missing_leg=missing_leg.model_dump(mode="json"),
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        user_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)
