"""Tests for the audit logger: local logging plus best-effort persistence."""

import asyncio
from typing import Optional

import pytest

from cashflow_bot.audit import AuditLogger
from cashflow_bot.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from cashflow_bot.services.storage import AuditStorageInterface


class RecordingStorage(AuditStorageInterface):
    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.events = []
        self.delay = delay
        self.error = error

    async def append_event(self, event: AuditEvent) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.events.append(event)
        return True


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_persists_info_events(self):
        storage = RecordingStorage()
        assert await AuditLogger(storage).log(AuditEventBuilder.access_denied(9999))
        assert storage.events[0].event_type == AuditEventType.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_debug_events_stay_local(self):
        storage = RecordingStorage()
        event = AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            severity=AuditSeverity.DEBUG,
            description="debug only",
        )
        assert await AuditLogger(storage).log(event)
        assert storage.events == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_swallowed(self):
        storage = RecordingStorage(error=RuntimeError("APIError: 503"))
        assert await AuditLogger(storage).log(AuditEventBuilder.access_denied(9999)) is False

    @pytest.mark.asyncio
    async def test_slow_storage_bounded_by_timeout(self):
        """A hung audit sheet does not hold up the conversation."""
        storage = RecordingStorage(delay=1.0)
        audit = AuditLogger(storage, timeout_seconds=0.01)

        result = await asyncio.wait_for(audit.log(AuditEventBuilder.access_denied(9999)), 0.5)
        assert result is False
        assert storage.events == []

    @pytest.mark.asyncio
    async def test_no_timeout_waits_for_storage(self):
        storage = RecordingStorage(delay=0.01)
        assert await AuditLogger(storage).log(AuditEventBuilder.access_denied(9999))
        assert len(storage.events) == 1
