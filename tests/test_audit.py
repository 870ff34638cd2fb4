"""Tests for the audit logger."""

import asyncio
import pytest
from uuid import uuid4

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity


class FailingAuditStorage:
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")


class TestAuditLogger:
    """Local logging plus optional persistence."""

    def test_event_persisted(self, audit_storage):
        audit = AuditLogger(audit_storage)
        event = AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            description="Settings saved",
        )

        assert asyncio.run(audit.log(event)) is True
        assert audit_storage.events == [event]

    def test_without_storage(self):
        event = AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.CRITICAL,
            description="Unexpected",
        )
        assert asyncio.run(AuditLogger().log(event)) is True

    def test_storage_failure_does_not_raise(self):
        audit = AuditLogger(FailingAuditStorage())
        event = AuditEvent(
            event_type=AuditEventType.DATA_LOADED,
            description="Data loaded",
        )

        assert asyncio.run(audit.log(event)) is False

    def test_delete_blocked_event(self, audit_storage):
        audit = AuditLogger(audit_storage)
        category_id = uuid4()

        asyncio.run(audit.log_category_delete_blocked(
            user_id="user-1",
            category_id=category_id,
            name="Miete",
            transaction_count=3,
        ))

        event = audit_storage.events[0]
        assert event.event_type == AuditEventType.CATEGORY_DELETE_BLOCKED
        assert event.entity_id == category_id
        assert event.details["transaction_count"] == 3

    def test_persistence_failure_event(self, audit_storage):
        audit = AuditLogger(audit_storage)
        correlation_id = create_correlation_id()

        asyncio.run(audit.log_persistence_failed(
            user_id="user-1",
            operation="adding transaction",
            error_message="quota exceeded",
            correlation_id=correlation_id,
        ))

        event = audit_storage.events[0]
        assert event.event_type == AuditEventType.PERSISTENCE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.correlation_id == correlation_id

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
