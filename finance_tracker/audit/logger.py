"""
Audit Logger

DESIGN DECISION: Every change to the books leaves an audit event, and so
does every refused or failed change. The session can then answer what
happened to an amount even when a storage call broke halfway.

Logging never raises. If the audit storage is unreachable the event
still reaches the local structlog output and bookkeeping carries on.
Events of one user action share a correlation id.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.services.storage import AuditStorageInterface


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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Records audit events for one session.

    Every event goes to the structlog output; when an audit storage is
    given it is appended there as well.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Where events are appended. Without one, events
                    only reach the local log.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Write an event to the local log and, if configured, to storage.

        Returns False only when the storage append failed.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # A broken audit sheet must not block bookkeeping
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        vat: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            vat=vat,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        user_id: str,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_created(
        self,
        user_id: str,
        category_id: UUID,
        name: str,
        category_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_created(
            user_id=user_id,
            category_id=category_id,
            name=name,
            category_type=category_type,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_updated(
        self,
        user_id: str,
        category_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_updated(
            user_id=user_id,
            category_id=category_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_deleted(
        self,
        user_id: str,
        category_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_deleted(
            user_id=user_id,
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_delete_blocked(
        self,
        user_id: str,
        category_id: UUID,
        name: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a refused category deletion."""
        event = AuditEventBuilder.category_delete_blocked(
            user_id=user_id,
            category_id=category_id,
            name=name,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settings_updated(
        self,
        user_id: str,
        settings: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.settings_updated(
            user_id=user_id,
            settings=settings,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_data_loaded(
        self,
        user_id: str,
        category_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.data_loaded(
            user_id=user_id,
            category_count=category_count,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        user_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            user_id=user_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_persistence_failed(
        self,
        user_id: str,
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage call."""
        event = AuditEventBuilder.persistence_failed(
            user_id=user_id,
            operation=operation,
            error_message=error_message,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_late_response_ignored(
        self,
        user_id: str,
        operation: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.late_response_ignored(
            user_id=user_id,
            operation=operation,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    New id shared by the events of one user action.

    A form submit creates one and hands it to every storage call and
    audit event it triggers.
    """
    return uuid4()
