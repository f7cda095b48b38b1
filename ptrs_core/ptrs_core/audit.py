"""Audit event sink.

The compliance core reports who changed what through an :class:`AuditSink`.
Storage of the audit trail is owned elsewhere; the default sink writes a
structured log record.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    SBI_IMPORTED = "SBI_IMPORTED"
    SBI_VALIDATED = "SBI_VALIDATED"
    METRICS_DERIVED = "METRICS_DERIVED"


@runtime_checkable
class AuditSink(Protocol):
    """Fire-and-forget recipient of audit events."""

    async def record(
        self,
        *,
        tenant_id: str,
        actor: str | None,
        action: AuditAction,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class LoggingAuditSink:
    """Write each audit event as an INFO log record on ``ptrs_core.audit``."""

    async def record(
        self,
        *,
        tenant_id: str,
        actor: str | None,
        action: AuditAction,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            "audit action=%s tenant=%s actor=%s entity=%s",
            action.value,
            tenant_id,
            actor or "-",
            entity_id,
            extra={"audit": {"action": action.value, "entity_id": entity_id, **(metadata or {})}},
        )
