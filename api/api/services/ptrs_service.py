"""Tenant-scoped orchestration of the compliance core for the HTTP layer.

The service owns nothing but wiring: it builds the core components from
settings, runs them on the request's tenant transaction, and emits audit
events for state-changing operations.
"""

from __future__ import annotations

import logging
from typing import Any

from ptrs_core.audit import AuditAction, AuditSink, LoggingAuditSink
from ptrs_core.config import Settings
from ptrs_core.metrics.engine import MetricsDerivationEngine
from ptrs_core.metrics.preview import build_metrics_preview
from ptrs_core.models.metrics import DerivationSummary, MetricsPreview
from ptrs_core.models.sbi import ImportOutcome, SbiStatus, SbiUploadDetail, ValidationReport
from ptrs_core.sbi.export import export_abn_csv
from ptrs_core.sbi.importer import SbiImportPipeline
from ptrs_core.sbi.status import get_sbi_status, get_sbi_upload
from ptrs_core.sbi.validation import SbiValidationPass
from ptrs_core.state.database import TenantTransaction

logger = logging.getLogger(__name__)


class PtrsService:
    """Payment-times reporting operations for one tenant transaction."""

    def __init__(
        self,
        tx: TenantTransaction,
        settings: Settings,
        *,
        audit: AuditSink | None = None,
        actor_id: str | None = None,
    ) -> None:
        self._tx = tx
        self._settings = settings
        self._audit = audit or LoggingAuditSink()
        self._actor_id = actor_id

    async def derive_metrics(self, run_id: str) -> DerivationSummary:
        summary = await MetricsDerivationEngine(self._settings).derive_metrics(self._tx, run_id)
        await self._record(
            AuditAction.METRICS_DERIVED,
            run_id,
            {"applied_count": summary.applied_count},
        )
        return summary

    async def metrics_preview(self, run_id: str) -> MetricsPreview:
        return await build_metrics_preview(self._tx, run_id)

    async def import_sbi(self, run_id: str, file_bytes: bytes, file_name: str | None) -> ImportOutcome:
        outcome = await SbiImportPipeline(self._settings).import_results(
            self._tx,
            run_id,
            file_bytes=file_bytes,
            file_name=file_name,
            actor_id=self._actor_id,
        )
        await self._record(
            AuditAction.SBI_IMPORTED,
            run_id,
            {
                "sbi_upload_id": outcome.sbi_upload_id,
                "status": outcome.status.value,
                "affected_rows": outcome.affected_rows,
            },
        )
        return outcome

    async def sbi_status(self, run_id: str) -> SbiStatus:
        return await get_sbi_status(self._tx, run_id)

    async def sbi_upload(self, run_id: str, upload_id: int) -> SbiUploadDetail:
        return await get_sbi_upload(self._tx, run_id, upload_id)

    async def export_abns(self, run_id: str) -> str:
        return await export_abn_csv(self._tx, run_id)

    async def validate_sbi(self, run_id: str) -> ValidationReport:
        report = await SbiValidationPass(self._settings).validate(self._tx, run_id)
        await self._record(
            AuditAction.SBI_VALIDATED,
            run_id,
            {
                "status": report.status.value,
                "blockers": report.counts.blockers,
                "warnings": report.counts.warnings,
            },
        )
        return report

    async def _record(self, action: AuditAction, run_id: str, metadata: dict[str, Any]) -> None:
        await self._audit.record(
            tenant_id=self._tx.tenant_id,
            actor=self._actor_id,
            action=action,
            entity_id=run_id,
            metadata=metadata,
        )
