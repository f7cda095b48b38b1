"""Payment-timing metric derivation and report preview endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from ptrs_core.models.metrics import DerivationSummary, MetricsPreview

from api.dependencies import ActorDep, AuditDep, CoreSettingsDep, TenantTxDep
from api.services.ptrs_service import PtrsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/runs/{run_id}/metrics", tags=["metrics"])


@router.post("/derive", response_model=DerivationSummary)
async def derive_metrics(
    run_id: str,
    tx: TenantTxDep,
    core_settings: CoreSettingsDep,
    actor_id: ActorDep,
    audit: AuditDep,
) -> DerivationSummary:
    """Recompute derived fields for every reportable record of the run."""
    service = PtrsService(tx, core_settings, audit=audit, actor_id=actor_id)
    return await service.derive_metrics(run_id)


@router.get("", response_model=MetricsPreview)
async def metrics_preview(run_id: str, tx: TenantTxDep, core_settings: CoreSettingsDep) -> MetricsPreview:
    """Report figures for the run's qualifying records.  Read-only."""
    return await PtrsService(tx, core_settings).metrics_preview(run_id)
