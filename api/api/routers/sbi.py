"""SBI (Small Business Identification) endpoints for a reporting run.

The results file is sent as the raw request body (``text/csv``); the
original file name travels in ``X-File-Name``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import Response
from ptrs_core.models.sbi import ImportOutcome, SbiStatus, SbiUploadDetail, ValidationReport

from api.dependencies import ActorDep, AuditDep, CoreSettingsDep, SettingsDep, TenantTxDep
from api.services.ptrs_service import PtrsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/runs/{run_id}/sbi", tags=["sbi"])


@router.post("/import", response_model=ImportOutcome)
async def import_sbi_results(
    run_id: str,
    request: Request,
    tx: TenantTxDep,
    settings: SettingsDep,
    core_settings: CoreSettingsDep,
    actor_id: ActorDep,
    audit: AuditDep,
    x_file_name: Annotated[str | None, Header()] = None,
) -> ImportOutcome:
    """Apply an SBI results CSV to the run's stage rows."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="SBI results file is too large")

    body = await request.body()
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="SBI results file is too large")

    service = PtrsService(tx, core_settings, audit=audit, actor_id=actor_id)
    return await service.import_sbi(run_id, body, x_file_name)


@router.get("/status", response_model=SbiStatus)
async def sbi_status(run_id: str, tx: TenantTxDep, core_settings: CoreSettingsDep) -> SbiStatus:
    """Latest SBI upload for the run, of any status."""
    return await PtrsService(tx, core_settings).sbi_status(run_id)


@router.get("/uploads/{upload_id}", response_model=SbiUploadDetail)
async def sbi_upload_detail(
    run_id: str,
    upload_id: int,
    tx: TenantTxDep,
    core_settings: CoreSettingsDep,
) -> SbiUploadDetail:
    """One upload with its audit trail of changed stage rows."""
    return await PtrsService(tx, core_settings).sbi_upload(run_id, upload_id)


@router.get("/export")
async def export_sbi_abns(run_id: str, tx: TenantTxDep, core_settings: CoreSettingsDep) -> Response:
    """Distinct payee ABNs of the run as a single-column CSV."""
    csv_text = await PtrsService(tx, core_settings).export_abns(run_id)
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="sbi-abns-{run_id}.csv"'},
    )


@router.get("/validate", response_model=ValidationReport)
async def validate_sbi(
    run_id: str,
    tx: TenantTxDep,
    core_settings: CoreSettingsDep,
    actor_id: ActorDep,
    audit: AuditDep,
) -> ValidationReport:
    """Read-only consistency check of the run against its latest applied SBI upload."""
    service = PtrsService(tx, core_settings, audit=audit, actor_id=actor_id)
    return await service.validate_sbi(run_id)
