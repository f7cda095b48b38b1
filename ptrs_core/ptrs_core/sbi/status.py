"""Read views over SBI upload history."""

from __future__ import annotations

from ptrs_core.errors import UploadNotFound
from ptrs_core.models.sbi import SbiRowChangeInfo, SbiStatus, SbiUploadDetail, SbiUploadInfo
from ptrs_core.state.database import TenantTransaction
from ptrs_core.state.repository import (
    ReportingRunRepository,
    SbiResultRepository,
    SbiRowChangeRepository,
    SbiUploadRepository,
)


async def get_sbi_status(tx: TenantTransaction, run_id: str) -> SbiStatus:
    """Latest upload of any status for *run_id*, or an empty status."""
    await ReportingRunRepository(tx.session, tx.tenant_id).require(run_id)
    latest = await SbiUploadRepository(tx.session, tx.tenant_id).get_latest(run_id)
    return SbiStatus(
        run_id=run_id,
        latest_upload=SbiUploadInfo.model_validate(latest) if latest is not None else None,
    )


async def list_row_changes(tx: TenantTransaction, run_id: str, upload_id: int) -> list[SbiRowChangeInfo]:
    rows = await SbiRowChangeRepository(tx.session, tx.tenant_id).list_for_upload(run_id, upload_id)
    return [SbiRowChangeInfo.model_validate(row) for row in rows]


async def get_sbi_upload(tx: TenantTransaction, run_id: str, upload_id: int) -> SbiUploadDetail:
    """One upload with its result count and audit trail.

    Raises
    ------
    RunNotFound
        The run does not belong to the transaction's tenant.
    UploadNotFound
        No such upload for this run.
    """
    await ReportingRunRepository(tx.session, tx.tenant_id).require(run_id)
    upload = await SbiUploadRepository(tx.session, tx.tenant_id).get(run_id, upload_id)
    if upload is None:
        raise UploadNotFound(run_id, upload_id)
    total = await SbiResultRepository(tx.session, tx.tenant_id).count_for_upload(run_id, upload_id)
    return SbiUploadDetail(
        upload=SbiUploadInfo.model_validate(upload),
        total_results=total,
        row_changes=await list_row_changes(tx, run_id, upload_id),
    )
