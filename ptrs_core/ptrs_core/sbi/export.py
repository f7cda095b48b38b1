"""ABN export consumed by the external SBI determination tool."""

from __future__ import annotations

import logging

from ptrs_core.sbi.abn import is_well_formed_abn, payee_abn_of
from ptrs_core.state.database import TenantTransaction
from ptrs_core.state.repository import ReportingRunRepository, StageRowRepository

logger = logging.getLogger(__name__)

EXPORT_HEADER = "ABN"


async def collect_export_abns(tx: TenantTransaction, run_id: str) -> list[str]:
    """Distinct well-formed payee ABNs of the run's non-excluded rows, ascending."""
    await ReportingRunRepository(tx.session, tx.tenant_id).require(run_id)
    rows = await StageRowRepository(tx.session, tx.tenant_id).list_active(run_id, include_excluded=False)
    abns = {abn for abn in (payee_abn_of(row.data) for row in rows) if abn and is_well_formed_abn(abn)}
    return sorted(abns)


async def export_abn_csv(tx: TenantTransaction, run_id: str) -> str:
    """Single-column CSV with an ``ABN`` header and a trailing newline.

    Raises
    ------
    RunNotFound
        The run does not belong to the transaction's tenant.
    """
    abns = await collect_export_abns(tx, run_id)
    logger.info("SBI ABN export tenant=%s run=%s abns=%d", tx.tenant_id, run_id, len(abns))
    return "\n".join([EXPORT_HEADER, *abns]) + "\n"
