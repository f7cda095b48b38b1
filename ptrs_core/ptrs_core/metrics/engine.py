"""Set-based metric derivation over one reporting run."""

from __future__ import annotations

import logging

from ptrs_core.config import Settings
from ptrs_core.metrics.derivation import DEFAULT_TERM_DAYS, derive_record
from ptrs_core.models.metrics import DerivationSummary, MetricInputs, PaymentTimeReference
from ptrs_core.state.database import TenantTransaction, acquire_run_lock
from ptrs_core.state.repository import ReportingRunRepository, TransactionRecordRepository

logger = logging.getLogger(__name__)


class MetricsDerivationEngine:
    """Recompute derived payment-timing fields for every qualifying record of a run.

    All rows are computed in memory first and then written with a single
    bulk UPDATE inside the caller's tenant transaction.  An error on any
    row propagates before anything is written, so the run is updated
    entirely or not at all.

    Parameters
    ----------
    settings:
        Supplies ``default_payment_term_days``; defaults to 31 days when
        omitted.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._default_term_days = settings.default_payment_term_days if settings else DEFAULT_TERM_DAYS

    async def derive_metrics(self, tx: TenantTransaction, run_id: str) -> DerivationSummary:
        """Derive and persist metrics for *run_id*.

        Raises
        ------
        RunNotFound
            If the run does not belong to the transaction's tenant.
        """
        session, tenant_id = tx.session, tx.tenant_id
        await ReportingRunRepository(session, tenant_id).require(run_id)
        await acquire_run_lock(tx, run_id)

        records_repo = TransactionRecordRepository(session, tenant_id)
        records = await records_repo.list_qualifying(run_id)

        summary = DerivationSummary(tenant_id=tenant_id, run_id=run_id)
        updates: list[dict[str, object]] = []
        for record in records:
            derived = derive_record(MetricInputs.model_validate(record), self._default_term_days)
            summary.reference_counts[derived.payment_time_reference.value] += 1
            summary.term_source_counts[derived.term_source.value] += 1
            if derived.partial_payment:
                summary.partial_payments += 1
            updates.append(
                {
                    "id": record.id,
                    "payment_time_days": derived.payment_time_days,
                    "payment_time_reference_kind": (
                        None
                        if derived.payment_time_reference is PaymentTimeReference.MISSING
                        else derived.payment_time_reference.value
                    ),
                    "payment_term_days": derived.payment_term_days,
                    "partial_payment": derived.partial_payment,
                    "explanatory_comment": derived.explanatory_comment,
                }
            )

        summary.applied_count = await records_repo.bulk_apply_metrics(updates)

        logger.info(
            "Derived metrics tenant=%s run=%s applied=%d references=%s terms=%s",
            tenant_id,
            run_id,
            summary.applied_count,
            summary.reference_counts,
            summary.term_source_counts,
        )
        return summary
