"""Report preview figures computed from a run's derived metrics.

Read-only: nothing is written and no run lock is taken, so the preview can
be requested while an import or derivation is in flight and simply shows
the last committed state.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Any

from ptrs_core.models.metrics import MetricsPreview, MissingDataCounts, PaymentTimeBands
from ptrs_core.sbi.abn import normalize_abn, payee_abn_of
from ptrs_core.state.database import TenantTransaction
from ptrs_core.state.repository import ReportingRunRepository, StageRowRepository, TransactionRecordRepository

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def percentile_cont(sorted_values: list[float], pct: float) -> float | None:
    """Continuous percentile of an ascending list, interpolating between ranks.

    >>> percentile_cont([10, 20, 30, 40], 0.5)
    25.0
    """
    if not sorted_values:
        return None
    position = (len(sorted_values) - 1) * pct
    lower = math.floor(position)
    upper = min(lower + 1, len(sorted_values) - 1)
    fraction = position - lower
    return float(sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction)


def _pct(part: float, whole: float) -> float | None:
    if not whole:
        return None
    return round(part / whole * 100, 2)


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return abs(Decimal(str(value))).quantize(_CENTS)


async def _small_business_flags(tx: TenantTransaction, run_id: str) -> dict[str, bool]:
    # Later rows win when two rows for the same payee disagree.
    flags: dict[str, bool] = {}
    rows = await StageRowRepository(tx.session, tx.tenant_id).list_active(run_id, include_excluded=False)
    for row in rows:
        flag = (row.data or {}).get("is_small_business")
        abn = payee_abn_of(row.data)
        if abn and isinstance(flag, bool):
            flags[abn] = flag
    return flags


async def build_metrics_preview(tx: TenantTransaction, run_id: str) -> MetricsPreview:
    """Compute the report preview for *run_id*.

    Population figures come from a SQL aggregate over the qualifying
    records.  Payment-time statistics cover records whose payee is flagged
    small business by the stage rows; a record whose payee has no flag is
    counted under ``missing.small_business_flag`` and left out of them.

    Raises
    ------
    RunNotFound
        If the run does not belong to the transaction's tenant.
    """
    session, tenant_id = tx.session, tx.tenant_id
    await ReportingRunRepository(session, tenant_id).require(run_id)

    records = TransactionRecordRepository(session, tenant_id)
    totals = await records.population_totals(run_id)
    flags = await _small_business_flags(tx, run_id)

    preview = MetricsPreview(
        tenant_id=tenant_id,
        run_id=run_id,
        record_count=totals["record_count"],
        total_value=_money(totals["total_value"]),
        term_min_days=totals["term_min"],
        term_max_days=totals["term_max"],
        term_mode_days=totals["term_mode"],
        missing=MissingDataCounts(
            payment_amount=totals["missing_amount"],
            payment_term_days=totals["missing_term"],
        ),
    )

    sb_value = Decimal("0.00")
    times: list[int] = []
    within_terms = comparable = 0
    bands = PaymentTimeBands()
    for payee_abn, amount, time_days, term_days in await records.metric_rows(run_id):
        flag = flags.get(normalize_abn(payee_abn))
        if flag is None:
            preview.missing.small_business_flag += 1
            continue
        if not flag:
            continue

        preview.small_business_count += 1
        sb_value += _money(amount)
        if time_days is None:
            preview.missing.payment_time_days += 1
            continue

        times.append(time_days)
        if time_days <= 30:
            bands.within_30_days += 1
        elif time_days <= 60:
            bands.days_31_to_60 += 1
        else:
            bands.over_60_days += 1
        if term_days is not None:
            comparable += 1
            if time_days <= term_days:
                within_terms += 1

    sb_count = preview.small_business_count
    bands.within_30_days_pct = _pct(bands.within_30_days, sb_count)
    bands.days_31_to_60_pct = _pct(bands.days_31_to_60, sb_count)
    bands.over_60_days_pct = _pct(bands.over_60_days, sb_count)

    times.sort()
    preview.small_business_value = sb_value
    preview.small_business_value_pct = _pct(float(sb_value), float(preview.total_value))
    preview.bands = bands
    preview.average_payment_days = _round(sum(times) / len(times)) if times else None
    preview.median_payment_days = _round(percentile_cont(times, 0.5))
    preview.p80_payment_days = _round(percentile_cont(times, 0.8))
    preview.p95_payment_days = _round(percentile_cont(times, 0.95))
    preview.paid_within_terms_pct = _pct(within_terms, comparable)

    if preview.missing.payment_term_days:
        preview.notes.append(f"{preview.missing.payment_term_days} record(s) have no payment term.")
    if preview.missing.small_business_flag:
        preview.notes.append(
            f"{preview.missing.small_business_flag} record(s) have no small business determination."
        )
    if preview.missing.payment_time_days:
        preview.notes.append(
            f"{preview.missing.payment_time_days} small business record(s) have no payment time; "
            "run metric derivation first."
        )

    logger.info(
        "Built metrics preview tenant=%s run=%s records=%d small_business=%d",
        tenant_id,
        run_id,
        preview.record_count,
        sb_count,
    )
    return preview
