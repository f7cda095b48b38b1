"""Value models for payment-timing metric derivation.

``MetricInputs`` is a read-only snapshot of the columns a transaction record
contributes to the computation; ``DerivedMetrics`` is what the derivation
writes back.  Both are plain pydantic models so the pure functions in
:mod:`ptrs_core.metrics.derivation` can be exercised without a database.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PaymentTimeReference(str, Enum):
    """Which date the payment time was measured from."""

    RCTI = "rcti"
    INVOICE = "invoice"
    NOTICE = "notice"
    SUPPLY = "supply"
    MISSING = "missing"


class TermSource(str, Enum):
    """Where the payment term value came from."""

    INVOICE_DATES = "invoice_dates"
    FALLBACK_FIELD = "fallback_field"
    DEFAULT = "default"


class MetricInputs(BaseModel):
    """The subset of a transaction record the metric rules read."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int | None = None
    is_rcti: bool = False
    supply_date: date | None = None
    payment_date: date | None = None
    invoice_issue_date: date | None = None
    invoice_receipt_date: date | None = None
    invoice_due_date: date | None = None
    notice_for_payment_issue_date: date | None = None
    payment_amount: Decimal | None = None
    invoice_amount: Decimal | None = None
    invoice_payment_terms: str | None = None
    notice_for_payment_terms: str | None = None
    contract_po_payment_terms: str | None = None
    explanatory_comment: str | None = None


class PaymentTerm(BaseModel):
    """Resolved payment term together with the notes explaining it."""

    days: int
    source: TermSource
    notes: list[str] = Field(default_factory=list)


class DerivedMetrics(BaseModel):
    """Derived columns for one transaction record."""

    payment_time_days: int | None = Field(
        default=None,
        description="Days from the reference date to payment; null when the needed dates are missing.",
    )
    payment_time_reference: PaymentTimeReference = PaymentTimeReference.MISSING
    payment_term_days: int
    term_source: TermSource
    partial_payment: bool = False
    explanatory_comment: str | None = None


class DerivationSummary(BaseModel):
    """Outcome of one ``derive_metrics`` call."""

    tenant_id: str
    run_id: str
    applied_count: int = Field(default=0, ge=0, description="Records updated by the bulk UPDATE.")
    reference_counts: dict[str, int] = Field(
        default_factory=lambda: {ref.value: 0 for ref in PaymentTimeReference},
        description="Records per payment-time reference kind.",
    )
    term_source_counts: dict[str, int] = Field(
        default_factory=lambda: {src.value: 0 for src in TermSource},
        description="Records per payment-term source.",
    )
    partial_payments: int = 0


# ---------------------------------------------------------------------------
# Report preview
# ---------------------------------------------------------------------------


class PaymentTimeBands(BaseModel):
    """Small-business payments by payment-time band.

    Percentages are shares of all small-business records, so records with
    no payment time lower every band.
    """

    within_30_days: int = 0
    days_31_to_60: int = 0
    over_60_days: int = 0
    within_30_days_pct: float | None = None
    days_31_to_60_pct: float | None = None
    over_60_days_pct: float | None = None


class MissingDataCounts(BaseModel):
    payment_amount: int = 0
    payment_term_days: int = 0
    payment_time_days: int = Field(default=0, description="Small-business records without a payment time.")
    small_business_flag: int = Field(default=0, description="Records whose payee has no SBI determination.")


class MetricsPreview(BaseModel):
    """Report figures computed from the derived fields of a run.

    The population is every reportable, non-excluded record.  Payment-time
    statistics cover the small-business subset only.  Values are absolute
    payment amounts.
    """

    tenant_id: str
    run_id: str

    record_count: int = 0
    total_value: Decimal = Decimal("0.00")
    small_business_count: int = 0
    small_business_value: Decimal = Decimal("0.00")
    small_business_value_pct: float | None = None

    bands: PaymentTimeBands = Field(default_factory=PaymentTimeBands)
    average_payment_days: float | None = None
    median_payment_days: float | None = None
    p80_payment_days: float | None = None
    p95_payment_days: float | None = None
    paid_within_terms_pct: float | None = None

    term_min_days: int | None = None
    term_max_days: int | None = None
    term_mode_days: int | None = Field(default=None, description="Most common term; the shorter term on a tie.")

    missing: MissingDataCounts = Field(default_factory=MissingDataCounts)
    notes: list[str] = Field(default_factory=list)
