"""Pure payment-timing rules for a single transaction record.

Nothing in this module touches the database.  :func:`derive_record` is the
entry point used by :class:`~ptrs_core.metrics.engine.MetricsDerivationEngine`;
the individual rules are exposed for direct testing.

Payment time
    * RCTI records count ``payment_date - invoice_issue_date`` inclusively
      (same-day payment is 1 day), clamped to 0 when payment precedes issue.
    * Otherwise, when an invoice issue or receipt date exists, the shorter of
      the available exclusive day counts is used.
    * Otherwise the notice-for-payment issue date, then the supply date.
    * Missing dates for the chosen branch give ``None``.

Payment term
    ``invoice_due_date - invoice_issue_date + 1`` when both exist and the due
    date is not earlier, else the first non-empty fallback terms field
    reduced to its digits, else the configured default.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal

from ptrs_core.models.metrics import (
    DerivedMetrics,
    MetricInputs,
    PaymentTerm,
    PaymentTimeReference,
    TermSource,
)

logger = logging.getLogger(__name__)

DEFAULT_TERM_DAYS = 31

NOTE_SEPARATOR = " | "
NOTE_INVALID_TERM = "Invalid term: due date before issue date"
NOTE_FALLBACK_FIELD = "Used fallback term field"

_NON_DIGITS = re.compile(r"\D+")


def default_term_note(default_days: int = DEFAULT_TERM_DAYS) -> str:
    return f"Fallback to default {default_days} day term"


def append_note(existing: str | None, addition: str) -> str:
    """Append *addition* to *existing* unless it is already present.

    >>> append_note(None, "a")
    'a'
    >>> append_note("a", "b")
    'a | b'
    >>> append_note("a | b", "b")
    'a | b'
    """
    if not existing:
        return addition
    if addition in existing:
        return existing
    return f"{existing}{NOTE_SEPARATOR}{addition}"


def _days_between(later: date | None, earlier: date | None) -> int | None:
    """Exclusive day count clamped at zero, or ``None`` if a date is missing."""
    if later is None or earlier is None:
        return None
    return max((later - earlier).days, 0)


def payment_time_days(record: MetricInputs) -> tuple[int | None, PaymentTimeReference]:
    """Return the payment time and the reference it was measured from.

    The reference is :attr:`PaymentTimeReference.MISSING` whenever the
    value is ``None``.
    """
    paid = record.payment_date

    if record.is_rcti:
        if paid is None or record.invoice_issue_date is None:
            return None, PaymentTimeReference.MISSING
        diff = (paid - record.invoice_issue_date).days
        return (diff + 1 if diff >= 0 else 0), PaymentTimeReference.RCTI

    if record.invoice_issue_date is not None or record.invoice_receipt_date is not None:
        candidates = [
            days
            for days in (
                _days_between(paid, record.invoice_issue_date),
                _days_between(paid, record.invoice_receipt_date),
            )
            if days is not None
        ]
        if not candidates:
            return None, PaymentTimeReference.MISSING
        return min(candidates), PaymentTimeReference.INVOICE

    if record.notice_for_payment_issue_date is not None:
        days = _days_between(paid, record.notice_for_payment_issue_date)
        if days is None:
            return None, PaymentTimeReference.MISSING
        return days, PaymentTimeReference.NOTICE

    days = _days_between(paid, record.supply_date)
    if days is None:
        return None, PaymentTimeReference.MISSING
    return days, PaymentTimeReference.SUPPLY


def parse_term_text(value: str | None) -> int | None:
    """Digits of *value* as a positive integer, or ``None``.

    ``"Net 45 days"`` gives 45; text without digits, or digits that amount
    to zero, give ``None``.
    """
    if not value:
        return None
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        return None
    parsed = int(digits)
    return parsed if parsed > 0 else None


def payment_term_days(record: MetricInputs, default_days: int = DEFAULT_TERM_DAYS) -> PaymentTerm:
    """Resolve the payment term through the invoice-date, fallback and default chain."""
    notes: list[str] = []
    issued, due = record.invoice_issue_date, record.invoice_due_date

    if issued is not None and due is not None:
        if due >= issued:
            return PaymentTerm(days=(due - issued).days + 1, source=TermSource.INVOICE_DATES)
        logger.warning(
            "Invalid payment term: due date %s before issue date %s (record id=%s)",
            due,
            issued,
            record.id,
        )
        notes.append(NOTE_INVALID_TERM)

    fallback_text = next(
        (
            text
            for text in (
                record.invoice_payment_terms,
                record.notice_for_payment_terms,
                record.contract_po_payment_terms,
            )
            if text and text.strip()
        ),
        None,
    )
    fallback = parse_term_text(fallback_text)
    if fallback is not None:
        notes.append(NOTE_FALLBACK_FIELD)
        return PaymentTerm(days=fallback, source=TermSource.FALLBACK_FIELD, notes=notes)

    notes.append(default_term_note(default_days))
    return PaymentTerm(days=default_days, source=TermSource.DEFAULT, notes=notes)


def is_partial_payment(payment_amount: Decimal | None, invoice_amount: Decimal | None) -> bool:
    """True only when both amounts exist and less than the invoice was paid."""
    if payment_amount is None or invoice_amount is None:
        return False
    return payment_amount < invoice_amount


def derive_record(record: MetricInputs, default_term_days: int = DEFAULT_TERM_DAYS) -> DerivedMetrics:
    """Compute every derived column for *record*."""
    time_days, reference = payment_time_days(record)
    term = payment_term_days(record, default_term_days)

    comment = record.explanatory_comment
    for note in term.notes:
        comment = append_note(comment, note)

    return DerivedMetrics(
        payment_time_days=time_days,
        payment_time_reference=reference,
        payment_term_days=term.days,
        term_source=term.source,
        partial_payment=is_partial_payment(record.payment_amount, record.invoice_amount),
        explanatory_comment=comment,
    )
