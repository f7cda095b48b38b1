"""SQLAlchemy 2.0 ORM table definitions for the compliance state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by Alembic migrations and the repository layer.

Every table carries a ``tenant_id`` column; PostgreSQL row-level-security
policies (migration 002) restrict visibility to the tenant bound on the
current transaction.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Cross-dialect JSON type: uses JSONB on PostgreSQL for GIN indexing and
# query operators, falls back to plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")

TENANT_ID_LENGTH = 10


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all compliance tables."""


# ---------------------------------------------------------------------------
# Reporting runs
# ---------------------------------------------------------------------------


class ReportingRunTable(Base):
    """One payment-times reporting run for a tenant."""

    __tablename__ = "ptrs_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    label: Mapped[str | None] = mapped_column(String(256), nullable=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT','IN_PROGRESS','SUBMITTED','SUPERSEDED')",
            name="ck_ptrs_runs_status",
        ),
        Index("ix_ptrs_runs_tenant", "tenant_id"),
    )


# ---------------------------------------------------------------------------
# Transaction records
# ---------------------------------------------------------------------------


class TransactionRecordTable(Base):
    """One payment/invoice line belonging to a tenant's reporting run.

    Input columns are populated at ingestion; the derived columns
    (``payment_time_days`` onwards) are owned by the metrics engine.
    """

    __tablename__ = "ptrs_transaction_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), ForeignKey("ptrs_runs.id", ondelete="CASCADE"), nullable=False)
    record_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payee_abn: Mapped[str | None] = mapped_column(String(32), nullable=True)

    supply_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_receipt_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notice_for_payment_issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    invoice_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)

    is_reportable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    excluded_from_report: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_rcti: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    invoice_payment_terms: Mapped[str | None] = mapped_column(String(256), nullable=True)
    notice_for_payment_terms: Mapped[str | None] = mapped_column(String(256), nullable=True)
    contract_po_payment_terms: Mapped[str | None] = mapped_column(String(256), nullable=True)

    payment_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_time_reference_kind: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_term_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    partial_payment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    explanatory_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "run_id", "record_id", name="uq_ptrs_records_tenant_run_record"),
        Index("ix_ptrs_records_tenant_run", "tenant_id", "run_id"),
    )


# ---------------------------------------------------------------------------
# Stage rows
# ---------------------------------------------------------------------------


class StageRowTable(Base):
    """Pre-finalisation working copy of a transaction record.

    ``data`` is a document-style payload; the SBI pipeline owns the
    ``is_small_business`` / ``small_business_*`` keys inside it.
    """

    __tablename__ = "ptrs_stage_rows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), ForeignKey("ptrs_runs.id", ondelete="CASCADE"), nullable=False)
    row_no: Mapped[int] = mapped_column(Integer, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False, default=dict)
    excluded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_ptrs_stage_rows_tenant_run_row", "tenant_id", "run_id", "row_no"),
    )


# ---------------------------------------------------------------------------
# SBI uploads
# ---------------------------------------------------------------------------


class SbiUploadTable(Base):
    """Append-only record of one SBI results file import attempt."""

    __tablename__ = "ptrs_sbi_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), ForeignKey("ptrs_runs.id", ondelete="CASCADE"), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parsed_abn_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="APPLIED")
    summary: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    uploaded_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    applied_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('APPLIED','APPLIED_WITH_WARNINGS','BLOCKED')",
            name="ck_ptrs_sbi_uploads_status",
        ),
        Index("ix_ptrs_sbi_uploads_tenant_run", "tenant_id", "run_id"),
        Index("ix_ptrs_sbi_uploads_file_hash", "file_hash"),
    )


# ---------------------------------------------------------------------------
# SBI results
# ---------------------------------------------------------------------------


class SbiResultTable(Base):
    """One determination per distinct normalised ABN within an upload."""

    __tablename__ = "ptrs_sbi_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sbi_upload_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ptrs_sbi_uploads.id", ondelete="CASCADE"), nullable=False
    )
    abn: Mapped[str] = mapped_column(String(32), nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False, default="")
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_valid_abn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "run_id",
            "sbi_upload_id",
            "abn",
            name="uq_ptrs_sbi_results_tenant_run_upload_abn",
        ),
        Index("ix_ptrs_sbi_results_upload", "sbi_upload_id"),
    )


# ---------------------------------------------------------------------------
# SBI row changes
# ---------------------------------------------------------------------------


class SbiRowChangeTable(Base):
    """Write-once audit entry for a stage row changed by an SBI import."""

    __tablename__ = "ptrs_sbi_row_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sbi_upload_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ptrs_sbi_uploads.id", ondelete="CASCADE"), nullable=False
    )
    stage_row_id: Mapped[int] = mapped_column(Integer, nullable=False)
    supplier_abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    before_is_small_business: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    after_is_small_business: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    before_evidence_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    after_evidence_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_ptrs_sbi_row_changes_upload", "sbi_upload_id"),
        Index("ix_ptrs_sbi_row_changes_tenant_run", "tenant_id", "run_id"),
    )


TENANT_TABLES: tuple[str, ...] = (
    ReportingRunTable.__tablename__,
    TransactionRecordTable.__tablename__,
    StageRowTable.__tablename__,
    SbiUploadTable.__tablename__,
    SbiResultTable.__tablename__,
    SbiRowChangeTable.__tablename__,
)
