"""Initial schema for the compliance state store.

Creates the reporting run, transaction record, stage row and SBI tables.
Every table includes a ``tenant_id`` column for multi-tenant isolation,
with composite indexes and unique constraints leading on it.

Revision ID: 001
Revises: None
Create Date: 2026-02-01 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # ptrs_runs
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_runs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column("label", sa.String(256), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(256), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('DRAFT','IN_PROGRESS','SUBMITTED','SUPERSEDED')",
            name="ck_ptrs_runs_status",
        ),
    )
    op.create_index("ix_ptrs_runs_tenant", "ptrs_runs", ["tenant_id"])

    # ------------------------------------------------------------------
    # ptrs_transaction_records
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_transaction_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column(
            "run_id",
            sa.String(64),
            sa.ForeignKey("ptrs_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("record_id", sa.String(128), nullable=False),
        sa.Column("payee_abn", sa.String(32), nullable=True),
        sa.Column("supply_date", sa.Date(), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("invoice_issue_date", sa.Date(), nullable=True),
        sa.Column("invoice_receipt_date", sa.Date(), nullable=True),
        sa.Column("invoice_due_date", sa.Date(), nullable=True),
        sa.Column("notice_for_payment_issue_date", sa.Date(), nullable=True),
        sa.Column("payment_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("invoice_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("is_reportable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("excluded_from_report", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_rcti", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("invoice_payment_terms", sa.String(256), nullable=True),
        sa.Column("notice_for_payment_terms", sa.String(256), nullable=True),
        sa.Column("contract_po_payment_terms", sa.String(256), nullable=True),
        sa.Column("payment_time_days", sa.Integer(), nullable=True),
        sa.Column("payment_time_reference_kind", sa.String(32), nullable=True),
        sa.Column("payment_term_days", sa.Integer(), nullable=True),
        sa.Column("partial_payment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("explanatory_comment", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "run_id", "record_id", name="uq_ptrs_records_tenant_run_record"),
    )
    op.create_index("ix_ptrs_records_tenant_run", "ptrs_transaction_records", ["tenant_id", "run_id"])

    # ------------------------------------------------------------------
    # ptrs_stage_rows
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_stage_rows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column(
            "run_id",
            sa.String(64),
            sa.ForeignKey("ptrs_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("row_no", sa.Integer(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("excluded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_ptrs_stage_rows_tenant_run_row",
        "ptrs_stage_rows",
        ["tenant_id", "run_id", "row_no"],
    )

    # ------------------------------------------------------------------
    # ptrs_sbi_uploads
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_sbi_uploads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column(
            "run_id",
            sa.String(64),
            sa.ForeignKey("ptrs_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("file_name", sa.String(512), nullable=True),
        sa.Column("file_hash", sa.String(64), nullable=False),
        sa.Column("raw_row_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("parsed_abn_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(40), nullable=False, server_default="APPLIED"),
        sa.Column("summary", postgresql.JSONB(), nullable=True),
        sa.Column("uploaded_by", sa.String(256), nullable=True),
        sa.Column("applied_by", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('APPLIED','APPLIED_WITH_WARNINGS','BLOCKED')",
            name="ck_ptrs_sbi_uploads_status",
        ),
    )
    op.create_index("ix_ptrs_sbi_uploads_tenant_run", "ptrs_sbi_uploads", ["tenant_id", "run_id"])
    op.create_index("ix_ptrs_sbi_uploads_file_hash", "ptrs_sbi_uploads", ["file_hash"])

    # ------------------------------------------------------------------
    # ptrs_sbi_results
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_sbi_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column("run_id", sa.String(64), nullable=False),
        sa.Column(
            "sbi_upload_id",
            sa.Integer(),
            sa.ForeignKey("ptrs_sbi_uploads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("abn", sa.String(32), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False, server_default=""),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("is_valid_abn", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint(
            "tenant_id",
            "run_id",
            "sbi_upload_id",
            "abn",
            name="uq_ptrs_sbi_results_tenant_run_upload_abn",
        ),
    )
    op.create_index("ix_ptrs_sbi_results_upload", "ptrs_sbi_results", ["sbi_upload_id"])

    # ------------------------------------------------------------------
    # ptrs_sbi_row_changes
    # ------------------------------------------------------------------
    op.create_table(
        "ptrs_sbi_row_changes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(10), nullable=False),
        sa.Column("run_id", sa.String(64), nullable=False),
        sa.Column(
            "sbi_upload_id",
            sa.Integer(),
            sa.ForeignKey("ptrs_sbi_uploads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stage_row_id", sa.Integer(), nullable=False),
        sa.Column("supplier_abn", sa.String(32), nullable=True),
        sa.Column("before_is_small_business", sa.Boolean(), nullable=True),
        sa.Column("after_is_small_business", sa.Boolean(), nullable=True),
        sa.Column("before_evidence_id", sa.Integer(), nullable=True),
        sa.Column("after_evidence_id", sa.Integer(), nullable=True),
        sa.Column("outcome", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(256), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_ptrs_sbi_row_changes_upload", "ptrs_sbi_row_changes", ["sbi_upload_id"])
    op.create_index(
        "ix_ptrs_sbi_row_changes_tenant_run",
        "ptrs_sbi_row_changes",
        ["tenant_id", "run_id"],
    )


def downgrade() -> None:
    op.drop_table("ptrs_sbi_row_changes")
    op.drop_table("ptrs_sbi_results")
    op.drop_table("ptrs_sbi_uploads")
    op.drop_table("ptrs_stage_rows")
    op.drop_table("ptrs_transaction_records")
    op.drop_table("ptrs_runs")
