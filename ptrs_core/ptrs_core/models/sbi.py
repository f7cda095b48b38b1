"""Result models for the SBI import pipeline and validation pass.

Everything returned across the core boundary is a pydantic model so the
API can serialise it unchanged and the CLI can render it from JSON.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UploadStatus(str, Enum):
    """Rolled-up status of one SBI import."""

    APPLIED = "APPLIED"
    APPLIED_WITH_WARNINGS = "APPLIED_WITH_WARNINGS"
    BLOCKED = "BLOCKED"


class ValidationStatus(str, Enum):
    """Overall verdict of the SBI validation pass."""

    PASSED = "PASSED"
    PASSED_WITH_WARNINGS = "PASSED_WITH_WARNINGS"
    BLOCKED = "BLOCKED"


class IssueCode(str, Enum):
    """Stable codes for validation findings."""

    SBI_MISSING = "SBI_MISSING"
    PAYEE_ABN_MISSING = "PAYEE_ABN_MISSING"
    PAYEE_ABN_INVALID = "PAYEE_ABN_INVALID"
    SBI_INVALID_ABN = "SBI_INVALID_ABN"
    SBI_NO_MATCH = "SBI_NO_MATCH"
    SBI_UNKNOWN_OUTCOME = "SBI_UNKNOWN_OUTCOME"
    SBI_EVIDENCE_MISSING = "SBI_EVIDENCE_MISSING"
    SBI_FLAG_MISMATCH = "SBI_FLAG_MISMATCH"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class StageMergeCounts(BaseModel):
    """How the parsed results landed on the run's stage rows."""

    total_rows: int = 0
    excluded_rows: int = 0
    rows_with_payee_abn: int = 0
    matched_abns: int = 0
    affected_rows: int = Field(
        default=0,
        description="Rows whose small-business flag, outcome or source changed.",
    )
    evidence_refreshed_rows: int = Field(
        default=0,
        description="Rows rewritten only to point their evidence at the new upload.",
    )
    missing_abn_rows: int = 0
    invalid_match_rows: int = 0
    unknown_outcome_rows: int = 0


class ImportSummary(BaseModel):
    """Structured summary persisted on the upload row."""

    file_name: str | None = None
    file_hash: str
    raw_row_count: int
    parsed_abns: int
    invalid_abns: int
    unknown_outcomes: int
    stage: StageMergeCounts
    blocking_reasons: list[str] = Field(default_factory=list)
    warning_reasons: list[str] = Field(default_factory=list)


class ImportOutcome(BaseModel):
    """Returned by :meth:`SbiImportPipeline.import_results`."""

    status: UploadStatus
    tenant_id: str
    run_id: str
    sbi_upload_id: int
    summary: ImportSummary

    @property
    def affected_rows(self) -> int:
        return self.summary.stage.affected_rows


class SbiUploadInfo(BaseModel):
    """Read view of one ``ptrs_sbi_uploads`` row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: str
    status: UploadStatus
    file_name: str | None = None
    file_hash: str
    raw_row_count: int
    parsed_abn_count: int
    summary: dict[str, Any] | None = None
    uploaded_by: str | None = None
    applied_by: str | None = None
    created_at: datetime


class SbiRowChangeInfo(BaseModel):
    """Read view of one audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    stage_row_id: int
    supplier_abn: str | None = None
    before_is_small_business: bool | None = None
    after_is_small_business: bool | None = None
    before_evidence_id: int | None = None
    after_evidence_id: int | None = None
    outcome: str | None = None
    changed_by: str | None = None
    changed_at: datetime


class SbiStatus(BaseModel):
    run_id: str
    latest_upload: SbiUploadInfo | None = None


class SbiUploadDetail(BaseModel):
    upload: SbiUploadInfo
    total_results: int
    row_changes: list[SbiRowChangeInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationIssue(BaseModel):
    """One blocker or warning, pinned to a stage row where there is one."""

    code: IssueCode
    message: str
    stage_row_id: int | None = None
    row_no: int | None = None
    payee_abn: str | None = None
    outcome: str | None = None
    expected: bool | None = None
    actual: bool | None = None
    expected_evidence_id: int | None = None
    actual_evidence_id: int | None = None


class ValidationCounts(BaseModel):
    """True totals, independent of the issue list cap."""

    total_rows: int = 0
    excluded_rows: int = 0
    compliant_rows: int = 0
    blockers: int = 0
    warnings: int = 0
    payee_abn_missing: int = 0
    payee_abn_invalid: int = 0
    sbi_invalid_abn: int = 0
    sbi_no_match: int = 0
    sbi_unknown_outcome: int = 0
    sbi_evidence_missing: int = 0
    sbi_flag_mismatch: int = 0


class SbiCheck(BaseModel):
    required: bool = True
    latest_upload_id: int | None = None
    upload_status: UploadStatus | None = None
    total_results: int = 0


class ValidationReport(BaseModel):
    """Returned by :meth:`SbiValidationPass.validate`."""

    status: ValidationStatus
    tenant_id: str
    run_id: str
    sbi: SbiCheck
    counts: ValidationCounts
    blockers: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
