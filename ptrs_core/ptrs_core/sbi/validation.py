"""Read-only consistency check of stage rows against the latest applied SBI upload.

Each non-excluded stage row is classified into exactly one outcome, the
first matching rule winning:

1. missing payee ABN                          -> blocker ``PAYEE_ABN_MISSING``
2. payee ABN not eleven digits                -> blocker ``PAYEE_ABN_INVALID``
3. ABN flagged invalid by the SBI file        -> blocker ``SBI_INVALID_ABN``
4. ABN absent from the SBI results            -> warning ``SBI_NO_MATCH``
5. outcome text not recognised                -> blocker ``SBI_UNKNOWN_OUTCOME``
6. evidence id not the located upload         -> blocker ``SBI_EVIDENCE_MISSING``
7. stored flag disagrees with the outcome     -> blocker ``SBI_FLAG_MISMATCH``
8. otherwise compliant

Issue lists are capped; counts are always true totals.
"""

from __future__ import annotations

import logging
from typing import Any

from ptrs_core.config import Settings
from ptrs_core.models.sbi import (
    IssueCode,
    SbiCheck,
    UploadStatus,
    ValidationCounts,
    ValidationIssue,
    ValidationReport,
    ValidationStatus,
)
from ptrs_core.sbi.abn import is_well_formed_abn, normalize_abn, payee_abn_of
from ptrs_core.sbi.outcomes import OutcomeClassifier, SbiVerdict
from ptrs_core.state.database import TenantTransaction
from ptrs_core.state.repository import (
    ReportingRunRepository,
    SbiResultRepository,
    SbiUploadRepository,
    StageRowRepository,
)
from ptrs_core.state.tables import StageRowTable

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_LIMIT = 200

MESSAGE_SBI_MISSING = "SBI Check has not been applied for this run. Upload SBI results before validating."

_MESSAGES: dict[IssueCode, str] = {
    IssueCode.PAYEE_ABN_MISSING: "Missing payee ABN",
    IssueCode.PAYEE_ABN_INVALID: "Payee ABN is not a valid 11-digit ABN",
    IssueCode.SBI_INVALID_ABN: "SBI results indicate this ABN is invalid/unrecognised",
    IssueCode.SBI_NO_MATCH: "No SBI outcome found for this payee ABN (possible mismatched SBI file)",
    IssueCode.SBI_UNKNOWN_OUTCOME: "SBI outcome is not recognised",
    IssueCode.SBI_EVIDENCE_MISSING: (
        "Row is missing the expected small business evidence id for the latest SBI upload"
    ),
    IssueCode.SBI_FLAG_MISMATCH: "Row small business flag does not match the SBI outcome",
}

_WARNING_CODES = frozenset({IssueCode.SBI_NO_MATCH})


def is_submittable(status: ValidationStatus | str) -> bool:
    """Whether a run with this validation status may proceed to certification."""
    return ValidationStatus(status) in (ValidationStatus.PASSED, ValidationStatus.PASSED_WITH_WARNINGS)


class _IssueCollector:
    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.counts = ValidationCounts()
        self.blockers: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []

    def add(self, row: StageRowTable, code: IssueCode, payee_abn: str, **extra: Any) -> None:
        setattr(self.counts, code.value.lower(), getattr(self.counts, code.value.lower()) + 1)
        is_warning = code in _WARNING_CODES
        if is_warning:
            self.counts.warnings += 1
        else:
            self.counts.blockers += 1

        bucket = self.warnings if is_warning else self.blockers
        if len(bucket) < self.limit:
            bucket.append(
                ValidationIssue(
                    code=code,
                    message=_MESSAGES[code],
                    stage_row_id=row.id,
                    row_no=row.row_no,
                    payee_abn=payee_abn or None,
                    **extra,
                )
            )

    def status(self) -> ValidationStatus:
        if self.counts.blockers:
            return ValidationStatus.BLOCKED
        if self.counts.warnings:
            return ValidationStatus.PASSED_WITH_WARNINGS
        return ValidationStatus.PASSED


class SbiValidationPass:
    """Check that the latest applied SBI upload is reflected on every stage row.

    Read-only: it can be re-run as often as needed after data fixes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        classifier: OutcomeClassifier | None = None,
    ) -> None:
        if classifier is None:
            classifier = OutcomeClassifier.from_settings(settings) if settings else OutcomeClassifier()
        self._classifier = classifier
        self._limit = settings.issue_list_limit if settings else DEFAULT_ISSUE_LIMIT

    async def validate(self, tx: TenantTransaction, run_id: str) -> ValidationReport:
        """Validate *run_id*.

        Raises
        ------
        RunNotFound
            The run does not belong to the transaction's tenant.
        """
        session, tenant_id = tx.session, tx.tenant_id
        await ReportingRunRepository(session, tenant_id).require(run_id)

        latest = await SbiUploadRepository(session, tenant_id).get_latest_applied(run_id)
        if latest is None:
            logger.info("SBI validation tenant=%s run=%s status=BLOCKED (never applied)", tenant_id, run_id)
            return ValidationReport(
                status=ValidationStatus.BLOCKED,
                tenant_id=tenant_id,
                run_id=run_id,
                sbi=SbiCheck(),
                counts=ValidationCounts(blockers=1),
                blockers=[ValidationIssue(code=IssueCode.SBI_MISSING, message=MESSAGE_SBI_MISSING)],
            )

        results = await SbiResultRepository(session, tenant_id).list_for_upload(run_id, latest.id)
        outcomes: dict[str, str] = {}
        invalid: set[str] = set()
        for result in results:
            abn = normalize_abn(result.abn)
            if not abn:
                continue
            outcomes[abn] = (result.outcome or "").strip()
            if not result.is_valid_abn or self._classifier.classify(result.outcome) is SbiVerdict.INVALID_ABN:
                invalid.add(abn)

        stage_rows = await StageRowRepository(session, tenant_id).list_active(run_id)
        collector = _IssueCollector(self._limit)
        collector.counts.total_rows = len(stage_rows)

        for row in stage_rows:
            if row.excluded:
                collector.counts.excluded_rows += 1
                continue
            self._check_row(row, latest.id, outcomes, invalid, collector)

        status = collector.status()
        logger.info(
            "SBI validation tenant=%s run=%s upload=%d status=%s blockers=%d warnings=%d",
            tenant_id,
            run_id,
            latest.id,
            status.value,
            collector.counts.blockers,
            collector.counts.warnings,
        )
        return ValidationReport(
            status=status,
            tenant_id=tenant_id,
            run_id=run_id,
            sbi=SbiCheck(
                latest_upload_id=latest.id,
                upload_status=UploadStatus(latest.status),
                total_results=len(results),
            ),
            counts=collector.counts,
            blockers=collector.blockers,
            warnings=collector.warnings,
        )

    def _check_row(
        self,
        row: StageRowTable,
        upload_id: int,
        outcomes: dict[str, str],
        invalid: set[str],
        collector: _IssueCollector,
    ) -> None:
        data = row.data or {}
        abn = payee_abn_of(data)

        if not abn:
            collector.add(row, IssueCode.PAYEE_ABN_MISSING, abn)
            return
        if not is_well_formed_abn(abn):
            collector.add(row, IssueCode.PAYEE_ABN_INVALID, abn)
            return
        if abn in invalid:
            collector.add(row, IssueCode.SBI_INVALID_ABN, abn, outcome=outcomes.get(abn))
            return
        if abn not in outcomes:
            collector.add(row, IssueCode.SBI_NO_MATCH, abn)
            return

        outcome = outcomes[abn]
        expected = self._classifier.classify(outcome).expected_flag
        if expected is None:
            collector.add(row, IssueCode.SBI_UNKNOWN_OUTCOME, abn, outcome=outcome)
            return

        evidence_id = data.get("small_business_evidence_id")
        if evidence_id != upload_id:
            collector.add(
                row,
                IssueCode.SBI_EVIDENCE_MISSING,
                abn,
                expected_evidence_id=upload_id,
                actual_evidence_id=evidence_id if isinstance(evidence_id, int) else None,
            )
            return

        actual = data.get("is_small_business")
        if actual is not expected:
            collector.add(
                row,
                IssueCode.SBI_FLAG_MISMATCH,
                abn,
                outcome=outcome,
                expected=expected,
                actual=None if actual is None else bool(actual),
            )
            return

        collector.counts.compliant_rows += 1
