"""Apply an SBI results file to the stage rows of a reporting run.

The whole import runs inside the caller's tenant transaction: the upload
row, its per-ABN results, the stage row updates and the audit trail are
committed together or not at all.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from ptrs_core.config import Settings
from ptrs_core.models.sbi import ImportOutcome, ImportSummary, StageMergeCounts, UploadStatus
from ptrs_core.sbi.abn import is_well_formed_abn, payee_abn_of
from ptrs_core.sbi.outcomes import OutcomeClassifier, SbiVerdict
from ptrs_core.sbi.parser import ParsedSbiFile, ParsedSbiResult, parse_sbi_csv
from ptrs_core.state.database import TenantTransaction, acquire_run_lock
from ptrs_core.state.repository import (
    ReportingRunRepository,
    SbiResultRepository,
    SbiRowChangeRepository,
    SbiUploadRepository,
    StageRowRepository,
)
from ptrs_core.state.tables import StageRowTable

logger = logging.getLogger(__name__)

SBI_SOURCE = "SBI_UPLOAD"

REASON_UNKNOWN_OUTCOMES = "Unknown SBI outcome values were encountered for matched stage rows"
REASON_MISSING_ABNS = "Some stage rows have no payee ABN and could not be checked"
REASON_INVALID_MATCHES = "Some stage rows match ABNs the SBI tool did not recognise as valid"


def _needs_flag_change(data: dict[str, Any], expected: bool, result: ParsedSbiResult) -> bool:
    before = data.get("is_small_business")
    return (
        not isinstance(before, bool)
        or before != expected
        or data.get("small_business_outcome") != result.outcome
        or data.get("small_business_source") != SBI_SOURCE
    )


def _roll_up(counts: StageMergeCounts) -> tuple[UploadStatus, list[str], list[str]]:
    blocking: list[str] = []
    warnings: list[str] = []
    if counts.unknown_outcome_rows:
        blocking.append(REASON_UNKNOWN_OUTCOMES)
    if counts.missing_abn_rows:
        warnings.append(REASON_MISSING_ABNS)
    if counts.invalid_match_rows:
        warnings.append(REASON_INVALID_MATCHES)

    if blocking:
        return UploadStatus.BLOCKED, blocking, warnings
    if warnings:
        return UploadStatus.APPLIED_WITH_WARNINGS, blocking, warnings
    return UploadStatus.APPLIED, blocking, warnings


class SbiImportPipeline:
    """Parse an SBI results file and merge it onto a run's stage rows.

    Parameters
    ----------
    settings:
        Source of the outcome phrase table.  Ignored when *classifier* is
        given.
    classifier:
        Explicit outcome classifier.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        classifier: OutcomeClassifier | None = None,
    ) -> None:
        if classifier is None:
            classifier = OutcomeClassifier.from_settings(settings) if settings else OutcomeClassifier()
        self._classifier = classifier

    async def import_results(
        self,
        tx: TenantTransaction,
        run_id: str,
        *,
        file_bytes: bytes,
        file_name: str | None = None,
        actor_id: str | None = None,
    ) -> ImportOutcome:
        """Import *file_bytes* into *run_id*.

        Raises
        ------
        RunNotFound
            The run does not belong to the transaction's tenant.
        EmptyUploadError, UploadDecodeError, MissingRequiredColumns, NoAbnsParsed
            The file was rejected; nothing has been written.
        """
        session, tenant_id = tx.session, tx.tenant_id
        await ReportingRunRepository(session, tenant_id).require(run_id)

        parsed = parse_sbi_csv(file_bytes, self._classifier)

        await acquire_run_lock(tx, run_id)

        uploads = SbiUploadRepository(session, tenant_id)
        upload = await uploads.create(
            run_id,
            file_name=file_name,
            file_hash=parsed.file_hash,
            raw_row_count=parsed.raw_row_count,
            parsed_abn_count=parsed.parsed_abn_count,
            uploaded_by=actor_id,
        )
        await SbiResultRepository(session, tenant_id).add_many(
            run_id,
            upload.id,
            (
                {
                    "abn": result.abn,
                    "outcome": result.outcome,
                    "year": result.year,
                    "is_valid_abn": result.is_valid_abn,
                }
                for result in parsed.results.values()
            ),
        )

        counts = await self._merge(tx, run_id, upload.id, parsed, actor_id)
        status, blocking, warnings = _roll_up(counts)

        summary = ImportSummary(
            file_name=file_name,
            file_hash=parsed.file_hash,
            raw_row_count=parsed.raw_row_count,
            parsed_abns=parsed.parsed_abn_count,
            invalid_abns=parsed.invalid_abns,
            unknown_outcomes=parsed.unknown_outcomes,
            stage=counts,
            blocking_reasons=blocking,
            warning_reasons=warnings,
        )
        await uploads.finalise(
            upload,
            status=status.value,
            summary=summary.model_dump(mode="json"),
            applied_by=actor_id,
        )

        logger.info(
            "SBI import tenant=%s run=%s upload=%d status=%s abns=%d matched=%d affected=%d refreshed=%d",
            tenant_id,
            run_id,
            upload.id,
            status.value,
            parsed.parsed_abn_count,
            counts.matched_abns,
            counts.affected_rows,
            counts.evidence_refreshed_rows,
        )
        return ImportOutcome(
            status=status,
            tenant_id=tenant_id,
            run_id=run_id,
            sbi_upload_id=upload.id,
            summary=summary,
        )

    async def _merge(
        self,
        tx: TenantTransaction,
        run_id: str,
        upload_id: int,
        parsed: ParsedSbiFile,
        actor_id: str | None,
    ) -> StageMergeCounts:
        session, tenant_id = tx.session, tx.tenant_id
        stage_repo = StageRowRepository(session, tenant_id)
        stage_rows = await stage_repo.list_active(run_id)

        counts = StageMergeCounts(total_rows=len(stage_rows))
        checked_at = datetime.now(UTC).isoformat()
        updates: list[tuple[StageRowTable, dict[str, Any]]] = []
        changes: list[dict[str, Any]] = []

        for row in stage_rows:
            if row.excluded:
                counts.excluded_rows += 1
                continue

            abn = payee_abn_of(row.data)
            if not abn:
                counts.missing_abn_rows += 1
                continue
            counts.rows_with_payee_abn += 1

            if not is_well_formed_abn(abn):
                continue

            result = parsed.results.get(abn)
            if result is None:
                continue
            counts.matched_abns += 1

            if result.verdict is SbiVerdict.INVALID_ABN:
                counts.invalid_match_rows += 1
                continue

            expected = result.verdict.expected_flag
            if expected is None:
                counts.unknown_outcome_rows += 1
                continue

            data = dict(row.data or {})
            flag_changed = _needs_flag_change(data, expected, result)
            if not flag_changed and data.get("small_business_evidence_id") == upload_id:
                continue

            before_flag = data.get("is_small_business")
            before_evidence = data.get("small_business_evidence_id")
            data.update(
                is_small_business=expected,
                small_business_outcome=result.outcome,
                small_business_source=SBI_SOURCE,
                small_business_evidence_id=upload_id,
                small_business_checked_at=checked_at,
            )
            updates.append((row, data))

            if not flag_changed:
                counts.evidence_refreshed_rows += 1
                continue

            counts.affected_rows += 1
            changes.append(
                {
                    "stage_row_id": row.id,
                    "supplier_abn": abn,
                    "before_is_small_business": before_flag if isinstance(before_flag, bool) else None,
                    "after_is_small_business": expected,
                    "before_evidence_id": before_evidence if isinstance(before_evidence, int) else None,
                    "after_evidence_id": upload_id,
                    "outcome": result.outcome,
                    "changed_by": actor_id,
                }
            )

        await stage_repo.update_data(updates)
        await SbiRowChangeRepository(session, tenant_id).add_many(run_id, upload_id, changes)
        return counts
