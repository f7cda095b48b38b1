"""Tests for SbiValidationPass."""

from __future__ import annotations

import pytest
from ptrs_core.config import load_settings
from ptrs_core.errors import RunNotFound
from ptrs_core.models.sbi import IssueCode, UploadStatus, ValidationStatus
from ptrs_core.sbi.importer import SbiImportPipeline
from ptrs_core.sbi.outcomes import OutcomeClassifier
from ptrs_core.sbi.validation import MESSAGE_SBI_MISSING, SbiValidationPass, is_submittable
from ptrs_core.state.repository import StageRowRepository

RUN = "run-validate"
SMALL = "Small business for payment times reporting"
NOT_SMALL = "Not a small business for payment times reporting"
INVALID = "The ABN is not recognised as a valid ABN"


async def _import(open_tx, tenant_id: str, data: bytes, pipeline: SbiImportPipeline | None = None):
    async with await open_tx(tenant_id) as tx:
        return await (pipeline or SbiImportPipeline()).import_results(tx, RUN, file_bytes=data)


async def _validate(open_tx, tenant_id: str, validator: SbiValidationPass | None = None):
    async with await open_tx(tenant_id) as tx:
        return await (validator or SbiValidationPass()).validate(tx, RUN)


class TestIsSubmittable:
    def test_statuses(self) -> None:
        assert is_submittable(ValidationStatus.PASSED)
        assert is_submittable("PASSED_WITH_WARNINGS")
        assert not is_submittable(ValidationStatus.BLOCKED)


class TestValidate:
    @pytest.mark.asyncio
    async def test_no_applied_upload_is_blocked(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])

        report = await _validate(open_tx, tenant_a)

        assert report.status is ValidationStatus.BLOCKED
        assert report.sbi.latest_upload_id is None
        assert report.counts.blockers == 1
        assert report.counts.total_rows == 0
        assert [issue.code for issue in report.blockers] == [IssueCode.SBI_MISSING]
        assert report.blockers[0].message == MESSAGE_SBI_MISSING
        assert report.warnings == []

    @pytest.mark.asyncio
    async def test_blocked_upload_does_not_count_as_applied(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])
        outcome = await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", "Pending review")))
        assert outcome.status is UploadStatus.BLOCKED

        report = await _validate(open_tx, tenant_a)

        assert report.blockers[0].code is IssueCode.SBI_MISSING

    @pytest.mark.asyncio
    async def test_all_compliant_passes(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[{"data": {"payee_abn": "51824753556"}}, {"data": {"payee_abn": "11223344556"}}],
        )
        outcome = await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL), ("11223344556", NOT_SMALL)))

        report = await _validate(open_tx, tenant_a)

        assert report.status is ValidationStatus.PASSED
        assert report.sbi.latest_upload_id == outcome.sbi_upload_id
        assert report.sbi.upload_status is UploadStatus.APPLIED
        assert report.sbi.total_results == 2
        assert report.counts.compliant_rows == 2
        assert report.counts.blockers == 0

    @pytest.mark.asyncio
    async def test_one_warning_passes_with_warnings(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[{"data": {"payee_abn": "51824753556"}}, {"data": {"payee_abn": "33333333333"}}],
        )
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        report = await _validate(open_tx, tenant_a)

        assert report.status is ValidationStatus.PASSED_WITH_WARNINGS
        assert report.counts.warnings == 1
        assert report.counts.sbi_no_match == 1
        assert report.warnings[0].code is IssueCode.SBI_NO_MATCH
        assert report.warnings[0].payee_abn == "33333333333"
        assert report.warnings[0].row_no == 2

    @pytest.mark.asyncio
    async def test_one_blocker_and_ten_warnings_is_blocked(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        rows = [{"data": {"payee_abn": f"{40000000000 + i}"}} for i in range(10)]
        rows.append({"data": {}})
        rows.append({"data": {"payee_abn": "51824753556"}})
        await seed_run(tenant_a, RUN, stage_rows=rows)
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        report = await _validate(open_tx, tenant_a)

        assert report.status is ValidationStatus.BLOCKED
        assert report.counts.blockers == 1
        assert report.counts.warnings == 10
        assert report.counts.payee_abn_missing == 1
        assert report.counts.compliant_rows == 1
        assert len(report.warnings) == 10

    @pytest.mark.asyncio
    async def test_first_matching_rule_wins(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[
                {"data": {"payee_abn": "51824753556"}, "excluded": True},
                {"data": {"payee_abn": ""}},
                {"data": {"payee_abn": "1234"}},
                {"data": {"payee_abn": "99999999999"}},
                {"data": {"payee_abn": "11223344556"}},
            ],
        )
        await _import(open_tx, tenant_a, make_sbi_csv(("11223344556", NOT_SMALL), ("99999999999", INVALID)))

        report = await _validate(open_tx, tenant_a)

        assert report.counts.total_rows == 5
        assert report.counts.excluded_rows == 1
        assert [(issue.row_no, issue.code) for issue in report.blockers] == [
            (2, IssueCode.PAYEE_ABN_MISSING),
            (3, IssueCode.PAYEE_ABN_INVALID),
            (4, IssueCode.SBI_INVALID_ABN),
        ]
        assert report.counts.compliant_rows == 1

    @pytest.mark.asyncio
    async def test_evidence_missing_for_row_added_after_import(
        self, seed_run, open_tx, tenant_a, make_sbi_csv
    ) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])
        outcome = await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))
        async with await open_tx(tenant_a) as tx:
            await StageRowRepository(tx.session, tenant_a).add_many(
                RUN, [{"row_no": 2, "data": {"payee_abn": "51824753556", "is_small_business": True}}]
            )

        report = await _validate(open_tx, tenant_a)

        assert report.status is ValidationStatus.BLOCKED
        (issue,) = report.blockers
        assert issue.code is IssueCode.SBI_EVIDENCE_MISSING
        assert issue.expected_evidence_id == outcome.sbi_upload_id
        assert issue.actual_evidence_id is None

    @pytest.mark.asyncio
    async def test_flag_mismatch_after_manual_edit(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))
        async with await open_tx(tenant_a) as tx:
            repo = StageRowRepository(tx.session, tenant_a)
            (row,) = await repo.list_active(RUN)
            await repo.update_data([(row, {**row.data, "is_small_business": False})])

        report = await _validate(open_tx, tenant_a)

        (issue,) = report.blockers
        assert issue.code is IssueCode.SBI_FLAG_MISMATCH
        assert issue.expected is True
        assert issue.actual is False

    @pytest.mark.asyncio
    async def test_unknown_outcome_under_stricter_phrase_table(
        self, seed_run, open_tx, tenant_a, make_sbi_csv
    ) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])
        lenient = OutcomeClassifier(small_business_phrases=[SMALL, "Small business (SBI)"])
        await _import(
            open_tx,
            tenant_a,
            make_sbi_csv(("51824753556", "Small business (SBI)")),
            SbiImportPipeline(classifier=lenient),
        )

        report = await _validate(open_tx, tenant_a)

        (issue,) = report.blockers
        assert issue.code is IssueCode.SBI_UNKNOWN_OUTCOME
        assert issue.outcome == "Small business (SBI)"

    @pytest.mark.asyncio
    async def test_issue_list_capped_but_counts_true(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        rows = [{"data": {}} for _ in range(205)]
        rows.append({"data": {"payee_abn": "51824753556"}})
        await seed_run(tenant_a, RUN, stage_rows=rows)
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        report = await _validate(open_tx, tenant_a)

        assert report.counts.blockers == 205
        assert report.counts.payee_abn_missing == 205
        assert len(report.blockers) == 200
        assert [issue.row_no for issue in report.blockers] == list(range(1, 201))

    @pytest.mark.asyncio
    async def test_configured_issue_limit(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {}} for _ in range(5)])
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        report = await _validate(open_tx, tenant_a, SbiValidationPass(load_settings(issue_list_limit=2)))

        assert report.counts.blockers == 5
        assert len(report.blockers) == 2

    @pytest.mark.asyncio
    async def test_validation_is_read_only(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])
        await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        first = await _validate(open_tx, tenant_a)
        second = await _validate(open_tx, tenant_a)

        assert first.model_dump() == second.model_dump()

    @pytest.mark.asyncio
    async def test_unknown_run(self, open_tx, tenant_a) -> None:
        with pytest.raises(RunNotFound):
            await _validate(open_tx, tenant_a)
