"""Tests for SbiImportPipeline merging results onto stage rows."""

from __future__ import annotations

import pytest
from ptrs_core.errors import EmptyUploadError, RunNotFound
from ptrs_core.models.sbi import UploadStatus
from ptrs_core.sbi.importer import (
    REASON_INVALID_MATCHES,
    REASON_MISSING_ABNS,
    REASON_UNKNOWN_OUTCOMES,
    SBI_SOURCE,
    SbiImportPipeline,
)
from ptrs_core.sbi.validation import SbiValidationPass, is_submittable
from ptrs_core.state.repository import (
    SbiResultRepository,
    SbiRowChangeRepository,
    SbiUploadRepository,
    StageRowRepository,
)

RUN = "run-sbi"
SMALL = "Small business for payment times reporting"
NOT_SMALL = "Not a small business for payment times reporting"
INVALID = "The ABN is not recognised as a valid ABN"


async def _import(open_tx, tenant_id: str, data: bytes, **kwargs):
    async with await open_tx(tenant_id) as tx:
        return await SbiImportPipeline().import_results(tx, RUN, file_bytes=data, **kwargs)


async def _stage_rows(open_tx, tenant_id: str):
    async with await open_tx(tenant_id) as tx:
        return await StageRowRepository(tx.session, tenant_id).list_active(RUN)


class TestImportResults:
    @pytest.mark.asyncio
    async def test_applies_flags_and_evidence(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[
                {"data": {"payee_abn": "51 824 753 556"}},
                {"data": {"payee_entity_abn": "11223344556", "is_small_business": True}},
            ],
        )

        outcome = await _import(
            open_tx,
            tenant_a,
            make_sbi_csv(("51824753556", SMALL), ("11223344556", NOT_SMALL)),
            file_name="sbi.csv",
            actor_id="user-1",
        )

        assert outcome.status is UploadStatus.APPLIED
        assert outcome.affected_rows == 2
        assert outcome.summary.parsed_abns == 2
        assert outcome.summary.stage.matched_abns == 2
        assert outcome.summary.blocking_reasons == []

        first, second = await _stage_rows(open_tx, tenant_a)
        assert first.data["is_small_business"] is True
        assert first.data["small_business_outcome"] == SMALL
        assert first.data["small_business_source"] == SBI_SOURCE
        assert first.data["small_business_evidence_id"] == outcome.sbi_upload_id
        assert "small_business_checked_at" in first.data
        assert first.data["payee_abn"] == "51 824 753 556"
        assert second.data["is_small_business"] is False

    @pytest.mark.asyncio
    async def test_persists_upload_results_and_row_changes(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[{"data": {"payee_abn": "51824753556", "is_small_business": False}}],
        )

        outcome = await _import(
            open_tx,
            tenant_a,
            make_sbi_csv(("51824753556", SMALL), ("11223344556", NOT_SMALL)),
            file_name="sbi.csv",
            actor_id="user-1",
        )

        async with await open_tx(tenant_a) as tx:
            upload = await SbiUploadRepository(tx.session, tenant_a).get(RUN, outcome.sbi_upload_id)
            results = await SbiResultRepository(tx.session, tenant_a).list_for_upload(RUN, outcome.sbi_upload_id)
            changes = await SbiRowChangeRepository(tx.session, tenant_a).list_for_upload(
                RUN, outcome.sbi_upload_id
            )

        assert upload.status == "APPLIED"
        assert upload.file_name == "sbi.csv"
        assert upload.uploaded_by == "user-1"
        assert upload.applied_by == "user-1"
        assert upload.parsed_abn_count == 2
        assert upload.summary["stage"]["affected_rows"] == 1
        assert [r.abn for r in results] == ["11223344556", "51824753556"]

        assert len(changes) == 1
        change = changes[0]
        assert change.supplier_abn == "51824753556"
        assert change.before_is_small_business is False
        assert change.after_is_small_business is True
        assert change.before_evidence_id is None
        assert change.after_evidence_id == outcome.sbi_upload_id
        assert change.changed_by == "user-1"

    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[{"data": {"payee_abn": "51824753556"}}, {"data": {"payee_abn": "11223344556"}}],
        )
        data = make_sbi_csv(("51824753556", SMALL), ("11223344556", NOT_SMALL))

        first = await _import(open_tx, tenant_a, data)
        after_first = [
            {k: v for k, v in row.data.items() if k not in ("small_business_evidence_id", "small_business_checked_at")}
            for row in await _stage_rows(open_tx, tenant_a)
        ]
        second = await _import(open_tx, tenant_a, data)
        rows = await _stage_rows(open_tx, tenant_a)

        assert first.affected_rows == 2
        assert second.affected_rows == 0
        assert second.summary.stage.evidence_refreshed_rows == 2
        assert second.sbi_upload_id != first.sbi_upload_id
        assert [
            {k: v for k, v in row.data.items() if k not in ("small_business_evidence_id", "small_business_checked_at")}
            for row in rows
        ] == after_first
        assert all(row.data["small_business_evidence_id"] == second.sbi_upload_id for row in rows)

        async with await open_tx(tenant_a) as tx:
            changes = await SbiRowChangeRepository(tx.session, tenant_a).list_for_upload(RUN, second.sbi_upload_id)
        assert changes == []

    @pytest.mark.asyncio
    async def test_unknown_outcome_blocks(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])

        outcome = await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", "Pending review")))

        assert outcome.status is UploadStatus.BLOCKED
        assert outcome.summary.blocking_reasons == [REASON_UNKNOWN_OUTCOMES]
        assert outcome.summary.stage.unknown_outcome_rows == 1
        assert outcome.affected_rows == 0
        (row,) = await _stage_rows(open_tx, tenant_a)
        assert "is_small_business" not in row.data

    @pytest.mark.asyncio
    async def test_stray_quote_blocks_instead_of_swallowing_rows(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[
                {"data": {"payee_abn": "51824753556"}},
                {"data": {"payee_abn": "11223344556"}},
                {"data": {"payee_abn": "22334455667"}},
            ],
        )
        data = (f'ABN,Outcome\n"51824753556,{SMALL}\n11223344556,{NOT_SMALL}\n22334455667,{SMALL}\n').encode()

        outcome = await _import(open_tx, tenant_a, data)

        assert outcome.summary.parsed_abns == 3
        assert outcome.summary.stage.matched_abns == 3
        assert outcome.summary.stage.unknown_outcome_rows == 1
        assert outcome.status is UploadStatus.BLOCKED

        async with await open_tx(tenant_a) as tx:
            report = await SbiValidationPass().validate(tx, RUN)
        assert not is_submittable(report.status)

    @pytest.mark.asyncio
    async def test_missing_abn_and_invalid_match_warn(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[
                {"data": {"payee_abn": "51824753556"}},
                {"data": {"payee_abn": ""}},
                {"data": {"payee_abn": "99999999999"}},
            ],
        )

        outcome = await _import(
            open_tx,
            tenant_a,
            make_sbi_csv(("51824753556", SMALL), ("99999999999", INVALID)),
        )

        assert outcome.status is UploadStatus.APPLIED_WITH_WARNINGS
        assert outcome.summary.warning_reasons == [REASON_MISSING_ABNS, REASON_INVALID_MATCHES]
        assert outcome.summary.stage.missing_abn_rows == 1
        assert outcome.summary.stage.invalid_match_rows == 1
        assert outcome.summary.invalid_abns == 1
        assert outcome.affected_rows == 1

        rows = await _stage_rows(open_tx, tenant_a)
        assert "is_small_business" not in rows[2].data

    @pytest.mark.asyncio
    async def test_excluded_and_deleted_rows_untouched(self, seed_run, open_tx, tenant_a, make_sbi_csv) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[
                {"data": {"payee_abn": "51824753556"}, "excluded": True},
                {"data": {"payee_abn": "11223344556"}},
            ],
        )

        outcome = await _import(
            open_tx,
            tenant_a,
            make_sbi_csv(("51824753556", SMALL), ("11223344556", SMALL)),
        )

        assert outcome.summary.stage.excluded_rows == 1
        assert outcome.summary.stage.total_rows == 2
        assert outcome.affected_rows == 1
        excluded, included = await _stage_rows(open_tx, tenant_a)
        assert "is_small_business" not in excluded.data
        assert included.data["is_small_business"] is True

    @pytest.mark.asyncio
    async def test_rows_without_match_and_malformed_abns_are_left_alone(
        self, seed_run, open_tx, tenant_a, make_sbi_csv
    ) -> None:
        await seed_run(
            tenant_a,
            RUN,
            stage_rows=[{"data": {"payee_abn": "12345"}}, {"data": {"payee_abn": "33333333333"}}],
        )

        outcome = await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))

        assert outcome.status is UploadStatus.APPLIED
        assert outcome.summary.stage.rows_with_payee_abn == 2
        assert outcome.summary.stage.matched_abns == 0
        assert outcome.affected_rows == 0

    @pytest.mark.asyncio
    async def test_rejected_file_writes_nothing(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {"payee_abn": "51824753556"}}])

        with pytest.raises(EmptyUploadError):
            await _import(open_tx, tenant_a, b"")

        async with await open_tx(tenant_a) as tx:
            assert await SbiUploadRepository(tx.session, tenant_a).list_for_run(RUN) == []

    @pytest.mark.asyncio
    async def test_unknown_run(self, open_tx, tenant_a, make_sbi_csv) -> None:
        with pytest.raises(RunNotFound):
            await _import(open_tx, tenant_a, make_sbi_csv(("51824753556", SMALL)))
