"""Unit tests for the tenant-scoped repositories on SQLite."""

from __future__ import annotations

import pytest
from ptrs_core.errors import RunNotFound
from ptrs_core.state.repository import ReportingRunRepository, SbiUploadRepository, StageRowRepository

RUN = "run-repo"


async def _add_upload(repo: SbiUploadRepository, status: str, name: str):
    upload = await repo.create(
        RUN,
        file_name=name,
        file_hash="0" * 64,
        raw_row_count=1,
        parsed_abn_count=1,
        uploaded_by=None,
    )
    return await repo.finalise(upload, status=status, summary={}, applied_by=None)


class TestReportingRunRepository:
    @pytest.mark.asyncio
    async def test_create_and_require(self, open_tx, tenant_a) -> None:
        async with await open_tx(tenant_a) as tx:
            repo = ReportingRunRepository(tx.session, tenant_a)
            created = await repo.create(RUN, label="H1 2025", created_by="user-1")
            fetched = await repo.require(RUN)
        assert fetched.id == created.id
        assert fetched.status == "DRAFT"
        assert fetched.tenant_id == tenant_a

    @pytest.mark.asyncio
    async def test_require_missing(self, open_tx, tenant_a) -> None:
        async with await open_tx(tenant_a) as tx:
            with pytest.raises(RunNotFound) as exc_info:
                await ReportingRunRepository(tx.session, tenant_a).require("nope")
        assert exc_info.value.run_id == "nope"

    @pytest.mark.asyncio
    async def test_supersede_soft_deletes_stage_rows(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {}}, {"data": {}}])

        async with await open_tx(tenant_a) as tx:
            run = await ReportingRunRepository(tx.session, tenant_a).supersede(RUN)
        assert run.status == "SUPERSEDED"
        assert run.superseded_at is not None

        async with await open_tx(tenant_a) as tx:
            assert await StageRowRepository(tx.session, tenant_a).list_active(RUN) == []


class TestStageRowRepository:
    @pytest.mark.asyncio
    async def test_list_active_orders_by_row_number(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN)
        async with await open_tx(tenant_a) as tx:
            repo = StageRowRepository(tx.session, tenant_a)
            await repo.add_many(RUN, [{"row_no": 3, "data": {}}, {"row_no": 1, "data": {}}, {"row_no": 2, "data": {}}])
            rows = await repo.list_active(RUN)
        assert [row.row_no for row in rows] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_list_active_without_excluded(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN, stage_rows=[{"data": {}, "excluded": True}, {"data": {}}])
        async with await open_tx(tenant_a) as tx:
            rows = await StageRowRepository(tx.session, tenant_a).list_active(RUN, include_excluded=False)
        assert [row.row_no for row in rows] == [2]


class TestSbiUploadRepository:
    @pytest.mark.asyncio
    async def test_latest_and_latest_applied(self, seed_run, open_tx, tenant_a) -> None:
        await seed_run(tenant_a, RUN)
        async with await open_tx(tenant_a) as tx:
            repo = SbiUploadRepository(tx.session, tenant_a)
            assert await repo.get_latest(RUN) is None
            await _add_upload(repo, "APPLIED", "first.csv")
            warned = await _add_upload(repo, "APPLIED_WITH_WARNINGS", "second.csv")
            blocked = await _add_upload(repo, "BLOCKED", "third.csv")

            latest = await repo.get_latest(RUN)
            latest_applied = await repo.get_latest_applied(RUN)
            history = await repo.list_for_run(RUN)

        assert latest.id == blocked.id
        assert latest_applied.id == warned.id
        assert [upload.file_name for upload in history] == ["third.csv", "second.csv", "first.csv"]
