"""Repository classes providing tenant-scoped access to the compliance store.

Each repository takes an ``AsyncSession`` and the tenant token at
construction time and operates within the caller's transaction boundary.
All writes call ``session.flush()`` so that generated defaults are
populated; committing is the job of the owning
:class:`~ptrs_core.state.database.TenantTransaction`.

Row-level security already restricts visibility on PostgreSQL.  Every
query here additionally filters on ``tenant_id`` so the same guarantees
hold on SQLite, which has no RLS.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ptrs_core.errors import RunNotFound
from ptrs_core.state.tables import (
    ReportingRunTable,
    SbiResultTable,
    SbiRowChangeTable,
    SbiUploadTable,
    StageRowTable,
    TransactionRecordTable,
)

logger = logging.getLogger(__name__)

APPLIED_UPLOAD_STATUSES: tuple[str, ...] = ("APPLIED", "APPLIED_WITH_WARNINGS")


# ---------------------------------------------------------------------------
# ReportingRunRepository
# ---------------------------------------------------------------------------


class ReportingRunRepository:
    """CRUD operations for the ``ptrs_runs`` table."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def create(
        self,
        run_id: str,
        *,
        label: str | None = None,
        period_start: Any = None,
        period_end: Any = None,
        created_by: str | None = None,
    ) -> ReportingRunTable:
        """Insert a new reporting run and return the persisted row."""
        row = ReportingRunTable(
            id=run_id,
            tenant_id=self._tenant_id,
            label=label,
            period_start=period_start,
            period_end=period_end,
            status="DRAFT",
            created_by=created_by,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, run_id: str) -> ReportingRunTable | None:
        """Fetch a single run by its identifier."""
        stmt = select(ReportingRunTable).where(
            ReportingRunTable.tenant_id == self._tenant_id,
            ReportingRunTable.id == run_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def require(self, run_id: str) -> ReportingRunTable:
        """Like :meth:`get` but raises :class:`RunNotFound` when absent."""
        row = await self.get(run_id)
        if row is None:
            raise RunNotFound(run_id)
        return row

    async def supersede(self, run_id: str) -> ReportingRunTable:
        """Mark *run_id* superseded and soft-delete its stage rows.

        Transaction records are kept; their lifecycle simply ends with the
        run.
        """
        row = await self.require(run_id)
        now = datetime.now(UTC)
        row.status = "SUPERSEDED"
        row.superseded_at = now
        await StageRowRepository(self._session, self._tenant_id).soft_delete_for_run(run_id, deleted_at=now)
        await self._session.flush()
        logger.info("Superseded run tenant=%s run=%s", self._tenant_id, run_id)
        return row


# ---------------------------------------------------------------------------
# TransactionRecordRepository
# ---------------------------------------------------------------------------


class TransactionRecordRepository:
    """Access to ``ptrs_transaction_records``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def add_many(self, run_id: str, records: Iterable[dict[str, Any]]) -> list[TransactionRecordTable]:
        """Insert transaction records for *run_id*.

        Each mapping holds column values keyed by attribute name; at least
        ``record_id`` is required.
        """
        rows = [TransactionRecordTable(tenant_id=self._tenant_id, run_id=run_id, **record) for record in records]
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    async def list_qualifying(self, run_id: str) -> list[TransactionRecordTable]:
        """Reportable, non-excluded records of *run_id* in insertion order."""
        stmt = select(TransactionRecordTable).where(*self._qualifying(run_id)).order_by(TransactionRecordTable.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    def _qualifying(self, run_id: str) -> tuple[Any, ...]:
        return (
            TransactionRecordTable.tenant_id == self._tenant_id,
            TransactionRecordTable.run_id == run_id,
            TransactionRecordTable.is_reportable.is_(True),
            TransactionRecordTable.excluded_from_report.is_(False),
        )

    async def population_totals(self, run_id: str) -> dict[str, Any]:
        """Aggregate figures over the qualifying records of *run_id*.

        Returns a mapping with ``record_count``, ``total_value`` (sum of
        absolute payment amounts), ``missing_amount``, ``missing_term``,
        ``term_min``, ``term_max`` and ``term_mode``.  The mode breaks ties
        towards the shorter term.
        """
        t = TransactionRecordTable
        totals_stmt = select(
            func.count(t.id),
            func.coalesce(func.sum(func.abs(t.payment_amount, type_=t.payment_amount.type)), 0),
            func.coalesce(func.sum(case((t.payment_amount.is_(None), 1), else_=0)), 0),
            func.coalesce(func.sum(case((t.payment_term_days.is_(None), 1), else_=0)), 0),
            func.min(t.payment_term_days),
            func.max(t.payment_term_days),
        ).where(*self._qualifying(run_id))
        count, total, missing_amount, missing_term, term_min, term_max = (
            await self._session.execute(totals_stmt)
        ).one()

        term_count = func.count(t.id).label("term_count")
        mode_stmt = (
            select(t.payment_term_days, term_count)
            .where(*self._qualifying(run_id), t.payment_term_days.is_not(None))
            .group_by(t.payment_term_days)
            .order_by(term_count.desc(), t.payment_term_days)
            .limit(1)
        )
        mode_row = (await self._session.execute(mode_stmt)).first()

        return {
            "record_count": int(count),
            "total_value": total,
            "missing_amount": int(missing_amount),
            "missing_term": int(missing_term),
            "term_min": term_min,
            "term_max": term_max,
            "term_mode": mode_row[0] if mode_row else None,
        }

    async def metric_rows(self, run_id: str) -> list[tuple[str | None, Any, int | None, int | None]]:
        """``(payee_abn, payment_amount, payment_time_days, payment_term_days)`` per qualifying record."""
        t = TransactionRecordTable
        stmt = (
            select(t.payee_abn, t.payment_amount, t.payment_time_days, t.payment_term_days)
            .where(*self._qualifying(run_id))
            .order_by(t.id)
        )
        result = await self._session.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def list_for_run(self, run_id: str) -> list[TransactionRecordTable]:
        stmt = (
            select(TransactionRecordTable)
            .where(
                TransactionRecordTable.tenant_id == self._tenant_id,
                TransactionRecordTable.run_id == run_id,
            )
            .order_by(TransactionRecordTable.id)
            # Bulk UPDATE by primary key does not refresh loaded objects.
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def bulk_apply_metrics(self, updates: list[dict[str, Any]]) -> int:
        """Apply derived metric columns with one bulk UPDATE by primary key.

        Parameters
        ----------
        updates:
            One mapping per record holding ``id`` plus the derived columns.
            The ids must come from a tenant-filtered query.

        Returns
        -------
        int
            The number of records updated.
        """
        if not updates:
            return 0
        await self._session.execute(update(TransactionRecordTable), updates)
        await self._session.flush()
        return len(updates)


# ---------------------------------------------------------------------------
# StageRowRepository
# ---------------------------------------------------------------------------


class StageRowRepository:
    """Access to ``ptrs_stage_rows``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def add_many(self, run_id: str, rows: Iterable[dict[str, Any]]) -> list[StageRowTable]:
        """Insert stage rows; each mapping holds ``row_no``, ``data`` and optionally ``excluded``."""
        created = [
            StageRowTable(
                tenant_id=self._tenant_id,
                run_id=run_id,
                row_no=row["row_no"],
                data=dict(row.get("data") or {}),
                excluded=bool(row.get("excluded", False)),
            )
            for row in rows
        ]
        self._session.add_all(created)
        await self._session.flush()
        return created

    async def list_active(self, run_id: str, *, include_excluded: bool = True) -> list[StageRowTable]:
        """Non-deleted stage rows of *run_id* in ascending row-number order."""
        stmt = select(StageRowTable).where(
            StageRowTable.tenant_id == self._tenant_id,
            StageRowTable.run_id == run_id,
            StageRowTable.deleted_at.is_(None),
        )
        if not include_excluded:
            stmt = stmt.where(StageRowTable.excluded.is_(False))
        stmt = stmt.order_by(StageRowTable.row_no, StageRowTable.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_data(self, updates: Iterable[tuple[StageRowTable, dict[str, Any]]]) -> int:
        """Replace the payload of each row and flush once.

        A fresh dict is assigned so the JSON column is always marked dirty.
        """
        count = 0
        for row, data in updates:
            row.data = dict(data)
            count += 1
        if count:
            await self._session.flush()
        return count

    async def soft_delete_for_run(self, run_id: str, *, deleted_at: datetime | None = None) -> int:
        stmt = (
            update(StageRowTable)
            .where(
                StageRowTable.tenant_id == self._tenant_id,
                StageRowTable.run_id == run_id,
                StageRowTable.deleted_at.is_(None),
            )
            .values(deleted_at=deleted_at or datetime.now(UTC))
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount or 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# SbiUploadRepository
# ---------------------------------------------------------------------------


class SbiUploadRepository:
    """Append-only access to ``ptrs_sbi_uploads``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def create(
        self,
        run_id: str,
        *,
        file_name: str | None,
        file_hash: str,
        raw_row_count: int,
        parsed_abn_count: int,
        uploaded_by: str | None,
    ) -> SbiUploadTable:
        """Insert an upload in the ``APPLIED`` state."""
        row = SbiUploadTable(
            tenant_id=self._tenant_id,
            run_id=run_id,
            file_name=file_name,
            file_hash=file_hash,
            raw_row_count=raw_row_count,
            parsed_abn_count=parsed_abn_count,
            status="APPLIED",
            uploaded_by=uploaded_by,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def finalise(
        self,
        upload: SbiUploadTable,
        *,
        status: str,
        summary: dict[str, Any],
        applied_by: str | None,
    ) -> SbiUploadTable:
        """Record the rolled-up status and summary.  Called once per import."""
        upload.status = status
        upload.summary = summary
        upload.applied_by = applied_by
        await self._session.flush()
        return upload

    async def get(self, run_id: str, upload_id: int) -> SbiUploadTable | None:
        stmt = select(SbiUploadTable).where(
            SbiUploadTable.tenant_id == self._tenant_id,
            SbiUploadTable.run_id == run_id,
            SbiUploadTable.id == upload_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest(self, run_id: str) -> SbiUploadTable | None:
        """Most recent upload of any status."""
        return await self._latest(run_id, statuses=None)

    async def get_latest_applied(self, run_id: str) -> SbiUploadTable | None:
        """Most recent upload whose status is ``APPLIED`` or ``APPLIED_WITH_WARNINGS``."""
        return await self._latest(run_id, statuses=APPLIED_UPLOAD_STATUSES)

    async def list_for_run(self, run_id: str) -> list[SbiUploadTable]:
        stmt = (
            select(SbiUploadTable)
            .where(
                SbiUploadTable.tenant_id == self._tenant_id,
                SbiUploadTable.run_id == run_id,
            )
            .order_by(SbiUploadTable.created_at.desc(), SbiUploadTable.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def _latest(self, run_id: str, statuses: tuple[str, ...] | None) -> SbiUploadTable | None:
        stmt = select(SbiUploadTable).where(
            SbiUploadTable.tenant_id == self._tenant_id,
            SbiUploadTable.run_id == run_id,
        )
        if statuses is not None:
            stmt = stmt.where(SbiUploadTable.status.in_(statuses))
        stmt = stmt.order_by(SbiUploadTable.created_at.desc(), SbiUploadTable.id.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# SbiResultRepository
# ---------------------------------------------------------------------------


class SbiResultRepository:
    """Access to ``ptrs_sbi_results``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def add_many(
        self,
        run_id: str,
        sbi_upload_id: int,
        results: Iterable[dict[str, Any]],
    ) -> list[SbiResultTable]:
        """Insert one row per distinct ABN (``abn``, ``outcome``, ``year``, ``is_valid_abn``)."""
        rows = [
            SbiResultTable(
                tenant_id=self._tenant_id,
                run_id=run_id,
                sbi_upload_id=sbi_upload_id,
                abn=result["abn"],
                outcome=result.get("outcome") or "",
                year=result.get("year"),
                is_valid_abn=bool(result.get("is_valid_abn", True)),
            )
            for result in results
        ]
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    async def list_for_upload(self, run_id: str, sbi_upload_id: int) -> list[SbiResultTable]:
        stmt = (
            select(SbiResultTable)
            .where(
                SbiResultTable.tenant_id == self._tenant_id,
                SbiResultTable.run_id == run_id,
                SbiResultTable.sbi_upload_id == sbi_upload_id,
            )
            .order_by(SbiResultTable.abn)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_for_upload(self, run_id: str, sbi_upload_id: int) -> int:
        stmt = select(func.count()).select_from(SbiResultTable).where(
            SbiResultTable.tenant_id == self._tenant_id,
            SbiResultTable.run_id == run_id,
            SbiResultTable.sbi_upload_id == sbi_upload_id,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


# ---------------------------------------------------------------------------
# SbiRowChangeRepository
# ---------------------------------------------------------------------------


class SbiRowChangeRepository:
    """Write-once audit trail in ``ptrs_sbi_row_changes``."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def add_many(
        self,
        run_id: str,
        sbi_upload_id: int,
        changes: Iterable[dict[str, Any]],
    ) -> int:
        rows = [
            SbiRowChangeTable(
                tenant_id=self._tenant_id,
                run_id=run_id,
                sbi_upload_id=sbi_upload_id,
                **change,
            )
            for change in changes
        ]
        if rows:
            self._session.add_all(rows)
            await self._session.flush()
        return len(rows)

    async def list_for_upload(self, run_id: str, sbi_upload_id: int) -> list[SbiRowChangeTable]:
        stmt = (
            select(SbiRowChangeTable)
            .where(
                SbiRowChangeTable.tenant_id == self._tenant_id,
                SbiRowChangeTable.run_id == run_id,
                SbiRowChangeTable.sbi_upload_id == sbi_upload_id,
            )
            .order_by(SbiRowChangeTable.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
