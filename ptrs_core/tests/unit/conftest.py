"""Shared fixtures for the compliance core unit tests.

Every database-backed test gets a fresh in-memory SQLite engine with the
ORM tables created.  SQLite has no row-level security, so these tests
exercise the repository-level ``tenant_id`` filtering; the RLS binding
itself is covered with mocked PostgreSQL sessions.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

import pytest
import pytest_asyncio
from ptrs_core.state.database import TenantTransaction, begin_tenant_transaction
from ptrs_core.state.repository import ReportingRunRepository, StageRowRepository, TransactionRecordRepository
from ptrs_core.state.sqlite_adapter import create_local_tables, get_local_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

TENANT_A = "tenantAAAA"
TENANT_B = "tenantBBBB"

SMALL = "Small business for payment times reporting"
NOT_SMALL = "Not a small business for payment times reporting"
INVALID = "The ABN is not recognised as a valid ABN"


@pytest.fixture()
def tenant_a() -> str:
    return TENANT_A


@pytest.fixture()
def tenant_b() -> str:
    return TENANT_B


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory SQLite engine with every compliance table created."""
    engine = get_local_engine(":memory:")
    await create_local_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
def open_tx(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[str], Awaitable[TenantTransaction]]:
    """Return ``open_tx(tenant_id)`` which begins a tenant transaction."""

    async def _open(tenant_id: str) -> TenantTransaction:
        return await begin_tenant_transaction(session_factory, tenant_id)

    return _open


@pytest.fixture()
def seed_run(
    open_tx: Callable[[str], Awaitable[TenantTransaction]],
) -> Callable[..., Awaitable[None]]:
    """Return ``seed_run(tenant_id, run_id, records=..., stage_rows=...)``.

    Creates the run and its rows in one committed transaction.
    ``stage_rows`` entries that omit ``row_no`` are numbered from 1.
    """

    async def _seed(
        tenant_id: str,
        run_id: str,
        *,
        records: Iterable[dict[str, Any]] = (),
        stage_rows: Iterable[dict[str, Any]] = (),
    ) -> None:
        async with await open_tx(tenant_id) as tx:
            await ReportingRunRepository(tx.session, tenant_id).create(run_id, label=f"Run {run_id}")
            await TransactionRecordRepository(tx.session, tenant_id).add_many(run_id, records)
            await StageRowRepository(tx.session, tenant_id).add_many(
                run_id,
                ({"row_no": idx, **row} for idx, row in enumerate(stage_rows, start=1)),
            )

    return _seed


def sbi_csv(*rows: tuple[str, str], header: str = "Year,ABN,Outcome") -> bytes:
    """Build SBI results file bytes from ``(abn, outcome)`` pairs."""
    lines = [header]
    lines.extend(f'2025,{abn},"{outcome}"' for abn, outcome in rows)
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture()
def make_sbi_csv() -> Callable[..., bytes]:
    return sbi_csv
