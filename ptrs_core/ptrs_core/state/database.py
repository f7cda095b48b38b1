"""Async SQLAlchemy engine, session factory and tenant-bound transactions.

Supports both PostgreSQL (production) and SQLite (local dev and tests).
Engine type is determined by the database URL scheme:
  - ``postgresql+asyncpg://`` → connection-pooled PostgreSQL engine
  - ``sqlite+aiosqlite://``   → single-connection SQLite engine

Every data access in the compliance core runs inside a
:class:`TenantTransaction`.  The tenant token is bound with
``set_config(..., true)`` so the binding is scoped to the transaction and
is discarded on commit or rollback; a pooled connection can never carry
one tenant's binding into the next caller's work.
"""

from __future__ import annotations

import logging
import re
from types import TracebackType
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ptrs_core.config import DEFAULT_TENANT_SETTING
from ptrs_core.errors import InvalidTenantId, TenantContextSetupFailed

logger = logging.getLogger(__name__)

# Tenant tokens are fixed-length opaque identifiers.
_TENANT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{10}$")

# Cache of async_sessionmaker instances keyed by engine identity to avoid
# re-creating the factory on every request.
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Parameters
    ----------
    database_url:
        Connection string (PostgreSQL or SQLite scheme).
    pool_size:
        Number of persistent connections for PostgreSQL (ignored for SQLite).
    max_overflow:
        Maximum overflow connections for PostgreSQL (ignored for SQLite).

    Returns
    -------
    AsyncEngine
        A configured async engine ready for session creation.
    """
    if database_url.startswith("sqlite"):
        from ptrs_core.state.sqlite_adapter import get_local_engine

        # Extract path from URL: sqlite+aiosqlite:///path/to/db
        db_path = database_url.split("///", 1)[-1] if "///" in database_url else ":memory:"
        return get_local_engine(db_path if db_path else ":memory:")

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        echo=False,
        connect_args={
            "server_settings": {
                "statement_timeout": "30000",  # 30 s
                "lock_timeout": "10000",  # 10 s
            }
        },
    )
    logger.info(
        "Created async engine pool_size=%d max_overflow=%d",
        pool_size,
        max_overflow,
    )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return the cached session factory for *engine*."""
    engine_key = id(engine)
    factory = _session_factories.get(engine_key)
    if factory is None:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _session_factories[engine_key] = factory
    return factory


def validate_tenant_id(tenant_id: Any) -> str:
    """Return *tenant_id* unchanged if it is a well-formed tenant token.

    Raises
    ------
    InvalidTenantId
        For ``None``, non-string values, or anything not matching
        ``^[A-Za-z0-9_-]{10}$``.
    """
    if not isinstance(tenant_id, str) or not _TENANT_ID_RE.match(tenant_id):
        raise InvalidTenantId(f"Invalid tenant id: expected 10 characters of [A-Za-z0-9_-], got {tenant_id!r}")
    return tenant_id


def dialect_name(session: AsyncSession) -> str:
    """Best-effort name of the dialect behind *session* (``""`` if unknown)."""
    bind = session.get_bind()
    dialect = getattr(bind, "dialect", None)
    if dialect is not None:
        return str(getattr(dialect, "name", ""))
    return str(getattr(bind, "url", ""))


def _is_sqlite(session: AsyncSession) -> bool:
    return "sqlite" in dialect_name(session)


# ---------------------------------------------------------------------------
# Tenant transaction
# ---------------------------------------------------------------------------


class TenantTransaction:
    """An open database transaction whose tenant binding is confirmed.

    Instances are only produced by :func:`begin_tenant_transaction`.  The
    caller owns the transaction: it must call :meth:`commit` or
    :meth:`rollback` (or use ``async with``) and then :meth:`close`.
    Rolling back a transaction that already finished is a no-op.
    """

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._finished = False

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def is_active(self) -> bool:
        return not self._finished

    async def commit(self) -> None:
        if self._finished:
            raise RuntimeError("Transaction already finished")
        try:
            await self._session.commit()
        except Exception:
            await self.rollback()
            raise
        self._finished = True

    async def rollback(self) -> None:
        if self._finished:
            return
        self._finished = True
        await self._session.rollback()
        logger.debug("Rolled back transaction for tenant=%s", self._tenant_id)

    async def close(self) -> None:
        await self.rollback()
        await self._session.close()

    async def __aenter__(self) -> TenantTransaction:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self._session.close()

    def __repr__(self) -> str:
        state = "active" if self.is_active else "finished"
        return f"<TenantTransaction tenant={self._tenant_id} {state}>"


async def begin_tenant_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    *,
    tenant_setting_name: str = DEFAULT_TENANT_SETTING,
) -> TenantTransaction:
    """Open a transaction and bind *tenant_id* for row-level security.

    The tenant token is validated before any database call.  The binding is
    issued with ``set_config(name, value, true)`` so it is local to the
    transaction.  On SQLite (no RLS) the directive is skipped.

    Parameters
    ----------
    session_factory:
        Factory producing fresh :class:`AsyncSession` objects.
    tenant_id:
        The 10-character tenant token.
    tenant_setting_name:
        The PostgreSQL setting read by the RLS policies.

    Raises
    ------
    InvalidTenantId
        If *tenant_id* is malformed.  No session is opened.
    TenantContextSetupFailed
        If the transaction could not be opened or the binding failed.  The
        transaction has already been rolled back.
    """
    tenant_id = validate_tenant_id(tenant_id)

    session = session_factory()
    try:
        await session.begin()
        if not _is_sqlite(session):
            # Bound parameters keep the value out of the SQL string.
            await session.execute(
                text("SELECT set_config(:name, :tid, true)"),
                {"name": tenant_setting_name, "tid": tenant_id},
            )
    except Exception as exc:
        logger.warning("Tenant context setup failed for tenant=%s: %s", tenant_id, exc)
        try:
            await session.rollback()
        finally:
            await session.close()
        raise TenantContextSetupFailed(f"Could not bind tenant context for tenant {tenant_id!r}") from exc

    logger.debug("Bound tenant context tenant=%s", tenant_id)
    return TenantTransaction(session, tenant_id)


async def acquire_run_lock(tx: TenantTransaction, run_id: str) -> None:
    """Serialise writers on one ``(tenant, run)`` pair.

    Takes a transaction-scoped PostgreSQL advisory lock which is released
    automatically at commit or rollback.  No-op on SQLite, which already
    serialises writers at the database level.
    """
    if _is_sqlite(tx.session):
        return
    await tx.session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": f"{tx.tenant_id}:{run_id}"},
    )
    logger.debug("Acquired run lock tenant=%s run=%s", tx.tenant_id, run_id)
