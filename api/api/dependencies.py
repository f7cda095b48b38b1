"""FastAPI dependency injection for settings, tenant transactions, and audit."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from ptrs_core.audit import AuditSink, LoggingAuditSink
from ptrs_core.config import Settings, load_settings
from ptrs_core.state.database import TenantTransaction, begin_tenant_transaction, get_engine
from ptrs_core.state.database import get_session_factory as _core_session_factory
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from api.config import APISettings, load_api_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None
_core_settings_cache: Settings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


def get_core_settings() -> Settings:
    """Return the cached compliance-core :class:`Settings` singleton."""
    global _core_settings_cache  # noqa: PLW0603
    if _core_settings_cache is None:
        _core_settings_cache = load_settings()
    return _core_settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]
CoreSettingsDep = Annotated[Settings, Depends(get_core_settings)]

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    _session_factory = _core_session_factory(_engine)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory."""
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session **without** a tenant binding.

    Only the health check uses this; with RLS enabled an unbound session
    sees no tenant rows at all.
    """
    session = get_session_factory()()
    try:
        yield session
    finally:
        await session.close()


async def get_tenant_transaction(
    tenant_id: str,
    core_settings: CoreSettingsDep,
) -> AsyncGenerator[TenantTransaction, None]:
    """Yield a :class:`TenantTransaction` bound to the ``{tenant_id}`` path segment.

    The path is the only tenant source.  The transaction commits when the
    endpoint returns and rolls back when it raises.
    """
    tx = await begin_tenant_transaction(
        get_session_factory(),
        tenant_id,
        tenant_setting_name=core_settings.tenant_setting_name,
    )
    try:
        yield tx
        await tx.commit()
    except Exception:
        await tx.rollback()
        raise
    finally:
        await tx.close()


PublicSessionDep = Annotated[AsyncSession, Depends(get_db_session)]
TenantTxDep = Annotated[TenantTransaction, Depends(get_tenant_transaction)]

# ---------------------------------------------------------------------------
# Request identity and audit
# ---------------------------------------------------------------------------


def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str | None:
    """Caller identity forwarded by the upstream gateway, if any."""
    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None


ActorDep = Annotated[str | None, Depends(get_actor_id)]

_audit_sink: AuditSink = LoggingAuditSink()


def get_audit_sink() -> AuditSink:
    return _audit_sink


AuditDep = Annotated[AuditSink, Depends(get_audit_sink)]
