"""State persistence layer: tenant-bound transactions, tables and repositories."""

from ptrs_core.state.database import (
    TenantTransaction,
    acquire_run_lock,
    begin_tenant_transaction,
    get_engine,
    get_session_factory,
    validate_tenant_id,
)
from ptrs_core.state.repository import (
    ReportingRunRepository,
    SbiResultRepository,
    SbiRowChangeRepository,
    SbiUploadRepository,
    StageRowRepository,
    TransactionRecordRepository,
)

__all__ = [
    "ReportingRunRepository",
    "SbiResultRepository",
    "SbiRowChangeRepository",
    "SbiUploadRepository",
    "StageRowRepository",
    "TenantTransaction",
    "TransactionRecordRepository",
    "acquire_run_lock",
    "begin_tenant_transaction",
    "get_engine",
    "get_session_factory",
    "validate_tenant_id",
]
