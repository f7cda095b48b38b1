"""Enable Row-Level Security on all tenant-scoped compliance tables.

Every table receives a ``USING`` and ``WITH CHECK`` clause tied to
``current_setting(<tenant_setting_name>, true)``, where the name is the
``PTRS_TENANT_SETTING_NAME`` value in effect when the migration runs
(``app.current_tenant_id`` by default).  The tenant value is bound per
transaction by ``begin_tenant_transaction`` via ``set_config(..., true)``
under the same setting, so the application and the migration must see the
same environment.

The ``true`` parameter to ``current_setting`` returns NULL when the
variable is unset, so unbound sessions see zero rows rather than raising.
``FORCE ROW LEVEL SECURITY`` makes the policies apply to the table owner
as well.

Revision ID: 002
Revises: 001
Create Date: 2026-02-10 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op

from ptrs_core.config import load_settings

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TENANT_TABLES: list[str] = [
    "ptrs_runs",
    "ptrs_transaction_records",
    "ptrs_stage_rows",
    "ptrs_sbi_uploads",
    "ptrs_sbi_results",
    "ptrs_sbi_row_changes",
]


def _tenant_setting() -> str:
    # The settings validator limits this to namespace.name with word characters.
    return load_settings().tenant_setting_name


def upgrade() -> None:
    setting = _tenant_setting()
    for table in _TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        policy_name = f"tenant_isolation_{table}"
        op.execute(
            f"CREATE POLICY {policy_name} ON {table} "
            f"USING (tenant_id = current_setting('{setting}', true)) "
            f"WITH CHECK (tenant_id = current_setting('{setting}', true))"
        )


def downgrade() -> None:
    for table in reversed(_TENANT_TABLES):
        policy_name = f"tenant_isolation_{table}"
        op.execute(f"DROP POLICY IF EXISTS {policy_name} ON {table}")
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
