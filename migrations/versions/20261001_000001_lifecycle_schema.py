"""Procurement lifecycle schema: requests, proposals, finalizations, status events.

Revision ID: 20261001_000001
Revises:
Create Date: 2026-10-01 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from app.db import LIFECYCLE_TABLES, _convert_qmark_to_pg, _init_db_postgres, _init_db_sqlite


# revision identifiers, used by Alembic.
revision: str = "20261001_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


class _AlembicDbAdapter:
    """Exposes the small ``Database.execute`` surface the schema builders use."""

    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return self._connection.exec_driver_sql(sql)
        statement = _convert_qmark_to_pg(sql) if self.backend == "postgres" else sql
        return self._connection.exec_driver_sql(statement, tuple(params))


def _resolve_backend(connection: Connection) -> str:
    dialect = (connection.dialect.name or "").lower()
    if dialect.startswith("postgres"):
        return "postgres"
    return "sqlite"


def upgrade() -> None:
    connection = op.get_bind()
    backend = _resolve_backend(connection)
    adapter = _AlembicDbAdapter(connection, backend)

    if backend == "postgres":
        _init_db_postgres(adapter)
        return

    _init_db_sqlite(adapter)


def downgrade() -> None:
    connection = op.get_bind()
    backend = _resolve_backend(connection)

    if backend == "postgres":
        op.execute("DROP FUNCTION IF EXISTS set_updated_at() CASCADE")

    for table in LIFECYCLE_TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
