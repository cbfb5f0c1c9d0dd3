import contextlib
import os
import sqlite3
from typing import Iterable

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from app.procurement.flow_policy import STATUSES
from app.procurement.negotiation import PROPOSAL_SLOTS


LIFECYCLE_TABLES = (
    "status_events",
    "negotiation_finalizations",
    "negotiation_proposals",
    "purchase_requests",
)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._in_transaction = False

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    @contextlib.contextmanager
    def transaction(self):
        """Commit on success, roll back on any exception. Nested calls join the outer one."""
        if self._in_transaction:
            yield self
            return
        self._in_transaction = True
        if self.backend == "postgres":
            self._conn.autocommit = False
        try:
            yield self
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            self._in_transaction = False
            if self.backend == "postgres":
                self._conn.autocommit = True

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str, timeout_seconds: int = 10) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path, connect_timeout=timeout_seconds)
        conn.autocommit = True
        return Database("postgres", conn)

    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=float(timeout_seconds))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        timeout = int(current_app.config.get("DB_CONNECT_TIMEOUT_SECONDS", 10))
        g.db = _connect_database(db_path, timeout)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)
    db.commit()


def _sql_in_list(values: Iterable[str]) -> str:
    return ",".join("'" + value.replace("'", "''") + "'" for value in values)


def _init_db_sqlite(db: Database):
    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS purchase_requests (
            key TEXT PRIMARY KEY,
            status TEXT NOT NULL DEFAULT 'Request Created' CHECK (
                status IN ({_sql_in_list(STATUSES)})
            ),
            organization TEXT,
            department TEXT,
            fields_json TEXT NOT NULL DEFAULT '{{}}',
            version INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS negotiation_proposals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_key TEXT NOT NULL REFERENCES purchase_requests(key),
            slot TEXT NOT NULL CHECK (slot IN ({_sql_in_list(PROPOSAL_SLOTS)})),
            proposal_number INTEGER NOT NULL,
            license_count TEXT NOT NULL,
            unit_cost TEXT NOT NULL,
            total_cost TEXT NOT NULL,
            comment TEXT NOT NULL DEFAULT '',
            submitted_at TEXT NOT NULL,
            UNIQUE (request_key, slot),
            UNIQUE (request_key, proposal_number)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS negotiation_finalizations (
            request_key TEXT PRIMARY KEY REFERENCES purchase_requests(key),
            license_count TEXT NOT NULL,
            optimized_cost TEXT NOT NULL,
            finalized_at TEXT NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS status_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_key TEXT NOT NULL REFERENCES purchase_requests(key),
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT NOT NULL,
            actor_role TEXT,
            occurred_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_status_events_request ON status_events (request_key, id)"
    )
    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_purchase_requests_department ON purchase_requests (department)"
    )


def _init_db_postgres(db: Database) -> None:
    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS purchase_requests (
            key TEXT PRIMARY KEY,
            status TEXT NOT NULL DEFAULT 'Request Created' CHECK (
                status IN ({_sql_in_list(STATUSES)})
            ),
            organization TEXT,
            department TEXT,
            fields_json TEXT NOT NULL DEFAULT '{{}}',
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS negotiation_proposals (
            id SERIAL PRIMARY KEY,
            request_key TEXT NOT NULL REFERENCES purchase_requests(key),
            slot TEXT NOT NULL CHECK (slot IN ({_sql_in_list(PROPOSAL_SLOTS)})),
            proposal_number INTEGER NOT NULL,
            license_count NUMERIC NOT NULL,
            unit_cost NUMERIC NOT NULL,
            total_cost NUMERIC NOT NULL,
            comment TEXT NOT NULL DEFAULT '',
            submitted_at TIMESTAMPTZ NOT NULL,
            UNIQUE (request_key, slot),
            UNIQUE (request_key, proposal_number)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS negotiation_finalizations (
            request_key TEXT PRIMARY KEY REFERENCES purchase_requests(key),
            license_count NUMERIC NOT NULL,
            optimized_cost NUMERIC NOT NULL,
            finalized_at TIMESTAMPTZ NOT NULL
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS status_events (
            id SERIAL PRIMARY KEY,
            request_key TEXT NOT NULL REFERENCES purchase_requests(key),
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT NOT NULL,
            actor_role TEXT,
            occurred_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_status_events_request ON status_events (request_key, id)"
    )
    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_purchase_requests_department ON purchase_requests (department)"
    )
    _create_postgres_updated_at_triggers(db)


def _create_postgres_updated_at_triggers(db: Database) -> None:
    db.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    db.execute(
        """
        DROP TRIGGER IF EXISTS trg_purchase_requests_updated_at ON purchase_requests;
        CREATE TRIGGER trg_purchase_requests_updated_at
        BEFORE UPDATE ON purchase_requests
        FOR EACH ROW
        EXECUTE FUNCTION set_updated_at();
        """
    )
