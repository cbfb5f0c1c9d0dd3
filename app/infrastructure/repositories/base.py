from __future__ import annotations

import contextlib
import sqlite3
from datetime import datetime, timezone
from typing import Any

try:
    import psycopg2
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from app.errors import ConcurrentModificationError, PersistenceError


_INTEGRITY_ERRORS: tuple[type[BaseException], ...] = (sqlite3.IntegrityError,)
_STORAGE_ERRORS: tuple[type[BaseException], ...] = (sqlite3.OperationalError, sqlite3.DatabaseError)
if psycopg2 is not None:
    _INTEGRITY_ERRORS = (*_INTEGRITY_ERRORS, psycopg2.IntegrityError)
    _STORAGE_ERRORS = (*_STORAGE_ERRORS, psycopg2.OperationalError, psycopg2.DatabaseError)


class BaseRepository:
    """Shared helpers for repositories that talk to ``app.db.Database``.

    Driver exceptions never leave a repository: unique-key clashes become
    ``ConcurrentModificationError`` and any other storage failure becomes
    ``PersistenceError``. Both are retryable.
    """

    entity = "record"

    @contextlib.contextmanager
    def storage_errors(self, operation: str, **context: Any):
        try:
            yield
        except _INTEGRITY_ERRORS as exc:
            raise ConcurrentModificationError(
                details=f"{self.entity} {operation} conflicted: {exc}",
                payload={key: value for key, value in context.items() if value is not None},
            ) from exc
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(
                details=f"{self.entity} {operation} failed: {exc}",
                payload={key: value for key, value in context.items() if value is not None},
            ) from exc

    @staticmethod
    def parse_timestamp(raw_value: Any) -> datetime:
        if isinstance(raw_value, datetime):
            parsed = raw_value
        else:
            text = str(raw_value or "").strip().replace("Z", "+00:00")
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                raise PersistenceError(
                    critical=True,
                    details=f"unreadable stored timestamp {raw_value!r}",
                ) from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @staticmethod
    def format_timestamp(raw_value: Any) -> str | None:
        if raw_value is None:
            return None
        if isinstance(raw_value, datetime):
            return raw_value.isoformat()
        return str(raw_value)
