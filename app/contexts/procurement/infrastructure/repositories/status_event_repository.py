from __future__ import annotations

from app.domain.contracts import StatusEvent
from app.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    entity = "status_event"

    def add_event(
        self,
        db,
        *,
        request_key: str,
        from_status: str | None,
        to_status: str,
        reason: str,
        actor_role: str | None = None,
    ) -> None:
        with self.storage_errors("add", request_key=request_key):
            db.execute(
                """
                INSERT INTO status_events (request_key, from_status, to_status, reason, actor_role)
                VALUES (?, ?, ?, ?, ?)
                """,
                (request_key, from_status, to_status, reason, actor_role),
            )

    def list_for_request(self, db, request_key: str, *, limit: int = 120) -> list[StatusEvent]:
        with self.storage_errors("list", request_key=request_key):
            rows = db.execute(
                """
                SELECT request_key, from_status, to_status, reason, actor_role, occurred_at
                FROM status_events
                WHERE request_key = ?
                ORDER BY id ASC
                LIMIT ?
                """,
                (request_key, int(limit)),
            ).fetchall()
        return [
            StatusEvent(
                request_key=row["request_key"],
                from_status=row["from_status"],
                to_status=row["to_status"],
                reason=row["reason"],
                actor_role=row["actor_role"],
                occurred_at=self.format_timestamp(row["occurred_at"]),
            )
            for row in rows
        ]
