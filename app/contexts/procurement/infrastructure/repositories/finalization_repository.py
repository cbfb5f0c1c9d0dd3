from __future__ import annotations

from decimal import Decimal

from app.domain.contracts import FinalizationRecord
from app.infrastructure.repositories.base import BaseRepository


class FinalizationRepository(BaseRepository):
    entity = "negotiation_finalization"

    def get(self, db, request_key: str) -> FinalizationRecord | None:
        with self.storage_errors("load", request_key=request_key):
            row = db.execute(
                """
                SELECT request_key, license_count, optimized_cost, finalized_at
                FROM negotiation_finalizations
                WHERE request_key = ?
                LIMIT 1
                """,
                (request_key,),
            ).fetchone()
        if not row:
            return None
        return FinalizationRecord(
            request_key=row["request_key"],
            license_count=Decimal(str(row["license_count"])),
            optimized_cost=Decimal(str(row["optimized_cost"])),
            finalized_at=self.parse_timestamp(row["finalized_at"]),
        )

    def add(self, db, record: FinalizationRecord) -> None:
        with self.storage_errors("add", request_key=record.request_key):
            db.execute(
                """
                INSERT INTO negotiation_finalizations (request_key, license_count, optimized_cost, finalized_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.request_key,
                    str(record.license_count),
                    str(record.optimized_cost),
                    record.finalized_at.isoformat(),
                ),
            )
