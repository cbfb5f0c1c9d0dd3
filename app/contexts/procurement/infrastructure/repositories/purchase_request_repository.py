from __future__ import annotations

import json
from typing import Any

from app.domain.contracts import PurchaseRequest, PurchaseRequestCreateInput
from app.errors import ConcurrentModificationError
from app.infrastructure.repositories.base import BaseRepository
from app.procurement.flow_policy import REQUEST_CREATED


class PurchaseRequestRepository(BaseRepository):
    entity = "purchase_request"

    @staticmethod
    def _to_request(row) -> PurchaseRequest:
        data = dict(row)
        raw_fields = data.get("fields_json") or "{}"
        return PurchaseRequest(
            key=str(data["key"]),
            status=str(data["status"]),
            organization=data.get("organization"),
            department=data.get("department"),
            fields=json.loads(raw_fields) if isinstance(raw_fields, str) else dict(raw_fields),
            version=int(data.get("version") or 1),
        )

    def get(self, db, request_key: str) -> PurchaseRequest | None:
        with self.storage_errors("load", request_key=request_key):
            row = db.execute(
                """
                SELECT key, status, organization, department, fields_json, version
                FROM purchase_requests
                WHERE key = ?
                LIMIT 1
                """,
                (request_key,),
            ).fetchone()
        return self._to_request(row) if row else None

    def exists(self, db, request_key: str) -> bool:
        with self.storage_errors("lookup", request_key=request_key):
            row = db.execute("SELECT 1 FROM purchase_requests WHERE key = ? LIMIT 1", (request_key,)).fetchone()
        return row is not None

    def create(self, db, data: PurchaseRequestCreateInput) -> PurchaseRequest:
        with self.storage_errors("create", request_key=data.key):
            db.execute(
                """
                INSERT INTO purchase_requests (key, status, organization, department, fields_json, version)
                VALUES (?, ?, ?, ?, ?, 1)
                """,
                (
                    data.key,
                    REQUEST_CREATED,
                    data.organization,
                    data.department,
                    json.dumps(data.fields, sort_keys=True),
                ),
            )
        return PurchaseRequest(
            key=data.key,
            status=REQUEST_CREATED,
            organization=data.organization,
            department=data.department,
            fields=dict(data.fields),
            version=1,
        )

    def save_status(self, db, request: PurchaseRequest, new_status: str) -> PurchaseRequest:
        """Write ``new_status`` only if the row still carries ``request.version``."""
        with self.storage_errors("save_status", request_key=request.key):
            cursor = db.execute(
                """
                UPDATE purchase_requests
                SET status = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE key = ? AND version = ?
                """,
                (new_status, request.key, request.version),
            )
        if cursor.rowcount != 1:
            raise ConcurrentModificationError(
                details=f"{request.key} changed since version {request.version}",
                payload={"request_key": request.key},
            )
        return PurchaseRequest(
            key=request.key,
            status=new_status,
            organization=request.organization,
            department=request.department,
            fields=dict(request.fields),
            version=request.version + 1,
        )

    def update_fields(self, db, request: PurchaseRequest, fields: dict[str, Any]) -> PurchaseRequest:
        if not fields:
            return request
        merged = dict(request.fields)
        merged.update(fields)
        with self.storage_errors("update_fields", request_key=request.key):
            cursor = db.execute(
                """
                UPDATE purchase_requests
                SET fields_json = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE key = ? AND version = ?
                """,
                (json.dumps(merged, sort_keys=True), request.key, request.version),
            )
        if cursor.rowcount != 1:
            raise ConcurrentModificationError(
                details=f"{request.key} changed since version {request.version}",
                payload={"request_key": request.key},
            )
        return PurchaseRequest(
            key=request.key,
            status=request.status,
            organization=request.organization,
            department=request.department,
            fields=merged,
            version=request.version + 1,
        )

    def list_all(self, db, *, limit: int = 200) -> list[PurchaseRequest]:
        with self.storage_errors("list"):
            rows = db.execute(
                """
                SELECT key, status, organization, department, fields_json, version
                FROM purchase_requests
                ORDER BY created_at DESC, key ASC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
        return [self._to_request(row) for row in rows]
