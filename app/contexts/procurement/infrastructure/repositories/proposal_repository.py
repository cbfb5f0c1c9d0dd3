from __future__ import annotations

from decimal import Decimal

from app.domain.contracts import ProposalSubmission
from app.infrastructure.repositories.base import BaseRepository


class ProposalRepository(BaseRepository):
    entity = "negotiation_proposal"

    def list_for_request(self, db, request_key: str) -> list[ProposalSubmission]:
        with self.storage_errors("list", request_key=request_key):
            rows = db.execute(
                """
                SELECT request_key, slot, proposal_number, license_count, unit_cost, total_cost, comment, submitted_at
                FROM negotiation_proposals
                WHERE request_key = ?
                ORDER BY proposal_number ASC
                """,
                (request_key,),
            ).fetchall()
        return [
            ProposalSubmission(
                request_key=row["request_key"],
                slot=row["slot"],
                license_count=Decimal(str(row["license_count"])),
                unit_cost=Decimal(str(row["unit_cost"])),
                total_cost=Decimal(str(row["total_cost"])),
                comment=row["comment"] or "",
                submitted_at=self.parse_timestamp(row["submitted_at"]),
                proposal_number=int(row["proposal_number"]),
            )
            for row in rows
        ]

    def add(self, db, submission: ProposalSubmission) -> None:
        # UNIQUE (request_key, slot) rejects a second writer for the same slot.
        with self.storage_errors("add", request_key=submission.request_key, slot=submission.slot):
            db.execute(
                """
                INSERT INTO negotiation_proposals (
                    request_key, slot, proposal_number, license_count, unit_cost, total_cost, comment, submitted_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission.request_key,
                    submission.slot,
                    submission.proposal_number,
                    str(submission.license_count),
                    str(submission.unit_cost),
                    str(submission.total_cost),
                    submission.comment,
                    submission.submitted_at.isoformat(),
                ),
            )
