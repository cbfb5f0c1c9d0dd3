from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List


@dataclass(frozen=True)
class Principal:
    role: str
    organization_id: int | None = None
    department_id: int | None = None
    department_name: str | None = None


@dataclass(frozen=True)
class ResourceScope:
    organization: str | None = None
    department: str | None = None


@dataclass(frozen=True)
class PurchaseRequest:
    key: str
    status: str
    organization: str | None = None
    department: str | None = None
    fields: Dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def scope(self) -> ResourceScope:
        return ResourceScope(organization=self.organization, department=self.department)

    def with_status(self, status: str) -> "PurchaseRequest":
        return replace(self, status=status)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status,
            "organization": self.organization,
            "department": self.department,
            "fields": dict(self.fields),
            "version": self.version,
        }


@dataclass(frozen=True)
class Transition:
    id: str
    name: str
    target_status: str
    color_category: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "to": {
                "name": self.target_status,
                "status_category": {"color_name": self.color_category},
            },
        }


@dataclass(frozen=True)
class ProposalSubmission:
    request_key: str
    slot: str
    license_count: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    comment: str
    submitted_at: datetime
    proposal_number: int

    @property
    def is_final(self) -> bool:
        return self.slot == "final"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_key": self.request_key,
            "slot": self.slot,
            "proposal_number": self.proposal_number,
            "license_count": str(self.license_count),
            "unit_cost": str(self.unit_cost),
            "total_cost": str(self.total_cost),
            "comment": self.comment,
            "submitted_at": self.submitted_at.isoformat(),
            "final": self.is_final,
        }


@dataclass(frozen=True)
class ProposalInput:
    slot: str
    license_count: Any
    unit_cost: Any
    comment: str = ""


@dataclass(frozen=True)
class FinalizationRecord:
    request_key: str
    license_count: Decimal
    optimized_cost: Decimal
    finalized_at: datetime
    replayed: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_key": self.request_key,
            "license_count": str(self.license_count),
            "optimized_cost": str(self.optimized_cost),
            "finalized_at": self.finalized_at.isoformat(),
            "replayed": self.replayed,
        }


@dataclass(frozen=True)
class TransitionResult:
    request: PurchaseRequest
    from_status: str
    to_status: str
    transition: Transition

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_key": self.request.key,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "transition": self.transition.to_payload(),
        }


@dataclass(frozen=True)
class PurchaseRequestCreateInput:
    key: str
    organization: str | None
    department: str | None
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusEvent:
    request_key: str
    from_status: str | None
    to_status: str
    reason: str
    actor_role: str | None = None
    occurred_at: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_key": self.request_key,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "actor_role": self.actor_role,
            "occurred_at": self.occurred_at,
        }


@dataclass(frozen=True)
class NegotiationSummary:
    request_key: str
    status: str
    submitted: Dict[str, bool]
    proposals: List[ProposalSubmission]
    optimized_cost: Decimal | None
    finalization: FinalizationRecord | None = None

    @property
    def final_submitted(self) -> bool:
        return bool(self.submitted.get("final"))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_key": self.request_key,
            "status": self.status,
            "submitted": dict(self.submitted),
            "proposals": [proposal.to_payload() for proposal in self.proposals],
            "final_submitted": self.final_submitted,
            "optimized_cost": None if self.optimized_cost is None else str(self.optimized_cost),
            "finalized": self.finalization is not None,
            "finalization": self.finalization.to_payload() if self.finalization else None,
        }
