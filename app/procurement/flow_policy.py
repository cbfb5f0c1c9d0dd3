from __future__ import annotations

from typing import Dict, List, Tuple

from app.domain.contracts import Principal, PurchaseRequest, ResourceScope, Transition
from app.errors import ForbiddenError
from app.procurement.access_scope import can_access
from app.procurement.permissions import ADMIN, APPROVER, SUPER_ADMIN, normalize_role


REQUEST_CREATED = "Request Created"
PRE_APPROVAL = "Pre-Approval"
REQUEST_REVIEW = "Request Review Stage"
NEGOTIATION = "Negotiation Stage"
POST_APPROVAL = "Post Approval"
COMPLETED = "Completed"
DECLINED = "Declined"

STATUSES: Tuple[str, ...] = (
    REQUEST_CREATED,
    PRE_APPROVAL,
    REQUEST_REVIEW,
    NEGOTIATION,
    POST_APPROVAL,
    COMPLETED,
    DECLINED,
)
TERMINAL_STATUSES = frozenset({COMPLETED, DECLINED})

APPROVE = "Approve"
DECLINE = "Decline"


STATUS_KEYS: Dict[str, str] = {
    REQUEST_CREATED: "request_created",
    PRE_APPROVAL: "pre_approval",
    REQUEST_REVIEW: "request_review",
    NEGOTIATION: "negotiation",
    POST_APPROVAL: "post_approval",
    COMPLETED: "completed",
    DECLINED: "declined",
}


STATUS_COLORS: Dict[str, str] = {
    REQUEST_CREATED: "blue-gray",
    PRE_APPROVAL: "yellow",
    REQUEST_REVIEW: "yellow",
    NEGOTIATION: "yellow",
    POST_APPROVAL: "blue",
    COMPLETED: "green",
    DECLINED: "warm-red",
}


# Ordered: Approve first, Decline second.
TRANSITION_TABLE: Dict[str, List[Tuple[str, str]]] = {
    REQUEST_CREATED: [(APPROVE, PRE_APPROVAL), (DECLINE, DECLINED)],
    PRE_APPROVAL: [(APPROVE, REQUEST_REVIEW), (DECLINE, DECLINED)],
    REQUEST_REVIEW: [(APPROVE, NEGOTIATION), (DECLINE, DECLINED)],
    NEGOTIATION: [(APPROVE, POST_APPROVAL), (DECLINE, DECLINED)],
    POST_APPROVAL: [(APPROVE, COMPLETED), (DECLINE, DECLINED)],
    COMPLETED: [],
    DECLINED: [],
}


# Negotiation Stage is additionally gated by the negotiation workflow.
ROLE_GATE: Dict[str, frozenset] = {
    REQUEST_CREATED: frozenset({APPROVER, ADMIN, SUPER_ADMIN}),
    PRE_APPROVAL: frozenset({ADMIN, SUPER_ADMIN}),
    REQUEST_REVIEW: frozenset({ADMIN, SUPER_ADMIN}),
    NEGOTIATION: frozenset({SUPER_ADMIN}),
    POST_APPROVAL: frozenset({APPROVER, ADMIN, SUPER_ADMIN}),
    COMPLETED: frozenset(),
    DECLINED: frozenset(),
}


def transition_id(status: str, name: str) -> str:
    return f"{STATUS_KEYS[status]}.{name.lower()}"


def _build_transitions() -> Dict[str, Tuple[Transition, ...]]:
    built: Dict[str, Tuple[Transition, ...]] = {}
    for status, entries in TRANSITION_TABLE.items():
        built[status] = tuple(
            Transition(
                id=transition_id(status, name),
                name=name,
                target_status=target,
                color_category=STATUS_COLORS[target],
            )
            for name, target in entries
        )
    return built


_TRANSITIONS = _build_transitions()


def is_known_status(status: str | None) -> bool:
    return status in TRANSITION_TABLE


def is_terminal(status: str | None) -> bool:
    return status in TERMINAL_STATUSES


def transitions_for_status(status: str | None) -> Tuple[Transition, ...]:
    return _TRANSITIONS.get(str(status or ""), ())


def role_may_transition(status: str | None, role: str | None) -> bool:
    normalized = normalize_role(role)
    if not normalized:
        return False
    return normalized in ROLE_GATE.get(str(status or ""), frozenset())


def available_transitions(
    status: str | None,
    principal: Principal | None,
    resource_scope: ResourceScope | None = None,
) -> List[Transition]:
    if principal is None or not is_known_status(status) or is_terminal(status):
        return []
    role = normalize_role(principal.role)
    if role != SUPER_ADMIN:
        scope = resource_scope or ResourceScope()
        if not can_access(principal, scope.organization, scope.department):
            return []
    if not role_may_transition(status, role):
        return []
    return list(transitions_for_status(status))


def find_transition(
    status: str | None,
    principal: Principal | None,
    resource_scope: ResourceScope | None,
    requested_id: str | None,
) -> Transition | None:
    wanted = str(requested_id or "").strip()
    if not wanted:
        return None
    for transition in available_transitions(status, principal, resource_scope):
        if transition.id == wanted:
            return transition
    return None


def require_transition(request: PurchaseRequest, requested_id: str | None, principal: Principal | None) -> Transition:
    """Return the legal transition with ``requested_id`` or raise ``ForbiddenError``."""
    transition = find_transition(request.status, principal, request.scope, requested_id)
    if transition is None:
        raise ForbiddenError(
            details=f"transition {requested_id!r} not available from {request.status!r}",
            payload={
                "request_key": request.key,
                "status": request.status,
                "transition_id": requested_id,
                "available_transitions": [
                    item.id for item in available_transitions(request.status, principal, request.scope)
                ],
            },
        )
    return transition


def apply_transition(request: PurchaseRequest, requested_id: str | None, principal: Principal | None) -> PurchaseRequest:
    transition = require_transition(request, requested_id, principal)
    return request.with_status(transition.target_status)


def status_meta(status: str | None) -> Dict[str, object]:
    name = str(status or "")
    return {
        "status": name,
        "key": STATUS_KEYS.get(name),
        "terminal": is_terminal(name),
        "color_category": STATUS_COLORS.get(name),
        "transitions": [
            {"id": item.id, "name": item.name, "target_status": item.target_status}
            for item in transitions_for_status(name)
        ],
        "roles": sorted(ROLE_GATE.get(name, frozenset())),
    }


def frontend_bundle() -> Dict[str, object]:
    return {
        "statuses": list(STATUSES),
        "terminal_statuses": sorted(TERMINAL_STATUSES),
        "colors": dict(STATUS_COLORS),
        "policy": {status: status_meta(status) for status in STATUSES},
    }
