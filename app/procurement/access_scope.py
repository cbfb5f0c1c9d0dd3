from __future__ import annotations

from typing import Iterable, List

from app.domain.contracts import Principal, PurchaseRequest
from app.procurement.permissions import (
    ADMIN,
    APPROVER,
    REQUESTER,
    SUPER_ADMIN,
    can_view_all_departments,
    normalize_role,
)


GLOBAL_SCOPE_ROLES = frozenset({SUPER_ADMIN, ADMIN, APPROVER})


def _is_unscoped(value: str | None) -> bool:
    return value is None or value == ""


def can_access(principal: Principal | None, resource_org: str | None, resource_dept: str | None) -> bool:
    """Return True when ``principal`` may see or act on a resource in the given scope.

    Organization takes no part in the REQUESTER comparison; department names
    are matched exactly (case-sensitive). A resource with no department is
    visible to every known role.
    """
    if principal is None:
        return False
    role = normalize_role(principal.role)
    if not role:
        return False
    if role in GLOBAL_SCOPE_ROLES and can_view_all_departments(role):
        return True
    if role == REQUESTER:
        if _is_unscoped(resource_dept):
            return True
        return resource_dept == principal.department_name
    return False


def can_access_request(principal: Principal | None, request: PurchaseRequest) -> bool:
    return can_access(principal, request.organization, request.department)


def filter_accessible(principal: Principal | None, requests: Iterable[PurchaseRequest]) -> List[PurchaseRequest]:
    return [item for item in requests if can_access_request(principal, item)]
