from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List


SUPER_ADMIN = "SUPER_ADMIN"
ADMIN = "ADMIN"
APPROVER = "APPROVER"
REQUESTER = "REQUESTER"

ROLES: tuple[str, ...] = (SUPER_ADMIN, ADMIN, APPROVER, REQUESTER)


VIEW_USERS = "VIEW_USERS"
CREATE_USER = "CREATE_USER"
EDIT_USER = "EDIT_USER"
DELETE_USER = "DELETE_USER"
VIEW_ISSUES = "VIEW_ISSUES"
CREATE_ISSUE = "CREATE_ISSUE"
EDIT_ISSUE = "EDIT_ISSUE"
DELETE_ISSUE = "DELETE_ISSUE"
TRANSITION_ISSUE = "TRANSITION_ISSUE"
VIEW_DEPARTMENT_ISSUES = "VIEW_DEPARTMENT_ISSUES"
VIEW_DASHBOARD = "VIEW_DASHBOARD"
VIEW_REPORTS = "VIEW_REPORTS"
VIEW_VENDORS = "VIEW_VENDORS"
CREATE_VENDOR = "CREATE_VENDOR"
EDIT_VENDOR = "EDIT_VENDOR"
DELETE_VENDOR = "DELETE_VENDOR"
VIEW_PROCUREMENT_RENEWAL = "VIEW_PROCUREMENT_RENEWAL"
VIEW_CONTRACTS = "VIEW_CONTRACTS"
CREATE_CONTRACT = "CREATE_CONTRACT"
EDIT_CONTRACT = "EDIT_CONTRACT"
DELETE_CONTRACT = "DELETE_CONTRACT"
SEND_INVITATIONS = "SEND_INVITATIONS"
VIEW_INVITATIONS = "VIEW_INVITATIONS"
DELETE_INVITATIONS = "DELETE_INVITATIONS"
MANAGE_ORGANIZATIONS = "MANAGE_ORGANIZATIONS"

PERMISSIONS: tuple[str, ...] = (
    VIEW_USERS,
    CREATE_USER,
    EDIT_USER,
    DELETE_USER,
    VIEW_ISSUES,
    CREATE_ISSUE,
    EDIT_ISSUE,
    DELETE_ISSUE,
    TRANSITION_ISSUE,
    VIEW_DEPARTMENT_ISSUES,
    VIEW_DASHBOARD,
    VIEW_REPORTS,
    VIEW_VENDORS,
    CREATE_VENDOR,
    EDIT_VENDOR,
    DELETE_VENDOR,
    VIEW_PROCUREMENT_RENEWAL,
    VIEW_CONTRACTS,
    CREATE_CONTRACT,
    EDIT_CONTRACT,
    DELETE_CONTRACT,
    SEND_INVITATIONS,
    VIEW_INVITATIONS,
    DELETE_INVITATIONS,
    MANAGE_ORGANIZATIONS,
)


ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    SUPER_ADMIN: frozenset(PERMISSIONS),
    ADMIN: frozenset(permission for permission in PERMISSIONS if permission != MANAGE_ORGANIZATIONS),
    APPROVER: frozenset(
        {
            VIEW_USERS,
            VIEW_ISSUES,
            CREATE_ISSUE,
            EDIT_ISSUE,
            DELETE_ISSUE,
            TRANSITION_ISSUE,
            VIEW_DEPARTMENT_ISSUES,
            VIEW_DASHBOARD,
            VIEW_REPORTS,
        }
    ),
    REQUESTER: frozenset({VIEW_ISSUES, VIEW_DEPARTMENT_ISSUES}),
}


# Roles flagged False are limited to their own department (see access_scope).
DEPARTMENT_ACCESS: Dict[str, Dict[str, bool]] = {
    SUPER_ADMIN: {"can_view_all_departments": True},
    ADMIN: {"can_view_all_departments": True},
    APPROVER: {"can_view_all_departments": True},
    REQUESTER: {"can_view_all_departments": False},
}


_NO_PERMISSIONS: FrozenSet[str] = frozenset()


def normalize_role(role: str | None) -> str:
    normalized = str(role or "").strip().upper()
    if normalized in ROLE_PERMISSIONS:
        return normalized
    return ""


def permissions_for(role: str | None) -> FrozenSet[str]:
    return ROLE_PERMISSIONS.get(normalize_role(role), _NO_PERMISSIONS)


def has_permission(role: str | None, permission: str) -> bool:
    return permission in permissions_for(role)


def has_any_permission(role: str | None, permissions: Iterable[str]) -> bool:
    granted = permissions_for(role)
    return any(permission in granted for permission in permissions)


def has_all_permissions(role: str | None, permissions: Iterable[str]) -> bool:
    granted = permissions_for(role)
    return all(permission in granted for permission in permissions)


def can_view_all_departments(role: str | None) -> bool:
    rule = DEPARTMENT_ACCESS.get(normalize_role(role))
    if not rule:
        return False
    return bool(rule.get("can_view_all_departments"))


def permission_bundle(role: str | None) -> Dict[str, object]:
    normalized = normalize_role(role)
    granted: List[str] = sorted(permissions_for(normalized))
    return {
        "role": normalized or None,
        "permissions": granted,
        "can_view_all_departments": can_view_all_departments(normalized),
    }
