from __future__ import annotations

from flask import current_app, request, session

from app.domain.contracts import Principal
from app.errors import ForbiddenError, UserActionError
from app.procurement.permissions import has_permission, normalize_role


_HEADER_ROLE = "X-User-Role"
_HEADER_ORGANIZATION = "X-Organization-Id"
_HEADER_DEPARTMENT_ID = "X-Department-Id"
_HEADER_DEPARTMENT_NAME = "X-Department-Name"


def _optional_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _optional_text(value) -> str | None:
    text = str(value or "").strip()
    return text or None


def _principal_from_session() -> Principal | None:
    role = normalize_role(session.get("user_role"))
    if not role:
        return None
    return Principal(
        role=role,
        organization_id=_optional_int(session.get("organization_id")),
        department_id=_optional_int(session.get("department_id")),
        department_name=_optional_text(session.get("department_name")),
    )


def _principal_from_headers() -> Principal | None:
    role = normalize_role(request.headers.get(_HEADER_ROLE))
    if not role:
        return None
    return Principal(
        role=role,
        organization_id=_optional_int(request.headers.get(_HEADER_ORGANIZATION)),
        department_id=_optional_int(request.headers.get(_HEADER_DEPARTMENT_ID)),
        department_name=_optional_text(request.headers.get(_HEADER_DEPARTMENT_NAME)),
    )


def current_principal() -> Principal | None:
    """Resolve the caller from the session, or from headers when the app trusts them."""
    principal = _principal_from_session()
    if principal is not None:
        return principal
    if current_app.config.get("TRUST_PRINCIPAL_HEADERS"):
        return _principal_from_headers()
    return None


def require_principal() -> Principal:
    principal = current_principal()
    if principal is not None:
        return principal
    raise UserActionError(
        code="auth_required",
        message_key="principal_required",
        http_status=401,
        critical=False,
    )


def require_permission(principal: Principal, permission: str) -> Principal:
    if has_permission(principal.role, permission):
        return principal
    raise ForbiddenError(
        details=f"role {principal.role!r} lacks {permission}",
        payload={"required_permission": permission},
    )
