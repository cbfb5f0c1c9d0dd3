from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, NamedTuple

from app.domain.contracts import PurchaseRequest
from app.errors import ValidationError


def _as_text(value: Any) -> str | None:
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def _as_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


class FieldSpec(NamedTuple):
    storage_key: str
    coerce: Callable[[Any], Any]


REQUEST_FIELD_SCHEMA: Dict[str, FieldSpec] = {
    "vendor_name": FieldSpec("vendor_name", _as_text),
    "product_name": FieldSpec("product_name", _as_text),
    "contract_type": FieldSpec("contract_type", _as_text),
    "billing_type": FieldSpec("billing_type", _as_text),
    "requester_name": FieldSpec("requester_name", _as_text),
    "requester_email": FieldSpec("requester_email", _as_text),
    "current_license_count": FieldSpec("current_license_count", _as_int),
    "current_usage_count": FieldSpec("current_usage_count", _as_int),
    "requested_license_count": FieldSpec("requested_license_count", _as_int),
    "license_count": FieldSpec("license_count", _as_decimal),
    "total_cost": FieldSpec("total_cost", _as_decimal),
    "optimized_cost": FieldSpec("optimized_cost", _as_decimal),
    "due_date": FieldSpec("due_date", _as_date),
}


def field_spec(canonical_name: str) -> FieldSpec:
    spec = REQUEST_FIELD_SCHEMA.get(canonical_name)
    if spec is None:
        raise KeyError(f"unknown request field {canonical_name!r}")
    return spec


def field_value(request: PurchaseRequest, canonical_name: str) -> Any:
    spec = field_spec(canonical_name)
    raw = request.fields.get(spec.storage_key)
    if raw is None:
        return None
    return spec.coerce(raw)


def normalize_fields(raw_fields: Dict[str, Any] | None) -> Dict[str, Any]:
    """Validate intake fields against the schema and return them keyed by storage key."""
    if raw_fields is None:
        return {}
    if not isinstance(raw_fields, dict):
        raise ValidationError(
            code="request_fields_invalid",
            message_key="request_fields_invalid",
            details=f"fields must be an object, got {type(raw_fields).__name__}",
        )
    normalized: Dict[str, Any] = {}
    for name, raw in raw_fields.items():
        spec = REQUEST_FIELD_SCHEMA.get(str(name))
        if spec is None:
            raise ValidationError(
                code="request_field_unknown",
                message_key="request_field_unknown",
                details=f"unknown request field {name!r}",
                payload={"field": name},
            )
        if raw is None:
            continue
        value = spec.coerce(raw)
        if value is None:
            raise ValidationError(
                code="request_field_invalid",
                message_key="request_field_invalid",
                details=f"invalid value for {name!r}",
                payload={"field": name},
            )
        normalized[spec.storage_key] = to_storage(value)
    return normalized


def to_storage(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value
