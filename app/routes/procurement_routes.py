from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.application.lifecycle_service import LifecycleCoordinator
from app.db import get_db
from app.domain.contracts import ProposalInput
from app.errors import ValidationError
from app.policies import current_principal, require_principal
from app.procurement import flow_policy
from app.procurement.permissions import permission_bundle
from app.ui_strings import frontend_bundle as ui_frontend_bundle
from app.ui_strings import success_message


procurement_bp = Blueprint("procurement", __name__)


def _coordinator() -> LifecycleCoordinator:
    return LifecycleCoordinator(
        lock_timeout_seconds=float(current_app.config.get("REQUEST_LOCK_TIMEOUT_SECONDS", 10)),
    )


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(details="request body must be a JSON object")
    return payload


def _parse_limit(raw_value, default: int = 120, max_value: int = 300) -> int:
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        return default
    return max(1, min(parsed, max_value))


def _requested_transition_id(payload: dict) -> str:
    transition = payload.get("transition")
    if isinstance(transition, dict) and transition.get("id") is not None:
        return str(transition.get("id")).strip()
    return str(payload.get("transition_id") or "").strip()


@procurement_bp.route("/api/requests", methods=["GET", "POST"])
def requests_api():
    principal = require_principal()
    db = get_db()
    if request.method == "POST":
        created = _coordinator().create_request(db, _json_body(), principal)
        return (
            jsonify(
                {
                    "request": created.to_payload(),
                    "status_meta": flow_policy.status_meta(created.status),
                    "message": success_message("request_created"),
                }
            ),
            201,
        )

    limit = _parse_limit(request.args.get("limit"))
    items = _coordinator().list_requests(db, principal, limit=limit)
    return jsonify({"items": [item.to_payload() for item in items]})


@procurement_bp.route("/api/requests/<string:request_key>", methods=["GET"])
def request_detail_api(request_key: str):
    principal = require_principal()
    db = get_db()
    coordinator = _coordinator()
    purchase_request = coordinator.get_request(db, request_key, principal)
    return jsonify(
        {
            "request": purchase_request.to_payload(),
            "status_meta": flow_policy.status_meta(purchase_request.status),
            "transitions": [
                item.to_payload() for item in coordinator.available_transitions(db, request_key, principal)
            ],
        }
    )


@procurement_bp.route("/api/requests/<string:request_key>/transitions", methods=["GET", "POST"])
def request_transitions_api(request_key: str):
    principal = current_principal()
    db = get_db()
    coordinator = _coordinator()
    if request.method == "POST":
        principal = require_principal()
        result = coordinator.transition(db, request_key, _requested_transition_id(_json_body()), principal)
        return jsonify(
            {
                **result.to_payload(),
                "request": result.request.to_payload(),
                "message": success_message("request_transitioned"),
            }
        )

    transitions = coordinator.available_transitions(db, request_key, principal)
    return jsonify({"transitions": [item.to_payload() for item in transitions]})


@procurement_bp.route("/api/requests/<string:request_key>/proposals", methods=["GET", "POST"])
def request_proposals_api(request_key: str):
    principal = require_principal()
    db = get_db()
    coordinator = _coordinator()
    if request.method == "POST":
        payload = _json_body()
        submission = coordinator.submit_proposal(
            db,
            request_key,
            ProposalInput(
                slot=str(payload.get("slot") or ""),
                license_count=payload.get("license_count"),
                unit_cost=payload.get("unit_cost"),
                comment=str(payload.get("comment") or ""),
            ),
            principal,
        )
        return (
            jsonify({"proposal": submission.to_payload(), "message": success_message("proposal_submitted")}),
            201,
        )

    summary = coordinator.negotiation_summary(db, request_key, principal)
    return jsonify(summary.to_payload())


@procurement_bp.route("/api/requests/<string:request_key>/finalize", methods=["POST"])
def request_finalize_api(request_key: str):
    principal = require_principal()
    record = _coordinator().finalize(get_db(), request_key, principal)
    return jsonify({"finalization": record.to_payload(), "message": success_message("negotiation_finalized")})


@procurement_bp.route("/api/requests/<string:request_key>/history", methods=["GET"])
def request_history_api(request_key: str):
    principal = require_principal()
    events = _coordinator().status_history(get_db(), request_key, principal)
    return jsonify({"request_key": request_key, "events": [event.to_payload() for event in events]})


@procurement_bp.route("/api/permissions", methods=["GET"])
def permissions_api():
    principal = require_principal()
    bundle = permission_bundle(principal.role)
    bundle["principal"] = {
        "role": principal.role,
        "organization_id": principal.organization_id,
        "department_id": principal.department_id,
        "department_name": principal.department_name,
    }
    return jsonify(bundle)


@procurement_bp.route("/api/lifecycle/policy", methods=["GET"])
def lifecycle_policy_api():
    bundle = flow_policy.frontend_bundle()
    bundle["ui"] = ui_frontend_bundle()
    return jsonify(bundle)
