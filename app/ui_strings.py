from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Procurement Requests",
    "purchase_request": "Procurement request",
    "proposal": "Vendor proposal",
    "negotiation": "Negotiation",
    "optimized_cost": "Optimized cost",
}


STATUS_DESCRIPTIONS: Dict[str, str] = {
    "Request Created": "Request submitted and waiting for a first approval.",
    "Pre-Approval": "Request pre-approved, waiting for administrative review.",
    "Request Review Stage": "Request under review before vendor negotiation.",
    "Negotiation Stage": "Vendor proposals are being collected.",
    "Post Approval": "Negotiation closed, waiting for the final sign-off.",
    "Completed": "Request completed.",
    "Declined": "Request declined.",
}


PROPOSAL_SLOT_LABELS: Dict[str, str] = {
    "first": "First proposal",
    "second": "Second proposal",
    "third": "Third proposal",
    "final": "Final proposal",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "unexpected_error": "The operation could not be completed. Try again in a moment.",
        "action_invalid": "This action is not valid.",
        "validation_error": "Some of the submitted values are invalid.",
        "auth_required": "Authentication required.",
        "principal_required": "No authenticated principal for this request.",
        "forbidden": "You are not allowed to perform this action on this request.",
        "request_not_found": "Request not found.",
        "request_already_exists": "A request with this key already exists.",
        "request_key_required": "A request key is required.",
        "request_field_unknown": "The request contains an unknown field.",
        "request_field_invalid": "One of the request fields has an invalid value.",
        "request_fields_invalid": "Request fields must be sent as an object.",
        "transition_id_required": "A transition id is required.",
        "workflow_violation": "This step is not allowed at this point of the negotiation.",
        "proposal_already_submitted": "This proposal has already been submitted.",
        "proposal_out_of_order": "Proposals must be submitted in order.",
        "proposal_final_locked": "The final proposal was submitted; no further proposals are accepted.",
        "proposal_slot_invalid": "Unknown proposal slot.",
        "proposal_value_invalid": "License count and unit cost must be non-negative numbers.",
        "negotiation_incomplete": "Submit the final proposal before leaving the negotiation stage.",
        "negotiation_closed": "Proposals can only be submitted during the negotiation stage.",
        "final_proposal_missing": "The final proposal has not been submitted yet.",
        "persistence_unavailable": "Storage is temporarily unavailable. Retry the same action.",
        "concurrent_modification": "The request changed while saving. Retry the same action.",
    },
    "success": {
        "request_transitioned": "Request status updated.",
        "proposal_submitted": "Proposal submitted.",
        "negotiation_finalized": "Negotiation finalized.",
        "request_created": "Request created.",
    },
}


def status_description(status: str, default: str | None = None) -> str:
    description = STATUS_DESCRIPTIONS.get(status)
    if description:
        return description
    if default is not None:
        return default
    return status


def proposal_slot_label(slot: str, default: str | None = None) -> str:
    label = PROPOSAL_SLOT_LABELS.get(slot)
    if label:
        return label
    if default is not None:
        return default
    return slot


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def error_keys() -> List[str]:
    return sorted(MESSAGES["error"].keys())


def frontend_bundle() -> Dict[str, object]:
    return {
        "terms": FRIENDLY_TERMS,
        "status_descriptions": STATUS_DESCRIPTIONS,
        "proposal_slot_labels": PROPOSAL_SLOT_LABELS,
        "messages": MESSAGES,
    }
