from __future__ import annotations

from typing import Any, Dict

from app.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
    retryable = False

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "The operation could not be completed.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.retryable:
            payload["retryable"] = True
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "request_not_found"
    default_message_key = "request_not_found"
    default_http_status = 404
    default_critical = False


class PolicyError(UserActionError):
    default_code = "policy_violation"
    default_message_key = "forbidden"
    default_http_status = 403
    default_critical = False


class ForbiddenError(PolicyError):
    default_code = "forbidden"
    default_message_key = "forbidden"
    default_http_status = 403


class WorkflowError(UserActionError):
    default_code = "workflow_violation"
    default_message_key = "workflow_violation"
    default_http_status = 409
    default_critical = False


class AlreadySubmittedError(WorkflowError):
    default_code = "proposal_already_submitted"
    default_message_key = "proposal_already_submitted"


class OutOfOrderError(WorkflowError):
    default_code = "proposal_out_of_order"
    default_message_key = "proposal_out_of_order"


class FinalLockedError(WorkflowError):
    default_code = "proposal_final_locked"
    default_message_key = "proposal_final_locked"


class NegotiationIncompleteError(WorkflowError):
    default_code = "negotiation_incomplete"
    default_message_key = "negotiation_incomplete"


class NegotiationClosedError(WorkflowError):
    default_code = "negotiation_closed"
    default_message_key = "negotiation_closed"


class FinalNotSubmittedError(WorkflowError):
    default_code = "final_proposal_missing"
    default_message_key = "final_proposal_missing"


class PersistenceError(AppError):
    default_code = "persistence_unavailable"
    default_message_key = "persistence_unavailable"
    default_http_status = 503
    default_critical = False
    retryable = True


class ConcurrentModificationError(PersistenceError):
    default_code = "concurrent_modification"
    default_message_key = "concurrent_modification"


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
