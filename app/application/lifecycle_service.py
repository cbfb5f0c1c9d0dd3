from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List

from app.contexts.procurement.infrastructure.repositories.finalization_repository import FinalizationRepository
from app.contexts.procurement.infrastructure.repositories.proposal_repository import ProposalRepository
from app.contexts.procurement.infrastructure.repositories.purchase_request_repository import (
    PurchaseRequestRepository,
)
from app.contexts.procurement.infrastructure.repositories.status_event_repository import StatusEventRepository
from app.core import (
    EventBus,
    NegotiationFinalized,
    ProposalSubmitted,
    PurchaseRequestCreated,
    RequestStatusChanged,
    get_event_bus,
)
from app.domain.contracts import (
    FinalizationRecord,
    NegotiationSummary,
    Principal,
    ProposalInput,
    ProposalSubmission,
    PurchaseRequest,
    PurchaseRequestCreateInput,
    StatusEvent,
    Transition,
    TransitionResult,
)
from app.errors import (
    AppError,
    ConcurrentModificationError,
    FinalLockedError,
    FinalNotSubmittedError,
    ForbiddenError,
    NegotiationClosedError,
    NegotiationIncompleteError,
    NotFoundError,
    UserActionError,
    ValidationError,
)
from app.observability import (
    observe_lifecycle_rejection,
    observe_lifecycle_transition,
    observe_negotiation_finalized,
    observe_proposal_submitted,
)
from app.procurement import flow_policy
from app.procurement.access_scope import can_access, can_access_request, filter_accessible
from app.procurement.negotiation import NegotiationWorkflow
from app.procurement.permissions import CREATE_ISSUE, EDIT_ISSUE, VIEW_ISSUES, has_permission, normalize_role
from app.procurement.request_fields import normalize_fields


_LOGGER = logging.getLogger("app")


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class RequestLockRegistry:
    """One ``threading.Lock`` per request key.

    An entry lives only while some caller holds or waits on it, so the
    registry stays empty between operations.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, request_key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(request_key)
            if entry is None:
                entry = _KeyLock()
                self._locks[request_key] = entry
            entry.users += 1
            return entry.lock

    def _checkin(self, request_key: str) -> None:
        with self._guard:
            entry = self._locks[request_key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[request_key]

    @contextmanager
    def hold(self, request_key: str, timeout: float = 10.0) -> Iterator[None]:
        lock = self._checkout(request_key)
        try:
            if not lock.acquire(timeout=timeout):
                raise ConcurrentModificationError(
                    details=f"timed out waiting for {request_key}",
                    payload={"request_key": request_key},
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(request_key)


_DEFAULT_LOCKS = RequestLockRegistry()


def get_request_locks() -> RequestLockRegistry:
    return _DEFAULT_LOCKS


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleCoordinator:
    """Authorizes and applies lifecycle mutations for purchase requests.

    Every mutation runs under the per-key lock, inside one storage
    transaction, and publishes its domain event only after commit. Reads
    never take the lock.
    """

    def __init__(
        self,
        request_repository: PurchaseRequestRepository | None = None,
        proposal_repository: ProposalRepository | None = None,
        finalization_repository: FinalizationRepository | None = None,
        status_event_repository: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
        locks: RequestLockRegistry | None = None,
        lock_timeout_seconds: float = 10.0,
    ) -> None:
        self.requests = request_repository or PurchaseRequestRepository()
        self.proposals = proposal_repository or ProposalRepository()
        self.finalizations = finalization_repository or FinalizationRepository()
        self.status_events = status_event_repository or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()
        self.locks = locks if locks is not None else get_request_locks()
        self.lock_timeout_seconds = float(lock_timeout_seconds)

    def _publish(self, event) -> None:
        self.event_bus.publish(event)

    @staticmethod
    def _reject(error: AppError, operation: str, request_key: str | None) -> AppError:
        observe_lifecycle_rejection(error.code)
        _LOGGER.info(
            "lifecycle_rejected",
            extra={"operation": operation, "request_key": request_key, "error_code": error.code},
        )
        return error

    def _load(self, db, request_key: str) -> PurchaseRequest:
        key = str(request_key or "").strip()
        request = self.requests.get(db, key) if key else None
        if request is None:
            raise NotFoundError(
                details=f"purchase request {request_key!r} not found",
                payload={"request_key": request_key},
            )
        return request

    def _require(self, principal: Principal | None, permission: str, request: PurchaseRequest | None = None) -> None:
        if principal is None or not has_permission(principal.role, permission):
            raise ForbiddenError(
                details=f"missing permission {permission}",
                payload={"required_permission": permission},
            )
        if request is not None and not can_access_request(principal, request):
            raise ForbiddenError(
                details=f"{request.key} is outside the principal scope",
                payload={"request_key": request.key},
            )

    def _workflow(self, db, request_key: str) -> NegotiationWorkflow:
        return NegotiationWorkflow(request_key, self.proposals.list_for_request(db, request_key))

    def _negotiation_gate_open(self, db, request: PurchaseRequest) -> bool:
        if request.status != flow_policy.NEGOTIATION:
            return True
        return self._workflow(db, request.key).can_leave_negotiation()

    # Reads

    def get_request(self, db, request_key: str, principal: Principal | None) -> PurchaseRequest:
        request = self._load(db, request_key)
        self._require(principal, VIEW_ISSUES, request)
        return request

    def list_requests(self, db, principal: Principal | None, *, limit: int = 200) -> List[PurchaseRequest]:
        self._require(principal, VIEW_ISSUES)
        return filter_accessible(principal, self.requests.list_all(db, limit=limit))

    def available_transitions(self, db, request_key: str, principal: Principal | None) -> List[Transition]:
        request = self._load(db, request_key)
        transitions = flow_policy.available_transitions(request.status, principal, request.scope)
        if transitions and not self._negotiation_gate_open(db, request):
            return []
        return transitions

    def negotiation_summary(self, db, request_key: str, principal: Principal | None) -> NegotiationSummary:
        request = self._load(db, request_key)
        self._require(principal, VIEW_ISSUES, request)
        workflow = self._workflow(db, request.key)
        return NegotiationSummary(
            request_key=request.key,
            status=request.status,
            submitted=workflow.submitted,
            proposals=workflow.proposals,
            optimized_cost=workflow.optimized_cost(),
            finalization=self.finalizations.get(db, request.key),
        )

    def status_history(self, db, request_key: str, principal: Principal | None) -> List[StatusEvent]:
        request = self._load(db, request_key)
        self._require(principal, VIEW_ISSUES, request)
        return self.status_events.list_for_request(db, request.key)

    # Mutations

    def create_request(self, db, raw: Dict[str, Any], principal: Principal | None) -> PurchaseRequest:
        """Intake entry point: store a new request in Request Created."""
        key = str((raw or {}).get("key") or "").strip()
        if not key:
            raise ValidationError(code="request_key_required", message_key="request_key_required")
        organization = str(raw.get("organization") or "").strip() or None
        department = str(raw.get("department") or "").strip() or None
        if principal is None or not has_permission(principal.role, CREATE_ISSUE):
            raise self._reject(
                ForbiddenError(details="missing permission CREATE_ISSUE", payload={"required_permission": CREATE_ISSUE}),
                "create",
                key,
            )
        if not can_access(principal, organization, department):
            raise self._reject(
                ForbiddenError(details=f"{key} is outside the principal scope", payload={"request_key": key}),
                "create",
                key,
            )
        data = PurchaseRequestCreateInput(
            key=key,
            organization=organization,
            department=department,
            fields=normalize_fields(raw.get("fields")),
        )

        with self.locks.hold(key, self.lock_timeout_seconds):
            with db.transaction():
                if self.requests.exists(db, key):
                    raise UserActionError(
                        code="request_already_exists",
                        message_key="request_already_exists",
                        http_status=409,
                        payload={"request_key": key},
                    )
                request = self.requests.create(db, data)
                self.status_events.add_event(
                    db,
                    request_key=key,
                    from_status=None,
                    to_status=request.status,
                    reason="created",
                    actor_role=normalize_role(principal.role),
                )

        _LOGGER.info("purchase_request_created", extra={"request_key": key, "department": department})
        self._publish(PurchaseRequestCreated(request_key=key, status=request.status, department=department))
        return request

    def transition(self, db, request_key: str, transition_id: str | None, principal: Principal | None) -> TransitionResult:
        wanted = str(transition_id or "").strip()
        if not wanted:
            raise ValidationError(code="transition_id_required", message_key="transition_id_required")

        with self.locks.hold(str(request_key or "").strip(), self.lock_timeout_seconds):
            with db.transaction():
                request = self._load(db, request_key)
                try:
                    transition = flow_policy.require_transition(request, wanted, principal)
                except ForbiddenError as exc:
                    raise self._reject(exc, "transition", request.key) from None
                if not self._negotiation_gate_open(db, request):
                    raise self._reject(
                        NegotiationIncompleteError(
                            details=f"final proposal missing for {request.key}",
                            payload={"request_key": request.key, "transition_id": wanted},
                        ),
                        "transition",
                        request.key,
                    )
                updated = self.requests.save_status(db, request, transition.target_status)
                self.status_events.add_event(
                    db,
                    request_key=request.key,
                    from_status=request.status,
                    to_status=updated.status,
                    reason=transition.id,
                    actor_role=normalize_role(principal.role),
                )

        observe_lifecycle_transition(request.status, updated.status)
        _LOGGER.info(
            "request_transitioned",
            extra={
                "request_key": request.key,
                "from_status": request.status,
                "to_status": updated.status,
                "transition_id": transition.id,
            },
        )
        self._publish(
            RequestStatusChanged(
                request_key=request.key,
                from_status=request.status,
                to_status=updated.status,
                transition_id=transition.id,
            )
        )
        return TransitionResult(
            request=updated,
            from_status=request.status,
            to_status=updated.status,
            transition=transition,
        )

    def submit_proposal(
        self,
        db,
        request_key: str,
        proposal: ProposalInput,
        principal: Principal | None,
    ) -> ProposalSubmission:
        with self.locks.hold(str(request_key or "").strip(), self.lock_timeout_seconds):
            with db.transaction():
                request = self._load(db, request_key)
                try:
                    self._require(principal, EDIT_ISSUE, request)
                    workflow = self._workflow(db, request.key)
                    if workflow.can_leave_negotiation():
                        raise FinalLockedError(
                            details=f"final proposal already submitted for {request.key}",
                            payload={"request_key": request.key, "status": request.status},
                        )
                    if request.status != flow_policy.NEGOTIATION:
                        raise NegotiationClosedError(
                            details=f"{request.key} is in {request.status!r}",
                            payload={"request_key": request.key, "status": request.status},
                        )
                    submission = workflow.submit_proposal(
                        proposal.slot,
                        proposal.license_count,
                        proposal.unit_cost,
                        proposal.comment,
                    )
                except UserActionError as exc:
                    raise self._reject(exc, "submit_proposal", request.key) from None
                self.proposals.add(db, submission)

        observe_proposal_submitted(submission.slot)
        _LOGGER.info(
            "proposal_submitted",
            extra={
                "request_key": request.key,
                "slot": submission.slot,
                "proposal_number": submission.proposal_number,
            },
        )
        self._publish(
            ProposalSubmitted(
                request_key=request.key,
                slot=submission.slot,
                proposal_number=submission.proposal_number,
                total_cost=str(submission.total_cost),
            )
        )
        return submission

    def finalize(self, db, request_key: str, principal: Principal | None) -> FinalizationRecord:
        """Record the negotiation outcome once; repeated calls replay the stored record."""
        with self.locks.hold(str(request_key or "").strip(), self.lock_timeout_seconds):
            with db.transaction():
                request = self._load(db, request_key)
                try:
                    self._require(principal, EDIT_ISSUE, request)
                except ForbiddenError as exc:
                    raise self._reject(exc, "finalize", request.key) from None

                existing = self.finalizations.get(db, request.key)
                if existing is not None:
                    observe_negotiation_finalized("replayed")
                    return FinalizationRecord(
                        request_key=existing.request_key,
                        license_count=existing.license_count,
                        optimized_cost=existing.optimized_cost,
                        finalized_at=existing.finalized_at,
                        replayed=True,
                    )

                workflow = self._workflow(db, request.key)
                final = workflow.final_proposal()
                if final is None:
                    raise self._reject(
                        FinalNotSubmittedError(
                            details=f"no final proposal for {request.key}",
                            payload={"request_key": request.key},
                        ),
                        "finalize",
                        request.key,
                    )
                record = FinalizationRecord(
                    request_key=request.key,
                    license_count=final.license_count,
                    optimized_cost=workflow.optimized_cost(),
                    finalized_at=_utc_now(),
                )
                self.finalizations.add(db, record)
                self.requests.update_fields(
                    db,
                    request,
                    {
                        "license_count": str(record.license_count),
                        "optimized_cost": str(record.optimized_cost),
                    },
                )

        observe_negotiation_finalized("recorded")
        _LOGGER.info(
            "negotiation_finalized",
            extra={"request_key": request.key, "optimized_cost": str(record.optimized_cost)},
        )
        self._publish(
            NegotiationFinalized(
                request_key=request.key,
                license_count=str(record.license_count),
                optimized_cost=str(record.optimized_cost),
            )
        )
        return record
