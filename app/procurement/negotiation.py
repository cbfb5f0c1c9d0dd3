from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, Inexact, InvalidOperation, Overflow, localcontext
from typing import Any, Dict, Iterable, List, Tuple

from app.domain.contracts import ProposalSubmission
from app.errors import AlreadySubmittedError, FinalLockedError, OutOfOrderError, ValidationError


FIRST = "first"
SECOND = "second"
THIRD = "third"
FINAL = "final"

PROPOSAL_SLOTS: Tuple[str, ...] = (FIRST, SECOND, THIRD, FINAL)

# Slot -> slot that must already be submitted. ``final`` has no prerequisite.
SLOT_PREREQUISITES: Dict[str, str | None] = {
    FIRST: None,
    SECOND: FIRST,
    THIRD: SECOND,
    FINAL: None,
}

ZERO = Decimal("0")
MAX_PROPOSAL_VALUE = Decimal("1000000000000")
MAX_DECIMAL_PLACES = 6

# Wide enough that products and differences of bounded inputs stay exact.
_ARITHMETIC_PRECISION = 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_slot(value: Any) -> str:
    return str(value or "").strip().lower()


def _invalid_value(field_name: str, details: str) -> ValidationError:
    return ValidationError(
        code="proposal_value_invalid",
        message_key="proposal_value_invalid",
        details=details,
        payload={"field": field_name},
    )


def to_decimal(value: Any, *, field_name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise _invalid_value(field_name, f"{field_name} is required")
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise _invalid_value(field_name, f"{field_name} is not a number") from None
    if not parsed.is_finite() or parsed < ZERO:
        raise _invalid_value(field_name, f"{field_name} must be a non-negative number")
    if parsed > MAX_PROPOSAL_VALUE:
        raise _invalid_value(field_name, f"{field_name} exceeds {MAX_PROPOSAL_VALUE}")
    if parsed.as_tuple().exponent < -MAX_DECIMAL_PLACES:
        raise _invalid_value(field_name, f"{field_name} allows at most {MAX_DECIMAL_PLACES} decimal places")
    return parsed


def exact_product(left: Decimal, right: Decimal, *, field_name: str = "total_cost") -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _ARITHMETIC_PRECISION
        ctx.traps[Inexact] = True
        ctx.traps[Overflow] = True
        try:
            return left * right
        except ArithmeticError:
            raise _invalid_value(field_name, f"{field_name} is out of range") from None


def compute_optimized_cost(baseline: ProposalSubmission | None, final: ProposalSubmission) -> Decimal:
    """Savings of the final proposal over the baseline; negative means the final cost more."""
    if baseline is None:
        return ZERO
    with localcontext() as ctx:
        ctx.prec = _ARITHMETIC_PRECISION
        return baseline.total_cost - final.total_cost


class NegotiationWorkflow:
    """Single source of truth for one request's proposal sequence.

    Built from the stored proposal list; every decision (ordering, the
    final lock, the gate out of Negotiation Stage, the optimized cost) is
    derived from that list and nothing else.
    """

    def __init__(self, request_key: str, proposals: Iterable[ProposalSubmission] = ()) -> None:
        self.request_key = request_key
        self._proposals: List[ProposalSubmission] = sorted(proposals, key=lambda item: item.proposal_number)

    @property
    def proposals(self) -> List[ProposalSubmission]:
        return list(self._proposals)

    @property
    def submitted(self) -> Dict[str, bool]:
        present = {proposal.slot for proposal in self._proposals}
        return {slot: slot in present for slot in PROPOSAL_SLOTS}

    def has_submitted(self, slot: str) -> bool:
        return any(proposal.slot == slot for proposal in self._proposals)

    def can_leave_negotiation(self) -> bool:
        return self.has_submitted(FINAL)

    def final_proposal(self) -> ProposalSubmission | None:
        for proposal in self._proposals:
            if proposal.slot == FINAL:
                return proposal
        return None

    def baseline_proposal(self) -> ProposalSubmission | None:
        non_final = [proposal for proposal in self._proposals if proposal.slot != FINAL]
        return non_final[-1] if non_final else None

    def optimized_cost(self) -> Decimal | None:
        final = self.final_proposal()
        if final is None:
            return None
        return compute_optimized_cost(self.baseline_proposal(), final)

    def next_proposal_number(self) -> int:
        if not self._proposals:
            return 1
        return self._proposals[-1].proposal_number + 1

    def check_slot(self, slot: str) -> str:
        normalized = normalize_slot(slot)
        if normalized not in SLOT_PREREQUISITES:
            raise ValidationError(
                code="proposal_slot_invalid",
                message_key="proposal_slot_invalid",
                details=f"unknown proposal slot {slot!r}",
                payload={"slot": slot, "allowed_slots": list(PROPOSAL_SLOTS)},
            )
        if self.can_leave_negotiation():
            raise FinalLockedError(
                details=f"final proposal already submitted for {self.request_key}",
                payload={"request_key": self.request_key, "slot": normalized},
            )
        if self.has_submitted(normalized):
            raise AlreadySubmittedError(
                details=f"{normalized} proposal already submitted for {self.request_key}",
                payload={"request_key": self.request_key, "slot": normalized},
            )
        prerequisite = SLOT_PREREQUISITES[normalized]
        if prerequisite and not self.has_submitted(prerequisite):
            raise OutOfOrderError(
                details=f"{normalized} proposal requires {prerequisite} first",
                payload={"request_key": self.request_key, "slot": normalized, "missing_slot": prerequisite},
            )
        return normalized

    def build_submission(
        self,
        slot: str,
        license_count: Any,
        unit_cost: Any,
        comment: str | None = None,
        *,
        submitted_at: datetime | None = None,
    ) -> ProposalSubmission:
        normalized = self.check_slot(slot)
        count = to_decimal(license_count, field_name="license_count")
        unit = to_decimal(unit_cost, field_name="unit_cost")
        return ProposalSubmission(
            request_key=self.request_key,
            slot=normalized,
            license_count=count,
            unit_cost=unit,
            total_cost=exact_product(count, unit),
            comment=str(comment or "").strip(),
            submitted_at=submitted_at or _utc_now(),
            proposal_number=self.next_proposal_number(),
        )

    def submit_proposal(
        self,
        slot: str,
        license_count: Any,
        unit_cost: Any,
        comment: str | None = None,
    ) -> ProposalSubmission:
        submission = self.build_submission(slot, license_count, unit_cost, comment)
        self._proposals.append(submission)
        return submission
