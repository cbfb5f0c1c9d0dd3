import unittest
from decimal import Decimal

from app.errors import AlreadySubmittedError, FinalLockedError, OutOfOrderError, ValidationError
from app.procurement.negotiation import (
    MAX_PROPOSAL_VALUE,
    NegotiationWorkflow,
    compute_optimized_cost,
    exact_product,
)


class NegotiationWorkflowTest(unittest.TestCase):
    def setUp(self) -> None:
        self.workflow = NegotiationWorkflow("PR-7")

    def test_total_cost_is_count_times_unit(self) -> None:
        proposal = self.workflow.submit_proposal("first", 10, "12.50", "opening offer")
        self.assertEqual(proposal.total_cost, Decimal("125.00"))
        self.assertEqual(proposal.proposal_number, 1)
        self.assertEqual(proposal.comment, "opening offer")

    def test_slots_must_follow_order(self) -> None:
        with self.assertRaises(OutOfOrderError):
            self.workflow.submit_proposal("second", 1, 1)
        self.workflow.submit_proposal("first", 1, 1)
        with self.assertRaises(OutOfOrderError):
            self.workflow.submit_proposal("third", 1, 1)
        self.workflow.submit_proposal("second", 1, 1)
        self.workflow.submit_proposal("third", 1, 1)
        self.assertEqual(
            self.workflow.submitted,
            {"first": True, "second": True, "third": True, "final": False},
        )

    def test_duplicate_slot_is_rejected(self) -> None:
        self.workflow.submit_proposal("first", 1, 1)
        with self.assertRaises(AlreadySubmittedError):
            self.workflow.submit_proposal("first", 2, 2)
        self.assertEqual(len(self.workflow.proposals), 1)

    def test_final_locks_everything(self) -> None:
        self.workflow.submit_proposal("final", 5, 5)
        for slot in ("first", "second", "third", "final"):
            with self.assertRaises(FinalLockedError):
                self.workflow.submit_proposal(slot, 1, 1)
        self.assertTrue(self.workflow.can_leave_negotiation())

    def test_final_lock_checked_before_ordering(self) -> None:
        self.workflow.submit_proposal("final", 5, 5)
        with self.assertRaises(FinalLockedError):
            self.workflow.submit_proposal("third", 1, 1)

    def test_final_may_be_submitted_first(self) -> None:
        proposal = self.workflow.submit_proposal("final", 10, 5)
        self.assertTrue(proposal.is_final)
        self.assertEqual(self.workflow.optimized_cost(), Decimal("0"))

    def test_optimized_cost_uses_latest_non_final(self) -> None:
        self.workflow.submit_proposal("first", 10, 100)
        self.workflow.submit_proposal("second", 10, 90)
        self.assertIsNone(self.workflow.optimized_cost())
        self.workflow.submit_proposal("final", 10, 80)
        self.assertEqual(self.workflow.optimized_cost(), Decimal("100"))

    def test_optimized_cost_first_then_final(self) -> None:
        self.workflow.submit_proposal("first", 1, 1000)
        self.workflow.submit_proposal("final", 1, 800)
        self.assertEqual(self.workflow.optimized_cost(), Decimal("200"))

    def test_optimized_cost_against_second_proposal(self) -> None:
        self.workflow.submit_proposal("first", 1, 1000)
        self.workflow.submit_proposal("second", 1, 700)
        self.workflow.submit_proposal("final", 1, 750)
        self.assertEqual(self.workflow.optimized_cost(), Decimal("-50"))

    def test_optimized_cost_may_be_negative(self) -> None:
        self.workflow.submit_proposal("first", 10, 5)
        self.workflow.submit_proposal("final", 10, 6)
        self.assertEqual(self.workflow.optimized_cost(), Decimal("-10"))

    def test_invalid_values_are_rejected(self) -> None:
        for count, unit in ((-1, 5), (1, -5), ("abc", 5), (1, None), (True, 1), ("NaN", 1)):
            with self.assertRaises(ValidationError):
                self.workflow.submit_proposal("first", count, unit)
        self.assertEqual(self.workflow.proposals, [])

    def test_out_of_range_values_are_rejected(self) -> None:
        for count, unit in (("1e999999", "1e999999"), ("1000000000001", 1), (1, "0.0000001")):
            with self.assertRaises(ValidationError) as ctx:
                self.workflow.submit_proposal("first", count, unit)
            self.assertEqual(ctx.exception.code, "proposal_value_invalid")
        self.assertEqual(self.workflow.proposals, [])

    def test_largest_values_multiply_exactly(self) -> None:
        proposal = self.workflow.submit_proposal("first", MAX_PROPOSAL_VALUE, "999999999999.999999")
        self.assertEqual(str(proposal.total_cost), "999999999999999999000000.000000")

    def test_exact_product_maps_overflow_to_validation(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            exact_product(Decimal("1e999999"), Decimal("1e999999"))
        self.assertEqual(ctx.exception.code, "proposal_value_invalid")

    def test_unknown_slot_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.submit_proposal("fourth", 1, 1)
        self.assertEqual(ctx.exception.code, "proposal_slot_invalid")

    def test_slot_names_are_normalized(self) -> None:
        proposal = self.workflow.submit_proposal(" First ", 1, 1)
        self.assertEqual(proposal.slot, "first")

    def test_rebuilt_workflow_keeps_state(self) -> None:
        self.workflow.submit_proposal("first", 10, 10)
        self.workflow.submit_proposal("final", 10, 8)
        rebuilt = NegotiationWorkflow("PR-7", reversed(self.workflow.proposals))
        self.assertEqual([item.slot for item in rebuilt.proposals], ["first", "final"])
        self.assertEqual(rebuilt.optimized_cost(), Decimal("20"))
        with self.assertRaises(FinalLockedError):
            rebuilt.submit_proposal("second", 1, 1)

    def test_compute_optimized_cost_without_baseline(self) -> None:
        final = self.workflow.submit_proposal("final", 3, 3)
        self.assertEqual(compute_optimized_cost(None, final), Decimal("0"))


if __name__ == "__main__":
    unittest.main()
