import unittest

from app.procurement.flow_policy import STATUSES
from app.procurement.negotiation import PROPOSAL_SLOTS
from app.ui_strings import (
    MESSAGES,
    error_message,
    frontend_bundle,
    proposal_slot_label,
    status_description,
    success_message,
)


class UiStringsTest(unittest.TestCase):
    def test_every_status_has_a_description(self) -> None:
        for status in STATUSES:
            description = status_description(status, default="")
            self.assertTrue(description.strip(), f"missing description: {status}")

    def test_every_slot_has_a_label(self) -> None:
        for slot in PROPOSAL_SLOTS:
            self.assertNotEqual(proposal_slot_label(slot), slot)

    def test_messages_are_not_empty(self) -> None:
        for category, messages in MESSAGES.items():
            for key, text in messages.items():
                self.assertTrue(text.strip(), f"empty message {category}:{key}")

    def test_fallbacks(self) -> None:
        self.assertEqual(error_message("no_such_key"), "no_such_key")
        self.assertEqual(error_message("no_such_key", "fallback"), "fallback")
        self.assertEqual(success_message("proposal_submitted"), "Proposal submitted.")

    def test_frontend_bundle(self) -> None:
        bundle = frontend_bundle()
        self.assertEqual(set(bundle.keys()), {"terms", "status_descriptions", "proposal_slot_labels", "messages"})


if __name__ == "__main__":
    unittest.main()
