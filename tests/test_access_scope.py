import unittest

from app.domain.contracts import Principal, PurchaseRequest
from app.procurement.access_scope import can_access, can_access_request, filter_accessible


def _principal(role: str, department: str | None = None, organization_id: int | None = 1) -> Principal:
    return Principal(role=role, organization_id=organization_id, department_id=7, department_name=department)


class AccessScopeTest(unittest.TestCase):
    def test_missing_principal_or_unknown_role_is_denied(self) -> None:
        self.assertFalse(can_access(None, "acme", "IT"))
        self.assertFalse(can_access(_principal("GUEST", "IT"), "acme", "IT"))
        self.assertFalse(can_access(_principal("", "IT"), "acme", None))

    def test_global_roles_see_every_department(self) -> None:
        for role in ("SUPER_ADMIN", "ADMIN", "APPROVER"):
            principal = _principal(role, "Finance")
            self.assertTrue(can_access(principal, "acme", "IT"), role)
            self.assertTrue(can_access(principal, "other-org", "Legal"), role)
            self.assertTrue(can_access(principal, None, None), role)

    def test_requester_limited_to_own_department(self) -> None:
        principal = _principal("REQUESTER", "IT")
        self.assertTrue(can_access(principal, "acme", "IT"))
        self.assertFalse(can_access(principal, "acme", "Finance"))

    def test_requester_department_match_is_case_sensitive(self) -> None:
        principal = _principal("REQUESTER", "IT")
        self.assertFalse(can_access(principal, "acme", "it"))

    def test_requester_sees_unscoped_resources(self) -> None:
        principal = _principal("REQUESTER", "IT")
        self.assertTrue(can_access(principal, "acme", None))
        self.assertTrue(can_access(principal, "acme", ""))

    def test_requester_organization_is_not_compared(self) -> None:
        principal = _principal("REQUESTER", "IT", organization_id=99)
        self.assertTrue(can_access(principal, "some-other-org", "IT"))

    def test_requester_without_department_only_sees_unscoped(self) -> None:
        principal = _principal("REQUESTER", None)
        self.assertFalse(can_access(principal, "acme", "IT"))
        self.assertTrue(can_access(principal, "acme", None))

    def test_filter_accessible(self) -> None:
        requests = [
            PurchaseRequest(key="PR-1", status="Request Created", department="IT"),
            PurchaseRequest(key="PR-2", status="Request Created", department="Finance"),
            PurchaseRequest(key="PR-3", status="Request Created", department=None),
        ]
        principal = _principal("REQUESTER", "IT")
        self.assertEqual([item.key for item in filter_accessible(principal, requests)], ["PR-1", "PR-3"])
        self.assertTrue(can_access_request(principal, requests[0]))
        self.assertFalse(can_access_request(principal, requests[1]))


if __name__ == "__main__":
    unittest.main()
