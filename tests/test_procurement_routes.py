import unittest

from app import create_app
from app.config import Config
from app.db import close_db
from app.observability import reset_metrics_for_tests
from app.ui_strings import error_message, success_message
from tests.helpers.temp_db import TempDbSandbox


SUPER_HEADERS = {"X-User-Role": "SUPER_ADMIN"}
ADMIN_HEADERS = {"X-User-Role": "admin", "X-Organization-Id": "1", "X-Department-Name": "Finance"}
REQUESTER_IT_HEADERS = {"X-User-Role": "REQUESTER", "X-Department-Id": "4", "X-Department-Name": "IT"}
REQUESTER_HR_HEADERS = {"X-User-Role": "REQUESTER", "X-Department-Id": "5", "X-Department-Name": "HR"}


class ProcurementRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="procurement_routes")
        cfg = self._temp_db.make_config(Config, TESTING=True, TRUST_PRINCIPAL_HEADERS=True)
        self.app = create_app(cfg)
        self.client = self.app.test_client()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def _create(self, key: str = "PR-100", department: str | None = "IT"):
        response = self.client.post(
            "/api/requests",
            headers=SUPER_HEADERS,
            json={
                "key": key,
                "organization": "acme",
                "department": department,
                "fields": {"vendor_name": "Acme", "requested_license_count": 25},
            },
        )
        self.assertEqual(response.status_code, 201, response.get_data(as_text=True))
        return response.get_json()

    def _transition(self, transition_id: str, headers=None, key: str = "PR-100"):
        return self.client.post(
            f"/api/requests/{key}/transitions",
            headers=headers or SUPER_HEADERS,
            json={"transition": {"id": transition_id}},
        )

    def _to_negotiation(self) -> None:
        for transition_id in ("request_created.approve", "pre_approval.approve", "request_review.approve"):
            self.assertEqual(self._transition(transition_id).status_code, 200)

    def test_create_and_read_request(self) -> None:
        payload = self._create()
        self.assertEqual(payload["request"]["status"], "Request Created")
        self.assertEqual(payload["status_meta"]["color_category"], "blue-gray")
        self.assertEqual(payload["message"], success_message("request_created"))

        detail = self.client.get("/api/requests/PR-100", headers=SUPER_HEADERS).get_json()
        self.assertEqual(detail["request"]["fields"]["requested_license_count"], 25)
        self.assertEqual([item["id"] for item in detail["transitions"]], ["request_created.approve", "request_created.decline"])

    def test_list_respects_requester_department(self) -> None:
        self._create("PR-IT", "IT")
        self._create("PR-HR", "HR")
        response = self.client.get("/api/requests", headers=REQUESTER_IT_HEADERS)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["key"] for item in response.get_json()["items"]], ["PR-IT"])

    def test_transitions_payload_shape(self) -> None:
        self._create()
        response = self.client.get("/api/requests/PR-100/transitions", headers=SUPER_HEADERS)
        self.assertEqual(response.status_code, 200)
        approve = response.get_json()["transitions"][0]
        self.assertEqual(
            approve,
            {
                "id": "request_created.approve",
                "name": "Approve",
                "to": {"name": "Pre-Approval", "status_category": {"color_name": "yellow"}},
            },
        )

    def test_transition_accepts_flat_transition_id(self) -> None:
        self._create()
        response = self.client.post(
            "/api/requests/PR-100/transitions",
            headers=SUPER_HEADERS,
            json={"transition_id": "request_created.decline"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["to_status"], "Declined")
        self.assertEqual(body["message"], success_message("request_transitioned"))

    def test_transition_without_id_is_a_validation_error(self) -> None:
        self._create()
        response = self.client.post("/api/requests/PR-100/transitions", headers=SUPER_HEADERS, json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "transition_id_required")

    def test_requester_transition_is_forbidden(self) -> None:
        self._create()
        response = self._transition("request_created.approve", headers=REQUESTER_IT_HEADERS)
        self.assertEqual(response.status_code, 403)
        body = response.get_json()
        self.assertEqual(body["error"], "forbidden")
        self.assertEqual(body["message"], error_message("forbidden"))
        self.assertEqual(body["available_transitions"], [])

    def test_negotiation_flow_over_http(self) -> None:
        self._create()
        self._to_negotiation()

        blocked = self._transition("negotiation.approve")
        self.assertEqual(blocked.status_code, 409)
        self.assertEqual(blocked.get_json()["error"], "negotiation_incomplete")

        first = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "first", "license_count": 20, "unit_cost": "15.00", "comment": "list price"},
        )
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.get_json()["proposal"]["total_cost"], "300.00")

        out_of_order = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "third", "license_count": 20, "unit_cost": 14},
        )
        self.assertEqual(out_of_order.status_code, 409)
        self.assertEqual(out_of_order.get_json()["error"], "proposal_out_of_order")

        early_finalize = self.client.post("/api/requests/PR-100/finalize", headers=SUPER_HEADERS)
        self.assertEqual(early_finalize.status_code, 409)
        self.assertEqual(early_finalize.get_json()["error"], "final_proposal_missing")

        final = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "final", "license_count": 18, "unit_cost": 15},
        )
        self.assertEqual(final.status_code, 201)

        locked = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "second", "license_count": 18, "unit_cost": 15},
        )
        self.assertEqual(locked.status_code, 409)
        self.assertEqual(locked.get_json()["error"], "proposal_final_locked")

        summary = self.client.get("/api/requests/PR-100/proposals", headers=SUPER_HEADERS).get_json()
        self.assertTrue(summary["final_submitted"])
        self.assertEqual(summary["optimized_cost"], "30.00")
        self.assertFalse(summary["finalized"])

        finalized = self.client.post("/api/requests/PR-100/finalize", headers=SUPER_HEADERS).get_json()
        self.assertFalse(finalized["finalization"]["replayed"])
        replay = self.client.post("/api/requests/PR-100/finalize", headers=SUPER_HEADERS).get_json()
        self.assertTrue(replay["finalization"]["replayed"])
        self.assertEqual(replay["finalization"]["optimized_cost"], "30.00")

        moved = self._transition("negotiation.approve")
        self.assertEqual(moved.status_code, 200)
        self.assertEqual(moved.get_json()["to_status"], "Post Approval")

        history = self.client.get("/api/requests/PR-100/history", headers=SUPER_HEADERS).get_json()
        self.assertEqual(history["events"][-1]["reason"], "negotiation.approve")

    def test_invalid_proposal_values(self) -> None:
        self._create()
        self._to_negotiation()
        response = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "first", "license_count": -3, "unit_cost": 10},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "proposal_value_invalid")

    def test_oversized_proposal_values_are_a_validation_error(self) -> None:
        self._create()
        self._to_negotiation()
        response = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "first", "license_count": "1e999999", "unit_cost": "1e999999"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "proposal_value_invalid")

    def test_non_object_fields_are_a_validation_error(self) -> None:
        for fields in ("abc", ["vendor_name"], 7):
            response = self.client.post(
                "/api/requests",
                headers=SUPER_HEADERS,
                json={"key": "PR-BAD", "department": "IT", "fields": fields},
            )
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json()["error"], "request_fields_invalid")
        missing = self.client.get("/api/requests/PR-BAD", headers=SUPER_HEADERS)
        self.assertEqual(missing.status_code, 404)

    def test_proposal_outside_negotiation(self) -> None:
        self._create()
        response = self.client.post(
            "/api/requests/PR-100/proposals",
            headers=SUPER_HEADERS,
            json={"slot": "first", "license_count": 1, "unit_cost": 1},
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "negotiation_closed")

    def test_scope_violation_on_read(self) -> None:
        self._create("PR-IT", "IT")
        response = self.client.get("/api/requests/PR-IT/proposals", headers=REQUESTER_HR_HEADERS)
        self.assertEqual(response.status_code, 403)

    def test_unknown_request_is_404(self) -> None:
        response = self.client.get("/api/requests/PR-404/transitions", headers=SUPER_HEADERS)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "request_not_found")

    def test_permissions_endpoint(self) -> None:
        response = self.client.get("/api/permissions", headers=ADMIN_HEADERS)
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["role"], "ADMIN")
        self.assertNotIn("MANAGE_ORGANIZATIONS", body["permissions"])
        self.assertEqual(body["principal"]["organization_id"], 1)

    def test_session_principal_is_used(self) -> None:
        with self.client.session_transaction() as session:
            session["user_role"] = "REQUESTER"
            session["department_name"] = "IT"
        response = self.client.get("/api/permissions")
        self.assertEqual(response.get_json()["role"], "REQUESTER")

    def test_policy_bundle_is_public(self) -> None:
        response = self.client.get("/api/lifecycle/policy")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertIn("Negotiation Stage", body["statuses"])
        self.assertIn("messages", body["ui"])

    def test_health_includes_lifecycle_metrics(self) -> None:
        self._create()
        self._transition("request_created.approve")
        payload = self.client.get("/health").get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["metrics"]["lifecycle"]["transitions_total"], 1)

        metrics = self.client.get("/metrics")
        self.assertIn("text/plain", metrics.headers.get("Content-Type") or "")
        self.assertIn("lifecycle_transition_total", metrics.get_data(as_text=True))


class UntrustedHeadersTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="procurement_routes_untrusted")
        cfg = self._temp_db.make_config(Config, TESTING=True, TRUST_PRINCIPAL_HEADERS=False)
        self.app = create_app(cfg)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_headers_are_ignored_when_not_trusted(self) -> None:
        response = self.client.get("/api/permissions", headers=SUPER_HEADERS)
        self.assertEqual(response.status_code, 401)
        body = response.get_json()
        self.assertEqual(body["error"], "auth_required")
        self.assertEqual(body["message"], error_message("principal_required"))


if __name__ == "__main__":
    unittest.main()
