from __future__ import annotations

import json
import tempfile
import unittest
from datetime import UTC, datetime
from pathlib import Path

from fastapi.testclient import TestClient

from record_import.main import app, get_clock, get_db_path
from record_import.persistence import Repositories, init_db

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
ADMIN = {"X-Actor-Id": "user-1", "X-Actor-Role": "Admin"}
CUSTOMER_PAYLOAD = {
    "csv": "First Name,ID No.\nJohn,000123\nJane,000123\n",
    "collectionType": "customers",
    "fieldMappings": {"firstName": "First Name", "idNumber": "ID No."},
}


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db = Path(self._tmp.name) / "records.db"
        init_db(self.db)
        app.dependency_overrides[get_db_path] = lambda: self.db
        app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def test_health(self) -> None:
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()["ok"])

    def test_missing_actor_is_unauthorized(self) -> None:
        r = self.client.post("/api/v1/imports", json=CUSTOMER_PAYLOAD)
        self.assertEqual(r.status_code, 401)

    def test_role_without_import_permission_is_forbidden(self) -> None:
        r = self.client.post(
            "/api/v1/imports", json=CUSTOMER_PAYLOAD, headers={"X-Actor-Id": "user-2", "X-Actor-Role": "Cashier"}
        )
        self.assertEqual(r.status_code, 403)
        self.assertEqual(Repositories.for_db(self.db).customers.find_by("id_number", "000123"), None)

    def test_fatal_input_is_bad_request(self) -> None:
        cases = [
            ({**CUSTOMER_PAYLOAD, "collectionType": "vehicles"}, "Invalid collection type"),
            ({**CUSTOMER_PAYLOAD, "csv": "   "}, "CSV content is required"),
            ({**CUSTOMER_PAYLOAD, "fieldMappings": {}}, "Field mappings are required"),
        ]
        for payload, detail in cases:
            with self.subTest(detail=detail):
                r = self.client.post("/api/v1/imports", json=payload, headers=ADMIN)
                self.assertEqual(r.status_code, 400)
                self.assertEqual(r.json()["detail"], detail)

    def test_sync_import(self) -> None:
        r = self.client.post("/api/v1/imports", json=CUSTOMER_PAYLOAD, headers=ADMIN)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"success": True, "imported": 2})

        millis = int(FIXED_NOW.timestamp() * 1000)
        jane = Repositories.for_db(self.db).customers.find_by("id_number", f"000123-{millis}-1")
        self.assertEqual(jane["first_name"], "Jane")

    def test_sync_import_reports_row_errors(self) -> None:
        payload = {
            "csv": "Policy,Amount\n,100\n",
            "collectionType": "payments",
            "fieldMappings": {"policyId": "Policy", "amount": "Amount"},
        }
        r = self.client.post("/api/v1/imports", json=payload, headers=ADMIN)
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["imported"], 0)
        self.assertEqual(len(body["errors"]), 1)
        self.assertTrue(body["errors"][0].startswith("Row 2: Policy ID is blank/required."))

    def test_nothing_to_import(self) -> None:
        payload = {**CUSTOMER_PAYLOAD, "csv": "First Name,ID No.\n,\n"}
        r = self.client.post("/api/v1/imports", json=payload, headers=ADMIN)
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"], "No valid rows found to import")

    def test_stream_import(self) -> None:
        r = self.client.post("/api/v1/imports/stream", json=CUSTOMER_PAYLOAD, headers=ADMIN)
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(r.headers["cache-control"], "no-cache")

        events = [json.loads(chunk[len("data: "):]) for chunk in r.text.split("\n\n") if chunk]
        self.assertEqual([e["type"] for e in events], ["progress", "progress", "complete"])
        self.assertEqual(events[-1], {"type": "complete", "imported": 2, "errors": [], "total": 2})

    def test_stream_rejects_fatal_input_before_streaming(self) -> None:
        r = self.client.post(
            "/api/v1/imports/stream", json={**CUSTOMER_PAYLOAD, "collectionType": "nope"}, headers=ADMIN
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"], "Invalid collection type")

    def test_stream_requires_permission(self) -> None:
        r = self.client.post("/api/v1/imports/stream", json=CUSTOMER_PAYLOAD, headers={"X-Actor-Id": "user-1"})
        self.assertEqual(r.status_code, 401)

    def test_import_runs_listed(self) -> None:
        self.client.post("/api/v1/imports", json=CUSTOMER_PAYLOAD, headers=ADMIN)
        r = self.client.get("/api/v1/imports/runs", headers=ADMIN)
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["count"], 1)
        self.assertEqual(body["rows"][0]["collection_type"], "customers")
        self.assertEqual(body["rows"][0]["imported"], 2)
        self.assertEqual(body["rows"][0]["actor_id"], "user-1")

        r = self.client.get("/api/v1/imports/runs", params={"collection_type": "bogus"}, headers=ADMIN)
        self.assertEqual(r.status_code, 400)


if __name__ == "__main__":
    unittest.main()
