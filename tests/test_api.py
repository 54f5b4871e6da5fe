import io
import json
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

os.environ["USE_DB"] = "0"
os.environ["ERP_API_URL"] = "http://erp.test"

import httpx
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from app import main
from app.erp_client import ErpApiClient
from app.stores import MemorySessionStore
from draft_store import DraftStore
from kv_storage import MemoryKeyValueStorage
from table_prefs_store import TablePreferenceStore


class FakeErp:
    def __init__(self) -> None:
        self.calls = []
        self.fail_status = None
        self.tables = {
            "/sales": [
                {"id": "S1", "status": "Draft", "totalAmount": 10},
                {"id": "S2", "status": "Confirmed", "totalAmount": 20, "customerName": "City Pharmacy", "items": []},
                {"id": "S3", "status": "Delivered", "totalAmount": 30},
            ],
            "/hrm/employees": [
                {"id": "E1", "fullName": "Ayesha Khan", "employeeCode": "EMP-1", "departmentId": "D1", "status": "Active", "basicSalary": 50000},
            ],
            "/hrm/departments": [{"id": "D1", "name": "Quality"}],
        }
        self.backup = {"accountId": "acc", "bucketName": "erp-backups", "secretAccessKey": "s3cr3t"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "backend down"})
        path = request.url.path
        if request.method == "GET" and path in self.tables:
            return httpx.Response(200, json=self.tables[path])
        if request.method == "GET" and path == "/sales/S2":
            return httpx.Response(200, json=self.tables["/sales"][1])
        if path == "/settings/cloudflare-config" and request.method == "GET":
            return httpx.Response(200, json=self.backup)
        if request.method == "DELETE":
            return httpx.Response(204)
        if request.method in ("POST", "PATCH"):
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1], **(body or {})})
        return httpx.Response(404, json={"message": "Not Found"})


class TestApi(unittest.TestCase):
    def setUp(self) -> None:
        storage = MemoryKeyValueStorage()
        main.drafts = DraftStore(storage)
        main.table_prefs = TablePreferenceStore(storage)
        main.sessions = MemorySessionStore()
        self.erp = FakeErp()
        main.erp_client = ErpApiClient(base_url="http://erp.test", transport=httpx.MockTransport(self.erp))
        self.client = TestClient(main.app)

    def tearDown(self) -> None:
        main.erp_client.close()

    def _open(self, form_key: str = "department", **body) -> dict:
        res = self.client.post(f"/forms/{form_key}/sessions", json=body or {"mode": "create"})
        self.assertEqual(res.status_code, 201, res.text)
        return res.json()["session"]

    def test_health_and_forms(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})
        forms = self.client.get("/forms").json()["forms"]
        self.assertIn("department", [f["form_key"] for f in forms])
        self.assertEqual(self.client.get("/forms/nope").status_code, 404)

    def test_validate_endpoint(self) -> None:
        res = self.client.post("/forms/department/validate", json={"mode": "create", "fields": {}})
        self.assertEqual(res.status_code, 422)
        self.assertEqual(res.json()["errors"][0]["code"], "REQUIRED_FIELD")
        res = self.client.post("/forms/department/validate", json={"mode": "create", "fields": {"name": "QC"}})
        self.assertTrue(res.json()["ok"])

    def test_create_session_autosave_and_submit(self) -> None:
        session = self._open()
        self.assertEqual(session["state"], "blank")
        sid = session["session_id"]
        res = self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": "Quality Control"}})
        self.assertTrue(res.json()["draft_saved"])
        draft = self.client.get("/drafts/department", params={"mode": "create"}).json()
        self.assertTrue(draft["has_data"])
        self.assertEqual(draft["age"], "Just now")
        res = self.client.post(f"/sessions/{sid}/submit")
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["record"]["name"], "Quality Control")
        self.assertIn(("POST", "/hrm/departments", {"name": "Quality Control"}), self.erp.calls)
        self.assertFalse(self.client.get("/drafts/department").json()["has_data"])
        self.assertEqual(self.client.get(f"/sessions/{sid}").status_code, 404)

    def test_close_then_reopen_offers_draft(self) -> None:
        sid = self._open()["session_id"]
        self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": "Stores"}})
        self.client.post(f"/sessions/{sid}/close")
        session = self._open()
        self.assertEqual(session["state"], "blank")
        self.assertEqual(session["draft_offer"]["fields"], {"name": "Stores"})
        res = self.client.post(f"/sessions/{session['session_id']}/restore_draft")
        self.assertEqual(res.json()["session"]["fields"], {"name": "Stores"})

    def test_edit_session_requires_entity(self) -> None:
        res = self.client.post("/forms/department/sessions", json={"mode": "edit"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "ENTITY_ID_REQUIRED")

    def test_edit_submit_patches_record(self) -> None:
        session = self._open(mode="edit", entity_id="D1", initial_values={"name": "QA"})
        self.assertEqual(session["storage_key"], "formdraft_department_edit_D1")
        sid = session["session_id"]
        self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": "QA Lab"}})
        res = self.client.post(f"/sessions/{sid}/submit")
        self.assertEqual(res.status_code, 200, res.text)
        self.assertIn(("PATCH", "/hrm/departments/D1", {"name": "QA Lab"}), self.erp.calls)

    def test_submit_validation_error_keeps_session(self) -> None:
        sid = self._open()["session_id"]
        self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": ""}})
        res = self.client.post(f"/sessions/{sid}/submit")
        self.assertEqual(res.status_code, 422)
        self.assertEqual(self.client.get(f"/sessions/{sid}").json()["session"]["state"], "editing")

    def test_submit_backend_failure_keeps_draft(self) -> None:
        sid = self._open()["session_id"]
        self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": "QC"}})
        self.erp.fail_status = 500
        res = self.client.post(f"/sessions/{sid}/submit")
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["errors"][0]["code"], "SUBMIT_FAILED")
        self.assertTrue(self.client.get("/drafts/department").json()["has_data"])

    def test_view_session_rejects_changes(self) -> None:
        sid = self._open(mode="view", entity_id="D1", initial_values={"name": "QA"})["session_id"]
        res = self.client.patch(f"/sessions/{sid}/fields", json={"fields": {"name": "x"}})
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json()["errors"][0]["code"], "VIEW_MODE_READ_ONLY")

    def test_restore_missing_draft(self) -> None:
        sid = self._open()["session_id"]
        res = self.client.post(f"/sessions/{sid}/restore_draft")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "DRAFT_NOT_FOUND")

    def test_delete_record_clears_edit_draft(self) -> None:
        main.drafts.save("department_edit_D1", {"name": "x"}, "D1")
        res = self.client.delete("/forms/department/records/D1")
        self.assertEqual(res.status_code, 200)
        self.assertFalse(main.drafts.has_data("department_edit_D1"))

    def test_clear_all_drafts_keeps_table_prefs(self) -> None:
        main.drafts.save("department_create", {"name": "x"})
        self.client.patch("/table_prefs/employees", json={"page_size": 50})
        res = self.client.delete("/drafts")
        self.assertEqual(res.json()["removed"], 1)
        prefs = self.client.get("/table_prefs/employees").json()["preferences"]
        self.assertEqual(prefs["page_size"], 50)

    def test_table_prefs_merge_and_validation(self) -> None:
        self.client.patch("/table_prefs/sales", json={"visible_columns": ["id", "status"]})
        res = self.client.patch("/table_prefs/sales", json={"sort_field": "id", "sort_direction": "descend"})
        prefs = res.json()["preferences"]
        self.assertEqual(prefs["visible_columns"], ["id", "status"])
        self.assertEqual(prefs["sort_direction"], "descend")
        res = self.client.patch("/table_prefs/sales", json={"sort_direction": "up"})
        self.assertEqual(res.status_code, 400)
        self.client.delete("/table_prefs/sales")
        self.assertIsNone(self.client.get("/table_prefs/sales").json()["preferences"])

    def test_export_csv_honors_table_prefs(self) -> None:
        self.client.patch("/table_prefs/department", json={"visible_columns": ["name", "id"]})
        res = self.client.get("/forms/department/records/export", params={"format": "csv"})
        self.assertEqual(res.status_code, 200, res.text)
        self.assertIn("department_", res.headers["content-disposition"])
        self.assertIn(".csv", res.headers["content-disposition"])
        lines = res.content.decode("utf-8-sig").splitlines()
        self.assertEqual(lines, ["name,id", "Quality,D1"])

    def test_export_xlsx_selected_rows(self) -> None:
        res = self.client.get("/forms/sales_order/records/export", params={"format": "xlsx", "ids": "S2,S3"})
        self.assertEqual(res.status_code, 200, res.text)
        ws = load_workbook(io.BytesIO(res.content)).active
        self.assertEqual([row[0].value for row in ws.iter_rows(min_row=2)], ["S2", "S3"])

    def test_export_rejects_unknown_format(self) -> None:
        res = self.client.get("/forms/department/records/export", params={"format": "pdf"})
        self.assertEqual(res.status_code, 400)

    def test_abandoned_sessions_evicted(self) -> None:
        clock = {"now": 0.0}
        main.sessions = MemorySessionStore(idle_ttl_seconds=60, clock=lambda: clock["now"])
        ids = [self._open()["session_id"] for _ in range(20)]
        self.assertEqual(len(main.sessions), 20)
        clock["now"] = 61.0
        self.assertEqual(self.client.get(f"/sessions/{ids[0]}").status_code, 404)
        self.assertEqual(len(main.sessions), 0)

    def test_derived_views(self) -> None:
        dispatches = self.client.get("/sales/dispatches").json()
        self.assertEqual(dispatches["summary"]["total"], 2)
        invoices = self.client.get("/sales/invoices").json()
        self.assertEqual(invoices["summary"]["paid"], 1)
        payroll = self.client.get("/hrm/payroll/preview").json()
        self.assertEqual(payroll["rows"][0]["department"], "Quality")
        self.assertEqual(payroll["totals"]["net_salary"], 52500)

    def test_erp_failure_maps_to_bad_gateway(self) -> None:
        self.erp.fail_status = 503
        res = self.client.get("/sales/dispatches")
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["errors"][0]["code"], "ERP_API_FAILED")

    def test_domain_actions(self) -> None:
        res = self.client.post("/sales/orders/S2/dispatch", json={"warehouse_id": "W1", "transporter": "TCS"})
        self.assertEqual(res.status_code, 200)
        self.assertIn(("POST", "/sales/S2/dispatch", {"warehouseId": "W1", "transporter": "TCS"}), self.erp.calls)
        self.assertEqual(self.client.post("/sales/orders/S2/dispatch", json={}).status_code, 400)
        self.assertEqual(self.client.post("/rmqc/Q1/pass").status_code, 200)
        self.assertEqual(self.client.post("/rmqc/Q1/maybe").status_code, 404)
        self.assertEqual(self.client.post("/hrm/leaves/L1/approve").status_code, 200)
        self.assertEqual(self.client.post("/hrm/leaves/L1/ignore").status_code, 404)

    def test_document_html(self) -> None:
        res = self.client.get("/documents/sales_invoice/S2")
        self.assertEqual(res.status_code, 200)
        self.assertIn("City Pharmacy", res.text)
        self.assertIn("Pending", res.text)
        self.assertEqual(self.client.get("/documents/credit_note/S2").status_code, 404)

    def test_document_pdf_rejects_bad_margins(self) -> None:
        res = self.client.get("/documents/sales_invoice/S2", params={"format": "pdf", "margin_top": "5pt"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "MARGINS_INVALID")

    def test_backup_settings(self) -> None:
        config = self.client.get("/settings/backup").json()["config"]
        self.assertEqual(config["secretAccessKey"], "********")
        res = self.client.post("/settings/backup", json={"accountId": "acc"})
        self.assertEqual(res.status_code, 422)
        payload = {"accountId": "acc", "bucketName": "erp-backups", "accessKeyId": "k", "secretAccessKey": "s"}
        res = self.client.post("/settings/backup", json=payload)
        self.assertEqual(res.status_code, 200, res.text)
        saved = [c for c in self.erp.calls if c[:2] == ("POST", "/settings/cloudflare-config")][0][2]
        self.assertEqual(saved["backupFrequency"], "daily")
        self.assertTrue(saved["enabled"])


if __name__ == "__main__":
    unittest.main()
