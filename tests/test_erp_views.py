import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.erp_views import build_dispatches, build_invoices, build_payroll_preview, dispatch_status, invoice_status


ORDERS = [
    {"id": "S1", "status": "Draft", "totalAmount": 100},
    {"id": "S2", "status": "Confirmed", "totalAmount": 200},
    {"id": "S3", "status": "Dispatched", "totalAmount": "300.5"},
    {"id": "S4", "status": "Delivered", "totalAmount": 400},
    {"id": "S5", "status": "Cancelled", "totalAmount": None},
]


class TestErpViews(unittest.TestCase):
    def test_status_labels(self) -> None:
        self.assertEqual(dispatch_status("Confirmed"), "Pending")
        self.assertEqual(dispatch_status("Dispatched"), "In Transit")
        self.assertEqual(dispatch_status("Delivered"), "Delivered")
        self.assertEqual(invoice_status("Delivered"), "Paid")
        self.assertEqual(invoice_status("Dispatched"), "Pending")

    def test_dispatches_filter_and_summary(self) -> None:
        view = build_dispatches(ORDERS)
        self.assertEqual([o["id"] for o in view["items"]], ["S2", "S3", "S4"])
        self.assertEqual(view["items"][1]["dispatch_status"], "In Transit")
        self.assertEqual(view["summary"], {"total": 3, "pending": 1, "in_transit": 1, "delivered": 1})

    def test_invoices_exclude_drafts(self) -> None:
        view = build_invoices(ORDERS)
        self.assertEqual([o["id"] for o in view["items"]], ["S2", "S3", "S4", "S5"])
        summary = view["summary"]
        self.assertEqual(summary["total"], 4)
        self.assertEqual(summary["pending"], 1)
        self.assertEqual(summary["paid"], 1)
        self.assertAlmostEqual(summary["total_amount"], 900.5)
        self.assertEqual(summary["paid_amount"], 400)

    def test_views_skip_non_dict_entries(self) -> None:
        self.assertEqual(build_dispatches([None, "x"])["summary"]["total"], 0)

    def test_payroll_preview(self) -> None:
        employees = [
            {"id": "E1", "employeeCode": "EMP-1", "fullName": "A", "departmentId": "D1", "status": "Active", "basicSalary": 50000},
            {"id": "E2", "employeeCode": "EMP-2", "fullName": "B", "departmentId": "D9", "status": "Active", "basicSalary": 12345},
            {"id": "E3", "employeeCode": "EMP-3", "fullName": "C", "departmentId": "D1", "status": "Terminated", "basicSalary": 90000},
        ]
        preview = build_payroll_preview(employees, [{"id": "D1", "name": "Quality"}])
        self.assertEqual([r["employee_id"] for r in preview["rows"]], ["E1", "E2"])
        first, second = preview["rows"]
        self.assertEqual(first["department"], "Quality")
        self.assertEqual(first["allowances"], 5000)
        self.assertEqual(first["deductions"], 2500)
        self.assertEqual(first["net_salary"], 52500)
        self.assertEqual(second["department"], "D9")
        self.assertEqual(second["allowances"], 1235)
        self.assertEqual(second["deductions"], 617)
        self.assertEqual(preview["totals"]["net_salary"], 52500 + 12345 + 1235 - 617)


if __name__ == "__main__":
    unittest.main()
