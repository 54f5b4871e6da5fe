"""Read-only views derived from shared ERP records."""

from __future__ import annotations

import math
from typing import Any, Iterable


DISPATCH_STATUSES = ("Confirmed", "Dispatched", "Delivered")
_DISPATCH_LABELS = {"Confirmed": "Pending", "Dispatched": "In Transit"}

ALLOWANCE_RATE = 0.10
DEDUCTION_RATE = 0.05


def _amount(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def dispatch_status(status: str | None) -> str | None:
    return _DISPATCH_LABELS.get(status, status)


def invoice_status(status: str | None) -> str:
    return "Paid" if status == "Delivered" else "Pending"


def build_dispatches(orders: Iterable[dict]) -> dict:
    items = []
    for order in orders:
        if not isinstance(order, dict) or order.get("status") not in DISPATCH_STATUSES:
            continue
        items.append({**order, "dispatch_status": dispatch_status(order.get("status"))})
    summary = {
        "total": len(items),
        "pending": sum(1 for o in items if o.get("status") == "Confirmed"),
        "in_transit": sum(1 for o in items if o.get("status") == "Dispatched"),
        "delivered": sum(1 for o in items if o.get("status") == "Delivered"),
    }
    return {"items": items, "summary": summary}


def build_invoices(orders: Iterable[dict]) -> dict:
    items = []
    for order in orders:
        if not isinstance(order, dict) or order.get("status") == "Draft":
            continue
        items.append({**order, "invoice_status": invoice_status(order.get("status"))})
    paid = [o for o in items if o.get("status") == "Delivered"]
    summary = {
        "total": len(items),
        "pending": sum(1 for o in items if o.get("status") == "Confirmed"),
        "paid": len(paid),
        "total_amount": sum(_amount(o.get("totalAmount")) for o in items),
        "paid_amount": sum(_amount(o.get("totalAmount")) for o in paid),
    }
    return {"items": items, "summary": summary}


def build_payroll_preview(employees: Iterable[dict], departments: Iterable[dict] | None = None) -> dict:
    department_names = {
        d.get("id"): d.get("name") for d in (departments or []) if isinstance(d, dict) and d.get("id")
    }
    rows = [
        payroll_row(emp, department_names)
        for emp in employees
        if isinstance(emp, dict) and emp.get("status") == "Active"
    ]
    totals = {
        "basic_salary": sum(r["basic_salary"] for r in rows),
        "allowances": sum(r["allowances"] for r in rows),
        "deductions": sum(r["deductions"] for r in rows),
        "net_salary": sum(r["net_salary"] for r in rows),
    }
    return {"rows": rows, "totals": totals}


def payroll_row(employee: dict, department_names: dict | None = None) -> dict:
    basic = _amount(employee.get("basicSalary"))
    allowances = _round_half_up(basic * ALLOWANCE_RATE)
    deductions = _round_half_up(basic * DEDUCTION_RATE)
    department_id = employee.get("departmentId")
    return {
        "employee_id": employee.get("id"),
        "employee_code": employee.get("employeeCode"),
        "full_name": employee.get("fullName"),
        "department": (department_names or {}).get(department_id) or department_id,
        "basic_salary": basic,
        "allowances": allowances,
        "deductions": deductions,
        "net_salary": basic + allowances - deductions,
    }
