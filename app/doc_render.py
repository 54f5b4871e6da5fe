from __future__ import annotations

from typing import Any
import re

from playwright.sync_api import sync_playwright

from app.template_render import render_template

_MARGIN_RE = re.compile(r"^(\d+(\.\d+)?)(mm|cm|in|px)$")

_BASE_STYLE = (
    "body{font-family:Helvetica,Arial,sans-serif;font-size:12px;color:#1f2933;}"
    "h1{font-size:18px;margin:0 0 8px;}table{width:100%;border-collapse:collapse;margin-top:12px;}"
    "th,td{border:1px solid #cbd2d9;padding:4px 6px;text-align:left;}.meta td{border:none;padding:2px 6px;}"
)

DOCUMENT_TEMPLATES = {
    "purchase_order": {
        "resource": "purchase-orders",
        "title": "Purchase Order",
        "template": """<html><head><style>{{ style }}</style></head><body>
<h1>{{ company }} - Purchase Order {{ record.poNumber | default('') }}</h1>
<table class="meta">
<tr><td>Vendor</td><td>{{ record.vendorName | default(record.vendorId | default('')) }}</td></tr>
<tr><td>Order date</td><td>{{ record.orderDate | default('') }}</td></tr>
<tr><td>Expected delivery</td><td>{{ record.expectedDeliveryDate | default('') }}</td></tr>
<tr><td>Status</td><td>{{ record.status | default('') }}</td></tr>
</table>
<table><tr><th>Item</th><th>Qty</th><th>Unit price</th><th>Tax %</th></tr>
{% for line in record["items"] | default([]) %}<tr><td>{{ line.description | default(line.itemCode | default('')) }}</td><td>{{ line.quantity | default(0) }}</td><td>{{ line.unitPrice | default(0) | money }}</td><td>{{ line.taxPercent | default(0) }}</td></tr>
{% endfor %}</table>
<p>Total: {{ record.totalAmount | default(0) | money(record.currency | default(none)) }}</p>
</body></html>""",
    },
    "sales_invoice": {
        "resource": "sales",
        "title": "Sales Invoice",
        "template": """<html><head><style>{{ style }}</style></head><body>
<h1>{{ company }} - Invoice {{ record.id | default('') }}</h1>
<table class="meta">
<tr><td>Customer</td><td>{{ record.customerName | default(record.customerId | default('')) }}</td></tr>
<tr><td>Order date</td><td>{{ record.orderDate | default('') }}</td></tr>
<tr><td>Payment status</td><td>{{ invoice_status }}</td></tr>
</table>
<table><tr><th>Item</th><th>Batch</th><th>Qty</th><th>Unit price</th></tr>
{% for line in record["items"] | default([]) %}<tr><td>{{ line.itemId | default('') }}</td><td>{{ line.batchNumber | default('') }}</td><td>{{ line.quantity | default(0) }}</td><td>{{ line.unitPrice | default(0) | money }}</td></tr>
{% endfor %}</table>
<p>Total: {{ record.totalAmount | default(0) | money }}</p>
</body></html>""",
    },
    "dispatch_note": {
        "resource": "sales",
        "title": "Dispatch Note",
        "template": """<html><head><style>{{ style }}</style></head><body>
<h1>{{ company }} - Dispatch Note {{ record.id | default('') }}</h1>
<table class="meta">
<tr><td>Customer</td><td>{{ record.customerName | default(record.customerId | default('')) }}</td></tr>
<tr><td>Delivery date</td><td>{{ record.deliveryDate | default('') }}</td></tr>
<tr><td>Dispatch status</td><td>{{ dispatch_status }}</td></tr>
</table>
<table><tr><th>Item</th><th>Batch</th><th>Qty</th></tr>
{% for line in record["items"] | default([]) %}<tr><td>{{ line.itemId | default('') }}</td><td>{{ line.batchNumber | default('') }}</td><td>{{ line.quantity | default(0) }}</td></tr>
{% endfor %}</table>
</body></html>""",
    },
    "payslip": {
        "resource": "hrm/employees",
        "title": "Payslip",
        "template": """<html><head><style>{{ style }}</style></head><body>
<h1>{{ company }} - Payslip</h1>
<table class="meta">
<tr><td>Employee</td><td>{{ record.fullName | default('') }} ({{ record.employeeCode | default('') }})</td></tr>
<tr><td>Basic salary</td><td>{{ payroll.basic_salary | money }}</td></tr>
<tr><td>Allowances</td><td>{{ payroll.allowances | money }}</td></tr>
<tr><td>Deductions</td><td>{{ payroll.deductions | money }}</td></tr>
<tr><td>Net salary</td><td>{{ payroll.net_salary | money }}</td></tr>
</table>
</body></html>""",
    },
}


def render_html(template_html: str, context: dict[str, Any]) -> str:
    return render_template(template_html or "", {"style": _BASE_STYLE, **context}, strict=True)


def render_document(kind: str, record: dict, extra: dict | None = None, company: str = "Pharma ERP") -> str:
    doc = DOCUMENT_TEMPLATES.get(kind)
    if doc is None:
        raise KeyError(f"Unknown document kind: {kind}")
    context = {"company": company, "record": record or {}, **(extra or {})}
    return render_html(doc["template"], context)


def normalize_margins(margins: dict | None) -> dict:
    if not isinstance(margins, dict):
        return {}
    normalized: dict = {}
    for key in ("top", "right", "bottom", "left"):
        value = str(margins.get(key) or "").strip()
        if not value:
            continue
        match = _MARGIN_RE.match(value)
        if not match:
            raise ValueError(f"Invalid margin value: {value}")
        num = float(match.group(1))
        unit = match.group(3)
        mm_val = num
        if unit == "cm":
            mm_val = num * 10.0
        elif unit == "in":
            mm_val = num * 25.4
        elif unit == "px":
            mm_val = num * 0.264583
        if mm_val < 0 or mm_val > 100:
            raise ValueError(f"Margin out of range: {value}")
        normalized[key] = value
    return normalized


def render_pdf(html: str, paper_size: str | None = "A4", margins: dict | None = None) -> bytes:
    with sync_playwright() as p:
        browser = p.chromium.launch()
        page = browser.new_page()
        page.set_content(html, wait_until="networkidle")
        pdf_args: dict = {"print_background": True}
        if paper_size:
            pdf_args["format"] = paper_size
        if margins:
            pdf_args["margin"] = margins
        pdf_bytes = page.pdf(**pdf_args)
        browser.close()
        return pdf_bytes
