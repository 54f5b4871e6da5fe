"""Form definitions for the dashboard's record editors."""

from __future__ import annotations

import copy
from typing import Any, Dict


FormDef = Dict[str, Any]

_DATE = {"type": "date"}


def _enum(*values: str, **extra) -> dict:
    return {"type": "enum", "options": list(values), **extra}


FORMS: Dict[str, FormDef] = {
    "department": {
        "title": "Department",
        "resource": "hrm/departments",
        "fields": {
            "name": {"type": "string", "required": True, "min_length": 2, "max_length": 100},
            "managerId": {"type": "string"},
        },
    },
    "designation": {
        "title": "Designation",
        "resource": "hrm/designations",
        "fields": {
            "title": {"type": "string", "required": True, "max_length": 100},
            "level": {"type": "string"},
        },
    },
    "employee": {
        "title": "Employee",
        "resource": "hrm/employees",
        "fields": {
            "employeeCode": {"type": "string", "required": True, "pattern": r"^[A-Z0-9-]+$"},
            "fullName": {"type": "string", "required": True, "min_length": 2},
            "cnicPassport": {"type": "string", "required": True},
            "dateOfBirth": {**_DATE, "required": True},
            "gender": _enum("Male", "Female", "Other"),
            "departmentId": {"type": "string", "required": True},
            "designationId": {"type": "string", "required": True},
            "joiningDate": {**_DATE, "required": True},
            "employmentType": _enum("Permanent", "Contract", "Daily Wager", default="Permanent"),
            "status": _enum("Active", "On Leave", "Terminated", "Resigned", default="Active"),
            "basicSalary": {"type": "number", "required": True, "min": 0},
            "bankAccount": {"type": "string"},
            "socialSecurityNo": {"type": "string"},
        },
    },
    "leave_request": {
        "title": "Leave Request",
        "resource": "hrm/leaves",
        "fields": {
            "employeeId": {"type": "string", "required": True},
            "leaveType": _enum("Sick", "Casual", "Annual", "Maternity", required=True),
            "startDate": {**_DATE, "required": True},
            "endDate": {**_DATE, "required": True},
            "totalDays": {"type": "number", "required": True, "min": 0.5},
            "reason": {"type": "text", "max_length": 500},
        },
    },
    "vendor": {
        "title": "Vendor",
        "resource": "vendors",
        "fields": {
            "legalName": {"type": "string", "required": True},
            "vendorType": _enum("Raw Material", "Packaging", "Services", "Equipment"),
            "businessCategory": {"type": "string"},
            "registrationNumber": {"type": "string"},
            "ntnVatGst": {"type": "string"},
            "country": {"type": "string"},
            "city": {"type": "string"},
            "address": {"type": "text"},
            "status": _enum("Active", "Inactive", "Blacklisted", default="Active"),
            "contactPerson": {"type": "string"},
            "contactNumber": {"type": "string"},
            "email": {"type": "string", "pattern": r"^[^@\s]+@[^@\s]+\.[^@\s]+$"},
            "website": {"type": "string"},
            "isGmpCertified": {"type": "boolean"},
            "regulatoryLicense": {"type": "string"},
            "licenseExpiryDate": _DATE,
            "qualityRating": {"type": "number", "min": 0, "max": 5},
            "auditStatus": _enum("Pending", "Cleared", "Failed"),
            "riskCategory": _enum("Low", "Medium", "High"),
            "paymentTerms": _enum("Net-30", "Net-60", "Advanced"),
            "creditLimit": {"type": "number", "min": 0},
            "taxWithholdingPercent": {"type": "number", "min": 0, "max": 100},
        },
    },
    "customer": {
        "title": "Customer",
        "resource": "customers",
        "fields": {
            "customerName": {"type": "string", "required": True},
            "customerType": _enum("Distributor", "Hospital", "Pharmacy", "Retail"),
            "contactPerson": {"type": "string"},
            "phone": {"type": "string"},
            "email": {"type": "string", "pattern": r"^[^@\s]+@[^@\s]+\.[^@\s]+$"},
            "billingAddress": {"type": "text"},
            "shippingAddress": {"type": "text"},
            "taxId": {"type": "string"},
            "creditLimit": {"type": "number", "min": 0},
            "paymentTerms": {"type": "string"},
        },
    },
    "purchase_order": {
        "title": "Purchase Order",
        "resource": "purchase-orders",
        "fields": {
            "poNumber": {"type": "string", "required": True},
            "vendorId": {"type": "string", "required": True},
            "orderDate": {**_DATE, "required": True},
            "expectedDeliveryDate": _DATE,
            "currency": {"type": "string", "default": "PKR"},
            "paymentTerms": _enum("Net-30", "Net-60", "Advanced"),
            "status": _enum("Draft", "Issued", "Partially Received", "Received", "Cancelled", default="Draft"),
            "items": {"type": "list", "required": True, "min_length": 1},
            "remarks": {"type": "text"},
        },
    },
    "goods_receipt": {
        "title": "Goods Receipt Note",
        "resource": "goods-receipt-notes",
        "fields": {
            "grnNumber": {"type": "string", "required": True},
            "purchaseOrderId": {"type": "string", "required": True},
            "receivedDate": {**_DATE, "required": True},
            "warehouseId": {"type": "string", "required": True},
            "receivedBy": {"type": "string"},
            "items": {"type": "list", "required": True, "min_length": 1},
            "remarks": {"type": "text"},
        },
    },
    "rmqc_inspection": {
        "title": "Raw Material QC Inspection",
        "resource": "rmqc",
        "fields": {
            "inspector_id": {"type": "string", "required": True},
            "status": _enum("Pending", "Passed", "Failed", required=True),
            "description": {"type": "text", "max_length": 1000},
        },
    },
    "sales_order": {
        "title": "Sales Order",
        "resource": "sales",
        "fields": {
            "customerId": {"type": "string", "required": True},
            "orderDate": {**_DATE, "required": True},
            "deliveryDate": _DATE,
            "items": {"type": "list", "required": True, "min_length": 1},
        },
    },
    "backup_settings": {
        "title": "Cloudflare Backup",
        "resource": None,
        "fields": {
            "accountId": {"type": "string", "required": True},
            "bucketName": {"type": "string", "required": True, "pattern": r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$"},
            "accessKeyId": {"type": "string", "required": True},
            "secretAccessKey": {"type": "string", "required": True},
            "backupFrequency": _enum("daily", "weekly", "monthly", default="daily"),
            "enabled": {"type": "boolean", "default": True},
        },
    },
}


def list_forms() -> list[dict]:
    return [
        {"form_key": key, "title": form.get("title"), "resource": form.get("resource")}
        for key, form in FORMS.items()
    ]


def get_form(form_key: str) -> FormDef | None:
    form = FORMS.get(form_key)
    return copy.deepcopy(form) if form else None
