"""Typed HTTP client for the ERP backend API."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx


RESOURCES = {
    "hrm/departments",
    "hrm/designations",
    "hrm/employees",
    "hrm/attendance",
    "hrm/leaves",
    "vendors",
    "customers",
    "purchase-requisitions",
    "purchase-orders",
    "goods-receipt-notes",
    "rmqc",
    "raw-materials",
    "finished-goods",
    "warehouses",
    "invoices",
    "sales",
    "payments",
}

_logger = logging.getLogger("pharma.erp_api")


class ErpApiError(RuntimeError):
    def __init__(self, status: int | None, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.path = path

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"ERP API error {self.status}: {self.message}" if self.status else f"ERP API error: {self.message}"


def api_base_url() -> str:
    return (os.getenv("ERP_API_URL") or "http://localhost:3000").strip().rstrip("/")


def api_timeout() -> float:
    return float(os.getenv("ERP_API_TIMEOUT", "30"))


def _error_message(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        return res.text or res.reason_phrase
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return res.text or res.reason_phrase


class ErpApiClient:
    """Request/response calls against the ERP service. No retries."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url or api_base_url(),
            timeout=timeout if timeout is not None else api_timeout(),
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ErpApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            res = self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            _logger.warning("erp_api_unreachable method=%s path=%s error=%s", method, path, exc)
            raise ErpApiError(None, str(exc), path) from exc
        if res.status_code == 401:
            _logger.error("erp_api_unauthorized method=%s path=%s", method, path)
        if res.status_code >= 400:
            raise ErpApiError(res.status_code, _error_message(res), path)
        if res.status_code == 204 or not res.content:
            return None
        return res.json()

    @staticmethod
    def _path(resource: str, record_id: str | None = None) -> str:
        if resource not in RESOURCES:
            raise ValueError(f"Unknown ERP resource: {resource}")
        return f"/{resource}/{record_id}" if record_id is not None else f"/{resource}"

    def list(self, resource: str) -> list[dict]:
        data = self._request("GET", self._path(resource))
        return data if isinstance(data, list) else []

    def get(self, resource: str, record_id: str) -> dict:
        return self._request("GET", self._path(resource, record_id))

    def create(self, resource: str, data: dict) -> dict:
        return self._request("POST", self._path(resource), json=data)

    def update(self, resource: str, record_id: str, data: dict) -> dict:
        return self._request("PATCH", self._path(resource, record_id), json=data)

    def delete(self, resource: str, record_id: str) -> None:
        self._request("DELETE", self._path(resource, record_id))

    def dispatch_order(self, order_id: str, warehouse_id: str, transporter: str) -> Any:
        payload = {"warehouseId": warehouse_id, "transporter": transporter}
        return self._request("POST", f"{self._path('sales', order_id)}/dispatch", json=payload)

    def pass_inspection(self, inspection_id: str) -> Any:
        return self._request("POST", f"{self._path('rmqc', inspection_id)}/pass")

    def fail_inspection(self, inspection_id: str) -> Any:
        return self._request("POST", f"{self._path('rmqc', inspection_id)}/fail")

    def approve_leave(self, leave_id: str) -> Any:
        return self._request("POST", f"{self._path('hrm/leaves', leave_id)}/approve")

    def reject_leave(self, leave_id: str) -> Any:
        return self._request("POST", f"{self._path('hrm/leaves', leave_id)}/reject")

    def get_backup_config(self) -> dict:
        return self._request("GET", "/settings/cloudflare-config") or {}

    def save_backup_config(self, config: dict) -> Any:
        return self._request("POST", "/settings/cloudflare-config", json=config)

    def test_backup(self) -> Any:
        return self._request("POST", "/test-backup")

    def submit_form(self, resource: str, mode: str, fields: dict, entity_id: str | None = None) -> dict:
        if mode == "edit":
            if not entity_id:
                raise ValueError("entity_id is required to update a record")
            return self.update(resource, entity_id, fields)
        return self.create(resource, fields)
