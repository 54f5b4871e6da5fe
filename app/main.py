"""FastAPI app for the pharma ERP dashboard: form drafts, table prefs and CRUD glue."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, Response

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import time
import logging

import anyio

from app.doc_render import DOCUMENT_TEMPLATES, normalize_margins, render_document, render_pdf
from app.erp_client import ErpApiClient, ErpApiError
from app.erp_views import build_dispatches, build_invoices, build_payroll_preview, dispatch_status, invoice_status, payroll_row
from app.forms import get_form, list_forms
from app.records_validation import make_form_validator, validate_record_payload
from app.stores import MemorySessionStore
from app.table_export import EXPORT_FORMATS, export_columns, export_filename, export_rows, select_rows
from draft_store import DraftStore
from form_session import FormSession, FormSessionError
from kv_storage import MemoryKeyValueStorage
from pharma.storage_key import StorageKeyError, build_storage_key
from table_prefs_store import TablePreferenceStore, validate_preferences


app = FastAPI(title="Pharma ERP Dashboard")
logger = logging.getLogger("pharma")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("PHARMA_CORS_ORIGINS", "").split(",")
    if origin.strip()
}

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
DRAFT_EXPIRY_HOURS = float(os.getenv("PHARMA_DRAFT_EXPIRY_HOURS", "24"))
STORAGE_QUOTA_BYTES = int(os.getenv("PHARMA_STORAGE_QUOTA_BYTES", str(5 * 1024 * 1024)))
REQ_SLOW_MS = float(os.getenv("PHARMA_REQ_SLOW_MS", "250"))
SESSION_IDLE_MINUTES = float(os.getenv("PHARMA_SESSION_IDLE_MINUTES", "60"))

if USE_DB:
    from app.stores_db import DbKeyValueStorage

    storage = DbKeyValueStorage(max_value_bytes=STORAGE_QUOTA_BYTES)
else:
    storage = MemoryKeyValueStorage(quota_bytes=STORAGE_QUOTA_BYTES)

drafts = DraftStore(storage, expiry_hours=DRAFT_EXPIRY_HOURS)
table_prefs = TablePreferenceStore(storage)
sessions = MemorySessionStore(idle_ttl_seconds=SESSION_IDLE_MINUTES * 60)
erp_client = ErpApiClient()

logger.info("storage_backend=%s draft_expiry_hours=%s env=%s", "db" if USE_DB else "memory", DRAFT_EXPIRY_HOURS, APP_ENV)


@app.middleware("http")
async def local_cors_fallback_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    if request.method == "OPTIONS":
        response = JSONResponse({}, status_code=200)
    else:
        response = await call_next(request)
    normalized_origin = origin.rstrip("/") if isinstance(origin, str) else origin
    if normalized_origin and (normalized_origin in _CORS_ORIGINS or _LOCAL_CORS_REGEX.match(normalized_origin)):
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        response.headers.setdefault("Access-Control-Allow-Headers", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "*")
        response.headers.setdefault("Vary", "Origin")
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info("%s %s %s route=%s total_ms=%.1f", request.method, request.url.path, response.status_code, route_name, total_ms)
    if total_ms >= REQ_SLOW_MS:
        logger.warning("slow_request method=%s path=%s route=%s total_ms=%.1f", request.method, request.url.path, route_name, total_ms)
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _errors_response(errors: list[dict], status: int = 400) -> JSONResponse:
    body = {"ok": False, "errors": errors, "warnings": []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _erp_error(exc: ErpApiError) -> JSONResponse:
    status = exc.status if exc.status in (400, 401, 403, 404, 409, 422) else 502
    return _error_response("ERP_API_FAILED", exc.message, exc.path, detail={"status": exc.status}, status=status)


def _session_error(exc: FormSessionError) -> JSONResponse:
    return _error_response(exc.code, exc.message, "session", status=409)


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _persist_for(form_key: str, form: dict):
    resource = form.get("resource")

    def _persist(mode: str, fields: dict, entity_id: str | None):
        if form_key == "backup_settings":
            return erp_client.save_backup_config(fields)
        return erp_client.submit_form(resource, mode, fields, entity_id)

    return _persist


def _call_erp(func, *args):
    return anyio.to_thread.run_sync(func, *args)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


# ---------------------------------------------------------------- forms


@app.get("/forms")
async def forms_list() -> JSONResponse:
    return _ok_response({"forms": list_forms()})


@app.get("/forms/{form_key}")
async def forms_get(form_key: str) -> JSONResponse:
    form = get_form(form_key)
    if form is None:
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    return _ok_response({"form_key": form_key, "form": form})


@app.post("/forms/{form_key}/validate")
async def forms_validate(form_key: str, request: Request) -> JSONResponse:
    form = get_form(form_key)
    if form is None:
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    body = await _safe_json(request)
    errors, normalized = validate_record_payload(form, body.get("fields") or {}, for_create=body.get("mode", "create") == "create")
    if errors:
        return _errors_response(errors, status=422)
    return _ok_response({"fields": normalized})


@app.get("/forms/{form_key}/records")
async def forms_records(form_key: str) -> JSONResponse:
    form = get_form(form_key)
    if form is None or not form.get("resource"):
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    try:
        records = await _call_erp(erp_client.list, form["resource"])
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"records": records})


@app.get("/forms/{form_key}/records/export")
async def forms_records_export(form_key: str, request: Request):
    form = get_form(form_key)
    if form is None or not form.get("resource"):
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    fmt = request.query_params.get("format") or "xlsx"
    if fmt not in EXPORT_FORMATS:
        return _error_response("EXPORT_FORMAT_INVALID", "format must be csv or xlsx", "format")
    table_id = request.query_params.get("table_id") or form_key
    selected = [i.strip() for i in (request.query_params.get("ids") or "").split(",") if i.strip()]
    try:
        records = await _call_erp(erp_client.list, form["resource"])
    except ErpApiError as exc:
        return _erp_error(exc)
    prefs = table_prefs.load(table_id) or {}
    columns = export_columns(form, prefs.get("visible_columns"))
    rows = select_rows(records, selected)
    content = export_rows(rows, columns, fmt, title=form.get("title") or "Data")
    filename = export_filename(form_key, fmt)
    logger.info("table_export form=%s format=%s rows=%s columns=%s", form_key, fmt, len(rows), len(columns))
    return Response(content, media_type=EXPORT_FORMATS[fmt], headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@app.delete("/forms/{form_key}/records/{record_id}")
async def forms_delete_record(form_key: str, record_id: str) -> JSONResponse:
    form = get_form(form_key)
    if form is None or not form.get("resource"):
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    try:
        await _call_erp(erp_client.delete, form["resource"], record_id)
    except ErpApiError as exc:
        return _erp_error(exc)
    drafts.clear(build_storage_key(form_key, "edit", record_id))
    return _ok_response({"record_id": record_id})


# ------------------------------------------------------------- sessions


@app.post("/forms/{form_key}/sessions")
async def sessions_open(form_key: str, request: Request) -> JSONResponse:
    form = get_form(form_key)
    if form is None:
        return _error_response("FORM_NOT_FOUND", "Form not found", "form_key", status=404)
    body = await _safe_json(request)
    mode = body.get("mode") or "create"
    entity_id = body.get("entity_id")
    if mode == "edit" and not entity_id:
        return _error_response("ENTITY_ID_REQUIRED", "entity_id is required in edit mode", "entity_id")
    initial_values = body.get("initial_values")
    if initial_values is not None and not isinstance(initial_values, dict):
        return _error_response("INITIAL_VALUES_INVALID", "initial_values must be an object", "initial_values")
    session = FormSession(form_key, drafts, validate=make_form_validator(form), persist=_persist_for(form_key, form))
    try:
        session.open(mode, initial_values, entity_id)
    except StorageKeyError as exc:
        return _error_response("SESSION_INVALID", exc.message, exc.field)
    session_id = sessions.add(session)
    return _ok_response({"session": sessions.describe(session_id)}, status=201)


def _get_session(session_id: str) -> FormSession | None:
    return sessions.get(session_id)


@app.get("/sessions/{session_id}")
async def sessions_get(session_id: str) -> JSONResponse:
    if _get_session(session_id) is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    return _ok_response({"session": sessions.describe(session_id)})


@app.patch("/sessions/{session_id}/fields")
async def sessions_fields(session_id: str, request: Request) -> JSONResponse:
    session = _get_session(session_id)
    if session is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    body = await _safe_json(request)
    fields = body.get("fields")
    if not isinstance(fields, dict):
        return _error_response("FIELDS_INVALID", "fields must be an object", "fields")
    try:
        result = session.on_fields_change(fields)
    except FormSessionError as exc:
        return _session_error(exc)
    sessions.touch(session_id)
    return _ok_response({"draft_saved": result["draft_saved"], "session": sessions.describe(session_id)}, warnings=result["warnings"])


@app.post("/sessions/{session_id}/restore_draft")
async def sessions_restore(session_id: str) -> JSONResponse:
    session = _get_session(session_id)
    if session is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    try:
        result = session.restore_draft()
    except FormSessionError as exc:
        return _session_error(exc)
    if not result["ok"]:
        return _errors_response(result["errors"], status=404)
    sessions.touch(session_id)
    return _ok_response({"session": sessions.describe(session_id)})


@app.post("/sessions/{session_id}/discard_draft")
async def sessions_discard(session_id: str) -> JSONResponse:
    session = _get_session(session_id)
    if session is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    try:
        result = session.discard_draft()
    except FormSessionError as exc:
        return _session_error(exc)
    sessions.touch(session_id)
    return _ok_response({"session": sessions.describe(session_id)}, warnings=result["warnings"])


@app.post("/sessions/{session_id}/submit")
async def sessions_submit(session_id: str) -> JSONResponse:
    session = _get_session(session_id)
    if session is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    try:
        result = await anyio.to_thread.run_sync(session.submit)
    except FormSessionError as exc:
        return _session_error(exc)
    sessions.touch(session_id)
    if not result["ok"]:
        status = 502 if any(e.get("code") == "SUBMIT_FAILED" for e in result["errors"]) else 422
        return _errors_response(result["errors"], status=status)
    payload = {"record": result["record"], "session": sessions.describe(session_id)}
    sessions.discard(session_id)
    return _ok_response(payload)


@app.post("/sessions/{session_id}/close")
async def sessions_close(session_id: str) -> JSONResponse:
    session = _get_session(session_id)
    if session is None:
        return _error_response("SESSION_NOT_FOUND", "Session not found", "session_id", status=404)
    try:
        session.close()
    except FormSessionError as exc:
        return _session_error(exc)
    payload = {"session": sessions.describe(session_id)}
    sessions.discard(session_id)
    return _ok_response(payload)


# --------------------------------------------------------------- drafts


def _draft_key_from_query(form_key: str, request: Request) -> str:
    mode = request.query_params.get("mode") or "create"
    entity_id = request.query_params.get("entity_id")
    return build_storage_key(form_key, mode, entity_id if mode == "edit" else None)


@app.get("/drafts/{form_key}")
async def drafts_get(form_key: str, request: Request) -> JSONResponse:
    try:
        storage_key = _draft_key_from_query(form_key, request)
    except StorageKeyError as exc:
        return _error_response("DRAFT_KEY_INVALID", exc.message, exc.field)
    record = drafts.load(storage_key)
    return _ok_response(
        {
            "storage_key": storage_key,
            "has_data": record is not None,
            "age": drafts.get_age(storage_key) if record else None,
            "draft": record,
        }
    )


@app.delete("/drafts/{form_key}")
async def drafts_clear(form_key: str, request: Request) -> JSONResponse:
    try:
        storage_key = _draft_key_from_query(form_key, request)
    except StorageKeyError as exc:
        return _error_response("DRAFT_KEY_INVALID", exc.message, exc.field)
    result = drafts.clear(storage_key)
    return _ok_response({"storage_key": storage_key}, warnings=result["errors"])


@app.delete("/drafts")
async def drafts_clear_all() -> JSONResponse:
    result = drafts.clear_all()
    return _ok_response({"removed": result["removed"]}, warnings=result["errors"])


# ---------------------------------------------------------- table prefs


@app.get("/table_prefs/{table_id}")
async def table_prefs_get(table_id: str) -> JSONResponse:
    return _ok_response({"table_id": table_id, "preferences": table_prefs.load(table_id)})


@app.patch("/table_prefs/{table_id}")
async def table_prefs_save(table_id: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    errors = validate_preferences(body)
    if errors:
        return _errors_response(errors)
    result = table_prefs.save(table_id, body)
    return _ok_response({"table_id": table_id, "preferences": result["preferences"]}, warnings=result["errors"])


@app.delete("/table_prefs/{table_id}")
async def table_prefs_clear(table_id: str) -> JSONResponse:
    result = table_prefs.clear(table_id)
    return _ok_response({"table_id": table_id}, warnings=result["errors"])


# ------------------------------------------------------- derived views


@app.get("/sales/dispatches")
async def sales_dispatches() -> JSONResponse:
    try:
        orders = await _call_erp(erp_client.list, "sales")
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response(build_dispatches(orders))


@app.get("/sales/invoices")
async def sales_invoices() -> JSONResponse:
    try:
        orders = await _call_erp(erp_client.list, "sales")
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response(build_invoices(orders))


@app.get("/hrm/payroll/preview")
async def payroll_preview() -> JSONResponse:
    try:
        employees = await _call_erp(erp_client.list, "hrm/employees")
        departments = await _call_erp(erp_client.list, "hrm/departments")
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response(build_payroll_preview(employees, departments))


# -------------------------------------------------------- domain actions


@app.post("/sales/orders/{order_id}/dispatch")
async def sales_dispatch(order_id: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    warehouse_id = body.get("warehouse_id")
    transporter = body.get("transporter")
    if not warehouse_id or not transporter:
        return _error_response("REQUIRED_FIELD", "warehouse_id and transporter are required", "warehouse_id")
    try:
        result = await _call_erp(erp_client.dispatch_order, order_id, warehouse_id, transporter)
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"result": result})


@app.post("/rmqc/{inspection_id}/{outcome}")
async def rmqc_decide(inspection_id: str, outcome: str) -> JSONResponse:
    actions = {"pass": erp_client.pass_inspection, "fail": erp_client.fail_inspection}
    action = actions.get(outcome)
    if action is None:
        return _error_response("OUTCOME_INVALID", "outcome must be pass or fail", "outcome", status=404)
    try:
        result = await _call_erp(action, inspection_id)
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"result": result})


@app.post("/hrm/leaves/{leave_id}/{decision}")
async def leave_decide(leave_id: str, decision: str) -> JSONResponse:
    actions = {"approve": erp_client.approve_leave, "reject": erp_client.reject_leave}
    action = actions.get(decision)
    if action is None:
        return _error_response("DECISION_INVALID", "decision must be approve or reject", "decision", status=404)
    try:
        result = await _call_erp(action, leave_id)
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"result": result})


# ------------------------------------------------------------ documents


def _document_context(kind: str, record: dict) -> dict:
    if kind == "sales_invoice":
        return {"invoice_status": invoice_status(record.get("status"))}
    if kind == "dispatch_note":
        return {"dispatch_status": dispatch_status(record.get("status")) or ""}
    if kind == "payslip":
        return {"payroll": payroll_row(record)}
    return {}


@app.get("/documents/{kind}/{record_id}")
async def documents_render(kind: str, record_id: str, request: Request):
    doc = DOCUMENT_TEMPLATES.get(kind)
    if doc is None:
        return _error_response("DOCUMENT_KIND_UNKNOWN", "Unknown document kind", "kind", status=404)
    try:
        record = await _call_erp(erp_client.get, doc["resource"], record_id)
    except ErpApiError as exc:
        return _erp_error(exc)
    if not isinstance(record, dict):
        return _error_response("RECORD_NOT_FOUND", "Record not found", "record_id", status=404)
    try:
        html = render_document(kind, record, _document_context(kind, record))
    except Exception as exc:
        return _error_response("TEMPLATE_RENDER_FAILED", str(exc), None, status=400)
    if request.query_params.get("format", "html") != "pdf":
        return HTMLResponse(html)
    margins = {key: request.query_params.get(f"margin_{key}") or "12mm" for key in ("top", "right", "bottom", "left")}
    try:
        margins = normalize_margins(margins)
    except ValueError as exc:
        return _error_response("MARGINS_INVALID", str(exc), "margins", status=400)
    paper_size = request.query_params.get("paper_size") or "A4"
    try:
        pdf_bytes = await anyio.to_thread.run_sync(render_pdf, html, paper_size, margins)
    except Exception as exc:
        return _error_response("PDF_RENDER_FAILED", str(exc), None, status=500)
    filename = f"{kind}_{record_id}.pdf"
    return Response(pdf_bytes, media_type="application/pdf", headers={"Content-Disposition": f'inline; filename="{filename}"'})


# ------------------------------------------------------------- settings


@app.get("/settings/backup")
async def settings_backup_get() -> JSONResponse:
    try:
        config = await _call_erp(erp_client.get_backup_config)
    except ErpApiError as exc:
        return _erp_error(exc)
    if isinstance(config, dict) and config.get("secretAccessKey"):
        config = {**config, "secretAccessKey": "********"}
    return _ok_response({"config": config})


@app.post("/settings/backup")
async def settings_backup_save(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    errors, config = validate_record_payload(get_form("backup_settings"), body, for_create=True)
    if errors:
        return _errors_response(errors, status=422)
    try:
        await _call_erp(erp_client.save_backup_config, config)
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"saved": True})


@app.post("/settings/backup/test")
async def settings_backup_test() -> JSONResponse:
    try:
        result = await _call_erp(erp_client.test_backup)
    except ErpApiError as exc:
        return _erp_error(exc)
    return _ok_response({"result": result})
