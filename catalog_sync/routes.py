#=======================================================================================
# catalog_sync/routes.py
# Inbound trigger for the sync engine.
#   POST /api/sync   action = full_sync | stock_sync | test_connection | clear_logs
#   GET  /api/logs   stored sync log entries, newest first
# Responses use the envelope {success, data}.
#=======================================================================================

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from catalog_sync.auth import verify_token
from catalog_sync.mapping.mapping_store import SYNC_DATE_FORMAT
from catalog_sync.result import ApiResult
from catalog_sync.service import SyncService, get_service

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["Catalog Sync"])

LAST_SYNC_FORMAT = "%d.%m.%Y. %H:%M"
ACTIONS = ("full_sync", "stock_sync", "test_connection", "clear_logs")


# ---------------------------
# Helpers
# ---------------------------
async def _safe_payload(req: Request) -> Dict[str, Any]:
    """JSON body, else form fields, else empty."""
    content_type = req.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = await req.json()
            return data if isinstance(data, dict) else {}
        except Exception:
            return {}
    try:
        form = await req.form()
        return dict(form)
    except Exception:
        try:
            raw = (await req.body()).decode("utf-8", "ignore")
            return json.loads(raw) if raw.strip() else {}
        except Exception:
            return {}


def _get_bool(payload: Dict[str, Any], key: str, default: bool = False) -> bool:
    v = payload.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


def _product_id(payload: Dict[str, Any]) -> Optional[int]:
    try:
        pid = int(payload.get("product_id") or 0)
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def _ok(data: Any) -> JSONResponse:
    return JSONResponse({"success": True, "data": data})


def _error(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "data": message})


def format_last_sync(stamp: Optional[str]) -> str:
    try:
        return datetime.strptime(stamp or "", SYNC_DATE_FORMAT).strftime(LAST_SYNC_FORMAT)
    except ValueError:
        return datetime.now().strftime(LAST_SYNC_FORMAT)


def _sync_response(res: ApiResult, message: str) -> JSONResponse:
    if not res.ok:
        return _error(res.message)
    return _ok({
        "message": message,
        "last_sync": format_last_sync(res.extra.get("synced_at")),
        "steps": [s.model_dump() for s in res.value.steps],
    })


# ---------------------------
# Routes
# ---------------------------
@router.post("/sync")
async def sync_action(request: Request, service: SyncService = Depends(get_service)):
    payload = await _safe_payload(request)
    action = str(payload.get("action") or "").strip()

    if not verify_token(payload.get("token"), service.token_secret):
        logger.warning("[SYNC] rejected %s: invalid token", action or "<none>")
        return _error("Invalid security token", 403)
    if action not in ACTIONS:
        return _error(f"Unknown action: {action}", 400)

    if action == "clear_logs":
        service.clear_logs()
        return _ok({"message": "Logs cleared"})

    if action == "test_connection":
        test_type = str(payload.get("test_type") or "rest").strip().lower()
        res = await service.test_connection(test_type)
        if not res.ok:
            return _error(f"Connection failed: {res.message}")
        return _ok({"message": "Connection successful", "test_type": test_type})

    product_id = _product_id(payload)
    if product_id is None:
        return _error("Invalid product ID", 400)

    if action == "stock_sync":
        res = await service.stock_sync(product_id)
        return _sync_response(res, "Product stock synchronized")

    res = await service.full_sync(product_id, skip_images=_get_bool(payload, "skip_images"))
    if res.ok and res.value.action == "updated":
        return _sync_response(res, "Product updated")
    return _sync_response(res, "Product synchronized")


@router.get("/logs")
async def list_logs(
    limit: int = Query(50, ge=1, le=500),
    level: Optional[str] = Query(None),
    service: SyncService = Depends(get_service),
):
    return _ok(service.log_store.entries(limit=limit, level=level or None))
