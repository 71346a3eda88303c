from __future__ import annotations

import logging
from typing import Any, Optional, Union
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from easy_receipt.config import settings as app_settings
from easy_receipt.models.entities import STATUS_APPROVED, Receipt
from easy_receipt.services.config_store import load_config, sanitize_config, save_config
from easy_receipt.services.db_init import init_db
from easy_receipt.services.errors import (
    IngestionError,
    NotFoundError,
    RecognitionError,
    RenderError,
    ValidationError,
)
from easy_receipt.services.export import export_receipts
from easy_receipt.services.lifecycle import ReceiptLifecycle
from easy_receipt.services.money import decompose
from easy_receipt.services.query import summarize
from easy_receipt.services.review import ReviewThresholds, needs_review

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("easy-receipt")

# ------------------------------------------------------------------------------
# App
# ------------------------------------------------------------------------------
APP_VERSION = "v1.0"
app = FastAPI(title=app_settings.APP_NAME, version=APP_VERSION)

_lifecycle: Optional[ReceiptLifecycle] = None


def get_lifecycle() -> ReceiptLifecycle:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = ReceiptLifecycle()
    return _lifecycle


@app.on_event("startup")
def _startup():
    init_db()
    logger.info("%s %s gestartet", app_settings.APP_NAME, APP_VERSION)


# ------------------------------------------------------------------------------
# Fehlerabbildung
# ------------------------------------------------------------------------------
@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse({"ok": False, "error": str(exc), "fields": exc.fields}, status_code=422)


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse({"ok": False, "error": str(exc), "id": exc.receipt_id}, status_code=404)


@app.exception_handler(IngestionError)
async def _ingestion_error(request: Request, exc: IngestionError):
    # Erkennungsdienst gestoert -> 502, sonst fehlerhafte Anfrage
    code = 502 if isinstance(exc.__cause__, RecognitionError) else 400
    return JSONResponse({"ok": False, "success": False, "error": str(exc)}, status_code=code)


@app.exception_handler(RenderError)
async def _render_error(request: Request, exc: RenderError):
    return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)


# ------------------------------------------------------------------------------
# Schemas / Uebersetzung API <-> Ablage
# ------------------------------------------------------------------------------
Scalar = Union[str, int, float, bool, None]


class ReceiptPatch(BaseModel):
    """Nur aenderbare Felder; Konfidenzen, Dateidaten und id werden ignoriert."""
    merchant: Optional[str] = None
    amount: Scalar = None
    vat_rate: Scalar = None
    vat_amount: Scalar = None
    date: Optional[str] = None
    category: Optional[str] = None
    invoice_number: Optional[str] = None
    is_deductible: Scalar = None
    status: Optional[str] = None

    def split(self) -> tuple[dict, Optional[str]]:
        data = self.model_dump(exclude_unset=True)
        status = data.pop("status", None)
        return data, (status.strip().upper() if isinstance(status, str) and status.strip() else None)


def _out(rec: Receipt, thresholds: ReviewThresholds) -> dict:
    data = rec.to_dict()
    net = None
    if rec.amount is not None:
        net = f"{decompose(rec.amount, rec.vat_rate, rec.vat_amount).net:.2f}"
    data["net_amount"] = net
    data["needs_review"] = rec.status != STATUS_APPROVED and needs_review(rec, thresholds)
    return data


def _thresholds() -> ReviewThresholds:
    return ReviewThresholds.from_config(load_config())


# ------------------------------------------------------------------------------
# Belege
# ------------------------------------------------------------------------------
@app.get("/api/receipts")
def list_receipts(status: Optional[str] = None, category: Optional[str] = None,
                  lc: ReceiptLifecycle = Depends(get_lifecycle)):
    t = _thresholds()
    return [_out(r, t) for r in lc.list(status=status, category=category)]


@app.get("/api/receipts/stats")
def receipt_stats(lc: ReceiptLifecycle = Depends(get_lifecycle)):
    return summarize(lc.list(), _thresholds())


@app.get("/api/receipts/export/{fmt}")
def export(fmt: str, category: Optional[str] = None, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    result = export_receipts(lc.list(), fmt, category=category)
    headers = {
        "Content-Disposition": f'attachment; filename="{result.filename}"',
        "X-Export-Rows": str(result.row_count),
    }
    return Response(content=result.content, media_type=result.media_type, headers=headers)


@app.post("/api/receipts/upload")
def upload_receipt(file: UploadFile = File(...), lc: ReceiptLifecycle = Depends(get_lifecycle)):
    data = file.file.read()
    rec = lc.ingest(data, file.filename or "", file.content_type or "")
    out = _out(rec, _thresholds())
    return {"success": True, "receiptId": rec.id, "needs_review": out["needs_review"], "receipt": out}


@app.get("/api/receipts/{rid}")
def get_receipt(rid: int, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    return _out(lc.get(rid), _thresholds())


@app.put("/api/receipts/{rid}")
def update_receipt(rid: int, body: ReceiptPatch, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    patch, status = body.split()
    if status == STATUS_APPROVED:
        rec = lc.approve(rid, patch)
    else:
        # gleicher Status ist erlaubt, jeder andere Wechsel nicht
        rec = lc.update(rid, patch, expect_status=status)
    return _out(rec, _thresholds())


@app.post("/api/receipts/{rid}/approve")
def approve_receipt(rid: int, body: Optional[ReceiptPatch] = None, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    patch = body.split()[0] if body is not None else {}
    return _out(lc.approve(rid, patch), _thresholds())


@app.delete("/api/receipts/{rid}")
def delete_receipt(rid: int, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    lc.delete(rid)
    return {"ok": True, "id": rid}


@app.get("/api/receipts/{rid}/download")
def download_receipt(rid: int, lc: ReceiptLifecycle = Depends(get_lifecycle)):
    rec, data = lc.download(rid)
    return Response(
        content=data,
        media_type=rec.file_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(rec.original_filename)}"},
    )


# ------------------------------------------------------------------------------
# Einstellungen (Schwellwerte, Kategorien)
# ------------------------------------------------------------------------------
@app.get("/api/settings")
def get_settings():
    return load_config()


@app.put("/api/settings")
def put_settings(cfg: dict[str, Any]):
    clean = sanitize_config(cfg)
    save_config(clean)
    return clean


# ------------------------------------------------------------------------------
# Dev-Server
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
