# easy_receipt/services/lifecycle.py
from __future__ import annotations

import logging
import re
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from easy_receipt.config import settings as app_settings
from easy_receipt.models.base import SessionLocal
from easy_receipt.models.entities import (
    CONFIDENCE_FIELDS,
    EDITABLE_FIELDS,
    STATUS_APPROVED,
    STATUS_PENDING,
    Receipt,
)
from easy_receipt.services.config_store import load_config
from easy_receipt.services.errors import (
    IngestionError,
    NotFoundError,
    RecognitionError,
    ValidationError,
)
from easy_receipt.services.money import MAX_AMOUNT, D, check_vat_rate, round2
from easy_receipt.services.query import select
from easy_receipt.services.recognition import RecognitionOracle, get_oracle
from easy_receipt.services.storage import LocalBlobStore

logger = logging.getLogger(__name__)

REQUIRED_FOR_APPROVAL = ("merchant", "amount", "date")

_TEXT_LIMITS = {"merchant": 200, "invoice_number": 100}

# Zeilenumbrueche und Steuerzeichen zerlegen CSV-Zeilen und TXT-Spalten
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


# --- Feld-Parser ----------------------------------------------------------

def _parse_text(value: Any, name: str, strict: bool = True) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if _CONTROL_CHARS.search(s):
        if strict:
            raise ValidationError(f"{name} enthält Zeilenumbrüche oder Steuerzeichen.", [name])
        s = " ".join(_CONTROL_CHARS.sub(" ", s).split())
    if len(s) > _TEXT_LIMITS.get(name, 255):
        raise ValidationError(f"{name} ist zu lang (max. {_TEXT_LIMITS[name]} Zeichen).", [name])
    return s or None


def _parse_money(value: Any, name: str, strict: bool = True) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        d = D(value)
    except ValidationError:
        raise ValidationError(f"{name}: ungültiger Betrag {value!r}.", [name])
    if d < 0:
        raise ValidationError(f"{name} darf nicht negativ sein.", [name])
    if d >= MAX_AMOUNT:
        raise ValidationError(f"{name} ist zu groß (max. {MAX_AMOUNT - Decimal('0.01')}).", [name])
    rounded = round2(d)
    if d != rounded and strict:
        raise ValidationError(f"{name} hat mehr als 2 Nachkommastellen: {value!r}.", [name])
    if rounded >= MAX_AMOUNT:
        raise ValidationError(f"{name} ist zu groß (max. {MAX_AMOUNT - Decimal('0.01')}).", [name])
    return rounded



def _parse_vat_rate(value: Any) -> Optional[int]:
    return check_vat_rate(value)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d.%m.%y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            pass
    # ISO-Zeitstempel, z. B. 2024-03-01T00:00:00
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        raise ValidationError(f"date: ungültiges Datum {value!r}.", ["date"])


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in {"1", "true", "ja", "yes", "on"}:
        return True
    if s in {"0", "false", "nein", "no", "off"}:
        return False
    raise ValidationError(f"is_deductible: ungültiger Wert {value!r}.", ["is_deductible"])


def _parse_confidence(value: Any, name: str) -> int:
    if value is None:
        return 0
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise IngestionError(f"{name}: ungültige Konfidenz {value!r}.")
    if n != value and not isinstance(value, str):
        raise IngestionError(f"{name}: Konfidenz muss ganzzahlig sein, erhalten {value!r}.")
    if not 0 <= n <= 100:
        raise IngestionError(f"{name}: Konfidenz {n} ausserhalb 0-100.")
    return n


class ReceiptLifecycle:
    """
    Zustandsmaschine PENDING -> APPROVED ueber der Belegablage.

    Schreibende Operationen auf dieselbe id laufen exklusiv (ein Lock pro id),
    Lesezugriffe sehen immer einen vollstaendig geschriebenen Beleg.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        blob_store: Optional[LocalBlobStore] = None,
        oracle: Optional[RecognitionOracle] = None,
        config: Optional[Callable[[], dict]] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.blob_store = blob_store or LocalBlobStore(app_settings.UPLOAD_DIR)
        self.oracle = oracle or get_oracle()
        self._config = config or load_config
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --- Hilfen -----------------------------------------------------------

    def _lock_for(self, receipt_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(receipt_id, threading.Lock())

    def _parse_category(self, value: Any, cfg: dict, strict: bool = True) -> str:
        name = str(value).strip() if value is not None else ""
        if not name:
            return cfg["default_category"]
        if name not in cfg["categories"]:
            if strict:
                raise ValidationError(f"Unbekannte Kategorie {name!r}.", ["category"])
            return cfg["default_category"]
        return name

    def _parse_field(self, name: str, value: Any, cfg: dict, strict: bool = True) -> Any:
        if name in ("merchant", "invoice_number"):
            return _parse_text(value, name, strict=strict)
        if name in ("amount", "vat_amount"):
            return _parse_money(value, name, strict=strict)
        if name == "vat_rate":
            return _parse_vat_rate(value)
        if name == "date":
            return _parse_date(value)
        if name == "category":
            return self._parse_category(value, cfg, strict=strict)
        if name == "is_deductible":
            return True if value is None else _parse_bool(value)
        raise ValidationError(f"Feld {name!r} ist nicht änderbar.", [name])

    @staticmethod
    def _check_vat(values: Dict[str, Any]) -> None:
        rate, vat, amount = values.get("vat_rate"), values.get("vat_amount"), values.get("amount")
        if (rate is None) != (vat is None):
            raise ValidationError(
                "MwSt-Satz und MwSt-Betrag müssen gemeinsam gesetzt oder gemeinsam leer sein.",
                ["vat_rate", "vat_amount"],
            )
        if rate == 0 and vat:
            raise ValidationError("Bei 0 % MwSt muss der MwSt-Betrag 0.00 sein.", ["vat_rate", "vat_amount"])
        if vat is not None and amount is not None and vat > amount:
            raise ValidationError(
                f"MwSt-Betrag {vat} übersteigt Bruttobetrag {amount}.", ["vat_amount", "amount"]
            )

    @staticmethod
    def _check_complete(values: Dict[str, Any], receipt_id: Any) -> None:
        missing: List[str] = []
        for name in REQUIRED_FOR_APPROVAL:
            if values.get(name) in (None, ""):
                missing.append(name)
        if "amount" not in missing and values["amount"] <= 0:
            missing.append("amount")
        if missing:
            raise ValidationError(
                f"Beleg {receipt_id} kann nicht freigegeben werden, fehlend/ungültig: {', '.join(missing)}.",
                missing,
            )

    def _apply_patch(self, values: Dict[str, Any], patch: Dict[str, Any], cfg: dict) -> Dict[str, Any]:
        out = dict(values)
        problems: List[str] = []
        fields: List[str] = []
        for name, raw in patch.items():
            if name not in EDITABLE_FIELDS:
                problems.append(f"Feld {name!r} ist nicht änderbar")
                fields.append(name)
                continue
            try:
                out[name] = self._parse_field(name, raw, cfg)
            except ValidationError as exc:
                problems.append(str(exc))
                fields.extend(exc.fields or [name])
        if problems:
            raise ValidationError("; ".join(problems), fields)
        self._check_vat(out)
        return out

    def _get(self, db, receipt_id: int) -> Receipt:
        rec = db.get(Receipt, receipt_id)
        if rec is None:
            raise NotFoundError(receipt_id)
        return rec

    # --- Lesen ------------------------------------------------------------

    def get(self, receipt_id: int) -> Receipt:
        with self.session_factory() as db:
            return self._get(db, receipt_id)

    def list(self, status: Optional[str] = None, category: Optional[str] = None) -> List[Receipt]:
        with self.session_factory() as db:
            rows = db.query(Receipt).order_by(Receipt.id.asc()).all()
        return select(rows, status=status, category=category)

    def download(self, receipt_id: int) -> tuple[Receipt, bytes]:
        rec = self.get(receipt_id)
        if not rec.storage_ref:
            raise NotFoundError(receipt_id)
        return rec, self.blob_store.retrieve(rec.storage_ref)

    # --- Schreiben --------------------------------------------------------

    def create(self, fields: Dict[str, Any], confidences: Dict[str, Any], file_meta: Dict[str, Any]) -> Receipt:
        """
        Legt einen Beleg im Status PENDING an. Erkannte Felder werden
        normalisiert (Betraege gerundet, unbekannte Kategorie -> Fallback,
        unvollstaendiges MwSt-Paar verworfen); Konfidenzen bleiben unveraendert.
        """
        filename = str((file_meta or {}).get("original_filename") or "").strip()
        file_type = str((file_meta or {}).get("file_type") or "").strip()
        if not filename or not file_type:
            raise IngestionError("Dateiname und Dateityp sind erforderlich.")

        conf = {name: _parse_confidence((confidences or {}).get(name), name) for name in CONFIDENCE_FIELDS}

        cfg = self._config()
        values: Dict[str, Any] = {name: None for name in EDITABLE_FIELDS}
        for name in EDITABLE_FIELDS:
            if name not in (fields or {}):
                continue
            try:
                values[name] = self._parse_field(name, fields[name], cfg, strict=False)
            except ValidationError as exc:
                logger.warning("Erkanntes Feld %s verworfen (%s): %s", name, filename, exc)
        values["category"] = self._parse_category(values["category"], cfg, strict=False)
        if values["is_deductible"] is None:
            values["is_deductible"] = True
        try:
            self._check_vat(values)
        except ValidationError as exc:
            logger.warning("Erkannte MwSt verworfen (%s): %s", filename, exc)
            values["vat_rate"] = values["vat_amount"] = None

        rec = Receipt(
            **values,
            **conf,
            status=STATUS_PENDING,
            original_filename=filename,
            file_type=file_type,
            storage_ref=(file_meta or {}).get("storage_ref"),
            created_at=datetime.now(),
        )
        with self.session_factory() as db:
            db.add(rec)
            db.commit()
        logger.info("Beleg %s angelegt (%s, Konfidenz %s%%)", rec.id, filename, rec.confidence_overall)
        return rec

    def ingest(self, file_bytes: bytes, filename: str, mime_type: str) -> Receipt:
        """Erkennung -> Ablage -> Anlegen. Schlaegt ein Schritt fehl, bleibt nichts zurueck."""
        if not filename or not mime_type:
            raise IngestionError("Dateiname und Dateityp sind erforderlich.")
        if mime_type not in app_settings.ALLOWED_MIME_TYPES:
            raise IngestionError(f"Dateityp {mime_type} wird nicht unterstützt.")
        if not file_bytes:
            raise IngestionError("Leere Datei.")

        try:
            result = self.oracle.extract(file_bytes, mime_type)
        except RecognitionError as exc:
            logger.warning("Erkennung fehlgeschlagen fuer %s: %s", filename, exc)
            raise IngestionError(f"Erkennung fehlgeschlagen: {exc}") from exc

        ref = self.blob_store.store(file_bytes, mime_type)
        try:
            return self.create(
                result.fields,
                result.confidences,
                {"original_filename": filename, "file_type": mime_type, "storage_ref": ref},
            )
        except Exception:
            self.blob_store.discard(ref)
            raise

    def update(
        self,
        receipt_id: int,
        patch: Optional[Dict[str, Any]] = None,
        approve: bool = False,
        expect_status: Optional[str] = None,
    ) -> Receipt:
        """
        Wendet Feldaenderungen an. Status bleibt, ausser approve=True.
        Ein bereits freigegebener Beleg muss danach weiterhin vollstaendig sein.
        Mit expect_status wird der aktuelle Status unter der Sperre geprueft.
        """
        cfg = self._config()
        with self._lock_for(receipt_id):
            with self.session_factory() as db:
                rec = self._get(db, receipt_id)
                if expect_status is not None and rec.status != expect_status:
                    raise ValidationError(
                        f"Beleg {receipt_id}: Statuswechsel {rec.status} -> {expect_status} nicht erlaubt.",
                        ["status"],
                    )
                current = {name: getattr(rec, name) for name in EDITABLE_FIELDS}
                try:
                    values = self._apply_patch(current, patch or {}, cfg)
                except ValidationError as exc:
                    raise ValidationError(f"Beleg {receipt_id}: {exc}", exc.fields) from exc
                if approve or rec.status == STATUS_APPROVED:
                    self._check_complete(values, receipt_id)
                for name, value in values.items():
                    setattr(rec, name, value)
                previous = rec.status
                if approve:
                    rec.status = STATUS_APPROVED
                db.commit()
        if approve and previous != STATUS_APPROVED:
            logger.info("Beleg %s freigegeben", receipt_id)
        else:
            logger.info("Beleg %s aktualisiert (%s)", receipt_id, ", ".join(sorted(patch or {})) or "-")
        return rec

    def approve(self, receipt_id: int, patch: Optional[Dict[str, Any]] = None) -> Receipt:
        return self.update(receipt_id, patch, approve=True)

    def delete(self, receipt_id: int) -> None:
        with self._lock_for(receipt_id):
            with self.session_factory() as db:
                rec = self._get(db, receipt_id)
                ref = rec.storage_ref
                db.delete(rec)
                db.commit()
            with self._locks_guard:
                self._locks.pop(receipt_id, None)
        if ref:
            self.blob_store.discard(ref)
        logger.info("Beleg %s geloescht", receipt_id)
