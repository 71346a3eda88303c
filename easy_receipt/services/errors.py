# easy_receipt/services/errors.py
from __future__ import annotations

from typing import Iterable, Optional


class ReceiptError(Exception):
    """Basisklasse aller fachlichen Fehler."""


class ValidationError(ReceiptError, ValueError):
    """Invariante verletzt (Feldformat, MwSt-Paar, unvollstaendig fuer Freigabe)."""

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])


class NotFoundError(ReceiptError, LookupError):
    def __init__(self, receipt_id):
        super().__init__(f"Beleg {receipt_id} nicht gefunden.")
        self.receipt_id = receipt_id


class IngestionError(ReceiptError):
    """Erkennung oder Ablage beim Anlegen fehlgeschlagen; es bleibt kein Beleg zurueck."""


class RecognitionError(ReceiptError):
    """Fehler des Erkennungsdienstes. Wird an der Grenze in IngestionError verpackt."""


class RenderError(ReceiptError):
    """Exportformat konnte nicht erzeugt werden."""
