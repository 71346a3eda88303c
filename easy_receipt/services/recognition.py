# easy_receipt/services/recognition.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from easy_receipt.config import settings as app_settings
from easy_receipt.services.errors import RecognitionError

logger = logging.getLogger(__name__)

# Antwort des Erkennungsdienstes (camelCase) -> Feldnamen der Ablage
_FIELD_MAP = {
    "merchant": "merchant",
    "amount": "amount",
    "date": "date",
    "vatRate": "vat_rate",
    "vatAmount": "vat_amount",
    "invoiceNumber": "invoice_number",
    "category": "category",
}

_CONFIDENCE_MAP = {
    "confidenceOverall": "confidence_overall",
    "confidenceMerchant": "confidence_merchant",
    "confidenceAmount": "confidence_amount",
    "confidenceDate": "confidence_date",
}


@dataclass
class RecognitionResult:
    fields: Dict[str, Any] = field(default_factory=dict)
    confidences: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RecognitionResult":
        if not isinstance(payload, dict):
            raise RecognitionError("Antwort des Erkennungsdienstes ist kein Objekt.")
        # manche Dienste verpacken das Ergebnis in "data"
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        fields = {}
        for src, dst in _FIELD_MAP.items():
            value = data.get(src, data.get(dst))
            if value not in (None, ""):
                fields[dst] = value
        confidences = {}
        for src, dst in _CONFIDENCE_MAP.items():
            confidences[dst] = data.get(src, data.get(dst, 0))
        return cls(fields=fields, confidences=confidences)


class RecognitionOracle:
    """Schnittstelle: extract(bytes, mime) -> RecognitionResult oder RecognitionError."""

    def extract(self, file_bytes: bytes, mime_type: str) -> RecognitionResult:
        raise NotImplementedError


class ManualEntryOracle(RecognitionOracle):
    """Ohne Erkennungsdienst: keine Felder, Konfidenz 0 -> immer manuelle Pruefung."""

    def extract(self, file_bytes: bytes, mime_type: str) -> RecognitionResult:
        return RecognitionResult(
            fields={},
            confidences={k: 0 for k in _CONFIDENCE_MAP.values()},
        )


class HttpRecognitionOracle(RecognitionOracle):
    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 30.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def extract(self, file_bytes: bytes, mime_type: str) -> RecognitionResult:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = requests.post(
                self.url,
                files={"file": ("receipt", file_bytes, mime_type)},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Erkennungsdienst nicht erreichbar: %s", exc)
            raise RecognitionError(f"Erkennungsdienst nicht erreichbar: {exc}") from exc

        if resp.status_code >= 300:
            raise RecognitionError(f"Erkennungsdienst antwortet mit Status {resp.status_code}.")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RecognitionError("Antwort des Erkennungsdienstes ist kein JSON.") from exc
        if isinstance(payload, dict) and payload.get("error"):
            raise RecognitionError(str(payload["error"]))
        return RecognitionResult.from_payload(payload)


def get_oracle() -> RecognitionOracle:
    if app_settings.RECOGNITION_URL:
        return HttpRecognitionOracle(
            app_settings.RECOGNITION_URL,
            api_key=app_settings.RECOGNITION_API_KEY or None,
            timeout=app_settings.RECOGNITION_TIMEOUT,
        )
    logger.info("Kein Erkennungsdienst konfiguriert, Belege werden manuell erfasst")
    return ManualEntryOracle()
