from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from easy_receipt.config import settings as app_settings


@dataclass(frozen=True)
class ReviewThresholds:
    overall_min: int = app_settings.REVIEW_OVERALL_MIN
    field_min: int = app_settings.REVIEW_FIELD_MIN

    @classmethod
    def from_config(cls, cfg: dict) -> "ReviewThresholds":
        review = cfg.get("review") or {}
        return cls(
            overall_min=int(review.get("overall_min", app_settings.REVIEW_OVERALL_MIN)),
            field_min=int(review.get("field_min", app_settings.REVIEW_FIELD_MIN)),
        )


# Feld -> zugehoerige Konfidenz
_FIELD_CONFIDENCE = (
    ("merchant", "confidence_merchant"),
    ("amount", "confidence_amount"),
    ("date", "confidence_date"),
)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def needs_review(record: Any, thresholds: Optional[ReviewThresholds] = None) -> bool:
    """
    Entscheidet, ob ein erkannter Beleg manuell geprueft werden muss:
    - Gesamt-Konfidenz unter overall_min
    - Haendler, Betrag oder Datum fehlt
    - ein vorhandenes Feld hat eine Konfidenz unter field_min
    """
    t = thresholds or ReviewThresholds()
    if (getattr(record, "confidence_overall", None) or 0) < t.overall_min:
        return True
    for field, conf_field in _FIELD_CONFIDENCE:
        value = getattr(record, field, None)
        if _is_empty(value):
            return True
        if (getattr(record, conf_field, None) or 0) < t.field_min:
            return True
    return False
