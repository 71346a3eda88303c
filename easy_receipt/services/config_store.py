# easy_receipt/services/config_store.py
from __future__ import annotations

import json
import logging
from pathlib import Path

from easy_receipt.config import settings as app_settings

logger = logging.getLogger(__name__)


def _default_config() -> dict:
    """
    Erzeugt eine Default-Konfiguration basierend auf den Settings.
    """
    return {
        "review": {
            "overall_min": app_settings.REVIEW_OVERALL_MIN,
            "field_min": app_settings.REVIEW_FIELD_MIN,
        },
        "categories": app_settings.get_categories(),
        "default_category": app_settings.DEFAULT_CATEGORY,
    }


def load_config() -> dict:
    path = Path(app_settings.CONFIG_PATH)
    if not path.exists():
        cfg = _default_config()
        save_config(cfg)
        return cfg
    try:
        return sanitize_config(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as exc:
        # Fallback auf Default, wenn Datei defekt ist
        logger.warning("Konfiguration %s defekt (%s), schreibe Defaults", path, exc)
        cfg = _default_config()
        save_config(cfg)
        return cfg


def save_config(cfg: dict) -> None:
    path = Path(app_settings.CONFIG_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2, ensure_ascii=False), encoding="utf-8")


def _threshold(value, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, min(100, n))


def sanitize_config(cfg: dict) -> dict:
    """
    Stellt sicher, dass nur bekannte Keys enthalten sind.
    Fehlende Keys werden mit Defaults aufgefuellt, Schwellwerte auf 0-100 begrenzt.
    """
    base = _default_config()
    review = cfg.get("review") or {}
    clean_review = {
        k: _threshold(review.get(k, v), v) for k, v in base["review"].items()
    }

    cats = cfg.get("categories")
    clean_cats: list[str] = []
    if isinstance(cats, list):
        for c in cats:
            name = str(c).strip()
            if name and name not in clean_cats:
                clean_cats.append(name)
    if not clean_cats:
        clean_cats = base["categories"]

    fallback = str(cfg.get("default_category") or "").strip() or base["default_category"]
    if fallback not in clean_cats:
        clean_cats.append(fallback)

    return {"review": clean_review, "categories": clean_cats, "default_category": fallback}
