# easy_receipt/config/settings.py
from __future__ import annotations

import os

APP_NAME: str = "Easy Receipt"

# Dateinamen der Exporte: <EXPORT_PREFIX>_<YYYY-MM-DD>.<ext>
EXPORT_PREFIX: str = os.getenv("EASY_RECEIPT_EXPORT_PREFIX", "belege")

# DB-URL (sqlite Datei liegt unter ./db/, "sqlite://" = In-Memory)
DATABASE_URL: str = os.getenv("EASY_RECEIPT_DATABASE_URL", "sqlite:///./db/easy_receipt.db")

# Ablage der Originaldateien (Bilder/PDF)
UPLOAD_DIR: str = os.getenv("EASY_RECEIPT_UPLOAD_DIR", "./data/uploads")

# Laufzeit-Konfiguration (Schwellwerte, Kategorien) als JSON
CONFIG_PATH: str = os.getenv("EASY_RECEIPT_CONFIG_PATH", "./data/config.json")

# Texterkennung: leer = manuelle Erfassung ohne Erkennungsdienst
RECOGNITION_URL: str = os.getenv("EASY_RECEIPT_RECOGNITION_URL", "")
RECOGNITION_API_KEY: str = os.getenv("EASY_RECEIPT_RECOGNITION_API_KEY", "")
RECOGNITION_TIMEOUT: float = float(os.getenv("EASY_RECEIPT_RECOGNITION_TIMEOUT", "30"))

ALLOWED_MIME_TYPES: tuple[str, ...] = ("application/pdf", "image/jpeg", "image/png")

# Prüf-Schwellwerte (Default, per config.json übersteuerbar)
REVIEW_OVERALL_MIN: int = 80
REVIEW_FIELD_MIN: int = 60

DEFAULT_CATEGORY: str = "Sonstige"


def get_categories() -> list[str]:
    """
    Standard-Kategorien der Belegerfassung. Per config.json erweiterbar.
    """
    return [
        "Geschäftlich",
        "Privat",
        "Lebensmittel",
        "Baumarkt",
        "Baustoff",
        "Tankstelle",
        "Möbel",
        "Elektronik",
        "Telekommunikation",
        "Energie",
        "Entsorgung",
        "Drogerie",
        "Werkzeug",
        "KFZ",
        "Bürobedarf",
        "Sonstige",
    ]
