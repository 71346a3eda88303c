# easy_receipt/services/db_init.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from easy_receipt.models.base import Base, engine as default_engine
# Alle Modelle registrieren (Side-Effect-Import)
import easy_receipt.models.entities  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialisiert die DB-Struktur. Wird beim App-Startup von main.py
    und von der CLI aufgerufen.
    """
    bind = bind or default_engine
    Base.metadata.create_all(bind=bind)
    logger.info("Datenbank bereit: %s", bind.url)
