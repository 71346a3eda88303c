# easy_receipt/services/storage.py
from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Union

from easy_receipt.services.errors import IngestionError, NotFoundError

logger = logging.getLogger(__name__)

_EXT = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}

_REF_RE = re.compile(r"^[0-9a-f]{32}\.[a-z]{2,4}$")


class LocalBlobStore:
    """
    Legt Originaldateien unter einem Ordner ab. Referenzen sind opake
    Dateinamen (uuid + Endung); der Inhalt wird nie ausgewertet.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, ref: str) -> Path:
        if not ref or not _REF_RE.match(ref):
            raise NotFoundError(ref)
        return self.root / ref

    def store(self, data: bytes, mime_type: str) -> str:
        ref = f"{uuid.uuid4().hex}{_EXT.get(mime_type, '.bin')}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / ref).write_bytes(data)
        except OSError as exc:
            raise IngestionError(f"Datei konnte nicht gespeichert werden: {exc}") from exc
        return ref

    def retrieve(self, ref: str) -> bytes:
        path = self._path(ref)
        if not path.is_file():
            raise NotFoundError(ref)
        return path.read_bytes()

    def discard(self, ref: str) -> None:
        try:
            self._path(ref).unlink(missing_ok=True)
        except (OSError, NotFoundError) as exc:
            logger.warning("Ablage %s konnte nicht entfernt werden: %s", ref, exc)
