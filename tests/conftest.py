import os
from datetime import date, datetime
from decimal import Decimal

# vor dem Import des Pakets: In-Memory-DB, kein Erkennungsdienst
os.environ["EASY_RECEIPT_DATABASE_URL"] = "sqlite://"
os.environ["EASY_RECEIPT_RECOGNITION_URL"] = ""

import pytest

from easy_receipt.config import settings as app_settings
from easy_receipt.models.base import Base, build_engine, make_session_factory
from easy_receipt.models.entities import STATUS_APPROVED, Receipt
from easy_receipt.services.config_store import sanitize_config
from easy_receipt.services.errors import RecognitionError
from easy_receipt.services.lifecycle import ReceiptLifecycle
from easy_receipt.services.recognition import RecognitionOracle, RecognitionResult
from easy_receipt.services.storage import LocalBlobStore


class FakeOracle(RecognitionOracle):
    """Liefert ein festes Ergebnis oder wirft einen vorgegebenen Fehler."""

    def __init__(self, fields=None, confidences=None, error=None):
        self.fields = fields or {}
        self.confidences = confidences or {
            "confidence_overall": 90,
            "confidence_merchant": 90,
            "confidence_amount": 90,
            "confidence_date": 90,
        }
        self.error = error
        self.calls = 0

    def extract(self, file_bytes, mime_type):
        self.calls += 1
        if self.error:
            raise RecognitionError(self.error)
        return RecognitionResult(fields=dict(self.fields), confidences=dict(self.confidences))


def make_receipt(**kw):
    """Transienter Beleg fuer reine Funktionen (Router, Filter, Export)."""
    values = dict(
        id=1,
        merchant="Rewe",
        amount=Decimal("119.00"),
        vat_rate=19,
        vat_amount=Decimal("19.00"),
        date=date(2024, 3, 1),
        category="Lebensmittel",
        invoice_number=None,
        is_deductible=True,
        status=STATUS_APPROVED,
        confidence_overall=95,
        confidence_merchant=95,
        confidence_amount=95,
        confidence_date=95,
        original_filename="bon.jpg",
        file_type="image/jpeg",
        created_at=datetime(2024, 3, 2, 10, 30),
    )
    values.update(kw)
    return Receipt(**values)


@pytest.fixture(autouse=True)
def _isolated_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(app_settings, "CONFIG_PATH", str(tmp_path / "config.json"))
    monkeypatch.setattr(app_settings, "UPLOAD_DIR", str(tmp_path / "uploads"))


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def lifecycle(session_factory, blob_store, oracle):
    return ReceiptLifecycle(
        session_factory=session_factory,
        blob_store=blob_store,
        oracle=oracle,
        config=lambda: sanitize_config({}),
    )


FILE_META = {"original_filename": "bon.jpg", "file_type": "image/jpeg"}

CONF = {
    "confidence_overall": 88,
    "confidence_merchant": 91,
    "confidence_amount": 72,
    "confidence_date": 65,
}
