from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, Numeric, Index

from .base import Base

# Status (Strings, konsistent mit API und Export)
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"

# Vom Nutzer aenderbare Felder (Konfidenzen/Dateidaten nie)
EDITABLE_FIELDS = (
    "merchant",
    "amount",
    "vat_rate",
    "vat_amount",
    "date",
    "category",
    "invoice_number",
    "is_deductible",
)

CONFIDENCE_FIELDS = (
    "confidence_overall",
    "confidence_merchant",
    "confidence_amount",
    "confidence_date",
)


class Receipt(Base):
    __tablename__ = "receipts"
    # ids werden nach dem Loeschen nie wiederverwendet
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    merchant = Column(String(200))
    amount = Column(Numeric(10, 2))             # brutto
    vat_rate = Column(Integer)                  # 0 | 7 | 19, NULL = unbekannt
    vat_amount = Column(Numeric(10, 2))
    date = Column(Date)
    category = Column(String(100))
    invoice_number = Column(String(100))
    is_deductible = Column(Boolean, nullable=False, default=True)
    status = Column(String(20), nullable=False, default=STATUS_PENDING)  # PENDING | APPROVED

    confidence_overall = Column(Integer, nullable=False, default=0)
    confidence_merchant = Column(Integer, nullable=False, default=0)
    confidence_amount = Column(Integer, nullable=False, default=0)
    confidence_date = Column(Integer, nullable=False, default=0)

    original_filename = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    storage_ref = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant": self.merchant,
            "amount": None if self.amount is None else f"{self.amount:.2f}",
            "vat_rate": self.vat_rate,
            "vat_amount": None if self.vat_amount is None else f"{self.vat_amount:.2f}",
            "date": self.date.isoformat() if self.date else None,
            "category": self.category,
            "invoice_number": self.invoice_number,
            "is_deductible": bool(self.is_deductible),
            "status": self.status,
            "confidence_overall": self.confidence_overall,
            "confidence_merchant": self.confidence_merchant,
            "confidence_amount": self.confidence_amount,
            "confidence_date": self.confidence_date,
            "original_filename": self.original_filename,
            "file_type": self.file_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


Index("ix_receipts_status_category", Receipt.status, Receipt.category)
