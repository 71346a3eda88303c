from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Optional

from easy_receipt.models.entities import STATUS_APPROVED, STATUS_PENDING
from easy_receipt.services.money import round2
from easy_receipt.services.review import ReviewThresholds, needs_review


def select(records: Iterable[Any], status: Optional[str] = None, category: Optional[str] = None) -> List[Any]:
    """Filtert nach Status (Gross-/Kleinschreibung egal) und Kategorie, Reihenfolge bleibt erhalten."""
    want_status = status.strip().upper() if status and status.strip() else None
    if want_status == "ALL":
        want_status = None
    want_category = category if category else None
    out = []
    for r in records:
        if want_status and (r.status or "").upper() != want_status:
            continue
        if want_category and r.category != want_category:
            continue
        out.append(r)
    return out


def summarize(records: Iterable[Any], thresholds: Optional[ReviewThresholds] = None) -> dict:
    total = pending = approved = flagged = 0
    total_amount = Decimal("0")
    approved_amount = Decimal("0")
    for r in records:
        total += 1
        amount = r.amount if r.amount is not None else Decimal("0")
        total_amount += amount
        if r.status == STATUS_APPROVED:
            approved += 1
            approved_amount += amount
        elif r.status == STATUS_PENDING:
            pending += 1
            if needs_review(r, thresholds):
                flagged += 1
    return {
        "total": total,
        "pending": pending,
        "approved": approved,
        "needs_review": flagged,
        "total_amount": f"{round2(total_amount):.2f}",
        "approved_amount": f"{round2(approved_amount):.2f}",
    }
