"""Tests for status/category filtering and statistics."""

from decimal import Decimal

from conftest import make_receipt
from easy_receipt.models.entities import STATUS_APPROVED, STATUS_PENDING
from easy_receipt.services.query import select, summarize


def _records():
    return [
        make_receipt(id=1, status=STATUS_PENDING, category="Lebensmittel"),
        make_receipt(id=2, status=STATUS_APPROVED, category="KFZ"),
        make_receipt(id=3, status=STATUS_APPROVED, category="Lebensmittel"),
        make_receipt(id=4, status=STATUS_PENDING, category="KFZ", confidence_overall=40),
    ]


def test_select_without_filter_returns_all_in_order():
    assert [r.id for r in select(_records())] == [1, 2, 3, 4]


def test_select_status_is_case_insensitive():
    assert [r.id for r in select(_records(), status="approved")] == [2, 3]
    assert [r.id for r in select(_records(), status="Pending")] == [1, 4]


def test_select_all_keyword():
    assert len(select(_records(), status="ALL")) == 4


def test_select_category():
    assert [r.id for r in select(_records(), category="KFZ")] == [2, 4]


def test_select_status_and_category():
    assert [r.id for r in select(_records(), status="APPROVED", category="Lebensmittel")] == [3]


def test_select_does_not_modify_input():
    records = _records()
    select(records, status="APPROVED")
    assert len(records) == 4


def test_summarize():
    stats = summarize(_records())
    assert stats["total"] == 4
    assert stats["pending"] == 2
    assert stats["approved"] == 2
    assert stats["needs_review"] == 1
    assert stats["total_amount"] == "476.00"
    assert stats["approved_amount"] == "238.00"


def test_summarize_empty():
    assert summarize([]) == {
        "total": 0,
        "pending": 0,
        "approved": 0,
        "needs_review": 0,
        "total_amount": "0.00",
        "approved_amount": "0.00",
    }


def test_summarize_ignores_missing_amount():
    stats = summarize([make_receipt(amount=None, vat_rate=None, vat_amount=None, status=STATUS_PENDING)])
    assert stats["total_amount"] == "0.00"
    assert Decimal(stats["total_amount"]) == 0
