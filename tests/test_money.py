"""Tests for VAT decomposition and rate split."""

from decimal import Decimal

import pytest

from easy_receipt.services.errors import ValidationError
from easy_receipt.services.money import (
    D,
    check_vat_rate,
    decompose,
    rate_label,
    round2,
    split_by_rate,
)


# ---------------------------------------------------------------------------
# decompose
# ---------------------------------------------------------------------------

def test_decompose_19_percent():
    d = decompose("119.00", 19, "19.00")
    assert d.gross == Decimal("119.00")
    assert d.vat == Decimal("19.00")
    assert d.net == Decimal("100.00")


def test_decompose_without_vat_amount_means_zero_vat():
    d = decompose(Decimal("12.50"))
    assert d.vat == Decimal("0.00")
    assert d.net == Decimal("12.50")


def test_decompose_accepts_comma_decimal():
    assert decompose("10,70", 7, "0,70").net == Decimal("10.00")


@pytest.mark.parametrize("gross,vat", [
    ("0.01", "0.00"),
    ("9.99", "1.59"),
    ("1234.56", "197.11"),
    ("100.00", "100.00"),
    ("50.05", "3.27"),
])
def test_net_plus_vat_equals_gross(gross, vat):
    d = decompose(gross, 19, vat)
    assert d.net + d.vat == d.gross


def test_round_half_away_from_zero():
    assert round2(Decimal("2.675")) == Decimal("2.68")
    assert round2(Decimal("-2.675")) == Decimal("-2.68")
    assert round2(Decimal("0.005")) == Decimal("0.01")


def test_decompose_vat_greater_than_gross_fails():
    with pytest.raises(ValidationError) as exc:
        decompose("10.00", 19, "10.01")
    assert "vat_amount" in exc.value.fields


def test_decompose_invalid_rate_fails():
    with pytest.raises(ValidationError) as exc:
        decompose("10.00", 16, "1.38")
    assert exc.value.fields == ["vat_rate"]


def test_decompose_negative_vat_fails():
    with pytest.raises(ValidationError):
        decompose("10.00", 19, "-1.00")


# ---------------------------------------------------------------------------
# split_by_rate
# ---------------------------------------------------------------------------

def test_split_19():
    s = split_by_rate(19, Decimal("19.00"))
    assert (s.vat19, s.vat7) == (Decimal("19.00"), Decimal("0.00"))


def test_split_7():
    s = split_by_rate(7, "0.70")
    assert (s.vat19, s.vat7) == (Decimal("0.00"), Decimal("0.70"))


@pytest.mark.parametrize("rate,vat", [(None, None), (0, "0.00"), (19, "3.00"), (7, "1.00")])
def test_split_never_fills_both_buckets(rate, vat):
    s = split_by_rate(rate, vat)
    assert s.vat19 == 0 or s.vat7 == 0


def test_split_unset_rate_is_all_zero():
    s = split_by_rate(None, None)
    assert s.vat19 == Decimal("0.00") and s.vat7 == Decimal("0.00")


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [("19", 19), (7, 7), ("0", 0), ("19%", 19), ("", None), (None, None)])
def test_check_vat_rate(raw, expected):
    assert check_vat_rate(raw) == expected


@pytest.mark.parametrize("raw", ["16", 7.5, "abc"])
def test_check_vat_rate_rejects(raw):
    with pytest.raises(ValidationError):
        check_vat_rate(raw)


def test_rate_label():
    assert rate_label(19) == "19%"
    assert rate_label(7) == "7%"
    assert rate_label(0) == "0%"
    assert rate_label(None) == "-"


@pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity"])
def test_D_rejects_non_numbers(raw):
    with pytest.raises(ValidationError):
        D(raw)


def test_round2_out_of_range_is_a_validation_error():
    with pytest.raises(ValidationError):
        round2(Decimal("1e30"))
    with pytest.raises(ValidationError):
        decompose("1e30", 19, "1.00")
