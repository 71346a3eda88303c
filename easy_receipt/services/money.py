from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from easy_receipt.services.errors import ValidationError

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")

# Obergrenze fuer Betraege, passend zu Numeric(10,2)
MAX_AMOUNT = Decimal("100000000")

VAT_RATES = (0, 7, 19)


def D(x: Any) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if isinstance(x, str):
        x = x.strip().replace(",", ".")
    try:
        value = Decimal(str(x))
    except InvalidOperation:
        raise ValidationError(f"Ungültiger Betrag: {x!r}")
    if not value.is_finite():
        raise ValidationError(f"Ungültiger Betrag: {x!r}")
    return value


def round2(x: Decimal) -> Decimal:
    # ROUND_HALF_UP rundet bei Decimal vom Nullpunkt weg
    try:
        return x.quantize(Q2, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Betrag ausserhalb des zulässigen Bereichs: {x}")


def check_vat_rate(rate: Any) -> Optional[int]:
    """Normalisiert einen MwSt-Satz auf 0/7/19 oder None (unbekannt)."""
    if rate is None or rate == "":
        return None
    try:
        value = D(str(rate).rstrip("%"))
    except ValidationError:
        raise ValidationError(f"Ungültiger MwSt-Satz: {rate!r}", ["vat_rate"])
    if value != value.to_integral_value() or int(value) not in VAT_RATES:
        raise ValidationError(f"MwSt-Satz {rate!r} nicht erlaubt (0, 7 oder 19).", ["vat_rate"])
    return int(value)


@dataclass(frozen=True)
class Decomposition:
    gross: Decimal
    vat: Decimal
    net: Decimal


@dataclass(frozen=True)
class VatSplit:
    vat19: Decimal
    vat7: Decimal


def decompose(gross: Any, vat_rate: Any = None, vat_amount: Any = None) -> Decomposition:
    """
    Zerlegt einen Bruttobetrag in Netto und MwSt.
    Ohne MwSt-Betrag gilt vat = 0. net = gross - vat, kaufmaennisch gerundet.
    """
    check_vat_rate(vat_rate)
    g = round2(D(gross))
    vat = ZERO if vat_amount is None else round2(D(vat_amount))
    if vat < 0:
        raise ValidationError("MwSt-Betrag darf nicht negativ sein.", ["vat_amount"])
    if vat > g:
        raise ValidationError(
            f"MwSt-Betrag {vat} übersteigt Bruttobetrag {g}.", ["vat_amount", "amount"]
        )
    return Decomposition(gross=g, vat=vat, net=round2(g - vat))


def split_by_rate(vat_rate: Any, vat_amount: Any) -> VatSplit:
    """Verteilt den MwSt-Betrag auf die Spalten 19 % und 7 %. Hoechstens eine ist belegt."""
    rate = check_vat_rate(vat_rate)
    vat = ZERO if vat_amount is None else round2(D(vat_amount))
    if rate == 19:
        return VatSplit(vat19=vat, vat7=ZERO)
    if rate == 7:
        return VatSplit(vat19=ZERO, vat7=vat)
    return VatSplit(vat19=ZERO, vat7=ZERO)


def rate_label(vat_rate: Optional[int]) -> str:
    return "-" if vat_rate is None else f"{vat_rate}%"
