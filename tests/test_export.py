"""Tests for the export pipeline: row projection, CSV contract, TXT/XLSX/PDF renderers."""

import codecs
import csv
import io
import re
from datetime import datetime
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from conftest import CONF, FILE_META, make_receipt
from easy_receipt.models.entities import STATUS_APPROVED, STATUS_PENDING
from easy_receipt.services.errors import RenderError, ValidationError
from easy_receipt.services.export import (
    COLUMNS,
    export_filename,
    export_receipts,
    project_row,
    render_pdf,
)

NOW = datetime(2024, 4, 15, 9, 30)


def _csv_lines(content: bytes):
    text = content.decode("utf-8-sig")
    assert text.endswith("\n")
    return text[:-1].split("\n")


def _split(line: str):
    return [cell.strip('"') for cell in line.split(";")]


def _mixed():
    return [
        make_receipt(id=1, status=STATUS_PENDING),
        make_receipt(id=2, merchant="Aldi Süd", amount=Decimal("12.50"), vat_rate=None, vat_amount=None),
        make_receipt(id=3, status=STATUS_PENDING),
        make_receipt(id=4, merchant="Bauhaus", amount=Decimal("10.70"), vat_rate=7, vat_amount=Decimal("0.70"),
                     category="Baumarkt", invoice_number="RE-4711", is_deductible=False),
        make_receipt(id=5, status=STATUS_PENDING),
    ]


# ---------------------------------------------------------------------------
# projection
# ---------------------------------------------------------------------------

def test_project_row_19_percent():
    row = project_row(make_receipt())
    assert row.cells() == [
        "1", "Rewe", "119.00", "100.00", "19.00", "0.00", "19%",
        "2024-03-01", "Lebensmittel", "-", "Ja", "APPROVED", "02.03.2024",
    ]


def test_project_row_without_vat():
    row = project_row(make_receipt(vat_rate=None, vat_amount=None, amount=Decimal("12.50")))
    assert (row.net_amount, row.vat_at_19, row.vat_at_7, row.vat_rate_label) == (
        Decimal("12.50"), Decimal("0.00"), Decimal("0.00"), "-"
    )


def test_project_row_missing_date_and_not_deductible():
    row = project_row(make_receipt(date=None, is_deductible=False, invoice_number="A-1"))
    assert row.date == "-"
    assert row.is_deductible == "Nein"
    assert row.invoice_number == "A-1"


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

class TestCsv:
    def test_format_contract(self):
        result = export_receipts(_mixed(), "csv", now=NOW)
        assert result.content.startswith(codecs.BOM_UTF8)
        assert b"\r\n" not in result.content
        lines = _csv_lines(result.content)
        assert lines[0] == ";".join(f'"{c}"' for c in COLUMNS)
        assert all(line.startswith('"') and line.endswith('"') for line in lines)

    def test_only_approved_rows(self):
        result = export_receipts(_mixed(), "csv", now=NOW)
        lines = _csv_lines(result.content)
        assert result.row_count == 2
        assert len(lines) == 3
        assert [_split(line)[0] for line in lines[1:]] == ["2", "4"]

    def test_round_trip(self):
        records = _mixed()
        result = export_receipts(records, "csv", now=NOW)
        parsed = [_split(line) for line in _csv_lines(result.content)]
        expected = [list(COLUMNS)] + [
            project_row(r).cells() for r in records if r.status == STATUS_APPROVED
        ]
        assert parsed == expected

    def test_separator_and_quotes_in_values(self):
        # ";" und '"' bleiben im Feld; Anfuehrungszeichen werden verdoppelt
        records = [make_receipt(id=7, merchant='Bäckerei "Korn"; Filiale 2', invoice_number="A;B")]
        result = export_receipts(records, "csv", now=NOW)
        lines = _csv_lines(result.content)
        assert len(lines) == 2
        assert lines[1].startswith('"7";"Bäckerei ""Korn""; Filiale 2";')
        parsed = list(csv.reader(io.StringIO(result.content.decode("utf-8-sig")), delimiter=";"))
        assert parsed == [list(COLUMNS), project_row(records[0]).cells()]

    def test_seven_percent_row(self):
        lines = _csv_lines(export_receipts(_mixed(), "csv", now=NOW).content)
        assert _split(lines[2]) == [
            "4", "Bauhaus", "10.70", "10.00", "0.00", "0.70", "7%",
            "2024-03-01", "Baumarkt", "RE-4711", "Nein", "APPROVED", "02.03.2024",
        ]

    def test_empty_export_is_header_only(self):
        result = export_receipts([make_receipt(status=STATUS_PENDING)], "csv", now=NOW)
        assert result.empty
        assert _csv_lines(result.content) == [";".join(f'"{c}"' for c in COLUMNS)]

    def test_category_filter(self):
        result = export_receipts(_mixed(), "csv", category="Baumarkt", now=NOW)
        assert result.row_count == 1


# ---------------------------------------------------------------------------
# scenarios through the lifecycle
# ---------------------------------------------------------------------------

def test_scenario_19_percent(lifecycle):
    rec = lifecycle.create(
        {"merchant": "Rewe", "amount": "119.00", "vat_rate": 19, "vat_amount": "19.00", "date": "2024-03-01"},
        CONF, FILE_META,
    )
    lifecycle.approve(rec.id)
    text = export_receipts(lifecycle.list(), "csv", now=NOW).content.decode("utf-8-sig")
    assert '"119.00";"100.00";"19.00";"0.00";"19%"' in text


def test_scenario_no_vat(lifecycle):
    rec = lifecycle.create({}, CONF, FILE_META)
    lifecycle.approve(rec.id, {"merchant": "Aldi", "amount": "12.50", "date": "2024-03-01"})
    lines = _csv_lines(export_receipts(lifecycle.list(), "csv", now=NOW).content)
    row = dict(zip(COLUMNS, _split(lines[1])))
    assert row["vat_at_19"] == "0.00"
    assert row["vat_at_7"] == "0.00"
    assert row["vat_rate_label"] == "-"
    assert row["net_amount"] == "12.50"


def test_pending_records_are_excluded(lifecycle):
    ids = [lifecycle.create({"merchant": "M", "amount": "5.00", "date": "2024-01-0%d" % (i + 1)}, CONF, FILE_META).id
           for i in range(5)]
    lifecycle.approve(ids[1])
    lifecycle.approve(ids[3])
    for fmt in ("csv", "txt", "xlsx", "pdf"):
        assert export_receipts(lifecycle.list(), fmt, now=NOW).row_count == 2


# ---------------------------------------------------------------------------
# naming / errors
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("fmt", ["txt", "csv", "xlsx", "pdf"])
def test_filename(fmt):
    assert export_filename(fmt, NOW) == f"belege_2024-04-15.{fmt}"
    assert export_receipts([], fmt, now=NOW).filename == f"belege_2024-04-15.{fmt}"


def test_unknown_format():
    with pytest.raises(ValidationError):
        export_receipts([], "docx", now=NOW)


@pytest.mark.parametrize("fmt", ["csv", "txt"])
def test_malformed_unicode_is_render_error(fmt):
    with pytest.raises(RenderError):
        export_receipts([make_receipt(merchant="Kiosk \ud800")], fmt, now=NOW)


# ---------------------------------------------------------------------------
# TXT
# ---------------------------------------------------------------------------

def test_txt_is_column_aligned():
    text = export_receipts(_mixed(), "txt", now=NOW).content.decode("utf-8")
    lines = text.splitlines()
    assert lines[1] == "Exportiert am 15.04.2024 09:30"
    header, rule, first, second = lines[3], lines[4], lines[5], lines[6]
    assert header.startswith("id")
    # gross_amount rechtsbuendig -> Spaltenende an derselben Position
    end = header.index("gross_amount") + len("gross_amount")
    assert first[:end].endswith("12.50")
    assert second[:end].endswith("10.70")
    assert set(rule) <= {"-", " "}
    assert "Summe: 2 Belege, brutto 23.20, netto 22.50" in text


def test_txt_empty():
    text = export_receipts([], "txt", now=NOW).content.decode("utf-8")
    assert "Keine genehmigten Belege." in text


# ---------------------------------------------------------------------------
# XLSX
# ---------------------------------------------------------------------------

class TestXlsx:
    def _sheet(self, records):
        result = export_receipts(records, "xlsx", now=NOW)
        return load_workbook(io.BytesIO(result.content)).active

    def test_header_and_rows(self):
        ws = self._sheet(_mixed())
        rows = list(ws.iter_rows(values_only=True))
        assert list(rows[0]) == list(COLUMNS)
        assert len(rows) == 3
        assert rows[1][1] == "Aldi Süd"
        assert rows[1][2] == pytest.approx(12.50)
        assert rows[2][5] == pytest.approx(0.70)
        assert rows[2][6] == "7%"

    def test_merchant_width_follows_longest_name(self):
        long_name = "Bauhaus Fachcentrum Berlin-Spandau"
        ws = self._sheet([make_receipt(merchant=long_name)])
        assert ws.column_dimensions["B"].width == len(long_name) + 2

    def test_merchant_width_floor(self):
        ws = self._sheet([make_receipt(merchant="dm")])
        assert ws.column_dimensions["B"].width == 10


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

class TestPdf:
    def test_is_pdf(self):
        result = export_receipts(_mixed(), "pdf", now=NOW)
        assert result.content.startswith(b"%PDF")
        assert result.media_type == "application/pdf"

    def test_reproducible(self):
        rows = [project_row(r) for r in _mixed() if r.status == STATUS_APPROVED]
        assert render_pdf(rows, NOW) == render_pdf(rows, NOW)

    def test_paginates_long_exports(self):
        records = [make_receipt(id=i, merchant=f"Markt {i}") for i in range(1, 121)]
        content = export_receipts(records, "pdf", now=NOW).content
        pages = re.findall(rb"/Type\s*/Page(?!s)", content)
        assert len(pages) > 1

    def test_empty_pdf(self):
        result = export_receipts([], "pdf", now=NOW)
        assert result.empty
        assert result.content.startswith(b"%PDF")
