"""
Kommandozeile fuer Export und Belegliste.

    python -m easy_receipt.cli export --format csv --out ./exporte
    python -m easy_receipt.cli list --status pending
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from easy_receipt.services.db_init import init_db
from easy_receipt.services.errors import RenderError, ValidationError
from easy_receipt.services.export import FORMATS, export_receipts
from easy_receipt.services.lifecycle import ReceiptLifecycle

NOTHING_TO_EXPORT = "Keine genehmigten Belege zum Exportieren."


def _cmd_export(args, lifecycle: ReceiptLifecycle) -> int:
    records = lifecycle.list()
    try:
        result = export_receipts(records, args.format, category=args.category)
    except RenderError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2
    if result.empty:
        print(NOTHING_TO_EXPORT)
        return 0
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / result.filename
    target.write_bytes(result.content)
    print(f"{result.row_count} Belege exportiert: {target}")
    return 0


def _cmd_list(args, lifecycle: ReceiptLifecycle) -> int:
    for r in lifecycle.list(status=args.status, category=args.category):
        amount = f"{r.amount:.2f}" if r.amount is not None else "-"
        print(f"{r.id:>5}  {r.status:<8}  {r.date or '-'!s:<10}  {amount:>10}  {r.merchant or '-'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="easy-receipt", description="Belege exportieren und auflisten")
    sub = parser.add_subparsers(dest="command", required=True)

    p_exp = sub.add_parser("export", help="Freigegebene Belege exportieren")
    p_exp.add_argument("--format", choices=sorted(FORMATS), default="csv")
    p_exp.add_argument("--out", default=".", help="Zielordner")
    p_exp.add_argument("--category", default=None)

    p_list = sub.add_parser("list", help="Belege auflisten")
    p_list.add_argument("--status", default=None)
    p_list.add_argument("--category", default=None)
    return parser


def main(argv: Optional[List[str]] = None, lifecycle: Optional[ReceiptLifecycle] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    if lifecycle is None:
        init_db()
        lifecycle = ReceiptLifecycle()
    try:
        if args.command == "export":
            return _cmd_export(args, lifecycle)
        return _cmd_list(args, lifecycle)
    except ValidationError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
