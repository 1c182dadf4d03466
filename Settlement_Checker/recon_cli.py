#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from pdf_pipeline import PDF_BACKENDS
from recon_pipeline import DEFAULT_TOTAL_COL, DEFAULT_VOUCHER_COL
from records import UploadedFile
from run_pipeline import NoTransactionsError, ReconConfig, run_reconciliation
from schedule_io import SCHEDULE_EXTS, default_output_name, read_schedule, write_reconciled

LOG_EXTS = {".txt", ".msg", ".pdf"}

def _is_tmp(p: Path) -> bool:
    return p.name.startswith("~$")

def collect_log_files(paths: List[Path]) -> List[Path]:
    """Expand folders (recursively) into log/statement files, keeping the given order."""
    out: List[Path] = []
    for path in paths:
        if path.is_dir():
            out.extend(sorted(
                p for p in path.rglob("*")
                if p.is_file() and not _is_tmp(p) and p.suffix.lower() in LOG_EXTS
            ))
        elif path.is_file():
            out.append(path)
        else:
            raise FileNotFoundError(path)
    return out

def discover_files(root: Path) -> dict:
    """
    Scan a folder tree and guess:
      - schedule: the payment schedule workbook (xlsx/xls/csv)
      - logs: every .txt / .msg / .pdf below the folder
    """
    root = Path(root)
    all_files = [p for p in root.rglob("*") if p.is_file() and not _is_tmp(p)]

    def _schedule_rank(p: Path) -> tuple:
        n = p.name.lower()
        primary = 0 if any(k in n for k in ("schedule", "payment", "voucher")) else 1
        # prefer workbooks over CSV when same primary rank
        secondary = 1 if p.suffix.lower() == ".csv" else 0
        return (primary, secondary, len(n))

    schedule_cands = [
        p for p in all_files
        if p.suffix.lower() in SCHEDULE_EXTS and not p.name.lower().startswith("processed_payment_data")
    ]
    schedule_cands.sort(key=_schedule_rank)

    logs = sorted(p for p in all_files if p.suffix.lower() in LOG_EXTS)
    return {
        "schedule": schedule_cands[0] if schedule_cands else None,
        "logs": logs,
    }

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="settlement-checker")
    ap.add_argument("--auto-input", help="Folder to auto-discover the schedule workbook and transaction logs")
    ap.add_argument("--schedule", help="Payment schedule workbook (.xlsx/.xls/.csv)")
    ap.add_argument("--logs", nargs="+", default=[], help="Log files or folders (.txt, .msg, .pdf)")
    ap.add_argument("--out", help="Output workbook path (default: processed_payment_data_<date>_<time>.xlsx)")
    ap.add_argument("--voucher-col", default=DEFAULT_VOUCHER_COL, help="Schedule column holding the voucher number")
    ap.add_argument("--total-col", default=DEFAULT_TOTAL_COL, help="Schedule column holding the existing total")
    ap.add_argument("--pdf-backend", default="pymupdf", choices=list(PDF_BACKENDS), help="Library used to decrypt statement PDFs")
    return ap.parse_args(argv)

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    schedule_path = Path(args.schedule) if args.schedule else None
    log_paths = collect_log_files([Path(p) for p in args.logs])
    out_dir = Path.cwd()

    if args.auto_input:
        root = Path(args.auto_input)
        discovered = discover_files(root)
        schedule_path = schedule_path or discovered["schedule"]
        log_paths = log_paths or discovered["logs"]
        out_dir = root / "out"

    if not schedule_path:
        print("[ERR] No payment schedule given or found (.xlsx/.xls/.csv).")
        return 1
    if not log_paths:
        print("[ERR] No transaction logs given or found (.txt/.msg/.pdf).")
        return 1

    config = ReconConfig(
        voucher_col=args.voucher_col,
        total_col=args.total_col,
        pdf_backend=args.pdf_backend,
    )

    try:
        rows = read_schedule(schedule_path, voucher_col=config.voucher_col)
        files = [UploadedFile.from_path(p) for p in log_paths]
        result = run_reconciliation(rows, files, config)
    except NoTransactionsError as e:
        for issue in e.issues:
            print(f"[WARN] {issue}")
        print(f"[ERR] {e}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERR] {e}")
        return 1

    for issue in result.issues:
        print(f"[WARN] {issue}")

    out = Path(args.out) if args.out else out_dir / default_output_name()
    write_reconciled(result.table, result.columns, out)

    s = result.summary
    print(f"Matched rows:      {s.matched_count} / {len(rows)}")
    print(f"Existing total:    {s.total_existing:,.2f}")
    print(f"Transaction total: {s.total_trx:,.2f}")
    print(f"Commission total:  {s.total_commission:,.2f}")
    print(f"Net total:         {s.total_net:,.2f}")
    print("Done.")
    return 0

if __name__ == "__main__":
    sys.exit(main())
