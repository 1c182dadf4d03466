# schedule_io.py
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Union

import pandas as pd

from recon_pipeline import DEFAULT_VOUCHER_COL

OUTPUT_SHEET = "Processed Data"
SCHEDULE_EXTS = {".xlsx", ".xlsm", ".xls", ".csv"}

Source = Union[str, Path, bytes, BinaryIO]

def _excel_engine(ext: str) -> Optional[str]:
    if ext in (".xlsx", ".xlsm"):
        return "openpyxl"
    if ext == ".xls":
        return "xlrd"
    return None

def _read_csv(data: bytes) -> pd.DataFrame:
    try:
        return pd.read_csv(BytesIO(data), dtype=str, encoding="utf-8")
    except UnicodeDecodeError:
        return pd.read_csv(BytesIO(data), dtype=str, encoding="cp1252")

def read_schedule(
    source: Source,
    filename: Optional[str] = None,
    voucher_col: str = DEFAULT_VOUCHER_COL,
) -> List[Dict[str, object]]:
    """
    Load the payment schedule (first sheet, or the whole CSV) as a list of row dicts.
    Blank cells come back as "", fully blank rows are dropped.
    """
    if isinstance(source, (str, Path)):
        p = Path(source)
        if not p.exists():
            raise FileNotFoundError(p)
        filename = filename or p.name

    ext = Path(filename or "").suffix.lower()
    if ext not in SCHEDULE_EXTS:
        raise ValueError(f"Unsupported file type: {ext or filename!r}")

    is_bytes = isinstance(source, (bytes, bytearray))
    if ext == ".csv":
        if is_bytes:
            data = bytes(source)
        elif isinstance(source, (str, Path)):
            data = Path(source).read_bytes()
        else:
            data = source.read()
        # one buffer per attempt, a handle can only be read once
        df = _read_csv(data)
    else:
        handle = BytesIO(source) if is_bytes else source
        df = pd.read_excel(handle, sheet_name=0, dtype=object, engine=_excel_engine(ext))

    df = df.dropna(how="all")
    df.columns = [str(c).strip() for c in df.columns]
    if voucher_col not in df.columns:
        raise ValueError(
            f"Voucher column '{voucher_col}' not found in {filename}. Columns found: {list(df.columns)}"
        )

    df = df.astype(object).where(df.notna(), "")
    print(f"[DBG] Schedule {filename}: {len(df)} rows, columns={list(df.columns)}")
    return df.to_dict(orient="records")

def default_output_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"processed_payment_data_{now:%Y-%m-%d}_{now:%H-%M-%S}.xlsx"

def reconciled_frame(table: Sequence[Dict[str, object]], columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame(list(table), columns=list(columns)).fillna("")

def write_reconciled(
    table: Sequence[Dict[str, object]],
    columns: Sequence[str],
    target: Union[str, Path, BinaryIO],
) -> None:
    df = reconciled_frame(table, columns)
    if isinstance(target, (str, Path)):
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(target, sheet_name=OUTPUT_SHEET, index=False, engine="openpyxl")
    if isinstance(target, (str, Path)):
        print(f"Wrote: {target}")

def reconciled_to_bytes(table: Sequence[Dict[str, object]], columns: Sequence[str]) -> bytes:
    bio = BytesIO()
    write_reconciled(table, columns, bio)
    return bio.getvalue()
