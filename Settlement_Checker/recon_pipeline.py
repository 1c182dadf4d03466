# recon_pipeline.py
from __future__ import annotations

from dataclasses import dataclass
from numbers import Number
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import re

from records import Transaction

AUTH_COL       = "AUTH"
MERCHANT_COL   = "MERCHANT NUMBER"
TRX_AMT_COL    = "TRX.AMT"
CARD_COL       = "CARD NUMBER"
COMMISSION_COL = "COM. AMOUNT"
NET_COL        = "NET. AMT"
DERIVED_COLS = [AUTH_COL, MERCHANT_COL, TRX_AMT_COL, CARD_COL, COMMISSION_COL, NET_COL]

DEFAULT_VOUCHER_COL = "Voucher No."
DEFAULT_TOTAL_COL   = "Total"
TOTAL_LABEL  = "TOTAL"
SPACER_ROWS  = 5

LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
DIGIT_RUN_RE      = re.compile(r"([0-9]+)")

@dataclass(frozen=True)
class Summary:
    total_existing: float
    total_trx: float
    total_commission: float
    total_net: float
    matched_count: int

# =========================
# Small helpers
# =========================

def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)

def _is_blank(value) -> bool:
    if value is None:
        return True
    if _is_number(value) and value != value:   # NaN
        return True
    return isinstance(value, str) and not value.strip()

def join_key(value) -> Optional[str]:
    """Voucher cell -> lookup key. Integral numbers join by their integer text."""
    if _is_blank(value):
        return None
    if _is_number(value):
        if value == 0:
            return None
        if float(value).is_integer():
            return str(int(value))
        return str(value)
    return str(value).strip()

def parse_existing_total(value) -> float:
    """Numeric cell, or numeric text with thousands separators; anything else is 0."""
    if _is_blank(value):
        return 0.0
    if _is_number(value):
        return float(value)
    m = LEADING_NUMBER_RE.match(str(value).replace(",", ""))
    return float(m.group(0)) if m else 0.0

def natural_key(text: str) -> tuple:
    """Sort key that orders digit runs by value: '2' < '10' < 'a'."""
    key = []
    for part in DIGIT_RUN_RE.split(text.strip()):
        if not part:
            continue
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part.casefold()))
    return tuple(key)

def row_sort_key(row: Mapping) -> tuple:
    merchant = str(row.get(MERCHANT_COL) or "").strip()
    auth = str(row.get(AUTH_COL) or "").strip()
    # rows without a merchant number go last
    return (merchant == "", natural_key(merchant), natural_key(auth))

# =========================
# Transaction set
# =========================

def dedupe_transactions(transactions: Sequence[Transaction]) -> List[Transaction]:
    seen: set = set()
    out: List[Transaction] = []
    for tx in transactions:
        key = tx.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(tx)
    return out

def index_by_auth(transactions: Sequence[Transaction]) -> Dict[str, Transaction]:
    # last write wins; see find_auth_collisions
    return {tx.authorization_id: tx for tx in transactions}

def find_auth_collisions(transactions: Sequence[Transaction]) -> Dict[str, List[Transaction]]:
    """
    Authorization ids shared by more than one distinct transaction.
    Only the last of each group survives the join index.
    """
    groups: Dict[str, List[Transaction]] = {}
    for tx in dedupe_transactions(transactions):
        groups.setdefault(tx.authorization_id, []).append(tx)
    return {auth: txs for auth, txs in groups.items() if len(txs) > 1}

# =========================
# Output shaping
# =========================

def output_columns(
    rows: Sequence[Mapping],
    voucher_col: str = DEFAULT_VOUCHER_COL,
    total_col: str = DEFAULT_TOTAL_COL,
) -> List[str]:
    base = [c for c in (rows[0].keys() if rows else []) if c not in DERIVED_COLS]
    for c in (voucher_col, total_col):
        if c not in base:
            base.append(c)
    return base + DERIVED_COLS

def _derived_values(tx: Optional[Transaction]) -> Dict[str, object]:
    if tx is None:
        return {c: "" for c in DERIVED_COLS}
    return {
        AUTH_COL: tx.authorization_id,
        MERCHANT_COL: tx.merchant_number,
        TRX_AMT_COL: tx.transaction_amount,
        CARD_COL: tx.card_number,
        COMMISSION_COL: tx.commission,
        NET_COL: tx.net_amount,
    }

def _blank_row(base_cols: Sequence[str]) -> Dict[str, object]:
    row = {c: "" for c in base_cols}
    row.update(_derived_values(None))
    return row

# =========================
# Engine
# =========================

def reconcile(
    rows: Sequence[Mapping],
    transactions: Sequence[Transaction],
    *,
    voucher_col: str = DEFAULT_VOUCHER_COL,
    total_col: str = DEFAULT_TOTAL_COL,
) -> Tuple[List[Dict[str, object]], Summary]:
    """
    Join schedule rows to transactions by voucher number / authorization id.

    Returns the output table (matched rows, TOTAL row, spacer rows, appendix
    header, unmatched transactions) and the run summary. Inputs are not
    modified.
    """
    unique = dedupe_transactions(transactions)
    by_auth = index_by_auth(unique)
    base_cols = output_columns(rows, voucher_col, total_col)[: -len(DERIVED_COLS)]

    total_existing = total_trx = total_commission = total_net = 0.0
    matched_count = 0
    matched_auth: set = set()

    updated: List[Dict[str, object]] = []
    for row in rows:
        voucher = row.get(voucher_col)
        match = None
        key = join_key(voucher)
        if key is not None:
            match = by_auth.get(key)
            if match is None and isinstance(voucher, str) and key.startswith("0"):
                match = by_auth.get(key.lstrip("0"))

        total_existing += parse_existing_total(row.get(total_col))

        if match is not None:
            matched_count += 1
            total_trx += match.transaction_amount
            total_commission += match.commission
            total_net += match.net_amount
            matched_auth.add(match.authorization_id)

        out_row = {c: row.get(c, "") for c in base_cols}
        out_row.update(_derived_values(match))
        updated.append(out_row)

    unmatched: List[Dict[str, object]] = []
    for tx in unique:
        if tx.authorization_id in matched_auth:
            continue
        out_row = _blank_row(base_cols)
        out_row.update(_derived_values(tx))
        unmatched.append(out_row)

    updated.sort(key=row_sort_key)
    unmatched.sort(key=row_sort_key)

    summary = Summary(
        total_existing=round(total_existing, 2),
        total_trx=round(total_trx, 2),
        total_commission=round(total_commission, 2),
        total_net=round(total_net, 2),
        matched_count=matched_count,
    )

    totals_row = _blank_row(base_cols)
    totals_row[voucher_col] = TOTAL_LABEL
    totals_row[total_col] = summary.total_existing
    totals_row[TRX_AMT_COL] = summary.total_trx
    totals_row[COMMISSION_COL] = summary.total_commission
    totals_row[NET_COL] = summary.total_net

    appendix_header = _blank_row(base_cols)
    appendix_header.update({c: c for c in DERIVED_COLS})

    table = (
        updated
        + [totals_row]
        + [_blank_row(base_cols) for _ in range(SPACER_ROWS)]
        + [appendix_header]
        + unmatched
    )
    return table, summary
