# msg_pipeline.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from itertools import accumulate
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
import re

import extract_msg

from records import Transaction, UploadedFile, parse_amount

LOG_SUFFIXES = (".txt", ".msg")

# --- format sniffing ---
NTB_CONTENT_RE     = re.compile(r"Nations Trust|Merchant E-\s*Statement|ntb<Merchant ID>", re.I)
NTB_FILENAME_TOKEN = "NATIONS"
FIXED_WIDTH_TOKEN  = "SAMPATH"

# --- fixed-width settlement report ---
# "MERCHANT NUMBER      :3010147"
MERCHANT_RE   = re.compile(r"MERCHANT NUMBER\s*:\s*(\d+)", re.I)
CARD_LINE_RE  = re.compile(r"^\d{6}[X\d]+\d{4}")
COL_SPLIT     = re.compile(r"\s{2,}")
TABLE_TITLE   = "Visa / Master Transactions"
TABLE_RULE    = "====="
MIN_FIELDS    = 9
# card | type | currency | tran amount | gross | commission | net | date | auth id | ...
CARD_IDX, AMOUNT_IDX, COMMISSION_IDX, NET_IDX, AUTH_IDX = 0, 3, 5, 6, 8

# --- statement notice ---
ATTACHMENT_NAME_RE = re.compile(r"X-FE-Attachment-Name:\s*([^\r\n]+\.pdf)", re.I)
STATEMENT_FILE_RE  = re.compile(r"\b(\d{8,})_\d{8,}Statement\.pdf\b", re.I)
ACCOUNT_NUMBER_RE  = re.compile(r"Account\s*Number\s*:?\s*(\d{8,})", re.I)

class LogKind(Enum):
    NTB_STATEMENT = "ntb_statement"
    FIXED_WIDTH   = "fixed_width"
    UNRECOGNIZED  = "unrecognized"

def classify_log(text: str, filename: str, suffixes: Iterable[str] = LOG_SUFFIXES) -> LogKind:
    """
    Decide which parser chain handles an uploaded file.
    Content markers win over filename tokens; only text/message uploads
    are candidates at all.
    """
    if Path(filename).suffix.lower() not in tuple(suffixes):
        return LogKind.UNRECOGNIZED

    if NTB_CONTENT_RE.search(text):
        return LogKind.NTB_STATEMENT
    if FIXED_WIDTH_TOKEN in text:
        return LogKind.FIXED_WIDTH

    upper = filename.upper()
    if NTB_FILENAME_TOKEN in upper:
        return LogKind.NTB_STATEMENT
    if FIXED_WIDTH_TOKEN in upper:
        return LogKind.FIXED_WIDTH
    return LogKind.UNRECOGNIZED

# =========================
# Fixed-width report
# =========================

@dataclass(frozen=True)
class FixedWidthState:
    merchant_number: str = ""
    in_table: bool = False
    rejected_lines: int = 0

@dataclass
class FixedWidthResult:
    merchant_number: str
    transactions: List[Transaction] = field(default_factory=list)
    rejected_lines: int = 0

def fixed_width_step(
    state: FixedWidthState, line: str, source: str = ""
) -> Tuple[FixedWidthState, Optional[Transaction]]:
    m = MERCHANT_RE.search(line)
    if m:
        state = replace(state, merchant_number=m.group(1))

    if TABLE_TITLE in line:
        return state, None
    if TABLE_RULE in line:
        # separators bracket the table, but data lines are recognised by shape alone
        return replace(state, in_table=not state.in_table), None

    stripped = line.strip()
    if not CARD_LINE_RE.match(stripped):
        return state, None

    parts = COL_SPLIT.split(stripped)
    if len(parts) < MIN_FIELDS:
        return state, None

    amount     = parse_amount(parts[AMOUNT_IDX])
    commission = parse_amount(parts[COMMISSION_IDX])
    net        = parse_amount(parts[NET_IDX])
    if amount is None or commission is None or net is None:
        return replace(state, rejected_lines=state.rejected_lines + 1), None

    tx = Transaction(
        merchant_number=state.merchant_number,
        card_number=parts[CARD_IDX],
        transaction_amount=amount,
        commission=commission,
        net_amount=net,
        authorization_id=parts[AUTH_IDX],
        source=source,
    )
    return state, tx

def parse_fixed_width_log(text: str, source: str = "") -> FixedWidthResult:
    steps = list(accumulate(
        text.split("\n"),
        lambda acc, line: fixed_width_step(acc[0], line, source),
        initial=(FixedWidthState(), None),
    ))
    final_state = steps[-1][0]
    return FixedWidthResult(
        merchant_number=final_state.merchant_number,
        transactions=[tx for _, tx in steps if tx is not None],
        rejected_lines=final_state.rejected_lines,
    )

# =========================
# Statement notice metadata
# =========================

@dataclass(frozen=True)
class StatementMetadata:
    attachment_name: Optional[str]
    merchant_id: Optional[str]

def extract_statement_metadata(text: str, fallback_name: str = "") -> StatementMetadata:
    am = ATTACHMENT_NAME_RE.search(text)
    attachment_name = am.group(1).strip() if am else None
    attachment_name = attachment_name or None

    haystack = "\n".join(s for s in (attachment_name, fallback_name, text) if s)
    m = STATEMENT_FILE_RE.search(haystack) or ACCOUNT_NUMBER_RE.search(haystack)
    return StatementMetadata(
        attachment_name=attachment_name,
        merchant_id=m.group(1) if m else None,
    )

# =========================
# Attachment resolution
# =========================

def find_uploaded_pdf(meta: StatementMetadata, pdf_files: List[UploadedFile]) -> Optional[UploadedFile]:
    if meta.attachment_name:
        wanted = meta.attachment_name.lower()
        for f in pdf_files:
            if f.lower_name == wanted:
                return f

    if meta.merchant_id:
        mid = meta.merchant_id.lower()
        for f in pdf_files:
            if mid in f.lower_name and f.lower_name.endswith("statement.pdf"):
                return f
    return None

def _attachment_filename(att) -> str:
    for attr in ("longFilename", "shortFilename", "name"):
        val = getattr(att, attr, None)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""

def extract_pdf_attachment_from_msg(container: UploadedFile, preferred_name: Optional[str]) -> Optional[UploadedFile]:
    """
    Pull a PDF out of an Outlook .msg container.
    Preferred attachment name first, else the first attachment named *.pdf.
    Returns None when the container is not a readable .msg or has no usable PDF.
    """
    if container.suffix != ".msg":
        return None

    try:
        msg = extract_msg.Message(container.data)
    except Exception as e:
        print(f"[WARN] Could not open .msg container {container.name}: {e!r}")
        return None

    try:
        attachments = list(getattr(msg, "attachments", None) or [])
        preferred = (preferred_name or "").lower()

        chosen = None
        if preferred:
            chosen = next((a for a in attachments if _attachment_filename(a).lower() == preferred), None)
        if chosen is None:
            chosen = next((a for a in attachments if _attachment_filename(a).lower().endswith(".pdf")), None)
        if chosen is None:
            return None

        data = getattr(chosen, "data", None)
        if not isinstance(data, (bytes, bytearray)) or len(data) == 0:
            return None
        return UploadedFile(name=_attachment_filename(chosen) or "attachment.pdf", data=bytes(data))
    finally:
        msg.close()

def resolve_statement_pdf(
    meta: StatementMetadata,
    pdf_files: List[UploadedFile],
    container: UploadedFile,
    consumed: set[str],
) -> Optional[UploadedFile]:
    pdf = find_uploaded_pdf(meta, pdf_files)
    if pdf is None:
        pdf = extract_pdf_attachment_from_msg(container, meta.attachment_name)
    if pdf is not None:
        consumed.add(pdf.lower_name)
    return pdf
