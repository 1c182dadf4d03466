# pdf_pipeline.py
from __future__ import annotations

from typing import List
import io
import re

import fitz
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from msg_pipeline import ACCOUNT_NUMBER_RE
from records import Transaction, parse_amount

PASSWORD_PREFIX = "ntb"
PASSWORD_PATTERN_LABEL = "ntb<Merchant ID>"
PDF_BACKENDS = ("pymupdf", "pypdf")

# "01 Feb 2026   02 Feb 2026   532016******3032   074680   49,900.00   898.20"
STATEMENT_DATE = r"\d{1,2}\s+[A-Za-z]{3}\s+\d{4}"
STATEMENT_AMOUNT = r"[\d,]+\.\d{2}"
STATEMENT_ROW_RE = re.compile(
    r"(" + STATEMENT_DATE + r")\s+"          # transaction date
    r"(" + STATEMENT_DATE + r")\s+"          # settlement date
    r"([0-9*Xx\-]+)\s+"                      # masked card
    r"(\d{4,})\s+"                           # auth id
    r"(" + STATEMENT_AMOUNT + r")\s+"        # transaction amount
    r"(" + STATEMENT_AMOUNT + r")"           # commission
)

class PdfReadFailure(Exception):
    code = "PDF_FAILED"

class PdfPasswordError(PdfReadFailure):
    code = "PASSWORD_FAILED"

class InvalidPdfError(PdfReadFailure):
    code = "INVALID_DOCUMENT"

def build_statement_password(merchant_id: str) -> str:
    return f"{PASSWORD_PREFIX}{merchant_id}"

def read_protected_pdf(data: bytes, password: str, backend: str = "pymupdf") -> str:
    """
    Decrypt a statement PDF and return its text, one page per line block.
    Raises PdfPasswordError when the password is rejected and InvalidPdfError
    when the bytes are not a readable PDF; anything else propagates.
    """
    if backend == "pymupdf":
        pages = _pages_with_pymupdf(data, password)
    elif backend == "pypdf":
        pages = _pages_with_pypdf(data, password)
    else:
        raise ValueError(f"Unknown PDF backend: {backend!r} (expected one of {PDF_BACKENDS})")
    return "\n".join(pages)

def _pages_with_pymupdf(data: bytes, password: str) -> List[str]:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except fitz.FileDataError as e:
        raise InvalidPdfError(str(e)) from e

    try:
        if doc.needs_pass and not doc.authenticate(password):
            raise PdfPasswordError(f"password rejected: {password}")
        return [(page.get_text("text") or "").strip() for page in doc]
    finally:
        doc.close()

def _pages_with_pypdf(data: bytes, password: str) -> List[str]:
    try:
        reader = PdfReader(io.BytesIO(data))
    except PdfReadError as e:
        raise InvalidPdfError(str(e)) from e

    if reader.is_encrypted and not reader.decrypt(password):
        raise PdfPasswordError(f"password rejected: {password}")

    pages: List[str] = []
    for page in reader.pages:
        pages.append((page.extract_text() or "").strip())
    return pages

def parse_statement_text(text: str, merchant_id_fallback: str = "", source: str = "") -> List[Transaction]:
    m = ACCOUNT_NUMBER_RE.search(text)
    merchant_number = m.group(1) if m else merchant_id_fallback

    out: List[Transaction] = []
    for row in STATEMENT_ROW_RE.finditer(text):
        amount = parse_amount(row.group(5))
        commission = parse_amount(row.group(6))
        if amount is None or commission is None:
            continue
        out.append(Transaction(
            merchant_number=merchant_number,
            card_number=row.group(3),
            transaction_amount=amount,
            commission=commission,
            net_amount=round(amount - commission, 2),
            authorization_id=row.group(4),
            source=source,
        ))
    return out
