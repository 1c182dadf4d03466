"""Shared fixtures for the settlement checker tests.

Statement PDFs are generated on the fly with PyMuPDF so the reader tests
exercise real encryption instead of canned binary blobs.
"""

from __future__ import annotations

import textwrap
from typing import Callable, Optional, Sequence

import fitz
import pytest

MERCHANT_ID = "12345678"
STATEMENT_NAME = f"{MERCHANT_ID}_20260201Statement.pdf"

SAMPATH_REPORT = textwrap.dedent(
    """\
    SAMPATH BANK PLC - MERCHANT SETTLEMENT REPORT
    MERCHANT NUMBER      :3010147
    Visa / Master Transactions
    ====================================================================================
    CARD NUMBER       TYPE  CUR  TRAN AMT  GROSS AMT  COMM  NET AMT  DATE  AUTH  TID
    ====================================================================================
    532016XXXXXX3032  EDC  144  49,900.00  49,900.00  898.20  49,001.80  02/02/2026  074680  37012252
    412345XXXXXX9876  EDC  144  1,250.00  1,250.00  22.50  1,227.50  02/02/2026  118842  37012252
    ====================================================================================
    MERCHANT NUMBER      :3010150
    455555XXXXXX1111  EDC  144  300.00  300.00  5.40  294.60  03/02/2026  220001  37012260
    """
)

STATEMENT_LINES = [
    "Nations Trust Bank PLC - Merchant E-Statement",
    f"Account Number: {MERCHANT_ID}",
    "Txn Date  Settle Date  Card No  Auth  Amount  Commission",
    "01 Feb 2026  02 Feb 2026  489512******4321  556677  10,000.00  180.00",
    "01 Feb 2026  02 Feb 2026  520000******0001  556678  2,500.50  45.01",
]

def statement_notice(attachment_name: str = STATEMENT_NAME) -> str:
    return textwrap.dedent(
        f"""\
        From: Nations Trust Bank <estatements@ntb.lk>
        Subject: Merchant E- Statement
        X-FE-Attachment-Name: {attachment_name}

        Dear Merchant, your statement is attached. Password format: ntb<Merchant ID>
        """
    )

@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    def _make(
        lines: Sequence[str] = STATEMENT_LINES,
        user_pw: Optional[str] = None,
        encryption: int = fitz.PDF_ENCRYPT_AES_256,
    ) -> bytes:
        doc = fitz.open()
        page = doc.new_page()
        y = 72
        for line in lines:
            page.insert_text((36, y), line, fontsize=8)
            y += 14
        if user_pw:
            data = doc.tobytes(encryption=encryption, user_pw=user_pw, owner_pw=user_pw + "-owner")
        else:
            data = doc.tobytes()
        doc.close()
        return data

    return _make
