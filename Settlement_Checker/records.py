# records.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import math
import re

NUL_RE = re.compile("\u0000")
THOUSANDS_RE = re.compile(r",")

@dataclass(frozen=True)
class Transaction:
    merchant_number: str
    card_number: str
    transaction_amount: float
    commission: float
    net_amount: float
    authorization_id: str
    source: str = field(default="", compare=False)

    def dedup_key(self) -> tuple:
        return (
            self.authorization_id,
            self.merchant_number,
            self.card_number,
            self.transaction_amount,
            self.commission,
            self.net_amount,
        )

@dataclass(frozen=True)
class ParseIssue:
    filename: str
    reason: str
    skipped: bool = True

    def __str__(self) -> str:
        if self.skipped:
            return f"Skipped {self.filename}: {self.reason}"
        return f"{self.filename}: {self.reason}"

@dataclass(frozen=True)
class UploadedFile:
    """One uploaded log/statement file: a name and its raw bytes."""
    name: str
    data: bytes

    @property
    def lower_name(self) -> str:
        return self.name.lower()

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower()

    @classmethod
    def from_path(cls, path: str | Path) -> "UploadedFile":
        p = Path(path)
        return cls(name=p.name, data=p.read_bytes())

def normalize_message_content(text: str) -> str:
    # .msg bodies stored as UTF-16 leave a NUL after every ASCII char
    return NUL_RE.sub("", text)

def decode_log_bytes(data: bytes) -> str:
    return normalize_message_content(data.decode("utf-8", errors="ignore"))

def parse_amount(text) -> Optional[float]:
    if text is None:
        return None
    s = THOUSANDS_RE.sub("", str(text)).strip()
    if not s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    # "nan"/"inf" parse as floats but are not amounts
    return value if math.isfinite(value) else None
