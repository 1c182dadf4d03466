# run_pipeline.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from msg_pipeline import (
    LOG_SUFFIXES,
    LogKind,
    classify_log,
    extract_statement_metadata,
    parse_fixed_width_log,
    resolve_statement_pdf,
)
from pdf_pipeline import (
    PASSWORD_PATTERN_LABEL,
    InvalidPdfError,
    PdfPasswordError,
    PdfReadFailure,
    build_statement_password,
    parse_statement_text,
    read_protected_pdf,
)
from recon_pipeline import (
    DEFAULT_TOTAL_COL,
    DEFAULT_VOUCHER_COL,
    Summary,
    find_auth_collisions,
    output_columns,
    reconcile,
)
from records import ParseIssue, Transaction, UploadedFile, decode_log_bytes

NO_TRANSACTIONS_MSG = "No valid transactions found in the uploaded log files."

@dataclass
class ReconConfig:
    voucher_col: str = DEFAULT_VOUCHER_COL
    total_col: str = DEFAULT_TOTAL_COL
    pdf_backend: str = "pymupdf"
    log_suffixes: Tuple[str, ...] = LOG_SUFFIXES

class NoTransactionsError(RuntimeError):
    def __init__(self, message: str = NO_TRANSACTIONS_MSG, issues: Optional[List[ParseIssue]] = None):
        super().__init__(message)
        self.issues = list(issues or [])

@dataclass
class ExtractionResult:
    transactions: List[Transaction] = field(default_factory=list)
    issues: List[ParseIssue] = field(default_factory=list)

@dataclass
class RunResult:
    table: List[Dict[str, object]]
    columns: List[str]
    summary: Summary
    issues: List[ParseIssue]
    transactions: List[Transaction]

def _process_statement(
    file: UploadedFile,
    text: str,
    pdf_files: List[UploadedFile],
    consumed: set[str],
    config: ReconConfig,
    issues: List[ParseIssue],
) -> List[Transaction]:
    meta = extract_statement_metadata(text, file.name)
    if not meta.merchant_id:
        issues.append(ParseIssue(file.name, "NTB merchant ID not found."))
        return []

    pdf = resolve_statement_pdf(meta, pdf_files, file, consumed)
    if pdf is None:
        issues.append(ParseIssue(file.name, "PDF attachment not found in selected folder."))
        return []

    password = build_statement_password(meta.merchant_id)
    try:
        pdf_text = read_protected_pdf(pdf.data, password, backend=config.pdf_backend)
    except PdfPasswordError:
        issues.append(ParseIssue(file.name, f"failed to open {pdf.name} with password {password}."))
        return []
    except InvalidPdfError:
        issues.append(ParseIssue(file.name, f"{pdf.name} is not a valid PDF."))
        return []
    except Exception as e:
        issues.append(ParseIssue(file.name, f"unable to parse {pdf.name} ({str(e) or type(e).__name__})."))
        return []

    txs = parse_statement_text(pdf_text, meta.merchant_id, source=pdf.name)
    if not txs:
        issues.append(ParseIssue(file.name, f"No transactions found in {pdf.name}."))
        return []

    print(f"[INFO] {file.name}: {len(txs)} transactions (statement {pdf.name})")
    return txs

def _process_fixed_width(file: UploadedFile, text: str, issues: List[ParseIssue]) -> List[Transaction]:
    result = parse_fixed_width_log(text, source=file.name)
    if result.rejected_lines:
        issues.append(ParseIssue(
            file.name,
            f"{result.rejected_lines} transaction line(s) with unreadable amounts ignored.",
            skipped=False,
        ))
    if not result.transactions:
        issues.append(ParseIssue(file.name, "No transactions found."))
        return []

    print(f"[INFO] {file.name}: {len(result.transactions)} transactions (fixed-width, merchant {result.merchant_number or '?'})")
    return result.transactions

def _process_standalone_pdf(pdf: UploadedFile, config: ReconConfig, issues: List[ParseIssue]) -> List[Transaction]:
    meta = extract_statement_metadata("", pdf.name)
    if not meta.merchant_id:
        return []

    try:
        pdf_text = read_protected_pdf(pdf.data, build_statement_password(meta.merchant_id), backend=config.pdf_backend)
    except PdfReadFailure:
        issues.append(ParseIssue(pdf.name, f"failed to open with password pattern {PASSWORD_PATTERN_LABEL}."))
        return []

    txs = parse_statement_text(pdf_text, meta.merchant_id, source=pdf.name)
    if not txs:
        issues.append(ParseIssue(pdf.name, "No transactions found."))
        return []

    print(f"[INFO] {pdf.name}: {len(txs)} transactions (standalone statement)")
    return txs

def extract_transactions(files: Sequence[UploadedFile], config: Optional[ReconConfig] = None) -> ExtractionResult:
    """
    Run every uploaded file through its parser chain, in upload order.
    Per-file problems end up in `issues`; the run itself keeps going.
    """
    config = config or ReconConfig()
    result = ExtractionResult()
    pdf_files = [f for f in files if f.suffix == ".pdf"]
    consumed: set[str] = set()

    for file in files:
        if file.suffix not in config.log_suffixes:
            continue

        text = decode_log_bytes(file.data)
        kind = classify_log(text, file.name, config.log_suffixes)
        if kind is LogKind.NTB_STATEMENT:
            result.transactions.extend(
                _process_statement(file, text, pdf_files, consumed, config, result.issues)
            )
        elif kind is LogKind.FIXED_WIDTH:
            result.transactions.extend(_process_fixed_width(file, text, result.issues))
        else:
            print(f"[DBG] {file.name}: unrecognized log format, ignored")

    # statement PDFs uploaded on their own
    for pdf in pdf_files:
        if pdf.lower_name in consumed:
            continue
        result.transactions.extend(_process_standalone_pdf(pdf, config, result.issues))

    for auth, txs in find_auth_collisions(result.transactions).items():
        sources = ", ".join(sorted({tx.source for tx in txs if tx.source})) or "transaction logs"
        result.issues.append(ParseIssue(
            sources,
            f"authorization ID {auth} appears on {len(txs)} different transactions; only the last one is matched.",
            skipped=False,
        ))

    return result

def run_reconciliation(
    rows: Sequence[Mapping],
    files: Sequence[UploadedFile],
    config: Optional[ReconConfig] = None,
) -> RunResult:
    config = config or ReconConfig()
    extraction = extract_transactions(files, config)
    if not extraction.transactions:
        raise NoTransactionsError(issues=extraction.issues)

    table, summary = reconcile(
        rows,
        extraction.transactions,
        voucher_col=config.voucher_col,
        total_col=config.total_col,
    )
    return RunResult(
        table=table,
        columns=output_columns(rows, config.voucher_col, config.total_col),
        summary=summary,
        issues=extraction.issues,
        transactions=extraction.transactions,
    )
