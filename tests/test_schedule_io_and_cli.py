from __future__ import annotations

from datetime import datetime
from io import BytesIO

import pandas as pd
import pytest

import recon_cli
from recon_pipeline import DERIVED_COLS
from schedule_io import (
    OUTPUT_SHEET,
    default_output_name,
    read_schedule,
    reconciled_to_bytes,
    write_reconciled,
)

from conftest import SAMPATH_REPORT

SCHEDULE_CSV = (
    "#,Voucher No.,Total,Payee\n"
    "1,074680,\"49,900.00\",Acme\n"
    ",,,\n"
    "2,118842,1250,\n"
)


def test_read_schedule_csv_keeps_leading_zeros(tmp_path):
    path = tmp_path / "schedule.csv"
    path.write_text(SCHEDULE_CSV, encoding="utf-8")

    rows = read_schedule(path)

    assert rows == [
        {"#": "1", "Voucher No.": "074680", "Total": "49,900.00", "Payee": "Acme"},
        {"#": "2", "Voucher No.": "118842", "Total": "1250", "Payee": ""},
    ]


def test_read_schedule_xlsx_from_bytes(tmp_path):
    path = tmp_path / "schedule.xlsx"
    pd.DataFrame(
        {"#": [1, 2], "Voucher No.": ["074680", "118842"], "Total": [49900.0, None]}
    ).to_excel(path, index=False)

    rows = read_schedule(path.read_bytes(), filename="schedule.xlsx")

    assert [r["Voucher No."] for r in rows] == ["074680", "118842"]
    assert rows[0]["Total"] == 49900
    assert rows[1]["Total"] == ""


def test_read_schedule_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_schedule(tmp_path / "missing.xlsx")
    with pytest.raises(ValueError, match="Unsupported file type"):
        read_schedule(b"data", filename="schedule.ods")

    path = tmp_path / "schedule.csv"
    path.write_text("Ref,Total\n1,2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Voucher column 'Voucher No.' not found"):
        read_schedule(path)
    assert read_schedule(path, voucher_col="Ref") == [{"Ref": "1", "Total": "2"}]


def test_write_reconciled_round_trip(tmp_path):
    columns = ["Voucher No.", "Total"] + DERIVED_COLS
    table = [
        {"Voucher No.": "074680", "Total": 10, "AUTH": "074680", "MERCHANT NUMBER": "3010147",
         "TRX.AMT": 10.0, "CARD NUMBER": "5320XX", "COM. AMOUNT": 0.18, "NET. AMT": 9.82},
        {"Voucher No.": "TOTAL", "Total": 10},
    ]
    out = tmp_path / "out" / "result.xlsx"
    write_reconciled(table, columns, out)

    back = pd.read_excel(out, sheet_name=OUTPUT_SHEET, dtype=object)
    assert list(back.columns) == columns
    assert back.loc[1, "Voucher No."] == "TOTAL"
    assert pd.isna(back.loc[1, "AUTH"]) or back.loc[1, "AUTH"] == ""

    assert reconciled_to_bytes(table, columns)[:2] == b"PK"


def test_default_output_name():
    assert default_output_name(datetime(2026, 2, 3, 4, 5, 6)) == "processed_payment_data_2026-02-03_04-05-06.xlsx"


def test_discover_files(tmp_path):
    (tmp_path / "logs").mkdir()
    (tmp_path / "notes.csv").write_text("x", encoding="utf-8")
    (tmp_path / "Payment Schedule.xlsx").write_bytes(b"")
    (tmp_path / "~$Payment Schedule.xlsx").write_bytes(b"")
    (tmp_path / "logs" / "b.msg").write_bytes(b"")
    (tmp_path / "logs" / "a.txt").write_bytes(b"")
    (tmp_path / "logs" / "s.pdf").write_bytes(b"")

    found = recon_cli.discover_files(tmp_path)

    assert found["schedule"].name == "Payment Schedule.xlsx"
    assert [p.name for p in found["logs"]] == ["a.txt", "b.msg", "s.pdf"]


def test_cli_auto_input(tmp_path, capsys):
    (tmp_path / "schedule.csv").write_text(SCHEDULE_CSV, encoding="utf-8")
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "sampath_feb.txt").write_text(SAMPATH_REPORT, encoding="utf-8")

    assert recon_cli.main(["--auto-input", str(tmp_path)]) == 0

    outputs = list((tmp_path / "out").glob("processed_payment_data_*.xlsx"))
    assert len(outputs) == 1
    df = pd.read_excel(outputs[0], sheet_name=OUTPUT_SHEET, dtype=str)
    assert "TOTAL" in df["Voucher No."].tolist()
    assert list(df.columns)[-6:] == DERIVED_COLS

    printed = capsys.readouterr().out
    assert "Matched rows:      2 / 2" in printed


def test_cli_reports_run_level_error(tmp_path, capsys):
    (tmp_path / "schedule.csv").write_text(SCHEDULE_CSV, encoding="utf-8")
    log = tmp_path / "sampath.txt"
    log.write_text("no rows\n", encoding="utf-8")

    code = recon_cli.main(["--schedule", str(tmp_path / "schedule.csv"), "--logs", str(log),
                           "--out", str(tmp_path / "o.xlsx")])

    assert code == 1
    printed = capsys.readouterr().out
    assert "[WARN] Skipped sampath.txt: No transactions found." in printed
    assert "[ERR] No valid transactions found in the uploaded log files." in printed
    assert not (tmp_path / "o.xlsx").exists()


def test_read_schedule_csv_falls_back_to_cp1252():
    data = "Voucher No.,Total,Note\n074680,10,caf\xe9\n".encode("cp1252")
    expected = [{"Voucher No.": "074680", "Total": "10", "Note": "caf\xe9"}]

    assert read_schedule(data, filename="s.csv") == expected
    assert read_schedule(BytesIO(data), filename="s.csv") == expected
