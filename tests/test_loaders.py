"""Tests for CSV and JSON ingestion."""

import json
from datetime import date
from decimal import Decimal

import pytest

from rcm_engine.amounts import TaxHeads
from rcm_engine.errors import ValidationError
from rcm_engine.gstr2b import StatementSection
from rcm_engine.ledger import EntryType, PaymentMode
from rcm_engine.loaders import (
    read_claims,
    read_ledger,
    read_payments,
    read_records,
    read_statement,
    read_transactions,
)


def _write(tmp_path, name: str, text: str):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


# ── Generic CSV reading ─────────────────────────────────────────────


def test_read_records_keeps_leading_zeros(tmp_path):
    path = _write(tmp_path, "codes.csv", "code,state\n08011000,07\n")
    assert read_records(path) == [{"code": "08011000", "state": "07"}]


def test_read_records_blank_cells_are_none(tmp_path):
    path = _write(tmp_path, "rows.csv", "A , b\n x ,\n")
    assert read_records(path) == [{"a": "x", "b": None}]


def test_read_records_missing_columns(tmp_path):
    path = _write(tmp_path, "rows.csv", "a\n1\n")
    with pytest.raises(ValidationError, match="missing columns: b"):
        read_records(path, {"a", "b"})


def test_read_records_missing_file(tmp_path):
    with pytest.raises(ValidationError):
        read_records(tmp_path / "absent.csv")


def test_read_records_empty_file(tmp_path):
    assert read_records(_write(tmp_path, "empty.csv", "")) == []


# ── Typed loaders ───────────────────────────────────────────────────


def test_read_transactions(tmp_path):
    path = _write(
        tmp_path,
        "purchases.csv",
        "transaction_id,supplier_name,supplier_state_code,hsn_sac_code,transaction_date,"
        "place_of_supply,taxable_amount,foreign_currency,foreign_amount,exchange_rate\n"
        "T1,R. Mehta,27,998211,2024-06-15,27,50000,,,\n"
        "T2,Acme Inc,99,998599,2024-06-10,27,,USD,1000,83.5\n",
    )
    txns = read_transactions(path)
    assert [t.transaction_id for t in txns] == ["T1", "T2"]
    assert txns[0].taxable_amount == Decimal("50000")
    assert txns[1].local_taxable_amount == Decimal("83500.00")


def test_bad_row_reports_line_number(tmp_path):
    path = _write(
        tmp_path,
        "purchases.csv",
        "transaction_id,supplier_name,supplier_state_code,hsn_sac_code,transaction_date,"
        "place_of_supply,taxable_amount\n"
        "T1,R. Mehta,27,998211,2024-06-15,27,50000\n"
        "T2,R. Mehta,27,998211,not-a-date,27,50000\n",
    )
    with pytest.raises(ValidationError, match="line 3"):
        read_transactions(path)


def test_read_claims(tmp_path):
    path = _write(
        tmp_path,
        "claims.csv",
        "supplier_gstin,document_number,document_date,igst,cgst,sgst,is_rcm\n"
        "29AABCU9603R1ZM,INV-1,2024-06-05,1800,,,N\n"
        ",SI-FY24-25/001,2024-06-20,,4500,4500,Y\n",
    )
    claims = read_claims(path)
    assert claims[0].amounts == TaxHeads(igst="1800")
    assert claims[0].is_rcm is False
    assert claims[1].is_rcm is True
    assert claims[1].supplier_gstin is None


def test_read_payments(tmp_path):
    path = _write(
        tmp_path,
        "payments.csv",
        "transaction_id,payment_date,cgst,sgst,payment_mode,challan_number\n"
        "T1,2024-07-18,4500,4500,CASH,CPIN1\n",
    )
    (payment,) = read_payments(path)
    assert payment.payment_mode == PaymentMode.CASH
    assert payment.payment_date == date(2024, 7, 18)


def test_read_ledger(tmp_path):
    path = _write(
        tmp_path,
        "ledger.csv",
        "entry_date,entry_type,reference,igst\n2024-07-18,CREDIT,SI-1,1000\n",
    )
    (entry,) = read_ledger(path)
    assert entry.entry_type == EntryType.CREDIT
    assert entry.amounts.igst == Decimal("1000")


# ── Statements ──────────────────────────────────────────────────────


def test_read_statement_csv(tmp_path):
    path = _write(
        tmp_path,
        "gstr2b.csv",
        "supplier_gstin,document_number,document_date,taxable_value,igst,cgst,sgst,"
        "itc_available,blocked_igst,supply_type\n"
        "29AABCU9603R1ZM,INV-1,2024-06-05,10000,1800,,,Y,,B2B\n"
        "29AABCU9603R1ZM,INV-2,2024-06-06,5000,900,,,Y,400,b2ba\n",
    )
    first, second = read_statement(path)
    assert first.taxable_value == Decimal("10000")
    assert first.eligible == TaxHeads(igst="1800")
    assert second.supply_type == StatementSection.B2BA
    assert second.is_amendment is True
    assert second.eligible == TaxHeads(igst="500")


def test_read_statement_json(tmp_path):
    document = {
        "gstin": "27AAPFU0939F1ZV",
        "fp": "062024",
        "b2b": [
            {"ctin": "29AABCU9603R1ZM", "inv": [{"inum": "INV-1", "idt": "05-06-2024", "igst": 1800}]}
        ],
    }
    path = _write(tmp_path, "gstr2b.json", json.dumps(document))
    (entry,) = read_statement(path)
    assert entry.document_number == "INV-1"


def test_read_statement_invalid_json(tmp_path):
    with pytest.raises(ValidationError):
        read_statement(_write(tmp_path, "gstr2b.json", "{not json"))
