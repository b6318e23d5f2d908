"""
CSV and JSON ingestion.

Reads transactions, credit claims, statements, payments and ledger entries
from files into engine records. CSV files are read with pandas as text so
that HSN codes and GSTINs keep their leading zeros.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, TypeVar, Union

import pandas as pd

from rcm_engine.amounts import NO_TAX, TaxHeads
from rcm_engine.compliance import coerce_date
from rcm_engine.errors import RCMEngineError, ValidationError
from rcm_engine.gstr2b import GSTR2BEntry, GSTR2BStatement, StatementSection, parse_gstr2b
from rcm_engine.ledger import CreditLedgerEntry, RCMPayment
from rcm_engine.reconciliation import ClaimedCredit
from rcm_engine.self_invoice import RCMTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")
PathLike = Union[str, Path]

TRANSACTION_COLUMNS = {
    "transaction_id",
    "supplier_name",
    "supplier_state_code",
    "hsn_sac_code",
    "transaction_date",
    "place_of_supply",
}
CLAIM_COLUMNS = {"document_number", "document_date"}
STATEMENT_COLUMNS = {"supplier_gstin", "document_number", "document_date"}
PAYMENT_COLUMNS = {"transaction_id", "payment_date"}
LEDGER_COLUMNS = {"entry_date", "entry_type", "reference"}

_TRUE = {"Y", "YES", "TRUE", "1"}


def read_records(path: PathLike, required: set[str] = frozenset()) -> list[dict]:
    """Rows of a CSV file as dicts, blank cells as None."""
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
    except FileNotFoundError:
        raise ValidationError(f"File not found: {path}", field="path") from None
    except pd.errors.EmptyDataError:
        return []

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = required - set(df.columns)
    if missing:
        raise ValidationError(
            f"{Path(path).name} is missing columns: {', '.join(sorted(missing))}",
            field="columns",
        )
    df = df.apply(lambda col: col.str.strip())
    return [
        {k: (v if v != "" else None) for k, v in row.items()}
        for row in df.to_dict(orient="records")
    ]


def _build_all(records: list[dict], build: Callable[[dict], T], kind: str) -> list[T]:
    items: list[T] = []
    for line, record in enumerate(records, start=2):  # header is line 1
        try:
            items.append(build(record))
        except (RCMEngineError, KeyError, ValueError) as e:
            raise ValidationError(f"Invalid {kind} on line {line}: {e}") from e
    logger.debug("Loaded %d %s records", len(items), kind)
    return items


def read_transactions(path: PathLike) -> list[RCMTransaction]:
    return _build_all(
        read_records(path, TRANSACTION_COLUMNS), RCMTransaction.from_dict, "transaction"
    )


def read_claims(path: PathLike) -> list[ClaimedCredit]:
    return _build_all(read_records(path, CLAIM_COLUMNS), ClaimedCredit.from_dict, "claim")


def read_payments(path: PathLike) -> list[RCMPayment]:
    return _build_all(read_records(path, PAYMENT_COLUMNS), RCMPayment.from_dict, "payment")


def read_ledger(path: PathLike) -> list[CreditLedgerEntry]:
    return _build_all(
        read_records(path, LEDGER_COLUMNS), CreditLedgerEntry.from_dict, "ledger entry"
    )


def _prefixed_heads(record: dict, prefix: str) -> TaxHeads:
    return TaxHeads.from_dict(
        {head: record.get(f"{prefix}_{head}") for head in ("igst", "cgst", "sgst")}
    )


def statement_entry_from_record(record: dict) -> GSTR2BEntry:
    """A statement row from a CSV export of the GSTR-2B."""
    has_eligible = any(record.get(f"eligible_{h}") for h in ("igst", "cgst", "sgst"))
    has_blocked = any(record.get(f"blocked_{h}") for h in ("igst", "cgst", "sgst"))
    original_date = record.get("original_document_date")
    return GSTR2BEntry(
        supplier_gstin=record.get("supplier_gstin") or "",
        trade_name=record.get("trade_name"),
        document_number=record.get("document_number") or "",
        document_date=coerce_date(record["document_date"], "document_date"),
        amounts=TaxHeads.from_dict(record),
        taxable_value=record.get("taxable_value") or 0,
        supply_type=StatementSection((record.get("supply_type") or "B2B").upper()),
        itc_available=(record.get("itc_available") or "Y").upper() in _TRUE,
        eligible_itc=_prefixed_heads(record, "eligible") if has_eligible else None,
        blocked_itc=_prefixed_heads(record, "blocked") if has_blocked else NO_TAX,
        is_amendment=(record.get("is_amendment") or "N").upper() in _TRUE,
        original_document_number=record.get("original_document_number"),
        original_document_date=(
            coerce_date(original_date, "original_document_date") if original_date else None
        ),
    )


def load_gstr2b_json(path: PathLike) -> GSTR2BStatement:
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError:
        raise ValidationError(f"File not found: {path}", field="path") from None
    except json.JSONDecodeError as e:
        raise ValidationError(f"{path} is not valid JSON: {e}") from e
    return parse_gstr2b(document)


def read_statement(path: PathLike) -> list[GSTR2BEntry]:
    """Statement entries from a GSTR-2B JSON download or a CSV export."""
    if str(path).lower().endswith(".json"):
        return load_gstr2b_json(path).entries
    return _build_all(
        read_records(path, STATEMENT_COLUMNS), statement_entry_from_record, "statement entry"
    )
