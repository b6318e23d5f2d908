"""
GSTR-2B statement parsing.

Reads the portal's JSON download (b2b, b2ba, cdnr, cdnra, impg, impgsez
sections) into flat statement entries for reconciliation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from rcm_engine.amounts import NO_TAX, ZERO, TaxHeads, to_decimal
from rcm_engine.errors import ValidationError

logger = logging.getLogger(__name__)

_DATE_SEPARATORS = re.compile(r"[-/]")


class StatementSection(Enum):
    B2B = "B2B"
    B2BA = "B2BA"
    CDNR = "CDNR"
    CDNRA = "CDNRA"
    IMPG = "IMPG"
    IMPGSEZ = "IMPGSEZ"


_AMENDMENT_SECTIONS = {StatementSection.B2BA, StatementSection.CDNRA}


@dataclass(frozen=True)
class GSTR2BEntry:
    """One document as reported in the supplier-side statement."""

    supplier_gstin: str
    document_number: str
    document_date: date
    amounts: TaxHeads
    taxable_value: Decimal = ZERO
    document_value: Decimal = ZERO
    cess: Decimal = ZERO
    trade_name: Optional[str] = None
    supply_type: StatementSection = StatementSection.B2B
    itc_available: bool = True
    reason: Optional[str] = None
    eligible_itc: Optional[TaxHeads] = None
    blocked_itc: TaxHeads = NO_TAX
    is_amendment: bool = False
    original_document_number: Optional[str] = None
    original_document_date: Optional[date] = None
    note_type: Optional[str] = None  # C = credit note, D = debit note
    port_code: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.document_number:
            raise ValidationError("Document number is required", field="document_number")
        for name in ("taxable_value", "document_value", "cess"):
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))
        if self.supply_type in _AMENDMENT_SECTIONS and not self.is_amendment:
            object.__setattr__(self, "is_amendment", True)

    @property
    def eligible(self) -> TaxHeads:
        """ITC the recipient may claim on this document."""
        if self.eligible_itc is not None:
            return self.eligible_itc
        if not self.itc_available:
            return NO_TAX
        return (self.amounts - self.blocked_itc).positive_part()

    @property
    def is_credit_note(self) -> bool:
        return self.note_type == "C"


@dataclass
class StatementSummary:
    total_documents: int = 0
    taxable_value: Decimal = ZERO
    tax: TaxHeads = NO_TAX
    cess: Decimal = ZERO
    itc_available: Decimal = ZERO


@dataclass
class GSTR2BStatement:
    gstin: str
    return_period: str  # MMYYYY
    entries: list[GSTR2BEntry] = field(default_factory=list)

    def summary(self) -> StatementSummary:
        return summarize(self.entries)


def parse_gstr2b_date(value: str) -> date:
    """Parse a portal date, DD-MM-YYYY or DD/MM/YYYY."""
    if not value:
        raise ValidationError("Invalid date: empty string", field="date")
    parts = _DATE_SEPARATORS.split(value.strip())
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValidationError(f"Invalid date format: {value}", field="date")
    day, month, year = (int(p) for p in parts)
    try:
        return date(year, month, day)
    except ValueError:
        raise ValidationError(f"Invalid date: {value}", field="date") from None


def _money(raw: dict, key: str) -> Decimal:
    value = raw.get(key)
    return ZERO if value is None else to_decimal(value, key)


def _heads(raw: dict) -> TaxHeads:
    return TaxHeads(_money(raw, "igst"), _money(raw, "cgst"), _money(raw, "sgst"))


def _availability(raw: dict, heads: TaxHeads) -> dict[str, Any]:
    available = str(raw.get("itcavl") or "Y").upper() != "N"
    return {
        "itc_available": available,
        "reason": raw.get("rsn") or None,
        "blocked_itc": NO_TAX if available else heads,
    }


def _invoice_entry(
    raw: dict, ctin: str, trade_name: Optional[str], section: StatementSection
) -> GSTR2BEntry:
    heads = _heads(raw)
    original_date = raw.get("oidt")
    return GSTR2BEntry(
        supplier_gstin=ctin,
        trade_name=trade_name,
        document_number=str(raw.get("inum") or ""),
        document_date=parse_gstr2b_date(raw.get("idt")),
        document_value=_money(raw, "val"),
        taxable_value=_money(raw, "txval"),
        amounts=heads,
        cess=_money(raw, "cess"),
        supply_type=section,
        original_document_number=raw.get("oinum") or None,
        original_document_date=parse_gstr2b_date(original_date) if original_date else None,
        **_availability(raw, heads),
    )


def _note_entry(
    raw: dict, ctin: str, trade_name: Optional[str], section: StatementSection
) -> GSTR2BEntry:
    heads = _heads(raw)
    original_date = raw.get("ontdt")
    return GSTR2BEntry(
        supplier_gstin=ctin,
        trade_name=trade_name,
        document_number=str(raw.get("ntnum") or ""),
        document_date=parse_gstr2b_date(raw.get("ntdt")),
        document_value=_money(raw, "val"),
        taxable_value=_money(raw, "txval"),
        amounts=heads,
        cess=_money(raw, "cess"),
        supply_type=section,
        note_type=(raw.get("typ") or "").upper() or None,
        original_document_number=raw.get("ontnum") or None,
        original_document_date=parse_gstr2b_date(original_date) if original_date else None,
        **_availability(raw, heads),
    )


def _import_entry(raw: dict, section: StatementSection) -> GSTR2BEntry:
    igst = _money(raw, "igst")
    cess = _money(raw, "cess")
    taxable = _money(raw, "txval")
    return GSTR2BEntry(
        supplier_gstin="",  # bills of entry carry no supplier GSTIN
        document_number=str(raw.get("benum") or ""),
        document_date=parse_gstr2b_date(raw.get("bedt")),
        document_value=taxable + igst + cess,
        taxable_value=taxable,
        amounts=TaxHeads(igst=igst),
        cess=cess,
        supply_type=section,
        port_code=raw.get("portcd") or None,
    )


def parse_gstr2b(document: dict) -> GSTR2BStatement:
    """
    Flatten a GSTR-2B JSON document into a statement.

    Amended sections (b2ba, cdnra) are flagged as amendments and keep the
    original document number and date. ``itcavl: "N"`` blocks the whole tax
    on that document.
    """
    if not isinstance(document, dict):
        raise ValidationError("Invalid GSTR-2B JSON: expected an object")
    gstin = document.get("gstin")
    period = document.get("fp")
    if not gstin or not period:
        raise ValidationError("Invalid GSTR-2B JSON: missing gstin or fp (filing period)")
    if len(str(gstin)) != 15:
        raise ValidationError(f"Invalid GSTIN in GSTR-2B: {gstin}", field="gstin")
    if len(str(period)) != 6 or not str(period).isdigit():
        raise ValidationError(f"Invalid filing period (MMYYYY): {period}", field="fp")

    entries: list[GSTR2BEntry] = []
    for key, section in (("b2b", StatementSection.B2B), ("b2ba", StatementSection.B2BA)):
        for supplier in document.get(key) or []:
            for inv in supplier.get("inv") or []:
                entries.append(
                    _invoice_entry(inv, supplier.get("ctin", ""), supplier.get("trdnm"), section)
                )
    for key, section in (("cdnr", StatementSection.CDNR), ("cdnra", StatementSection.CDNRA)):
        for supplier in document.get(key) or []:
            for note in supplier.get("nt") or []:
                entries.append(
                    _note_entry(note, supplier.get("ctin", ""), supplier.get("trdnm"), section)
                )
    for key, section in (("impg", StatementSection.IMPG), ("impgsez", StatementSection.IMPGSEZ)):
        for imp in document.get(key) or []:
            entries.append(_import_entry(imp, section))

    logger.info("Parsed GSTR-2B %s for %s: %d entries", period, gstin, len(entries))
    return GSTR2BStatement(gstin=str(gstin), return_period=str(period), entries=entries)


def summarize(entries: list[GSTR2BEntry]) -> StatementSummary:
    """Totals across a statement. Credit notes reduce the totals."""
    summary = StatementSummary(total_documents=len(entries))
    for entry in entries:
        sign = -1 if entry.is_credit_note else 1
        summary.taxable_value += sign * entry.taxable_value
        summary.tax = summary.tax + (-entry.amounts if sign < 0 else entry.amounts)
        summary.cess += sign * entry.cess
        if entry.itc_available:
            summary.itc_available += sign * entry.eligible.total
    return summary
