"""
ITC utilization against output tax liability.

The order is fixed by Section 49 / Rule 88A:

1. IGST credit against IGST liability
2. remaining IGST credit against CGST, then SGST liability
3. CGST credit against CGST liability only
4. SGST credit against SGST liability only

CGST and SGST credit never cross over to each other or to IGST. Whatever
liability is left is payable in cash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from rcm_engine.amounts import TaxHeads
from rcm_engine.errors import ValidationError
from rcm_engine.ledger import CreditLedgerEntry, EntryType, balance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UtilizationResult:
    igst_against_igst: Decimal
    igst_against_cgst: Decimal
    igst_against_sgst: Decimal
    cgst_against_cgst: Decimal
    sgst_against_sgst: Decimal
    remaining_itc: TaxHeads
    cash_by_head: TaxHeads

    @property
    def igst_used(self) -> Decimal:
        return self.igst_against_igst + self.igst_against_cgst + self.igst_against_sgst

    @property
    def cgst_used(self) -> Decimal:
        return self.cgst_against_cgst

    @property
    def sgst_used(self) -> Decimal:
        return self.sgst_against_sgst

    @property
    def used(self) -> TaxHeads:
        """Credit consumed, by the head it was drawn from."""
        return TaxHeads(self.igst_used, self.cgst_used, self.sgst_used)

    @property
    def cash_required(self) -> Decimal:
        return self.cash_by_head.total


def allocate(available: TaxHeads, liability: TaxHeads) -> UtilizationResult:
    if available.has_negative():
        raise ValidationError("Available ITC cannot be negative", field="available")
    if liability.has_negative():
        raise ValidationError("Tax liability cannot be negative", field="liability")

    igst = available.igst

    igst_igst = min(igst, liability.igst)
    igst -= igst_igst
    igst_cgst = min(igst, liability.cgst)
    igst -= igst_cgst
    igst_sgst = min(igst, liability.sgst)
    igst -= igst_sgst

    cgst_cgst = min(available.cgst, liability.cgst - igst_cgst)
    sgst_sgst = min(available.sgst, liability.sgst - igst_sgst)

    result = UtilizationResult(
        igst_against_igst=igst_igst,
        igst_against_cgst=igst_cgst,
        igst_against_sgst=igst_sgst,
        cgst_against_cgst=cgst_cgst,
        sgst_against_sgst=sgst_sgst,
        remaining_itc=TaxHeads(igst, available.cgst - cgst_cgst, available.sgst - sgst_sgst),
        cash_by_head=TaxHeads(
            liability.igst - igst_igst,
            liability.cgst - igst_cgst - cgst_cgst,
            liability.sgst - igst_sgst - sgst_sgst,
        ),
    )
    logger.debug(
        "Utilized %s against liability %s, cash required %s",
        result.used.as_dict(),
        liability.as_dict(),
        result.cash_required,
    )
    return result


def allocate_from_ledger(
    ledger: Iterable[CreditLedgerEntry], liability: TaxHeads
) -> UtilizationResult:
    return allocate(balance(ledger), liability)


def utilization_entry(
    result: UtilizationResult, entry_date: date, reference: str
) -> CreditLedgerEntry:
    """The DEBIT that records credit consumed by a utilization run."""
    used = result.used
    if used.is_zero():
        raise ValidationError("Nothing was utilized", field="result")
    return CreditLedgerEntry(
        entry_date=entry_date,
        entry_type=EntryType.DEBIT,
        amounts=used,
        reference=reference,
        description="ITC utilized against output liability",
    )
