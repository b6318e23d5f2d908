"""
Electronic credit ledger for RCM-derived input tax credit.

Handles:
- Append-only entries (credit, debit, reversal, adjustment) per tax head
- Derived balances with a never-negative invariant on every head
- Provisional entries settled by a final signed adjustment
- Turning a cash-settled self-invoice into a credit grant
- Serialized, idempotent posting per issuer
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from rcm_engine.amounts import HEADS, NO_TAX, ZERO, TaxHeads
from rcm_engine.compliance import coerce_date
from rcm_engine.errors import (
    ComplianceViolation,
    InsufficientBalance,
    NotFoundError,
    ValidationError,
)
from rcm_engine.self_invoice import SelfInvoice

logger = logging.getLogger(__name__)


class EntryType(Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    REVERSAL = "REVERSAL"
    ADJUSTMENT = "ADJUSTMENT"  # signed


class EntryStatus(Enum):
    PROVISIONAL = "PROVISIONAL"
    FINAL = "FINAL"


class PaymentMode(Enum):
    CASH = "CASH"
    ITC = "ITC"


@dataclass(frozen=True)
class CreditLedgerEntry:
    """
    One movement on the credit ledger.

    CREDIT, DEBIT and REVERSAL carry non-negative amounts and their type
    gives the direction. ADJUSTMENT amounts are signed deltas.
    """

    entry_date: date
    entry_type: EntryType
    amounts: TaxHeads
    reference: str
    status: Optional[EntryStatus] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.reference or not self.reference.strip():
            raise ValidationError("Ledger entry reference is required", field="reference")
        if self.entry_type != EntryType.ADJUSTMENT and self.amounts.has_negative():
            raise ValidationError(
                f"{self.entry_type.value} amounts cannot be negative", field="amounts"
            )
        if self.status == EntryStatus.FINAL and self.entry_type != EntryType.ADJUSTMENT:
            raise ValidationError(
                "Only ADJUSTMENT entries can be FINAL", field="status"
            )

    @property
    def signed_amounts(self) -> TaxHeads:
        if self.entry_type in (EntryType.DEBIT, EntryType.REVERSAL):
            return -self.amounts
        return self.amounts

    @classmethod
    def from_dict(cls, data: dict) -> "CreditLedgerEntry":
        status = data.get("status")
        return cls(
            entry_date=coerce_date(data["entry_date"], "entry_date"),
            entry_type=EntryType(data["entry_type"]),
            amounts=TaxHeads.from_dict(data),
            reference=str(data.get("reference") or ""),
            status=EntryStatus(status) if status else None,
            description=data.get("description") or "",
        )


@dataclass(frozen=True)
class RCMPayment:
    """A tax payment made against an RCM liability."""

    transaction_id: str
    payment_date: date
    amounts: TaxHeads
    payment_mode: PaymentMode = PaymentMode.CASH
    challan_number: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RCMPayment":
        return cls(
            transaction_id=str(data["transaction_id"]),
            payment_date=coerce_date(data["payment_date"], "payment_date"),
            amounts=TaxHeads.from_dict(data),
            payment_mode=PaymentMode(str(data.get("payment_mode") or "CASH").upper()),
            challan_number=data.get("challan_number") or None,
        )


# -----------------------------------------------------------------------
# Pure ledger operations
# -----------------------------------------------------------------------


def balance(ledger: Iterable[CreditLedgerEntry]) -> TaxHeads:
    """Current balance per head, derived from the entries."""
    total = NO_TAX
    for entry in ledger:
        total = total + entry.signed_amounts
    return total


def apply(
    ledger: Iterable[CreditLedgerEntry], entry: CreditLedgerEntry
) -> tuple[CreditLedgerEntry, ...]:
    """
    Return the ledger with ``entry`` appended.

    Raises InsufficientBalance, leaving the input untouched, when the entry
    would drive any head below zero.
    """
    entries = tuple(ledger)
    current = balance(entries)
    after = current + entry.signed_amounts
    for head in HEADS:
        if after.head(head) < ZERO:
            error = InsufficientBalance(
                head, current.head(head), -entry.signed_amounts.head(head)
            )
            logger.warning("Rejected %s %s: %s", entry.entry_type.value, entry.reference, error)
            raise error
    return entries + (entry,)


def provisional_total(ledger: Iterable[CreditLedgerEntry], reference: str) -> TaxHeads:
    total = NO_TAX
    found = False
    for entry in ledger:
        if entry.reference == reference and entry.status == EntryStatus.PROVISIONAL:
            total = total + entry.signed_amounts
            found = True
    if not found:
        raise NotFoundError("Provisional ledger entry", reference)
    return total


def finalize_provisional(
    ledger: Iterable[CreditLedgerEntry],
    reference: str,
    final_amounts: TaxHeads,
    entry_date: date,
) -> tuple[CreditLedgerEntry, ...]:
    """
    Settle provisional entries for ``reference`` at ``final_amounts``.

    Appends a FINAL adjustment for the difference; the provisional entries
    stay in place.
    """
    entries = tuple(ledger)
    if any(e.reference == reference and e.status == EntryStatus.FINAL for e in entries):
        raise ValidationError(f"Entries for {reference} are already final", field="reference")
    delta = final_amounts - provisional_total(entries, reference)
    adjustment = CreditLedgerEntry(
        entry_date=entry_date,
        entry_type=EntryType.ADJUSTMENT,
        amounts=delta,
        reference=reference,
        status=EntryStatus.FINAL,
        description=f"Final adjustment for {reference}",
    )
    return apply(entries, adjustment)


def credit_from_settlement(
    invoice: SelfInvoice,
    payment: RCMPayment,
    entry_date: Optional[date] = None,
) -> CreditLedgerEntry:
    """
    Credit grant for a self-invoice whose RCM tax has been paid.

    RCM liability can only be discharged in cash, and in full on every head.
    """
    if payment.transaction_id != invoice.transaction_id:
        raise ValidationError(
            f"Payment for {payment.transaction_id} does not settle "
            f"{invoice.invoice_number} ({invoice.transaction_id})",
            field="transaction_id",
        )
    if payment.payment_mode != PaymentMode.CASH:
        raise ComplianceViolation(
            f"RCM tax on {invoice.invoice_number} must be paid in cash, not "
            f"{payment.payment_mode.value}",
            rule="RCM_NOT_PAID_IN_CASH",
        )
    short = (invoice.tax - payment.amounts).positive_part()
    if not short.is_zero():
        raise ComplianceViolation(
            f"RCM tax on {invoice.invoice_number} is underpaid by {short.total}",
            rule="RCM_UNDERPAID",
        )
    return CreditLedgerEntry(
        entry_date=entry_date or payment.payment_date,
        entry_type=EntryType.CREDIT,
        amounts=invoice.tax,
        reference=invoice.invoice_number,
        description=f"RCM ITC on {invoice.invoice_number}"
        + (f", challan {payment.challan_number}" if payment.challan_number else ""),
    )


# -----------------------------------------------------------------------
# Stateful ledgers
# -----------------------------------------------------------------------


class CreditLedger:
    """
    One issuer's credit ledger.

    Every read-balance-then-append runs under the ledger's lock, so two
    concurrent debits cannot both pass the balance check.
    """

    def __init__(self, issuer_gstin: str, entries: Iterable[CreditLedgerEntry] = ()) -> None:
        self.issuer_gstin = issuer_gstin
        self._lock = threading.Lock()
        self._entries: tuple[CreditLedgerEntry, ...] = ()
        for entry in entries:
            self._entries = apply(self._entries, entry)

    @property
    def entries(self) -> tuple[CreditLedgerEntry, ...]:
        return self._entries

    def balance(self) -> TaxHeads:
        return balance(self._entries)

    @staticmethod
    def _is_duplicate_credit(
        entries: tuple[CreditLedgerEntry, ...], entry: CreditLedgerEntry
    ) -> bool:
        return entry.entry_type == EntryType.CREDIT and any(
            e.entry_type == EntryType.CREDIT and e.reference == entry.reference
            for e in entries
        )

    def post(self, entry: CreditLedgerEntry) -> bool:
        """
        Append one entry. Returns False when a CREDIT with the same
        reference is already on the ledger, whatever its amounts.
        """
        with self._lock:
            if self._is_duplicate_credit(self._entries, entry):
                logger.info("Credit %s already posted for %s", entry.reference, self.issuer_gstin)
                return False
            self._entries = apply(self._entries, entry)
        logger.debug(
            "Posted %s %s to %s: %s",
            entry.entry_type.value,
            entry.reference,
            self.issuer_gstin,
            entry.signed_amounts.as_dict(),
        )
        return True

    def post_all(self, entries: Iterable[CreditLedgerEntry]) -> int:
        """Append a batch atomically: either every entry lands or none does."""
        with self._lock:
            staged = self._entries
            posted = 0
            for entry in entries:
                if self._is_duplicate_credit(staged, entry):
                    continue
                staged = apply(staged, entry)
                posted += 1
            self._entries = staged
        return posted

    def finalize(self, reference: str, final_amounts: TaxHeads, entry_date: date) -> None:
        with self._lock:
            self._entries = finalize_provisional(
                self._entries, reference, final_amounts, entry_date
            )

    def entries_for(self, reference: str) -> list[CreditLedgerEntry]:
        found = [e for e in self._entries if e.reference == reference]
        if not found:
            raise NotFoundError("Ledger entry", reference)
        return found

    def __len__(self) -> int:
        return len(self._entries)


class LedgerBook:
    """Credit ledgers for many issuers, keyed by GSTIN."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ledgers: dict[str, CreditLedger] = {}

    def ledger(self, issuer_gstin: str) -> CreditLedger:
        with self._lock:
            if issuer_gstin not in self._ledgers:
                self._ledgers[issuer_gstin] = CreditLedger(issuer_gstin)
            return self._ledgers[issuer_gstin]

    def get(self, issuer_gstin: str) -> CreditLedger:
        try:
            return self._ledgers[issuer_gstin]
        except KeyError:
            raise NotFoundError("Credit ledger", issuer_gstin) from None

    def issuers(self) -> list[str]:
        return sorted(self._ledgers)

    def balances(self) -> dict[str, TaxHeads]:
        return {gstin: self._ledgers[gstin].balance() for gstin in self.issuers()}

    def __contains__(self, issuer_gstin: object) -> bool:
        return issuer_gstin in self._ledgers
