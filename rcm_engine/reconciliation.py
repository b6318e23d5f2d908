"""
ITC reconciliation.

Handles:
- Matching claimed credit against a GSTR-2B statement for the same period
- Classifying every pairing (matched, amount mismatch, claim-only,
  statement-only) and flagging blocked-credit claims
- Surfacing statement amendments and RCM claims that need manual entry
- Correction entries that bring the credit ledger in line with the statement
- Checking RCM credit claims against cash payments
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from rcm_engine.amounts import NO_TAX, ZERO, TaxHeads
from rcm_engine.compliance import coerce_date
from rcm_engine.errors import ValidationError
from rcm_engine.gstr2b import GSTR2BEntry
from rcm_engine.ledger import CreditLedgerEntry, EntryType, PaymentMode, RCMPayment

logger = logging.getLogger(__name__)


class MatchStatus(Enum):
    MATCHED = "MATCHED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    NOT_IN_STATEMENT = "NOT_IN_STATEMENT"
    STATEMENT_ONLY = "IN_STATEMENT_ONLY"


class PaymentIssueType(Enum):
    NO_PAYMENT_FOUND = "NO_PAYMENT_FOUND"
    ITC_CLAIMED_BEFORE_PAYMENT = "ITC_CLAIMED_BEFORE_PAYMENT"
    RCM_NOT_PAID_IN_CASH = "RCM_NOT_PAID_IN_CASH"


@dataclass(frozen=True)
class ClaimedCredit:
    """A line of ITC the taxpayer has claimed (or intends to claim)."""

    document_number: str
    document_date: date
    amounts: TaxHeads
    supplier_gstin: Optional[str] = None
    is_rcm: bool = False
    transaction_id: Optional[str] = None
    claim_date: Optional[date] = None

    def __post_init__(self) -> None:
        if not self.document_number:
            raise ValidationError("Document number is required", field="document_number")
        if self.amounts.has_negative():
            raise ValidationError("Claimed amounts cannot be negative", field="amounts")

    @classmethod
    def from_dict(cls, data: dict) -> "ClaimedCredit":
        claim_date = data.get("claim_date")
        is_rcm = data.get("is_rcm", False)
        if isinstance(is_rcm, str):
            is_rcm = is_rcm.strip().upper() in ("Y", "YES", "TRUE", "1")
        return cls(
            document_number=str(data.get("document_number") or ""),
            document_date=coerce_date(data["document_date"], "document_date"),
            amounts=TaxHeads.from_dict(data),
            supplier_gstin=data.get("supplier_gstin") or None,
            is_rcm=bool(is_rcm),
            transaction_id=data.get("transaction_id") or None,
            claim_date=coerce_date(claim_date, "claim_date") if claim_date else None,
        )


@dataclass(frozen=True)
class ReconciliationMatch:
    status: MatchStatus
    claim: Optional[ClaimedCredit] = None
    statement: Optional[GSTR2BEntry] = None
    head_differences: TaxHeads = NO_TAX  # absolute, per head

    @property
    def difference(self) -> Decimal:
        return self.head_differences.total

    @property
    def document_number(self) -> str:
        source = self.claim or self.statement
        return source.document_number


@dataclass(frozen=True)
class Violation:
    kind: str  # CLAIMED_BLOCKED_ITC
    document_number: str
    supplier_gstin: Optional[str]
    excess: TaxHeads

    @property
    def excess_claim(self) -> Decimal:
        return self.excess.total


@dataclass(frozen=True)
class AmendmentNotice:
    document_number: str
    supplier_gstin: str
    original_document_number: Optional[str]
    original_document_date: Optional[date]
    adjustment_period: str
    requires_adjustment: bool = True


@dataclass
class ReconciliationResult:
    period: Optional[str] = None
    matched: list[ReconciliationMatch] = field(default_factory=list)
    mismatches: list[ReconciliationMatch] = field(default_factory=list)
    claim_only: list[ReconciliationMatch] = field(default_factory=list)
    statement_only: list[ReconciliationMatch] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)
    amendments: list[AmendmentNotice] = field(default_factory=list)
    manual_entry: list[ClaimedCredit] = field(default_factory=list)

    @property
    def claims_considered(self) -> int:
        return len(self.matched) + len(self.mismatches) + len(self.claim_only)

    @property
    def match_percentage(self) -> float:
        considered = self.claims_considered
        if considered == 0:
            return 100.0
        return len(self.matched) / considered * 100

    @property
    def is_clean(self) -> bool:
        return not (self.mismatches or self.claim_only or self.violations)

    @property
    def requires_manual_entry(self) -> bool:
        return bool(self.manual_entry)


@dataclass
class UnreconciledClaim:
    transaction_id: str
    reason: PaymentIssueType
    amount: Decimal


@dataclass
class PaymentIssue:
    transaction_id: str
    issue: PaymentIssueType
    action: str


@dataclass
class PaymentReconciliation:
    total_payments: Decimal = ZERO
    total_claimed: Decimal = ZERO
    unreconciled: list[UnreconciledClaim] = field(default_factory=list)
    issues: list[PaymentIssue] = field(default_factory=list)

    @property
    def violations(self) -> list[PaymentIssue]:
        return [i for i in self.issues if i.issue == PaymentIssueType.RCM_NOT_PAID_IN_CASH]

    @property
    def compliance_violation(self) -> bool:
        return bool(self.violations)

    @property
    def is_reconciled(self) -> bool:
        return not self.unreconciled and not self.issues


# -----------------------------------------------------------------------
# Statement matching
# -----------------------------------------------------------------------


def _key(gstin: Optional[str], number: str, doc_date: date) -> tuple[str, str, date]:
    return ((gstin or "").strip().upper(), number.strip(), doc_date)


def _abs_heads(delta: TaxHeads) -> TaxHeads:
    return TaxHeads(*(abs(v) for _, v in delta.items()))


def _has_blocked_credit(entry: GSTR2BEntry) -> bool:
    return entry.eligible != entry.amounts


def match(
    statement_entries: Iterable[GSTR2BEntry],
    claimed_entries: Iterable[ClaimedCredit],
    period: Optional[str] = None,
) -> ReconciliationResult:
    """
    Reconcile claimed ITC against a statement.

    Claims and statement entries pair on an exact (supplier GSTIN, document
    number, document date) key, each statement entry at most once. Paired
    amounts are compared head by head with no tolerance. RCM claims are set
    aside for manual entry since self-invoices never reach the statement.
    Amendments are reported for adjustment in ``period``.
    """
    statement = list(statement_entries)
    result = ReconciliationResult(period=period)

    index: dict[tuple[str, str, date], deque[int]] = defaultdict(deque)
    for pos, entry in enumerate(statement):
        index[_key(entry.supplier_gstin, entry.document_number, entry.document_date)].append(pos)
    used: set[int] = set()

    for claim in claimed_entries:
        if claim.is_rcm:
            result.manual_entry.append(claim)
            continue

        candidates = index.get(_key(claim.supplier_gstin, claim.document_number, claim.document_date))
        if not candidates:
            result.claim_only.append(
                ReconciliationMatch(MatchStatus.NOT_IN_STATEMENT, claim=claim)
            )
            continue

        pos = candidates.popleft()
        used.add(pos)
        entry = statement[pos]
        diff = _abs_heads(claim.amounts - entry.amounts)
        if diff.is_zero():
            result.matched.append(ReconciliationMatch(MatchStatus.MATCHED, claim, entry))
        else:
            result.mismatches.append(
                ReconciliationMatch(MatchStatus.AMOUNT_MISMATCH, claim, entry, diff)
            )

        if _has_blocked_credit(entry):
            excess = (claim.amounts - entry.eligible).positive_part()
            if not excess.is_zero():
                result.violations.append(
                    Violation(
                        kind="CLAIMED_BLOCKED_ITC",
                        document_number=claim.document_number,
                        supplier_gstin=claim.supplier_gstin,
                        excess=excess,
                    )
                )

    for pos, entry in enumerate(statement):
        if pos not in used:
            result.statement_only.append(
                ReconciliationMatch(MatchStatus.STATEMENT_ONLY, statement=entry)
            )
        if entry.is_amendment:
            result.amendments.append(
                AmendmentNotice(
                    document_number=entry.document_number,
                    supplier_gstin=entry.supplier_gstin,
                    original_document_number=entry.original_document_number,
                    original_document_date=entry.original_document_date,
                    adjustment_period=period or "CURRENT",
                )
            )

    logger.info(
        "Reconciled %s: %d matched, %d mismatched, %d claim-only, %d statement-only, "
        "%d violations",
        period or "period",
        len(result.matched),
        len(result.mismatches),
        len(result.claim_only),
        len(result.statement_only),
        len(result.violations),
    )
    return result


def correction_entries(
    result: ReconciliationResult, entry_date: date
) -> list[CreditLedgerEntry]:
    """
    Ledger entries that bring claimed credit to what the statement allows.

    A paired claim above the eligible amount is reversed down to it; one
    below gets a positive adjustment. Claims absent from the statement are
    reversed in full.
    """
    label = result.period or "RECON"
    entries: list[CreditLedgerEntry] = []

    for pair in result.matched + result.mismatches:
        claim, stmt = pair.claim, pair.statement
        reference = f"{label}:{claim.supplier_gstin}:{claim.document_number}"
        delta = stmt.eligible - claim.amounts
        excess = delta.negative_part()
        shortfall = delta.positive_part()
        if not excess.is_zero():
            entries.append(
                CreditLedgerEntry(
                    entry_date=entry_date,
                    entry_type=EntryType.REVERSAL,
                    amounts=excess,
                    reference=reference,
                    description=f"ITC claimed above statement on {claim.document_number}",
                )
            )
        if not shortfall.is_zero():
            entries.append(
                CreditLedgerEntry(
                    entry_date=entry_date,
                    entry_type=EntryType.ADJUSTMENT,
                    amounts=shortfall,
                    reference=reference,
                    description=f"Unclaimed eligible ITC on {claim.document_number}",
                )
            )

    for item in result.claim_only:
        claim = item.claim
        if claim.amounts.is_zero():
            continue
        entries.append(
            CreditLedgerEntry(
                entry_date=entry_date,
                entry_type=EntryType.REVERSAL,
                amounts=claim.amounts,
                reference=f"{label}:{claim.supplier_gstin}:{claim.document_number}",
                description=f"{claim.document_number} not in statement",
            )
        )

    return entries


# -----------------------------------------------------------------------
# Payment reconciliation
# -----------------------------------------------------------------------


def reconcile_payments(
    claims: Iterable[ClaimedCredit], payments: Iterable[RCMPayment]
) -> PaymentReconciliation:
    """
    Check RCM credit claims against the tax payments behind them.

    Credit on RCM is only available once the tax is paid, and only if it
    was paid in cash.
    """
    payments = list(payments)
    by_txn = {p.transaction_id: p for p in payments}
    claims = list(claims)
    report = PaymentReconciliation(
        total_payments=sum((p.amounts.total for p in payments), ZERO),
        total_claimed=sum((c.amounts.total for c in claims), ZERO),
    )

    for claim in claims:
        txn_id = claim.transaction_id or claim.document_number
        payment = by_txn.get(txn_id)
        if payment is None:
            report.unreconciled.append(
                UnreconciledClaim(txn_id, PaymentIssueType.NO_PAYMENT_FOUND, claim.amounts.total)
            )
            continue

        if claim.claim_date and claim.claim_date < payment.payment_date:
            report.issues.append(
                PaymentIssue(
                    txn_id,
                    PaymentIssueType.ITC_CLAIMED_BEFORE_PAYMENT,
                    "Reverse the ITC and reclaim after payment",
                )
            )
        if payment.payment_mode != PaymentMode.CASH:
            report.issues.append(
                PaymentIssue(
                    txn_id,
                    PaymentIssueType.RCM_NOT_PAID_IN_CASH,
                    "Pay the RCM liability in cash; ITC cannot discharge it",
                )
            )

    if report.compliance_violation:
        logger.warning(
            "%d RCM liabilities were not paid in cash", len(report.violations)
        )
    return report
