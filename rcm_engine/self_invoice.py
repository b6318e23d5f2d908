"""
Self-invoice generation for reverse-charge purchases.

Handles:
- Sequential numbering per issuer and fiscal year (SI-FY24-25/001)
- Intra-state CGST/SGST and inter-state/import IGST split, plus cess
- Foreign-currency conversion before tax is computed
- Issuance timeliness against the 30-day window
- Bulk generation with per-transaction failure isolation
- An idempotent register so retried jobs never issue twice
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from rcm_engine.amounts import ZERO, TaxHeads, round_money, tax_on, to_decimal
from rcm_engine.classifier import RCMType, match_notified_item
from rcm_engine.compliance import coerce_date, fiscal_year_for, self_invoice_window
from rcm_engine.config import DEFAULT_CONFIG, EngineConfig
from rcm_engine.errors import RCMEngineError, ValidationError
from rcm_engine.rules import NotifiedRuleRegistry, RuleType

logger = logging.getLogger(__name__)

OUTSIDE_INDIA_STATE_CODE = "99"

_FISCAL_YEAR = re.compile(r"^(?:FY)?(\d{2}|\d{4})-(\d{2})$")


class SupplyType(Enum):
    GOODS = "GOODS"
    SERVICES = "SERVICES"


class ComplianceRating(Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


@dataclass(frozen=True)
class IssuerProfile:
    """The registered recipient who self-invoices."""

    gstin: str
    legal_name: str
    state_code: str
    address: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.gstin or not self.gstin.strip():
            raise ValidationError("Issuer GSTIN is required", field="gstin")
        if not self.state_code:
            raise ValidationError("Issuer state code is required", field="state_code")

    @classmethod
    def from_dict(cls, data: dict) -> "IssuerProfile":
        return cls(
            gstin=str(data["gstin"]).strip().upper(),
            legal_name=data.get("legal_name", ""),
            state_code=str(data["state_code"]).zfill(2),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class RCMTransaction:
    """A purchase on which the recipient owes tax under reverse charge."""

    transaction_id: str
    supplier_name: str
    supplier_state_code: str
    hsn_sac_code: str
    transaction_date: date
    receipt_date: date
    place_of_supply: str
    taxable_amount: Optional[Decimal] = None
    supplier_gstin: Optional[str] = None
    foreign_currency: Optional[str] = None
    foreign_amount: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    gst_rate: Optional[Decimal] = None
    cess_rate: Optional[Decimal] = None
    supply_type: SupplyType = SupplyType.SERVICES
    original_invoice_number: Optional[str] = None
    original_invoice_date: Optional[date] = None

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValidationError("Transaction id is required", field="transaction_id")
        for name in ("taxable_amount", "foreign_amount", "exchange_rate", "gst_rate", "cess_rate"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value, name))
        if self.taxable_amount is None and not self.is_foreign:
            raise ValidationError(
                "Taxable amount or a foreign amount with exchange rate is required",
                field="taxable_amount",
            )
        if self.is_foreign and self.exchange_rate <= 0:
            raise ValidationError("Exchange rate must be positive", field="exchange_rate")

    @property
    def is_foreign(self) -> bool:
        return self.foreign_amount is not None and self.exchange_rate is not None

    @property
    def local_taxable_amount(self) -> Decimal:
        """Taxable value in rupees, converted and rounded once for imports."""
        if self.is_foreign:
            return round_money(self.foreign_amount * self.exchange_rate)
        return round_money(self.taxable_amount)

    @classmethod
    def from_dict(cls, data: dict) -> "RCMTransaction":
        def _opt_date(key: str) -> Optional[date]:
            value = data.get(key)
            return coerce_date(value, key) if value else None

        transaction_date = coerce_date(data["transaction_date"], "transaction_date")
        return cls(
            transaction_id=str(data.get("transaction_id", "")),
            supplier_name=data.get("supplier_name") or "",
            supplier_state_code=str(data.get("supplier_state_code") or "").zfill(2),
            hsn_sac_code=str(data.get("hsn_sac_code") or ""),
            transaction_date=transaction_date,
            receipt_date=_opt_date("receipt_date") or transaction_date,
            place_of_supply=data.get("place_of_supply") or "",
            taxable_amount=data.get("taxable_amount"),
            supplier_gstin=data.get("supplier_gstin") or None,
            foreign_currency=data.get("foreign_currency") or None,
            foreign_amount=data.get("foreign_amount"),
            exchange_rate=data.get("exchange_rate"),
            gst_rate=data.get("gst_rate"),
            cess_rate=data.get("cess_rate"),
            supply_type=SupplyType(data.get("supply_type") or "SERVICES"),
            original_invoice_number=data.get("original_invoice_number") or None,
            original_invoice_date=_opt_date("original_invoice_date"),
        )


@dataclass(frozen=True)
class SelfInvoice:
    invoice_number: str
    invoice_date: date
    fiscal_year: str
    transaction_id: str
    rcm_type: RCMType
    supply_type: SupplyType

    supplier_name: str
    supplier_gstin: Optional[str]
    supplier_state_code: str
    recipient_gstin: str
    recipient_name: str
    recipient_state_code: str
    place_of_supply: str
    hsn_sac_code: str

    taxable_amount: Decimal
    gst_rate: Decimal
    tax: TaxHeads
    igst_rate: Optional[Decimal]
    cgst_rate: Optional[Decimal]
    sgst_rate: Optional[Decimal]
    cess_rate: Optional[Decimal]
    cess_amount: Decimal

    receipt_date: date
    issued_within_time: bool
    days_delayed: int

    original_invoice_number: Optional[str] = None
    original_invoice_date: Optional[date] = None
    foreign_currency: Optional[str] = None
    foreign_amount: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    status: str = "ISSUED"

    @property
    def is_inter_state(self) -> bool:
        return self.igst_rate is not None

    @property
    def total_tax_amount(self) -> Decimal:
        return self.tax.total + self.cess_amount

    @property
    def total_amount(self) -> Decimal:
        return self.taxable_amount + self.total_tax_amount


@dataclass
class FailedGeneration:
    transaction_id: str
    reason: str


@dataclass
class BulkGenerationResult:
    generated: list[SelfInvoice] = field(default_factory=list)
    failed: list[FailedGeneration] = field(default_factory=list)


@dataclass
class ComplianceSummary:
    total_self_invoices: int
    issued_on_time: int
    issued_late: int
    pending: int
    compliance_rate: float
    rating: ComplianceRating

    @property
    def requires_action(self) -> bool:
        return self.rating == ComplianceRating.POOR or self.pending > 5


# -----------------------------------------------------------------------
# Numbering
# -----------------------------------------------------------------------


def _short_fiscal_year(fiscal_year: str) -> str:
    m = _FISCAL_YEAR.match(fiscal_year.strip().upper()) if fiscal_year else None
    if m is None:
        raise ValidationError(f"Invalid fiscal year: {fiscal_year!r}", field="fiscal_year")
    start, end = m.group(1)[-2:], m.group(2)
    if (int(start) + 1) % 100 != int(end):
        raise ValidationError(
            f"Fiscal year {fiscal_year!r} does not span consecutive years",
            field="fiscal_year",
        )
    return f"{start}-{end}"


def generate_self_invoice_number(fiscal_year: str, sequence: int) -> str:
    """``SI-FY24-25/001`` style number; accepts ``"FY24-25"`` or ``"2024-25"``."""
    if sequence < 1:
        raise ValidationError("Sequence number must be at least 1", field="sequence")
    return f"SI-FY{_short_fiscal_year(fiscal_year)}/{sequence:03d}"


# -----------------------------------------------------------------------
# Generation
# -----------------------------------------------------------------------


def validate_transaction(transaction: RCMTransaction) -> list[str]:
    """Data problems that prevent a self-invoice from being raised."""
    errors: list[str] = []
    if not transaction.supplier_name.strip():
        errors.append("Supplier name is required")
    if not transaction.place_of_supply.strip():
        errors.append("Place of supply is required")
    code = transaction.hsn_sac_code.strip()
    if len(code) < 4:
        errors.append("Valid HSN/SAC code required (minimum 4 digits)")
    if transaction.local_taxable_amount <= 0:
        errors.append("Taxable amount must be greater than 0")
    return errors


def _resolve_rate(
    transaction: RCMTransaction, registry: Optional[NotifiedRuleRegistry]
) -> tuple[Decimal, RCMType]:
    match = match_notified_item(
        transaction.hsn_sac_code,
        transaction.supplier_gstin,
        transaction.receipt_date,
        registry,
    )
    if match is not None:
        rcm_type = (
            RCMType.NOTIFIED_SERVICE
            if match.rule.rule_type == RuleType.SERVICE
            else RCMType.NOTIFIED_GOODS
        )
    elif transaction.is_foreign or transaction.supplier_state_code == OUTSIDE_INDIA_STATE_CODE:
        rcm_type = RCMType.IMPORT_SERVICE
    else:
        rcm_type = RCMType.UNREGISTERED

    if transaction.gst_rate is not None:
        rate = transaction.gst_rate
    elif match is not None:
        rate = match.rule.gst_rate
    else:
        raise ValidationError(
            f"No GST rate for transaction {transaction.transaction_id}: "
            f"code {transaction.hsn_sac_code!r} is not notified and no rate was given",
            field="gst_rate",
        )
    if rate < 0:
        raise ValidationError("GST rate cannot be negative", field="gst_rate")
    return rate, rcm_type


def generate(
    transaction: RCMTransaction,
    recipient: IssuerProfile,
    sequence_number: int,
    fiscal_year: str,
    issue_date: Optional[date] = None,
    registry: Optional[NotifiedRuleRegistry] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SelfInvoice:
    """
    Build the self-invoice for one RCM transaction.

    Same supplier and recipient state gives CGST + SGST at half rate each.
    A different state, or a supplier outside India, gives IGST at the full
    rate. Cess is computed on the same base and added on top.
    """
    errors = validate_transaction(transaction)
    if errors:
        raise ValidationError("; ".join(errors))

    issued_on = issue_date or date.today()
    invoice_number = generate_self_invoice_number(fiscal_year, sequence_number)
    rate, rcm_type = _resolve_rate(transaction, registry)

    base = transaction.local_taxable_amount
    gst = tax_on(base, rate)
    inter_state = (
        transaction.supplier_state_code == OUTSIDE_INDIA_STATE_CODE
        or transaction.supplier_state_code != recipient.state_code
    )
    if inter_state:
        heads = TaxHeads(igst=gst)
        igst_rate, cgst_rate, sgst_rate = rate, None, None
    else:
        cgst = round_money(gst / 2)
        heads = TaxHeads(cgst=cgst, sgst=gst - cgst)
        igst_rate, cgst_rate, sgst_rate = None, rate / 2, rate / 2

    cess_amount = tax_on(base, transaction.cess_rate) if transaction.cess_rate else ZERO
    window = self_invoice_window(transaction.receipt_date, issued_on, config)

    invoice = SelfInvoice(
        invoice_number=invoice_number,
        invoice_date=issued_on,
        fiscal_year=fiscal_year,
        transaction_id=transaction.transaction_id,
        rcm_type=rcm_type,
        supply_type=transaction.supply_type,
        supplier_name=transaction.supplier_name,
        supplier_gstin=transaction.supplier_gstin,
        supplier_state_code=transaction.supplier_state_code,
        recipient_gstin=recipient.gstin,
        recipient_name=recipient.legal_name,
        recipient_state_code=recipient.state_code,
        place_of_supply=transaction.place_of_supply,
        hsn_sac_code=transaction.hsn_sac_code,
        taxable_amount=base,
        gst_rate=rate,
        tax=heads,
        igst_rate=igst_rate,
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        cess_rate=transaction.cess_rate,
        cess_amount=cess_amount,
        receipt_date=transaction.receipt_date,
        issued_within_time=window.is_within_time,
        days_delayed=window.days_delayed,
        original_invoice_number=transaction.original_invoice_number,
        original_invoice_date=transaction.original_invoice_date,
        foreign_currency=transaction.foreign_currency,
        foreign_amount=transaction.foreign_amount,
        exchange_rate=transaction.exchange_rate,
    )
    logger.debug(
        "Generated %s for transaction %s (%s, tax %s)",
        invoice.invoice_number,
        transaction.transaction_id,
        rcm_type.value,
        invoice.total_tax_amount,
    )
    return invoice


def bulk_generate(
    transactions: Iterable[RCMTransaction],
    recipient: IssuerProfile,
    fiscal_year: str,
    start_sequence: int,
    issue_date: Optional[date] = None,
    registry: Optional[NotifiedRuleRegistry] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BulkGenerationResult:
    """
    Generate self-invoices in order, isolating failures.

    Transactions past the self-invoice window, or failing validation, land
    in ``failed`` with a reason. Sequence numbers are only consumed by
    invoices actually generated.
    """
    issued_on = issue_date or date.today()
    result = BulkGenerationResult()
    sequence = start_sequence

    for txn in transactions:
        window = self_invoice_window(txn.receipt_date, issued_on, config)
        if window.is_overdue:
            reason = (
                f"{config.self_invoice_days}-day time limit exceeded. Interest and "
                f"penalty may apply. Delayed by {window.days_delayed} days."
            )
            logger.warning("Skipping transaction %s: %s", txn.transaction_id, reason)
            result.failed.append(FailedGeneration(txn.transaction_id, reason))
            continue
        try:
            invoice = generate(
                txn, recipient, sequence, fiscal_year, issued_on, registry, config
            )
        except RCMEngineError as e:
            logger.warning("Skipping transaction %s: %s", txn.transaction_id, e.message)
            result.failed.append(FailedGeneration(txn.transaction_id, e.message))
            continue
        result.generated.append(invoice)
        sequence += 1

    return result


def compliance_summary(
    invoices: Iterable[SelfInvoice], pending_count: int = 0
) -> ComplianceSummary:
    """On-time issuance rate and rating across a set of self-invoices."""
    invoices = list(invoices)
    total = len(invoices)
    on_time = sum(1 for inv in invoices if inv.issued_within_time)
    rate = (on_time / total) * 100 if total else 100.0

    if rate >= 95:
        rating = ComplianceRating.EXCELLENT
    elif rate >= 75:
        rating = ComplianceRating.GOOD
    elif rate >= 50:
        rating = ComplianceRating.FAIR
    else:
        rating = ComplianceRating.POOR

    return ComplianceSummary(
        total_self_invoices=total,
        issued_on_time=on_time,
        issued_late=total - on_time,
        pending=pending_count,
        compliance_rate=rate,
        rating=rating,
    )


class SelfInvoiceRegister:
    """
    Issued self-invoices with per-issuer, per-fiscal-year numbering.

    ``issue`` is idempotent per (issuer, source transaction): a retried job
    gets back the invoice already issued instead of a second document.
    Safe to share between threads.
    """

    def __init__(
        self,
        registry: Optional[NotifiedRuleRegistry] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self._registry = registry
        self._config = config
        self._lock = threading.Lock()
        self._by_transaction: dict[tuple[str, str], SelfInvoice] = {}
        self._last_sequence: dict[tuple[str, str], int] = {}

    def seed_sequence(self, issuer_gstin: str, fiscal_year: str, last_sequence: int) -> None:
        """Continue numbering after invoices issued elsewhere."""
        key = (issuer_gstin, fiscal_year)
        with self._lock:
            if last_sequence < self._last_sequence.get(key, 0):
                raise ValidationError(
                    "Sequence numbers cannot move backwards", field="last_sequence"
                )
            self._last_sequence[key] = last_sequence

    def last_sequence(self, issuer_gstin: str, fiscal_year: str) -> int:
        return self._last_sequence.get((issuer_gstin, fiscal_year), 0)

    def issue(
        self,
        transaction: RCMTransaction,
        recipient: IssuerProfile,
        issue_date: Optional[date] = None,
    ) -> SelfInvoice:
        issued_on = issue_date or date.today()
        fiscal_year = fiscal_year_for(issued_on)
        key = (recipient.gstin, transaction.transaction_id)

        with self._lock:
            existing = self._by_transaction.get(key)
            if existing is not None:
                logger.info(
                    "Transaction %s already invoiced as %s",
                    transaction.transaction_id,
                    existing.invoice_number,
                )
                return existing

            seq_key = (recipient.gstin, fiscal_year)
            sequence = self._last_sequence.get(seq_key, 0) + 1
            invoice = generate(
                transaction,
                recipient,
                sequence,
                fiscal_year,
                issued_on,
                self._registry,
                self._config,
            )
            self._last_sequence[seq_key] = sequence
            self._by_transaction[key] = invoice
            return invoice

    def invoices(self, issuer_gstin: Optional[str] = None) -> list[SelfInvoice]:
        with self._lock:
            items = list(self._by_transaction.values())
        if issuer_gstin is not None:
            items = [inv for inv in items if inv.recipient_gstin == issuer_gstin]
        return sorted(items, key=lambda inv: (inv.fiscal_year, inv.invoice_number))

    def __len__(self) -> int:
        return len(self._by_transaction)
