"""Tests for the electronic credit ledger."""

import threading
from datetime import date
from decimal import Decimal

import pytest

from rcm_engine.amounts import TaxHeads
from rcm_engine.errors import (
    ComplianceViolation,
    InsufficientBalance,
    NotFoundError,
    ValidationError,
)
from rcm_engine.ledger import (
    CreditLedger,
    CreditLedgerEntry,
    EntryStatus,
    EntryType,
    LedgerBook,
    PaymentMode,
    RCMPayment,
    apply,
    balance,
    credit_from_settlement,
    finalize_provisional,
)
from rcm_engine.self_invoice import IssuerProfile, RCMTransaction, generate

GSTIN = "27AAPFU0939F1ZV"
DAY = date(2024, 7, 20)


def _entry(entry_type=EntryType.CREDIT, reference="REF-1", status=None, **heads):
    return CreditLedgerEntry(
        entry_date=DAY,
        entry_type=entry_type,
        amounts=TaxHeads(**heads),
        reference=reference,
        status=status,
    )


@pytest.fixture
def funded() -> tuple:
    return (_entry(igst="10000", cgst="5000", sgst="5000"),)


@pytest.fixture
def invoice():
    recipient = IssuerProfile(gstin=GSTIN, legal_name="Acme", state_code="27")
    txn = RCMTransaction(
        transaction_id="TXN-001",
        supplier_name="R. Mehta & Associates",
        supplier_state_code="27",
        hsn_sac_code="998211",
        transaction_date=date(2024, 6, 15),
        receipt_date=date(2024, 6, 15),
        place_of_supply="27",
        taxable_amount=Decimal("50000"),
    )
    return generate(txn, recipient, 1, "2024-25", date(2024, 6, 20))


# ── Entries ─────────────────────────────────────────────────────────


def test_entry_requires_reference():
    with pytest.raises(ValidationError):
        _entry(reference=" ", igst="1")


def test_credit_amounts_cannot_be_negative():
    with pytest.raises(ValidationError):
        _entry(igst="-1")


def test_only_adjustments_are_final():
    with pytest.raises(ValidationError):
        _entry(status=EntryStatus.FINAL, igst="1")


def test_signed_amounts():
    assert _entry(EntryType.DEBIT, igst="100").signed_amounts.igst == Decimal("-100")
    assert _entry(EntryType.REVERSAL, cgst="50").signed_amounts.cgst == Decimal("-50")
    assert _entry(EntryType.ADJUSTMENT, sgst="-25").signed_amounts.sgst == Decimal("-25")


def test_entry_from_dict():
    entry = CreditLedgerEntry.from_dict(
        {
            "entry_date": "2024-07-20",
            "entry_type": "CREDIT",
            "igst": "1000",
            "reference": "SI-FY24-25/001",
            "status": "PROVISIONAL",
        }
    )
    assert entry.amounts.igst == Decimal("1000")
    assert entry.status == EntryStatus.PROVISIONAL


# ── Balance and append ──────────────────────────────────────────────


def test_balance_sums_signed_entries(funded):
    ledger = apply(funded, _entry(EntryType.DEBIT, "U-1", igst="4000", cgst="1000"))
    assert balance(ledger) == TaxHeads(igst="6000", cgst="4000", sgst="5000")


def test_empty_ledger_balance():
    assert balance(()).is_zero()


def test_over_debit_rejected_and_ledger_unchanged(funded):
    debit = _entry(EntryType.DEBIT, "U-1", cgst="5000.01")
    with pytest.raises(InsufficientBalance) as exc:
        apply(funded, debit)
    assert exc.value.head == "cgst"
    assert exc.value.shortfall == Decimal("0.01")
    assert balance(funded) == TaxHeads(igst="10000", cgst="5000", sgst="5000")


def test_debit_to_exactly_zero_allowed(funded):
    ledger = apply(funded, _entry(EntryType.DEBIT, "U-1", igst="10000"))
    assert balance(ledger).igst == Decimal("0")


def test_negative_adjustment_checked(funded):
    with pytest.raises(InsufficientBalance):
        apply(funded, _entry(EntryType.ADJUSTMENT, "A-1", sgst="-6000"))


# ── Provisional entries ─────────────────────────────────────────────


def test_finalize_appends_delta():
    ledger = (_entry(reference="P-1", status=EntryStatus.PROVISIONAL, igst="1000"),)
    ledger = finalize_provisional(ledger, "P-1", TaxHeads(igst="900"), DAY)
    assert len(ledger) == 2
    assert ledger[-1].entry_type == EntryType.ADJUSTMENT
    assert ledger[-1].status == EntryStatus.FINAL
    assert ledger[-1].amounts.igst == Decimal("-100")
    assert balance(ledger).igst == Decimal("900")


def test_finalize_twice_rejected():
    ledger = (_entry(reference="P-1", status=EntryStatus.PROVISIONAL, igst="1000"),)
    ledger = finalize_provisional(ledger, "P-1", TaxHeads(igst="1200"), DAY)
    with pytest.raises(ValidationError):
        finalize_provisional(ledger, "P-1", TaxHeads(igst="1000"), DAY)


def test_finalize_unknown_reference():
    with pytest.raises(NotFoundError):
        finalize_provisional((), "nope", TaxHeads(igst="1"), DAY)


# ── Settlement ──────────────────────────────────────────────────────


def test_credit_from_cash_settlement(invoice):
    payment = RCMPayment("TXN-001", date(2024, 7, 18), invoice.tax, challan_number="CPIN1")
    entry = credit_from_settlement(invoice, payment)
    assert entry.entry_type == EntryType.CREDIT
    assert entry.amounts == invoice.tax
    assert entry.reference == invoice.invoice_number
    assert entry.entry_date == date(2024, 7, 18)
    assert "CPIN1" in entry.description


def test_settlement_through_itc_is_a_violation(invoice):
    payment = RCMPayment("TXN-001", date(2024, 7, 18), invoice.tax, PaymentMode.ITC)
    with pytest.raises(ComplianceViolation) as exc:
        credit_from_settlement(invoice, payment)
    assert exc.value.rule == "RCM_NOT_PAID_IN_CASH"


def test_underpaid_settlement_is_a_violation(invoice):
    payment = RCMPayment(
        "TXN-001", date(2024, 7, 18), TaxHeads(cgst="4500", sgst="4000")
    )
    with pytest.raises(ComplianceViolation) as exc:
        credit_from_settlement(invoice, payment)
    assert exc.value.rule == "RCM_UNDERPAID"


def test_settlement_for_other_transaction_rejected(invoice):
    payment = RCMPayment("TXN-999", date(2024, 7, 18), invoice.tax)
    with pytest.raises(ValidationError):
        credit_from_settlement(invoice, payment)


def test_payment_from_dict():
    payment = RCMPayment.from_dict(
        {"transaction_id": "T1", "payment_date": "2024-07-18", "cgst": "10", "payment_mode": "itc"}
    )
    assert payment.payment_mode == PaymentMode.ITC
    assert payment.amounts.cgst == Decimal("10")


# ── CreditLedger ────────────────────────────────────────────────────


def test_post_duplicate_credit_is_noop():
    ledger = CreditLedger(GSTIN)
    assert ledger.post(_entry(igst="100")) is True
    assert ledger.post(_entry(igst="100")) is False
    assert len(ledger) == 1
    assert ledger.balance().igst == Decimal("100")


def test_retried_credit_with_other_amounts_is_noop():
    ledger = CreditLedger(GSTIN)
    assert ledger.post(_entry(igst="100")) is True
    assert ledger.post(_entry(igst="250")) is False
    assert len(ledger) == 1
    assert ledger.balance().igst == Decimal("100")


def test_credit_with_new_reference_is_posted():
    ledger = CreditLedger(GSTIN)
    ledger.post(_entry(igst="100"))
    assert ledger.post(_entry(reference="REF-2", igst="100")) is True
    assert ledger.balance().igst == Decimal("200")


def test_post_rejects_overdraft():
    ledger = CreditLedger(GSTIN, [_entry(igst="100")])
    with pytest.raises(InsufficientBalance):
        ledger.post(_entry(EntryType.DEBIT, "U-1", igst="101"))
    assert len(ledger) == 1


def test_post_all_is_atomic():
    ledger = CreditLedger(GSTIN, [_entry(igst="100")])
    batch = [
        _entry(EntryType.DEBIT, "U-1", igst="60"),
        _entry(EntryType.DEBIT, "U-2", igst="60"),
    ]
    with pytest.raises(InsufficientBalance):
        ledger.post_all(batch)
    assert ledger.balance().igst == Decimal("100")


def test_post_all_skips_duplicate_credits():
    ledger = CreditLedger(GSTIN, [_entry(igst="100")])
    posted = ledger.post_all([_entry(igst="100"), _entry(reference="REF-2", cgst="5")])
    assert posted == 1
    assert ledger.balance() == TaxHeads(igst="100", cgst="5")


def test_finalize_on_ledger():
    ledger = CreditLedger(GSTIN)
    ledger.post(_entry(reference="P-1", status=EntryStatus.PROVISIONAL, sgst="500"))
    ledger.finalize("P-1", TaxHeads(sgst="550"), DAY)
    assert ledger.balance().sgst == Decimal("550")
    assert len(ledger.entries_for("P-1")) == 2


def test_entries_for_unknown_reference():
    with pytest.raises(NotFoundError):
        CreditLedger(GSTIN).entries_for("nope")


def test_concurrent_debits_never_overdraw():
    ledger = CreditLedger(GSTIN, [_entry(igst="1000")])
    failures: list[Exception] = []

    def debit(n: int) -> None:
        try:
            ledger.post(_entry(EntryType.DEBIT, f"U-{n}", igst="100"))
        except InsufficientBalance as e:
            failures.append(e)

    threads = [threading.Thread(target=debit, args=(n,)) for n in range(15)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ledger.balance().igst == Decimal("0")
    assert len(failures) == 5


# ── LedgerBook ──────────────────────────────────────────────────────


def test_ledger_book():
    book = LedgerBook()
    book.ledger(GSTIN).post(_entry(igst="100"))
    assert book.ledger(GSTIN) is book.get(GSTIN)
    assert GSTIN in book
    assert book.balances() == {GSTIN: TaxHeads(igst="100")}
    with pytest.raises(NotFoundError):
        book.get("29AABCU9603R1ZM")
