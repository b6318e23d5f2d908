#!/usr/bin/env python3
"""
Quick Start Example
===================

Walks one reverse-charge purchase through the engine: classify it, issue
the self-invoice, pay the tax in cash, take the credit, and set it off
against the month's output liability.

Usage:
    python examples/quick_start.py
"""

from datetime import date
from decimal import Decimal

from rcm_engine.amounts import TaxHeads
from rcm_engine.classifier import detect_rcm
from rcm_engine.compliance import due_date
from rcm_engine.ledger import CreditLedger, PaymentMode, RCMPayment, credit_from_settlement
from rcm_engine.self_invoice import IssuerProfile, RCMTransaction, SelfInvoiceRegister
from rcm_engine.utilization import allocate_from_ledger


def main() -> None:
    recipient = IssuerProfile(
        gstin="27AAPFU0939F1ZV", legal_name="Acme Industries Pvt Ltd", state_code="27"
    )

    # Legal services from an advocate in the same state
    detection = detect_rcm(
        recipient_gstin=recipient.gstin,
        recipient_state="27",
        place_of_supply="27",
        taxable_amount=Decimal("50000"),
        hsn_sac_code="998211",
        as_of=date(2024, 6, 15),
    )
    print(f"RCM applies:    {detection.is_applicable}")
    print(f"RCM type:       {detection.rcm_type.value}")
    print(f"Reason:         {detection.reason}")
    print(f"Payment due:    {due_date(date(2024, 6, 15), today=date(2024, 6, 20))}")

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
    register = SelfInvoiceRegister()
    invoice = register.issue(txn, recipient, issue_date=date(2024, 6, 20))

    print("\n--- Self-Invoice ---")
    print(f"Number:         {invoice.invoice_number}")
    print(f"Taxable:        Rs. {invoice.taxable_amount:,.2f}")
    print(f"CGST:           Rs. {invoice.tax.cgst:,.2f}")
    print(f"SGST:           Rs. {invoice.tax.sgst:,.2f}")
    print(f"On time:        {invoice.issued_within_time}")

    payment = RCMPayment(
        transaction_id="TXN-001",
        payment_date=date(2024, 7, 18),
        amounts=invoice.tax,
        payment_mode=PaymentMode.CASH,
        challan_number="CPIN2407001",
    )
    ledger = CreditLedger(recipient.gstin)
    ledger.post(credit_from_settlement(invoice, payment))
    print(f"\nLedger balance: {ledger.balance().as_dict()}")

    result = allocate_from_ledger(
        ledger.entries, TaxHeads(igst=Decimal("2000"), cgst=Decimal("6000"), sgst=Decimal("6000"))
    )
    print("\n--- Utilization ---")
    print(f"ITC used:       {result.used.as_dict()}")
    print(f"Cash payable:   {result.cash_by_head.as_dict()}")
    print(f"Carry forward:  {result.remaining_itc.as_dict()}")


if __name__ == "__main__":
    main()
