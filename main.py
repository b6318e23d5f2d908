#!/usr/bin/env python3
"""
RCM Compliance Engine - Entry Point

Reverse charge compliance for Indian GST. Classifies purchases under RCM,
issues self-invoices, tracks payment deadlines, and reconciles claimed
ITC against GSTR-2B.

Usage:
    python main.py rules --code 998211
    python main.py classify --recipient-gstin 27AAPFU0939F1ZV --recipient-state MH \
        --place-of-supply MH --amount 50000 --code 9982
    python main.py due-date --receipt-date 2024-06-15 --tax 9000
    python main.py interest --principal 100000 --days 30
    python main.py self-invoice --file purchases.csv --gstin 27AAPFU0939F1ZV \
        --name "Acme Pvt Ltd" --state-code 27 --fiscal-year 2024-25
    python main.py reconcile --statement gstr2b.json --claims claims.csv --period 062024
    python main.py utilize --itc-igst 30000 --cgst 8000 --sgst 8000 --igst 10000
"""

from rcm_engine.cli import main

if __name__ == "__main__":
    main()
