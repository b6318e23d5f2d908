"""
RCM Compliance Engine
=====================

Reverse charge (RCM) compliance and input tax credit reconciliation for
Indian GST: classifying purchases, issuing self-invoices, tracking payment
deadlines, keeping the electronic credit ledger and reconciling claimed
credit against GSTR-2B.

Modules:
    amounts          - Decimal money helpers and per-head tax amounts
    rules            - Notified RCM goods and services registry
    classifier       - HSN/SAC matching and RCM applicability
    compliance       - Due dates, interest, self-invoice window, ITC deadline
    self_invoice     - Self-invoice numbering, generation and register
    ledger           - Electronic credit ledger
    gstr2b           - GSTR-2B statement parsing
    reconciliation   - Claimed ITC vs. statement, RCM payment checks
    utilization      - ITC set-off against output liability
    report_generator - Compliance reporting with CSV/JSON export
    loaders          - CSV/JSON ingestion
    cli              - Command-line interface
"""

__version__ = "1.0.0"
__author__ = "Taofik Bishi"

from rcm_engine.amounts import TaxHeads
from rcm_engine.classifier import detect_rcm, match_notified_item
from rcm_engine.compliance import due_date, interest, overdue_status
from rcm_engine.config import EngineConfig
from rcm_engine.errors import (
    ComplianceViolation,
    InsufficientBalance,
    NotFoundError,
    RCMEngineError,
    ValidationError,
)
from rcm_engine.gstr2b import parse_gstr2b
from rcm_engine.ledger import CreditLedger, LedgerBook
from rcm_engine.reconciliation import match
from rcm_engine.report_generator import ReportGenerator
from rcm_engine.rules import NotifiedRuleRegistry, default_registry
from rcm_engine.self_invoice import SelfInvoiceRegister, generate_self_invoice_number
from rcm_engine.utilization import allocate

__all__ = [
    "TaxHeads",
    "EngineConfig",
    "NotifiedRuleRegistry",
    "default_registry",
    "match_notified_item",
    "detect_rcm",
    "due_date",
    "overdue_status",
    "interest",
    "generate_self_invoice_number",
    "SelfInvoiceRegister",
    "CreditLedger",
    "LedgerBook",
    "parse_gstr2b",
    "match",
    "allocate",
    "ReportGenerator",
    "RCMEngineError",
    "ValidationError",
    "ComplianceViolation",
    "InsufficientBalance",
    "NotFoundError",
]
