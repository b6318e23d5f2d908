"""
RCM compliance report generator.

Produces:
- Self-invoice registers with issuance compliance
- GSTR-1 reverse-charge (table 4B) summaries
- ITC reconciliation reports
- Credit ledger statements with running balances
- Utilization and cash-payable statements
- CSV and JSON export
"""

from __future__ import annotations

import csv
import io
import json
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from rcm_engine.amounts import NO_TAX, TaxHeads
from rcm_engine.ledger import CreditLedgerEntry
from rcm_engine.reconciliation import (
    PaymentReconciliation,
    ReconciliationMatch,
    ReconciliationResult,
)
from rcm_engine.self_invoice import SelfInvoice, compliance_summary
from rcm_engine.utilization import UtilizationResult


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date and Enum values."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def _plain(obj: Any) -> Any:
    """Recursively convert report values to JSON/CSV friendly types."""
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(i) for i in obj]
    if isinstance(obj, TaxHeads):
        return {k: str(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


def _heads(amounts: TaxHeads) -> dict[str, Decimal]:
    return {"igst": amounts.igst, "cgst": amounts.cgst, "sgst": amounts.sgst}


class ReportGenerator:
    """
    Builds period-close and audit reports.

    All reports are plain dicts that can be rendered to console text or
    exported to CSV/JSON files.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("reports")

    def _write(self, filename: str, content: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        (self.output_dir / filename).write_text(content, encoding="utf-8")

    # ------------------------------------------------------------------
    # Self-invoice register
    # ------------------------------------------------------------------

    def self_invoice_report(
        self,
        invoices: list[SelfInvoice],
        period_label: str = "",
        pending_count: int = 0,
        failures: Optional[list] = None,
    ) -> dict[str, Any]:
        """Register of self-invoices with tax totals and timeliness."""
        status = compliance_summary(invoices, pending_count)
        tax = sum((inv.tax for inv in invoices), NO_TAX)

        report: dict[str, Any] = {
            "report_type": "self_invoice_register",
            "period": period_label,
            "generated_date": date.today().isoformat(),
            "summary": {
                "total_invoices": len(invoices),
                "taxable_amount": sum((inv.taxable_amount for inv in invoices), Decimal("0")),
                "igst": tax.igst,
                "cgst": tax.cgst,
                "sgst": tax.sgst,
                "cess": sum((inv.cess_amount for inv in invoices), Decimal("0")),
                "issued_on_time": status.issued_on_time,
                "issued_late": status.issued_late,
                "pending": status.pending,
                "compliance_rate": status.compliance_rate / 100,
                "rating": status.rating.value,
            },
            "invoices": [
                {
                    "invoice_number": inv.invoice_number,
                    "invoice_date": inv.invoice_date,
                    "transaction_id": inv.transaction_id,
                    "supplier": inv.supplier_name,
                    "rcm_type": inv.rcm_type.value,
                    "hsn_sac": inv.hsn_sac_code,
                    "taxable_amount": inv.taxable_amount,
                    "gst_rate": inv.gst_rate,
                    **_heads(inv.tax),
                    "cess": inv.cess_amount,
                    "total_amount": inv.total_amount,
                    "within_time": inv.issued_within_time,
                    "days_delayed": inv.days_delayed,
                }
                for inv in invoices
            ],
        }
        if failures:
            report["warnings"] = [f"{f.transaction_id}: {f.reason}" for f in failures]
        if status.requires_action:
            report.setdefault("warnings", []).append(
                "Self-invoice compliance requires attention"
            )
        return report

    def gstr1_rcm_report(self, invoices: list[SelfInvoice], period: str) -> dict[str, Any]:
        """Reverse-charge inward supplies as reported in GSTR-1 table 4B."""
        tax = sum((inv.tax for inv in invoices), NO_TAX)
        return {
            "report_type": "gstr1_table_4b",
            "period": period,
            "generated_date": date.today().isoformat(),
            "summary": {
                "supply_type": "RCHRG",
                "invoice_count": len(invoices),
                "total_taxable_value": sum(
                    (inv.taxable_amount for inv in invoices), Decimal("0")
                ),
                "total_igst": tax.igst,
                "total_cgst": tax.cgst,
                "total_sgst": tax.sgst,
                "total_cess": sum((inv.cess_amount for inv in invoices), Decimal("0")),
            },
            "invoices": [
                {
                    "invoice_number": inv.invoice_number,
                    "invoice_date": inv.invoice_date,
                    "supplier_gstin": inv.supplier_gstin or "",
                    "taxable_value": inv.taxable_amount,
                    **_heads(inv.tax),
                    "cess": inv.cess_amount,
                }
                for inv in invoices
            ],
        }

    # ------------------------------------------------------------------
    # Reconciliation report
    # ------------------------------------------------------------------

    def reconciliation_report(
        self,
        result: ReconciliationResult,
        payments: Optional[PaymentReconciliation] = None,
    ) -> dict[str, Any]:
        """Outcome of a GSTR-2B reconciliation run, one row per pairing."""

        def _row(m: ReconciliationMatch) -> dict[str, Any]:
            claim, stmt = m.claim, m.statement
            source = claim or stmt
            return {
                "status": m.status.value,
                "supplier_gstin": source.supplier_gstin or "",
                "document_number": source.document_number,
                "document_date": source.document_date,
                "claimed": claim.amounts.total if claim else Decimal("0"),
                "statement": stmt.amounts.total if stmt else Decimal("0"),
                "eligible": stmt.eligible.total if stmt else Decimal("0"),
                "difference": m.difference,
            }

        pairings = result.matched + result.mismatches + result.claim_only + result.statement_only
        report: dict[str, Any] = {
            "report_type": "itc_reconciliation",
            "period": result.period or "",
            "generated_date": date.today().isoformat(),
            "summary": {
                "matched": len(result.matched),
                "mismatched": len(result.mismatches),
                "claim_only": len(result.claim_only),
                "statement_only": len(result.statement_only),
                "violations": len(result.violations),
                "amendments": len(result.amendments),
                "manual_entry": len(result.manual_entry),
                "match_rate": result.match_percentage / 100,
                "mismatch_amount": sum((m.difference for m in result.mismatches), Decimal("0")),
                "unclaimed_itc": sum(
                    (m.statement.eligible.total for m in result.statement_only), Decimal("0")
                ),
            },
            "pairings": [_row(m) for m in pairings],
            "violations": [
                {
                    "type": v.kind,
                    "supplier_gstin": v.supplier_gstin or "",
                    "document_number": v.document_number,
                    "excess_claim": v.excess_claim,
                }
                for v in result.violations
            ],
            "amendments": [
                {
                    "document_number": a.document_number,
                    "supplier_gstin": a.supplier_gstin,
                    "original_document_number": a.original_document_number or "",
                    "original_document_date": a.original_document_date,
                    "adjustment_period": a.adjustment_period,
                }
                for a in result.amendments
            ],
            "manual_entry": [
                {
                    "document_number": c.document_number,
                    "transaction_id": c.transaction_id or "",
                    "amount": c.amounts.total,
                }
                for c in result.manual_entry
            ],
        }
        warnings: list[str] = []
        if result.manual_entry:
            warnings.append("RCM transactions require manual entry in GSTR-3B")
        if payments is not None:
            report["payment_issues"] = [
                {
                    "transaction_id": i.transaction_id,
                    "issue": i.issue.value,
                    "action": i.action,
                }
                for i in payments.issues
            ] + [
                {
                    "transaction_id": u.transaction_id,
                    "issue": u.reason.value,
                    "action": f"No payment found for {u.amount}",
                }
                for u in payments.unreconciled
            ]
            if payments.compliance_violation:
                warnings.append("RCM liability paid through ITC instead of cash")
        if warnings:
            report["warnings"] = warnings
        return report

    # ------------------------------------------------------------------
    # Ledger statement
    # ------------------------------------------------------------------

    def ledger_statement(
        self, entries: Iterable[CreditLedgerEntry], issuer_gstin: str = ""
    ) -> dict[str, Any]:
        """Entry-by-entry ledger with the running balance after each."""
        running = NO_TAX
        rows: list[dict[str, Any]] = []
        for e in entries:
            running = running + e.signed_amounts
            rows.append(
                {
                    "date": e.entry_date,
                    "type": e.entry_type.value,
                    "status": e.status.value if e.status else "",
                    "reference": e.reference,
                    "description": e.description,
                    **_heads(e.signed_amounts),
                    "balance_igst": running.igst,
                    "balance_cgst": running.cgst,
                    "balance_sgst": running.sgst,
                }
            )
        return {
            "report_type": "credit_ledger_statement",
            "period": issuer_gstin,
            "generated_date": date.today().isoformat(),
            "summary": {
                "entries": len(rows),
                "igst_balance": running.igst,
                "cgst_balance": running.cgst,
                "sgst_balance": running.sgst,
                "total_balance": running.total,
            },
            "entries": rows,
        }

    # ------------------------------------------------------------------
    # Utilization
    # ------------------------------------------------------------------

    def utilization_report(
        self, result: UtilizationResult, liability: TaxHeads, period_label: str = ""
    ) -> dict[str, Any]:
        return {
            "report_type": "itc_utilization",
            "period": period_label,
            "generated_date": date.today().isoformat(),
            "summary": {
                "total_liability": liability.total,
                "itc_utilized": result.used.total,
                "cash_required": result.cash_required,
                "remaining_itc": result.remaining_itc.total,
            },
            "set_off": [
                {"credit": "IGST", "against": "IGST", "amount": result.igst_against_igst},
                {"credit": "IGST", "against": "CGST", "amount": result.igst_against_cgst},
                {"credit": "IGST", "against": "SGST", "amount": result.igst_against_sgst},
                {"credit": "CGST", "against": "CGST", "amount": result.cgst_against_cgst},
                {"credit": "SGST", "against": "SGST", "amount": result.sgst_against_sgst},
            ],
            "cash_payable": _heads(result.cash_by_head),
            "remaining_itc": _heads(result.remaining_itc),
        }

    # ------------------------------------------------------------------
    # Export methods
    # ------------------------------------------------------------------

    def to_json(self, report: dict[str, Any], filename: Optional[str] = None) -> str:
        """Export a report to JSON. Returns the JSON string."""
        json_str = json.dumps(_plain(report), indent=2, cls=_DecimalEncoder)
        if filename:
            self._write(filename, json_str)
        return json_str

    def to_csv(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
        section: str = "invoices",
    ) -> str:
        """
        Export a report section to CSV. Returns the CSV string.

        The section parameter specifies which list/dict in the report
        to export as rows.
        """
        data = _plain(report.get(section, []))
        if not data:
            return ""

        output = io.StringIO()
        if isinstance(data, list) and isinstance(data[0], dict):
            writer = csv.DictWriter(output, fieldnames=list(data[0].keys()))
            writer.writeheader()
            writer.writerows(data)
        elif isinstance(data, dict):
            writer = csv.writer(output)
            writer.writerow(["key", "value"])
            for k, v in data.items():
                writer.writerow([k, v])

        csv_str = output.getvalue()
        if filename:
            self._write(filename, csv_str)
        return csv_str

    # ------------------------------------------------------------------
    # Console-formatted text output
    # ------------------------------------------------------------------

    def format_text(self, report: dict[str, Any]) -> str:
        """Format a report as human-readable text for console output."""
        lines: list[str] = []
        report_type = report.get("report_type", "report").replace("_", " ").title()
        lines.append("=" * 60)
        lines.append(f"  {report_type}")
        lines.append(f"  Generated: {report.get('generated_date', '')}")
        if report.get("period"):
            lines.append(f"  Period: {report['period']}")
        lines.append("=" * 60)
        lines.append("")

        summary = report.get("summary", {})
        if summary:
            lines.append("SUMMARY")
            lines.append("-" * 40)
            for key, value in summary.items():
                label = key.replace("_", " ").title()
                if isinstance(value, float) and "rate" in key:
                    lines.append(f"  {label}: {value:.2%}")
                elif isinstance(value, Decimal):
                    lines.append(f"  {label}: Rs. {value:,.2f}")
                else:
                    lines.append(f"  {label}: {value}")
            lines.append("")

        violations = report.get("violations", [])
        if violations:
            lines.append("VIOLATIONS")
            lines.append("-" * 40)
            for v in violations:
                lines.append(
                    f"  [{v['type']}] {v['supplier_gstin']} {v['document_number']}: "
                    f"excess Rs. {v['excess_claim']:,.2f}"
                )
            lines.append("")

        amendments = report.get("amendments", [])
        if amendments:
            lines.append("AMENDMENTS")
            lines.append("-" * 40)
            for a in amendments:
                lines.append(
                    f"  {a['document_number']} (was {a['original_document_number'] or '?'}): "
                    f"adjust in {a['adjustment_period']}"
                )
            lines.append("")

        cash = report.get("cash_payable")
        if cash:
            lines.append("CASH PAYABLE")
            lines.append("-" * 40)
            for head, amount in cash.items():
                lines.append(f"  {head.upper()}: Rs. {amount:>12,.2f}")
            lines.append("")

        warnings = report.get("warnings", [])
        if warnings:
            lines.append("WARNINGS")
            lines.append("-" * 40)
            for w in warnings:
                lines.append(f"  * {w}")
            lines.append("")

        return "\n".join(lines)
