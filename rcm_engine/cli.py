"""
Command-line interface for the RCM Compliance Engine.

Provides subcommands for notified-rule lookup, RCM classification,
payment due dates and interest, self-invoice generation, GSTR-2B
reconciliation and ITC utilization.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from rcm_engine import __version__
from rcm_engine.amounts import TaxHeads, to_decimal
from rcm_engine.classifier import OUTSIDE_INDIA, detect_rcm, match_notified_item
from rcm_engine.compliance import (
    coerce_date,
    interest,
    itc_claim_deadline,
    self_invoice_window,
    track_liability,
)
from rcm_engine.config import EngineConfig
from rcm_engine.errors import RCMEngineError
from rcm_engine.loaders import read_claims, read_payments, read_statement, read_transactions
from rcm_engine.reconciliation import match, reconcile_payments
from rcm_engine.report_generator import ReportGenerator
from rcm_engine.rules import default_registry
from rcm_engine.self_invoice import IssuerProfile, bulk_generate
from rcm_engine.utilization import allocate

console = Console()

_LEVEL_COLORS = {
    "CRITICAL": "red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "blue",
}


def _date_arg(value: Optional[str], name: str) -> date:
    return coerce_date(value, name) if value else date.today()


def _rs(amount: Decimal) -> str:
    return f"Rs. {amount:,.2f}"


# -----------------------------------------------------------------------
# Subcommand: rules
# -----------------------------------------------------------------------


def cmd_rules(args: argparse.Namespace) -> None:
    """List the notified RCM rules, or look up the rule for one code."""
    registry = default_registry()
    as_of = _date_arg(args.date, "date")

    if args.code:
        found = match_notified_item(args.code, None, as_of, registry)
        if found is None:
            console.print(
                f"[yellow]{args.code} is not a notified RCM item on {as_of}[/yellow]"
            )
            return
        rule = found.rule
        console.print(
            Panel(
                f"[bold]Rule:[/bold] {rule.id}\n"
                f"[bold]Type:[/bold] {rule.rule_type.value}\n"
                f"[bold]Description:[/bold] {rule.description}\n"
                f"[bold]Matched Prefix:[/bold] {found.matched_prefix}\n"
                f"[bold]GST Rate:[/bold] {rule.gst_rate}%\n"
                f"[bold]Notification:[/bold] {rule.notification_no or 'N/A'}\n"
                f"[bold]Effective From:[/bold] {rule.effective_from}",
                title=f"Notified Item {found.matched_code}",
                border_style="cyan",
            )
        )
        return

    table = Table(title=f"Notified RCM Rules in force on {as_of}", box=box.ROUNDED)
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Codes")
    table.add_column("Rate", justify="right")
    table.add_column("Notification", style="dim")
    for rule in registry.effective_on(as_of):
        table.add_row(
            rule.id,
            rule.rule_type.value,
            ", ".join(rule.hsn_sac_codes),
            f"{rule.gst_rate}%",
            rule.notification_no or "-",
        )
    console.print(table)


# -----------------------------------------------------------------------
# Subcommand: classify
# -----------------------------------------------------------------------


def cmd_classify(args: argparse.Namespace) -> None:
    """Decide whether a purchase falls under reverse charge."""
    place = OUTSIDE_INDIA if args.outside_india else args.place_of_supply
    detection = detect_rcm(
        recipient_gstin=args.recipient_gstin,
        recipient_state=args.recipient_state,
        place_of_supply=place,
        taxable_amount=args.amount,
        vendor_gstin=args.vendor_gstin,
        vendor_country=args.vendor_country,
        hsn_sac_code=args.code,
        is_composition_vendor=args.composition,
        as_of=_date_arg(args.date, "date"),
    )

    if not detection.is_applicable:
        console.print(
            Panel(detection.reason, title="Forward Charge", border_style="green")
        )
        return

    console.print(
        Panel(
            f"[bold]RCM Type:[/bold] {detection.rcm_type.value}\n"
            f"[bold]Tax Type:[/bold] {detection.tax_type.value}\n"
            f"[bold]GST Rate:[/bold] {detection.gst_rate}%\n"
            f"[bold]Rule:[/bold] {detection.rule.id if detection.rule else 'N/A'}\n"
            f"[bold]Reason:[/bold] {detection.reason}",
            title="Reverse Charge Applies",
            border_style="yellow",
        )
    )


# -----------------------------------------------------------------------
# Subcommand: due-date
# -----------------------------------------------------------------------


def cmd_due_date(args: argparse.Namespace) -> None:
    """Payment due date, overdue status and self-invoice window for a receipt."""
    config = EngineConfig.from_env()
    as_of = _date_arg(args.as_of, "as_of")
    receipt = coerce_date(args.receipt_date, "receipt_date")
    tax = to_decimal(args.tax or "0", "tax")

    liability = track_liability(receipt, tax, as_of, config)
    window = self_invoice_window(receipt, as_of, config)
    deadline = itc_claim_deadline(receipt, as_of, config)

    color = "red" if liability.overdue.is_overdue else "green"
    console.print(
        Panel(
            f"[bold]Receipt Date:[/bold] {receipt}\n"
            f"[bold]Return Period:[/bold] {liability.return_period}\n"
            f"[bold]Payment Due:[/bold] {liability.due_date}\n"
            f"[bold]Status:[/bold] {liability.state.value} "
            f"({liability.overdue.category.value}, {liability.overdue.days_past_due} days)\n"
            f"[bold]Interest Accrued:[/bold] {_rs(liability.interest_amount)}",
            title="RCM Payment",
            border_style=color,
        )
    )

    window_text = (
        f"{window.days_remaining} days remaining"
        if window.is_within_time
        else f"missed by {window.days_delayed} days"
    )
    console.print(
        Panel(
            f"[bold]Self-Invoice Window:[/bold] {window_text}\n"
            f"[bold]ITC Claim Deadline:[/bold] {deadline.deadline_date} "
            f"(FY {deadline.financial_year}, "
            f"{'expired' if deadline.is_expired else f'{deadline.days_remaining} days left'})",
            title="Deadlines",
            border_style="blue",
        )
    )
    for level in (window.warning_level, deadline.warning_level):
        if level is not None:
            color = _LEVEL_COLORS[level.value]
            console.print(f"[{color}]Warning level: {level.value}[/{color}]")


# -----------------------------------------------------------------------
# Subcommand: interest
# -----------------------------------------------------------------------


def cmd_interest(args: argparse.Namespace) -> None:
    """Simple interest on a late RCM payment."""
    rate = to_decimal(args.rate, "rate") if args.rate else EngineConfig.from_env().interest_rate
    amount = interest(args.principal, args.days, rate)
    console.print(
        Panel(
            f"[bold]Principal:[/bold] {_rs(to_decimal(args.principal, 'principal'))}\n"
            f"[bold]Days Overdue:[/bold] {args.days}\n"
            f"[bold]Annual Rate:[/bold] {rate}%\n"
            f"[bold]Interest:[/bold] {_rs(amount)}",
            title="Interest on Late Payment",
            border_style="yellow",
        )
    )


# -----------------------------------------------------------------------
# Subcommand: self-invoice
# -----------------------------------------------------------------------


def cmd_self_invoice(args: argparse.Namespace) -> None:
    """Generate self-invoices for a CSV batch of RCM purchases."""
    config = EngineConfig.from_env()
    recipient = IssuerProfile(
        gstin=args.gstin, legal_name=args.name, state_code=args.state_code
    )
    transactions = read_transactions(args.file)
    issued_on = _date_arg(args.issue_date, "issue_date")

    result = bulk_generate(
        transactions,
        recipient,
        args.fiscal_year,
        args.start_sequence,
        issue_date=issued_on,
        config=config,
    )

    if result.generated:
        table = Table(title="Self-Invoices Generated", box=box.ROUNDED, show_lines=True)
        table.add_column("Invoice", style="bold")
        table.add_column("Transaction", style="dim")
        table.add_column("Supplier")
        table.add_column("Type")
        table.add_column("Taxable", justify="right")
        table.add_column("IGST", justify="right")
        table.add_column("CGST", justify="right")
        table.add_column("SGST", justify="right")
        table.add_column("On Time", justify="center")
        for inv in result.generated:
            table.add_row(
                inv.invoice_number,
                inv.transaction_id[:12],
                inv.supplier_name[:24],
                inv.rcm_type.value,
                f"{inv.taxable_amount:,.2f}",
                f"{inv.tax.igst:,.2f}",
                f"{inv.tax.cgst:,.2f}",
                f"{inv.tax.sgst:,.2f}",
                "Y" if inv.issued_within_time else "[red]N[/red]",
            )
        console.print(table)

    for failure in result.failed:
        console.print(f"[yellow]Skipped {failure.transaction_id}: {failure.reason}[/yellow]")

    rg = ReportGenerator(args.output_dir or "reports")
    report = rg.self_invoice_report(
        result.generated, period_label=args.fiscal_year, failures=result.failed
    )
    console.print()
    console.print(rg.format_text(report))

    if args.export_json:
        rg.to_json(report, args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")
    if args.export_csv:
        rg.to_csv(report, args.export_csv, section="invoices")
        console.print(f"[green]CSV exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Subcommand: reconcile
# -----------------------------------------------------------------------


def cmd_reconcile(args: argparse.Namespace) -> None:
    """Reconcile claimed ITC against a GSTR-2B statement."""
    statement = read_statement(args.statement)
    claims = read_claims(args.claims)
    result = match(statement, claims, period=args.period)

    payments = None
    if args.payments:
        rcm_claims = [c for c in claims if c.is_rcm]
        payments = reconcile_payments(rcm_claims, read_payments(args.payments))

    problems = result.mismatches + result.claim_only + result.statement_only
    if problems:
        table = Table(title="Reconciliation Exceptions", box=box.ROUNDED)
        table.add_column("Status", style="bold")
        table.add_column("Supplier GSTIN")
        table.add_column("Document")
        table.add_column("Claimed", justify="right")
        table.add_column("Statement", justify="right")
        table.add_column("Difference", justify="right", style="bold red")
        for m in problems:
            source = m.claim or m.statement
            table.add_row(
                m.status.value,
                source.supplier_gstin or "-",
                source.document_number,
                f"{m.claim.amounts.total:,.2f}" if m.claim else "-",
                f"{m.statement.amounts.total:,.2f}" if m.statement else "-",
                f"{m.difference:,.2f}",
            )
        console.print(table)

    rg = ReportGenerator(args.output_dir or "reports")
    report = rg.reconciliation_report(result, payments)
    console.print(rg.format_text(report))

    border = "green" if result.is_clean else "yellow"
    console.print(
        Panel(
            f"[bold]Match Rate:[/bold] {result.match_percentage:.1f}%\n"
            f"[bold]Claims Considered:[/bold] {result.claims_considered}\n"
            f"[bold]Manual Entry (RCM):[/bold] {len(result.manual_entry)}",
            title="Reconciliation Summary",
            border_style=border,
        )
    )

    if args.export_json:
        rg.to_json(report, args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")
    if args.export_csv:
        rg.to_csv(report, args.export_csv, section="pairings")
        console.print(f"[green]CSV exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Subcommand: utilize
# -----------------------------------------------------------------------


def cmd_utilize(args: argparse.Namespace) -> None:
    """Set off available ITC against output liability."""
    available = TaxHeads(args.itc_igst, args.itc_cgst, args.itc_sgst)
    liability = TaxHeads(args.igst, args.cgst, args.sgst)
    result = allocate(available, liability)

    table = Table(title="ITC Set-Off", box=box.ROUNDED)
    table.add_column("Credit", style="bold")
    table.add_column("Against")
    table.add_column("Amount", justify="right")
    rg = ReportGenerator(args.output_dir or "reports")
    report = rg.utilization_report(result, liability, period_label=args.period or "")
    for row in report["set_off"]:
        if row["amount"]:
            table.add_row(row["credit"], row["against"], _rs(row["amount"]))
    console.print(table)

    cash = result.cash_by_head
    remaining = result.remaining_itc
    console.print(
        Panel(
            f"[bold]Cash Payable:[/bold] IGST {_rs(cash.igst)} | CGST {_rs(cash.cgst)} | "
            f"SGST {_rs(cash.sgst)}\n"
            f"[bold]Total Cash:[/bold] {_rs(result.cash_required)}\n"
            f"[bold]ITC Carried Forward:[/bold] IGST {_rs(remaining.igst)} | "
            f"CGST {_rs(remaining.cgst)} | SGST {_rs(remaining.sgst)}",
            title="Utilization Summary",
            border_style="green" if result.cash_required == 0 else "yellow",
        )
    )

    if args.export_json:
        rg.to_json(report, args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rcm-engine",
        description="RCM Compliance Engine - reverse charge classification, self-invoicing, "
        "ITC reconciliation and utilization under Indian GST",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # rules
    rules_p = subparsers.add_parser("rules", help="View notified RCM rules")
    rules_p.add_argument("--code", "-c", help="HSN/SAC code to look up")
    rules_p.add_argument("--date", help="Date the rule must be in force (YYYY-MM-DD)")
    rules_p.set_defaults(func=cmd_rules)

    # classify
    cls_p = subparsers.add_parser("classify", help="Check RCM applicability")
    cls_p.add_argument("--recipient-gstin", required=True, help="Recipient GSTIN")
    cls_p.add_argument("--recipient-state", required=True, help="Recipient state")
    cls_p.add_argument("--place-of-supply", help="Place of supply state")
    cls_p.add_argument(
        "--outside-india", action="store_true", help="Supply received from outside India"
    )
    cls_p.add_argument("--amount", required=True, help="Taxable amount")
    cls_p.add_argument("--vendor-gstin", help="Supplier GSTIN, if registered")
    cls_p.add_argument("--vendor-country", default="INDIA", help="Supplier country")
    cls_p.add_argument("--code", "-c", help="HSN/SAC code")
    cls_p.add_argument(
        "--composition", action="store_true", help="Supplier is under the composition scheme"
    )
    cls_p.add_argument("--date", help="Transaction date (default: today)")
    cls_p.set_defaults(func=cmd_classify)

    # due-date
    due_p = subparsers.add_parser("due-date", help="RCM payment due date and deadlines")
    due_p.add_argument("--receipt-date", required=True, help="Date of receipt (YYYY-MM-DD)")
    due_p.add_argument("--tax", help="Tax amount for interest accrual")
    due_p.add_argument("--as-of", help="Reference date (default: today)")
    due_p.set_defaults(func=cmd_due_date)

    # interest
    int_p = subparsers.add_parser("interest", help="Interest on late payment")
    int_p.add_argument("--principal", required=True, help="Unpaid tax amount")
    int_p.add_argument("--days", type=int, required=True, help="Days overdue")
    int_p.add_argument("--rate", help="Annual interest rate percent (default: 18)")
    int_p.set_defaults(func=cmd_interest)

    # self-invoice
    si_p = subparsers.add_parser("self-invoice", help="Generate self-invoices")
    si_p.add_argument("--file", "-f", required=True, help="CSV file with RCM purchases")
    si_p.add_argument("--gstin", required=True, help="Recipient GSTIN")
    si_p.add_argument("--name", required=True, help="Recipient legal name")
    si_p.add_argument("--state-code", required=True, help="Recipient state code")
    si_p.add_argument("--fiscal-year", required=True, help="Fiscal year, e.g. 2024-25")
    si_p.add_argument("--start-sequence", type=int, default=1, help="First invoice number")
    si_p.add_argument("--issue-date", help="Issue date (default: today)")
    si_p.add_argument("--export-json", help="Export register to JSON file")
    si_p.add_argument("--export-csv", help="Export invoices to CSV file")
    si_p.add_argument("--output-dir", help="Output directory for exports")
    si_p.set_defaults(func=cmd_self_invoice)

    # reconcile
    rec_p = subparsers.add_parser("reconcile", help="Reconcile ITC against GSTR-2B")
    rec_p.add_argument("--statement", "-s", required=True, help="GSTR-2B JSON or CSV file")
    rec_p.add_argument("--claims", "-c", required=True, help="CSV file with claimed ITC")
    rec_p.add_argument("--payments", help="CSV file with RCM payments")
    rec_p.add_argument("--period", help="Return period for adjustments (MMYYYY)")
    rec_p.add_argument("--export-json", help="Export report to JSON file")
    rec_p.add_argument("--export-csv", help="Export pairings to CSV file")
    rec_p.add_argument("--output-dir", help="Output directory")
    rec_p.set_defaults(func=cmd_reconcile)

    # utilize
    util_p = subparsers.add_parser("utilize", help="Set off ITC against liability")
    for head in ("igst", "cgst", "sgst"):
        util_p.add_argument(f"--itc-{head}", default="0", help=f"Available {head.upper()} credit")
        util_p.add_argument(f"--{head}", default="0", help=f"{head.upper()} liability")
    util_p.add_argument("--period", help="Period label for reports")
    util_p.add_argument("--export-json", help="Export report to JSON file")
    util_p.add_argument("--output-dir", help="Output directory")
    util_p.set_defaults(func=cmd_utilize)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except RCMEngineError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        sys.exit(1)
