"""
Command-line interface for the Auto Tax Engine.

Provides subcommands for single-deal quotes, jurisdiction rule lookup,
amortization schedules, and batch quoting from CSV.
"""

from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from auto_tax_engine.config import EngineConfig, build_engine
from auto_tax_engine.engine import TaxEngine, TaxQuoteInput
from auto_tax_engine.errors import TaxEngineError
from auto_tax_engine.finance import AmortizationSchedule, monthly_payment
from auto_tax_engine.logging_config import configure_logging
from auto_tax_engine.money import ZERO, format_money, format_rate, to_decimal
from auto_tax_engine.report_generator import ReportGenerator
from auto_tax_engine.rules import DealType

console = Console()

_QUOTE_FIELDS = {
    "deal_type": "deal_type",
    "price": "vehicle_price",
    "state": "state_code",
    "zip": "zip_code",
    "county": "county",
    "local_rate": "local_rate",
    "trade_allowance": "trade_allowance",
    "trade_payoff": "trade_payoff",
    "fees": "dealer_fees",
    "aftermarket": "aftermarket_products",
    "rebates": "rebates",
    "apr": "apr",
    "term": "term_months",
    "money_factor": "money_factor",
    "residual": "residual_percent",
    "residual_value": "residual_value",
    "msrp": "msrp",
    "down": "down_payment",
    "acquisition_fee": "acquisition_fee",
    "origin_tax_paid": "origin_tax_paid",
    "deal_id": "deal_id",
}


def _fail(message: str) -> None:
    console.print(f"[red]{escape(message)}[/red]")
    sys.exit(1)


def _engine(args: argparse.Namespace) -> TaxEngine:
    config = EngineConfig.from_env().with_overrides(
        rules_path=args.rules,
        local_rates_path=args.local_rates,
        log_level=args.log_level,
    )
    configure_logging(config.log_level)
    try:
        return build_engine(config)
    except TaxEngineError as e:
        _fail(f"Could not load tax rules: {e.message}")


def _load_quotes_csv(path: str) -> list[TaxQuoteInput]:
    """
    Load deals from a CSV file.

    Expected columns match TaxQuoteInput fields: deal_id, deal_type,
    state_code, vehicle_price, zip_code, trade_allowance, trade_payoff,
    dealer_fees, ...
    """
    csv_path = Path(path)
    if not csv_path.exists():
        _fail(f"File not found: {path}")

    quotes: list[TaxQuoteInput] = []
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for i, row in enumerate(reader):
            row.setdefault("deal_id", "")
            if not row["deal_id"]:
                row["deal_id"] = str(i + 1)
            try:
                quotes.append(TaxQuoteInput.from_dict(row))
            except TaxEngineError as e:
                console.print(f"[yellow]Skipping row {i + 1}: {escape(e.message)}[/yellow]")
    return quotes


# -----------------------------------------------------------------------
# Subcommand: quote
# -----------------------------------------------------------------------


def cmd_quote(args: argparse.Namespace) -> None:
    """Quote tax, and payments where structured, for a single deal."""
    engine = _engine(args)
    data = {
        field_name: getattr(args, arg)
        for arg, field_name in _QUOTE_FIELDS.items()
        if getattr(args, arg, None) is not None
    }
    try:
        quote = TaxQuoteInput.from_dict(data)
        result = engine.compute_tax(quote)
    except TaxEngineError as e:
        _fail(f"[{e.code}] {e.message}")

    lines = [
        f"[bold]State:[/bold] {result.state_code} ({result.deal_type.name})",
        f"[bold]Method:[/bold] {result.method_used.name}",
        f"[bold]Trade-In Credit:[/bold] {format_money(result.trade_in_credit)}",
        f"[bold]Taxable Amount:[/bold] {format_money(result.taxable_amount)}",
        f"[bold]State Rate:[/bold] {format_rate(result.state_rate)}",
        f"[bold]Local Rate:[/bold] {format_rate(result.local_rate)} "
        f"({result.local_rate_source})",
        f"[bold]Combined Rate:[/bold] {format_rate(result.combined_rate)}",
        f"[bold]State Tax:[/bold] {format_money(result.state_tax)}",
        f"[bold]Local Tax:[/bold] {format_money(result.local_tax)}",
    ]
    if result.luxury_tax:
        lines.append(f"[bold]Luxury Tax:[/bold] {format_money(result.luxury_tax)}")
    if result.reciprocity_credit:
        lines.append(
            f"[bold]Reciprocity Credit:[/bold] {format_money(result.reciprocity_credit)}"
        )
    lines.append(f"[bold]Total Tax:[/bold] {format_money(result.total_tax)}")
    if result.tax_cap_applied:
        lines.append("[bold]Tax Cap Applied:[/bold] Yes")

    if result.finance is not None:
        fin = result.finance
        lines += [
            "",
            f"[bold]Amount Financed:[/bold] {format_money(fin.amount_financed)}",
            f"[bold]Monthly Payment:[/bold] {format_money(fin.monthly_payment)} "
            f"x {fin.term_months} @ {fin.apr}% APR",
            f"[bold]Finance Charge:[/bold] {format_money(fin.total_interest)}",
        ]
    if result.lease is not None:
        lease = result.lease
        lines += [
            "",
            f"[bold]Adjusted Cap Cost:[/bold] {format_money(lease.adjusted_cap_cost)}",
            f"[bold]Residual:[/bold] {format_money(lease.residual_value)}",
            f"[bold]Base Payment:[/bold] {format_money(lease.base_payment)}",
            f"[bold]Total Base Payments:[/bold] {format_money(lease.total_base_payments)}",
            f"[bold]Monthly Payment:[/bold] {format_money(result.monthly_payment)}",
            f"[bold]Due at Signing:[/bold] {format_money(result.total_due_at_signing)}",
        ]

    console.print(
        Panel("\n".join(lines), title="Deal Tax Quote", border_style="blue")
    )
    for w in result.warnings:
        console.print(f"[yellow]Warning: {escape(w)}[/yellow]")
    if args.verbose:
        for note in result.notes:
            console.print(f"[dim]- {note}[/dim]")

    if args.export_json:
        rg = ReportGenerator(args.output_dir or "reports")
        rg.to_json(rg.quote_report(result), args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")


# -----------------------------------------------------------------------
# Subcommand: rules
# -----------------------------------------------------------------------


def cmd_rules(args: argparse.Namespace) -> None:
    """Display the tax rules for one jurisdiction or all of them."""
    engine = _engine(args)
    store = engine.store

    if args.state:
        try:
            rules = store.lookup(args.state)
        except TaxEngineError as e:
            _fail(e.message)

        credit = rules.trade_in_credit
        trade = credit.policy.name
        if credit.cap is not None:
            trade += f" (cap {format_money(credit.cap)})"
        if credit.nets_payoff:
            trade += " net of payoff"
        doc_fee = "Taxable" if rules.doc_fee_taxable else "Not taxable"
        if rules.max_doc_fee is not None:
            doc_fee += f", cap {format_money(rules.max_doc_fee)}"
        tax_cap = "None" if rules.tax_cap is None else format_money(rules.tax_cap)
        luxury = "None"
        if rules.luxury_threshold is not None:
            luxury = (
                f"{format_rate(rules.luxury_rate)} above "
                f"{format_money(rules.luxury_threshold)}"
            )

        console.print(
            Panel(
                f"[bold]State:[/bold] {rules.state_name} ({rules.state_code})\n"
                f"[bold]Base Rate:[/bold] {format_rate(rules.base_rate)}\n"
                f"[bold]Local Taxes:[/bold] {'Yes' if rules.has_local_tax else 'No'}\n"
                f"[bold]Retail Method:[/bold] {rules.tax_method.name}\n"
                f"[bold]Lease Method:[/bold] {rules.effective_lease_method.name}\n"
                f"[bold]Trade-In Credit:[/bold] {trade}\n"
                f"[bold]Doc Fee:[/bold] {doc_fee}\n"
                f"[bold]Luxury Surcharge:[/bold] {luxury}\n"
                f"[bold]Rebates Taxable:[/bold] {'Yes' if rules.rebates_taxable else 'No'}\n"
                f"[bold]Reciprocity:[/bold] {'Yes' if rules.reciprocity else 'No'}\n"
                f"[bold]Tax Cap:[/bold] {tax_cap}\n"
                f"[bold]Notes:[/bold] {rules.notes}",
                title=f"{rules.state_name} Vehicle Tax Rules ({store.version})",
                border_style="cyan",
            )
        )
        return

    table = Table(
        title=f"Vehicle Tax Rules - All Jurisdictions ({store.version})",
        box=box.ROUNDED,
    )
    table.add_column("State", style="bold")
    table.add_column("Name")
    table.add_column("Base Rate", justify="right")
    table.add_column("Local", justify="center")
    table.add_column("Trade-In")
    table.add_column("Retail")
    table.add_column("Lease")

    for rules in store:
        style = "dim" if rules.base_rate == 0 else ""
        table.add_row(
            rules.state_code,
            rules.state_name,
            format_rate(rules.base_rate) if rules.base_rate > 0 else "None",
            "Y" if rules.has_local_tax else "",
            rules.trade_in_credit.policy.name,
            rules.tax_method.name,
            rules.effective_lease_method.name,
            style=style,
        )
    console.print(table)


# -----------------------------------------------------------------------
# Subcommand: schedule
# -----------------------------------------------------------------------


def cmd_schedule(args: argparse.Namespace) -> None:
    """Print a loan amortization schedule."""
    configure_logging(args.log_level or "WARNING")
    try:
        principal = to_decimal(args.principal, "principal")
        apr = to_decimal(args.apr, "apr")
        payment = monthly_payment(principal, apr, args.term)
        rows = list(AmortizationSchedule(principal, apr, args.term, payment))
    except (TaxEngineError, ValueError) as e:
        _fail(str(e))

    table = Table(
        title=f"Amortization: {format_money(principal)} @ {apr}% for {args.term} months",
        box=box.SIMPLE,
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Beginning", justify="right")
    table.add_column("Payment", justify="right")
    table.add_column("Principal", justify="right")
    table.add_column("Interest", justify="right")
    table.add_column("Ending", justify="right")
    for row in rows:
        table.add_row(
            str(row.number),
            format_money(row.beginning_balance),
            format_money(row.payment),
            format_money(row.principal),
            format_money(row.interest),
            format_money(row.ending_balance),
        )
    console.print(table)

    total_paid = sum((r.payment for r in rows), ZERO)
    console.print(
        Panel(
            f"[bold]Monthly Payment:[/bold] {format_money(payment)}\n"
            f"[bold]Total of Payments:[/bold] {format_money(total_paid)}\n"
            f"[bold]Finance Charge:[/bold] {format_money(total_paid - principal)}",
            title="Loan Summary",
            border_style="green",
        )
    )

    if args.export_csv:
        rg = ReportGenerator(args.output_dir or "reports")
        rg.to_csv(rg.schedule_report(rows), args.export_csv, section="schedule")
        console.print(f"[green]CSV exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Subcommand: batch
# -----------------------------------------------------------------------


def cmd_batch(args: argparse.Namespace) -> None:
    """Quote every deal in a CSV file."""
    engine = _engine(args)
    quotes = _load_quotes_csv(args.file)
    batch = engine.compute_batch(quotes)

    table = Table(title="Deal Tax Results", box=box.ROUNDED, show_lines=True)
    table.add_column("Deal", style="dim")
    table.add_column("State")
    table.add_column("Type")
    table.add_column("Method")
    table.add_column("Taxable", justify="right")
    table.add_column("Tax", justify="right", style="bold")
    table.add_column("Payment", justify="right")

    for r in batch.results:
        table.add_row(
            r.deal_id[:12],
            r.state_code,
            r.deal_type.name,
            r.method_used.name,
            format_money(r.taxable_amount),
            format_money(r.total_tax),
            format_money(r.monthly_payment) if r.monthly_payment is not None else "-",
        )
    console.print(table)
    console.print()
    console.print(
        Panel(
            f"[bold]Deals:[/bold] {batch.deal_count}\n"
            f"[bold]Quoted:[/bold] {len(batch.results)}\n"
            f"[bold]Failed:[/bold] {len(batch.errors)}\n"
            f"[bold]Total Tax:[/bold] {format_money(batch.total_tax)}",
            title="Batch Summary",
            border_style="green",
        )
    )
    for err in batch.errors:
        console.print(
            f"[red]Deal {err.deal_id or err.index}: {escape(f'[{err.code}] {err.message}')}[/red]"
        )

    if args.export_json or args.export_csv:
        rg = ReportGenerator(args.output_dir or "reports")
        if args.export_json:
            report = rg.batch_summary_report(batch, period_label=args.period or "")
            rg.to_json(report, args.export_json)
            console.print(f"[green]JSON exported to {args.export_json}[/green]")
        if args.export_csv:
            rg.export_quote_details(batch.results, args.export_csv)
            console.print(f"[green]CSV exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auto-tax",
        description="Auto Tax Engine - Vehicle sales/use tax, trade-in credit, and finance/lease payment quotes",
    )
    parser.add_argument("--rules", help="Jurisdiction rule CSV (default: bundled)")
    parser.add_argument("--local-rates", help="ZIP local rate CSV (default: bundled)")
    parser.add_argument("--log-level", help="Log level, e.g. INFO or DEBUG")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # quote
    quote_p = subparsers.add_parser("quote", help="Quote tax for a single deal")
    quote_p.add_argument("--state", "-s", required=True, help="Two-letter state code")
    quote_p.add_argument("--price", required=True, help="Vehicle selling price")
    quote_p.add_argument(
        "--deal-type",
        choices=[d.value for d in DealType],
        default=DealType.RETAIL.value,
        help="retail (cash/finance) or lease",
    )
    quote_p.add_argument("--zip", help="Customer ZIP code for local rate lookup")
    quote_p.add_argument("--county", help="Customer county (recorded only)")
    quote_p.add_argument("--local-rate", help="Pre-resolved local rate, e.g. 0.01")
    quote_p.add_argument("--trade-allowance", help="Trade-in allowance")
    quote_p.add_argument("--trade-payoff", help="Trade-in loan payoff")
    quote_p.add_argument("--fees", help="Dealer doc fees")
    quote_p.add_argument("--aftermarket", help="Aftermarket products")
    quote_p.add_argument("--rebates", help="Manufacturer rebates")
    quote_p.add_argument("--apr", help="APR in percent, e.g. 6.9")
    quote_p.add_argument("--term", type=int, help="Term in months")
    quote_p.add_argument("--money-factor", help="Lease money factor")
    quote_p.add_argument("--residual", help="Lease residual percent of MSRP")
    quote_p.add_argument("--residual-value", help="Lease residual dollar value")
    quote_p.add_argument("--msrp", help="MSRP for the lease residual")
    quote_p.add_argument("--down", help="Down payment / cap cost reduction")
    quote_p.add_argument("--acquisition-fee", help="Lease acquisition fee")
    quote_p.add_argument("--origin-tax-paid", help="Tax already paid to another state")
    quote_p.add_argument("--deal-id", help="Deal label for the audit trail")
    quote_p.add_argument("--verbose", "-v", action="store_true", help="Show audit trail")
    quote_p.add_argument("--export-json", help="Export quote to JSON file")
    quote_p.add_argument("--output-dir", help="Output directory for exports")
    quote_p.set_defaults(func=cmd_quote)

    # rules
    rules_p = subparsers.add_parser("rules", help="View jurisdiction tax rules")
    rules_p.add_argument("--state", "-s", help="State code to look up")
    rules_p.set_defaults(func=cmd_rules)

    # schedule
    sched_p = subparsers.add_parser("schedule", help="Print an amortization schedule")
    sched_p.add_argument("--principal", required=True, help="Amount financed")
    sched_p.add_argument("--apr", required=True, help="APR in percent")
    sched_p.add_argument("--term", type=int, required=True, help="Term in months")
    sched_p.add_argument("--export-csv", help="Export schedule to CSV file")
    sched_p.add_argument("--output-dir", help="Output directory for exports")
    sched_p.set_defaults(func=cmd_schedule)

    # batch
    batch_p = subparsers.add_parser("batch", help="Quote every deal in a CSV file")
    batch_p.add_argument("--file", "-f", required=True, help="CSV file with deals")
    batch_p.add_argument("--period", help="Period label for reports")
    batch_p.add_argument("--export-json", help="Export summary to JSON file")
    batch_p.add_argument("--export-csv", help="Export quote details to CSV file")
    batch_p.add_argument("--output-dir", help="Output directory for exports")
    batch_p.set_defaults(func=cmd_batch)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    args.func(args)
