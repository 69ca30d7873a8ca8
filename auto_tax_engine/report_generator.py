"""
Deal tax report generator.

Produces:
- Single-deal quote reports with the full audit trail
- Batch summaries with state-by-state breakdowns
- Amortization schedule tables
- CSV and JSON export

Money is exported as strings ("4125.00") so no value passes through a
binary float on its way out.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from auto_tax_engine.engine import BatchResult, TaxQuoteResult
from auto_tax_engine.finance import AmortizationPayment
from auto_tax_engine.money import format_money

_RATE_PRECISION = Decimal("0.000001")


def _to_serializable(obj: Any) -> Any:
    """Recursively convert Decimals, enums, dates and dataclasses for export."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return _to_serializable(asdict(obj))
    if isinstance(obj, dict):
        return {k: _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(i) for i in obj]
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.name
    if isinstance(obj, date):
        return obj.isoformat()
    return obj


def _cell(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.name
    return value


def _effective_rate(tax: Decimal, taxable: Decimal) -> Decimal:
    if taxable <= 0:
        return Decimal("0")
    return (tax / taxable).quantize(_RATE_PRECISION)


class ReportGenerator:
    """
    Generates deal tax reports with export capabilities.

    All reports can be returned as structured dicts, rendered to
    console-friendly text, or exported to CSV/JSON files.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("reports")
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Single deal
    # ------------------------------------------------------------------

    def quote_report(self, result: TaxQuoteResult) -> dict[str, Any]:
        """Structured report of one quote, including the audit notes."""
        report: dict[str, Any] = {
            "report_type": "deal_tax_quote",
            "generated_date": date.today().isoformat(),
            "deal_id": result.deal_id,
            "rule_version": result.rule_version,
            "summary": {
                "state": result.state_code,
                "deal_type": result.deal_type.name,
                "method_used": result.method_used.name,
                "tax_timing": result.tax_timing.name,
                "taxable_amount": result.taxable_amount,
                "trade_in_credit": result.trade_in_credit,
                "state_rate": result.state_rate,
                "local_rate": result.local_rate,
                "combined_rate": result.combined_rate,
                "local_rate_source": result.local_rate_source,
                "state_tax": result.state_tax,
                "local_tax": result.local_tax,
                "luxury_tax": result.luxury_tax,
                "reciprocity_credit": result.reciprocity_credit,
                "total_tax": result.total_tax,
                "tax_cap_applied": result.tax_cap_applied,
            },
            "taxable_base": asdict(result.taxable_base),
            "warnings": list(result.warnings),
            "notes": list(result.notes),
        }
        if result.finance is not None:
            report["finance"] = asdict(result.finance)
        if result.lease is not None:
            report["lease"] = {
                **asdict(result.lease),
                "total_base_payments": result.lease.total_base_payments,
                "per_period_tax": result.per_period_tax,
                "upfront_tax": result.upfront_tax,
                "monthly_payment": result.monthly_payment,
                "total_due_at_signing": result.total_due_at_signing,
            }
        return report

    # ------------------------------------------------------------------
    # Batch summary
    # ------------------------------------------------------------------

    def batch_summary_report(
        self,
        batch_result: BatchResult,
        period_label: str = "",
    ) -> dict[str, Any]:
        """
        Summarize a batch of quotes by state.

        Deals that failed are listed under ``errors`` with their error code.
        """
        state_results: dict[str, list[TaxQuoteResult]] = {}
        for r in batch_result.results:
            state_results.setdefault(r.state_code, []).append(r)

        state_details: list[dict[str, Any]] = []
        for state_code in sorted(state_results):
            results = state_results[state_code]
            taxable = sum((r.taxable_amount for r in results), Decimal("0"))
            tax = sum((r.total_tax for r in results), Decimal("0"))
            state_details.append(
                {
                    "state": state_code,
                    "deal_count": len(results),
                    "taxable_amount": taxable,
                    "total_tax": tax,
                    "effective_rate": _effective_rate(tax, taxable),
                }
            )

        total_taxable = sum(
            (r.taxable_amount for r in batch_result.results), Decimal("0")
        )
        return {
            "report_type": "deal_tax_batch_summary",
            "period": period_label,
            "generated_date": date.today().isoformat(),
            "summary": {
                "total_deals": batch_result.deal_count,
                "quoted_deals": len(batch_result.results),
                "failed_deals": len(batch_result.errors),
                "total_taxable": total_taxable,
                "total_tax": batch_result.total_tax,
                "overall_effective_rate": _effective_rate(
                    batch_result.total_tax, total_taxable
                ),
            },
            "state_breakdown": state_details,
            "errors": [asdict(e) for e in batch_result.errors],
        }

    # ------------------------------------------------------------------
    # Amortization
    # ------------------------------------------------------------------

    def schedule_report(
        self, rows: Iterable[AmortizationPayment], label: str = ""
    ) -> dict[str, Any]:
        schedule = [asdict(row) for row in rows]
        return {
            "report_type": "amortization_schedule",
            "period": label,
            "generated_date": date.today().isoformat(),
            "summary": {
                "payments": len(schedule),
                "total_paid": sum((r["payment"] for r in schedule), Decimal("0")),
                "total_interest": sum(
                    (r["interest"] for r in schedule), Decimal("0")
                ),
            },
            "schedule": schedule,
        }

    # ------------------------------------------------------------------
    # Export methods
    # ------------------------------------------------------------------

    def to_json(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
    ) -> str:
        """Export a report to JSON. Returns the JSON string."""
        json_str = json.dumps(_to_serializable(report), indent=2)

        if filename:
            path = self.output_dir / filename
            path.write_text(json_str, encoding="utf-8")

        return json_str

    def to_csv(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
        section: str = "state_breakdown",
    ) -> str:
        """
        Export a report section to CSV. Returns the CSV string.

        The section parameter specifies which list/dict in the report
        to export as rows.
        """
        data = report.get(section, [])
        if not data:
            return ""

        output = io.StringIO()

        if isinstance(data, list) and isinstance(data[0], dict):
            writer = csv.DictWriter(output, fieldnames=list(data[0].keys()))
            writer.writeheader()
            for row in data:
                writer.writerow({k: _cell(v) for k, v in row.items()})
        elif isinstance(data, dict):
            writer = csv.writer(output)
            writer.writerow(["key", "value"])
            for k, v in data.items():
                writer.writerow([k, _cell(v)])

        csv_str = output.getvalue()

        if filename:
            path = self.output_dir / filename
            path.write_text(csv_str, encoding="utf-8")

        return csv_str

    def export_quote_details(
        self,
        results: list[TaxQuoteResult],
        filename: str = "quote_details.csv",
    ) -> str:
        """Export individual quote results to CSV."""
        output = io.StringIO()
        fieldnames = [
            "deal_id",
            "state",
            "deal_type",
            "method_used",
            "taxable_amount",
            "trade_in_credit",
            "state_tax",
            "local_tax",
            "luxury_tax",
            "reciprocity_credit",
            "total_tax",
            "monthly_payment",
            "local_rate_source",
            "rule_version",
            "warnings",
        ]
        writer = csv.DictWriter(output, fieldnames=fieldnames)
        writer.writeheader()

        for r in results:
            writer.writerow(
                {
                    "deal_id": r.deal_id,
                    "state": r.state_code,
                    "deal_type": r.deal_type.name,
                    "method_used": r.method_used.name,
                    "taxable_amount": str(r.taxable_amount),
                    "trade_in_credit": str(r.trade_in_credit),
                    "state_tax": str(r.state_tax),
                    "local_tax": str(r.local_tax),
                    "luxury_tax": str(r.luxury_tax),
                    "reciprocity_credit": str(r.reciprocity_credit),
                    "total_tax": str(r.total_tax),
                    "monthly_payment": (
                        str(r.monthly_payment) if r.monthly_payment is not None else ""
                    ),
                    "local_rate_source": r.local_rate_source,
                    "rule_version": r.rule_version,
                    "warnings": "; ".join(r.warnings),
                }
            )

        csv_str = output.getvalue()
        path = self.output_dir / filename
        path.write_text(csv_str, encoding="utf-8")
        return csv_str

    # ------------------------------------------------------------------
    # Console-formatted text output
    # ------------------------------------------------------------------

    def format_text(self, report: dict[str, Any]) -> str:
        """Format a report as human-readable text for console output."""
        lines: list[str] = []
        report_type = report.get("report_type", "report").replace("_", " ").title()
        lines.append(f"{'=' * 60}")
        lines.append(f"  {report_type}")
        lines.append(f"  Generated: {report.get('generated_date', '')}")
        if report.get("deal_id"):
            lines.append(f"  Deal: {report['deal_id']}")
        if report.get("period"):
            lines.append(f"  Period: {report['period']}")
        if report.get("rule_version"):
            lines.append(f"  Rules: {report['rule_version']}")
        lines.append(f"{'=' * 60}")
        lines.append("")

        summary = report.get("summary", {})
        if summary:
            lines.append("SUMMARY")
            lines.append("-" * 40)
            for key, value in summary.items():
                label = key.replace("_", " ").title()
                if isinstance(value, Decimal):
                    if "rate" in key:
                        lines.append(f"  {label}: {value * 100:.3f}%")
                    else:
                        lines.append(f"  {label}: {format_money(value)}")
                else:
                    lines.append(f"  {label}: {value}")
            lines.append("")

        state_data = report.get("state_breakdown", [])
        if state_data:
            lines.append("STATE BREAKDOWN")
            lines.append("-" * 40)
            for sd in state_data:
                lines.append(
                    f"  {sd['state']}: {format_money(sd['taxable_amount']):>14} taxable | "
                    f"{format_money(sd['total_tax']):>12} tax | {sd['deal_count']} deals"
                )
            lines.append("")

        for heading, key in (("WARNINGS", "warnings"), ("AUDIT TRAIL", "notes")):
            entries = report.get(key, [])
            if entries:
                lines.append(heading)
                lines.append("-" * 40)
                for entry in entries:
                    lines.append(f"  - {entry}")
                lines.append("")

        errors = report.get("errors", [])
        if errors:
            lines.append("ERRORS")
            lines.append("-" * 40)
            for e in errors:
                label = e.get("deal_id") or f"#{e.get('index')}"
                lines.append(f"  [{e.get('code')}] {label}: {e.get('message')}")
            lines.append("")

        return "\n".join(lines)
