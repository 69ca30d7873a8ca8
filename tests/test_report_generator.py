"""Tests for report generation and export."""

import json
from decimal import Decimal

import pytest

from auto_tax_engine.engine import TaxEngine, TaxQuoteInput
from auto_tax_engine.finance import AmortizationSchedule
from auto_tax_engine.local_rates import LocalRateResolver
from auto_tax_engine.report_generator import ReportGenerator
from auto_tax_engine.rules import DealType, load_rule_store


@pytest.fixture(scope="module")
def engine() -> TaxEngine:
    return TaxEngine(load_rule_store(), LocalRateResolver.from_file())


@pytest.fixture
def reporter(tmp_path) -> ReportGenerator:
    return ReportGenerator(output_dir=str(tmp_path))


def _retail(state: str, price: str, deal_id: str, **kwargs) -> TaxQuoteInput:
    return TaxQuoteInput(
        deal_type=DealType.RETAIL,
        vehicle_price=Decimal(price),
        state_code=state,
        deal_id=deal_id,
        **kwargs,
    )


# ── Quote report ─────────────────────────────────────────────────────


def test_quote_report_json_keeps_money_as_strings(
    engine: TaxEngine, reporter: ReportGenerator
):
    result = engine.compute_tax(
        _retail("CA", "50000.00", "D-1", local_rate=Decimal("0.01"))
    )
    report = reporter.quote_report(result)
    data = json.loads(reporter.to_json(report, "quote.json"))
    assert data["summary"]["total_tax"] == "4125.00"
    assert data["summary"]["method_used"] == "TAX_ON_PRICE"
    assert data["summary"]["combined_rate"] == "0.0825"
    assert data["summary"]["tax_cap_applied"] is False
    assert data["rule_version"] == "2024.1"
    assert (reporter.output_dir / "quote.json").exists()


def test_quote_report_includes_lease_payments(
    engine: TaxEngine, reporter: ReportGenerator
):
    result = engine.compute_tax(
        TaxQuoteInput(
            deal_type=DealType.LEASE,
            vehicle_price=Decimal("42000.00"),
            state_code="NJ",
            msrp=Decimal("45000.00"),
            term_months=36,
            money_factor=Decimal("0.00125"),
            residual_percent=Decimal("58"),
            down_payment=Decimal("2000.00"),
        )
    )
    report = reporter.quote_report(result)
    assert report["lease"]["base_payment"] == Decimal("468.74")
    assert report["lease"]["total_base_payments"] == Decimal("16874.64")
    assert report["lease"]["total_due_at_signing"] == Decimal("5251.24")
    assert "finance" not in report


def test_format_text_shows_audit_trail(engine: TaxEngine, reporter: ReportGenerator):
    result = engine.compute_tax(_retail("CA", "50000.00", "D-2"))
    text = reporter.format_text(reporter.quote_report(result))
    assert "SUMMARY" in text
    assert "WARNINGS" in text
    assert "AUDIT TRAIL" in text
    assert "$3,625.00" in text
    assert "Combined Rate: 7.250%" in text


# ── Batch summary ────────────────────────────────────────────────────


def test_batch_summary(engine: TaxEngine, reporter: ReportGenerator):
    batch = engine.compute_batch(
        [
            _retail("TX", "40000.00", "A", zip_code="77001"),
            _retail("TX", "20000.00", "B", zip_code="77001"),
            _retail("GA", "45000.00", "C"),
            _retail("ZZ", "10000.00", "D"),
        ]
    )
    report = reporter.batch_summary_report(batch, "2024-Q2")
    summary = report["summary"]
    assert summary["total_deals"] == 4
    assert summary["quoted_deals"] == 3
    assert summary["failed_deals"] == 1
    assert summary["total_tax"] == Decimal("8100.00")

    by_state = {s["state"]: s for s in report["state_breakdown"]}
    assert by_state["TX"]["deal_count"] == 2
    assert by_state["TX"]["total_tax"] == Decimal("4950.00")
    assert by_state["TX"]["effective_rate"] == Decimal("0.082500")
    assert report["errors"][0]["code"] == "UNKNOWN_JURISDICTION"

    text = reporter.format_text(report)
    assert "STATE BREAKDOWN" in text
    assert "ERRORS" in text
    assert "[UNKNOWN_JURISDICTION] D" in text


def test_state_breakdown_csv(engine: TaxEngine, reporter: ReportGenerator):
    batch = engine.compute_batch([_retail("TX", "40000.00", "A", zip_code="77001")])
    csv_str = reporter.to_csv(
        reporter.batch_summary_report(batch), "summary.csv"
    )
    lines = csv_str.strip().splitlines()
    assert lines[0] == "state,deal_count,taxable_amount,total_tax,effective_rate"
    assert lines[1] == "TX,1,40000.00,3300.00,0.082500"
    assert (reporter.output_dir / "summary.csv").exists()


def test_empty_section_exports_nothing(reporter: ReportGenerator):
    assert reporter.to_csv({"state_breakdown": []}) == ""


def test_export_quote_details(engine: TaxEngine, reporter: ReportGenerator):
    results = [
        engine.compute_tax(_retail("TX", "40000.00", "A", zip_code="77001")),
        engine.compute_tax(_retail("CA", "50000.00", "B")),
    ]
    csv_str = reporter.export_quote_details(results)
    rows = csv_str.strip().splitlines()
    assert len(rows) == 3
    assert rows[1].startswith("A,TX,RETAIL,TAX_ON_PRICE,40000.00")
    assert "local tax not included" in rows[2]
    assert (reporter.output_dir / "quote_details.csv").exists()


# ── Amortization ─────────────────────────────────────────────────────


def test_schedule_report(reporter: ReportGenerator):
    report = reporter.schedule_report(
        AmortizationSchedule(Decimal("10000"), Decimal("0"), 3), "demo"
    )
    assert report["summary"]["payments"] == 3
    assert report["summary"]["total_paid"] == Decimal("10000.00")
    assert report["summary"]["total_interest"] == Decimal("0")

    csv_str = reporter.to_csv(report, section="schedule")
    header = csv_str.splitlines()[0]
    assert header == (
        "number,beginning_balance,payment,principal,interest,ending_balance"
    )
