#!/usr/bin/env python3
"""
Quick Start Example
===================

Demonstrates basic usage of the TaxEngine: a financed retail deal in
Houston, TX with a trade-in, then a lease quote in New Jersey.

Usage:
    python examples/quick_start.py
"""

from decimal import Decimal

from auto_tax_engine import DealType, TaxQuoteInput, build_engine
from auto_tax_engine.money import format_money, format_rate


def main() -> None:
    # Load the bundled rule and ZIP files
    engine = build_engine()

    # $40,000 truck in Houston, $12,000 trade with $4,000 owed, 6.9% for 60 months
    quote = TaxQuoteInput(
        deal_type=DealType.RETAIL,
        vehicle_price=Decimal("40000.00"),
        state_code="TX",
        zip_code="77001",
        trade_allowance=Decimal("12000.00"),
        trade_payoff=Decimal("4000.00"),
        dealer_fees=Decimal("150.00"),
        apr=Decimal("6.9"),
        term_months=60,
        deal_id="DEAL-001",
    )
    result = engine.compute_tax(quote)

    print(f"Deal:            {result.deal_id}")
    print(f"State:           {result.state_code}")
    print(f"Method:          {result.method_used.name}")
    print(f"Trade Credit:    {format_money(result.trade_in_credit)}")
    print(f"Taxable Amount:  {format_money(result.taxable_amount)}")
    print(f"Combined Rate:   {format_rate(result.combined_rate)}")
    print(f"State Tax:       {format_money(result.state_tax)}")
    print(f"Local Tax:       {format_money(result.local_tax)}")
    print(f"Total Tax:       {format_money(result.total_tax)}")
    print(f"Amount Financed: {format_money(result.amount_financed)}")
    print(f"Monthly Payment: {format_money(result.monthly_payment)}")

    if result.warnings:
        print(f"Warnings:        {', '.join(result.warnings)}")

    # A 36 month lease in New Jersey, where lease tax is collected upfront
    print("\n--- Lease ---")
    lease_quote = TaxQuoteInput(
        deal_type=DealType.LEASE,
        vehicle_price=Decimal("42000.00"),
        msrp=Decimal("45000.00"),
        state_code="NJ",
        term_months=36,
        money_factor=Decimal("0.00125"),
        residual_percent=Decimal("58"),
        down_payment=Decimal("2000.00"),
        deal_id="DEAL-002",
    )
    lease = engine.compute_tax(lease_quote)
    print(f"Method:          {lease.method_used.name} ({lease.tax_timing.name})")
    print(f"Base Payment:    {format_money(lease.base_payment)}")
    print(f"Monthly Payment: {format_money(lease.monthly_payment)}")
    print(f"Upfront Tax:     {format_money(lease.upfront_tax)}")
    print(f"Due at Signing:  {format_money(lease.total_due_at_signing)}")

    for note in lease.notes:
        print(f"  - {note}")


if __name__ == "__main__":
    main()
