"""
Taxable amount assembly.

Handles:
- Trade-in credit deduction
- Doc fee taxability and statutory cap
- Aftermarket products (service contracts, GAP, accessories)
- Manufacturer rebates in jurisdictions that do not tax them
- Capitalized cost base for leases taxed upfront
- Luxury surcharge excess over the threshold
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from auto_tax_engine.money import ZERO, floor_zero, round_money
from auto_tax_engine.rules import JurisdictionRules

if TYPE_CHECKING:
    from auto_tax_engine.engine import TaxQuoteInput


@dataclass(frozen=True)
class TaxableBase:
    """Itemized taxable base, kept on the result for audit reproduction."""

    vehicle_price: Decimal
    trade_in_credit: Decimal
    taxable_doc_fee: Decimal
    aftermarket_products: Decimal
    rebate_deduction: Decimal
    taxable_amount: Decimal


def taxable_doc_fee(rules: JurisdictionRules, dealer_fees: Decimal) -> Decimal:
    if not rules.doc_fee_taxable:
        return ZERO
    if rules.max_doc_fee is None:
        return dealer_fees
    return min(dealer_fees, rules.max_doc_fee)


def build_taxable_base(
    rules: JurisdictionRules,
    vehicle_price: Decimal,
    credit: Decimal,
    dealer_fees: Decimal = ZERO,
    aftermarket_products: Decimal = ZERO,
    rebates: Decimal = ZERO,
) -> TaxableBase:
    doc_fee = taxable_doc_fee(rules, dealer_fees)
    rebate_deduction = ZERO if rules.rebates_taxable else rebates
    amount = vehicle_price - credit + doc_fee + aftermarket_products - rebate_deduction
    return TaxableBase(
        vehicle_price=vehicle_price,
        trade_in_credit=credit,
        taxable_doc_fee=round_money(doc_fee),
        aftermarket_products=aftermarket_products,
        rebate_deduction=rebate_deduction,
        taxable_amount=round_money(floor_zero(amount)),
    )


def assemble(
    quote: "TaxQuoteInput", rules: JurisdictionRules, credit: Decimal
) -> TaxableBase:
    """
    Itemized taxable base for a quote after the trade-in credit has been
    computed. ``taxable_amount`` is the amount the tax method starts from.
    """
    return build_taxable_base(
        rules,
        vehicle_price=quote.vehicle_price,
        credit=credit,
        dealer_fees=quote.dealer_fees,
        aftermarket_products=quote.aftermarket_products,
        rebates=quote.rebates,
    )


def lease_cap_cost_base(
    base: TaxableBase, capitalized_acquisition_fee: Decimal = ZERO
) -> Decimal:
    """
    Capitalized cost a lease is taxed on.

    Starts from the assembled taxable amount, so doc fee caps, rebate rules
    and the trade-in credit apply exactly as on a retail deal. Negative
    equity rolled into the lease is never added.
    """
    return round_money(base.taxable_amount + capitalized_acquisition_fee)


def luxury_excess(rules: JurisdictionRules, taxable: Decimal) -> Decimal:
    """
    Portion of the taxable amount above the luxury threshold.

    The threshold is compared with the post-credit taxable amount, so a
    trade-in can take a deal below the threshold.
    """
    if rules.luxury_threshold is None or taxable <= rules.luxury_threshold:
        return ZERO
    return round_money(taxable - rules.luxury_threshold)
