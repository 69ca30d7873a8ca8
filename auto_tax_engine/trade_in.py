"""
Trade-in credit calculation.

The credit is what a jurisdiction lets the dealer subtract from the taxable
base for a vehicle traded in on the deal. It is always between zero and
the base price: negative equity can never raise the taxable amount.
"""

from __future__ import annotations

from decimal import Decimal

from auto_tax_engine.errors import InvalidInput
from auto_tax_engine.money import ZERO, round_money
from auto_tax_engine.rules import JurisdictionRules, TradeInPolicy


def trade_equity(trade_allowance: Decimal, trade_payoff: Decimal) -> Decimal:
    """Allowance less payoff. Negative when the customer owes more than the car is worth."""
    return trade_allowance - trade_payoff


def compute_credit(
    rules: JurisdictionRules,
    trade_allowance: Decimal,
    trade_payoff: Decimal,
    base_price: Decimal,
) -> Decimal:
    for name, value in (
        ("trade_allowance", trade_allowance),
        ("trade_payoff", trade_payoff),
        ("base_price", base_price),
    ):
        if value < 0:
            raise InvalidInput(name, "must not be negative")

    credit_rule = rules.trade_in_credit
    policy = credit_rule.policy

    if policy is TradeInPolicy.NONE:
        credit = ZERO
    elif policy is TradeInPolicy.FULL:
        if credit_rule.nets_payoff:
            credit = max(trade_equity(trade_allowance, trade_payoff), ZERO)
        else:
            credit = trade_allowance
    elif policy is TradeInPolicy.TAX_ON_DIFFERENCE:
        equity = trade_equity(trade_allowance, trade_payoff)
        credit = equity if equity > 0 else ZERO
    elif policy is TradeInPolicy.PARTIAL:
        # Cap presence is enforced when the rules are loaded
        credit = min(trade_allowance, credit_rule.cap)
    else:
        raise ValueError(f"Unhandled trade-in policy: {policy}")

    return round_money(min(credit, base_price))
