"""Tests for trade-in credit policies."""

from decimal import Decimal
from typing import Optional

import pytest

from auto_tax_engine.errors import InvalidInput
from auto_tax_engine.rules import (
    JurisdictionRules,
    TaxMethod,
    TradeInCredit,
    TradeInPolicy,
)
from auto_tax_engine.trade_in import compute_credit, trade_equity


def _rules(
    policy: TradeInPolicy,
    cap: Optional[str] = None,
    nets_payoff: bool = False,
) -> JurisdictionRules:
    return JurisdictionRules(
        state_code="XX",
        state_name="Test",
        base_rate=Decimal("0.06"),
        has_local_tax=False,
        trade_in_credit=TradeInCredit(
            policy, Decimal(cap) if cap is not None else None, nets_payoff
        ),
        doc_fee_taxable=False,
        max_doc_fee=None,
        luxury_threshold=None,
        luxury_rate=None,
        tax_method=TaxMethod.TAX_ON_PRICE,
    )


def _credit(rules: JurisdictionRules, allowance: str, payoff: str, base: str) -> Decimal:
    return compute_credit(rules, Decimal(allowance), Decimal(payoff), Decimal(base))


# ── Tax on difference ────────────────────────────────────────────────


def test_difference_uses_equity():
    rules = _rules(TradeInPolicy.TAX_ON_DIFFERENCE)
    assert _credit(rules, "15000", "5000", "50000") == Decimal("10000.00")


def test_negative_equity_gives_zero_credit():
    rules = _rules(TradeInPolicy.TAX_ON_DIFFERENCE)
    assert _credit(rules, "15000", "20000", "50000") == Decimal("0.00")


def test_difference_capped_at_base_price():
    rules = _rules(TradeInPolicy.TAX_ON_DIFFERENCE)
    assert _credit(rules, "30000", "0", "20000") == Decimal("20000.00")


# ── Full credit ──────────────────────────────────────────────────────


def test_full_ignores_payoff_when_not_netting():
    rules = _rules(TradeInPolicy.FULL, nets_payoff=False)
    assert _credit(rules, "15000", "5000", "50000") == Decimal("15000.00")


def test_full_nets_payoff_when_flagged():
    rules = _rules(TradeInPolicy.FULL, nets_payoff=True)
    assert _credit(rules, "15000", "5000", "50000") == Decimal("10000.00")


def test_full_netting_never_goes_negative():
    rules = _rules(TradeInPolicy.FULL, nets_payoff=True)
    assert _credit(rules, "15000", "20000", "50000") == Decimal("0.00")


def test_full_capped_at_base_price():
    rules = _rules(TradeInPolicy.FULL)
    assert _credit(rules, "60000", "0", "50000") == Decimal("50000.00")


# ── Partial and none ─────────────────────────────────────────────────


@pytest.mark.parametrize(
    "allowance,base,expected",
    [
        ("15000", "50000", "10000.00"),
        ("8000", "50000", "8000.00"),
        ("15000", "5000", "5000.00"),
    ],
)
def test_partial_credit_capped(allowance: str, base: str, expected: str):
    rules = _rules(TradeInPolicy.PARTIAL, cap="10000")
    assert _credit(rules, allowance, "0", base) == Decimal(expected)


def test_no_credit_policy():
    rules = _rules(TradeInPolicy.NONE)
    assert _credit(rules, "15000", "0", "50000") == Decimal("0.00")


# ── Bounds ───────────────────────────────────────────────────────────


@pytest.mark.parametrize("policy", list(TradeInPolicy))
@pytest.mark.parametrize(
    "allowance,payoff,base",
    [("0", "0", "0"), ("15000", "20000", "30000"), ("40000", "1000", "25000")],
)
def test_credit_always_within_zero_and_base(
    policy: TradeInPolicy, allowance: str, payoff: str, base: str
):
    cap = "10000" if policy is TradeInPolicy.PARTIAL else None
    for nets in (False, True):
        credit = _credit(_rules(policy, cap, nets), allowance, payoff, base)
        assert Decimal("0") <= credit <= Decimal(base)


def test_negative_allowance_rejected():
    with pytest.raises(InvalidInput):
        _credit(_rules(TradeInPolicy.FULL), "-1", "0", "50000")


def test_trade_equity():
    assert trade_equity(Decimal("15000"), Decimal("20000")) == Decimal("-5000")
