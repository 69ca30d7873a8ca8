"""
Closed-end lease math.

Computes the capitalized cost, residual, depreciation and rent charge that
make up a pre-tax lease payment. Lease tax is layered on by the engine
through the jurisdiction's tax method, never here.

Money factor and APR convert with the industry factor of 2400
(0.00125 MF = 3.0% APR). Residual percent is a percentage of MSRP
(58 means 58%).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from auto_tax_engine.errors import FinanceError
from auto_tax_engine.money import ZERO, round_money

MONEY_FACTOR_CONVERSION = Decimal("2400")


def money_factor_to_apr(money_factor: Decimal) -> Decimal:
    return money_factor * MONEY_FACTOR_CONVERSION


def apr_to_money_factor(apr: Decimal) -> Decimal:
    return apr / MONEY_FACTOR_CONVERSION


@dataclass(frozen=True)
class LeaseInput:
    selling_price: Decimal
    term_months: int
    msrp: Optional[Decimal] = None  # residual base, defaults to selling price
    residual_percent: Optional[Decimal] = None
    residual_value: Optional[Decimal] = None
    money_factor: Optional[Decimal] = None
    apr: Optional[Decimal] = None
    down_payment: Decimal = ZERO
    trade_allowance: Decimal = ZERO
    trade_payoff: Decimal = ZERO
    rebates: Decimal = ZERO
    capitalized_fees: Decimal = ZERO
    aftermarket: Decimal = ZERO
    acquisition_fee: Decimal = ZERO
    acquisition_fee_capitalized: bool = True


@dataclass(frozen=True)
class LeaseResult:
    gross_cap_cost: Decimal
    cap_cost_reduction: Decimal
    adjusted_cap_cost: Decimal
    residual_value: Decimal
    depreciation: Decimal  # monthly
    rent_charge: Decimal  # monthly
    base_payment: Decimal  # pre-tax
    money_factor: Decimal
    equivalent_apr: Decimal
    term_months: int
    due_at_signing_pre_tax: Decimal

    @property
    def total_base_payments(self) -> Decimal:
        return self.base_payment * self.term_months


def _validate(data: LeaseInput) -> None:
    term = data.term_months
    if isinstance(term, bool) or not isinstance(term, int) or term <= 0:
        raise FinanceError("term_months", "must be a whole number greater than zero")
    for name in (
        "selling_price",
        "msrp",
        "residual_percent",
        "residual_value",
        "money_factor",
        "apr",
        "down_payment",
        "trade_allowance",
        "trade_payoff",
        "rebates",
        "capitalized_fees",
        "aftermarket",
        "acquisition_fee",
    ):
        value = getattr(data, name)
        if value is not None and value < 0:
            raise FinanceError(name, "must not be negative")
    if data.residual_percent is None and data.residual_value is None:
        raise FinanceError("residual_percent", "residual percent or value is required")
    if data.residual_percent is not None and data.residual_percent > 100:
        raise FinanceError("residual_percent", "must not exceed 100")
    if data.money_factor is None and data.apr is None:
        raise FinanceError("money_factor", "money factor or APR is required")


def residual_for(data: LeaseInput) -> Decimal:
    if data.residual_value is not None:
        return round_money(data.residual_value)
    base = data.msrp if data.msrp is not None else data.selling_price
    return round_money(base * data.residual_percent / Decimal("100"))


def compute_lease(data: LeaseInput) -> LeaseResult:
    _validate(data)

    equity = data.trade_allowance - data.trade_payoff
    positive_equity = equity if equity > 0 else ZERO
    negative_equity = -equity if equity < 0 else ZERO
    capitalized_acquisition = (
        data.acquisition_fee if data.acquisition_fee_capitalized else ZERO
    )

    gross = round_money(
        data.selling_price
        + data.capitalized_fees
        + data.aftermarket
        + capitalized_acquisition
        + negative_equity
    )
    reduction = round_money(data.down_payment + positive_equity + data.rebates)
    adjusted = gross - reduction
    residual = residual_for(data)
    if adjusted < residual:
        raise FinanceError(
            "cap_cost_reduction",
            f"adjusted capitalized cost {adjusted} is below the residual {residual}",
        )

    money_factor = (
        data.money_factor
        if data.money_factor is not None
        else apr_to_money_factor(data.apr)
    )
    depreciation = (adjusted - residual) / data.term_months
    rent = (adjusted + residual) * money_factor
    base_payment = round_money(depreciation + rent)

    due = data.down_payment + base_payment
    if not data.acquisition_fee_capitalized:
        due += data.acquisition_fee

    return LeaseResult(
        gross_cap_cost=gross,
        cap_cost_reduction=reduction,
        adjusted_cap_cost=adjusted,
        residual_value=residual,
        depreciation=round_money(depreciation),
        rent_charge=round_money(rent),
        base_payment=base_payment,
        money_factor=money_factor,
        equivalent_apr=money_factor_to_apr(money_factor),
        term_months=data.term_months,
        due_at_signing_pre_tax=round_money(due),
    )
