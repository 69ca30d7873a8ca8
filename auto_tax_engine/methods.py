"""
Tax method strategies.

One strategy per ``TaxMethod``. The dispatch table below must cover every
member of the enum; a missing entry fails at import rather than at quote
time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from auto_tax_engine.errors import UnsupportedMethodForDealType
from auto_tax_engine.money import ZERO, round_money
from auto_tax_engine.rules import (
    LEASE_ONLY_METHODS,
    SPECIAL_METHODS,
    DealType,
    TaxMethod,
)


class TaxTiming(Enum):
    ONE_TIME = "one_time"  # collected once, at signing or titling
    RECURRING = "recurring"  # collected with every lease payment


@dataclass(frozen=True)
class LeaseContext:
    """Lease figures a lease tax method needs, computed before tax."""

    base_payment: Decimal
    term_months: int
    cap_cost_base: Decimal  # gross capitalized cost less trade-in credit
    cap_cost_reduction: Decimal


@dataclass(frozen=True)
class TaxBreakdown:
    method: TaxMethod
    timing: TaxTiming
    taxable_base: Decimal
    state_tax: Decimal
    local_tax: Decimal
    luxury_tax: Decimal = ZERO
    periods: int = 1

    @property
    def amount(self) -> Decimal:
        """Tax per collection: the whole tax if one-time, per payment if recurring."""
        return self.state_tax + self.local_tax + self.luxury_tax

    @property
    def total_tax(self) -> Decimal:
        if self.timing is TaxTiming.RECURRING:
            return self.amount * self.periods
        return self.amount


@dataclass(frozen=True)
class _MethodRequest:
    method: TaxMethod
    deal_type: DealType
    taxable: Decimal
    state_rate: Decimal
    local_rate: Decimal
    lease_context: Optional[LeaseContext]
    luxury_excess: Decimal
    luxury_rate: Decimal


def _one_time(req: _MethodRequest, base: Decimal, luxury: bool) -> TaxBreakdown:
    luxury_tax = round_money(req.luxury_excess * req.luxury_rate) if luxury else ZERO
    return TaxBreakdown(
        method=req.method,
        timing=TaxTiming.ONE_TIME,
        taxable_base=base,
        state_tax=round_money(base * req.state_rate),
        local_tax=round_money(base * req.local_rate),
        luxury_tax=luxury_tax,
    )


def _tax_on_price(req: _MethodRequest) -> TaxBreakdown:
    return _one_time(req, req.taxable, luxury=True)


def _tax_on_payment(req: _MethodRequest) -> TaxBreakdown:
    ctx = req.lease_context
    base = ctx.base_payment
    return TaxBreakdown(
        method=req.method,
        timing=TaxTiming.RECURRING,
        taxable_base=base,
        state_tax=round_money(base * req.state_rate),
        local_tax=round_money(base * req.local_rate),
        periods=ctx.term_months,
    )


def _tax_on_cap_cost(req: _MethodRequest) -> TaxBreakdown:
    return _one_time(req, req.lease_context.cap_cost_base, luxury=True)


def _tax_on_cap_reduction(req: _MethodRequest) -> TaxBreakdown:
    return _one_time(req, req.lease_context.cap_cost_reduction, luxury=False)


def _special_scheme(req: _MethodRequest) -> TaxBreakdown:
    # TAVT, HUT and privilege tax replace sales tax entirely: no local stacking.
    # A lease is charged on its capitalized cost.
    base = req.taxable
    if req.deal_type is DealType.LEASE and req.lease_context is not None:
        base = req.lease_context.cap_cost_base
    return TaxBreakdown(
        method=req.method,
        timing=TaxTiming.ONE_TIME,
        taxable_base=base,
        state_tax=round_money(base * req.state_rate),
        local_tax=ZERO,
    )


_STRATEGIES: dict[TaxMethod, Callable[[_MethodRequest], TaxBreakdown]] = {
    TaxMethod.TAX_ON_PRICE: _tax_on_price,
    TaxMethod.TAX_ON_PAYMENT: _tax_on_payment,
    TaxMethod.TAX_ON_CAP_COST: _tax_on_cap_cost,
    TaxMethod.TAX_ON_CAP_REDUCTION: _tax_on_cap_reduction,
    TaxMethod.SPECIAL_TAVT: _special_scheme,
    TaxMethod.SPECIAL_HUT: _special_scheme,
    TaxMethod.SPECIAL_PRIVILEGE: _special_scheme,
}

_unhandled = set(TaxMethod) - set(_STRATEGIES)
if _unhandled:
    raise RuntimeError(
        "No tax strategy for: " + ", ".join(sorted(m.name for m in _unhandled))
    )


def _check_applicable(
    method: TaxMethod, deal_type: DealType, lease_context: Optional[LeaseContext]
) -> None:
    if method not in LEASE_ONLY_METHODS:
        return
    if deal_type is not DealType.LEASE:
        raise UnsupportedMethodForDealType(
            method.name, deal_type.value, "method applies to leases only"
        )
    if lease_context is None:
        raise UnsupportedMethodForDealType(
            method.name, deal_type.value, "no lease figures were supplied"
        )


def base_for(
    method: TaxMethod,
    taxable: Decimal,
    lease_context: Optional[LeaseContext] = None,
) -> Decimal:
    """
    The amount a method applies its rates to. ``lease_context`` is only
    given for lease deals.
    """
    if method is TaxMethod.TAX_ON_PAYMENT and lease_context is not None:
        return lease_context.base_payment
    if (
        method is TaxMethod.TAX_ON_CAP_COST or method in SPECIAL_METHODS
    ) and lease_context is not None:
        return lease_context.cap_cost_base
    if method is TaxMethod.TAX_ON_CAP_REDUCTION and lease_context is not None:
        return lease_context.cap_cost_reduction
    return taxable


def carries_luxury_surcharge(method: TaxMethod) -> bool:
    return method in (TaxMethod.TAX_ON_PRICE, TaxMethod.TAX_ON_CAP_COST)


def carries_local_tax(method: TaxMethod) -> bool:
    return method not in SPECIAL_METHODS


def compute(
    method: TaxMethod,
    deal_type: DealType,
    taxable: Decimal,
    state_rate: Decimal,
    local_rate: Decimal,
    lease_context: Optional[LeaseContext] = None,
    luxury_excess: Decimal = ZERO,
    luxury_rate: Decimal = ZERO,
) -> TaxBreakdown:
    """
    Apply a tax method to a deal.

    Raises UnsupportedMethodForDealType for a lease-only method on a retail
    deal, or a lease method without lease figures. There is no fallback to
    another method.
    """
    _check_applicable(method, deal_type, lease_context)
    request = _MethodRequest(
        method=method,
        deal_type=deal_type,
        taxable=taxable,
        state_rate=state_rate,
        local_rate=local_rate,
        lease_context=lease_context,
        luxury_excess=luxury_excess,
        luxury_rate=luxury_rate,
    )
    return _STRATEGIES[method](request)
