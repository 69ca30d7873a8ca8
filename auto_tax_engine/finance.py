"""
Retail installment finance math.

Handles:
- Amount financed from price, rebates, down payment, trade equity, tax and fees
- Level monthly payment for a simple-interest installment contract
- Amortization schedule with the final payment absorbing rounding
- APR solved back from a quoted payment
- Payment comparison across terms

All math is Decimal. APR is an annual percentage (6.9 means 6.9%).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from auto_tax_engine.errors import FinanceError
from auto_tax_engine.money import ZERO, floor_zero, round_money

APR_PRECISION = Decimal("0.001")
_MAX_APR = Decimal("100")


def _check_term(term_months: int) -> None:
    if isinstance(term_months, bool) or not isinstance(term_months, int):
        raise FinanceError("term_months", "must be a whole number of months")
    if term_months <= 0:
        raise FinanceError("term_months", "must be greater than zero")


def _periodic_rate(apr: Decimal) -> Decimal:
    return apr / Decimal("1200")


def _exact_payment(principal: Decimal, apr: Decimal, term_months: int) -> Decimal:
    if apr == 0:
        return principal / term_months
    r = _periodic_rate(apr)
    growth = (1 + r) ** term_months
    return principal * r * growth / (growth - 1)


def monthly_payment(principal: Decimal, apr: Decimal, term_months: int) -> Decimal:
    """
    Level payment ``P * r(1+r)^n / ((1+r)^n - 1)`` with ``r = apr / 1200``.

    Zero APR divides the principal evenly across the term.
    """
    _check_term(term_months)
    if principal < 0:
        raise FinanceError("principal", "must not be negative")
    if apr < 0:
        raise FinanceError("apr", "must not be negative")
    return round_money(_exact_payment(principal, apr, term_months))


@dataclass(frozen=True)
class AmortizationPayment:
    number: int
    beginning_balance: Decimal
    payment: Decimal
    principal: Decimal
    interest: Decimal
    ending_balance: Decimal


class AmortizationSchedule:
    """
    Lazy, single-pass iterator over the payments of a loan.

    The last row pays off whatever balance remains so the loan ends at
    exactly zero. Once consumed, iterating again yields nothing.
    """

    def __init__(
        self,
        principal: Decimal,
        apr: Decimal,
        term_months: int,
        payment: Optional[Decimal] = None,
    ) -> None:
        _check_term(term_months)
        self._rate = _periodic_rate(apr)
        self._term = term_months
        self._payment = (
            payment if payment is not None else monthly_payment(principal, apr, term_months)
        )
        self._balance = principal
        self._number = 0

    def __iter__(self) -> Iterator[AmortizationPayment]:
        return self

    def __next__(self) -> AmortizationPayment:
        if self._number >= self._term or self._balance <= 0:
            raise StopIteration
        self._number += 1
        beginning = self._balance
        interest = round_money(beginning * self._rate)
        principal = self._payment - interest
        if self._number == self._term or principal >= beginning:
            principal = beginning
        payment = principal + interest
        self._balance = beginning - principal
        return AmortizationPayment(
            number=self._number,
            beginning_balance=beginning,
            payment=payment,
            principal=principal,
            interest=interest,
            ending_balance=self._balance,
        )


@dataclass(frozen=True)
class FinanceInput:
    vehicle_price: Decimal
    apr: Decimal
    term_months: int
    down_payment: Decimal = ZERO
    trade_allowance: Decimal = ZERO
    trade_payoff: Decimal = ZERO
    rebates: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_fees: Decimal = ZERO
    aftermarket: Decimal = ZERO


@dataclass(frozen=True)
class FinanceResult:
    amount_financed: Decimal
    monthly_payment: Decimal
    total_of_payments: Decimal
    total_interest: Decimal  # finance charge
    apr: Decimal
    term_months: int

    def schedule(self) -> AmortizationSchedule:
        return AmortizationSchedule(
            self.amount_financed, self.apr, self.term_months, self.monthly_payment
        )


def amount_financed(data: FinanceInput) -> Decimal:
    """
    Price less rebates, down payment and trade equity, plus tax, fees and
    products. Negative trade equity is rolled into the loan.
    """
    equity = data.trade_allowance - data.trade_payoff
    amount = (
        data.vehicle_price
        - data.rebates
        - data.down_payment
        - equity
        + data.total_tax
        + data.total_fees
        + data.aftermarket
    )
    return round_money(floor_zero(amount))


def compute_finance(data: FinanceInput) -> FinanceResult:
    for name in (
        "vehicle_price",
        "down_payment",
        "trade_allowance",
        "trade_payoff",
        "rebates",
        "total_tax",
        "total_fees",
        "aftermarket",
        "apr",
    ):
        if getattr(data, name) < 0:
            raise FinanceError(name, "must not be negative")
    _check_term(data.term_months)

    financed = amount_financed(data)
    payment = monthly_payment(financed, data.apr, data.term_months)
    rows = list(AmortizationSchedule(financed, data.apr, data.term_months, payment))
    total_of_payments = sum((row.payment for row in rows), ZERO)
    return FinanceResult(
        amount_financed=financed,
        monthly_payment=payment,
        total_of_payments=total_of_payments,
        total_interest=total_of_payments - financed,
        apr=data.apr,
        term_months=data.term_months,
    )


def apr_from_payment(
    principal: Decimal, payment: Decimal, term_months: int, iterations: int = 100
) -> Decimal:
    """Solve for the APR that produces ``payment`` by bisection."""
    _check_term(term_months)
    if principal <= 0:
        raise FinanceError("principal", "must be greater than zero")
    if payment * term_months < principal:
        raise FinanceError("payment", "does not repay the principal at any APR")
    if payment * term_months == principal:
        return ZERO
    if _exact_payment(principal, _MAX_APR, term_months) < payment:
        raise FinanceError("payment", f"implies an APR above {_MAX_APR}%")

    low, high = Decimal("0"), _MAX_APR
    for _ in range(iterations):
        mid = (low + high) / 2
        if _exact_payment(principal, mid, term_months) < payment:
            low = mid
        else:
            high = mid
    return ((low + high) / 2).quantize(APR_PRECISION)


def payment_matrix(
    principal: Decimal, apr: Decimal, terms: Iterable[int] = (36, 48, 60, 72, 84)
) -> dict[int, Decimal]:
    """Monthly payment for each term, for side-by-side comparison."""
    return {term: monthly_payment(principal, apr, term) for term in terms}
