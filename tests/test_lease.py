"""Tests for closed-end lease math."""

import dataclasses
from decimal import Decimal

import pytest

from auto_tax_engine.errors import FinanceError
from auto_tax_engine.lease import (
    LeaseInput,
    apr_to_money_factor,
    compute_lease,
    money_factor_to_apr,
)


@pytest.fixture
def lease() -> LeaseInput:
    return LeaseInput(
        selling_price=Decimal("42000.00"),
        msrp=Decimal("45000.00"),
        residual_percent=Decimal("58"),
        money_factor=Decimal("0.00125"),
        term_months=36,
        down_payment=Decimal("2000.00"),
    )


# ── Payment structure ────────────────────────────────────────────────


def test_base_payment(lease: LeaseInput):
    result = compute_lease(lease)
    assert result.gross_cap_cost == Decimal("42000.00")
    assert result.cap_cost_reduction == Decimal("2000.00")
    assert result.adjusted_cap_cost == Decimal("40000.00")
    assert result.residual_value == Decimal("26100.00")
    assert result.depreciation == Decimal("386.11")
    assert result.rent_charge == Decimal("82.63")
    assert result.base_payment == Decimal("468.74")
    assert result.due_at_signing_pre_tax == Decimal("2468.74")
    assert result.total_base_payments == Decimal("16874.64")


def test_equivalent_apr(lease: LeaseInput):
    assert compute_lease(lease).equivalent_apr == Decimal("3")


def test_apr_instead_of_money_factor(lease: LeaseInput):
    by_apr = dataclasses.replace(lease, money_factor=None, apr=Decimal("3"))
    assert compute_lease(by_apr).base_payment == compute_lease(lease).base_payment


def test_residual_defaults_to_selling_price(lease: LeaseInput):
    no_msrp = dataclasses.replace(lease, msrp=None)
    assert compute_lease(no_msrp).residual_value == Decimal("24360.00")


def test_explicit_residual_value(lease: LeaseInput):
    fixed = dataclasses.replace(
        lease, residual_percent=None, residual_value=Decimal("25000")
    )
    assert compute_lease(fixed).residual_value == Decimal("25000.00")


# ── Cap cost adjustments ─────────────────────────────────────────────


def test_capitalized_acquisition_fee(lease: LeaseInput):
    result = compute_lease(dataclasses.replace(lease, acquisition_fee=Decimal("695")))
    assert result.gross_cap_cost == Decimal("42695.00")
    assert result.due_at_signing_pre_tax == Decimal("2000.00") + result.base_payment


def test_acquisition_fee_paid_upfront(lease: LeaseInput):
    result = compute_lease(
        dataclasses.replace(
            lease,
            acquisition_fee=Decimal("695"),
            acquisition_fee_capitalized=False,
        )
    )
    assert result.gross_cap_cost == Decimal("42000.00")
    assert result.due_at_signing_pre_tax == Decimal("3163.74")


def test_positive_equity_reduces_cap_cost(lease: LeaseInput):
    result = compute_lease(
        dataclasses.replace(
            lease, trade_allowance=Decimal("8000"), trade_payoff=Decimal("5000")
        )
    )
    assert result.cap_cost_reduction == Decimal("5000.00")
    assert result.adjusted_cap_cost == Decimal("37000.00")


def test_negative_equity_capitalized(lease: LeaseInput):
    result = compute_lease(
        dataclasses.replace(
            lease, trade_allowance=Decimal("5000"), trade_payoff=Decimal("8000")
        )
    )
    assert result.gross_cap_cost == Decimal("45000.00")
    assert result.cap_cost_reduction == Decimal("2000.00")


# ── Validation ───────────────────────────────────────────────────────


def test_residual_required(lease: LeaseInput):
    with pytest.raises(FinanceError):
        compute_lease(dataclasses.replace(lease, residual_percent=None))


def test_rate_required(lease: LeaseInput):
    with pytest.raises(FinanceError):
        compute_lease(dataclasses.replace(lease, money_factor=None))


def test_bad_term(lease: LeaseInput):
    with pytest.raises(FinanceError):
        compute_lease(dataclasses.replace(lease, term_months=0))


def test_cap_cost_below_residual(lease: LeaseInput):
    with pytest.raises(FinanceError):
        compute_lease(dataclasses.replace(lease, down_payment=Decimal("20000")))


# ── Conversions ──────────────────────────────────────────────────────


def test_money_factor_conversions():
    assert money_factor_to_apr(Decimal("0.0025")) == Decimal("6")
    assert apr_to_money_factor(Decimal("6")) == Decimal("0.0025")
