"""
Deal tax engine.

Handles:
- Retail and lease tax quotes for all 50 states plus DC
- Local rate resolution with graceful degradation
- Trade-in credit, doc fee, rebate and luxury surcharge rules
- Use tax reciprocity for tax already paid to another state
- Statutory caps on the total one-time tax
- Finance and lease payment math with tax layered in
- Batch quoting with per-deal errors
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from auto_tax_engine import finance as finance_math
from auto_tax_engine import lease as lease_math
from auto_tax_engine import methods
from auto_tax_engine.errors import InvalidInput, TaxEngineError
from auto_tax_engine.finance import FinanceInput, FinanceResult
from auto_tax_engine.lease import LeaseInput, LeaseResult
from auto_tax_engine.local_rates import LocalRateResolver, normalize_zip
from auto_tax_engine.methods import LeaseContext, TaxBreakdown, TaxTiming
from auto_tax_engine.money import ZERO, format_money, format_rate, to_decimal
from auto_tax_engine.rules import (
    DealType,
    JurisdictionRules,
    RuleStore,
    RuleStoreHandle,
    TaxMethod,
)
from auto_tax_engine.taxable import (
    TaxableBase,
    assemble,
    lease_cap_cost_base,
    luxury_excess,
)
from auto_tax_engine.trade_in import compute_credit

logger = logging.getLogger(__name__)

_MONEY_FIELDS = (
    "vehicle_price",
    "trade_allowance",
    "trade_payoff",
    "dealer_fees",
    "aftermarket_products",
    "rebates",
    "down_payment",
    "acquisition_fee",
    "origin_tax_paid",
)
_OPTIONAL_DECIMAL_FIELDS = (
    "msrp",
    "apr",
    "money_factor",
    "residual_percent",
    "residual_value",
    "local_rate",
)


@dataclass(frozen=True)
class TaxQuoteInput:
    """A single deal to quote. Validated on construction."""

    deal_type: DealType
    vehicle_price: Decimal
    state_code: str
    trade_allowance: Decimal = ZERO
    trade_payoff: Decimal = ZERO
    dealer_fees: Decimal = ZERO
    aftermarket_products: Decimal = ZERO
    rebates: Decimal = ZERO
    zip_code: Optional[str] = None
    county: Optional[str] = None
    local_rate: Optional[Decimal] = None  # pre-resolved combined local rate
    # Finance (retail) and lease structure
    term_months: Optional[int] = None
    apr: Optional[Decimal] = None
    money_factor: Optional[Decimal] = None
    residual_percent: Optional[Decimal] = None
    residual_value: Optional[Decimal] = None
    msrp: Optional[Decimal] = None
    down_payment: Decimal = ZERO
    acquisition_fee: Decimal = ZERO
    # Use tax already paid to another state
    origin_tax_paid: Decimal = ZERO
    deal_id: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.deal_type, DealType):
            raise InvalidInput("deal_type", "must be RETAIL or LEASE")

        code = self.state_code.strip().upper() if isinstance(self.state_code, str) else ""
        if len(code) != 2 or not code.isalpha():
            raise InvalidInput("state_code", f"expected 2 letters, got {self.state_code!r}")
        object.__setattr__(self, "state_code", code)

        for name in _MONEY_FIELDS:
            self._check_decimal(name, getattr(self, name))
        for name in _OPTIONAL_DECIMAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                self._check_decimal(name, value)

        if self.local_rate is not None and self.local_rate > 1:
            raise InvalidInput("local_rate", "must be a fraction in [0, 1]")

        if self.zip_code:
            normalize_zip(self.zip_code)

        if self.term_months is not None and (
            isinstance(self.term_months, bool)
            or not isinstance(self.term_months, int)
            or self.term_months <= 0
        ):
            raise InvalidInput("term_months", "must be a whole number greater than zero")

        if self.deal_type is DealType.LEASE:
            if self.term_months is None:
                raise InvalidInput("term_months", "is required for a lease")
            if self.money_factor is None and self.apr is None:
                raise InvalidInput("money_factor", "money factor or APR is required for a lease")
            if self.residual_percent is None and self.residual_value is None:
                raise InvalidInput(
                    "residual_percent", "residual percent or value is required for a lease"
                )
        elif (self.apr is None) != (self.term_months is None):
            raise InvalidInput("apr", "apr and term_months must be given together")

    @staticmethod
    def _check_decimal(name: str, value: Any) -> None:
        if not isinstance(value, Decimal):
            raise InvalidInput(name, f"must be a Decimal, not {type(value).__name__}")
        if not value.is_finite():
            raise InvalidInput(name, "must be finite")
        if value < 0:
            raise InvalidInput(name, "must not be negative")

    @property
    def is_financed(self) -> bool:
        return self.deal_type is DealType.RETAIL and self.apr is not None

    @classmethod
    def from_dict(cls, data: dict) -> "TaxQuoteInput":
        """Build a quote from loosely typed data such as a CSV row or JSON body."""

        def money(key: str) -> Decimal:
            value = data.get(key)
            if value is None or value == "":
                return ZERO
            return _coerce(key, value)

        def optional(key: str) -> Optional[Decimal]:
            value = data.get(key)
            if value is None or value == "":
                return None
            return _coerce(key, value)

        deal_type = data.get("deal_type", DealType.RETAIL)
        if not isinstance(deal_type, DealType):
            try:
                deal_type = DealType(str(deal_type).strip().lower())
            except ValueError as exc:
                raise InvalidInput("deal_type", f"unknown deal type {deal_type!r}") from exc

        term = data.get("term_months")
        if term is None or term == "":
            term = None
        elif not isinstance(term, int):
            try:
                term = int(str(term).strip())
            except ValueError as exc:
                raise InvalidInput("term_months", f"not a whole number: {term!r}") from exc

        if "vehicle_price" not in data or data["vehicle_price"] in (None, ""):
            raise InvalidInput("vehicle_price", "is required")

        return cls(
            deal_type=deal_type,
            vehicle_price=_coerce("vehicle_price", data["vehicle_price"]),
            state_code=str(data.get("state_code", data.get("state", ""))),
            trade_allowance=money("trade_allowance"),
            trade_payoff=money("trade_payoff"),
            dealer_fees=money("dealer_fees"),
            aftermarket_products=money("aftermarket_products"),
            rebates=money("rebates"),
            zip_code=(str(data["zip_code"]).strip() or None) if data.get("zip_code") else None,
            county=data.get("county") or None,
            local_rate=optional("local_rate"),
            term_months=term,
            apr=optional("apr"),
            money_factor=optional("money_factor"),
            residual_percent=optional("residual_percent"),
            residual_value=optional("residual_value"),
            msrp=optional("msrp"),
            down_payment=money("down_payment"),
            acquisition_fee=money("acquisition_fee"),
            origin_tax_paid=money("origin_tax_paid"),
            deal_id=str(data.get("deal_id", "")),
        )


def _coerce(key: str, value: Any) -> Decimal:
    try:
        return to_decimal(value, key)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(key, str(exc)) from exc


@dataclass(frozen=True)
class TaxQuoteResult:
    """Full tax breakdown for one deal, sufficient to reproduce the figures."""

    deal_id: str
    state_code: str
    deal_type: DealType
    method_used: TaxMethod
    tax_timing: TaxTiming
    taxable_amount: Decimal
    trade_in_credit: Decimal
    state_rate: Decimal
    local_rate: Decimal
    local_rate_source: str
    local_rate_unknown: bool
    state_tax: Decimal
    local_tax: Decimal
    luxury_tax: Decimal
    reciprocity_credit: Decimal
    total_tax: Decimal
    upfront_tax: Decimal
    per_period_tax: Decimal
    periods: int
    taxable_base: TaxableBase
    rule_version: str
    amount_financed: Optional[Decimal] = None
    monthly_payment: Optional[Decimal] = None
    base_payment: Optional[Decimal] = None
    total_due_at_signing: Optional[Decimal] = None
    finance: Optional[FinanceResult] = None
    lease: Optional[LeaseResult] = None
    tax_cap_applied: bool = False
    warnings: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def combined_rate(self) -> Decimal:
        """State rate plus the resolved local rate."""
        return self.state_rate + self.local_rate


@dataclass(frozen=True)
class BatchError:
    index: int
    deal_id: str
    code: str
    message: str


@dataclass
class BatchResult:
    """Aggregated result for a batch of deals."""

    results: list[TaxQuoteResult]
    errors: list[BatchError]
    total_tax: Decimal
    deal_count: int
    state_breakdown: dict[str, Decimal] = field(default_factory=dict)


def _reciprocity_credit(
    rules: JurisdictionRules, breakdown: TaxBreakdown, origin_tax_paid: Decimal
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Credit tax already paid to another state against one-time tax.

    Returns (credit, state_tax, local_tax) with the credit applied to state
    tax first and then local tax. Recurring lease tax is never credited.
    """
    state_tax, local_tax = breakdown.state_tax, breakdown.local_tax
    if (
        not rules.reciprocity
        or origin_tax_paid <= 0
        or breakdown.timing is not TaxTiming.ONE_TIME
    ):
        return ZERO, state_tax, local_tax
    credit = min(origin_tax_paid, state_tax + local_tax)
    against_state = min(credit, state_tax)
    return credit, state_tax - against_state, local_tax - (credit - against_state)


def _apply_tax_cap(
    cap: Optional[Decimal], state_tax: Decimal, local_tax: Decimal, luxury_tax: Decimal
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Clamp one-time tax to a statutory ceiling.

    The excess comes off the luxury surcharge first, then local tax, then
    state tax, so the components still add up to the total.
    """
    if cap is None:
        return state_tax, local_tax, luxury_tax
    excess = state_tax + local_tax + luxury_tax - cap
    if excess <= 0:
        return state_tax, local_tax, luxury_tax
    parts = [luxury_tax, local_tax, state_tax]
    for i, part in enumerate(parts):
        taken = min(part, excess)
        parts[i] = part - taken
        excess -= taken
    luxury_tax, local_tax, state_tax = parts
    return state_tax, local_tax, luxury_tax


class TaxEngine:
    """
    Computes tax quotes against an injected rule store.

    Pass a ``RuleStoreHandle`` instead of a store to pick up newly published
    rules without rebuilding the engine.
    """

    def __init__(
        self,
        store: Union[RuleStore, RuleStoreHandle],
        resolver: Optional[LocalRateResolver] = None,
    ) -> None:
        self._store = store
        self.resolver = resolver or LocalRateResolver.from_file()

    @property
    def store(self) -> RuleStore:
        if isinstance(self._store, RuleStoreHandle):
            return self._store.current
        return self._store

    def list_supported_jurisdictions(self) -> frozenset[str]:
        return self.store.supported_jurisdictions()

    def compute_finance(self, data: FinanceInput) -> FinanceResult:
        return finance_math.compute_finance(data)

    def compute_lease(self, data: LeaseInput) -> LeaseResult:
        return lease_math.compute_lease(data)

    def _lease_input(self, quote: TaxQuoteInput) -> LeaseInput:
        return LeaseInput(
            selling_price=quote.vehicle_price,
            term_months=quote.term_months,
            msrp=quote.msrp,
            residual_percent=quote.residual_percent,
            residual_value=quote.residual_value,
            money_factor=quote.money_factor,
            apr=quote.apr,
            down_payment=quote.down_payment,
            trade_allowance=quote.trade_allowance,
            trade_payoff=quote.trade_payoff,
            rebates=quote.rebates,
            capitalized_fees=quote.dealer_fees,
            aftermarket=quote.aftermarket_products,
            acquisition_fee=quote.acquisition_fee,
        )

    def compute_tax(self, quote: TaxQuoteInput) -> TaxQuoteResult:
        """
        Quote tax for a single deal.

        Raises a TaxEngineError subclass when the deal cannot be quoted. A
        missing local rate is not an error: it is reported in ``warnings``
        and the quote carries state tax only.
        """
        store = self.store
        rules = store.lookup(quote.state_code)
        method = rules.method_for(quote.deal_type)
        warnings: list[str] = []
        notes: list[str] = []

        resolution = self.resolver.resolve(rules, quote.zip_code, quote.local_rate)
        if resolution.warning:
            warnings.append(resolution.warning)
        local_rate = resolution.rate if methods.carries_local_tax(method) else ZERO
        if resolution.rate > 0 and local_rate == 0:
            notes.append(f"{method.name} replaces local tax; local rate ignored")

        credit = compute_credit(
            rules, quote.trade_allowance, quote.trade_payoff, quote.vehicle_price
        )
        base = assemble(quote, rules, credit)
        notes.append(
            f"Trade-in credit {format_money(credit)} "
            f"({rules.trade_in_credit.policy.name})"
        )
        if quote.dealer_fees > 0 and base.taxable_doc_fee < quote.dealer_fees:
            notes.append(
                f"Doc fee taxed on {format_money(base.taxable_doc_fee)} "
                f"of {format_money(quote.dealer_fees)}"
            )
        if base.rebate_deduction > 0:
            notes.append(f"Rebates {format_money(base.rebate_deduction)} not taxed")

        lease_result: Optional[LeaseResult] = None
        lease_context: Optional[LeaseContext] = None
        if quote.deal_type is DealType.LEASE:
            lease_result = lease_math.compute_lease(self._lease_input(quote))
            lease_context = LeaseContext(
                base_payment=lease_result.base_payment,
                term_months=lease_result.term_months,
                cap_cost_base=lease_cap_cost_base(base, quote.acquisition_fee),
                cap_cost_reduction=lease_result.cap_cost_reduction,
            )

        excess = ZERO
        luxury_rate = ZERO
        if methods.carries_luxury_surcharge(method) and rules.luxury_rate is not None:
            excess = luxury_excess(
                rules, methods.base_for(method, base.taxable_amount, lease_context)
            )
            luxury_rate = rules.luxury_rate
            if excess > 0:
                notes.append(
                    f"Luxury surcharge {format_rate(luxury_rate)} on "
                    f"{format_money(excess)} above {format_money(rules.luxury_threshold)}"
                )

        breakdown = methods.compute(
            method,
            quote.deal_type,
            base.taxable_amount,
            rules.base_rate,
            local_rate,
            lease_context=lease_context,
            luxury_excess=excess,
            luxury_rate=luxury_rate,
        )
        notes.append(
            f"{method.name} on {format_money(breakdown.taxable_base)} at state "
            f"{format_rate(rules.base_rate)} + local {format_rate(local_rate)}"
        )

        credit_applied, state_tax, local_tax = _reciprocity_credit(
            rules, breakdown, quote.origin_tax_paid
        )
        if credit_applied > 0:
            notes.append(
                f"Reciprocity credit {format_money(credit_applied)} for tax paid elsewhere"
            )
        elif quote.origin_tax_paid > 0:
            warnings.append(
                f"{rules.state_code} does not credit tax paid to another state"
                if not rules.reciprocity
                else "Tax paid elsewhere cannot be credited against recurring lease tax"
            )

        if breakdown.timing is TaxTiming.RECURRING:
            periods = breakdown.periods
            per_period = breakdown.amount
            state_total = state_tax * periods
            local_total = local_tax * periods
            luxury_total = breakdown.luxury_tax * periods
            upfront = ZERO
            tax_cap_applied = False
        else:
            periods = 1
            per_period = ZERO
            state_total, local_total, luxury_total = _apply_tax_cap(
                rules.tax_cap, state_tax, local_tax, breakdown.luxury_tax
            )
            tax_cap_applied = (
                state_total + local_total + luxury_total
                < state_tax + local_tax + breakdown.luxury_tax
            )
            if tax_cap_applied:
                notes.append(f"Tax capped at {format_money(rules.tax_cap)}")
            upfront = state_total + local_total + luxury_total
        total_tax = state_total + local_total + luxury_total

        finance_result: Optional[FinanceResult] = None
        amount_financed = monthly = base_payment = due_at_signing = None
        if quote.is_financed:
            finance_result = finance_math.compute_finance(
                FinanceInput(
                    vehicle_price=quote.vehicle_price,
                    apr=quote.apr,
                    term_months=quote.term_months,
                    down_payment=quote.down_payment,
                    trade_allowance=quote.trade_allowance,
                    trade_payoff=quote.trade_payoff,
                    rebates=quote.rebates,
                    total_tax=total_tax,
                    total_fees=quote.dealer_fees,
                    aftermarket=quote.aftermarket_products,
                )
            )
            amount_financed = finance_result.amount_financed
            monthly = finance_result.monthly_payment
        elif lease_result is not None:
            base_payment = lease_result.base_payment
            monthly = base_payment + per_period
            due_at_signing = lease_result.due_at_signing_pre_tax + upfront + per_period

        result = TaxQuoteResult(
            deal_id=quote.deal_id,
            state_code=rules.state_code,
            deal_type=quote.deal_type,
            method_used=method,
            tax_timing=breakdown.timing,
            taxable_amount=breakdown.taxable_base,
            trade_in_credit=credit,
            state_rate=rules.base_rate,
            local_rate=local_rate,
            local_rate_source=resolution.source,
            local_rate_unknown=resolution.local_rate_unknown,
            state_tax=state_total,
            local_tax=local_total,
            luxury_tax=luxury_total,
            reciprocity_credit=credit_applied,
            total_tax=total_tax,
            upfront_tax=upfront,
            per_period_tax=per_period,
            periods=periods,
            taxable_base=base,
            rule_version=store.version,
            amount_financed=amount_financed,
            monthly_payment=monthly,
            base_payment=base_payment,
            total_due_at_signing=due_at_signing,
            finance=finance_result,
            lease=lease_result,
            tax_cap_applied=tax_cap_applied,
            warnings=tuple(warnings),
            notes=tuple(notes),
        )
        logger.debug(
            "Quoted %s %s deal %s: %s total tax via %s",
            rules.state_code,
            quote.deal_type.value,
            quote.deal_id or "-",
            total_tax,
            method.name,
        )
        return result

    def compute_batch(self, quotes: Iterable[TaxQuoteInput]) -> BatchResult:
        """
        Quote many deals. A deal that fails is recorded in ``errors`` with
        its error code; it is never counted as zero tax.
        """
        results: list[TaxQuoteResult] = []
        errors: list[BatchError] = []
        total_tax = ZERO
        state_breakdown: dict[str, Decimal] = {}
        count = 0

        for index, quote in enumerate(quotes):
            count += 1
            try:
                result = self.compute_tax(quote)
            except TaxEngineError as exc:
                logger.debug("Deal %s rejected: %s", quote.deal_id or index, exc.message)
                errors.append(BatchError(index, quote.deal_id, exc.code, exc.message))
                continue
            results.append(result)
            total_tax += result.total_tax
            state_breakdown[result.state_code] = (
                state_breakdown.get(result.state_code, ZERO) + result.total_tax
            )

        return BatchResult(
            results=results,
            errors=errors,
            total_tax=total_tax,
            deal_count=count,
            state_breakdown=state_breakdown,
        )
