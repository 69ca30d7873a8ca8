"""
Jurisdiction rule store.

Holds the tax rules for all 50 US states plus DC:
- Base state rate and whether local (county/city) tax stacks on top
- Trade-in credit policy
- Doc fee taxability and statutory cap
- Luxury surcharge threshold and rate
- Tax method for retail and lease deals
- Rebate taxability and use-tax reciprocity
- Statutory cap on the total one-time tax

Rules are loaded once from a versioned CSV file and are immutable after
load. A new rule file is rolled out by loading a fresh store and publishing
it through a ``RuleStoreHandle``; a live store is never mutated.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

import pandas as pd

from auto_tax_engine.errors import RuleDataError, UnknownJurisdiction

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_RULES_PATH = DATA_DIR / "jurisdictions_2024.1.csv"

EXPECTED_JURISDICTIONS: frozenset[str] = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
        "DC",
    }
)


class DealType(Enum):
    RETAIL = "retail"  # cash or financed purchase
    LEASE = "lease"


class TaxMethod(Enum):
    """How a jurisdiction turns a deal into a tax amount."""

    TAX_ON_PRICE = "tax_on_price"
    TAX_ON_PAYMENT = "tax_on_payment"
    TAX_ON_CAP_COST = "tax_on_cap_cost"
    TAX_ON_CAP_REDUCTION = "tax_on_cap_reduction"
    SPECIAL_TAVT = "special_tavt"  # Georgia title ad valorem tax
    SPECIAL_HUT = "special_hut"  # North Carolina highway use tax
    SPECIAL_PRIVILEGE = "special_privilege"  # West Virginia privilege tax


LEASE_ONLY_METHODS: frozenset[TaxMethod] = frozenset(
    {
        TaxMethod.TAX_ON_PAYMENT,
        TaxMethod.TAX_ON_CAP_COST,
        TaxMethod.TAX_ON_CAP_REDUCTION,
    }
)

SPECIAL_METHODS: frozenset[TaxMethod] = frozenset(
    {
        TaxMethod.SPECIAL_TAVT,
        TaxMethod.SPECIAL_HUT,
        TaxMethod.SPECIAL_PRIVILEGE,
    }
)


class TradeInPolicy(Enum):
    FULL = "full"
    PARTIAL = "partial"  # credit capped at a fixed dollar amount
    TAX_ON_DIFFERENCE = "tax_on_difference"  # credit is allowance less payoff
    NONE = "none"


@dataclass(frozen=True)
class TradeInCredit:
    policy: TradeInPolicy
    cap: Optional[Decimal] = None
    nets_payoff: bool = False  # FULL only: subtract the payoff before crediting


@dataclass(frozen=True)
class JurisdictionRules:
    """Complete tax rule profile for a single state or DC."""

    state_code: str
    state_name: str
    base_rate: Decimal  # fraction, e.g. 0.0725 = 7.25%
    has_local_tax: bool
    trade_in_credit: TradeInCredit
    doc_fee_taxable: bool
    max_doc_fee: Optional[Decimal]
    luxury_threshold: Optional[Decimal]
    luxury_rate: Optional[Decimal]
    tax_method: TaxMethod
    lease_tax_method: Optional[TaxMethod] = None
    rebates_taxable: bool = False
    reciprocity: bool = True
    tax_cap: Optional[Decimal] = None  # ceiling on one-time tax per deal
    notes: str = ""

    @property
    def effective_lease_method(self) -> TaxMethod:
        return self.lease_tax_method or self.tax_method

    def method_for(self, deal_type: DealType) -> TaxMethod:
        if deal_type is DealType.LEASE:
            return self.effective_lease_method
        return self.tax_method


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_fraction(code: str, name: str, value: Optional[Decimal]) -> None:
    if value is not None and not (Decimal("0") <= value <= Decimal("1")):
        raise RuleDataError(f"{code}: {name} {value} is outside [0, 1]")


def validate_rules(rules: JurisdictionRules) -> None:
    """Raise RuleDataError if a rule profile breaks a load-time invariant."""
    code = rules.state_code
    _check_fraction(code, "base_rate", rules.base_rate)
    _check_fraction(code, "luxury_rate", rules.luxury_rate)

    credit = rules.trade_in_credit
    if credit.policy is TradeInPolicy.PARTIAL and credit.cap is None:
        raise RuleDataError(f"{code}: PARTIAL trade-in policy requires a cap")
    if credit.cap is not None and credit.cap < 0:
        raise RuleDataError(f"{code}: trade-in cap must not be negative")

    if rules.max_doc_fee is not None and rules.max_doc_fee < 0:
        raise RuleDataError(f"{code}: max_doc_fee must not be negative")

    if (rules.luxury_threshold is None) != (rules.luxury_rate is None):
        raise RuleDataError(
            f"{code}: luxury_threshold and luxury_rate must be set together"
        )
    if rules.luxury_threshold is not None and rules.luxury_threshold < 0:
        raise RuleDataError(f"{code}: luxury_threshold must not be negative")
    if rules.tax_cap is not None and rules.tax_cap < 0:
        raise RuleDataError(f"{code}: tax_cap must not be negative")

    if rules.tax_method in LEASE_ONLY_METHODS:
        raise RuleDataError(
            f"{code}: {rules.tax_method.name} is lease-only and cannot be "
            f"the retail tax method"
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RuleStore:
    """
    Immutable, versioned map of state code to JurisdictionRules.

    Lookups are case-insensitive and side-effect free.
    """

    def __init__(self, rules: dict[str, JurisdictionRules], version: str) -> None:
        self._rules = dict(rules)
        self._version = version
        self._codes = frozenset(self._rules)

    @classmethod
    def from_rules(
        cls, rules: Iterable[JurisdictionRules], version: str = "fixture"
    ) -> "RuleStore":
        """Build a store from rule objects, e.g. a partial store for tests."""
        table: dict[str, JurisdictionRules] = {}
        for rule in rules:
            validate_rules(rule)
            if rule.state_code in table:
                raise RuleDataError(f"Duplicate jurisdiction: {rule.state_code}")
            table[rule.state_code] = rule
        return cls(table, version)

    @property
    def version(self) -> str:
        return self._version

    @property
    def state_count(self) -> int:
        return len(self._rules)

    def lookup(self, state_code: str) -> JurisdictionRules:
        key = state_code.strip().upper() if isinstance(state_code, str) else state_code
        rules = self._rules.get(key)
        if rules is None:
            raise UnknownJurisdiction(state_code)
        return rules

    def supported_jurisdictions(self) -> frozenset[str]:
        return self._codes

    def __contains__(self, state_code: object) -> bool:
        return isinstance(state_code, str) and state_code.strip().upper() in self._codes

    def __iter__(self) -> Iterator[JurisdictionRules]:
        for code in sorted(self._rules):
            yield self._rules[code]

    def __len__(self) -> int:
        return len(self._rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleStore):
            return NotImplemented
        return self._version == other._version and self._rules == other._rules

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RuleStore(version={self._version!r}, states={len(self._rules)})"


def replace_rules(
    store: RuleStore, state_code: str, **changes: object
) -> RuleStore:
    """Return a new store with one jurisdiction's fields overridden."""
    current = store.lookup(state_code)
    updated = dataclasses.replace(current, **changes)
    validate_rules(updated)
    table = {rule.state_code: rule for rule in store}
    table[updated.state_code] = updated
    return RuleStore(table, store.version)


class RuleStoreHandle:
    """Holds the currently published store; publishing swaps the reference."""

    def __init__(self, store: RuleStore) -> None:
        self._store = store
        self._lock = threading.Lock()

    @property
    def current(self) -> RuleStore:
        return self._store

    def publish(self, store: RuleStore) -> RuleStore:
        """Publish a new store and return the one it replaced."""
        with self._lock:
            previous, self._store = self._store, store
        logger.info(
            "Published rule store version %s (was %s)",
            store.version,
            previous.version,
        )
        return previous


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------

_REQUIRED_COLUMNS = (
    "state_code",
    "state_name",
    "base_rate",
    "has_local_tax",
    "trade_in_policy",
    "trade_in_cap",
    "credit_nets_payoff",
    "doc_fee_taxable",
    "max_doc_fee",
    "luxury_threshold",
    "luxury_rate",
    "tax_method",
    "lease_tax_method",
    "rebates_taxable",
    "reciprocity",
    "tax_cap",
    "notes",
)

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


def _parse_bool(code: str, column: str, text: str) -> bool:
    value = text.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise RuleDataError(f"{code}: {column} is not a boolean: {text!r}")


def _parse_decimal(code: str, column: str, text: str) -> Optional[Decimal]:
    value = text.strip()
    if not value:
        return None
    try:
        result = Decimal(value)
    except InvalidOperation as exc:
        raise RuleDataError(f"{code}: {column} is not a number: {text!r}") from exc
    if not result.is_finite():
        raise RuleDataError(f"{code}: {column} must be finite")
    return result


def _parse_enum(code: str, column: str, text: str, enum_cls: type[Enum]) -> Enum:
    try:
        return enum_cls[text.strip().upper()]
    except KeyError as exc:
        raise RuleDataError(
            f"{code}: unknown {column} {text!r}"
        ) from exc


def _row_to_rules(row: dict[str, str]) -> JurisdictionRules:
    code = row["state_code"].strip().upper()
    if len(code) != 2 or not code.isalpha():
        raise RuleDataError(f"Malformed state code: {row['state_code']!r}")

    base_rate = _parse_decimal(code, "base_rate", row["base_rate"])
    if base_rate is None:
        raise RuleDataError(f"{code}: base_rate is required")

    lease_text = row["lease_tax_method"].strip()
    lease_method = (
        _parse_enum(code, "lease_tax_method", lease_text, TaxMethod)
        if lease_text
        else None
    )

    return JurisdictionRules(
        state_code=code,
        state_name=row["state_name"].strip(),
        base_rate=base_rate,
        has_local_tax=_parse_bool(code, "has_local_tax", row["has_local_tax"]),
        trade_in_credit=TradeInCredit(
            policy=_parse_enum(
                code, "trade_in_policy", row["trade_in_policy"], TradeInPolicy
            ),
            cap=_parse_decimal(code, "trade_in_cap", row["trade_in_cap"]),
            nets_payoff=_parse_bool(
                code, "credit_nets_payoff", row["credit_nets_payoff"]
            ),
        ),
        doc_fee_taxable=_parse_bool(code, "doc_fee_taxable", row["doc_fee_taxable"]),
        max_doc_fee=_parse_decimal(code, "max_doc_fee", row["max_doc_fee"]),
        luxury_threshold=_parse_decimal(
            code, "luxury_threshold", row["luxury_threshold"]
        ),
        luxury_rate=_parse_decimal(code, "luxury_rate", row["luxury_rate"]),
        tax_method=_parse_enum(code, "tax_method", row["tax_method"], TaxMethod),
        lease_tax_method=lease_method,
        rebates_taxable=_parse_bool(code, "rebates_taxable", row["rebates_taxable"]),
        reciprocity=_parse_bool(code, "reciprocity", row["reciprocity"]),
        tax_cap=_parse_decimal(code, "tax_cap", row["tax_cap"]),
        notes=row["notes"].strip(),
    )


def version_from_path(path: Union[str, Path]) -> str:
    """``jurisdictions_2024.1.csv`` -> ``2024.1``."""
    stem = Path(path).stem
    _, sep, version = stem.partition("_")
    return version if sep and version else stem


def load_rule_store(
    path: Union[str, Path] = DEFAULT_RULES_PATH, version: Optional[str] = None
) -> RuleStore:
    """
    Load and validate a versioned jurisdiction rule file.

    Every column is read as text so rates and dollar amounts go straight to
    Decimal without passing through a float. Raises RuleDataError when the
    file is missing, malformed, incomplete or breaks a rule invariant.
    """
    path = Path(path)
    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    except FileNotFoundError as exc:
        raise RuleDataError(f"Rule file not found: {path}") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise RuleDataError(f"Rule file {path} is not valid CSV: {exc}") from exc

    missing_columns = [c for c in _REQUIRED_COLUMNS if c not in frame.columns]
    if missing_columns:
        raise RuleDataError(
            f"Rule file {path} is missing columns: {', '.join(missing_columns)}"
        )

    table: dict[str, JurisdictionRules] = {}
    for row in frame.to_dict(orient="records"):
        rules = _row_to_rules(row)
        validate_rules(rules)
        if rules.state_code in table:
            raise RuleDataError(f"Duplicate jurisdiction: {rules.state_code}")
        table[rules.state_code] = rules

    missing = EXPECTED_JURISDICTIONS - set(table)
    if missing:
        raise RuleDataError(
            f"Rule file {path} is missing jurisdictions: {', '.join(sorted(missing))}"
        )
    unexpected = set(table) - EXPECTED_JURISDICTIONS
    if unexpected:
        raise RuleDataError(
            f"Rule file {path} has unknown jurisdictions: "
            f"{', '.join(sorted(unexpected))}"
        )

    store = RuleStore(table, version or version_from_path(path))
    logger.info(
        "Loaded %d jurisdiction rules (version %s) from %s",
        store.state_count,
        store.version,
        path,
    )
    return store
