"""
Local (county/city/district) sales tax rate resolution.

The local rate is a refinement on top of the state rate. When no rate can
be found for a deal's address the resolver degrades to a zero local rate
and reports a warning instead of failing the quote.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional, Union

import pandas as pd

from auto_tax_engine.errors import InvalidInput, LocalRateUnavailable, RuleDataError
from auto_tax_engine.rules import DATA_DIR, JurisdictionRules

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_RATES_PATH = DATA_DIR / "local_rates_2024.1.csv"

_ZIP_RE = re.compile(r"^(\d{5})(?:-?\d{4})?$")
_NO_RATE = Decimal("0")


@dataclass(frozen=True)
class LocalRateEntry:
    """Combined county + city + district rate for one 5-digit ZIP."""

    zip_code: str
    state_code: str
    city: str
    county: str
    rate: Decimal


@dataclass(frozen=True)
class LocalRateResolution:
    rate: Decimal
    source: str  # none, override, table, unavailable
    local_rate_unknown: bool = False
    warning: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None


def normalize_zip(zip_code: str) -> str:
    """Reduce a 5-digit or ZIP+4 code to its 5-digit form."""
    match = _ZIP_RE.match(str(zip_code).strip())
    if match is None:
        raise InvalidInput("zip_code", f"expected 5 digits or ZIP+4, got {zip_code!r}")
    return match.group(1)


def load_local_rates(
    path: Union[str, Path] = DEFAULT_LOCAL_RATES_PATH,
) -> dict[str, LocalRateEntry]:
    """Load the ZIP rate table. Rates are parsed from text straight to Decimal."""
    path = Path(path)
    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    except FileNotFoundError as exc:
        raise RuleDataError(f"Local rate file not found: {path}") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise RuleDataError(f"Local rate file {path} is not valid CSV: {exc}") from exc

    required = ("zip_code", "state_code", "city", "county", "local_rate")
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise RuleDataError(
            f"Local rate file {path} is missing columns: {', '.join(missing)}"
        )

    table: dict[str, LocalRateEntry] = {}
    for row in frame.to_dict(orient="records"):
        zip_code = row["zip_code"].strip()
        if len(zip_code) != 5 or not zip_code.isdigit():
            raise RuleDataError(f"Malformed ZIP in {path}: {zip_code!r}")
        try:
            rate = Decimal(row["local_rate"].strip())
        except InvalidOperation as exc:
            raise RuleDataError(
                f"ZIP {zip_code}: local_rate is not a number: {row['local_rate']!r}"
            ) from exc
        if not (Decimal("0") <= rate <= Decimal("1")):
            raise RuleDataError(f"ZIP {zip_code}: local_rate {rate} is outside [0, 1]")
        if zip_code in table:
            raise RuleDataError(f"Duplicate ZIP in {path}: {zip_code}")
        table[zip_code] = LocalRateEntry(
            zip_code=zip_code,
            state_code=row["state_code"].strip().upper(),
            city=row["city"].strip(),
            county=row["county"].strip(),
            rate=rate,
        )

    logger.info("Loaded %d local rates from %s", len(table), path)
    return table


class LocalRateResolver:
    """
    Resolves the combined local rate for a deal.

    Lookups go through a read-through cache keyed by the normalized 5-digit
    ZIP. Entries are immutable, so concurrent writes of the same key are
    harmless.
    """

    def __init__(self, table: Optional[Mapping[str, LocalRateEntry]] = None) -> None:
        self._table: Mapping[str, LocalRateEntry] = dict(table or {})
        self._cache: dict[str, Optional[LocalRateEntry]] = {}

    @classmethod
    def from_file(
        cls, path: Union[str, Path] = DEFAULT_LOCAL_RATES_PATH
    ) -> "LocalRateResolver":
        return cls(load_local_rates(path))

    @property
    def zip_count(self) -> int:
        return len(self._table)

    @property
    def cached_count(self) -> int:
        return len(self._cache)

    def _entry(self, zip5: str) -> Optional[LocalRateEntry]:
        if zip5 not in self._cache:
            self._cache[zip5] = self._table.get(zip5)
        return self._cache[zip5]

    def lookup(self, state_code: str, zip_code: Optional[str]) -> LocalRateEntry:
        """Return the table entry for a ZIP or raise LocalRateUnavailable."""
        if not zip_code:
            raise LocalRateUnavailable(state_code, None)
        zip5 = normalize_zip(zip_code)
        entry = self._entry(zip5)
        if entry is None or entry.state_code != state_code:
            raise LocalRateUnavailable(state_code, zip5)
        return entry

    def resolve(
        self,
        rules: JurisdictionRules,
        zip_code: Optional[str] = None,
        local_rate: Optional[Decimal] = None,
    ) -> LocalRateResolution:
        if zip_code:
            zip_code = normalize_zip(zip_code)

        if not rules.has_local_tax:
            return LocalRateResolution(rate=_NO_RATE, source="none", zip_code=zip_code)

        if local_rate is not None:
            if not isinstance(local_rate, Decimal) or not (
                Decimal("0") <= local_rate <= Decimal("1")
            ):
                raise InvalidInput("local_rate", "must be a Decimal fraction in [0, 1]")
            return LocalRateResolution(
                rate=local_rate, source="override", zip_code=zip_code
            )

        try:
            entry = self.lookup(rules.state_code, zip_code)
        except LocalRateUnavailable as exc:
            logger.warning("%s; local tax set to zero", exc.message)
            return LocalRateResolution(
                rate=_NO_RATE,
                source="unavailable",
                local_rate_unknown=True,
                warning=f"{exc.message}; local tax not included",
                zip_code=zip_code,
            )

        return LocalRateResolution(
            rate=entry.rate,
            source="table",
            zip_code=entry.zip_code,
            city=entry.city,
            county=entry.county,
        )
