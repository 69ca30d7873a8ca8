"""Tests for local rate resolution."""

import logging
from decimal import Decimal
from pathlib import Path

import pytest

from auto_tax_engine.errors import InvalidInput, LocalRateUnavailable, RuleDataError
from auto_tax_engine.local_rates import (
    LocalRateResolver,
    load_local_rates,
    normalize_zip,
)
from auto_tax_engine.rules import RuleStore, load_rule_store


@pytest.fixture(scope="module")
def store() -> RuleStore:
    return load_rule_store()


@pytest.fixture
def resolver() -> LocalRateResolver:
    return LocalRateResolver.from_file()


# ── ZIP normalization ────────────────────────────────────────────────


@pytest.mark.parametrize("raw", ["90001", "90001-1234", "900011234", " 90001 "])
def test_normalize_zip(raw: str):
    assert normalize_zip(raw) == "90001"


@pytest.mark.parametrize("raw", ["9000", "ABCDE", "90001-12", "900010"])
def test_malformed_zip_rejected(raw: str):
    with pytest.raises(InvalidInput):
        normalize_zip(raw)


# ── Resolution ───────────────────────────────────────────────────────


def test_table_rate(resolver: LocalRateResolver, store: RuleStore):
    result = resolver.resolve(store.lookup("CA"), "90001")
    assert result.rate == Decimal("0.025")
    assert result.source == "table"
    assert result.city == "Los Angeles"
    assert result.local_rate_unknown is False
    assert result.warning is None


def test_zip_plus_four(resolver: LocalRateResolver, store: RuleStore):
    result = resolver.resolve(store.lookup("TX"), "77001-4321")
    assert result.rate == Decimal("0.02")
    assert result.zip_code == "77001"


def test_state_without_local_tax(resolver: LocalRateResolver, store: RuleStore):
    result = resolver.resolve(store.lookup("NJ"), "07001", Decimal("0.02"))
    assert result.rate == Decimal("0")
    assert result.source == "none"


def test_override_wins_over_table(resolver: LocalRateResolver, store: RuleStore):
    result = resolver.resolve(store.lookup("CA"), "90001", Decimal("0.01"))
    assert result.rate == Decimal("0.01")
    assert result.source == "override"


def test_override_out_of_range(resolver: LocalRateResolver, store: RuleStore):
    with pytest.raises(InvalidInput):
        resolver.resolve(store.lookup("CA"), None, Decimal("1.5"))


def test_unknown_zip_degrades_to_zero(
    resolver: LocalRateResolver, store: RuleStore, caplog
):
    with caplog.at_level(logging.WARNING, logger="auto_tax_engine.local_rates"):
        result = resolver.resolve(store.lookup("CA"), "96161")
    assert result.rate == Decimal("0")
    assert result.source == "unavailable"
    assert result.local_rate_unknown is True
    assert "96161" in result.warning
    assert any("96161" in r.getMessage() for r in caplog.records)


def test_missing_zip_degrades_to_zero(resolver: LocalRateResolver, store: RuleStore):
    result = resolver.resolve(store.lookup("TX"))
    assert result.rate == Decimal("0")
    assert result.local_rate_unknown is True
    assert "No ZIP" in result.warning


def test_zip_from_other_state_is_unavailable(
    resolver: LocalRateResolver, store: RuleStore
):
    result = resolver.resolve(store.lookup("CA"), "77001")
    assert result.source == "unavailable"
    assert result.rate == Decimal("0")


def test_malformed_zip_raises_even_without_local_tax(
    resolver: LocalRateResolver, store: RuleStore
):
    with pytest.raises(InvalidInput):
        resolver.resolve(store.lookup("NJ"), "07-01")


def test_lookup_raises_unavailable(resolver: LocalRateResolver):
    with pytest.raises(LocalRateUnavailable) as exc_info:
        resolver.lookup("CA", "96161")
    assert exc_info.value.code == "LOCAL_RATE_UNAVAILABLE"


def test_cache_is_read_through(resolver: LocalRateResolver, store: RuleStore):
    ca = store.lookup("CA")
    assert resolver.cached_count == 0
    resolver.resolve(ca, "90001")
    resolver.resolve(ca, "90001-0001")
    resolver.resolve(ca, "96161")
    assert resolver.cached_count == 2


def test_empty_resolver_has_no_rates(store: RuleStore):
    result = LocalRateResolver().resolve(store.lookup("CA"), "90001")
    assert result.source == "unavailable"


# ── File loading ─────────────────────────────────────────────────────


def test_bundled_table_loads():
    table = load_local_rates()
    assert table["10001"].rate == Decimal("0.04875")
    assert table["10001"].state_code == "NY"


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "local_rates_test.csv"
    path.write_text("zip_code,state_code,city,county,local_rate\n" + body)
    return path


def test_bad_rate_rejected(tmp_path: Path):
    with pytest.raises(RuleDataError):
        load_local_rates(_write(tmp_path, "90001,CA,Los Angeles,Los Angeles,abc\n"))


def test_rate_out_of_range_rejected(tmp_path: Path):
    with pytest.raises(RuleDataError):
        load_local_rates(_write(tmp_path, "90001,CA,Los Angeles,Los Angeles,2\n"))


def test_duplicate_zip_rejected(tmp_path: Path):
    body = "90001,CA,Los Angeles,Los Angeles,0.025\n90001,CA,Los Angeles,Los Angeles,0.02\n"
    with pytest.raises(RuleDataError, match="Duplicate"):
        load_local_rates(_write(tmp_path, body))


def test_leading_zero_zip_kept(tmp_path: Path):
    table = load_local_rates(_write(tmp_path, "02108,MA,Boston,Suffolk,0\n"))
    assert "02108" in table
