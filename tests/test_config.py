"""Tests for engine configuration and logging setup."""

import logging
from decimal import Decimal
from pathlib import Path

import pytest

import auto_tax_engine
from auto_tax_engine.config import EngineConfig, build_engine
from auto_tax_engine.errors import RuleDataError
from auto_tax_engine.local_rates import DEFAULT_LOCAL_RATES_PATH
from auto_tax_engine.logging_config import configure_logging, reset_logging
from auto_tax_engine.rules import DEFAULT_RULES_PATH, replace_rules


# ── EngineConfig ─────────────────────────────────────────────────────


def test_defaults_point_at_bundled_data():
    config = EngineConfig.from_env({})
    assert config.rules_path == DEFAULT_RULES_PATH
    assert config.local_rates_path == DEFAULT_LOCAL_RATES_PATH
    assert config.log_level == "WARNING"


def test_env_overrides():
    config = EngineConfig.from_env(
        {
            "AUTO_TAX_RULES_PATH": "/tmp/rules.csv",
            "AUTO_TAX_LOCAL_RATES_PATH": "/tmp/zips.csv",
            "AUTO_TAX_LOG_LEVEL": "debug",
        }
    )
    assert config.rules_path == Path("/tmp/rules.csv")
    assert config.local_rates_path == Path("/tmp/zips.csv")
    assert config.log_level == "DEBUG"


def test_empty_env_values_ignored():
    assert EngineConfig.from_env({"AUTO_TAX_RULES_PATH": ""}).rules_path == DEFAULT_RULES_PATH


def test_with_overrides_skips_none():
    config = EngineConfig().with_overrides(rules_path="/tmp/r.csv", log_level=None)
    assert config.rules_path == Path("/tmp/r.csv")
    assert config.log_level == "WARNING"


# ── build_engine ─────────────────────────────────────────────────────


def test_build_engine_with_bundled_data():
    engine = build_engine(EngineConfig())
    assert len(engine.list_supported_jurisdictions()) == 51
    assert engine.resolver.zip_count > 0


def test_build_engine_bad_path(tmp_path):
    with pytest.raises(RuleDataError):
        build_engine(EngineConfig(rules_path=tmp_path / "missing.csv"))


# ── Logging ──────────────────────────────────────────────────────────


@pytest.fixture
def handler():
    records: list[logging.LogRecord] = []

    class _Collect(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    h = _Collect()
    h.records = records
    yield h
    reset_logging()


def test_configure_logging_is_idempotent(handler):
    logger = configure_logging("INFO", handler=handler)
    configure_logging("DEBUG", handler=logging.NullHandler())
    assert logger.handlers == [handler]
    assert logger.level == logging.DEBUG
    assert logger.propagate is False


def test_rule_load_logged(handler):
    configure_logging("INFO", handler=handler)
    build_engine(EngineConfig())
    messages = [r.getMessage() for r in handler.records]
    assert any("2024.1" in m for m in messages)


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        configure_logging("LOUD")


# ── Engine ownership ─────────────────────────────────────────────────


def test_each_engine_owns_its_rules(monkeypatch):
    for name in ("AUTO_TAX_RULES_PATH", "AUTO_TAX_LOCAL_RATES_PATH"):
        monkeypatch.delenv(name, raising=False)
    quote = auto_tax_engine.TaxQuoteInput(
        deal_type=auto_tax_engine.DealType.RETAIL,
        vehicle_price=Decimal("40000.00"),
        state_code="TX",
        zip_code="77001",
    )
    first = build_engine(EngineConfig.from_env())
    second = build_engine(EngineConfig.from_env())
    assert first is not second

    custom = auto_tax_engine.TaxEngine(
        replace_rules(first.store, "TX", base_rate=Decimal("0.07")), first.resolver
    )
    assert custom.compute_tax(quote).total_tax == Decimal("3600.00")
    assert first.compute_tax(quote).total_tax == Decimal("3300.00")
    assert second.compute_tax(quote).total_tax == Decimal("3300.00")


def test_package_exposes_no_default_engine():
    assert not hasattr(auto_tax_engine, "default_engine")
    assert not hasattr(auto_tax_engine, "compute_tax")
    assert "TaxEngine" in auto_tax_engine.__all__
