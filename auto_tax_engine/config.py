"""
Engine configuration.

Defaults point at the rule and ZIP files shipped with the package. Each
setting can be overridden from the environment:

    AUTO_TAX_RULES_PATH         jurisdiction rule CSV
    AUTO_TAX_LOCAL_RATES_PATH   ZIP local rate CSV
    AUTO_TAX_LOG_LEVEL          DEBUG, INFO, WARNING, ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from auto_tax_engine.engine import TaxEngine
from auto_tax_engine.local_rates import DEFAULT_LOCAL_RATES_PATH, LocalRateResolver
from auto_tax_engine.rules import DEFAULT_RULES_PATH, load_rule_store

logger = logging.getLogger(__name__)

ENV_PREFIX = "AUTO_TAX_"


@dataclass(frozen=True)
class EngineConfig:
    rules_path: Path = DEFAULT_RULES_PATH
    local_rates_path: Path = DEFAULT_LOCAL_RATES_PATH
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        config = cls()
        overrides: dict = {}

        rules_path = environ.get(f"{ENV_PREFIX}RULES_PATH")
        if rules_path:
            overrides["rules_path"] = Path(rules_path)
        local_rates_path = environ.get(f"{ENV_PREFIX}LOCAL_RATES_PATH")
        if local_rates_path:
            overrides["local_rates_path"] = Path(local_rates_path)
        log_level = environ.get(f"{ENV_PREFIX}LOG_LEVEL")
        if log_level:
            overrides["log_level"] = log_level.strip().upper()

        for name, value in overrides.items():
            logger.info("Applied env override: %s=%s", name, value)
        return replace(config, **overrides)

    def with_overrides(self, **changes: object) -> "EngineConfig":
        """Apply non-empty overrides, e.g. from CLI flags."""
        changes = {k: v for k, v in changes.items() if v is not None}
        for key in ("rules_path", "local_rates_path"):
            if key in changes:
                changes[key] = Path(changes[key])
        return replace(self, **changes)


def build_engine(config: Optional[EngineConfig] = None) -> TaxEngine:
    """Load the configured rule and ZIP files and return a ready TaxEngine."""
    config = config or EngineConfig.from_env()
    store = load_rule_store(config.rules_path)
    resolver = LocalRateResolver.from_file(config.local_rates_path)
    return TaxEngine(store, resolver)
