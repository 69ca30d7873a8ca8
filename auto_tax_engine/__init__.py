"""
Auto Tax Engine
===============

Jurisdictional sales/use tax and deal-finance calculations for vehicle
retail and lease transactions across all 50 US states plus DC.

Modules:
    money            - Fixed-point money helpers
    errors           - Typed engine errors
    rules            - Versioned jurisdiction rule store
    local_rates      - ZIP-level local rate resolution
    trade_in         - Trade-in credit policies
    taxable          - Taxable amount assembly
    methods          - Tax method strategies (price, payment, cap cost, TAVT, ...)
    finance          - Installment finance and amortization math
    lease            - Closed-end lease math
    engine           - Quote engine tying the above together
    config           - Environment-driven engine configuration
    report_generator - Quote reporting with CSV/JSON export
    cli              - Command-line interface
"""

__version__ = "1.0.0"

from auto_tax_engine.config import EngineConfig, build_engine
from auto_tax_engine.engine import (
    BatchResult,
    TaxEngine,
    TaxQuoteInput,
    TaxQuoteResult,
)
from auto_tax_engine.errors import (
    FinanceError,
    InvalidInput,
    LocalRateUnavailable,
    RuleDataError,
    TaxEngineError,
    UnknownJurisdiction,
    UnsupportedMethodForDealType,
)
from auto_tax_engine.finance import FinanceInput, FinanceResult
from auto_tax_engine.lease import LeaseInput, LeaseResult
from auto_tax_engine.report_generator import ReportGenerator
from auto_tax_engine.rules import DealType, RuleStore, TaxMethod, load_rule_store

__all__ = [
    "BatchResult",
    "DealType",
    "EngineConfig",
    "FinanceError",
    "FinanceInput",
    "FinanceResult",
    "InvalidInput",
    "LeaseInput",
    "LeaseResult",
    "LocalRateUnavailable",
    "ReportGenerator",
    "RuleDataError",
    "RuleStore",
    "TaxEngine",
    "TaxEngineError",
    "TaxMethod",
    "TaxQuoteInput",
    "TaxQuoteResult",
    "UnknownJurisdiction",
    "UnsupportedMethodForDealType",
    "build_engine",
    "load_rule_store",
]

