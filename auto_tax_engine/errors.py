"""
Typed errors raised by the tax engine.

Every error carries a machine-readable ``code`` so the calling service can
render a precise message ("tax rules unavailable for this address") instead
of a generic failure.

    TaxEngineError
    +-- UnknownJurisdiction          fatal, unsupported state code
    +-- InvalidInput                 fatal, rejected before computation
    +-- UnsupportedMethodForDealType fatal, rule data or dispatch bug
    +-- LocalRateUnavailable         recoverable, degrades to zero local tax
    +-- FinanceError                 fatal, finance/lease math input
    +-- RuleDataError                startup, rule file failed validation
"""

from __future__ import annotations

from typing import Optional


class TaxEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "TAX_ENGINE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownJurisdiction(TaxEngineError):
    code = "UNKNOWN_JURISDICTION"

    def __init__(self, state_code: str) -> None:
        self.state_code = state_code
        super().__init__(f"No tax rules for jurisdiction: {state_code!r}")


class InvalidInput(TaxEngineError):
    code = "INVALID_INPUT"

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid {field_name}: {reason}")


class UnsupportedMethodForDealType(TaxEngineError):
    code = "UNSUPPORTED_METHOD_FOR_DEAL_TYPE"

    def __init__(self, method: str, deal_type: str, detail: str = "") -> None:
        self.method = method
        self.deal_type = deal_type
        message = f"Tax method {method} cannot be applied to a {deal_type} deal"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class LocalRateUnavailable(TaxEngineError):
    code = "LOCAL_RATE_UNAVAILABLE"

    def __init__(self, state_code: str, zip_code: Optional[str]) -> None:
        self.state_code = state_code
        self.zip_code = zip_code
        if zip_code:
            message = f"No local rate on file for ZIP {zip_code} in {state_code}"
        else:
            message = f"No ZIP supplied for {state_code}, which levies local tax"
        super().__init__(message)


class FinanceError(TaxEngineError):
    code = "FINANCE_ERROR"

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid {field_name}: {reason}")


class RuleDataError(TaxEngineError):
    code = "RULE_DATA_ERROR"
