"""
Context -- Names and helpers for the calculation context.

The calculation context is the mapping of values a rule can see: its
conditions match against it and its expression reads numeric entries from
it. These names are always available to rule conditions without being
declared as rule parameters; expressions can read the numeric ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal

from pricing_kernel.domain.dtos import ContextValue

BASE_PRICE = "basePrice"
INITIAL_BASE_PRICE = "initialBasePrice"
TRANSACTION_VOLUME = "transactionVolume"
SERVICE_TYPE = "serviceType"
FILING_FREQUENCY = "filingFrequency"
COUNTRY_CODE = "countryCode"
COUNTRIES_COUNT = "countriesCount"
ADDITIONAL_SERVICES_COUNT = "additionalServicesCount"
ADDITIONAL_SERVICES = "additionalServices"
CURRENCY_CODE = "currencyCode"

# Standard names bound as numbers; the rest are text and only usable in
# conditions.
NUMERIC_STANDARD_PARAMETERS: frozenset[str] = frozenset({
    BASE_PRICE,
    INITIAL_BASE_PRICE,
    TRANSACTION_VOLUME,
    COUNTRIES_COUNT,
    ADDITIONAL_SERVICES_COUNT,
})


def is_numeric_value(value: object) -> bool:
    """True for int/Decimal/bool context values (bool reads as 1/0)."""
    return isinstance(value, (int, Decimal)) and not isinstance(value, date)


def numeric_bindings(context: Mapping[str, ContextValue]) -> dict[str, object]:
    """Context entries an expression can bind to directly."""
    return {k: v for k, v in context.items() if is_numeric_value(v)}


def value_as_text(value: ContextValue) -> str:
    """Canonical string form used for condition matching."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)
