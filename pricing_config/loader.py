"""
Configuration Loader (``pricing_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``pricing_config.schema``
dataclasses and domain ``Rule`` objects.  Runtime callers go through
``pricing_config.get_active_settings()``; rule catalogues are loaded with
``load_rules_file`` by seeding and test tooling.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every rule is built through ``Rule.create`` and so passes the same
  validation as a rule created at runtime.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  settings for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` (``ValidationError`` for rules).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pricing_config.schema import AdditionalServiceDef, DiscountTier, PricingSettings
from pricing_kernel.domain.dtos import RuleType, ServiceType
from pricing_kernel.domain.rule import Rule, RuleCondition, RuleParameter
from pricing_kernel.domain.rule_engine import RuleFailurePolicy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """
    Parse a date from YAML (string or date object).

    Raises:
        ValueError: if ``value`` is not a valid date representation.
    """
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, what: str) -> Decimal:
    """
    Parse a Decimal from a YAML scalar. Floats go through ``str``.

    Raises:
        ValueError: if ``value`` is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"{what}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"{what}: expected a number, got {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"{what}: expected a finite number, got {value!r}")
    return result


def parse_tier(data: dict[str, Any]) -> DiscountTier:
    """Parse a DiscountTier from a dict."""
    percentage = parse_decimal(data["percentage"], "percentage")
    if not (0 <= percentage <= 100):
        raise ValueError(f"Discount percentage must be between 0 and 100, got {percentage}")
    return DiscountTier(
        threshold=int(data["threshold"]),
        percentage=percentage,
        reason=str(data["reason"]),
        inclusive=bool(data.get("inclusive", False)),
    )


def parse_settings(data: dict[str, Any]) -> PricingSettings:
    """
    Parse PricingSettings from a dict.

    Raises:
        KeyError: if ``default_currency`` or ``base_prices`` is missing.
        ValueError: on unknown service types or invalid numbers.
    """
    base_prices: dict[ServiceType, Decimal] = {}
    for key, value in data["base_prices"].items():
        base_prices[ServiceType(key)] = parse_decimal(value, f"base_prices.{key}")

    services: dict[str, AdditionalServiceDef] = {}
    for service_id, item in (data.get("additional_services") or {}).items():
        services[service_id] = AdditionalServiceDef(
            service_id=service_id,
            name=str(item.get("name", service_id)),
            cost=parse_decimal(item["cost"], f"additional_services.{service_id}.cost"),
        )

    settings = PricingSettings(
        default_currency=str(data["default_currency"]).upper(),
        base_prices=base_prices,
        additional_services=services,
        volume_discount_tiers=tuple(
            parse_tier(t) for t in data.get("volume_discount_tiers") or ()
        ),
        country_discount_tiers=tuple(
            parse_tier(t) for t in data.get("country_discount_tiers") or ()
        ),
        failure_policy=RuleFailurePolicy(
            data.get("failure_policy", RuleFailurePolicy.SKIP_RULE.value)
        ),
    )
    return replace(settings, checksum=compute_checksum(settings))


def parse_parameter(data: dict[str, Any]) -> RuleParameter:
    default = data.get("default", "")
    return RuleParameter(
        name=data["name"],
        data_type=data.get("type", "number"),
        default_value="" if default is None else str(default),
    )


def parse_condition(data: dict[str, Any]) -> RuleCondition:
    return RuleCondition(
        parameter=data["parameter"],
        operator=data["operator"],
        value=str(data.get("value", "")),
    )


def parse_rule(data: dict[str, Any]) -> Rule:
    """
    Parse a Rule from a dict.

    Raises:
        KeyError: if a required key is missing.
        ValidationError: if the rule fails construction checks.
    """
    return Rule.create(
        rule_id=data.get("id"),
        country_code=data["country"],
        rule_type=RuleType(data["type"]),
        name=data["name"],
        description=data.get("description", ""),
        expression=str(data["expression"]),
        parameters=[parse_parameter(p) for p in data.get("parameters") or ()],
        conditions=[parse_condition(c) for c in data.get("conditions") or ()],
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        priority=int(data.get("priority", 100)),
        is_active=bool(data.get("active", True)),
    )


def load_rules_file(path: Path) -> list[Rule]:
    """Load a ``rules:`` catalogue from a YAML file."""
    data = load_yaml_file(path)
    return [parse_rule(item) for item in data.get("rules") or ()]


def compute_checksum(settings: PricingSettings) -> str:
    """Deterministic SHA-256 of the settings, excluding the checksum field."""
    canonical = {
        "default_currency": settings.default_currency,
        "base_prices": {k.value: str(v) for k, v in sorted(settings.base_prices.items())},
        "additional_services": {
            k: {"name": v.name, "cost": str(v.cost)}
            for k, v in sorted(settings.additional_services.items())
        },
        "volume_discount_tiers": [
            [t.threshold, str(t.percentage), t.reason, t.inclusive]
            for t in settings.volume_discount_tiers
        ],
        "country_discount_tiers": [
            [t.threshold, str(t.percentage), t.reason, t.inclusive]
            for t in settings.country_discount_tiers
        ],
        "failure_policy": settings.failure_policy.value,
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()
