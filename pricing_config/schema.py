"""
Pricing settings schema.

Frozen dataclasses describing the pricing configuration: base prices per
service type, the additional-service catalogue, and the discount tiers.
YAML files are parsed into these types by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pricing_kernel.domain.dtos import ServiceType
from pricing_kernel.domain.rule_engine import RuleFailurePolicy


@dataclass(frozen=True)
class AdditionalServiceDef:
    """An orderable extra with a flat cost in the default currency."""

    service_id: str
    name: str
    cost: Decimal


@dataclass(frozen=True)
class DiscountTier:
    """
    A discount granted once a measure passes ``threshold``.

    ``inclusive`` tiers apply at ``value >= threshold``, the others at
    ``value > threshold``.
    """

    threshold: int
    percentage: Decimal
    reason: str
    inclusive: bool = False

    def applies_to(self, value: int) -> bool:
        return value >= self.threshold if self.inclusive else value > self.threshold


def select_tier(tiers: tuple[DiscountTier, ...], value: int) -> DiscountTier | None:
    """The highest-threshold tier that applies to ``value``, if any."""
    for tier in sorted(tiers, key=lambda t: t.threshold, reverse=True):
        if tier.applies_to(value):
            return tier
    return None


@dataclass(frozen=True)
class PricingSettings:
    """Active pricing configuration."""

    default_currency: str
    base_prices: dict[ServiceType, Decimal]
    additional_services: dict[str, AdditionalServiceDef] = field(default_factory=dict)
    volume_discount_tiers: tuple[DiscountTier, ...] = ()
    country_discount_tiers: tuple[DiscountTier, ...] = ()
    failure_policy: RuleFailurePolicy = RuleFailurePolicy.SKIP_RULE
    checksum: str = ""

    def base_price_for(self, service_type: ServiceType | str) -> Decimal:
        """
        Raises:
            KeyError: no base price is configured for the service type.
        """
        return self.base_prices[ServiceType(service_type)]
