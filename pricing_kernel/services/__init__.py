"""Collaborator interfaces and in-memory implementations for the pricing kernel."""

from pricing_kernel.services.repositories import (
    CachingRuleRepository,
    CalculationStore,
    InMemoryCalculationStore,
    InMemoryRuleRepository,
    RuleRepository,
)

__all__ = [
    "CachingRuleRepository",
    "CalculationStore",
    "InMemoryCalculationStore",
    "InMemoryRuleRepository",
    "RuleRepository",
]
