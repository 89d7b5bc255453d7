"""
Pure domain layer.

This module contains the value objects, rules, evaluator, engine and
aggregate with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Configuration files
- I/O

Value objects and rules are immutable; evaluation is deterministic.
"""

from pricing_kernel.domain.calculation import (
    AppliedDiscount,
    Calculation,
    CalculationAdditionalService,
    CalculationCountry,
)
from pricing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pricing_kernel.domain.condition_matcher import ConditionMatcher
from pricing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pricing_kernel.domain.dtos import (
    ContextValue,
    ErrorInfo,
    FilingFrequency,
    RuleType,
    ServiceType,
    ValidationIssue,
    ValidationResult,
)
from pricing_kernel.domain.expression import ExpressionEvaluator, ParsedExpression, parse_expression
from pricing_kernel.domain.rule import (
    ConditionOperator,
    ParameterDataType,
    Rule,
    RuleCondition,
    RuleParameter,
)
from pricing_kernel.domain.rule_engine import (
    CountryPricing,
    NegativeRuleResultWarning,
    RuleEngine,
    RuleEvaluationWarning,
    RuleFailurePolicy,
)
from pricing_kernel.domain.rule_set import RuleSet
from pricing_kernel.domain.values import Currency, Money

__all__ = [
    "AppliedDiscount",
    "Calculation",
    "CalculationAdditionalService",
    "CalculationCountry",
    "Clock",
    "ConditionMatcher",
    "ConditionOperator",
    "ContextValue",
    "CountryPricing",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "ErrorInfo",
    "ExpressionEvaluator",
    "FilingFrequency",
    "Money",
    "NegativeRuleResultWarning",
    "ParameterDataType",
    "ParsedExpression",
    "Rule",
    "RuleCondition",
    "RuleEngine",
    "RuleEvaluationWarning",
    "RuleFailurePolicy",
    "RuleParameter",
    "RuleSet",
    "RuleType",
    "ServiceType",
    "SystemClock",
    "ValidationIssue",
    "ValidationResult",
    "parse_expression",
]
