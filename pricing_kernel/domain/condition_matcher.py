"""
ConditionMatcher -- Decides whether a rule's conditions hold for a context.

A rule applies only when every one of its conditions matches. Matching
never raises: a condition that cannot be evaluated (missing parameter,
non-numeric comparison) simply does not match, so one odd context value
cannot block pricing of unrelated rules.

Operators:
    equals / notEquals   case-sensitive; numeric comparison when both sides
                         read as numbers ("100" equals 100.0), otherwise the
                         canonical string forms are compared
    greaterThan/lessThan both sides read as Decimal; non-numeric fails closed
    contains             substring of the context value's string form
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal, InvalidOperation

from pricing_kernel.domain.context import value_as_text
from pricing_kernel.domain.dtos import ContextValue
from pricing_kernel.domain.rule import ConditionOperator, RuleCondition
from pricing_kernel.logging_config import get_logger

logger = get_logger("domain.condition_matcher")


def _as_number(value: object) -> Decimal | None:
    if isinstance(value, bool) or isinstance(value, date):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, (str, float)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


class ConditionMatcher:
    """Stateless; safe to share across threads."""

    def matches(
        self,
        conditions: Iterable[RuleCondition],
        context: Mapping[str, ContextValue],
        *,
        rule_id: str | None = None,
    ) -> bool:
        """True iff every condition matches. An empty list always matches."""
        for condition in conditions:
            if not self.matches_condition(condition, context, rule_id=rule_id):
                return False
        return True

    def matches_condition(
        self,
        condition: RuleCondition,
        context: Mapping[str, ContextValue],
        *,
        rule_id: str | None = None,
    ) -> bool:
        if condition.parameter not in context:
            logger.info(
                "condition_parameter_missing",
                extra={
                    "rule_id": rule_id,
                    "parameter": condition.parameter,
                    "operator": condition.operator.value,
                },
            )
            return False

        actual = context[condition.parameter]
        op = condition.operator

        if op in (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS):
            equal = _values_equal(actual, condition.value)
            return equal if op is ConditionOperator.EQUALS else not equal

        if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            left = _as_number(actual)
            right = _as_number(condition.value)
            if left is None or right is None:
                logger.debug(
                    "condition_not_numeric",
                    extra={
                        "rule_id": rule_id,
                        "parameter": condition.parameter,
                        "actual": value_as_text(actual),
                        "expected": condition.value,
                    },
                )
                return False
            return left > right if op is ConditionOperator.GREATER_THAN else left < right

        # CONTAINS
        return condition.value in value_as_text(actual)


def _values_equal(actual: ContextValue, expected: str) -> bool:
    left = _as_number(actual)
    right = _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return value_as_text(actual) == expected
