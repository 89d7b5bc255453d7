"""
Rule -- Immutable country pricing rules.

Responsibility:
    Defines Rule, RuleParameter and RuleCondition, the data a rule engine
    evaluates. A Rule pairs an arithmetic expression with the parameters it
    declares, the conditions under which it applies, an effective date
    window and a priority.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Depends on domain.expression (to check the expression parses) and
    domain.context (the numeric standard parameters an expression may read).

Invariants enforced:
    - The expression parses and only reads declared number or boolean
      parameters and numeric standard parameters.
    - ``priority`` lies within [MIN_PRIORITY, MAX_PRIORITY].
    - ``effective_to``, when present, is strictly after ``effective_from``.
    - Parameter names are identifiers and unique (case-insensitive).
    - Update operations return a new Rule and re-run every check.

Failure modes:
    - ValidationError listing every problem found, raised by ``Rule.create``,
      the ``with_*`` updates, and RuleParameter/RuleCondition construction.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import uuid4

from pricing_kernel.domain.context import NUMERIC_STANDARD_PARAMETERS
from pricing_kernel.domain.dtos import ContextValue, RuleType
from pricing_kernel.domain.expression import (
    MAX_EXPRESSION_LENGTH,
    ExpressionEvaluator,
)
from pricing_kernel.exceptions import ValidationError

MIN_PRIORITY = 1
MAX_PRIORITY = 1000
DEFAULT_PRIORITY = 100
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

PARAMETER_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")

_evaluator = ExpressionEvaluator()


class ParameterDataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"


def _parse_default(data_type: ParameterDataType, raw: str) -> ContextValue:
    if data_type is ParameterDataType.NUMBER:
        value = Decimal(raw.strip())
        if not value.is_finite():
            raise InvalidOperation(raw)
        return value
    if data_type is ParameterDataType.BOOLEAN:
        lowered = raw.strip().lower()
        if lowered not in ("true", "false"):
            raise ValueError(raw)
        return lowered == "true"
    if data_type is ParameterDataType.DATE:
        return date.fromisoformat(raw.strip())
    return raw


@dataclass(frozen=True)
class RuleParameter:
    """
    A named, typed input a rule declares.

    ``default_value`` is kept as text, as authored; ``typed_default()``
    reads it as the parameter's data type. An empty default means the
    parameter has no default and must come from the context.
    """

    name: str
    data_type: ParameterDataType = ParameterDataType.NUMBER
    default_value: str = ""

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not isinstance(self.name, str) or not PARAMETER_NAME_PATTERN.match(self.name):
            errors.append(
                f"Parameter name {self.name!r} must start with a letter and contain "
                "only letters, digits or underscores"
            )
        try:
            object.__setattr__(self, "data_type", ParameterDataType(self.data_type))
        except ValueError:
            errors.append(f"Unsupported parameter data type: {self.data_type!r}")
        if self.default_value is None:
            object.__setattr__(self, "default_value", "")
        elif not isinstance(self.default_value, str):
            object.__setattr__(self, "default_value", str(self.default_value))

        if not errors and self.default_value.strip():
            try:
                _parse_default(self.data_type, self.default_value)
            except (InvalidOperation, ValueError):
                errors.append(
                    f"Default value {self.default_value!r} of parameter {self.name} "
                    f"is not a valid {self.data_type.value}"
                )
        if errors:
            raise ValidationError(errors, field="parameters")

    @property
    def has_default(self) -> bool:
        return bool(self.default_value.strip())

    @property
    def is_numeric(self) -> bool:
        """Number and boolean parameters bind into expressions; the others do not."""
        return self.data_type in (ParameterDataType.NUMBER, ParameterDataType.BOOLEAN)

    def typed_default(self) -> ContextValue | None:
        """Default value as a context value, or None when there is none."""
        if not self.has_default:
            return None
        return _parse_default(self.data_type, self.default_value)


@dataclass(frozen=True)
class RuleCondition:
    """``context[parameter] <operator> value``; see ConditionMatcher."""

    parameter: str
    operator: ConditionOperator
    value: str = ""

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not isinstance(self.parameter, str) or not self.parameter.strip():
            errors.append("Condition parameter is required")
        try:
            object.__setattr__(self, "operator", ConditionOperator(self.operator))
        except ValueError:
            errors.append(f"Unsupported condition operator: {self.operator!r}")
        if self.value is None:
            object.__setattr__(self, "value", "")
        elif not isinstance(self.value, str):
            object.__setattr__(self, "value", str(self.value))
        if errors:
            raise ValidationError(errors, field="conditions")


@dataclass(frozen=True)
class Rule:
    """
    A country-scoped, time-bounded, conditionally applicable pricing rule.

    Contract:
        Build through ``Rule.create`` (or the ``with_*`` updates); direct
        construction runs the same checks in ``__post_init__``.

    Guarantees:
        - Immutable; ``parameters`` and ``conditions`` are tuples.
        - ``is_effective_on(d)`` is ``effective_from <= d < effective_to``
          (open-ended when ``effective_to`` is None).
    """

    rule_id: str
    country_code: str
    rule_type: RuleType
    name: str
    expression: str
    effective_from: date
    description: str = ""
    parameters: tuple[RuleParameter, ...] = field(default_factory=tuple)
    conditions: tuple[RuleCondition, ...] = field(default_factory=tuple)
    effective_to: date | None = None
    priority: int = DEFAULT_PRIORITY
    is_active: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.country_code, str):
            object.__setattr__(self, "country_code", self.country_code.strip().upper())
        object.__setattr__(self, "parameters", tuple(self.parameters or ()))
        object.__setattr__(self, "conditions", tuple(self.conditions or ()))
        if self.description is None:
            object.__setattr__(self, "description", "")
        errors = _collect_errors(self)
        if errors:
            raise ValidationError(errors)
        object.__setattr__(self, "rule_type", RuleType(self.rule_type))

    @classmethod
    def create(
        cls,
        country_code: str,
        rule_type: RuleType | str,
        name: str,
        expression: str,
        effective_from: date,
        *,
        description: str = "",
        parameters: list[RuleParameter] | tuple[RuleParameter, ...] = (),
        conditions: list[RuleCondition] | tuple[RuleCondition, ...] = (),
        effective_to: date | None = None,
        priority: int = DEFAULT_PRIORITY,
        is_active: bool = True,
        rule_id: str | None = None,
    ) -> Rule:
        """
        Create a validated rule.

        Raises:
            ValidationError: listing every invalid field.
        """
        return cls(
            rule_id=rule_id or str(uuid4()),
            country_code=country_code,
            rule_type=rule_type,
            name=name,
            description=description,
            expression=expression,
            parameters=tuple(parameters),
            conditions=tuple(conditions),
            effective_from=effective_from,
            effective_to=effective_to,
            priority=priority,
            is_active=is_active,
        )

    # -- queries ---------------------------------------------------------

    @property
    def parameter_names(self) -> frozenset[str]:
        return frozenset(p.name for p in self.parameters)

    def get_parameter(self, name: str) -> RuleParameter | None:
        lowered = name.lower()
        for p in self.parameters:
            if p.name.lower() == lowered:
                return p
        return None

    def is_effective_on(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to

    # -- updates (each returns a new, re-validated Rule) --------------------

    def with_expression(self, expression: str) -> Rule:
        return replace(self, expression=expression)

    def with_effective_dates(
        self, effective_from: date, effective_to: date | None = None
    ) -> Rule:
        return replace(self, effective_from=effective_from, effective_to=effective_to)

    def with_priority(self, priority: int) -> Rule:
        return replace(self, priority=priority)

    def with_active(self, is_active: bool) -> Rule:
        return replace(self, is_active=is_active)

    def with_name(self, name: str) -> Rule:
        return replace(self, name=name)

    def with_description(self, description: str) -> Rule:
        return replace(self, description=description)

    def with_parameter(self, parameter: RuleParameter) -> Rule:
        if self.get_parameter(parameter.name) is not None:
            raise ValidationError(
                f"Parameter {parameter.name} already exists in rule {self.rule_id}",
                field="parameters",
            )
        return replace(self, parameters=self.parameters + (parameter,))

    def without_parameter(self, name: str) -> Rule:
        """Remove a parameter; fails if the expression still reads it."""
        remaining = tuple(p for p in self.parameters if p.name.lower() != name.lower())
        if len(remaining) == len(self.parameters):
            return self
        return replace(self, parameters=remaining)

    def with_condition(self, condition: RuleCondition) -> Rule:
        return replace(self, conditions=self.conditions + (condition,))

    def without_condition(self, parameter: str, operator: ConditionOperator | str) -> Rule:
        op = ConditionOperator(operator)
        remaining = tuple(
            c for c in self.conditions
            if not (c.parameter == parameter and c.operator is op)
        )
        if len(remaining) == len(self.conditions):
            return self
        return replace(self, conditions=remaining)


def expression_parameters(parameters: Iterable[RuleParameter]) -> frozenset[str]:
    """Names a rule expression may read: numeric standard names plus declared
    number and boolean parameters."""
    return NUMERIC_STANDARD_PARAMETERS | {p.name for p in parameters if p.is_numeric}


def _collect_errors(rule: Rule) -> list[str]:
    errors: list[str] = []

    if not isinstance(rule.rule_id, str) or not rule.rule_id.strip():
        errors.append("Rule id is required")
    if not isinstance(rule.country_code, str) or not _COUNTRY_CODE_PATTERN.match(
        rule.country_code
    ):
        errors.append(f"Country code must be two letters, got {rule.country_code!r}")
    try:
        RuleType(rule.rule_type)
    except ValueError:
        errors.append(f"Unknown rule type: {rule.rule_type!r}")

    if not isinstance(rule.name, str) or not rule.name.strip():
        errors.append("Rule name is required")
    elif len(rule.name) > MAX_NAME_LENGTH:
        errors.append(f"Rule name exceeds {MAX_NAME_LENGTH} characters")
    if not isinstance(rule.description, str):
        errors.append("Rule description must be text")
    elif len(rule.description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Rule description exceeds {MAX_DESCRIPTION_LENGTH} characters")

    if isinstance(rule.priority, bool) or not isinstance(rule.priority, int):
        errors.append(f"Priority must be an integer, got {rule.priority!r}")
    elif not MIN_PRIORITY <= rule.priority <= MAX_PRIORITY:
        errors.append(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {rule.priority}"
        )

    if not isinstance(rule.effective_from, date):
        errors.append("Effective from date is required")
    elif rule.effective_to is not None and rule.effective_to <= rule.effective_from:
        errors.append("Effective to date must be after effective from date")

    seen: set[str] = set()
    for p in rule.parameters:
        if not isinstance(p, RuleParameter):
            errors.append(f"Invalid parameter entry: {p!r}")
            continue
        key = p.name.lower()
        if key in seen:
            errors.append(f"Duplicate parameter name: {p.name}")
        seen.add(key)
    for c in rule.conditions:
        if not isinstance(c, RuleCondition):
            errors.append(f"Invalid condition entry: {c!r}")

    if not isinstance(rule.expression, str) or not rule.expression.strip():
        errors.append("Rule expression is required")
    elif len(rule.expression) > MAX_EXPRESSION_LENGTH:
        errors.append(f"Rule expression exceeds {MAX_EXPRESSION_LENGTH} characters")
    else:
        declared = [p for p in rule.parameters if isinstance(p, RuleParameter)]
        result = _evaluator.validate(rule.expression, expression_parameters(declared))
        text_names = {p.name for p in declared if not p.is_numeric}
        for issue in result.errors:
            name = (issue.details or {}).get("parameter")
            if name in text_names:
                errors.append(
                    f"Parameter {name} is not numeric and cannot be used in the expression"
                )
            else:
                errors.append(issue.message)

    return errors
