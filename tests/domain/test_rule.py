"""
Tests for pricing rules (``pricing_kernel.domain.rule``).

Invariants tested:
- Rule.create rejects malformed input and reports every problem at once
- The expression must parse and read only numeric declared or standard parameters
- effective_to is strictly after effective_from
- priority stays within [1, 1000]
- Update operations return new, re-validated rules
"""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal

import pytest

from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import (
    DEFAULT_PRIORITY,
    ConditionOperator,
    ParameterDataType,
    Rule,
    RuleCondition,
    RuleParameter,
)
from pricing_kernel.exceptions import ValidationError

START = date(2024, 1, 1)


def _create(**overrides) -> Rule:
    kwargs = dict(
        country_code="DE",
        rule_type=RuleType.VAT_RATE,
        name="Germany VAT",
        expression="basePrice * (1 + vatRate)",
        effective_from=START,
        parameters=[RuleParameter("vatRate", ParameterDataType.NUMBER, "0.19")],
    )
    kwargs.update(overrides)
    return Rule.create(**kwargs)


# =========================================================================
# RuleParameter / RuleCondition
# =========================================================================


class TestRuleParameter:

    @pytest.mark.parametrize("name", ["vatRate", "a", "rate_2", "X1"])
    def test_valid_names(self, name):
        assert RuleParameter(name).name == name

    @pytest.mark.parametrize("name", ["", "1rate", "_rate", "vat-rate", "vat rate"])
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError):
            RuleParameter(name)

    def test_data_type_from_string(self):
        assert RuleParameter("flag", "boolean").data_type is ParameterDataType.BOOLEAN

    def test_unknown_data_type(self):
        with pytest.raises(ValidationError):
            RuleParameter("x", "money")

    @pytest.mark.parametrize(
        "data_type, raw, expected",
        [
            (ParameterDataType.NUMBER, "0.19", Decimal("0.19")),
            (ParameterDataType.BOOLEAN, "TRUE", True),
            (ParameterDataType.BOOLEAN, "false", False),
            (ParameterDataType.DATE, "2024-03-01", date(2024, 3, 1)),
            (ParameterDataType.STRING, "Monthly", "Monthly"),
        ],
    )
    def test_typed_default(self, data_type, raw, expected):
        assert RuleParameter("p", data_type, raw).typed_default() == expected

    def test_empty_default_means_none(self):
        p = RuleParameter("p", ParameterDataType.NUMBER, "")
        assert not p.has_default
        assert p.typed_default() is None

    @pytest.mark.parametrize(
        "data_type, raw",
        [
            (ParameterDataType.NUMBER, "abc"),
            (ParameterDataType.NUMBER, "Infinity"),
            (ParameterDataType.BOOLEAN, "yes"),
            (ParameterDataType.DATE, "01/03/2024"),
        ],
    )
    def test_invalid_default(self, data_type, raw):
        with pytest.raises(ValidationError):
            RuleParameter("p", data_type, raw)


class TestRuleCondition:

    def test_operator_from_string(self):
        c = RuleCondition("transactionVolume", "greaterThan", "1000")
        assert c.operator is ConditionOperator.GREATER_THAN

    def test_value_coerced_to_text(self):
        assert RuleCondition("transactionVolume", "lessThan", 5).value == "5"  # type: ignore[arg-type]

    def test_unknown_operator(self):
        with pytest.raises(ValidationError):
            RuleCondition("x", "between", "1")

    def test_parameter_required(self):
        with pytest.raises(ValidationError):
            RuleCondition("", ConditionOperator.EQUALS, "1")


# =========================================================================
# Rule.create
# =========================================================================


class TestRuleCreate:

    def test_valid_rule(self):
        rule = _create()
        assert rule.country_code == "DE"
        assert rule.rule_type is RuleType.VAT_RATE
        assert rule.priority == DEFAULT_PRIORITY
        assert rule.is_active
        assert rule.rule_id

    def test_generated_ids_are_unique(self):
        assert _create().rule_id != _create().rule_id

    def test_explicit_id(self):
        assert _create(rule_id="de-vat").rule_id == "de-vat"

    def test_country_code_normalized(self):
        assert _create(country_code="de").country_code == "DE"

    def test_rule_type_from_string(self):
        assert _create(rule_type="threshold").rule_type is RuleType.THRESHOLD

    def test_standard_parameters_need_no_declaration(self):
        rule = _create(
            expression="basePrice + transactionVolume * 0.1 + initialBasePrice",
            parameters=[],
        )
        assert rule.parameter_names == frozenset()

    def test_immutable(self):
        rule = _create()
        with pytest.raises(FrozenInstanceError):
            rule.priority = 5  # type: ignore[misc]

    def test_unparseable_expression(self):
        with pytest.raises(ValidationError) as exc:
            _create(expression="basePrice * (1 + vatRate")
        assert any("Invalid expression" in e for e in exc.value.errors)

    def test_undeclared_parameter(self):
        with pytest.raises(ValidationError) as exc:
            _create(expression="basePrice * surcharge")
        assert any("surcharge" in e for e in exc.value.errors)

    @pytest.mark.parametrize(
        "name",
        ["serviceType", "filingFrequency", "countryCode", "currencyCode", "additionalServices"],
    )
    def test_text_standard_names_not_readable_in_expression(self, name):
        with pytest.raises(ValidationError) as exc:
            _create(expression=f"basePrice * {name}", parameters=[])
        assert any(name in e for e in exc.value.errors)

    @pytest.mark.parametrize(
        "data_type", [ParameterDataType.STRING, ParameterDataType.DATE]
    )
    def test_text_parameter_not_readable_in_expression(self, data_type):
        with pytest.raises(ValidationError) as exc:
            _create(
                expression="basePrice * region",
                parameters=[RuleParameter("region", data_type)],
            )
        assert "Parameter region is not numeric and cannot be used in the expression" in (
            exc.value.errors
        )

    def test_boolean_parameter_readable_in_expression(self):
        rule = _create(
            expression="basePrice * (1 + reduced)",
            parameters=[RuleParameter("reduced", ParameterDataType.BOOLEAN, "true")],
        )
        assert rule.parameter_names == frozenset({"reduced"})

    @pytest.mark.parametrize("priority", [0, 1001, -5])
    def test_priority_out_of_range(self, priority):
        with pytest.raises(ValidationError):
            _create(priority=priority)

    @pytest.mark.parametrize("priority", [1, 1000])
    def test_priority_bounds_inclusive(self, priority):
        assert _create(priority=priority).priority == priority

    def test_effective_to_must_follow_effective_from(self):
        with pytest.raises(ValidationError):
            _create(effective_to=START)

    def test_duplicate_parameter_names(self):
        with pytest.raises(ValidationError) as exc:
            _create(
                parameters=[
                    RuleParameter("vatRate", default_value="0.19"),
                    RuleParameter("VATRATE", default_value="0.2"),
                ]
            )
        assert any("Duplicate parameter" in e for e in exc.value.errors)

    @pytest.mark.parametrize("country", ["D", "DEU", "12", ""])
    def test_invalid_country(self, country):
        with pytest.raises(ValidationError):
            _create(country_code=country)

    def test_field_limits(self):
        with pytest.raises(ValidationError):
            _create(name="x" * 101)
        with pytest.raises(ValidationError):
            _create(description="x" * 501)

    def test_all_problems_reported_together(self):
        with pytest.raises(ValidationError) as exc:
            _create(name="", priority=0, effective_to=date(2000, 1, 1))
        assert len(exc.value.errors) == 3


# =========================================================================
# Queries and updates
# =========================================================================


class TestRuleEffectiveWindow:

    def test_open_ended(self):
        rule = _create()
        assert rule.is_effective_on(START)
        assert rule.is_effective_on(date(2099, 1, 1))
        assert not rule.is_effective_on(date(2023, 12, 31))

    def test_effective_to_is_exclusive(self):
        rule = _create(effective_to=date(2024, 7, 1))
        assert rule.is_effective_on(date(2024, 6, 30))
        assert not rule.is_effective_on(date(2024, 7, 1))


class TestRuleUpdates:

    def test_with_expression_returns_new_rule(self):
        rule = _create()
        updated = rule.with_expression("basePrice * 2")
        assert updated.expression == "basePrice * 2"
        assert rule.expression == "basePrice * (1 + vatRate)"
        assert updated.rule_id == rule.rule_id

    def test_with_expression_validates(self):
        with pytest.raises(ValidationError):
            _create().with_expression("basePrice * unknown")

    def test_with_priority(self):
        assert _create().with_priority(5).priority == 5
        with pytest.raises(ValidationError):
            _create().with_priority(5000)

    def test_with_effective_dates(self):
        updated = _create().with_effective_dates(date(2025, 1, 1), date(2026, 1, 1))
        assert updated.effective_to == date(2026, 1, 1)
        with pytest.raises(ValidationError):
            _create().with_effective_dates(date(2025, 1, 1), date(2024, 1, 1))

    def test_with_active(self):
        assert not _create().with_active(False).is_active

    def test_with_name_and_description(self):
        rule = _create().with_name("Renamed").with_description("Updated text")
        assert (rule.name, rule.description) == ("Renamed", "Updated text")

    def test_with_parameter(self):
        rule = _create(expression="basePrice").with_parameter(RuleParameter("fee", default_value="5"))
        assert rule.get_parameter("FEE").name == "fee"

    def test_with_parameter_duplicate(self):
        with pytest.raises(ValidationError):
            _create().with_parameter(RuleParameter("vatRate"))

    def test_without_parameter_still_referenced(self):
        with pytest.raises(ValidationError):
            _create().without_parameter("vatRate")

    def test_without_parameter(self):
        rule = _create(expression="basePrice").without_parameter("vatRate")
        assert rule.parameters == ()

    def test_conditions(self):
        condition = RuleCondition("filingFrequency", ConditionOperator.EQUALS, "Monthly")
        rule = _create().with_condition(condition)
        assert rule.conditions == (condition,)
        assert rule.without_condition("filingFrequency", "equals").conditions == ()
