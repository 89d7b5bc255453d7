"""
RuleEngine -- Prices one country by folding its applicable rules.

Responsibility:
    Given a country code, the rules fetched for it, and the calculation
    context, select the applicable rules, order them, and apply them one
    after another to derive the country cost and the ordered ids of the
    rules that fired.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Rule lookup is the caller's job; the engine receives a rule list.

Algorithm:
    1. RuleSet.candidates: country, is_active, effective on the date,
       optional rule type scope.
    2. Drop candidates whose conditions do not match the context.
    3. Order by (priority, rule_id) ascending.
    4. Fold: ``current`` starts at ``context["basePrice"]``. Each rule is
       evaluated with ``basePrice`` bound to ``current`` and
       ``initialBasePrice`` bound to the seed; the result becomes
       ``current`` and the rule id is recorded. A result wider than
       MAX_AMOUNT_DIGITS fails the rule with AmountOutOfRangeError.
    5. Round to the currency and wrap as Money. A negative result is
       clamped to zero with a NegativeRuleResultWarning.

Failure policy (RuleFailurePolicy):
    SKIP_RULE      a failing rule is skipped with a RuleEvaluationWarning
                   and ``current`` is left unchanged (default)
    ABORT_COUNTRY  the first failure ends the country; the result carries
                   the error and no cost
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from pricing_kernel.domain.condition_matcher import ConditionMatcher
from pricing_kernel.domain.context import (
    BASE_PRICE,
    INITIAL_BASE_PRICE,
    numeric_bindings,
)
from pricing_kernel.domain.dtos import ContextValue, ErrorInfo, RuleType
from pricing_kernel.domain.expression import ExpressionEvaluator, coerce_binding
from pricing_kernel.domain.rule import ParameterDataType, Rule
from pricing_kernel.domain.rule_set import RuleSet
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import (
    AmountOutOfRangeError,
    ExpressionError,
    ValidationError,
)
from pricing_kernel.logging_config import LogContext, get_logger

logger = get_logger("domain.rule_engine")

# Digits a price may carry, minor units included.
MAX_AMOUNT_DIGITS = 28


def _fits_amount(value: Decimal, currency: Currency) -> bool:
    return not value or value.adjusted() + 1 + currency.decimal_places <= MAX_AMOUNT_DIGITS


class RuleFailurePolicy(str, Enum):
    SKIP_RULE = "skip_rule"
    ABORT_COUNTRY = "abort_country"


@dataclass(frozen=True)
class RuleEvaluationWarning:
    """A rule failed to evaluate and was skipped."""

    rule_id: str
    code: str
    message: str

    kind = "rule_evaluation"


@dataclass(frozen=True)
class NegativeRuleResultWarning:
    """The folded value came out negative and was clamped to zero."""

    country_code: str
    value: Decimal
    last_rule_id: str | None

    kind = "negative_rule_result"

    @property
    def message(self) -> str:
        return (
            f"Rules for {self.country_code} produced a negative value {self.value}; "
            "cost clamped to zero"
        )


RuleWarning = RuleEvaluationWarning | NegativeRuleResultWarning


@dataclass(frozen=True)
class CountryPricing:
    """Outcome of pricing one country. ``cost`` is None only on failure."""

    country_code: str
    cost: Money | None
    applied_rule_ids: tuple[str, ...] = ()
    warnings: tuple[RuleWarning, ...] = field(default_factory=tuple)
    error: ErrorInfo | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None and self.cost is not None


class RuleEngine:
    """
    Applies pricing rules for one country at a time.

    Holds no per-calculation state, so one engine may price many countries
    concurrently.
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator | None = None,
        failure_policy: RuleFailurePolicy = RuleFailurePolicy.SKIP_RULE,
        matcher: ConditionMatcher | None = None,
    ):
        self._evaluator = evaluator or ExpressionEvaluator()
        self._matcher = matcher or ConditionMatcher()
        self.failure_policy = RuleFailurePolicy(failure_policy)

    def applicable_rules(
        self,
        country_code: str,
        rules: Iterable[Rule],
        context: Mapping[str, ContextValue],
        evaluation_date: date,
        rule_types: Iterable[RuleType] | None = None,
    ) -> list[Rule]:
        """Candidates whose conditions match, in evaluation order."""
        rule_set = rules if isinstance(rules, RuleSet) else RuleSet(rules)
        return [
            rule
            for rule in rule_set.candidates(country_code, evaluation_date, rule_types)
            if self._matcher.matches(rule.conditions, context, rule_id=rule.rule_id)
        ]

    def price_country(
        self,
        country_code: str,
        rules: Iterable[Rule],
        context: Mapping[str, ContextValue],
        currency_code: str | Currency,
        evaluation_date: date,
        rule_types: Iterable[RuleType] | None = None,
    ) -> CountryPricing:
        """
        Derive the cost for ``country_code``.

        Raises:
            ValidationError: the context has no numeric ``basePrice``.
            InvalidCurrencyError: ``currency_code`` is not a known currency.
        """
        currency = currency_code if isinstance(currency_code, Currency) else Currency(currency_code)
        country_code = country_code.strip().upper()
        if BASE_PRICE not in context:
            raise ValidationError(f"Context is missing {BASE_PRICE}", field=BASE_PRICE)
        try:
            seed = coerce_binding(BASE_PRICE, context[BASE_PRICE])
        except ExpressionError as e:
            raise ValidationError(str(e), field=BASE_PRICE) from e
        if not _fits_amount(seed, currency):
            raise ValidationError(
                f"{BASE_PRICE} exceeds {MAX_AMOUNT_DIGITS} digits", field=BASE_PRICE
            )

        with LogContext.bind(country_code=country_code):
            applicable = self.applicable_rules(
                country_code, rules, context, evaluation_date, rule_types
            )
            base_bindings = numeric_bindings(context)
            current = seed
            applied: list[str] = []
            warnings: list[RuleWarning] = []

            for rule in applicable:
                bindings = self._bindings_for(rule, base_bindings, seed, current)
                try:
                    result = self._evaluator.evaluate(rule.expression, bindings)
                    if not _fits_amount(result, currency):
                        raise AmountOutOfRangeError(result, MAX_AMOUNT_DIGITS)
                except ExpressionError as e:
                    if self.failure_policy is RuleFailurePolicy.ABORT_COUNTRY:
                        logger.warning(
                            "country_aborted",
                            extra={"rule_id": rule.rule_id, "error_code": e.code},
                        )
                        return CountryPricing(
                            country_code=country_code,
                            cost=None,
                            applied_rule_ids=tuple(applied),
                            error=ErrorInfo(
                                code=e.code,
                                message=f"Rule {rule.rule_id} failed: {e}",
                            ),
                        )
                    logger.warning(
                        "rule_skipped",
                        extra={"rule_id": rule.rule_id, "error_code": e.code},
                    )
                    warnings.append(
                        RuleEvaluationWarning(rule_id=rule.rule_id, code=e.code, message=str(e))
                    )
                    continue

                logger.debug(
                    "rule_applied",
                    extra={
                        "rule_id": rule.rule_id,
                        "priority": rule.priority,
                        "input_value": current,
                        "output_value": result,
                    },
                )
                current = result
                applied.append(rule.rule_id)

            if current < 0:
                warnings.append(
                    NegativeRuleResultWarning(
                        country_code=country_code,
                        value=current,
                        last_rule_id=applied[-1] if applied else None,
                    )
                )
                logger.warning("negative_rule_result", extra={"value": current})
                cost = Money.zero(currency)
            else:
                cost = Money(current, currency).round()

            logger.info(
                "country_priced",
                extra={
                    "cost": cost.amount,
                    "currency": currency.code,
                    "applied_rule_ids": applied,
                    "warning_count": len(warnings),
                },
            )
            return CountryPricing(
                country_code=country_code,
                cost=cost,
                applied_rule_ids=tuple(applied),
                warnings=tuple(warnings),
            )

    @staticmethod
    def _bindings_for(
        rule: Rule,
        base_bindings: Mapping[str, object],
        seed: Decimal,
        current: Decimal,
    ) -> dict[str, object]:
        bindings: dict[str, object] = dict(base_bindings)
        for p in rule.parameters:
            if p.name in bindings or not p.has_default:
                continue
            if p.data_type in (ParameterDataType.NUMBER, ParameterDataType.BOOLEAN):
                bindings[p.name] = p.typed_default()
        bindings[INITIAL_BASE_PRICE] = seed
        bindings[BASE_PRICE] = current
        return bindings
