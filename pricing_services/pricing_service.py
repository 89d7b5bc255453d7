"""
PricingService -- Entry point for pricing requests and expression dry-runs.

Responsibility:
    Turns a CalculationRequest into a CalculationResult: validates the
    request, builds the calculation context, prices each country through
    the RuleEngine with rules fetched from a RuleRepository, adds the
    requested additional services, applies the configured volume and
    multi-country discounts, and optionally stores the Calculation.
    Also offers ``validate_expression``, a side-effect-free dry-run for
    rule authoring tools.

Architecture position:
    Kernel > Services -- imperative shell over the pure domain core.

Failure modes:
    - Any PricingKernelError raised while handling a request is returned as
      a REJECTED CalculationResult carrying ``ErrorInfo(code, message)``;
      no traceback or expression internals reach the caller.
    - A country that cannot be priced (ABORT_COUNTRY policy) is listed in
      ``failures``; the remaining countries are still priced and the status
      is PARTIAL.
    - Rule lookup errors from the repository propagate; fetching rules is
      the collaborator's concern.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pricing_config.schema import PricingSettings, select_tier
from pricing_kernel.domain import context as ctx
from pricing_kernel.domain.calculation import Calculation
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.dtos import (
    ContextValue,
    ErrorInfo,
    FilingFrequency,
    RuleType,
    ServiceType,
)
from pricing_kernel.domain.expression import ExpressionEvaluator
from pricing_kernel.domain.rule import (
    ParameterDataType,
    RuleParameter,
    expression_parameters,
)
from pricing_kernel.domain.rule_engine import CountryPricing, RuleEngine
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import PricingKernelError, ValidationError
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_kernel.services.repositories import CalculationStore, RuleRepository

logger = get_logger("services.pricing")

_COUNTRY_CODE = re.compile(r"^[A-Za-z]{2}$")


class CalculationStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CalculationRequest:
    """A pricing request as received from the API layer."""

    country_codes: tuple[str, ...]
    service_type: ServiceType | str
    transaction_volume: int
    filing_frequency: FilingFrequency | str
    additional_service_ids: tuple[str, ...] = ()
    currency_code: str | None = None
    user_id: str = "anonymous"
    parameters: Mapping[str, ContextValue] = field(default_factory=dict)
    rule_types: tuple[RuleType, ...] | None = None
    evaluation_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "country_codes", tuple(self.country_codes or ()))
        object.__setattr__(
            self, "additional_service_ids", tuple(self.additional_service_ids or ())
        )


@dataclass(frozen=True)
class CountryResult:
    country_code: str
    cost: Money
    applied_rule_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "country_code": self.country_code,
            "cost": str(self.cost.amount),
            "applied_rule_ids": list(self.applied_rule_ids),
        }


@dataclass(frozen=True)
class CalculationResult:
    """Outcome of ``PricingService.calculate``."""

    status: CalculationStatus
    calculation_id: str | None = None
    total_cost: Money | None = None
    currency: str | None = None
    per_country: tuple[CountryResult, ...] = ()
    additional_services: dict[str, Money] = field(default_factory=dict)
    applied_discounts: dict[str, Money] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    failures: dict[str, ErrorInfo] = field(default_factory=dict)
    error: ErrorInfo | None = None

    @property
    def is_success(self) -> bool:
        return self.status is not CalculationStatus.REJECTED

    @classmethod
    def rejected(cls, error: ErrorInfo) -> CalculationResult:
        return cls(status=CalculationStatus.REJECTED, error=error)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation; amounts are decimal strings."""
        return {
            "status": self.status.value,
            "calculation_id": self.calculation_id,
            "total_cost": str(self.total_cost.amount) if self.total_cost else None,
            "currency": self.currency,
            "per_country": [c.to_dict() for c in self.per_country],
            "additional_services": {
                k: str(v.amount) for k, v in self.additional_services.items()
            },
            "applied_discounts": {
                k: str(v.amount) for k, v in self.applied_discounts.items()
            },
            "warnings": list(self.warnings),
            "failures": {k: v.to_dict() for k, v in self.failures.items()},
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class ExpressionValidationResult:
    is_valid: bool
    message: str
    evaluation_result: Decimal | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "evaluation_result": (
                str(self.evaluation_result) if self.evaluation_result is not None else None
            ),
            "error_code": self.error_code,
        }


class PricingService:
    """
    Prices multi-country VAT filing requests.

    Collaborators are injected: the rule repository (required), the
    settings, an optional calculation store and a clock. The service keeps
    no per-request state; each call builds its own Calculation.
    """

    def __init__(
        self,
        rule_repository: RuleRepository,
        settings: PricingSettings,
        calculation_store: CalculationStore | None = None,
        engine: RuleEngine | None = None,
        evaluator: ExpressionEvaluator | None = None,
        clock: Clock | None = None,
    ):
        self._rules = rule_repository
        self._settings = settings
        self._store = calculation_store
        self._evaluator = evaluator or ExpressionEvaluator()
        self._engine = engine or RuleEngine(
            evaluator=self._evaluator, failure_policy=settings.failure_policy
        )
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # calculate
    # ------------------------------------------------------------------

    def calculate(self, request: CalculationRequest) -> CalculationResult:
        """Price ``request``. Never raises for domain errors; see module docs."""
        with LogContext.bind(correlation_id=str(uuid4()), user_id=request.user_id):
            try:
                return self._calculate(request)
            except PricingKernelError as e:
                logger.warning(
                    "calculation_rejected",
                    extra={"error_code": e.code, "error_message": str(e)},
                )
                return CalculationResult.rejected(ErrorInfo.from_exception(e))

    def _calculate(self, request: CalculationRequest) -> CalculationResult:
        service_type, frequency, countries = self._validate_request(request)
        currency = Currency(request.currency_code or self._settings.default_currency)
        evaluation_date = request.evaluation_date or self._clock.today()

        calculation = Calculation.create(
            user_id=request.user_id,
            service_id=service_type.value,
            transaction_volume=request.transaction_volume,
            filing_frequency=frequency,
            currency_code=currency.code,
            clock=self._clock,
        )

        with LogContext.bind(calculation_id=calculation.calculation_id):
            base_context = self._build_context(request, service_type, frequency, currency)
            warnings: list[str] = []
            failures: dict[str, ErrorInfo] = {}

            for code in countries:
                pricing = self._price_country(
                    code, base_context, currency, evaluation_date, request.rule_types
                )
                warnings.extend(f"{code}: {w.message}" for w in pricing.warnings)
                if pricing.is_success:
                    calculation.add_country(code, pricing.cost, pricing.applied_rule_ids)
                else:
                    failures[code] = pricing.error

            for service_id in request.additional_service_ids:
                definition = self._settings.additional_services[service_id]
                calculation.add_additional_service(
                    service_id, Money.of(definition.cost, currency).round()
                )

            self._apply_discounts(calculation)

            if self._store is not None:
                self._store.save(calculation)

            status = CalculationStatus.SUCCESS
            if failures:
                status = (
                    CalculationStatus.PARTIAL
                    if calculation.countries_count
                    else CalculationStatus.REJECTED
                )
            logger.info(
                "PRICING_TRACE",
                extra={
                    "status": status.value,
                    "total_cost": calculation.total_cost.amount,
                    "currency": currency.code,
                    "countries": sorted(calculation.countries),
                    "failed_countries": sorted(failures),
                    "discount_total": calculation.discount_total.amount,
                },
            )
            return self._to_result(calculation, status, warnings, failures)

    def _validate_request(
        self, request: CalculationRequest
    ) -> tuple[ServiceType, FilingFrequency, list[str]]:
        errors: list[str] = []

        if not request.country_codes:
            errors.append("At least one country is required")
        countries: list[str] = []
        for code in request.country_codes:
            if not isinstance(code, str) or not _COUNTRY_CODE.match(code.strip()):
                errors.append(f"Country code must be two letters, got {code!r}")
                continue
            normalized = code.strip().upper()
            if normalized in countries:
                errors.append(f"Duplicate country code: {normalized}")
                continue
            countries.append(normalized)

        volume = request.transaction_volume
        if isinstance(volume, bool) or not isinstance(volume, int) or volume <= 0:
            errors.append("Transaction volume must be a positive integer")

        service_type = None
        try:
            service_type = ServiceType(request.service_type)
        except ValueError:
            errors.append(f"Unknown service type: {request.service_type!r}")
        else:
            if service_type not in self._settings.base_prices:
                errors.append(f"No base price configured for {service_type.value}")

        frequency = None
        try:
            frequency = FilingFrequency(request.filing_frequency)
        except ValueError:
            errors.append(f"Unknown filing frequency: {request.filing_frequency!r}")

        seen: set[str] = set()
        for service_id in request.additional_service_ids:
            if service_id not in self._settings.additional_services:
                errors.append(f"Unknown additional service: {service_id}")
            elif service_id in seen:
                errors.append(f"Duplicate additional service: {service_id}")
            seen.add(service_id)

        if errors:
            raise ValidationError(errors)
        return service_type, frequency, countries

    def _build_context(
        self,
        request: CalculationRequest,
        service_type: ServiceType,
        frequency: FilingFrequency,
        currency: Currency,
    ) -> dict[str, ContextValue]:
        context: dict[str, ContextValue] = dict(request.parameters)
        context.update({
            ctx.BASE_PRICE: self._settings.base_price_for(service_type),
            ctx.TRANSACTION_VOLUME: request.transaction_volume,
            ctx.SERVICE_TYPE: service_type.value,
            ctx.FILING_FREQUENCY: frequency.value,
            ctx.COUNTRIES_COUNT: len(request.country_codes),
            ctx.ADDITIONAL_SERVICES_COUNT: len(request.additional_service_ids),
            ctx.ADDITIONAL_SERVICES: ",".join(request.additional_service_ids),
            ctx.CURRENCY_CODE: currency.code,
        })
        return context

    def _price_country(
        self,
        country_code: str,
        base_context: Mapping[str, ContextValue],
        currency: Currency,
        evaluation_date: date,
        rule_types: tuple[RuleType, ...] | None,
    ) -> CountryPricing:
        rules = self._rules.get_active_rules(country_code, None, evaluation_date)
        context = dict(base_context)
        context[ctx.COUNTRY_CODE] = country_code
        return self._engine.price_country(
            country_code, rules, context, currency, evaluation_date, rule_types
        )

    def _apply_discounts(self, calculation: Calculation) -> None:
        volume_tier = select_tier(
            self._settings.volume_discount_tiers, calculation.transaction_volume
        )
        if volume_tier is not None and not calculation.total_cost.is_zero:
            calculation.apply_discount(volume_tier.percentage, volume_tier.reason)

        country_tier = select_tier(
            self._settings.country_discount_tiers, calculation.countries_count
        )
        if country_tier is not None and not calculation.total_cost.is_zero:
            calculation.apply_discount(country_tier.percentage, country_tier.reason)

    @staticmethod
    def _to_result(
        calculation: Calculation,
        status: CalculationStatus,
        warnings: list[str],
        failures: dict[str, ErrorInfo],
    ) -> CalculationResult:
        discounts: dict[str, Money] = {}
        for d in calculation.applied_discounts:
            previous = discounts.get(d.reason)
            discounts[d.reason] = previous.add(d.amount) if previous else d.amount
        return CalculationResult(
            status=status,
            calculation_id=calculation.calculation_id,
            total_cost=calculation.total_cost,
            currency=calculation.currency_code,
            per_country=tuple(
                CountryResult(
                    country_code=c.country_code,
                    cost=c.country_cost,
                    applied_rule_ids=c.applied_rule_ids,
                )
                for c in calculation.countries.values()
            ),
            additional_services={
                s.service_id: s.cost for s in calculation.additional_services.values()
            },
            applied_discounts=discounts,
            warnings=tuple(warnings),
            failures=failures,
        )

    # ------------------------------------------------------------------
    # validate_expression
    # ------------------------------------------------------------------

    def validate_expression(
        self,
        expression: str,
        parameters: list[RuleParameter] | tuple[RuleParameter, ...] = (),
        sample_values: Mapping[str, object] | None = None,
    ) -> ExpressionValidationResult:
        """
        Dry-run an expression for rule authoring.

        Checks syntax and identifiers against the declared number and boolean
        parameters plus the numeric standard context parameters. When
        ``sample_values`` are given, also evaluates with them, falling back to
        parameter defaults.
        """
        declared = expression_parameters(parameters)
        validation = self._evaluator.validate(expression, declared)
        if not validation.is_valid:
            first = validation.errors[0]
            return ExpressionValidationResult(
                is_valid=False,
                message="; ".join(validation.messages),
                error_code=first.code,
            )
        if sample_values is None:
            return ExpressionValidationResult(is_valid=True, message="Expression is valid")

        bindings: dict[str, object] = {}
        for p in parameters:
            if p.has_default and p.data_type in (
                ParameterDataType.NUMBER,
                ParameterDataType.BOOLEAN,
            ):
                bindings[p.name] = p.typed_default()
        bindings.update(sample_values)
        try:
            result = self._evaluator.evaluate(expression, bindings)
        except PricingKernelError as e:
            return ExpressionValidationResult(
                is_valid=False, message=str(e), error_code=e.code
            )
        return ExpressionValidationResult(
            is_valid=True,
            message="Expression is valid",
            evaluation_result=result,
        )
