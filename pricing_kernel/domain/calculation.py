"""
Calculation -- The priced-request aggregate.

Responsibility:
    Owns the countries and additional services of one pricing request,
    keeps ``total_cost`` consistent with them, applies discounts, and
    carries the archive flag.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Owns CalculationCountry and CalculationAdditionalService by value;
    countries and rules are referenced by code only.

Invariants enforced:
    - ``total_cost.currency == currency_code``.
    - Every country and service cost is in ``currency_code``.
    - A country code or service id appears at most once.
    - Without discounts, ``total_cost`` is the sum of country and service
      costs. With discounts, ``total_cost`` is that sum with every recorded
      discount re-applied in order.
    - ``transaction_volume > 0``.

Concurrency:
    Single-writer. Callers serialize mutations of one instance.

Archive state:
    ``archive()``/``unarchive()`` toggle a visibility flag. Archived
    calculations still accept mutations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.dtos import FilingFrequency
from pricing_kernel.domain.values import Currency, Money, to_decimal
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    DuplicateEntryError,
    NotFoundError,
    ValidationError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("domain.calculation")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CalculationCountry:
    calculation_id: str
    country_code: str
    country_cost: Money
    applied_rule_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class CalculationAdditionalService:
    calculation_id: str
    service_id: str
    cost: Money


@dataclass(frozen=True)
class AppliedDiscount:
    """A discount as applied: the amount is what it took off the total."""

    reason: str
    percentage: Decimal
    amount: Money


def _normalize_country_code(country_code: str) -> str:
    if not isinstance(country_code, str) or len(country_code.strip()) != 2:
        raise ValidationError(
            f"Country code must be two letters, got {country_code!r}",
            field="country_code",
        )
    return country_code.strip().upper()


def _parse_frequency(filing_frequency: FilingFrequency | str) -> FilingFrequency:
    try:
        return FilingFrequency(filing_frequency)
    except ValueError as e:
        raise ValidationError(
            f"Unknown filing frequency: {filing_frequency!r}", field="filing_frequency"
        ) from e


def _check_volume(transaction_volume: object) -> int:
    if isinstance(transaction_volume, bool) or not isinstance(transaction_volume, int):
        raise ValidationError(
            f"Transaction volume must be an integer, got {transaction_volume!r}",
            field="transaction_volume",
        )
    if transaction_volume <= 0:
        raise ValidationError(
            "Transaction volume must be greater than zero",
            field="transaction_volume",
        )
    return transaction_volume


class Calculation:
    """
    One priced request spanning one or more countries.

    Build with ``Calculation.create``; the constructor is for rehydration
    from storage and trusts its arguments.
    """

    def __init__(
        self,
        calculation_id: str,
        user_id: str,
        service_id: str,
        transaction_volume: int,
        filing_frequency: FilingFrequency,
        currency: Currency,
        calculation_date: datetime,
        is_archived: bool = False,
    ):
        self.calculation_id = calculation_id
        self.user_id = user_id
        self.service_id = service_id
        self.transaction_volume = transaction_volume
        self.filing_frequency = filing_frequency
        self.currency = currency
        self.calculation_date = calculation_date
        self.is_archived = is_archived
        self.total_cost = Money.zero(currency)
        self._countries: dict[str, CalculationCountry] = {}
        self._services: dict[str, CalculationAdditionalService] = {}
        self._discounts: list[AppliedDiscount] = []

    @classmethod
    def create(
        cls,
        user_id: str,
        service_id: str,
        transaction_volume: int,
        filing_frequency: FilingFrequency | str,
        currency_code: str,
        clock: Clock | None = None,
        calculation_id: str | None = None,
    ) -> Calculation:
        """
        Create an empty calculation.

        Raises:
            ValidationError: listing every missing or invalid field.
            InvalidCurrencyError: ``currency_code`` is not a known currency.
        """
        errors: list[str] = []
        if not isinstance(user_id, str) or not user_id.strip():
            errors.append("User id is required")
        if not isinstance(service_id, str) or not service_id.strip():
            errors.append("Service id is required")
        try:
            _check_volume(transaction_volume)
        except ValidationError as e:
            errors.extend(e.errors)
        frequency = None
        if filing_frequency is None:
            errors.append("Filing frequency is required")
        else:
            try:
                frequency = _parse_frequency(filing_frequency)
            except ValidationError as e:
                errors.extend(e.errors)
        if not currency_code:
            errors.append("Currency code is required")
        if errors:
            raise ValidationError(errors)

        currency = Currency(currency_code)
        clock = clock or SystemClock()
        calculation = cls(
            calculation_id=calculation_id or str(uuid4()),
            user_id=user_id,
            service_id=service_id,
            transaction_volume=transaction_volume,
            filing_frequency=frequency,
            currency=currency,
            calculation_date=clock.now(),
        )
        logger.info(
            "calculation_created",
            extra={
                "calculation_id": calculation.calculation_id,
                "service_id": service_id,
                "transaction_volume": transaction_volume,
                "currency": currency.code,
            },
        )
        return calculation

    # -- queries ---------------------------------------------------------

    @property
    def currency_code(self) -> str:
        return self.currency.code

    @property
    def countries(self) -> dict[str, CalculationCountry]:
        return dict(self._countries)

    @property
    def additional_services(self) -> dict[str, CalculationAdditionalService]:
        return dict(self._services)

    @property
    def applied_discounts(self) -> tuple[AppliedDiscount, ...]:
        return tuple(self._discounts)

    @property
    def countries_count(self) -> int:
        return len(self._countries)

    @property
    def additional_services_count(self) -> int:
        return len(self._services)

    @property
    def discount_total(self) -> Money:
        total = Money.zero(self.currency)
        for d in self._discounts:
            total = total.add(d.amount)
        return total

    def has_country(self, country_code: str) -> bool:
        return country_code.strip().upper() in self._countries

    def get_country_cost(self, country_code: str) -> Money | None:
        entry = self._countries.get(country_code.strip().upper())
        return entry.country_cost if entry else None

    def require_country(self, country_code: str) -> CalculationCountry:
        """
        Raises:
            NotFoundError: the country is not part of this calculation.
        """
        entry = self._countries.get(country_code.strip().upper())
        if entry is None:
            raise NotFoundError("Country", country_code)
        return entry

    # -- countries -------------------------------------------------------

    def add_country(
        self,
        country_code: str,
        cost: Money,
        applied_rule_ids: tuple[str, ...] | list[str] = (),
    ) -> CalculationCountry:
        """
        Raises:
            ValidationError: malformed country code.
            CurrencyMismatchError: ``cost`` is not in the calculation currency.
            DuplicateEntryError: the country is already present.
        """
        code = _normalize_country_code(country_code)
        self._require_currency(cost)
        if code in self._countries:
            raise DuplicateEntryError("Country", code)

        entry = CalculationCountry(
            calculation_id=self.calculation_id,
            country_code=code,
            country_cost=cost,
            applied_rule_ids=tuple(applied_rule_ids),
        )
        self._countries[code] = entry
        if self._discounts:
            self.recalculate_total_cost()
        else:
            self.total_cost = self.total_cost.add(cost)
        return entry

    def remove_country(self, country_code: str) -> bool:
        """
        Remove a country; False when it is not present.

        Raises:
            NegativeResultError: the total would go negative (state unchanged).
        """
        code = country_code.strip().upper() if isinstance(country_code, str) else country_code
        entry = self._countries.get(code)
        if entry is None:
            return False
        if self._discounts:
            del self._countries[code]
            self.recalculate_total_cost()
        else:
            new_total = self.total_cost.subtract(entry.country_cost)
            del self._countries[code]
            self.total_cost = new_total
        return True

    # -- additional services ----------------------------------------------

    def add_additional_service(
        self, service_id: str, cost: Money
    ) -> CalculationAdditionalService:
        """
        Raises:
            ValidationError: empty service id.
            CurrencyMismatchError: ``cost`` is not in the calculation currency.
            DuplicateEntryError: the service is already present.
        """
        if not isinstance(service_id, str) or not service_id.strip():
            raise ValidationError("Service id is required", field="service_id")
        self._require_currency(cost)
        if service_id in self._services:
            raise DuplicateEntryError("Additional service", service_id)

        entry = CalculationAdditionalService(
            calculation_id=self.calculation_id, service_id=service_id, cost=cost
        )
        self._services[service_id] = entry
        if self._discounts:
            self.recalculate_total_cost()
        else:
            self.total_cost = self.total_cost.add(cost)
        return entry

    def remove_additional_service(self, service_id: str) -> bool:
        entry = self._services.get(service_id)
        if entry is None:
            return False
        if self._discounts:
            del self._services[service_id]
            self.recalculate_total_cost()
        else:
            new_total = self.total_cost.subtract(entry.cost)
            del self._services[service_id]
            self.total_cost = new_total
        return True

    # -- totals and discounts ---------------------------------------------

    def gross_total(self) -> Money:
        """Sum of country and service costs, before discounts."""
        total = Money.zero(self.currency)
        for c in self._countries.values():
            total = total.add(c.country_cost)
        for s in self._services.values():
            total = total.add(s.cost)
        return total

    def recalculate_total_cost(self) -> Money:
        """Recompute the total from scratch, re-applying recorded discounts."""
        total = self.gross_total()
        refreshed: list[AppliedDiscount] = []
        for d in self._discounts:
            discounted = total.apply_discount(d.percentage).round()
            refreshed.append(
                AppliedDiscount(
                    reason=d.reason,
                    percentage=d.percentage,
                    amount=total.subtract(discounted),
                )
            )
            total = discounted
        self._discounts = refreshed
        self.total_cost = total
        return total

    def apply_discount(self, percentage: Decimal | int | str, reason: str) -> Money:
        """
        Take ``percentage`` off the current total and return the amount taken.

        Raises:
            ValidationError: percentage outside [0, 100] or empty reason.
        """
        errors: list[str] = []
        pct: Decimal | None = None
        try:
            pct = to_decimal(percentage)
        except ValidationError:
            errors.append(f"Discount percentage must be a number, got {percentage!r}")
        if pct is not None and not (0 <= pct <= _HUNDRED):
            errors.append(f"Discount percentage must be between 0 and 100, got {pct}")
        if not isinstance(reason, str) or not reason.strip():
            errors.append("Discount reason is required")
        if errors:
            raise ValidationError(errors, field="discount")

        old_total = self.total_cost
        new_total = old_total.apply_discount(pct).round()
        amount = old_total.subtract(new_total)
        self._discounts.append(AppliedDiscount(reason=reason, percentage=pct, amount=amount))
        self.total_cost = new_total
        logger.info(
            "discount_applied",
            extra={
                "calculation_id": self.calculation_id,
                "reason": reason,
                "percentage": pct,
                "amount": amount.amount,
            },
        )
        return amount

    # -- simple mutators ---------------------------------------------------

    def update_transaction_volume(self, transaction_volume: int) -> None:
        self.transaction_volume = _check_volume(transaction_volume)

    def update_filing_frequency(self, filing_frequency: FilingFrequency | str) -> None:
        self.filing_frequency = _parse_frequency(filing_frequency)

    def archive(self) -> None:
        self.is_archived = True

    def unarchive(self) -> None:
        self.is_archived = False

    def _require_currency(self, cost: Money) -> None:
        if not isinstance(cost, Money):
            raise TypeError(f"expected Money, got {type(cost).__name__}")
        if cost.currency != self.currency:
            raise CurrencyMismatchError(self.currency.code, cost.currency.code)

    def __repr__(self) -> str:
        return (
            f"Calculation({self.calculation_id!r}, total={self.total_cost}, "
            f"countries={sorted(self._countries)})"
        )

