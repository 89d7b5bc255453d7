"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides Currency and Money, the only representation of a price anywhere
    in the kernel. Amounts are always Decimal and always non-negative.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Depends only on domain.currency and the exception hierarchy.

Guarantees:
    - Amount and currency are never separated.
    - Arithmetic is exposed as named methods returning new instances;
      there are no operator overloads, so every combination is explicit.
    - Cross-currency add/subtract raise CurrencyMismatchError.
    - Any operation whose result would be negative raises NegativeResultError.

Failure modes:
    - InvalidAmountError on a negative or non-numeric amount.
    - InvalidCurrencyError on an unknown currency code.
    - DivisionByZeroError when dividing by zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    DivisionByZeroError,
    InvalidAmountError,
    InvalidCurrencyError,
    NegativeResultError,
    ValidationError,
)

_HUNDRED = Decimal("100")
_MIN_ROUNDING_PRECISION = 28


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert an int/str/Decimal to Decimal. Floats are rejected."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidAmountError(value, "expected Decimal, int or numeric string")
    try:
        result = Decimal(value.strip() if isinstance(value, str) else value)
    except InvalidOperation as e:
        raise InvalidAmountError(value, "not a number") from e
    if not result.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    return result


@dataclass(frozen=True, slots=True)
class Currency:
    """ISO 4217 currency code, uppercased and validated on construction."""

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CurrencyRegistry.validate(self.code))

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def quantum(self) -> Decimal:
        info = CurrencyRegistry.get_info(self.code)
        if info is None:
            raise InvalidCurrencyError(self.code)
        return info.quantum

    @property
    def name(self) -> str:
        info = CurrencyRegistry.get_info(self.code)
        return info.name if info else self.code

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Non-negative monetary amount in a single currency.

    Contract:
        Pairs a Decimal amount with its Currency. Construction normalizes
        int/str amounts to Decimal and str currencies to Currency.

    Guarantees:
        - Immutable and hashable.
        - ``amount >= 0``.
        - Equality compares amount numerically and currency by code, so
          ``Money.of("10.0", "EUR") == Money.of("10", "EUR")``.

    Non-goals:
        - No currency conversion.
        - No auto-rounding: ``round()`` is explicit.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        amount = to_decimal(self.amount)
        if amount < 0:
            raise InvalidAmountError(self.amount)
        # Normalize negative zero
        object.__setattr__(self, "amount", amount.copy_abs())

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(
                f"currency must be Currency or str, got {type(self.currency)}"
            )

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Factory method for creating Money.

        Raises:
            InvalidAmountError: amount negative or not convertible.
            InvalidCurrencyError: currency not a valid ISO 4217 code.
        """
        return cls(amount=to_decimal(amount), currency=_as_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=_as_currency(currency))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def currency_code(self) -> str:
        return self.currency.code

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor units (ROUND_HALF_UP by default)."""
        # Precision must cover every integer digit plus the minor units.
        digits = max(self.amount.adjusted() + 1, 1) + self.currency.decimal_places
        context = Context(prec=max(digits, _MIN_ROUNDING_PRECISION))
        rounded = self.amount.quantize(
            self.currency.quantum, rounding=rounding, context=context
        )
        return Money(amount=rounded, currency=self.currency)

    def add(self, other: Money) -> Money:
        """Add two Money values of the same currency."""
        self._require_same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other: Money) -> Money:
        """Subtract ``other``; the result must stay non-negative."""
        self._require_same_currency(other)
        result = self.amount - other.amount
        if result < 0:
            raise NegativeResultError("subtract", result, self.currency.code)
        return Money(amount=result, currency=self.currency)

    def multiply(self, factor: Decimal | int | str) -> Money:
        """Multiply by a non-negative scalar."""
        factor = to_decimal(factor)
        result = self.amount * factor
        if result < 0:
            raise NegativeResultError("multiply", result, self.currency.code)
        return Money(amount=result, currency=self.currency)

    def divide(self, divisor: Decimal | int | str) -> Money:
        """Divide by a positive scalar."""
        divisor = to_decimal(divisor)
        if divisor == 0:
            raise DivisionByZeroError(f"{self} / 0")
        result = self.amount / divisor
        if result < 0:
            raise NegativeResultError("divide", result, self.currency.code)
        return Money(amount=result, currency=self.currency)

    def apply_discount(self, percentage: Decimal | int | str) -> Money:
        """Return ``self * (1 - percentage / 100)``, unrounded.

        Raises:
            ValidationError: percentage outside [0, 100].
        """
        percentage = to_decimal(percentage)
        if percentage < 0 or percentage > _HUNDRED:
            raise ValidationError(
                f"Discount percentage must be between 0 and 100, got {percentage}",
                field="percentage",
            )
        return self.multiply((_HUNDRED - percentage) / _HUNDRED)

    def _require_same_currency(self, other: Money) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"expected Money, got {type(other).__name__}")
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def _as_currency(currency: str | Currency) -> Currency:
    return Currency(currency) if isinstance(currency, str) else currency
