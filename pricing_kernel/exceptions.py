"""
Typed exception hierarchy for the pricing kernel.

===============================================================================
TYPED EXCEPTIONS
===============================================================================

Every error raised by the kernel is an instance of a dedicated class with a
machine-readable ``code`` class attribute and structured attributes. Callers
catch by type and report by code; they never parse messages.

    try:
        calculation.add_country("DE", cost)
    except DuplicateEntryError as e:
        api_response(code=e.code, key=e.key)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PricingKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- ExpressionError
    |   +-- ExpressionSyntaxError
    |   +-- UnknownParameterError
    |   +-- DivisionByZeroError
    |   +-- InvalidBindingError
    |   +-- AmountOutOfRangeError
    |
    +-- NegativeResultError
    +-- DuplicateEntryError
    +-- NotFoundError

===============================================================================
ERROR CODES
===============================================================================

Category     | Code                | When Raised
-------------|---------------------|---------------------------------------------
Validation   | VALIDATION_ERROR    | Construction input invalid (all problems listed)
             | INVALID_AMOUNT      | Money built with a negative or non-numeric amount
Currency     | INVALID_CURRENCY    | Not a valid ISO 4217 code
             | CURRENCY_MISMATCH   | Mixed currencies in one operation
Expression   | EXPRESSION_SYNTAX   | Malformed rule expression
             | UNKNOWN_PARAMETER   | Identifier with no binding / not declared
             | DIVISION_BY_ZERO    | Divisor evaluated to exactly zero
             | INVALID_BINDING     | Binding value cannot be read as a number
             | AMOUNT_OUT_OF_RANGE | Result too large to hold as a price amount
Arithmetic   | NEGATIVE_RESULT     | Money operation would produce a negative amount
Aggregate    | DUPLICATE_ENTRY     | Country or additional service already present
             | NOT_FOUND           | Requested entry is absent
"""

from __future__ import annotations


class PricingKernelError(Exception):
    """
    Base exception for all pricing kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PRICING_KERNEL_ERROR"


# Validation


class ValidationError(PricingKernelError):
    """One or more input fields failed validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, errors: list[str] | tuple[str, ...] | str, field: str | None = None):
        if isinstance(errors, str):
            errors = (errors,)
        self.errors = tuple(errors)
        self.field = field
        super().__init__("; ".join(self.errors))


class InvalidAmountError(ValidationError):
    """Money amount is negative or not numeric."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str = "amount must be non-negative"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}", field="amount")


# Currency


class CurrencyError(PricingKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class CurrencyMismatchError(CurrencyError):
    """Attempted operation on mismatched currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = currency1
        self.currency2 = currency2
        super().__init__(f"Currency mismatch: {currency1} vs {currency2}")


# Expression


class ExpressionError(PricingKernelError):
    """Base exception for rule expression errors."""

    code: str = "EXPRESSION_ERROR"


class ExpressionSyntaxError(ExpressionError):
    """Expression could not be parsed."""

    code: str = "EXPRESSION_SYNTAX"

    def __init__(self, expression: str, reason: str, position: int | None = None):
        self.expression = expression
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Invalid expression{where}: {reason}")


class UnknownParameterError(ExpressionError):
    """Expression references an identifier with no binding."""

    code: str = "UNKNOWN_PARAMETER"

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Unknown parameter: {parameter}")


class DivisionByZeroError(ExpressionError):
    """Divisor evaluated to exactly zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, detail: str = "division by zero"):
        self.detail = detail
        super().__init__(f"Division by zero: {detail}")


class InvalidBindingError(ExpressionError):
    """A bound value cannot be interpreted as a number."""

    code: str = "INVALID_BINDING"

    def __init__(self, parameter: str, value: object):
        self.parameter = parameter
        self.value = value
        super().__init__(f"Parameter {parameter} is not numeric: {value!r}")


class AmountOutOfRangeError(ExpressionError):
    """Result carries more digits than a price amount can hold."""

    code: str = "AMOUNT_OUT_OF_RANGE"

    def __init__(self, value: object, max_digits: int):
        self.value = value
        self.max_digits = max_digits
        super().__init__(f"Value {value} exceeds {max_digits} digits including minor units")


# Arithmetic and aggregate


class NegativeResultError(PricingKernelError):
    """A Money operation would produce a negative amount."""

    code: str = "NEGATIVE_RESULT"

    def __init__(self, operation: str, result: object, currency: str):
        self.operation = operation
        self.result = result
        self.currency = currency
        super().__init__(
            f"{operation} would produce a negative amount: {result} {currency}"
        )


class DuplicateEntryError(PricingKernelError):
    """An entry with the same key already exists."""

    code: str = "DUPLICATE_ENTRY"

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} already exists: {key}")


class NotFoundError(PricingKernelError):
    """Requested entry does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")
