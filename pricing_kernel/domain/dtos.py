"""
DTOs -- Pure domain data transfer objects and enumerations.

Responsibility:
    Defines the small immutable structures shared by the expression
    evaluator, rule engine, calculation aggregate and service layer:
    validation results, error info, and the closed enumerations of rule
    types, service types and filing frequencies.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, TypeAlias

# Closed set of values a calculation context may carry.
ContextValue: TypeAlias = str | int | Decimal | bool | date


class RuleType(str, Enum):
    """Category of a pricing rule. Used to scope rule selection."""

    VAT_RATE = "vat_rate"
    THRESHOLD = "threshold"
    COMPLEXITY = "complexity"
    SPECIAL_REQUIREMENT = "special_requirement"
    DISCOUNT = "discount"


class ServiceType(str, Enum):
    """Service level requested by the customer. Determines the base price."""

    STANDARD_FILING = "StandardFiling"
    COMPLEX_FILING = "ComplexFiling"
    PRIORITY_SERVICE = "PriorityService"


class FilingFrequency(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single validation problem.

    Carries a machine-readable code, a human-readable message, an optional
    field path and optional details. Does not raise; it IS the error
    representation at result-returning seams.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    ``is_valid`` is True only when there are no errors, and
    ``bool(result) == result.is_valid``.
    """

    is_valid: bool
    errors: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationIssue) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(e.message for e in self.errors)

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class ErrorInfo:
    """Code and message of a failure, safe to return to API callers."""

    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: Exception) -> ErrorInfo:
        return cls(code=getattr(exc, "code", "INTERNAL_ERROR"), message=str(exc))

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}
