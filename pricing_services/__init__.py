"""
pricing_services -- Package init and public API.

Responsibility:
    Orchestration services that compose the pure pricing kernel with its
    collaborators (rule repositories, calculation stores, settings).

Architecture position:
    Services -- orchestration over the kernel and configuration.

    Dependency direction:
        pricing_services/ -> pricing_kernel/  (allowed)
        pricing_services/ -> pricing_config/  (allowed)
        pricing_kernel/   -> pricing_services/ (FORBIDDEN)
        pricing_kernel/   -> pricing_config/   (FORBIDDEN)
"""

from pricing_services.pricing_service import (
    CalculationRequest,
    CalculationResult,
    CalculationStatus,
    CountryResult,
    ExpressionValidationResult,
    PricingService,
)

__all__ = [
    "CalculationRequest",
    "CalculationResult",
    "CalculationStatus",
    "CountryResult",
    "ExpressionValidationResult",
    "PricingService",
]
