#!/usr/bin/env python3
"""
Price a VAT filing request from the command line.

Rules come from a YAML catalogue (default: pricing_config/sets/rules.yaml)
held in memory; settings come from pricing_config.get_active_settings().
Prints the CalculationResult as JSON.

Usage:
    python3 scripts/price.py GB DE FR --volume 500 --frequency Quarterly
    python3 scripts/price.py DE --service ComplexFiling --extra TaxConsultancy
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    from pricing_config import default_rules_path, get_active_settings, load_rules_file
    from pricing_kernel.domain.dtos import FilingFrequency, ServiceType
    from pricing_kernel.logging_config import configure_logging
    from pricing_kernel.services.repositories import InMemoryRuleRepository
    from pricing_services import CalculationRequest, PricingService

    parser = argparse.ArgumentParser(description="Price a multi-country VAT filing request")
    parser.add_argument("countries", nargs="+", help="ISO country codes, e.g. GB DE")
    parser.add_argument("--volume", type=int, default=100, help="Transactions per period")
    parser.add_argument(
        "--frequency",
        choices=[f.value for f in FilingFrequency],
        default=FilingFrequency.QUARTERLY.value,
    )
    parser.add_argument(
        "--service",
        choices=[s.value for s in ServiceType],
        default=ServiceType.STANDARD_FILING.value,
    )
    parser.add_argument("--extra", action="append", default=[], help="Additional service id")
    parser.add_argument("--currency", default=None)
    parser.add_argument("--rules", type=Path, default=default_rules_path())
    parser.add_argument("--verbose", action="store_true", help="Emit structured logs to stderr")
    args = parser.parse_args()

    if args.verbose:
        configure_logging()

    service = PricingService(
        rule_repository=InMemoryRuleRepository(load_rules_file(args.rules)),
        settings=get_active_settings(),
    )
    result = service.calculate(
        CalculationRequest(
            country_codes=tuple(args.countries),
            service_type=args.service,
            transaction_volume=args.volume,
            filing_frequency=args.frequency,
            additional_service_ids=tuple(args.extra),
            currency_code=args.currency,
            user_id="cli",
        )
    )
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
