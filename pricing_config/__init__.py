"""
pricing_config -- single public entrypoint for pricing settings.

Responsibility:
    Provides the runtime pricing settings through ``get_active_settings()``.
    Services receive a ``PricingSettings`` instead of reading files or
    environment variables themselves.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``KeyError`` / ``ValueError`` -- the settings file is incomplete or
      holds invalid values.

Every successful call emits a ``PRICING_CONFIG_TRACE`` log entry carrying
the settings checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pricing_config.loader import load_rules_file, load_yaml_file, parse_settings
from pricing_config.schema import (
    AdditionalServiceDef,
    DiscountTier,
    PricingSettings,
    select_tier,
)

_logger = logging.getLogger("pricing_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
SETTINGS_FILE = "default.yaml"
RULES_FILE = "rules.yaml"


def get_active_settings(config_dir: Path | None = None) -> PricingSettings:
    """Load and parse the pricing settings from ``config_dir``."""
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    settings = parse_settings(load_yaml_file(sets_dir / SETTINGS_FILE))
    _logger.info(
        "PRICING_CONFIG_TRACE",
        extra={
            "config_dir": str(sets_dir),
            "checksum": settings.checksum,
            "default_currency": settings.default_currency,
            "additional_service_count": len(settings.additional_services),
        },
    )
    return settings


def default_rules_path() -> Path:
    return _DEFAULT_CONFIG_DIR / RULES_FILE


__all__ = [
    "AdditionalServiceDef",
    "DiscountTier",
    "PricingSettings",
    "default_rules_path",
    "get_active_settings",
    "load_rules_file",
    "select_tier",
]
