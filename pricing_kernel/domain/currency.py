"""Currency -- ISO 4217 registry with minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from pricing_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, for ``Decimal.quantize``."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of ISO 4217 currencies accepted for pricing."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Euro area and EU member state currencies
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "BGN": CurrencyInfo("BGN", 2, "Bulgarian Lev"),
        "CZK": CurrencyInfo("CZK", 2, "Czech Koruna"),
        "DKK": CurrencyInfo("DKK", 2, "Danish Krone"),
        "HUF": CurrencyInfo("HUF", 2, "Hungarian Forint"),
        "PLN": CurrencyInfo("PLN", 2, "Polish Zloty"),
        "RON": CurrencyInfo("RON", 2, "Romanian Leu"),
        "SEK": CurrencyInfo("SEK", 2, "Swedish Krona"),
        # Other European VAT jurisdictions
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "NOK": CurrencyInfo("NOK", 2, "Norwegian Krone"),
        "ISK": CurrencyInfo("ISK", 0, "Icelandic Krona"),
        "RSD": CurrencyInfo("RSD", 2, "Serbian Dinar"),
        "TRY": CurrencyInfo("TRY", 2, "Turkish Lira"),
        "UAH": CurrencyInfo("UAH", 2, "Ukrainian Hryvnia"),
        "MKD": CurrencyInfo("MKD", 2, "Macedonian Denar"),
        "ALL": CurrencyInfo("ALL", 2, "Albanian Lek"),
        "BAM": CurrencyInfo("BAM", 2, "Bosnia and Herzegovina Convertible Mark"),
        "MDL": CurrencyInfo("MDL", 2, "Moldovan Leu"),
        "GEL": CurrencyInfo("GEL", 2, "Georgian Lari"),
        # Major non-European currencies
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar"),
        "NZD": CurrencyInfo("NZD", 2, "New Zealand Dollar"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "INR": CurrencyInfo("INR", 2, "Indian Rupee"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar"),
        "HKD": CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
        "ZAR": CurrencyInfo("ZAR", 2, "South African Rand"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        # Three decimal currencies
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial"),
        "TND": CurrencyInfo("TND", 3, "Tunisian Dinar"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is a known ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code.

        Raises:
            InvalidCurrencyError: if the code is empty, not three letters,
                or not registered.
        """
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(code)
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())
