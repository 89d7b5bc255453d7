"""Unit tests for the ISO 4217 registry (``pricing_kernel.domain.currency``)."""

from decimal import Decimal

import pytest

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.values import Currency
from pricing_kernel.exceptions import InvalidCurrencyError


class TestCurrencyRegistry:

    @pytest.mark.parametrize("code", ["EUR", "GBP", "usd", " chf "])
    def test_known_codes_valid(self, code):
        assert CurrencyRegistry.is_valid(code)

    @pytest.mark.parametrize("code", ["", "EU", "EURO", "XXX", None])
    def test_unknown_codes_invalid(self, code):
        assert not CurrencyRegistry.is_valid(code)

    def test_validate_normalizes(self):
        assert CurrencyRegistry.validate(" eur ") == "EUR"

    def test_validate_rejects(self):
        with pytest.raises(InvalidCurrencyError) as exc:
            CurrencyRegistry.validate("ABC")
        assert exc.value.code == "INVALID_CURRENCY"

    def test_decimal_places(self):
        assert CurrencyRegistry.get_decimal_places("EUR") == 2
        assert CurrencyRegistry.get_decimal_places("JPY") == 0
        assert CurrencyRegistry.get_decimal_places("BHD") == 3

    def test_quantum(self):
        assert CurrencyRegistry.get_info("EUR").quantum == Decimal("0.01")
        assert CurrencyRegistry.get_info("ISK").quantum == Decimal("1")


class TestCurrency:

    def test_equality_by_code(self):
        assert Currency("eur") == Currency("EUR")

    def test_properties(self):
        c = Currency("GBP")
        assert c.decimal_places == 2
        assert c.name == "Pound Sterling"
        assert str(c) == "GBP"

    def test_invalid(self):
        with pytest.raises(InvalidCurrencyError):
            Currency("ZZZ")

    def test_quantum_after_registry_drops_code(self, monkeypatch):
        currency = Currency("EUR")
        monkeypatch.delitem(CurrencyRegistry._CURRENCIES, "EUR")
        with pytest.raises(InvalidCurrencyError):
            currency.quantum
