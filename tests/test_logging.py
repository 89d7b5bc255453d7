"""Tests for the structured logging system (pricing_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite default."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "pricing_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("country_priced", extra={"cost": Decimal("120.00"), "rules": ("a", "b")})

        record = _parse_log(stream)
        assert record["cost"] == "120.00"
        assert record["rules"] == ["a", "b"]

    def test_set_fields_sorted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("countries", extra={"countries": frozenset({"GB", "DE"})})

        assert _parse_log(stream)["countries"] == ["DE", "GB"]

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", calculation_id="calc-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["calculation_id"] == "calc-1"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_pricing_exception_code_extracted(self):
        """Pricing kernel exceptions carry a .code attribute."""
        from pricing_kernel.exceptions import UnknownParameterError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnknownParameterError("vatRate")
        except UnknownParameterError:
            get_logger("test").error("expression_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "UNKNOWN_PARAMETER"
        assert record["exc_parameter"] == "vatRate"


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_ignores_none(self):
        LogContext.set(user_id="u1")
        LogContext.set(user_id=None, country_code="DE")
        assert LogContext.get_all() == {"user_id": "u1", "country_code": "DE"}

    def test_bind_restores_previous_values(self):
        LogContext.set(country_code="GB")
        with LogContext.bind(country_code="DE", rule_id="r1"):
            assert LogContext.get_all()["country_code"] == "DE"
            assert LogContext.get_all()["rule_id"] == "r1"
        assert LogContext.get_all() == {"country_code": "GB"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(something_else="x"):
            assert LogContext.get_all() == {}

    def test_set_ignores_unknown_fields(self):
        LogContext.set(country_code="DE", ledger="x")
        assert LogContext.get_all() == {"country_code": "DE"}

    def test_clear(self):
        LogContext.set(correlation_id="c", user_id="u")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_filters(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_does_not_propagate_to_root(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        assert logging.getLogger("pricing_kernel").propagate is False


# ---------------------------------------------------------------------------
# Pricing trace
# ---------------------------------------------------------------------------


class TestPricingTrace:

    def test_calculation_logs_carry_context(self, make_rule, settings, clock):
        from pricing_kernel.services import InMemoryRuleRepository
        from pricing_services import CalculationRequest, PricingService

        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        service = PricingService(
            InMemoryRuleRepository([make_rule("DE", "basePrice * 2", rule_id="de-x")]),
            settings,
            clock=clock,
        )
        service.calculate(
            CalculationRequest(
                country_codes=("DE",),
                service_type="StandardFiling",
                transaction_volume=10,
                filing_frequency="Monthly",
                user_id="u9",
            )
        )

        records = _parse_all_logs(stream)
        priced = next(r for r in records if r["message"] == "country_priced")
        assert priced["country_code"] == "DE"
        assert priced["user_id"] == "u9"
        assert priced["applied_rule_ids"] == ["de-x"]
        trace = next(r for r in records if r["message"] == "PRICING_TRACE")
        assert trace["status"] == "success"
        assert trace["total_cost"] == "200.00"
        assert "calculation_id" in trace
