"""
Pytest fixtures for the pricing kernel test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- ``captured_logs`` for asserting on emitted JSON log records
- A deterministic clock and a ``make_rule`` factory
- Default pricing settings and an in-memory SQLite session
"""

import json
import logging
from datetime import UTC, date, datetime
from io import StringIO

import pytest

from pricing_config import get_active_settings
from pricing_kernel.domain.clock import DeterministicClock
from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import Rule, RuleCondition, RuleParameter
from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

TODAY = date(2024, 6, 1)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pricing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            engine.price_country(...)
            logs = captured_logs()
            assert any(r["message"] == "country_priced" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pricing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 1, 9, 0, 0, tzinfo=UTC))


@pytest.fixture
def make_rule():
    """
    Factory for valid rules with sensible defaults.

    Usage::

        rule = make_rule("DE", "basePrice * 1.19", priority=10, rule_id="de-vat")
    """

    def _make(
        country_code: str = "DE",
        expression: str = "basePrice",
        *,
        rule_id: str | None = None,
        rule_type: RuleType = RuleType.VAT_RATE,
        name: str | None = None,
        priority: int = 100,
        parameters: list[RuleParameter] | tuple[RuleParameter, ...] = (),
        conditions: list[RuleCondition] | tuple[RuleCondition, ...] = (),
        effective_from: date = date(2020, 1, 1),
        effective_to: date | None = None,
        is_active: bool = True,
    ) -> Rule:
        return Rule.create(
            country_code=country_code,
            rule_type=rule_type,
            name=name or f"{country_code} rule {rule_id or priority}",
            expression=expression,
            effective_from=effective_from,
            effective_to=effective_to,
            parameters=parameters,
            conditions=conditions,
            priority=priority,
            is_active=is_active,
            rule_id=rule_id,
        )

    return _make


@pytest.fixture(scope="session")
def settings():
    """Default settings from pricing_config/sets/default.yaml."""
    return get_active_settings()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database with all tables; one session per test."""
    from pricing_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
        reset_engine,
    )

    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    session = get_session()
    yield session
    session.close()
    drop_tables()
    reset_engine()
