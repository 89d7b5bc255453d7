"""
Tests for the in-memory repositories and the caching decorator.

Invariants tested:
- The cache never stores a lookup that overlapped a write for its country
- The cache stays within max_entries, evicting the least recently used
"""

from datetime import date

import pytest

from pricing_kernel.domain.calculation import Calculation
from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.exceptions import NotFoundError, ValidationError
from pricing_kernel.services import (
    CachingRuleRepository,
    CalculationStore,
    InMemoryCalculationStore,
    InMemoryRuleRepository,
    RuleRepository,
)


@pytest.fixture
def repository(make_rule):
    return InMemoryRuleRepository(
        [
            make_rule("DE", rule_id="de-vat", rule_type=RuleType.VAT_RATE),
            make_rule("DE", rule_id="de-threshold", rule_type=RuleType.THRESHOLD),
            make_rule("DE", rule_id="de-off", is_active=False),
            make_rule(
                "DE",
                rule_id="de-old",
                effective_from=date(2010, 1, 1),
                effective_to=date(2015, 1, 1),
            ),
            make_rule("GB", rule_id="gb-vat"),
        ]
    )


class TestInMemoryRuleRepository:

    def test_satisfies_protocol(self, repository):
        assert isinstance(repository, RuleRepository)

    def test_filters_inactive_and_other_countries(self, repository):
        ids = {r.rule_id for r in repository.get_active_rules("de")}
        assert ids == {"de-vat", "de-threshold", "de-old"}

    def test_filters_by_type(self, repository):
        rules = repository.get_active_rules("DE", RuleType.THRESHOLD)
        assert [r.rule_id for r in rules] == ["de-threshold"]

    def test_filters_by_date(self, repository, today):
        ids = {r.rule_id for r in repository.get_active_rules("DE", as_of=today)}
        assert "de-old" not in ids
        ids = {r.rule_id for r in repository.get_active_rules("DE", as_of=date(2012, 1, 1))}
        assert ids == {"de-old"}

    def test_save_replaces_by_id(self, repository):
        rule = repository.get("gb-vat")
        repository.save(rule.with_expression("basePrice * 2"))
        assert repository.get("gb-vat").expression == "basePrice * 2"
        assert len(repository) == 5

    def test_deactivate(self, repository):
        repository.deactivate("gb-vat")
        assert repository.get_active_rules("GB") == []

    def test_deactivate_unknown(self, repository):
        with pytest.raises(NotFoundError):
            repository.deactivate("nope")


class TestCachingRuleRepository:

    def test_second_lookup_is_a_hit(self, repository, today):
        cache = CachingRuleRepository(repository)
        first = cache.get_active_rules("DE", None, today)
        second = cache.get_active_rules("de", None, today)
        assert first == second
        assert (cache.hits, cache.misses) == (1, 1)

    def test_keys_include_type_and_date(self, repository, today):
        cache = CachingRuleRepository(repository)
        cache.get_active_rules("DE", None, today)
        cache.get_active_rules("DE", RuleType.VAT_RATE, today)
        cache.get_active_rules("DE", None, date(2012, 1, 1))
        assert cache.misses == 3

    def test_returned_list_is_a_copy(self, repository, today):
        cache = CachingRuleRepository(repository)
        cache.get_active_rules("DE", None, today).clear()
        assert len(cache.get_active_rules("DE", None, today)) == 2

    def test_save_invalidates_country(self, repository, today):
        cache = CachingRuleRepository(repository)
        cache.get_active_rules("DE", None, today)
        cache.get_active_rules("GB", None, today)

        rule = repository.get("de-vat")
        cache.save(rule.with_expression("basePrice * 3"))

        rules = cache.get_active_rules("DE", None, today)
        assert any(r.expression == "basePrice * 3" for r in rules)
        cache.get_active_rules("GB", None, today)
        assert cache.hits == 1

    def test_deactivate_invalidates_country(self, repository, today):
        cache = CachingRuleRepository(repository)
        assert len(cache.get_active_rules("GB", None, today)) == 1
        cache.deactivate("gb-vat")
        assert cache.get_active_rules("GB", None, today) == []

    def test_invalidate_all(self, repository, today, captured_logs):
        cache = CachingRuleRepository(repository)
        cache.get_active_rules("DE", None, today)
        cache.get_active_rules("GB", None, today)
        assert cache.invalidate() == 2
        assert any(r["message"] == "rule_cache_invalidated" for r in captured_logs())

    def test_write_during_lookup_is_not_cached(self, make_rule, today):
        inner = _DeactivatesWhileFetching([make_rule("GB", rule_id="gb-vat")])
        cache = CachingRuleRepository(inner)
        inner.cache = cache

        first = cache.get_active_rules("GB", None, today)
        assert [r.rule_id for r in first] == ["gb-vat"]
        assert len(cache) == 0
        assert cache.get_active_rules("GB", None, today) == []
        assert cache.misses == 2

    def test_invalidate_all_during_lookup_is_not_cached(self, make_rule, today):
        inner = _DeactivatesWhileFetching(
            [make_rule("GB", rule_id="gb-vat")], invalidate_all=True
        )
        cache = CachingRuleRepository(inner)
        inner.cache = cache

        cache.get_active_rules("GB", None, today)
        assert len(cache) == 0

    def test_evicts_least_recently_used(self, repository):
        cache = CachingRuleRepository(repository, max_entries=2)
        cache.get_active_rules("DE", None, date(2024, 1, 1))
        cache.get_active_rules("DE", None, date(2024, 2, 1))
        cache.get_active_rules("DE", None, date(2024, 1, 1))
        cache.get_active_rules("DE", None, date(2024, 3, 1))
        assert len(cache) == 2

        cache.get_active_rules("DE", None, date(2024, 1, 1))
        cache.get_active_rules("DE", None, date(2024, 2, 1))
        assert (cache.hits, cache.misses) == (2, 4)

    def test_max_entries_must_be_positive(self, repository):
        with pytest.raises(ValidationError):
            CachingRuleRepository(repository, max_entries=0)


class _DeactivatesWhileFetching(InMemoryRuleRepository):
    """Writes through the cache once, after reading but before returning."""

    def __init__(self, rules, invalidate_all=False):
        super().__init__(rules)
        self.cache = None
        self._invalidate_all = invalidate_all
        self._pending = True

    def get_active_rules(self, country_code, rule_type=None, as_of=None):
        rules = super().get_active_rules(country_code, rule_type, as_of)
        if self._pending:
            self._pending = False
            if self._invalidate_all:
                self.cache.invalidate()
            else:
                self.cache.deactivate(rules[0].rule_id)
        return rules


class TestInMemoryCalculationStore:

    def test_save_and_load(self, clock):
        store = InMemoryCalculationStore()
        assert isinstance(store, CalculationStore)
        calculation = Calculation.create("u1", "StandardFiling", 10, "Monthly", "EUR", clock=clock)
        assert store.save(calculation) == calculation.calculation_id
        assert store.load(calculation.calculation_id) is calculation
        assert store.load("missing") is None
        assert len(store) == 1
