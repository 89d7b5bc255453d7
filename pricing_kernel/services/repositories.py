"""
Repositories -- Collaborator interfaces for rule lookup and calculation storage.

Responsibility:
    Declares the two external interfaces the pricing core calls
    (``RuleRepository`` and ``CalculationStore``) and provides in-memory
    implementations plus a caching decorator for rule lookups.

Architecture position:
    Kernel > Services -- imperative shell. The SQLAlchemy-backed rule
    lookup lives in ``pricing_kernel.selectors.rule_selector``.

Invariants enforced:
    - ``get_active_rules`` returns only active rules effective on ``as_of``.
    - ``CachingRuleRepository`` keys entries by
      ``(country_code, rule_type, as_of)`` and drops every entry for a
      country whenever a rule for that country is saved through it.
    - A lookup that overlaps an invalidation of its country is never cached.
    - The cache holds at most ``max_entries`` lookups, evicting the least
      recently used.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Iterable
from datetime import date
from typing import Protocol, runtime_checkable

from pricing_kernel.domain.calculation import Calculation
from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import Rule
from pricing_kernel.exceptions import NotFoundError, ValidationError
from pricing_kernel.logging_config import get_logger

logger = get_logger("services.repositories")


@runtime_checkable
class RuleRepository(Protocol):
    """Read access to the rule catalogue."""

    def get_active_rules(
        self,
        country_code: str,
        rule_type: RuleType | None = None,
        as_of: date | None = None,
    ) -> list[Rule]:
        ...


@runtime_checkable
class CalculationStore(Protocol):
    """Persistence of calculations."""

    def save(self, calculation: Calculation) -> str:
        ...

    def load(self, calculation_id: str) -> Calculation | None:
        ...


def _select(
    rules: Iterable[Rule],
    country_code: str,
    rule_type: RuleType | None,
    as_of: date | None,
) -> list[Rule]:
    code = country_code.strip().upper()
    return [
        r
        for r in rules
        if r.country_code == code
        and r.is_active
        and (rule_type is None or r.rule_type == rule_type)
        and (as_of is None or r.is_effective_on(as_of))
    ]


class InMemoryRuleRepository:
    """Rule catalogue held in a dict keyed by rule id."""

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: dict[str, Rule] = {}
        self._lock = threading.Lock()
        for rule in rules:
            self._rules[rule.rule_id] = rule

    def __len__(self) -> int:
        return len(self._rules)

    def get_active_rules(
        self,
        country_code: str,
        rule_type: RuleType | None = None,
        as_of: date | None = None,
    ) -> list[Rule]:
        with self._lock:
            snapshot = list(self._rules.values())
        return _select(snapshot, country_code, rule_type, as_of)

    def get(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def save(self, rule: Rule) -> Rule:
        """Insert or replace a rule by id."""
        with self._lock:
            self._rules[rule.rule_id] = rule
        return rule

    def deactivate(self, rule_id: str) -> Rule:
        """
        Raises:
            NotFoundError: no rule with ``rule_id``.
        """
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Rule", rule_id)
        return self.save(rule.with_active(False))


class CachingRuleRepository:
    """
    Caches ``get_active_rules`` results of an underlying repository.

    Writes go through ``save``/``deactivate`` so the cache can drop stale
    entries for the affected country; the wrapped repository must support
    those methods for writes to be accepted.

    Entries are evicted least recently used once ``max_entries`` is
    reached. A lookup whose country is invalidated while the wrapped
    repository is still answering is returned but not cached.
    """

    DEFAULT_MAX_ENTRIES = 1024

    def __init__(self, inner: RuleRepository, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValidationError(
                f"max_entries must be positive, got {max_entries}", field="max_entries"
            )
        self._inner = inner
        self._max_entries = max_entries
        self._cache: OrderedDict[
            tuple[str, RuleType | None, date | None], tuple[Rule, ...]
        ] = OrderedDict()
        # Bumped on every invalidation; a fetch is only stored if neither moved.
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_active_rules(
        self,
        country_code: str,
        rule_type: RuleType | None = None,
        as_of: date | None = None,
    ) -> list[Rule]:
        code = country_code.strip().upper()
        key = (code, rule_type, as_of)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self.hits += 1
                return list(cached)
            self.misses += 1
            version = (self._epoch, self._generations.get(code, 0))
        rules = tuple(self._inner.get_active_rules(code, rule_type, as_of))
        with self._lock:
            if version != (self._epoch, self._generations.get(code, 0)):
                logger.debug("rule_cache_store_skipped", extra={"country": code})
                return list(rules)
            self._cache[key] = rules
            self._cache.move_to_end(key)
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)
        return list(rules)

    def save(self, rule: Rule) -> Rule:
        saved = self._inner.save(rule)  # type: ignore[attr-defined]
        self.invalidate(rule.country_code)
        return saved

    def deactivate(self, rule_id: str) -> Rule:
        rule = self._inner.deactivate(rule_id)  # type: ignore[attr-defined]
        self.invalidate(rule.country_code)
        return rule

    def invalidate(self, country_code: str | None = None) -> int:
        """Drop cached entries for one country (or all); returns the count."""
        with self._lock:
            if country_code is None:
                self._epoch += 1
                dropped = len(self._cache)
                self._cache.clear()
            else:
                code = country_code.strip().upper()
                self._generations[code] = self._generations.get(code, 0) + 1
                stale = [k for k in self._cache if k[0] == code]
                for k in stale:
                    del self._cache[k]
                dropped = len(stale)
        logger.debug(
            "rule_cache_invalidated",
            extra={"country": country_code, "dropped": dropped},
        )
        return dropped

    def __len__(self) -> int:
        return len(self._cache)


class InMemoryCalculationStore:
    """Calculations held by id. Stores the instance itself, not a copy."""

    def __init__(self) -> None:
        self._items: dict[str, Calculation] = {}
        self._lock = threading.Lock()

    def save(self, calculation: Calculation) -> str:
        with self._lock:
            self._items[calculation.calculation_id] = calculation
        return calculation.calculation_id

    def load(self, calculation_id: str) -> Calculation | None:
        with self._lock:
            return self._items.get(calculation_id)

    def __len__(self) -> int:
        return len(self._items)
