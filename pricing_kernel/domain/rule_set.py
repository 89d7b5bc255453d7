"""
RuleSet -- Candidate selection over an already-fetched list of rules.

Selection is by country, activity, effective date and (optionally) rule
type. Condition matching and ordering are the rule engine's next steps.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date

from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import Rule


def rule_order_key(rule: Rule) -> tuple[int, str]:
    """Ascending priority; equal priorities ordered by rule id."""
    return (rule.priority, rule.rule_id)


class RuleSet:
    """Immutable collection of rules, indexed by country code."""

    def __init__(self, rules: Iterable[Rule] = ()):
        by_country: dict[str, list[Rule]] = {}
        for rule in rules:
            by_country.setdefault(rule.country_code, []).append(rule)
        self._by_country: dict[str, tuple[Rule, ...]] = {
            code: tuple(sorted(items, key=rule_order_key))
            for code, items in by_country.items()
        }

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_country.values())

    def __iter__(self) -> Iterator[Rule]:
        for code in sorted(self._by_country):
            yield from self._by_country[code]

    @property
    def country_codes(self) -> frozenset[str]:
        return frozenset(self._by_country)

    def for_country(self, country_code: str) -> tuple[Rule, ...]:
        return self._by_country.get(country_code.strip().upper(), ())

    def candidates(
        self,
        country_code: str,
        as_of: date,
        rule_types: Iterable[RuleType] | None = None,
    ) -> list[Rule]:
        """
        Active rules for ``country_code`` effective on ``as_of``.

        Returned in evaluation order (see ``rule_order_key``).
        """
        scope = frozenset(RuleType(t) for t in rule_types) if rule_types else None
        return [
            rule
            for rule in self.for_country(country_code)
            if rule.is_active
            and rule.is_effective_on(as_of)
            and (scope is None or rule.rule_type in scope)
        ]
