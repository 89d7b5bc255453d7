"""Read-only query selectors."""

from pricing_kernel.selectors.rule_selector import RuleSelector

__all__ = ["RuleSelector"]
