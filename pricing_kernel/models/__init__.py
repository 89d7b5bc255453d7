"""SQLAlchemy ORM models for the pricing kernel."""

from pricing_kernel.models.rule import RuleRecord

__all__ = ["RuleRecord"]
