"""
Module: pricing_kernel.models.rule
Responsibility: ORM persistence for pricing rules (table ``pricing_rules``).
    Parameters and conditions are stored as JSON arrays on the rule row.
Architecture position: Kernel > Models.  May import from db/base.py and the
    domain Rule it maps to.  The domain never imports this module.

Invariants enforced:
    - ``rule_id`` is unique.
    - ``to_domain()`` rebuilds the Rule through its constructor, so a row
      that no longer passes Rule validation fails loudly on load.

Failure modes:
    - ValidationError from ``to_domain()`` for an invalid stored row.
    - IntegrityError on a duplicate ``rule_id``.
"""

from datetime import date
from typing import Any

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import Base
from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import Rule, RuleCondition, RuleParameter


class RuleRecord(Base):
    """
    Stored pricing rule.

    Contract:
        One row per Rule. Converted to and from the immutable domain Rule
        with ``from_domain`` / ``to_domain``.
    """

    __tablename__ = "pricing_rules"

    __table_args__ = (
        Index("idx_pricing_rules_country", "country_code", "is_active"),
        Index("idx_pricing_rules_effective", "effective_from", "effective_to"),
    )

    rule_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    expression: Mapped[str] = mapped_column(String(2000), nullable=False)
    parameters: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @classmethod
    def from_domain(cls, rule: Rule) -> "RuleRecord":
        record = cls(rule_id=rule.rule_id)
        record.update_from(rule)
        return record

    def update_from(self, rule: Rule) -> None:
        """Copy every mutable field of ``rule`` onto this row."""
        self.country_code = rule.country_code
        self.rule_type = rule.rule_type.value
        self.name = rule.name
        self.description = rule.description
        self.expression = rule.expression
        self.parameters = [
            {"name": p.name, "data_type": p.data_type.value, "default_value": p.default_value}
            for p in rule.parameters
        ]
        self.conditions = [
            {"parameter": c.parameter, "operator": c.operator.value, "value": c.value}
            for c in rule.conditions
        ]
        self.effective_from = rule.effective_from
        self.effective_to = rule.effective_to
        self.priority = rule.priority
        self.is_active = rule.is_active

    def to_domain(self) -> Rule:
        return Rule(
            rule_id=self.rule_id,
            country_code=self.country_code,
            rule_type=RuleType(self.rule_type),
            name=self.name,
            description=self.description or "",
            expression=self.expression,
            parameters=tuple(RuleParameter(**p) for p in self.parameters or ()),
            conditions=tuple(RuleCondition(**c) for c in self.conditions or ()),
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            priority=self.priority,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<RuleRecord {self.rule_id} {self.country_code} p={self.priority}>"
