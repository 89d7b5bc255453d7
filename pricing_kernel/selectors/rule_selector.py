"""
Module: pricing_kernel.selectors.rule_selector
Responsibility: Read-only rule lookup over the ``pricing_rules`` table,
    implementing the RuleRepository interface the pricing service calls.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only: no add/delete/flush/commit on the caller's session.
    - Returns domain Rule objects, never ORM rows.
    - Results are ordered by (priority, rule_id), the engine's order.
"""

from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from pricing_kernel.domain.dtos import RuleType
from pricing_kernel.domain.rule import Rule
from pricing_kernel.logging_config import get_logger
from pricing_kernel.models.rule import RuleRecord

logger = get_logger("selectors.rule")


class RuleSelector:
    """
    Query rules stored in the database.

    The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_active_rules(
        self,
        country_code: str,
        rule_type: RuleType | None = None,
        as_of: date | None = None,
    ) -> list[Rule]:
        """Active rules for a country, optionally scoped by type and date."""
        stmt = select(RuleRecord).where(
            RuleRecord.country_code == country_code.strip().upper(),
            RuleRecord.is_active.is_(True),
        )
        if rule_type is not None:
            stmt = stmt.where(RuleRecord.rule_type == RuleType(rule_type).value)
        if as_of is not None:
            stmt = stmt.where(
                RuleRecord.effective_from <= as_of,
                or_(RuleRecord.effective_to.is_(None), RuleRecord.effective_to > as_of),
            )
        stmt = stmt.order_by(RuleRecord.priority, RuleRecord.rule_id)

        rules = [record.to_domain() for record in self.session.scalars(stmt)]
        logger.debug(
            "rules_selected",
            extra={
                "country": country_code,
                "rule_type": RuleType(rule_type).value if rule_type else None,
                "as_of": as_of,
                "count": len(rules),
            },
        )
        return rules

    def get_by_rule_id(self, rule_id: str) -> Rule | None:
        record = self.session.scalars(
            select(RuleRecord).where(RuleRecord.rule_id == rule_id)
        ).one_or_none()
        return record.to_domain() if record else None

    def count_for_country(self, country_code: str) -> int:
        stmt = select(RuleRecord.id).where(
            RuleRecord.country_code == country_code.strip().upper()
        )
        return len(self.session.scalars(stmt).all())
