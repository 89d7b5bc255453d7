#!/usr/bin/env python3
"""
Seed the database with a rule catalogue.

Creates the tables if needed, loads rules from a YAML catalogue (default:
pricing_config/sets/rules.yaml) through Rule.create, and inserts or updates
one pricing_rules row per rule.

Usage:
    python3 scripts/seed_rules.py --db-url sqlite:///pricing.db
    python3 scripts/seed_rules.py --db-url postgresql://... --rules my_rules.yaml
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = "sqlite:///pricing.db"


def seed(db_url: str, rules_path: Path) -> int:
    """Upsert every rule in ``rules_path``. Returns the number written."""
    from sqlalchemy import select

    from pricing_config import load_rules_file
    from pricing_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from pricing_kernel.models.rule import RuleRecord

    rules = load_rules_file(rules_path)
    init_engine_from_url(db_url)
    create_tables()

    with session_scope() as session:
        for rule in rules:
            record = session.scalars(
                select(RuleRecord).where(RuleRecord.rule_id == rule.rule_id)
            ).one_or_none()
            if record is None:
                session.add(RuleRecord.from_domain(rule))
            else:
                record.update_from(rule)
    return len(rules)


def main() -> int:
    from pricing_config import default_rules_path
    from pricing_kernel.exceptions import ValidationError

    parser = argparse.ArgumentParser(description="Load pricing rules into the database")
    parser.add_argument("--db-url", default=DEFAULT_DB_URL, help="SQLAlchemy database URL")
    parser.add_argument("--rules", type=Path, default=default_rules_path(), help="YAML rule catalogue")
    args = parser.parse_args()

    if not args.rules.is_file():
        print(f"Error: rules file not found: {args.rules}", file=sys.stderr)
        return 1
    try:
        count = seed(args.db_url, args.rules)
    except ValidationError as e:
        print("Rule catalogue rejected:", file=sys.stderr)
        for err in e.errors:
            print(f"  ERROR: {err}", file=sys.stderr)
        return 1

    print(f"Seeded {count} rules from {args.rules} into {args.db_url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
