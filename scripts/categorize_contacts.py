#!/usr/bin/env python3
"""
Categorize contacts as vc / angel / sales_prospect / irrelevant.

Rules run first; low-confidence results go to Claude unless --no-llm is set.

Usage:
    python scripts/categorize_contacts.py --tenant team-1
    python scripts/categorize_contacts.py --tenant team-1 --concurrency 10
    python scripts/categorize_contacts.py --tenant team-1 --all --dry-run
    python scripts/categorize_contacts.py --tenant team-1 --no-llm
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.categorizer import Categorizer, CategorizerConfig
from intelligence.classifier import AnthropicClassifier
from intelligence.database import SessionLocal, init_db
from intelligence.known_firms import DEFAULT_KNOWN_FIRMS
from intelligence.repository import ContactRegistry


def main():
    parser = argparse.ArgumentParser(description="Categorize contacts")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Re-categorize contacts that already have a category (manual ones are kept)",
    )
    parser.add_argument("--limit", type=int, help="Maximum contacts to process")
    parser.add_argument("--concurrency", type=int, help="Concurrent classifier calls")
    parser.add_argument("--no-llm", action="store_true", help="Rules only, never call Claude")
    parser.add_argument("--dry-run", action="store_true", help="Don't save results")

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        registry = ContactRegistry(db)
        if registry.seed_known_firms(DEFAULT_KNOWN_FIRMS):
            registry.commit()

        config = CategorizerConfig()
        if args.concurrency:
            config.concurrency = args.concurrency

        classifier = None if args.no_llm else AnthropicClassifier.from_settings()
        categorizer = Categorizer(registry, classifier=classifier, config=config)

        result = asyncio.run(categorizer.categorize_batch(
            args.tenant,
            include_categorized=args.all,
            limit=args.limit,
            dry_run=args.dry_run,
        ))

        if result.failed > 0:
            sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
