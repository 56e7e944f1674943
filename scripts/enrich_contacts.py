#!/usr/bin/env python3
"""
Enrich contacts with People Data Labs profiles and work history.

Usage:
    python scripts/enrich_contacts.py --tenant team-1
    python scripts/enrich_contacts.py --tenant team-1 --limit 100
    python scripts/enrich_contacts.py --tenant team-1 --refresh --score
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import SessionLocal, init_db
from intelligence.entity_resolution.resolver import ContactResolver
from intelligence.repository import ContactRegistry
from sources.pdl import PDLClient, enrich_contacts


def main():
    parser = argparse.ArgumentParser(description="Enrich contacts via People Data Labs")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    parser.add_argument("--limit", type=int, help="Maximum contacts to enrich")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Re-enrich contacts that were enriched before",
    )

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        resolver = ContactResolver(ContactRegistry(db))
        result = enrich_contacts(
            resolver,
            PDLClient(),
            args.tenant,
            limit=args.limit,
            refresh=args.refresh,
        )

        if result.failed > 0:
            sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
