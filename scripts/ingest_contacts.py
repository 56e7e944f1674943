#!/usr/bin/env python3
"""
Ingest contacts into the registry from a LinkedIn export or the Swarm network.

Usage:
    python scripts/ingest_contacts.py --tenant team-1 --csv Connections.csv
    python scripts/ingest_contacts.py --tenant team-1 --swarm --max-contacts 500
    python scripts/ingest_contacts.py --tenant team-1 --swarm --score
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import SessionLocal, init_db
from intelligence.entity_resolution.resolver import ContactResolver
from intelligence.proximity import ProximityScorer
from intelligence.repository import ContactRegistry
from sources.records import to_raw_contact
from sources.spreadsheet import read_linkedin_export
from sources.swarm import SwarmClient


def main():
    parser = argparse.ArgumentParser(description="Ingest raw contacts into the registry")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--csv", type=Path, help="LinkedIn Connections.csv export")
    source.add_argument("--swarm", action="store_true", help="Pull the Swarm network")
    parser.add_argument(
        "--max-contacts",
        type=int,
        default=10000,
        help="Maximum profiles to pull from Swarm (default: 10000)",
    )
    parser.add_argument(
        "--score",
        action="store_true",
        help="Run Pass 1 proximity scoring on ingested contacts",
    )

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        if args.csv:
            records = read_linkedin_export(args.csv)
        else:
            records = SwarmClient().fetch_network(max_contacts=args.max_contacts)

        registry = ContactRegistry(db)
        resolver = ContactResolver(registry)
        result = resolver.ingest_records(args.tenant, (to_raw_contact(r) for r in records))
        result.log_summary()

        if args.score:
            ProximityScorer(registry).rescore_pass1(args.tenant)

        # Exit with error code if there were errors
        if result.failed > 0:
            sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
