#!/usr/bin/env python3
"""
Regenerate warm-intro matches between prospects and contacts.

Usage:
    python scripts/match_prospects.py --tenant team-1
    python scripts/match_prospects.py --tenant team-1 --prospect <id> --prospect <id>
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import SessionLocal, init_db
from intelligence.prospect_matching import ProspectMatcher
from intelligence.repository import ContactRegistry


def main():
    parser = argparse.ArgumentParser(description="Match prospects to contacts")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    parser.add_argument(
        "--prospect",
        action="append",
        dest="prospect_ids",
        help="Only match this prospect id (repeatable)",
    )

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        matcher = ProspectMatcher(ContactRegistry(db))
        result = matcher.match_all_prospects(args.tenant, prospect_ids=args.prospect_ids)

        if result.failed > 0:
            sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
