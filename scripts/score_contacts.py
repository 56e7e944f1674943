#!/usr/bin/env python3
"""
Recompute proximity scores.

Pass 1 uses connection strength and interactions. Pass 2 adds work-history
overlap with the team; it needs the list of companies team members have
worked at, one per line.

Usage:
    python scripts/score_contacts.py --tenant team-1 --pass 1
    python scripts/score_contacts.py --tenant team-1 --pass 2 --team-companies team.txt
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import SessionLocal, init_db
from intelligence.proximity import ProximityScorer
from intelligence.repository import ContactRegistry


def read_team_companies(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


def main():
    parser = argparse.ArgumentParser(description="Recompute contact proximity scores")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    parser.add_argument(
        "--pass",
        dest="scoring_pass",
        type=int,
        choices=[1, 2],
        default=1,
        help="Scoring pass to run (default: 1)",
    )
    parser.add_argument(
        "--team-companies",
        type=Path,
        help="File listing companies team members have worked at (required for pass 2)",
    )

    args = parser.parse_args()
    if args.scoring_pass == 2 and not args.team_companies:
        parser.error("--team-companies is required for pass 2")

    init_db()
    db = SessionLocal()

    try:
        scorer = ProximityScorer(ContactRegistry(db))
        if args.scoring_pass == 1:
            result = scorer.rescore_pass1(args.tenant)
        else:
            result = scorer.rescore_pass2(args.tenant, read_team_companies(args.team_companies))

        if result.failed > 0:
            sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
