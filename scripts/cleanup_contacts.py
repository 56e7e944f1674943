#!/usr/bin/env python3
"""
Delete junk contacts (shared mailboxes, no-reply senders, government and
disposable addresses).

Usage:
    python scripts/cleanup_contacts.py --tenant team-1 --dry-run
    python scripts/cleanup_contacts.py --tenant team-1
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import SessionLocal, init_db
from intelligence.junk import purge_junk_contacts
from intelligence.repository import ContactRegistry


def main():
    parser = argparse.ArgumentParser(description="Purge junk contacts")
    parser.add_argument("--tenant", required=True, help="Tenant (team) id")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without deleting",
    )

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        result = purge_junk_contacts(ContactRegistry(db), args.tenant, dry_run=args.dry_run)

        print("=" * 60)
        print("JUNK CONTACT CLEANUP")
        print("=" * 60)
        print(f"Total contacts: {result.total_contacts}")
        print(f"Junk contacts: {result.junk_count}")
        print(f"Deleted: {result.deleted}")
        print(f"Mode: {'DRY RUN' if args.dry_run else 'LIVE'}")
        print("=" * 60)

    finally:
        db.close()


if __name__ == "__main__":
    main()
