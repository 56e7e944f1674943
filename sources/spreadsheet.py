"""
LinkedIn connections export reader.

LinkedIn's Connections.csv starts with a few lines of notes before the real
header row, and column names vary between export versions.
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Optional, TextIO, Union

from config.logging import logger
from sources.records import SpreadsheetRecord

# Only the first few lines are searched for the header row
HEADER_SEARCH_LINES = 15

COLUMN_ALIASES = {
    "first_name": ("First Name", "FirstName", "first_name"),
    "last_name": ("Last Name", "LastName", "last_name"),
    "email": ("Email Address", "Email", "email"),
    "company": ("Company", "company"),
    "position": ("Position", "Title", "position"),
    "connected_on": ("Connected On", "ConnectedOn"),
    "profile_url": ("URL", "Profile URL", "LinkedIn URL"),
}


@dataclass
class SpreadsheetParseResult:
    records: list[SpreadsheetRecord] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0


def _pick(row: dict, column: str) -> Optional[str]:
    for alias in COLUMN_ALIASES[column]:
        value = row.get(alias)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_connected_on(value: Optional[str]) -> Optional[date]:
    """LinkedIn writes "15 Jan 2024"; older exports use ISO or US dates."""
    if not value:
        return None
    for fmt in ("%d %b %Y", "%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_linkedin_csv(content: str) -> SpreadsheetParseResult:
    """Parse the text of a LinkedIn connections export."""
    lines = content.splitlines()
    start = 0
    for i, line in enumerate(lines[:HEADER_SEARCH_LINES]):
        if line.strip().lstrip('"').lower().startswith("first name"):
            start = i
            break

    reader = csv.DictReader(io.StringIO("\n".join(lines[start:])))
    reader.fieldnames = [name.strip() for name in reader.fieldnames or []]
    result = SpreadsheetParseResult()

    for row in reader:
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        result.total_rows += 1

        first_name = _pick(row, "first_name") or ""
        last_name = _pick(row, "last_name") or ""
        # Empty or metadata rows
        if (not first_name and not last_name) or ":" in first_name or len(first_name) > 50:
            result.skipped_rows += 1
            continue

        result.records.append(SpreadsheetRecord(
            first_name=first_name or None,
            last_name=last_name or None,
            email=_pick(row, "email"),
            company=_pick(row, "company"),
            position=_pick(row, "position"),
            profile_url=_pick(row, "profile_url"),
            connected_on=parse_connected_on(_pick(row, "connected_on")),
        ))

    if result.skipped_rows:
        logger.info(f"Skipped {result.skipped_rows} empty or metadata rows")
    return result


def read_linkedin_export(source: Union[str, Path, TextIO]) -> list[SpreadsheetRecord]:
    """Read a LinkedIn export from a path or open file."""
    if isinstance(source, (str, Path)):
        with open(source, encoding="utf-8-sig", newline="") as f:
            content = f.read()
    else:
        content = source.read()

    result = parse_linkedin_csv(content)
    logger.info(f"Parsed {len(result.records)} of {result.total_rows} rows from LinkedIn export")
    return result.records
