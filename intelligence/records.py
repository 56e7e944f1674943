"""
Canonical record types consumed by the core.

Vendor payloads (social graph, enrichment, spreadsheets) are converted into
these at the boundary (see sources.records) so nothing vendor-specific reaches
the merge engine.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from intelligence.models import SourceTag


@dataclass(frozen=True)
class RawContact:
    """One incoming person record, already mapped to canonical fields."""
    source: SourceTag
    full_name: Optional[str] = None
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    external_id: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    company_domain: Optional[str] = None
    industry: Optional[str] = None
    connection_strength: Optional[float] = None  # 0-100
    email_inbound_count: Optional[int] = None
    email_outbound_count: Optional[int] = None
    meeting_count: Optional[int] = None
    last_interaction_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        """Human-readable identifier for logs and error messages."""
        return self.full_name or self.email or self.linkedin_url or self.external_id or "<unnamed>"


@dataclass(frozen=True)
class WorkHistoryData:
    """One employment entry from an enrichment payload."""
    company_name: str
    title: Optional[str] = None
    company_domain: Optional[str] = None
    company_industry: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_current: bool = False


def to_percent_scale(value: Optional[float], scale: float = 100.0) -> Optional[float]:
    """
    Convert a connection-strength reading to the 0-100 scale.

    Args:
        value: Raw reading
        scale: Upper bound of the source's scale (1.0 for fractional sources)
    """
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if value != value:  # NaN
        return None
    percent = value * (100.0 / scale) if scale else value
    return max(0.0, min(100.0, percent))
