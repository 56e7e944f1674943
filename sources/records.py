"""
Vendor record types.

Each source has its own shape. Everything is converted to RawContact via
to_raw_contact() before it reaches the merge engine.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from intelligence.models import SourceTag
from intelligence.records import RawContact, WorkHistoryData, to_percent_scale


def parse_partial_date(value: Optional[str]) -> Optional[date]:
    """Parse vendor dates: "2021-03-15", "2021-03" or "2021"."""
    if not value:
        return None
    value = str(value).strip()
    for fmt, length in (("%Y-%m-%d", 10), ("%Y-%m", 7), ("%Y", 4)):
        try:
            return datetime.strptime(value[:length], fmt).date()
        except ValueError:
            continue
    return None


def _text(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class SwarmRecord:
    """One profile from the social-graph network mapper."""
    profile_id: str
    full_name: Optional[str] = None
    linkedin_url: Optional[str] = None
    work_email: Optional[str] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None
    current_company_website: Optional[str] = None
    connection_strength: Optional[float] = None  # 0-1, best across connectors
    connector_names: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, item: dict) -> "SwarmRecord":
        profile = item.get("profile") or {}
        connections = item.get("connections") or []

        strengths = [
            c.get("connection_strength") for c in connections
            if isinstance(c.get("connection_strength"), (int, float))
        ]
        full_name = _text(profile.get("full_name"))
        if not full_name:
            parts = [_text(profile.get("first_name")), _text(profile.get("last_name"))]
            full_name = " ".join(p for p in parts if p) or None

        return cls(
            profile_id=str(profile.get("id", "")),
            full_name=full_name,
            linkedin_url=_text(profile.get("linkedin_url")),
            work_email=_text(profile.get("work_email")),
            current_title=_text(profile.get("current_title")),
            current_company=_text(profile.get("current_company_name")),
            current_company_website=_text(profile.get("current_company_website")),
            connection_strength=max(strengths) if strengths else None,
            connector_names=tuple(
                c["connector_name"] for c in connections if c.get("connector_name")
            ),
        )


@dataclass(frozen=True)
class EnrichmentRecord:
    """A person record from the people-data enrichment vendor."""
    full_name: Optional[str] = None
    work_email: Optional[str] = None
    linkedin_url: Optional[str] = None
    job_title: Optional[str] = None
    job_company_name: Optional[str] = None
    job_company_website: Optional[str] = None
    industry: Optional[str] = None
    vendor_id: Optional[str] = None
    experience: tuple[WorkHistoryData, ...] = ()

    @classmethod
    def from_payload(cls, person: dict) -> "EnrichmentRecord":
        linkedin_url = _text(person.get("linkedin_url"))
        if linkedin_url and not linkedin_url.startswith("http"):
            linkedin_url = f"https://{linkedin_url}"

        return cls(
            full_name=_text(person.get("full_name")),
            work_email=_text(person.get("work_email")),
            linkedin_url=linkedin_url,
            job_title=_text(person.get("job_title")),
            job_company_name=_text(person.get("job_company_name")),
            job_company_website=_text(person.get("job_company_website")),
            industry=_text(person.get("job_company_industry") or person.get("industry")),
            vendor_id=_text(person.get("id")),
            experience=tuple(
                entry for entry in (
                    cls._parse_experience(exp) for exp in person.get("experience") or []
                )
                if entry is not None
            ),
        )

    @staticmethod
    def _parse_experience(exp: dict) -> Optional[WorkHistoryData]:
        company = exp.get("company") or {}
        title = exp.get("title") or {}
        name = _text(company.get("name"))
        if not name:
            return None
        end_date = parse_partial_date(exp.get("end_date"))
        return WorkHistoryData(
            company_name=name,
            title=_text(title.get("name")) if isinstance(title, dict) else _text(title),
            company_domain=_text(company.get("website")),
            company_industry=_text(company.get("industry")),
            start_date=parse_partial_date(exp.get("start_date")),
            end_date=end_date,
            is_current=bool(exp.get("is_primary")) or end_date is None,
        )

    def work_history(self) -> list[WorkHistoryData]:
        return list(self.experience)


@dataclass(frozen=True)
class SpreadsheetRecord:
    """A row from a LinkedIn connections export or similar sheet."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    profile_url: Optional[str] = None
    connected_on: Optional[date] = None

    @property
    def full_name(self) -> Optional[str]:
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or None


VendorRecord = Union[SwarmRecord, EnrichmentRecord, SpreadsheetRecord]


def to_raw_contact(record: VendorRecord) -> RawContact:
    """Convert any vendor record into the canonical RawContact."""
    if isinstance(record, SwarmRecord):
        return RawContact(
            source=SourceTag.SOCIAL_GRAPH,
            full_name=record.full_name,
            email=record.work_email,
            linkedin_url=record.linkedin_url,
            external_id=record.profile_id or None,
            title=record.current_title,
            company=record.current_company,
            company_domain=record.current_company_website,
            connection_strength=to_percent_scale(record.connection_strength, scale=1.0),
        )

    if isinstance(record, EnrichmentRecord):
        current = next((e for e in record.experience if e.is_current), None)
        return RawContact(
            source=SourceTag.ENRICHMENT,
            full_name=record.full_name,
            email=record.work_email,
            linkedin_url=record.linkedin_url,
            title=record.job_title or (current.title if current else None),
            company=record.job_company_name or (current.company_name if current else None),
            company_domain=record.job_company_website or (current.company_domain if current else None),
            industry=record.industry or (current.company_industry if current else None),
        )

    if isinstance(record, SpreadsheetRecord):
        return RawContact(
            source=SourceTag.SPREADSHEET,
            full_name=record.full_name,
            email=record.email,
            linkedin_url=record.profile_url,
            title=record.position,
            company=record.company,
        )

    raise TypeError(f"Unsupported vendor record: {type(record).__name__}")
