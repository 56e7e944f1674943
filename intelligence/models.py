"""
Relationship Intelligence Engine - Database Models

SQLAlchemy ORM models for the contact registry, prospects and derived matches.
"""

import uuid
from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# Enums
class Category(PyEnum):
    VC = "vc"
    ANGEL = "angel"
    SALES_PROSPECT = "sales_prospect"
    IRRELEVANT = "irrelevant"
    UNCATEGORIZED = "uncategorized"


class CategorySource(PyEnum):
    RULE = "rule"
    EXTERNAL_CLASSIFIER = "external_classifier"
    MANUAL = "manual"


class SourceTag(PyEnum):
    """Where a raw contact record came from."""
    SOCIAL_GRAPH = "social_graph"   # Swarm network sync
    ENRICHMENT = "enrichment"       # People-data enrichment vendor
    SPREADSHEET = "spreadsheet"     # LinkedIn / CRM exports
    MANUAL = "manual"               # Operator edits


class FirmType(PyEnum):
    VC = "vc"
    PE = "pe"
    ANGEL_NETWORK = "angel_network"
    ACCELERATOR = "accelerator"


class MatchReason(PyEnum):
    """Why a contact was matched to a prospect."""
    DOMAIN = "domain"
    NAME = "name"
    FUZZY = "fuzzy"
    WORK_HISTORY = "work_history"


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Contact(Base):
    """
    A resolved person in a tenant's registry.
    Raw records from every source are merged into one row per identity.
    """

    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Identity keys
    email: Mapped[Optional[str]] = mapped_column(String(320))
    linkedin_url: Mapped[Optional[str]] = mapped_column(Text)
    linkedin_slug: Mapped[Optional[str]] = mapped_column(String(200))
    external_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    source: Mapped[SourceTag] = mapped_column(Enum(SourceTag), nullable=False)

    # Profile
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    current_title: Mapped[Optional[str]] = mapped_column(Text)
    current_company: Mapped[Optional[str]] = mapped_column(Text)
    company_domain: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    industry: Mapped[Optional[str]] = mapped_column(Text)

    # Categorization
    category: Mapped[Category] = mapped_column(
        Enum(Category), default=Category.UNCATEGORIZED, nullable=False, index=True
    )
    category_confidence: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    category_source: Mapped[Optional[CategorySource]] = mapped_column(Enum(CategorySource))
    category_reason: Mapped[Optional[str]] = mapped_column(Text)
    categorized_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationship signals (connection strength is stored on the 0-100 scale)
    connection_strength: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    email_inbound_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_outbound_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    meeting_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_interaction_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Proximity scoring
    proximity_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    proximity_pass1_score: Mapped[Optional[int]] = mapped_column(Integer)
    proximity_pass: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scored_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Provenance: field name -> source tag value that last set it
    field_sources: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    enriched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # Set on every vendor lookup, including ones that found no match
    enrichment_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    work_history: Mapped[list["WorkHistoryEntry"]] = relationship(
        back_populates="contact", cascade="all, delete-orphan"
    )
    connection_matches: Mapped[list["ConnectionMatch"]] = relationship(
        back_populates="contact", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_contacts_tenant_email"),
        UniqueConstraint("tenant_id", "linkedin_slug", name="uq_contacts_tenant_linkedin"),
        Index("ix_contacts_tenant_category", "tenant_id", "category"),
    )

    @property
    def email_count(self) -> int:
        return (self.email_inbound_count or 0) + (self.email_outbound_count or 0)

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, name={self.full_name}, company={self.current_company})>"


class WorkHistoryEntry(Base):
    """
    A past or current job, owned by one contact.
    Replaced wholesale whenever enrichment data is refreshed.
    """

    __tablename__ = "work_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    contact_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    company_normalized: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    company_domain: Mapped[Optional[str]] = mapped_column(String(255))
    company_industry: Mapped[Optional[str]] = mapped_column(Text)
    title: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    contact: Mapped["Contact"] = relationship(back_populates="work_history")

    def __repr__(self) -> str:
        return f"<WorkHistoryEntry(company={self.company_name}, title={self.title}, current={self.is_current})>"


class Prospect(Base):
    """
    A target company being evaluated for outreach.
    The fit score is assigned elsewhere; connection fields are written by matching runs.
    """

    __tablename__ = "prospects"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    company_domain: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    industry: Mapped[Optional[str]] = mapped_column(Text)
    fit_score: Mapped[Optional[float]] = mapped_column(Float)

    # Matching outputs
    connection_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    has_warm_intro: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    match_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    best_contact_id: Mapped[Optional[str]] = mapped_column(String(36))
    matched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    connection_matches: Mapped[list["ConnectionMatch"]] = relationship(
        back_populates="prospect", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Prospect(id={self.id}, name={self.company_name}, domain={self.company_domain})>"


class ConnectionMatch(Base):
    """
    Derived edge between a prospect and a contact who could introduce us.
    Regenerated on every matching run; never the source of truth.
    """

    __tablename__ = "connection_matches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    prospect_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("prospects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contact_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    match_reason: Mapped[MatchReason] = mapped_column(Enum(MatchReason), nullable=False)
    is_current_employee: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    matched_company: Mapped[Optional[str]] = mapped_column(Text)
    title_relevance: Mapped[float] = mapped_column(Float, nullable=False)
    connection_strength: Mapped[float] = mapped_column(Float, nullable=False)  # 0-1
    combined_score: Mapped[float] = mapped_column(Float, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )

    prospect: Mapped["Prospect"] = relationship(back_populates="connection_matches")
    contact: Mapped["Contact"] = relationship(back_populates="connection_matches")

    __table_args__ = (
        UniqueConstraint("prospect_id", "contact_id", name="uq_connection_match"),
    )

    def __repr__(self) -> str:
        return f"<ConnectionMatch(prospect={self.prospect_id}, contact={self.contact_id}, score={self.combined_score:.2f})>"


class KnownFirm(Base):
    """
    Reference list of investment firms consulted by the categorizer.
    Shared across tenants and read-only at categorization time.
    """

    __tablename__ = "known_firms"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    firm_type: Mapped[FirmType] = mapped_column(Enum(FirmType), nullable=False)
    aliases: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        return f"<KnownFirm(name={self.name}, type={self.firm_type.value})>"
