"""
Canonical comparison keys for raw strings coming out of vendor payloads.

All functions are pure and total: bad input gives None (or an empty key),
never an exception.
"""

import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LINKEDIN_SLUG_PATTERN = re.compile(
    r"^(?:https?://)?(?:[a-z]{2,3}\.|www\.)?linkedin\.com/in/([^/?#\s]+)", re.IGNORECASE
)

# Legal suffixes and filler words dropped as whole tokens
COMPANY_STOP_TOKENS = frozenset({
    "inc", "incorporated",
    "llc",
    "corp", "corporation",
    "ltd", "limited",
    "co", "company",
    "the",
})


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email address. None if empty or not shaped like an email."""
    if not email:
        return None
    email = email.strip().lower()
    if email.startswith("mailto:"):
        email = email[len("mailto:"):]
    if not EMAIL_PATTERN.match(email):
        return None
    return email


def email_domain(email: Optional[str]) -> Optional[str]:
    """Domain part of an email address, normalized."""
    normalized = normalize_email(email)
    if not normalized:
        return None
    return normalize_domain(normalized.split("@", 1)[1])


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    """
    Reduce a URL or hostname to a bare lowercase domain.

    "https://www.Acme.com/about?x=1" -> "acme.com"
    """
    if not domain:
        return None
    domain = domain.strip().lower()
    domain = re.sub(r"^[a-z][a-z0-9+.-]*://", "", domain)
    domain = re.split(r"[/?#]", domain, maxsplit=1)[0]
    domain = domain.split("@")[-1]
    domain = domain.split(":")[0]
    if domain.startswith("www."):
        domain = domain[4:]
    domain = domain.strip(". ")
    return domain or None


def normalize_company_name(name: Optional[str]) -> str:
    """
    Normalize a company name for comparison.

    - Lowercase
    - Punctuation becomes whitespace
    - Legal suffixes / "the" removed as whole tokens
    - Whitespace collapsed

    If stripping leaves nothing ("The Company"), falls back to the lowercased
    original so the key is never empty for non-empty input.
    """
    if not name:
        return ""

    lowered = re.sub(r"\s+", " ", name.strip().lower())
    if not lowered:
        return ""

    cleaned = re.sub(r"[^\w\s]", " ", lowered)
    tokens = [t for t in cleaned.split() if t not in COMPANY_STOP_TOKENS]
    normalized = " ".join(tokens)

    return normalized or lowered


def normalize_linkedin_slug(url: Optional[str]) -> Optional[str]:
    """
    Extract the profile slug from a LinkedIn URL.

    "https://www.linkedin.com/in/JaneDoe/" -> "janedoe"
    "https://example.com/in/jane" -> None (not a LinkedIn host)
    """
    if not url:
        return None
    match = LINKEDIN_SLUG_PATTERN.match(url.strip())
    if not match:
        return None
    slug = match.group(1).strip().lower()
    return slug or None


def normalize_person_name(name: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace in a person's name."""
    if not name:
        return ""
    cleaned = re.sub(r"[^\w\s'-]", " ", name.lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def normalize_title(title: Optional[str]) -> str:
    """Lowercase and collapse a job title. Used as the categorizer cache key."""
    if not title:
        return ""
    return re.sub(r"\s+", " ", title.strip().lower())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the registry stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
