"""
Junk contact detection and purge.

Contacts created from shared mailboxes, automated senders and similar
addresses are noise for relationship scoring. Purging them is an explicit
operator action and the only place contacts are hard-deleted.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from config.logging import log_banner, logger
from intelligence.normalizers import normalize_email
from intelligence.repository import ContactRegistry

GENERIC_MAILBOXES = (
    "admin", "info", "contact", "support", "help", "sales", "hello", "team",
    "careers", "jobs", "hr", "press", "media", "marketing", "partnerships",
    "billing", "accounts", "finance", "legal", "privacy", "security", "abuse",
    "webmaster", "postmaster", "feedback", "enquiries", "inquiries", "general",
    "office", "reception", "projects",
)

JUNK_EMAIL_PATTERNS = [
    re.compile(r"^(" + "|".join(GENERIC_MAILBOXES) + r")@"),
    # No-reply / automated
    re.compile(r"^(no[-_]?reply|do[-_]?not[-_]?reply|bounce|mailer[-_]?daemon)@"),
    re.compile(r"^(notifications?|alerts?|automated?|system)@"),
    # Billing automation
    re.compile(r"invoice"),
    re.compile(r"^(statements?|receipts?|orders?)@"),
    # Marketing trackers (plus addressing)
    re.compile(r"^messages\+"),
    re.compile(r"\+[^@]*@.*(mktg|marketing)"),
    # Disposable tags
    re.compile(r"\+(test|temp|spam)"),
]

JUNK_DOMAIN_PATTERNS = [
    re.compile(r"\.gov$"),
    re.compile(r"\.gov\."),
    re.compile(r"(^|\.)senate\."),
    re.compile(r"(^|\.)congress\."),
    re.compile(r"^(mailinator|guerrillamail|tempmail|10minutemail)\."),
]


def is_junk_email(email: Optional[str]) -> bool:
    """True for shared, automated, government or disposable addresses."""
    normalized = normalize_email(email)
    if not normalized:
        return False

    if any(pattern.search(normalized) for pattern in JUNK_EMAIL_PATTERNS):
        return True

    domain = normalized.split("@", 1)[1]
    return any(pattern.search(domain) for pattern in JUNK_DOMAIN_PATTERNS)


@dataclass
class PurgeResult:
    total_contacts: int = 0
    junk_ids: list[str] = field(default_factory=list)
    deleted: int = 0
    dry_run: bool = True

    @property
    def junk_count(self) -> int:
        return len(self.junk_ids)


def purge_junk_contacts(registry: ContactRegistry, tenant_id: str, dry_run: bool = True) -> PurgeResult:
    """
    Find (and unless dry_run, delete) contacts with junk email addresses.

    Work history and connection matches of deleted contacts go with them.
    """
    log_banner(f"JUNK CONTACT CLEANUP ({tenant_id})")
    contacts = registry.list_contacts(tenant_id)
    result = PurgeResult(total_contacts=len(contacts), dry_run=dry_run)

    for contact in contacts:
        if is_junk_email(contact.email):
            result.junk_ids.append(contact.id)
            logger.info(f"  junk: {contact.email} ({contact.full_name})")

    logger.info(f"Junk contacts: {result.junk_count} of {result.total_contacts}")

    if dry_run or not result.junk_ids:
        return result

    result.deleted = registry.delete_contacts(tenant_id, result.junk_ids)
    registry.commit()
    logger.info(f"Deleted {result.deleted} junk contacts")
    return result
