"""
Contact Categorizer

Assigns every contact a business category (vc, angel, sales_prospect,
irrelevant) with a confidence score.

Rule chain, first rule that fires wins:
1. VC: employer is a known VC/PE firm (0.95), work history at a VC/PE firm
   or in a VC industry (0.85), or a VC-style title with VC context (0.85)
2. Angel: employer is a known angel network / accelerator, or the title is
   investor/advisor/board/mentor (0.9)
3. Startup executive at a tech company, a potential angel (0.6-0.65)
4. Sales target: title in a buying function for our product (0.7-0.85)
5. Default: uncategorized (0)

Results below the confidence threshold go to the external classifier when
one is configured. A classifier failure leaves the contact as it was and is
recorded against that contact only.

Usage:
    categorizer = Categorizer(ContactRegistry(db), classifier=AnthropicClassifier.from_settings())
    result = asyncio.run(categorizer.categorize_batch("team-1"))
"""

import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol

from config.logging import log_banner, logger
from config.settings import settings
from intelligence.batch import (
    AsyncRateLimiter,
    BatchResult,
    CancellationToken,
    run_bounded,
)
from intelligence.errors import ClassifierError, RegistryUnavailableError
from intelligence.known_firms import KnownFirmIndex
from intelligence.models import Category, CategorySource, Contact, WorkHistoryEntry
from intelligence.normalizers import normalize_title, utcnow
from intelligence.repository import ContactRegistry

VC_TITLE_PATTERN = re.compile(
    r"\b(partner|principal|associate|analyst|venture|vc|gp|general partner|managing director|investment)\b"
)
ANGEL_TITLE_PATTERN = re.compile(
    r"\b(angel|investor|advisor|adviser|board member|board director|mentor|entrepreneur in residence|eir)\b"
)
FOUNDER_PATTERN = re.compile(r"\b(founder|co-founder|cofounder)\b")
EXECUTIVE_PATTERN = re.compile(r"\b(ceo|cto|cfo|coo|cpo|chief|president)\b")

# (label, pattern, needs leadership seniority, confidence)
SALES_TARGET_RULES = (
    ("trust & safety", re.compile(r"\b(trust|safety|fraud|risk|abuse|integrity)\b"), False, 0.85),
    ("security leadership", re.compile(r"\b(ciso|security|identity)\b"), True, 0.85),
    ("legal/compliance leadership", re.compile(r"\b(legal|counsel|compliance|privacy|clo)\b"), True, 0.75),
    ("product leadership", re.compile(r"\b(product|cpo)\b"), True, 0.7),
)

# Checked in order, first hit wins
SENIORITY_KEYWORDS = (
    ("c_suite", ("ceo", "cto", "cfo", "coo", "cmo", "cro", "cpo", "ciso", "chief", "founder", "co-founder", "president", "general counsel")),
    ("vp", ("vp", "vice president", "svp", "evp")),
    ("director", ("director", "head of", "head")),
    ("manager", ("manager", "team lead", "supervisor")),
    ("senior", ("senior", "sr", "staff", "principal", "lead")),
    ("junior", ("junior", "jr", "associate", "intern")),
)
LEADERSHIP_LEVELS = frozenset({"c_suite", "vp", "director"})

VC_INDUSTRIES = ("venture capital", "private equity", "investment management", "capital markets")
TECH_INDUSTRIES = (
    "software", "saas", "technology", "internet", "fintech",
    "computer", "b2b", "enterprise", "artificial intelligence",
)

MAX_PROMPT_WORK_HISTORY = 5


@dataclass(frozen=True)
class WorkSnapshot:
    company_name: str
    title: Optional[str] = None
    industry: Optional[str] = None
    is_current: bool = False


@dataclass(frozen=True)
class ContactSnapshot:
    """Everything categorization needs, detached from the database session."""
    id: str
    full_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    industry: Optional[str] = None
    work_history: tuple[WorkSnapshot, ...] = ()

    @classmethod
    def from_contact(cls, contact: Contact, history: Iterable[WorkHistoryEntry] = ()) -> "ContactSnapshot":
        return cls(
            id=contact.id,
            full_name=contact.full_name,
            title=contact.current_title,
            company=contact.current_company,
            industry=contact.industry,
            work_history=tuple(
                WorkSnapshot(
                    company_name=entry.company_name,
                    title=entry.title,
                    industry=entry.company_industry,
                    is_current=entry.is_current,
                )
                for entry in history
            ),
        )


@dataclass(frozen=True)
class Categorization:
    category: Category
    confidence: float
    reason: str
    source: CategorySource = CategorySource.RULE


@dataclass(frozen=True)
class ClassifierOutcome:
    """Result of an external classifier call: a categorization or an error, never both."""
    categorization: Optional[Categorization] = None
    error: Optional[ClassifierError] = None

    @property
    def ok(self) -> bool:
        return self.categorization is not None

    @classmethod
    def failure(cls, kind: str, message: str) -> "ClassifierOutcome":
        return cls(error=ClassifierError(kind=kind, message=message))


class ExternalClassifier(Protocol):
    async def classify(self, contact: ContactSnapshot) -> ClassifierOutcome: ...


UNCATEGORIZED = Categorization(
    category=Category.UNCATEGORIZED,
    confidence=0.0,
    reason="No clear categorization signal from rules",
)


@dataclass(frozen=True)
class TitleProfile:
    """What a job title says, independent of who holds it."""
    seniority: Optional[str] = None
    vc_title: bool = False
    angel_title: bool = False
    founder: bool = False
    executive: bool = False
    sales_target: Optional[tuple[str, float]] = None

    @property
    def is_leadership(self) -> bool:
        return self.seniority in LEADERSHIP_LEVELS


def _contains_keyword(title: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", title) is not None


def seniority_level(title: str) -> Optional[str]:
    for level, keywords in SENIORITY_KEYWORDS:
        if any(_contains_keyword(title, keyword) for keyword in keywords):
            return level
    return None


def profile_title(title: Optional[str]) -> TitleProfile:
    """Analyze a job title. Pure; results are cached per normalized title."""
    key = normalize_title(title)
    if not key:
        return TitleProfile()

    seniority = seniority_level(key)
    sales_target = None
    for label, pattern, needs_leadership, confidence in SALES_TARGET_RULES:
        if pattern.search(key) and (not needs_leadership or seniority in LEADERSHIP_LEVELS):
            sales_target = (label, confidence)
            break

    return TitleProfile(
        seniority=seniority,
        vc_title=bool(VC_TITLE_PATTERN.search(key)),
        angel_title=bool(ANGEL_TITLE_PATTERN.search(key)),
        founder=bool(FOUNDER_PATTERN.search(key)),
        executive=bool(EXECUTIVE_PATTERN.search(key)),
        sales_target=sales_target,
    )


class TitleProfileCache:
    """
    Bounded LRU cache of title profiles with a time-to-live.

    Owned by one Categorizer. Safe to clear at any time.
    """

    def __init__(
        self,
        max_size: int = 2048,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max(1, max_size)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, TitleProfile]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[TitleProfile]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, profile = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return profile

    def put(self, key: str, profile: TitleProfile):
        self._entries[key] = (self._clock(), profile)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def profile(self, title: Optional[str]) -> TitleProfile:
        key = normalize_title(title)
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        profile = profile_title(key)
        self.put(key, profile)
        return profile

    def clear(self):
        self._entries.clear()


def _industry_matches(industry: Optional[str], tags: Iterable[str]) -> bool:
    if not industry:
        return False
    industry = industry.lower()
    return any(tag in industry for tag in tags)


def categorize_by_rules(
    contact: ContactSnapshot,
    firms: KnownFirmIndex,
    profile: Optional[TitleProfile] = None,
) -> Categorization:
    """Run the rule chain for one contact."""
    profile = profile or profile_title(contact.title)
    title = contact.title or ""
    company = contact.company or ""

    # 1. VC
    employer = firms.match(contact.company)
    if employer and employer.is_institutional:
        return Categorization(Category.VC, 0.95, f"Works at known VC firm: {employer.name}")

    for job in contact.work_history:
        firm = firms.match(job.company_name)
        if firm and firm.is_institutional:
            return Categorization(Category.VC, 0.85, f"Work history at known VC firm: {firm.name}")
        if _industry_matches(job.industry, VC_INDUSTRIES):
            return Categorization(
                Category.VC, 0.85, f"Work history in {job.industry} at {job.company_name}"
            )

    if profile.vc_title and _industry_matches(contact.industry, VC_INDUSTRIES):
        return Categorization(Category.VC, 0.85, f'Title "{title}" at "{company}" matches VC pattern')

    # 2. Angel
    if employer and not employer.is_institutional:
        return Categorization(
            Category.ANGEL, 0.9, f"Works at accelerator/angel network: {employer.name}"
        )
    if profile.angel_title:
        return Categorization(Category.ANGEL, 0.9, f'Title "{title}" indicates angel investor')

    # 3. Startup executive as potential angel
    if (profile.founder or profile.executive) and _industry_matches(contact.industry, TECH_INDUSTRIES):
        confidence = 0.65 if profile.founder else 0.6
        return Categorization(
            Category.ANGEL, confidence, f"{title} at tech company {company}, potential angel investor"
        )

    # 4. Sales target
    if profile.sales_target:
        label, confidence = profile.sales_target
        return Categorization(
            Category.SALES_PROSPECT, confidence, f"{title} at {company}: {label} buyer"
        )

    return UNCATEGORIZED


@dataclass
class CategorizerConfig:
    """Configuration for categorization runs."""
    confidence_threshold: float = field(default_factory=lambda: settings.CATEGORY_CONFIDENCE_THRESHOLD)
    concurrency: int = field(default_factory=lambda: settings.BATCH_CONCURRENCY)
    classifier_delay_ms: int = field(default_factory=lambda: settings.CLASSIFIER_DELAY_MS)
    cache_size: int = field(default_factory=lambda: settings.TITLE_CACHE_SIZE)
    cache_ttl_seconds: float = field(default_factory=lambda: settings.TITLE_CACHE_TTL_SECONDS)


@dataclass
class CategorizationResult(BatchResult):
    """Batch outcome for a categorization run."""
    by_category: dict = field(default_factory=dict)
    by_source: dict = field(default_factory=dict)
    classifier_calls: int = 0

    def record_categorization(self, categorization: Categorization):
        self.record_success()
        category = categorization.category.value
        source = categorization.source.value
        self.by_category[category] = self.by_category.get(category, 0) + 1
        self.by_source[source] = self.by_source.get(source, 0) + 1

    def log_summary(self, title: str = "CATEGORIZATION SUMMARY"):
        super().log_summary(title)
        logger.info(f"Classifier calls: {self.classifier_calls}")
        for category, count in sorted(self.by_category.items(), key=lambda x: -x[1]):
            logger.info(f"  {category:16}: {count}")


class Categorizer:
    """Rule chain plus confidence-gated external classifier."""

    def __init__(
        self,
        registry: ContactRegistry,
        classifier: Optional[ExternalClassifier] = None,
        config: Optional[CategorizerConfig] = None,
        firms: Optional[KnownFirmIndex] = None,
        cache: Optional[TitleProfileCache] = None,
    ):
        self.registry = registry
        self.classifier = classifier
        self.config = config or CategorizerConfig()
        self._firms = firms
        self.cache = cache or TitleProfileCache(
            max_size=self.config.cache_size,
            ttl_seconds=self.config.cache_ttl_seconds,
        )

    @property
    def firms(self) -> KnownFirmIndex:
        if self._firms is None:
            rows = self.registry.list_known_firms()
            if rows:
                self._firms = KnownFirmIndex.from_rows(rows)
            else:
                logger.warning("Known firm table is empty, using built-in firm list")
                self._firms = KnownFirmIndex.default()
        return self._firms

    def snapshot(self, tenant_id: str, contacts: list[Contact]) -> list[ContactSnapshot]:
        """Pre-fetch contacts and work history so async workers never touch the session."""
        history = self.registry.work_history_for(tenant_id, [c.id for c in contacts])
        return [ContactSnapshot.from_contact(c, history.get(c.id, [])) for c in contacts]

    def categorize_by_rules(self, contact: ContactSnapshot) -> Categorization:
        return categorize_by_rules(contact, self.firms, self.cache.profile(contact.title))

    def needs_classifier(self, categorization: Categorization) -> bool:
        return categorization.confidence < self.config.confidence_threshold

    async def categorize(
        self,
        contact: ContactSnapshot,
        rate_limiter: Optional[AsyncRateLimiter] = None,
    ) -> ClassifierOutcome:
        """
        Categorize one contact.

        Returns the rule result when it is confident enough (or no classifier
        is configured), otherwise whatever the classifier returns.
        """
        categorization = self.categorize_by_rules(contact)
        if not self.needs_classifier(categorization) or self.classifier is None:
            return ClassifierOutcome(categorization=categorization)

        if rate_limiter:
            await rate_limiter.wait()
        outcome = await self.classifier.classify(contact)
        if outcome.ok:
            logger.debug(
                f"Classifier: {contact.full_name} -> {outcome.categorization.category.value} "
                f"(conf: {outcome.categorization.confidence:.2f}, rules had {categorization.confidence:.2f})"
            )
        return outcome

    def save(self, tenant_id: str, contact_id: str, categorization: Categorization):
        """Write a categorization onto a contact. Does not commit."""
        self.registry.upsert_contact(
            tenant_id,
            {
                "category": categorization.category,
                "category_confidence": categorization.confidence,
                "category_source": categorization.source,
                "category_reason": categorization.reason,
                "categorized_at": utcnow(),
            },
            contact_id=contact_id,
        )

    async def categorize_batch(
        self,
        tenant_id: str,
        contact_ids: Optional[Iterable[str]] = None,
        include_categorized: bool = False,
        limit: Optional[int] = None,
        dry_run: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CategorizationResult:
        """
        Categorize a tenant's contacts.

        By default only uncategorized contacts are processed. Manual
        categorizations are never overwritten.
        """
        category = None if include_categorized else Category.UNCATEGORIZED
        contacts = self.registry.list_contacts(
            tenant_id, category=category, contact_ids=contact_ids, limit=limit
        )
        contacts = [c for c in contacts if c.category_source != CategorySource.MANUAL]

        log_banner(f"CATEGORIZER ({tenant_id})")
        logger.info(f"Contacts to process: {len(contacts)}")
        logger.info(f"Classifier: {type(self.classifier).__name__ if self.classifier else 'none (rules only)'}")
        logger.info(f"Concurrency: {self.config.concurrency}")
        logger.info(f"Mode: {'DRY RUN' if dry_run else 'LIVE'}")

        snapshots = self.snapshot(tenant_id, contacts)
        rate_limiter = AsyncRateLimiter(self.config.classifier_delay_ms / 1000)
        result = CategorizationResult()

        async def worker(contact: ContactSnapshot) -> ClassifierOutcome:
            return await self.categorize(contact, rate_limiter)

        outcomes = await run_bounded(
            snapshots, worker, concurrency=self.config.concurrency, cancel_token=cancel_token
        )
        if cancel_token and cancel_token.cancelled:
            result.cancelled = True

        for contact, outcome, exc in outcomes:
            label = f"{contact.full_name} ({contact.id})"
            if exc is not None:
                if isinstance(exc, RegistryUnavailableError):
                    raise exc
                logger.error(f"Categorization failed for {label}: {exc}")
                result.record_failure(label, exc)
                continue
            if not outcome.ok or outcome.categorization.source == CategorySource.EXTERNAL_CLASSIFIER:
                result.classifier_calls += 1
            if not outcome.ok:
                logger.warning(f"Classifier failed for {label}: {outcome.error}")
                result.record_failure(label, outcome.error)
                continue

            if not dry_run:
                try:
                    self.save(tenant_id, contact.id, outcome.categorization)
                    self.registry.commit()
                except RegistryUnavailableError:
                    raise
                except Exception as e:
                    self.registry.rollback()
                    logger.error(f"Failed to save categorization for {label}: {e}")
                    result.record_failure(label, e)
                    continue
            result.record_categorization(outcome.categorization)

        logger.info(f"Title cache: {len(self.cache)} entries, {self.cache.hits} hits, {self.cache.misses} misses")
        result.log_summary()
        return result
