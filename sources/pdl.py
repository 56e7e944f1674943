"""
People Data Labs enrichment.

Looks people up by LinkedIn URL (preferred) or email, and merges the result
into the registry: profile fields through the merge engine, work history
replaced wholesale.
"""

import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.logging import log_banner, logger
from config.settings import settings
from intelligence.batch import BatchResult, CancellationToken
from intelligence.entity_resolution.resolver import ContactResolver
from intelligence.errors import EnrichmentError, RegistryUnavailableError
from intelligence.models import Contact
from sources.records import EnrichmentRecord, to_raw_contact


class CreditsExhaustedError(EnrichmentError):
    """The vendor account is out of credits. Further calls are pointless."""


def normalize_linkedin_url(url: str) -> str:
    """Canonical https://linkedin.com/in/<slug> form expected by the API."""
    clean = url.strip()
    for prefix in ("https://", "http://"):
        if clean.startswith(prefix):
            clean = clean[len(prefix):]
    if clean.startswith("www."):
        clean = clean[4:]
    if not clean.startswith("linkedin.com"):
        clean = f"linkedin.com/in/{clean}"
    return f"https://{clean.rstrip('/')}"


class PDLClient:
    """
    Client for the PDL person enrichment endpoint.

    Usage:
        client = PDLClient()
        record = client.enrich(linkedin_url="https://linkedin.com/in/janedoe")
    """

    API_URL = "https://api.peopledatalabs.com/v5/person/enrich"

    def __init__(
        self,
        api_key: Optional[str] = None,
        min_request_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.PDL_API_KEY
        if min_request_interval is None:
            min_request_interval = settings.HTTP_REQUEST_DELAY_MS / 1000
        self.min_request_interval = min_request_interval
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self.last_request_time = 0.0

        # Setup session with retry logic
        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _rate_limit(self):
        """Enforce rate limiting."""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            time.sleep(self.min_request_interval - elapsed)
        self.last_request_time = time.time()

    def enrich(
        self,
        linkedin_url: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[EnrichmentRecord]:
        """
        Look up one person.

        Returns:
            EnrichmentRecord, or None when the vendor has no match

        Raises:
            CreditsExhaustedError: account out of credits (HTTP 402)
            EnrichmentError: any other failure
        """
        if not self.api_key:
            raise EnrichmentError("PDL_API_KEY not configured")

        if linkedin_url:
            params = {"profile": normalize_linkedin_url(linkedin_url)}
        elif email:
            params = {"email": email}
        else:
            raise EnrichmentError("No email or LinkedIn URL provided")

        self._rate_limit()
        try:
            response = self.session.get(
                self.API_URL,
                params={**params, "api_key": self.api_key},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise EnrichmentError(f"PDL request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code == 402:
            raise CreditsExhaustedError("PDL credits exhausted")
        if not response.ok:
            raise EnrichmentError(f"PDL API error: {response.status_code} - {response.text[:200]}")

        person = (response.json() or {}).get("data")
        if not person:
            return None
        return EnrichmentRecord.from_payload(person)


def enrich_contacts(
    resolver: ContactResolver,
    client: PDLClient,
    tenant_id: str,
    limit: Optional[int] = None,
    refresh: bool = False,
    cancel_token: Optional[CancellationToken] = None,
) -> BatchResult:
    """
    Enrich a tenant's contacts one at a time, committing per contact.

    Contacts without an email or LinkedIn URL are skipped. A lookup with no
    match is recorded so later runs skip the contact unless refreshing.
    Running out of credits stops the run.
    """
    registry = resolver.registry
    log_banner(f"PDL ENRICHMENT ({tenant_id})")

    contacts: list[Contact] = registry.list_contacts(tenant_id)
    if not refresh:
        contacts = [c for c in contacts if c.enrichment_attempted_at is None]
    if limit:
        contacts = contacts[:limit]
    targets = [(c.id, c.full_name, c.linkedin_url, c.email) for c in contacts]
    logger.info(f"Contacts to enrich: {len(targets)}")

    result = BatchResult()
    for contact_id, name, linkedin_url, email in targets:
        if cancel_token and cancel_token.cancelled:
            result.cancelled = True
            break

        label = f"{name} ({contact_id})"
        if not linkedin_url and not email:
            result.record_skip(label, "no email or LinkedIn URL")
            continue

        try:
            record = client.enrich(linkedin_url=linkedin_url, email=email)
            if record is None:
                registry.mark_enrichment_attempted(tenant_id, contact_id)
                registry.commit()
                result.record_skip(label, "not found in PDL")
                continue
            decision = resolver.apply_enrichment(
                tenant_id, contact_id, to_raw_contact(record), record.work_history()
            )
            registry.commit()
        except RegistryUnavailableError:
            raise
        except CreditsExhaustedError as e:
            logger.error(f"Stopping enrichment: {e}")
            result.record_failure(label, e)
            break
        except Exception as e:
            registry.rollback()
            logger.error(f"Enrichment failed for {label}: {e}")
            result.record_failure(label, e)
            continue

        logger.info(
            f"  -> {name}: {len(set(decision.changes) - {'field_sources'})} fields, "
            f"{decision.details.get('work_history_entries', 0)} jobs"
        )
        result.record_success()

    result.log_summary("ENRICHMENT SUMMARY")
    return result
