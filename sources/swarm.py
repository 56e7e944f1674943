"""
Social-graph (The Swarm) network client.

Pulls every profile in the team's network from the network-mapper endpoint,
page by page, as SwarmRecord objects.
"""

import time
from dataclasses import dataclass
from typing import Iterator, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.logging import logger
from config.settings import settings
from sources.records import SwarmRecord


@dataclass
class SwarmFetchStats:
    api_requests: int = 0
    profiles_fetched: int = 0
    errors: int = 0


class SwarmClient:
    """
    Client for the Swarm network-mapper API.

    Usage:
        client = SwarmClient()
        for record in client.fetch_network(max_contacts=500):
            ...
    """

    BASE_URL = "https://bee.theswarm.com/v2"
    NETWORK_ENDPOINT = "/profiles/network-mapper"

    # The API caps pages at 50 profiles
    MAX_PAGE_SIZE = 50

    def __init__(
        self,
        api_key: Optional[str] = None,
        min_request_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.SWARM_API_KEY
        if min_request_interval is None:
            min_request_interval = settings.HTTP_REQUEST_DELAY_MS / 1000
        self.min_request_interval = min_request_interval
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self.stats = SwarmFetchStats()
        self.last_request_time = 0.0

        # Setup session with retry logic
        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
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

    def _make_request(self, payload: dict) -> Optional[dict]:
        """POST to the network mapper. Returns None on failure."""
        self._rate_limit()
        self.stats.api_requests += 1

        try:
            response = self.session.post(
                f"{self.BASE_URL}{self.NETWORK_ENDPOINT}",
                json=payload,
                headers={"Content-Type": "application/json", "x-api-key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            logger.error(f"Swarm API request failed: {e}")
            self.stats.errors += 1
            return None

    def fetch_network(self, page_size: int = 50, max_contacts: int = 10000) -> Iterator[SwarmRecord]:
        """Yield every profile in the network, up to max_contacts."""
        if not self.api_key:
            raise ValueError("SWARM_API_KEY not configured")

        page_size = max(1, min(page_size, self.MAX_PAGE_SIZE))
        offset = 0

        while offset < max_contacts:
            data = self._make_request({
                "query": {"match_all": {}},
                "size": page_size,
                "from": offset,
            })
            if data is None:
                break

            items = data.get("items") or []
            if not items:
                break

            total = data.get("total_count", "?")
            logger.info(f"Fetched {len(items)} profiles ({offset + len(items)}/{total})")

            for item in items[: max_contacts - offset]:
                record = SwarmRecord.from_payload(item)
                if not record.profile_id and not record.full_name:
                    continue
                self.stats.profiles_fetched += 1
                yield record

            offset += len(items)
            if len(items) < page_size:
                break
