"""
Batch execution helpers.

Batches run as independent units of work per contact/prospect: one bad item
is recorded and skipped, it never stops the rest. The error list is capped so
a batch over a huge registry cannot grow memory without bound.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from config.logging import logger
from config.settings import settings

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchResult:
    """Outcome of a batch run: counts plus a bounded list of error messages."""
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    errors_truncated: int = 0
    cancelled: bool = False
    max_errors: int = field(default_factory=lambda: settings.MAX_BATCH_ERRORS)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def record_success(self):
        self.succeeded += 1

    def record_failure(self, item: str, error):
        self.failed += 1
        self._add_error(f"{item}: {error}")

    def record_skip(self, item: str, reason):
        self.skipped += 1
        self._add_error(f"{item}: skipped ({reason})")

    def _add_error(self, message: str):
        if len(self.errors) < self.max_errors:
            self.errors.append(message)
        else:
            self.errors_truncated += 1

    def log_summary(self, title: str):
        """Log summary statistics."""
        logger.info("=" * 60)
        logger.info(title)
        logger.info("=" * 60)
        logger.info(f"Succeeded: {self.succeeded}")
        logger.info(f"Failed: {self.failed}")
        logger.info(f"Skipped: {self.skipped}")
        if self.cancelled:
            logger.info("Run was cancelled before all items were processed")
        for message in self.errors:
            logger.info(f"  ! {message}")
        if self.errors_truncated:
            logger.info(f"  ... and {self.errors_truncated} more errors")
        logger.info("=" * 60)


class CancellationToken:
    """Cooperative cancellation flag, checked between items (never mid-item)."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AsyncRateLimiter:
    """
    Enforce a minimum interval between calls to a vendor API.

    Callers reserve the next free slot and sleep until it; no lock is held
    while sleeping.
    """

    def __init__(self, min_interval_seconds: float):
        self.min_interval = max(0.0, min_interval_seconds)
        self._next_slot = 0.0

    async def wait(self):
        loop = asyncio.get_running_loop()
        now = loop.time()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            await asyncio.sleep(delay)


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 5,
    cancel_token: Optional[CancellationToken] = None,
) -> list[tuple[T, Optional[R], Optional[BaseException]]]:
    """
    Run worker over items with at most `concurrency` in flight.

    Returns (item, result, exception) triples in input order. Items not yet
    started when the token is cancelled are left out of the output.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def process_with_semaphore(item: T):
        async with semaphore:
            if cancel_token and cancel_token.cancelled:
                return None
            try:
                return item, await worker(item), None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                return item, None, e

    outcomes = await asyncio.gather(*(process_with_semaphore(item) for item in items))
    return [outcome for outcome in outcomes if outcome is not None]
