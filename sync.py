"""
sync.py — Catalog sync orchestrator.
Fetches the listing catalog page by page, enriches and upserts every listing
one at a time, and tallies the outcome. Per-item failures never abort a run.
"""

import threading
import time
from enum import Enum
from typing import Callable, Optional

from config import Settings
from database import CatalogStore
from exceptions import CatalogFetchError, SyncAlreadyRunning
from models import ListingStub, RunLog, SyncResult
from monitoring import get_logger, log_pipeline_step, log_sync_summary
from rate_limiter import RateLimiter
from scrapers.jobsuche_api import JobsucheClient, ListingEnricher, PaginatedCatalogFetcher

logger = get_logger("sync")


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "enriching-and-upserting"
    DONE = "done"
    FAILED = "failed"


class SyncOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store: CatalogStore,
        fetcher: PaginatedCatalogFetcher,
        enricher: ListingEnricher,
        item_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.store = store
        self.fetcher = fetcher
        self.enricher = enricher
        self.item_limiter = item_limiter or RateLimiter(settings.rate_limits.item_delay)
        self.clock = clock
        self.state = SyncState.IDLE
        self._run_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, store: CatalogStore,
                      client: Optional[JobsucheClient] = None) -> "SyncOrchestrator":
        client = client or JobsucheClient(settings.catalog_api)
        fetcher = PaginatedCatalogFetcher(
            client,
            page_size=settings.catalog_api.page_size,
            rate_limiter=RateLimiter(settings.rate_limits.page_delay),
        )
        return cls(settings, store, fetcher, ListingEnricher(client))

    def run_scheduled(self) -> SyncResult:
        """Full-catalog run under the configured wall-clock ceiling."""
        return self.run(
            max_pages=None,
            max_runtime=self.settings.sync.max_runtime_seconds,
            trigger="scheduled",
            progress_every=100,
        )

    def run_manual(self, max_pages: Optional[int] = None) -> SyncResult:
        """Bounded run for operators and testing."""
        return self.run(
            max_pages=max_pages or self.settings.sync.manual_max_pages,
            max_runtime=None,
            trigger="manual",
            progress_every=10,
        )

    def _out_of_time(self, started: float, max_runtime: Optional[float]) -> bool:
        if max_runtime is None:
            return False
        elapsed = self.clock() - started
        return elapsed >= max_runtime - self.settings.sync.safety_margin_seconds

    def run(
        self,
        max_pages: Optional[int] = None,
        max_runtime: Optional[float] = None,
        trigger: str = "manual",
        progress_every: int = 100,
    ) -> SyncResult:
        """
        idle -> fetching -> enriching-and-upserting -> done | failed.
        Each page is enriched and upserted before the next page is requested,
        so the runtime ceiling covers fetching as well as processing.
        Never raises for listing or item failures; the result carries the counts.
        Raises SyncAlreadyRunning when another run holds this orchestrator.
        """
        if not self._run_lock.acquire(blocking=False):
            raise SyncAlreadyRunning("A sync run is already in progress")
        try:
            return self._run(max_pages, max_runtime, trigger, progress_every)
        finally:
            self._run_lock.release()

    def _fail(self, result: SyncResult, message: str):
        self.state = SyncState.FAILED
        result.state = SyncState.FAILED.value
        result.failure = message
        result.error_messages.append(message)

    def _run(self, max_pages, max_runtime, trigger, progress_every) -> SyncResult:
        started = self.clock()
        result = SyncResult(trigger=trigger)
        logger.info(f"Starting {trigger} job sync (max_pages={max_pages or 'all'})")
        degraded_before = self.enricher.degraded

        pages = self.fetcher.iter_pages(max_pages=max_pages)
        try:
            while not result.stopped_early:
                if result.fetched and self._out_of_time(started, max_runtime):
                    self._stop_early(result)
                    break

                self.state = SyncState.FETCHING
                result.state = SyncState.FETCHING.value
                try:
                    page = next(pages, None)
                except Exception as e:
                    if not isinstance(e, CatalogFetchError):
                        logger.exception("Unexpected error while fetching listings")
                    logger.error(f"Sync failed while fetching listings: {e}")
                    self._fail(result, str(e))
                    break
                if page is None:
                    break

                result.fetched += len(page.listings) + len(page.rejected)
                log_pipeline_step(logger, f"Fetched page {page.number}", len(page.listings))
                for reason in page.rejected:
                    result.processed += 1
                    result.errors += 1
                    result.error_messages.append(reason)

                self.state = SyncState.PROCESSING
                result.state = SyncState.PROCESSING.value
                for listing in page.listings:
                    if self._out_of_time(started, max_runtime):
                        self._stop_early(result)
                        break
                    self._process(listing, result, progress_every)
        finally:
            pages.close()

        result.degraded = self.enricher.degraded - degraded_before
        if result.failure is None:
            if result.stopped_early and result.processed == 0:
                self._fail(result, "Runtime ceiling reached before any listing was processed")
            else:
                self.state = SyncState.DONE
                result.state = SyncState.DONE.value
        self._finish(result, started)
        return result

    def _stop_early(self, result: SyncResult):
        result.stopped_early = True
        logger.warning(
            f"Runtime ceiling reached after {result.processed}/{result.fetched} fetched listings, stopping"
        )

    def _process(self, listing: ListingStub, result: SyncResult, progress_every: int):
        result.processed += 1
        try:
            record = self.enricher.enrich(listing)
            self.store.upsert_job(record)
            result.saved += 1
            if result.saved % progress_every == 0:
                logger.info(f"Saved {result.saved} jobs")
        except Exception as e:
            result.errors += 1
            result.error_messages.append(f"{listing.refnr}: {type(e).__name__}: {e}")
            logger.error(f"Error processing job {listing.refnr}: {e}")

        self.item_limiter.wait()

    def _finish(self, result: SyncResult, started: float):
        duration = self.clock() - started
        log_sync_summary(logger, result, duration)
        try:
            self.store.log_run(RunLog.from_result(result, duration))
        except Exception as e:
            logger.warning(f"Could not store run log: {e}")
