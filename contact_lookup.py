"""
contact_lookup.py — On-demand employer contact lookup for one job.
Drives a browser session through the challenge, extracts the contact
block, and caches the result on the stored catalog entry when there is one.
"""

import threading
from concurrent.futures import Future
from typing import Callable, Optional

from config import Settings
from database import CatalogStore
from exceptions import ContactLookupError
from models import ContactInfo
from monitoring import get_logger
from rate_limiter import RateLimiter
from scrapers.browser import BrowserSession
from scrapers.captcha import CaptchaChallengeSolver, ImageSolvingService
from scrapers.contact_extractor import ContactExtractor
from waits import Deadline

logger = get_logger("contact_lookup")


class ContactRequestHandler:
    def __init__(
        self,
        settings: Settings,
        store: Optional[CatalogStore],
        solving_service: Optional[ImageSolvingService] = None,
        extractor: Optional[ContactExtractor] = None,
        session_factory: Optional[Callable[[Deadline], BrowserSession]] = None,
        navigation_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings
        self.store = store
        self.solving_service = solving_service or ImageSolvingService(settings.captcha)
        self.extractor = extractor or ContactExtractor()
        self.session_factory = session_factory or (lambda deadline: BrowserSession(settings.browser, deadline))
        self.navigation_limiter = navigation_limiter or RateLimiter(settings.rate_limits.navigation_delay)
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    def handle(self, refnr: str) -> ContactInfo:
        """Look up the contact and cache it on the catalog entry. Store failures are ignored."""
        contact = self.lookup(refnr)
        self.cache_contact(refnr, contact)
        return contact

    def lookup(self, refnr: str) -> ContactInfo:
        """
        Extract the contact for `refnr`. Concurrent calls for the same reference
        number share one browser session and one solving-service round trip.
        """
        with self._lock:
            future = self._inflight.get(refnr)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[refnr] = future

        if not leader:
            logger.info(f"Lookup for {refnr} already in flight, waiting for it")
            return future.result(timeout=self.settings.contact_timeout_seconds)

        try:
            contact = self._lookup(refnr)
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(contact)
            return contact
        finally:
            with self._lock:
                self._inflight.pop(refnr, None)

    def _lookup(self, refnr: str) -> ContactInfo:
        logger.info(f"Getting contact info for job: {refnr}")
        deadline = Deadline(self.settings.contact_timeout_seconds)
        self.navigation_limiter.wait()

        with self.session_factory(deadline) as session:
            session.open(refnr)
            solver = CaptchaChallengeSolver(session, self.solving_service, self.settings.captcha, deadline)
            outcome = solver.run()
            contact = self.extractor.extract(session.html(), refnr=refnr, page_text=session.text())

        if outcome.stuck and contact.is_empty():
            raise ContactLookupError(f"Challenge not cleared for {refnr} ({outcome.reason}); no contact data visible")
        if outcome.stuck:
            logger.warning(f"Challenge stuck for {refnr} but partial contact data was extracted")
        return contact

    def cache_contact(self, refnr: str, contact: ContactInfo) -> bool:
        """Patch the stored entry with the lookup result. Never raises."""
        if self.store is None:
            return False
        try:
            updated = self.store.patch_contact(refnr, contact)
        except Exception as e:
            logger.warning(f"Could not cache contact for {refnr}: {type(e).__name__}: {e}")
            return False
        if updated:
            logger.info(f"Updated catalog entry {refnr} with contact info")
        else:
            logger.info(f"Job {refnr} not in catalog, skipping update")
        return updated
