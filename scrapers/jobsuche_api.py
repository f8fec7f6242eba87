"""
jobsuche_api.py — Listing-search and per-job detail API of the job board.
The search endpoint is paginated and reports the total hit count on every
page; the detail endpoint returns one enriched record per reference number.
"""

import math
from dataclasses import dataclass, field
from typing import Iterator, Optional

import httpx

from config import CatalogApiSettings
from exceptions import CatalogFetchError, DetailFetchError
from models import JobDetailRecord, ListingStub
from monitoring import get_logger
from rate_limiter import RateLimiter

logger = get_logger("scrapers.jobsuche_api")


class JobsucheClient:
    """Thin HTTP client: URLs, headers, timeouts. No retries."""

    def __init__(self, settings: CatalogApiSettings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.timeout_seconds)

    def _headers(self) -> dict:
        return {
            "X-API-Key": self.settings.api_key,
            "User-Agent": self.settings.client_id,
            "Accept": "application/json",
        }

    def search_page(self, page: int, size: int) -> dict:
        """Fetch ONE page of search results and return the raw JSON body."""
        params = {
            "angebotsart": str(self.settings.offer_type),
            "page": str(page),
            "size": str(size),
        }
        url = self.settings.base_url + self.settings.search_path
        response = self._client.get(url, params=params, headers=self._headers())
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected search response type: {type(data).__name__}")
        return data

    def job_detail(self, refnr: str) -> dict:
        """Fetch the detail record for one reference number."""
        url = self.settings.base_url + self.settings.detail_path.format(refnr=refnr)
        try:
            response = self._client.get(url, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DetailFetchError(f"Detail lookup failed for {refnr}: {type(e).__name__}: {e}") from e
        if not isinstance(data, dict) or not data:
            raise DetailFetchError(f"Detail lookup for {refnr} returned no record")
        return data

    def close(self):
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def _total_results(data: dict, fallback: int) -> int:
    raw = data.get("maxErgebnisse")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return fallback


@dataclass
class CatalogPage:
    """One page of search results. `rejected` describes listings that could not be parsed."""
    number: int
    listings: list[ListingStub]
    rejected: list[str] = field(default_factory=list)


def _parse_listings(raw_listings: list, page: int) -> tuple[list[ListingStub], list[str]]:
    stubs, rejected = [], []
    for position, item in enumerate(raw_listings, start=1):
        try:
            if not isinstance(item, dict):
                raise ValueError(f"Listing is a {type(item).__name__}, not an object")
            stubs.append(ListingStub.from_api(item))
        except ValueError as e:
            reason = f"page {page} item {position}: {e}"
            logger.warning(f"Skipping malformed listing on {reason}")
            rejected.append(reason)
    return stubs, rejected


class PaginatedCatalogFetcher:
    """Walks the search endpoint page by page and returns all listing stubs."""

    def __init__(self, client: JobsucheClient, page_size: int, rate_limiter: RateLimiter):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.client = client
        self.page_size = page_size
        self.rate_limiter = rate_limiter
        self.pages_fetched = 0
        self.total_results = 0

    def _fetch_page(self, page: int) -> tuple[CatalogPage, dict]:
        self.rate_limiter.wait()
        try:
            data = self.client.search_page(page, self.page_size)
            raw_listings = data.get("stellenangebote") or []
            if not isinstance(raw_listings, list):
                raise ValueError(f"'stellenangebote' is a {type(raw_listings).__name__}, not a list")
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogFetchError(f"Listing page {page} failed: {type(e).__name__}: {e}", page=page) from e
        stubs, rejected = _parse_listings(raw_listings, page)
        self.pages_fetched += 1
        return CatalogPage(number=page, listings=stubs, rejected=rejected), data

    def iter_pages(self, max_pages: Optional[int] = None) -> Iterator[CatalogPage]:
        """
        Yield min(total pages, max_pages) pages starting at page 1. Each page is
        requested only when the caller asks for it, so a consumer can stop early.
        A page failure raises CatalogFetchError from the iterator.
        """
        self.pages_fetched = 0
        first, data = self._fetch_page(1)

        self.total_results = _total_results(data, fallback=len(first.listings) + len(first.rejected))
        total_pages = math.ceil(self.total_results / self.page_size)
        pages_to_fetch = min(total_pages, max_pages) if max_pages else total_pages

        logger.info(
            f"Catalog reports {self.total_results} listings on {total_pages} pages; "
            f"fetching {max(pages_to_fetch, 1)} page(s)"
        )
        yield first

        for page in range(2, pages_to_fetch + 1):
            next_page, _ = self._fetch_page(page)
            if page % 10 == 0:
                logger.info(f"Fetched page {page}/{pages_to_fetch}")
            yield next_page

    def fetch_all(self, max_pages: Optional[int] = None) -> list[ListingStub]:
        """
        Fetch every page up front and return the concatenated stubs.
        Any page failure raises CatalogFetchError; partial results are never returned.
        """
        stubs = []
        for page in self.iter_pages(max_pages=max_pages):
            stubs.extend(page.listings)
        logger.info(f"Catalog fetch complete: {len(stubs)} listings from {self.pages_fetched} page(s)")
        return stubs


class ListingEnricher:
    """Turns a ListingStub into a JobDetailRecord. Never raises."""

    def __init__(self, client: JobsucheClient):
        self.client = client
        self.degraded = 0

    def enrich(self, stub: ListingStub) -> JobDetailRecord:
        try:
            data = self.client.job_detail(stub.refnr)
            record = JobDetailRecord.from_api(data, refnr=stub.refnr)
            # The detail payload occasionally lacks fields the search result had
            record.title = record.title or stub.title
            record.employer = record.employer or stub.employer
            record.location = record.location or stub.location
            return record
        except Exception as e:
            self.degraded += 1
            logger.warning(f"Could not get details for {stub.refnr}, using search data ({e})")
            return JobDetailRecord.from_stub(stub)
