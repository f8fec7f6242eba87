"""
Tests for the listing-search pagination and the per-job enricher.
"""
import math

import httpx
import pytest

from conftest import FakeJobBoard, make_detail
from exceptions import CatalogFetchError, DetailFetchError
from models import JobDetailRecord, ListingStub, WorkLocation
from rate_limiter import RateLimiter
from scrapers.jobsuche_api import JobsucheClient, ListingEnricher, PaginatedCatalogFetcher


def _fetcher(settings, board, page_size=2):
    client = JobsucheClient(settings.catalog_api, client=board.client())
    return PaginatedCatalogFetcher(client, page_size=page_size, rate_limiter=RateLimiter(0))


@pytest.mark.parametrize("total,page_size", [(6, 2), (5, 2), (1, 2), (7, 3)])
def test_fetches_ceil_total_over_page_size_pages(settings, total, page_size):
    board = FakeJobBoard(total=total, page_size=page_size)
    fetcher = _fetcher(settings, board, page_size=page_size)

    stubs = fetcher.fetch_all()

    assert fetcher.pages_fetched == math.ceil(total / page_size)
    assert board.search_calls == list(range(1, math.ceil(total / page_size) + 1))
    assert len(stubs) == total
    assert [s.refnr for s in stubs] == [f"REF-{n}" for n in range(1, total + 1)]


def test_page_cap_limits_pages(settings):
    board = FakeJobBoard(total=10, page_size=2)
    fetcher = _fetcher(settings, board)

    stubs = fetcher.fetch_all(max_pages=2)

    assert board.search_calls == [1, 2]
    assert len(stubs) == 4


def test_cap_larger_than_catalog_fetches_all_pages(settings):
    board = FakeJobBoard(total=3, page_size=2)
    fetcher = _fetcher(settings, board)

    stubs = fetcher.fetch_all(max_pages=50)

    assert board.search_calls == [1, 2]
    assert len(stubs) == 3


def test_sends_api_key_and_client_headers(settings):
    seen = {}

    def handler(request):
        seen["key"] = request.headers.get("X-API-Key")
        seen["ua"] = request.headers.get("User-Agent")
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"maxErgebnisse": 0, "stellenangebote": []})

    client = JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    PaginatedCatalogFetcher(client, page_size=2, rate_limiter=RateLimiter(0)).fetch_all()

    assert seen["key"] == "test-key"
    assert seen["ua"] == "tests/1.0"
    assert seen["params"] == {"angebotsart": "1", "page": "1", "size": "2"}


def test_first_page_failure_raises(settings):
    board = FakeJobBoard(total=6, page_size=2, failing_pages={1})
    with pytest.raises(CatalogFetchError) as exc:
        _fetcher(settings, board).fetch_all()
    assert exc.value.page == 1


def test_later_page_failure_aborts_without_partial_results(settings):
    board = FakeJobBoard(total=6, page_size=2, failing_pages={2})
    fetcher = _fetcher(settings, board)

    with pytest.raises(CatalogFetchError) as exc:
        fetcher.fetch_all()

    assert exc.value.page == 2
    assert board.search_calls == [1, 2]


def test_malformed_listing_is_skipped_not_fatal(settings):
    board = FakeJobBoard(total=4, page_size=2, extra_listings={2: [{"titel": "no reference"}, "garbage"]})
    fetcher = _fetcher(settings, board)

    pages = list(fetcher.iter_pages())

    assert board.search_calls == [1, 2]
    assert [s.refnr for s in pages[1].listings] == ["REF-3", "REF-4"]
    assert len(pages[1].rejected) == 2
    assert pages[1].rejected[0].startswith("page 2 item 3:")
    assert pages[0].rejected == []
    assert len(fetcher.fetch_all()) == 4


def test_listings_not_a_list_is_a_fetch_error(settings):
    def handler(request):
        return httpx.Response(200, json={"maxErgebnisse": "1", "stellenangebote": {"refnr": "REF-1"}})

    client = JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(CatalogFetchError) as exc:
        PaginatedCatalogFetcher(client, page_size=2, rate_limiter=RateLimiter(0)).fetch_all()
    assert exc.value.page == 1


def test_pages_are_requested_lazily(settings):
    board = FakeJobBoard(total=6, page_size=2)
    pages = _fetcher(settings, board).iter_pages()

    first = next(pages)
    pages.close()

    assert first.number == 1
    assert board.search_calls == [1]


def test_malformed_body_is_a_fetch_error(settings):
    def handler(request):
        return httpx.Response(200, content=b"<html>maintenance</html>")

    client = JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(CatalogFetchError):
        PaginatedCatalogFetcher(client, page_size=2, rate_limiter=RateLimiter(0)).fetch_all()


def test_rate_limiter_called_between_pages(settings):
    calls = []

    class CountingLimiter(RateLimiter):
        def wait(self):
            calls.append(1)
            return 0.0

    board = FakeJobBoard(total=6, page_size=2)
    client = JobsucheClient(settings.catalog_api, client=board.client())
    PaginatedCatalogFetcher(client, page_size=2, rate_limiter=CountingLimiter(0)).fetch_all()

    assert len(calls) == 3


def _stub(n=4):
    return ListingStub(
        refnr=f"REF-{n}", title=f"Job {n}", employer=f"Employer {n}",
        location=WorkLocation(city="Berlin", postal_code="10115"),
    )


def test_enricher_returns_detail_record(settings):
    board = FakeJobBoard(total=6, page_size=2)
    enricher = ListingEnricher(JobsucheClient(settings.catalog_api, client=board.client()))

    record = enricher.enrich(_stub(3))

    assert record.refnr == "REF-3"
    assert record.description == "Description 3"
    assert record.skills == ["Python", "SQL"]
    assert record.logo_url == "https://logo.test/3.png"
    assert record.degraded is False
    assert enricher.degraded == 0


def test_enricher_never_raises_when_detail_endpoint_always_fails(settings):
    def handler(request):
        return httpx.Response(500)

    enricher = ListingEnricher(
        JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    )

    for n in range(1, 21):
        record = enricher.enrich(_stub(n))
        assert record.degraded is True
        assert record.refnr == f"REF-{n}"
        assert record.title == f"Job {n}"
        assert record.description is None

    assert enricher.degraded == 20


def test_enricher_recovers_from_network_errors(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    enricher = ListingEnricher(
        JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    )
    record = enricher.enrich(_stub())
    assert record.degraded is True


def test_job_detail_raises_detail_fetch_error(settings):
    def handler(request):
        return httpx.Response(404)

    client = JobsucheClient(settings.catalog_api, client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(DetailFetchError):
        client.job_detail("REF-1")


def test_detail_record_from_api_is_not_degraded():
    record = JobDetailRecord.from_api(make_detail(5))
    assert record.degraded is False
    assert JobDetailRecord.from_stub(_stub(5)).degraded is True
