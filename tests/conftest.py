"""
Shared fixtures and fakes. No test launches a browser or touches the network.
"""
import time

import httpx
import pytest

from config import CaptchaSettings, CatalogApiSettings, RateLimitSettings, Settings, SyncSettings
from database import CatalogStore

API_BASE = "https://api.test/jobsuche"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        catalog_api=CatalogApiSettings(base_url=API_BASE, page_size=2, api_key="test-key", client_id="tests/1.0"),
        rate_limits=RateLimitSettings(page_delay=0, item_delay=0, navigation_delay=0),
        sync=SyncSettings(manual_max_pages=1, max_runtime_seconds=540, safety_margin_seconds=0),
        captcha=CaptchaSettings(
            api_key="captcha-key",
            disappear_timeout_seconds=0.05,
            disappear_poll_seconds=0.01,
            settle_seconds=0,
        ),
        contact_timeout_seconds=30,
        db_path=tmp_path / "jobs.db",
        log_file=None,
    )


@pytest.fixture
def store(settings):
    catalog = CatalogStore(settings.db_path)
    catalog.init_db()
    return catalog


def make_listing(n: int) -> dict:
    return {
        "refnr": f"REF-{n}",
        "titel": f"Job {n}",
        "arbeitgeber": f"Employer {n}",
        "arbeitsort": {"ort": "Berlin", "plz": "10115", "koordinaten": {"lat": 52.5, "lon": 13.4}},
    }


def make_detail(n: int) -> dict:
    return {
        **make_listing(n),
        "stellenbeschreibung": f"Description {n}",
        "fertigkeiten": [{"hierarchieName": "Python"}, {"hierarchieName": "SQL"}],
        "verguetung": "Nach Vereinbarung",
        "befristung": "Unbefristet",
        "aktuelleVeroeffentlichungsdatum": "2026-10-01",
        "eintrittsdatum": "2026-11-01",
        "arbeitgeberlogo": {"url": f"https://logo.test/{n}.png"},
    }


class FakeJobBoard:
    """
    Serves a catalog of `total` listings through httpx.MockTransport.
    `extra_listings` maps a page number to raw items appended to that page.
    """

    def __init__(self, total: int, page_size: int, failing_details=(), failing_pages=(), reported_total=None,
                 extra_listings=None):
        self.total = total
        self.page_size = page_size
        self.failing_details = set(failing_details)
        self.failing_pages = set(failing_pages)
        self.reported_total = total if reported_total is None else reported_total
        self.extra_listings = extra_listings or {}
        self.search_calls = []
        self.detail_calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/pc/v4/jobs"):
            page = int(request.url.params["page"])
            size = int(request.url.params["size"])
            self.search_calls.append(page)
            if page in self.failing_pages:
                return httpx.Response(503, json={"error": "unavailable"})
            start = (page - 1) * size
            numbers = range(start + 1, min(start + size, self.total) + 1)
            return httpx.Response(200, json={
                "maxErgebnisse": str(self.reported_total),
                "stellenangebote": [make_listing(n) for n in numbers] + self.extra_listings.get(page, []),
            })
        refnr = path.rsplit("/", 1)[-1]
        self.detail_calls.append(refnr)
        if refnr in self.failing_details:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json=make_detail(int(refnr.split("-")[1])))

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


class FakeSession:
    """
    Stands in for BrowserSession. `present` holds selectors that match;
    `on_click` maps a selector to (new page text, selectors to add/remove).
    """

    def __init__(self, text="", html="<html><body></body></html>", present=(), on_click=None,
                 image=b"\x89PNG fake", open_error=None):
        self.page_text = text
        self.page_html = html
        self.present = set(present)
        self.on_click = on_click or {}
        self.image = image
        self.open_error = open_error
        self.filled = []
        self.clicked = []
        self.opened = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.closed = True

    def open(self, refnr):
        self.opened.append(refnr)
        if self.open_error:
            raise self.open_error

    def has_element(self, selector):
        return selector in self.present

    def find_first(self, selectors):
        for selector in selectors:
            if selector in self.present:
                return selector
        return None

    def element_png(self, selector):
        return self.image

    def text(self):
        return self.page_text

    def html(self):
        return self.page_html

    def fill(self, selector, value):
        self.filled.append((selector, value))

    def click(self, selector):
        self.clicked.append(selector)
        if selector in self.on_click:
            new_text, new_html = self.on_click[selector]
            if new_text is not None:
                self.page_text = new_text
            if new_html is not None:
                self.page_html = new_html

    def pause(self, seconds):
        time.sleep(min(seconds, 0.005))


class FakeSolvingService:
    def __init__(self, answer="x7k2p", error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def solve(self, image_b64, timeout=None):
        self.calls.append(image_b64)
        if self.error:
            raise self.error
        return self.answer
