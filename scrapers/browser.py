"""
browser.py — One headless Chromium instance per contact lookup.
Use as a context manager; the browser is closed on every exit path.
"""

from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from config import BrowserSettings
from exceptions import NavigationError
from monitoring import get_logger
from waits import Deadline

logger = get_logger("scrapers.browser")

# Per-action timeout for clicks and fills, in milliseconds
ACTION_TIMEOUT_MS = 5000


class BrowserSession:
    def __init__(self, settings: BrowserSettings, deadline: Optional[Deadline] = None):
        self.settings = settings
        self.deadline = deadline or Deadline.unbounded()
        self._playwright = None
        self._browser = None
        self.page = None

    def __enter__(self) -> "BrowserSession":
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.settings.headless)
            context = self._browser.new_context(
                user_agent=self.settings.user_agent,
                viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
            )
            self.page = context.new_page()
        except PlaywrightError as e:
            self.close()
            raise NavigationError(f"Could not start browser: {e}") from e
        except Exception:
            self.close()
            raise
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e}")
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self.page = None

    def _ms(self, seconds: float) -> float:
        return max(1.0, self.deadline.clamp(seconds) * 1000)

    def job_url(self, refnr: str) -> str:
        return self.settings.detail_url.format(refnr=refnr)

    def open(self, refnr: str):
        """Navigate to the job's detail page. A timeout is terminal for the request."""
        self.deadline.check("navigation")
        url = self.job_url(refnr)
        logger.info(f"Loading page: {url}")
        try:
            self.page.goto(url, timeout=self._ms(self.settings.navigation_timeout_seconds), wait_until="networkidle")
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

    # --- read-only queries ---

    def has_element(self, selector: str) -> bool:
        try:
            return self.page.query_selector(selector) is not None
        except PlaywrightError as e:
            raise NavigationError(f"Could not query {selector}: {e}") from e

    def find_first(self, selectors: list[str]) -> Optional[str]:
        """Return the first selector in `selectors` that matches a visible element."""
        for selector in selectors:
            try:
                element = self.page.query_selector(selector)
                if element and element.is_visible():
                    return selector
            except PlaywrightError as e:
                raise NavigationError(f"Could not query {selector}: {e}") from e
        return None

    def text(self) -> str:
        """Rendered text of the page body, line breaks preserved."""
        try:
            return self.page.inner_text("body", timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as e:
            logger.debug(f"inner_text failed, falling back to textContent ({e})")
        try:
            return self.page.evaluate("() => document.body ? document.body.textContent || '' : ''")
        except PlaywrightError as e:
            raise NavigationError(f"Could not read page text: {e}") from e

    def html(self) -> str:
        try:
            return self.page.content()
        except PlaywrightError as e:
            raise NavigationError(f"Could not read page content: {e}") from e

    def element_png(self, selector: str) -> bytes:
        """Rasterise the first element matching `selector` as PNG."""
        try:
            return self.page.locator(selector).first.screenshot(type="png", timeout=self._ms(10))
        except PlaywrightError as e:
            raise NavigationError(f"Could not capture {selector}: {e}") from e

    # --- interaction ---

    def fill(self, selector: str, value: str):
        """Replace the value of an input (any pre-filled text is cleared)."""
        try:
            self.page.locator(selector).first.fill(value, timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as e:
            raise NavigationError(f"Could not fill {selector}: {e}") from e

    def click(self, selector: str):
        try:
            self.page.locator(selector).first.click(timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as e:
            raise NavigationError(f"Could not click {selector}: {e}") from e

    def pause(self, seconds: float):
        """Sleep without blocking the browser's event processing."""
        if seconds > 0:
            try:
                self.page.wait_for_timeout(seconds * 1000)
            except PlaywrightError as e:
                raise NavigationError(f"Page closed while waiting: {e}") from e
