"""
config.py — Loads preferences.yaml and environment variables.
Everything is materialised once into a Settings object that callers pass
into component constructors.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

# Project root directory
PROJECT_ROOT = Path(__file__).parent

PREFERENCES_PATH = PROJECT_ROOT / "preferences.yaml"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class CatalogApiSettings:
    base_url: str = "https://rest.arbeitsagentur.de/jobboerse/jobsuche-service"
    search_path: str = "/pc/v4/jobs"
    detail_path: str = "/pc/v4/jobs/{refnr}"
    api_key: str = "jobboerse-jobsuche"
    client_id: str = "LebenslaufBuilder/1.0"
    page_size: int = 100
    offer_type: int = 1
    timeout_seconds: float = 20.0


@dataclass(frozen=True)
class RateLimitSettings:
    page_delay: float = 0.2
    item_delay: float = 0.1
    navigation_delay: float = 1.0


@dataclass(frozen=True)
class SyncSettings:
    manual_max_pages: int = 1
    max_runtime_seconds: float = 540.0
    safety_margin_seconds: float = 15.0


@dataclass(frozen=True)
class BrowserSettings:
    detail_url: str = "https://www.arbeitsagentur.de/jobsuche/jobdetail/{refnr}"
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 800
    navigation_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class CaptchaSettings:
    api_key: str = ""
    solve_timeout_seconds: float = 120.0
    solve_polling_seconds: float = 5.0
    disappear_timeout_seconds: float = 10.0
    disappear_poll_seconds: float = 0.5
    settle_seconds: float = 5.0


@dataclass(frozen=True)
class Settings:
    catalog_api: CatalogApiSettings = field(default_factory=CatalogApiSettings)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    captcha: CaptchaSettings = field(default_factory=CaptchaSettings)
    contact_timeout_seconds: float = 110.0
    db_path: Path = PROJECT_ROOT / "data" / "jobs.db"
    log_level: str = "INFO"
    log_file: Optional[Path] = PROJECT_ROOT / "logs" / "job_sync.log"
    sync_trigger_token: str = ""


def _resolve(path_value: str) -> Path:
    path = Path(path_value)
    return path if path.is_absolute() else PROJECT_ROOT / path


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Build Settings from preferences.yaml plus the environment (.env is loaded first).
    Missing sections fall back to the dataclass defaults.
    """
    load_dotenv()

    prefs_path = Path(path) if path else PREFERENCES_PATH
    prefs = {}
    if prefs_path.exists():
        with open(prefs_path, "r") as f:
            prefs = yaml.safe_load(f) or {}

    api = prefs.get("catalog_api", {})
    site = prefs.get("site", {})
    limits = prefs.get("rate_limiting", {})
    sync = prefs.get("sync", {})
    browser = prefs.get("browser", {})
    captcha = prefs.get("captcha", {})
    contact = prefs.get("contact", {})
    database = prefs.get("database", {})
    logging_prefs = prefs.get("logging", {})

    catalog_api = CatalogApiSettings(
        base_url=api.get("base_url", CatalogApiSettings.base_url).rstrip("/"),
        search_path=api.get("search_path", CatalogApiSettings.search_path),
        detail_path=api.get("detail_path", CatalogApiSettings.detail_path),
        api_key=os.getenv("CATALOG_API_KEY") or api.get("api_key", CatalogApiSettings.api_key),
        client_id=api.get("client_id", CatalogApiSettings.client_id),
        page_size=int(api.get("page_size", CatalogApiSettings.page_size)),
        offer_type=int(api.get("offer_type", CatalogApiSettings.offer_type)),
        timeout_seconds=float(api.get("timeout_seconds", CatalogApiSettings.timeout_seconds)),
    )

    db_path = os.getenv("JOBSYNC_DB_PATH") or database.get("path", "data/jobs.db")
    log_file = logging_prefs.get("file")

    return Settings(
        catalog_api=catalog_api,
        rate_limits=RateLimitSettings(
            page_delay=float(limits.get("page_delay", RateLimitSettings.page_delay)),
            item_delay=float(limits.get("item_delay", RateLimitSettings.item_delay)),
            navigation_delay=float(limits.get("navigation_delay", RateLimitSettings.navigation_delay)),
        ),
        sync=SyncSettings(
            manual_max_pages=int(sync.get("manual_max_pages", SyncSettings.manual_max_pages)),
            max_runtime_seconds=float(sync.get("max_runtime_seconds", SyncSettings.max_runtime_seconds)),
            safety_margin_seconds=float(sync.get("safety_margin_seconds", SyncSettings.safety_margin_seconds)),
        ),
        browser=BrowserSettings(
            detail_url=site.get("detail_url", BrowserSettings.detail_url),
            headless=bool(browser.get("headless", True)),
            user_agent=browser.get("user_agent", DEFAULT_USER_AGENT),
            viewport_width=int(browser.get("viewport_width", BrowserSettings.viewport_width)),
            viewport_height=int(browser.get("viewport_height", BrowserSettings.viewport_height)),
            navigation_timeout_seconds=float(
                browser.get("navigation_timeout_seconds", BrowserSettings.navigation_timeout_seconds)
            ),
        ),
        captcha=CaptchaSettings(
            api_key=os.getenv("TWOCAPTCHA_API_KEY", ""),
            solve_timeout_seconds=float(captcha.get("solve_timeout_seconds", CaptchaSettings.solve_timeout_seconds)),
            solve_polling_seconds=float(captcha.get("solve_polling_seconds", CaptchaSettings.solve_polling_seconds)),
            disappear_timeout_seconds=float(
                captcha.get("disappear_timeout_seconds", CaptchaSettings.disappear_timeout_seconds)
            ),
            disappear_poll_seconds=float(captcha.get("disappear_poll_seconds", CaptchaSettings.disappear_poll_seconds)),
            settle_seconds=float(captcha.get("settle_seconds", CaptchaSettings.settle_seconds)),
        ),
        contact_timeout_seconds=float(contact.get("request_timeout_seconds", 110.0)),
        db_path=_resolve(db_path),
        log_level=os.getenv("JOBSYNC_LOG_LEVEL") or logging_prefs.get("level", "INFO"),
        log_file=_resolve(log_file) if log_file else None,
        sync_trigger_token=os.getenv("SYNC_TRIGGER_TOKEN", ""),
    )


def validate_config(settings: Settings) -> list[str]:
    """Check that critical configuration is present."""
    warnings = []

    if not settings.captcha.api_key:
        warnings.append("TWOCAPTCHA_API_KEY is not set — contact lookups on challenged pages will fail")
    if not settings.sync_trigger_token:
        warnings.append("SYNC_TRIGGER_TOKEN is not set — the manual sync trigger is unauthenticated")
    if not settings.catalog_api.api_key:
        warnings.append("Listing API key is empty — catalog sync will be rejected upstream")
    if settings.catalog_api.page_size <= 0:
        warnings.append(f"Invalid page_size {settings.catalog_api.page_size} — must be positive")
    if settings.sync.safety_margin_seconds >= settings.sync.max_runtime_seconds:
        warnings.append("sync.safety_margin_seconds exceeds max_runtime_seconds — scheduled runs will stop immediately")

    return warnings
