"""
exceptions.py — Error taxonomy for the sync and contact-lookup pipelines.
"""


class JobSyncError(Exception):
    """Base class for all errors raised by this project."""


class CatalogFetchError(JobSyncError):
    """A listing-search page could not be fetched or parsed. Fatal to the sync run."""

    def __init__(self, message: str, page: int):
        super().__init__(message)
        self.page = page


class DetailFetchError(JobSyncError):
    """The per-job detail lookup failed. Always recovered by the enricher."""


class NavigationError(JobSyncError):
    """The job detail page did not load within the navigation timeout."""


class CaptchaSolveError(JobSyncError):
    """The solving service failed, timed out, or returned an empty answer."""


class ContactLookupError(JobSyncError):
    """A contact lookup produced nothing usable."""


class DeadlineExceeded(JobSyncError):
    """The request's overall deadline elapsed."""


class SyncAlreadyRunning(JobSyncError):
    """A second run was requested while the orchestrator was busy."""
