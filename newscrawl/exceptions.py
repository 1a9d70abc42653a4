"""Custom exceptions for NewsCrawl services."""
from typing import Optional


NOT_FOUND_STATUSES = (404, 410)


class FetchError(Exception):
    """Raised when a fetch fails after retries, due to transport errors or a non-2xx status."""

    def __init__(self, url: str, original: Optional[Exception] = None, status_code: Optional[int] = None):
        self.url = url
        self.original = original
        self.status_code = status_code
        if status_code is not None:
            reason = f"HTTP {status_code}"
        else:
            reason = str(original) if original is not None else "unknown error"
        super().__init__(f"HTTP fetch failed for {url}: {reason}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code in NOT_FOUND_STATUSES


class ExtractionError(Exception):
    """Raised when fetched markup cannot be turned into an article."""

    def __init__(self, external_id: str, reason: str):
        self.external_id = external_id
        self.reason = reason
        super().__init__(f"Could not extract article {external_id}: {reason}")


class InvalidRunRequest(Exception):
    """Raised when a run request is rejected before any run is created."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class AlreadyRunningError(Exception):
    """Raised when a run is requested while another run is still running."""

    def __init__(self, run_id: Optional[str]):
        self.run_id = run_id
        super().__init__(f"Scrape already running: {run_id}")


class NoRunError(Exception):
    """Raised when cancellation is requested but no run is running."""

    def __init__(self):
        super().__init__("No scrape running")
