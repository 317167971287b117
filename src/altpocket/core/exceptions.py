"""Application-wide exception hierarchy for altpocket.

All custom exceptions subclass ``AltpocketError``, enabling consistent
error handling and structured logging across the ingestion pipeline.

Per-job failures carry a short classified ``reason`` string.  That string is
the only failure detail ever persisted in ``ingestion_jobs.fetch_error``; the
exception message (which may contain raw network or parser text) goes to the
logs only.

Hierarchy::

    AltpocketError
    ├── InvalidURLError              reason="invalid_url"
    ├── IngestionError
    │   ├── FetchError
    │   │   ├── FetchTimeoutError        reason="timeout"
    │   │   ├── ResponseTooLargeError    reason="size_limit"
    │   │   ├── TooManyRedirectsError    reason="redirect_limit"
    │   │   ├── BadStatusError           reason="bad_status"
    │   │   └── NetworkError             reason="fetch_failed"
    │   └── ContentParseError            reason="parse_failed"
    ├── StoreError
    └── JobNotFoundError
"""

from __future__ import annotations


class AltpocketError(Exception):
    """Base class for all altpocket exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# URL exceptions
# ---------------------------------------------------------------------------


class InvalidURLError(AltpocketError):
    """Raised when a submitted URL cannot be parsed into a canonical form.

    Args:
        url: The raw URL as submitted.
        message: Optional description of what is wrong with it.
    """

    reason = "invalid_url"

    def __init__(self, url: str, message: str | None = None) -> None:
        super().__init__(message or f"Invalid URL: {url!r}")
        self.url = url


# ---------------------------------------------------------------------------
# Ingestion exceptions
# ---------------------------------------------------------------------------


class IngestionError(AltpocketError):
    """Base class for failures that abort a single job's fetch attempt.

    Subclasses set ``reason`` to the classified string recorded on the job.

    Args:
        message: Human-readable description of the failure.
        url: URL that was being ingested.
    """

    reason = "fetch_failed"

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class FetchError(IngestionError):
    """Base class for network retrieval failures."""


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its wall-clock deadline."""

    reason = "timeout"


class ResponseTooLargeError(FetchError):
    """Raised when a response body grows beyond the configured byte cap.

    Args:
        message: Human-readable description.
        url: URL that was being fetched.
        max_bytes: The cap that was exceeded.
    """

    reason = "size_limit"

    def __init__(
        self,
        message: str,
        url: str | None = None,
        max_bytes: int | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.max_bytes = max_bytes


class TooManyRedirectsError(FetchError):
    """Raised when a redirect chain is longer than the configured cap."""

    reason = "redirect_limit"


class BadStatusError(FetchError):
    """Raised when the server answers with an HTTP status code >= 400.

    Args:
        message: Human-readable description.
        url: URL that was being fetched.
        status_code: The HTTP status code received.
    """

    reason = "bad_status"

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class NetworkError(FetchError):
    """Raised for connection, DNS, TLS, and other transport-level failures."""

    reason = "fetch_failed"


class ContentParseError(IngestionError):
    """Raised when a response body cannot be turned into a document tree."""

    reason = "parse_failed"


# ---------------------------------------------------------------------------
# Persistence exceptions
# ---------------------------------------------------------------------------


class StoreError(AltpocketError):
    """Raised when the job store fails to complete an operation.

    The job queue never retries internally; callers decide whether the
    operation is retried on a later tick.

    Args:
        message: Description of the failed store operation.
        job_id: UUID string of the affected job, if any.
    """

    def __init__(self, message: str, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class JobNotFoundError(AltpocketError):
    """Raised when a job does not exist or is not owned by the caller.

    Args:
        job_id: UUID string of the requested job.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Ingestion job '{job_id}' not found")
        self.job_id = job_id
