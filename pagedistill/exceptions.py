"""Exception hierarchy for pagedistill.

Hierarchy::

    PageDistillError
    ├── FetchError
    │   ├── TransportError        (connection / timeout, retries exhausted)
    │   └── UpstreamStatusError   (status >= 500, retries exhausted)
    ├── RenderError               (browser / page-script failure)
    └── AcquisitionError          (every strategy failed)

A 4xx response is *not* an error: it is a valid outcome handed back to the
caller.  An empty radial search and a single failing linked page are not
errors either; both are recorded inline in the output.
"""

from __future__ import annotations


class PageDistillError(Exception):
    """Base class for all pagedistill exceptions."""


# ---------------------------------------------------------------------------
# Fetch exceptions
# ---------------------------------------------------------------------------


class FetchError(PageDistillError):
    """Raised when a URL could not be fetched after all attempts.

    Args:
        message: Human-readable description of the failure.
        url: The URL that failed.
        attempts: Number of attempts made before giving up.
    """

    def __init__(self, message: str, url: str | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class TransportError(FetchError):
    """Connection-level failure (DNS, TLS, timeout, reset)."""


class UpstreamStatusError(FetchError):
    """The server kept answering with a 5xx status.

    Args:
        message: Human-readable description of the failure.
        url: The URL that failed.
        attempts: Number of attempts made before giving up.
        status_code: The last status code received.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        attempts: int = 0,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, url=url, attempts=attempts)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Render / pipeline exceptions
# ---------------------------------------------------------------------------


class RenderError(PageDistillError):
    """Raised when the browser fails to load or script a page.

    The pipeline recovers from this by falling back to a plain fetch.
    """


class AcquisitionError(PageDistillError):
    """Raised when no acquisition strategy produced a document.

    This is the only fatal pipeline error; the CLI maps it to exit code 1.
    """
