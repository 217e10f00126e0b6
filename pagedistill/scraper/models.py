"""Data models for the scraper pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from pagedistill.config import settings
from pagedistill.exceptions import TransportError, UpstreamStatusError


class StatusClass(str, Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class FetchOutcome:
    """The final result of a (possibly retried) HTTP GET."""

    url: str
    status_class: StatusClass
    body: bytes
    attempts_made: int
    status_code: int | None = None
    final_url: str | None = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: str | None = None
    encoding: str = "utf-8"

    @property
    def ok(self) -> bool:
        """``True`` for 2xx/3xx *and* 4xx: anything the caller may inspect."""
        return self.status_class in (StatusClass.SUCCESS, StatusClass.CLIENT_ERROR)

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding or "utf-8", errors="replace")

    def raise_for_failure(self) -> None:
        """Raise the matching :mod:`pagedistill.exceptions` error, if any.

        Raises:
            TransportError: The last attempt failed at the connection level.
            UpstreamStatusError: The last attempt returned a 5xx status.
        """
        if self.status_class is StatusClass.TRANSPORT_ERROR:
            raise TransportError(
                f"Failed to fetch {self.url} after {self.attempts_made} attempts: {self.error}",
                url=self.url,
                attempts=self.attempts_made,
            )
        if self.status_class is StatusClass.SERVER_ERROR:
            raise UpstreamStatusError(
                f"HTTP status {self.status_code} for {self.url} after {self.attempts_made} attempts",
                url=self.url,
                attempts=self.attempts_made,
                status_code=self.status_code,
            )


@dataclass(frozen=True)
class Fragment:
    """One HTML subtree captured around a term match by radial search."""

    html: str
    selector: str
    method: str
    term: str
    repeat_count: int = 1


@dataclass(frozen=True)
class LinkTarget:
    """An absolute content URL discovered inside a document."""

    url: str
    source: str = "anchor"


@dataclass
class ScrapeOptions:
    """Every knob of a single pipeline run.

    Defaults come from :data:`pagedistill.config.settings`; the CLI overrides
    them from its flags.
    """

    timeout: float = field(default_factory=lambda: settings.request_timeout)
    term: str | None = None
    radial: bool = False
    method: str = "fixed"
    radius_levels: int = field(default_factory=lambda: settings.radius_levels)
    min_repeat: int = field(default_factory=lambda: settings.min_repeat)
    render_links: bool = False
    max_links: int = field(default_factory=lambda: settings.max_links)
    link_timeout: float = field(default_factory=lambda: settings.link_timeout)
    force_browser: bool = False
    full_html: bool = False
    diagnose: bool = False
    insecure: bool = field(default_factory=lambda: settings.insecure)
    max_attempts: int = field(default_factory=lambda: settings.max_fetch_attempts)
    quiet_window: float = field(default_factory=lambda: settings.quiet_window)
    network_idle: float = field(default_factory=lambda: settings.network_idle)
    network_max_wait: float = field(default_factory=lambda: settings.network_max_wait)
