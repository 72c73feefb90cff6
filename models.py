"""Shared typed models for the E-utilities pipelines."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit


class NcbiError(RuntimeError):
    """Base class for every error surfaced by a pipeline."""


class PaginationError(NcbiError):
    """Search response lacked the session token or result count."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} (request: {url})")
        self.url = url


class RetryExhaustedError(NcbiError):
    """A request kept failing after the maximum number of attempts."""

    def __init__(self, url: str, attempts: int, reason: str) -> None:
        super().__init__(f"Request failed after {attempts} attempts: {reason} (request: {url})")
        self.url = url
        self.attempts = attempts


@dataclass(frozen=True, slots=True)
class SearchRequest:
    database: str
    term: str
    limit: int | None = None
    throughput: int | None = None


@dataclass(frozen=True, slots=True)
class PageCursor:
    """One history-backed page of a search result set."""

    database: str
    session_token: str
    start_offset: int
    page_size: int
    query_key: str = "1"


@dataclass(frozen=True, slots=True)
class RawPage:
    """Decoded response body paired with the URL that produced it."""

    source_url: str
    body: Any

    def query(self) -> dict[str, str]:
        """Return the first value of each query-string parameter of the source URL."""
        parsed = parse_qs(urlsplit(self.source_url).query)
        return {key: values[0] for key, values in parsed.items()}


@dataclass(slots=True)
class LinkResult:
    src_db: str
    dest_db: str
    src_uid: str
    dest_uids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "srcDB": self.src_db,
            "destDB": self.dest_db,
            "srcUID": self.src_uid,
            "destUIDs": list(self.dest_uids),
        }


@dataclass(slots=True)
class DownloadLog:
    """Progress or completion entry emitted while a file is transferred."""

    uid: str
    url: str
    path: str
    status: str = "downloading"
    total: int | None = None
    progress: float | None = None
    speed: str | None = None
    size: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True, slots=True)
class Success:
    body: Any


@dataclass(frozen=True, slots=True)
class RetryableFailure:
    reason: str


@dataclass(frozen=True, slots=True)
class FatalFailure:
    reason: str
    error: NcbiError | None = None


FetchOutcome = Success | RetryableFailure | FatalFailure
