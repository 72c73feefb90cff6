"""Turn an esearch response into the sequence of page requests it implies."""

from __future__ import annotations

import logging
import math
from typing import Iterator

import config
import http_client
from models import FatalFailure, PageCursor, PaginationError, RawPage, RetryableFailure
from query_builder import build_page_url

LOGGER = logging.getLogger(__name__)


def read_search_result(search: RawPage) -> tuple[int, str, str]:
    """Return ``(count, webenv, query_key)`` or raise ``PaginationError``."""
    body = search.body if isinstance(search.body, dict) else {}
    result = body.get("esearchresult")
    if not isinstance(result, dict):
        raise PaginationError(search.source_url, "Search response has no esearchresult")

    webenv = result.get("webenv")
    raw_count = result.get("count")
    if not webenv or raw_count in (None, ""):
        raise PaginationError(
            search.source_url,
            "Search response is missing the session token or result count",
        )

    try:
        count = int(raw_count)
    except (TypeError, ValueError) as exc:
        raise PaginationError(search.source_url, f"Unreadable result count {raw_count!r}") from exc

    return count, str(webenv), str(result.get("querykey") or "1")


def page_size(limit: int | None = None, throughput: int | None = None) -> int:
    """Return the number of uids per page, never larger than the limit."""
    size = throughput or config.DEFAULT_THROUGHPUT
    if limit is not None and limit < size:
        size = limit
    return size


def page_cursors(
    search: RawPage,
    limit: int | None = None,
    throughput: int | None = None,
) -> list[PageCursor]:
    """Compute the page cursors needed to retrieve every result.

    A single-result search needs no extra pages: the search response already
    carries the uid, so an empty list is returned and callers reuse it.
    """
    count, webenv, query_key = read_search_result(search)
    database = search.query().get("db", "")
    size = page_size(limit, throughput)

    if count == 1:
        LOGGER.debug("Single result for %s, reusing search response", database)
        return []

    effective = min(count, limit) if limit is not None else count
    num_pages = math.ceil(effective / size) if effective > 0 else 0
    LOGGER.info(
        "Paginating db=%s count=%s limit=%s page_size=%s pages=%s",
        database,
        count,
        limit,
        size,
        num_pages,
    )
    return [
        PageCursor(
            database=database,
            session_token=webenv,
            start_offset=index * size,
            page_size=size,
            query_key=query_key,
        )
        for index in range(num_pages)
    ]


def iter_pages(
    search: RawPage,
    limit: int | None = None,
    throughput: int | None = None,
) -> Iterator[RawPage]:
    """Yield each page of uids in order, fetching lazily one at a time.

    A page that comes back without an id list is re-requested.
    """
    count, _, _ = read_search_result(search)
    if count == 1:
        yield search
        return

    for cursor in page_cursors(search, limit=limit, throughput=throughput):
        url = build_page_url(
            cursor.database,
            cursor.session_token,
            cursor.page_size,
            cursor.start_offset,
            cursor.query_key,
        )
        yield http_client.fetch(url, expect=require_idlist)


def require_search_result(search: RawPage) -> FatalFailure | None:
    """Reject a search response that cannot be paginated."""
    try:
        read_search_result(search)
    except PaginationError as exc:
        return FatalFailure(str(exc), error=exc)
    return None


def require_idlist(page: RawPage) -> RetryableFailure | None:
    result = page.body.get("esearchresult") if isinstance(page.body, dict) else None
    if not isinstance(result, dict) or not isinstance(result.get("idlist"), list):
        return RetryableFailure("search page has no esearchresult.idlist")
    return None


def page_ids(page: RawPage, limit: int | None = None, seen: int = 0) -> list[str]:
    """Return the uids listed in one esearch page, trimmed to the remaining limit."""
    missing = require_idlist(page)
    if missing:
        raise PaginationError(page.source_url, missing.reason)
    ids = [str(uid) for uid in page.body["esearchresult"]["idlist"]]
    if limit is not None:
        ids = ids[: max(limit - seen, 0)]
    return ids
