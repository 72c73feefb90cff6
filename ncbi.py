"""Search and fetch pipelines over the NCBI E-utilities API.

Both pipelines are lazy: nothing after the initial search request is issued
until the caller pulls the next record, and pages are fetched strictly in
order. Closing the returned generator stops further requests.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Iterator

from Bio import SeqIO

import http_client
from models import RawPage, SearchRequest
from normalizer import Record, capabilities_for, normalize_page
from paginator import iter_pages, page_ids, read_search_result, require_search_result
from query_builder import SEQUENCE_DBS, build_fetch_url, build_search_url, build_summary_url

LOGGER = logging.getLogger(__name__)


def search(
    db: str,
    term: str,
    limit: int | None = None,
    throughput: int | None = None,
) -> Iterator[Record]:
    """Search ``db`` for ``term`` and yield one normalised summary record per uid.

    Args:
        db: Entrez database name, e.g. ``"sra"`` or ``"assembly"``.
        term: Free-text query; quote characters are stripped.
        limit: Optional cap on the number of uids retrieved.
        throughput: Optional page size (uids per request), clamped to ``limit``.

    Raises:
        InvalidDbError: immediately, before any request, for unknown databases.
    """
    request = _search_request(db, term, limit, throughput)
    capabilities_for(request.database)
    return _iter_search_records(request)


def fetch(
    db: str,
    term: str,
    limit: int | None = None,
    throughput: int | None = None,
) -> Iterator[dict[str, Any]]:
    """Search ``db`` for ``term`` and yield the full efetch records.

    Sequence databases yield ``{"id", "description", "seq"}`` per FASTA entry;
    other databases yield each top-level element of the XML document.
    """
    request = _search_request(db, term, limit, throughput)
    capabilities_for(request.database)
    return _iter_fetch_records(request)


def _search_request(
    db: str, term: str, limit: int | None, throughput: int | None
) -> SearchRequest:
    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive when provided")
    if throughput is not None and throughput <= 0:
        raise ValueError("throughput must be positive when provided")
    return SearchRequest(database=db, term=term, limit=limit, throughput=throughput)


def iter_uid_pages(request: SearchRequest) -> Iterator[list[str]]:
    """Run the initial search and yield the uid list of each page in order."""
    search_page = http_client.fetch(
        build_search_url(request.database, request.term), expect=require_search_result
    )
    count, _, _ = read_search_result(search_page)
    LOGGER.info("Search db=%s term=%r count=%s", request.database, request.term, count)

    seen = 0
    for page in iter_pages(search_page, limit=request.limit, throughput=request.throughput):
        ids = page_ids(page, limit=request.limit, seen=seen)
        if not ids:
            continue
        seen += len(ids)
        yield ids


def _iter_search_records(request: SearchRequest) -> Iterator[Record]:
    for ids in iter_uid_pages(request):
        summary = http_client.fetch(build_summary_url(request.database, ids))
        yield from normalize_page(summary, request.database)


def _iter_fetch_records(request: SearchRequest) -> Iterator[dict[str, Any]]:
    is_sequence_db = request.database in SEQUENCE_DBS
    for ids in iter_uid_pages(request):
        url = build_fetch_url(request.database, ids)
        if is_sequence_db:
            yield from parse_fasta(http_client.fetch(url, decode="text"))
        else:
            yield from split_xml_records(http_client.fetch(url, decode="xml"))


def parse_fasta(page: RawPage) -> Iterator[dict[str, Any]]:
    for entry in SeqIO.parse(io.StringIO(page.body), "fasta"):
        yield {"id": entry.id, "description": entry.description, "seq": str(entry.seq)}


def split_xml_records(page: RawPage) -> Iterator[dict[str, Any]]:
    """Yield each child element of the document root as its own record."""
    root = next(iter(page.body.values()), None) if isinstance(page.body, dict) else None
    if not isinstance(root, dict):
        return
    for tag, value in root.items():
        if tag.startswith("@"):
            continue
        for item in value if isinstance(value, list) else [value]:
            yield item if isinstance(item, dict) else {tag: item}
