"""URL builders for the four E-utilities endpoint families."""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import quote, urlencode

import config

_DEFAULTS = {"retmode": "json", "version": "2.0"}

# efetch returns FASTA for these; everything else comes back as XML.
SEQUENCE_DBS: frozenset[str] = frozenset({"nuccore", "nucest", "nucgss", "protein", "popset"})


def build_search_url(database: str, term: str) -> str:
    """Build a history-enabled esearch URL for a free-text term."""
    cleaned = str(term).replace("'", "").replace('"', "")
    params = {**_DEFAULTS, "db": database, "term": cleaned, "usehistory": "y"}
    return _endpoint_url("esearch", params)


def build_page_url(
    database: str,
    session_token: str,
    page_size: int,
    offset: int,
    query_key: str = "1",
) -> str:
    """Build an esearch URL returning one page of uids from a stored result set."""
    params = {
        **_DEFAULTS,
        "db": database,
        "query_key": query_key,
        "WebEnv": session_token,
        "retmax": page_size,
        "retstart": offset,
    }
    return _endpoint_url("esearch", params)


def build_summary_url(database: str, ids: Iterable[str]) -> str:
    params = {**_DEFAULTS, "db": database, "id": ",".join(str(i) for i in ids)}
    return _endpoint_url("esummary", params)


def build_link_url(src_db: str, dest_db: str, uid: str) -> str:
    """Build an elink URL; the response body is XML."""
    params = {"dbfrom": src_db, "db": dest_db, "id": str(uid)}
    return _endpoint_url("elink", params)


def build_fetch_url(database: str, ids: Iterable[str]) -> str:
    params: dict[str, Any] = {"db": database, "id": ",".join(str(i) for i in ids)}
    if database in SEQUENCE_DBS:
        params.update({"rettype": "fasta", "retmode": "text"})
    else:
        params["retmode"] = "xml"
    return _endpoint_url("efetch", params)


def _endpoint_url(endpoint: str, params: dict[str, Any]) -> str:
    if config.NCBI_API_KEY:
        params = {**params, "api_key": config.NCBI_API_KEY}
    return f"{config.NCBI_API_ROOT}{endpoint}.fcgi?{urlencode(params, quote_via=quote)}"
