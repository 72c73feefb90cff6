"""Cross-database resolution: link, expand and plink."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Iterator

import http_client
import ncbi
from models import LinkResult, RawPage
from normalizer import Record
from query_builder import build_link_url
from valid_dbs import validate_db

LOGGER = logging.getLogger(__name__)

EXPAND_MAX_WORKERS = 4


def property_db(prop: str) -> str:
    """Map a record property prefix to the database it refers to."""
    return "taxonomy" if prop == "tax" else prop


def link(src_db: str, dest_db: str, src_uid: str) -> Iterator[LinkResult]:
    """Yield the ``dest_db`` uids linked to ``src_uid`` in ``src_db``.

    All destination uids for one source uid are batched into a single
    ``LinkResult``. Nothing is yielded when the records are not linked.
    """
    validate_db(src_db)
    validate_db(dest_db)
    return _iter_links(build_link_url(src_db, dest_db, src_uid))


def _iter_links(url: str) -> Iterator[LinkResult]:
    yield from parse_link_page(http_client.fetch(url, decode="xml"))


def parse_link_page(page: RawPage) -> Iterator[LinkResult]:
    query = page.query()
    src_db, dest_db, src_uid = query.get("dbfrom", ""), query.get("db", ""), query.get("id", "")
    wanted = f"{src_db}_{dest_db}"

    root = page.body.get("eLinkResult") if isinstance(page.body, dict) else None
    if not isinstance(root, dict):
        return

    for link_set in _as_list(root.get("LinkSet")):
        if not isinstance(link_set, dict):
            continue
        for link_set_db in _as_list(link_set.get("LinkSetDb")):
            if not isinstance(link_set_db, dict) or link_set_db.get("LinkName") != wanted:
                continue
            dest_uids = [
                str(item["Id"])
                for item in _as_list(link_set_db.get("Link"))
                if isinstance(item, dict) and item.get("Id") is not None
            ]
            if dest_uids:
                yield LinkResult(src_db=src_db, dest_db=dest_db, src_uid=src_uid, dest_uids=dest_uids)
                return

    LOGGER.debug("No %s links for uid=%s", wanted, src_uid)


def expand(
    records: Iterable[Record],
    prop: str,
    dest_prop: str | None = None,
) -> Iterator[Record]:
    """Attach the full record(s) referenced by ``<prop>id`` under ``dest_prop``.

    ``expand(records, "tax")`` reads ``taxid`` and attaches the taxonomy
    record under ``tax``. A list of ids is resolved concurrently and attached
    as a list in the same order. Records without the id field pass through.
    """
    db = validate_db(property_db(prop))
    return _iter_expanded(records, prop, dest_prop or prop, db)


def _iter_expanded(records: Iterable[Record], prop: str, dest_prop: str, db: str) -> Iterator[Record]:
    id_field = f"{prop}id"

    def lookup(uid: Any) -> Record | None:
        term = f"{uid}[uid]" if db == "taxonomy" else str(uid)
        return next(iter(ncbi.search(db, term)), None)

    with ThreadPoolExecutor(max_workers=EXPAND_MAX_WORKERS) as pool:
        for record in records:
            ids = record.get(id_field)
            if ids is None or ids == "" or ids == []:
                yield record
                continue
            if isinstance(ids, list):
                record[dest_prop] = list(pool.map(lookup, ids))
            else:
                record[dest_prop] = lookup(ids)
            yield record


def plink(records: Iterable[Record], prop: str, dest_db: str) -> Iterator[Record]:
    """Attach the ``dest_db`` uids linked from ``<prop>id`` under ``<dest_db>id``."""
    src_db = validate_db(property_db(prop))
    validate_db(dest_db)
    return _iter_plinked(records, prop, src_db, dest_db)


def _iter_plinked(records: Iterable[Record], prop: str, src_db: str, dest_db: str) -> Iterator[Record]:
    id_field = f"{prop}id"
    for record in records:
        ids = record.get(id_field)
        if ids is None or ids == "" or ids == []:
            yield record
            continue

        dest_uids: list[str] = []
        for uid in ids if isinstance(ids, list) else [ids]:
            for result in link(src_db, dest_db, str(uid)):
                dest_uids.extend(d for d in result.dest_uids if d not in dest_uids)
        record[f"{dest_db}id"] = dest_uids
        yield record


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]
