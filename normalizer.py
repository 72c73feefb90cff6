"""Reshape esummary pages into one plain dict per uid."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator
from xml.parsers.expat import ExpatError

import xmltodict

from models import RawPage
from valid_dbs import validate_db

LOGGER = logging.getLogger(__name__)

Record = dict[str, Any]
PostFilter = Callable[[Record], Record | None]


@dataclass(frozen=True, slots=True)
class DatabaseCapabilities:
    """Per-database normalisation rules."""

    xml_fields: tuple[str, ...] = ()
    post_filter: PostFilter | None = None


def _sra_post_filter(record: Record) -> Record | None:
    # Single runs come back unwrapped; runs without total_bases are incomplete
    # submissions that cannot be downloaded.
    runs = record.get("runs")
    if not isinstance(runs, dict):
        return None
    run_list = runs.get("Run")
    if run_list is None:
        return None
    if not isinstance(run_list, list):
        run_list = [run_list]
    runs["Run"] = run_list

    for run in run_list:
        if not isinstance(run, dict) or not run.get("total_bases"):
            LOGGER.debug("Dropping sra uid=%s: run without total_bases", record.get("uid"))
            return None
    return record


CAPABILITIES: dict[str, DatabaseCapabilities] = {
    "sra": DatabaseCapabilities(xml_fields=("expxml", "runs"), post_filter=_sra_post_filter),
    "biosample": DatabaseCapabilities(xml_fields=("sampledata",)),
    "assembly": DatabaseCapabilities(xml_fields=("meta",)),
}
_PLAIN = DatabaseCapabilities()


def capabilities_for(database: str) -> DatabaseCapabilities:
    """Resolve the rules for ``database``; unknown names raise ``InvalidDbError``."""
    validate_db(database)
    return CAPABILITIES.get(database, _PLAIN)


def parse_xml_fragment(fragment: str) -> Any:
    """Parse an XML snippet that may hold several sibling roots.

    Attributes become plain keys and mixed text lands under ``_``, so
    ``<FtpPath type="GenBank">ftp://…</FtpPath>`` reads back as
    ``{"type": "GenBank", "_": "ftp://…"}``.
    """
    parsed = xmltodict.parse(f"<root>{fragment}</root>", attr_prefix="", cdata_key="_")
    return parsed.get("root") or {}


def normalize_record(record: Record, capabilities: DatabaseCapabilities) -> Record | None:
    """Parse embedded XML fields in place and apply the post-filter.

    Fields that are already structured are left untouched, so normalising a
    record twice gives the same result.
    """
    for field_name in capabilities.xml_fields:
        value = record.get(field_name)
        if not isinstance(value, str):
            continue
        try:
            record[field_name] = parse_xml_fragment(value)
        except ExpatError as exc:
            LOGGER.warning(
                "Could not parse %s for uid=%s: %s", field_name, record.get("uid"), exc
            )

    if capabilities.post_filter is not None:
        return capabilities.post_filter(record)
    return record


def normalize_page(page: RawPage, database: str | None = None) -> Iterator[Record]:
    """Yield one normalised record per uid in an esummary page."""
    database = database or page.query().get("db", "")
    capabilities = capabilities_for(database)

    body = page.body if isinstance(page.body, dict) else {}
    result = body.get("result")
    if not isinstance(result, dict):
        LOGGER.debug("No summary results in %s", page.source_url)
        return

    uids = result.get("uids")
    if not isinstance(uids, list):
        uids = [key for key in result if key != "uids"]

    for uid in uids:
        raw = result.get(str(uid))
        if not isinstance(raw, dict):
            continue
        record = normalize_record(dict(raw), capabilities)
        if record is not None:
            yield record
