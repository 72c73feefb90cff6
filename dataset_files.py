"""Locate dataset files for search results and download them to disk."""

from __future__ import annotations

import logging
import posixpath
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import requests
from bs4 import BeautifulSoup

import config
import http_client
import ncbi
from models import DownloadLog, NcbiError
from normalizer import Record
from valid_dbs import validate_db

LOGGER = logging.getLogger(__name__)

SRA_RUN_PATH = "sra/sra-instant/reads/ByRun/sra"

# Download keyword -> (file type, file format) in an assembly FTP directory.
ASSEMBLY_FILES: dict[str, tuple[str, str]] = {
    "assembly": ("genomic", "fna"),
    "fasta": ("genomic", "fna"),
    "fna": ("genomic", "fna"),
    "gff": ("genomic", "gff"),
    "gbff": ("genomic", "gbff"),
    "gpff": ("protein", "gpff"),
    "faa": ("protein", "faa"),
    "repeats": ("rm", "out"),
    "md5": ("md5checksums", "txt"),
}


def sra_run_url(accession: str) -> str:
    """Archive path for one run: ``<acc[:3]>/<acc[:6]>/<acc>/<acc>.sra``."""
    return (
        f"{config.NCBI_FTP_ROOT}{SRA_RUN_PATH}/"
        f"{accession[:3]}/{accession[:6]}/{accession}/{accession}.sra"
    )


def sra_urls(record: Record) -> Iterator[dict[str, Any]]:
    runs = record.get("runs") if isinstance(record.get("runs"), dict) else {}
    run_list = runs.get("Run") or []
    for run in run_list if isinstance(run_list, list) else [run_list]:
        accession = run.get("acc") if isinstance(run, dict) else None
        if accession:
            yield {"url": sra_run_url(accession), "uid": record["uid"]}


def assembly_urls(record: Record) -> Iterator[dict[str, Any]]:
    """Scrape the record's FTP directory and group files by type and format.

    The service lists the same assembly under both GenBank and RefSeq roots;
    only the first root is scraped.
    """
    meta = record.get("meta") if isinstance(record.get("meta"), dict) else {}
    ftp_sites = meta.get("FtpSites")
    if not isinstance(ftp_sites, dict) or not ftp_sites.get("FtpPath"):
        LOGGER.debug("Assembly uid=%s has no FTP sites", record.get("uid"))
        return

    ftp_path = ftp_sites["FtpPath"]
    first = ftp_path[0] if isinstance(ftp_path, list) else ftp_path
    root = first.get("_", "") if isinstance(first, dict) else str(first)
    http_root = root.strip().replace("ftp://", "https://", 1).rstrip("/")

    listing = http_client.fetch(f"{http_root}/", decode="text")
    yield classify_listing(listing.body, http_root, record["uid"])


def classify_listing(html: str, http_root: str, uid: str) -> dict[str, Any]:
    """Map ``<assembly-name>_<type>.<format>`` anchors to ``{type: {format: url}}``."""
    urls: dict[str, Any] = {"uid": uid}
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if href.startswith(("/", "?", "#", "http://", "https://", "ftp://")):
            continue
        base = posixpath.basename(href.rstrip("/"))
        if not base:
            continue
        extensions = base.split("_")[-1].split(".")
        file_type = extensions[0]
        file_format = extensions[1] if len(extensions) > 1 else "dir"
        urls.setdefault(file_type, {})[file_format] = f"{http_root}/{href}"
    return urls


URL_BUILDERS: dict[str, Callable[[Record], Iterator[dict[str, Any]]]] = {
    "sra": sra_urls,
    "assembly": assembly_urls,
}


def resolve_source_db(db: str) -> str:
    """Map a download keyword to the database that is searched for it."""
    source = "assembly" if db in ASSEMBLY_FILES else db
    validate_db(source)
    if source not in URL_BUILDERS:
        raise ValueError(
            f"Dataset URLs are only available for {', '.join(sorted(URL_BUILDERS))} "
            f"(or assembly file types {', '.join(sorted(ASSEMBLY_FILES))}), not '{db}'"
        )
    return source


def urls(
    db: str,
    term: str,
    limit: int | None = None,
    throughput: int | None = None,
) -> Iterator[dict[str, Any]]:
    """Search ``db`` and yield the downloadable file URLs of every record."""
    source = resolve_source_db(db)
    records = ncbi.search(source, term, limit=limit, throughput=throughput)
    return _iter_urls(records, URL_BUILDERS[source])


def _iter_urls(
    records: Iterable[Record],
    builder: Callable[[Record], Iterator[dict[str, Any]]],
) -> Iterator[dict[str, Any]]:
    for record in records:
        yield from builder(record)


def select_url(db: str, entry: dict[str, Any]) -> str | None:
    """Pick the file to download from one ``urls`` entry."""
    if "url" in entry:
        return entry["url"]
    file_type, file_format = ASSEMBLY_FILES.get(db, ASSEMBLY_FILES["assembly"])
    return (entry.get(file_type) or {}).get(file_format)


def download(
    db: str,
    term: str,
    dest_dir: str | Path = ".",
    limit: int | None = None,
    throughput: int | None = None,
) -> Iterator[DownloadLog]:
    """Download the dataset files for every search result, one at a time.

    Files land in ``<dest_dir>/<uid>/<basename(url)>``. Existing files are
    not fetched again; a single ``completed`` entry is emitted for them.
    """
    located = urls(db, term, limit=limit, throughput=throughput)
    return _iter_downloads(db, located, Path(dest_dir))


def _iter_downloads(db: str, located: Iterable[dict[str, Any]], dest_dir: Path) -> Iterator[DownloadLog]:
    for entry in located:
        url = select_url(db, entry)
        if not url:
            LOGGER.warning("No %s file listed for uid=%s", db, entry.get("uid"))
            continue
        yield from download_file(str(entry["uid"]), url, dest_dir)


def download_file(uid: str, url: str, dest_dir: Path) -> Iterator[DownloadLog]:
    """Stream ``url`` to ``dest_dir/uid``, resuming a previous partial transfer."""
    folder = dest_dir / uid
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / posixpath.basename(url)

    if path.exists():
        LOGGER.info("Already downloaded: %s", path)
        yield _completed(uid, url, path)
        return

    part = path.with_name(f"{path.name}.part")
    existing = part.stat().st_size if part.exists() else 0
    headers = {"Range": f"bytes={existing}-"} if existing else {}

    LOGGER.info("Downloading %s to %s", url, path)
    try:
        with requests.get(
            url, stream=True, headers=headers, timeout=config.REQUEST_TIMEOUT_SECONDS
        ) as response:
            response.raise_for_status()
            if existing and response.status_code != 206:
                existing = 0
            length = response.headers.get("Content-Length")
            expected = existing + int(length) if length and length.isdigit() else None

            transferred = existing
            previous = time.monotonic()
            with part.open("ab" if existing else "wb") as fh:
                for chunk in response.iter_content(chunk_size=config.DOWNLOAD_CHUNK_BYTES):
                    if not chunk:
                        continue
                    fh.write(chunk)
                    transferred += len(chunk)
                    now = time.monotonic()
                    elapsed, previous = now - previous, now
                    yield DownloadLog(
                        uid=uid,
                        url=url,
                        path=str(path),
                        status="downloading",
                        total=transferred,
                        progress=round(100 * transferred / expected, 2) if expected else None,
                        speed=_format_speed(len(chunk), elapsed),
                    )
    except requests.RequestException as exc:
        raise NcbiError(f"Download failed: {exc} (request: {url})") from exc

    part.replace(path)
    yield _completed(uid, url, path)


def _completed(uid: str, url: str, path: Path) -> DownloadLog:
    size_mb = round(path.stat().st_size / 1024 / 1024)
    return DownloadLog(uid=uid, url=url, path=str(path), status="completed", speed="NA", size=f"{size_mb} MB")


def _format_speed(num_bytes: int, elapsed: float) -> str:
    if elapsed <= 0:
        return "NA"
    return f"{num_bytes / elapsed / 1024 / 1024:.2f} MB/s"
