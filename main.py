"""CLI entrypoint for the NCBI E-utilities pipelines.

Examples:
    entrez-client search taxonomy solenopsis
    entrez-client search sra human --limit 500 --throughput 250
    entrez-client fetch nuccore "Guillardia theta" -l 5
    entrez-client urls sra solenopsis invicta
    entrez-client download assembly solenopsis invicta
    entrez-client link assembly bioproject 244018
    entrez-client search assembly solenopsis | entrez-client expand tax
    echo solenopsis | entrez-client search sra -
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from functools import partial
from typing import Any, Callable, Iterable, Iterator, TextIO

from dotenv import load_dotenv

import config
import dataset_files
import links
import ncbi
from models import DownloadLog, LinkResult, NcbiError
from valid_dbs import print_dbs, validate_db

LOGGER = logging.getLogger(__name__)

STDIN_MARKER = "-"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument("--pretty", action="store_true", help="Indent JSON output instead of one object per line")
    shared.add_argument("--verbose", "-v", action="store_true", help="Log request URLs and retries to stderr")

    paged = argparse.ArgumentParser(add_help=False)
    paged.add_argument("--limit", "-l", type=int, default=None, help="Maximum number of results to retrieve")
    paged.add_argument("--throughput", "-t", type=int, default=None, help="Number of results per API request")

    parser = argparse.ArgumentParser(
        prog="entrez-client",
        description="Search, link and download NCBI Entrez records as newline-delimited JSON",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("search", "Search a database and print one summary record per result"),
        ("fetch", "Search a database and print the full records (FASTA for sequence databases)"),
        ("urls", "Print dataset file URLs for the results (sra, assembly and assembly file types)"),
        ("download", "Download dataset files into one directory per result uid"),
    ):
        command = commands.add_parser(name, parents=[shared, paged], help=help_text)
        command.add_argument("db", help="Database name, see `entrez-client dbs`")
        command.add_argument("term", nargs="*", help="Search term, or '-' to read one term per line from stdin")
        if name == "download":
            command.add_argument("--dest", default=".", help="Directory that receives the <uid>/ folders")

    link = commands.add_parser("link", parents=[shared], help="Print uids in dest_db linked to a uid in src_db")
    link.add_argument("src_db")
    link.add_argument("dest_db")
    link.add_argument("uid", nargs="?", default=STDIN_MARKER, help="Source uid, or '-' to read uids from stdin")

    expand = commands.add_parser(
        "expand", parents=[shared], help="Attach records referenced by <property>id to JSON records read from stdin"
    )
    expand.add_argument("property", help="Property prefix, e.g. 'tax' to expand taxid")
    expand.add_argument("dest_property", nargs="?", default=None)

    plink = commands.add_parser(
        "plink", parents=[shared], help="Attach <dest_db>id link lists to JSON records read from stdin"
    )
    plink.add_argument("property", help="Property prefix, e.g. 'tax' to link from taxid")
    plink.add_argument("dest_db")

    commands.add_parser("dbs", help="List valid database names")

    return parser.parse_args(argv)


def read_lines(stream: TextIO) -> Iterator[str]:
    """Yield stripped, non-empty lines."""
    for line in stream:
        value = line.strip()
        if value:
            yield value


def read_records(stream: TextIO) -> Iterator[dict[str, Any]]:
    for line in read_lines(stream):
        record = json.loads(line)
        if not isinstance(record, dict):
            raise ValueError(f"Expected a JSON object per line, got: {line[:80]}")
        yield record


def _terms(values: list[str], stdin: TextIO) -> Iterable[str]:
    if values and values[-1] == STDIN_MARKER:
        return read_lines(stdin)
    return [" ".join(values)]


def build_pipeline(args: argparse.Namespace, stdin: TextIO) -> Iterator[Any]:
    """Create the result stream for one command invocation."""
    command = args.command

    if command == "link":
        validate_db(args.src_db)
        validate_db(args.dest_db)
        uids = read_lines(stdin) if args.uid == STDIN_MARKER else [args.uid]
        return _chain(uids, partial(links.link, args.src_db, args.dest_db))
    if command == "expand":
        return links.expand(read_records(stdin), args.property, args.dest_property)
    if command == "plink":
        return links.plink(read_records(stdin), args.property, args.dest_db)

    paging = {"limit": args.limit, "throughput": args.throughput}
    if command in ("urls", "download"):
        dataset_files.resolve_source_db(args.db)
    else:
        validate_db(args.db)

    run: Callable[[str], Iterator[Any]]
    if command == "search":
        run = partial(ncbi.search, args.db, **paging)
    elif command == "fetch":
        run = partial(ncbi.fetch, args.db, **paging)
    elif command == "urls":
        run = partial(dataset_files.urls, args.db, **paging)
    else:
        run = partial(dataset_files.download, args.db, dest_dir=args.dest, **paging)
    return _chain(_terms(args.term, stdin), run)


def _chain(inputs: Iterable[str], run: Callable[[str], Iterator[Any]]) -> Iterator[Any]:
    for value in inputs:
        yield from run(value)


def to_json(item: Any, pretty: bool) -> str:
    if isinstance(item, (LinkResult, DownloadLog)):
        item = item.to_dict()
    return json.dumps(item, indent=2 if pretty else None)


def main(argv: list[str] | None = None, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    """Run one command; return the process exit code."""
    args = parse_args(argv)
    if load_dotenv():
        config.load()
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    if args.command == "dbs":
        stdout.write(print_dbs() + "\n")
        return 0

    try:
        for item in build_pipeline(args, stdin):
            stdout.write(to_json(item, args.pretty) + "\n")
            stdout.flush()
    except (NcbiError, ValueError, OSError) as exc:
        LOGGER.debug("Pipeline aborted", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
