from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable
from unittest.mock import patch

import pytest
import requests

import config
import main

FIXTURES = Path(__file__).parent / "fixtures"
API_ROOT = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class FakeResponse:
    """Minimal stand-in for requests.Response, usable as a context manager."""

    def __init__(
        self,
        text: str = "",
        status_code: int = 200,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        chunk_size: int = 4,
    ) -> None:
        self.text = text
        self.status_code = status_code
        self.content = content if content is not None else text.encode("utf-8")
        self.headers = headers or {}
        self._chunk_size = chunk_size

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_content(self, chunk_size: int = 1) -> Iterable[bytes]:
        for start in range(0, len(self.content), self._chunk_size):
            yield self.content[start : start + self._chunk_size]

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class FakeEutils:
    """Route GET requests by URL fragment to canned responses.

    Routes are checked in registration order; a fragment ending in ``$``
    must match the end of the URL. When a route holds several responses
    they are served in turn and the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, list[Any]]] = []
        self.calls: list[str] = []

    def add(self, fragment: str, *responses: Any) -> "FakeEutils":
        self.routes.append((fragment, list(responses)))
        return self

    def add_fixture(self, fragment: str, name: str) -> "FakeEutils":
        return self.add(fragment, FakeResponse(load_fixture(name)))

    def __call__(self, url: str, **kwargs: Any) -> Any:
        self.calls.append(url)
        for fragment, responses in self.routes:
            if _matches(fragment, url):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected request: {url}")

    def calls_to(self, fragment: str) -> list[str]:
        return [url for url in self.calls if _matches(fragment, url)]


def _matches(fragment: str, url: str) -> bool:
    if fragment.endswith("$"):
        return url.endswith(fragment[:-1])
    return fragment in url


@pytest.fixture(autouse=True)
def default_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin settings so a local .env cannot change request URLs or retry timing."""
    monkeypatch.setattr(config, "NCBI_API_ROOT", API_ROOT)
    monkeypatch.setattr(config, "NCBI_API_KEY", None)
    monkeypatch.setattr(config, "NCBI_FTP_ROOT", "https://ftp.ncbi.nlm.nih.gov/")
    monkeypatch.setattr(config, "MAX_ATTEMPTS", 9)
    monkeypatch.setattr(config, "RETRY_DELAY_SECONDS", 0)
    monkeypatch.setattr(config, "DEFAULT_THROUGHPUT", 50)
    monkeypatch.setattr(main, "load_dotenv", lambda: False)


@pytest.fixture
def eutils() -> Iterable[FakeEutils]:
    """Patch requests.get for every module with a fresh router."""
    fake = FakeEutils()
    with patch("requests.get", side_effect=fake):
        yield fake


@pytest.fixture
def guillardia(eutils: FakeEutils) -> FakeEutils:
    """Recorded responses for the Guillardia theta assembly, sra and link queries."""
    eutils.add_fixture("esearch.fcgi?retmode=json&version=2.0&db=assembly&term=", "assembly_esearch.json")
    eutils.add_fixture("esummary.fcgi?retmode=json&version=2.0&db=assembly&id=503988", "assembly_esummary.json")
    eutils.add_fixture("esearch.fcgi?retmode=json&version=2.0&db=sra&term=", "sra_esearch.json")
    eutils.add_fixture("esearch.fcgi?retmode=json&version=2.0&db=sra&query_key=", "sra_esearch.json")
    eutils.add_fixture("esummary.fcgi?retmode=json&version=2.0&db=sra&id=", "sra_esummary.json")
    eutils.add_fixture("elink.fcgi?dbfrom=bioproject&db=assembly&id=53577", "elink_bioproject_assembly.xml")
    eutils.add_fixture("elink.fcgi?dbfrom=taxonomy&db=sra", "elink_taxonomy_sra.xml")
    eutils.add_fixture("elink.fcgi?dbfrom=sra&db=bioproject", "elink_empty.xml")
    eutils.add_fixture("GCA_000315625.1_Guith1/$", "assembly_listing.html")
    return eutils
