import math
from unittest.mock import patch

import pytest

from conftest import FakeResponse
from models import PaginationError, RawPage
from paginator import iter_pages, page_cursors, page_ids, page_size, read_search_result

SEARCH_URL = (
    "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/esearch.fcgi?"
    "retmode=json&version=2.0&db=sra&term=human&usehistory=y"
)


def _search_page(count: int | str, webenv: str | None = "NCID_1_abc", idlist: list[str] | None = None) -> RawPage:
    result: dict = {"count": str(count), "querykey": "1", "idlist": idlist or []}
    if webenv is not None:
        result["webenv"] = webenv
    return RawPage(source_url=SEARCH_URL, body={"esearchresult": result})


@pytest.mark.parametrize(
    ("count", "limit", "throughput"),
    [(120, None, 50), (100, None, 50), (7, None, 50), (500, 120, 50), (500, 40, 50), (30, 100, 10), (2, None, 1)],
)
def test_page_count_matches_effective_count(count: int, limit: int | None, throughput: int) -> None:
    cursors = page_cursors(_search_page(count), limit=limit, throughput=throughput)

    page_size = min(throughput, limit) if limit is not None else throughput
    effective = min(count, limit) if limit is not None else count
    assert len(cursors) == math.ceil(effective / page_size)
    assert [c.start_offset for c in cursors] == [i * page_size for i in range(len(cursors))]
    assert all(c.page_size == page_size for c in cursors)


def test_cursors_carry_session_and_database() -> None:
    cursors = page_cursors(_search_page(3), throughput=2)

    assert cursors[0].database == "sra"
    assert cursors[0].session_token == "NCID_1_abc"
    assert cursors[0].query_key == "1"


def test_default_throughput_is_fifty() -> None:
    cursors = page_cursors(_search_page(120))
    assert [c.start_offset for c in cursors] == [0, 50, 100]


def test_single_result_reuses_search_response() -> None:
    search = _search_page(1, idlist=["503988"])

    assert page_cursors(search) == []
    with patch("http_client.requests.get") as mock_get:
        pages = list(iter_pages(search))

    assert pages == [search]
    mock_get.assert_not_called()


def test_zero_results_yield_no_pages() -> None:
    with patch("http_client.requests.get") as mock_get:
        assert list(iter_pages(_search_page(0))) == []
    mock_get.assert_not_called()


def test_iter_pages_fetches_each_page_in_order() -> None:
    responses = [
        FakeResponse('{"esearchresult": {"idlist": ["1", "2"]}}'),
        FakeResponse('{"esearchresult": {"idlist": ["3"]}}'),
    ]
    with patch("http_client.requests.get", side_effect=responses) as mock_get:
        pages = list(iter_pages(_search_page(3), throughput=2))

    assert [page_ids(p) for p in pages] == [["1", "2"], ["3"]]
    urls = [call.args[0] for call in mock_get.call_args_list]
    assert "retstart=0" in urls[0]
    assert "retstart=2" in urls[1]
    assert all("WebEnv=NCID_1_abc" in url for url in urls)


def test_iter_pages_is_lazy() -> None:
    with patch("http_client.requests.get", return_value=FakeResponse('{"esearchresult": {"idlist": ["1"]}}')) as mock_get:
        pages = iter_pages(_search_page(10), throughput=1)
        next(pages)
        pages.close()

    assert mock_get.call_count == 1


@pytest.mark.parametrize(
    "body",
    [
        {"esearchresult": {"count": "10", "idlist": []}},
        {"esearchresult": {"webenv": "NCID_1_abc", "idlist": []}},
        {"header": {}},
        {"esearchresult": {"count": "many", "webenv": "NCID_1_abc"}},
    ],
)
def test_malformed_search_response_is_fatal(body: dict) -> None:
    search = RawPage(source_url=SEARCH_URL, body=body)

    with pytest.raises(PaginationError) as excinfo:
        read_search_result(search)

    assert excinfo.value.url == SEARCH_URL
    assert SEARCH_URL in str(excinfo.value)


def test_malformed_search_response_emits_no_pages() -> None:
    with patch("http_client.requests.get") as mock_get:
        with pytest.raises(PaginationError):
            list(iter_pages(_search_page(10, webenv=None)))
    mock_get.assert_not_called()


def test_page_ids_trims_to_remaining_limit() -> None:
    page = RawPage(source_url=SEARCH_URL, body={"esearchresult": {"idlist": ["1", "2", "3"]}})

    assert page_ids(page) == ["1", "2", "3"]
    assert page_ids(page, limit=5, seen=3) == ["1", "2"]
    assert page_ids(page, limit=3, seen=3) == []


@pytest.mark.parametrize("body", [{"header": {"type": "esearch"}}, {"esearchresult": {"count": "3"}}])
def test_page_without_idlist_is_an_error(body: dict) -> None:
    page = RawPage(source_url=SEARCH_URL, body=body)

    with pytest.raises(PaginationError) as excinfo:
        page_ids(page)

    assert excinfo.value.url == SEARCH_URL


def test_incomplete_pages_are_fetched_again() -> None:
    responses = [
        FakeResponse('{"header": {"type": "esearch"}}'),
        FakeResponse('{"esearchresult": {"idlist": ["1", "2"]}}'),
        FakeResponse('{"esearchresult": {"idlist": ["3"]}}'),
    ]
    with patch("http_client.requests.get", side_effect=responses) as mock_get:
        pages = list(iter_pages(_search_page(3), throughput=2))

    assert [page_ids(p) for p in pages] == [["1", "2"], ["3"]]
    assert mock_get.call_count == 3


@pytest.mark.parametrize(
    ("limit", "throughput", "expected"),
    [(None, None, 50), (None, 250, 250), (10, None, 10), (500, 100, 100)],
)
def test_page_size_is_clamped_to_limit(limit: int | None, throughput: int | None, expected: int) -> None:
    assert page_size(limit, throughput) == expected
