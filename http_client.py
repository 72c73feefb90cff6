"""Retrying GET client for E-utilities and FTP-mirror listings.

The upstream service is flaky under load: it answers HTTP 200 with empty
bodies, missing fields or explicit error sentinels, and occasionally with
spurious error statuses. Each attempt is classified into a ``Success``,
``RetryableFailure`` or ``FatalFailure`` and the loop in :func:`fetch`
retries only the retryable kind.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable
from xml.parsers.expat import ExpatError

import requests
import xmltodict

import config
from models import (
    FatalFailure,
    FetchOutcome,
    NcbiError,
    RawPage,
    RetryableFailure,
    RetryExhaustedError,
    Success,
)

LOGGER = logging.getLogger(__name__)

EMPTY_RESULT_SENTINEL = "Empty result - nothing todo"
UNOBTAINABLE_QUERY_SENTINEL = "Unable to obtain query"
DECODERS = ("json", "xml", "text")

# Inspects a decoded page; returns a failure when a field the caller needs is missing.
PageCheck = Callable[[RawPage], "RetryableFailure | FatalFailure | None"]


def fetch(url: str, decode: str = "json", expect: PageCheck | None = None) -> RawPage:
    """GET ``url`` until a usable body arrives, then return it with its URL.

    ``expect`` lets callers reject structurally incomplete pages, either for
    another attempt or for good.

    Raises:
        RetryExhaustedError: every attempt up to ``config.MAX_ATTEMPTS`` failed.
        NcbiError: ``expect`` reported a failure that retrying cannot fix.
    """
    if decode not in DECODERS:
        raise ValueError(f"Unknown decoder {decode!r}; expected one of {DECODERS}")

    max_attempts = config.MAX_ATTEMPTS
    last_reason = "no attempt made"

    for attempt in range(1, max_attempts + 1):
        LOGGER.debug("GET %s (attempt %s/%s)", url, attempt, max_attempts)
        outcome = attempt_fetch(url, decode)
        if isinstance(outcome, Success) and expect is not None:
            outcome = expect(RawPage(source_url=url, body=outcome.body)) or outcome

        if isinstance(outcome, Success):
            return RawPage(source_url=url, body=outcome.body)
        if isinstance(outcome, FatalFailure):
            raise outcome.error or NcbiError(f"{outcome.reason} (request: {url})")

        last_reason = outcome.reason
        LOGGER.warning(
            "Request failed on attempt %s/%s: %s (%s)",
            attempt,
            max_attempts,
            last_reason,
            url,
        )
        if attempt < max_attempts and config.RETRY_DELAY_SECONDS > 0:
            time.sleep(config.RETRY_DELAY_SECONDS)

    raise RetryExhaustedError(url, max_attempts, last_reason)


def attempt_fetch(url: str, decode: str) -> FetchOutcome:
    """Issue one request and classify the result."""
    try:
        response = requests.get(url, timeout=config.REQUEST_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        return RetryableFailure(f"transport error: {exc}")
    return classify_response(response, decode)


def classify_response(response: requests.Response | None, decode: str) -> FetchOutcome:
    if response is None:
        return RetryableFailure("no response")
    if not 200 <= response.status_code < 300:
        return RetryableFailure(f"HTTP {response.status_code}")

    text = response.text
    if not text or not text.strip():
        return RetryableFailure("empty body")

    if decode == "text":
        return Success(text)

    if decode == "xml":
        try:
            body = xmltodict.parse(text)
        except ExpatError as exc:
            return RetryableFailure(f"malformed XML: {exc}")
        return _check_xml_sentinels(body)

    try:
        body = response.json()
    except ValueError as exc:
        return RetryableFailure(f"malformed JSON: {exc}")
    return _check_json_sentinels(body)


def _check_json_sentinels(body: Any) -> FetchOutcome:
    if not isinstance(body, dict):
        return RetryableFailure("unexpected JSON payload shape")

    error = body.get("error")
    if error and EMPTY_RESULT_SENTINEL not in str(error):
        return RetryableFailure(f"upstream error: {error}")

    search_result = body.get("esearchresult")
    if isinstance(search_result, dict) and search_result.get("ERROR"):
        return RetryableFailure(f"upstream search error: {search_result['ERROR']}")

    summary_result = body.get("esummaryresult")
    if summary_result and UNOBTAINABLE_QUERY_SENTINEL in str(summary_result):
        return RetryableFailure(f"upstream summary error: {summary_result}")

    return Success(body)


def _check_xml_sentinels(body: Any) -> FetchOutcome:
    if not isinstance(body, dict) or not body:
        return RetryableFailure("empty XML document")
    tag, root = next(iter(body.items()))
    if tag == "ERROR":
        return RetryableFailure(f"upstream error: {root}")
    if isinstance(root, dict) and root.get("ERROR"):
        return RetryableFailure(f"upstream error: {root['ERROR']}")
    return Success(body)
