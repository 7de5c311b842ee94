"""Request execution pipeline.

Turns a saved ``HttpRequest`` plus the active workspace's variables into a
dispatchable request, sends it through an ``httpx.AsyncClient``, and
normalizes whatever happens into a ``ResponseRecord``.

The pipeline is stateless and reentrant: nothing here remembers a previous
send.  In-flight tracking and cancellation live in ``dispatcher.py``.

Degradation rules:

- A JSON body that does not parse after substitution is sent as the resolved
  raw string -- malformed JSON never fails a send.
- A response body that claims to be JSON but does not parse is kept as text.
- No HTTP response at all (DNS, refused connection, timeout, bad URL, a
  header value that cannot be encoded) becomes ``status=0`` /
  ``"Network Error"`` rather than an exception.

Cancellation is plain asyncio task cancellation: ``CancelledError`` is never
caught here, so a cancelled send delivers nothing.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping

import httpx
from loguru import logger

from requestbench.execution.resolver import substitute
from requestbench.models.collection import HttpRequest, KeyValue
from requestbench.models.enums import BodyType, HttpMethod
from requestbench.models.response import PreparedRequest, ResponseRecord

BODY_METHODS = frozenset({HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH})

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# ---------------------------------------------------------------------------
# Prepare
# ---------------------------------------------------------------------------


def prepare_request(request: HttpRequest, variables: Mapping[str, str]) -> PreparedRequest:
    """Resolve URL, headers, query params and body.  Pure; never raises on bad input."""
    url = substitute(request.url, variables)
    headers = _build_headers(request.headers, variables)
    params = [(row.key, substitute(row.value, variables)) for row in _active_rows(request.params)]

    if request.body.type == BodyType.JSON:
        headers = _with_default_content_type(headers, JSON_CONTENT_TYPE)

    content = None
    if request.method in BODY_METHODS:
        content = _build_body(request, variables)
        if content is not None and request.body.type == BodyType.FORM:
            headers = _with_default_content_type(headers, FORM_CONTENT_TYPE)

    return PreparedRequest(
        method=request.method,
        url=_append_params(url, params),
        headers=headers,
        content=content,
    )


def _active_rows(rows: list[KeyValue]) -> list[KeyValue]:
    """Enabled rows with a non-blank key."""
    return [row for row in rows if row.enabled and row.key.strip()]


def _build_headers(rows: list[KeyValue], variables: Mapping[str, str]) -> dict[str, str]:
    return {row.key: substitute(row.value, variables) for row in _active_rows(rows)}


def _with_default_content_type(headers: dict[str, str], content_type: str) -> dict[str, str]:
    if any(key.strip().lower() == "content-type" for key in headers):
        return headers
    return {**headers, "Content-Type": content_type}


def _build_body(request: HttpRequest, variables: Mapping[str, str]) -> str | None:
    body = request.body
    if body.type == BodyType.NONE or not body.content:
        return None

    resolved = substitute(body.content, variables)
    if body.type != BodyType.JSON:
        return resolved

    try:
        parsed = json.loads(resolved)
    except ValueError:
        logger.debug("Request {}: JSON body does not parse, sending raw text", request.id)
        return resolved
    return json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)


def _append_params(url: str, params: list[tuple[str, str]]) -> str:
    """Append encoded query params after the URL's own query, which is left untouched."""
    if not params:
        return url
    base, hash_mark, fragment = url.partition("#")
    if "?" not in base:
        separator = "?"
    elif base.endswith(("?", "&")):
        separator = ""
    else:
        separator = "&"
    return f"{base}{separator}{httpx.QueryParams(params)}{hash_mark}{fragment}"


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def dispatch(prepared: PreparedRequest, client: httpx.AsyncClient) -> ResponseRecord:
    """Send *prepared* and normalize the outcome."""
    start = time.perf_counter()
    try:
        outgoing = client.build_request(
            prepared.method.value,
            prepared.url,
            headers=prepared.headers,
            content=prepared.content,
        )
        response = await client.send(outgoing)
    except (httpx.RequestError, httpx.InvalidURL, UnicodeEncodeError) as exc:
        message = str(exc) or type(exc).__name__
        logger.info("{} {} failed: {}", prepared.method, prepared.url, message)
        return ResponseRecord.network_error(message)
    elapsed_ms = (time.perf_counter() - start) * 1000

    logger.debug("{} {} -> {} ({:.1f}ms)", prepared.method, prepared.url, response.status_code, elapsed_ms)
    return ResponseRecord(
        status=response.status_code,
        status_text=response.reason_phrase,
        time=round(elapsed_ms, 2),
        size=len(response.content),
        headers=dict(response.headers.items()),
        body=_decode_body(response),
    )


async def send_request(
    request: HttpRequest,
    variables: Mapping[str, str],
    client: httpx.AsyncClient,
) -> ResponseRecord:
    """Prepare and dispatch in one step."""
    return await dispatch(prepare_request(request, variables), client)


def _decode_body(response: httpx.Response) -> object:
    if _is_structured(response.headers.get("content-type", "")):
        try:
            return response.json()
        except ValueError:
            logger.debug("Response claims JSON but does not parse, keeping raw text")
    return response.text


def _is_structured(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == JSON_CONTENT_TYPE or mime.endswith("+json")
