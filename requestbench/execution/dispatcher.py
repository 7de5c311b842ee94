"""In-process send dispatcher.

Tracks in-flight sends with live task references so they can be aborted
(workspace switch, shutdown).  Ephemeral -- empty on process restart; the
last response per request is kept in memory only.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING

import httpx
from loguru import logger

from requestbench.errors import SendInProgressError
from requestbench.execution.pipeline import send_request

if TYPE_CHECKING:
    from requestbench.models.collection import HttpRequest
    from requestbench.models.response import ResponseRecord


def create_http_client(
    *,
    timeout: float = 30.0,
    follow_redirects: bool = True,
    verify: bool = True,
) -> httpx.AsyncClient:
    """Create the shared client used for every send."""
    return httpx.AsyncClient(timeout=timeout, follow_redirects=follow_redirects, verify=verify)


class RequestDispatcher:
    """Sends requests through one shared ``httpx.AsyncClient``.

    At most one send per request id is in flight; a second one raises
    ``SendInProgressError``.  Sends for different requests run concurrently.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or create_http_client()
        self._inflight: dict[str, asyncio.Task[ResponseRecord]] = {}
        self._last_responses: dict[str, ResponseRecord] = {}

    # -- Send ------------------------------------------------------------------

    async def send(self, request: HttpRequest, variables: Mapping[str, str]) -> ResponseRecord | None:
        """Send *request* and return its normalized response.

        Returns ``None`` if the send was cancelled through ``cancel`` /
        ``cancel_all``.  If the *caller's* task is cancelled, the send is
        aborted too and ``CancelledError`` propagates as usual.
        """
        if request.id in self._inflight:
            raise SendInProgressError(request.id)

        task = asyncio.create_task(send_request(request, variables, self._client))
        self._inflight[request.id] = task
        logger.debug("Dispatcher: sending {} {} ({})", request.method, request.url, request.id)
        try:
            response = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Dispatcher: send cancelled for {}", request.id)
            return None
        finally:
            self._inflight.pop(request.id, None)

        self._last_responses[request.id] = response
        return response

    # -- Query -----------------------------------------------------------------

    def is_sending(self, request_id: str) -> bool:
        return request_id in self._inflight

    @property
    def active_count(self) -> int:
        return len(self._inflight)

    def last_response(self, request_id: str) -> ResponseRecord | None:
        return self._last_responses.get(request_id)

    def forget(self, request_id: str) -> None:
        """Drop the remembered response (e.g. after the request was deleted)."""
        self._last_responses.pop(request_id, None)

    # -- Control ---------------------------------------------------------------

    def cancel(self, request_id: str) -> bool:
        task = self._inflight.get(request_id)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Abort every in-flight send.  Returns how many were cancelled."""
        count = 0
        for request_id, task in list(self._inflight.items()):
            task.cancel()
            count += 1
            logger.info("Dispatcher: cancelled send for {}", request_id)
        return count

    async def aclose(self) -> None:
        self.cancel_all()
        await self._client.aclose()
