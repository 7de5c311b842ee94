"""Dispatch and response records produced by the execution pipeline."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from requestbench.models.enums import HttpMethod

NETWORK_ERROR_STATUS = 0
NETWORK_ERROR_TEXT = "Network Error"


class PreparedRequest(BaseModel):
    """A request with every template placeholder resolved, ready to send."""

    method: HttpMethod
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    content: str | None = None


class ResponseRecord(BaseModel):
    """Uniform outcome of a send, whether it succeeded, failed or never reached a server.

    ``status == 0`` means no HTTP response was received at all (``error``
    holds the reason); any other status is a real HTTP status, including
    4xx/5xx.
    """

    status: int
    status_text: str
    time: float = Field(default=0.0, description="Wall-clock duration in milliseconds.")
    size: int = Field(default=0, description="Response body size in bytes.")
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    error: str | None = None

    @property
    def is_network_error(self) -> bool:
        return self.status == NETWORK_ERROR_STATUS

    @classmethod
    def network_error(cls, message: str) -> ResponseRecord:
        return cls(status=NETWORK_ERROR_STATUS, status_text=NETWORK_ERROR_TEXT, error=message)
