"""Send-time pipeline: variable substitution, request preparation, dispatch."""

from requestbench.execution.dispatcher import RequestDispatcher, create_http_client
from requestbench.execution.pipeline import dispatch, prepare_request, send_request
from requestbench.execution.resolver import find_placeholders, substitute, unresolved_placeholders

__all__ = [
    "RequestDispatcher",
    "create_http_client",
    "dispatch",
    "find_placeholders",
    "prepare_request",
    "send_request",
    "substitute",
    "unresolved_placeholders",
]
