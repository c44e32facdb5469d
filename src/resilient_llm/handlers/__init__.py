"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .request_handler import ERROR_STATUS_CODES, RequestHandler, to_http_exception

__all__ = [
    "ERROR_STATUS_CODES",
    "RequestHandler",
    "to_http_exception",
]
