"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Turns bytes from TCP into HTTPRequest objects and HTTPResponse objects
back into bytes. Knows nothing about files.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes → HTTPRequest (raw path kept for decoding)   │
    │ response.py      HTTPResponse, ResponseBuilder, HTTP dates,         │
    │                  JSON error helpers, streamed bodies                │
    │ status_codes.py  HTTPStatus enum with reason phrases                │
    │ mime_types.py    extension → Content-Type, built once at import     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    format_http_timestamp,
    parse_http_date,
    error_response,   # any status, {"error": msg}
    unauthorized,     # 401 + WWW-Authenticate
    internal_error,   # 500
    service_unavailable,  # 503
)
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "format_http_timestamp",
    "parse_http_date",

    "error_response",
    "unauthorized",
    "internal_error",
    "service_unavailable",

    "HTTPStatus",

    "get_mime_type",
    "get_content_type",
]
