"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a static file server actually emits, with reason phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK                - file or listing                   │
    │        │ 206 Partial Content   - honoured Range request            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 302 Found             - back to the listing after upload  │
    │        │ 304 Not Modified      - If-Modified-Since hit             │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request       - bad sort key, bad multipart, ...  │
    │        │ 401 Unauthorized      - Basic auth challenge              │
    │        │ 404 Not Found         - missing path, escaped root        │
    │        │ 413 Payload Too Large - request over the size limit       │
    │        │ 416 Range Not Satisfiable                                 │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Server Error - unreadable file, failed copy  │
    │        │ 503 Service Unavailable   - worker queue full             │
    └────────┴───────────────────────────────────────────────────────────┘

Q: "Why 416 and not 400 for a bad Range?"
A: "The request is well formed; it just asks for bytes the resource does
   not have. 416 also tells the client the current length via
   Content-Range: bytes */L."

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so codes compare equal to plain integers:

        >>> HTTPStatus.PARTIAL_CONTENT == 206
        True
        >>> HTTPStatus.PARTIAL_CONTENT.phrase
        'Partial Content'
    """

    # 1xx
    CONTINUE = 100

    # 2xx
    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206           # Range request fulfilled

    # 3xx
    MOVED_PERMANENTLY = 301
    FOUND = 302                     # Redirect after upload
    SEE_OTHER = 303
    NOT_MODIFIED = 304              # Cached copy still valid

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    LENGTH_REQUIRED = 411
    PRECONDITION_FAILED = 412
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    UNSUPPORTED_MEDIA_TYPE = 415
    RANGE_NOT_SATISFIABLE = 416     # Bad Range / failed If-Match
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503       # Worker queue full
    HTTP_VERSION_NOT_SUPPORTED = 505
    INSUFFICIENT_STORAGE = 507

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 206 Partial Content
                     ─── ───────────────
                     code     phrase
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",

    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.NOT_MODIFIED: "Not Modified",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.LENGTH_REQUIRED: "Length Required",
    HTTPStatus.PRECONDITION_FAILED: "Precondition Failed",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
    HTTPStatus.INSUFFICIENT_STORAGE: "Insufficient Storage",
}
