"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses with proper formatting per RFC 9112.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 206 Partial Content\r\n         ← status line           │
    │    Content-Type: video/mp4\r\n                                      │
    │    Content-Range: bytes 900-999/1000\r\n                            │
    │    Content-Length: 100\r\n                  ← auto or explicit      │
    │    Accept-Ranges: bytes\r\n                                         │
    │    ETag: W/"3e8-65f1c2a0.0"\r\n                                     │
    │    Date: Wed, 01 Jan 2026 12:00:00 GMT\r\n  ← auto                  │
    │    Server: staticserver/1.0\r\n             ← auto                  │
    │    \r\n                                                             │
    │    <100 bytes>                              ← body OR stream        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BUFFERED VS STREAMED BODIES
=============================================================================

Small bodies (listings, error messages, compressed files) are built in
memory and stored in `body`. File contents are NOT: a 4 GB video must not
be read into RAM. For those the handler sets `stream` to an iterator of
byte chunks and an explicit Content-Length header:

    Buffered:   head_bytes() + body           → one sendall()
    Streamed:   head_bytes(), then each chunk → sendall() per chunk

    ┌──────────────┐   head    ┌────────┐
    │ HTTPResponse │──────────►│ socket │
    │   stream ────┼─chunk────►│        │
    │              ┼─chunk────►│        │
    └──────────────┘           └────────┘

The connection layer calls close_stream() when it is done, so the file
behind a generator is released even if the client disconnects midway.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .html("<h1>Index of /</h1>")
        .cache(max_age=300)
        .build())

Each method returns `self`, except build().

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Union, Iterator
import json

from .status_codes import HTTPStatus


# Statuses that never carry a body (RFC 9110 §6.4.1)
BODYLESS_STATUSES = frozenset({
    HTTPStatus.NO_CONTENT,
    HTTPStatus.NOT_MODIFIED,
})


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Use ResponseBuilder for a more convenient way to construct responses.

        Handler returns          head_bytes()            Connection sends
        HTTPResponse    ─────►   serializes    ─────►    head + body/stream
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    stream: Optional[Iterator[bytes]] = field(default=None, repr=False)

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def is_streamed(self) -> bool:
        return self.stream is not None

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a response header, replacing any existing one of any case.

        Returns self for method chaining.
        """
        self.remove_header(name)
        self.headers[name] = value
        return self

    def remove_header(self, name: str) -> "HTTPResponse":
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """
        Replace the body with buffered content.

        Drops any stream and any explicit Content-Length, so the length
        is recomputed from the new body on serialization.
        """
        self.close_stream()
        self.stream = None
        self.remove_header("Content-Length")
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def read_body(self) -> bytes:
        """
        Return the complete body, draining the stream if there is one.

        Used where a whole representation is needed at once (compressing
        a file). After this call the response is buffered.
        """
        if self.stream is not None:
            try:
                self.body = b"".join(self.stream)
            finally:
                self.close_stream()
                self.stream = None
        return self.body

    def close_stream(self) -> None:
        """Release whatever resource backs the stream (an open file)."""
        close = getattr(self.stream, "close", None)
        if close is not None:
            close()

    def head_bytes(self, server_name: str = "staticserver/1.0") -> bytes:
        """
        Serialize the status line and headers.

        =====================================================================
        AUTO-ADDED HEADERS
        =====================================================================

            Content-Length   len(body), unless already set or the status
                             never has a body (204, 304)
            Date             now, in HTTP-date format
            Server           server_name

        A streamed response MUST set Content-Length itself; its body
        length is not known here.
        =====================================================================
        """
        response_headers = dict(self.headers)
        present = {name.lower() for name in response_headers}

        if "content-length" not in present and self.status not in BODYLESS_STATUSES:
            response_headers["Content-Length"] = str(len(self.body))

        if "date" not in present:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "server" not in present:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        # latin-1 is the wire charset for header values; names are ASCII
        return "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"

    def to_bytes(self, server_name: str = "staticserver/1.0") -> bytes:
        """
        Serialize a buffered response to bytes for socket.sendall().

        A streamed response is drained first, so prefer head_bytes() plus
        iterating `stream` for large files.
        """
        return self.head_bytes(server_name) + self.read_body()


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    ==========================================================================
    USAGE EXAMPLES
    ==========================================================================

    # JSON error
    ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({"error": "Not Found"}).build()

    # Directory listing with caching
    (ResponseBuilder()
        .html(page)
        .cache(max_age=300)
        .build())

    # File streamed from disk
    (ResponseBuilder()
        .content_type("video/mp4")
        .stream(chunks, length=1000)
        .build())

    # Back to the listing after an upload
    ResponseBuilder().redirect("/uploads/").build()

    ==========================================================================
    """

    def __init__(self, server_name: str = "staticserver/1.0"):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[Iterator[bytes]] = None
        self._server_name = server_name

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """
        Add a single response header.

        Args:
            name: Header name (e.g., "Content-Range")
            value: Header value

        Returns:
            Self for method chaining
        """
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def content_length(self, length: int) -> "ResponseBuilder":
        """
        Set Content-Length explicitly.

        Needed for streamed bodies and for HEAD responses, which
        advertise the length of a body they do not send.
        """
        return self.header("Content-Length", str(length))

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """
        Set the response body (raw bytes or string).

        For structured data, prefer json(), html(), or text() methods.
        """
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        """
        Set an HTML response body.

        Sets Content-Type to text/html with UTF-8 charset.
        """
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Set a JSON response body.

        Args:
            data: Any JSON-serializable data
            pretty: If True, format with indentation

        Returns:
            Self for method chaining
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def stream(self, chunks: Iterator[bytes], length: int) -> "ResponseBuilder":
        """
        Set a streamed body of exactly `length` bytes.

        Args:
            chunks: Iterator yielding the body in pieces
            length: Total number of bytes the iterator yields

        Returns:
            Self for method chaining
        """
        self._stream = chunks
        self._body = b""
        return self.content_length(length)

    # =========================================================================
    # REDIRECT
    # =========================================================================

    def redirect(
        self,
        location: str,
        permanent: bool = False
    ) -> "ResponseBuilder":
        """
        Create a redirect response.

            301 Moved Permanently   permanent=True
            302 Found               permanent=False (used after uploads)

        Args:
            location: URL to redirect to
            permanent: If True, use 301; otherwise use 302
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    # =========================================================================
    # CACHING
    # =========================================================================

    def cache(self, max_age: int = 300) -> "ResponseBuilder":
        """
        Add caching headers.

        - public: Response can be cached by any cache
        - max-age: How long (in seconds) the response is fresh
        """
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        """
        Build and return the HTTPResponse object.
        """
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# HTTP DATES
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 9110 IMF-fixdate).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT. Aware datetimes are converted to UTC
    first; naive ones are assumed to already be UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def format_http_timestamp(timestamp: float) -> str:
    """Format a POSIX timestamp (e.g. st_mtime) as an HTTP-date."""
    return format_http_date(datetime.fromtimestamp(timestamp, tz=timezone.utc))


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP-date header value into an aware UTC datetime.

    Accepts the three formats RFC 9110 requires recipients to read:

        Sun, 06 Nov 1994 08:49:37 GMT    IMF-fixdate
        Sunday, 06-Nov-94 08:49:37 GMT   obsolete RFC 850
        Sun Nov  6 08:49:37 1994         obsolete asctime

    Returns:
        The datetime, or None when the value is not a valid date. Invalid
        dates in conditional headers are ignored, not rejected.
    """
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# Error bodies are JSON objects with a single "error" key:
#
#     {"error": "Unknown sort field: bogus"}
#
# =============================================================================

def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """
    Create an error response with a JSON body.

    Args:
        status: Any 4xx/5xx status
        message: Human-readable description, safe to show the client
    """
    return ResponseBuilder().status(status).json({"error": message}).build()


def unauthorized(message: str = "Unauthorized", realm: str = "Restricted") -> HTTPResponse:
    """
    Create a 401 Unauthorized response.

    Includes the WWW-Authenticate challenge so browsers prompt for
    credentials.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.UNAUTHORIZED)
        .header("WWW-Authenticate", f'Basic realm="{realm}"')
        .json({"error": message})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """
    Create a 500 Internal Server Error response.

    Keep the message generic: never put tracebacks here.
    """
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable(message: str = "Server is busy", retry_after: int = 1) -> HTTPResponse:
    """Create a 503 response, sent when the worker queue is full."""
    return (ResponseBuilder()
        .status(HTTPStatus.SERVICE_UNAVAILABLE)
        .header("Retry-After", str(retry_after))
        .json({"error": message})
        .close_connection()
        .build())
