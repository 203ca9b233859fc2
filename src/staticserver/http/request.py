"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the message syntax of RFC 9112 that a file server needs.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /docs/My%20Notes/?sort=name&order=asc HTTP/1.1\r\n           │
    │    ─┬─ ────────────┬─────────────────────── ────┬────               │
    │   Method     request-target                 Version                 │
    │                    │                                                 │
    │         ┌──────────┴──────────┐                                     │
    │     raw path              query string                              │
    │  /docs/My%20Notes/     sort=name&order=asc                          │
    │                                                                      │
    │    Host: localhost:8000\r\n                                         │
    │    Range: bytes=900-\r\n                                            │
    │    If-Range: W/"3e8-65f1c2a0.0"\r\n                                 │
    │    Accept-Encoding: gzip, deflate\r\n                               │
    │    \r\n                           <── header/body separator         │
    │    <body bytes, Content-Length of them>                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY THE RAW PATH IS KEPT
=============================================================================

A file server must decode the path ONE SEGMENT AT A TIME:

    /a%2Fb/c   →  segments ["a/b", "c"]     (a file literally named "a/b")
    /a/b/c     →  segments ["a", "b", "c"]

Decoding the whole path first would turn %2F into a real separator and
change which file is addressed. So the parser keeps `raw_path` exactly as
sent and leaves decoding to the path resolver. `path` holds a decoded
copy for logging and display only.

Traversal ("..") is NOT rejected here: the path resolver owns that check
because it is the one component that knows where the root is.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                 - Malformed request syntax
        405 Method Not Allowed          - Unknown method
        413 Payload Too Large           - Request exceeds size limit
        505 HTTP Version Not Supported  - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    Attributes:
        method:         HTTP method (GET, HEAD, POST, ...)
        path:           Percent-decoded path, for logs and display
        raw_path:       Path exactly as sent, still percent-encoded
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header dictionary with LOWERCASE keys
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        query_string:   The undecoded query string
        body:           Raw body bytes (Content-Length of them)
        client_address: (ip, port) of the peer
        raw:            The original request bytes
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    raw_path: str = ""
    query_string: str = ""

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        if not self.raw_path:
            self.raw_path = self.path

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """
        Get the Content-Type media type (without parameters).

        "multipart/form-data; boundary=xyz" → "multipart/form-data"
        """
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        """Content-Length as an integer, 0 if missing or invalid."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def target(self) -> str:
        """The request target as sent: raw path plus query string."""
        if self.query_string:
            return f"{self.raw_path}?{self.query_string}"
        return self.raw_path

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Example:
            request.get_header("If-Modified-Since")
        """
        return self.headers.get(name.lower(), default)

    def has_header(self, name: str) -> bool:
        return name.lower() in self.headers

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get the first value of a query parameter.

        Example:
            # URL: /docs/?sort=size&sort=name
            request.get_query("sort")  # Returns "size"
        """
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Size Check            too large → HTTPParseError(413)         │
        │  2. Find \\r\\n\\r\\n         missing → HTTPParseError(400)         │
        │  3. Request Line          METHOD SP TARGET SP VERSION             │
        │  4. Headers               "Name: Value", names lowercased         │
        │  5. Body                  exactly Content-Length bytes            │
        └───────────────────────────────────────────────────────────────────┘
              │
              ▼
        HTTPRequest dataclass

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE", "PATCH",
        "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        """
        Args:
            max_request_size: Maximum allowed request size in bytes,
                              headers and body together. Uploads are
                              bounded by this value.
        """
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        # ─── STEP 1: Size limit ─────────────────────────────────────────────
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        # ─── STEP 2: Split headers and body ─────────────────────────────────
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header bytes are ISO-8859-1 on the wire; latin-1 never fails
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        # ─── STEP 3: Request line ───────────────────────────────────────────
        method, raw_path, query_string, version = self._parse_request_line(lines[0])

        # ─── STEP 4: Headers ────────────────────────────────────────────────
        headers = self._parse_headers(lines[1:])

        # ─── STEP 5: Body ───────────────────────────────────────────────────
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers.get('content-length')}"
            )
        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {content_length}")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        # Extra bytes belong to the next pipelined request
        body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=unquote(raw_path, errors="replace"),
            raw_path=raw_path,
            version=version,
            headers=headers,
            query_params=parse_qs(query_string, keep_blank_values=True),
            query_string=query_string,
            body=body,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Parse the HTTP request line.

            "GET /docs/a%20b.txt?x=1 HTTP/1.1"
             ─┬─ ───────┬──────────── ───┬────
             Method   target         Version

        Returns:
            Tuple of (method, raw_path, query_string, version)

        Raises:
            HTTPParseError: If line is malformed
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        # Absolute-form targets come from proxies: "http://host/path?q"
        if target.startswith(("http://", "https://")):
            parts = urlsplit(target)
            raw_path, query_string = parts.path or "/", parts.query
        else:
            # Not urlsplit: it would read "//a/b" as a host named "a"
            target = target.split("#", 1)[0]
            raw_path, _, query_string = target.partition("?")

        if not raw_path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target}")

        return method, raw_path, query_string, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse HTTP headers into a dictionary.

        Names are lowercased. Repeated headers are joined with ", " as
        RFC 9110 allows. Obsolete line folding continues the previous
        header.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """
    Convenience function to parse an HTTP request in one call.
    """
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
