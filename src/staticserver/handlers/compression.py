"""
=============================================================================
COMPRESSION NEGOTIATION
=============================================================================

Chooses a Content-Encoding for a response from two inputs:

    server policy   configured file suffixes, e.g. (".js", ".css")
    client ability  Accept-Encoding, e.g. "br, deflate, gzip;q=0.5"

and applies it.

=============================================================================
HOW CONTENT NEGOTIATION WORKS
=============================================================================

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /app.js HTTP/1.1                                          │
    │ Accept-Encoding: br, deflate, gzip                            │
    │                  │   │        │                               │
    │                  │   │        └── third choice                │
    │                  │   └── first one we support: chosen         │
    │                  └── not supported here, skipped              │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Encoding: deflate                                     │
    │ Content-Length: 1234    (compressed size)                     │
    │ Vary: Accept-Encoding   (caching hint)                        │
    └───────────────────────────────────────────────────────────────┘

We pick the FIRST of gzip/deflate in the client's order. q-values are
only used to exclude a coding (q=0); they do not reorder.

=============================================================================
ELIGIBILITY
=============================================================================

    Nothing is compressed unless at least one suffix is configured.

    Listings   always eligible (generated HTML compresses well)
    Files      path ends with a configured suffix AND status is not 206

    A 206 is never compressed: its Content-Range offsets count bytes of
    the uncompressed file, and compressing the slice would break them.

=============================================================================
INTERVIEW QUESTIONS ABOUT COMPRESSION
=============================================================================

Q: "Why a suffix list instead of compressing every text response?"
A: "It is the operator's call. Binary formats (JPEG, MP4, ZIP) are
   already compressed; gzipping them burns CPU for nothing."

Q: "What's the Vary header for?"
A: "It tells caches the body depends on Accept-Encoding, so a gzipped
   copy is never handed to a client that cannot decode it."

Q: "gzip vs deflate?"
A: "Same DEFLATE algorithm; gzip adds a header and CRC32. HTTP's
   'deflate' means the zlib wrapper (RFC 1950), which zlib.compress()
   produces."

=============================================================================
"""

import gzip
import logging
import zlib
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

SUPPORTED_CODINGS = ("gzip", "deflate")

_ALIASES = {"x-gzip": "gzip"}


def parse_accept_encoding(header: Optional[str]) -> List[Tuple[str, float]]:
    """
    Parse Accept-Encoding into (coding, q) pairs in the client's order.

        >>> parse_accept_encoding("gzip;q=0.5, deflate")
        [('gzip', 0.5), ('deflate', 1.0)]

    Malformed q-values count as 1.0.
    """
    if not header:
        return []

    codings = []
    for item in header.split(","):
        parts = [part.strip() for part in item.split(";")]
        coding = parts[0].lower()
        if not coding:
            continue
        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 1.0
        codings.append((_ALIASES.get(coding, coding), quality))
    return codings


def negotiate(header: Optional[str]) -> Optional[str]:
    """
    Pick the first supported coding the client accepts.

    Returns:
        "gzip", "deflate" or None.
    """
    for coding, quality in parse_accept_encoding(header):
        if coding in SUPPORTED_CODINGS and quality > 0:
            return coding
    return None


def encode(body: bytes, coding: str, level: int = 6) -> bytes:
    """Compress `body` with gzip or zlib-wrapped deflate."""
    if coding == "gzip":
        return gzip.compress(body, compresslevel=level)
    if coding == "deflate":
        return zlib.compress(body, level)
    raise ValueError(f"Unsupported coding: {coding}")


class CompressionNegotiator:
    """
    Decides and applies response compression.

    Usage:
        negotiator = CompressionNegotiator(suffixes=(".js", ".css"))

        coding = negotiator.for_file(accept, Path("app.js"), HTTPStatus.OK)
        if coding:
            negotiator.apply(response, coding)
    """

    def __init__(self, suffixes: Sequence[str] = (), level: int = 6):
        """
        Args:
            suffixes: File name endings eligible for compression.
                      Empty disables compression entirely.
            level: Compression level (1 fastest .. 9 smallest).
        """
        self.suffixes = tuple(suffixes)
        self.level = level

    @property
    def enabled(self) -> bool:
        return bool(self.suffixes)

    def matches_suffix(self, path: Path) -> bool:
        return path.name.endswith(self.suffixes) if self.suffixes else False

    def for_listing(self, accept_encoding: Optional[str]) -> Optional[str]:
        """Coding for a directory listing, or None."""
        if not self.enabled:
            return None
        return negotiate(accept_encoding)

    def for_file(
        self,
        accept_encoding: Optional[str],
        path: Path,
        status: HTTPStatus,
    ) -> Optional[str]:
        """
        Coding for a file response, or None.

        Never compresses 206 Partial Content.
        """
        if not self.enabled or status == HTTPStatus.PARTIAL_CONTENT:
            return None
        if not self.matches_suffix(path):
            return None
        return negotiate(accept_encoding)

    def apply(self, response: HTTPResponse, coding: str) -> HTTPResponse:
        """
        Compress the response body in place.

        A streamed body is read fully first; compressed responses are
        always buffered. Content-Length is recomputed from the result.
        """
        if response.status == HTTPStatus.PARTIAL_CONTENT:
            raise ValueError("Refusing to compress a 206 response")

        original = response.read_body()
        compressed = encode(original, coding, self.level)
        response.set_body(compressed)

        response.set_header("Content-Encoding", coding)
        vary = response.get_header("Vary", "")
        if "accept-encoding" not in vary.lower():
            response.set_header("Vary", f"{vary}, Accept-Encoding".lstrip(", "))

        logger.debug(f"{coding}: {len(original)} -> {len(compressed)} bytes")
        return response
