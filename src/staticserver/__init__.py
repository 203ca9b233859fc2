"""
=============================================================================
STATICSERVER - HTTP/1.1 Static File Server Built From Scratch
=============================================================================

Serves a directory tree over HTTP(S) on raw Python sockets: directory
listings with sortable columns, byte ranges, conditional requests,
gzip/deflate, multipart uploads and Basic authentication.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. TRANSPORT (core/)                                               │
    │      - Accept loop, optional TLS                                     │
    │      - Bounded thread pool, 503 when full                            │
    │      - Keep-alive connections, streamed file bodies                  │
    │                                                                      │
    │   2. PROTOCOL (http/)                                                │
    │      - Request parsing, response building, HTTP dates, MIME types   │
    │                                                                      │
    │   3. CROSS-CUTTING (middleware/)                                     │
    │      - Access log, Basic authentication                              │
    │                                                                      │
    │   4. SERVING (handlers/)                                             │
    │      - Path resolution confined to the root                          │
    │      - Listings, index files, ranges, validators, compression,      │
    │        uploads                                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    staticserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m staticserver)
    ├── server.py            # HTTPServer: wires everything together
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # ServeError hierarchy
    ├── core/
    │   ├── socket_server.py # Listening socket, TLS
    │   ├── connection.py    # Per-client reading and writing
    │   └── thread_pool.py   # Worker threads
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building, HTTP dates
    │   ├── status_codes.py  # HTTPStatus enum
    │   └── mime_types.py    # Extension → Content-Type
    ├── middleware/
    │   ├── base.py          # Middleware, MiddlewarePipeline
    │   ├── logging.py       # Access log
    │   └── auth.py          # HTTP Basic authentication
    └── handlers/
        ├── static.py        # StaticFileHandler: request → response
        ├── paths.py         # PathResolver
        ├── ranges.py        # Range header → byte range
        ├── conditional.py   # ETag, If-Match, If-Range, If-Modified-Since
        ├── listing.py       # Directory listing HTML
        ├── compression.py   # Accept-Encoding negotiation
        └── upload.py        # multipart/form-data uploads

=============================================================================
QUICK START
=============================================================================

    from staticserver import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(root="./public", index=True, port=8080))
    server.run()

Or from a shell:

    python -m staticserver ./public -p 8080 -i

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, create_app
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "create_app", "__version__"]
