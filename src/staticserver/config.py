"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the static file server.

The configuration is built once at startup and then shared, read-only,
by every worker thread. That is why ServerConfig is a FROZEN dataclass:
nothing can change a flag halfway through serving requests.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m staticserver ./public --port 3000 --upload       │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── STATICSERVER_PORT=3000 python -m staticserver              │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FEATURE FLAGS
=============================================================================

    index    serve index.html / index.htm instead of a listing   (off)
    upload   accept multipart POST uploads into directories      (off)
    cache    send ETag / Last-Modified / Cache-Control, honour   (on)
             If-Modified-Since
    range    honour Range requests, send Accept-Ranges           (on)
    sort     sort listings by ?sort=&order=                      (on)
    compress suffixes whose files may be gzip/deflate encoded    (none)

=============================================================================
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


def normalize_suffixes(value: str | Tuple[str, ...] | list[str] | None) -> Tuple[str, ...]:
    """
    Turn "js, css,.html" (or a list of the same) into (".js", ".css", ".html").

    Blank items are dropped and duplicates removed, order preserved.
    """
    if not value:
        return ()
    items = value.split(",") if isinstance(value, str) else value
    suffixes = []
    for item in items:
        item = item.strip()
        if not item:
            continue
        suffix = item if item.startswith(".") else f".{item}"
        if suffix not in suffixes:
            suffixes.append(suffix)
    return tuple(suffixes)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static file server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    CONTENT
    - root, index, upload, cache, range, sort, compress, cache_max_age

    NETWORK
    - host, port, backlog, buffer_size, timeout

    HTTP
    - keep_alive, keep_alive_timeout, keep_alive_max, max_request_size

    THREADING
    - threads (max workers), min_threads, queue_size

    SECURITY
    - auth ("user:pass"), tls_cert, tls_key, tls_password

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root: str = "."
    """Directory served at "/"."""

    index: bool = False
    upload: bool = False
    cache: bool = True
    range: bool = True
    sort: bool = True

    compress: Tuple[str, ...] = ()
    """
    File suffixes eligible for gzip/deflate, e.g. (".js", ".css").
    Empty disables compression entirely, listings included.
    """

    cache_max_age: int = 300

    chunk_size: int = 64 * 1024
    """Bytes read from disk per write when streaming a file."""

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 8000

    backlog: int = 128
    """Maximum number of queued connections in the accept queue."""

    buffer_size: int = 8192
    """Socket receive size in bytes."""

    timeout: Optional[float] = 30.0
    """Per-socket timeout. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    keep_alive_max: int = 100

    max_request_size: int = 256 * 1024 * 1024
    """
    Upper bound on one request, headers plus body. Uploads are buffered
    in memory, so this is also the largest accepted upload batch.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    threads: int = 3
    """Maximum number of worker threads."""

    min_threads: int = 1
    """Workers started eagerly; the pool grows up to `threads`."""

    queue_size: int = 64
    """Connections waiting for a worker. Beyond this clients get 503."""

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY
    # ─────────────────────────────────────────────────────────────────────

    auth: Optional[str] = None
    """HTTP Basic credentials as "user:pass". None disables auth."""

    auth_realm: str = "staticserver"

    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None
    tls_password: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    server_name: str = "staticserver/1.0"

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def root_path(self) -> Path:
        """The root as an absolute, symlink-free path."""
        return Path(self.root).resolve()

    @property
    def auth_credentials(self) -> Optional[Tuple[str, str]]:
        """("user", "pass") or None. Only the first ":" separates."""
        if not self.auth:
            return None
        user, _, password = self.auth.partition(":")
        return user, password

    @property
    def tls_enabled(self) -> bool:
        return self.tls_cert is not None

    @property
    def compression_enabled(self) -> bool:
        return bool(self.compress)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STATICSERVER_ROOT       Root directory (default: .)
        STATICSERVER_HOST       Bind address (default: 0.0.0.0)
        STATICSERVER_PORT       Port (default: 8000)
        STATICSERVER_THREADS    Worker threads (default: 3)
        STATICSERVER_INDEX      1/0 (default: 0)
        STATICSERVER_UPLOAD     1/0 (default: 0)
        STATICSERVER_CACHE      1/0 (default: 1)
        STATICSERVER_RANGE      1/0 (default: 1)
        STATICSERVER_SORT       1/0 (default: 1)
        STATICSERVER_COMPRESS   "js,css,html" (default: none)
        STATICSERVER_AUTH       "user:pass" (default: none)
        STATICSERVER_LOG_LEVEL  Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            root=os.getenv("STATICSERVER_ROOT", "."),
            host=os.getenv("STATICSERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("STATICSERVER_PORT", "8000")),
            threads=int(os.getenv("STATICSERVER_THREADS", "3")),
            index=_env_flag("STATICSERVER_INDEX", False),
            upload=_env_flag("STATICSERVER_UPLOAD", False),
            cache=_env_flag("STATICSERVER_CACHE", True),
            range=_env_flag("STATICSERVER_RANGE", True),
            sort=_env_flag("STATICSERVER_SORT", True),
            compress=normalize_suffixes(os.getenv("STATICSERVER_COMPRESS")),
            auth=os.getenv("STATICSERVER_AUTH") or None,
            log_level=os.getenv("STATICSERVER_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Fails fast at startup with a clear message instead of failing on
        the first request.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.threads < 1:
            raise ValueError("threads must be >= 1")

        if not 1 <= self.min_threads <= self.threads:
            raise ValueError("min_threads must be between 1 and threads")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not Path(self.root).is_dir():
            raise ValueError(f"Root is not a directory: {self.root}")

        if self.auth is not None and ":" not in self.auth:
            raise ValueError("auth must be given as user:pass")

        if self.tls_key is not None and self.tls_cert is None:
            raise ValueError("tls_key requires tls_cert")

        for suffix in self.compress:
            if not suffix.startswith("."):
                raise ValueError(f"Compress suffix must start with '.': {suffix}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Frozen dataclass: shared by all workers without locking
# 2. Environment variable support (STATICSERVER_*)
# 3. Validation at startup (fail-fast)
# 4. normalize_suffixes() turns "js,css" into (".js", ".css")
# =============================================================================
