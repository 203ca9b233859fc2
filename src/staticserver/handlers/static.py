"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Turns a request into a response by composing the serving components:

    PathResolver → DirectoryLister | ConditionalEvaluator → RangeCalculator
                 → CompressionNegotiator → HTTPResponse

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  POST + upload enabled + directory ─────► UploadReceiver → 302      │
    │                                                                      │
    │  resolve path ──┬── DIRECTORY                                       │
    │                 │     ├─ index on + index.html/.htm → file flow     │
    │                 │     └─ read, sort, render → (compress) → 200      │
    │                 │                                                    │
    │                 └── FILE                                            │
    │                       ├─ If-Match fails (range request)  → 416      │
    │                       ├─ If-Modified-Since hit            → 304     │
    │                       ├─ If-Range ok + Range              → 206     │
    │                       └─ otherwise                        → 200     │
    │                            └─ suffix matches + client accepts       │
    │                               → gzip/deflate                         │
    └─────────────────────────────────────────────────────────────────────┘

    HEAD      same headers as GET (Content-Type, Content-Encoding,
              Content-Length of what GET would send), no body
    index     index.html / index.htm are resolved like request paths;
              one that dangles or leaves the root is skipped
    others    empty 200 on any path that resolves

=============================================================================
STREAMING
=============================================================================

Files are never read whole into memory. The file is opened here (so a
permission error still becomes a clean 500) and handed to the connection
as a FileStream that seeks to the range offset and yields fixed-size
chunks until `length` bytes are out:

    open() ── seek(offset) ── read(64K) ── read(64K) ── ... ── close()

Only compressed file bodies and listings are buffered.

=============================================================================
ERRORS
=============================================================================

Every ServeError is turned into {"error": message} with its status.
416 responses also carry "Content-Range: bytes */<length>" when the file
length is known.

=============================================================================
"""

import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from ..config import ServerConfig
from ..errors import NotFound, RangeNotSatisfiable, ServeError, from_os_error
from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, error_response
from ..http.status_codes import HTTPStatus
from .compression import CompressionNegotiator
from .conditional import Validators, evaluate
from .listing import DirectoryLister, find_index
from .paths import PathResolver, ResolvedTarget
from .ranges import calculate_range
from .upload import UploadReceiver


logger = logging.getLogger(__name__)

# Methods that get a full representation; POST falls back to GET when it
# is not an upload
_REPRESENTATION_METHODS = frozenset({"GET", "HEAD", "POST"})


class FileStream:
    """
    Iterates `length` bytes of an open file starting at `offset`.

    Owns the file object: close() releases it, whether or not iteration
    ever started.
    """

    def __init__(self, fileobj: BinaryIO, offset: int, length: int, chunk_size: int = 64 * 1024):
        self._file = fileobj
        self.offset = offset
        self.length = length
        self.chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        self._file.seek(self.offset)
        remaining = self.length
        while remaining > 0:
            chunk = self._file.read(min(self.chunk_size, remaining))
            if not chunk:
                # File shrank since stat(); the connection will notice the
                # short body and close
                logger.warning(f"{self._file.name}: ended {remaining} bytes early")
                return
            remaining -= len(chunk)
            yield chunk

    def close(self) -> None:
        self._file.close()


class StaticFileHandler:
    """
    Handler for serving a directory tree over HTTP.

    =========================================================================
    FEATURES
    =========================================================================

    - Directory listings with breadcrumb and sortable columns
    - Optional index.html / index.htm serving
    - Byte ranges (206) with If-Range / If-Match
    - ETag / Last-Modified / If-Modified-Since (304)
    - gzip / deflate for configured suffixes
    - Multipart uploads into directories
    - Path traversal protection

    =========================================================================
    USAGE
    =========================================================================

        handler = StaticFileHandler(ServerConfig(root="/srv/files", upload=True))
        response = handler.handle(request)

    The handler holds only read-only configuration, so one instance
    serves every worker thread.

    =========================================================================
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.resolver = PathResolver(config.root)
        self.lister = DirectoryLister(sort_enabled=config.sort, upload_enabled=config.upload)
        self.negotiator = CompressionNegotiator(config.compress)
        self.uploads = UploadReceiver()

        if not self.resolver.root.is_dir():
            raise ValueError(f"Root directory does not exist: {config.root}")

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Build the response for one request.

        Never raises ServeError; those become JSON error responses.
        Unexpected exceptions propagate to the server, which logs them
        and answers 500.
        """
        try:
            return self._dispatch(request)
        except ServeError as e:
            return self._error(request, e)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        target = self.resolver.resolve(request.raw_path)

        if request.method == "POST" and self.config.upload and target.is_dir:
            return self._upload(request, target)

        if request.method not in _REPRESENTATION_METHODS:
            return ResponseBuilder().status(HTTPStatus.OK).build()

        if target.is_dir:
            return self._directory(request, target)
        return self._file(request, target)

    def _upload(self, request: HTTPRequest, target: ResolvedTarget) -> HTTPResponse:
        result = self.uploads.receive(request, target.path)
        logger.debug(f"Upload saved {len(result.saved)} file(s) under {target.path}")
        return ResponseBuilder().redirect(request.target).build()

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def _directory(self, request: HTTPRequest, target: ResolvedTarget) -> HTTPResponse:
        entries = self.lister.entries(target.path)

        if self.config.index:
            index = self._index_target(target, entries)
            if index is not None:
                logger.debug(f"Serving {index.path} as directory index")
                return self._file(request, index)

        page = self.lister.render(
            target.segments,
            entries,
            sort=request.get_query("sort"),
            order=request.get_query("order"),
        )
        response = ResponseBuilder().html(page).build()

        coding = self.negotiator.for_listing(request.get_header("accept-encoding") or None)
        if coding:
            self.negotiator.apply(response, coding)

        if request.method == "HEAD":
            return self._without_body(response)
        return response

    def _index_target(self, target: ResolvedTarget, entries) -> Optional[ResolvedTarget]:
        """
        The index file of a directory, resolved like any request path.

        An index that dangles or points outside the root is ignored and
        the directory is listed instead.
        """
        index_name = find_index(entries)
        if index_name is None:
            return None
        try:
            index = self.resolver.resolve_segments(target.segments + (index_name,))
        except NotFound:
            logger.warning(f"Ignoring unusable index {target.path / index_name}")
            return None
        return index if index.is_file else None

    # =========================================================================
    # FILES
    # =========================================================================

    def _file(self, request: HTTPRequest, target: ResolvedTarget) -> HTTPResponse:
        validators = Validators.from_stat(target.stat)
        size = validators.size

        has_range = (
            self.config.range
            and request.method == "GET"
            and request.has_header("range")
        )
        decision = evaluate(
            validators,
            has_range=has_range,
            if_match=request.get_header("if-match") or None,
            if_range=request.get_header("if-range") or None,
            if_modified_since=request.get_header("if-modified-since") or None,
            cache_enabled=self.config.cache,
        )

        builder = ResponseBuilder()
        if self.config.cache:
            builder.cache(self.config.cache_max_age)
            builder.header("Last-Modified", validators.last_modified)
            builder.header("ETag", str(validators.etag))

        if decision.not_modified:
            return builder.status(HTTPStatus.NOT_MODIFIED).build()

        builder.content_type(get_content_type(target.name_path))
        if self.config.range:
            builder.header("Accept-Ranges", "bytes")

        byte_range = None
        if decision.use_range:
            byte_range = calculate_range(request.get_header("range"), size)

        status = HTTPStatus.PARTIAL_CONTENT if byte_range is not None else HTTPStatus.OK
        coding = self.negotiator.for_file(
            request.get_header("accept-encoding") or None, target.name_path, status
        )

        # HEAD needs the body only to measure its compressed length
        if request.method == "HEAD" and coding is None:
            return builder.content_length(size).build()

        fileobj = self._open(target.path)
        if byte_range is not None:
            logger.debug(f"{target.path}: {byte_range.content_range}")
            builder.status(HTTPStatus.PARTIAL_CONTENT)
            builder.header("Content-Range", byte_range.content_range)
            stream = FileStream(fileobj, byte_range.offset, byte_range.length, self.config.chunk_size)
        else:
            stream = FileStream(fileobj, 0, size, self.config.chunk_size)

        response = builder.stream(stream, stream.length).build()

        if coding:
            try:
                self.negotiator.apply(response, coding)
            except OSError as e:
                raise from_os_error(e, "file")

        if request.method == "HEAD":
            return self._without_body(response)
        return response

    def _open(self, path: Path) -> BinaryIO:
        try:
            return open(path, "rb")
        except OSError as e:
            logger.warning(f"Cannot open {path}: {e}")
            raise from_os_error(e, "file")

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _without_body(response: HTTPResponse) -> HTTPResponse:
        """Turn a GET response into its HEAD form: same headers, no body."""
        response.set_header("Content-Length", str(len(response.body)))
        response.body = b""
        return response

    def _error(self, request: HTTPRequest, error: ServeError) -> HTTPResponse:
        status = HTTPStatus(error.status_code)
        if status.is_server_error:
            logger.warning(f"{request.method} {request.path}: {status} {error.message}")
        else:
            logger.debug(f"{request.method} {request.path}: {status} {error.message}")

        response = error_response(status, error.message)
        if isinstance(error, RangeNotSatisfiable) and error.length is not None:
            response.set_header("Content-Range", f"bytes */{error.length}")
        if request.method == "HEAD":
            return self._without_body(response)
        return response


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# The handler is the one place where the serving components meet:
#
# 1. PathResolver maps the URL to a file or directory inside the root
# 2. Directories are listed (or replaced by their index file)
# 3. Files go through conditional evaluation, then ranges
# 4. Eligible full responses are compressed
# 5. ServeErrors become JSON error responses
#
# =============================================================================
