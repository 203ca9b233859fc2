"""
=============================================================================
SERVING ERRORS
=============================================================================

Every way a request can fail inside the file-serving pipeline, as typed
exceptions that carry their HTTP status.

    ┌──────────────────────────┬────────┬─────────────────────────────────┐
    │ Exception                │ Status │ Raised when                     │
    ├──────────────────────────┼────────┼─────────────────────────────────┤
    │ NotFound                 │  404   │ path missing, escapes root      │
    │ BadRequest               │  400   │ bad sort key, bad multipart,    │
    │                          │        │ bad percent-encoding            │
    │ RangeNotSatisfiable      │  416   │ range out of bounds, If-Match   │
    │                          │        │ failed, empty/unknown range set │
    │ PermissionOrIOError      │  500   │ unreadable file or directory    │
    │ UploadFailure            │  500   │ temp store or copy failed       │
    └──────────────────────────┴────────┴─────────────────────────────────┘

The message is shown to the client as {"error": message}, so it must
never contain a traceback. Handlers catch OSError at each filesystem
call and convert it with from_os_error().

=============================================================================
"""

import errno
from typing import Optional

from .http.status_codes import HTTPStatus


class ServeError(Exception):
    """
    Base class for errors that map directly to an HTTP response.

    Attributes:
        message: Client-safe description.
        status_code: HTTPStatus to answer with.
    """

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[HTTPStatus] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFound(ServeError):
    status_code = HTTPStatus.NOT_FOUND


class BadRequest(ServeError):
    status_code = HTTPStatus.BAD_REQUEST


class RangeNotSatisfiable(ServeError):
    """
    416. `length` is the full resource length when known, sent back as
    Content-Range: bytes */length.
    """

    status_code = HTTPStatus.RANGE_NOT_SATISFIABLE

    def __init__(self, message: str, length: Optional[int] = None):
        super().__init__(message)
        self.length = length


class PermissionOrIOError(ServeError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class UploadFailure(ServeError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


def from_os_error(exc: OSError, what: str) -> ServeError:
    """
    Map an OSError raised while touching `what` to a ServeError.

        ENOENT / ENOTDIR  → NotFound
        everything else   → PermissionOrIOError

    Args:
        exc: The caught OSError.
        what: A short, client-safe noun phrase ("file", "directory").
    """
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)) or exc.errno in (
        errno.ENOENT, errno.ENOTDIR
    ):
        return NotFound("Not Found")
    if isinstance(exc, PermissionError):
        return PermissionOrIOError(f"Permission denied reading {what}")
    reason = exc.strerror or exc.__class__.__name__
    return PermissionOrIOError(f"Cannot read {what}: {reason}")
