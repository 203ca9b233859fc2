"""
=============================================================================
PATH RESOLUTION
=============================================================================

Maps a request path onto the filesystem under the server root and says
what lives there.

=============================================================================
ALGORITHM
=============================================================================

    raw path:   /docs//My%20Notes/a%2Fb.txt
                  │
    1. split    ["docs", "", "My%20Notes", "a%2Fb.txt"]
    2. drop ""  ["docs", "My%20Notes", "a%2Fb.txt"]
    3. decode   ["docs", "My Notes", "a/b.txt"]      (UTF-8, per segment)
    4. check    "a/b.txt" contains a separator → NotFound
    5. join     <root>/docs/My Notes/...
    6. contain  realpath(joined) must be <root> or below it
    7. stat     directory → DIRECTORY, regular file → FILE, else NotFound

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

Two layers, because either one alone has holes:

    Segment check     "..", ".", separators and NUL are refused before
                      touching the disk, so "/a/%2e%2e/%2e%2e/etc" never
                      walks upward.

    Containment check realpath() follows symlinks; a link inside the
                      root that points outside it is refused as well.

Both failures answer 404 so a client learns nothing about what exists
outside the root.

=============================================================================
"""

import logging
import os
import re
import stat as stat_module
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple
from urllib.parse import quote, unquote_to_bytes

from ..errors import BadRequest, NotFound, from_os_error


logger = logging.getLogger(__name__)

# A "%" not followed by two hex digits
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

_FORBIDDEN_SEGMENTS = frozenset({".", ".."})


class TargetKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    MISSING = "missing"


@dataclass(frozen=True)
class ResolvedTarget:
    """
    Where a request path points.

    Attributes:
        path: Absolute filesystem path, symlinks resolved, inside root.
        kind: FILE, DIRECTORY or MISSING.
        segments: Decoded URL segments, root-relative. () is the root.
        stat: os.stat_result of `path`, None when MISSING.
        requested: root joined with the segments, before symlinks are
                   followed. Its name, not the link target's, decides
                   the Content-Type and compression.
    """

    path: Path
    kind: TargetKind
    segments: Tuple[str, ...]
    stat: Optional[os.stat_result] = None
    requested: Optional[Path] = None

    @property
    def name_path(self) -> Path:
        return self.requested if self.requested is not None else self.path

    @property
    def is_file(self) -> bool:
        return self.kind is TargetKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind is TargetKind.DIRECTORY

    @property
    def is_root(self) -> bool:
        return not self.segments


def decode_segments(raw_path: str) -> Tuple[str, ...]:
    """
    Split a raw URL path into percent-decoded, non-empty segments.

    Examples:
        >>> decode_segments("/a//b%20c/")
        ('a', 'b c')
        >>> decode_segments("/")
        ()

    Raises:
        BadRequest: On a malformed escape or bytes that are not UTF-8.
    """
    segments = []
    for raw in raw_path.split("/"):
        if not raw:
            continue
        if _BAD_ESCAPE.search(raw):
            raise BadRequest(f"Malformed percent-encoding in path: {raw}")
        try:
            segments.append(unquote_to_bytes(raw).decode("utf-8"))
        except UnicodeDecodeError:
            raise BadRequest(f"Path is not valid UTF-8: {raw}")
    return tuple(segments)


def encode_link(segments: Sequence[str], trailing_slash: bool = False) -> str:
    """
    Build an absolute URL path from decoded segments.

    Every segment is percent-encoded on its own, so a "/" or "?" inside
    a file name cannot change the link's meaning.

        >>> encode_link(["My Notes", "a#1.txt"])
        '/My%20Notes/a%231.txt'
        >>> encode_link(["docs"], trailing_slash=True)
        '/docs/'
        >>> encode_link([])
        '/'
    """
    if not segments:
        return "/"
    link = "/" + "/".join(quote(segment, safe="") for segment in segments)
    return link + "/" if trailing_slash else link


def _is_safe_segment(segment: str) -> bool:
    if segment in _FORBIDDEN_SEGMENTS or "\x00" in segment:
        return False
    if "/" in segment:
        return False
    for separator in (os.sep, os.altsep):
        if separator and separator in segment:
            return False
    return True


class PathResolver:
    """
    Resolves request paths against a fixed root directory.

    Holds no per-request state; one instance is shared by all workers.

    Usage:
        resolver = PathResolver("/srv/files")
        target = resolver.resolve("/music/song.mp3")
        if target.is_file:
            ...
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def contains(self, path: Path) -> bool:
        """True when `path` (already symlink-free) is the root or below it."""
        return path == self.root or self.root in path.parents

    def resolve(self, raw_path: str, must_exist: bool = True) -> ResolvedTarget:
        """
        Resolve a raw (still percent-encoded) URL path.

        Args:
            raw_path: Path as it appeared in the request line.
            must_exist: When False a missing path yields kind MISSING
                        instead of raising.

        Returns:
            ResolvedTarget for the path.

        Raises:
            BadRequest: Malformed percent-encoding.
            NotFound: Unsafe segment, escapes root, missing, or neither
                      a directory nor a regular file.
            PermissionOrIOError: stat() failed for another reason.
        """
        return self.resolve_segments(decode_segments(raw_path), must_exist)

    def resolve_segments(self, segments: Sequence[str], must_exist: bool = True) -> ResolvedTarget:
        """
        Resolve already decoded segments, e.g. a directory's segments plus
        the name of its index file. Same checks and errors as resolve().
        """
        segments = tuple(segments)
        for segment in segments:
            if not _is_safe_segment(segment):
                logger.warning(f"Rejected unsafe path segment {segment!r} in {segments}")
                raise NotFound("Not Found")

        candidate = self.root.joinpath(*segments)
        real = Path(os.path.realpath(candidate))

        if not self.contains(real):
            logger.warning(f"Path escapes root: {candidate} -> {real}")
            raise NotFound("Not Found")

        try:
            st = os.stat(real)
        except (FileNotFoundError, NotADirectoryError):
            if must_exist:
                raise NotFound("Not Found")
            return ResolvedTarget(real, TargetKind.MISSING, segments, requested=candidate)
        except OSError as e:
            logger.warning(f"stat failed for {real}: {e}")
            raise from_os_error(e, "path")

        if stat_module.S_ISDIR(st.st_mode):
            kind = TargetKind.DIRECTORY
        elif stat_module.S_ISREG(st.st_mode):
            kind = TargetKind.FILE
        else:
            # FIFOs, sockets, devices
            raise NotFound("Not Found")

        return ResolvedTarget(real, kind, segments, st, requested=candidate)
