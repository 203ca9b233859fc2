"""
=============================================================================
FILE SERVING
=============================================================================

The request-to-response pipeline of the server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ paths.py         URL path → file / directory under the root         │
    │ ranges.py        Range header → (offset, length)                    │
    │ conditional.py   If-Match / If-Range / If-Modified-Since, ETags     │
    │ listing.py       read, sort, render directory listings              │
    │ compression.py   Accept-Encoding negotiation, gzip / deflate        │
    │ upload.py        multipart/form-data decoding and storage           │
    │ static.py        StaticFileHandler: composes all of the above       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
USAGE
=============================================================================

    from staticserver.config import ServerConfig
    from staticserver.handlers import StaticFileHandler

    handler = StaticFileHandler(ServerConfig(root="/srv/files", index=True))
    response = handler.handle(request)

=============================================================================
"""

from .static import StaticFileHandler, FileStream
from .paths import PathResolver, ResolvedTarget, TargetKind
from .ranges import ByteRange, calculate_range
from .conditional import EntityTag, Validators, Decision, evaluate
from .listing import DirectoryLister, DirEntry, SortSpec
from .compression import CompressionNegotiator, negotiate
from .upload import UploadReceiver

__all__ = [
    "StaticFileHandler",
    "FileStream",
    "PathResolver",
    "ResolvedTarget",
    "TargetKind",
    "ByteRange",
    "calculate_range",
    "EntityTag",
    "Validators",
    "Decision",
    "evaluate",
    "DirectoryLister",
    "DirEntry",
    "SortSpec",
    "CompressionNegotiator",
    "negotiate",
    "UploadReceiver",
]
