"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file names to Content-Type values for file responses.

The table is built ONCE at import time and never mutated afterwards, so
every worker thread can read it without a lock:

    import time                     request time (any worker)
    ───────────                     ─────────────────────────
    MIME_TYPES (curated)  ─┐
                           ├──►  get_mime_type("a.mkv") → "video/x-matroska"
    mimetypes (system)   ──┘     get_mime_type("a.xyz") → application/octet-stream

The curated table wins over the platform database; the platform database
(/etc/mime.types and friends, via the stdlib `mimetypes` module) fills in
the long tail.

=============================================================================
"""

from pathlib import Path
from types import MappingProxyType
from typing import Optional
import mimetypes


_CURATED = {
    # text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",

    # source, shown in the browser rather than downloaded
    ".py": "text/x-python",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
    ".c": "text/x-c",
    ".h": "text/x-c",
    ".cpp": "text/x-c++",
    ".java": "text/x-java-source",
    ".sh": "text/x-shellscript",

    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # audio / video (the usual targets of Range requests)
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",

    # documents / archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".7z": "application/x-7z-compressed",
    ".wasm": "application/wasm",
    ".map": "application/json",
}


def _build_table() -> MappingProxyType:
    mimetypes.init()
    table = {ext.lower(): mime for ext, mime in mimetypes.types_map.items()}
    table.update(_CURATED)
    return MappingProxyType(table)


# Read-only view; shared by all workers
MIME_TYPES = _build_table()

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_APPLICATION_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
})


def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("movie.MP4")
        'video/mp4'
        >>> get_mime_type("unknown.zzz")
        'application/octet-stream'
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """True for text/* and the text-based application types."""
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

    Text types get a charset parameter:

        >>> get_content_type("notes.txt")
        'text/plain; charset=utf-8'
        >>> get_content_type("photo.png")
        'image/png'
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
