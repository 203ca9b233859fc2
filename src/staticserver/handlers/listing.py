"""
=============================================================================
DIRECTORY LISTINGS
=============================================================================

Reads a directory once, sorts the entries on request and renders the
whole listing as a single HTML document.

=============================================================================
PAGE LAYOUT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ [upload form]                            (only when upload is on)   │
    │ [Root] / docs / 2024                     breadcrumb                 │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Name            Last modified     Size   (links when sort is on)    │
    │ - - - - - - - - - - - - - - - - - - - - -                           │
    │ [Up]                                                                │
    │ photos/         [2024-03-01 10:22:05]   -                           │
    │ notes.txt       [2024-03-02 08:00:00]   1.5 kB                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SORTING
=============================================================================

    ?sort=name|modified|size   &order=asc|desc   (order defaults to desc)

    name      lexicographic on the file name
    modified  modification time
    size      directories first, all equal to each other;
              files by byte length

    Unknown field or order → 400, never a silent fallback.

Column header links toggle: the column currently sorted descending links
to ascending; every other column links to descending.

=============================================================================
"""

import html
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import BadRequest, from_os_error
from .paths import encode_link


logger = logging.getLogger(__name__)

INDEX_FILES = ("index.html", "index.htm")

ROOT_LINK = '<a href="/"><strong>[Root]</strong></a>'


class SortField(Enum):
    NAME = "name"
    MODIFIED = "modified"
    SIZE = "size"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"

    @property
    def opposite(self) -> "SortOrder":
        return SortOrder.ASC if self is SortOrder.DESC else SortOrder.DESC


@dataclass(frozen=True)
class SortSpec:
    field: SortField
    order: SortOrder = SortOrder.DESC

    @classmethod
    def from_query(cls, sort: Optional[str], order: Optional[str]) -> Optional["SortSpec"]:
        """
        Build a SortSpec from the `sort` and `order` query parameters.

        Returns:
            None when `sort` is absent.

        Raises:
            BadRequest: "Unknown sort field: X" / "Unknown sort order: X"
        """
        if sort is None:
            return None
        try:
            sort_field = SortField(sort)
        except ValueError:
            raise BadRequest(f"Unknown sort field: {sort}")

        if order is None:
            return cls(sort_field)
        try:
            sort_order = SortOrder(order)
        except ValueError:
            raise BadRequest(f"Unknown sort order: {order}")
        return cls(sort_field, sort_order)


@dataclass(frozen=True)
class DirEntry:
    """
    One directory entry, as read for a single listing.

    Attributes:
        name: Raw file name (not URL-encoded, not HTML-escaped).
        is_dir: True for directories (symlinks to directories included).
        size: Byte length, 0 for directories.
        modified: mtime as a POSIX timestamp.
    """

    name: str
    is_dir: bool
    size: int
    modified: float


def read_entries(path: Path) -> List[DirEntry]:
    """
    Enumerate a directory in one pass.

    Dangling symlinks are listed with their own (link) metadata.

    Raises:
        NotFound / PermissionOrIOError: The directory cannot be read.
    """
    entries = []
    try:
        with os.scandir(path) as it:
            for entry in it:
                try:
                    st = entry.stat()
                except FileNotFoundError:
                    st = entry.stat(follow_symlinks=False)
                is_dir = entry.is_dir()
                entries.append(DirEntry(
                    name=entry.name,
                    is_dir=is_dir,
                    size=0 if is_dir else st.st_size,
                    modified=st.st_mtime,
                ))
    except OSError as e:
        logger.warning(f"Cannot list {path}: {e}")
        raise from_os_error(e, "directory")
    return entries


def find_index(entries: Sequence[DirEntry]) -> Optional[str]:
    """
    Name of the index file to serve instead of a listing, if any.

    index.html wins over index.htm regardless of directory order.
    Directories with those names do not count.
    """
    files = {entry.name for entry in entries if not entry.is_dir}
    for name in INDEX_FILES:
        if name in files:
            return name
    return None


def _sort_key(sort_field: SortField):
    if sort_field is SortField.NAME:
        return lambda entry: entry.name
    if sort_field is SortField.MODIFIED:
        return lambda entry: entry.modified
    # Directories share one key below every file
    return lambda entry: (0, 0) if entry.is_dir else (1, entry.size)


def sort_entries(entries: Sequence[DirEntry], spec: SortSpec) -> List[DirEntry]:
    """
    Return the entries ordered by `spec`.

    Example (sort=size&order=asc):
        [b.txt (10 B), a/ (dir), c.txt (5 B)] → [a/, c.txt, b.txt]
    """
    return sorted(
        entries,
        key=_sort_key(spec.field),
        reverse=spec.order is SortOrder.DESC,
    )


def human_size(size: int) -> str:
    """
    Format a byte count with decimal units, two decimals at most.

        >>> human_size(10)
        '10 B'
        >>> human_size(1500)
        '1.5 kB'
        >>> human_size(1_000_000)
        '1 MB'
    """
    units = ["B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]
    value = float(size)
    unit = units[0]
    for unit in units:
        if value < 1000 or unit == units[-1]:
            break
        value /= 1000
    number = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{number} {unit}"


def _breadcrumb(segments: Sequence[str]) -> str:
    if not segments:
        return ROOT_LINK
    crumbs = [ROOT_LINK]
    for depth in range(1, len(segments)):
        link = encode_link(segments[:depth], trailing_slash=True)
        label = html.escape(segments[depth - 1])
        crumbs.append(f'<a href="{link}"><strong>{label}</strong></a>')
    crumbs.append(html.escape(segments[-1]))
    return " / ".join(crumbs)


def _sort_header(segments: Sequence[str], current: Optional[SortSpec]) -> str:
    link = encode_link(segments, trailing_slash=True)
    orders = {}
    for sort_field in SortField:
        order = SortOrder.DESC
        if current is not None and current.field is sort_field and current.order is SortOrder.DESC:
            order = SortOrder.ASC
        orders[sort_field] = order.value

    return (
        "<tr>\n"
        f'  <th><a href="{link}?sort=name&amp;order={orders[SortField.NAME]}">Name</a></th>\n'
        f'  <th><a href="{link}?sort=modified&amp;order={orders[SortField.MODIFIED]}">Last modified</a></th>\n'
        f'  <th><a href="{link}?sort=size&amp;order={orders[SortField.SIZE]}">Size</a></th>\n'
        "</tr>\n"
        '<tr><td style="border-top:1px dashed #BBB;" colspan="5"></td></tr>'
    )


def _up_row(segments: Sequence[str]) -> str:
    if not segments:
        return "<tr><td>&nbsp;</td></tr>"
    parent = segments[:-1]
    link = encode_link(parent, trailing_slash=bool(parent))
    return (
        "<tr>\n"
        f'  <td><a href="{link}"><strong>[Up]</strong></a></td>\n'
        "  <td></td>\n"
        "  <td></td>\n"
        "</tr>"
    )


def _entry_row(segments: Sequence[str], entry: DirEntry) -> str:
    link = encode_link([*segments, entry.name], trailing_slash=entry.is_dir)
    label = html.escape(entry.name + ("/" if entry.is_dir else ""))
    style = ' style="font-weight: bold;"' if entry.is_dir else ""
    modified = datetime.fromtimestamp(entry.modified).strftime("%Y-%m-%d %H:%M:%S")
    size = "-" if entry.is_dir else human_size(entry.size)
    return (
        "<tr>\n"
        f'  <td><a{style} href="{link}">{label}</a></td>\n'
        f'  <td style="color:#888;">[{modified}]</td>\n'
        f"  <td><strong>{size}</strong></td>\n"
        "</tr>"
    )


def _upload_form(segments: Sequence[str]) -> str:
    action = encode_link(segments, trailing_slash=bool(segments))
    return (
        f'<form style="margin-top:1em; margin-bottom:1em;" action="{action}" '
        'method="POST" enctype="multipart/form-data">\n'
        '  <input type="file" name="files" accept="*" multiple />\n'
        '  <input type="submit" value="Upload" />\n'
        "</form>"
    )


def render_listing(
    segments: Sequence[str],
    entries: Sequence[DirEntry],
    *,
    sort_enabled: bool = True,
    sort_spec: Optional[SortSpec] = None,
    upload_enabled: bool = False,
) -> str:
    """
    Render a complete HTML listing page.

    Args:
        segments: Decoded path segments of the directory, () for root.
        entries: Entries in display order (already sorted).
        sort_enabled: Render sortable column headers.
        sort_spec: Current sort, used to toggle the header links.
        upload_enabled: Render the upload form.

    Returns:
        The HTML document as a string.
    """
    title = html.escape(encode_link(segments, trailing_slash=bool(segments)))
    rows = [_up_row(segments)]
    rows.extend(_entry_row(segments, entry) for entry in entries)

    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '  <meta charset="utf-8">\n'
        f"  <title>Index of {title}</title>\n"
        "  <style> a { text-decoration:none; } </style>\n"
        "</head>\n"
        "<body>\n"
        f"  {_upload_form(segments) if upload_enabled else ''}\n"
        f"  <div>{_breadcrumb(segments)}</div>\n"
        "  <hr />\n"
        "  <table>\n"
        f"    {_sort_header(segments, sort_spec) if sort_enabled else ''}\n"
        f"    {chr(10).join(rows)}\n"
        "  </table>\n"
        "</body>\n"
        "</html>\n"
    )


class DirectoryLister:
    """
    Produces the listing page for a directory.

    Usage:
        lister = DirectoryLister(sort_enabled=True, upload_enabled=False)
        entries = lister.entries(path)
        page = lister.render(segments, entries, sort="size", order="asc")
    """

    def __init__(self, sort_enabled: bool = True, upload_enabled: bool = False):
        self.sort_enabled = sort_enabled
        self.upload_enabled = upload_enabled

    def entries(self, path: Path) -> List[DirEntry]:
        return read_entries(path)

    def render(
        self,
        segments: Sequence[str],
        entries: Sequence[DirEntry],
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> str:
        """
        Sort (when enabled and requested) and render.

        Raises:
            BadRequest: Unknown sort field or order.
        """
        spec = None
        if self.sort_enabled:
            spec = SortSpec.from_query(sort, order)
            if spec is not None:
                entries = sort_entries(entries, spec)
                logger.debug(f"Sorted {len(entries)} entries by {spec.field.value} {spec.order.value}")

        return render_listing(
            segments,
            entries,
            sort_enabled=self.sort_enabled,
            sort_spec=spec,
            upload_enabled=self.upload_enabled,
        )
