"""
=============================================================================
BYTE RANGES
=============================================================================

Parses a Range header and turns its first range into concrete offsets
against a file of known length L.

=============================================================================
RANGE FORMS (RFC 9110 §14.1.2)
=============================================================================

    Range: bytes=100-199     FromTo(100, 199)   bytes 100..199
    Range: bytes=900-        AllFrom(900)       bytes 900..L-1
    Range: bytes=-500        Last(500)          the final 500 bytes

    ┌──────────────┬─────────────────────────┬─────────────────────────┐
    │ Form         │ Unsatisfiable when      │ Result (offset, length) │
    ├──────────────┼─────────────────────────┼─────────────────────────┤
    │ FromTo(x, y) │ x >= L  or  x > y       │ (x, min(y, L-1) - x + 1)│
    │ AllFrom(x)   │ x >= L                  │ (x, L - x)              │
    │ Last(x)      │ min(x, L) == 0          │ (L - min(x,L), min(x,L))│
    └──────────────┴─────────────────────────┴─────────────────────────┘

Only the FIRST range of a multi-range request is served:

    Range: bytes=0-10,20-30   →  206 for bytes 0-10, "20-30" ignored

That keeps every 206 a single-part response; no multipart/byteranges.

=============================================================================
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from ..errors import RangeNotSatisfiable


logger = logging.getLogger(__name__)

_RANGE_SPEC = re.compile(r"^(\d*)-(\d*)$")


@dataclass(frozen=True)
class FromTo:
    start: int
    end: int


@dataclass(frozen=True)
class AllFrom:
    start: int


@dataclass(frozen=True)
class Last:
    count: int


RangeSpec = Union[FromTo, AllFrom, Last]


@dataclass(frozen=True)
class ByteRange:
    """
    A satisfiable range, normalised against the full length.

    Attributes:
        offset: First byte, 0-based.
        length: Number of bytes, always >= 1.
        total: Length of the whole resource.
    """

    offset: int
    length: int
    total: int

    @property
    def last(self) -> int:
        """Index of the final byte (inclusive)."""
        return self.offset + self.length - 1

    @property
    def content_range(self) -> str:
        """
        Value for the Content-Range header.

            >>> ByteRange(900, 100, 1000).content_range
            'bytes 900-999/1000'
        """
        return f"bytes {self.offset}-{self.last}/{self.total}"


def parse_range_header(value: str) -> List[RangeSpec]:
    """
    Parse a Range header value into its range specs, in order.

    Args:
        value: e.g. "bytes=0-99, -20"

    Returns:
        List of FromTo / AllFrom / Last.

    Raises:
        RangeNotSatisfiable: Unit other than "bytes", no ranges at all,
                             or a spec that is not a byte range.
    """
    unit, sep, ranges = value.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise RangeNotSatisfiable("Invalid range type")

    specs: List[RangeSpec] = []
    for item in ranges.split(","):
        item = item.strip()
        if not item:
            continue

        match = _RANGE_SPEC.match(item)
        if not match:
            raise RangeNotSatisfiable(f"Invalid range: {item}")

        start, end = match.groups()
        if start and end:
            specs.append(FromTo(int(start), int(end)))
        elif start:
            specs.append(AllFrom(int(start)))
        elif end:
            specs.append(Last(int(end)))
        else:
            raise RangeNotSatisfiable(f"Invalid range: {item}")

    if not specs:
        raise RangeNotSatisfiable("Empty range set")
    return specs


def resolve_range(spec: RangeSpec, total: int) -> ByteRange:
    """
    Normalise one range spec against a resource of `total` bytes.

    Raises:
        RangeNotSatisfiable: See the table in the module docstring.
    """
    if isinstance(spec, FromTo):
        x, y = spec.start, spec.end
        if x >= total or x > y:
            raise RangeNotSatisfiable(f"Invalid range(x={x}, y={y})", length=total)
        y = min(y, total - 1)
        return ByteRange(offset=x, length=y - x + 1, total=total)

    if isinstance(spec, AllFrom):
        x = spec.start
        if x >= total:
            raise RangeNotSatisfiable(
                f"Range start {x} is beyond the end of the file ({total} bytes)",
                length=total,
            )
        return ByteRange(offset=x, length=total - x, total=total)

    count = min(spec.count, total)
    if count == 0:
        raise RangeNotSatisfiable("Suffix range selects no bytes", length=total)
    return ByteRange(offset=total - count, length=count, total=total)


def calculate_range(header: Optional[str], total: int) -> Optional[ByteRange]:
    """
    Compute the byte range to serve for a Range header.

    Args:
        header: Raw Range header value, or None/"" when absent.
        total: Length of the file.

    Returns:
        ByteRange for the first range, or None when there is no header.

    Raises:
        RangeNotSatisfiable: Header present but unusable.
    """
    if not header:
        return None

    try:
        specs = parse_range_header(header)
        if len(specs) > 1:
            logger.debug(f"Multi-range request, serving first of {len(specs)}: {header}")
        return resolve_range(specs[0], total)
    except RangeNotSatisfiable as e:
        e.length = total
        raise
