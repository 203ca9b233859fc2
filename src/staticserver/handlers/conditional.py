"""
=============================================================================
CONDITIONAL REQUESTS
=============================================================================

Compares the validators a client sends (If-Match, If-Range,
If-Modified-Since) with the file's current ETag and modification time,
and decides what the response should be.

=============================================================================
VALIDATORS
=============================================================================

    ETag           W/"<size hex>-<mtime seconds hex>.<mtime nanos hex>"
                   e.g. W/"3e8-65f1c2a0.1dcd6500"
    Last-Modified  mtime as an HTTP-date (whole seconds)

Both are derived from stat() on every request. The filesystem is the
source of truth, so nothing is cached between requests and two requests
for an unchanged file always see the same validators.

=============================================================================
DECISION ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ 1. Range present + If-Match lists tags, none strongly equal         │
    │        → 416 "Etag not matched"                                     │
    │ 2. cache on + If-Modified-Since present + mtime <= date             │
    │        → 304, no body, ranges and compression skipped               │
    │ 3. Range present + If-Range                                         │
    │        etag:  weakly equal?  → keep range, else drop it (200)       │
    │        date:  mtime <= date? → keep range, else drop it (200)       │
    │ 4. otherwise the Range header stands as sent                        │
    └─────────────────────────────────────────────────────────────────────┘

Failing If-Range is not an error: the client simply gets the whole file,
which is exactly what a resumed download of a changed file needs.

=============================================================================
STRONG VS WEAK COMPARISON (RFC 9110 §8.8.3.2)
=============================================================================

    ┌──────────────┬──────────────┬────────────────┬──────────────────┐
    │ ETag 1       │ ETag 2       │ Strong compare │ Weak compare     │
    ├──────────────┼──────────────┼────────────────┼──────────────────┤
    │ W/"1"        │ W/"1"        │ no match       │ match            │
    │ W/"1"        │ W/"2"        │ no match       │ no match         │
    │ W/"1"        │ "1"          │ no match       │ match            │
    │ "1"          │ "1"          │ match          │ match            │
    └──────────────┴──────────────┴────────────────┴──────────────────┘

Our ETags are weak, so If-Match with a list of tags never succeeds;
only "If-Match: *" passes.

=============================================================================
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from ..errors import RangeNotSatisfiable
from ..http.response import format_http_timestamp, parse_http_date


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityTag:
    """An entity tag: opaque value plus weak flag."""

    tag: str
    weak: bool = False

    @classmethod
    def parse(cls, value: str) -> Optional["EntityTag"]:
        """
        Parse one entity tag.

            >>> EntityTag.parse('W/"abc"')
            EntityTag(tag='abc', weak=True)
            >>> EntityTag.parse('abc') is None
            True
        """
        value = value.strip()
        weak = False
        if value.startswith(("W/", "w/")):
            weak = True
            value = value[2:]
        if len(value) < 2 or value[0] != '"' or value[-1] != '"':
            return None
        inner = value[1:-1]
        if '"' in inner:
            return None
        return cls(inner, weak)

    def strong_eq(self, other: "EntityTag") -> bool:
        return not self.weak and not other.weak and self.tag == other.tag

    def weak_eq(self, other: "EntityTag") -> bool:
        return self.tag == other.tag

    def __str__(self) -> str:
        return f'W/"{self.tag}"' if self.weak else f'"{self.tag}"'


ANY = "*"


def parse_etag_list(value: str) -> Union[str, List[EntityTag]]:
    """
    Parse an If-Match / If-None-Match value.

    Returns:
        ANY for "*", otherwise the list of well-formed tags (malformed
        items are skipped).
    """
    value = value.strip()
    if value == ANY:
        return ANY

    pieces = []
    # Cut at commas outside quotes; a quoted tag may contain a comma
    current = []
    in_quotes = False
    for char in value:
        if char == '"':
            in_quotes = not in_quotes
        if char == "," and not in_quotes:
            pieces.append("".join(current))
            current = []
        else:
            current.append(char)
    pieces.append("".join(current))

    return [tag for tag in (EntityTag.parse(p) for p in pieces) if tag is not None]


@dataclass(frozen=True)
class Validators:
    """
    ETag and Last-Modified of one file, computed from stat().

    Attributes:
        size: st_size
        mtime_ns: st_mtime_ns
    """

    size: int
    mtime_ns: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "Validators":
        return cls(size=st.st_size, mtime_ns=st.st_mtime_ns)

    @property
    def mtime(self) -> float:
        return self.mtime_ns / 1_000_000_000

    @property
    def mtime_seconds(self) -> int:
        """mtime truncated to whole seconds, the resolution of HTTP dates."""
        return self.mtime_ns // 1_000_000_000

    @property
    def etag(self) -> EntityTag:
        seconds, nanos = divmod(self.mtime_ns, 1_000_000_000)
        return EntityTag(f"{self.size:x}-{seconds:x}.{nanos:x}", weak=True)

    @property
    def last_modified(self) -> str:
        return format_http_timestamp(self.mtime_seconds)

    def modified_at_or_before(self, date: datetime) -> bool:
        return self.mtime_seconds <= math.floor(date.timestamp())


@dataclass(frozen=True)
class Decision:
    """
    Outcome of evaluating the conditional headers.

    Attributes:
        not_modified: Answer 304 and stop.
        use_range: The Range header (if any) should be applied.
    """

    not_modified: bool = False
    use_range: bool = True


def check_if_match(value: Optional[str], validators: Validators) -> None:
    """
    Enforce If-Match for a range request.

    Raises:
        RangeNotSatisfiable: Tags listed and none strongly equal.
    """
    if not value:
        return
    tags = parse_etag_list(value)
    if tags == ANY:
        return
    current = validators.etag
    if not any(current.strong_eq(tag) for tag in tags):
        logger.debug(f"If-Match failed: {value} vs {current}")
        raise RangeNotSatisfiable("Etag not matched", length=validators.size)


def is_not_modified(value: Optional[str], validators: Validators) -> bool:
    """True when If-Modified-Since is a valid date not older than mtime."""
    if not value:
        return False
    date = parse_http_date(value)
    if date is None:
        return False
    return validators.modified_at_or_before(date)


def range_still_valid(value: Optional[str], validators: Validators) -> bool:
    """
    Evaluate If-Range.

    Returns:
        True when the range should be honoured: header absent, entity
        tag weakly equal, or date not older than mtime.
    """
    if not value:
        return True

    tag = EntityTag.parse(value)
    if tag is not None:
        return validators.etag.weak_eq(tag)

    date = parse_http_date(value)
    if date is None:
        logger.debug(f"Unparsable If-Range, ignoring range: {value}")
        return False
    return validators.modified_at_or_before(date)


def evaluate(
    validators: Validators,
    *,
    has_range: bool,
    if_match: Optional[str] = None,
    if_range: Optional[str] = None,
    if_modified_since: Optional[str] = None,
    cache_enabled: bool = True,
) -> Decision:
    """
    Decide how to answer a GET for a file.

    Args:
        validators: Current ETag / Last-Modified source.
        has_range: A Range header is present and ranges are enabled.
        if_match, if_range, if_modified_since: Raw header values.
        cache_enabled: Whether If-Modified-Since is honoured.

    Returns:
        Decision.

    Raises:
        RangeNotSatisfiable: If-Match precondition failed on a range
                             request.
    """
    if has_range:
        check_if_match(if_match, validators)

    if cache_enabled and is_not_modified(if_modified_since, validators):
        return Decision(not_modified=True, use_range=False)

    if not has_range:
        return Decision(use_range=False)

    return Decision(use_range=range_still_valid(if_range, validators))
