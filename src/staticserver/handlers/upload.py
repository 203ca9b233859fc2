"""
=============================================================================
FILE UPLOADS (multipart/form-data)
=============================================================================

Receives files POSTed from the listing page's upload form and writes them
into the directory being listed.

=============================================================================
MULTIPART BODY ANATOMY (RFC 7578)
=============================================================================

    Content-Type: multipart/form-data; boundary=XyZ

    --XyZ\r\n                                              ← delimiter
    Content-Disposition: form-data; name="files"; filename="a.txt"\r\n
    Content-Type: text/plain\r\n
    \r\n
    <bytes of a.txt>\r\n
    --XyZ\r\n                                              ← delimiter
    Content-Disposition: form-data; name="files"; filename="b.png"\r\n
    \r\n
    <bytes of b.png>\r\n
    --XyZ--\r\n                                            ← close delimiter

A part's data runs up to the CRLF that precedes the next delimiter, so
file bytes are taken verbatim (no decoding, no newline translation).

=============================================================================
TWO-PHASE WRITE
=============================================================================

    1. decode   every part, validate every file name      (nothing written)
    2. stage    each file into a private temporary directory
    3. copy     each staged file into the target directory
    4. cleanup  the temporary directory, whatever happened

A malformed body or a bad name therefore leaves the target directory
untouched.

=============================================================================
SECURITY: FILE NAMES
=============================================================================

The client chooses the file name. "../../.bashrc" or "/etc/passwd" must
not escape the target directory, so a name is refused (400) when it:

    - is empty, "." or ".."
    - contains "/", "\\" or NUL
    - already exists in the target directory as a symlink

The copy opens the destination with O_NOFOLLOW, so a link planted
between the check and the write fails the copy instead of being
followed out of the root.

Parts without a filename are ordinary form fields and are ignored, as are
file inputs submitted with no file chosen (filename="").

=============================================================================
"""

import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

from ..errors import BadRequest, UploadFailure
from ..http.request import HTTPRequest


logger = logging.getLogger(__name__)

_PARAM_PATTERN = re.compile(
    r';\s*([^=;\s]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*)'
)


@dataclass
class FormPart:
    """One decoded part of a multipart body."""

    headers: Dict[str, str]
    data: bytes
    name: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


@dataclass
class UploadResult:
    """Names written into the target directory, in upload order."""

    directory: Path
    saved: List[str] = field(default_factory=list)


def parse_header_params(value: str) -> Tuple[str, Dict[str, str]]:
    """
    Split a header value into its main token and parameters.

        >>> parse_header_params('form-data; name="files"; filename="a b.txt"')
        ('form-data', {'name': 'files', 'filename': 'a b.txt'})

    Quoted values are unescaped. RFC 5987 "filename*=UTF-8''..." values
    are percent-decoded and stored under "filename".
    """
    main, _, rest = value.partition(";")
    params: Dict[str, str] = {}
    extended: Dict[str, str] = {}

    for match in _PARAM_PATTERN.finditer(";" + rest):
        name, raw = match.group(1).lower(), match.group(2).strip()
        if raw.startswith('"') and raw.endswith('"') and len(raw) >= 2:
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
        if name.endswith("*"):
            _, _, encoded = raw.partition("''")
            extended[name[:-1]] = unquote(encoded or raw, errors="replace")
        else:
            params[name] = raw

    params.update(extended)
    return main.strip().lower(), params


def parse_boundary(content_type: str) -> str:
    """
    Extract the boundary from a multipart/form-data Content-Type.

    Raises:
        BadRequest: Not multipart/form-data, or no boundary.
    """
    media_type, params = parse_header_params(content_type or "")
    if media_type != "multipart/form-data":
        raise BadRequest("The request is not multipart")
    boundary = params.get("boundary")
    if not boundary:
        raise BadRequest("Missing boundary in multipart/form-data")
    return boundary


def _parse_part(raw: bytes) -> FormPart:
    header_end = raw.find(b"\r\n\r\n")
    if header_end == -1:
        # A part with no headers at all starts with the blank line
        if raw.startswith(b"\r\n"):
            header_block, data = b"", raw[2:]
        else:
            raise BadRequest("Malformed multipart part: no header terminator")
    else:
        header_block, data = raw[:header_end], raw[header_end + 4:]

    try:
        header_text = header_block.decode("utf-8")
    except UnicodeDecodeError:
        header_text = header_block.decode("latin-1")

    headers: Dict[str, str] = {}
    for line in header_text.split("\r\n"):
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise BadRequest(f"Malformed multipart header: {line}")
        headers[name.strip().lower()] = value.strip()

    part = FormPart(headers=headers, data=data)
    disposition = headers.get("content-disposition")
    if disposition:
        _, params = parse_header_params(disposition)
        part.name = params.get("name")
        part.filename = params.get("filename")
    return part


def parse_multipart(body: bytes, boundary: str) -> List[FormPart]:
    """
    Decode a complete multipart body into its parts.

    Args:
        body: The raw request body.
        boundary: Boundary from the Content-Type header.

    Returns:
        Every part, in body order.

    Raises:
        BadRequest: No opening delimiter, truncated body, malformed part.
    """
    delimiter = b"--" + boundary.encode("latin-1")
    next_delimiter = b"\r\n" + delimiter

    position = body.find(delimiter)
    if position == -1:
        raise BadRequest("Malformed multipart body: boundary not found")
    position += len(delimiter)

    parts = []
    while True:
        if body.startswith(b"--", position):
            return parts

        # Transport padding may sit between delimiter and CRLF
        line_end = body.find(b"\r\n", position)
        if line_end == -1 or body[position:line_end].strip(b" \t"):
            raise BadRequest("Malformed multipart body: bad delimiter line")
        start = line_end + 2

        end = body.find(next_delimiter, start)
        if end == -1:
            raise BadRequest("Malformed multipart body: missing closing boundary")

        parts.append(_parse_part(body[start:end]))
        position = end + len(next_delimiter)


def validate_filename(filename: str) -> str:
    """
    Return `filename` if it is safe to create inside a directory.

    Raises:
        BadRequest: Empty, "." or "..", or contains a separator or NUL.
    """
    if filename in ("", ".", ".."):
        raise BadRequest(f"Invalid upload file name: {filename!r}")
    if any(char in filename for char in ("/", "\\", "\x00")):
        raise BadRequest(f"Invalid upload file name: {filename!r}")
    return filename


def check_destination(directory: Path, filename: str) -> Path:
    """
    Return `directory / filename` if writing there stays in `directory`.

    Raises:
        BadRequest: The name exists as a symlink (dangling or not).
    """
    destination = directory / filename
    if destination.is_symlink():
        logger.warning(f"Refusing upload onto symlink {destination}")
        raise BadRequest(f"Refusing to overwrite a symbolic link: {filename!r}")
    return destination


def _copy_no_follow(source: Path, destination: Path) -> None:
    # O_NOFOLLOW also covers a link created after check_destination()
    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0)
    fd = os.open(destination, flags, 0o644)
    with open(fd, "wb") as target, open(source, "rb") as staged:
        shutil.copyfileobj(staged, target)


class UploadReceiver:
    """
    Decodes multipart uploads and stores the files.

    Usage:
        receiver = UploadReceiver()
        result = receiver.receive(request, Path("/srv/files/inbox"))
        # result.saved == ["a.txt", "b.png"]
    """

    def __init__(self, temp_dir: Optional[str] = None):
        """
        Args:
            temp_dir: Where staging directories are created. None uses
                      the platform default (tempfile.gettempdir()).
        """
        self.temp_dir = temp_dir

    def receive(self, request: HTTPRequest, directory: Path) -> UploadResult:
        """
        Save every file part of `request` into `directory`.

        Existing regular files with the same name are overwritten. A name
        that exists as a symlink is refused, so an upload never writes
        through a link to somewhere outside `directory`.

        Raises:
            BadRequest: Not multipart, malformed body, bad file name, or
                        the name is an existing symlink.
            UploadFailure: Staging or copying failed.
        """
        boundary = parse_boundary(request.get_header("content-type"))
        parts = parse_multipart(request.body, boundary)

        files = [part for part in parts if part.is_file and part.filename != ""]
        for part in files:
            check_destination(directory, validate_filename(part.filename))

        result = UploadResult(directory=directory)
        if not files:
            logger.debug(f"Upload to {directory} contained no files")
            return result

        try:
            with tempfile.TemporaryDirectory(prefix="staticserver-upload-", dir=self.temp_dir) as staging:
                staged = []
                for index, part in enumerate(files):
                    temp_path = Path(staging) / f"part-{index}"
                    temp_path.write_bytes(part.data)
                    staged.append((temp_path, part.filename))

                for temp_path, filename in staged:
                    try:
                        _copy_no_follow(temp_path, directory / filename)
                    except OSError as e:
                        logger.warning(f"Copy of upload {filename!r} into {directory} failed: {e}")
                        raise UploadFailure(f"Copy file failed: {e.strerror or e}")
                    result.saved.append(filename)
                    logger.info(f"Uploaded {filename} ({temp_path.stat().st_size} bytes) to {directory}")
        except OSError as e:
            logger.warning(f"Staging upload failed: {e}")
            raise UploadFailure(f"Failed to store upload: {e.strerror or e}")

        return result
