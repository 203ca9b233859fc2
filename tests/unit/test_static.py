"""
Unit tests for StaticFileHandler.
"""

import gzip
import json
import os
from pathlib import Path

import pytest

from staticserver.config import ServerConfig
from staticserver.handlers.static import FileStream, StaticFileHandler
from staticserver.http.mime_types import get_content_type
from staticserver.http.status_codes import HTTPStatus


LAST_MODIFIED = "Fri, 01 Mar 2024 10:22:05 GMT"
MULTIPART = "multipart/form-data; boundary=XyZ"


def handler_for(docroot: Path, **options) -> StaticFileHandler:
    return StaticFileHandler(ServerConfig(root=str(docroot), **options))


def error_of(response) -> str:
    return json.loads(response.body)["error"]


class TestFileStream:
    """Tests for FileStream."""

    def test_reads_window_in_chunks(self, tmp_path: Path):
        path = tmp_path / "f"
        path.write_bytes(b"0123456789")

        stream = FileStream(open(path, "rb"), offset=2, length=5, chunk_size=2)
        try:
            assert list(stream) == [b"23", b"45", b"6"]
        finally:
            stream.close()

    def test_short_file_stops_early(self, tmp_path: Path):
        path = tmp_path / "f"
        path.write_bytes(b"abc")

        stream = FileStream(open(path, "rb"), offset=0, length=10)
        try:
            assert b"".join(stream) == b"abc"
        finally:
            stream.close()


class TestServeFile:
    """GET/HEAD on regular files."""

    def test_get_streams_file(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/data.bin"))

        assert response.status == HTTPStatus.OK
        assert response.is_streamed
        assert response.get_header("Content-Length") == "1000"
        assert response.get_header("Content-Type") == "application/octet-stream"
        assert response.get_header("Accept-Ranges") == "bytes"
        assert response.get_header("Last-Modified") == LAST_MODIFIED
        assert response.read_body() == (docroot / "data.bin").read_bytes()

    def test_etag_is_stable(self, docroot: Path, make_request):
        handler = handler_for(docroot)

        first = handler.handle(make_request("GET", "/hello.txt"))
        second = handler.handle(make_request("GET", "/hello.txt"))
        first.close_stream()
        second.close_stream()

        assert first.get_header("ETag").startswith('W/"')
        assert first.get_header("ETag") == second.get_header("ETag")

    def test_percent_encoded_path(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/My%20Notes/a%231.txt"))

        assert response.read_body() == b"note"

    def test_head_has_headers_only(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("HEAD", "/hello.txt"))

        assert response.status == HTTPStatus.OK
        assert response.get_header("Content-Length") == "14"
        assert response.get_header("Content-Type").startswith("text/plain")
        assert not response.is_streamed
        assert response.body == b""

    def test_content_type_follows_link_name(self, docroot: Path, make_request):
        os.symlink(docroot / "hello.txt", docroot / "readme.md")

        response = handler_for(docroot).handle(make_request("GET", "/readme.md"))

        assert response.get_header("Content-Type") == get_content_type(Path("readme.md"))
        assert response.read_body() == b"Hello, World!\n"

    def test_not_modified(self, docroot: Path, make_request):
        request = make_request("GET", "/hello.txt", headers={"If-Modified-Since": LAST_MODIFIED})

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.get_header("Content-Type") is None
        assert response.get_header("ETag") is not None
        assert not response.is_streamed
        assert response.body == b""
        assert b"Content-Length" not in response.head_bytes()

    def test_cache_disabled(self, docroot: Path, make_request):
        request = make_request("GET", "/hello.txt", headers={"If-Modified-Since": LAST_MODIFIED})

        response = handler_for(docroot, cache=False).handle(request)
        response.close_stream()

        assert response.status == HTTPStatus.OK
        assert response.get_header("ETag") is None
        assert response.get_header("Last-Modified") is None
        assert response.get_header("Cache-Control") is None


class TestRanges:
    """Range requests through the handler."""

    def test_partial_content(self, docroot: Path, make_request):
        request = make_request("GET", "/data.bin", headers={"Range": "bytes=900-"})

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.PARTIAL_CONTENT
        assert response.get_header("Content-Range") == "bytes 900-999/1000"
        assert response.get_header("Content-Length") == "100"
        assert response.read_body() == (docroot / "data.bin").read_bytes()[900:]

    def test_unsatisfiable(self, docroot: Path, make_request):
        request = make_request("GET", "/data.bin", headers={"Range": "bytes=5000-"})

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.RANGE_NOT_SATISFIABLE
        assert response.get_header("Content-Range") == "bytes */1000"
        assert "error" in json.loads(response.body)

    def test_if_match_failure(self, docroot: Path, make_request):
        request = make_request(
            "GET", "/data.bin", headers={"Range": "bytes=0-9", "If-Match": '"nope"'}
        )

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.RANGE_NOT_SATISFIABLE
        assert error_of(response) == "Etag not matched"

    def test_stale_if_range_sends_full_body(self, docroot: Path, make_request):
        request = make_request(
            "GET", "/data.bin", headers={"Range": "bytes=0-9", "If-Range": 'W/"stale"'}
        )

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.OK
        assert len(response.read_body()) == 1000

    def test_range_disabled(self, docroot: Path, make_request):
        request = make_request("GET", "/data.bin", headers={"Range": "bytes=0-9"})

        response = handler_for(docroot, range=False).handle(request)

        assert response.status == HTTPStatus.OK
        assert response.get_header("Accept-Ranges") is None
        assert len(response.read_body()) == 1000

    def test_head_ignores_range(self, docroot: Path, make_request):
        request = make_request("HEAD", "/data.bin", headers={"Range": "bytes=0-9"})

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.OK
        assert response.get_header("Content-Length") == "1000"


class TestCompression:
    """Compression of files and listings."""

    def test_matching_suffix_compressed(self, docroot: Path, make_request):
        request = make_request("GET", "/app.js", headers={"Accept-Encoding": "gzip"})

        response = handler_for(docroot, compress=(".js",)).handle(request)

        assert response.status == HTTPStatus.OK
        assert response.get_header("Content-Encoding") == "gzip"
        assert response.get_header("Vary") == "Accept-Encoding"
        assert gzip.decompress(response.body) == (docroot / "app.js").read_bytes()

    def test_other_suffix_not_compressed(self, docroot: Path, make_request):
        request = make_request("GET", "/hello.txt", headers={"Accept-Encoding": "gzip"})

        response = handler_for(docroot, compress=(".js",)).handle(request)

        assert response.get_header("Content-Encoding") is None
        assert response.read_body() == b"Hello, World!\n"

    def test_range_not_compressed(self, docroot: Path, make_request):
        request = make_request(
            "GET", "/app.js", headers={"Accept-Encoding": "gzip", "Range": "bytes=0-6"}
        )

        response = handler_for(docroot, compress=(".js",)).handle(request)

        assert response.status == HTTPStatus.PARTIAL_CONTENT
        assert response.get_header("Content-Encoding") is None
        assert response.read_body() == b"console"

    def test_listing_compressed(self, docroot: Path, make_request):
        request = make_request("GET", "/", headers={"Accept-Encoding": "deflate"})

        response = handler_for(docroot, compress=(".js",)).handle(request)

        assert response.get_header("Content-Encoding") == "deflate"

    def test_head_carries_get_encoding(self, docroot: Path, make_request):
        handler = handler_for(docroot, compress=(".js",))
        headers = {"Accept-Encoding": "gzip"}

        get = handler.handle(make_request("GET", "/app.js", headers=headers))
        head = handler.handle(make_request("HEAD", "/app.js", headers=headers))

        assert head.status == HTTPStatus.OK
        assert head.get_header("Content-Encoding") == "gzip"
        assert head.get_header("Vary") == "Accept-Encoding"
        assert head.get_header("Content-Length") == str(len(get.body))
        assert head.body == b""
        assert not head.is_streamed

    def test_head_listing_carries_get_encoding(self, docroot: Path, make_request):
        handler = handler_for(docroot, compress=(".js",))
        headers = {"Accept-Encoding": "deflate"}

        get = handler.handle(make_request("GET", "/docs/", headers=headers))
        head = handler.handle(make_request("HEAD", "/docs/", headers=headers))

        assert head.get_header("Content-Encoding") == "deflate"
        assert head.get_header("Content-Length") == str(len(get.body))
        assert head.body == b""

    def test_link_name_decides_compression(self, docroot: Path, make_request):
        os.symlink(docroot / "hello.txt", docroot / "hello.js")
        os.symlink(docroot / "app.js", docroot / "app.txt")
        handler = handler_for(docroot, compress=(".js",))
        headers = {"Accept-Encoding": "gzip"}

        via_js = handler.handle(make_request("GET", "/hello.js", headers=headers))
        via_txt = handler.handle(make_request("GET", "/app.txt", headers=headers))

        assert via_js.get_header("Content-Encoding") == "gzip"
        assert gzip.decompress(via_js.body) == b"Hello, World!\n"
        assert via_txt.get_header("Content-Encoding") is None
        assert via_txt.read_body() == (docroot / "app.js").read_bytes()

    def test_listing_not_compressed_when_disabled(self, docroot: Path, make_request):
        request = make_request("GET", "/", headers={"Accept-Encoding": "gzip"})

        response = handler_for(docroot).handle(request)

        assert response.get_header("Content-Encoding") is None


class TestDirectories:
    """Listings and index files."""

    def test_listing(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/"))

        page = response.body.decode("utf-8")
        assert response.status == HTTPStatus.OK
        assert response.get_header("Content-Type").startswith("text/html")
        assert 'href="/hello.txt"' in page
        assert 'href="/My%20Notes/"' in page

    def test_nested_listing(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/My%20Notes/"))

        assert 'href="/My%20Notes/a%231.txt"' in response.body.decode("utf-8")

    def test_head_listing(self, docroot: Path, make_request):
        get = handler_for(docroot).handle(make_request("GET", "/docs/"))
        head = handler_for(docroot).handle(make_request("HEAD", "/docs/"))

        assert head.body == b""
        assert head.get_header("Content-Length") == str(len(get.body))

    def test_unknown_sort_field(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/?sort=bogus"))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.get_header("Content-Type").startswith("application/json")
        assert error_of(response) == "Unknown sort field: bogus"

    def test_sort_disabled_ignores_query(self, docroot: Path, make_request):
        response = handler_for(docroot, sort=False).handle(make_request("GET", "/?sort=bogus"))

        assert response.status == HTTPStatus.OK

    def test_index_served_when_enabled(self, docroot: Path, make_request):
        (docroot / "docs" / "index.htm").write_text("htm")
        (docroot / "docs" / "index.html").write_text("<h1>docs</h1>")

        response = handler_for(docroot, index=True).handle(make_request("GET", "/docs/"))

        assert response.get_header("Content-Type").startswith("text/html")
        assert response.read_body() == b"<h1>docs</h1>"

    def test_index_escaping_root_is_listed_instead(self, docroot: Path, make_request, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.html").write_text("<h1>secret</h1>")
        os.symlink(outside / "secret.html", docroot / "docs" / "index.html")
        handler = handler_for(docroot, index=True)

        listing = handler.handle(make_request("GET", "/docs/"))
        direct = handler.handle(make_request("GET", "/docs/index.html"))

        assert listing.status == HTTPStatus.OK
        assert b"Index of /docs" in listing.body
        assert b"secret" not in listing.body
        assert direct.status == HTTPStatus.NOT_FOUND

    def test_dangling_index_is_listed_instead(self, docroot: Path, make_request):
        os.symlink(docroot / "docs" / "gone.html", docroot / "docs" / "index.html")

        response = handler_for(docroot, index=True).handle(make_request("GET", "/docs/"))

        assert response.status == HTTPStatus.OK
        assert b"Index of /docs" in response.body

    def test_index_symlink_inside_root_served(self, docroot: Path, make_request):
        (docroot / "home.html").write_text("<h1>home</h1>")
        os.symlink(docroot / "home.html", docroot / "docs" / "index.html")

        response = handler_for(docroot, index=True).handle(make_request("GET", "/docs/"))

        assert response.read_body() == b"<h1>home</h1>"

    def test_index_ignored_when_disabled(self, docroot: Path, make_request):
        (docroot / "docs" / "index.html").write_text("<h1>docs</h1>")

        response = handler_for(docroot).handle(make_request("GET", "/docs/"))

        assert b"Index of /docs" in response.body


class TestErrors:
    """Paths that never reach a file."""

    @pytest.mark.parametrize("target", [
        "/missing.txt",
        "/../etc/passwd",
        "/docs/../../etc/passwd",
        "/%2e%2e/etc/passwd",
        "/docs%2f..%2f..%2fetc",
    ])
    def test_not_found(self, docroot: Path, make_request, target):
        response = handler_for(docroot).handle(make_request("GET", target))

        assert response.status == HTTPStatus.NOT_FOUND
        assert error_of(response) == "Not Found"

    def test_bad_percent_encoding(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("GET", "/%ff%fe"))

        assert response.status == HTTPStatus.BAD_REQUEST

    def test_head_error_has_no_body(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("HEAD", "/missing.txt"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b""
        assert int(response.get_header("Content-Length")) > 0

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(ValueError):
            handler_for(tmp_path / "nope")


class TestOtherMethods:
    """Uploads and methods without a representation."""

    def _upload_body(self, filename: str, data: bytes) -> bytes:
        return (
            b"--XyZ\r\n"
            + f'Content-Disposition: form-data; name="files"; filename="{filename}"\r\n'.encode()
            + b"\r\n"
            + data
            + b"\r\n--XyZ--\r\n"
        )

    def test_upload_redirects_back(self, docroot: Path, make_request):
        request = make_request(
            "POST",
            "/docs/?sort=name",
            headers={"Content-Type": MULTIPART},
            body=self._upload_body("new.txt", b"fresh"),
        )

        response = handler_for(docroot, upload=True).handle(request)

        assert response.status == HTTPStatus.FOUND
        assert response.get_header("Location") == "/docs/?sort=name"
        assert (docroot / "docs" / "new.txt").read_bytes() == b"fresh"

    def test_upload_not_multipart(self, docroot: Path, make_request):
        request = make_request(
            "POST", "/docs/", headers={"Content-Type": "text/plain"}, body=b"hello"
        )

        response = handler_for(docroot, upload=True).handle(request)

        assert response.status == HTTPStatus.BAD_REQUEST
        assert error_of(response) == "The request is not multipart"

    def test_upload_onto_symlink_refused(self, docroot: Path, make_request, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        victim = outside / "victim.txt"
        victim.write_bytes(b"original")
        os.symlink(victim, docroot / "docs" / "victim.txt")
        request = make_request(
            "POST",
            "/docs/",
            headers={"Content-Type": MULTIPART},
            body=self._upload_body("victim.txt", b"overwritten"),
        )

        response = handler_for(docroot, upload=True).handle(request)

        assert response.status == HTTPStatus.BAD_REQUEST
        assert victim.read_bytes() == b"original"

    def test_upload_disabled_lists_directory(self, docroot: Path, make_request):
        request = make_request(
            "POST",
            "/docs/",
            headers={"Content-Type": MULTIPART},
            body=self._upload_body("new.txt", b"fresh"),
        )

        response = handler_for(docroot).handle(request)

        assert response.status == HTTPStatus.OK
        assert b"Index of /docs" in response.body
        assert not (docroot / "docs" / "new.txt").exists()

    def test_post_to_file_serves_it(self, docroot: Path, make_request):
        response = handler_for(docroot, upload=True).handle(make_request("POST", "/hello.txt"))

        assert response.read_body() == b"Hello, World!\n"

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "OPTIONS"])
    def test_other_methods_empty_ok(self, docroot: Path, make_request, method):
        response = handler_for(docroot).handle(make_request(method, "/hello.txt"))

        assert response.status == HTTPStatus.OK
        assert response.body == b""
        assert not response.is_streamed

    def test_other_method_on_missing_path(self, docroot: Path, make_request):
        response = handler_for(docroot).handle(make_request("PUT", "/missing"))

        assert response.status == HTTPStatus.NOT_FOUND
