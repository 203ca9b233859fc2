"""
Unit tests for request path resolution.
"""

import os
from pathlib import Path

import pytest

from staticserver.errors import BadRequest, NotFound
from staticserver.handlers.paths import (
    PathResolver,
    TargetKind,
    decode_segments,
    encode_link,
)


class TestDecodeSegments:
    """Tests for decode_segments()."""

    def test_empty_segments_dropped(self):
        assert decode_segments("/a//b%20c/") == ("a", "b c")

    def test_root(self):
        assert decode_segments("/") == ()

    def test_encoded_slash_stays_in_segment(self):
        assert decode_segments("/a%2Fb") == ("a/b",)

    def test_utf8(self):
        assert decode_segments("/%E6%97%A5%E6%9C%AC") == ("日本",)

    @pytest.mark.parametrize("raw", ["/a%zz", "/a%2", "/%"])
    def test_malformed_escape(self, raw):
        with pytest.raises(BadRequest):
            decode_segments(raw)

    def test_not_utf8(self):
        with pytest.raises(BadRequest):
            decode_segments("/%FF%FE")


class TestEncodeLink:
    """Tests for encode_link()."""

    def test_root(self):
        assert encode_link([]) == "/"
        assert encode_link([], trailing_slash=True) == "/"

    def test_segments_encoded_individually(self):
        assert encode_link(["My Notes", "a#1.txt"]) == "/My%20Notes/a%231.txt"

    def test_slash_in_name_is_encoded(self):
        assert encode_link(["a/b"]) == "/a%2Fb"

    def test_trailing_slash(self):
        assert encode_link(["docs"], trailing_slash=True) == "/docs/"


class TestPathResolver:
    """Tests for PathResolver.resolve()."""

    def test_root_directory(self, docroot: Path):
        target = PathResolver(docroot).resolve("/")

        assert target.kind is TargetKind.DIRECTORY
        assert target.is_root
        assert target.path == docroot.resolve()

    def test_file(self, docroot: Path):
        target = PathResolver(docroot).resolve("/hello.txt")

        assert target.is_file
        assert target.segments == ("hello.txt",)
        assert target.stat.st_size == 14

    def test_encoded_names(self, docroot: Path):
        target = PathResolver(docroot).resolve("/My%20Notes/a%231.txt")

        assert target.is_file
        assert target.path.name == "a#1.txt"

    def test_directory_without_trailing_slash(self, docroot: Path):
        assert PathResolver(docroot).resolve("/docs").is_dir

    def test_missing(self, docroot: Path):
        with pytest.raises(NotFound):
            PathResolver(docroot).resolve("/nope.txt")

    def test_missing_allowed(self, docroot: Path):
        target = PathResolver(docroot).resolve("/nope.txt", must_exist=False)

        assert target.kind is TargetKind.MISSING
        assert target.stat is None

    @pytest.mark.parametrize("raw", [
        "/../etc/passwd",
        "/docs/../../etc/passwd",
        "/%2e%2e/%2e%2e/etc/passwd",
        "/docs/%2E%2E/hello.txt",
        "/./hello.txt",
        "/..%2Fetc",
        "/a%00b",
    ])
    def test_traversal_refused(self, docroot: Path, raw):
        with pytest.raises(NotFound):
            PathResolver(docroot).resolve(raw)

    def test_symlink_escaping_root_refused(self, docroot: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_text("secret")
        os.symlink(outside / "secret.txt", docroot / "link.txt")

        with pytest.raises(NotFound):
            PathResolver(docroot).resolve("/link.txt")

    def test_symlink_inside_root_allowed(self, docroot: Path):
        os.symlink(docroot / "hello.txt", docroot / "alias.txt")

        target = PathResolver(docroot).resolve("/alias.txt")

        assert target.is_file
        assert target.path == (docroot / "hello.txt").resolve()
        assert target.name_path.name == "alias.txt"

    def test_resolve_segments_checks_like_resolve(self, docroot: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "index.html").write_text("secret")
        os.symlink(outside / "index.html", docroot / "docs" / "index.html")
        resolver = PathResolver(docroot)

        assert resolver.resolve_segments(("docs", "guide.md")).is_file
        with pytest.raises(NotFound):
            resolver.resolve_segments(("docs", "index.html"))
        with pytest.raises(NotFound):
            resolver.resolve_segments(("docs", ".."))

    def test_malformed_escape_is_bad_request(self, docroot: Path):
        with pytest.raises(BadRequest):
            PathResolver(docroot).resolve("/a%zz")
