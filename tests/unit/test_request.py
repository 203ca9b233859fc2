"""
Unit tests for HTTP request parsing.
"""

import pytest

from staticserver.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self):
        """Test parsing a simple GET request."""
        raw = (
            b"GET /docs/?sort=size&order=asc HTTP/1.1\r\n"
            b"Host: localhost:8000\r\n"
            b"User-Agent: pytest\r\n"
            b"\r\n"
        )
        request = RequestParser().parse(raw, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/docs/"
        assert request.raw_path == "/docs/"
        assert request.query_string == "sort=size&order=asc"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.host == "localhost:8000"
        assert request.user_agent == "pytest"

    def test_query_params(self):
        """The first value of a query parameter wins."""
        request = parse_request(b"GET /?sort=name&sort=size HTTP/1.1\r\n\r\n")

        assert request.get_query("sort") == "name"
        assert request.get_query("order") is None
        assert request.get_query("order", "desc") == "desc"

    def test_raw_path_kept_encoded(self):
        """The raw path stays percent-encoded; path is decoded for display."""
        request = parse_request(b"GET /My%20Notes/a%231.txt HTTP/1.1\r\n\r\n")

        assert request.raw_path == "/My%20Notes/a%231.txt"
        assert request.path == "/My Notes/a#1.txt"

    def test_double_slash_is_not_a_host(self):
        """A leading "//" is a path, not a network location."""
        request = parse_request(b"GET //a/b HTTP/1.1\r\n\r\n")

        assert request.raw_path == "//a/b"

    def test_absolute_form_target(self):
        """Proxy-style absolute targets are reduced to path and query."""
        request = parse_request(b"GET http://example.com/a.txt?x=1 HTTP/1.1\r\n\r\n")

        assert request.raw_path == "/a.txt"
        assert request.query_string == "x=1"

    def test_target_reconstructs_request_target(self):
        request = parse_request(b"POST /up/?a=1 HTTP/1.1\r\n\r\n")

        assert request.target == "/up/?a=1"

    def test_dot_segments_left_to_path_resolver(self):
        """The parser does not judge ".."; path resolution does."""
        request = parse_request(b"GET /../etc/passwd HTTP/1.1\r\n\r\n")

        assert request.raw_path == "/../etc/passwd"

    def test_parse_post_with_body(self):
        """Exactly Content-Length bytes become the body."""
        body = b"--xyz\r\n\r\n--xyz--\r\n"
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Content-Type: multipart/form-data; boundary=xyz\r\n"
            + f"Content-Length: {len(body)}\r\n".encode()
            + b"\r\n"
        ) + body + b"GET / HTTP/1.1\r\n\r\n"

        request = parse_request(raw)

        assert request.method == "POST"
        assert request.content_type == "multipart/form-data"
        assert request.content_length == len(body)
        assert request.body == body

    def test_parse_invalid_method(self):
        """Test that invalid methods are rejected."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_target_must_start_with_slash(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET docs HTTP/1.1\r\n\r\n")

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_invalid_content_length(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: abc\r\n\r\n")

    def test_incomplete_body(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")

    def test_http_version_keep_alive(self):
        """HTTP/1.0 closes by default, HTTP/1.1 keeps alive."""
        assert parse_request(b"GET / HTTP/1.0\r\n\r\n").is_keep_alive is False
        assert parse_request(
            b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n"
        ).is_keep_alive is True
        assert parse_request(b"GET / HTTP/1.1\r\n\r\n").is_keep_alive is True
        assert parse_request(
            b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n"
        ).is_keep_alive is False

    def test_case_insensitive_headers(self):
        request = parse_request(b"GET / HTTP/1.1\r\nIF-MODIFIED-SINCE: x\r\n\r\n")

        assert request.get_header("If-Modified-Since") == "x"
        assert request.has_header("if-modified-since")

    def test_repeated_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept-Encoding: gzip\r\nAccept-Encoding: br\r\n\r\n"

        assert parse_request(raw).get_header("accept-encoding") == "gzip, br"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_raw_path_defaults_to_path(self):
        request = HTTPRequest(method="GET", path="/a.txt")

        assert request.raw_path == "/a.txt"
        assert request.target == "/a.txt"
