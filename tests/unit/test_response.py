"""
Unit tests for HTTP response building.
"""

import json
from datetime import datetime, timezone

import pytest

from staticserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    HTTPStatus,
    internal_error,
    unauthorized,
    service_unavailable,
    error_response,
    format_http_date,
    format_http_timestamp,
    parse_http_date,
)


class ClosingChunks:
    """An iterable body that records whether it was closed."""

    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert (
            HTTPResponse(status=HTTPStatus.PARTIAL_CONTENT).status_line
            == "HTTP/1.1 206 Partial Content"
        )

    def test_to_bytes_includes_headers(self):
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: staticserver/1.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_not_modified_has_no_content_length(self):
        """304 never carries a body, so no Content-Length is invented."""
        head = HTTPResponse(status=HTTPStatus.NOT_MODIFIED).head_bytes()

        assert b"Content-Length" not in head

    def test_explicit_content_length_kept(self):
        """HEAD responses advertise a length they do not send."""
        response = HTTPResponse(headers={"Content-Length": "1000"})

        assert b"Content-Length: 1000\r\n" in response.head_bytes()
        assert b"Content-Length: 0" not in response.head_bytes()

    def test_header_lookup_is_case_insensitive(self):
        response = HTTPResponse(headers={"Content-Type": "text/plain"})

        assert response.get_header("content-type") == "text/plain"
        assert response.get_header("X-Missing") is None
        assert response.get_header("X-Missing", "d") == "d"

    def test_set_header_replaces_any_case(self):
        response = HTTPResponse(headers={"content-length": "5"})
        response.set_header("Content-Length", "7")

        assert response.headers == {"Content-Length": "7"}

    def test_set_header_chaining(self):
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"

    def test_read_body_drains_and_closes_stream(self):
        chunks = ClosingChunks([b"abc", b"def"])
        response = ResponseBuilder().stream(chunks, 6).build()

        assert response.is_streamed
        assert response.read_body() == b"abcdef"
        assert chunks.closed
        assert not response.is_streamed

    def test_set_body_drops_stream_and_length(self):
        chunks = ClosingChunks([b"abcdef"])
        response = ResponseBuilder().stream(chunks, 6).build()

        response.set_body(b"xy")

        assert chunks.closed
        assert response.stream is None
        assert b"Content-Length: 2\r\n" in response.head_bytes()

    def test_close_stream_without_stream(self):
        HTTPResponse().close_stream()


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        response = ResponseBuilder().status(HTTPStatus.PARTIAL_CONTENT).build()
        assert response.status == HTTPStatus.PARTIAL_CONTENT

    def test_json_body(self):
        data = {"error": "Not Found"}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_html_body(self):
        html = "<html><body>Hello</body></html>"
        response = ResponseBuilder().html(html).build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == html.encode()

    def test_stream_sets_content_length(self):
        response = ResponseBuilder().stream(iter([b"x" * 10]), 10).build()

        assert response.headers["Content-Length"] == "10"
        assert response.body == b""

    def test_redirect(self):
        response = ResponseBuilder().redirect("/uploads/").build()

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "/uploads/"

    def test_redirect_permanent(self):
        response = ResponseBuilder().redirect("/new", permanent=True).build()

        assert response.status == HTTPStatus.MOVED_PERMANENTLY

    def test_cache_headers(self):
        response = ResponseBuilder().cache(max_age=3600).build()
        assert response.headers["Cache-Control"] == "public, max-age=3600"

    def test_close_connection(self):
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_error_response_body(self):
        response = error_response(HTTPStatus.BAD_REQUEST, "Unknown sort field: bogus")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert json.loads(response.body) == {"error": "Unknown sort field: bogus"}

    def test_internal_error_is_generic(self):
        response = internal_error()
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json.loads(response.body) == {"error": "Internal Server Error"}

    def test_unauthorized_challenge(self):
        response = unauthorized(realm="files")

        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == 'Basic realm="files"'

    def test_service_unavailable(self):
        response = service_unavailable()

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.headers["Retry-After"] == "1"
        assert response.headers["Connection"] == "close"


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_MODIFIED.phrase == "Not Modified"
        assert HTTPStatus.RANGE_NOT_SATISFIABLE.phrase == "Range Not Satisfiable"

    def test_server_error_category(self):
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error
        assert HTTPStatus.SERVICE_UNAVAILABLE.is_server_error
        assert not HTTPStatus.NOT_FOUND.is_server_error


class TestHTTPDates:
    """Tests for HTTP date formatting and parsing."""

    def test_format(self):
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"

    def test_format_timestamp(self):
        assert format_http_timestamp(1709288525) == "Fri, 01 Mar 2024 10:22:05 GMT"

    @pytest.mark.parametrize("value", [
        "Sun, 06 Nov 1994 08:49:37 GMT",
        "Sunday, 06-Nov-94 08:49:37 GMT",
        "Sun Nov  6 08:49:37 1994",
    ])
    def test_parse_all_formats(self, value):
        assert parse_http_date(value) == datetime(1994, 11, 6, 8, 49, 37, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "yesterday", "Sun, 99 Foo 1994"])
    def test_parse_invalid(self, value):
        assert parse_http_date(value) is None
