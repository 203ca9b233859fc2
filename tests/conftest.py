"""
pytest configuration and fixtures.
"""

import os
import socket
import threading
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from staticserver import HTTPServer, ServerConfig
from staticserver.http import HTTPRequest


# A fixed mtime (2024-03-01 10:22:05 UTC) so validators are predictable
FIXED_MTIME = 1709288525


@pytest.fixture
def docroot(tmp_path: Path) -> Path:
    """
    A small document root:

        hello.txt        "Hello, World!\\n"
        data.bin         1000 bytes, byte i == i % 256
        app.js           repetitive JavaScript (compresses well)
        docs/            directory
        docs/guide.md
        My Notes/        name with a space
        My Notes/a#1.txt
    """
    (tmp_path / "hello.txt").write_bytes(b"Hello, World!\n")
    (tmp_path / "data.bin").write_bytes(bytes(i % 256 for i in range(1000)))
    (tmp_path / "app.js").write_text("console.log('static');\n" * 200)
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "guide.md").write_text("# Guide\n")
    (tmp_path / "My Notes").mkdir()
    (tmp_path / "My Notes" / "a#1.txt").write_text("note")

    for path in tmp_path.rglob("*"):
        os.utime(path, (FIXED_MTIME, FIXED_MTIME))
    return tmp_path


@pytest.fixture
def make_request():
    """Build an HTTPRequest the way the parser would."""

    def _make(
        method: str = "GET",
        target: str = "/",
        headers: dict | None = None,
        body: bytes = b"",
    ) -> HTTPRequest:
        from staticserver.http.request import parse_request

        lines = [f"{method} {target} HTTP/1.1", "Host: test"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body:
            lines.append(f"Content-Length: {len(body)}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body
        return parse_request(raw, ("127.0.0.1", 50000))

    return _make


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Runs an HTTPServer on a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def start_server(docroot: Path, free_port: int):
    """Factory: start a server over `docroot` with extra config options."""
    servers = []

    def _start(**options) -> TestServer:
        config = ServerConfig(
            root=str(docroot),
            host="127.0.0.1",
            port=free_port,
            threads=4,
            timeout=5.0,
            keep_alive_timeout=1.0,
            log_level="WARNING",
            **options,
        )
        test_srv = TestServer(HTTPServer(config))
        test_srv.start()
        servers.append(test_srv)
        return test_srv

    yield _start

    for test_srv in servers:
        test_srv.stop()


@pytest.fixture
def test_server(start_server) -> Generator[TestServer, None, None]:
    """A running server with default options."""
    yield start_server()
