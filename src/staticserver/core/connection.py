"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket: buffered request reading, response
writing (buffered or streamed), keep-alive bookkeeping and a graceful
close.

=============================================================================
TCP IS A STREAM
=============================================================================

recv() returns whatever bytes have arrived, not whole requests:

    recv #1:  "GET /a.txt HTTP/1.1\r\nHost: x\r\n"
    recv #2:  "\r\nGET /b.txt HTTP/1.1\r\n\r\n"       ← end of #1 + all of #2

So reading is two phases, with leftovers kept for the next request on a
keep-alive connection:

    1. read until "\r\n\r\n"          (headers complete)
    2. read Content-Length more bytes (body complete)

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──┬──► KEEP_ALIVE ──► READING
                                                 │
                                                 └──► CLOSING ──► CLOSED

The first request gets `timeout` seconds to arrive; later requests on a
kept-alive connection get `keep_alive_timeout`, and running out of it is
a normal end of the connection, not an error.

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..http.request import HTTPParseError
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

# Headers larger than this are refused before any body is read
MAX_HEADER_SIZE = 64 * 1024


class ConnectionState(Enum):
    NEW = "new"                # Just accepted
    READING = "reading"        # Reading request data
    PROCESSING = "processing"  # Handler is executing
    WRITING = "writing"        # Sending response data
    KEEP_ALIVE = "keep_alive"  # Waiting for the next request
    CLOSING = "closing"        # Shutdown sequence
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    One client connection.

    Usage:
        with Connection(sock, addr, timeout=30.0) as conn:
            raw = conn.read_request()
            if raw is not None:
                conn.send_response(response, "staticserver/1.0")
    """

    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 256 * 1024 * 1024

    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    def handshake(self) -> bool:
        """
        Complete the TLS handshake on a TLS socket; no-op otherwise.

        Done on the worker thread so a slow client cannot stall accept().

        Returns:
            False if the handshake failed and the connection is unusable.
        """
        if not isinstance(self.socket, ssl.SSLSocket):
            return True
        try:
            self.socket.do_handshake()
            return True
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake failed: {e}")
            return False

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request (headers and body).

        Returns:
            Raw request bytes, or None when the client closed the
            connection or a keep-alive wait ran out.

        Raises:
            HTTPParseError: 431 headers too large, 413 body too large,
                            400 bad Content-Length.
            TimeoutError: The first request did not arrive in time.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while True:
                header_end = self._buffer.find(b"\r\n\r\n")
                if header_end != -1:
                    break
                if len(self._buffer) > MAX_HEADER_SIZE:
                    raise HTTPParseError(
                        "Request header fields too large",
                        HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                    )
                chunk = self._recv()
                if not chunk:
                    if self._buffer.strip():
                        logger.debug(f"[{self.id}] Client closed mid-headers")
                    return None
                self._buffer += chunk

            if header_end > MAX_HEADER_SIZE:
                raise HTTPParseError(
                    "Request header fields too large",
                    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
                )

            body_start = header_end + 4
            header_section = bytes(self._buffer[:header_end])
            content_length = self._parse_content_length(header_section)
            if body_start + content_length > self.max_request_size:
                raise HTTPParseError(
                    f"Request too large: {content_length} bytes",
                    HTTPStatus.PAYLOAD_TOO_LARGE,
                )

            # Body reads get the full timeout even on a kept-alive connection
            self.socket.settimeout(self.timeout)
            if (
                len(self._buffer) - body_start < content_length
                and self._header_value(header_section, "expect").lower() == "100-continue"
            ):
                self.send_bytes(b"HTTP/1.1 100 Continue\r\n\r\n")
            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    logger.debug(f"[{self.id}] Client closed mid-body")
                    return None
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = bytes(self._buffer[:request_end])
            del self._buffer[:request_end]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _header_value(headers: bytes, wanted: str) -> str:
        for line in headers.decode("latin-1").split("\r\n")[1:]:
            name, sep, value = line.partition(":")
            if sep and name.strip().lower() == wanted:
                return value.strip()
        return ""

    @classmethod
    def _parse_content_length(cls, headers: bytes) -> int:
        value = cls._header_value(headers, "content-length")
        if not value:
            return 0
        if not value.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {value}")
        return int(value)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_bytes(self, data: bytes) -> bool:
        """
        Send raw bytes.

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_response(
        self,
        response: HTTPResponse,
        server_name: str = "staticserver/1.0",
        include_body: bool = True,
    ) -> bool:
        """
        Send a response, streaming its body when it has a stream.

        The stream is closed whether or not sending succeeds.

        Args:
            response: Response to send.
            server_name: Value of the Server header.
            include_body: False for HEAD, where only headers go out.

        Returns:
            True if the whole response was sent.
        """
        try:
            head = response.head_bytes(server_name)
            if not include_body or response.status in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED):
                return self.send_bytes(head)

            if not response.is_streamed:
                return self.send_bytes(head + response.body)

            if not self.send_bytes(head):
                return False
            expected = int(response.get_header("Content-Length", "0"))
            sent = 0
            for chunk in response.stream:
                if not self.send_bytes(chunk):
                    return False
                sent += len(chunk)
            if sent != expected:
                # The peer is waiting for bytes that will never come
                logger.warning(f"[{self.id}] Short body: sent {sent} of {expected} bytes")
                return False
            return True
        finally:
            response.close_stream()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: shut down writes, drain briefly, then close.

        Draining keeps the kernel from answering unread client data with
        RST, which could discard a response the client has not read yet.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
