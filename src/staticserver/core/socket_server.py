"""
=============================================================================
SOCKET SERVER
=============================================================================

Owns the listening socket: bind, listen, accept, and hand each accepted
client to a callback as a Connection. Optionally wraps clients in TLS.

=============================================================================
ACCEPT LOOP
=============================================================================

    socket() ── setsockopt(SO_REUSEADDR) ── bind() ── listen(backlog)
                                                          │
                          ┌───────────────────────────────┘
                          ▼
                 ┌──────────────────┐  timeout (1s)  ┌───────────────────┐
                 │     accept()     │───────────────►│ still running?    │
                 └────────┬─────────┘                └─────────┬─────────┘
                          │ client                             │ yes
                          ▼                                    │
                 [TLS wrap, no handshake yet]  ◄───────────────┘
                          │
                          ▼
                 connection_handler(Connection)   (usually: submit to pool)

The 1 second accept timeout lets shutdown() take effect without closing
the socket out from under accept().

=============================================================================
TLS
=============================================================================

With --cert/--key the server builds one ssl.SSLContext at startup:

    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(cert, key, password)

Clients are wrapped with do_handshake_on_connect=False; the handshake
runs on the worker thread (Connection.handshake) so one slow client
cannot hold up accept().

=============================================================================
SIGNALS
=============================================================================

SIGINT and SIGTERM trigger a graceful shutdown. Python only allows
installing signal handlers from the main thread, so a server started on
any other thread (tests, embedding) skips this step.

=============================================================================
"""

import socket
import ssl
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


def create_ssl_context(
    cert: str,
    key: Optional[str] = None,
    password: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Build a server-side TLS context.

    Args:
        cert: PEM certificate chain (may also hold the key).
        key: PEM private key, if separate from `cert`.
        password: Passphrase of an encrypted key.

    Raises:
        ssl.SSLError / OSError: Unreadable or mismatched files.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(certfile=cert, keyfile=key, password=password)
    return context


class SocketServer:
    """
    Listening socket plus accept loop.

    Usage:
        server = SocketServer(config)
        server.start(lambda conn: pool.submit(handle, args=(conn,)))
        # blocks until shutdown() is called (signal or another thread)
    """

    def __init__(self, config: ServerConfig, ssl_context: Optional[ssl.SSLContext] = None):
        self.config = config
        self.ssl_context = ssl_context
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        Once listening this is the real address, so port 0 resolves to
        the port the OS picked.
        """
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and run the accept loop until shutdown().

        Args:
            connection_handler: Called with every accepted Connection.
                                Must not block for long.

        Raises:
            OSError: The address could not be bound.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self.address
        scheme = "https" if self.ssl_context else "http"
        logger.info(f"Server listening on {scheme}://{host}:{port}")
        self._ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            if self.ssl_context is not None:
                try:
                    client_socket = self.ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.warning(f"TLS setup failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread or a signal handler."""
        logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
