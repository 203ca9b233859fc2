"""
=============================================================================
STATIC FILE SERVER
=============================================================================

Ties the layers together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer.accept() ──► ThreadPool.submit() ── full? ──► 503    │
    │                                   │                                  │
    │                                   ▼ worker thread                    │
    │   ┌──────────────────────── keep-alive loop ───────────────────┐    │
    │   │  Connection.read_request()                                 │    │
    │   │  RequestParser.parse()              ── HTTPParseError → 4xx │    │
    │   │  LoggingMiddleware                                         │    │
    │   │    └─ BasicAuthMiddleware (with --auth) ── 401             │    │
    │   │         └─ StaticFileHandler         ── ServeError → JSON  │    │
    │   │  Connection.send_response()  (head, then file chunks)      │    │
    │   │  keep alive? ── loop, else close                           │    │
    │   └────────────────────────────────────────────────────────────┘    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
KEEP-ALIVE
=============================================================================

A connection stays open while all of these hold:

    - keep-alive is enabled in the configuration
    - the client did not send "Connection: close" (HTTP/1.0: sent keep-alive)
    - the handler did not mark the response "Connection: close"
    - fewer than keep_alive_max requests have been served on it

=============================================================================
ERROR BOUNDARIES
=============================================================================

    ServeError          handler → JSON error with its status
    HTTPParseError      here → 400/413/431 and close
    TimeoutError        here → 408 and close
    anything else       here → logged with traceback, generic 500

=============================================================================
"""

import dataclasses
import logging
from typing import Optional, Callable

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool, create_ssl_context
from .core.connection import ConnectionState
from .handlers import StaticFileHandler
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, ResponseBuilder, HTTPStatus,
)
from .http.response import internal_error, service_unavailable
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware, BasicAuthMiddleware


logger = logging.getLogger(__name__)


def setup_logging(level_name: str) -> None:
    """Configure root logging for the command line server."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("staticserver").setLevel(level)


class HTTPServer:
    """
    Serves one directory tree over HTTP(S).

    Usage:
        server = HTTPServer(ServerConfig(root="/srv/files", upload=True))
        server.run()      # blocks until SIGINT/SIGTERM or shutdown()

    Extra middleware can be added before run(); it sits between access
    logging/authentication and the file handler:

        server.use(MyMiddleware())
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        ssl_context = None
        if self.config.tls_enabled:
            ssl_context = create_ssl_context(
                self.config.tls_cert,
                self.config.tls_key,
                self.config.tls_password,
            )

        self._socket_server = SocketServer(self.config, ssl_context=ssl_context)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_threads,
            max_workers=self.config.threads,
            max_queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._files = StaticFileHandler(self.config)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware())
        credentials = self.config.auth_credentials
        if credentials is not None:
            self._middleware.add(BasicAuthMiddleware(credentials, realm=self.config.auth_realm))

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware inside the built-in ones. Returns self."""
        self._middleware.add(middleware)
        return self

    @property
    def address(self):
        """(host, port) actually bound; valid once running."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Run one parsed request through the middleware and the handler."""
        if self._handler is None:
            self._handler = self._middleware.wrap(self._files)
        return self._handler(request)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start serving and block until shutdown.

        Args:
            host: Override config.host.
            port: Override config.port (0 picks a free port).
        """
        overrides = {}
        if host is not None:
            overrides["host"] = host
        if port is not None:
            overrides["port"] = port
        if overrides:
            self.config = dataclasses.replace(self.config, **overrides)
            self._socket_server.config = self.config

        setup_logging(self.config.log_level)

        self._running = True
        self._handler = self._middleware.wrap(self._files)
        self._thread_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self):
        """Ask a running server to stop. Safe from any thread."""
        self._socket_server.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        logger.debug(f"Thread pool at shutdown: {self._thread_pool.stats}")
        self._thread_pool.shutdown(wait=True, timeout=self.config.timeout)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread for every new connection."""
        if not self._thread_pool.submit(self._process_connection, args=(conn,)):
            logger.warning(f"[{conn.id}] Thread pool full, rejecting {conn.client_ip}")
            conn.send_response(service_unavailable(), self.config.server_name)
            conn.close()

    def _process_connection(self, conn: Connection):
        """The keep-alive loop for one connection, run on a worker."""
        with conn:
            if not conn.handshake():
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.debug(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                        self._send_error(conn, e.status_code, str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error: {e}")
                        response = internal_error()

                    keep_alive = self._should_keep_alive(conn, request, response)
                    if keep_alive:
                        response.set_header("Connection", "keep-alive")
                        response.set_header(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}, "
                            f"max={self.config.keep_alive_max - conn.requests_handled}",
                        )
                    else:
                        response.set_header("Connection", "close")

                    sent = conn.send_response(
                        response,
                        self.config.server_name,
                        include_body=request.method != "HEAD",
                    )
                    if not sent or not keep_alive:
                        break

                    conn.set_keep_alive()

                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _should_keep_alive(
        self,
        conn: Connection,
        request: HTTPRequest,
        response: HTTPResponse,
    ) -> bool:
        if not self.config.keep_alive or not request.is_keep_alive:
            return False
        if (response.get_header("Connection") or "").lower() == "close":
            return False
        return conn.requests_handled < self.config.keep_alive_max

    def _send_error(self, conn: Connection, status: int, message: str):
        response = (ResponseBuilder()
            .status(HTTPStatus(status))
            .json({"error": message})
            .close_connection()
            .build())
        conn.send_response(response, self.config.server_name)


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """Factory used by tests and embedding code."""
    return HTTPServer(config)
