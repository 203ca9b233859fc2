"""
=============================================================================
CORE NETWORKING
=============================================================================

The transport layer underneath the file handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer    bind, listen, accept (optionally TLS-wrapped)      │
    └───────────────────────────────┬─────────────────────────────────────┘
                                    │ Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  ThreadPool      bounded queue + worker threads; full queue → 503   │
    └───────────────────────────────┬─────────────────────────────────────┘
                                    │ worker runs the keep-alive loop
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  Connection      read one request at a time, send buffered or       │
    │                  streamed responses, close gracefully               │
    └─────────────────────────────────────────────────────────────────────┘

Each component has one job, so each can be tested on its own.

=============================================================================
"""

from .socket_server import SocketServer, create_ssl_context
from .thread_pool import ThreadPool
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",
    "create_ssl_context",
    "ThreadPool",
    "Connection",
    "ConnectionState",
]
