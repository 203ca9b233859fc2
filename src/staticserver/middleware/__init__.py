"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting steps wrapped around the static file handler:

    LoggingMiddleware     one access log line per request
    BasicAuthMiddleware   401 unless the configured credentials are sent

Both follow the Chain of Responsibility pattern from base.py: each step
may answer on its own or pass the request to the next one.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware
from .auth import BasicAuthMiddleware, decode_basic_credentials

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "BasicAuthMiddleware",
    "decode_basic_credentials",
]
