"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Writes one line per request to the "staticserver.access" logger:

    127.0.0.1 - alice [19/Oct/2026:10:22:05 +0000] "GET /docs/a.txt HTTP/1.1" 206 100 1.42ms

    ┌────────────┬──────────────────────────────────────────────────────────┐
    │ Field      │ Source                                                   │
    ├────────────┼──────────────────────────────────────────────────────────┤
    │ client     │ peer address of the connection                           │
    │ user       │ Basic auth user name, "-" when absent                    │
    │ request    │ method, request target as sent, version                  │
    │ status     │ response status                                          │
    │ bytes      │ Content-Length of the response (body not yet sent)       │
    │ duration   │ time spent building the response                         │
    └────────────┴──────────────────────────────────────────────────────────┘

Streamed file bodies are sent after this middleware returns, so the
duration covers building the response, not the transfer.

=============================================================================
LOG LEVELS
=============================================================================

    2xx / 3xx   INFO
    4xx         WARNING
    5xx         ERROR

The logger is namespaced so access lines can be routed on their own:

    logging.getLogger("staticserver.access").addHandler(file_handler)

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from .auth import decode_basic_credentials
from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("staticserver.access")


@dataclass
class RequestLog:
    """Structured log entry for one request."""

    client_ip: str
    user: str
    method: str
    target: str
    version: str
    status_code: int
    content_length: int
    duration_ms: float
    user_agent: str
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Common log format plus the duration."""
        return (
            f'{self.client_ip} - {self.user} [{self.timestamp}] '
            f'"{self.method} {self.target} {self.version}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


def _basic_user(request: HTTPRequest) -> Optional[str]:
    credentials = decode_basic_credentials(request.get_header("authorization"))
    return credentials[0] if credentials else None


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Should be FIRST in the pipeline so it sees every request, including
    those rejected by authentication.

    Usage:
        pipeline.add(LoggingMiddleware())                  # text lines
        pipeline.add(LoggingMiddleware(log_format="json"))  # JSON lines
    """

    def __init__(self, log_format: str = "text"):
        """
        Args:
            log_format: "text" (common log format) or "json".
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")
        self.log_format = log_format

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.target} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        content_length = response.get_header("Content-Length")
        if content_length is None:
            content_length = len(response.body)

        entry = RequestLog(
            client_ip=request.client_address[0] if request.client_address else "-",
            user=_basic_user(request) or "-",
            method=request.method,
            target=request.target,
            version=request.version,
            status_code=int(response.status),
            content_length=int(content_length),
            duration_ms=duration_ms,
            user_agent=request.user_agent or "-",
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = _level_for(response.status)
        if self.log_format == "json":
            logger.log(level, json.dumps(entry.to_dict()))
        else:
            logger.log(level, entry.to_text())

        return response
