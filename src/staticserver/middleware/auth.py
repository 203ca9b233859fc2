"""
=============================================================================
HTTP BASIC AUTHENTICATION
=============================================================================

Guards the whole tree with a single user name and password.

    Client                                   Server
      │  GET /docs/                            │
      │ ─────────────────────────────────────► │
      │                                        │  no Authorization
      │  401  WWW-Authenticate: Basic realm=.. │
      │ ◄───────────────────────────────────── │
      │                                        │
      │  GET /docs/                            │
      │  Authorization: Basic YWxpY2U6c2VjcmV0  │  base64("alice:secret")
      │ ─────────────────────────────────────► │
      │                                        │  compare_digest → match
      │  200 listing                           │
      │ ◄───────────────────────────────────── │

Both halves are compared with hmac.compare_digest so the time taken does
not reveal how much of a guess was right.

Basic credentials are only obfuscated, not encrypted: pair this with TLS
(--cert / --key) on untrusted networks.

=============================================================================
"""

import base64
import binascii
import hmac
import logging
from typing import Optional, Tuple

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, unauthorized


logger = logging.getLogger(__name__)


def decode_basic_credentials(header: str) -> Optional[Tuple[str, str]]:
    """
    Decode an "Authorization: Basic ..." value.

        >>> decode_basic_credentials("Basic YWxpY2U6c2VjcmV0")
        ('alice', 'secret')

    Returns:
        (user, password), or None for any other scheme or a malformed
        value.
    """
    scheme, _, value = (header or "").strip().partition(" ")
    if scheme.lower() != "basic" or not value.strip():
        return None
    try:
        decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


class BasicAuthMiddleware(Middleware):
    """
    Rejects requests without the configured credentials.

    Usage:
        pipeline.add(BasicAuthMiddleware(("alice", "secret"), realm="files"))
    """

    def __init__(self, credentials: Tuple[str, str], realm: str = "staticserver"):
        """
        Args:
            credentials: (user, password) every request must present.
            realm: Shown by browsers in the login prompt.
        """
        user, password = credentials
        self._user = user.encode("utf-8")
        self._password = password.encode("utf-8")
        self.realm = realm

    def check(self, request: HTTPRequest) -> bool:
        """True when the request carries the configured credentials."""
        supplied = decode_basic_credentials(request.get_header("authorization"))
        if supplied is None:
            return False
        user, password = supplied
        # Evaluate both comparisons so timing does not reveal which failed
        user_ok = hmac.compare_digest(user.encode("utf-8"), self._user)
        password_ok = hmac.compare_digest(password.encode("utf-8"), self._password)
        return user_ok and password_ok

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if not self.check(request):
            logger.debug(f"Rejected credentials for {request.method} {request.target}")
            response = unauthorized("Authentication required", realm=self.realm)
            if request.method == "HEAD":
                response.set_header("Content-Length", str(len(response.body)))
                response.body = b""
            return response
        return next(request)
