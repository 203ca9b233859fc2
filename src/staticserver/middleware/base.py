"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Wraps the static file handler in a chain of cross-cutting steps
(access logging, Basic authentication). Each step sees the request on the
way in and the response on the way out, and may answer early without
calling the rest of the chain.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Request ──────────────────────────────────────────────►           │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────────────────┐          │
    │   │  Access  │───►│  Basic   │───►│  StaticFileHandler   │          │
    │   │   log    │    │   auth   │    │                      │          │
    │   └────┬─────┘    └────┬─────┘    └──────────┬───────────┘          │
    │        │               │                     │                      │
    │   [before]        [before]                [exec]                    │
    │   start clock     401 on bad              resolve, list,            │
    │                   credentials             stream a file             │
    │        ▲               ▲                     │                      │
    │   [after]              │                     ▼                      │
    │   log line        (nothing)               [done]                    │
    │                                                                      │
    │   ◄─────────────────────────────────────────────── Response          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Order matters: logging is added first so rejected requests are logged
too.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the final handler, in the chain
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Every middleware implements:

        def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse

    Call next(request) to continue the chain, or return a response
    directly to short-circuit it.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response (either from next() or short-circuited)
        """
        pass

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    The first middleware added is the outermost layer:

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        pipeline.add(BasicAuthMiddleware(("alice", "secret")))
        handler = pipeline.wrap(StaticFileHandler(config))

        # LoggingMiddleware → BasicAuthMiddleware → StaticFileHandler
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """
        Add middleware to the pipeline.

        Args:
            middleware: Middleware instance to add

        Returns:
            Self for method chaining
        """
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Add several middleware in one call."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with all middleware in the pipeline.

        Given [MW1, MW2] and handler, the result calls
        MW1 → MW2 → handler. Wrapping happens in reverse order so that
        the first-added middleware ends up outermost.

        Args:
            handler: The final request handler

        Returns:
            Wrapped handler that includes all middleware
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
