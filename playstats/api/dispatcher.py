"""Top-level request dispatcher."""

import logging

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .access import AccessGate
from .errors import OriginRejected, RouteNotFound, exception_response
from .responses import CORS_HEADERS, error_response
from .routing import Router

logger = logging.getLogger(__name__)


class Dispatcher:
    """ASGI application sequencing access gate, routing and handler.

    The router is frozen on construction; the dispatcher holds no other
    mutable state and can serve any number of concurrent requests.
    """

    def __init__(self, router: Router, gate: AccessGate):
        """Initialize dispatcher.

        Args:
            router: Route table, frozen by the dispatcher
            gate: Referer access gate run before routing
        """
        router.freeze()
        self.router = router
        self.gate = gate

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entrypoint."""
        if scope["type"] != "http":
            raise RuntimeError(f"Unsupported ASGI scope type: {scope['type']}")

        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        """Run a request through gate, router and handler.

        CORS headers are merged onto every response, cached or not.
        """
        try:
            response = await self._dispatch(request)
        except (OriginRejected, RouteNotFound) as e:
            response = exception_response(e)
        except Exception:
            logger.exception(f"Unhandled error for {request.method} {request.url.path}")
            response = error_response("Internal Server Error", 500)

        response.headers.update(CORS_HEADERS)
        return response

    async def _dispatch(self, request: Request) -> Response:
        self.gate.verify(request.headers.get("referer"))

        match = self.router.match(request.method, request.url.path)
        if match is None:
            raise RouteNotFound()

        request.scope["path_params"] = match.params
        return await match.handler(request)
