"""playstats.api errors."""

import functools
import logging
from typing import Awaitable, Callable

from starlette import status
from starlette.requests import Request
from starlette.responses import Response

from .responses import error_response

logger = logging.getLogger(__name__)


class PlayStatsError(Exception):
    """Base exception for request handling errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class OriginRejected(PlayStatsError):
    """The request's declared origin is missing or not allowed."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: str):
        """reason is either "missing" or "invalid"."""
        self.reason = reason
        super().__init__(f"Forbidden: {reason} referer")


class RouteNotFound(PlayStatsError):
    """No route matches the request method and path."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not Found"):
        super().__init__(message)


class ValidationError(PlayStatsError):
    """A required query parameter is missing or invalid."""

    status_code = status.HTTP_400_BAD_REQUEST


class EntityNotFound(PlayStatsError):
    """A looked-up record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class UpstreamQueryError(PlayStatsError):
    """The query executor failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


DEFAULT_STATUS_CODES: dict[type[Exception], int] = {
    OriginRejected: status.HTTP_403_FORBIDDEN,
    RouteNotFound: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    EntityNotFound: status.HTTP_404_NOT_FOUND,
    UpstreamQueryError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def exception_response(exc: PlayStatsError) -> Response:
    """Translate a PlayStatsError into its JSON error response."""
    status_code = DEFAULT_STATUS_CODES.get(type(exc), exc.status_code)
    return error_response(str(exc), status_code)


def api_errors(
    func: Callable[[Request], Awaitable[Response]],
) -> Callable[[Request], Awaitable[Response]]:
    """Catch handler errors and return them as JSON error responses."""

    @functools.wraps(func)
    async def wrapper(request: Request) -> Response:
        try:
            return await func(request)
        except UpstreamQueryError as e:
            logger.error(f"Query failed for {request.url.path}: {e}")
            return exception_response(e)
        except PlayStatsError as e:
            logger.debug(f"{type(e).__name__} for {request.url.path}: {e}")
            return exception_response(e)

    return wrapper
