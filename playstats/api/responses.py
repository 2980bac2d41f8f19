"""playstats.api response helpers."""

from typing import Any, Optional

from starlette.responses import JSONResponse, Response

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}


def json_response(
    data: Any, status_code: int = 200, headers: Optional[dict[str, str]] = None
) -> JSONResponse:
    """JSON response carrying the CORS headers."""
    return JSONResponse(
        data, status_code=status_code, headers={**CORS_HEADERS, **(headers or {})}
    )


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    """JSON `{"error": message}` response."""
    return json_response({"error": message}, status_code=status_code)


def preflight_response() -> Response:
    """Empty 204 response with only the CORS headers."""
    return Response(status_code=204, headers=CORS_HEADERS)
