"""Permissive CORS headers on every response.

Starlette's CORSMiddleware only decorates requests that carry an ``Origin``
header. Tiles are also fetched by clients that never send one, so this
middleware stamps the allow-all headers on every response, errors included,
without touching the status or the body.
"""

from collections.abc import Awaitable, Callable

import fastapi
from fastapi import responses

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


async def add_cors_headers(
    request: fastapi.Request,
    call_next: Callable[[fastapi.Request], Awaitable[responses.Response]],
) -> responses.Response:
    """HTTP middleware appending CORS_HEADERS to the handler's response."""
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
