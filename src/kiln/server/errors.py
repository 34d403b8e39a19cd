"""Error handling pipeline for kiln requests.

Maps HTTPError exceptions and unexpected failures to Response objects,
using registered error handlers or plain-text defaults.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from kiln._internal.invoke import invoke_with
from kiln.errors import HTTPError
from kiln.http.request import Request
from kiln.http.response import Response
from kiln.server.negotiation import negotiate

logger = logging.getLogger("kiln.server")

ErrorHandlers = Mapping[int | None, Callable[..., Any]]


def find_error_handler(error_handlers: ErrorHandlers, status: int) -> Callable[..., Any] | None:
    """The handler for *status*, else the catch-all registered for ``None``."""
    handler = error_handlers.get(status)
    if handler is None and status >= 400:
        handler = error_handlers.get(None)
    return handler


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    status: int,
    *,
    json_indent: int | None,
) -> Response:
    """Invoke a user-registered error handler and keep the error status.

    Error handlers may accept zero, one (request), or two (request, status)
    args, and may be sync or async.
    """
    result = await invoke_with(handler, request, status)
    response = negotiate(result, json_indent=json_indent)
    if response.status == 200:
        response = response.with_status(status)
    return response


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: ErrorHandlers,
    *,
    json_indent: int | None = 4,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    handler = find_error_handler(error_handlers, exc.status)
    if handler is not None:
        try:
            response = await call_error_handler(handler, request, exc.status, json_indent=json_indent)
        except Exception:
            logger.exception("Error handler for %d failed", exc.status)
        else:
            return response.with_headers(dict(exc.headers)) if exc.headers else response

    response = Response(body=exc.detail or f"Error {exc.status}", status=exc.status)
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: ErrorHandlers,
    *,
    json_indent: int | None = 4,
    debug: bool = False,
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    logger.exception("500 %s %s", request.method, request.path)

    handler = find_error_handler(error_handlers, 500)
    if handler is not None:
        try:
            return await call_error_handler(handler, request, 500, json_indent=json_indent)
        except Exception:
            logger.exception("Error handler for 500 failed")

    body = f"Internal Server Error\n\n{type(exc).__name__}: {exc}" if debug else "Internal Server Error"
    return Response(body=body, status=500, content_type="text/plain; charset=utf-8")
