"""Request pipeline: redirect, dispatch, error handling, send.

Dispatch state is per request: routes are tried in order and the first
handler that does not return ``False`` ends the search.
"""

import logging

from kiln._internal.asgi import Receive, Scope, Send
from kiln._internal.invoke import invoke_with
from kiln.errors import HTTPError, NotFound
from kiln.http.request import Request
from kiln.http.response import Response, redirect
from kiln.routing.router import Router, normalize_path
from kiln.server.errors import ErrorHandlers, handle_http_error, handle_internal_error
from kiln.server.negotiation import negotiate
from kiln.server.sender import send_response

logger = logging.getLogger("kiln.server")


async def dispatch(request: Request, router: Router, *, json_indent: int | None = 4) -> Response:
    """Route *request* to the first handler that accepts it.

    A path that is not in normalised form is answered with a 301 to the
    normalised path, query string preserved. Raises ``NotFound`` when no
    handler accepts the request.
    """
    normalized = normalize_path(request.path)
    if normalized != request.path:
        target = f"{normalized}?{request.query_string}" if request.query_string else normalized
        return redirect(target, status=301)

    for match in router.matches(request.method, request.path):
        result = await invoke_with(match.route.handler, request, match)
        if result is False:
            logger.debug("%s declined %s %s", match.route.pattern, request.method, request.path)
            continue
        return negotiate(result, json_indent=json_indent)
    raise NotFound


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    error_handlers: ErrorHandlers,
    json_indent: int | None = 4,
    debug: bool = False,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    try:
        response = await dispatch(request, router, json_indent=json_indent)
    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers, json_indent=json_indent)
    except Exception as exc:
        response = await handle_internal_error(
            exc, request, error_handlers, json_indent=json_indent, debug=debug
        )
    await send_response(response, send)
