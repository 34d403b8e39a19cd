"""Kiln site class.

Routes, error handlers, and the template engine hang off one ``Site``
instance; there is no module-level state. The engine is built on first
use from ``AppConfig.templates`` overridden by the Conf ``tpl.conf``
subtree, so Conf values set during setup take effect.
"""

import hmac
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

import anyio

from kiln._internal.asgi import Receive, Scope, Send
from kiln._internal.types import ErrorHandler, Handler
from kiln.conf import Conf
from kiln.config import AppConfig
from kiln.errors import Unauthorized
from kiln.http.request import Request
from kiln.http.response import JSON_CONTENT_TYPE, Response
from kiln.routing.route import ALL, Route
from kiln.routing.router import Router
from kiln.server.handler import handle_request
from kiln.server.negotiation import dump_json
from kiln.templating.engine import Template

logger = logging.getLogger("kiln.server")


class Site:
    """The kiln site: an ASGI 3 application.

    Routes are tried in registration order. A handler that returns
    ``False`` declines the request and dispatch moves on to the next
    matching route::

        site = Site()

        @site.get(r"/hello/(?P<name>\\w+)")
        def hello(request, match):
            return f"Hello {match.params['name']}"

    Thread safety:
        Registration happens at import time on one thread. The engine is
        created under a lock so concurrent first requests build it once.
    """

    __slots__ = (
        "_engine",
        "_engine_lock",
        "_error_handlers",
        "_router",
        "conf",
        "config",
    )

    def __init__(self, config: AppConfig | None = None, *, conf: Conf | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self.conf: Conf = conf if conf is not None else Conf()
        self._router = Router()
        self._error_handlers: dict[int | None, ErrorHandler] = {}
        self._engine: Template | None = None
        self._engine_lock = threading.Lock()

    # -- Route registration --

    def route(
        self,
        pattern: str,
        *,
        methods: Iterable[str] | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            pattern: Regular expression matched against the whole
                normalised path. Named groups land in ``match.params``.
            methods: HTTP methods to accept. Defaults to every method.
        """

        def decorator(func: Handler) -> Handler:
            self.add_route(pattern, func, methods=methods)
            return func

        return decorator

    def add_route(self, pattern: str, handler: Handler, *, methods: Iterable[str] | None = None) -> Route:
        allowed = frozenset(m.upper() for m in methods) if methods else frozenset({ALL})
        route = Route(pattern, handler, allowed)
        self._router.add(route)
        return route

    def all(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(pattern)

    def get(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(pattern, methods=("GET",))

    def post(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(pattern, methods=("POST",))

    def put(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(pattern, methods=("PUT",))

    def delete(self, pattern: str) -> Callable[[Handler], Handler]:
        return self.route(pattern, methods=("DELETE",))

    def error(self, status: int | None = None) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler for *status*, or for every status >= 400."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._error_handlers[status] = func
            return func

        return decorator

    def protect(self, pattern: str, password: str, *, methods: Iterable[str] | None = None) -> Route:
        """Guard *pattern* with a password.

        The password is looked up under ``config.auth_param`` in the query
        string, then a url-encoded form body, then a cookie, then a JSON
        object body. A wrong or missing password answers 401; the right one
        declines so the routes registered after the guard handle the request.
        """
        param = self.config.auth_param

        async def guard(request: Request) -> bool:
            supplied = await _find_password(request, param)
            if supplied is None or not hmac.compare_digest(supplied.encode(), password.encode()):
                logger.info("Rejected %s %s: bad %s", request.method, request.path, param)
                raise Unauthorized
            return False

        return self.add_route(pattern, guard, methods=methods)

    # -- Responses --

    @property
    def engine(self) -> Template:
        """The site's template engine, created on first access."""
        if self._engine is None:
            with self._engine_lock:
                if self._engine is None:
                    overrides = self.conf.get(self.config.template_conf_key) or {}
                    self._engine = Template(self.config.templates.merged(overrides))
        return self._engine

    async def html(self, template: str, data: Any = None) -> Response:
        """Render *template* in a worker thread with *data* merged over the Conf store."""
        context = {**self.conf.all(), **(data or {})}
        body = await anyio.to_thread.run_sync(self.engine.parse, template, context)
        return Response(body)

    def json(self, data: Any) -> Response:
        return Response(dump_json(data, indent=self.config.json_indent), content_type=JSON_CONTENT_TYPE)

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Serve the site with pounce (``pip install kiln[server]``)."""
        from kiln.server.dev import run_server

        run_server(
            self,
            host or self.config.host,
            port or self.config.port,
            reload=self.config.debug,
        )

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._router.routes

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            error_handlers=self._error_handlers,
            json_indent=self.config.json_indent,
            debug=self.config.debug,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    def __repr__(self) -> str:
        return f"Site(routes={len(self._router)}, debug={self.config.debug})"


async def _find_password(request: Request, param: str) -> str | None:
    if param in request.query:
        return request.query[param]
    form = await request.form()
    if param in form:
        return form[param]
    if param in request.cookies:
        return request.cookies[param]
    body = await request.json_object()
    value = body.get(param)
    return None if value is None else str(value)
