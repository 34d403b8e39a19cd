"""Linear regex router.

Routes are kept in registration order. ``matches()`` yields every route
that accepts the method and path, so the dispatcher can move on when a
handler declines.
"""

import re
from collections.abc import Iterator

from kiln.routing.route import Route, RouteMatch

_SLASHES_RE = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """Collapse repeated slashes and strip the trailing one.

    Examples::

        "//blog//post/"  -> "/blog/post"
        ""               -> "/"
    """
    path = _SLASHES_RE.sub("/", path).rstrip("/")
    if not path.startswith("/"):
        path = "/" + path
    return path


class Router:
    """Ordered list of routes."""

    __slots__ = ("_routes",)

    def __init__(self) -> None:
        self._routes: list[Route] = []

    def add(self, route: Route) -> None:
        self._routes.append(route)

    def matches(self, method: str, path: str) -> Iterator[RouteMatch]:
        """Yield matching routes for *method* and *path* in registration order."""
        for route in self._routes:
            if not route.allows(method):
                continue
            found = route.match(path)
            if found is not None:
                yield found

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def __len__(self) -> int:
        return len(self._routes)
