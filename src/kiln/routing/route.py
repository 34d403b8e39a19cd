"""Route and RouteMatch frozen dataclasses."""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

ALL = "ALL"


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    ``pattern`` is a regular expression matched against the whole
    normalised path. ``methods`` containing ``ALL`` matches any method.
    """

    pattern: str
    handler: Callable[..., Any]
    methods: frozenset[str] = frozenset({ALL})
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(self.pattern))

    def allows(self, method: str) -> bool:
        return ALL in self.methods or method.upper() in self.methods

    def match(self, path: str) -> "RouteMatch | None":
        found = self.regex.fullmatch(path)
        if found is None:
            return None
        return RouteMatch(self, found.groups(), found.groupdict())


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match: positional and named groups."""

    route: Route
    groups: tuple[str | None, ...]
    params: dict[str, str | None]
