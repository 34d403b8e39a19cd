"""Routing: ordered regex route table.

Routes are tried in registration order against the normalised request
path; the dispatcher stops at the first handler that does not decline.
"""

from kiln.routing.route import ALL, Route, RouteMatch
from kiln.routing.router import Router, normalize_path

__all__ = [
    "ALL",
    "Route",
    "RouteMatch",
    "Router",
    "normalize_path",
]
