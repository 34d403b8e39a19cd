"""Content negotiation: maps handler return values to Response objects.

isinstance-based dispatch, no magic, fully predictable:

    Response          -> as is
    None / True       -> empty 200
    str / bytes       -> text/html
    int / float       -> text/html (``str()`` of the number)
    dict / list       -> application/json
"""

import json as json_module
from typing import Any

from kiln.http.response import HTML_CONTENT_TYPE, JSON_CONTENT_TYPE, Response


def dump_json(value: Any, *, indent: int | None = 4) -> str:
    """Serialise *value* with slashes and non-ASCII left unescaped."""
    return json_module.dumps(value, indent=indent, ensure_ascii=False, default=str)


def negotiate(value: Any, *, json_indent: int | None = 4) -> Response:
    """Convert a handler's return value to a Response.

    Raises ``TypeError`` for values with no response form.
    """
    if isinstance(value, Response):
        return value
    if value is None or value is True:
        return Response()
    if isinstance(value, (str, bytes)):
        return Response(body=value, content_type=HTML_CONTENT_TYPE)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Response(body=str(value), content_type=HTML_CONTENT_TYPE)
    if isinstance(value, (dict, list, tuple)):
        return Response(body=dump_json(value, indent=json_indent), content_type=JSON_CONTENT_TYPE)
    msg = f"Cannot convert {type(value).__name__} to a response"
    raise TypeError(msg)
