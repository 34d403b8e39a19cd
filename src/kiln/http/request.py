"""Immutable HTTP request.

Frozen metadata with async body access. Headers, query parameters, and
cookies are parsed once in ``from_asgi``; the body is read lazily and
cached so handlers and guards can both look at it.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

from kiln._internal.asgi import Receive, Scope

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict."""
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        key, sep, value = pair.strip().partition("=")
        if sep:
            cookies[key.strip()] = value.strip()
    return cookies


def parse_query(raw: bytes | str) -> dict[str, str]:
    """Parse a query string or url-encoded body; the first value of a key wins."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    values: dict[str, str] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        values.setdefault(key, value)
    return values


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata is frozen at creation. The body is accessed asynchronously
    via ``.body()``, ``.text()``, ``.json()``, and ``.form()``.
    """

    method: str
    path: str
    query_string: str
    headers: Mapping[str, str]
    query: Mapping[str, str]
    cookies: Mapping[str, str]
    client: tuple[str, int] | None

    # ASGI receive callable for body streaming
    _receive: Receive

    # Body and parsed-body cache (the dict is mutable, the field is not)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str:
        """The media type of the body, without parameters."""
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def url(self) -> str:
        """Path plus query string."""
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body; the receive channel is consumed once."""
        if "body" not in self._cache:
            self._cache["body"] = b"".join([chunk async for chunk in self.stream()])
        return self._cache["body"]

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                break

    async def text(self) -> str:
        raw = await self.body()
        return raw.decode("utf-8")

    async def json(self) -> Any:
        """Parse the body as JSON."""
        return json_module.loads(await self.body())

    async def form(self) -> Mapping[str, str]:
        """Parse a url-encoded body. Other content types give an empty form."""
        if "form" not in self._cache:
            form: dict[str, str] = {}
            if self.content_type == FORM_CONTENT_TYPE:
                form = parse_query(await self.body())
            self._cache["form"] = form
        return self._cache["form"]

    async def json_object(self) -> Mapping[str, Any]:
        """The JSON body if it is an object, else an empty mapping."""
        if self.content_type != JSON_CONTENT_TYPE:
            return {}
        try:
            data = await self.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers: dict[str, str] = {}
        for name, value in scope.get("headers", ()):
            headers.setdefault(name.decode("latin-1").lower(), value.decode("latin-1"))
        query_string = scope.get("query_string", b"").decode("latin-1")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            query_string=query_string,
            headers=headers,
            query=parse_query(query_string),
            cookies=parse_cookies(headers.get("cookie", "")),
            client=tuple(client) if client else None,
            _receive=receive,
        )
