"""Async test client for kiln sites.

Uses the same Request and Response types as production.
No wrapper translation layer.
"""

import json as json_module
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from kiln.app import Site
from kiln.http.response import HTML_CONTENT_TYPE, Response


class TestClient:
    __test__ = False  # Tell pytest this is not a test class
    """Async test client for kiln sites.

    Returns the same ``Response`` type used in production. Sends requests
    through the ASGI interface directly, no HTTP involved.

    Usage::

        async with TestClient(site) as client:
            response = await client.get("/")
            assert response.status == 200
    """

    __slots__ = ("site",)

    def __init__(self, site: Site) -> None:
        self.site = site

    async def __aenter__(self) -> "TestClient":
        await self._lifespan("startup")
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._lifespan("shutdown")

    async def get(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a GET request."""
        return await self.request("GET", path, headers=headers, query=query, cookies=cookies)

    async def post(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        form: Mapping[str, str] | None = None,
        json: Any = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a POST request with a raw, url-encoded, or JSON body."""
        extra_headers: dict[str, str] = {}
        request_body = body or b""

        if form is not None:
            request_body = urlencode(form).encode("utf-8")
            extra_headers["content-type"] = "application/x-www-form-urlencoded"
        elif json is not None:
            request_body = json_module.dumps(json).encode("utf-8")
            extra_headers["content-type"] = "application/json"

        merged = {**extra_headers, **(headers or {})}
        return await self.request("POST", path, headers=merged, body=request_body, cookies=cookies)

    async def put(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> Response:
        """Send a PUT request."""
        return await self.request("PUT", path, headers=headers, body=body)

    async def delete(self, path: str, *, headers: Mapping[str, str] | None = None) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        query: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Response:
        """Send an arbitrary request through the ASGI app."""
        path_part, _, query_string = path.partition("?")
        if query:
            encoded = urlencode(query)
            query_string = f"{query_string}&{encoded}" if query_string else encoded

        raw_headers: list[tuple[bytes, bytes]] = []
        for name, value in (headers or {}).items():
            raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
        if cookies:
            cookie = "; ".join(f"{name}={value}" for name, value in cookies.items())
            raw_headers.append((b"cookie", cookie.encode("latin-1")))

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "path": path_part,
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        request_body = body or b""
        body_sent = False

        async def receive() -> dict[str, Any]:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            return {"type": "http.disconnect"}

        response_status = 200
        response_headers: list[tuple[bytes, bytes]] = []
        response_body_parts: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = list(message.get("headers", []))
            elif message["type"] == "http.response.body":
                response_body_parts.append(message.get("body", b""))

        await self.site(scope, receive, send)

        content_type = HTML_CONTENT_TYPE
        extra_headers: list[tuple[str, str]] = []
        for name_b, value_b in response_headers:
            name_str = name_b.decode("latin-1")
            value_str = value_b.decode("latin-1")
            if name_str == "content-type":
                content_type = value_str
            elif name_str != "content-length":
                extra_headers.append((name_str, value_str))

        return Response(
            body=b"".join(response_body_parts),
            status=response_status,
            content_type=content_type,
            headers=tuple(extra_headers),
        )

    async def _lifespan(self, phase: str) -> None:
        """Drive one lifespan phase through the ASGI interface."""
        sent = False
        replies: list[str] = []

        async def receive() -> dict[str, Any]:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": f"lifespan.{phase}"}
            return {"type": "lifespan.shutdown"}

        async def send(message: dict[str, Any]) -> None:
            replies.append(message["type"])

        await self.site({"type": "lifespan", "asgi": {"version": "3.0"}}, receive, send)
        if f"lifespan.{phase}.complete" not in replies:
            msg = f"Lifespan {phase} did not complete: {replies}"
            raise RuntimeError(msg)
