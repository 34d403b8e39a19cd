"""Server startup.

Serves a live kiln Site with the pounce ASGI server (``pip install
kiln[server]``). Pounce's ``run()`` takes an import string, but a Site
is a live object, so ``pounce.Server`` is used directly.
"""

from typing import Any


def run_server(site: Any, host: str, port: int, *, reload: bool = False) -> None:
    """Start pounce with *site* as the ASGI application.

    Args:
        site: ASGI callable (kiln Site instance).
        host: Bind host address.
        port: Bind port number.
        reload: Enable auto-reload on file changes.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    config = ServerConfig(host=host, port=port, workers=1, reload=reload)
    server = Server(config, site)
    server.run()
