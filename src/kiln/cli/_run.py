"""``kiln run``: serve a site with pounce.

Resolves an import string to a kiln Site and starts the server.
"""

import argparse
import sys

from kiln.cli._resolve import resolve_site


def run_site(args: argparse.Namespace) -> None:
    """Resolve ``args.site`` and serve it, CLI flags overriding site config."""
    try:
        site = resolve_site(args.site)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    site.run(host=args.host, port=args.port)
