"""Kiln CLI: render templates, manage the compile cache, and serve a site.

Entry point registered as ``kiln`` in ``pyproject.toml``::

    [project.scripts]
    kiln = "kiln.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``kiln`` command."""
    parser = argparse.ArgumentParser(
        prog="kiln",
        description="Kiln: a caching template compiler and micro site framework.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- kiln render ------------------------------------------------------
    render_parser = subparsers.add_parser("render", help="Render a template to stdout")
    render_parser.add_argument("template", help="Template file path")
    render_parser.add_argument("--data", default=None, help="JSON file with the render context")
    render_parser.add_argument("--cache-dir", default=None, help="Compile cache directory")
    render_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Compile from source without reading or writing the cache",
    )
    render_parser.add_argument(
        "--trace",
        action="store_true",
        help="Emit <!-- @include --> and <!-- @block --> trace comments",
    )
    render_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on unmatched setblock tags and undefined names",
    )
    render_parser.add_argument("--autoescape", action="store_true", help="HTML-escape {{ expr }} output")

    # -- kiln clear-cache -------------------------------------------------
    clear_parser = subparsers.add_parser("clear-cache", help="Remove compiled templates")
    clear_parser.add_argument("--cache-dir", default=None, help="Compile cache directory")

    # -- kiln run ---------------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Serve a site with pounce")
    run_parser.add_argument("site", help="Import string (e.g. mysite:site)")
    run_parser.add_argument("--host", default=None, help="Bind host address")
    run_parser.add_argument("--port", type=int, default=None, help="Bind port number")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "render":
        from kiln.cli._render import render_template

        render_template(args)
    elif args.command == "clear-cache":
        from kiln.cli._render import clear_cache

        clear_cache(args)
    elif args.command == "run":
        from kiln.cli._run import run_site

        run_site(args)
