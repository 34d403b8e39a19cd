"""``kiln render`` and ``kiln clear-cache``."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from kiln.config import TemplateConfig
from kiln.errors import KilnError
from kiln.templating.engine import Template


def _config(args: argparse.Namespace) -> TemplateConfig:
    options: dict[str, Any] = {}
    if args.cache_dir:
        options["cache_dir"] = args.cache_dir
    if getattr(args, "no_cache", False):
        options["cache_enabled"] = False
    if getattr(args, "trace", False):
        options["trace_files"] = True
    if getattr(args, "strict", False):
        options["strict"] = True
    if getattr(args, "autoescape", False):
        options["autoescape"] = True
    return TemplateConfig(**options)


def _load_data(path: str | None) -> Any:
    if path is None:
        return {}
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        print(f"Error: cannot read data file {path}: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


def render_template(args: argparse.Namespace) -> None:
    """Render ``args.template`` and write the output to stdout."""
    data = _load_data(args.data)
    engine = Template(_config(args))
    try:
        output = engine.parse(args.template, data)
    except KilnError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    sys.stdout.write(output)


def clear_cache(args: argparse.Namespace) -> None:
    """Remove every compile artifact and report how many were removed."""
    engine = Template(_config(args))
    removed = engine.clear_cache()
    print(f"Removed {removed} cached file(s) from {engine.config.cache_dir}")
