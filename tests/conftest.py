"""Shared fixtures: an engine with an isolated cache and a template writer."""

from collections.abc import Callable
from pathlib import Path

import pytest

from kiln.config import TemplateConfig
from kiln.templating.engine import Template


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def engine(cache_dir: Path) -> Template:
    return Template(TemplateConfig(cache_dir=cache_dir))


@pytest.fixture
def write(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a template file under ``tmp_path/views`` and return its path."""
    root = tmp_path / "views"

    def _write(name: str, source: str) -> Path:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    return _write
