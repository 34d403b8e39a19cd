"""Application and template configuration.

Both configs are frozen dataclasses: immutable after creation,
IDE-autocompletable, no string-key dict lookups.
"""

import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from kiln.errors import ConfigurationError


def _default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "kiln-templates"


@dataclass(frozen=True, slots=True)
class TemplateConfig:
    """Template compiler configuration. Immutable after creation.

    Override what you need::

        config = TemplateConfig(cache_dir="var/cache/tpl", trace_files=True)
    """

    # Cache
    cache_dir: str | Path = field(default_factory=_default_cache_dir)
    cache_enabled: bool = True

    # Diagnostics
    trace_files: bool = False  # Emit <!-- @include: ... --> / <!-- @block: ... --> comments
    strict: bool = False  # Raise on unmatched setblock tags and undefined names

    # Output
    autoescape: bool = False  # HTML-escape {{ expr }} (never {{ @expr }})

    # Includes
    search_paths: tuple[str | Path, ...] = ()  # Tried after the including file's directory
    max_include_depth: int = 32

    def __post_init__(self) -> None:
        if self.max_include_depth < 1:
            msg = f"max_include_depth must be at least 1, got {self.max_include_depth}"
            raise ConfigurationError(msg)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TemplateConfig":
        """Build a config from a plain mapping (e.g. a ``Conf`` subtree).

        Unknown keys raise ``ConfigurationError`` so typos surface at startup
        instead of being silently ignored.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            msg = f"Unknown template config keys: {', '.join(unknown)}"
            raise ConfigurationError(msg)
        values = dict(mapping)
        if "search_paths" in values:
            values["search_paths"] = tuple(values["search_paths"])
        return cls(**values)

    def merged(self, overrides: Mapping[str, Any]) -> "TemplateConfig":
        """Return a copy with *overrides* applied on top of this config."""
        if not overrides:
            return self
        base = {f.name: getattr(self, f.name) for f in fields(self)}
        return TemplateConfig.from_mapping({**base, **overrides})


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Site configuration. Immutable after creation.

    All fields have sensible defaults::

        config = AppConfig(debug=True, port=3000)
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    # Templates
    templates: TemplateConfig = field(default_factory=TemplateConfig)
    template_conf_key: str = "tpl.conf"  # Conf subtree overriding ``templates``

    # Protected routes
    auth_param: str = "routepassword"

    # JSON responses
    json_indent: int | None = 4
