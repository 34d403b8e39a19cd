"""Template: the public entry point of the compiler.

    tpl = Template({"cache_dir": "var/cache/tpl"})
    html = tpl.parse("views/home.html", {"title": "Home"})

Pipeline per call: normalise data → load cached program, or expand
includes, parse, compile, and store → execute. A ``Template`` holds only
immutable configuration and is safe to share between threads; every call
builds its own compiler and runtime state.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from kiln.config import TemplateConfig
from kiln.errors import TemplateNotFoundError, TemplateRuntimeError
from kiln.templating.blocks import context_id
from kiln.templating.cache import TemplateCache
from kiln.templating.compiler import Compiler
from kiln.templating.evaluator import Evaluator, normalize_data
from kiln.templating.includes import IncludeExpander
from kiln.templating.parser import parse as parse_document
from kiln.templating.program import Program
from kiln.templating.runtime import Runtime

logger = logging.getLogger("kiln.templating")


class Template:
    """Caching template compiler."""

    __slots__ = ("_cache", "_globals", "config")

    def __init__(
        self,
        config: TemplateConfig | Mapping[str, Any] | None = None,
        *,
        globals_: Mapping[str, Any] | None = None,
    ) -> None:
        if config is None:
            config = TemplateConfig()
        elif not isinstance(config, TemplateConfig):
            config = TemplateConfig.from_mapping(config)
        self.config = config
        self._globals = dict(globals_ or {})
        self._cache = TemplateCache(config.cache_dir, enabled=config.cache_enabled)

    # -- public API --

    def parse(self, file: str | Path, data: Any = None) -> str:
        """Render the template at *file* with *data*.

        Raises ``TemplateNotFoundError`` if *file* does not exist. Missing
        includes and blocks render as inline diagnostics instead.
        """
        context = self._normalize(data)
        program = self._load(self._locate(file), context)
        return self._execute(program, context)

    def render_string(self, source: str, data: Any = None, *, name: str = "<string>") -> str:
        """Render an in-memory template. Never cached."""
        context = self._normalize(data)
        expanded = self._expander(context).expand(source)
        program = self._compile_text(expanded, name=name, context=context_id(name))
        return self._execute(program, context)

    def compile(self, file: str | Path, data: Any = None) -> Program:
        """Load the cached program for *file*, rebuilding it when stale."""
        return self._load(self._locate(file), self._normalize(data))

    def clear_cache(self) -> int:
        """Remove all cache artifacts; return how many were removed."""
        return self._cache.clear()

    @property
    def cache(self) -> TemplateCache:
        return self._cache

    # -- pipeline --

    def _locate(self, file: str | Path) -> Path:
        path = Path(file)
        if not path.is_file():
            raise TemplateNotFoundError(f"Template not found: {file}", template=str(file))
        return path.resolve()

    def _load(self, path: Path, context: dict[str, Any]) -> Program:
        cached = self._cache.load(path)
        if cached is not None:
            return cached[1]
        logger.debug("Compiling template %s", path)
        source = path.read_text(encoding="utf-8")
        expanded = self._expander(context).expand(source, path)
        program = self._compile_text(expanded, name=str(path), context=context_id(str(path)))
        self._cache.store(path, expanded, program)
        return program

    def _compile_text(self, expanded: str, *, name: str, context: str) -> Program:
        document = parse_document(expanded, name=name, strict=self.config.strict)
        compiler = Compiler(name=name, context_id=context, trace_files=self.config.trace_files)
        return compiler.compile(document)

    def _execute(self, program: Program, context: Mapping[str, Any]) -> str:
        runtime = Runtime(
            program,
            context,
            globals_=self._globals,
            strict=self.config.strict,
            autoescape=self.config.autoescape,
        )
        return runtime.render()

    def _expander(self, context: Mapping[str, Any]) -> IncludeExpander:
        evaluator = Evaluator(self._globals, strict=self.config.strict)
        return IncludeExpander(self.config, evaluator, context)

    @staticmethod
    def _normalize(data: Any) -> dict[str, Any]:
        if data is None:
            return {}
        context = normalize_data(data)
        if not isinstance(context, dict):
            msg = f"Template data must be a mapping or object, got {type(data).__name__}"
            raise TemplateRuntimeError(msg)
        return context

    def __repr__(self) -> str:
        cache_dir = str(self.config.cache_dir)
        return f"Template(cache_dir={cache_dir!r}, cache_enabled={self.config.cache_enabled})"
