"""Include expansion: the text-level first phase of compilation.

Every ``{{@ include <expr> }}`` clause is replaced, depth first, by the
expanded text of the file it names. The path expression is evaluated once
against the top-level data. Missing files, cycles, and over-deep chains
are replaced by an inline diagnostic so the rest of the page still renders.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from kiln.config import TemplateConfig
from kiln.errors import IncludeError, TemplateError
from kiln.templating.evaluator import Evaluator, to_text
from kiln.templating.expressions import parse_sanitized
from kiln.templating.lexer import Token, TokenType, tokenize

logger = logging.getLogger("kiln.templating")


def trace_comment(kind: str, description: str) -> str:
    return f"<!-- @{kind}: {description} -->\n"


class IncludeExpander:
    """Inlines include clauses for one compile."""

    __slots__ = ("_config", "_data", "_evaluator")

    def __init__(self, config: TemplateConfig, evaluator: Evaluator, data: Mapping[str, Any]) -> None:
        self._config = config
        self._evaluator = evaluator
        self._data = data

    def expand(self, source: str, path: Path | None = None) -> str:
        """Return *source* with all includes inlined.

        *path* is the file *source* came from; relative includes resolve
        against its directory. ``None`` means an in-memory source.
        """
        chain = (path,) if path is not None else ()
        return self._expand(source, path, chain)

    def resolve(self, target: str, current: Path | None) -> Path | None:
        """Find *target* relative to the including file, search paths, then cwd."""
        candidate = Path(target)
        if candidate.is_absolute():
            return candidate.resolve() if candidate.is_file() else None
        roots: list[Path] = []
        if current is not None:
            roots.append(current.parent)
        roots.extend(Path(p) for p in self._config.search_paths)
        roots.append(Path.cwd())
        for root in roots:
            found = root / candidate
            if found.is_file():
                return found.resolve()
        return None

    def _expand(self, source: str, current: Path | None, chain: tuple[Path, ...]) -> str:
        parts: list[str] = []
        for tok in tokenize(source):
            if tok.type is TokenType.STATEMENT and tok.keyword == "include":
                parts.append(self._include(tok, current, chain))
            else:
                parts.append(source[tok.start : tok.end])
        return "".join(parts)

    def _include(self, tok: Token, current: Path | None, chain: tuple[Path, ...]) -> str:
        where = str(current) if current is not None else None
        target = self._target(tok.argument)
        resolved = self.resolve(target, current) if target else None
        if resolved is None:
            return self._error(IncludeError(target or tok.argument, template=where))
        if resolved in chain:
            return self._error(IncludeError(str(resolved), template=where, reason="is circular"))
        if len(chain) > self._config.max_include_depth:
            return self._error(IncludeError(str(resolved), template=where, reason="is nested too deeply"))

        text = resolved.read_text(encoding="utf-8")
        expanded = self._expand(text, resolved, (*chain, resolved))
        if self._config.trace_files:
            return trace_comment("include", str(resolved)) + expanded
        return expanded

    def _target(self, argument: str) -> str:
        try:
            value = self._evaluator.evaluate(parse_sanitized(argument), self._data)
        except TemplateError:
            logger.debug("Include path %r failed to evaluate", argument)
            return ""
        return to_text(value)

    def _error(self, error: IncludeError) -> str:
        logger.warning("%s", error)
        return error.to_html()
