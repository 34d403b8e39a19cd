"""On-disk cache of compiled templates.

Each source file has two artifacts in the cache directory:

    <key>.tpl   source with includes expanded (text)
    <key>.json  compiled program (``kiln.templating.program`` format)

``<key>`` is the absolute source path with separators and drive colons
replaced by ``_``. Artifacts are stale when either is missing or older
than the source; there is no content hashing.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from kiln.errors import ProgramDecodeError
from kiln.templating.program import Program, dumps, loads

logger = logging.getLogger("kiln.templating")

_KEY_RE = re.compile(r"[\\/:]")

EXPANDED_SUFFIX = ".tpl"
COMPILED_SUFFIX = ".json"


def cache_key(source: Path) -> str:
    return _KEY_RE.sub("_", str(source))


@dataclass(frozen=True, slots=True)
class Artifacts:
    expanded: Path
    compiled: Path


class TemplateCache:
    """Reads and writes cache artifacts under one directory."""

    __slots__ = ("directory", "enabled")

    def __init__(self, directory: str | Path, *, enabled: bool = True) -> None:
        self.directory = Path(directory)
        self.enabled = enabled

    def artifacts(self, source: Path) -> Artifacts:
        key = cache_key(source)
        return Artifacts(
            expanded=self.directory / f"{key}{EXPANDED_SUFFIX}",
            compiled=self.directory / f"{key}{COMPILED_SUFFIX}",
        )

    def is_stale(self, source: Path) -> bool:
        """True when the artifacts for *source* must be rebuilt."""
        if not self.enabled:
            return True
        paths = self.artifacts(source)
        try:
            source_mtime = source.stat().st_mtime
            return (
                paths.expanded.stat().st_mtime < source_mtime
                or paths.compiled.stat().st_mtime < source_mtime
            )
        except FileNotFoundError:
            return True

    def load(self, source: Path) -> tuple[str, Program] | None:
        """Return the cached ``(expanded, program)`` for *source*, or ``None``.

        Stale artifacts and programs that fail to decode are misses.
        """
        if self.is_stale(source):
            logger.debug("Template cache miss: %s", source)
            return None
        paths = self.artifacts(source)
        try:
            expanded = paths.expanded.read_text(encoding="utf-8")
            program = loads(paths.compiled.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug("Template cache vanished: %s", source)
            return None
        except ProgramDecodeError as exc:
            logger.debug("Template cache unreadable for %s: %s", source, exc)
            return None
        logger.debug("Template cache hit: %s", source)
        return expanded, program

    def store(self, source: Path, expanded: str, program: Program) -> None:
        """Write both artifacts. No-op when caching is disabled."""
        if not self.enabled:
            return
        paths = self.artifacts(source)
        self.directory.mkdir(parents=True, exist_ok=True)
        _atomic_write(paths.expanded, expanded)
        _atomic_write(paths.compiled, dumps(program))
        logger.debug("Template cache written: %s", source)

    def clear(self) -> int:
        """Remove every artifact in the cache directory; return the count."""
        if not self.directory.is_dir():
            return 0
        removed = 0
        for suffix in (EXPANDED_SUFFIX, COMPILED_SUFFIX):
            for path in self.directory.glob(f"*{suffix}"):
                path.unlink(missing_ok=True)
                removed += 1
        logger.debug("Template cache cleared: %d file(s) in %s", removed, self.directory)
        return removed


def _atomic_write(path: Path, text: str) -> None:
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
