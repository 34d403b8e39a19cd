"""Nested key-value store addressed by dotted keys.

One ``Conf`` per site instead of process-wide state: the site owns it and
passes it to whatever needs it (template data, engine overrides).

    conf = Conf()
    conf.set("app.name", "Demo")
    conf.set("api.secret", "s3cret", hide=True)
    conf.get("app.name")        # "Demo"
    conf.all()                  # {"app": {"name": "Demo"}, "api": {}}
"""

import copy
from collections.abc import Mapping
from typing import Any

_MISSING = object()


class Conf:
    """Dotted-key configuration store with hide/exclude support."""

    __slots__ = ("_data", "_excluded")

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._excluded: list[str] = []
        if values:
            self.set(values)

    def set(self, key: str | Mapping[str, Any], value: Any = None, *, hide: bool = False) -> None:
        """Set *key* to *value*, creating intermediate levels.

        A mapping sets each of its ``key: value`` pairs. Intermediate values
        that are not dicts are replaced. ``hide=True`` keeps the key out of
        ``all()``.
        """
        if isinstance(key, Mapping):
            for k, v in key.items():
                self.set(k, v)
            return
        *parents, leaf = key.split(".")
        ref = self._data
        for segment in parents:
            child = ref.get(segment)
            if not isinstance(child, dict):
                child = {}
                ref[segment] = child
            ref = child
        ref[leaf] = value
        if hide:
            self.exclude(key)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at *key*, or *default* if any segment is missing."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def delete(self, key: str) -> None:
        """Remove *key* if present. Missing paths are ignored."""
        *parents, leaf = key.split(".")
        ref = self._data
        for segment in parents:
            ref = ref.get(segment)
            if not isinstance(ref, dict):
                return
        ref.pop(leaf, None)

    def exclude(self, *paths: str) -> None:
        """Keep *paths* out of ``all()`` output."""
        for path in paths:
            if path not in self._excluded:
                self._excluded.append(path)

    def all(self, *, hidden: bool = False) -> dict[str, Any]:
        """Return a deep copy of the store.

        Excluded paths are removed unless *hidden* is true.
        """
        data = copy.deepcopy(self._data)
        if hidden:
            return data
        for path in self._excluded:
            *parents, leaf = path.split(".")
            ref: Any = data
            for segment in parents:
                ref = ref.get(segment) if isinstance(ref, dict) else None
            if isinstance(ref, dict):
                ref.pop(leaf, None)
        return data

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._lookup(key) is not _MISSING

    def __repr__(self) -> str:
        return f"Conf({self.all()!r})"

    def _lookup(self, key: str) -> Any:
        ref: Any = self._data
        for segment in key.split("."):
            if not isinstance(ref, dict) or segment not in ref:
                return _MISSING
            ref = ref[segment]
        return ref
