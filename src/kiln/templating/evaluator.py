"""Restricted expression evaluator.

Walks an ``Expr`` tree against an explicit scope mapping. There is no
``eval``: names resolve from the scope, then from the builtin globals, and
only callables reachable that way can be called. Keys and attributes are
interchangeable (``a.b`` works on dicts and objects alike), numeric
segments index sequences, and names starting with ``_`` never resolve.

Undefined names evaluate to ``Undefined`` (falsy, renders as ``''``); in
strict mode they raise ``UndefinedError`` instead.
"""

import dataclasses
import json
import operator
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from kida import Markup, html_escape

from kiln.errors import TemplateRuntimeError, UndefinedError
from kiln.templating.expressions import (
    Attr,
    Binary,
    BlockRef,
    Call,
    Coalesce,
    Conditional,
    Const,
    Expr,
    Index,
    ListLit,
    Logical,
    MapLit,
    Name,
    Unary,
)

# ``str.format`` walks attributes of its arguments, which would bypass the
# underscore rule.
_BLOCKED_ATTRIBUTES = frozenset({"format", "format_map", "mro"})

_MISSING = object()


class Undefined:
    """Value of a name or member that does not resolve."""

    __slots__ = ("name",)

    def __init__(self, name: str = "") -> None:
        self.name = name

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return ""

    def __html__(self) -> str:
        return ""

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __len__(self) -> int:
        return 0

    def __call__(self, *args: Any, **kwargs: Any) -> "Undefined":
        return self

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Undefined) or other is None

    def __hash__(self) -> int:
        return hash(None)

    def __repr__(self) -> str:
        return f"Undefined({self.name!r})"


def is_undefined(value: Any) -> bool:
    return isinstance(value, Undefined)


def to_text(value: Any) -> str:
    """Output conversion: ``None`` and undefined render as ``''``.

    Booleans render as ``1`` and ``''``.
    """
    if value is None or value is False or isinstance(value, Undefined):
        return ""
    if value is True:
        return "1"
    return str(value)


def escape(value: Any) -> Markup:
    """HTML-escape *value* unless it is already markup."""
    if isinstance(value, Markup):
        return value
    return Markup(html_escape(to_text(value)))


def to_json(value: Any, indent: int | None = None) -> Markup:
    return Markup(json.dumps(value, indent=indent, ensure_ascii=False, default=str))


BUILTIN_GLOBALS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sorted": sorted,
    "range": range,
    "enumerate": enumerate,
    "escape": escape,
    "json": to_json,
}


def normalize_data(value: Any) -> Any:
    """Normalise a data context so key and attribute access interchange.

    Mappings become dicts with string keys, dataclass instances and plain
    objects become dicts of their public attributes, and tuples, sets and
    lists become lists. Callables, markup and scalars pass through.
    """
    if isinstance(value, Mapping):
        return {str(k): normalize_data(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize_data(v) for v in value]
    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: normalize_data(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if callable(value):
        return value
    if hasattr(value, "__dict__"):
        return {k: normalize_data(v) for k, v in vars(value).items() if not k.startswith("_")}
    return value


_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "//": operator.floordiv,
    "%": operator.mod,
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "~": lambda a, b: to_text(a) + to_text(b),
    "in": lambda a, b: a in b,
    "not in": lambda a, b: a not in b,
}

_EVAL_ERRORS = (ArithmeticError, LookupError, TypeError, ValueError, AttributeError)

BlockRenderer = Callable[[BlockRef, Mapping[str, Any]], Any]


class Evaluator:
    """Evaluates expression trees against a scope mapping."""

    __slots__ = ("_block_renderer", "_dispatch", "_globals", "_strict")

    def __init__(
        self,
        globals_: Mapping[str, Any] | None = None,
        *,
        strict: bool = False,
        block_renderer: BlockRenderer | None = None,
    ) -> None:
        self._globals = {**BUILTIN_GLOBALS, **(globals_ or {})}
        self._strict = strict
        self._block_renderer = block_renderer
        self._dispatch: dict[str, Callable[[Any, Mapping[str, Any]], Any]] = {
            "Const": self._const,
            "Name": self._name,
            "Attr": self._attr,
            "Index": self._index,
            "Call": self._call,
            "ListLit": self._list,
            "MapLit": self._map,
            "Unary": self._unary,
            "Binary": self._binary,
            "Logical": self._logical,
            "Conditional": self._conditional,
            "Coalesce": self._coalesce,
            "BlockRef": self._block_ref,
        }

    def evaluate(self, expr: Expr | None, scope: Mapping[str, Any]) -> Any:
        """Evaluate *expr*; a missing (blanked) expression is undefined."""
        if expr is None:
            return Undefined()
        try:
            return self._eval(expr, scope)
        except TemplateRuntimeError:
            raise
        except _EVAL_ERRORS as exc:
            raise TemplateRuntimeError(f"{type(exc).__name__}: {exc}") from exc

    def _eval(self, expr: Expr, scope: Mapping[str, Any]) -> Any:
        return self._dispatch[type(expr).__name__](expr, scope)

    # -- lookup --

    def lookup(self, obj: Any, key: Any) -> Any:
        """Resolve *key* on *obj* as a mapping key, sequence offset, or attribute."""
        if isinstance(key, str) and key.startswith("_"):
            return self._undefined(key)
        if isinstance(obj, Undefined):
            return self._undefined(f"{obj.name}.{key}" if obj.name else str(key))
        if isinstance(obj, Mapping):
            if key in obj:
                return obj[key]
        elif isinstance(obj, Sequence) and not isinstance(obj, str):
            index = _as_index(key)
            if index is not None:
                return obj[index] if -len(obj) <= index < len(obj) else self._undefined(str(key))
        if isinstance(key, str) and key not in _BLOCKED_ATTRIBUTES:
            value = getattr(obj, key, _MISSING)
            if value is not _MISSING:
                return value
        return self._undefined(str(key))

    def _undefined(self, name: str) -> Undefined:
        if self._strict:
            raise UndefinedError(f"Undefined variable '{name}'")
        return Undefined(name)

    # -- nodes --

    def _const(self, node: Const, scope: Mapping[str, Any]) -> Any:
        return node.value

    def _name(self, node: Name, scope: Mapping[str, Any]) -> Any:
        name = node.name
        if name.startswith("_"):
            return self._undefined(name)
        if name in scope:
            return scope[name]
        if name in self._globals:
            return self._globals[name]
        return self._undefined(name)

    def _attr(self, node: Attr, scope: Mapping[str, Any]) -> Any:
        obj = self._eval(node.obj, scope)
        key: Any = node.name
        if key.isdigit() and not isinstance(obj, Mapping):
            key = int(key)
        return self.lookup(obj, key)

    def _index(self, node: Index, scope: Mapping[str, Any]) -> Any:
        return self.lookup(self._eval(node.obj, scope), self._eval(node.key, scope))

    def _call(self, node: Call, scope: Mapping[str, Any]) -> Any:
        func = self._eval(node.func, scope)
        if not callable(func):
            raise TemplateRuntimeError(f"{type(func).__name__!r} object is not callable")
        args = [self._eval(arg, scope) for arg in node.args]
        kwargs = {name: self._eval(value, scope) for name, value in node.kwargs}
        return func(*args, **kwargs)

    def _list(self, node: ListLit, scope: Mapping[str, Any]) -> list[Any]:
        return [self._eval(item, scope) for item in node.items]

    def _map(self, node: MapLit, scope: Mapping[str, Any]) -> dict[Any, Any]:
        return {self._eval(k, scope): self._eval(v, scope) for k, v in node.pairs}

    def _unary(self, node: Unary, scope: Mapping[str, Any]) -> Any:
        value = self._eval(node.operand, scope)
        if node.op == "not":
            return not value
        if node.op == "-":
            return -value
        return +value

    def _binary(self, node: Binary, scope: Mapping[str, Any]) -> Any:
        left = self._eval(node.left, scope)
        right = self._eval(node.right, scope)
        return _BINARY[node.op](left, right)

    def _logical(self, node: Logical, scope: Mapping[str, Any]) -> Any:
        left = self._eval(node.left, scope)
        if node.op == "and":
            return self._eval(node.right, scope) if left else left
        return left if left else self._eval(node.right, scope)

    def _conditional(self, node: Conditional, scope: Mapping[str, Any]) -> Any:
        if self._eval(node.test, scope):
            return self._eval(node.body, scope)
        return self._eval(node.orelse, scope)

    def _coalesce(self, node: Coalesce, scope: Mapping[str, Any]) -> Any:
        try:
            left = self._eval(node.left, scope)
        except UndefinedError:
            left = None
        if left is None or isinstance(left, Undefined):
            return self._eval(node.right, scope)
        return left

    def _block_ref(self, node: BlockRef, scope: Mapping[str, Any]) -> Any:
        if self._block_renderer is None:
            return self._undefined(f"@{node.name}")
        return self._block_renderer(node, scope)


def _as_index(key: Any) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None
