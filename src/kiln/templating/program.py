"""Compiled template program and its JSON cache format.

A ``Program`` is a tree of instruction dataclasses produced by the
compiler and executed by ``kiln.templating.runtime``. Instructions hold
parsed expression trees, not source, so a cached program runs without
re-parsing.

The codec is generic over the instruction and expression dataclasses:
each object encodes as ``{"__type__": <class name>, <field>: <value>...}``
and tuples round-trip through JSON lists.
"""

import dataclasses
import json
from dataclasses import dataclass
from typing import Any

from kiln.errors import ProgramDecodeError
from kiln.templating import expressions
from kiln.templating.expressions import BlockRef, Expr

FORMAT_VERSION = 1


@dataclass(frozen=True, slots=True)
class Op:
    lineno: int


@dataclass(frozen=True, slots=True)
class TextOp(Op):
    value: str


@dataclass(frozen=True, slots=True)
class EchoOp(Op):
    expr: Expr | None
    raw: bool = False


@dataclass(frozen=True, slots=True)
class ExecOp(Op):
    expr: Expr | None


@dataclass(frozen=True, slots=True)
class AssignOp(Op):
    name: str
    value: Expr | None


@dataclass(frozen=True, slots=True)
class VarOp(Op):
    """Assign a local and record it into the block scope ``scope_id``."""

    name: str
    value: Expr | None
    scope_id: str


@dataclass(frozen=True, slots=True)
class BlockOp(Op):
    """Run a block body in an isolated variable scope.

    The scope is ``parent scope + defaults + args``, stored under
    ``block_id`` so nested invocations inherit it.
    """

    path: str
    block_id: str
    parent_id: str
    defaults: Expr | None
    args: Expr | None
    body: tuple[Op, ...]


@dataclass(frozen=True, slots=True)
class IfOp(Op):
    branches: tuple[tuple[Expr, tuple[Op, ...]], ...]
    orelse: tuple[Op, ...] = ()


@dataclass(frozen=True, slots=True)
class ForOp(Op):
    targets: tuple[str, ...]
    iterable: Expr
    body: tuple[Op, ...]
    orelse: tuple[Op, ...] = ()


@dataclass(frozen=True, slots=True)
class ErrorOp(Op):
    """Inline diagnostic for a recoverable error found at compile time."""

    html: str


@dataclass(frozen=True, slots=True)
class Program:
    """A compiled template.

    ``refs`` holds the compiled blocks behind inline ``@name`` references;
    ``BlockRef.ref`` indexes into it.
    """

    name: str
    context_id: str
    body: tuple[Op, ...]
    refs: tuple[BlockOp, ...] = ()


_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (
        TextOp,
        EchoOp,
        ExecOp,
        AssignOp,
        VarOp,
        BlockOp,
        IfOp,
        ForOp,
        ErrorOp,
        Program,
        expressions.Const,
        expressions.Name,
        expressions.Attr,
        expressions.Index,
        expressions.Call,
        expressions.ListLit,
        expressions.MapLit,
        expressions.Unary,
        expressions.Binary,
        expressions.Logical,
        expressions.Conditional,
        expressions.Coalesce,
        BlockRef,
    )
}


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {"__type__": type(value).__name__}
        for f in dataclasses.fields(value):
            out[f.name] = _encode(getattr(value, f.name))
        return out
    if isinstance(value, (tuple, list)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_decode(v) for v in value)
    if isinstance(value, dict):
        cls = _TYPES.get(value.get("__type__", ""))
        if cls is None:
            raise ProgramDecodeError(f"Unknown instruction type {value.get('__type__')!r}")
        kwargs = {k: _decode(v) for k, v in value.items() if k != "__type__"}
        return cls(**kwargs)
    return value


def dumps(program: Program) -> str:
    """Serialise *program* to the JSON cache format."""
    return json.dumps({"version": FORMAT_VERSION, "program": _encode(program)}, ensure_ascii=False)


def loads(text: str) -> Program:
    """Deserialise a program written by ``dumps``.

    Raises ``ProgramDecodeError`` for malformed input or an unknown format
    version.
    """
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ProgramDecodeError(f"Invalid program cache: {exc}") from exc
    if not isinstance(payload, dict) or payload.get("version") != FORMAT_VERSION:
        raise ProgramDecodeError("Unsupported program cache version")
    try:
        program = _decode(payload["program"])
    except (KeyError, TypeError) as exc:
        raise ProgramDecodeError(f"Invalid program cache: {exc}") from exc
    if not isinstance(program, Program):
        raise ProgramDecodeError("Program cache does not hold a program")
    return program
