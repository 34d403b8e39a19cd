"""Template AST nodes.

Produced by ``kiln.templating.parser``, consumed by the compiler. All nodes
are frozen; block registration works on node identity, so a definition
seen twice (a block invoked twice) is recognised as the same one.
"""

from dataclasses import dataclass

from kiln.templating.expressions import Expr


@dataclass(frozen=True, slots=True)
class Node:
    lineno: int


@dataclass(frozen=True, slots=True)
class Document(Node):
    name: str
    body: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class Text(Node):
    value: str


@dataclass(frozen=True, slots=True)
class Output(Node):
    """``{{ expr }}`` / ``{{ @expr }}``.

    ``fallback`` is set for ``{{ @name }}``: it is used when ``name`` turns
    out not to be a block, so the tag echoes the variable instead.
    """

    expr: Expr | None
    raw: bool = False
    fallback: Expr | None = None


@dataclass(frozen=True, slots=True)
class Statement(Node):
    """``{{@ expr }}``: evaluated for its effect."""

    expr: Expr | None


@dataclass(frozen=True, slots=True)
class Assign(Node):
    """``{{@ name = expr }}``: local to the current scope only."""

    name: str
    value: Expr | None


@dataclass(frozen=True, slots=True)
class Var(Node):
    """``{{@ var name expr }}``: local, and recorded into the block scope."""

    name: str
    value: Expr | None


@dataclass(frozen=True, slots=True)
class SetBlock(Node):
    """``{{@ setblock name [args] }} ... {{@ endsetblock }}``"""

    name: str
    args: Expr | None
    args_source: str
    body: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class BlockCall(Node):
    """``{{@ block name [args] }}``"""

    name: str
    args: Expr | None
    args_source: str


@dataclass(frozen=True, slots=True)
class Parent(Node):
    """``{{@ parent }}`` placeholder inside a setblock body."""


@dataclass(frozen=True, slots=True)
class If(Node):
    branches: tuple[tuple[Expr, tuple[Node, ...]], ...]
    orelse: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True)
class For(Node):
    targets: tuple[str, ...]
    iterable: Expr
    body: tuple[Node, ...]
    orelse: tuple[Node, ...] = ()
