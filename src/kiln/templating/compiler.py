"""Template compiler: AST to instruction program.

One pass over the ``Document``. At every nesting level, ``setblock``
definitions are registered first (in document order) and only then is the
rest of the level compiled, so a block can be invoked before the text that
defines it. Block invocations compile the block body recursively with the
resolved path pushed as the new scope.

Missing or recursive blocks become inline diagnostics rather than errors.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import replace

from kiln.errors import BlockNotFoundError
from kiln.templating.blocks import BlockRegistry, Scope, block_id, path_segments
from kiln.templating.expressions import BlockRef, Expr, transform
from kiln.templating.includes import trace_comment
from kiln.templating.nodes import (
    Assign,
    BlockCall,
    Document,
    For,
    If,
    Node,
    Output,
    SetBlock,
    Statement,
    Text,
    Var,
)
from kiln.templating.program import (
    AssignOp,
    BlockOp,
    EchoOp,
    ErrorOp,
    ExecOp,
    ForOp,
    IfOp,
    Op,
    Program,
    TextOp,
    VarOp,
)

logger = logging.getLogger("kiln.templating")


class _Frame:
    """Where compilation currently is: block scope, scope id, active paths."""

    __slots__ = ("active", "scope", "scope_id")

    def __init__(self, scope: Scope, scope_id: str, active: tuple[str, ...]) -> None:
        self.scope = scope
        self.scope_id = scope_id
        self.active = active


class Compiler:
    """Compiles one parsed template into a ``Program``.

    A compiler is single-use: its block registry belongs to one compile.
    """

    __slots__ = ("_context_id", "_dispatch", "_name", "_refs", "_registry", "_trace")

    def __init__(self, *, name: str, context_id: str, trace_files: bool = False) -> None:
        self._name = name
        self._context_id = context_id
        self._trace = trace_files
        self._registry = BlockRegistry()
        self._refs: list[Op] = []
        self._dispatch: dict[str, Callable[[Node, _Frame], list[Op]]] = {
            "Text": self._compile_text,
            "Output": self._compile_output,
            "Statement": self._compile_statement,
            "Assign": self._compile_assign,
            "Var": self._compile_var,
            "SetBlock": self._compile_setblock,
            "BlockCall": self._compile_block_call,
            "Parent": self._compile_parent,
            "If": self._compile_if,
            "For": self._compile_for,
        }

    @property
    def registry(self) -> BlockRegistry:
        return self._registry

    def compile(self, document: Document) -> Program:
        frame = _Frame((), self._context_id, ())
        body = self._compile_level(document.body, frame)
        return Program(
            name=self._name,
            context_id=self._context_id,
            body=body,
            refs=tuple(self._refs),
        )

    # -- levels --

    def _compile_level(self, nodes: tuple[Node, ...], frame: _Frame) -> tuple[Op, ...]:
        for definition in _definitions(nodes):
            self._registry.register(frame.scope, definition)
        ops: list[Op] = []
        for node in nodes:
            ops.extend(self._dispatch[type(node).__name__](node, frame))
        return tuple(ops)

    # -- nodes --

    def _compile_text(self, node: Text, frame: _Frame) -> list[Op]:
        return [TextOp(node.lineno, node.value)]

    def _compile_output(self, node: Output, frame: _Frame) -> list[Op]:
        expr = node.expr
        if (
            node.fallback is not None
            and isinstance(expr, BlockRef)
            and self._registry.resolve(expr.name, frame.scope) is None
        ):
            # ``{{ @name }}`` where name is not a block: echo the variable.
            return [EchoOp(node.lineno, self._resolve_refs(node.fallback, frame, node.lineno), raw=True)]
        return [EchoOp(node.lineno, self._resolve_refs(expr, frame, node.lineno), raw=node.raw)]

    def _compile_statement(self, node: Statement, frame: _Frame) -> list[Op]:
        return [ExecOp(node.lineno, self._resolve_refs(node.expr, frame, node.lineno))]

    def _compile_assign(self, node: Assign, frame: _Frame) -> list[Op]:
        return [AssignOp(node.lineno, node.name, self._resolve_refs(node.value, frame, node.lineno))]

    def _compile_var(self, node: Var, frame: _Frame) -> list[Op]:
        value = self._resolve_refs(node.value, frame, node.lineno)
        return [VarOp(node.lineno, node.name, value, frame.scope_id)]

    def _compile_setblock(self, node: SetBlock, frame: _Frame) -> list[Op]:
        # Registered when its level was entered; emits nothing in place.
        return []

    def _compile_parent(self, node: Node, frame: _Frame) -> list[Op]:
        # Placeholders are spliced at registration; a stray one is empty.
        return []

    def _compile_block_call(self, node: BlockCall, frame: _Frame) -> list[Op]:
        args = self._resolve_refs(node.args, frame, node.lineno)
        op = self._invoke(node.name, args, node.args_source, frame, node.lineno)
        if isinstance(op, BlockOp) and self._trace:
            return [TextOp(node.lineno, trace_comment("block", op.path)), op]
        return [op]

    def _compile_if(self, node: If, frame: _Frame) -> list[Op]:
        branches = tuple(
            (self._resolve_refs(test, frame, node.lineno), self._compile_level(body, frame))
            for test, body in node.branches
        )
        return [IfOp(node.lineno, branches, self._compile_level(node.orelse, frame))]

    def _compile_for(self, node: For, frame: _Frame) -> list[Op]:
        return [
            ForOp(
                node.lineno,
                node.targets,
                self._resolve_refs(node.iterable, frame, node.lineno),
                self._compile_level(node.body, frame),
                self._compile_level(node.orelse, frame),
            )
        ]

    # -- blocks --

    def _invoke(
        self,
        name: str,
        args: Expr | None,
        args_source: str,
        frame: _Frame,
        lineno: int,
    ) -> Op:
        """Compile one block invocation, or an inline error if it cannot be."""
        path = self._registry.resolve(name, frame.scope)
        if path is None:
            return self._error(BlockNotFoundError(name, template=self._name), lineno)
        if path in frame.active:
            error = BlockNotFoundError(name, template=self._name, reason="is recursive")
            return self._error(error, lineno)

        definition = self._registry[path]
        invocation_id = block_id(path, args_source)
        inner = _Frame(path_segments(path), invocation_id, (*frame.active, path))
        body = self._compile_level(definition.body, inner)
        return BlockOp(
            lineno,
            path=path,
            block_id=invocation_id,
            parent_id=frame.scope_id,
            defaults=self._resolve_refs(definition.args, inner, lineno),
            args=args,
            body=body,
        )

    def _resolve_refs(self, expr: Expr | None, frame: _Frame, lineno: int) -> Expr | None:
        """Compile every inline ``@name[args]`` in *expr* into ``Program.refs``."""
        if expr is None:
            return None

        def compile_ref(node: Expr) -> Expr:
            if not isinstance(node, BlockRef):
                return node
            args_source = repr(node.args) if node.args is not None else ""
            op = self._invoke(node.name, node.args, args_source, frame, lineno)
            self._refs.append(op)
            return replace(node, ref=len(self._refs) - 1)

        return transform(expr, compile_ref)

    def _error(self, error: BlockNotFoundError, lineno: int) -> ErrorOp:
        logger.warning("%s", error)
        return ErrorOp(lineno, error.to_html())


def _definitions(nodes: tuple[Node, ...]) -> Iterator[SetBlock]:
    """Yield the ``setblock`` nodes of one level in document order.

    Definitions inside ``if``/``for`` bodies belong to the enclosing level;
    definitions nested in another ``setblock`` do not.
    """
    for node in nodes:
        if isinstance(node, SetBlock):
            yield node
        elif isinstance(node, If):
            for _, body in node.branches:
                yield from _definitions(body)
            yield from _definitions(node.orelse)
        elif isinstance(node, For):
            yield from _definitions(node.body)
            yield from _definitions(node.orelse)
