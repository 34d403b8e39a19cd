"""Program runtime.

Executes a compiled ``Program`` against a data context. Each block
invocation runs in an isolated variable scope: the parent scope's
variables, then the block's default arguments, then the invocation
arguments. Scopes are kept by invocation id so nested blocks inherit their
ancestors' variables (including ``var`` declarations) while sibling blocks
never see each other's.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from kida import Markup

from kiln.errors import BlockNotFoundError, TemplateRuntimeError
from kiln.templating.evaluator import Evaluator, escape, to_text
from kiln.templating.expressions import BlockRef
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

Locals = dict[str, Any]


class Loop:
    """The ``loop`` variable inside ``for`` bodies."""

    __slots__ = ("index0", "length")

    def __init__(self, length: int) -> None:
        self.length = length
        self.index0 = 0

    @property
    def index(self) -> int:
        return self.index0 + 1

    @property
    def first(self) -> bool:
        return self.index0 == 0

    @property
    def last(self) -> bool:
        return self.index0 == self.length - 1

    @property
    def revindex(self) -> int:
        return self.length - self.index0

    def __repr__(self) -> str:
        return f"Loop(index={self.index}, length={self.length})"


class Runtime:
    """Renders one program once; not reusable across renders."""

    __slots__ = ("_autoescape", "_dispatch", "_evaluator", "_program", "_root", "_scopes")

    def __init__(
        self,
        program: Program,
        data: Mapping[str, Any],
        *,
        globals_: Mapping[str, Any] | None = None,
        strict: bool = False,
        autoescape: bool = False,
    ) -> None:
        self._program = program
        self._root: Locals = dict(data)
        self._scopes: dict[str, Locals] = {}
        self._autoescape = autoescape
        self._evaluator = Evaluator(globals_, strict=strict, block_renderer=self._render_ref)
        self._dispatch: dict[str, Callable[[Any, Locals, list[str]], None]] = {
            "TextOp": self._text,
            "EchoOp": self._echo,
            "ExecOp": self._exec,
            "AssignOp": self._assign,
            "VarOp": self._var,
            "BlockOp": self._block,
            "IfOp": self._if,
            "ForOp": self._for,
            "ErrorOp": self._inline_error,
        }

    def render(self) -> str:
        out: list[str] = []
        self._run(self._program.body, dict(self._root), out)
        return "".join(out)

    def _run(self, ops: Iterable[Op], local: Locals, out: list[str]) -> None:
        for op in ops:
            try:
                self._dispatch[type(op).__name__](op, local, out)
            except TemplateRuntimeError as exc:
                if exc.lineno is not None:
                    raise
                raise type(exc)(exc.message, template=self._program.name, lineno=op.lineno) from exc

    # -- ops --

    def _text(self, op: TextOp, local: Locals, out: list[str]) -> None:
        out.append(op.value)

    def _echo(self, op: EchoOp, local: Locals, out: list[str]) -> None:
        value = self._evaluator.evaluate(op.expr, local)
        if self._autoescape and not op.raw:
            out.append(escape(value))
        else:
            out.append(to_text(value))

    def _exec(self, op: ExecOp, local: Locals, out: list[str]) -> None:
        self._evaluator.evaluate(op.expr, local)

    def _assign(self, op: AssignOp, local: Locals, out: list[str]) -> None:
        local[op.name] = self._evaluator.evaluate(op.value, local)

    def _var(self, op: VarOp, local: Locals, out: list[str]) -> None:
        value = "" if op.value is None else self._evaluator.evaluate(op.value, local)
        local[op.name] = value
        self._scopes.setdefault(op.scope_id, {})[op.name] = value

    def _block(self, op: BlockOp, local: Locals, out: list[str]) -> None:
        base = self._scopes.get(op.parent_id, self._root)
        defaults = self._mapping(op.defaults, {**self._root, **base}, op.path)
        args = self._mapping(op.args, local, op.path)
        merged = {**base, **defaults, **args}
        self._scopes[op.block_id] = merged
        self._run(op.body, {**self._root, **merged}, out)

    def _if(self, op: IfOp, local: Locals, out: list[str]) -> None:
        for test, body in op.branches:
            if self._evaluator.evaluate(test, local):
                self._run(body, local, out)
                return
        self._run(op.orelse, local, out)

    def _for(self, op: ForOp, local: Locals, out: list[str]) -> None:
        iterable = self._evaluator.evaluate(op.iterable, local)
        try:
            if isinstance(iterable, Mapping):
                items = list(iterable.items()) if len(op.targets) > 1 else list(iterable)
            else:
                items = list(iterable)
        except TypeError as exc:
            raise TemplateRuntimeError(f"{type(iterable).__name__!r} object is not iterable") from exc

        if not items:
            self._run(op.orelse, local, out)
            return

        inner = dict(local)
        loop = Loop(len(items))
        inner["loop"] = loop
        for index, item in enumerate(items):
            loop.index0 = index
            if len(op.targets) == 1:
                inner[op.targets[0]] = item
            else:
                try:
                    values = tuple(item)
                except TypeError as exc:
                    raise TemplateRuntimeError(f"Cannot unpack {type(item).__name__!r}") from exc
                if len(values) != len(op.targets):
                    msg = f"Expected {len(op.targets)} values to unpack, got {len(values)}"
                    raise TemplateRuntimeError(msg)
                inner.update(zip(op.targets, values, strict=True))
            self._run(op.body, inner, out)

    def _inline_error(self, op: ErrorOp, local: Locals, out: list[str]) -> None:
        out.append(op.html)

    # -- helpers --

    def _mapping(self, expr: Any, local: Locals, path: str) -> Locals:
        """Evaluate block arguments; they must form a mapping."""
        if expr is None:
            return {}
        value = self._evaluator.evaluate(expr, local)
        if not value:
            return {}
        if isinstance(value, Mapping):
            return {str(k): v for k, v in value.items()}
        msg = f"Arguments of block {path} must be a mapping, got {type(value).__name__}"
        raise TemplateRuntimeError(msg)

    def _render_ref(self, node: BlockRef, local: Mapping[str, Any]) -> Markup:
        """Render an inline ``@name[args]`` reference to markup."""
        if node.ref is None:
            error = BlockNotFoundError(node.name, template=self._program.name)
            return Markup(error.to_html())
        op = self._program.refs[node.ref]
        buffer: list[str] = []
        self._run((op,), dict(local), buffer)
        return Markup("".join(buffer))
