"""Block registry and scope stack.

Blocks live under hierarchical paths derived from ``setblock`` nesting
(``/page/title``). Lookup walks the scope stack outward, innermost scope
first, until a path is found or the stack is exhausted.

The registry is rebuilt on every compile; it is never persisted.
"""

import hashlib
import logging
from dataclasses import dataclass, replace

from kiln.templating.expressions import Expr
from kiln.templating.nodes import For, If, Node, Parent, SetBlock

logger = logging.getLogger("kiln.templating")

Scope = tuple[str, ...]


def block_path(scope: Scope, name: str) -> str:
    """Join *scope* and *name* into a ``/``-separated block path."""
    segments = [s for s in (*scope, *name.strip("/").split("/")) if s]
    return "/" + "/".join(segments)


def path_segments(path: str) -> Scope:
    return tuple(s for s in path.split("/") if s)


def context_id(source_path: str) -> str:
    """Identifier of one top-level render, namespacing block scopes."""
    return "d" + hashlib.sha1(source_path.encode()).hexdigest()[:7]  # noqa: S324


def block_id(path: str, args_source: str) -> str:
    """Identifier of one block invocation: path plus a digest of its arguments."""
    digest = hashlib.sha1((path + args_source).encode()).hexdigest()[:6]  # noqa: S324
    return f"{path}_{digest}"


@dataclass(frozen=True, slots=True)
class BlockDefinition:
    """A registered block.

    ``body`` already has ``{{@ parent }}`` placeholders replaced by the body
    it overrides. ``origin`` is the ``setblock`` node it came from.
    """

    path: str
    body: tuple[Node, ...]
    args: Expr | None
    args_source: str
    origin: SetBlock


class BlockRegistry:
    """Maps block paths to their definitions for one compile pass."""

    __slots__ = ("_blocks", "_seen")

    def __init__(self) -> None:
        self._blocks: dict[str, BlockDefinition] = {}
        self._seen: set[int] = set()

    def register(self, scope: Scope, node: SetBlock) -> BlockDefinition | None:
        """Register *node* under *scope*.

        A definition already registered once (its enclosing block was
        invoked before) is skipped and ``None`` is returned. Otherwise the
        new body overrides whatever lives at the same path, with
        ``{{@ parent }}`` bound to that previous body or, failing that, to
        the nearest definition of the same name in an enclosing scope.
        """
        if id(node) in self._seen:
            return None
        self._seen.add(id(node))

        path = block_path(scope, node.name)
        parent = self._blocks.get(path)
        if parent is None and scope:
            parent = self.lookup(node.name, scope[:-1])
        body = splice_parent(node.body, parent.body if parent is not None else ())
        definition = BlockDefinition(path, body, node.args, node.args_source, node)
        self._blocks[path] = definition
        logger.debug("Registered block %s%s", path, " (override)" if parent else "")
        return definition

    def resolve(self, name: str, scope: Scope) -> str | None:
        """Return the path *name* resolves to from *scope*, walking outward."""
        stack = list(scope)
        while True:
            path = block_path(tuple(stack), name)
            if path in self._blocks:
                return path
            if not stack:
                return None
            stack.pop()

    def lookup(self, name: str, scope: Scope) -> BlockDefinition | None:
        path = self.resolve(name, scope)
        return self._blocks[path] if path is not None else None

    def __getitem__(self, path: str) -> BlockDefinition:
        return self._blocks[path]

    def __contains__(self, path: object) -> bool:
        return path in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)


def splice_parent(body: tuple[Node, ...], parent: tuple[Node, ...]) -> tuple[Node, ...]:
    """Replace ``{{@ parent }}`` placeholders in *body* with *parent*.

    Placeholders inside ``if``/``for`` bodies are replaced too; nested
    ``setblock`` bodies keep their own placeholders.
    """
    out: list[Node] = []
    for node in body:
        if isinstance(node, Parent):
            out.extend(parent)
        elif isinstance(node, If):
            branches = tuple((test, splice_parent(nodes, parent)) for test, nodes in node.branches)
            out.append(replace(node, branches=branches, orelse=splice_parent(node.orelse, parent)))
        elif isinstance(node, For):
            out.append(
                replace(
                    node,
                    body=splice_parent(node.body, parent),
                    orelse=splice_parent(node.orelse, parent),
                )
            )
        else:
            out.append(node)
    return tuple(out)
