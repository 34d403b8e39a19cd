"""Recursive-descent template parser.

Turns the token stream from ``kiln.templating.lexer`` into a ``Document``.
Paired ``setblock``/``endsetblock`` tags are matched by depth counting, so
same-family blocks nest correctly; control flow is parsed with explicit
end tags.

Unmatched ``setblock``/``endsetblock`` tags are dropped in lenient mode and
raise ``TemplateSyntaxError`` in strict mode. Unbalanced control flow
always raises.
"""

import logging
import re
from typing import NoReturn

from kiln.errors import TemplateSyntaxError
from kiln.templating.expressions import (
    Expr,
    parse_sanitized,
    sanitize,
    scan_block_ref,
)
from kiln.templating.lexer import Token, TokenType, tokenize
from kiln.templating.nodes import (
    Assign,
    BlockCall,
    Document,
    For,
    If,
    Node,
    Output,
    Parent,
    SetBlock,
    Statement,
    Text,
    Var,
)

logger = logging.getLogger("kiln.templating")

_NAME_ARG_RE = re.compile(r"""(?:"([^"]*)"|'([^']*)'|([^\s\[]+))\s*(.*)\Z""", re.DOTALL)
_VAR_RE = re.compile(r"(\S+)(?:\s+(.*))?\Z", re.DOTALL)
_VAR_NAME_RE = re.compile(r"[A-Za-z_]\w*\Z")
_ASSIGN_RE = re.compile(r"([A-Za-z_]\w*)\s*=(?![=>])\s*(.*)\Z", re.DOTALL)
_FOR_RE = re.compile(r"([A-Za-z_]\w*(?:\s*,\s*[A-Za-z_]\w*)*)\s+in\s+(.+)\Z", re.DOTALL)

_BRANCH_KEYWORDS = frozenset({"elif", "elseif", "else", "endif", "endfor"})


def find_block_end(tokens: list[Token], start: int, stop: int) -> int | None:
    """Find the ``endsetblock`` closing the ``setblock`` at ``tokens[start]``.

    A counting automaton: depth is 1 after the opening tag, each nested
    ``setblock`` increments it, each ``endsetblock`` decrements it, and the
    scan terminates at depth 0 with the index of the closing tag. Returns
    ``None`` if the input runs out first; nothing is consumed in that case.
    """
    depth = 1
    for index in range(start + 1, stop):
        tok = tokens[index]
        if tok.type is not TokenType.STATEMENT:
            continue
        if tok.keyword == "setblock":
            depth += 1
        elif tok.keyword == "endsetblock":
            depth -= 1
            if depth == 0:
                return index
    return None


def split_name(argument: str) -> tuple[str, str]:
    """Split a clause argument into ``(name, rest)``.

    Names may be quoted (``"x"``) and may contain ``/`` for explicit paths.
    """
    match = _NAME_ARG_RE.match(argument.strip())
    if match is None:
        return "", ""
    name = next(g for g in match.groups()[:3] if g is not None)
    return name, match.group(4).strip()


class Parser:
    """Parses one template source into a ``Document``."""

    __slots__ = ("_name", "_pos", "_strict", "_tokens")

    def __init__(self, tokens: list[Token], *, name: str = "<string>", strict: bool = False) -> None:
        self._tokens = tokens
        self._name = name
        self._strict = strict
        self._pos = 0

    def parse(self) -> Document:
        body, end = self._subparse(len(self._tokens), frozenset())
        assert end is None
        return Document(lineno=1, name=self._name, body=body)

    # -- structure --

    def _subparse(self, stop: int, ends: frozenset[str]) -> tuple[tuple[Node, ...], Token | None]:
        """Parse nodes until one of *ends* or *stop*.

        Returns the nodes and the end token (left unconsumed), or ``None``
        when *stop* was reached.
        """
        nodes: list[Node] = []
        while self._pos < stop:
            tok = self._tokens[self._pos]
            if tok.type is TokenType.TEXT:
                nodes.append(Text(tok.lineno, tok.value))
                self._pos += 1
            elif tok.type is TokenType.ECHO:
                nodes.append(self._echo(tok))
                self._pos += 1
            elif tok.keyword in ends:
                return tuple(nodes), tok
            else:
                node = self._statement(tok, stop)
                if node is not None:
                    nodes.append(node)
        return tuple(nodes), None

    def _statement(self, tok: Token, stop: int) -> Node | None:
        keyword = tok.keyword
        if keyword == "setblock":
            return self._setblock(tok, stop)
        if keyword == "endsetblock":
            self._unmatched(tok, "endsetblock without setblock")
            self._pos += 1
            return None
        if keyword == "if":
            return self._if(tok, stop)
        if keyword == "for":
            return self._for(tok, stop)
        if keyword in _BRANCH_KEYWORDS:
            self._fail(tok, f"Unexpected '{keyword}'")

        self._pos += 1
        if keyword == "var":
            return self._var(tok)
        if keyword == "block":
            name, rest = split_name(tok.argument)
            if not name:
                self._fail(tok, "block clause requires a name")
            return BlockCall(tok.lineno, name, self._expression(rest, tok), rest)
        if keyword == "parent":
            return Parent(tok.lineno)
        if keyword == "include":
            self._fail(tok, "include clause was not expanded")

        match = _ASSIGN_RE.match(tok.value)
        if match is not None:
            return Assign(tok.lineno, match.group(1), self._expression(match.group(2), tok))
        return Statement(tok.lineno, self._expression(tok.value, tok))

    def _setblock(self, tok: Token, stop: int) -> Node | None:
        end = find_block_end(self._tokens, self._pos, stop)
        if end is None:
            self._unmatched(tok, "setblock without endsetblock")
            self._pos += 1
            return None
        name, rest = split_name(tok.argument)
        if not name:
            self._fail(tok, "setblock clause requires a name")
        self._pos += 1
        body, _ = self._subparse(end, frozenset())
        self._pos = end + 1
        return SetBlock(tok.lineno, name, self._expression(rest, tok), rest, body)

    def _if(self, tok: Token, stop: int) -> Node:
        branches: list[tuple[Expr, tuple[Node, ...]]] = []
        orelse: tuple[Node, ...] = ()
        test = self._required_expression(tok.argument, tok, "if")
        self._pos += 1
        ends = frozenset({"elif", "elseif", "else", "endif"})
        while True:
            body, end = self._subparse(stop, ends)
            if end is None:
                self._fail(tok, "if without endif")
            branches.append((test, body))
            self._pos += 1
            if end.keyword == "endif":
                break
            if end.keyword == "else":
                orelse, close = self._subparse(stop, frozenset({"endif"}))
                if close is None:
                    self._fail(tok, "if without endif")
                self._pos += 1
                break
            test = self._required_expression(end.argument, end, end.keyword or "elif")
        return If(tok.lineno, tuple(branches), orelse)

    def _for(self, tok: Token, stop: int) -> Node:
        match = _FOR_RE.match(tok.argument)
        if match is None:
            self._fail(tok, f"Invalid for clause {tok.argument!r}")
        targets = tuple(t.strip() for t in match.group(1).split(","))
        iterable = self._required_expression(match.group(2), tok, "for")
        self._pos += 1
        body, end = self._subparse(stop, frozenset({"else", "endfor"}))
        if end is None:
            self._fail(tok, "for without endfor")
        self._pos += 1
        orelse: tuple[Node, ...] = ()
        if end.keyword == "else":
            orelse, close = self._subparse(stop, frozenset({"endfor"}))
            if close is None:
                self._fail(tok, "for without endfor")
            self._pos += 1
        return For(tok.lineno, targets, iterable, body, orelse)

    # -- leaves --

    def _echo(self, tok: Token) -> Output:
        body = tok.value
        if not body.startswith("@"):
            return Output(tok.lineno, self._expression(body, tok))
        rest = body[1:].strip()
        try:
            scanned = scan_block_ref(body, 0) if sanitize(body) else None
        except TemplateSyntaxError as exc:
            raise TemplateSyntaxError(exc.message, template=self._name, lineno=tok.lineno) from exc
        if scanned is not None and scanned[0] == len(body):
            # ``{{ @name }}`` may name a block or a variable; the compiler
            # decides once blocks are registered.
            ref = self._expression(body, tok)
            try:
                fallback = parse_sanitized(rest)
            except TemplateSyntaxError:
                fallback = None
            return Output(tok.lineno, ref, raw=True, fallback=fallback)
        return Output(tok.lineno, self._expression(rest, tok), raw=True)

    def _var(self, tok: Token) -> Node:
        matched = _VAR_RE.match(tok.argument.strip())
        name, rest = (matched.group(1), matched.group(2) or "") if matched else ("", "")
        if not _VAR_NAME_RE.match(name):
            self._fail(tok, f"Invalid variable name {name!r}")
        return Var(tok.lineno, name, self._expression(rest, tok))

    def _expression(self, source: str, tok: Token) -> Expr | None:
        try:
            return parse_sanitized(source)
        except TemplateSyntaxError as exc:
            raise TemplateSyntaxError(exc.message, template=self._name, lineno=tok.lineno) from exc

    def _required_expression(self, source: str, tok: Token, clause: str) -> Expr:
        expr = self._expression(source, tok)
        if expr is None:
            self._fail(tok, f"{clause} clause requires an expression")
        return expr

    def _unmatched(self, tok: Token, reason: str) -> None:
        if self._strict:
            self._fail(tok, reason.capitalize())
        logger.debug("Dropping unmatched tag in %s:%d (%s)", self._name, tok.lineno, reason)

    def _fail(self, tok: Token, message: str) -> NoReturn:
        raise TemplateSyntaxError(message, template=self._name, lineno=tok.lineno)


def parse(source: str, *, name: str = "<string>", strict: bool = False) -> Document:
    """Lex and parse *source* into a ``Document``."""
    return Parser(tokenize(source), name=name, strict=strict).parse()
