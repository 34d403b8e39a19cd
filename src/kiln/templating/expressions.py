"""Expression language: tokenizer, tree nodes, and recursive-descent parser.

Expressions appear in echoes, statements, clause arguments, and include
paths. They are parsed into an immutable tree and evaluated by
``kiln.templating.evaluator``; nothing here executes host code.

Precedence, lowest first::

    a if c else b     c ? a : b
    a ?? b
    or  ||
    and &&
    not  !
    == != < <= > >= in  not in
    + - ~
    * / // %
    unary - +
    a.b  a.0  a[k]  f(x, key=y)
    literals, names, (expr), [list], ['k' => v], {'k': v}, @block[args]
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from typing import Any, NoReturn

from kiln.errors import TemplateSyntaxError

# -- Nodes --


@dataclass(frozen=True, slots=True)
class Expr:
    """Base class for expression nodes."""


@dataclass(frozen=True, slots=True)
class Const(Expr):
    value: Any


@dataclass(frozen=True, slots=True)
class Name(Expr):
    name: str


@dataclass(frozen=True, slots=True)
class Attr(Expr):
    """``obj.name``: key or attribute access; digit names index sequences."""

    obj: Expr
    name: str


@dataclass(frozen=True, slots=True)
class Index(Expr):
    """``obj[key]``"""

    obj: Expr
    key: Expr


@dataclass(frozen=True, slots=True)
class Call(Expr):
    func: Expr
    args: tuple[Expr, ...] = ()
    kwargs: tuple[tuple[str, Expr], ...] = ()


@dataclass(frozen=True, slots=True)
class ListLit(Expr):
    items: tuple[Expr, ...] = ()


@dataclass(frozen=True, slots=True)
class MapLit(Expr):
    pairs: tuple[tuple[Expr, Expr], ...] = ()


@dataclass(frozen=True, slots=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True, slots=True)
class Binary(Expr):
    """Arithmetic, concatenation, comparison, and membership."""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Logical(Expr):
    """Short-circuit ``and`` / ``or``."""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Conditional(Expr):
    test: Expr
    body: Expr
    orelse: Expr


@dataclass(frozen=True, slots=True)
class Coalesce(Expr):
    """``left ?? right``: *right* when *left* is undefined or None."""

    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class BlockRef(Expr):
    """Inline block reference ``@name[args]``.

    ``ref`` is filled in by the compiler with the index of the compiled
    invocation in ``Program.refs``; ``None`` means the name did not resolve.
    """

    name: str
    args: Expr | None = None
    ref: int | None = None


# -- Sanitizing --

_UNSAFE_RE = re.compile(r"<\?(?:php|=)?|\{\{@", re.IGNORECASE)


def sanitize(source: str) -> str:
    """Blank *source* if it carries statement-tag or code-execution syntax."""
    if _UNSAFE_RE.search(source):
        return ""
    return source


# -- Tokenizer --

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")
_INT_RE = re.compile(r"\d+")
_NAME_RE = re.compile(r"[A-Za-z_]\w*")
_OPERATORS = (
    "//", "==", "!=", "<=", ">=", "&&", "||", "??", "=>",
    "+", "-", "*", "/", "%", "~", "<", ">", "!", "?", ":",
    ".", ",", "(", ")", "[", "]", "{", "}", "=",
)  # fmt: skip
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True, slots=True)
class _Tok:
    kind: str  # "num", "str", "name", "op", "ref", "eof"
    value: Any
    pos: int


def scan_block_ref(source: str, at: int) -> tuple[int, str, str | None] | None:
    """Scan an inline block reference starting at ``source[at] == "@"``.

    Returns ``(end, name, args_source)`` where *args_source* is the
    bracketed argument expression including its brackets, or ``None`` when
    the reference carries no arguments. Returns ``None`` if no identifier
    follows the ``@``.

    Bracket depth is counted by hand (skipping string literals) because
    arguments may nest further brackets and block references.
    """
    n = len(source)
    i = at + 1
    if i >= n or not (source[i].isalpha() or source[i] == "_"):
        return None
    start = i
    while i < n and (source[i].isalnum() or source[i] == "_"):
        i += 1
    name = source[start:i]

    j = i
    while j < n and source[j].isspace():
        j += 1
    if j >= n or source[j] != "[":
        return i, name, None

    depth = 0
    quote: str | None = None
    k = j
    while k < n:
        ch = source[k]
        if quote is not None:
            if ch == "\\":
                k += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return k + 1, name, source[j : k + 1]
        k += 1
    msg = f"Unbalanced brackets in block reference @{name}"
    raise TemplateSyntaxError(msg)


def _read_string(source: str, pos: int) -> tuple[str, int]:
    quote = source[pos]
    chars: list[str] = []
    i = pos + 1
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == "\\" and i + 1 < n:
            nxt = source[i + 1]
            chars.append(_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        if ch == quote:
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    msg = f"Unterminated string literal in expression {source!r}"
    raise TemplateSyntaxError(msg)


def tokenize_expression(source: str) -> list[_Tok]:
    tokens: list[_Tok] = []
    pos = 0
    n = len(source)
    while pos < n:
        ch = source[pos]
        if ch.isspace():
            pos += 1
            continue

        after_dot = bool(tokens) and tokens[-1].kind == "op" and tokens[-1].value == "."
        if ch.isdigit():
            # ``a.2.3`` is two index segments, not the float 2.3
            match = (_INT_RE if after_dot else _NUMBER_RE).match(source, pos)
            assert match is not None
            text = match.group()
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(_Tok("num", value, pos))
            pos = match.end()
            continue

        if ch in "'\"":
            value, end = _read_string(source, pos)
            tokens.append(_Tok("str", value, pos))
            pos = end
            continue

        if ch.isalpha() or ch == "_":
            match = _NAME_RE.match(source, pos)
            assert match is not None
            tokens.append(_Tok("name", match.group(), pos))
            pos = match.end()
            continue

        if ch == "@":
            scanned = scan_block_ref(source, pos)
            if scanned is None:
                msg = f"Expected block name after '@' in expression {source!r}"
                raise TemplateSyntaxError(msg)
            end, name, args = scanned
            tokens.append(_Tok("ref", (name, args), pos))
            pos = end
            continue

        for op in _OPERATORS:
            if source.startswith(op, pos):
                tokens.append(_Tok("op", op, pos))
                pos += len(op)
                break
        else:
            msg = f"Unexpected character {ch!r} in expression {source!r}"
            raise TemplateSyntaxError(msg)

    tokens.append(_Tok("eof", None, n))
    return tokens


# -- Parser --

_LITERALS = {"true": True, "false": False, "null": None, "none": None}
_COMPARISONS = frozenset({"==", "!=", "<", "<=", ">", ">="})


class ExpressionParser:
    """Recursive-descent parser producing an ``Expr`` tree."""

    __slots__ = ("_pos", "_source", "_tokens")

    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = tokenize_expression(source)
        self._pos = 0

    def parse(self) -> Expr:
        expr = self._conditional()
        if self._peek().kind != "eof":
            self._fail(f"unexpected {self._peek().value!r}")
        return expr

    # -- token helpers --

    def _peek(self, offset: int = 0) -> _Tok:
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> _Tok:
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def _at_op(self, *ops: str) -> bool:
        tok = self._peek()
        return tok.kind == "op" and tok.value in ops

    def _at_word(self, *words: str) -> bool:
        tok = self._peek()
        return tok.kind == "name" and tok.value in words

    def _expect_op(self, op: str) -> None:
        if not self._at_op(op):
            self._fail(f"expected {op!r}")
        self._advance()

    def _fail(self, reason: str) -> NoReturn:
        tok = self._peek()
        found = "end of expression" if tok.kind == "eof" else repr(tok.value)
        msg = f"Invalid expression {self._source!r}: {reason} (found {found})"
        raise TemplateSyntaxError(msg)

    # -- grammar --

    def _conditional(self) -> Expr:
        expr = self._coalesce()
        if self._at_word("if"):
            self._advance()
            test = self._coalesce()
            if not self._at_word("else"):
                self._fail("expected 'else'")
            self._advance()
            return Conditional(test, expr, self._conditional())
        if self._at_op("?"):
            self._advance()
            body = self._conditional()
            self._expect_op(":")
            return Conditional(expr, body, self._conditional())
        return expr

    def _coalesce(self) -> Expr:
        left = self._or()
        while self._at_op("??"):
            self._advance()
            left = Coalesce(left, self._or())
        return left

    def _or(self) -> Expr:
        left = self._and()
        while self._at_word("or") or self._at_op("||"):
            self._advance()
            left = Logical("or", left, self._and())
        return left

    def _and(self) -> Expr:
        left = self._not()
        while self._at_word("and") or self._at_op("&&"):
            self._advance()
            left = Logical("and", left, self._not())
        return left

    def _not(self) -> Expr:
        if self._at_word("not") or self._at_op("!"):
            self._advance()
            return Unary("not", self._not())
        return self._comparison()

    def _comparison(self) -> Expr:
        left = self._additive()
        while True:
            tok = self._peek()
            if tok.kind == "op" and tok.value in _COMPARISONS:
                self._advance()
                left = Binary(tok.value, left, self._additive())
            elif self._at_word("in"):
                self._advance()
                left = Binary("in", left, self._additive())
            elif self._at_word("not") and self._peek(1).kind == "name" and self._peek(1).value == "in":
                self._advance()
                self._advance()
                left = Binary("not in", left, self._additive())
            else:
                return left

    def _additive(self) -> Expr:
        left = self._multiplicative()
        while self._at_op("+", "-", "~"):
            op = self._advance().value
            left = Binary(op, left, self._multiplicative())
        return left

    def _multiplicative(self) -> Expr:
        left = self._unary()
        while self._at_op("*", "/", "//", "%"):
            op = self._advance().value
            left = Binary(op, left, self._unary())
        return left

    def _unary(self) -> Expr:
        if self._at_op("-", "+"):
            op = self._advance().value
            return Unary(op, self._unary())
        return self._postfix(self._primary())

    def _postfix(self, expr: Expr) -> Expr:
        while True:
            if self._at_op("."):
                self._advance()
                tok = self._advance()
                if tok.kind == "name" or (tok.kind == "num" and isinstance(tok.value, int)):
                    expr = Attr(expr, str(tok.value))
                else:
                    self._pos -= 1
                    self._fail("expected a name after '.'")
            elif self._at_op("["):
                self._advance()
                key = self._conditional()
                self._expect_op("]")
                expr = Index(expr, key)
            elif self._at_op("("):
                self._advance()
                expr = self._call(expr)
            else:
                return expr

    def _call(self, func: Expr) -> Expr:
        args: list[Expr] = []
        kwargs: list[tuple[str, Expr]] = []
        while not self._at_op(")"):
            tok = self._peek()
            if tok.kind == "name" and self._peek(1).kind == "op" and self._peek(1).value == "=":
                self._advance()
                self._advance()
                kwargs.append((tok.value, self._conditional()))
            else:
                if kwargs:
                    self._fail("positional argument after keyword argument")
                args.append(self._conditional())
            if not self._at_op(","):
                break
            self._advance()
        self._expect_op(")")
        return Call(func, tuple(args), tuple(kwargs))

    def _primary(self) -> Expr:
        tok = self._advance()
        if tok.kind in ("num", "str"):
            return Const(tok.value)
        if tok.kind == "name":
            lowered = tok.value.lower()
            if lowered in _LITERALS:
                return Const(_LITERALS[lowered])
            return Name(tok.value)
        if tok.kind == "ref":
            name, args_source = tok.value
            args = ExpressionParser(args_source).parse() if args_source else None
            return BlockRef(name, args)
        if tok.kind == "op":
            if tok.value == "(":
                expr = self._conditional()
                self._expect_op(")")
                return expr
            if tok.value == "[":
                return self._bracket_literal()
            if tok.value == "{":
                return self._brace_literal()
        self._pos -= 1
        self._fail("expected a value")

    def _bracket_literal(self) -> Expr:
        """``[a, b]`` list or ``['k' => v]`` map."""
        items: list[Expr] = []
        pairs: list[tuple[Expr, Expr]] = []
        while not self._at_op("]"):
            value = self._conditional()
            if self._at_op("=>"):
                if items:
                    self._fail("cannot mix list items and '=>' pairs")
                self._advance()
                pairs.append((value, self._conditional()))
            else:
                if pairs:
                    self._fail("cannot mix list items and '=>' pairs")
                items.append(value)
            if not self._at_op(","):
                break
            self._advance()
        self._expect_op("]")
        if pairs:
            return MapLit(tuple(pairs))
        return ListLit(tuple(items))

    def _brace_literal(self) -> Expr:
        """``{'k': v}`` map."""
        pairs: list[tuple[Expr, Expr]] = []
        while not self._at_op("}"):
            key = self._conditional()
            self._expect_op(":")
            pairs.append((key, self._conditional()))
            if not self._at_op(","):
                break
            self._advance()
        self._expect_op("}")
        return MapLit(tuple(pairs))


@lru_cache(maxsize=1024)
def parse_expression(source: str) -> Expr:
    """Parse *source* into an expression tree (cached)."""
    return ExpressionParser(source).parse()


def parse_sanitized(source: str) -> Expr | None:
    """Sanitize then parse *source*; ``None`` for blank input."""
    cleaned = sanitize(source).strip()
    if not cleaned:
        return None
    return parse_expression(cleaned)


def transform(expr: Expr, fn: Callable[[Expr], Expr]) -> Expr:
    """Rebuild *expr* bottom-up, applying *fn* to every node."""
    changes: dict[str, Any] = {}
    for f in fields(expr):
        value = getattr(expr, f.name)
        new = _transform_value(value, fn)
        if new is not value:
            changes[f.name] = new
    if changes:
        expr = replace(expr, **changes)
    return fn(expr)


def _transform_value(value: Any, fn: Callable[[Expr], Expr]) -> Any:
    if isinstance(value, Expr):
        return transform(value, fn)
    if isinstance(value, tuple):
        items = tuple(_transform_value(v, fn) for v in value)
        if any(a is not b for a, b in zip(items, value, strict=True)):
            return items
    return value
