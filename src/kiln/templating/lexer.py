"""Template lexer: splits source text into text, echo, and statement tokens.

Tags:
    ``{{@ ... }}``  statement (clauses, control flow, inline statements)
    ``{{ ... }}``   echo (``{{ @expr }}`` echoes raw)

A ``}}`` inside a string literal or inside brackets does not close a tag,
so map literals such as ``{{ {'a': {'b': 1}} }}`` survive. An unterminated
``{{`` is kept as literal text.

Token spans are contiguous: joining ``source[t.start:t.end]`` over all
tokens reproduces the source exactly, which is what include expansion
relies on.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

TAG_OPEN = "{{"
TAG_CLOSE = "}}"
STATEMENT_MARK = "@"

KEYWORDS = frozenset(
    {
        "include",
        "var",
        "setblock",
        "endsetblock",
        "block",
        "parent",
        "if",
        "elif",
        "elseif",
        "else",
        "endif",
        "for",
        "endfor",
    }
)

_KEYWORD_RE = re.compile(r"([A-Za-z_]\w*)(?=[\s(:\[]|$)(.*)", re.DOTALL)

_OPENERS = "([{"
_CLOSERS = ")]}"


class TokenType(Enum):
    TEXT = "text"
    ECHO = "echo"
    STATEMENT = "statement"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexed unit of template source.

    ``value`` is the literal text for TEXT tokens and the stripped tag body
    for ECHO/STATEMENT tokens. ``keyword`` and ``argument`` are only set for
    statements whose first word is a clause keyword.
    """

    type: TokenType
    value: str
    lineno: int
    start: int
    end: int
    keyword: str | None = None
    argument: str = ""


def split_statement(body: str) -> tuple[str | None, str]:
    """Split a statement body into ``(keyword, argument)``.

    Returns ``(None, body)`` when the first word is not a clause keyword.
    A trailing ``:`` (``{{@ else: }}``) is dropped from the argument.
    """
    match = _KEYWORD_RE.match(body)
    if match is None:
        return None, body
    word = match.group(1).lower()
    if word not in KEYWORDS:
        return None, body
    rest = match.group(2).strip()
    if rest.endswith(":") and not rest.endswith("::"):
        rest = rest[:-1].rstrip()
    return word, rest


def find_tag_end(source: str, pos: int) -> int | None:
    """Return the index of the ``}}`` closing a tag whose body starts at *pos*.

    Quotes and bracket depth are tracked so closers nested inside string
    literals or brackets are skipped. Returns ``None`` if the tag never
    closes.
    """
    depth = 0
    quote: str | None = None
    i = pos
    n = len(source)
    while i < n:
        ch = source[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif depth == 0 and source.startswith(TAG_CLOSE, i):
            return i
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS and depth > 0:
            depth -= 1
        i += 1
    return None


def tokenize(source: str) -> list[Token]:
    """Lex *source* into a list of tokens."""
    return list(iter_tokens(source))


def iter_tokens(source: str) -> Iterator[Token]:
    pos = 0
    lineno = 1
    n = len(source)
    text_start = 0

    while pos < n:
        open_at = source.find(TAG_OPEN, pos)
        if open_at < 0:
            break
        is_statement = source.startswith(STATEMENT_MARK, open_at + 2)
        body_start = open_at + 2 + (1 if is_statement else 0)
        close_at = find_tag_end(source, body_start)
        if close_at is None:
            # Unterminated tag: everything from here on is text.
            break

        if open_at > text_start:
            text = source[text_start:open_at]
            yield Token(TokenType.TEXT, text, lineno, text_start, open_at)
            lineno += text.count("\n")

        end = close_at + len(TAG_CLOSE)
        body = source[body_start:close_at].strip()
        if is_statement:
            keyword, argument = split_statement(body)
            yield Token(
                TokenType.STATEMENT,
                body,
                lineno,
                open_at,
                end,
                keyword=keyword,
                argument=argument,
            )
        else:
            yield Token(TokenType.ECHO, body, lineno, open_at, end)
        lineno += source.count("\n", open_at, end)
        pos = text_start = end

    if text_start < n:
        yield Token(TokenType.TEXT, source[text_start:], lineno, text_start, n)
