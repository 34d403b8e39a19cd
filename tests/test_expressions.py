"""Tests for kiln.templating.expressions: parsing and sanitizing."""

import pytest

from kiln.errors import TemplateSyntaxError
from kiln.templating.expressions import (
    Attr,
    Binary,
    BlockRef,
    Call,
    Coalesce,
    Conditional,
    Const,
    Index,
    ListLit,
    Logical,
    MapLit,
    Name,
    Unary,
    parse_expression,
    parse_sanitized,
    sanitize,
    scan_block_ref,
    transform,
)


class TestParseExpression:
    def test_literals(self) -> None:
        assert parse_expression("42") == Const(42)
        assert parse_expression("1.5") == Const(1.5)
        assert parse_expression("'hi'") == Const("hi")
        assert parse_expression("true") == Const(True)
        assert parse_expression("null") == Const(None)

    def test_dotted_path_with_index_segments(self) -> None:
        assert parse_expression("a.b.2") == Attr(Attr(Name("a"), "b"), "2")

    def test_index_and_call(self) -> None:
        expr = parse_expression("f(x, sep=', ')[0]")
        assert expr == Index(
            Call(Name("f"), (Name("x"),), (("sep", Const(", ")),)),
            Const(0),
        )

    def test_precedence(self) -> None:
        expr = parse_expression("1 + 2 * 3 == 7 and not done")
        assert expr == Logical(
            "and",
            Binary("==", Binary("+", Const(1), Binary("*", Const(2), Const(3))), Const(7)),
            Unary("not", Name("done")),
        )

    def test_symbolic_operators(self) -> None:
        assert parse_expression("a && b") == Logical("and", Name("a"), Name("b"))
        assert parse_expression("a || b") == Logical("or", Name("a"), Name("b"))
        assert parse_expression("!a") == Unary("not", Name("a"))

    def test_conditionals(self) -> None:
        ternary = parse_expression("ok ? 'y' : 'n'")
        inline = parse_expression("'y' if ok else 'n'")
        assert ternary == inline == Conditional(Name("ok"), Const("y"), Const("n"))

    def test_coalesce(self) -> None:
        assert parse_expression("title ?? 'Untitled'") == Coalesce(Name("title"), Const("Untitled"))

    def test_not_in(self) -> None:
        assert parse_expression("x not in xs") == Binary("not in", Name("x"), Name("xs"))

    def test_list_and_map_literals(self) -> None:
        assert parse_expression("[1, 2]") == ListLit((Const(1), Const(2)))
        arrow = parse_expression("['a' => 1]")
        brace = parse_expression("{'a': 1}")
        assert arrow == brace == MapLit(((Const("a"), Const(1)),))

    def test_block_reference(self) -> None:
        expr = parse_expression("@card['title' => t]")
        assert expr == BlockRef("card", MapLit(((Const("title"), Name("t")),)))

    @pytest.mark.parametrize("source", ["1 +", "a b", "f(x=1, 2)", "[1, 'a' => 2]", "'open", "a.", "#"])
    def test_invalid(self, source: str) -> None:
        with pytest.raises(TemplateSyntaxError):
            parse_expression(source)


class TestSanitize:
    @pytest.mark.parametrize("source", ["<?php echo 1 ?>", "<?= x ?>", "a ~ '{{@ x }}'"])
    def test_blanks_unsafe(self, source: str) -> None:
        assert sanitize(source) == ""
        assert parse_sanitized(source) is None

    def test_keeps_safe(self) -> None:
        assert sanitize("a < b") == "a < b"

    def test_blank_input(self) -> None:
        assert parse_sanitized("   ") is None


class TestScanBlockRef:
    def test_without_args(self) -> None:
        assert scan_block_ref("@title rest", 0) == (6, "title", None)

    def test_nested_brackets(self) -> None:
        source = "@list[[1, ']'], @x[2]] tail"
        end, name, args = scan_block_ref(source, 0)
        assert name == "list"
        assert args == "[[1, ']'], @x[2]]"
        assert source[end:] == " tail"

    def test_not_a_reference(self) -> None:
        assert scan_block_ref("@ 1", 0) is None

    def test_unbalanced(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="Unbalanced"):
            scan_block_ref("@x[1, 2", 0)


class TestTransform:
    def test_bottom_up_rewrite(self) -> None:
        expr = parse_expression("a + b")

        def rename(node):
            if isinstance(node, Name):
                return Name(node.name.upper())
            return node

        assert transform(expr, rename) == Binary("+", Name("A"), Name("B"))
