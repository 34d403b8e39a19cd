"""Tests for kiln.templating.evaluator: restricted expression evaluation."""

from dataclasses import dataclass

import pytest
from kida import Markup

from kiln.errors import TemplateRuntimeError, UndefinedError
from kiln.templating.evaluator import Evaluator, Undefined, escape, normalize_data, to_text
from kiln.templating.expressions import parse_expression


def _eval(source: str, scope: dict | None = None, *, strict: bool = False):
    return Evaluator(strict=strict).evaluate(parse_expression(source), scope or {})


class TestLookup:
    def test_dotted_path_on_nested_data(self) -> None:
        scope = {"a": {"b": [10, 20, 30]}}
        assert _eval("a.b.2", scope) == 30
        assert _eval("a['b'][0]", scope) == 10

    def test_attribute_access_on_objects(self) -> None:
        class User:
            name = "Ada"

        assert _eval("user.name", {"user": User()}) == "Ada"

    def test_undefined_is_falsy_and_renders_empty(self) -> None:
        value = _eval("missing.deeper")
        assert isinstance(value, Undefined)
        assert not value
        assert to_text(value) == ""
        assert list(value) == []

    def test_strict_raises_on_undefined(self) -> None:
        with pytest.raises(UndefinedError, match="missing"):
            _eval("missing", strict=True)

    def test_private_names_never_resolve(self) -> None:
        assert isinstance(_eval("_secret", {"_secret": 1}), Undefined)
        assert isinstance(_eval("x.__class__", {"x": 1}), Undefined)

    def test_format_is_blocked(self) -> None:
        assert isinstance(_eval("'{0.__class__}'.format", {}), Undefined)

    def test_out_of_range_index_is_undefined(self) -> None:
        assert isinstance(_eval("xs.5", {"xs": [1]}), Undefined)


class TestOperators:
    def test_arithmetic_and_comparison(self) -> None:
        assert _eval("1 + 2 * 3") == 7
        assert _eval("7 // 2") == 3
        assert _eval("3 > 2 and 2 >= 2") is True

    def test_concatenation_skips_undefined(self) -> None:
        assert _eval("'a' ~ missing ~ 1") == "a1"

    def test_membership(self) -> None:
        assert _eval("'x' in xs", {"xs": ["x"]}) is True
        assert _eval("'y' not in xs", {"xs": ["x"]}) is True

    def test_short_circuit(self) -> None:
        assert _eval("false and boom()", strict=True) is False
        assert _eval("'' or 'fallback'") == "fallback"

    def test_coalesce(self) -> None:
        assert _eval("title ?? 'Untitled'") == "Untitled"
        assert _eval("title ?? 'Untitled'", {"title": None}) == "Untitled"
        assert _eval("title ?? 'Untitled'", {"title": ""}) == ""
        assert _eval("title ?? 'Untitled'", strict=True) == "Untitled"

    def test_conditional(self) -> None:
        assert _eval("n > 1 ? 'many' : 'one'", {"n": 2}) == "many"

    def test_map_literal(self) -> None:
        assert _eval("['a' => 1, 'b' => x]", {"x": 2}) == {"a": 1, "b": 2}


class TestCalls:
    def test_builtin_globals(self) -> None:
        assert _eval("len(xs)", {"xs": [1, 2]}) == 2
        assert _eval("sorted(xs, reverse=true)", {"xs": [1, 3, 2]}) == [3, 2, 1]

    def test_scope_callable(self) -> None:
        assert _eval("greet('Ada')", {"greet": lambda name: f"Hi {name}"}) == "Hi Ada"

    def test_not_callable(self) -> None:
        with pytest.raises(TemplateRuntimeError, match="not callable"):
            _eval("x()", {"x": 1})

    def test_python_errors_are_wrapped(self) -> None:
        with pytest.raises(TemplateRuntimeError, match="ZeroDivisionError"):
            _eval("1 / 0")

    def test_custom_globals(self) -> None:
        evaluator = Evaluator({"site": "kiln"})
        assert evaluator.evaluate(parse_expression("site"), {}) == "kiln"


class TestHelpers:
    def test_escape_passes_markup_through(self) -> None:
        assert escape("<b>") == "&lt;b&gt;"
        assert escape(Markup("<b>")) == "<b>"

    def test_normalize_data(self) -> None:
        @dataclass
        class Point:
            x: int
            y: int

        class Plain:
            def __init__(self) -> None:
                self.visible = (1, 2)
                self._hidden = True

        data = normalize_data({"p": Point(1, 2), "o": Plain(), 3: "three"})
        assert data == {"p": {"x": 1, "y": 2}, "o": {"visible": [1, 2]}, "3": "three"}

    def test_missing_expression_is_undefined(self) -> None:
        assert isinstance(Evaluator().evaluate(None, {}), Undefined)
