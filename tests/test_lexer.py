"""Tests for kiln.templating.lexer: tag splitting."""

from kiln.templating.lexer import TokenType, find_tag_end, split_statement, tokenize


class TestTokenize:
    def test_plain_text(self) -> None:
        tokens = tokenize("<p>hello</p>")
        assert [t.type for t in tokens] == [TokenType.TEXT]
        assert tokens[0].value == "<p>hello</p>"

    def test_echo_and_statement(self) -> None:
        tokens = tokenize("a{{ name }}b{{@ var x 1 }}c")
        assert [t.type for t in tokens] == [
            TokenType.TEXT,
            TokenType.ECHO,
            TokenType.TEXT,
            TokenType.STATEMENT,
            TokenType.TEXT,
        ]
        assert tokens[1].value == "name"
        assert tokens[3].keyword == "var"
        assert tokens[3].argument == "x 1"

    def test_spans_reproduce_source(self) -> None:
        source = "x {{@ if a }}\n{{ b }}\n{{@ endif }} y {{ oops"
        tokens = tokenize(source)
        assert "".join(source[t.start : t.end] for t in tokens) == source

    def test_unterminated_tag_is_text(self) -> None:
        tokens = tokenize("before {{ never closed")
        assert len(tokens) == 1
        assert tokens[0].type is TokenType.TEXT
        assert tokens[0].value == "before {{ never closed"

    def test_closer_inside_string_or_brackets(self) -> None:
        tokens = tokenize("{{ '}}' }}{{ {'a': {'b': 1}} }}")
        assert [t.value for t in tokens] == ["'}}'", "{'a': {'b': 1}}"]

    def test_line_numbers(self) -> None:
        tokens = tokenize("one\ntwo\n{{ three }}\n{{@ four() }}")
        echo = next(t for t in tokens if t.type is TokenType.ECHO)
        statement = next(t for t in tokens if t.type is TokenType.STATEMENT)
        assert echo.lineno == 3
        assert statement.lineno == 4

    def test_keywords_are_case_insensitive(self) -> None:
        tokens = tokenize("{{@ SetBlock title }}{{@ ENDSETBLOCK }}")
        assert [t.keyword for t in tokens] == ["setblock", "endsetblock"]


class TestSplitStatement:
    def test_non_keyword(self) -> None:
        assert split_statement("items.append(1)") == (None, "items.append(1)")

    def test_keyword_prefix_of_name_is_not_keyword(self) -> None:
        assert split_statement("ifx == 1") == (None, "ifx == 1")

    def test_trailing_colon_dropped(self) -> None:
        assert split_statement("else:") == ("else", "")
        assert split_statement("if a:") == ("if", "a")


class TestFindTagEnd:
    def test_escaped_quote(self) -> None:
        source = r"{{ 'it\'s }}' }}"
        assert find_tag_end(source, 2) == len(source) - 2

    def test_never_closes(self) -> None:
        assert find_tag_end("{{ (a }}", 2) is None
