"""Tests for kiln.conf: dotted-key store with hidden keys."""

from kiln.conf import Conf


class TestConfSetGet:
    def test_dotted_set_creates_levels(self) -> None:
        conf = Conf()
        conf.set("app.name", "Demo")
        assert conf.get("app") == {"name": "Demo"}
        assert conf.get("app.name") == "Demo"

    def test_missing_segment_returns_default(self) -> None:
        conf = Conf({"app": {"name": "Demo"}})
        assert conf.get("app.missing") is None
        assert conf.get("app.name.deeper", "fallback") == "fallback"
        assert conf.get("nope", 0) == 0

    def test_scalar_intermediate_is_replaced(self) -> None:
        conf = Conf()
        conf.set("a", 1)
        conf.set("a.b", 2)
        assert conf.get("a") == {"b": 2}

    def test_mapping_sets_each_pair(self) -> None:
        conf = Conf()
        conf.set({"site.title": "Kiln", "site.lang": "en"})
        assert conf.get("site") == {"title": "Kiln", "lang": "en"}

    def test_contains(self) -> None:
        conf = Conf({"a.b": None})
        assert "a.b" in conf
        assert "a" in conf
        assert "a.c" not in conf
        assert 3 not in conf


class TestConfDelete:
    def test_delete_leaf(self) -> None:
        conf = Conf({"a.b": 1, "a.c": 2})
        conf.delete("a.b")
        assert conf.get("a") == {"c": 2}

    def test_delete_missing_path_is_ignored(self) -> None:
        conf = Conf({"a": 1})
        conf.delete("a.b.c")
        conf.delete("x")
        assert conf.all() == {"a": 1}


class TestConfAll:
    def test_hidden_keys_are_excluded(self) -> None:
        conf = Conf()
        conf.set("api.url", "https://example.test")
        conf.set("api.secret", "s3cret", hide=True)
        assert conf.all() == {"api": {"url": "https://example.test"}}
        assert conf.all(hidden=True)["api"]["secret"] == "s3cret"

    def test_exclude_missing_path_is_ignored(self) -> None:
        conf = Conf({"a": 1})
        conf.exclude("b.c", "b.c")
        assert conf.all() == {"a": 1}

    def test_all_returns_a_copy(self) -> None:
        conf = Conf({"a.b": [1]})
        snapshot = conf.all()
        snapshot["a"]["b"].append(2)
        assert conf.get("a.b") == [1]
