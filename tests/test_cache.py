"""Tests for kiln.templating.cache: mtime-based invalidation."""

import logging
import os

import pytest

from kiln.config import TemplateConfig
from kiln.templating.cache import TemplateCache, cache_key
from kiln.templating.engine import Template
from kiln.templating.program import Program, TextOp


class TestCacheKey:
    def test_separators_replaced(self) -> None:
        assert cache_key("/srv/views/page.html") == "_srv_views_page.html"
        assert cache_key("C:\\views\\page.html") == "C__views_page.html"


class TestTemplateCache:
    def test_store_then_load(self, tmp_path) -> None:
        source = tmp_path / "page.html"
        source.write_text("x", encoding="utf-8")
        cache = TemplateCache(tmp_path / "cache")
        program = Program("page", "d0000000", (TextOp(1, "x"),))
        cache.store(source, "x", program)
        assert cache.load(source) == ("x", program)

    def test_missing_artifact_is_stale(self, tmp_path) -> None:
        source = tmp_path / "page.html"
        source.write_text("x", encoding="utf-8")
        cache = TemplateCache(tmp_path / "cache")
        cache.store(source, "x", Program("page", "d0", ()))
        cache.artifacts(source).expanded.unlink()
        assert cache.is_stale(source)
        assert cache.load(source) is None

    def test_corrupt_program_is_a_miss(self, tmp_path) -> None:
        source = tmp_path / "page.html"
        source.write_text("x", encoding="utf-8")
        cache = TemplateCache(tmp_path / "cache")
        cache.store(source, "x", Program("page", "d0", ()))
        cache.artifacts(source).compiled.write_text("{not json", encoding="utf-8")
        assert cache.load(source) is None

    def test_disabled_never_writes(self, tmp_path) -> None:
        source = tmp_path / "page.html"
        source.write_text("x", encoding="utf-8")
        cache = TemplateCache(tmp_path / "cache", enabled=False)
        cache.store(source, "x", Program("page", "d0", ()))
        assert not (tmp_path / "cache").exists()
        assert cache.is_stale(source)

    def test_clear(self, tmp_path) -> None:
        source = tmp_path / "page.html"
        source.write_text("x", encoding="utf-8")
        cache = TemplateCache(tmp_path / "cache")
        cache.store(source, "x", Program("page", "d0", ()))
        assert cache.clear() == 2
        assert cache.clear() == 0


class TestEngineCaching:
    def test_unchanged_source_is_not_recompiled(self, engine, write) -> None:
        page = write("page.html", "{{@ setblock t }}T{{@ endsetblock }}<{{@ block t }}>")
        first = engine.parse(page)
        artifacts = engine.cache.artifacts(page.resolve())
        stamps = (artifacts.expanded.stat().st_mtime_ns, artifacts.compiled.stat().st_mtime_ns)
        second = engine.parse(page)
        assert first == second == "<T>"
        assert (artifacts.expanded.stat().st_mtime_ns, artifacts.compiled.stat().st_mtime_ns) == stamps

    def test_touch_forces_recompile(self, engine, write, caplog: pytest.LogCaptureFixture) -> None:
        page = write("page.html", "v1")
        engine.parse(page)
        future = page.stat().st_mtime + 10
        os.utime(page, (future, future))
        with caplog.at_level(logging.DEBUG, logger="kiln.templating"):
            assert engine.parse(page) == "v1"
        assert "Compiling template" in caplog.text

    def test_content_change_without_mtime_bump_is_stale(self, engine, write) -> None:
        page = write("page.html", "old")
        stat = page.stat()
        assert engine.parse(page) == "old"
        page.write_text("new", encoding="utf-8")
        os.utime(page, ns=(stat.st_atime_ns, stat.st_mtime_ns))
        assert engine.parse(page) == "old"

    def test_included_file_is_baked_in(self, engine, write) -> None:
        partial = write("p.html", "one")
        page = write("page.html", "{{@ include 'p.html' }}")
        assert engine.parse(page) == "one"
        partial.write_text("two", encoding="utf-8")
        assert engine.parse(page) == "one"

    def test_data_varies_per_call(self, engine, write) -> None:
        page = write("page.html", "{{ n }}")
        assert [engine.parse(page, {"n": n}) for n in (1, 2)] == ["1", "2"]

    def test_disabled_cache_recompiles(self, cache_dir, write) -> None:
        engine = Template(TemplateConfig(cache_dir=cache_dir, cache_enabled=False))
        page = write("page.html", "a")
        assert engine.parse(page) == "a"
        page.write_text("b", encoding="utf-8")
        assert engine.parse(page) == "b"
        assert not cache_dir.exists()

    def test_clear_cache(self, engine, write) -> None:
        engine.parse(write("page.html", "x"))
        assert engine.clear_cache() == 2
