"""Tests for kiln.cli: argument parsing, render, clear-cache, and site resolution."""

import json
import types

import pytest

from kiln.app import Site
from kiln.cli import main
from kiln.cli._resolve import resolve_site


class TestCLIHelp:
    @pytest.mark.parametrize(
        "argv",
        [["--help"], ["render", "--help"], ["clear-cache", "--help"], ["run", "--help"]],
    )
    def test_help_exits_zero(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
        assert exc_info.value.code == 0

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "render" in capsys.readouterr().out

    @pytest.mark.parametrize("argv", [["render"], ["run"]])
    def test_missing_argument(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
        assert exc_info.value.code == 2


class TestRender:
    def test_render_with_data(self, tmp_path, write, capsys: pytest.CaptureFixture[str]) -> None:
        page = write("page.html", "Hello {{ name }}")
        data = tmp_path / "data.json"
        data.write_text(json.dumps({"name": "Ada"}), encoding="utf-8")
        main(["render", str(page), "--data", str(data), "--cache-dir", str(tmp_path / "cache")])
        assert capsys.readouterr().out == "Hello Ada"
        assert (tmp_path / "cache").is_dir()

    def test_render_without_cache(self, tmp_path, write, capsys: pytest.CaptureFixture[str]) -> None:
        page = write("page.html", "{{ v }}")
        main(["render", str(page), "--no-cache", "--cache-dir", str(tmp_path / "cache")])
        assert capsys.readouterr().out == ""
        assert not (tmp_path / "cache").exists()

    def test_render_flags(self, tmp_path, write, capsys: pytest.CaptureFixture[str]) -> None:
        page = write("page.html", "{{@ setblock t }}<i>{{@ endsetblock }}{{@ block t }}")
        main(["render", str(page), "--trace", "--no-cache", "--cache-dir", str(tmp_path / "c")])
        assert capsys.readouterr().out == "<!-- @block: /t -->\n<i>"

    def test_missing_template_exits_one(self, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(tmp_path / "nope.html"), "--cache-dir", str(tmp_path / "c")])
        assert exc_info.value.code == 1
        assert "Template not found" in capsys.readouterr().err

    def test_strict_failure_exits_one(self, tmp_path, write, capsys: pytest.CaptureFixture[str]) -> None:
        page = write("page.html", "{{ missing }}")
        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(page), "--strict", "--no-cache", "--cache-dir", str(tmp_path / "c")])
        assert exc_info.value.code == 1
        assert "Undefined variable" in capsys.readouterr().err

    def test_bad_data_file_exits_one(self, tmp_path, write) -> None:
        page = write("page.html", "x")
        bad = tmp_path / "bad.json"
        bad.write_text("{oops", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(page), "--data", str(bad)])
        assert exc_info.value.code == 1


class TestClearCache:
    def test_reports_count(self, tmp_path, write, capsys: pytest.CaptureFixture[str]) -> None:
        cache = tmp_path / "cache"
        main(["render", str(write("page.html", "x")), "--cache-dir", str(cache)])
        capsys.readouterr()
        main(["clear-cache", "--cache-dir", str(cache)])
        assert capsys.readouterr().out.startswith("Removed 2 cached file(s)")


@pytest.fixture
def _fake_site_module(monkeypatch: pytest.MonkeyPatch) -> None:
    """Register a fake module with a kiln Site on sys.modules."""
    mod = types.ModuleType("_fake_kiln_site")
    mod.site = Site()  # type: ignore[attr-defined]
    mod.create = lambda: Site()  # type: ignore[attr-defined]
    mod.not_a_site = "just a string"  # type: ignore[attr-defined]
    monkeypatch.setitem(__import__("sys").modules, "_fake_kiln_site", mod)


@pytest.mark.usefixtures("_fake_site_module")
class TestResolveSite:
    def test_default_attribute(self) -> None:
        assert isinstance(resolve_site("_fake_kiln_site"), Site)

    def test_factory(self) -> None:
        assert isinstance(resolve_site("_fake_kiln_site:create"), Site)

    def test_missing_module(self) -> None:
        with pytest.raises(ModuleNotFoundError):
            resolve_site("nonexistent_module_xyz:site")

    def test_missing_attribute(self) -> None:
        with pytest.raises(AttributeError):
            resolve_site("_fake_kiln_site:does_not_exist")

    def test_wrong_type(self) -> None:
        with pytest.raises(TypeError, match=r"not a kiln\.Site instance"):
            resolve_site("_fake_kiln_site:not_a_site")

    def test_run_resolves_and_serves(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[tuple] = []
        monkeypatch.setattr(Site, "run", lambda self, host=None, port=None: calls.append((host, port)))
        main(["run", "_fake_kiln_site:site", "--port", "9000"])
        assert calls == [(None, 9000)]

    def test_run_bad_target_exits_one(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "_fake_kiln_site:not_a_site"])
        assert exc_info.value.code == 1
