"""Tests for the termshape CLI."""

from __future__ import annotations

import json
import sys

import pytest

from termshape import __version__
from termshape.cli import main


class TestCLI:
    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "decode" in result.output
        assert "check" in result.output
        assert "view" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestDecodeCommand:
    def test_decodes_dataclass(self, runner, write_term):
        path = write_term({"host": "db", "port": 5432})
        result = runner.invoke(
            main, ["decode", str(path), "--shape", "tests.models:Server", "--no-color"]
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Server(host='db', port=5432, tags=[], tls=None)"

    def test_color_output(self, runner, write_term):
        path = write_term({"host": "db", "port": 5432})
        result = runner.invoke(
            main, ["decode", str(path), "--shape", "tests.models:Server", "--color"]
        )
        assert result.exit_code == 0, result.output
        assert "\033[" in result.output

    def test_decode_error_is_rendered(self, runner, write_term):
        path = write_term({"host": "db", "port": "http"})
        result = runner.invoke(
            main, ["decode", str(path), "--shape", "tests.models:Server", "--no-color"]
        )
        assert result.exit_code == 1
        assert "error[D001]: invalid type: Str, expected: Num" in result.output
        assert "note: at .port" in result.output

    def test_narrowing_flag(self, runner, write_term):
        path = write_term({"size": 300})
        result = runner.invoke(main, [
            "decode", str(path), "--shape", "tests.models:Packet",
            "--narrowing", "wrap", "--no-color",
        ])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Packet(size=44)"

    def test_config_file(self, runner, write_term, tmp_path):
        (tmp_path / "termshape.toml").write_text(
            '[decode]\nnarrowing = "checked"\n[output]\ncolor = false\n'
        )
        path = write_term({"size": 300})
        result = runner.invoke(main, ["decode", str(path), "--shape", "tests.models:Packet"])
        assert result.exit_code == 1
        assert "out of range for u8" in result.output

    def test_bad_config(self, runner, write_term, tmp_path):
        (tmp_path / "termshape.toml").write_text('[decode]\nnarrowing = "nope"\n')
        path = write_term({"size": 1})
        result = runner.invoke(main, ["decode", str(path), "--shape", "tests.models:Packet"])
        assert result.exit_code == 1
        assert "narrowing must be one of" in result.output

    def test_bad_shape_spec(self, runner, write_term):
        path = write_term(None)
        result = runner.invoke(main, ["decode", str(path), "--shape", "no_colon"])
        assert result.exit_code == 2
        assert "module:Name" in result.output

    def test_unknown_shape_attribute(self, runner, write_term):
        path = write_term(None)
        result = runner.invoke(main, ["decode", str(path), "--shape", "tests.models:Nope"])
        assert result.exit_code == 2

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        result = runner.invoke(main, ["decode", str(path), "--shape", "tests.models:Server"])
        assert result.exit_code == 1
        assert "error:" in result.output


class TestCheckCommand:
    def test_ok(self, runner, write_term):
        path = write_term([1, 2])
        result = runner.invoke(main, ["check", str(path), "--shape", "tests.models:Point"])
        assert result.exit_code == 0, result.output
        assert result.output.strip().endswith(": ok")

    def test_arity_failure(self, runner, write_term):
        path = write_term([1, 2, 3])
        result = runner.invoke(main, [
            "check", str(path), "--shape", "tests.models:Point",
        ])
        assert result.exit_code == 1
        assert "invalid array length, expected 3" in result.output


class TestViewCommand:
    def test_dump(self, runner, write_term):
        path = write_term({
            "b": [True, None],
            "a": 1,
            "e": {"$enum": "foo"},
            "m": {"$meta": {"value": 2, "doc": "count"}},
            "f": {"$other": "Fun"},
        })
        result = runner.invoke(main, ["view", str(path)])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "Record (5 fields)"
        assert lines[1] == "  a = Num: 1.0"
        assert "  b = Array (2 elements)" in lines
        assert "    Bool: True" in lines
        assert "    Null" in lines
        assert "  e = Enum: 'foo" in lines
        assert "  f = Fun" in lines
        assert "  m = Annotated [doc='count']" in lines
        assert "    Num: 2.0" in lines

    def test_empty_annotation(self, runner, write_term):
        path = write_term({"$meta": {}})
        result = runner.invoke(main, ["view", str(path)])
        assert result.output.strip() == "Annotated (empty)"


class TestColorOutput:
    def test_colored_diagnostic(self, runner, write_term):
        path = write_term({"host": "db", "port": "http"})
        result = runner.invoke(
            main, ["decode", str(path), "--shape", "tests.models:Server", "--color"]
        )
        assert result.exit_code == 1
        assert "\033[1;31merror[D001]" in result.output

    def test_no_color_is_plain(self, runner, write_term):
        path = write_term({"host": "db", "port": 5432})
        result = runner.invoke(
            main, ["decode", str(path), "--shape", "tests.models:Server", "--no-color"]
        )
        assert "\033[" not in result.output


class TestShapeResolution:
    def test_module_in_working_directory(self, runner, write_term, tmp_path, monkeypatch):
        package = tmp_path / "shapes_from_cwd"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "settings.py").write_text(
            "from dataclasses import dataclass\n\n\n"
            "@dataclass\nclass Listen:\n    host: str\n    port: int\n"
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "path", [p for p in sys.path if p not in ("", str(tmp_path))])
        path = write_term({"host": "db", "port": 80})
        result = runner.invoke(main, [
            "decode", str(path), "--shape", "shapes_from_cwd.settings:Listen", "--no-color",
        ])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Listen(host='db', port=80)"


class TestUnreadableInput:
    @pytest.mark.parametrize("args", [
        ["view"],
        ["decode", "--shape", "tests.models:Server"],
        ["check", "--shape", "tests.models:Server"],
    ])
    def test_not_utf8(self, runner, tmp_path, args):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"host": "\xff"}')
        result = runner.invoke(main, [args[0], str(path), *args[1:]])
        assert result.exit_code == 1
        assert "error:" in result.output
        assert "not valid UTF-8" in result.output


class TestViewJson:
    def test_normalized_dump(self, runner, write_term):
        path = write_term({"a": 1.0, "e": {"$enum": "foo"}, "m": {"$meta": {"doc": "d"}}})
        result = runner.invoke(main, ["view", str(path), "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "a": 1, "e": {"$enum": "foo"}, "m": {"$meta": {"doc": "d"}},
        }
