"""Tests for termshape.toml loading."""

from __future__ import annotations

import pytest

from termshape.config import find_config, load_config, load_nearest
from termshape.decoder import DecodeOptions, NarrowingPolicy


class TestConfig:
    def test_find_config_walks_up(self, tmp_path):
        (tmp_path / "termshape.toml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == tmp_path / "termshape.toml"

    def test_find_config_from_file(self, tmp_path):
        (tmp_path / "termshape.toml").write_text("")
        term = tmp_path / "term.json"
        term.write_text("null")
        assert find_config(term) == tmp_path / "termshape.toml"

    def test_find_config_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_config(tmp_path)

    def test_defaults(self, tmp_path):
        path = tmp_path / "termshape.toml"
        path.write_text("")
        config = load_config(path)
        assert config.decode.narrowing is NarrowingPolicy.SATURATE
        assert config.decode.deny_unknown_fields is False
        assert config.output.color is True

    def test_load_values(self, tmp_path):
        path = tmp_path / "termshape.toml"
        path.write_text(
            '[decode]\nnarrowing = "checked"\ndeny_unknown_fields = true\n'
            "[output]\ncolor = false\n"
        )
        config = load_config(path)
        assert config.decode_options() == DecodeOptions(
            narrowing=NarrowingPolicy.CHECKED, deny_unknown_fields=True,
        )
        assert config.output.color is False

    def test_bad_narrowing(self, tmp_path):
        path = tmp_path / "termshape.toml"
        path.write_text('[decode]\nnarrowing = "truncate"\n')
        with pytest.raises(ValueError, match="narrowing must be one of"):
            load_config(path)

    @pytest.mark.parametrize("body", [
        '[decode]\ndeny_unknown_fields = "no"\n',
        "[output]\ncolor = 0\n",
    ])
    def test_flags_must_be_booleans(self, tmp_path, body):
        path = tmp_path / "termshape.toml"
        path.write_text(body)
        with pytest.raises(ValueError, match="must be true or false"):
            load_config(path)

    def test_load_nearest_defaults(self, tmp_path):
        assert load_nearest(tmp_path).decode_options() == DecodeOptions()
