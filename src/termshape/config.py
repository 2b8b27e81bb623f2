"""TOML config loading for termshape.toml."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from termshape.decoder import DecodeOptions, NarrowingPolicy

CONFIG_NAME = "termshape.toml"


@dataclass
class DecodeConfig:
    narrowing: NarrowingPolicy = NarrowingPolicy.SATURATE
    deny_unknown_fields: bool = False


@dataclass
class OutputConfig:
    color: bool = True


@dataclass
class TermshapeConfig:
    decode: DecodeConfig = field(default_factory=DecodeConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def decode_options(self) -> DecodeOptions:
        return DecodeOptions(
            narrowing=self.decode.narrowing,
            deny_unknown_fields=self.decode.deny_unknown_fields,
        )


def find_config(start_path: Path | None = None) -> Path:
    """Walk up directories to find termshape.toml. Raises FileNotFoundError."""
    path = (start_path or Path.cwd()).resolve()
    if path.is_file():
        path = path.parent
    while True:
        candidate = path / CONFIG_NAME
        if candidate.exists():
            return candidate
        parent = path.parent
        if parent == path:
            raise FileNotFoundError(f"No {CONFIG_NAME} found in any parent directory")
        path = parent


def load_config(path: Path) -> TermshapeConfig:
    """Parse a termshape.toml file. Raises ValueError on bad settings."""
    with open(path, "rb") as f:
        data = tomllib.load(f)

    config = TermshapeConfig()

    if "decode" in data:
        dec = data["decode"]
        narrowing = dec.get("narrowing", NarrowingPolicy.SATURATE.value)
        try:
            policy = NarrowingPolicy(narrowing)
        except ValueError:
            choices = ", ".join(p.value for p in NarrowingPolicy)
            raise ValueError(
                f"{path}: narrowing must be one of {choices}, got {narrowing!r}"
            ) from None
        config.decode = DecodeConfig(
            narrowing=policy,
            deny_unknown_fields=_flag(path, dec, "deny_unknown_fields", False),
        )

    if "output" in data:
        out = data["output"]
        config.output = OutputConfig(color=_flag(path, out, "color", True))

    return config


def _flag(path: Path, table: dict, key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{path}: {key} must be true or false, got {value!r}")
    return value


def load_nearest(start_path: Path | None = None) -> TermshapeConfig:
    """Load the nearest config, or defaults when there is none."""
    try:
        return load_config(find_config(start_path))
    except FileNotFoundError:
        return TermshapeConfig()
