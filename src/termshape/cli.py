"""termshape CLI."""

from __future__ import annotations

import importlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click
from pygments import highlight
from pygments.formatters import TerminalFormatter
from pygments.lexers import PythonLexer

from termshape import __version__
from termshape.config import TermshapeConfig, load_config, load_nearest
from termshape.decoder import DecodeOptions, NarrowingPolicy
from termshape.errors import DecodeError, DiagnosticRenderer
from termshape.loader import TermFormatError, load_term, term_to_json
from termshape.shapes import decode as decode_term
from termshape.terms import Annotated, Array, EnumTag, Record, Term, kind_name

logger = logging.getLogger(__name__)


def _resolve_shape(spec: str) -> Any:
    """Import ``package.module:Name`` and return the named object."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(f"expected module:Name, got {spec!r}", param_hint="--shape")
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name}: {e}", param_hint="--shape")
    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise click.BadParameter(
                f"{module_name} has no attribute {attr!r}", param_hint="--shape"
            )
    return target


def _settings(file: str, config_path: str | None) -> TermshapeConfig:
    try:
        if config_path is not None:
            return load_config(Path(config_path))
        return load_nearest(Path(file))
    except ValueError as e:
        click.echo(f"error: {e}", err=True)
        raise SystemExit(1)


def _run_decode(
    file: str, shape: str, config: TermshapeConfig, narrowing: str | None,
) -> Any:
    """Load and decode, rendering failures. Exits 1 on error."""
    target = _resolve_shape(shape)
    options = config.decode_options()
    if narrowing is not None:
        options = DecodeOptions(
            narrowing=NarrowingPolicy(narrowing),
            deny_unknown_fields=options.deny_unknown_fields,
        )
    try:
        term = load_term(Path(file))
    except TermFormatError as e:
        click.echo(f"error: {e}", err=True)
        raise SystemExit(1)

    logger.debug("decoding %s as %s with %s", file, shape, options)
    try:
        return decode_term(term, target, options)
    except DecodeError as e:
        renderer = DiagnosticRenderer(color=config.output.color)
        click.echo(
            renderer.render(e.to_diagnostic()), err=True, color=config.output.color
        )
        raise SystemExit(1)


_NARROWING = click.Choice([p.value for p in NarrowingPolicy])


@click.group()
@click.version_option(__version__, prog_name="termshape")
@click.option("--verbose", "-v", is_flag=True, help="Log decoding steps to stderr.")
def main(verbose: bool) -> None:
    """Decode evaluated configuration terms into typed Python values."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )


@main.command(name="decode")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--shape", required=True, help="Target type as module:Name.")
@click.option("--narrowing", type=_NARROWING, default=None, help="Integer overflow policy.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Explicit termshape.toml.")
@click.option("--color/--no-color", default=None, help="Colorize output.")
def decode_cmd(
    file: str, shape: str, narrowing: str | None, config_path: str | None,
    color: bool | None,
) -> None:
    """Decode a JSON term FILE into the type named by --shape."""
    config = _settings(file, config_path)
    if color is not None:
        config.output.color = color
    value = _run_decode(file, shape, config, narrowing)
    text = repr(value)
    if config.output.color:
        text = highlight(text, PythonLexer(), TerminalFormatter()).rstrip("\n")
    click.echo(text, color=config.output.color)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--shape", required=True, help="Target type as module:Name.")
@click.option("--narrowing", type=_NARROWING, default=None, help="Integer overflow policy.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Explicit termshape.toml.")
def check(file: str, shape: str, narrowing: str | None, config_path: str | None) -> None:
    """Check that FILE decodes into --shape without printing the value."""
    config = _settings(file, config_path)
    _run_decode(file, shape, config, narrowing)
    click.echo(f"{file}: ok")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the normalized JSON term instead.")
def view(file: str, as_json: bool) -> None:
    """View the term tree stored in a JSON FILE."""
    try:
        term = load_term(Path(file))
    except TermFormatError as e:
        click.echo(f"error: {e}", err=True)
        raise SystemExit(1)
    if as_json:
        click.echo(json.dumps(term_to_json(term), indent=2, ensure_ascii=False))
        return
    _dump_term(term, 0)


def _dump_term(term: Term, depth: int, prefix: str = "") -> None:
    """Print a readable term dump."""
    indent = "  " * depth
    name = kind_name(term)

    if isinstance(term, Record):
        click.echo(f"{indent}{prefix}{name} ({len(term)} fields)")
        for key in sorted(term.fields):
            _dump_term(term.fields[key], depth + 1, f"{key} = ")
    elif isinstance(term, Array):
        click.echo(f"{indent}{prefix}{name} ({len(term)} elements)")
        for element in term.elements:
            _dump_term(element, depth + 1)
    elif isinstance(term, Annotated):
        notes = []
        if term.meta.doc:
            notes.append(f"doc={term.meta.doc!r}")
        if term.meta.contracts:
            notes.append("contracts=" + ",".join(term.meta.contracts))
        suffix = f" [{' '.join(notes)}]" if notes else ""
        if term.value is None:
            click.echo(f"{indent}{prefix}{name} (empty){suffix}")
        else:
            click.echo(f"{indent}{prefix}{name}{suffix}")
            _dump_term(term.value, depth + 1)
    elif isinstance(term, EnumTag):
        click.echo(f"{indent}{prefix}{name}: '{term.label}")
    elif hasattr(term, "value"):
        click.echo(f"{indent}{prefix}{name}: {term.value!r}")
    else:
        click.echo(f"{indent}{prefix}{name}")
