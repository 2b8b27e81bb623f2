"""Shared term builders for the termshape test suite."""

from __future__ import annotations

from termshape.identifier import Identifier
from termshape.source import Span
from termshape.terms import (
    Annotated,
    Array,
    Metadata,
    Number,
    Other,
    Record,
    Str,
    Term,
    enum_tag,
    record,
)


def num(value: float) -> Number:
    return Number(float(value))


def text(value: str) -> Str:
    return Str(value)


def rec(**fields: Term) -> Record:
    return record(fields)


def arr(*elements: Term) -> Array:
    return Array(tuple(elements))


def tag(label: str):
    return enum_tag(label)


def meta(inner: Term | None = None, doc: str | None = None) -> Annotated:
    return Annotated(inner, Metadata(doc=doc))


def fun() -> Other:
    """An evaluated function: never convertible."""
    return Other("Fun")


def key_at(label: str, line: int, col: int) -> Identifier:
    """Identifier with a position in a fake source file."""
    return Identifier(label, Span("config.ncl", line, col, line, col + len(label) - 1))
