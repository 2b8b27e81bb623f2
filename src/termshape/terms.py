"""Evaluated term representation.

These are the fully reduced values handed over by the evaluator. Nothing
here is lazy: a term that is not one of the data kinds below is wrapped
in ``Other`` and can never be decoded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence, Union

from termshape.identifier import Identifier

# ── Metadata ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Metadata:
    """Annotation payload attached to a value. Ignored by the decoder."""

    doc: str | None = None
    contracts: tuple[str, ...] = ()
    priority: str | None = None


# ── Term kinds ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Str:
    value: str


@dataclass(frozen=True)
class EnumTag:
    label: Identifier


@dataclass(frozen=True)
class Record:
    fields: dict[Identifier, Term] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.fields)


@dataclass(frozen=True)
class Array:
    elements: tuple[Term, ...] = ()

    def __len__(self) -> int:
        return len(self.elements)


@dataclass(frozen=True)
class Annotated:
    """A value wrapped in metadata. ``value`` is None for metadata-only terms."""

    value: Term | None = None
    meta: Metadata = field(default_factory=Metadata)


@dataclass(frozen=True)
class Other:
    """Any non-data term (functions, labels, unevaluated forms)."""

    kind: str | None = None


Term = Union[Null, Bool, Number, Str, EnumTag, Record, Array, Annotated, Other]


# ── Constructors ─────────────────────────────────────────────────


def record(fields: Mapping[str | Identifier, Term]) -> Record:
    """Build a Record from a mapping keyed by labels or identifiers."""
    return Record({
        key if isinstance(key, Identifier) else Identifier(key): value
        for key, value in fields.items()
    })


def array(elements: Sequence[Term]) -> Array:
    return Array(tuple(elements))


def enum_tag(label: str | Identifier) -> EnumTag:
    if isinstance(label, Identifier):
        return EnumTag(label)
    return EnumTag(Identifier(label))


# ── Utilities ────────────────────────────────────────────────────

_KIND_NAMES: dict[type, str] = {
    Null: "Null",
    Bool: "Bool",
    Number: "Num",
    Str: "Str",
    EnumTag: "Enum",
    Record: "Record",
    Array: "Array",
    Annotated: "Annotated",
}


def type_of(term: Term) -> str | None:
    """Human-readable kind name, or None when the kind has no name."""
    if isinstance(term, Other):
        return term.kind
    return _KIND_NAMES.get(type(term))


def kind_name(term: Term) -> str:
    """Kind name for error messages; falls back to ``"Other"``."""
    name = type_of(term)
    return name if name is not None else "Other"
