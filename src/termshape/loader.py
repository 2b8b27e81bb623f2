"""JSON hand-off format for evaluated terms.

Plain JSON values map to the matching term kinds. Three single-key
objects carry the kinds JSON has no syntax for::

    {"$enum": "foo"}                          enum tag
    {"$meta": {"value": 10, "doc": "..."}}    annotated value
    {"$other": "Fun"}                         non-data term
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from termshape.identifier import Identifier
from termshape.terms import (
    Annotated,
    Array,
    Bool,
    EnumTag,
    Metadata,
    Null,
    Number,
    Other,
    Record,
    Str,
    Term,
)

ENUM_KEY = "$enum"
META_KEY = "$meta"
OTHER_KEY = "$other"


class TermFormatError(ValueError):
    """The JSON document does not describe a term."""


def term_from_json(value: Any) -> Term:
    """Build a term from a parsed JSON value."""
    if value is None:
        return Null()
    if isinstance(value, bool):
        return Bool(value)
    if isinstance(value, (int, float)):
        return Number(float(value))
    if isinstance(value, str):
        return Str(value)
    if isinstance(value, list):
        return Array(tuple(term_from_json(item) for item in value))
    if isinstance(value, dict):
        if len(value) == 1:
            ((key, inner),) = value.items()
            if key == ENUM_KEY:
                if not isinstance(inner, str):
                    raise TermFormatError(f"{ENUM_KEY} expects a string, got {inner!r}")
                return EnumTag(Identifier(inner))
            if key == META_KEY:
                return _annotated(inner)
            if key == OTHER_KEY:
                return Other(kind=inner if isinstance(inner, str) else None)
        return Record({Identifier(k): term_from_json(v) for k, v in value.items()})
    raise TermFormatError(f"cannot build a term from {type(value).__name__}")


def _annotated(body: Any) -> Annotated:
    if not isinstance(body, dict):
        raise TermFormatError(f"{META_KEY} expects an object, got {body!r}")
    contracts = body.get("contracts", [])
    if not isinstance(contracts, list) or not all(isinstance(c, str) for c in contracts):
        raise TermFormatError(f"contracts expects a list of strings, got {contracts!r}")
    doc = body.get("doc")
    if doc is not None and not isinstance(doc, str):
        raise TermFormatError(f"doc expects a string, got {doc!r}")
    meta = Metadata(doc=doc, contracts=tuple(contracts), priority=body.get("priority"))
    inner = term_from_json(body["value"]) if "value" in body else None
    return Annotated(inner, meta)


def term_to_json(term: Term) -> Any:
    """Inverse of ``term_from_json``. Used by ``termshape view --json``."""
    if isinstance(term, Null):
        return None
    if isinstance(term, (Bool, Str)):
        return term.value
    if isinstance(term, Number):
        return int(term.value) if term.value.is_integer() else term.value
    if isinstance(term, EnumTag):
        return {ENUM_KEY: term.label.label}
    if isinstance(term, Array):
        return [term_to_json(t) for t in term.elements]
    if isinstance(term, Record):
        return {k.label: term_to_json(v) for k, v in term.fields.items()}
    if isinstance(term, Annotated):
        body: dict[str, Any] = {}
        if term.value is not None:
            body["value"] = term_to_json(term.value)
        if term.meta.doc is not None:
            body["doc"] = term.meta.doc
        if term.meta.contracts:
            body["contracts"] = list(term.meta.contracts)
        if term.meta.priority is not None:
            body["priority"] = term.meta.priority
        return {META_KEY: body}
    return {OTHER_KEY: term.kind}


def load_term(path: Path) -> Term:
    """Read a JSON file and build its term. Raises TermFormatError."""
    try:
        data = json.loads(path.read_bytes())
    except UnicodeDecodeError as e:
        raise TermFormatError(f"{path}: not valid UTF-8 ({e.reason} at byte {e.start})") from e
    except ValueError as e:
        raise TermFormatError(f"{path}: {e}") from e
    return term_from_json(data)
