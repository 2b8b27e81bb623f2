"""Decoding of evaluated terms into shaped Python values.

``TermDecoder`` wraps one term and answers the requests a shape makes
(``decode_bool``, ``decode_seq``, ``decode_struct``...). Scalars are
checked and handed to the visitor directly. Arrays and records are
handed over as accessors; once the visitor returns, every child must
have been consumed or the decode fails with the collection's original
length.
"""

from __future__ import annotations

import logging
import math
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from termshape.access import (
    END,
    EnumAccess,
    MapAccess,
    SeqAccess,
    Shape,
    VariantAccess,
    Visitor,
)
from termshape.errors import (
    DecodeError,
    EmptyMetaValue,
    InvalidArrayLength,
    InvalidRecordLength,
    InvalidType,
    MissingValue,
    OtherError,
    UnimplementedType,
)
from termshape.identifier import Identifier
from termshape.terms import (
    Annotated,
    Array,
    Bool,
    EnumTag,
    Null,
    Number,
    Record,
    Str,
    Term,
    kind_name,
)

logger = logging.getLogger(__name__)


class NarrowingPolicy(Enum):
    """What happens when a rounded number does not fit the integer width."""

    SATURATE = "saturate"  # clamp to the range, NaN becomes 0
    WRAP = "wrap"          # two's-complement wraparound
    CHECKED = "checked"    # raise OtherError


@dataclass(frozen=True)
class DecodeOptions:
    narrowing: NarrowingPolicy = NarrowingPolicy.SATURATE
    deny_unknown_fields: bool = False


DEFAULT_OPTIONS = DecodeOptions()


# ── Numeric conversion ───────────────────────────────────────────


def round_half_away(value: float) -> float:
    """Round to the nearest integer, ties away from zero."""
    if not math.isfinite(value):
        return value
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return math.copysign(whole, value)


def int_range(bits: int, signed: bool) -> tuple[int, int]:
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1


def narrow_int(
    value: float, bits: int, signed: bool,
    policy: NarrowingPolicy = NarrowingPolicy.SATURATE,
) -> int:
    """Convert an already rounded float to a fixed-width integer."""
    lo, hi = int_range(bits, signed)
    if math.isnan(value):
        if policy is NarrowingPolicy.CHECKED:
            raise OtherError(f"NaN cannot be represented as {_int_name(bits, signed)}")
        return 0
    if math.isinf(value):
        if policy is NarrowingPolicy.CHECKED:
            raise OtherError(
                f"number {value} out of range for {_int_name(bits, signed)}"
            )
        return hi if value > 0 else lo
    number = int(value)
    if lo <= number <= hi:
        return number
    if policy is NarrowingPolicy.SATURATE:
        return hi if number > hi else lo
    if policy is NarrowingPolicy.WRAP:
        return (number - lo) % (1 << bits) + lo
    raise OtherError(f"number {number} out of range for {_int_name(bits, signed)}")


def narrow_float(value: float, bits: int) -> float:
    """Cast to single or double precision. Overflow becomes infinity."""
    if bits == 64 or not math.isfinite(value):
        return value
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _int_name(bits: int, signed: bool) -> str:
    return f"{'i' if signed else 'u'}{bits}"


# ── Unwrap ───────────────────────────────────────────────────────


def unwrap_term(term: Term) -> Term:
    """Strip annotation layers down to the underlying value."""
    while isinstance(term, Annotated):
        if term.value is None:
            raise EmptyMetaValue()
        term = term.value
    return term


# ── Decoder interface ────────────────────────────────────────────


class Decoder:
    """Source of values for a shape.

    Subclasses must implement ``decode_any``; every other request
    forwards to it unless overridden.
    """

    options: DecodeOptions = DEFAULT_OPTIONS

    def decode_any(self, visitor: Visitor) -> Any:
        raise NotImplementedError

    def decode_bool(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_int(self, visitor: Visitor, bits: int = 64, signed: bool = True) -> Any:
        return self.decode_any(visitor)

    def decode_float(self, visitor: Visitor, bits: int = 64) -> Any:
        return self.decode_any(visitor)

    def decode_char(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_str(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_string(self, visitor: Visitor) -> Any:
        return self.decode_str(visitor)

    def decode_bytes(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_byte_buf(self, visitor: Visitor) -> Any:
        return self.decode_bytes(visitor)

    def decode_option(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_unit(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_unit_struct(self, name: str, visitor: Visitor) -> Any:
        return self.decode_unit(visitor)

    def decode_newtype_struct(self, name: str, visitor: Visitor) -> Any:
        return visitor.visit_newtype_struct(self)

    def decode_seq(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_tuple(self, length: int, visitor: Visitor) -> Any:
        return self.decode_seq(visitor)

    def decode_map(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_struct(self, name: str, fields: tuple[str, ...], visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_enum(self, name: str, variants: tuple[str, ...], visitor: Visitor) -> Any:
        return self.decode_any(visitor)

    def decode_identifier(self, visitor: Visitor) -> Any:
        return self.decode_str(visitor)

    def decode_ignored_any(self, visitor: Visitor) -> Any:
        return self.decode_any(visitor)


class LabelDecoder(Decoder):
    """Decoder over a bare label: record keys and enum tags.

    Labels are plain strings to the shape; positions stay behind.
    """

    def __init__(self, label: str, options: DecodeOptions = DEFAULT_OPTIONS) -> None:
        self.label = label
        self.options = options

    def decode_any(self, visitor: Visitor) -> Any:
        return visitor.visit_str(self.label)

    def decode_option(self, visitor: Visitor) -> Any:
        return visitor.visit_some(self)

    def decode_enum(self, name: str, variants: tuple[str, ...], visitor: Visitor) -> Any:
        return visitor.visit_enum(TagAccess(self.label, None, self.options))

    def decode_ignored_any(self, visitor: Visitor) -> Any:
        return visitor.visit_unit()


# ── Term decoder ─────────────────────────────────────────────────


def _mismatch(expected: str, term: Term) -> InvalidType:
    return InvalidType(expected=expected, occurred=kind_name(term))


class TermDecoder(Decoder):
    """Decoder over one evaluated term. Each instance decodes once."""

    def __init__(self, term: Term, options: DecodeOptions = DEFAULT_OPTIONS) -> None:
        self._term: Term | None = term
        self.options = options

    def _take(self) -> Term:
        term = self._term
        if term is None:
            raise RuntimeError("term decoder used more than once")
        self._term = None
        return term

    def _concrete(self) -> Term:
        return unwrap_term(self._take())

    def decode_any(self, visitor: Visitor) -> Any:
        term = self._take()
        # Annotations are not looked through here: a wrapped value reads as unit.
        if isinstance(term, Annotated):
            if term.value is None:
                raise EmptyMetaValue()
            return visitor.visit_unit()
        if isinstance(term, Null):
            return visitor.visit_unit()
        if isinstance(term, Bool):
            return visitor.visit_bool(term.value)
        if isinstance(term, Number):
            return visitor.visit_float(term.value)
        if isinstance(term, Str):
            return visitor.visit_str(term.value)
        if isinstance(term, EnumTag):
            return visitor.visit_enum(TagAccess(term.label.label, None, self.options))
        if isinstance(term, Record):
            return visit_record(term, visitor, self.options)
        if isinstance(term, Array):
            return visit_array(term, visitor, self.options)
        raise UnimplementedType(occurred=kind_name(term))

    def decode_bool(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Bool):
            return visitor.visit_bool(term.value)
        raise _mismatch("Bool", term)

    def decode_int(self, visitor: Visitor, bits: int = 64, signed: bool = True) -> Any:
        term = self._concrete()
        if isinstance(term, Number):
            rounded = round_half_away(term.value)
            return visitor.visit_int(
                narrow_int(rounded, bits, signed, self.options.narrowing)
            )
        raise _mismatch("Num", term)

    def decode_float(self, visitor: Visitor, bits: int = 64) -> Any:
        term = self._concrete()
        if isinstance(term, Number):
            return visitor.visit_float(narrow_float(term.value, bits))
        raise _mismatch("Num", term)

    def decode_char(self, visitor: Visitor) -> Any:
        return self.decode_str(visitor)

    def decode_str(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Str):
            return visitor.visit_str(term.value)
        raise _mismatch("Str", term)

    def decode_bytes(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Str):
            return visitor.visit_bytes(term.value.encode("utf-8"))
        if isinstance(term, Array):
            return visit_array(term, visitor, self.options)
        raise _mismatch("Str or Array", term)

    def decode_option(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Null):
            return visitor.visit_none()
        return visitor.visit_some(TermDecoder(term, self.options))

    def decode_unit(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Null):
            return visitor.visit_unit()
        raise _mismatch("Null", term)

    def decode_seq(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Array):
            return visit_array(term, visitor, self.options)
        raise _mismatch("Array", term)

    def decode_map(self, visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Record):
            return visit_record(term, visitor, self.options)
        raise _mismatch("Record", term)

    def decode_struct(self, name: str, fields: tuple[str, ...], visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, Array):
            return visit_array(term, visitor, self.options)
        if isinstance(term, Record):
            return visit_record(term, visitor, self.options)
        raise _mismatch("Record", term)

    def decode_enum(self, name: str, variants: tuple[str, ...], visitor: Visitor) -> Any:
        term = self._concrete()
        if isinstance(term, EnumTag):
            return visitor.visit_enum(TagAccess(term.label.label, None, self.options))
        if isinstance(term, Record):
            if len(term) == 0:
                raise InvalidType("single-key record", "record without keys")
            if len(term) > 1:
                raise InvalidType("single-key record", "record with multiple keys")
            ((key, value),) = term.fields.items()
            return visitor.visit_enum(TagAccess(key.label, value, self.options))
        raise _mismatch("enum tag or record", term)

    def decode_identifier(self, visitor: Visitor) -> Any:
        return self.decode_str(visitor)

    def decode_ignored_any(self, visitor: Visitor) -> Any:
        self._take()
        return visitor.visit_unit()


# ── Sequence access ──────────────────────────────────────────────


class ArrayAccess(SeqAccess):
    def __init__(self, elements: tuple[Term, ...], options: DecodeOptions) -> None:
        self._elements: Iterator[Term] = iter(elements)
        self._remaining = len(elements)
        self._index = 0
        self._options = options

    @property
    def remaining(self) -> int:
        return self._remaining

    def next_element(self, shape: Shape) -> Any:
        term = next(self._elements, None)
        if term is None:
            return END
        index = self._index
        self._index += 1
        self._remaining -= 1
        try:
            return shape.decode(TermDecoder(term, self._options))
        except DecodeError as err:
            raise err.within(index)

    def size_hint(self) -> int | None:
        return self._remaining


def visit_array(array: Array, visitor: Visitor, options: DecodeOptions = DEFAULT_OPTIONS) -> Any:
    """Feed an array to ``visitor`` and check that it was fully consumed."""
    length = len(array)
    access = ArrayAccess(array.elements, options)
    value = visitor.visit_seq(access)
    if access.remaining != 0:
        logger.debug(
            "array of %d left %d element(s) unconsumed", length, access.remaining
        )
        raise InvalidArrayLength(length)
    return value


# ── Mapping access ───────────────────────────────────────────────


class RecordAccess(MapAccess):
    def __init__(self, fields: dict[Identifier, Term], options: DecodeOptions) -> None:
        self._entries: Iterator[tuple[Identifier, Term]] = iter(fields.items())
        self._remaining = len(fields)
        self._pending: tuple[Identifier, Term] | None = None
        self._options = options

    @property
    def remaining(self) -> int:
        return self._remaining

    def next_key(self, shape: Shape) -> Any:
        entry = next(self._entries, None)
        if entry is None:
            return END
        self._remaining -= 1
        self._pending = entry
        key = entry[0]
        try:
            return shape.decode(LabelDecoder(key.label, self._options))
        except DecodeError as err:
            raise err.within(key)

    def next_value(self, shape: Shape) -> Any:
        if self._pending is None:
            raise MissingValue()
        key, term = self._pending
        self._pending = None
        try:
            return shape.decode(TermDecoder(term, self._options))
        except DecodeError as err:
            raise err.within(key)

    def size_hint(self) -> int | None:
        return self._remaining


def visit_record(record: Record, visitor: Visitor, options: DecodeOptions = DEFAULT_OPTIONS) -> Any:
    """Feed a record to ``visitor`` and check that it was fully consumed."""
    length = len(record)
    access = RecordAccess(record.fields, options)
    value = visitor.visit_map(access)
    if access.remaining != 0:
        logger.debug(
            "record of %d left %d field(s) unconsumed", length, access.remaining
        )
        raise InvalidRecordLength(length)
    return value


# ── Variant access ───────────────────────────────────────────────


class _UnitVisitor(Visitor):
    expecting = "unit"

    def visit_unit(self) -> None:
        return None


class TagAccess(EnumAccess):
    """A variant tag with an optional payload term."""

    def __init__(self, tag: str, payload: Term | None, options: DecodeOptions) -> None:
        self._tag = tag
        self._payload = payload
        self._options = options

    def variant(self, shape: Shape) -> tuple[Any, VariantAccess]:
        tag = shape.decode(LabelDecoder(self._tag, self._options))
        return tag, PayloadAccess(self._payload, self._options)


class PayloadAccess(VariantAccess):
    def __init__(self, payload: Term | None, options: DecodeOptions) -> None:
        self._payload = payload
        self._options = options

    def unit_variant(self) -> None:
        if self._payload is not None:
            TermDecoder(self._payload, self._options).decode_unit(_UnitVisitor())

    def newtype_variant(self, shape: Shape) -> Any:
        if self._payload is None:
            raise MissingValue()
        return shape.decode(TermDecoder(self._payload, self._options))

    def tuple_variant(self, length: int, visitor: Visitor) -> Any:
        if self._payload is None:
            raise MissingValue()
        term = unwrap_term(self._payload)
        if isinstance(term, Array):
            if len(term) == 0:
                return visitor.visit_unit()
            return visit_array(term, visitor, self._options)
        raise _mismatch("Array variant", term)

    def struct_variant(self, fields: tuple[str, ...], visitor: Visitor) -> Any:
        if self._payload is None:
            raise MissingValue()
        term = unwrap_term(self._payload)
        if isinstance(term, Record):
            return visit_record(term, visitor, self._options)
        raise _mismatch("Record variant", term)
