"""Shapes derived from Python type annotations.

``shape_for`` turns an annotation into an object that knows how to
drive a decoder: which form to request, and what to build from the
callbacks it receives. Dataclasses become structs, ``enum.Enum``
classes and unions of ``@variant`` dataclasses become tagged enums,
and the usual containers map onto sequences and records.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import logging
import types
import typing
from dataclasses import dataclass
from typing import Annotated, Any, Union

from termshape.access import (
    END,
    EnumAccess,
    MapAccess,
    SeqAccess,
    Shape,
    Visitor,
)
from termshape.decoder import DEFAULT_OPTIONS, Decoder, DecodeOptions, TermDecoder
from termshape.errors import OtherError
from termshape.identifier import Identifier
from termshape.terms import Term, kind_name

logger = logging.getLogger(__name__)

# ── Annotation markers ───────────────────────────────────────────


@dataclass(frozen=True)
class IntWidth:
    bits: int
    signed: bool


@dataclass(frozen=True)
class FloatWidth:
    bits: int


@dataclass(frozen=True)
class CharMarker:
    pass


I8 = Annotated[int, IntWidth(8, True)]
I16 = Annotated[int, IntWidth(16, True)]
I32 = Annotated[int, IntWidth(32, True)]
I64 = Annotated[int, IntWidth(64, True)]
I128 = Annotated[int, IntWidth(128, True)]
U8 = Annotated[int, IntWidth(8, False)]
U16 = Annotated[int, IntWidth(16, False)]
U32 = Annotated[int, IntWidth(32, False)]
U64 = Annotated[int, IntWidth(64, False)]
U128 = Annotated[int, IntWidth(128, False)]
F32 = Annotated[float, FloatWidth(32)]
F64 = Annotated[float, FloatWidth(64)]
Char = Annotated[str, CharMarker()]


class Ignored:
    """Annotation for a value that is accepted and thrown away."""


@dataclass(frozen=True)
class Tag:
    """A bare enum tag, as produced by decoding into ``Any``."""

    label: str


# ── Variants ─────────────────────────────────────────────────────


class VariantKind(enum.Enum):
    UNIT = "unit"
    NEWTYPE = "newtype"
    TUPLE = "tuple"
    STRUCT = "struct"


@dataclass(frozen=True)
class VariantSpec:
    tag: str
    kind: VariantKind


def variant(tag: str, kind: VariantKind | str | None = None):
    """Mark a dataclass as one variant of a tagged union.

    Without an explicit kind, a dataclass with no fields is a unit
    variant, one field makes a newtype variant and more make a struct
    variant. Tuple variants must be asked for.
    """

    def wrap(cls: type) -> type:
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"@variant needs a dataclass, got {cls.__name__}")
        if kind is None:
            count = len([f for f in dataclasses.fields(cls) if f.init])
            resolved = (
                VariantKind.UNIT if count == 0
                else VariantKind.NEWTYPE if count == 1
                else VariantKind.STRUCT
            )
        else:
            resolved = VariantKind(kind)
        if resolved is VariantKind.NEWTYPE and len(dataclasses.fields(cls)) != 1:
            raise TypeError(f"newtype variant {cls.__name__} must have exactly one field")
        cls.__variant__ = VariantSpec(tag, resolved)
        return cls

    return wrap


def variant_spec(cls: Any) -> VariantSpec | None:
    return getattr(cls, "__variant__", None) if isinstance(cls, type) else None


# ── Scalar shapes ────────────────────────────────────────────────


class _BoolVisitor(Visitor):
    expecting = "a boolean"

    def visit_bool(self, value: bool) -> bool:
        return value


class _IntVisitor(Visitor):
    expecting = "an integer"

    def visit_int(self, value: int) -> int:
        return value


class _FloatVisitor(Visitor):
    expecting = "a number"

    def visit_float(self, value: float) -> float:
        return value

    def visit_int(self, value: int) -> float:
        return float(value)


class _StrVisitor(Visitor):
    expecting = "a string"

    def visit_str(self, value: str) -> str:
        return value


class _UnitVisitor(Visitor):
    expecting = "unit"

    def visit_unit(self) -> None:
        return None


class _BytesVisitor(Visitor):
    expecting = "a byte buffer"

    def visit_bytes(self, value: bytes) -> bytes:
        return value

    def visit_str(self, value: str) -> bytes:
        return value.encode("utf-8")

    def visit_seq(self, seq: SeqAccess) -> bytes:
        out = bytearray()
        while (byte := seq.next_element(_U8_SHAPE)) is not END:
            out.append(byte)
        return bytes(out)


class BoolShape:
    def decode(self, decoder: Decoder) -> bool:
        return decoder.decode_bool(_BoolVisitor())


class IntShape:
    def __init__(self, bits: int = 64, signed: bool = True) -> None:
        self.bits = bits
        self.signed = signed

    def decode(self, decoder: Decoder) -> int:
        return decoder.decode_int(_IntVisitor(), self.bits, self.signed)


class FloatShape:
    def __init__(self, bits: int = 64) -> None:
        self.bits = bits

    def decode(self, decoder: Decoder) -> float:
        return decoder.decode_float(_FloatVisitor(), self.bits)


class StrShape:
    def decode(self, decoder: Decoder) -> str:
        return decoder.decode_string(_StrVisitor())


class IdentifierShape:
    """Record keys and variant tags.

    Plain labels by default. ``build`` turns the label into something
    else, e.g. ``Identifier.from_label`` for ``Identifier`` targets.
    """

    def __init__(self, build: typing.Callable[[str], Any] = str) -> None:
        self.build = build

    def decode(self, decoder: Decoder) -> Any:
        return self.build(decoder.decode_identifier(_StrVisitor()))


class CharShape:
    def decode(self, decoder: Decoder) -> str:
        return decoder.decode_char(_StrVisitor())


class BytesShape:
    def decode(self, decoder: Decoder) -> bytes:
        return decoder.decode_byte_buf(_BytesVisitor())


class UnitShape:
    def decode(self, decoder: Decoder) -> None:
        return decoder.decode_unit(_UnitVisitor())


class _IgnoreVisitor(Visitor):
    expecting = "anything"

    def visit_unit(self) -> None:
        return None


class IgnoredShape:
    def decode(self, decoder: Decoder) -> None:
        return decoder.decode_ignored_any(_IgnoreVisitor())


_U8_SHAPE = IntShape(8, signed=False)
_STR_SHAPE = StrShape()
_IDENT_SHAPE = IdentifierShape()
IGNORED = IgnoredShape()


# ── Generic values ───────────────────────────────────────────────


class _AnyVisitor(Visitor):
    expecting = "any value"

    def visit_unit(self) -> None:
        return None

    def visit_bool(self, value: bool) -> bool:
        return value

    def visit_int(self, value: int) -> int:
        return value

    def visit_float(self, value: float) -> float:
        return value

    def visit_str(self, value: str) -> str:
        return value

    def visit_bytes(self, value: bytes) -> bytes:
        return value

    def visit_none(self) -> None:
        return None

    def visit_some(self, decoder: Decoder) -> Any:
        return ANY.decode(decoder)

    def visit_seq(self, seq: SeqAccess) -> list:
        items = []
        while (item := seq.next_element(ANY)) is not END:
            items.append(item)
        return items

    def visit_map(self, mapping: MapAccess) -> dict:
        out = {}
        while (key := mapping.next_key(ANY)) is not END:
            out[key] = mapping.next_value(ANY)
        return out

    def visit_enum(self, data: EnumAccess) -> Tag:
        label, access = data.variant(_IDENT_SHAPE)
        access.unit_variant()
        return Tag(label)


class AnyShape:
    def decode(self, decoder: Decoder) -> Any:
        return decoder.decode_any(_AnyVisitor())


ANY = AnyShape()


# ── Containers ───────────────────────────────────────────────────


class _OptionVisitor(Visitor):
    expecting = "an optional value"

    def __init__(self, inner: Shape) -> None:
        self.inner = inner

    def visit_none(self) -> None:
        return None

    def visit_unit(self) -> None:
        return None

    def visit_some(self, decoder: Decoder) -> Any:
        return self.inner.decode(decoder)


class OptionShape:
    def __init__(self, inner: Shape) -> None:
        self.inner = inner

    def decode(self, decoder: Decoder) -> Any:
        return decoder.decode_option(_OptionVisitor(self.inner))


class _ListVisitor(Visitor):
    expecting = "a sequence"

    def __init__(self, element: Shape, as_tuple: bool) -> None:
        self.element = element
        self.as_tuple = as_tuple

    def visit_seq(self, seq: SeqAccess) -> list | tuple:
        items = []
        while (item := seq.next_element(self.element)) is not END:
            items.append(item)
        return tuple(items) if self.as_tuple else items


class ListShape:
    def __init__(self, element: Shape, as_tuple: bool = False) -> None:
        self.element = element
        self.as_tuple = as_tuple

    def decode(self, decoder: Decoder) -> list | tuple:
        return decoder.decode_seq(_ListVisitor(self.element, self.as_tuple))


class _TupleVisitor(Visitor):
    def __init__(self, elements: tuple[Shape, ...]) -> None:
        self.elements = elements
        self.expecting = f"a tuple of size {len(elements)}"

    def visit_seq(self, seq: SeqAccess) -> tuple:
        items = []
        for i, shape in enumerate(self.elements):
            item = seq.next_element(shape)
            if item is END:
                raise OtherError(f"invalid length {i}, expected {self.expecting}")
            items.append(item)
        return tuple(items)


class TupleShape:
    def __init__(self, elements: tuple[Shape, ...]) -> None:
        self.elements = elements

    def decode(self, decoder: Decoder) -> tuple:
        return decoder.decode_tuple(len(self.elements), _TupleVisitor(self.elements))


class _DictVisitor(Visitor):
    expecting = "a map"

    def __init__(self, key: Shape, value: Shape) -> None:
        self.key = key
        self.value = value

    def visit_map(self, mapping: MapAccess) -> dict:
        out = {}
        while (key := mapping.next_key(self.key)) is not END:
            out[key] = mapping.next_value(self.value)
        return out


class DictShape:
    def __init__(self, key: Shape, value: Shape) -> None:
        self.key = key
        self.value = value

    def decode(self, decoder: Decoder) -> dict:
        return decoder.decode_map(_DictVisitor(self.key, self.value))


class _NewtypeVisitor(Visitor):
    def __init__(self, name: str, inner: Shape) -> None:
        self.inner = inner
        self.expecting = f"newtype {name}"

    def visit_newtype_struct(self, decoder: Decoder) -> Any:
        return self.inner.decode(decoder)


class NewtypeShape:
    """Shape for ``typing.NewType`` aliases: decoded as their base type."""

    def __init__(self, name: str, inner: Shape) -> None:
        self.name = name
        self.inner = inner

    def decode(self, decoder: Decoder) -> Any:
        return decoder.decode_newtype_struct(self.name, _NewtypeVisitor(self.name, self.inner))


# ── Structs ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Field:
    attr: str
    key: str
    shape: Shape
    default: Any  # dataclasses.MISSING when the field is required
    default_factory: Any


def _field_default(field: _Field) -> Any:
    if field.default is not dataclasses.MISSING:
        return field.default
    if field.default_factory is not dataclasses.MISSING:
        return field.default_factory()
    if isinstance(field.shape, OptionShape):
        return None
    return dataclasses.MISSING


class _StructVisitor(Visitor):
    def __init__(
        self, name: str, build: Any, fields: tuple[_Field, ...],
        options: DecodeOptions,
    ) -> None:
        self.name = name
        self.build = build
        self.fields = fields
        self.options = options
        self.expecting = f"struct {name}"

    def visit_seq(self, seq: SeqAccess) -> Any:
        values = {}
        for i, field in enumerate(self.fields):
            value = seq.next_element(field.shape)
            if value is END:
                raise OtherError(
                    f"invalid length {i}, expected {self.expecting} "
                    f"with {len(self.fields)} elements"
                )
            values[field.attr] = value
        return self.build(**values)

    def visit_map(self, mapping: MapAccess) -> Any:
        by_key = {f.key: f for f in self.fields}
        values: dict[str, Any] = {}
        while (key := mapping.next_key(_IDENT_SHAPE)) is not END:
            field = by_key.get(key)
            if field is None:
                if self.options.deny_unknown_fields:
                    expected = ", ".join(f"`{k}`" for k in by_key)
                    raise OtherError(f"unknown field `{key}`, expected one of {expected}")
                mapping.next_value(IGNORED)
                continue
            if field.attr in values:
                raise OtherError(f"duplicate field `{key}`")
            values[field.attr] = mapping.next_value(field.shape)
        for field in self.fields:
            if field.attr in values:
                continue
            default = _field_default(field)
            if default is dataclasses.MISSING:
                raise OtherError(f"missing field `{field.key}`")
            values[field.attr] = default
        return self.build(**values)


class StructShape:
    """Dataclass shape. Accepts records by field name or arrays by position."""

    def __init__(self, cls: type) -> None:
        self.cls = cls
        self._fields: tuple[_Field, ...] | None = None

    @property
    def fields(self) -> tuple[_Field, ...]:
        # Resolved lazily so that self-referencing dataclasses work.
        if self._fields is None:
            hints = typing.get_type_hints(self.cls, include_extras=True)
            self._fields = tuple(
                _Field(
                    attr=f.name,
                    key=f.metadata.get("rename", f.name),
                    shape=shape_for(hints[f.name]),
                    default=f.default,
                    default_factory=f.default_factory,
                )
                for f in dataclasses.fields(self.cls)
                if f.init
            )
        return self._fields

    def visitor(self, options: DecodeOptions) -> _StructVisitor:
        return _StructVisitor(self.cls.__name__, self.cls, self.fields, options)

    def decode(self, decoder: Decoder) -> Any:
        fields = self.fields
        if not fields:
            return decoder.decode_unit_struct(
                self.cls.__name__, _UnitStructVisitor(self.cls)
            )
        return decoder.decode_struct(
            self.cls.__name__,
            tuple(f.key for f in fields),
            self.visitor(decoder.options),
        )


class _UnitStructVisitor(Visitor):
    def __init__(self, cls: type) -> None:
        self.cls = cls
        self.expecting = f"unit struct {cls.__name__}"

    def visit_unit(self) -> Any:
        return self.cls()


# ── Enums ────────────────────────────────────────────────────────


def _unknown_variant(tag: str, known: typing.Iterable[str]) -> OtherError:
    expected = ", ".join(f"`{k}`" for k in known)
    return OtherError(f"unknown variant `{tag}`, expected one of {expected}")


class _EnumVisitor(Visitor):
    def __init__(self, cls: type[enum.Enum], members: dict[str, enum.Enum]) -> None:
        self.members = members
        self.expecting = f"enum {cls.__name__}"

    def visit_enum(self, data: EnumAccess) -> enum.Enum:
        tag, access = data.variant(_IDENT_SHAPE)
        member = self.members.get(tag)
        if member is None:
            raise _unknown_variant(tag, self.members)
        access.unit_variant()
        return member


class EnumShape:
    """``enum.Enum`` shape. Members match by string value, else by name."""

    def __init__(self, cls: type[enum.Enum]) -> None:
        self.cls = cls
        self.members = {
            member.value if isinstance(member.value, str) else member.name: member
            for member in cls
        }

    def decode(self, decoder: Decoder) -> enum.Enum:
        return decoder.decode_enum(
            self.cls.__name__, tuple(self.members), _EnumVisitor(self.cls, self.members)
        )


class _TupleVariantVisitor(Visitor):
    def __init__(self, tag: str, struct: StructShape, options: DecodeOptions) -> None:
        self.struct = struct
        self.options = options
        self.expecting = f"tuple variant {tag}"

    def visit_unit(self) -> Any:
        required = [f for f in self.struct.fields if _field_default(f) is dataclasses.MISSING]
        if required:
            raise OtherError(
                f"invalid length 0, expected {self.expecting} "
                f"with {len(self.struct.fields)} elements"
            )
        return self.struct.cls()

    def visit_seq(self, seq: SeqAccess) -> Any:
        return self.struct.visitor(self.options).visit_seq(seq)


class _UnionVisitor(Visitor):
    def __init__(self, name: str, variants: dict[str, tuple[VariantSpec, StructShape]],
                 options: DecodeOptions) -> None:
        self.variants = variants
        self.options = options
        self.expecting = f"enum {name}"

    def visit_enum(self, data: EnumAccess) -> Any:
        tag, access = data.variant(_IDENT_SHAPE)
        entry = self.variants.get(tag)
        if entry is None:
            raise _unknown_variant(tag, self.variants)
        spec, struct = entry
        if spec.kind is VariantKind.UNIT:
            access.unit_variant()
            return struct.cls()
        if spec.kind is VariantKind.NEWTYPE:
            (field,) = struct.fields
            return struct.cls(**{field.attr: access.newtype_variant(field.shape)})
        if spec.kind is VariantKind.TUPLE:
            return access.tuple_variant(
                len(struct.fields), _TupleVariantVisitor(tag, struct, self.options)
            )
        return access.struct_variant(
            tuple(f.key for f in struct.fields), struct.visitor(self.options)
        )


class UnionShape:
    """Tagged union of ``@variant`` dataclasses."""

    def __init__(self, name: str, members: tuple[type, ...]) -> None:
        self.name = name
        self.variants: dict[str, tuple[VariantSpec, StructShape]] = {}
        for cls in members:
            spec = variant_spec(cls)
            if spec is None:
                raise TypeError(f"{cls!r} in union {name} is not a @variant dataclass")
            if spec.tag in self.variants:
                raise TypeError(f"duplicate variant tag {spec.tag!r} in union {name}")
            self.variants[spec.tag] = (spec, StructShape(cls))

    def decode(self, decoder: Decoder) -> Any:
        return decoder.decode_enum(
            self.name, tuple(self.variants),
            _UnionVisitor(self.name, self.variants, decoder.options),
        )


# ── Annotation → shape ───────────────────────────────────────────

_SCALARS: dict[Any, Any] = {
    bool: BoolShape(),
    int: IntShape(64, signed=True),
    float: FloatShape(64),
    str: _STR_SHAPE,
    bytes: BytesShape(),
    Identifier: IdentifierShape(Identifier.from_label),
    None: UnitShape(),
    type(None): UnitShape(),
    Any: ANY,
    Ignored: IGNORED,
}

_cache: dict[Any, Any] = {}


def shape_for(tp: Any) -> Any:
    """Return the shape for an annotation, building it on first use."""
    if callable(getattr(type(tp), "decode", None)):
        return tp  # already a shape
    try:
        cached = _cache.get(tp)
    except TypeError:  # unhashable annotation
        return _build_shape(tp)
    if cached is None:
        cached = _cache[tp] = _build_shape(tp)
    return cached


def _build_shape(tp: Any) -> Any:
    try:
        scalar = _SCALARS.get(tp)
    except TypeError:
        scalar = None
    if scalar is not None:
        return scalar

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is Annotated:
        base, *extras = args
        for extra in extras:
            if isinstance(extra, IntWidth):
                return IntShape(extra.bits, extra.signed)
            if isinstance(extra, FloatWidth):
                return FloatShape(extra.bits)
            if isinstance(extra, CharMarker):
                return CharShape()
        return shape_for(base)

    if origin is Union or origin is types.UnionType:
        present = tuple(a for a in args if a is not type(None))
        if len(present) < len(args):
            inner = shape_for(present[0]) if len(present) == 1 else _union(tp, present)
            return OptionShape(inner)
        return _union(tp, present)

    if origin in (list, tuple, collections.abc.Sequence):
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return ListShape(shape_for(args[0]), as_tuple=True)
            return TupleShape(tuple(shape_for(a) for a in args))
        element = shape_for(args[0]) if args else ANY
        return ListShape(element)

    if origin in (dict, collections.abc.Mapping):
        key, value = args if args else (str, Any)
        return DictShape(shape_for(key), shape_for(value))

    if tp in (list, tuple):
        return ListShape(ANY, as_tuple=tp is tuple)
    if tp is dict:
        return DictShape(_STR_SHAPE, ANY)

    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        return NewtypeShape(tp.__name__, shape_for(supertype))

    if isinstance(tp, type):
        if issubclass(tp, enum.Enum):
            return EnumShape(tp)
        if dataclasses.is_dataclass(tp):
            return StructShape(tp)

    raise TypeError(f"no shape for annotation {tp!r}")


def _union(tp: Any, members: tuple[Any, ...]) -> UnionShape:
    name = getattr(tp, "__name__", None) or " | ".join(m.__name__ for m in members)
    return UnionShape(name, members)


def decode(term: Term, target: Any, options: DecodeOptions | None = None) -> Any:
    """Decode ``term`` into a value of type ``target``."""
    shape = shape_for(target)
    logger.debug("decoding %s term with %s", kind_name(term), type(shape).__name__)
    return shape.decode(TermDecoder(term, options or DEFAULT_OPTIONS))
