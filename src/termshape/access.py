"""Accessor protocol between the decoder and target shapes.

A shape never looks at terms directly. It asks a decoder for the form it
wants (``decode_seq``, ``decode_struct``...) and passes a ``Visitor``;
the decoder calls back exactly one ``visit_*`` method. Composite terms
arrive as accessors the visitor pulls children from, one at a time, each
pull decoding the child against whatever shape the visitor names next.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol

from termshape.errors import OtherError

if TYPE_CHECKING:
    from termshape.decoder import Decoder


class _End:
    """Sentinel returned by accessors once they run out of children."""

    _instance: _End | None = None

    def __new__(cls) -> _End:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END"

    def __bool__(self) -> bool:
        return False


END = _End()


class Shape(Protocol):
    """Anything that can build a value by driving a decoder."""

    def decode(self, decoder: Decoder) -> Any: ...


# ── Accessors ────────────────────────────────────────────────────


class SeqAccess(ABC):
    @abstractmethod
    def next_element(self, shape: Shape) -> Any:
        """Decode the next element against ``shape``, or return END."""

    def size_hint(self) -> int | None:
        return None


class MapAccess(ABC):
    @abstractmethod
    def next_key(self, shape: Shape) -> Any:
        """Decode the next key against ``shape``, or return END."""

    @abstractmethod
    def next_value(self, shape: Shape) -> Any:
        """Decode the value belonging to the last key returned."""

    def size_hint(self) -> int | None:
        return None


class VariantAccess(ABC):
    @abstractmethod
    def unit_variant(self) -> None: ...

    @abstractmethod
    def newtype_variant(self, shape: Shape) -> Any: ...

    @abstractmethod
    def tuple_variant(self, length: int, visitor: Visitor) -> Any: ...

    @abstractmethod
    def struct_variant(self, fields: tuple[str, ...], visitor: Visitor) -> Any: ...


class EnumAccess(ABC):
    @abstractmethod
    def variant(self, shape: Shape) -> tuple[Any, VariantAccess]:
        """Decode the tag against ``shape`` and hand back the payload access."""


# ── Visitor ──────────────────────────────────────────────────────


class Visitor:
    """Receives exactly one callback from a decoder.

    Every method rejects its input by default; subclasses override the
    forms they accept. ``expecting`` names the target in error messages.
    """

    expecting = "a value"

    def _reject(self, unexpected: str) -> Any:
        raise OtherError(f"invalid type: {unexpected}, expected {self.expecting}")

    def visit_unit(self) -> Any:
        return self._reject("unit value")

    def visit_bool(self, value: bool) -> Any:
        return self._reject(f"boolean `{str(value).lower()}`")

    def visit_int(self, value: int) -> Any:
        return self._reject(f"integer `{value}`")

    def visit_float(self, value: float) -> Any:
        return self._reject(f"floating point `{value}`")

    def visit_str(self, value: str) -> Any:
        return self._reject(f"string {value!r}")

    def visit_bytes(self, value: bytes) -> Any:
        return self._reject("byte array")

    def visit_none(self) -> Any:
        return self._reject("Option value")

    def visit_some(self, decoder: Decoder) -> Any:
        return self._reject("Option value")

    def visit_newtype_struct(self, decoder: Decoder) -> Any:
        return self._reject("newtype struct")

    def visit_seq(self, seq: SeqAccess) -> Any:
        return self._reject("sequence")

    def visit_map(self, mapping: MapAccess) -> Any:
        return self._reject("map")

    def visit_enum(self, data: EnumAccess) -> Any:
        return self._reject("enum")
