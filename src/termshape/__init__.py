"""Decode evaluated configuration terms into typed Python values."""

from termshape.decoder import DecodeOptions, NarrowingPolicy, TermDecoder, unwrap_term
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
from termshape.shapes import decode, shape_for, variant

__version__ = "0.1.0"

__all__ = [
    "DecodeError",
    "DecodeOptions",
    "EmptyMetaValue",
    "Identifier",
    "InvalidArrayLength",
    "InvalidRecordLength",
    "InvalidType",
    "MissingValue",
    "NarrowingPolicy",
    "OtherError",
    "TermDecoder",
    "UnimplementedType",
    "decode",
    "shape_for",
    "unwrap_term",
    "variant",
]
