"""Tests for scalar dispatch, numeric conversion and the generic entry point."""

from __future__ import annotations

import logging
import math
import struct
from typing import Any, Optional

import pytest

from termshape import decode
from termshape.access import Visitor
from termshape.decoder import (
    DecodeOptions,
    NarrowingPolicy,
    TermDecoder,
    narrow_float,
    narrow_int,
    round_half_away,
)
from termshape.errors import (
    EmptyMetaValue,
    InvalidArrayLength,
    InvalidType,
    OtherError,
    UnimplementedType,
)
from termshape.shapes import F32, I8, I64, U8, U64, Char, Ignored, Tag, UnitShape
from termshape.terms import Bool, Null, Other
from tests.helpers import arr, fun, meta, num, rec, tag, text
from tests.models import UserId

WRAP = DecodeOptions(narrowing=NarrowingPolicy.WRAP)
CHECKED = DecodeOptions(narrowing=NarrowingPolicy.CHECKED)


class TestScalars:
    def test_bool(self):
        assert decode(Bool(False), bool) is False

    def test_str(self):
        assert decode(text("hello"), str) == "hello"

    def test_unit(self):
        assert decode(Null(), None) is None

    def test_float(self):
        assert decode(num(10), float) == 10.0

    def test_char_is_not_validated(self):
        assert decode(text("ab"), Char) == "ab"

    def test_newtype_alias(self):
        assert decode(num(7), UserId) == 7

    @pytest.mark.parametrize("term, target, expected", [
        (num(1), bool, "Bool"),
        (Bool(True), str, "Str"),
        (text("1"), int, "Num"),
        (text("1"), float, "Num"),
        (num(0), None, "Null"),
    ])
    def test_mismatch(self, term, target, expected):
        with pytest.raises(InvalidType) as exc:
            decode(term, target)
        assert exc.value.expected == expected

    def test_mismatch_names_actual_kind(self):
        with pytest.raises(InvalidType) as exc:
            decode(rec(), bool)
        assert exc.value == InvalidType(expected="Bool", occurred="Record")

    def test_non_data_term(self):
        with pytest.raises(InvalidType) as exc:
            decode(fun(), None)
        assert exc.value == InvalidType(expected="Null", occurred="Fun")

    def test_nameless_kind(self):
        with pytest.raises(InvalidType) as exc:
            decode(Other(), str)
        assert exc.value.occurred == "Other"


class TestRounding:
    @pytest.mark.parametrize("value, expected", [
        (2.5, 3.0),
        (-2.5, -3.0),
        (2.4, 2.0),
        (-2.6, -3.0),
        (0.49999999999999994, 0.0),
        (1e20, 1e20),
    ])
    def test_half_away_from_zero(self, value, expected):
        assert round_half_away(value) == expected

    def test_non_finite_pass_through(self):
        assert round_half_away(math.inf) == math.inf
        assert math.isnan(round_half_away(math.nan))

    def test_decode_rounds(self):
        assert decode(num(2.5), int) == 3
        assert decode(num(-2.5), I64) == -3
        assert decode(num(9.4), U8) == 9


class TestNarrowing:
    def test_saturate_is_default(self):
        assert decode(num(300), U8) == 255
        assert decode(num(-1), U8) == 0
        assert decode(num(-1000), I8) == -128

    def test_wrap(self):
        assert decode(num(300), U8, WRAP) == 44
        assert decode(num(-1), U8, WRAP) == 255
        assert decode(num(128), I8, WRAP) == -128

    def test_checked(self):
        with pytest.raises(OtherError) as exc:
            decode(num(300), U8, CHECKED)
        assert str(exc.value) == "number 300 out of range for u8"

    def test_checked_in_range(self):
        assert decode(num(255), U8, CHECKED) == 255

    def test_nan(self):
        assert narrow_int(math.nan, 32, True) == 0
        with pytest.raises(OtherError):
            narrow_int(math.nan, 32, True, NarrowingPolicy.CHECKED)

    def test_infinity_clamps(self):
        assert narrow_int(math.inf, 8, True) == 127
        assert narrow_int(-math.inf, 64, False) == 0

    def test_large_unsigned(self):
        assert decode(num(2.0 ** 70), U64) == 2 ** 64 - 1


class TestFloatNarrowing:
    def test_f32_rounds_to_single(self):
        single = struct.unpack("<f", struct.pack("<f", 0.1))[0]
        assert decode(num(0.1), F32) == single

    def test_f32_overflow_is_infinite(self):
        assert decode(num(1e300), F32) == math.inf
        assert narrow_float(-1e300, 32) == -math.inf

    def test_f64_untouched(self):
        assert decode(num(0.1), float) == 0.1

    def test_no_rounding(self):
        assert decode(num(2.5), float) == 2.5


class TestBytes:
    def test_from_string(self):
        assert decode(text("hé"), bytes) == "hé".encode("utf-8")

    def test_from_array(self):
        assert decode(arr(num(104), num(105)), bytes) == b"hi"

    def test_other_kind(self):
        with pytest.raises(InvalidType) as exc:
            decode(num(1), bytes)
        assert exc.value == InvalidType(expected="Str or Array", occurred="Num")

    def test_borrowed_and_owned_requests_agree(self):
        class Raw(Visitor):
            expecting = "raw value"

            def visit_bytes(self, value):
                return value

            def visit_str(self, value):
                return value

        assert TermDecoder(text("ab")).decode_bytes(Raw()) == b"ab"
        assert TermDecoder(text("ab")).decode_byte_buf(Raw()) == b"ab"
        assert TermDecoder(meta(text("ab"))).decode_str(Raw()) == "ab"
        assert TermDecoder(text("ab")).decode_string(Raw()) == "ab"


class TestOption:
    def test_null_is_none(self):
        assert decode(Null(), Optional[int]) is None

    def test_value(self):
        assert decode(num(4), Optional[int]) == 4

    def test_annotated_null(self):
        assert decode(meta(Null()), Optional[int]) is None

    def test_inner_mismatch(self):
        with pytest.raises(InvalidType):
            decode(text("x"), Optional[int])


class TestAnnotations:
    def test_transparent_for_numbers(self):
        assert decode(meta(num(10)), float) == decode(num(10), float)
        assert decode(meta(meta(meta(num(10)))), int) == 10

    def test_transparent_in_containers(self):
        assert decode(arr(meta(num(1)), num(2)), list[int]) == [1, 2]

    @pytest.mark.parametrize("target", [
        bool, int, float, str, bytes, None, list[int], dict[str, int],
        Optional[int], tuple[int, int], UserId,
    ])
    def test_empty_annotation_fails_everywhere(self, target):
        with pytest.raises(EmptyMetaValue):
            decode(meta(), target)


class TestAny:
    def test_scalars(self):
        assert decode(Null(), Any) is None
        assert decode(Bool(True), Any) is True
        assert decode(num(3), Any) == 3.0
        assert decode(text("x"), Any) == "x"

    def test_composites(self):
        term = rec(a=arr(num(1), Null()), b=tag("x"))
        assert decode(term, Any) == {"a": [1.0, None], "b": Tag("x")}

    def test_annotation_reads_as_unit(self):
        assert decode(meta(num(10)), Any) is None
        assert decode(rec(a=meta(text("x"))), Any) == {"a": None}

    def test_empty_annotation(self):
        with pytest.raises(EmptyMetaValue):
            decode(meta(), Any)

    def test_non_data_term(self):
        with pytest.raises(UnimplementedType) as exc:
            decode(fun(), Any)
        assert exc.value == UnimplementedType("Fun")

    def test_nameless_kind(self):
        with pytest.raises(UnimplementedType) as exc:
            decode(Other(), Any)
        assert exc.value.occurred == "Other"


class TestIgnored:
    @pytest.mark.parametrize("term", [
        Null(), num(1), fun(), Other(), meta(), rec(a=fun()), arr(meta()),
    ])
    def test_accepts_anything(self, term):
        assert decode(term, Ignored) is None


class TestDecoderLifecycle:
    def test_single_use(self):
        decoder = TermDecoder(Null())
        UnitShape().decode(decoder)
        with pytest.raises(RuntimeError):
            UnitShape().decode(decoder)

    def test_repeated_decodes_agree(self):
        term = rec(x=num(1), y=text("bad"))
        results = []
        for _ in range(2):
            with pytest.raises(InvalidType) as exc:
                decode(term, dict[str, int])
            results.append(exc.value)
        assert results[0] == results[1]


class TestLogging:
    def test_entry_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="termshape"):
            decode(arr(num(1)), list[int])
        assert "decoding Array term with ListShape" in caplog.text

    def test_arity_failure_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="termshape"):
            with pytest.raises(InvalidArrayLength):
                decode(arr(num(1), num(2)), tuple[int])
        assert "array of 2 left 1 element(s) unconsumed" in caplog.text
