"""
Strict codec: primitives, strings and bounded collections.

Covers the canonical form rules every other layer builds on:
1. Little-endian fixed-width integers with overflow rejection
2. Length prefix tiers chosen from the declared maximum
3. Charset classes on ASCII strings
4. Sets and maps ordered by element encoding, strict on decode
5. Exact consumption of the input buffer
"""

import pytest

from rgbcore.errors import (
    CardinalityViolation,
    DuplicateKey,
    IntegerOverflow,
    InvalidCharset,
    LengthOutOfRange,
    MalformedEncoding,
    OrderingViolation,
)
from rgbcore.strict.codec import (
    ALPHA,
    ALPHA_CAPS,
    ALPHA_CAPS_NUM,
    BOOL,
    I8,
    I64,
    U8,
    U16,
    U24,
    U32,
    U256,
    UNICODE,
    UNIT,
    ArrayOf,
    AsciiString,
    ByteArray,
    Bytes,
    ListOf,
    MapOf,
    SetOf,
    decode,
    encode,
    prefix_width,
)


# =============================================================================
# INTEGERS AND SCALARS
# =============================================================================

class TestIntegers:

    def test_unsigned_little_endian(self):
        assert encode(U16, 0x1234) == b"\x34\x12"
        assert encode(U24, 0x010203) == b"\x03\x02\x01"
        assert encode(U32, 1) == b"\x01\x00\x00\x00"

    def test_unsigned_overflow_rejected(self):
        with pytest.raises(IntegerOverflow):
            encode(U8, 256)
        with pytest.raises(IntegerOverflow):
            encode(U8, -1)

    def test_u256_full_width(self):
        value = (1 << 256) - 1
        assert encode(U256, value) == b"\xff" * 32
        assert decode(U256, b"\xff" * 32) == value

    def test_signed_twos_complement(self):
        assert encode(I8, -1) == b"\xff"
        assert decode(I8, b"\x80") == -128
        assert decode(I64, encode(I64, -(1 << 63))) == -(1 << 63)
        with pytest.raises(IntegerOverflow):
            encode(I8, 128)

    def test_bool_is_not_an_integer(self):
        with pytest.raises(MalformedEncoding):
            encode(U8, True)

    def test_bool_bytes(self):
        assert encode(BOOL, True) == b"\x01"
        assert decode(BOOL, b"\x00") is False
        with pytest.raises(MalformedEncoding):
            decode(BOOL, b"\x02")

    def test_unit_is_zero_sized(self):
        assert encode(UNIT, None) == b""
        assert decode(UNIT, b"") is None

    def test_unicode_scalar_is_four_bytes(self):
        assert encode(UNICODE, "€") == b"\xac\x20\x00\x00"
        assert decode(UNICODE, b"\xac\x20\x00\x00") == "€"

    def test_unicode_surrogate_rejected(self):
        with pytest.raises(MalformedEncoding):
            decode(UNICODE, (0xD800).to_bytes(4, "little"))


class TestBufferConsumption:

    def test_trailing_bytes_rejected(self):
        with pytest.raises(MalformedEncoding, match="trailing"):
            decode(U8, b"\x01\x02")

    def test_truncated_input_rejected(self):
        with pytest.raises(MalformedEncoding, match="unexpected end"):
            decode(U32, b"\x01\x00")


# =============================================================================
# BYTES AND STRINGS
# =============================================================================

class TestLengthPrefix:

    @pytest.mark.parametrize("max_len,width", [
        (0, 1),
        (0xFF, 1),
        (0x100, 2),
        (0xFFFF, 2),
        (0x10000, 3),
        (0xFFFFFF, 3),
        (0x1000000, 4),
        (0xFFFFFFFF, 4),
    ])
    def test_prefix_tiers(self, max_len, width):
        assert prefix_width(max_len) == width

    def test_prefix_beyond_u32_rejected(self):
        with pytest.raises(ValueError):
            prefix_width(1 << 32)

    def test_bytes_prefix_follows_declared_max(self):
        assert encode(Bytes(0, 0xFF), b"ab") == b"\x02ab"
        assert encode(Bytes(0, 0xFFFF), b"ab") == b"\x02\x00ab"
        assert encode(Bytes(0, 0xFFFFFF), b"ab") == b"\x02\x00\x00ab"

    def test_bytes_bounds(self):
        ty = Bytes(1, 8)
        with pytest.raises(LengthOutOfRange):
            encode(ty, b"")
        with pytest.raises(LengthOutOfRange):
            encode(ty, b"x" * 9)
        with pytest.raises(LengthOutOfRange):
            decode(ty, b"\x09" + b"x" * 9)

    def test_byte_array_has_no_prefix(self):
        ty = ByteArray(4)
        assert encode(ty, b"abcd") == b"abcd"
        with pytest.raises(LengthOutOfRange):
            encode(ty, b"abc")

    def test_invalid_bounds_rejected_at_declaration(self):
        with pytest.raises(ValueError):
            Bytes(5, 4)


class TestAsciiString:
    TICKER = AsciiString(ALPHA_CAPS, ALPHA_CAPS_NUM, 1, 8, name="Ticker")
    WORD = AsciiString(ALPHA, ALPHA, 0, 8, name="Word")

    def test_single_charset_is_prefixed_run(self):
        assert encode(self.WORD, "abc") == b"\x03abc"
        assert decode(self.WORD, b"\x00") == ""

    def test_distinct_first_charset_written_apart(self):
        assert encode(self.TICKER, "BTC2") == b"B\x03TC2"
        assert decode(self.TICKER, b"B\x03TC2") == "BTC2"
        assert encode(self.TICKER, "B") == b"B\x00"

    def test_distinct_first_charset_cannot_be_empty(self):
        with pytest.raises(ValueError):
            AsciiString(ALPHA_CAPS, ALPHA_CAPS_NUM, 0, 8)

    def test_first_character_class(self):
        with pytest.raises(InvalidCharset, match="position 0"):
            encode(self.TICKER, "2BTC")

    def test_rest_character_class(self):
        with pytest.raises(InvalidCharset, match="position 1"):
            encode(self.TICKER, "Btc")

    def test_empty_rejected(self):
        with pytest.raises(LengthOutOfRange):
            encode(self.TICKER, "")

    def test_rest_beyond_max_rejected_on_decode(self):
        with pytest.raises(LengthOutOfRange):
            decode(self.TICKER, b"B\x08TC2TC2TC")

    def test_non_ascii_bytes_rejected_on_decode(self):
        with pytest.raises(InvalidCharset):
            decode(self.TICKER, b"A\x01\xff")
        with pytest.raises(InvalidCharset):
            decode(self.WORD, b"\x02a\xff")


# =============================================================================
# COLLECTIONS
# =============================================================================

class TestCollections:

    def test_list_preserves_order(self):
        ty = ListOf(U8, 0, 0xFF)
        assert encode(ty, [3, 1, 2]) == b"\x03\x03\x01\x02"
        assert decode(ty, b"\x03\x03\x01\x02") == (3, 1, 2)

    def test_list_cardinality(self):
        ty = ListOf(U8, 1, 3)
        with pytest.raises(CardinalityViolation):
            encode(ty, [])
        with pytest.raises(CardinalityViolation):
            decode(ty, b"\x04\x01\x02\x03\x04")

    def test_map_one_past_u16_maximum(self):
        ty = MapOf(U32, U8, 0, 0xFFFF)
        with pytest.raises(CardinalityViolation):
            encode(ty, {k: 0 for k in range(0x10000)})

    def test_nonempty_list_rejects_zero_count(self):
        with pytest.raises(CardinalityViolation):
            decode(ListOf(U8, 1, 0xFFFF), b"\x00\x00")

    def test_set_sorted_by_encoding_not_value(self):
        # 0x0100 encodes as 00 01 and sorts before 0x0001 (01 00)
        ty = SetOf(U16)
        assert encode(ty, {0x0001, 0x0100}) == b"\x02\x00" + b"\x00\x01" + b"\x01\x00"

    def test_set_encoding_independent_of_insertion_order(self):
        ty = SetOf(U16)
        assert encode(ty, [5, 1, 3]) == encode(ty, [3, 5, 1])

    def test_set_decode_rejects_unsorted(self):
        with pytest.raises(OrderingViolation):
            decode(SetOf(U16), b"\x02\x00" + b"\x01\x00" + b"\x00\x01")

    def test_set_decode_rejects_duplicates(self):
        with pytest.raises(DuplicateKey):
            decode(SetOf(U16), b"\x02\x00" + b"\x01\x00" + b"\x01\x00")

    def test_set_encode_rejects_duplicates(self):
        with pytest.raises(DuplicateKey):
            encode(SetOf(U8), [1, 1])

    def test_set_factory(self):
        assert decode(SetOf(U8, factory=tuple), b"\x02\x00\x01\x02") == (1, 2)
        assert decode(SetOf(U8), b"\x02\x00\x01\x02") == frozenset({1, 2})

    def test_map_sorted_by_key(self):
        ty = MapOf(U8, U8)
        data = encode(ty, {2: 20, 1: 10})
        assert data == b"\x02\x00" + b"\x01\x0a" + b"\x02\x14"
        assert decode(ty, data) == {1: 10, 2: 20}

    def test_map_decode_rejects_duplicate_keys(self):
        with pytest.raises(DuplicateKey):
            decode(MapOf(U8, U8), b"\x02\x00" + b"\x01\x0a" + b"\x01\x0b")

    def test_map_pairs_factory(self):
        ty = MapOf(U8, U8, factory=tuple)
        assert decode(ty, b"\x01\x00\x07\x08") == ((7, 8),)
        assert encode(ty, [(7, 8)]) == b"\x01\x00\x07\x08"

    def test_map_requires_mapping(self):
        with pytest.raises(MalformedEncoding):
            encode(MapOf(U8, U8), [(1, 2)])

    def test_array_of(self):
        ty = ArrayOf(U16, 2)
        assert encode(ty, [1, 2]) == b"\x01\x00\x02\x00"
        with pytest.raises(LengthOutOfRange):
            encode(ty, [1])

    def test_element_error_carries_index(self):
        with pytest.raises(IntegerOverflow) as exc:
            encode(ListOf(U8), [1, 2, 300])
        assert exc.value.field == "[2]"
