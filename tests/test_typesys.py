"""
Semantic type identity and the type system.

SemIds must be stable under re-derivation and sensitive to every structural
detail of a definition: field names, field order, referenced types, bounds.
"""

import pytest

from rgbcore.commit import SemId
from rgbcore.errors import (
    DuplicateKey,
    IdentifierMismatch,
    InvalidCharset,
    LengthOutOfRange,
    MalformedEncoding,
    UnresolvedTypeReference,
)
from rgbcore.strict.codec import (
    ALPHA,
    ALPHA_CAPS,
    ALPHA_CAPS_NUM,
    ALPHA_NUM,
    BOOL,
    I32,
    U8,
    U16,
    U32,
    U64,
    AsciiString,
    ByteArray,
    Bytes,
    ListOf,
    MapOf,
    SetOf,
)
from rgbcore.strict.composite import Field, Option, Struct, Tagged, TupleOf, Union, variants
from rgbcore.strict.typesys import (
    TY_DEF,
    TYPE_SYSTEM,
    EnumVariant,
    FieldDef,
    Sizing,
    TyArray,
    TyEnum,
    TyList,
    TyPrimitive,
    TyStruct,
    TypeSystem,
    TyUnion,
    UnionVariant,
    charset_enum,
    sem_id,
    transpile,
    transpile_all,
)


def _base() -> tuple:
    types = TypeSystem()
    u8 = types.insert(TyPrimitive(1))
    u16 = types.insert(TyPrimitive(2))
    return types, u8, u16


# =============================================================================
# SEMID DERIVATION
# =============================================================================

class TestSemId:

    def test_primitive_encoding(self):
        # union tag 0 (primitive) followed by the width byte
        assert TY_DEF.encode(TyPrimitive(1)) == b"\x00\x01"
        assert sem_id(TyPrimitive(1)) == SemId.commit(b"\x00\x01")

    def test_stable(self):
        _, u8, u16 = _base()
        a = TyStruct((FieldDef("a", u8), FieldDef("b", u16)))
        b = TyStruct((FieldDef("a", u8), FieldDef("b", u16)))
        assert sem_id(a) == sem_id(b)

    def test_field_name_changes_id(self):
        _, u8, u16 = _base()
        a = TyStruct((FieldDef("a", u8), FieldDef("b", u16)))
        renamed = TyStruct((FieldDef("a", u8), FieldDef("c", u16)))
        assert sem_id(a) != sem_id(renamed)

    def test_field_order_changes_id(self):
        _, u8, u16 = _base()
        a = TyStruct((FieldDef("a", u8), FieldDef("b", u16)))
        swapped = TyStruct((FieldDef("b", u16), FieldDef("a", u8)))
        assert sem_id(a) != sem_id(swapped)

    def test_bounds_change_id(self):
        _, u8, _ = _base()
        assert sem_id(TyList(u8, Sizing(0, 10))) != sem_id(TyList(u8, Sizing(0, 11)))

    def test_referenced_type_changes_id(self):
        _, u8, u16 = _base()
        assert sem_id(TyArray(u8, 4)) != sem_id(TyArray(u16, 4))

    def test_definition_round_trip(self):
        _, u8, u16 = _base()
        ty = TyUnion({0: UnionVariant("none", u8), 3: UnionVariant("some", u16)})
        assert TY_DEF.decode(TY_DEF.encode(ty)) == ty


# =============================================================================
# TYPE SYSTEM
# =============================================================================

class TestTypeSystem:

    def test_insert_is_idempotent(self):
        types, u8, _ = _base()
        assert types.insert(TyPrimitive(1)) == u8
        assert len(types) == 2

    def test_unresolved_reference_rejected(self):
        types = TypeSystem()
        with pytest.raises(UnresolvedTypeReference):
            types.insert(TyList(SemId(b"\x42" * 32), Sizing(0, 1)))
        assert len(types) == 0

    def test_inverted_sizing_rejected(self):
        types, u8, _ = _base()
        with pytest.raises(LengthOutOfRange):
            types.insert(TyList(u8, Sizing(5, 4)))

    def test_duplicate_field_names_rejected(self):
        types, u8, u16 = _base()
        with pytest.raises(DuplicateKey):
            types.insert(TyStruct((FieldDef("a", u8), FieldDef("a", u16))))

    def test_duplicate_enum_tags_rejected(self):
        types = TypeSystem()
        with pytest.raises(DuplicateKey):
            types.insert(TyEnum((EnumVariant("a", 0), EnumVariant("b", 0))))

    def test_invalid_primitive_width(self):
        with pytest.raises(LengthOutOfRange):
            TypeSystem().insert(TyPrimitive(5))

    def test_lookup_missing(self):
        types, _, _ = _base()
        with pytest.raises(UnresolvedTypeReference):
            types[SemId(b"\x00" * 32)]
        assert types.get(SemId(b"\x00" * 32)) is None

    def test_carried_ids_are_recomputed(self):
        with pytest.raises(IdentifierMismatch):
            TypeSystem({SemId(b"\x11" * 32): TyPrimitive(1)})

    def test_loaded_system_must_be_closed(self):
        u8 = sem_id(TyPrimitive(1))
        bytes_ty = TyList(u8, Sizing(0, 0xFF))
        with pytest.raises(UnresolvedTypeReference):
            TypeSystem({sem_id(bytes_ty): bytes_ty})

    def test_encode_decode(self):
        types, u8, u16 = _base()
        types.insert(TyStruct((FieldDef("a", u8), FieldDef("b", u16))))
        data = TYPE_SYSTEM.encode(types)
        assert TYPE_SYSTEM.decode(data) == types
        assert TYPE_SYSTEM.encode(TYPE_SYSTEM.decode(data)) == data

    def test_encoding_independent_of_insertion_order(self):
        a = TypeSystem()
        a.insert(TyPrimitive(1))
        a.insert(TyPrimitive(2))
        b = TypeSystem()
        b.insert(TyPrimitive(2))
        b.insert(TyPrimitive(1))
        assert TYPE_SYSTEM.encode(a) == TYPE_SYSTEM.encode(b)

    def test_extract_closure(self):
        types, u8, u16 = _base()
        list_id = types.insert(TyList(u8, Sizing(0, 4)))
        types.insert(TyPrimitive(4))
        sub = types.extract([list_id])
        assert set(sub) == {u8, list_id}
        assert u16 not in sub

    def test_merge(self):
        a, u8, _ = _base()
        b = TypeSystem()
        b.insert(TyPrimitive(1))
        b.insert(TyPrimitive(8))
        assert a.merge(b) == 1
        assert len(a) == 3


# =============================================================================
# TYPE-DIRECTED DECODING
# =============================================================================

class TestCheck:

    def test_struct_value(self):
        types, u8, u16 = _base()
        sid = types.insert(TyStruct((FieldDef("a", u8), FieldDef("b", u16))))
        assert types.check(sid, b"\x01\x02\x00") == {"a": 1, "b": 2}

    def test_mismatched_bytes_raise(self):
        types, u8, u16 = _base()
        sid = types.insert(TyStruct((FieldDef("a", u8), FieldDef("b", u16))))
        with pytest.raises(MalformedEncoding):
            types.check(sid, b"\x01\x02")

    def test_byte_list_decodes_as_bytes(self):
        types, u8, _ = _base()
        sid = types.insert(TyList(u8, Sizing(1, 8)))
        assert types.check(sid, b"\x03abc") == b"abc"
        with pytest.raises(LengthOutOfRange):
            types.check(sid, b"\x00")

    def test_enum_decodes_as_tagged(self):
        types = TypeSystem()
        sid = transpile(BOOL, types)
        assert types.check(sid, b"\x01") == Tagged("true", None)


# =============================================================================
# DESCRIPTOR TRANSPILATION
# =============================================================================

class TestTranspile:

    def test_encodings_validate_against_derived_type(self):
        record = Struct("Record", [
            Field("id", ByteArray(32)),
            Field("tags", SetOf(U16, 0, 10)),
            Field("attrs", MapOf(U8, Bytes(0, 0xFF), 0, 10)),
            Field("note", Bytes(0, 0xFF), optional=True),
            Field("pair", TupleOf([U8, U32])),
        ])
        types = TypeSystem()
        sid = transpile(record, types)
        value = {
            "id": b"\x07" * 32,
            "tags": {3, 1},
            "attrs": {1: b"x"},
            "note": b"hello",
            "pair": (1, 2),
        }
        decoded = types.check(sid, record.encode(value))
        assert decoded["id"] == b"\x07" * 32
        assert decoded["tags"] == (1, 3)
        assert decoded["attrs"] == ((1, b"x"),)
        assert decoded["note"] == Tagged("some", b"hello")

    def test_option_is_none_some_union(self):
        types = TypeSystem()
        u8 = transpile(U8, types)
        unit = transpile(Struct("Empty", []), types)
        explicit = TyUnion({0: UnionVariant("none", unit), 1: UnionVariant("some", u8)})
        assert transpile(Option(U8), types) == sem_id(explicit)

    def test_wrapped_struct_is_its_inner_type(self):
        types = TypeSystem()
        wrapped = Struct("Wrapper", [Field("inner", U64)], wrapped=True)
        assert transpile(wrapped, types) == transpile(U64, types)

    def test_charset_is_part_of_string_identity(self):
        types = TypeSystem()
        alpha = transpile(AsciiString(ALPHA, ALPHA, 1, 8), types)
        alnum = transpile(AsciiString(ALPHA_NUM, ALPHA_NUM, 1, 8), types)
        assert alpha != alnum
        assert alpha != transpile(Bytes(1, 8), types)
        assert isinstance(types[alpha], TyList)
        assert types[types[alpha].ty] == charset_enum(ALPHA)

    def test_charset_enum_tags_are_ascii_codes(self):
        variants_ = {v.name: v.tag for v in charset_enum(ALPHA_CAPS_NUM).variants}
        assert variants_["A"] == 0x41
        assert variants_["_30"] == 0x30
        assert len(variants_) == 36

    def test_distinct_first_charset_is_struct(self):
        ticker = AsciiString(ALPHA_CAPS, ALPHA_CAPS_NUM, 1, 8)
        types = TypeSystem()
        sid = transpile(ticker, types)
        definition = types[sid]
        assert [f.name for f in definition.fields] == ["first", "rest"]
        assert types[definition.fields[1].ty].sizing == Sizing(0, 7)
        assert types.check(sid, ticker.encode("BTC2")) == "BTC2"

    def test_string_decoding_enforces_charset(self):
        types = TypeSystem()
        sid = transpile(AsciiString(ALPHA, ALPHA, 1, 8), types)
        assert types.check(sid, b"\x03abc") == "abc"
        with pytest.raises(InvalidCharset):
            types.check(sid, b"\x03ab\xff")
        with pytest.raises(InvalidCharset):
            types.check(sid, b"\x03ab1")

        ticker = transpile(AsciiString(ALPHA_CAPS, ALPHA_CAPS_NUM, 1, 8), types)
        with pytest.raises(InvalidCharset, match="position 0"):
            types.check(ticker, b"1\x02BC")

    def test_signed_shares_primitive_width(self):
        types = TypeSystem()
        assert transpile(I32, types) == transpile(U32, types)

    def test_union_variants_keep_tags(self):
        types = TypeSystem()
        sid = transpile(Union("U", variants(a=(2, U8), b=(5, U16))), types)
        assert sorted(types[sid].variants) == [2, 5]

    def test_transpile_all(self):
        types, ids = transpile_all([U8, ListOf(U8, 0, 4)])
        assert ids[0] in types and ids[1] in types
