"""
Symbolic type libraries and the standard Bitcoin / RGBContract libraries.
"""

import pytest
import yaml

from rgbcore.contract.operations import OUTPOINT
from rgbcore.errors import InvalidCharset, TypeLibError, UnresolvedTypeReference
from rgbcore.stl import StandardTypes, standard_libs
from rgbcore.strict.codec import ALPHA_CAPS, ALPHA_CAPS_NUM, PRINTABLE, U8, U64, AsciiString, Bytes
from rgbcore.strict.composite import Tagged
from rgbcore.strict.symbolic import TypeLib, compile_all, load_type_lib
from rgbcore.strict.typesys import TypeSystem, transpile


@pytest.fixture(scope="module")
def stl():
    return StandardTypes()


# =============================================================================
# TYPE LIBRARY COMPILATION
# =============================================================================

class TestTypeLib:

    def test_alias_shares_sem_id(self):
        lib = TypeLib.from_dict({"library": "Demo", "types": {"Amount": "U64", "Sats": "Amount"}})
        sys = lib.compile()
        assert sys.resolve("Amount") == sys.resolve("Sats") == transpile(U64, TypeSystem())

    def test_declaration_order_does_not_matter(self):
        lib = TypeLib.from_dict({"library": "Demo", "types": {
            "Outer": {"struct": [{"inner": "Inner"}]},
            "Inner": {"list": "U8", "min": 1, "max": 4},
        }})
        sys = lib.compile()
        inner = sys.resolve("Inner")
        assert sys.types[sys.resolve("Outer")].fields[0].ty == inner
        assert inner == transpile(Bytes(1, 4), TypeSystem())

    def test_qualified_resolve(self):
        sys = TypeLib.from_dict({"library": "Demo", "types": {"Byte": "U8"}}).compile()
        assert sys.resolve("Demo.Byte") == transpile(U8, TypeSystem())
        with pytest.raises(UnresolvedTypeReference):
            sys.resolve("Other.Byte")

    def test_unknown_name(self):
        lib = TypeLib.from_dict({"library": "Demo", "types": {"A": {"option": "Missing"}}})
        with pytest.raises(UnresolvedTypeReference, match="Missing"):
            lib.compile()

    def test_cycle_rejected(self):
        lib = TypeLib.from_dict({"library": "Demo", "types": {
            "A": {"option": "B"},
            "B": {"list": "A"},
        }})
        with pytest.raises(UnresolvedTypeReference, match="cyclic"):
            lib.compile()

    def test_schema_rejects_unknown_form(self):
        with pytest.raises(TypeLibError):
            TypeLib.from_dict({"library": "Demo", "types": {"A": {"vector": "U8"}}})

    def test_schema_rejects_missing_types(self):
        with pytest.raises(TypeLibError):
            TypeLib.from_dict({"library": "Demo"})

    def test_missing_dependency(self):
        lib = TypeLib.from_dict({"library": "Demo", "uses": ["Bitcoin"], "types": {"T": "Bitcoin.Txid"}})
        with pytest.raises(UnresolvedTypeReference, match="Bitcoin"):
            lib.compile()

    def test_enum_and_union(self):
        sys = TypeLib.from_dict({"library": "Demo", "types": {
            "Kind": {"enum": {"b": 2, "a": 0}},
            "Choice": {"union": {"num": {"tag": 4, "type": "U16"}, "kind": {"tag": 1, "type": "Kind"}}},
        }}).compile()
        kind = sys.types[sys.resolve("Kind")]
        assert [v.tag for v in kind.variants] == [0, 2]
        assert sys.types.check(sys.resolve("Choice"), b"\x01\x02") == Tagged("kind", Tagged("b", None))
        assert sys.types.check(sys.resolve("Choice"), b"\x04\x05\x00") == Tagged("num", 5)

    def test_ascii_declaration_matches_codec(self):
        sys = TypeLib.from_dict({"library": "Demo", "types": {
            "Ticker": {"ascii": "AlphaCapsNum", "first": "AlphaCaps", "min": 1, "max": 8},
            "Label": {"ascii": "Printable", "max": 40},
        }}).compile()
        assert sys.resolve("Ticker") == transpile(AsciiString(ALPHA_CAPS, ALPHA_CAPS_NUM, 1, 8), TypeSystem())
        assert sys.resolve("Label") == transpile(AsciiString(PRINTABLE, PRINTABLE, 1, 40), TypeSystem())

    def test_ascii_with_own_first_charset_cannot_be_empty(self):
        lib = TypeLib.from_dict({"library": "Demo", "types": {
            "Code": {"ascii": "AlphaNum", "first": "Alpha", "min": 0},
        }})
        with pytest.raises(TypeLibError, match="empty"):
            lib.compile()

    def test_schema_rejects_unknown_charset(self):
        with pytest.raises(TypeLibError):
            TypeLib.from_dict({"library": "Demo", "types": {"A": {"ascii": "Emoji"}}})

    def test_name_of(self):
        sys = TypeLib.from_dict({"library": "Demo", "types": {"Byte": "U8"}}).compile()
        assert sys.name_of(sys.resolve("Byte")) == "Byte"

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "demo.yaml"
        path.write_text(yaml.safe_dump({
            "library": "Demo",
            "uses": ["Bitcoin"],
            "types": {"Utxo": "Bitcoin.Outpoint", "Utxos": {"set": "Utxo", "max": 16}},
        }))
        lib = load_type_lib(path)
        systems = compile_all([lib, standard_libs()[0]])
        assert systems["Demo"].resolve("Utxo") == systems["Bitcoin"].resolve("Outpoint")

    def test_load_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("library: [unclosed")
        with pytest.raises(TypeLibError):
            load_type_lib(path)


# =============================================================================
# STANDARD LIBRARIES
# =============================================================================

class TestStandardTypes:

    def test_outpoint_matches_codec(self, stl):
        assert stl.get("Bitcoin.Outpoint") == transpile(OUTPOINT, TypeSystem())

    def test_unqualified_lookup(self, stl):
        assert stl.get("Amount") == transpile(U64, TypeSystem())
        assert stl.get("Outpoint") == stl.get("Bitcoin.Outpoint")

    def test_absent_type(self, stl):
        with pytest.raises(KeyError, match="absent in standard RGBContract type library"):
            stl.get("NoSuchType")

    def test_asset_spec_decoding(self, stl):
        data = b"T\x03CKR" + b"\x04Test" + b"\x00" + b"\x08"
        value = stl.types.check(stl.get("AssetSpec"), data)
        assert value == {
            "ticker": "TCKR",
            "name": "Test",
            "details": Tagged("none", None),
            "precision": Tagged("centiMicro", None),
        }

    def test_ticker_charset_enforced(self, stl):
        with pytest.raises(InvalidCharset):
            stl.types.check(stl.get("AssetSpec"), b"t\x03ckr" + b"\x04Test" + b"\x00" + b"\x08")

    def test_precision_out_of_range(self, stl):
        from rgbcore.errors import UnknownTag
        with pytest.raises(UnknownTag):
            stl.types.check(stl.get("Precision"), b"\x13")

    def test_cross_library_reference(self, stl):
        reserves = stl.types[stl.get("ProofOfReserves")]
        assert reserves.fields[0].ty == stl.get("Bitcoin.Outpoint")

    def test_extension_library(self):
        lib = TypeLib.from_dict({
            "library": "Demo",
            "uses": ["RGBContract"],
            "types": {"Spec": "RGBContract.AssetSpec", "Amount": "U8"},
        })
        stl = StandardTypes(lib)
        assert stl.get("Spec") == stl.get("RGBContract.AssetSpec")
        # the extension library shadows unqualified names
        assert stl.get("Amount") == transpile(U8, TypeSystem())
        assert stl.get("RGBContract.Amount") == transpile(U64, TypeSystem())

    def test_standard_system_is_closed(self, stl):
        for sid, ty in stl.types.items():
            for ref in ty.references():
                assert ref in stl.types
