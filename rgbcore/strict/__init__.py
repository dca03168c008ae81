"""Strict encoding and semantic type identity.

Architecture:
    strict/
    ├── codec.py       # Integers, bytes, ASCII strings, bounded collections
    ├── composite.py   # Structs, tuples, unions, enums, options
    ├── typesys.py     # TypeDefinition, SemId derivation, TypeSystem
    └── symbolic.py    # Named type libraries (YAML) compiled to a TypeSystem
"""

from rgbcore.strict.codec import (
    ALPHA,
    ALPHA_CAPS,
    ALPHA_CAPS_NUM,
    ALPHA_LODASH,
    ALPHA_NUM,
    ALPHA_NUM_DASH,
    ALPHA_NUM_LODASH,
    ALPHA_SMALL,
    BOOL,
    CHARSETS,
    I8,
    I16,
    I32,
    I64,
    PRINTABLE,
    U8,
    U16,
    U24,
    U32,
    U64,
    U128,
    U256,
    UNICODE,
    UNIT,
    ArrayOf,
    AsciiString,
    ByteArray,
    Bytes,
    Charset,
    ListOf,
    MapOf,
    SetOf,
    StrictType,
    decode,
    encode,
)
from rgbcore.strict.composite import (
    Enum,
    Field,
    Option,
    Struct,
    Tagged,
    TupleOf,
    Union,
    Variant,
    variants,
)
from rgbcore.strict.typesys import (
    TY_DEF,
    TYPE_SYSTEM,
    TypeDefinition,
    TypeSystem,
    sem_id,
    transpile,
)
