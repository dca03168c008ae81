"""Semantic type identifiers and the append-only type system.

A type definition is identified by the tagged commitment of its own canonical
encoding (its SemId). Composite definitions refer to other types by SemId, so
identity is inductive: a definition can only be hashed once every type it
references has been hashed, and the type system only accepts definitions whose
references are already present. Structural equality therefore implies SemId
equality, and any change to a field name, field order, referenced type or
bound yields a different SemId.

The type system is also self-hosting: ``TY_DEF`` below is the strict codec of
type definitions, and ``transpile`` derives definitions for any codec
descriptor so that the encodings it produces can be checked against a SemId.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from rgbcore.commit import SemId
from rgbcore.errors import (
    CardinalityViolation,
    DuplicateKey,
    IdentifierMismatch,
    LengthOutOfRange,
    StrictError,
    UnresolvedTypeReference,
)
from rgbcore.observability import Layer, get_logger
from rgbcore.strict.codec import (
    ALPHA_LODASH,
    ALPHA_NUM_LODASH,
    CHARSETS,
    UNICODE,
    UNIT,
    U8,
    U16,
    U32,
    ArrayOf,
    AsciiString,
    BoolType,
    ByteArray,
    Bytes,
    Charset,
    ListOf,
    MapOf,
    SInt,
    SetOf,
    StrictType,
    UInt,
    UnicodeChar,
    UnitType,
)
from rgbcore.strict.composite import Enum, Field, Option, Struct, TupleOf, Union, Variant, variants

logger = get_logger("typesys", Layer.TYPESYS)

PRIMITIVE_WIDTHS = (0, 1, 2, 3, 4, 8, 16, 32)


# =============================================================================
# TYPE DEFINITIONS
# =============================================================================

class TypeDefinition:
    """Base class of the type definition variants."""

    def references(self) -> Tuple[SemId, ...]:
        return ()

    def validate(self) -> None:
        """Check structural rules not expressible in the codec."""

    def sem_id(self) -> SemId:
        return sem_id(self)


@dataclass(frozen=True)
class Sizing:
    min: int
    max: int

    def validate(self) -> None:
        if self.min > self.max:
            raise LengthOutOfRange(f"sizing min {self.min} exceeds max {self.max}", "sizing")


@dataclass(frozen=True)
class EnumVariant:
    name: str
    tag: int


@dataclass(frozen=True)
class UnionVariant:
    name: str
    ty: SemId


@dataclass(frozen=True)
class FieldDef:
    name: str
    ty: SemId


def _unique(names: Iterable[Any], what: str) -> None:
    seen: Set[Any] = set()
    for n in names:
        if n in seen:
            raise DuplicateKey(f"duplicate {what} {n!r}")
        seen.add(n)


@dataclass(frozen=True)
class TyPrimitive(TypeDefinition):
    width: int

    def validate(self) -> None:
        if self.width not in PRIMITIVE_WIDTHS:
            raise LengthOutOfRange(f"primitive width {self.width} is not one of {PRIMITIVE_WIDTHS}", "width")


@dataclass(frozen=True)
class TyUnicode(TypeDefinition):
    pass


@dataclass(frozen=True)
class TyEnum(TypeDefinition):
    variants: Tuple[EnumVariant, ...]

    def validate(self) -> None:
        _unique((v.name for v in self.variants), "enum variant name")
        _unique((v.tag for v in self.variants), "enum tag")


@dataclass(frozen=True)
class TyUnion(TypeDefinition):
    variants: Dict[int, UnionVariant]

    def references(self) -> Tuple[SemId, ...]:
        return tuple(v.ty for v in self.variants.values())

    def validate(self) -> None:
        _unique((v.name for v in self.variants.values()), "union variant name")


@dataclass(frozen=True)
class TyTuple(TypeDefinition):
    fields: Tuple[SemId, ...]

    def references(self) -> Tuple[SemId, ...]:
        return tuple(self.fields)


@dataclass(frozen=True)
class TyStruct(TypeDefinition):
    fields: Tuple[FieldDef, ...]

    def references(self) -> Tuple[SemId, ...]:
        return tuple(f.ty for f in self.fields)

    def validate(self) -> None:
        _unique((f.name for f in self.fields), "field name")


@dataclass(frozen=True)
class TyArray(TypeDefinition):
    ty: SemId
    len: int

    def references(self) -> Tuple[SemId, ...]:
        return (self.ty,)

    def validate(self) -> None:
        if self.len < 1:
            raise LengthOutOfRange("array length must be positive", "len")


@dataclass(frozen=True)
class TyList(TypeDefinition):
    ty: SemId
    sizing: Sizing

    def references(self) -> Tuple[SemId, ...]:
        return (self.ty,)

    def validate(self) -> None:
        self.sizing.validate()


@dataclass(frozen=True)
class TySet(TypeDefinition):
    ty: SemId
    sizing: Sizing

    def references(self) -> Tuple[SemId, ...]:
        return (self.ty,)

    def validate(self) -> None:
        self.sizing.validate()


@dataclass(frozen=True)
class TyMap(TypeDefinition):
    key: SemId
    value: SemId
    sizing: Sizing

    def references(self) -> Tuple[SemId, ...]:
        return (self.key, self.value)

    def validate(self) -> None:
        self.sizing.validate()


# =============================================================================
# CODEC OF TYPE DEFINITIONS
# =============================================================================

IDENT = AsciiString(ALPHA_LODASH, ALPHA_NUM_LODASH, 1, 100, name="Ident")
SEM_ID = ByteArray(32, SemId)
SIZING = Struct("Sizing", [Field("min", U32), Field("max", U32)], Sizing)

TY_DEF = Union("TypeDefinition", variants(
    primitive=(0, Struct("Primitive", [Field("width", U8)], TyPrimitive)),
    unicode=(1, Struct("Unicode", [], TyUnicode)),
    enum=(2, Struct("Enum", [
        Field("variants", ListOf(
            Struct("EnumVariant", [Field("name", IDENT), Field("tag", U8)], EnumVariant), 1, 0xFF)),
    ], TyEnum)),
    union=(3, Struct("Union", [
        Field("variants", MapOf(
            U8, Struct("UnionVariant", [Field("name", IDENT), Field("ty", SEM_ID)], UnionVariant), 1, 0xFF)),
    ], TyUnion)),
    tuple=(4, Struct("Tuple", [Field("fields", ListOf(SEM_ID, 1, 0xFF))], TyTuple)),
    struct=(5, Struct("Struct", [
        Field("fields", ListOf(
            Struct("FieldDef", [Field("name", IDENT), Field("ty", SEM_ID)], FieldDef), 1, 0xFF)),
    ], TyStruct)),
    array=(6, Struct("Array", [Field("ty", SEM_ID), Field("len", U16)], TyArray)),
    list=(7, Struct("List", [Field("ty", SEM_ID), Field("sizing", SIZING)], TyList)),
    set=(8, Struct("Set", [Field("ty", SEM_ID), Field("sizing", SIZING)], TySet)),
    map=(9, Struct("Map", [Field("key", SEM_ID), Field("value", SEM_ID), Field("sizing", SIZING)], TyMap)),
))


def sem_id(ty: TypeDefinition) -> SemId:
    """SemId of a definition: tagged commitment of its canonical encoding."""
    return SemId.commit(TY_DEF.encode(ty))


# =============================================================================
# CHARSETS
# =============================================================================

def _char_name(ch: str) -> str:
    return ch if ch.isalpha() else f"_{ord(ch):02x}"


def charset_enum(charset: Charset) -> TyEnum:
    """Enum of the characters of ``charset``, each tagged with its ASCII code.

    Letters are named by themselves; any other character by ``_`` and its
    two-digit hex code (``_30`` for ``0``).
    """
    return TyEnum(tuple(EnumVariant(_char_name(ch), ord(ch)) for ch in sorted(charset.chars)))


def ascii_string(types: TypeSystem, first: Charset, rest: Charset, min_len: int, max_len: int) -> SemId:
    """Insert the definition of an ASCII string; returns its SemId.

    A string over one charset is a list of that charset's enum. A string
    whose first character has its own class is a struct of the first
    character and the list of the remaining ones, matching ``AsciiString``
    byte for byte.
    """
    rest_id = types.insert(charset_enum(rest))
    if first.chars == rest.chars:
        return types.insert(TyList(rest_id, Sizing(min_len, max_len)))
    first_id = types.insert(charset_enum(first))
    tail = types.insert(TyList(rest_id, Sizing(min_len - 1, max_len - 1)))
    return types.insert(TyStruct((FieldDef("first", first_id), FieldDef("rest", tail))))


_CHARSET_BY_ID: Dict[SemId, Charset] = {sem_id(charset_enum(cs)): cs for cs in CHARSETS.values()}


# =============================================================================
# TYPE SYSTEM
# =============================================================================

class TypeSystem:
    """Append-only mapping SemId -> TypeDefinition, closed over references."""

    MAX_ENTRIES = 0xFFFFFF

    def __init__(self, types: Optional[Mapping[SemId, TypeDefinition]] = None):
        self._types: Dict[SemId, TypeDefinition] = {}
        self._descriptors: Dict[SemId, StrictType] = {}
        if types:
            self._load(types)

    def _load(self, types: Mapping[SemId, TypeDefinition]) -> None:
        if len(types) > self.MAX_ENTRIES:
            raise CardinalityViolation(f"{len(types)} types exceed {self.MAX_ENTRIES}")
        for key, ty in types.items():
            label = f"[{bytes(key).hex()}]"
            try:
                ty.validate()
            except StrictError as err:
                err.at(label)
                raise
            actual = sem_id(ty)
            if actual != key:
                raise IdentifierMismatch(f"carried id does not match recomputed {actual}", label)
        for key, ty in types.items():
            for ref in ty.references():
                if ref not in types:
                    raise UnresolvedTypeReference(
                        f"reference to {ref} is not in the type system", f"[{bytes(key).hex()}]"
                    )
        self._types = {SemId(k): types[k] for k in sorted(types)}

    @property
    def types(self) -> Mapping[SemId, TypeDefinition]:
        return MappingProxyType(self._types)

    def insert(self, ty: TypeDefinition) -> SemId:
        """Insert a definition whose references are all present; returns its SemId."""
        ty.validate()
        for ref in ty.references():
            if ref not in self._types:
                raise UnresolvedTypeReference(
                    f"{type(ty).__name__} references {ref} before it is defined"
                )
        sid = sem_id(ty)
        if sid in self._types:
            return sid
        if len(self._types) >= self.MAX_ENTRIES:
            raise CardinalityViolation(f"type system is full ({self.MAX_ENTRIES} entries)")
        self._types[sid] = ty
        logger.debug("type inserted", sem_id=str(sid), kind=type(ty).__name__)
        return sid

    def merge(self, other: "TypeSystem") -> int:
        """Add every entry of another closed type system; returns the count added."""
        added = 0
        for sid, ty in other.items():
            if sid not in self._types:
                if len(self._types) >= self.MAX_ENTRIES:
                    raise CardinalityViolation(f"type system is full ({self.MAX_ENTRIES} entries)")
                self._types[sid] = ty
                added += 1
        return added

    def extract(self, roots: Iterable[SemId]) -> "TypeSystem":
        """Closure of ``roots`` over references, as a new type system."""
        out: Dict[SemId, TypeDefinition] = {}
        stack = list(roots)
        while stack:
            sid = stack.pop()
            if sid in out:
                continue
            ty = self[sid]
            out[sid] = ty
            stack.extend(ty.references())
        return TypeSystem(out)

    def __getitem__(self, sid: SemId) -> TypeDefinition:
        try:
            return self._types[sid]
        except KeyError:
            raise UnresolvedTypeReference(f"type {sid} is not in the type system") from None

    def get(self, sid: SemId) -> Optional[TypeDefinition]:
        return self._types.get(sid)

    def __contains__(self, sid: object) -> bool:
        return sid in self._types

    def __iter__(self) -> Iterator[SemId]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def items(self) -> Iterable[Tuple[SemId, TypeDefinition]]:
        return self._types.items()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeSystem):
            return NotImplemented
        return self._types == other._types

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TypeSystem({len(self._types)} types)"

    # -------------------------------------------------------------------------
    # Type-directed decoding
    # -------------------------------------------------------------------------

    def descriptor(self, sid: SemId) -> StrictType:
        """Codec descriptor for a stored definition."""
        cached = self._descriptors.get(sid)
        if cached is not None:
            return cached
        desc = self._build(sid)
        self._descriptors[sid] = desc
        return desc

    def _is_byte(self, sid: SemId) -> bool:
        ty = self[sid]
        return isinstance(ty, TyPrimitive) and ty.width == 1

    def _ascii_struct(self, ty: TyStruct) -> Optional[AsciiString]:
        if tuple(f.name for f in ty.fields) != ("first", "rest"):
            return None
        first = _CHARSET_BY_ID.get(ty.fields[0].ty)
        tail = self[ty.fields[1].ty]
        if first is None or not isinstance(tail, TyList):
            return None
        rest = _CHARSET_BY_ID.get(tail.ty)
        if rest is None or rest.chars == first.chars:
            return None
        return AsciiString(first, rest, tail.sizing.min + 1, tail.sizing.max + 1)

    def _build(self, sid: SemId) -> StrictType:
        ty = self[sid]
        label = sid.hex()[:8]
        if isinstance(ty, TyPrimitive):
            return UNIT if ty.width == 0 else UInt(ty.width * 8)
        if isinstance(ty, TyUnicode):
            return UNICODE
        if isinstance(ty, TyEnum):
            return Union(f"Enum#{label}", {v.tag: Variant(v.name, UNIT) for v in ty.variants})
        if isinstance(ty, TyUnion):
            return Union(f"Union#{label}", {
                tag: Variant(v.name, self.descriptor(v.ty)) for tag, v in ty.variants.items()
            })
        if isinstance(ty, TyTuple):
            return TupleOf([self.descriptor(f) for f in ty.fields])
        if isinstance(ty, TyStruct):
            ascii_str = self._ascii_struct(ty)
            if ascii_str is not None:
                return ascii_str
            return Struct(f"Struct#{label}", [Field(f.name, self.descriptor(f.ty)) for f in ty.fields])
        if isinstance(ty, TyArray):
            if self._is_byte(ty.ty):
                return ByteArray(ty.len)
            return ArrayOf(self.descriptor(ty.ty), ty.len)
        if isinstance(ty, TyList):
            charset = _CHARSET_BY_ID.get(ty.ty)
            if charset is not None:
                return AsciiString(charset, charset, ty.sizing.min, ty.sizing.max)
            if self._is_byte(ty.ty):
                return Bytes(ty.sizing.min, ty.sizing.max)
            return ListOf(self.descriptor(ty.ty), ty.sizing.min, ty.sizing.max)
        if isinstance(ty, TySet):
            return SetOf(self.descriptor(ty.ty), ty.sizing.min, ty.sizing.max, factory=tuple)
        if isinstance(ty, TyMap):
            return MapOf(
                self.descriptor(ty.key), self.descriptor(ty.value),
                ty.sizing.min, ty.sizing.max, factory=tuple,
            )
        raise TypeError(f"unsupported type definition {type(ty).__name__}")

    def check(self, sid: SemId, data: bytes) -> Any:
        """Decode ``data`` as the type ``sid``; raises on any mismatch."""
        return self.descriptor(sid).decode(data)


# =============================================================================
# DESCRIPTOR -> DEFINITION
# =============================================================================

def _sizing(ty: Any) -> Sizing:
    return Sizing(ty.min_len, ty.max_len)


def transpile(ty: StrictType, types: TypeSystem) -> SemId:
    """Insert the definitions describing codec ``ty`` (bottom-up); return its SemId."""
    if isinstance(ty, UnitType):
        return types.insert(TyPrimitive(0))
    if isinstance(ty, (UInt, SInt)):
        return types.insert(TyPrimitive(ty.size))
    if isinstance(ty, BoolType):
        return types.insert(TyEnum((EnumVariant("false", 0), EnumVariant("true", 1))))
    if isinstance(ty, UnicodeChar):
        return types.insert(TyUnicode())
    if isinstance(ty, ByteArray):
        return types.insert(TyArray(transpile(U8, types), ty.size))
    if isinstance(ty, Bytes):
        return types.insert(TyList(transpile(U8, types), _sizing(ty)))
    if isinstance(ty, AsciiString):
        return ascii_string(types, ty.first, ty.rest, ty.min_len, ty.max_len)
    if isinstance(ty, ListOf):
        return types.insert(TyList(transpile(ty.item, types), _sizing(ty)))
    if isinstance(ty, SetOf):
        return types.insert(TySet(transpile(ty.item, types), _sizing(ty)))
    if isinstance(ty, MapOf):
        return types.insert(TyMap(transpile(ty.key, types), transpile(ty.value, types), _sizing(ty)))
    if isinstance(ty, ArrayOf):
        return types.insert(TyArray(transpile(ty.item, types), ty.count))
    if isinstance(ty, Option):
        return types.insert(TyUnion({
            0: UnionVariant("none", transpile(UNIT, types)),
            1: UnionVariant("some", transpile(ty.inner, types)),
        }))
    if isinstance(ty, Struct):
        if ty.wrapped:
            return transpile(ty.fields[0].codec, types)
        if not ty.fields:
            return types.insert(TyPrimitive(0))
        return types.insert(TyStruct(tuple(
            FieldDef(f.name, transpile(f.codec, types)) for f in ty.fields
        )))
    if isinstance(ty, TupleOf):
        return types.insert(TyTuple(tuple(transpile(t, types) for t in ty.items)))
    if isinstance(ty, Union):
        return types.insert(TyUnion({
            tag: UnionVariant(v.name, transpile(v.type, types)) for tag, v in ty.variants.items()
        }))
    if isinstance(ty, Enum):
        return types.insert(TyEnum(tuple(
            EnumVariant(m.name, int(m.value)) for m in ty.enum_cls
        )))
    raise TypeError(f"cannot derive a type definition for {ty!r}")


def transpile_all(descriptors: Iterable[StrictType], types: Optional[TypeSystem] = None) -> Tuple[TypeSystem, List[SemId]]:
    """Transpile several descriptors into one type system."""
    types = types if types is not None else TypeSystem()
    return types, [transpile(d, types) for d in descriptors]


TYPE_SYSTEM = Struct("TypeSystem", [
    Field("types", MapOf(SEM_ID, TY_DEF, 0, TypeSystem.MAX_ENTRIES)),
], TypeSystem, wrapped=True)
