"""Symbolic type libraries.

Type definitions refer to each other by SemId, which makes them unreadable
when authored by hand. A type library names its types and lets declarations
refer to each other by name; compiling it orders the declarations by
dependency, inserts them into a TypeSystem bottom-up and keeps the
name -> SemId index.

Library documents are YAML::

    library: Demo
    uses: [RGBContract]
    types:
      Amount: U64                       # alias: same SemId as U64
      Precision: {enum: {indivisible: 0, deci: 1}}
      Ticker: {ascii: AlphaCapsNum, first: AlphaCaps, min: 1, max: 8}
      Spec:
        struct:
          - ticker: Ticker
          - precision: Precision
      Terms: RGBContract.ContractTerms  # reference into a dependency

Built-in names: U8 U16 U24 U32 U64 U128 U256 I8 I16 I32 I64 Bool Unit Unicode.

ASCII strings name a charset for all characters and optionally a distinct one
for the first; charsets are Alpha AlphaCaps AlphaSmall AlphaNum AlphaCapsNum
AlphaLodash AlphaNumLodash AlphaNumDash Printable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set, Union

import yaml

from rgbcore.commit import SemId
from rgbcore.errors import StrictError, TypeLibError, UnresolvedTypeReference
from rgbcore.observability import Layer, get_logger
from rgbcore.schemas import validate_against_schema
from rgbcore.strict.codec import (
    BOOL,
    CHARSETS,
    I8,
    I16,
    I32,
    I64,
    U8,
    U16,
    U24,
    U32,
    U64,
    U128,
    U256,
    UNICODE,
    UNIT,
    StrictType,
)
from rgbcore.strict.typesys import (
    EnumVariant,
    FieldDef,
    Sizing,
    TyArray,
    TyEnum,
    TyList,
    TyMap,
    TyPrimitive,
    TySet,
    TyStruct,
    TyTuple,
    TyUnicode,
    TyUnion,
    TypeSystem,
    UnionVariant,
    ascii_string,
    transpile,
)

logger = get_logger("typelib", Layer.SYMBOLIC)

BUILTINS: Dict[str, StrictType] = {
    "U8": U8,
    "U16": U16,
    "U24": U24,
    "U32": U32,
    "U64": U64,
    "U128": U128,
    "U256": U256,
    "I8": I8,
    "I16": I16,
    "I32": I32,
    "I64": I64,
    "Bool": BOOL,
    "Unit": UNIT,
    "Unicode": UNICODE,
}

DEFAULT_MAX = 0xFFFF


class SymbolicSys:
    """A compiled library: its TypeSystem plus the name index."""

    def __init__(self, library: str, types: TypeSystem, names: Mapping[str, SemId]):
        self.library = library
        self.types = types
        self._names: Dict[str, SemId] = dict(names)

    def resolve(self, name: str) -> SemId:
        """SemId of ``name`` or ``Library.name``."""
        lib, sep, local = name.rpartition(".")
        if sep and lib != self.library:
            raise UnresolvedTypeReference(f"type '{name}' is not from library {self.library}")
        try:
            return self._names[local]
        except KeyError:
            raise UnresolvedTypeReference(
                f"library {self.library} has no type named '{local}'"
            ) from None

    def name_of(self, sem_id: SemId) -> Optional[str]:
        """First declared name whose SemId is ``sem_id``."""
        for name, sid in self._names.items():
            if sid == sem_id:
                return name
        return None

    @property
    def names(self) -> Mapping[str, SemId]:
        return dict(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __repr__(self) -> str:
        return f"SymbolicSys({self.library}, {len(self._names)} names, {len(self.types)} types)"


class TypeLib:
    """A named set of type declarations referring to each other by name."""

    def __init__(
        self,
        name: str,
        declarations: Mapping[str, Any],
        uses: Optional[List[str]] = None,
        description: str = "",
    ):
        self.name = name
        self.declarations: Dict[str, Any] = dict(declarations)
        self.uses: List[str] = list(uses or [])
        self.description = description

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TypeLib":
        errors = validate_against_schema(data, "typelib")
        if errors:
            raise TypeLibError("; ".join(errors), str(data.get("library", "")) if isinstance(data, Mapping) else "")
        return cls(
            name=data["library"],
            declarations=data["types"],
            uses=data.get("uses"),
            description=data.get("description", ""),
        )

    def compile(
        self,
        dependencies: Optional[Mapping[str, SymbolicSys]] = None,
        types: Optional[TypeSystem] = None,
    ) -> SymbolicSys:
        """Compile into a SymbolicSys.

        ``dependencies`` maps library names listed in ``uses`` to their
        compiled form; their types are merged into the result.
        """
        deps = dict(dependencies or {})
        for lib in self.uses:
            if lib not in deps:
                raise UnresolvedTypeReference(f"library {self.name} uses {lib}, which was not provided")
        types = types if types is not None else TypeSystem()
        for dep in deps.values():
            types.merge(dep.types)

        resolved: Dict[str, SemId] = {}
        visiting: Set[str] = set()

        def ref(name: str, via: str) -> SemId:
            if name in BUILTINS:
                return transpile(BUILTINS[name], types)
            lib, sep, local = name.partition(".")
            if sep:
                dep = deps.get(lib)
                if dep is None:
                    raise UnresolvedTypeReference(f"unknown library '{lib}'", via)
                return dep.resolve(local)
            if name in resolved:
                return resolved[name]
            if name not in self.declarations:
                raise UnresolvedTypeReference(f"unknown type '{name}'", via)
            if name in visiting:
                raise UnresolvedTypeReference(f"cyclic reference through '{name}'", via)
            visiting.add(name)
            try:
                sid = self._compile_decl(self.declarations[name], name, ref, types)
            except StrictError as err:
                if not err.field:
                    err.at(name)
                raise
            visiting.discard(name)
            resolved[name] = sid
            return sid

        for name in self.declarations:
            ref(name, name)

        logger.info(
            "type library compiled",
            library=self.name,
            names=len(resolved),
            types=len(types),
        )
        return SymbolicSys(self.name, types, resolved)

    @staticmethod
    def _compile_decl(
        decl: Any,
        name: str,
        ref: Callable[[str, str], SemId],
        types: TypeSystem,
    ) -> SemId:
        if isinstance(decl, str):
            return ref(decl, name)
        if not isinstance(decl, Mapping):
            raise TypeLibError(f"declaration must be a name or a mapping, got {type(decl).__name__}", name)

        def sizing() -> Sizing:
            return Sizing(decl.get("min", 0), decl.get("max", DEFAULT_MAX))

        if "primitive" in decl:
            return types.insert(TyPrimitive(decl["primitive"]))
        if "unicode" in decl:
            return types.insert(TyUnicode())
        if "enum" in decl:
            items = sorted(decl["enum"].items(), key=lambda kv: kv[1])
            return types.insert(TyEnum(tuple(EnumVariant(n, t) for n, t in items)))
        if "union" in decl:
            return types.insert(TyUnion({
                v["tag"]: UnionVariant(vname, ref(v["type"], name))
                for vname, v in sorted(decl["union"].items(), key=lambda kv: kv[1]["tag"])
            }))
        if "option" in decl:
            return types.insert(TyUnion({
                0: UnionVariant("none", ref("Unit", name)),
                1: UnionVariant("some", ref(decl["option"], name)),
            }))
        if "tuple" in decl:
            return types.insert(TyTuple(tuple(ref(t, name) for t in decl["tuple"])))
        if "struct" in decl:
            fields: List[FieldDef] = []
            for entry in decl["struct"]:
                ((fname, fty),) = entry.items()
                fields.append(FieldDef(fname, ref(fty, f"{name}.{fname}")))
            return types.insert(TyStruct(tuple(fields)))
        if "array" in decl:
            return types.insert(TyArray(ref(decl["array"], name), decl["len"]))
        if "list" in decl:
            return types.insert(TyList(ref(decl["list"], name), sizing()))
        if "ascii" in decl:
            rest = CHARSETS[decl["ascii"]]
            first = CHARSETS[decl.get("first", decl["ascii"])]
            bounds = Sizing(decl.get("min", 1), decl.get("max", 0xFF))
            bounds.validate()
            if first.chars != rest.chars and bounds.min < 1:
                raise TypeLibError("a string with its own first charset cannot be empty", name)
            return ascii_string(types, first, rest, bounds.min, bounds.max)
        if "set" in decl:
            return types.insert(TySet(ref(decl["set"], name), sizing()))
        if "map" in decl:
            key, value = decl["map"]
            return types.insert(TyMap(ref(key, name), ref(value, name), sizing()))
        raise TypeLibError(f"unknown declaration form {sorted(decl)}", name)


def load_type_lib(path: Union[str, Path]) -> TypeLib:
    """Load and schema-check a YAML type library."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as ex:
        raise TypeLibError(f"invalid YAML in {path.name}: {ex}") from ex
    if not isinstance(data, dict):
        raise TypeLibError(f"{path.name}: type library must be a mapping")
    return TypeLib.from_dict(data)


def compile_all(libs: List[TypeLib]) -> Dict[str, SymbolicSys]:
    """Compile libraries in dependency order; each sees the ones it uses."""
    by_name = {lib.name: lib for lib in libs}
    out: Dict[str, SymbolicSys] = {}

    def visit(name: str, chain: List[str]) -> None:
        if name in out:
            return
        if name in chain:
            raise UnresolvedTypeReference(f"cyclic library dependency {' -> '.join(chain + [name])}")
        lib = by_name.get(name)
        if lib is None:
            raise UnresolvedTypeReference(f"unknown library '{name}'")
        for dep in lib.uses:
            visit(dep, chain + [name])
        out[name] = lib.compile({dep: out[dep] for dep in lib.uses})

    for lib in libs:
        visit(lib.name, [])
    return out
