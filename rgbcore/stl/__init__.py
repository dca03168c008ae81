"""Standard type libraries shipped with rgbcore.

``bitcoin.yaml`` holds the Bitcoin consensus types contract data refers to;
``rgb_contract.yaml`` the standard contract data types (amounts, tickers,
asset specifications, contract terms, proofs of reserves ...).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from rgbcore.commit import SemId
from rgbcore.errors import UnresolvedTypeReference
from rgbcore.strict.symbolic import SymbolicSys, TypeLib, compile_all, load_type_lib
from rgbcore.strict.typesys import TypeSystem

if TYPE_CHECKING:
    from rgbcore.contract.schema import Schema

STL_DIR = Path(__file__).resolve().parent

LIB_NAME_BITCOIN = "Bitcoin"
LIB_NAME_RGB_CONTRACT = "RGBContract"


@lru_cache(maxsize=1)
def standard_libs() -> Tuple[TypeLib, ...]:
    return (
        load_type_lib(STL_DIR / "bitcoin.yaml"),
        load_type_lib(STL_DIR / "rgb_contract.yaml"),
    )


class StandardTypes:
    """The standard contract type system, optionally extended by one library.

    Unqualified names are looked up in the extension library first, then in
    RGBContract, then in Bitcoin.
    """

    def __init__(self, lib: Optional[TypeLib] = None):
        libs: List[TypeLib] = list(standard_libs())
        if lib is not None:
            libs.append(lib)
        self._systems: Dict[str, SymbolicSys] = compile_all(libs)
        order = [LIB_NAME_RGB_CONTRACT, LIB_NAME_BITCOIN]
        if lib is not None:
            order.insert(0, lib.name)
        self._lookup = [self._systems[name] for name in order]
        self._types = TypeSystem()
        for sys in self._systems.values():
            self._types.merge(sys.types)

    @property
    def types(self) -> TypeSystem:
        return self._types

    def library(self, name: str) -> SymbolicSys:
        return self._systems[name]

    def get(self, name: str) -> SemId:
        """SemId of a standard type; raises KeyError if there is none."""
        lib, sep, local = name.rpartition(".")
        if sep:
            sys = self._systems.get(lib)
            if sys is not None and local in sys:
                return sys.resolve(local)
        else:
            for sys in self._lookup:
                if name in sys:
                    return sys.resolve(name)
        raise KeyError(f"type '{name}' is absent in standard RGBContract type library")

    def type_system(self, schema: "Schema") -> TypeSystem:
        """Closure of the types ``schema`` refers to."""
        try:
            return self._types.extract(schema.types())
        except UnresolvedTypeReference as err:
            raise KeyError(f"schema {schema.name} refers to a non-standard type: {err}") from err
