"""Consignments: everything a recipient needs to verify a contract's history."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, FrozenSet, Tuple

from rgbcore.commit import BundleId, ConsignmentId, ContractId, LibId, SecretSeal
from rgbcore.contract.bundles import WITNESS_BUNDLE, WitnessBundle
from rgbcore.contract.operations import GENESIS, SECRET_SEAL, Genesis
from rgbcore.contract.schema import SCHEMA, Schema
from rgbcore.strict.codec import BOOL, ByteArray, Bytes, ListOf, MapOf, SetOf
from rgbcore.strict.composite import Enum, Field, Struct
from rgbcore.strict.typesys import TYPE_SYSTEM, TypeSystem


class ConsignmentVersion(IntEnum):
    V0 = 0


class Lib(bytes):
    """Opaque validation-script library (bytecode)."""

    def __new__(cls, code: bytes) -> "Lib":
        return super().__new__(cls, code)

    @property
    def code(self) -> bytes:
        return bytes(self)

    def lib_id(self) -> LibId:
        return LibId.commit(bytes(self))

    def __repr__(self) -> str:
        return f"Lib({self.lib_id()}, {len(self)} bytes)"


@dataclass(frozen=True)
class Consignment:
    version: ConsignmentVersion
    transfer: bool
    terminals: Dict[BundleId, FrozenSet[SecretSeal]]
    genesis: Genesis
    bundles: Tuple[WitnessBundle, ...]
    schema: Schema
    types: TypeSystem
    scripts: FrozenSet[Lib]

    def __post_init__(self) -> None:
        object.__setattr__(self, "terminals", {
            bundle_id: frozenset(seals) for bundle_id, seals in self.terminals.items()
        })
        object.__setattr__(self, "bundles", tuple(self.bundles))
        object.__setattr__(self, "scripts", frozenset(Lib(s) for s in self.scripts))

    __hash__ = None  # type: ignore[assignment]

    def consignment_id(self) -> ConsignmentId:
        return ConsignmentId.commit(CONSIGNMENT.encode(self))

    def contract_id(self) -> ContractId:
        return self.genesis.contract_id()

    def encode(self) -> bytes:
        return CONSIGNMENT.encode(self)

    @classmethod
    def decode(cls, data: bytes) -> "Consignment":
        return CONSIGNMENT.decode(data)

    def lib_ids(self) -> Dict[LibId, Lib]:
        return {lib.lib_id(): lib for lib in self.scripts}


LIB = Struct("Lib", [Field("code", Bytes(1, 0xFFFF, name="LibCode"))], Lib, wrapped=True)

CONSIGNMENT = Struct("Consignment", [
    Field("version", Enum(ConsignmentVersion)),
    Field("transfer", BOOL),
    Field("terminals", MapOf(ByteArray(32, BundleId), SetOf(SECRET_SEAL, 1, 0xFF), 0, 0xFFFF)),
    Field("genesis", GENESIS),
    Field("bundles", ListOf(WITNESS_BUNDLE, 0, 0xFFFFFF)),
    Field("schema", SCHEMA),
    Field("types", TYPE_SYSTEM),
    Field("scripts", SetOf(LIB, 0, 0xFF)),
], Consignment)
