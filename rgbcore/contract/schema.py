"""Contract schema: the declared shape of every operation of a contract.

A schema declares metadata, global state and owned-state (assignment) types,
each bound to a SemId of the contract's type system, and for the genesis and
every transition type the occurrence bounds of each field. Validation-script
anchors (``LibSite``) point into script libraries carried by consignments.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple

from rgbcore.commit import LibId, SchemaId, SemId
from rgbcore.contract.operations import StateKind
from rgbcore.strict.codec import ALPHA_LODASH, ALPHA_NUM_LODASH, U16, AsciiString, ByteArray, MapOf
from rgbcore.strict.composite import Enum, Field, Struct, Union, variants


@dataclass(frozen=True)
class Occurrences:
    """Inclusive bound on how many times a field may occur."""
    min: int
    max: int

    @classmethod
    def once(cls) -> "Occurrences":
        return cls(1, 1)

    @classmethod
    def no_or_once(cls) -> "Occurrences":
        return cls(0, 1)

    @classmethod
    def no_or_more(cls) -> "Occurrences":
        return cls(0, 0xFFFF)

    @classmethod
    def once_or_more(cls) -> "Occurrences":
        return cls(1, 0xFFFF)

    @classmethod
    def no_or_up_to(cls, n: int) -> "Occurrences":
        return cls(0, n)

    @classmethod
    def once_or_up_to(cls, n: int) -> "Occurrences":
        return cls(1, n)

    def check(self, count: int) -> bool:
        return self.min <= count <= self.max

    def __str__(self) -> str:
        return f"[{self.min}, {self.max}]"


class FungibleType(IntEnum):
    Unsigned64Bit = 8


@dataclass(frozen=True)
class DeclarativeSchema:
    KIND = StateKind.Declarative


@dataclass(frozen=True)
class FungibleSchema:
    fungible_type: FungibleType = FungibleType.Unsigned64Bit

    KIND = StateKind.Fungible


@dataclass(frozen=True)
class StructuredSchema:
    sem_id: SemId

    KIND = StateKind.Structured


@dataclass(frozen=True)
class MetaDetails:
    sem_id: SemId
    name: str


@dataclass(frozen=True)
class GlobalDetails:
    sem_id: SemId
    max_items: int
    name: str


@dataclass(frozen=True)
class AssignmentDetails:
    state_schema: object
    name: str


@dataclass(frozen=True)
class LibSite:
    """Entry point of a validation script: library id and code offset."""
    lib: LibId
    pos: int


@dataclass(frozen=True)
class GenesisSchema:
    metadata: Dict[int, Occurrences]
    globals: Dict[int, Occurrences]
    assignments: Dict[int, Occurrences]
    validator: Optional[LibSite] = None

    def __post_init__(self) -> None:
        for attr in ("metadata", "globals", "assignments"):
            object.__setattr__(self, attr, dict(getattr(self, attr)))

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class TransitionSchema:
    metadata: Dict[int, Occurrences]
    globals: Dict[int, Occurrences]
    inputs: Dict[int, Occurrences]
    assignments: Dict[int, Occurrences]
    validator: Optional[LibSite] = None

    def __post_init__(self) -> None:
        for attr in ("metadata", "globals", "inputs", "assignments"):
            object.__setattr__(self, attr, dict(getattr(self, attr)))

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class TransitionDetails:
    transition_schema: TransitionSchema
    name: str

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Schema:
    name: str
    meta_types: Dict[int, MetaDetails]
    global_types: Dict[int, GlobalDetails]
    owned_types: Dict[int, AssignmentDetails]
    genesis: GenesisSchema
    transitions: Dict[int, TransitionDetails]

    def __post_init__(self) -> None:
        for attr in ("meta_types", "global_types", "owned_types", "transitions"):
            object.__setattr__(self, attr, dict(getattr(self, attr)))

    __hash__ = None  # type: ignore[assignment]

    def schema_id(self) -> SchemaId:
        return SchemaId.commit(SCHEMA.encode(self))

    def types(self) -> List[SemId]:
        """Every SemId the schema declares, without duplicates, in declaration order."""
        out: List[SemId] = []
        seen = set()

        def add(sid: SemId) -> None:
            if sid not in seen:
                seen.add(sid)
                out.append(sid)

        for ty in sorted(self.meta_types):
            add(self.meta_types[ty].sem_id)
        for ty in sorted(self.global_types):
            add(self.global_types[ty].sem_id)
        for ty in sorted(self.owned_types):
            state = self.owned_types[ty].state_schema
            if isinstance(state, StructuredSchema):
                add(state.sem_id)
        return out

    def lib_sites(self) -> Iterator[Tuple[str, LibSite]]:
        """Every validation-script anchor with the path of its declaration."""
        if self.genesis.validator is not None:
            yield "genesis.validator", self.genesis.validator
        for ty in sorted(self.transitions):
            site = self.transitions[ty].transition_schema.validator
            if site is not None:
                yield f"transitions[{ty}].validator", site

    def transition_schema(self, transition_type: int) -> Optional[TransitionSchema]:
        details = self.transitions.get(transition_type)
        return details.transition_schema if details is not None else None


# =============================================================================
# CODECS
# =============================================================================

FIELD_NAME = AsciiString(ALPHA_LODASH, ALPHA_NUM_LODASH, 1, 100, name="FieldName")
SEM_ID = ByteArray(32, SemId)

OCCURRENCES = Struct("Occurrences", [Field("min", U16), Field("max", U16)], Occurrences)
OCCURRENCE_MAP = MapOf(U16, OCCURRENCES, 0, 0xFF)

LIB_SITE = Struct("LibSite", [Field("lib", ByteArray(32, LibId)), Field("pos", U16)], LibSite)

OWNED_STATE_SCHEMA = Union("OwnedStateSchema", variants(
    declarative=(0, Struct("DeclarativeSchema", [], DeclarativeSchema)),
    fungible=(1, Struct("FungibleSchema", [Field("fungible_type", Enum(FungibleType))], FungibleSchema)),
    structured=(2, Struct("StructuredSchema", [Field("sem_id", SEM_ID)], StructuredSchema)),
))

META_DETAILS = Struct("MetaDetails", [Field("sem_id", SEM_ID), Field("name", FIELD_NAME)], MetaDetails)
GLOBAL_DETAILS = Struct("GlobalDetails", [
    Field("sem_id", SEM_ID), Field("max_items", U16), Field("name", FIELD_NAME),
], GlobalDetails)
ASSIGNMENT_DETAILS = Struct("AssignmentDetails", [
    Field("state_schema", OWNED_STATE_SCHEMA), Field("name", FIELD_NAME),
], AssignmentDetails)

GENESIS_SCHEMA = Struct("GenesisSchema", [
    Field("metadata", OCCURRENCE_MAP),
    Field("globals", OCCURRENCE_MAP),
    Field("assignments", OCCURRENCE_MAP),
    Field("validator", LIB_SITE, optional=True),
], GenesisSchema)

TRANSITION_SCHEMA = Struct("TransitionSchema", [
    Field("metadata", OCCURRENCE_MAP),
    Field("globals", OCCURRENCE_MAP),
    Field("inputs", OCCURRENCE_MAP),
    Field("assignments", OCCURRENCE_MAP),
    Field("validator", LIB_SITE, optional=True),
], TransitionSchema)

TRANSITION_DETAILS = Struct("TransitionDetails", [
    Field("transition_schema", TRANSITION_SCHEMA), Field("name", FIELD_NAME),
], TransitionDetails)

SCHEMA = Struct("Schema", [
    Field("name", AsciiString(ALPHA_LODASH, ALPHA_NUM_LODASH, 1, 40, name="SchemaName")),
    Field("meta_types", MapOf(U16, META_DETAILS, 0, 0xFF)),
    Field("global_types", MapOf(U16, GLOBAL_DETAILS, 0, 0xFF)),
    Field("owned_types", MapOf(U16, ASSIGNMENT_DETAILS, 0, 0xFF)),
    Field("genesis", GENESIS_SCHEMA),
    Field("transitions", MapOf(U16, TRANSITION_DETAILS, 0, 0xFF)),
], Schema)
