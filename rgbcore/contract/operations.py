"""Contract operations: genesis, state transitions and their assignments.

An operation's id is the tagged commitment of its canonical encoding as a
member of the ``OPERATION`` union, so a genesis and a transition never share
an id space. The contract id is the id of its genesis.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional, Sequence, Tuple

from rgbcore.commit import ContractId, OpId, SchemaId, SecretSeal, Txid
from rgbcore.strict.codec import (
    I64,
    PRINTABLE,
    U16,
    U32,
    U64,
    UNIT,
    AsciiString,
    ByteArray,
    Bytes,
    ListOf,
    MapOf,
    SetOf,
    StrictType,
)
from rgbcore.strict.composite import Enum, Field, Struct, Union, variants


class ChainNet(IntEnum):
    BitcoinMainnet = 0
    BitcoinTestnet3 = 1
    BitcoinTestnet4 = 2
    BitcoinSignet = 3
    BitcoinRegtest = 4
    LiquidMainnet = 5
    LiquidTestnet = 6


class SealClosingStrategy(IntEnum):
    FirstOpretOrTapret = 0


class StateKind(IntEnum):
    Declarative = 0
    Fungible = 1
    Structured = 2


# =============================================================================
# SEALS AND OUTPUT REFERENCES
# =============================================================================

@dataclass(frozen=True)
class Outpoint:
    txid: Txid
    vout: int

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class RevealedSeal:
    """Single-use seal definition.

    ``txid=None`` denotes an output of the witness transaction that closes
    the seal's parent operation.
    """
    txid: Optional[Txid]
    vout: int
    blinding: int

    def conceal(self) -> SecretSeal:
        return SecretSeal.commit(REVEALED_SEAL.encode(self))

    def with_witness(self, witness_id: Txid) -> "RevealedSeal":
        if self.txid is not None:
            return self
        return replace(self, txid=witness_id)

    def outpoint(self) -> Outpoint:
        if self.txid is None:
            raise ValueError("seal refers to the witness transaction and has no outpoint yet")
        return Outpoint(self.txid, self.vout)


@dataclass(frozen=True, order=True)
class Opout:
    """Reference to one assignment of an operation: (op id, assignment type, index)."""
    op: OpId
    ty: int
    no: int

    def __str__(self) -> str:
        return f"{self.op}/{self.ty}/{self.no}"


TXID = ByteArray(32, Txid)
OP_ID = ByteArray(32, OpId)
SECRET_SEAL = ByteArray(32, SecretSeal)

OUTPOINT = Struct("Outpoint", [Field("txid", TXID), Field("vout", U32)], Outpoint)
REVEALED_SEAL = Struct("RevealedSeal", [
    Field("txid", TXID, optional=True),
    Field("vout", U32),
    Field("blinding", U64),
], RevealedSeal)
OPOUT = Struct("Opout", [Field("op", OP_ID), Field("ty", U16), Field("no", U16)], Opout)


# =============================================================================
# ASSIGNMENTS
# =============================================================================

@dataclass(frozen=True)
class Revealed:
    """Assignment with an explicit seal."""
    seal: RevealedSeal
    state: Any = None

    def conceal(self) -> "ConfidentialSeal":
        return ConfidentialSeal(self.seal.conceal(), self.state)


@dataclass(frozen=True)
class ConfidentialSeal:
    """Assignment whose seal is known only by its secret-seal commitment."""
    seal: SecretSeal
    state: Any = None

    def conceal(self) -> "ConfidentialSeal":
        return self


def _assign(kind: str, state: StrictType) -> Union:
    return Union(f"Assign{kind}", variants(
        confidentialSeal=(0, Struct(f"ConfidentialSeal{kind}", [
            Field("seal", SECRET_SEAL), Field("state", state),
        ], ConfidentialSeal)),
        revealed=(1, Struct(f"Revealed{kind}", [
            Field("seal", REVEALED_SEAL), Field("state", state),
        ], Revealed)),
    ))


VOID_STATE = UNIT
FUNGIBLE_STATE = U64
DATA_STATE = Bytes(0, 0xFFFF, name="DataState")


class TypedAssigns:
    """Non-empty list of assignments of one state kind."""

    KIND: StateKind

    def __init__(self, items: Sequence[Any]):
        self.items: Tuple[Any, ...] = tuple(items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.items == self.items  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.items))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self.items)!r})"

    def revealed(self) -> Iterator[Tuple[int, Revealed]]:
        for no, a in enumerate(self.items):
            if isinstance(a, Revealed):
                yield no, a

    def confidential(self) -> Iterator[Tuple[int, ConfidentialSeal]]:
        for no, a in enumerate(self.items):
            if isinstance(a, ConfidentialSeal):
                yield no, a


class DeclarativeAssigns(TypedAssigns):
    KIND = StateKind.Declarative


class FungibleAssigns(TypedAssigns):
    KIND = StateKind.Fungible


class StructuredAssigns(TypedAssigns):
    KIND = StateKind.Structured


TYPED_ASSIGNS = Union("TypedAssigns", variants(
    declarative=(0, Struct("DeclarativeAssigns", [
        Field("items", ListOf(_assign("Void", VOID_STATE), 1, 0xFFFF)),
    ], DeclarativeAssigns, wrapped=True)),
    fungible=(1, Struct("FungibleAssigns", [
        Field("items", ListOf(_assign("Fungible", FUNGIBLE_STATE), 1, 0xFFFF)),
    ], FungibleAssigns, wrapped=True)),
    structured=(2, Struct("StructuredAssigns", [
        Field("items", ListOf(_assign("Structured", DATA_STATE), 1, 0xFFFF)),
    ], StructuredAssigns, wrapped=True)),
))


# =============================================================================
# OPERATIONS
# =============================================================================

METADATA = MapOf(U16, Bytes(0, 0xFFFF, name="MetaValue"), 0, 0xFF, name="Metadata")
GLOBAL_STATE = MapOf(U16, ListOf(DATA_STATE, 1, 0xFFFF, name="GlobalValues"), 0, 0xFF, name="GlobalState")
ASSIGNMENTS = MapOf(U16, TYPED_ASSIGNS, 0, 0xFF, name="Assignments")
ISSUER = AsciiString(PRINTABLE, PRINTABLE, 1, 4096, name="Identity")


def _freeze_state(
    metadata: Mapping[int, bytes],
    globals_: Mapping[int, Sequence[bytes]],
    assignments: Mapping[int, TypedAssigns],
) -> Tuple[Dict[int, bytes], Dict[int, Tuple[bytes, ...]], Dict[int, TypedAssigns]]:
    return (
        dict(metadata),
        {ty: tuple(values) for ty, values in globals_.items()},
        dict(assignments),
    )


class _OperationMixin:
    metadata: Dict[int, bytes]
    globals: Dict[int, Tuple[bytes, ...]]
    assignments: Dict[int, TypedAssigns]

    def opid(self) -> OpId:
        return OpId.commit(OPERATION.encode(self))

    def assignments_by_type(self, ty: int) -> Optional[TypedAssigns]:
        return self.assignments.get(ty)

    def iter_assignments(self) -> Iterator[Tuple[int, int, Any]]:
        """Yield ``(assignment type, index, assignment)`` in canonical order."""
        for ty in sorted(self.assignments):
            for no, a in enumerate(self.assignments[ty]):
                yield ty, no, a


@dataclass(frozen=True, eq=True)
class Genesis(_OperationMixin):
    schema_id: SchemaId
    timestamp: int
    issuer: str
    chain_net: ChainNet
    seal_closing_strategy: SealClosingStrategy
    metadata: Dict[int, bytes]
    globals: Dict[int, Tuple[bytes, ...]]
    assignments: Dict[int, TypedAssigns]

    def __post_init__(self) -> None:
        metadata, globals_, assignments = _freeze_state(self.metadata, self.globals, self.assignments)
        object.__setattr__(self, "metadata", metadata)
        object.__setattr__(self, "globals", globals_)
        object.__setattr__(self, "assignments", assignments)

    __hash__ = None  # type: ignore[assignment]

    @property
    def inputs(self) -> FrozenSet[Opout]:
        return frozenset()

    def contract_id(self) -> ContractId:
        return ContractId(self.opid())


@dataclass(frozen=True, eq=True)
class Transition(_OperationMixin):
    contract_id: ContractId
    transition_type: int
    nonce: int
    metadata: Dict[int, bytes]
    globals: Dict[int, Tuple[bytes, ...]]
    inputs: FrozenSet[Opout]
    assignments: Dict[int, TypedAssigns]

    def __post_init__(self) -> None:
        metadata, globals_, assignments = _freeze_state(self.metadata, self.globals, self.assignments)
        object.__setattr__(self, "metadata", metadata)
        object.__setattr__(self, "globals", globals_)
        object.__setattr__(self, "inputs", frozenset(self.inputs))
        object.__setattr__(self, "assignments", assignments)

    __hash__ = None  # type: ignore[assignment]


GENESIS = Struct("Genesis", [
    Field("schema_id", ByteArray(32, SchemaId)),
    Field("timestamp", I64),
    Field("issuer", ISSUER),
    Field("chain_net", Enum(ChainNet)),
    Field("seal_closing_strategy", Enum(SealClosingStrategy)),
    Field("metadata", METADATA),
    Field("globals", GLOBAL_STATE),
    Field("assignments", ASSIGNMENTS),
], Genesis)

TRANSITION = Struct("Transition", [
    Field("contract_id", ByteArray(32, ContractId)),
    Field("transition_type", U16),
    Field("nonce", U64),
    Field("metadata", METADATA),
    Field("globals", GLOBAL_STATE),
    Field("inputs", SetOf(OPOUT, 1, 0xFFFF, name="Inputs")),
    Field("assignments", ASSIGNMENTS),
], Transition)

OPERATION = Union("Operation", variants(
    genesis=(0, GENESIS),
    transition=(1, TRANSITION),
))
