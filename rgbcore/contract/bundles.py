"""Transition bundles and their public witnesses.

A transition bundle groups the transitions closed by one witness
transaction. Its id commits only to the input map (which operation spends
which output), so bundles that reveal different subsets of their
transitions still share an id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from rgbcore.commit import BundleId, DiscloseHash, OpId, Txid
from rgbcore.contract.operations import OP_ID, OPOUT, TRANSITION, TXID, Opout, Transition
from rgbcore.errors import MergeRevealError
from rgbcore.strict.codec import Bytes, MapOf
from rgbcore.strict.composite import Field, Struct, Union, variants

MAX_TX_SIZE = 4_000_000


# =============================================================================
# PUBLIC WITNESS
# =============================================================================

class PubWitness:
    """Witness transaction, given by id or in full. Equal iff the txids are equal."""

    def witness_id(self) -> Txid:
        raise NotImplementedError

    @property
    def tx(self) -> Optional[bytes]:
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PubWitness):
            return NotImplemented
        return self.witness_id() == other.witness_id()

    def __lt__(self, other: "PubWitness") -> bool:
        return self.witness_id() < other.witness_id()

    def __hash__(self) -> int:
        return hash(self.witness_id())

    def merge_reveal(self, other: "PubWitness") -> "PubWitness":
        """Merge two views of one witness, keeping the full transaction if known."""
        if self.witness_id() != other.witness_id():
            raise MergeRevealError(
                f"witness txid mismatch: {self.witness_id()} != {other.witness_id()}"
            )
        if self.tx is None and other.tx is not None:
            return other
        return self


@dataclass(frozen=True, eq=False)
class WitnessTxid(PubWitness):
    txid: Txid

    def witness_id(self) -> Txid:
        return self.txid


@dataclass(frozen=True, eq=False)
class WitnessTx(PubWitness):
    raw: bytes

    def witness_id(self) -> Txid:
        return Txid.from_raw_tx(self.raw)

    @property
    def tx(self) -> Optional[bytes]:
        return self.raw


PUB_WITNESS = Union("PubWitness", variants(
    txid=(0, Struct("WitnessTxid", [Field("txid", TXID)], WitnessTxid, wrapped=True)),
    tx=(1, Struct("WitnessTx", [Field("raw", Bytes(1, MAX_TX_SIZE, name="Tx"))], WitnessTx, wrapped=True)),
))


# =============================================================================
# BUNDLES
# =============================================================================

@dataclass(frozen=True)
class TransitionBundle:
    input_map: Dict[Opout, OpId]
    known_transitions: Dict[OpId, Transition]

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_map", dict(self.input_map))
        object.__setattr__(self, "known_transitions", dict(self.known_transitions))

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def of(cls, *transitions: Transition) -> "TransitionBundle":
        """Bundle fully revealing ``transitions``."""
        input_map: Dict[Opout, OpId] = {}
        known: Dict[OpId, Transition] = {}
        for transition in transitions:
            opid = transition.opid()
            known[opid] = transition
            for opout in transition.inputs:
                input_map[opout] = opid
        return cls(input_map, known)

    def bundle_id(self) -> BundleId:
        return BundleId.commit(INPUT_MAP.encode(self.input_map))

    def transitions(self) -> Iterator[Tuple[OpId, Transition]]:
        for opid in sorted(self.known_transitions):
            yield opid, self.known_transitions[opid]

    def merge_reveal(self, other: "TransitionBundle") -> "TransitionBundle":
        """Union of the revealed transitions of two views of one bundle."""
        if self.input_map != other.input_map:
            raise MergeRevealError(
                f"bundle id mismatch: {self.bundle_id()} != {other.bundle_id()}"
            )
        known = dict(self.known_transitions)
        for opid, transition in other.known_transitions.items():
            known.setdefault(opid, transition)
        return TransitionBundle(self.input_map, known)


@dataclass(frozen=True)
class WitnessBundle:
    pub_witness: PubWitness
    bundle: TransitionBundle

    __hash__ = None  # type: ignore[assignment]

    def witness_id(self) -> Txid:
        return self.pub_witness.witness_id()

    def bundle_id(self) -> BundleId:
        return self.bundle.bundle_id()

    def disclose_hash(self) -> DiscloseHash:
        return DiscloseHash.commit(WITNESS_BUNDLE.encode(self))


INPUT_MAP = MapOf(OPOUT, OP_ID, 1, 0xFFFF, name="InputMap")

TRANSITION_BUNDLE = Struct("TransitionBundle", [
    Field("input_map", INPUT_MAP),
    Field("known_transitions", MapOf(OP_ID, TRANSITION, 1, 0xFFFF)),
], TransitionBundle)

WITNESS_BUNDLE = Struct("WitnessBundle", [
    Field("pub_witness", PUB_WITNESS),
    Field("bundle", TRANSITION_BUNDLE),
], WitnessBundle)
