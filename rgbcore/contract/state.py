"""Contract state: the revealed, unspent outputs of an accepted consignment.

Besides owned outputs the state keeps:

- global state per type, newest value first and capped at the schema's
  ``max_items`` for that type
- the operation outputs behind every confidential seal (terminal lookup)
- the operation outputs behind every revealed outpoint
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from rgbcore.commit import BundleId, ContractId, OpId, SecretSeal, Txid
from rgbcore.contract.graph import ValidConsignment
from rgbcore.contract.operations import ConfidentialSeal, Opout, Outpoint, RevealedSeal, StateKind
from rgbcore.observability import Layer, get_logger

logger = get_logger("state", Layer.STATE)


@dataclass(frozen=True)
class OutputAssignment:
    opout: Opout
    seal: RevealedSeal
    state: object
    kind: StateKind
    witness: Optional[Txid] = None
    bundle_id: Optional[BundleId] = None

    def outpoint(self) -> Outpoint:
        return self.seal.outpoint()


@dataclass(frozen=True)
class GlobalValue:
    """One item of global state and the operation that set it."""
    opid: OpId
    index: int
    state: bytes
    witness: Optional[Txid] = None


class ContractState:
    """Unspent revealed assignments of one contract, indexed by opout."""

    def __init__(self, contract_id: ContractId):
        self.contract_id = contract_id
        self._outputs: Dict[Opout, OutputAssignment] = {}
        self._spent: Set[Opout] = set()
        self._globals: Dict[int, Dict[Tuple[OpId, int], GlobalValue]] = {}
        self._global_limits: Dict[int, int] = {}
        self._terminals: Dict[SecretSeal, Set[Opout]] = {}
        self._by_outpoint: Dict[Outpoint, Set[Opout]] = {}

    @classmethod
    def from_consignment(cls, valid: ValidConsignment) -> "ContractState":
        state = cls(valid.contract_id)
        state.apply(valid)
        return state

    def apply(self, valid: ValidConsignment) -> int:
        """Add the outputs of an accepted consignment; returns how many were added."""
        if valid.contract_id != self.contract_id:
            raise ValueError(f"consignment is for contract {valid.contract_id}, not {self.contract_id}")

        for ty, details in valid.schema.global_types.items():
            self._global_limits[ty] = details.max_items
            self._globals.setdefault(ty, {})

        before = len(self._outputs)
        genesis = valid.genesis
        self._add_operation(genesis, OpId(valid.contract_id), None, None)
        for wb in valid.bundles:
            witness_id = wb.witness_id()
            bundle_id = wb.bundle_id()
            for opid, transition in wb.bundle.transitions():
                self._spent.update(transition.inputs)
                self._add_operation(transition, opid, witness_id, bundle_id)
        for opout in self._spent:
            self._outputs.pop(opout, None)

        added = len(self._outputs) - before
        logger.debug(
            "contract state updated",
            contract_id=str(self.contract_id),
            outputs=len(self._outputs),
            terminals=len(self._terminals),
        )
        return added

    def _add_operation(self, op, opid: OpId, witness_id: Optional[Txid], bundle_id: Optional[BundleId]) -> None:
        for ty in sorted(op.globals):
            known = self._globals.setdefault(ty, {})
            for index, value in enumerate(op.globals[ty]):
                known.setdefault((opid, index), GlobalValue(opid, index, value, witness_id))

        for ty, no, assign in op.iter_assignments():
            if isinstance(assign, ConfidentialSeal):
                self._terminals.setdefault(assign.seal, set()).add(Opout(opid, ty, no))

        for ty in sorted(op.assignments):
            assigns = op.assignments[ty]
            for no, assign in assigns.revealed():
                opout = Opout(opid, ty, no)
                seal = assign.seal if witness_id is None else assign.seal.with_witness(witness_id)
                if seal.txid is not None:
                    self._by_outpoint.setdefault(seal.outpoint(), set()).add(opout)
                if opout in self._spent:
                    continue
                self._outputs[opout] = OutputAssignment(
                    opout=opout,
                    seal=seal,
                    state=assign.state,
                    kind=assigns.KIND,
                    witness=witness_id,
                    bundle_id=bundle_id,
                )

    # -------------------------------------------------------------------------
    # Global state
    # -------------------------------------------------------------------------

    def global_state(self, ty: int) -> List[GlobalValue]:
        """Values of global type ``ty``, newest first, at most ``max_items`` of them.

        Genesis values are the oldest; transition values follow in bundle
        order and, inside an operation, in declaration order.

        Raises:
            KeyError: if no accepted schema declares ``ty``.
        """
        if ty not in self._globals:
            raise KeyError(f"global state type {ty} is not declared by the contract schema")
        values = list(reversed(list(self._globals[ty].values())))
        limit = self._global_limits.get(ty)
        return values if limit is None else values[:limit]

    # -------------------------------------------------------------------------
    # Owned state
    # -------------------------------------------------------------------------

    def _select(self, kind: StateKind, outpoint: Optional[Outpoint], ty: Optional[int]) -> List[OutputAssignment]:
        return [
            out for opout, out in sorted(self._outputs.items())
            if out.kind == kind
            and (ty is None or opout.ty == ty)
            and (outpoint is None or out.seal.txid is not None and out.outpoint() == outpoint)
        ]

    def rights(self, outpoint: Outpoint, ty: Optional[int] = None) -> List[OutputAssignment]:
        return self._select(StateKind.Declarative, outpoint, ty)

    def fungible(self, outpoint: Outpoint, ty: Optional[int] = None) -> List[OutputAssignment]:
        return self._select(StateKind.Fungible, outpoint, ty)

    def data(self, outpoint: Outpoint, ty: Optional[int] = None) -> List[OutputAssignment]:
        return self._select(StateKind.Structured, outpoint, ty)

    def rights_all(self) -> Iterator[OutputAssignment]:
        return iter(self._select(StateKind.Declarative, None, None))

    def fungible_all(self) -> Iterator[OutputAssignment]:
        return iter(self._select(StateKind.Fungible, None, None))

    def data_all(self) -> Iterator[OutputAssignment]:
        return iter(self._select(StateKind.Structured, None, None))

    def balance(self, ty: int) -> int:
        """Sum of unspent fungible amounts of assignment type ``ty``."""
        return sum(out.state for out in self._select(StateKind.Fungible, None, ty))

    def is_spent(self, opout: Opout) -> bool:
        return opout in self._spent

    # -------------------------------------------------------------------------
    # Output lookups
    # -------------------------------------------------------------------------

    def opouts_by_terminals(self, seals: Iterable[SecretSeal]) -> Set[Opout]:
        """Operation outputs assigned to any of the confidential ``seals``."""
        found: Set[Opout] = set()
        for seal in seals:
            found.update(self._terminals.get(seal, ()))
        return found

    def opouts_by_outpoints(self, outpoints: Iterable[Outpoint]) -> Set[Opout]:
        """Operation outputs, spent or not, whose revealed seal is one of ``outpoints``."""
        found: Set[Opout] = set()
        for outpoint in outpoints:
            found.update(self._by_outpoint.get(outpoint, ()))
        return found

    def __len__(self) -> int:
        return len(self._outputs)
