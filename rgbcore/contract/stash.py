"""
In-memory stash of verified contract data.

The stash keeps every record a wallet has accepted, keyed by its content
identifier:

    schemata      SchemaId   -> Schema
    geneses       ContractId -> Genesis
    bundles       BundleId   -> TransitionBundle
    witnesses     Txid       -> PubWitness
    libs          LibId      -> Lib
    secret seals  the wallet's own revealed seals, looked up by concealment

Writers report whether they added a new entry. Bundles and witnesses that are
already present are merged with the new view, so a later consignment that
reveals more of a bundle enriches the stored copy.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Set

from rgbcore.commit import BundleId, ContractId, LibId, SchemaId, SecretSeal, Txid
from rgbcore.contract.bundles import PubWitness, TransitionBundle
from rgbcore.contract.consignment import Lib
from rgbcore.contract.graph import ValidConsignment
from rgbcore.contract.operations import Genesis, RevealedSeal
from rgbcore.contract.schema import Schema
from rgbcore.observability import Layer, get_logger
from rgbcore.strict.typesys import TypeSystem

logger = get_logger("stash", Layer.STASH)


class StashInconsistency(KeyError):
    """A record the caller expects to be present is absent from the stash."""

    def __init__(self, what: str, key: object):
        self.what = what
        self.key = key
        super().__init__(f"{what} {key} is absent from the stash")

    def __str__(self) -> str:
        return self.args[0]


class MemStash:
    """Stash held entirely in memory."""

    def __init__(self) -> None:
        self._schemata: Dict[SchemaId, Schema] = {}
        self._geneses: Dict[ContractId, Genesis] = {}
        self._bundles: Dict[BundleId, TransitionBundle] = {}
        self._witnesses: Dict[Txid, PubWitness] = {}
        self._libs: Dict[LibId, Lib] = {}
        self._secret_seals: Set[RevealedSeal] = set()
        self.type_system = TypeSystem()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def schema(self, schema_id: SchemaId) -> Schema:
        try:
            return self._schemata[schema_id]
        except KeyError:
            raise StashInconsistency("schema", schema_id) from None

    def genesis(self, contract_id: ContractId) -> Genesis:
        try:
            return self._geneses[contract_id]
        except KeyError:
            raise StashInconsistency("contract", contract_id) from None

    def bundle(self, bundle_id: BundleId) -> TransitionBundle:
        try:
            return self._bundles[bundle_id]
        except KeyError:
            raise StashInconsistency("bundle", bundle_id) from None

    def witness(self, witness_id: Txid) -> PubWitness:
        try:
            return self._witnesses[witness_id]
        except KeyError:
            raise StashInconsistency("witness", witness_id) from None

    def lib(self, lib_id: LibId) -> Lib:
        try:
            return self._libs[lib_id]
        except KeyError:
            raise StashInconsistency("library", lib_id) from None

    def schemata(self) -> Iterator[Schema]:
        for schema_id in sorted(self._schemata):
            yield self._schemata[schema_id]

    def geneses(self) -> Iterator[Genesis]:
        for contract_id in sorted(self._geneses):
            yield self._geneses[contract_id]

    def bundle_ids(self) -> Iterator[BundleId]:
        return iter(sorted(self._bundles))

    def witness_ids(self) -> Iterator[Txid]:
        return iter(sorted(self._witnesses))

    def secret_seal(self, secret: SecretSeal) -> Optional[RevealedSeal]:
        """The wallet's revealed seal concealing to ``secret``, if it holds one."""
        for seal in self._secret_seals:
            if seal.conceal() == secret:
                return seal
        return None

    def secret_seals(self) -> Iterator[RevealedSeal]:
        return iter(sorted(self._secret_seals, key=lambda s: s.conceal()))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def replace_schema(self, schema: Schema) -> bool:
        schema_id = schema.schema_id()
        if schema_id in self._schemata:
            return False
        self._schemata[schema_id] = schema
        return True

    def replace_genesis(self, genesis: Genesis) -> bool:
        contract_id = genesis.contract_id()
        present = contract_id in self._geneses
        self._geneses[contract_id] = genesis
        return not present

    def replace_bundle(self, bundle: TransitionBundle) -> bool:
        bundle_id = bundle.bundle_id()
        known = self._bundles.get(bundle_id)
        if known is not None:
            self._bundles[bundle_id] = known.merge_reveal(bundle)
            return False
        self._bundles[bundle_id] = bundle
        return True

    def replace_witness(self, witness: PubWitness) -> bool:
        witness_id = witness.witness_id()
        known = self._witnesses.get(witness_id)
        if known is not None:
            self._witnesses[witness_id] = known.merge_reveal(witness)
            return False
        self._witnesses[witness_id] = witness
        return True

    def replace_lib(self, lib: Lib) -> bool:
        lib_id = lib.lib_id()
        present = lib_id in self._libs
        self._libs[lib_id] = Lib(lib)
        return not present

    def consume_types(self, types: TypeSystem) -> None:
        self.type_system.merge(types)

    def add_secret_seal(self, seal: RevealedSeal) -> bool:
        present = seal in self._secret_seals
        self._secret_seals.add(seal)
        return not present

    def consume(self, valid: ValidConsignment) -> None:
        """Store every record of an accepted consignment."""
        consignment = valid.consignment
        self.replace_schema(consignment.schema)
        self.consume_types(consignment.types)
        self.replace_genesis(consignment.genesis)
        added = 0
        for wb in consignment.bundles:
            added += self.replace_bundle(wb.bundle)
            self.replace_witness(wb.pub_witness)
        for lib in consignment.scripts:
            self.replace_lib(lib)
        logger.info(
            "consignment stored",
            contract_id=str(valid.contract_id),
            bundles=len(consignment.bundles),
            new_bundles=added,
        )
