"""Contract data model, schema conformance and consignment checking."""

from rgbcore.contract.bundles import (
    PubWitness,
    TransitionBundle,
    WitnessBundle,
    WitnessTx,
    WitnessTxid,
)
from rgbcore.contract.conformance import validate_operation, validate_schema
from rgbcore.contract.consignment import Consignment, ConsignmentVersion, Lib
from rgbcore.contract.graph import CheckResult, ValidConsignment, assemble, check
from rgbcore.contract.operations import (
    ChainNet,
    ConfidentialSeal,
    DeclarativeAssigns,
    FungibleAssigns,
    Genesis,
    Opout,
    Outpoint,
    Revealed,
    RevealedSeal,
    SealClosingStrategy,
    StateKind,
    StructuredAssigns,
    Transition,
    TypedAssigns,
)
from rgbcore.contract.schema import (
    AssignmentDetails,
    DeclarativeSchema,
    FungibleSchema,
    FungibleType,
    GenesisSchema,
    GlobalDetails,
    LibSite,
    MetaDetails,
    Occurrences,
    Schema,
    StructuredSchema,
    TransitionDetails,
    TransitionSchema,
)
from rgbcore.contract.stash import MemStash, StashInconsistency
from rgbcore.contract.state import ContractState, OutputAssignment
