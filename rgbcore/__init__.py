"""
RGBCORE: strict encoding and content-addressed contract commitments

Deterministic binary encoding, semantic type identity and consignment
validation for client-side-validated contracts.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                                                                          │
    │  CONTRACT                                                                │
    │    contract/operations.py   Genesis, transitions, seals, assignments    │
    │    contract/schema.py       Contract schema and occurrence bounds       │
    │    contract/bundles.py      Transition bundles and public witnesses     │
    │    contract/consignment.py  Consignment container                       │
    │    contract/conformance.py  Operation-against-schema validation         │
    │    contract/graph.py        Consignment graph checker                   │
    │    contract/state.py        Unspent contract state                      │
    │    contract/stash.py        In-memory stash of verified records         │
    │                                                                          │
    │  TYPES                                                                   │
    │    strict/typesys.py        Type definitions, SemId, TypeSystem         │
    │    strict/symbolic.py       Named type libraries                        │
    │    stl/                     Standard Bitcoin and RGBContract libraries  │
    │                                                                          │
    │  ENCODING                                                                │
    │    strict/codec.py          Primitives and bounded collections          │
    │    strict/composite.py      Structs, tuples, unions, enums              │
    │    commit.py                Tagged commitments and identifiers          │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Ambient
───────

    config.py         Layered configuration (defaults, YAML, environment)
    observability.py  Structured logging per layer
    errors.py         Error taxonomy and collected validation results
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Import public names on first access."""

    if name in ("Id32", "SemId", "SchemaId", "OpId", "ContractId", "BundleId",
                "ConsignmentId", "DiscloseHash", "LibId", "SecretSeal", "Txid",
                "commit", "sha256d"):
        from rgbcore import commit as _commit
        return getattr(_commit, name)

    if name in ("StrictError", "MalformedEncoding", "IntegerOverflow",
                "LengthOutOfRange", "CardinalityViolation", "InvalidCharset",
                "OrderingViolation", "DuplicateKey", "UnknownTag",
                "UnresolvedTypeReference", "TypeLibError", "SchemaViolation",
                "UndeclaredField", "DanglingReference", "IdentifierMismatch",
                "MergeRevealError", "ConsignmentRejected", "ValidationResult"):
        from rgbcore import errors
        return getattr(errors, name)

    if name in ("TypeSystem", "TypeDefinition", "sem_id", "transpile"):
        from rgbcore.strict import typesys
        return getattr(typesys, name)

    if name in ("TypeLib", "SymbolicSys", "compile_all", "load_type_lib"):
        from rgbcore.strict import symbolic
        return getattr(symbolic, name)

    if name == "StandardTypes":
        from rgbcore.stl import StandardTypes
        return StandardTypes

    if name in ("Genesis", "Transition", "Schema", "TransitionBundle",
                "WitnessBundle", "Consignment", "ValidConsignment", "check",
                "assemble", "validate_schema", "validate_operation",
                "ContractState", "MemStash"):
        from rgbcore import contract
        return getattr(contract, name)

    raise AttributeError(f"module 'rgbcore' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Identifiers
    "Id32",
    "SemId",
    "SchemaId",
    "OpId",
    "ContractId",
    "BundleId",
    "ConsignmentId",
    "DiscloseHash",
    "LibId",
    "SecretSeal",
    "Txid",
    "commit",
    "sha256d",
    # Errors
    "StrictError",
    "MalformedEncoding",
    "IntegerOverflow",
    "LengthOutOfRange",
    "CardinalityViolation",
    "InvalidCharset",
    "OrderingViolation",
    "DuplicateKey",
    "UnknownTag",
    "UnresolvedTypeReference",
    "TypeLibError",
    "SchemaViolation",
    "UndeclaredField",
    "DanglingReference",
    "IdentifierMismatch",
    "MergeRevealError",
    "ConsignmentRejected",
    "ValidationResult",
    # Types
    "TypeSystem",
    "TypeDefinition",
    "sem_id",
    "transpile",
    "TypeLib",
    "SymbolicSys",
    "compile_all",
    "load_type_lib",
    "StandardTypes",
    # Contract
    "Genesis",
    "Transition",
    "Schema",
    "TransitionBundle",
    "WitnessBundle",
    "Consignment",
    "ValidConsignment",
    "check",
    "assemble",
    "validate_schema",
    "validate_operation",
    "ContractState",
    "MemStash",
]
