"""
Schema conformance validation.

Checks that a schema is internally consistent with its type system, and that
an operation respects the schema: every field it carries is declared, field
cardinalities lie within their occurrence bounds, and every state payload is
a valid encoding of its declared type.

All violations found in one schema or one operation are collected into a
``ValidationResult``; nothing here raises on the first problem.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Optional, Union

from rgbcore.commit import SemId
from rgbcore.contract.operations import Genesis, Revealed, StateKind, Transition, TypedAssigns
from rgbcore.contract.schema import (
    GenesisSchema,
    Occurrences,
    Schema,
    StructuredSchema,
    TransitionSchema,
)
from rgbcore.errors import (
    SchemaViolation,
    StrictError,
    UndeclaredField,
    UnresolvedTypeReference,
    ValidationResult,
)
from rgbcore.observability import Layer, get_logger
from rgbcore.strict.typesys import TypeSystem

logger = get_logger("conformance", Layer.SCHEMA)


# =============================================================================
# SCHEMA CONSISTENCY
# =============================================================================

def _check_occurrences(result: ValidationResult, path: str, occ: Occurrences) -> None:
    if occ.min > occ.max:
        result.add(SchemaViolation(path, "min <= max", str(occ), f"inverted occurrence bound {occ}"))


def _check_declared(
    result: ValidationResult,
    path: str,
    occurrences: Dict[int, Occurrences],
    declared: Dict[int, Any],
    what: str,
) -> None:
    for ty in sorted(occurrences):
        field = f"{path}[{ty}]"
        if ty not in declared:
            result.add(UndeclaredField(f"{what} type {ty} is not declared by the schema", field))
        _check_occurrences(result, field, occurrences[ty])


def _check_op_schema(result: ValidationResult, schema: Schema, path: str, op_schema: Union[GenesisSchema, TransitionSchema]) -> None:
    _check_declared(result, f"{path}.metadata", op_schema.metadata, schema.meta_types, "metadata")
    _check_declared(result, f"{path}.globals", op_schema.globals, schema.global_types, "global state")
    if isinstance(op_schema, TransitionSchema):
        _check_declared(result, f"{path}.inputs", op_schema.inputs, schema.owned_types, "input")
    _check_declared(result, f"{path}.assignments", op_schema.assignments, schema.owned_types, "assignment")


def validate_schema(schema: Schema, types: TypeSystem) -> ValidationResult:
    """Check that every type a schema names resolves and every bound is sane."""
    result = ValidationResult()

    def resolve(sid: SemId, field: str) -> None:
        if sid not in types:
            result.add(UnresolvedTypeReference(f"type {sid} is not in the type system", field))

    for ty in sorted(schema.meta_types):
        resolve(schema.meta_types[ty].sem_id, f"meta_types[{ty}]")
    for ty in sorted(schema.global_types):
        resolve(schema.global_types[ty].sem_id, f"global_types[{ty}]")
    for ty in sorted(schema.owned_types):
        state = schema.owned_types[ty].state_schema
        if isinstance(state, StructuredSchema):
            resolve(state.sem_id, f"owned_types[{ty}]")

    _check_op_schema(result, schema, "genesis", schema.genesis)
    for ty in sorted(schema.transitions):
        _check_op_schema(result, schema, f"transitions[{ty}]", schema.transitions[ty].transition_schema)

    if not result.is_valid:
        logger.warning("schema is inconsistent", schema=schema.name, violations=len(result.errors))
    return result


# =============================================================================
# OPERATION CONFORMANCE
# =============================================================================

def _check_value(result: ValidationResult, types: TypeSystem, sid: SemId, value: bytes, field: str) -> None:
    if sid not in types:
        result.add(UnresolvedTypeReference(f"type {sid} is not in the type system", field))
        return
    try:
        types.check(sid, value)
    except StrictError as err:
        result.add(SchemaViolation(field, f"value of type {sid}", err.code, f"state does not match its type: {err}"))


def _check_count(result: ValidationResult, field: str, occ: Occurrences, count: int) -> None:
    if not occ.check(count):
        result.add(SchemaViolation(field, str(occ), count, f"{count} occurrences outside bound {occ}"))


def _check_metadata(
    result: ValidationResult, schema: Schema, types: TypeSystem, op_schema: Any, op: Any, path: str,
) -> None:
    for ty in sorted(op.metadata):
        field = f"{path}.metadata[{ty}]"
        details = schema.meta_types.get(ty)
        if ty not in op_schema.metadata or details is None:
            result.add(UndeclaredField(f"metadata type {ty} is not allowed here", field))
            continue
        _check_value(result, types, details.sem_id, op.metadata[ty], field)
    for ty in sorted(op_schema.metadata):
        _check_count(result, f"{path}.metadata[{ty}]", op_schema.metadata[ty], 1 if ty in op.metadata else 0)


def _check_globals(
    result: ValidationResult, schema: Schema, types: TypeSystem, op_schema: Any, op: Any, path: str,
) -> None:
    for ty in sorted(op.globals):
        field = f"{path}.globals[{ty}]"
        details = schema.global_types.get(ty)
        if ty not in op_schema.globals or details is None:
            result.add(UndeclaredField(f"global state type {ty} is not allowed here", field))
            continue
        values = op.globals[ty]
        if len(values) > details.max_items:
            result.add(SchemaViolation(field, f"at most {details.max_items} items", len(values)))
        for i, value in enumerate(values):
            _check_value(result, types, details.sem_id, value, f"{field}[{i}]")
    for ty in sorted(op_schema.globals):
        _check_count(result, f"{path}.globals[{ty}]", op_schema.globals[ty], len(op.globals.get(ty, ())))


def _check_assignments(
    result: ValidationResult, schema: Schema, types: TypeSystem, op_schema: Any, op: Any, path: str,
) -> None:
    for ty in sorted(op.assignments):
        field = f"{path}.assignments[{ty}]"
        details = schema.owned_types.get(ty)
        if ty not in op_schema.assignments or details is None:
            result.add(UndeclaredField(f"assignment type {ty} is not allowed here", field))
            continue
        assigns: TypedAssigns = op.assignments[ty]
        state_schema = details.state_schema
        if assigns.KIND != state_schema.KIND:
            result.add(SchemaViolation(field, state_schema.KIND.name, assigns.KIND.name, "state kind mismatch"))
            continue
        for no, assign in enumerate(assigns):
            if isinstance(op, Genesis) and isinstance(assign, Revealed) and assign.seal.txid is None:
                result.add(SchemaViolation(
                    f"{field}[{no}].seal", "seal with a txid", "witness-relative seal",
                    "genesis seals must name their transaction",
                ))
            if assigns.KIND == StateKind.Structured:
                _check_value(result, types, state_schema.sem_id, assign.state, f"{field}[{no}].state")
    for ty in sorted(op_schema.assignments):
        present = op.assignments.get(ty)
        _check_count(result, f"{path}.assignments[{ty}]", op_schema.assignments[ty], len(present) if present else 0)


def _check_inputs(result: ValidationResult, schema: Schema, op_schema: TransitionSchema, op: Transition, path: str) -> None:
    counts = Counter(opout.ty for opout in op.inputs)
    for ty in sorted(counts):
        if ty not in op_schema.inputs or ty not in schema.owned_types:
            result.add(UndeclaredField(f"input of assignment type {ty} is not allowed here", f"{path}.inputs[{ty}]"))
    for ty in sorted(op_schema.inputs):
        _check_count(result, f"{path}.inputs[{ty}]", op_schema.inputs[ty], counts.get(ty, 0))


def validate_operation(
    schema: Schema,
    types: TypeSystem,
    op: Union[Genesis, Transition],
    path: Optional[str] = None,
) -> ValidationResult:
    """Check one operation against its schema and the contract type system."""
    result = ValidationResult()
    if isinstance(op, Genesis):
        path = path or "genesis"
        op_schema: Union[GenesisSchema, TransitionSchema] = schema.genesis
    else:
        path = path or "transition"
        ts = schema.transition_schema(op.transition_type)
        if ts is None:
            result.add(UndeclaredField(
                f"transition type {op.transition_type} is not declared by schema {schema.name}",
                f"{path}.transition_type",
            ))
            return result
        op_schema = ts

    _check_metadata(result, schema, types, op_schema, op, path)
    _check_globals(result, schema, types, op_schema, op, path)
    if isinstance(op, Transition):
        _check_inputs(result, schema, op_schema, op, path)  # type: ignore[arg-type]
    _check_assignments(result, schema, types, op_schema, op, path)

    if not result.is_valid:
        logger.debug("operation violates schema", path=path, violations=len(result.errors))
    return result
