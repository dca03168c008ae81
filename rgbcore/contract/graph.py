"""
Consignment graph assembly and checking.

Every identifier a consignment carries is recomputed from content, and every
reference between its parts must resolve inside the consignment:

    schema ──► genesis ──► transitions (grouped in bundles) ──► terminals
       │                        │
       └── script anchors       └── inputs: (op id, assignment type, index)

Bundles are independent once the operation index is built, so they may be
checked on a thread pool. Violations are merged in a fixed order (schema and
genesis, bundles in consignment order, terminals, scripts) so that reports
are reproducible regardless of the worker count.

A record that cannot be encoded has no identifier; the encoding failure is
reported as a violation at the record's path and the checks that need the
missing identifier are skipped.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, TypeVar, Union

from rgbcore.commit import BundleId, ConsignmentId, ContractId, OpId, SchemaId
from rgbcore.config import get_config
from rgbcore.contract.bundles import WitnessBundle
from rgbcore.contract.conformance import validate_operation, validate_schema
from rgbcore.contract.consignment import Consignment
from rgbcore.contract.operations import Genesis, Transition
from rgbcore.contract.schema import Schema
from rgbcore.errors import (
    ConsignmentRejected,
    DanglingReference,
    IdentifierMismatch,
    StrictError,
    ValidationResult,
)
from rgbcore.observability import Layer, get_logger, timed
from rgbcore.strict.typesys import TypeSystem

logger = get_logger("checker", Layer.GRAPH)

CheckResult = ValidationResult

Operation = Union[Genesis, Transition]


@dataclass(frozen=True)
class ValidConsignment:
    """A consignment that passed every check, with its recomputed identifiers."""
    consignment: Consignment
    consignment_id: ConsignmentId
    contract_id: ContractId
    schema_id: SchemaId
    bundle_ids: Tuple[BundleId, ...]
    opids: Tuple[OpId, ...]

    __hash__ = None  # type: ignore[assignment]

    @property
    def genesis(self) -> Genesis:
        return self.consignment.genesis

    @property
    def schema(self) -> Schema:
        return self.consignment.schema

    @property
    def types(self) -> TypeSystem:
        return self.consignment.types

    @property
    def bundles(self) -> Tuple[WitnessBundle, ...]:
        return self.consignment.bundles


@dataclass
class _Index:
    """Recomputed identifiers, built once before bundles are checked.

    An identifier is ``None`` when its record could not be encoded; the
    encoding failure is then reported instead.
    """
    schema_id: Optional[SchemaId]
    contract_id: Optional[ContractId]
    consignment_id: Optional[ConsignmentId]
    ops: Dict[OpId, Operation]
    bundle_ids: List[Optional[BundleId]]
    # per bundle: (carried key, recomputed opid, transition)
    transitions: List[List[Tuple[OpId, Optional[OpId], Transition]]]


T = TypeVar("T")


def _recompute(result: ValidationResult, derive: Callable[[], T], path: str) -> Optional[T]:
    try:
        return derive()
    except StrictError as err:
        result.add(err.at(path))
        return None


def _build_index(consignment: Consignment, result: ValidationResult) -> _Index:
    genesis = consignment.genesis
    schema_id = _recompute(result, consignment.schema.schema_id, "schema")
    # the operation union already prefixes the path with "genesis"
    contract_id = _recompute(result, genesis.contract_id, "")
    ops: Dict[OpId, Operation] = {}
    if contract_id is not None:
        ops[OpId(contract_id)] = genesis

    bundle_ids: List[Optional[BundleId]] = []
    per_bundle: List[List[Tuple[OpId, Optional[OpId], Transition]]] = []
    for i, wb in enumerate(consignment.bundles):
        bundle_path = f"bundles[{i}].bundle"
        bundle_ids.append(_recompute(result, wb.bundle_id, f"{bundle_path}.input_map"))
        entries = []
        for key, transition in wb.bundle.transitions():
            opid = _recompute(result, transition.opid, f"{bundle_path}.known_transitions[{key.hex()}]")
            if opid is not None:
                ops.setdefault(opid, transition)
            entries.append((key, opid, transition))
        per_bundle.append(entries)

    consignment_id = None
    if result.is_valid:
        consignment_id = _recompute(result, consignment.consignment_id, "")

    return _Index(
        schema_id=schema_id,
        contract_id=contract_id,
        consignment_id=consignment_id,
        ops=ops,
        bundle_ids=bundle_ids,
        transitions=per_bundle,
    )


def _check_genesis(consignment: Consignment, index: _Index) -> ValidationResult:
    result = ValidationResult()
    genesis = consignment.genesis
    if index.schema_id is not None and genesis.schema_id != index.schema_id:
        result.add(DanglingReference(
            f"genesis references schema {genesis.schema_id}, consignment carries {index.schema_id}",
            "genesis.schema_id",
        ))
    result.extend(validate_schema(consignment.schema, consignment.types))
    result.extend(validate_operation(consignment.schema, consignment.types, genesis, "genesis"))
    return result


def _check_bundle(consignment: Consignment, index: _Index, i: int) -> ValidationResult:
    result = ValidationResult()
    wb = consignment.bundles[i]
    input_map = wb.bundle.input_map
    bundle_path = f"bundles[{i}].bundle"

    for key, opid, transition in index.transitions[i]:
        path = f"{bundle_path}.known_transitions[{(opid or key).hex()}]"
        if opid is not None and key != opid:
            result.add(IdentifierMismatch(
                f"carried op id {key} does not match recomputed {opid}",
                f"{bundle_path}.known_transitions[{key.hex()}]",
            ))
        if index.contract_id is not None and transition.contract_id != index.contract_id:
            result.add(DanglingReference(
                f"transition references contract {transition.contract_id}, expected {index.contract_id}",
                f"{path}.contract_id",
            ))

        result.extend(validate_operation(consignment.schema, consignment.types, transition, path))

        for opout in sorted(transition.inputs):
            target = index.ops.get(opout.op)
            if target is None:
                result.add(DanglingReference(f"input {opout} spends unknown operation {opout.op}", f"{path}.inputs"))
            else:
                assigns = target.assignments_by_type(opout.ty)
                if assigns is None or opout.no >= len(assigns):
                    result.add(DanglingReference(
                        f"input {opout} spends an assignment its operation does not have",
                        f"{path}.inputs",
                    ))
            if opid is not None and input_map.get(opout) != opid:
                result.add(DanglingReference(
                    f"input {opout} is not mapped to {opid} by the bundle input map",
                    f"{bundle_path}.input_map",
                ))
    return result


def _check_terminals(consignment: Consignment, index: _Index) -> ValidationResult:
    result = ValidationResult()
    positions = {bundle_id: i for i, bundle_id in enumerate(index.bundle_ids) if bundle_id is not None}
    for bundle_id in sorted(consignment.terminals):
        field = f"terminals[{bundle_id.hex()}]"
        i = positions.get(bundle_id)
        if i is None:
            result.add(DanglingReference(f"terminal references unknown bundle {bundle_id}", field))
            continue
        seals = {
            assign.seal
            for _, _, transition in index.transitions[i]
            for assigns in transition.assignments.values()
            for _, assign in assigns.confidential()
        }
        for seal in sorted(consignment.terminals[bundle_id]):
            if seal not in seals:
                result.add(DanglingReference(
                    f"terminal seal {seal} matches no confidential assignment of the bundle", field,
                ))
    return result


def _check_scripts(consignment: Consignment) -> ValidationResult:
    result = ValidationResult()
    carried = consignment.lib_ids()
    for path, site in consignment.schema.lib_sites():
        if site.lib not in carried:
            result.add(DanglingReference(
                f"validation script library {site.lib} is not carried by the consignment",
                f"schema.{path}",
            ))
    return result


def _resolve_workers(workers: Optional[int], bundles: int) -> int:
    checker = get_config().checker
    if workers is None:
        workers = checker.workers.get()
    if bundles < checker.parallel_threshold.get():
        return 1
    return max(1, min(workers, bundles))


def _run_checks(consignment: Consignment, workers: Optional[int]) -> Tuple[ValidationResult, _Index]:
    result = ValidationResult()
    index = _build_index(consignment, result)
    result.extend(_check_genesis(consignment, index))

    n = len(consignment.bundles)
    pool_size = _resolve_workers(workers, n)
    if pool_size > 1:
        with ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="rgbcore-check") as pool:
            bundle_results = list(pool.map(lambda i: _check_bundle(consignment, index, i), range(n)))
    else:
        bundle_results = [_check_bundle(consignment, index, i) for i in range(n)]
    for br in bundle_results:
        result.extend(br)

    result.extend(_check_terminals(consignment, index))
    result.extend(_check_scripts(consignment))
    return result, index


def check(consignment: Consignment, workers: Optional[int] = None) -> CheckResult:
    """Run every check and return all violations found."""
    result, _ = _run_checks(consignment, workers)
    return result


def assemble(consignment: Consignment, workers: Optional[int] = None) -> ValidConsignment:
    """Check a consignment and return it with its recomputed identifiers.

    Raises:
        ConsignmentRejected: carrying every violation, when any check fails.
    """
    with timed(logger, "assemble", bundles=len(consignment.bundles)) as ctx:
        result, index = _run_checks(consignment, workers)
        ctx["contract_id"] = str(index.contract_id)
        ctx["violations"] = len(result.errors)
        if not result.is_valid:
            logger.warning(
                "consignment rejected",
                error_code=result.errors[0].code,
                contract_id=str(index.contract_id),
                violations=len(result.errors),
            )
            raise ConsignmentRejected(result.errors)

        valid = ValidConsignment(
            consignment=consignment,
            consignment_id=index.consignment_id,
            contract_id=index.contract_id,
            schema_id=index.schema_id,
            bundle_ids=tuple(bid for bid in index.bundle_ids if bid is not None),
            opids=tuple(index.ops),
        )
        ctx["consignment_id"] = str(valid.consignment_id)
    logger.info("consignment accepted", contract_id=str(valid.contract_id), consignment_id=str(valid.consignment_id))
    return valid
