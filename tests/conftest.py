import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import rgbcore`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "perf: performance/benchmark tests (skipped unless RGBCORE_RUN_PERF=1)",
    )
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless RGBCORE_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_perf = _env_flag('RGBCORE_RUN_PERF')
    run_slow = _env_flag('RGBCORE_RUN_SLOW')

    for item in items:
        if 'perf' in item.keywords and not run_perf:
            item.add_marker(pytest.mark.skip(reason='perf tests skipped; set RGBCORE_RUN_PERF=1 to enable'))
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set RGBCORE_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test starts from default configuration."""
    from rgbcore.config import ConfigManager

    for var in ("RGBCORE_CHECK_WORKERS", "RGBCORE_CHECK_PARALLEL_THRESHOLD",
                "RGBCORE_LOG_LEVEL", "RGBCORE_LOG_FORMAT"):
        monkeypatch.delenv(var, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# =============================================================================
# DEMO CONTRACT
# =============================================================================

SPEC_GLOBAL = 2000
SUPPLY_GLOBAL = 2010
OWNER_ASSIGNMENT = 4000
ISSUE_RIGHT = 7
ATTACHMENT_ASSIGNMENT = 5000
TRANSFER = 10000

TXID_ISSUE = bytes([0xA1] * 32)


class DemoContract:
    """A small fungible-asset contract with helpers to build its operations."""

    SPEC_GLOBAL = SPEC_GLOBAL
    SUPPLY_GLOBAL = SUPPLY_GLOBAL
    OWNER_ASSIGNMENT = OWNER_ASSIGNMENT
    ISSUE_RIGHT = ISSUE_RIGHT
    ATTACHMENT_ASSIGNMENT = ATTACHMENT_ASSIGNMENT
    TRANSFER = TRANSFER

    def __init__(self):
        from rgbcore.contract.schema import (
            AssignmentDetails,
            DeclarativeSchema,
            FungibleSchema,
            GenesisSchema,
            GlobalDetails,
            Occurrences,
            Schema,
            StructuredSchema,
            TransitionDetails,
            TransitionSchema,
        )
        from rgbcore.stl import StandardTypes

        self.stl = StandardTypes()
        self.schema = Schema(
            name="DemoAsset",
            meta_types={},
            global_types={
                SPEC_GLOBAL: GlobalDetails(self.stl.get("AssetSpec"), 1, "spec"),
                SUPPLY_GLOBAL: GlobalDetails(self.stl.get("Amount"), 1, "issuedSupply"),
            },
            owned_types={
                OWNER_ASSIGNMENT: AssignmentDetails(FungibleSchema(), "assetOwner"),
                ISSUE_RIGHT: AssignmentDetails(DeclarativeSchema(), "issueRight"),
                ATTACHMENT_ASSIGNMENT: AssignmentDetails(StructuredSchema(self.stl.get("Details")), "attachment"),
            },
            genesis=GenesisSchema(
                metadata={},
                globals={SPEC_GLOBAL: Occurrences.once(), SUPPLY_GLOBAL: Occurrences.once()},
                assignments={
                    OWNER_ASSIGNMENT: Occurrences.once_or_more(),
                    ISSUE_RIGHT: Occurrences.once(),
                    ATTACHMENT_ASSIGNMENT: Occurrences.no_or_more(),
                },
            ),
            transitions={
                TRANSFER: TransitionDetails(TransitionSchema(
                    metadata={},
                    globals={},
                    inputs={OWNER_ASSIGNMENT: Occurrences.once_or_more()},
                    assignments={OWNER_ASSIGNMENT: Occurrences.once_or_more()},
                ), "transfer"),
            },
        )
        self.types = self.stl.type_system(self.schema)

    # -------------------------------------------------------------------------

    @staticmethod
    def seal(vout, blinding, txid=TXID_ISSUE):
        from rgbcore.commit import Txid
        from rgbcore.contract.operations import RevealedSeal

        return RevealedSeal(Txid(txid) if txid is not None else None, vout, blinding)

    def owner(self, *amounts, vout=0):
        from rgbcore.contract.operations import FungibleAssigns, Revealed

        return FungibleAssigns([
            Revealed(self.seal(vout + i, 100 + vout + i), amount) for i, amount in enumerate(amounts)
        ])

    def rights(self, count=1):
        from rgbcore.contract.operations import DeclarativeAssigns, Revealed

        return DeclarativeAssigns([Revealed(self.seal(50 + i, 500 + i), None) for i in range(count)])

    def genesis(self, globals_=None, assignments=None, **overrides):
        from rgbcore.contract.operations import ChainNet, Genesis, SealClosingStrategy
        from rgbcore.strict.codec import U64

        if globals_ is None:
            globals_ = {
                SPEC_GLOBAL: (b"D\x03EMO" + b"\x0aDemo asset" + b"\x00" + b"\x08",),
                SUPPLY_GLOBAL: (U64.encode(1000),),
            }
        if assignments is None:
            assignments = {OWNER_ASSIGNMENT: self.owner(1000), ISSUE_RIGHT: self.rights()}
        fields = dict(
            schema_id=self.schema.schema_id(),
            timestamp=1_700_000_000,
            issuer="ssi:demo-issuer",
            chain_net=ChainNet.BitcoinRegtest,
            seal_closing_strategy=SealClosingStrategy.FirstOpretOrTapret,
            metadata={},
            globals=globals_,
            assignments=assignments,
        )
        fields.update(overrides)
        return Genesis(**fields)

    def transfer(self, contract_id, inputs, outputs, nonce=0, transition_type=TRANSFER):
        from rgbcore.contract.operations import Transition

        return Transition(
            contract_id=contract_id,
            transition_type=transition_type,
            nonce=nonce,
            metadata={},
            globals={},
            inputs=frozenset(inputs),
            assignments={OWNER_ASSIGNMENT: outputs},
        )

    @staticmethod
    def witness_bundle(raw_tx, *transitions):
        from rgbcore.contract.bundles import TransitionBundle, WitnessBundle, WitnessTx

        return WitnessBundle(WitnessTx(raw_tx), TransitionBundle.of(*transitions))

    def consignment(self, genesis, bundles=(), terminals=None, scripts=(), schema=None):
        from rgbcore.contract.consignment import Consignment, ConsignmentVersion

        return Consignment(
            version=ConsignmentVersion.V0,
            transfer=True,
            terminals=terminals or {},
            genesis=genesis,
            bundles=tuple(bundles),
            schema=schema or self.schema,
            types=self.types,
            scripts=scripts,
        )

    def transfer_consignment(self):
        """Genesis plus one transfer splitting the issued amount 600 / 400.

        The 600 output is revealed and witness-relative; the 400 output is
        concealed and named as the consignment's terminal.
        """
        from rgbcore.commit import OpId
        from rgbcore.contract.operations import FungibleAssigns, Opout, Revealed

        genesis = self.genesis()
        contract_id = genesis.contract_id()
        receiver = self.seal(1, 777)
        outputs = FungibleAssigns([
            Revealed(self.seal(0, 42, txid=None), 600),
            Revealed(receiver, 400).conceal(),
        ])
        transition = self.transfer(contract_id, [Opout(OpId(contract_id), OWNER_ASSIGNMENT, 0)], outputs)
        wb = self.witness_bundle(b"demo-witness-tx", transition)
        return self.consignment(genesis, [wb], terminals={wb.bundle_id(): {receiver.conceal()}})


@pytest.fixture(scope="session")
def demo():
    return DemoContract()
