"""
Pytest fixtures for solana-tx-engine tests
"""
import pytest
from typing import Any, List, Optional

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from solana_tx_engine.compiler import compile_message
from solana_tx_engine.config import BroadcastMode, Settings, SubmissionSettings
from solana_tx_engine.exceptions import NetworkError
from solana_tx_engine.rpc import RpcConnections
from solana_tx_engine.signer import KeypairWallet, partially_sign
from solana_tx_engine.types import (
    BlockhashSnapshot,
    CommitmentLevel,
    InstructionSet,
    SignatureStatus,
    SimulationResult,
)

MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TuNi8CyTT8Bqp9xT64jGGv")
LAST_VALID_BLOCK_HEIGHT = 1_000
CONTEXT_SLOT = 5_000


def status(level: Optional[CommitmentLevel], err: Any = None) -> Optional[SignatureStatus]:
    if level is None:
        return None
    return SignatureStatus(slot=CONTEXT_SLOT, confirmations=None, err=err, confirmation_status=level)


class FakeNode:
    """
    Scriptable in-memory RPC node implementing the gateway interface.

    Status and height replies are consumed in order; the last one repeats.
    Sends are deduplicated by signature like a real node: resending identical
    bytes never lands a second transaction.
    """

    def __init__(
        self,
        statuses: Optional[List[Optional[SignatureStatus]]] = None,
        heights: Optional[List[int]] = None,
        last_valid_block_height: int = LAST_VALID_BLOCK_HEIGHT,
        simulation: Optional[SimulationResult] = None,
    ):
        self.blockhash = Hash.new_unique()
        self.last_valid_block_height = last_valid_block_height
        self.statuses = list(statuses or [None])
        self.heights = list(heights or [last_valid_block_height - 100])
        self.simulation = simulation or SimulationResult(err=None, logs=[], units_consumed=1_000)
        self.lookup_tables: list = []

        self.send_error: Optional[Exception] = None
        self.lookup_failures = 0

        self.sent: List[bytes] = []
        self.send_options: List[dict] = []
        self.landed: dict = {}
        self.status_queries = 0
        self.height_queries = 0
        self.simulations: List[dict] = []
        self.blockhash_queries = 0
        self.closed = False

    @property
    def sends(self) -> int:
        return len(self.sent)

    @staticmethod
    def _next(script: list):
        return script.pop(0) if len(script) > 1 else script[0]

    async def get_latest_blockhash(self) -> BlockhashSnapshot:
        self.blockhash_queries += 1
        return BlockhashSnapshot(
            blockhash=self.blockhash,
            last_valid_block_height=self.last_valid_block_height,
            context_slot=CONTEXT_SLOT,
        )

    async def get_signature_status(self, signature):
        self.status_queries += 1
        return self._next(self.statuses)

    async def get_block_height(self) -> int:
        self.height_queries += 1
        return self._next(self.heights)

    async def send_raw_transaction(self, raw, skip_preflight=False, max_retries=None,
                                   preflight_commitment=CommitmentLevel.PROCESSED):
        if self.send_error is not None:
            raise self.send_error
        tx = VersionedTransaction.from_bytes(raw)
        signature = tx.signatures[0]
        self.sent.append(raw)
        self.send_options.append({
            "skip_preflight": skip_preflight,
            "max_retries": max_retries,
            "preflight_commitment": preflight_commitment,
        })
        self.landed.setdefault(str(signature), raw)
        return signature

    async def simulate(self, tx, accounts_to_inspect=(), min_context_slot=None) -> SimulationResult:
        self.simulations.append({
            "tx": tx,
            "accounts": list(accounts_to_inspect),
            "min_context_slot": min_context_slot,
        })
        return self.simulation

    async def get_address_lookup_tables(self, addresses):
        if self.lookup_failures > 0:
            self.lookup_failures -= 1
            raise NetworkError("connection reset", operation="getMultipleAccounts")
        return list(self.lookup_tables)

    async def close(self) -> None:
        self.closed = True


class FailingWallet:
    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign_transaction(self, tx):
        raise RuntimeError("User rejected the request")


def zero_delay_settings(**submission) -> Settings:
    submission.setdefault("poll_interval", 0.0)
    submission.setdefault("relay_poll_interval", 0.0)
    return Settings(submission=SubmissionSettings(**submission))


def memo_ix(payer: Pubkey, data: bytes = b"hello") -> Instruction:
    return Instruction(
        program_id=MEMO_PROGRAM_ID,
        accounts=[AccountMeta(pubkey=payer, is_signer=True, is_writable=True)],
        data=data,
    )


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def wallet(payer) -> KeypairWallet:
    return KeypairWallet(payer)


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def connections(node) -> RpcConnections:
    return RpcConnections(node)


@pytest.fixture
def snapshot(node) -> BlockhashSnapshot:
    return BlockhashSnapshot(
        blockhash=node.blockhash,
        last_valid_block_height=node.last_valid_block_height,
        context_slot=CONTEXT_SLOT,
    )


@pytest.fixture
def transfer_set(payer) -> InstructionSet:
    return InstructionSet.of([
        transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1_000)),
    ])


@pytest.fixture
def spam_settings() -> Settings:
    return zero_delay_settings(mode=BroadcastMode.SPAM)


@pytest.fixture
def single_shot_settings() -> Settings:
    return zero_delay_settings(mode=BroadcastMode.SINGLE_SHOT)


@pytest.fixture
def signed_tx(payer, transfer_set, snapshot) -> VersionedTransaction:
    compiled = compile_message(payer.pubkey(), transfer_set.instructions, snapshot.blockhash)
    return partially_sign(compiled.message, [payer], payer.pubkey())
