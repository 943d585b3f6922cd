"""
Transaction engine.

Entry point of the submission pipeline:

    blockhash -> compile -> partial sign -> wallet sign -> broadcast -> confirm

or, for dry runs and read-only engines,

    blockhash -> compile -> partial sign -> simulate

Every failure leaving this module has been through the ErrorClassifier, so
callers only ever see ProcessTransactionError subclasses or NetworkError.
"""

import base64
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
from urllib.parse import quote

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .blockhash import BlockhashOracle
from .broadcaster import Broadcaster, RelayBroadcaster, build_broadcaster
from .classifier import ErrorClassifier, ProgramErrorRegistry
from .compiler import compile_message, set_compute_unit_price_ix, tip_ix
from .config import BroadcastMode, Cluster, Settings, get_settings
from .exceptions import (
    ConfigurationError,
    NetworkError,
    ProcessTransactionError,
    TransactionBuildingError,
    TxEngineError,
)
from .poller import SignaturePoller
from .relay import DEFAULT_TIP_ACCOUNT, RelayClient
from .retry import RPC_RETRY_POLICY, retry_async_operation
from .rpc import RpcConnections
from .signer import Wallet, partially_sign, sign_with_wallet
from .simulation import Simulator
from .types import (
    BlockhashSnapshot,
    ConfirmationTarget,
    InstructionSet,
    SimulationResult,
    SubmissionResult,
)
from .validators import validate_lamports, validate_pubkeys

logger = logging.getLogger(__name__)

EXPLORER_INSPECTOR_URL = "https://explorer.solana.com/tx/inspector"


@dataclass
class ProcessOptions:
    dry_run: bool = False


class TransactionEngine:

    def __init__(
        self,
        connections: RpcConnections,
        wallet: Wallet,
        settings: Optional[Settings] = None,
        lookup_tables: Optional[Sequence[AddressLookupTableAccount]] = None,
        lookup_table_addresses: Optional[Sequence[Pubkey]] = None,
        relay: Optional[RelayClient] = None,
        classifier: Optional[ErrorClassifier] = None,
        broadcaster: Optional[Broadcaster] = None
    ):
        self.settings = settings or get_settings()
        self.connections = connections
        self.wallet = wallet
        self.relay = relay
        self.classifier = classifier or ErrorClassifier(
            ProgramErrorRegistry.from_program_ids(self.settings.programs.program_ids)
        )

        self.lookup_tables = tuple(lookup_tables or ())
        self.lookup_table_addresses = tuple(
            lookup_table_addresses or (table.key for table in self.lookup_tables)
        )

        submission = self.settings.submission
        self.read_only = submission.read_only

        self.oracle = BlockhashOracle(connections.rpc)
        self.simulator = Simulator(connections.rpc)
        self.poller = SignaturePoller(
            connections.rpc,
            self.classifier,
            attempts=submission.poll_attempts,
            interval=submission.poll_interval,
        )
        self.broadcaster = broadcaster or build_broadcaster(
            submission.mode,
            connections,
            self.poller,
            simulator=self.simulator,
            relay=relay,
            settings=submission,
        )
        self.relay_broadcaster: Optional[RelayBroadcaster] = None
        if relay is not None:
            self.relay_broadcaster = RelayBroadcaster(
                relay,
                connections.rpc,
                self.poller,
                interval=submission.relay_poll_interval,
            )

    @classmethod
    async def create(
        cls,
        wallet: Wallet,
        settings: Optional[Settings] = None,
        lookup_table_addresses: Optional[Sequence[Union[str, Pubkey]]] = None,
        connections: Optional[RpcConnections] = None
    ) -> "TransactionEngine":
        """Build an engine from settings, loading its lookup tables once."""
        settings = settings or get_settings()
        connections = connections or RpcConnections.from_settings(settings)

        raw_addresses = lookup_table_addresses
        if raw_addresses is None:
            raw_addresses = settings.programs.lookup_tables
        addresses = validate_pubkeys([str(a) for a in raw_addresses], "lookup_tables")
        validate_pubkeys(settings.programs.program_ids, "program_ids")

        relay = None
        if settings.submission.mode == BroadcastMode.RELAY or settings.relay.tip_lamports > 0:
            relay = RelayClient(
                str(settings.relay.url),
                api_key=settings.relay.api_key,
                timeout=settings.relay.timeout,
            )

        lookup_tables = await retry_async_operation(
            connections.rpc.get_address_lookup_tables,
            addresses,
            config=RPC_RETRY_POLICY,
        )
        logger.info(f"Loaded {len(lookup_tables)} of {len(addresses)} address lookup tables")

        return cls(
            connections,
            wallet,
            settings=settings,
            lookup_tables=lookup_tables,
            lookup_table_addresses=addresses,
            relay=relay,
        )

    async def reload_lookup_tables(self) -> List[AddressLookupTableAccount]:
        tables = await retry_async_operation(
            self.connections.rpc.get_address_lookup_tables,
            list(self.lookup_table_addresses),
            config=RPC_RETRY_POLICY,
        )
        self.lookup_tables = tuple(tables)
        logger.info(f"Reloaded {len(tables)} address lookup tables")
        return tables

    async def close(self) -> None:
        await self.connections.close()
        if self.relay is not None:
            await self.relay.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    def _classify(self, error: Exception, signature: Optional[str] = None) -> TxEngineError:
        return self.classifier.classify(error, signature)

    def _raise_classified(self, error: Exception) -> None:
        classified = self._classify(error)
        if classified is error:
            raise error
        raise classified from error

    def _build(self, instruction_set: InstructionSet, snapshot: BlockhashSnapshot) -> VersionedTransaction:
        payer = self.wallet.pubkey
        try:
            compiled = compile_message(
                payer,
                instruction_set.instructions,
                snapshot.blockhash,
                self.lookup_tables,
            )
            compiled.require_fits()
            return partially_sign(compiled.message, instruction_set.signers, payer)
        except TransactionBuildingError as e:
            logger.error(f"Failed to build the transaction: {e.message}")
            raise
        except Exception as e:
            logger.error(f"Failed to build the transaction: {e}")
            raise TransactionBuildingError(str(e)) from e

    def inspector_url(self, tx: VersionedTransaction) -> str:
        signatures = quote(json.dumps([str(s) for s in tx.signatures], separators=(",", ":")), safe="")
        message = quote(base64.b64encode(to_bytes_versioned(tx.message)).decode(), safe="")
        cluster = self.settings.solana.cluster
        if isinstance(cluster, Cluster):
            cluster = cluster.value
        return f"{EXPLORER_INSPECTOR_URL}?cluster={cluster}&signatures={signatures}&message={message}"

    def _log_simulation(self, tx: VersionedTransaction, result: SimulationResult) -> None:
        if result.err is not None:
            logger.info(f"Simulation error: {result.err}")
        else:
            logger.info(f"Simulation success - {result.units_consumed} CU")
        if result.logs:
            logger.info("------ Logs ------\n" + "\n".join(result.logs))
        logger.info(f"------ Inspect ------\n{self.inspector_url(tx)}")

    async def _dry_run(self, tx: VersionedTransaction, snapshot: BlockhashSnapshot) -> SubmissionResult:
        result = await self.simulator.simulate(tx, min_context_slot=snapshot.min_context_slot)
        self._log_simulation(tx, result)
        Simulator.require_success(result)
        return SubmissionResult.success(tx.signatures[0], None, sends=0)

    async def _process(
        self,
        instruction_set: InstructionSet,
        opts: ProcessOptions,
        target: ConfirmationTarget
    ) -> SubmissionResult:
        snapshot = await self.oracle.fetch_snapshot()
        tx = self._build(instruction_set, snapshot)

        try:
            if opts.dry_run or self.read_only:
                return await self._dry_run(tx, snapshot)

            signed = await sign_with_wallet(tx, self.wallet)
            return await self.broadcaster.broadcast(signed, snapshot, target)
        except Exception as e:
            self._raise_classified(e)

    async def process_transaction(
        self,
        instruction_set: InstructionSet,
        opts: Optional[ProcessOptions] = None,
        target: ConfirmationTarget = ConfirmationTarget.FINALIZED
    ) -> str:
        """
        Build, sign, broadcast and confirm a transaction.

        Returns the transaction signature once the target commitment is
        observed. With dry_run (or on a read-only engine) nothing is sent: the
        transaction is simulated and its unsent signature returned.

        Raises:
            TransactionBuildingError: compilation failed or the message is too large
            SimulationError: preflight or simulation reported a program error
            ConfirmationTimeoutError: the blockhash expired before confirmation
            FallthroughError: wallet failures and anything unrecognised
            NetworkError: an RPC endpoint could not be reached
        """
        result = await self._process(instruction_set, opts or ProcessOptions(), target)
        return result.signature

    async def submit(
        self,
        instruction_set: InstructionSet,
        opts: Optional[ProcessOptions] = None,
        target: ConfirmationTarget = ConfirmationTarget.FINALIZED
    ) -> SubmissionResult:
        """Like process_transaction, but returns failures in the result."""
        try:
            return await self._process(instruction_set, opts or ProcessOptions(), target)
        except (ProcessTransactionError, NetworkError) as e:
            logger.warning(f"Submission failed: {e}")
            return SubmissionResult.failure(e, sends=e.context.get("sends", 0))

    async def sign_transaction(self, instruction_set: InstructionSet) -> VersionedTransaction:
        snapshot = await self.oracle.fetch_snapshot()
        tx = self._build(instruction_set, snapshot)
        try:
            return await sign_with_wallet(tx, self.wallet)
        except Exception as e:
            self._raise_classified(e)

    async def send_and_confirm_transaction(
        self,
        tx: VersionedTransaction,
        target: ConfirmationTarget,
        snapshot: Optional[BlockhashSnapshot] = None
    ) -> str:
        """
        Broadcast an already signed transaction with the configured strategy.

        Without the snapshot the transaction was compiled against, a fresh one
        is fetched; its deadline is never earlier than the real one.
        """
        snapshot = snapshot or await self.oracle.fetch_snapshot()
        try:
            result = await self.broadcaster.broadcast(tx, snapshot, target)
        except Exception as e:
            self._raise_classified(e)
        return result.signature

    async def sign_transaction_for_relay(
        self,
        instruction_set: InstructionSet,
        tip_lamports: Optional[int] = None,
        priority_fee_micro_lamports: Optional[int] = None
    ) -> Optional[VersionedTransaction]:
        """
        Add a compute unit price and a relay tip, then simulate and sign.

        Returns None when the tipped transaction no longer fits in a packet.
        """
        tip = self.settings.relay.tip_lamports if tip_lamports is None else tip_lamports
        if not tip:
            raise TransactionBuildingError("Relay tip has not been set")
        tip = validate_lamports(tip, "tip_lamports", allow_zero=False)

        fee = priority_fee_micro_lamports
        if fee is None:
            fee = self.settings.relay.priority_fee_micro_lamports

        payer = self.wallet.pubkey
        instructions = list(instruction_set.instructions)
        if fee:
            instructions.insert(0, set_compute_unit_price_ix(fee))
        instructions.append(tip_ix(payer, tip, DEFAULT_TIP_ACCOUNT))

        snapshot = await self.oracle.fetch_snapshot()

        try:
            compiled = compile_message(payer, instructions, snapshot.blockhash, self.lookup_tables)
        except TransactionBuildingError as e:
            logger.error(f"Failed to build the relay transaction: {e.message}")
            raise

        logger.info(f"Relay transaction size {compiled.serialized_size} bytes, {compiled.account_count} keys")
        if compiled.too_large:
            logger.warning("Relay transaction is too large to send")
            return None

        try:
            tx = partially_sign(compiled.message, instruction_set.signers, payer)
            result = await self.simulator.simulate_or_raise(tx, min_context_slot=snapshot.min_context_slot)
            logger.debug(f"Relay precheck consumed {result.units_consumed} CU")
            return await sign_with_wallet(tx, self.wallet)
        except Exception as e:
            self._raise_classified(e)

    async def send_and_confirm_via_relay(
        self,
        tx: VersionedTransaction,
        target: ConfirmationTarget,
        snapshot: Optional[BlockhashSnapshot] = None
    ) -> str:
        if self.relay_broadcaster is None:
            raise ConfigurationError("No relay configured for this engine")

        snapshot = snapshot or await self.oracle.fetch_snapshot()
        try:
            result = await self.relay_broadcaster.broadcast(tx, snapshot, target)
        except Exception as e:
            self._raise_classified(e)
        return result.signature

    async def simulate_transaction(
        self,
        source: Union[InstructionSet, VersionedTransaction],
        accounts_to_inspect: Sequence[Pubkey] = ()
    ) -> List[Optional[bytes]]:
        """Simulate and return the post-execution data of the requested accounts."""
        snapshot = await self.oracle.fetch_snapshot()
        if isinstance(source, InstructionSet):
            tx = self._build(source, snapshot)
        else:
            tx = source

        try:
            result = await self.simulator.simulate(tx, accounts_to_inspect, snapshot.min_context_slot)
            Simulator.require_success(result)
        except Exception as e:
            self._raise_classified(e)

        return list(result.accounts)


__all__ = [
    "EXPLORER_INSPECTOR_URL",
    "ProcessOptions",
    "TransactionEngine",
]
