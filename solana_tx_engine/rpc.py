"""
Network RPC capability.

RpcGateway narrows solana-py's AsyncClient to the calls the submission
pipeline makes and converts transport failures into NetworkError, so that no
other module has to know about httpx or solana-py exception types.
"""

import asyncio
import logging
from typing import Any, Awaitable, List, Optional, Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.account_decoder import UiAccountEncoding
from solders.address_lookup_table_account import (
    AddressLookupTable,
    AddressLookupTableAccount,
)
from solders.commitment_config import CommitmentLevel as SoldersCommitmentLevel
from solders.pubkey import Pubkey
from solders.rpc.config import (
    RpcSimulateTransactionAccountsConfig,
    RpcSimulateTransactionConfig,
)
from solders.rpc.requests import SimulateVersionedTransaction
from solders.rpc.responses import SimulateTransactionResp
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .config import Settings
from .exceptions import (
    BlockhashNotFoundError,
    NetworkError,
    RPCResponseError,
    SendTransactionError,
)
from .types import (
    BlockhashSnapshot,
    CommitmentLevel,
    SignatureStatus,
    SimulationResult,
)

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError, asyncio.TimeoutError, OSError)

SOLDERS_COMMITMENT = {
    CommitmentLevel.PROCESSED: SoldersCommitmentLevel.Processed,
    CommitmentLevel.CONFIRMED: SoldersCommitmentLevel.Confirmed,
    CommitmentLevel.FINALIZED: SoldersCommitmentLevel.Finalized,
}


def _rpc_error_message(error: Any) -> str:
    message = getattr(error, "message", None)
    if message:
        return str(message)
    return str(error)


def send_error_from_rpc_exception(exc: RPCException) -> SendTransactionError:
    """Unpack a preflight failure into a SendTransactionError with its logs."""
    rpc_error = exc.args[0] if exc.args else exc
    data = getattr(rpc_error, "data", None)
    logs = getattr(data, "logs", None) or []
    err = getattr(data, "err", None)
    return SendTransactionError(_rpc_error_message(rpc_error), logs=list(logs), err=err)


class RpcGateway:

    def __init__(
        self,
        client: AsyncClient,
        commitment: CommitmentLevel = CommitmentLevel.CONFIRMED,
        endpoint: Optional[str] = None
    ):
        self.client = client
        self.commitment = commitment
        self.endpoint = endpoint or str(getattr(getattr(client, "_provider", None), "endpoint_uri", ""))

    @property
    def _commitment(self) -> Commitment:
        return Commitment(self.commitment.value)

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            response = await awaitable
        except TRANSPORT_ERRORS as e:
            raise NetworkError(
                f"{operation} failed: {e}",
                endpoint=self.endpoint,
                operation=operation,
            ) from e

        if not hasattr(response, "value"):
            raise RPCResponseError(
                f"{operation} returned an unexpected response: {response}",
                endpoint=self.endpoint,
                operation=operation,
                rpc_error_code=getattr(response, "code", None),
            )
        return response

    async def get_latest_blockhash(self) -> BlockhashSnapshot:
        response = await self._call(
            "getLatestBlockhash",
            self.client.get_latest_blockhash(commitment=self._commitment)
        )

        if not response.value:
            raise BlockhashNotFoundError(
                "Failed to get recent blockhash",
                endpoint=self.endpoint,
                operation="getLatestBlockhash",
            )

        return BlockhashSnapshot(
            blockhash=response.value.blockhash,
            last_valid_block_height=response.value.last_valid_block_height,
            context_slot=response.context.slot,
        )

    async def get_signature_status(self, signature: Signature) -> Optional[SignatureStatus]:
        response = await self._call(
            "getSignatureStatuses",
            self.client.get_signature_statuses([signature], search_transaction_history=False)
        )

        if not response.value or response.value[0] is None:
            return None

        status = response.value[0]
        return SignatureStatus(
            slot=status.slot,
            confirmations=status.confirmations,
            err=status.err,
            confirmation_status=CommitmentLevel.parse(status.confirmation_status),
        )

    async def get_block_height(self) -> int:
        response = await self._call(
            "getBlockHeight",
            self.client.get_block_height(commitment=self._commitment)
        )
        return int(response.value)

    async def send_raw_transaction(
        self,
        raw: bytes,
        skip_preflight: bool = False,
        max_retries: Optional[int] = None,
        preflight_commitment: CommitmentLevel = CommitmentLevel.PROCESSED
    ) -> Signature:
        opts = TxOpts(
            skip_confirmation=True,
            skip_preflight=skip_preflight,
            preflight_commitment=Commitment(preflight_commitment.value),
            max_retries=max_retries,
        )

        try:
            response = await self._call(
                "sendTransaction",
                self.client.send_raw_transaction(raw, opts=opts)
            )
        except RPCException as e:
            raise send_error_from_rpc_exception(e) from e

        if not response.value:
            raise RPCResponseError(
                "Empty response from sendTransaction",
                endpoint=self.endpoint,
                operation="sendTransaction",
            )
        return response.value

    async def simulate(
        self,
        tx: VersionedTransaction,
        accounts_to_inspect: Sequence[Pubkey] = (),
        min_context_slot: Optional[int] = None
    ) -> SimulationResult:
        accounts_config = None
        if accounts_to_inspect:
            accounts_config = RpcSimulateTransactionAccountsConfig(
                addresses=list(accounts_to_inspect),
                encoding=UiAccountEncoding.Base64,
            )

        config = RpcSimulateTransactionConfig(
            sig_verify=False,
            commitment=SOLDERS_COMMITMENT[self.commitment],
            accounts=accounts_config,
            min_context_slot=min_context_slot,
        )
        body = SimulateVersionedTransaction(tx, config)

        response = await self._call(
            "simulateTransaction",
            self.client._provider.make_request(body, SimulateTransactionResp)
        )

        result = response.value
        accounts = [
            bytes(account.data) if account is not None else None
            for account in (result.accounts or [])
        ]

        return SimulationResult(
            err=result.err,
            logs=list(result.logs or []),
            units_consumed=result.units_consumed,
            accounts=accounts,
            context_slot=response.context.slot,
        )

    async def get_multiple_accounts(self, pubkeys: Sequence[Pubkey]) -> List[Optional[bytes]]:
        response = await self._call(
            "getMultipleAccounts",
            self.client.get_multiple_accounts(list(pubkeys), commitment=self._commitment)
        )
        return [bytes(account.data) if account is not None else None for account in response.value]

    async def get_address_lookup_tables(
        self,
        addresses: Sequence[Pubkey]
    ) -> List[AddressLookupTableAccount]:
        if not addresses:
            return []

        datas = await self.get_multiple_accounts(addresses)
        tables = []

        for address, data in zip(addresses, datas):
            if data is None:
                logger.warning(f"Address lookup table {address} not found, skipping")
                continue
            table = AddressLookupTable.deserialize(data)
            tables.append(AddressLookupTableAccount(key=address, addresses=list(table.addresses)))

        return tables

    async def close(self) -> None:
        await self.client.close()


class RpcConnections:
    """
    The network handles a submission uses: the primary node and an optional
    dedicated send endpoint. Read-mostly, shared across submissions.
    """

    def __init__(self, rpc: RpcGateway, send_rpc: Optional[RpcGateway] = None):
        self.rpc = rpc
        self.send_rpc = send_rpc or rpc

    @classmethod
    def from_settings(cls, settings: Settings) -> "RpcConnections":
        commitment = CommitmentLevel(settings.solana.commitment)
        rpc_url = str(settings.solana.rpc_url)
        rpc = RpcGateway(
            AsyncClient(rpc_url, commitment=Commitment(commitment.value), timeout=settings.solana.timeout),
            commitment=commitment,
            endpoint=rpc_url,
        )

        send_rpc = None
        if settings.solana.send_endpoint:
            send_url = str(settings.solana.send_endpoint)
            send_rpc = RpcGateway(
                AsyncClient(send_url, commitment=Commitment(commitment.value), timeout=settings.solana.timeout),
                commitment=commitment,
                endpoint=send_url,
            )

        return cls(rpc, send_rpc)

    async def close(self) -> None:
        await self.rpc.close()
        if self.send_rpc is not self.rpc:
            await self.send_rpc.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


__all__ = [
    "RpcGateway",
    "RpcConnections",
    "send_error_from_rpc_exception",
    "TRANSPORT_ERRORS",
]
