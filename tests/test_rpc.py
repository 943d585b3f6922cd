"""Unit tests for RpcGateway"""
import struct
from types import SimpleNamespace

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.pubkey import Pubkey

from solana_tx_engine.exceptions import (
    BlockhashNotFoundError,
    NetworkError,
    RPCResponseError,
    SendTransactionError,
)
from solana_tx_engine.rpc import RpcConnections, RpcGateway
from solana_tx_engine.types import CommitmentLevel

ENDPOINT = "http://node.test:8899"


def response(value, slot=100):
    return SimpleNamespace(value=value, context=SimpleNamespace(slot=slot))


def lookup_table_data(addresses):
    meta = struct.pack("<IQQB", 1, 2**64 - 1, 0, 0)
    authority = b"\x01" + bytes(Pubkey.new_unique())
    return meta + authority + b"\x00\x00" + b"".join(bytes(a) for a in addresses)


@pytest.fixture
def client():
    client = MagicMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def gateway(client):
    return RpcGateway(client, endpoint=ENDPOINT)


class TestBlockhash:

    @pytest.mark.asyncio
    async def test_snapshot(self, client, gateway):
        blockhash = Hash.new_unique()
        client.get_latest_blockhash = AsyncMock(return_value=response(
            SimpleNamespace(blockhash=blockhash, last_valid_block_height=2_150),
            slot=9_000,
        ))

        snapshot = await gateway.get_latest_blockhash()

        assert snapshot.blockhash == blockhash
        assert snapshot.last_valid_block_height == 2_150
        assert snapshot.context_slot == 9_000
        assert snapshot.min_context_slot == 8_996

    @pytest.mark.asyncio
    async def test_missing_value(self, client, gateway):
        client.get_latest_blockhash = AsyncMock(return_value=response(None))

        with pytest.raises(BlockhashNotFoundError):
            await gateway.get_latest_blockhash()

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, gateway):
        client.get_latest_blockhash = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(NetworkError) as exc_info:
            await gateway.get_latest_blockhash()

        assert exc_info.value.endpoint == ENDPOINT
        assert exc_info.value.operation == "getLatestBlockhash"
        assert exc_info.value.is_recoverable

    @pytest.mark.asyncio
    async def test_error_response(self, client, gateway):
        client.get_latest_blockhash = AsyncMock(
            return_value=SimpleNamespace(code=-32005, message="Node is behind")
        )

        with pytest.raises(RPCResponseError) as exc_info:
            await gateway.get_latest_blockhash()

        assert exc_info.value.rpc_error_code == -32005


class TestSignatureStatus:

    @pytest.mark.asyncio
    async def test_parses_status(self, client, gateway):
        raw = SimpleNamespace(
            slot=321,
            confirmations=None,
            err=None,
            confirmation_status="TransactionConfirmationStatus.Finalized",
        )
        client.get_signature_statuses = AsyncMock(return_value=response([raw]))

        result = await gateway.get_signature_status("sig")

        assert result.confirmation_status == CommitmentLevel.FINALIZED
        assert result.slot == 321
        assert client.get_signature_statuses.call_args.kwargs["search_transaction_history"] is False

    @pytest.mark.asyncio
    async def test_unknown_signature(self, client, gateway):
        client.get_signature_statuses = AsyncMock(return_value=response([None]))
        assert await gateway.get_signature_status("sig") is None

    @pytest.mark.asyncio
    async def test_block_height(self, client, gateway):
        client.get_block_height = AsyncMock(return_value=response(1_234))
        assert await gateway.get_block_height() == 1_234


class TestSend:

    @pytest.mark.asyncio
    async def test_send_options(self, client, gateway, signed_tx):
        client.send_raw_transaction = AsyncMock(return_value=response(signed_tx.signatures[0]))

        signature = await gateway.send_raw_transaction(bytes(signed_tx), skip_preflight=True, max_retries=0)

        assert signature == signed_tx.signatures[0]
        opts = client.send_raw_transaction.call_args.kwargs["opts"]
        assert opts.skip_preflight is True
        assert opts.skip_confirmation is True
        assert opts.max_retries == 0

    @pytest.mark.asyncio
    async def test_preflight_failure_carries_logs(self, client, gateway, signed_tx):
        rpc_error = SimpleNamespace(
            message="Transaction simulation failed: Error processing Instruction 0",
            data=SimpleNamespace(logs=["Program log: insufficient funds"], err="InsufficientFundsForRent"),
        )
        client.send_raw_transaction = AsyncMock(side_effect=RPCException(rpc_error))

        with pytest.raises(SendTransactionError) as exc_info:
            await gateway.send_raw_transaction(bytes(signed_tx))

        assert exc_info.value.message == rpc_error.message
        assert exc_info.value.logs == ["Program log: insufficient funds"]
        assert exc_info.value.err == "InsufficientFundsForRent"


class TestSimulate:

    @pytest.mark.asyncio
    async def test_simulation_result(self, client, gateway, signed_tx):
        value = SimpleNamespace(
            err=None,
            logs=["Program log: ok"],
            units_consumed=2_345,
            accounts=[SimpleNamespace(data=b"\x05\x06"), None],
        )
        client._provider.make_request = AsyncMock(return_value=response(value, slot=77))

        result = await gateway.simulate(signed_tx, [Pubkey.new_unique(), Pubkey.new_unique()], 73)

        assert result.success
        assert result.units_consumed == 2_345
        assert result.accounts == [b"\x05\x06", None]
        assert result.context_slot == 77
        client._provider.make_request.assert_awaited_once()


class TestLookupTables:

    @pytest.mark.asyncio
    async def test_missing_tables_skipped(self, client, gateway):
        present, missing = Pubkey.new_unique(), Pubkey.new_unique()
        addresses = [Pubkey.new_unique() for _ in range(3)]
        client.get_multiple_accounts = AsyncMock(return_value=response([
            SimpleNamespace(data=lookup_table_data(addresses)),
            None,
        ]))

        tables = await gateway.get_address_lookup_tables([present, missing])

        assert [t.key for t in tables] == [present]
        assert list(tables[0].addresses) == addresses

    @pytest.mark.asyncio
    async def test_no_addresses(self, client, gateway):
        client.get_multiple_accounts = AsyncMock()

        assert await gateway.get_address_lookup_tables([]) == []
        client.get_multiple_accounts.assert_not_awaited()


class TestConnections:

    @pytest.mark.asyncio
    async def test_send_rpc_defaults_to_primary(self, gateway, client):
        async with RpcConnections(gateway) as connections:
            assert connections.send_rpc is gateway

        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closes_both(self, gateway, client):
        send_client = MagicMock()
        send_client.close = AsyncMock()
        connections = RpcConnections(gateway, RpcGateway(send_client, endpoint="http://send.test"))

        await connections.close()

        client.close.assert_awaited_once()
        send_client.close.assert_awaited_once()
