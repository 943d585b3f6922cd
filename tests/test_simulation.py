"""Unit tests for the Simulator"""
import pytest
from solders.pubkey import Pubkey

from solana_tx_engine.exceptions import SendTransactionError
from solana_tx_engine.simulation import Simulator
from solana_tx_engine.types import SimulationResult

from conftest import FakeNode


class TestSimulator:

    @pytest.mark.asyncio
    async def test_passes_accounts_and_context_slot(self, signed_tx, snapshot):
        account = Pubkey.new_unique()
        node = FakeNode(simulation=SimulationResult(err=None, units_consumed=4_200, accounts=[b"\x01\x02"]))

        result = await Simulator(node).simulate(signed_tx, [account], snapshot.min_context_slot)

        assert result.success
        assert result.units_consumed == 4_200
        assert result.accounts == [b"\x01\x02"]
        assert node.simulations[0]["accounts"] == [account]
        assert node.simulations[0]["min_context_slot"] == snapshot.context_slot - 4
        assert node.sends == 0

    def test_require_success_passes_result_through(self):
        result = SimulationResult(err=None)
        assert Simulator.require_success(result) is result

    def test_require_success_raises_with_logs(self):
        logs = ["Program log: Error: insufficient funds"]
        result = SimulationResult(err={"InstructionError": [1, {"Custom": 1}]}, logs=logs)

        with pytest.raises(SendTransactionError) as exc_info:
            Simulator.require_success(result)

        assert exc_info.value.logs == logs
        assert exc_info.value.err == result.err
        assert "Instruction 1 failed with custom error 1" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_simulate_or_raise(self, signed_tx):
        node = FakeNode(simulation=SimulationResult(err="AccountNotFound"))

        with pytest.raises(SendTransactionError):
            await Simulator(node).simulate_or_raise(signed_tx)
