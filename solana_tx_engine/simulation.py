import logging
from typing import Optional, Sequence

from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .classifier import describe_instruction_error
from .exceptions import SendTransactionError
from .rpc import RpcGateway
from .types import SimulationResult

logger = logging.getLogger(__name__)


class Simulator:
    """Executes transactions against current state without ever sending them."""

    def __init__(self, gateway: RpcGateway):
        self.gateway = gateway

    async def simulate(
        self,
        tx: VersionedTransaction,
        accounts_to_inspect: Sequence[Pubkey] = (),
        min_context_slot: Optional[int] = None
    ) -> SimulationResult:
        result = await self.gateway.simulate(tx, accounts_to_inspect, min_context_slot)

        logger.debug(f"Simulation consumed {result.units_consumed} compute units")
        if result.logs:
            logger.debug("Simulation logs:\n" + "\n".join(result.logs))

        return result

    @staticmethod
    def require_success(result: SimulationResult) -> SimulationResult:
        if result.success:
            return result

        description, _ = describe_instruction_error(result.err)
        raise SendTransactionError(
            f"Transaction simulation failed: {description}",
            logs=result.logs,
            err=result.err,
        )

    async def simulate_or_raise(
        self,
        tx: VersionedTransaction,
        accounts_to_inspect: Sequence[Pubkey] = (),
        min_context_slot: Optional[int] = None
    ) -> SimulationResult:
        result = await self.simulate(tx, accounts_to_inspect, min_context_slot)
        return self.require_success(result)


__all__ = ["Simulator"]
