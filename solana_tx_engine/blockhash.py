import logging

from .rpc import RpcGateway
from .types import BlockhashSnapshot

logger = logging.getLogger(__name__)


class BlockhashOracle:
    """
    Fetches a fresh blockhash snapshot for every submission attempt.

    Snapshots are never cached across submissions: the block-height deadline
    of a transaction is derived from the snapshot it was compiled against.
    """

    def __init__(self, gateway: RpcGateway):
        self.gateway = gateway

    async def fetch_snapshot(self) -> BlockhashSnapshot:
        snapshot = await self.gateway.get_latest_blockhash()
        logger.debug(
            f"Blockhash {snapshot.blockhash} valid until height "
            f"{snapshot.last_valid_block_height} (slot {snapshot.context_slot})"
        )
        return snapshot


__all__ = ["BlockhashOracle"]
