import asyncio
import logging
from typing import Optional

from solders.signature import Signature

from .classifier import ErrorClassifier
from .exceptions import ConfirmationTimeoutError
from .rpc import RpcGateway
from .types import BlockhashSnapshot, ConfirmationTarget, SignatureStatus

logger = logging.getLogger(__name__)

STATUS_POLL_ATTEMPTS = 5
FINALIZED_POLL_INTERVAL = 0.2
PROCESSED_POLL_INTERVAL = 0.4


def default_interval(target: ConfirmationTarget) -> float:
    if target is ConfirmationTarget.FINALIZED:
        return FINALIZED_POLL_INTERVAL
    return PROCESSED_POLL_INTERVAL


def meets_target(status: Optional[SignatureStatus], target: ConfirmationTarget) -> bool:
    return status is not None and status.err is None and status.meets(target)


class SignaturePoller:
    """
    Watches a signature until it reaches the target commitment.

    Only ever asks the node for recent statuses; the block-height check is the
    sole expiry signal, wall-clock time is never consulted.
    """

    def __init__(
        self,
        gateway: RpcGateway,
        classifier: Optional[ErrorClassifier] = None,
        attempts: int = STATUS_POLL_ATTEMPTS,
        interval: Optional[float] = None
    ):
        self.gateway = gateway
        self.classifier = classifier or ErrorClassifier()
        self.attempts = attempts
        self.interval = interval

    def _interval_for(self, target: ConfirmationTarget) -> float:
        return self.interval if self.interval is not None else default_interval(target)

    async def poll_once(self, signature: Signature) -> Optional[SignatureStatus]:
        status = await self.gateway.get_signature_status(signature)

        if status is not None and status.err is not None:
            raise self.classifier.classify_status_error(status.err, signature=str(signature))

        return status

    async def poll_window(
        self,
        signature: Signature,
        target: ConfirmationTarget
    ) -> Optional[SignatureStatus]:
        """Up to `attempts` status queries; returns early once the target is met."""
        interval = self._interval_for(target)
        status = None

        for attempt in range(self.attempts):
            status = await self.poll_once(signature)
            if meets_target(status, target):
                logger.debug(f"Signature {signature} reached {status.confirmation_status} on attempt {attempt + 1}")
                return status
            if attempt < self.attempts - 1:
                await asyncio.sleep(interval)

        return status

    async def poll_until(
        self,
        signature: Signature,
        target: ConfirmationTarget,
        snapshot: BlockhashSnapshot
    ) -> SignatureStatus:
        interval = self._interval_for(target)

        while True:
            status = await self.poll_once(signature)
            if meets_target(status, target):
                logger.info(f"Transaction {signature} confirmed ({status.confirmation_status.value})")
                return status

            block_height = await self.gateway.get_block_height()
            if snapshot.is_expired(block_height):
                raise ConfirmationTimeoutError(
                    f"Transaction {signature} was not confirmed before block height "
                    f"{snapshot.last_valid_block_height}",
                    signature=str(signature),
                    last_valid_block_height=snapshot.last_valid_block_height,
                    block_height=block_height,
                )

            await asyncio.sleep(interval)


__all__ = [
    "STATUS_POLL_ATTEMPTS",
    "SignaturePoller",
    "meets_target",
    "default_interval",
]
