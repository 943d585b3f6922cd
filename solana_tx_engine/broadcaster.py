"""
Broadcast strategies.

All strategies take an already signed transaction plus the blockhash snapshot
it was compiled against, push it to the network, and wait for the requested
commitment through the shared SignaturePoller. On success they return a
SubmissionResult; failures are raised and left to the engine to classify.

- SingleShotBroadcaster: one send, node-side retries, then confirmation.
- SpamBroadcaster: resend the same bytes until confirmed or the blockhash
  expires.
- RelayBroadcaster: hand the transaction to a block-engine relay, keep
  resending it to the primary node until it lands.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .config import BroadcastMode, SubmissionSettings
from .exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    InvalidAddressError,
    RelayError,
    TransactionNotConfirmedError,
)
from .poller import SignaturePoller, meets_target
from .relay import RelayClient
from .rpc import RpcConnections, RpcGateway
from .simulation import Simulator
from .types import BlockhashSnapshot, CommitmentLevel, ConfirmationTarget, SubmissionResult
from .validators import validate_transaction_signature

logger = logging.getLogger(__name__)

RELAY_POLL_INTERVAL = 0.5


class Broadcaster(ABC):

    @abstractmethod
    async def broadcast(
        self,
        tx: VersionedTransaction,
        snapshot: BlockhashSnapshot,
        target: ConfirmationTarget
    ) -> SubmissionResult:
        pass


class SingleShotBroadcaster(Broadcaster):

    def __init__(
        self,
        gateway: RpcGateway,
        poller: SignaturePoller,
        skip_preflight: bool = False,
        max_retries: Optional[int] = None,
        preflight_commitment: CommitmentLevel = CommitmentLevel.PROCESSED
    ):
        self.gateway = gateway
        self.poller = poller
        self.skip_preflight = skip_preflight
        self.max_retries = max_retries
        self.preflight_commitment = preflight_commitment

    async def broadcast(
        self,
        tx: VersionedTransaction,
        snapshot: BlockhashSnapshot,
        target: ConfirmationTarget
    ) -> SubmissionResult:
        signature = await self.gateway.send_raw_transaction(
            bytes(tx),
            skip_preflight=self.skip_preflight,
            max_retries=self.max_retries,
            preflight_commitment=self.preflight_commitment,
        )
        logger.info(f"Transaction sent: {signature}")

        status = await self.poller.poll_until(signature, target, snapshot)
        return SubmissionResult.success(signature, status.confirmation_status, sends=1)


class SpamBroadcaster(Broadcaster):
    """
    Resends identical signed bytes until the signature reaches the target.

    Each round is: send, a bounded status window, a block-height check, then
    exit if the window saw the target. Expiry is checked before the exit, so a
    transaction first observed as confirmed after its blockhash expired is
    reported as a timeout.
    """

    def __init__(
        self,
        send_gateway: RpcGateway,
        gateway: RpcGateway,
        poller: SignaturePoller,
        simulator: Optional[Simulator] = None,
        precheck: bool = False
    ):
        self.send_gateway = send_gateway
        self.gateway = gateway
        self.poller = poller
        self.simulator = simulator
        self.precheck = precheck

    async def broadcast(
        self,
        tx: VersionedTransaction,
        snapshot: BlockhashSnapshot,
        target: ConfirmationTarget
    ) -> SubmissionResult:
        if self.precheck and self.simulator is not None:
            await self.simulator.simulate_or_raise(tx, min_context_slot=snapshot.min_context_slot)

        raw = bytes(tx)
        sends = 0

        while True:
            signature = await self.send_gateway.send_raw_transaction(
                raw,
                skip_preflight=True,
                max_retries=0,
            )
            sends += 1
            logger.debug(f"Sent {signature} (attempt {sends})")

            status = await self.poller.poll_window(signature, target)

            block_height = await self.gateway.get_block_height()
            if snapshot.is_expired(block_height):
                raise ConfirmationTimeoutError(
                    "Transaction was not confirmed within the allotted time",
                    signature=str(signature),
                    last_valid_block_height=snapshot.last_valid_block_height,
                    block_height=block_height,
                    context={
                        "sends": sends,
                        "observed_status": status.confirmation_status.value
                        if status is not None and status.confirmation_status else None,
                    },
                )

            if meets_target(status, target):
                logger.info(f"Transaction {signature} confirmed after {sends} sends")
                return SubmissionResult.success(signature, status.confirmation_status, sends=sends)


class RelayBroadcaster(Broadcaster):

    def __init__(
        self,
        relay: RelayClient,
        gateway: RpcGateway,
        poller: SignaturePoller,
        interval: float = RELAY_POLL_INTERVAL
    ):
        self.relay = relay
        self.gateway = gateway
        self.poller = poller
        self.interval = interval

    async def broadcast(
        self,
        tx: VersionedTransaction,
        snapshot: BlockhashSnapshot,
        target: ConfirmationTarget
    ) -> SubmissionResult:
        raw = bytes(tx)
        relay_id = await self.relay.send_transaction(tx)

        try:
            signature = Signature.from_string(validate_transaction_signature(relay_id))
        except InvalidAddressError as e:
            raise RelayError(
                f"Relay returned an invalid signature: {relay_id}",
                endpoint=self.relay.transactions_url,
                operation="sendTransaction",
            ) from e

        sends = 1
        block_height = await self.gateway.get_block_height()

        while block_height < snapshot.last_valid_block_height:
            await self.gateway.send_raw_transaction(raw, skip_preflight=True, max_retries=0)
            sends += 1

            status = await self.poller.poll_once(signature)

            block_height = await self.gateway.get_block_height()

            if meets_target(status, target):
                logger.info(f"Relay transaction {signature} reached {status.confirmation_status.value}")
                return SubmissionResult.success(signature, status.confirmation_status, sends=sends)

            await asyncio.sleep(self.interval)

        raise TransactionNotConfirmedError(
            f"Transaction {relay_id} was not confirmed",
            signature=relay_id,
            context={"sends": sends, "block_height": block_height},
        )


def build_broadcaster(
    mode: BroadcastMode,
    connections: RpcConnections,
    poller: SignaturePoller,
    simulator: Optional[Simulator] = None,
    relay: Optional[RelayClient] = None,
    settings: Optional[SubmissionSettings] = None
) -> Broadcaster:
    settings = settings or SubmissionSettings()

    if mode == BroadcastMode.SINGLE_SHOT:
        return SingleShotBroadcaster(
            connections.rpc,
            poller,
            skip_preflight=settings.skip_preflight,
            max_retries=settings.max_retries,
            preflight_commitment=CommitmentLevel(settings.preflight_commitment),
        )

    if mode == BroadcastMode.SPAM:
        return SpamBroadcaster(
            connections.send_rpc,
            connections.rpc,
            poller,
            simulator=simulator,
            precheck=settings.precheck_in_spam,
        )

    if mode == BroadcastMode.RELAY:
        if relay is None:
            raise ConfigurationError("Relay mode requires a RelayClient")
        return RelayBroadcaster(relay, connections.rpc, poller, interval=settings.relay_poll_interval)

    raise ConfigurationError(f"Unknown broadcast mode: {mode}")


__all__ = [
    "Broadcaster",
    "SingleShotBroadcaster",
    "SpamBroadcaster",
    "RelayBroadcaster",
    "build_broadcaster",
]
