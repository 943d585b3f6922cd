import logging
from typing import Dict, Protocol, Sequence, runtime_checkable

from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .exceptions import FallthroughError, TransactionBuildingError

logger = logging.getLogger(__name__)


@runtime_checkable
class Wallet(Protocol):
    """Anything that holds the fee payer key and can sign for it."""

    @property
    def pubkey(self) -> Pubkey:
        ...

    async def sign_transaction(self, tx: VersionedTransaction) -> VersionedTransaction:
        ...


def required_signers(message: MessageV0) -> list:
    return list(message.account_keys[:message.header.num_required_signatures])


def missing_signers(tx: VersionedTransaction) -> list:
    default = Signature.default()
    return [
        key
        for key, signature in zip(required_signers(tx.message), tx.signatures)
        if signature == default
    ]


def _fill_slots(
    tx: VersionedTransaction,
    keypairs: Sequence[Keypair]
) -> VersionedTransaction:
    signers = required_signers(tx.message)
    message_bytes = to_bytes_versioned(tx.message)
    signatures = list(tx.signatures)

    for keypair in keypairs:
        pubkey = keypair.pubkey()
        if pubkey not in signers:
            continue
        signatures[signers.index(pubkey)] = keypair.sign_message(message_bytes)

    return VersionedTransaction.populate(tx.message, signatures)


class KeypairWallet:
    """Wallet backed by an in-memory keypair."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign_transaction(self, tx: VersionedTransaction) -> VersionedTransaction:
        return _fill_slots(tx, [self.keypair])


def partially_sign(
    message: MessageV0,
    local_signers: Sequence[Keypair],
    payer: Pubkey
) -> VersionedTransaction:
    """
    Sign with every locally held key and leave the payer slot empty.

    The resulting signature vector has exactly one slot per required signer,
    in the message's order. A required signer that is neither local nor the
    payer cannot be satisfied, so compilation is rejected.
    """
    local: Dict[Pubkey, Keypair] = {kp.pubkey(): kp for kp in local_signers}
    message_bytes = to_bytes_versioned(message)
    signatures = []

    for key in required_signers(message):
        if key in local:
            signatures.append(local[key].sign_message(message_bytes))
        elif key == payer:
            signatures.append(Signature.default())
        else:
            raise TransactionBuildingError(
                f"Missing signer for required account {key}",
                context={"payer": str(payer)},
            )

    return VersionedTransaction.populate(message, signatures)


async def sign_with_wallet(tx: VersionedTransaction, wallet: Wallet) -> VersionedTransaction:
    try:
        signed = await wallet.sign_transaction(tx)
    except Exception as e:
        logger.error(f"Wallet failed to sign transaction: {e}")
        raise FallthroughError(f"Wallet failed to sign transaction: {e}") from e

    expected = tx.message.header.num_required_signatures
    if len(signed.signatures) != expected:
        raise TransactionBuildingError(
            f"Signed transaction has {len(signed.signatures)} signatures, expected {expected}"
        )

    missing = missing_signers(signed)
    if missing:
        raise TransactionBuildingError(
            f"Transaction is missing signatures for {', '.join(str(k) for k in missing)}"
        )

    return signed


__all__ = [
    "Wallet",
    "KeypairWallet",
    "partially_sign",
    "sign_with_wallet",
    "required_signers",
    "missing_signers",
]
