"""
Message compilation.

Turns an ordered instruction list into a v0 message, compressing non-signer
accounts through address lookup tables, and measures the result against the
network's packet limits. Compilation is pure: the same payer, instructions,
blockhash and tables always produce the same message.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Sequence

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from .exceptions import MessageTooLargeError, TransactionBuildingError

logger = logging.getLogger(__name__)

PACKET_DATA_SIZE = 1232
MAX_ACCOUNT_KEYS = 64
SIGNATURE_LENGTH = 64

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")


def _short_vec_length(n: int) -> int:
    """Bytes taken by the compact-u16 length prefix of a vector of n items."""
    size = 1
    while n >= 0x80:
        n >>= 7
        size += 1
    return size


def count_account_keys(message: MessageV0) -> int:
    """Static keys plus every key resolved through a lookup table."""
    looked_up = sum(
        len(lookup.writable_indexes) + len(lookup.readonly_indexes)
        for lookup in message.address_table_lookups
    )
    return len(message.account_keys) + looked_up


def wire_size(message: MessageV0) -> int:
    """Serialized size of a transaction carrying this message and all its signatures."""
    num_signatures = message.header.num_required_signatures
    return (
        _short_vec_length(num_signatures)
        + num_signatures * SIGNATURE_LENGTH
        + len(to_bytes_versioned(message))
    )


@dataclass
class CompiledMessage:
    """
    A compiled v0 message with the figures used for the packet limits.

    serialized_size is the size of the signed transaction on the wire: the
    signature vector plus the versioned message. A check on the message
    alone would pass transactions the validator's 1232-byte packet limit
    then rejects. account_count includes keys resolved through lookup tables.
    """

    message: MessageV0
    payer: Pubkey
    serialized_size: int
    account_count: int

    @property
    def too_large(self) -> bool:
        return self.serialized_size > PACKET_DATA_SIZE or self.account_count >= MAX_ACCOUNT_KEYS

    @property
    def fits(self) -> bool:
        return not self.too_large

    @property
    def required_signers(self) -> list:
        return list(self.message.account_keys[:self.message.header.num_required_signatures])

    def require_fits(self) -> "CompiledMessage":
        if self.too_large:
            raise MessageTooLargeError(
                f"Transaction too large: {self.serialized_size} bytes "
                f"(max {PACKET_DATA_SIZE}), {self.account_count} account keys "
                f"(max {MAX_ACCOUNT_KEYS - 1})",
                serialized_size=self.serialized_size,
                account_count=self.account_count,
            )
        return self


def compile_message(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    blockhash: Hash,
    lookup_tables: Optional[Sequence[AddressLookupTableAccount]] = None
) -> CompiledMessage:
    try:
        message = MessageV0.try_compile(
            payer=payer,
            instructions=list(instructions),
            address_lookup_table_accounts=list(lookup_tables or []),
            recent_blockhash=blockhash,
        )
    except Exception as e:
        raise TransactionBuildingError(f"Failed to compile message: {e}") from e

    compiled = CompiledMessage(
        message=message,
        payer=payer,
        serialized_size=wire_size(message),
        account_count=count_account_keys(message),
    )

    if compiled.too_large:
        logger.warning(
            f"Compiled message exceeds limits: {compiled.serialized_size} bytes, "
            f"{compiled.account_count} keys"
        )

    return compiled


def set_compute_unit_limit_ix(units: int) -> Instruction:
    data = bytes([0x02]) + struct.pack("<I", units)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )


def set_compute_unit_price_ix(micro_lamports: int) -> Instruction:
    data = bytes([0x03]) + struct.pack("<Q", micro_lamports)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )


def request_heap_frame_ix(bytes_size: int) -> Instruction:
    data = bytes([0x01]) + struct.pack("<I", bytes_size)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )


def tip_ix(payer: Pubkey, lamports: int, tip_account: Pubkey) -> Instruction:
    return transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=tip_account,
            lamports=lamports
        )
    )


__all__ = [
    "PACKET_DATA_SIZE",
    "MAX_ACCOUNT_KEYS",
    "COMPUTE_BUDGET_PROGRAM_ID",
    "CompiledMessage",
    "compile_message",
    "count_account_keys",
    "wire_size",
    "set_compute_unit_limit_ix",
    "set_compute_unit_price_ix",
    "request_heap_frame_ix",
    "tip_ix",
]
