from typing import Any, Iterable, List

import base58
from solders.pubkey import Pubkey

from .exceptions import InvalidAddressError, InvalidAmountError

SOLANA_ADDRESS_LENGTH = 32
SOLANA_SIGNATURE_LENGTH = 64

MAX_LAMPORTS = 2**64 - 1

def validate_solana_address(address: Any, field_name: str = "address") -> str:
    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            invalid_address=str(address)[:50],
            field=field_name
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError("Address cannot be empty", invalid_address="", field=field_name)

    if len(address) < 32 or len(address) > 44:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            invalid_address=address, field=field_name
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {str(e)}",
            invalid_address=address, field=field_name
        ) from e

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            invalid_address=address, field=field_name
        )

    return address

def validate_transaction_signature(signature: Any, field_name: str = "signature") -> str:
    if not isinstance(signature, str):
        raise InvalidAddressError(
            f"Signature must be a string, got {type(signature).__name__}",
            invalid_address=str(signature)[:50], field=field_name
        )

    signature = signature.strip()

    if not signature:
        raise InvalidAddressError("Signature cannot be empty", invalid_address="", field=field_name)

    if len(signature) < 80 or len(signature) > 90:
        raise InvalidAddressError(
            f"Invalid signature length: {len(signature)} characters",
            invalid_address=signature, field=field_name
        )

    try:
        decoded = base58.b58decode(signature)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding in signature: {str(e)}",
            invalid_address=signature, field=field_name
        ) from e

    if len(decoded) != SOLANA_SIGNATURE_LENGTH:
        raise InvalidAddressError(
            f"Decoded signature has wrong length: {len(decoded)} bytes (expected {SOLANA_SIGNATURE_LENGTH})",
            invalid_address=signature, field=field_name
        )

    return signature

def validate_pubkeys(addresses: Iterable[Any], field_name: str = "addresses") -> List[Pubkey]:
    return [
        Pubkey.from_string(validate_solana_address(address, f"{field_name}[{i}]"))
        for i, address in enumerate(addresses)
    ]

def validate_lamports(
    lamports: Any,
    field_name: str = "lamports",
    min_lamports: int = 0,
    max_lamports: int = MAX_LAMPORTS,
    allow_zero: bool = True
) -> int:
    if isinstance(lamports, bool) or not isinstance(lamports, int):
        raise InvalidAmountError(
            f"Lamports must be an integer, got {type(lamports).__name__}",
            amount=str(lamports), field=field_name
        )

    if lamports < 0:
        raise InvalidAmountError("Lamports cannot be negative",
                                 amount=str(lamports), field=field_name)

    if lamports == 0 and not allow_zero:
        raise InvalidAmountError("Lamports cannot be zero", amount="0", field=field_name)

    if lamports < min_lamports:
        raise InvalidAmountError(
            f"Lamports {lamports} is below minimum {min_lamports}",
            amount=str(lamports), field=field_name
        )

    if lamports > max_lamports:
        raise InvalidAmountError(
            f"Lamports {lamports} exceeds maximum {max_lamports}",
            amount=str(lamports), field=field_name
        )

    return lamports

__all__ = [
    "validate_solana_address",
    "validate_transaction_signature",
    "validate_pubkeys",
    "validate_lamports",
]
