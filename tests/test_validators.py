"""Unit tests for input validators"""
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from solana_tx_engine.exceptions import InvalidAddressError, InvalidAmountError
from solana_tx_engine.validators import (
    validate_lamports,
    validate_pubkeys,
    validate_solana_address,
    validate_transaction_signature,
)


class TestAddresses:

    def test_valid_address(self):
        address = str(Pubkey.new_unique())
        assert validate_solana_address(f"  {address} ") == address

    @pytest.mark.parametrize("address", ["", "short", "0" * 44, 123])
    def test_invalid_address(self, address):
        with pytest.raises(InvalidAddressError):
            validate_solana_address(address)

    def test_validate_pubkeys(self):
        keys = [Pubkey.new_unique(), Pubkey.new_unique()]

        assert validate_pubkeys([str(k) for k in keys]) == keys

    def test_validate_pubkeys_names_bad_index(self):
        with pytest.raises(InvalidAddressError) as exc_info:
            validate_pubkeys([str(Pubkey.new_unique()), "bad"], "lookup_tables")

        assert exc_info.value.field == "lookup_tables[1]"


class TestSignatures:

    def test_valid_signature(self):
        signature = str(Keypair().sign_message(b"payload"))

        assert validate_transaction_signature(signature) == signature

    def test_unique_signature(self):
        signature = str(Signature.new_unique())
        assert validate_transaction_signature(signature) == signature

    @pytest.mark.parametrize("value", [None, "", "not-a-signature"])
    def test_invalid(self, value):
        with pytest.raises(InvalidAddressError):
            validate_transaction_signature(value)

    def test_address_is_not_signature(self):
        with pytest.raises(InvalidAddressError):
            validate_transaction_signature(str(Pubkey.new_unique()))


class TestAmounts:

    def test_valid(self):
        assert validate_lamports(10_000) == 10_000

    @pytest.mark.parametrize("value", [-1, 1.5, "100", True])
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            validate_lamports(value)

    def test_zero_rejected_when_disallowed(self):
        with pytest.raises(InvalidAmountError):
            validate_lamports(0, "tip_lamports", allow_zero=False)
