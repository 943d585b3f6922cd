"""
Solana Transaction Engine

Builds, signs, broadcasts and confirms versioned Solana transactions, with
address lookup table compression, spam and relay broadcast modes, and typed
errors decoded from program logs.
"""

__version__ = "1.0.0"

from .config import BroadcastMode, Settings, get_settings
from .engine import ProcessOptions, TransactionEngine
from .exceptions import (
    ConfirmationTimeoutError,
    FallthroughError,
    MessageTooLargeError,
    NetworkError,
    ProcessTransactionError,
    ProcessTransactionErrorType,
    SimulationError,
    TransactionBuildingError,
    TransactionNotConfirmedError,
)
from .logger import setup_logging
from .signer import KeypairWallet, Wallet
from .types import ConfirmationTarget, InstructionSet, SubmissionResult

__all__ = [
    "BroadcastMode",
    "Settings",
    "get_settings",
    "ProcessOptions",
    "TransactionEngine",
    "ConfirmationTimeoutError",
    "FallthroughError",
    "MessageTooLargeError",
    "NetworkError",
    "ProcessTransactionError",
    "ProcessTransactionErrorType",
    "SimulationError",
    "TransactionBuildingError",
    "TransactionNotConfirmedError",
    "KeypairWallet",
    "Wallet",
    "ConfirmationTarget",
    "InstructionSet",
    "SubmissionResult",
    "setup_logging",
]
