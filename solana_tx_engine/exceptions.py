"""
Exception hierarchy for the transaction engine.

Every failure a caller can observe is one of the typed kinds below. Each
exception includes:
- Unique error code for logging and debugging
- Descriptive message
- Optional context dictionary for additional debugging info
- is_recoverable flag indicating if the submission can be attempted again
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ProcessTransactionErrorType(str, Enum):
    """Failure kinds surfaced by the submission pipeline."""
    TRANSACTION_BUILDING = "TransactionBuildingError"
    SIMULATION = "SimulationError"
    TIMEOUT = "TimeoutError"
    FALLTHROUGH = "FallthroughError"


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class TxEngineError(Exception):
    """
    Base exception for all transaction engine errors.

    Attributes:
        message: Human-readable error description
        error_code: Unique identifier for the error type (e.g., "TX_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether a fresh submission attempt may succeed
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(TxEngineError):
    """Error in engine configuration or settings."""
    error_code: str = "CONFIG_001"


# =============================================================================
# SUBMISSION EXCEPTIONS
# =============================================================================

@dataclass
class ProcessTransactionError(TxEngineError):
    """
    Base exception for a failed submission.

    `message` is the user-facing description. When the failure came from
    program execution it is derived from the on-chain logs, which are kept
    verbatim in `logs`.
    """
    error_code: str = "TX_000"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.FALLTHROUGH
    logs: list[str] = field(default_factory=list)
    signature: Optional[str] = None

    @property
    def description(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["logs"] = list(self.logs)
        data["signature"] = self.signature
        return data


@dataclass
class TransactionBuildingError(ProcessTransactionError):
    """Compilation or signing preparation failed before any network send."""
    error_code: str = "TX_001"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.TRANSACTION_BUILDING


@dataclass
class MessageTooLargeError(TransactionBuildingError):
    """Compiled message exceeds the packet size or account key limit."""
    error_code: str = "TX_002"
    serialized_size: Optional[int] = None
    account_count: Optional[int] = None


@dataclass
class SimulationError(ProcessTransactionError):
    """A simulation or preflight check reported a program-level failure."""
    error_code: str = "TX_003"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.SIMULATION
    program_id: Optional[str] = None
    program_error_code: Optional[int] = None


@dataclass
class ConfirmationTimeoutError(ProcessTransactionError):
    """The blockhash's valid block height passed before confirmation was observed."""
    error_code: str = "TX_004"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.TIMEOUT
    is_recoverable: bool = True
    last_valid_block_height: Optional[int] = None
    block_height: Optional[int] = None


@dataclass
class TransactionNotConfirmedError(ProcessTransactionError):
    """Neither the relay nor the resend loop saw the transaction land in time."""
    error_code: str = "TX_005"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.TIMEOUT
    is_recoverable: bool = True


@dataclass
class FallthroughError(ProcessTransactionError):
    """Any other failure: wallet errors, failed on-chain execution, unexpected exceptions."""
    error_code: str = "TX_006"
    kind: ProcessTransactionErrorType = ProcessTransactionErrorType.FALLTHROUGH


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

@dataclass
class NetworkError(TxEngineError):
    """RPC endpoint unreachable, timed out or returned garbage."""
    error_code: str = "NET_000"
    is_recoverable: bool = True
    endpoint: Optional[str] = None
    operation: Optional[str] = None


@dataclass
class RPCResponseError(NetworkError):
    """RPC returned a malformed or unexpected response."""
    error_code: str = "NET_001"
    rpc_error_code: Optional[int] = None


@dataclass
class BlockhashNotFoundError(NetworkError):
    """Recent blockhash not available."""
    error_code: str = "NET_002"


@dataclass
class RelayError(NetworkError):
    """The out-of-band relay rejected or failed to accept the transaction."""
    error_code: str = "NET_003"
    status_code: Optional[int] = None


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

@dataclass
class ValidationError(TxEngineError):
    """Base exception for validation errors."""
    error_code: str = "VAL_000"
    field: Optional[str] = None


@dataclass
class InvalidAddressError(ValidationError):
    """Invalid base58 address or signature."""
    error_code: str = "VAL_001"
    invalid_address: Optional[str] = None


@dataclass
class InvalidAmountError(ValidationError):
    """Invalid lamport amount."""
    error_code: str = "VAL_002"
    amount: Optional[str] = None


# =============================================================================
# RAW SEND FAILURES
# =============================================================================

class SendTransactionError(Exception):
    """
    Raw failure reported by a send or simulate call.

    Carries the node's message and program logs to the ErrorClassifier, which
    turns it into a typed error. It never reaches callers of the engine.
    """

    def __init__(self, message: str, logs: Optional[list[str]] = None, err: Any = None):
        super().__init__(message)
        self.message = message
        self.logs = list(logs) if logs else []
        self.err = err


__all__ = [
    "ProcessTransactionErrorType",
    "TxEngineError", "ConfigurationError",
    "ProcessTransactionError", "TransactionBuildingError", "MessageTooLargeError",
    "SimulationError", "ConfirmationTimeoutError", "TransactionNotConfirmedError",
    "FallthroughError",
    "NetworkError", "RPCResponseError", "BlockhashNotFoundError", "RelayError",
    "ValidationError", "InvalidAddressError", "InvalidAmountError",
    "SendTransactionError",
]
