from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair

MIN_CONTEXT_SLOT_MARGIN = 4


class CommitmentLevel(str, Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["CommitmentLevel"]:
        """Map an RPC confirmation status (enum, string or None) to a level."""
        if value is None:
            return None
        if isinstance(value, CommitmentLevel):
            return value
        status_str = str(value).lower()
        if "finalized" in status_str:
            return cls.FINALIZED
        if "confirmed" in status_str:
            return cls.CONFIRMED
        if "processed" in status_str:
            return cls.PROCESSED
        return None


_COMMITMENT_RANK = {
    CommitmentLevel.PROCESSED: 0,
    CommitmentLevel.CONFIRMED: 1,
    CommitmentLevel.FINALIZED: 2,
}


class ConfirmationTarget(str, Enum):
    """Commitment a submission must reach before it counts as landed."""
    FINALIZED = "finalized"
    PROCESSED_OR_BETTER = "processed_or_better"

    @property
    def minimum(self) -> CommitmentLevel:
        if self is ConfirmationTarget.FINALIZED:
            return CommitmentLevel.FINALIZED
        return CommitmentLevel.PROCESSED


@dataclass(frozen=True)
class InstructionSet:
    """Ordered instructions plus the extra keypairs that must sign them."""
    instructions: Tuple[Instruction, ...] = ()
    signers: Tuple[Keypair, ...] = ()

    @classmethod
    def of(
        cls,
        instructions: Sequence[Instruction],
        signers: Optional[Sequence[Keypair]] = None
    ) -> "InstructionSet":
        return cls(tuple(instructions), tuple(signers or ()))

    def merge(self, *others: "InstructionSet") -> "InstructionSet":
        instructions = list(self.instructions)
        signers = list(self.signers)
        for other in others:
            instructions.extend(other.instructions)
            signers.extend(other.signers)
        return InstructionSet(tuple(instructions), tuple(signers))

    def __len__(self) -> int:
        return len(self.instructions)


@dataclass(frozen=True)
class BlockhashSnapshot:
    blockhash: Hash
    last_valid_block_height: int
    context_slot: int

    @property
    def min_context_slot(self) -> int:
        return max(self.context_slot - MIN_CONTEXT_SLOT_MARGIN, 0)

    def is_expired(self, block_height: int) -> bool:
        return block_height > self.last_valid_block_height


@dataclass(frozen=True)
class SignatureStatus:
    slot: int
    confirmations: Optional[int]
    err: Any
    confirmation_status: Optional[CommitmentLevel]

    def meets(self, target: ConfirmationTarget) -> bool:
        if self.confirmation_status is None:
            return False
        return self.confirmation_status.rank >= target.minimum.rank


@dataclass
class SimulationResult:
    err: Any
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None
    accounts: List[Optional[bytes]] = field(default_factory=list)
    context_slot: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.err is None


@dataclass
class SubmissionResult:
    """Terminal outcome of one submission: a signature or a typed failure."""
    signature: Optional[str] = None
    status: Optional[CommitmentLevel] = None
    error: Optional[Exception] = None
    sends: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.signature is not None

    @classmethod
    def success(
        cls,
        signature: Union[str, Any],
        status: Optional[CommitmentLevel],
        sends: int = 1
    ) -> "SubmissionResult":
        return cls(signature=str(signature), status=status, sends=sends)

    @classmethod
    def failure(cls, error: Exception, sends: int = 0) -> "SubmissionResult":
        return cls(error=error, sends=sends)


__all__ = [
    "MIN_CONTEXT_SLOT_MARGIN",
    "CommitmentLevel",
    "ConfirmationTarget",
    "InstructionSet",
    "BlockhashSnapshot",
    "SignatureStatus",
    "SimulationResult",
    "SubmissionResult",
]
