"""
Error classification.

The only place where raw node output (program logs, structured instruction
errors, RPC exceptions) is turned into the typed errors callers see.
Classification is a pure function of its input: the same logs always yield the
same description.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from solana.rpc.core import RPCException

from .exceptions import (
    FallthroughError,
    NetworkError,
    ProcessTransactionError,
    SendTransactionError,
    SimulationError,
    TxEngineError,
)
from .rpc import send_error_from_rpc_exception

logger = logging.getLogger(__name__)

INVOKE_RE = re.compile(r"^Program (\w+) invoke \[(\d+)\]")
SUCCESS_RE = re.compile(r"^Program (\w+) success")
FAILED_RE = re.compile(r"^Program (\w+) failed: (.*)$")
CUSTOM_ERROR_RE = re.compile(r"custom program error: (0x[0-9a-fA-F]+|\d+)")
ANCHOR_ERROR_RE = re.compile(
    r"Error Code: (\w+)\. Error Number: (\d+)\. Error Message: (.*?)\.?$"
)

# Anchor framework errors, shared by every Anchor program.
ANCHOR_FRAMEWORK_ERRORS: Dict[int, Tuple[str, str]] = {
    100: ("InstructionMissing", "8 byte instruction identifier not provided"),
    101: ("InstructionFallbackNotFound", "Fallback functions are not supported"),
    102: ("InstructionDidNotDeserialize", "The program could not deserialize the given instruction"),
    103: ("InstructionDidNotSerialize", "The program could not serialize the given instruction"),
    2000: ("ConstraintMut", "A mut constraint was violated"),
    2001: ("ConstraintHasOne", "A has one constraint was violated"),
    2002: ("ConstraintSigner", "A signer constraint was violated"),
    2003: ("ConstraintRaw", "A raw constraint was violated"),
    2004: ("ConstraintOwner", "An owner constraint was violated"),
    2005: ("ConstraintRentExempt", "A rent exemption constraint was violated"),
    2006: ("ConstraintSeeds", "A seeds constraint was violated"),
    2007: ("ConstraintExecutable", "An executable constraint was violated"),
    2009: ("ConstraintAssociated", "An associated constraint was violated"),
    2011: ("ConstraintClose", "A close constraint was violated"),
    2012: ("ConstraintAddress", "An address constraint was violated"),
    2014: ("ConstraintTokenMint", "A token mint constraint was violated"),
    2015: ("ConstraintTokenOwner", "A token owner constraint was violated"),
    3000: ("AccountDiscriminatorAlreadySet", "The account discriminator was already set on this account"),
    3001: ("AccountDiscriminatorNotFound", "No 8 byte discriminator was found on the account"),
    3002: ("AccountDiscriminatorMismatch", "8 byte discriminator did not match what was expected"),
    3003: ("AccountDidNotDeserialize", "Failed to deserialize the account"),
    3004: ("AccountDidNotSerialize", "Failed to serialize the account"),
    3005: ("AccountNotEnoughKeys", "Not enough account keys given to the instruction"),
    3006: ("AccountNotMutable", "The given account is not mutable"),
    3007: ("AccountOwnedByWrongProgram", "The given account is owned by a different program than expected"),
    3008: ("InvalidProgramId", "Program ID was not as expected"),
    3009: ("InvalidProgramExecutable", "Program account is not executable"),
    3010: ("AccountNotSigner", "The given account did not sign"),
    3011: ("AccountNotSystemOwned", "The given account is not owned by the system program"),
    3012: ("AccountNotInitialized", "The program expected this account to be already initialized"),
    3013: ("AccountNotProgramData", "The given account is not a program data account"),
    3014: ("AccountNotAssociatedTokenAccount", "The given account is not the associated token account"),
    3015: ("AccountSysvarMismatch", "The given public key does not match the required sysvar"),
    3016: ("AccountReallocExceedsLimit", "The account reallocation exceeds the MAX_PERMITTED_DATA_INCREASE limit"),
    3017: ("AccountDuplicateReallocs", "The account was duplicated for more than one reallocation"),
    4100: ("DeclaredProgramIdMismatch", "The declared program id does not match the actual program id"),
}


@dataclass(frozen=True)
class ParsedProgramError:
    program_id: Optional[str]
    code: Optional[int]
    name: Optional[str]
    description: str


class ProgramErrorRegistry:
    """Known programs and their custom error tables."""

    def __init__(self):
        self._programs: Dict[str, Dict[int, Tuple[str, str]]] = {}

    @classmethod
    def from_program_ids(cls, program_ids: Iterable[str]) -> "ProgramErrorRegistry":
        registry = cls()
        for program_id in program_ids:
            registry.register(program_id)
        return registry

    def register(
        self,
        program_id: str,
        errors: Optional[Mapping[int, Tuple[str, str]]] = None
    ) -> None:
        table = self._programs.setdefault(str(program_id), {})
        if errors:
            table.update(errors)

    def program_ids(self) -> List[str]:
        return list(self._programs)

    def lookup(self, program_id: Optional[str], code: int) -> Optional[Tuple[str, str]]:
        if program_id is not None and program_id in self._programs:
            entry = self._programs[program_id].get(code)
            if entry:
                return entry
        return ANCHOR_FRAMEWORK_ERRORS.get(code)

    def __contains__(self, program_id: object) -> bool:
        return str(program_id) in self._programs


def _parse_code(raw: str) -> int:
    return int(raw, 16) if raw.lower().startswith("0x") else int(raw)


def parse_error_from_logs(
    logs: Sequence[str],
    program_ids: Optional[Iterable[str]] = None,
    registry: Optional[ProgramErrorRegistry] = None
) -> Optional[ParsedProgramError]:
    """
    Find the program error reported in a transaction's logs.

    Anchor error lines are attributed to the program on top of the invocation
    stack at the point they are logged. A `custom program error` failure line
    is decoded through the registry and then the Anchor framework table. When
    program_ids is given, failures from other programs are ignored.
    """
    wanted = {str(p) for p in program_ids} if program_ids is not None else None
    registry = registry or ProgramErrorRegistry()
    stack: List[str] = []
    anchor_errors: Dict[str, ParsedProgramError] = {}

    for line in logs:
        invoke = INVOKE_RE.match(line)
        if invoke:
            stack.append(invoke.group(1))
            continue

        if SUCCESS_RE.match(line):
            if stack:
                stack.pop()
            continue

        anchor = ANCHOR_ERROR_RE.search(line)
        if anchor:
            program_id = stack[-1] if stack else None
            anchor_errors[program_id or ""] = ParsedProgramError(
                program_id=program_id,
                code=int(anchor.group(2)),
                name=anchor.group(1),
                description=anchor.group(3),
            )
            continue

        failed = FAILED_RE.match(line)
        if not failed:
            continue

        program_id, reason = failed.group(1), failed.group(2)
        if stack:
            stack.pop()

        if wanted is not None and program_id not in wanted:
            continue

        if program_id in anchor_errors:
            return anchor_errors[program_id]

        custom = CUSTOM_ERROR_RE.search(reason)
        if not custom:
            return ParsedProgramError(program_id=program_id, code=None, name=None, description=reason)

        code = _parse_code(custom.group(1))
        entry = registry.lookup(program_id, code)
        if entry:
            name, message = entry
            return ParsedProgramError(program_id=program_id, code=code, name=name, description=message)

        return ParsedProgramError(
            program_id=program_id,
            code=code,
            name=None,
            description=f"Custom program error {code}",
        )

    return None


def describe_instruction_error(err: Any) -> Tuple[str, Optional[int]]:
    """Describe a structured transaction error from a status or simulation."""
    if err is None:
        return "Unknown error", None

    if isinstance(err, dict):
        if "InstructionError" in err:
            idx, inner_err = err["InstructionError"]
            if isinstance(inner_err, dict):
                if "Custom" in inner_err:
                    code = inner_err["Custom"]
                    return f"Instruction {idx} failed with custom error {code}", code
                error_type = list(inner_err.keys())[0]
                return f"Instruction {idx} failed: {error_type}", None
            return f"Instruction {idx} failed: {inner_err}", None
        return str(err), None

    idx = getattr(err, "index", None)
    inner_err = getattr(err, "err", None)
    if idx is not None and inner_err is not None:
        code = getattr(inner_err, "code", None)
        if code is not None:
            return f"Instruction {idx} failed with custom error {code}", code
        return f"Instruction {idx} failed: {inner_err}", None

    return str(err), None


class ErrorClassifier:

    def __init__(self, registry: Optional[ProgramErrorRegistry] = None):
        self.registry = registry or ProgramErrorRegistry()

    def parse_logs(self, logs: Sequence[str]) -> Optional[ParsedProgramError]:
        program_ids = self.registry.program_ids() or None
        return parse_error_from_logs(logs, program_ids, self.registry)

    def from_logs(
        self,
        message: str,
        logs: Sequence[str],
        signature: Optional[str] = None,
        err: Any = None
    ) -> SimulationError:
        if logs:
            logger.debug("------ Logs ------\n" + "\n".join(logs))
        parsed = self.parse_logs(logs)
        if parsed:
            logger.info(f"Parsed program error: {parsed.description}")
            return SimulationError(
                parsed.description,
                logs=list(logs),
                signature=signature,
                program_id=parsed.program_id,
                program_error_code=parsed.code,
            )

        _, code = describe_instruction_error(err) if err is not None else (None, None)
        return SimulationError(
            message,
            logs=list(logs),
            signature=signature,
            program_error_code=code,
        )

    def classify(self, error: BaseException, signature: Optional[str] = None) -> TxEngineError:
        if isinstance(error, (ProcessTransactionError, NetworkError)):
            return error

        if isinstance(error, RPCException):
            error = send_error_from_rpc_exception(error)

        if isinstance(error, SendTransactionError):
            if error.logs or error.err is not None:
                return self.from_logs(error.message, error.logs, signature, err=error.err)
            return FallthroughError(error.message, signature=signature)

        if isinstance(error, TxEngineError):
            return error

        logger.warning(f"Fallthrough error: {error!r}")
        return FallthroughError(str(error) or type(error).__name__, signature=signature)

    def classify_status_error(
        self,
        err: Any,
        signature: Optional[str] = None,
        logs: Optional[Sequence[str]] = None
    ) -> FallthroughError:
        """A transaction that landed but failed execution."""
        description, code = describe_instruction_error(err)
        if logs:
            parsed = self.parse_logs(logs)
            if parsed:
                description = parsed.description

        return FallthroughError(
            f"Transaction failed on-chain: {description}",
            logs=list(logs or []),
            signature=signature,
            context={"program_error_code": code} if code is not None else {},
        )


__all__ = [
    "ANCHOR_FRAMEWORK_ERRORS",
    "ParsedProgramError",
    "ProgramErrorRegistry",
    "ErrorClassifier",
    "parse_error_from_logs",
    "describe_instruction_error",
]
