"""
Retry policy for RPC reads made while setting up an engine.

Only lookup table loading goes through here. Submissions are never retried
by this module; the spam and relay loops resend until the blockhash
expires instead.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Set, Tuple, Type, TypeVar

from .exceptions import NetworkError, ProcessTransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    How often and how patiently to retry a read.

    Attributes:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any delay
        exponential_base: Growth factor between consecutive delays
        jitter: Randomise delays by up to jitter_factor of their value
        retryable_exceptions: Exception types worth another attempt
        non_retryable_exceptions: Exception types that fail immediately
        non_retry_error_codes: RPC / HTTP codes that fail immediately
        retry_error_codes: If set, only these codes are retried
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.5
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)
    non_retryable_exceptions: Tuple[Type[Exception], ...] = ()
    non_retry_error_codes: Set[int] = field(default_factory=set)
    retry_error_codes: Set[int] = field(default_factory=set)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")


class ExponentialBackoff:
    """delay = base_delay * exponential_base ^ (attempt - 1), capped at max_delay"""

    def get_delay(self, attempt: int, config: RetryConfig) -> float:
        delay = min(config.base_delay * config.exponential_base ** (attempt - 1), config.max_delay)
        if config.jitter and config.jitter_factor > 0:
            spread = delay * config.jitter_factor
            delay += random.uniform(-spread, spread)
        return max(0.0, min(delay, config.max_delay))


def _error_code(exception: Exception) -> Optional[int]:
    for attr in ("status_code", "rpc_error_code", "code"):
        value = getattr(exception, attr, None)
        if isinstance(value, int):
            return value
    return None


def should_retry(exception: Exception, config: RetryConfig, attempt: int) -> bool:
    """Whether a failed attempt number `attempt` deserves another try."""
    if attempt > config.max_retries:
        return False
    if isinstance(exception, config.non_retryable_exceptions):
        return False

    code = _error_code(exception)
    if code is not None:
        if code in config.non_retry_error_codes:
            return False
        if config.retry_error_codes and code not in config.retry_error_codes:
            return False

    return isinstance(exception, config.retryable_exceptions)


class RetryContext(Generic[T]):
    """
    Runs an async call until it succeeds or the policy gives up.

    Usage:
        async with RetryContext(RPC_RETRY_POLICY) as ctx:
            tables = await ctx.execute(gateway.get_address_lookup_tables, addresses)
    """

    def __init__(self, config: Optional[RetryConfig] = None, strategy: Optional[ExponentialBackoff] = None):
        self.config = config or RetryConfig()
        self.strategy = strategy or ExponentialBackoff()
        self.attempts = 0
        self.total_delay = 0.0
        self.last_exception: Optional[Exception] = None

    async def __aenter__(self) -> "RetryContext[T]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        self.attempts = 0
        self.total_delay = 0.0

        while True:
            self.attempts += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self.last_exception = e
                if not should_retry(e, self.config, self.attempts):
                    if self.attempts > 1:
                        logger.error(f"Giving up after {self.attempts} attempts: {e}")
                    raise

                delay = self.strategy.get_delay(self.attempts, self.config)
                self.total_delay += delay
                logger.warning(
                    f"Attempt {self.attempts}/{self.config.max_retries + 1} failed, "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)
                continue

            if self.attempts > 1:
                logger.info(f"Succeeded after {self.attempts} attempts ({self.total_delay:.2f}s waiting)")
            return result


async def retry_async_operation(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    **kwargs: Any,
) -> T:
    """Run a single async call under a retry policy."""
    async with RetryContext(config=config) as ctx:
        return await ctx.execute(func, *args, **kwargs)


# Invalid request / method / params never succeed on retry.
RPC_RETRY_POLICY = RetryConfig(
    max_retries=5,
    base_delay=0.5,
    max_delay=30.0,
    jitter_factor=0.3,
    retryable_exceptions=(NetworkError,),
    non_retryable_exceptions=(ProcessTransactionError,),
    non_retry_error_codes={-32600, -32601, -32602},
)


__all__ = [
    "RetryConfig",
    "ExponentialBackoff",
    "should_retry",
    "RetryContext",
    "retry_async_operation",
    "RPC_RETRY_POLICY",
]
