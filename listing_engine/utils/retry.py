from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional, TypeVar
import asyncio
import logging
import re

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception

from .json_sanitizer import InvalidJsonError, NoJsonFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient HTTP statuses, matched as whole numbers only.
RETRYABLE_STATUS_PATTERN = re.compile(r"\b(408|409|429|5\d\d)\b")

# Substrings of error messages that mark a transient provider or network failure.
RETRYABLE_MARKERS = (
    "timeout", "timed out", "overload", "rate limit", "quota",
    "econnreset", "socket", "connection",
    "invalid json", "json parse",
)


def is_retryable_error(exc: BaseException) -> bool:
    # no JSON at all points at a prompt/schema mismatch, another sample won't fix it
    if isinstance(exc, NoJsonFoundError):
        return False
    if isinstance(exc, (InvalidJsonError, asyncio.TimeoutError)):
        return True
    if getattr(exc, "retryable", None) is not None:
        return bool(exc.retryable)
    msg = str(exc).lower()
    if RETRYABLE_STATUS_PATTERN.search(msg):
        return True
    return any(marker in msg for marker in RETRYABLE_MARKERS)


class RetryExecutor:
    """
    Bounded exponential-backoff retry around a single async operation.

    Attempt n (1-based) that fails with a retryable error is followed by a sleep of
    initial_delay * backoff_factor ** (n - 1) seconds. Non-retryable errors and the
    error of the last attempt propagate unchanged.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.5,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        classify: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.classify = classify
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(cls, retry_cfg: Optional[dict], **kwargs) -> "RetryExecutor":
        retry_cfg = retry_cfg or {}
        return cls(
            max_attempts=int(retry_cfg.get("max_attempts", 3)),
            initial_delay=float(retry_cfg.get("initial_delay", 1.5)),
            backoff_factor=float(retry_cfg.get("backoff_factor", 2.0)),
            max_delay=float(retry_cfg.get("max_delay", 30.0)),
            **kwargs,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]], name: str = "operation", correlation_id: Optional[str] = None) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=self.backoff_factor, max=self.max_delay),
            retry=retry_if_exception(self.classify),
            before_sleep=lambda state: logger.debug(
                f"[{correlation_id}] {name}: waiting {state.next_action.sleep:.2f}s before retry"
            ),
            sleep=self._sleep,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    logger.debug(f"[{correlation_id}] {name}: attempt {attempt_number}/{self.max_attempts}")
                    try:
                        result = await operation()
                    except Exception as e:
                        logger.warning(
                            f"[{correlation_id}] {name}: attempt {attempt_number} failed: {e} "
                            f"(retryable={self.classify(e)})"
                        )
                        raise
        except Exception as e:
            logger.error(f"[{correlation_id}] {name}: giving up after {attempt_number} attempts: {e}")
            raise

        if attempt_number > 1:
            logger.info(f"[{correlation_id}] {name}: succeeded on attempt {attempt_number}")
        return result
