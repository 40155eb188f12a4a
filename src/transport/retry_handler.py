"""Bounded retry with exponential backoff.

Policy:
- At most `max_attempts` calls; the last failure is re-raised unchanged
- Wait backoff_ms * 2^(attempt-1) between attempts
- A caller-supplied predicate decides retryability on its own; without one,
  the failure message must contain one of the configured patterns, ignoring case
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..models.cdm import RetryConfig
from ..models.errors import AdapterError, ErrorType

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NETWORK_ERROR_MARKERS = (
    "timeout",
    "network",
    "connection refused",
    "econnrefused",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "host not found",
)


class RetryHandler:
    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
    ) -> T:
        predicate = is_retryable or self._matches_configured_pattern

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.backoff_ms / 1000.0, exp_base=2),
            retry=retry_if_exception(lambda e: isinstance(e, Exception) and bool(predicate(e))),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(operation)

    def _matches_configured_pattern(self, error: BaseException) -> bool:
        message = str(error).lower()
        return any(pattern.lower() in message for pattern in self.config.retryable_errors)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "retrying_operation",
            attempt=retry_state.attempt_number,
            max_attempts=self.config.max_attempts,
            delay_seconds=delay,
            error=str(error),
        )

    @staticmethod
    def status_of(error: BaseException) -> Optional[int]:
        status = getattr(error, "status", None)
        return status if isinstance(status, int) else None

    @staticmethod
    def is_network_error(error: BaseException) -> bool:
        if isinstance(error, AdapterError):
            return error.error_type == ErrorType.NETWORK
        message = str(error).lower()
        return any(marker in message for marker in NETWORK_ERROR_MARKERS)

    @staticmethod
    def is_server_error(status: Optional[int]) -> bool:
        return status is not None and 500 <= status < 600

    @staticmethod
    def is_auth_error(status: Optional[int]) -> bool:
        return status in (401, 403)
