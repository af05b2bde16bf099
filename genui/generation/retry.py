"""
retry.py — bounded retry with exponential backoff for outbound calls.

The policy knows nothing about what it retries: GenerationInvoker builds a
tenacity AsyncRetrying from it and wraps the whole call-and-repair attempt.
Delay after failed attempt n is backoff_base ** n seconds (2s, 4s, ...).
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 2.0
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_base ** attempt

    def retrying(
        self,
        before_sleep: Callable[[RetryCallState], Any] | None = None,
    ) -> AsyncRetrying:
        """
        A fresh AsyncRetrying for one logical call. Exhaustion raises
        tenacity.RetryError carrying the last attempt.
        """
        return AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self.max_attempts),
            # base**(n-1) * base == base**n
            wait=wait_exponential(multiplier=self.backoff_base, exp_base=self.backoff_base),
            sleep=self.sleep,
            before_sleep=before_sleep,
            reraise=False,
        )
