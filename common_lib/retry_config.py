"""재시도 로직 설정 및 유틸리티(Retry logic configuration and utilities)."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from .errors import RateLimitedError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import Settings

SleepFn = Callable[[float], Awaitable[Any]]
BeforeSleepFn = Callable[[RetryCallState], Any]

TRANSIENT_NETWORK_ERRORS = (
    httpx.TimeoutException,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


def _is_transient_network_error(exc: BaseException) -> bool:
    """일시적 네트워크 오류인지 확인(Check if exception is a reset/timeout).

    Retryable exceptions:
    - httpx.TimeoutException: connect/read/write/pool timeouts
    - httpx.ReadError / httpx.WriteError: connection reset mid-exchange
    - httpx.RemoteProtocolError: peer closed the connection mid-response

    Connection refused and DNS failures (httpx.ConnectError) are not
    transient here and fail fast like any other HTTP error.
    """
    return isinstance(exc, TRANSIENT_NETWORK_ERRORS)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitedError) or _is_transient_network_error(exc)


class _CallBudget:
    """한 번의 논리적 호출에 대한 재시도 예산(Retry budget for one logical call).

    Network failures and rate-limit rounds are counted across the whole call,
    so a 429 in between does not refill the network retries.
    """

    def __init__(self, policy: "FeedRetryPolicy") -> None:
        self._policy = policy
        self.network_failures = 0
        self.rate_limit_rounds = 0

    def stop(self, retry_state: RetryCallState) -> bool:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError):
            self.rate_limit_rounds += 1
            cap = self._policy.rate_limit_max_wait
            return cap is not None and self.rate_limit_rounds * self._policy.rate_limit_cooldown > cap
        self.network_failures += 1
        return self.network_failures > self._policy.network_retries

    def wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError):
            return self._policy.rate_limit_cooldown
        return self._policy.network_retry_delay


@dataclass
class FeedRetryPolicy:
    """
    피드 요청 재시도 정책(Retry policy for feed requests).

    Two kinds of retry share one loop per call:
    - rate limit: fixed cooldown, no growth, unbounded unless
      ``rate_limit_max_wait`` caps the total time spent waiting
    - network: at most ``network_retries`` retries with a fixed delay,
      counted over the whole call

    ``sleep`` is injectable so tests can record waits instead of sleeping.
    """

    rate_limit_cooldown: float = 30.0
    rate_limit_max_wait: Optional[float] = None
    network_retries: int = 3
    network_retry_delay: float = 5.0
    sleep: SleepFn = field(default=asyncio.sleep)

    @classmethod
    def from_settings(cls, settings: "Settings", sleep: SleepFn = asyncio.sleep) -> "FeedRetryPolicy":
        return cls(
            rate_limit_cooldown=settings.nvd_rate_limit_cooldown,
            rate_limit_max_wait=settings.nvd_rate_limit_max_wait,
            network_retries=settings.nvd_network_retries,
            network_retry_delay=settings.nvd_network_retry_delay,
            sleep=sleep,
        )

    def retrying(self, before_sleep: Optional[BeforeSleepFn] = None) -> AsyncRetrying:
        """호출별 재시도 루프 생성(Build the retry loop for one logical call)."""

        budget = _CallBudget(self)
        return AsyncRetrying(
            stop=budget.stop,
            wait=budget.wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
