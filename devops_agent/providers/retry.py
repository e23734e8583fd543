"""模型调用的重试策略。

Orchestrator 自身从不重试：每次模型调用都经过注入的 RetryPolicy。
默认的 NoRetry 只调用一次；TenacityRetry 需要显式开启，
只对网络错误与 429 限流进行指数退避重试。
"""

import logging
from typing import Callable, Optional, Protocol, Tuple, Type, TypeVar

import tenacity
from tenacity.wait import wait_base

from devops_agent.domain.exceptions import RateLimitError, TransportError
from devops_agent.infrastructure.logging.logger import logger

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[Type[Exception], ...] = (TransportError, RateLimitError)


class RetryPolicy(Protocol):
    def call(self, fn: Callable[[], T]) -> T:
        ...


class NoRetry:
    """只调用一次，错误直接抛出。"""

    def call(self, fn: Callable[[], T]) -> T:
        return fn()


class TenacityRetry:
    """对临时性错误做指数退避重试。

    Args:
        max_attempts: 总尝试次数（包含第一次）。
        retry_on: 视为临时性错误的异常类型。
        wait: 可选的 tenacity 等待策略，主要用于测试。
    """

    def __init__(
        self,
        max_attempts: int = 3,
        retry_on: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
        wait: Optional[wait_base] = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.retry_on = retry_on
        self._wait = wait if wait is not None else tenacity.wait_exponential(multiplier=1, min=1, max=30)

    def call(self, fn: Callable[[], T]) -> T:
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception_type(self.retry_on),
            wait=self._wait,
            stop=tenacity.stop_after_attempt(self.max_attempts),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(fn)


def build_retry_policy(attempts: int) -> RetryPolicy:
    if attempts <= 1:
        return NoRetry()
    return TenacityRetry(max_attempts=attempts)
