"""重试与退避策略。

分类规则：
- TransportError（连接失败、超时）→ 可重试。
- ApiError 5xx / 429 → 可重试；其他 4xx → 直接失败。
- InvalidResponseError / StreamError / ConfigError → 直接失败。

max_retries 表示首次请求之后的重试次数，总请求数 = max_retries + 1。
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt

from chipp_client.domain.exceptions import (
    ApiError,
    ChippClientError,
    RetriesExhaustedError,
    TransportError,
)
from chipp_client.infrastructure.logging.logger import logger as default_logger

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """判断一次失败是否值得重试。"""

    if isinstance(error, TransportError):
        return True
    if isinstance(error, ApiError):
        return error.status >= 500 or error.status == 429
    return False


class RetryPolicy:
    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 0.1,
        max_delay: float = 10.0,
        jitter: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep
        self.logger = logger or default_logger

    @classmethod
    def from_config(cls, config, sleep: Callable[[float], None] = time.sleep) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            initial_delay=config.initial_retry_delay,
            max_delay=config.max_retry_delay,
            jitter=config.retry_jitter,
            sleep=sleep,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_delay(self, attempt: int) -> float:
        """第 attempt 次重试（从 0 开始）前的等待时间，永远不超过 max_delay。"""

        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        # 指数很大时 2**attempt 会溢出 float，先判断是否已经封顶
        if self.initial_delay <= 0:
            delay = 0.0
        elif attempt >= 64 or self.initial_delay * (2 ** attempt) >= self.max_delay:
            delay = self.max_delay
        else:
            delay = self.initial_delay * (2 ** attempt)
        if self.jitter > 0 and delay > 0:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return min(delay, self.max_delay)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff_delay(retry_state.attempt_number - 1)

    def _log_before_sleep(self, retry_state: RetryCallState, operation: str) -> None:
        error = retry_state.outcome.exception()
        self.logger.warning(
            f"{operation} failed, retrying after delay",
            extra={
                "extra": {
                    "attempt": retry_state.attempt_number,
                    "max_attempts": self.max_attempts,
                    "error_code": getattr(error, "code", None),
                    "status": getattr(error, "status", None),
                    "delay_ms": int(retry_state.next_action.sleep * 1000),
                }
            },
        )

    def execute(self, fn: Callable[[int], T], operation: str = "request") -> T:
        """执行 fn(attempt)，attempt 从 1 开始计数。

        不可重试的错误原样抛出；可重试错误在次数用尽后包装为 RetriesExhaustedError。
        """

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            before_sleep=lambda rs: self._log_before_sleep(rs, operation),
        )
        try:
            for attempt in retrying:
                attempts = attempt.retry_state.attempt_number
                with attempt:
                    result = fn(attempts)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            self.logger.warning(
                f"{operation} exhausted retries",
                extra={"extra": {"attempts": self.max_attempts, "error_code": getattr(last_error, "code", None)}},
            )
            raise RetriesExhaustedError(attempts=self.max_attempts, last_error=last_error) from last_error
        except ChippClientError as e:
            self.logger.error(
                f"{operation} failed with non-retryable error",
                extra={"extra": {"error_code": e.code, "error": e.message}},
            )
            raise

        if attempts > 1:
            self.logger.info(
                f"{operation} succeeded after {attempts} attempts",
                extra={"extra": {"attempts": attempts}},
            )
        return result
