"""Retry policy for single, safe-to-repeat network calls.

Built on tenacity. Delays are deterministic: the first retry waits
``initial_delay`` and each following one multiplies by
``backoff_multiplier``, capped at ``max_delay``.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from remote_ops._errors import RemoteOpsError

if TYPE_CHECKING:
    from remote_ops._cancellation import CancellationToken

T = TypeVar("T")

log = logging.getLogger(__name__)


def is_transient_error(exc: BaseException) -> bool:
    """Default retry predicate: rate limits, timeouts and 5xx-class failures."""
    if isinstance(exc, RemoteOpsError):
        return exc.retryable
    return isinstance(exc, (ConnectionError, TimeoutError))


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration and executor for one call.

    :param max_attempts: Total attempts including the first call.
    :param initial_delay: Seconds to wait before the first retry.
    :param max_delay: Upper bound in seconds for any single wait.
    :param backoff_multiplier: Factor applied to the delay after each retry.
    :param is_retryable: Predicate deciding whether an exception is transient.
    :param sleep: Sleep function, replaceable in tests.
    """

    max_attempts: int = 3
    initial_delay: float = 0.1
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_transient_error
    sleep: Callable[[float], None] = dataclasses.field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay_for(self, retry_number: int) -> float:
        """Seconds waited before retry ``retry_number`` (1-based)."""
        return min(self.initial_delay * self.backoff_multiplier ** (retry_number - 1), self.max_delay)

    def retrying(self, *, token: CancellationToken | None = None, logger: logging.Logger | None = None) -> Retrying:
        """Build the tenacity controller for this policy."""
        predicate = self.is_retryable
        if token is not None:
            cancel_token = token

            def predicate(exc: BaseException) -> bool:
                return not cancel_token.is_cancelled and self.is_retryable(exc)

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.initial_delay,
                exp_base=self.backoff_multiplier,
                max=self.max_delay,
            ),
            retry=retry_if_exception(predicate),
            before_sleep=before_sleep_log(logger or log, logging.DEBUG),  # type: ignore[arg-type,unused-ignore]
            sleep=self.sleep,
            reraise=True,
        )

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        token: CancellationToken | None = None,
        **kwargs: Any,
    ) -> T:
        """Call ``fn`` retrying transient failures.

        The last exception propagates unchanged once attempts are exhausted or
        the failure is not retryable. A cancelled ``token`` stops further
        retries.
        """
        return self.retrying(token=token)(fn, *args, **kwargs)

    def with_predicate(self, predicate: Callable[[BaseException], bool]) -> RetryPolicy:
        return dataclasses.replace(self, is_retryable=predicate)


DEFAULT_RETRY_POLICY = RetryPolicy()
S3_RETRY_POLICY = RetryPolicy(max_attempts=5, initial_delay=0.05, max_delay=60.0, backoff_multiplier=1.5)
NO_RETRY = RetryPolicy(max_attempts=1)
