"""Minimal synchronous retry with explicit error contracts.

The default policy makes exactly one attempt: a failed call surfaces
immediately. Callers opt into retries by configuring ``max_attempts``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

from bedrock_chat.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

log = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter."""

    max_attempts: int = 1
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True  # "full jitter" when enabled
    max_elapsed_s: float | None = 15.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")


def should_retry_invoke(exc: BaseException) -> bool:
    """Return True when an invoke failure should be retried.

    Only ``TransportError`` is considered; the transport marks it retryable
    or attaches a known retryable HTTP status code.
    """
    if isinstance(exc, TransportError):
        return (exc.retryable is True) or (
            isinstance(exc.status_code, int)
            and exc.status_code in _RETRYABLE_STATUS_CODES
        )
    return False


def _compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    # retry_index starts at 1 for the first retry sleep.
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    return random.random() * base  # noqa: S311


def retry_call(
    factory: Callable[[], T],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry_invoke,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run *factory* with bounded retries."""
    start = time.monotonic()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return factory()
        except Exception as exc:
            if not should_retry(exc) or attempt >= policy.max_attempts:
                raise

            delay = _compute_backoff_delay(policy, retry_index=attempt)
            if policy.max_elapsed_s is not None:
                remaining = policy.max_elapsed_s - (time.monotonic() - start)
                if remaining <= 0:
                    raise
                delay = min(delay, remaining)

            log.debug("Retrying after %s (attempt %d, sleep %.2fs)", exc, attempt, delay)
            if delay > 0:
                sleep(delay)

    raise RuntimeError("retry_call exhausted without an exception")  # pragma: no cover
