"""
Retry helpers for template execution.

Two layers of retry exist. ``execute_with_retry`` is the per-operation policy
used by the orchestrator: plain exponential backoff on any unsuccessful
result. ``retry_transport`` is used inside backends and only retries what a
classifier marks as transient, with capped and jittered delays.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from guild_templater.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    TRANSPORT_BACKOFF_MULTIPLIER,
    TRANSPORT_INITIAL_DELAY,
    TRANSPORT_JITTER_RATIO,
    TRANSPORT_MAX_DELAY,
)
from guild_templater.utils.logging import log_with_context

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """The last result of an operation and how many retries it took."""

    result: T
    retry_count: int


def retry_delay_for(attempt: int, base_delay: float) -> float:
    """Delay before retry ``attempt`` (0-indexed) of the per-operation policy."""
    return base_delay * (2**attempt)


def execute_with_retry(
    operation: Callable[[], T],
    is_success: Callable[[T], bool],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_DELAY,
    label: Optional[str] = None,
) -> RetryOutcome[T]:
    """
    Run ``operation`` until it succeeds or the retry budget is spent.

    The operation is invoked at most ``max_retries + 1`` times. Between a
    failed attempt ``i`` and the next one the caller is suspended for
    ``base_delay * 2**i`` seconds. Exceptions raised by the operation are not
    caught here.

    Args:
        operation: Zero-argument callable returning a result
        is_success: Predicate deciding whether a result is a success
        max_retries: Number of retries after the first attempt
        base_delay: Delay in seconds before the first retry
        label: Operation name used in log messages

    Returns:
        RetryOutcome holding the last result and the number of retries made
    """
    attempt = 0
    while True:
        result = operation()
        if is_success(result) or attempt >= max_retries:
            return RetryOutcome(result=result, retry_count=attempt)

        delay = retry_delay_for(attempt, base_delay)
        log_with_context(
            logging.DEBUG,
            f"Retrying {label or 'operation'} in {delay:.1f}s "
            f"(attempt {attempt + 2} of {max_retries + 1})",
            operation=label,
            retry_count=attempt + 1,
        )
        time.sleep(delay)
        attempt += 1


def backoff_delay(
    attempt: int,
    initial_delay: float = TRANSPORT_INITIAL_DELAY,
    max_delay: float = TRANSPORT_MAX_DELAY,
    multiplier: float = TRANSPORT_BACKOFF_MULTIPLIER,
    jitter: bool = True,
) -> float:
    """
    Transport-level backoff: exponential, capped, plus up to 25% jitter.

    Args:
        attempt: Retry attempt, 0-indexed
        initial_delay: Delay for the first retry
        max_delay: Cap applied before jitter
        multiplier: Exponential growth factor
        jitter: Add a random amount in ``[0, 25%)`` of the capped delay

    Returns:
        Delay in seconds
    """
    delay = min(initial_delay * (multiplier**attempt), max_delay)
    if jitter:
        delay += random.random() * delay * TRANSPORT_JITTER_RATIO
    return delay


def retry_transport(
    call: Callable[[], T],
    *,
    is_success: Callable[[T], bool],
    is_retryable: Callable[[Optional[BaseException], Optional[T]], bool],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = TRANSPORT_INITIAL_DELAY,
    max_delay: float = TRANSPORT_MAX_DELAY,
    jitter: bool = True,
    delay_hint: Optional[Callable[[T], Optional[float]]] = None,
) -> T:
    """
    Retry a backend call while its failures are classified as transient.

    A failed result is returned as soon as it is not retryable or the budget
    is spent. A raised exception is re-raised under the same conditions.

    Args:
        call: Zero-argument callable performing one request or script run
        is_success: Predicate on the call's result
        is_retryable: ``(error, result)`` classifier; exactly one is not None
        max_retries: Number of retries after the first attempt
        initial_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        jitter: Whether to add random jitter to the delay
        delay_hint: Optional server-provided delay, e.g. a 429 ``retry_after``

    Returns:
        The first successful result, or the last unsuccessful one
    """
    for attempt in range(max_retries + 1):
        try:
            result = call()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e, None):
                raise
            delay = backoff_delay(
                attempt, initial_delay, max_delay, jitter=jitter
            )
            reason = str(e)
        else:
            if is_success(result):
                return result
            if attempt >= max_retries or not is_retryable(None, result):
                return result
            hint = delay_hint(result) if delay_hint else None
            delay = (
                hint
                if hint is not None
                else backoff_delay(attempt, initial_delay, max_delay, jitter=jitter)
            )
            reason = "transient failure"

        log_with_context(
            logging.WARNING,
            f"Transient error ({reason}), retrying in {delay:.2f}s",
            retry_count=attempt + 1,
        )
        time.sleep(delay)

    raise RuntimeError("Exited retry loop unexpectedly.")
