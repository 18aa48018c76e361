# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
from typing import Callable, Optional


class RetryError(RuntimeError):
    pass


class PollTimeout(TimeoutError):
    def __init__(self, waited: float):
        super().__init__(f"condition not met after {waited:.1f}s")
        self.waited = waited


def retry(
    *,
    retries: int,
    delay: float,
    backoff: float = 1.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent operations (SSH connect, queries).

    retries: number of attempts
    delay: seconds before the second attempt
    backoff: multiplier applied to delay after every failed attempt
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            wait = delay
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(wait)
                    wait *= backoff
            raise RetryError(f"{fn.__name__} failed after {retries} attempts") from last_exc
        return wrapper
    return decorator


def poll_until(
    predicate: Callable[[], bool],
    *,
    interval: float,
    timeout: float,
    on_wait: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """
    Call ``predicate`` every ``interval`` seconds until it returns True.

    Returns the seconds spent waiting. Raises PollTimeout once the wait
    reaches ``timeout`` with the predicate still false.
    """
    start = clock()
    while not predicate():
        waited = clock() - start
        if waited >= timeout:
            raise PollTimeout(waited)
        if on_wait:
            on_wait(waited)
        sleep(interval)
    return clock() - start
