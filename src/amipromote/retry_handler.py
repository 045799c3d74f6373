"""Exponential backoff for AWS CLI calls.

EC2 and Auto Scaling throttle bursts of API calls (RequestLimitExceeded,
Throttling) and the CLI occasionally fails on network errors. Wrapping a call
with retry_with_exponential_backoff retries those failures after 1s, 2s, 4s...
(capped, with jitter).

Usage:
    @retry_with_exponential_backoff(max_attempts=3)
    def describe_images():
        return subprocess.run(["aws", "ec2", "describe-images"], check=True)

    @retry_with_exponential_backoff(
        retryable_exceptions=(subprocess.CalledProcessError,),
        should_retry=lambda e: "Throttling" in e.stderr,
    )
    def start_refresh():
        ...
"""

import functools
import logging
import random
import re
import subprocess
import time
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

MAX_LOGGED_ERROR_LENGTH = 200

# key=value / key: value pairs that must never reach a log line
_SECRET_PATTERN = re.compile(
    r"(secret|password|token|aws_access_key_id|aws_secret_access_key|authorization)"
    r"(\s*[=:]\s*)(?:Bearer\s+)?\S+",
    re.IGNORECASE,
)


def compute_delay(attempt: int, initial_delay: float, max_delay: float, jitter: bool) -> float:
    """Seconds to wait after the given failed attempt (1-based)."""
    delay = initial_delay * (2 ** (attempt - 1))
    if jitter:
        delay += random.uniform(-0.25, 0.25) * delay
    return min(delay, max_delay)


def retry_with_exponential_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
) -> Callable[[F], F]:
    """Decorator retrying a call on transient failures.

    Args:
        max_attempts: Total attempts including the first (default: 3)
        initial_delay: Wait after the first failure in seconds (default: 1.0)
        max_delay: Upper bound for any single wait (default: 30.0)
        jitter: Vary each wait by up to 25% (default: True)
        retryable_exceptions: Exception types worth retrying
            (default: timeouts and connection errors)
        should_retry: Optional predicate; a retryable exception for which it
            returns False is raised immediately

    Returns:
        Decorator
    """
    retry_on = retryable_exceptions or (TimeoutError, ConnectionError, subprocess.TimeoutExpired)

    def decorator(func: F) -> F:
        name = getattr(func, "__name__", "call")

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    result = func(*args, **kwargs)
                except retry_on as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt >= max_attempts:
                        logger.error(
                            f"{name}: giving up after {attempt} attempts: {redact_error(e)}"
                        )
                        raise

                    wait = compute_delay(attempt, initial_delay, max_delay, jitter)
                    logger.warning(
                        f"{name}: attempt {attempt}/{max_attempts} failed, "
                        f"retrying in {wait:.2f}s: {redact_error(e)}"
                    )
                    time.sleep(wait)
                    attempt += 1
                    continue

                if attempt > 1:
                    logger.info(f"{name}: succeeded on attempt {attempt}/{max_attempts}")
                return result

        return wrapper  # type: ignore

    return decorator


def redact_error(error: Exception) -> str:
    """Render an exception for logging: stderr included, truncated, secrets masked."""
    text = str(error)
    if isinstance(error, subprocess.CalledProcessError) and error.stderr:
        text = f"{text}: {error.stderr.strip()}"

    if len(text) > MAX_LOGGED_ERROR_LENGTH:
        text = text[:MAX_LOGGED_ERROR_LENGTH] + "..."

    return _SECRET_PATTERN.sub(r"\1\2***", text)


__all__ = ["compute_delay", "redact_error", "retry_with_exponential_backoff"]
