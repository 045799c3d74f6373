"""Retry tuning for AWS CLI calls.

Defaults suit an interactive operator. CI runners and tests override them
through AMIPROMOTE_RETRY_* environment variables; the values are read once
per process (reset_retry_config() forces a re-read).
"""

import os
from dataclasses import dataclass
from functools import lru_cache

ENV_PREFIX = "AMIPROMOTE_RETRY_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings applied to every AWS CLI call."""

    aws_cli_max_attempts: int = 3
    aws_cli_initial_delay: float = 1.0
    aws_cli_max_delay: float = 30.0
    jitter_enabled: bool = True

    @classmethod
    def from_environment(cls) -> "RetryConfig":
        """Build from environment variables, falling back to the defaults.

        Environment variables (all optional):
            AMIPROMOTE_RETRY_MAX_ATTEMPTS: Attempts per AWS CLI call (default: 3)
            AMIPROMOTE_RETRY_INITIAL_DELAY: First backoff in seconds (default: 1.0)
            AMIPROMOTE_RETRY_MAX_DELAY: Backoff ceiling in seconds (default: 30.0)
            AMIPROMOTE_RETRY_JITTER_ENABLED: "true" or "false" (default: true)
        """
        return cls(
            aws_cli_max_attempts=max(1, int(_env("MAX_ATTEMPTS", "3"))),
            aws_cli_initial_delay=float(_env("INITIAL_DELAY", "1.0")),
            aws_cli_max_delay=float(_env("MAX_DELAY", "30.0")),
            jitter_enabled=_env("JITTER_ENABLED", "true").strip().lower() == "true",
        )


@lru_cache(maxsize=1)
def get_retry_config() -> RetryConfig:
    """Process-wide retry settings, read from the environment on first use."""
    return RetryConfig.from_environment()


def reset_retry_config() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    get_retry_config.cache_clear()


__all__ = ["RetryConfig", "get_retry_config", "reset_retry_config"]
