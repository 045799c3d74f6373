"""Standardized AWS CLI subprocess execution with retry logic.

Provides run_aws_command(), a thin wrapper around subprocess.run that adds
automatic retry with exponential backoff for transient AWS CLI failures, and
run_aws_json() which also parses the JSON document the CLI prints.

Errors that carry a permanent AWS error code (missing resource, validation,
authorization) are raised on the first attempt.

Usage:
    from amipromote.aws_cli_executor import run_aws_command, run_aws_json

    result = run_aws_command(["aws", "ec2", "describe-images", "--output", "json"])

    data = run_aws_json(
        ["aws", "ec2", "describe-images", "--owners", "self"], region="us-west-2"
    )
"""

import json
import logging
import re
import subprocess
from typing import Any

from amipromote.retry_config import get_retry_config
from amipromote.retry_handler import retry_with_exponential_backoff

logger = logging.getLogger(__name__)

# "An error occurred (InvalidAMIID.NotFound) when calling the DescribeImages operation: ..."
_ERROR_CODE_PATTERN = re.compile(r"An error occurred \(([A-Za-z0-9_.]+)\)")

PERMANENT_ERROR_PREFIXES = (
    "InvalidAMIID",
    "InvalidLaunchTemplateId",
    "InvalidLaunchTemplateName",
    "InvalidParameter",
    "ValidationError",
    "UnauthorizedOperation",
    "AuthFailure",
    "AccessDenied",
    "ParameterNotFound",
    "InstanceRefreshInProgress",
)


class AwsCliError(Exception):
    """Raised when an AWS CLI response cannot be used."""

    pass


def aws_error_code(stderr: str | None) -> str | None:
    """Extract the AWS error code from CLI stderr, if present."""
    if not stderr:
        return None
    match = _ERROR_CODE_PATTERN.search(stderr)
    return match.group(1) if match else None


def is_transient_failure(error: Exception) -> bool:
    """Return True when an AWS CLI failure is worth retrying."""
    if isinstance(error, subprocess.CalledProcessError):
        code = aws_error_code(error.stderr)
        if code and code.startswith(PERMANENT_ERROR_PREFIXES):
            return False
    return True


def _is_retryable_rejection(error: Exception) -> bool:
    return isinstance(error, subprocess.CalledProcessError) and is_transient_failure(error)


def run_aws_command(
    cmd: list[str],
    *,
    region: str | None = None,
    timeout: int = 30,
    max_attempts: int | None = None,
    check: bool = True,
    idempotent: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute an AWS CLI command with retry logic.

    Drop-in replacement for subprocess.run(["aws", ...]) that adds automatic
    retry with exponential backoff on transient failures.

    Args:
        cmd: Command list starting with "aws", e.g. ["aws", "ec2", "describe-images"]
        region: AWS region appended as --region (optional)
        timeout: Subprocess timeout in seconds (default: 30)
        max_attempts: Number of attempts (default: from RetryConfig)
        check: If True, raise CalledProcessError on non-zero exit (default: True)
        idempotent: If False, a timed-out call is not retried because AWS may
            already have applied it. Rejected calls (throttling) are still retried.

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        subprocess.CalledProcessError: After retries exhausted or on a permanent error
        subprocess.TimeoutExpired: After retries exhausted
        AwsCliError: If the aws executable is not installed
    """
    config = get_retry_config()
    attempts = max_attempts or config.aws_cli_max_attempts

    full_cmd = list(cmd)
    if region:
        full_cmd.extend(["--region", region])

    @retry_with_exponential_backoff(
        max_attempts=attempts,
        initial_delay=config.aws_cli_initial_delay,
        max_delay=config.aws_cli_max_delay,
        jitter=config.jitter_enabled,
        retryable_exceptions=(subprocess.CalledProcessError, subprocess.TimeoutExpired),
        should_retry=is_transient_failure if idempotent else _is_retryable_rejection,
    )
    def _run() -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            full_cmd, capture_output=True, text=True, check=check, timeout=timeout
        )

    logger.debug(f"Running: {' '.join(full_cmd)}")
    try:
        return _run()
    except FileNotFoundError as e:
        raise AwsCliError("aws CLI not found; install and configure it") from e


def run_aws_json(
    cmd: list[str],
    *,
    region: str | None = None,
    timeout: int = 30,
    max_attempts: int | None = None,
    idempotent: bool = True,
) -> dict[str, Any]:
    """Execute an AWS CLI command and parse its JSON output.

    "--output json" is appended to the command. Commands that print nothing
    on success (modify-*, create-tags) return an empty dict.

    Raises:
        subprocess.CalledProcessError: If the command fails
        subprocess.TimeoutExpired: If the command times out
        AwsCliError: If the output is not a JSON object or aws is not installed
    """
    result = run_aws_command(
        [*cmd, "--output", "json"],
        region=region,
        timeout=timeout,
        max_attempts=max_attempts,
        idempotent=idempotent,
    )

    if not result.stdout.strip():
        return {}

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise AwsCliError(f"Failed to parse AWS CLI output: {e}") from e

    if not isinstance(data, dict):
        raise AwsCliError(f"Unexpected AWS CLI output type: {type(data).__name__}")

    return data


__all__ = [
    "AwsCliError",
    "aws_error_code",
    "is_transient_failure",
    "run_aws_command",
    "run_aws_json",
]
