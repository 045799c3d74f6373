"""Deployment environments.

The set of environments is closed: every tag filter, lock file and rollback
record is keyed by one of these values.
"""

from enum import Enum

from amipromote.errors import InvalidEnvironment


class Environment(str, Enum):
    """Deployment environment an image can be promoted to."""

    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def requires_confirmation(self) -> bool:
        """Deploys to this environment need an explicit operator 'yes'."""
        return self is Environment.PRODUCTION

    def __str__(self) -> str:
        return self.value


VALID_ENVIRONMENTS = tuple(env.value for env in Environment)


def parse_environment(value: str | None) -> Environment:
    """Parse an environment name.

    Args:
        value: Environment name from the command line

    Returns:
        Matching Environment

    Raises:
        InvalidEnvironment: If value is empty or not a known environment
    """
    if not value:
        raise InvalidEnvironment("Environment is required. Must be dev, staging, or production.")

    try:
        return Environment(value)
    except ValueError as e:
        raise InvalidEnvironment(
            f"Invalid environment '{value}'. Must be dev, staging, or production."
        ) from e


__all__ = ["VALID_ENVIRONMENTS", "Environment", "parse_environment"]
