"""Explicit current-image pointer per environment.

Optional alternative to inferring the live image from Production=true tags.
The pointer is an SSM parameter named <prefix>/<environment>/current-image-id,
overwritten as the last step of every successful deploy and rollback.
"""

import logging
import subprocess

from amipromote.aws_cli_executor import AwsCliError, aws_error_code, run_aws_json

logger = logging.getLogger(__name__)


class PointerStoreError(Exception):
    """Raised when the current-image pointer cannot be read or written."""

    pass


class ImagePointerStore:
    """Read and write the current-image pointer of each environment."""

    def __init__(self, prefix: str, region: str, timeout: int = 30):
        self.prefix = "/" + prefix.strip("/")
        self.region = region
        self.timeout = timeout

    def parameter_name(self, environment: str) -> str:
        return f"{self.prefix}/{environment}/current-image-id"

    def get_current(self, environment: str) -> str | None:
        """Return the pointed-to image ID, or None if no pointer exists yet.

        Raises:
            PointerStoreError: If the parameter cannot be read
        """
        name = self.parameter_name(environment)
        cmd = ["aws", "ssm", "get-parameter", "--name", name]

        try:
            data = run_aws_json(cmd, region=self.region, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            if aws_error_code(e.stderr) == "ParameterNotFound":
                logger.debug(f"No current-image pointer at {name}")
                return None
            raise PointerStoreError(f"Failed to read {name}: {e.stderr}") from e
        except (subprocess.TimeoutExpired, AwsCliError) as e:
            raise PointerStoreError(f"Failed to read {name}: {e}") from e

        value = data.get("Parameter", {}).get("Value")
        return value or None

    def set_current(self, environment: str, image_id: str) -> None:
        """Point the environment at an image.

        Raises:
            PointerStoreError: If the parameter cannot be written
        """
        name = self.parameter_name(environment)
        cmd = [
            "aws",
            "ssm",
            "put-parameter",
            "--name",
            name,
            "--value",
            image_id,
            "--type",
            "String",
            "--overwrite",
        ]

        try:
            run_aws_json(cmd, region=self.region, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            raise PointerStoreError(f"Failed to write {name}: {e.stderr}") from e
        except (subprocess.TimeoutExpired, AwsCliError) as e:
            raise PointerStoreError(f"Failed to write {name}: {e}") from e

        logger.info(f"{name} -> {image_id}")


__all__ = ["ImagePointerStore", "PointerStoreError"]
