"""Launch template versioning.

Each environment owns at most one launch template, found by its Environment
tag. Promoting an image creates a new immutable template version that points
at the image and makes it the template's default version.
"""

import json
import logging
import subprocess
import uuid
from dataclasses import dataclass
from typing import Any

from amipromote.aws_cli_executor import AwsCliError, run_aws_json
from amipromote.errors import AmbiguousResourceError

logger = logging.getLogger(__name__)

MAX_VERSION_DESCRIPTION_LENGTH = 255


class LaunchTemplateError(Exception):
    """Raised when launch template operations fail."""

    pass


@dataclass
class LaunchTemplateInfo:
    """Launch template summary."""

    id: str
    name: str
    default_version: int | None = None
    latest_version: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "LaunchTemplateInfo":
        return cls(
            id=data["LaunchTemplateId"],
            name=data.get("LaunchTemplateName", ""),
            default_version=data.get("DefaultVersionNumber"),
            latest_version=data.get("LatestVersionNumber"),
        )


class LaunchTemplateManager:
    """Find launch templates and promote images into new versions."""

    def __init__(self, region: str, timeout: int = 30):
        self.region = region
        self.timeout = timeout

    def find_template(self, environment: str) -> LaunchTemplateInfo | None:
        """Find the launch template tagged for an environment.

        Returns:
            LaunchTemplateInfo, or None if the environment has no template

        Raises:
            AmbiguousResourceError: If more than one template carries the tag
            LaunchTemplateError: If the query fails
        """
        cmd = [
            "aws",
            "ec2",
            "describe-launch-templates",
            "--filters",
            f"Name=tag:Environment,Values={environment}",
        ]
        data = self._run(cmd, f"Failed to describe launch templates for {environment}")
        templates = data.get("LaunchTemplates", [])

        if not templates:
            return None
        if len(templates) > 1:
            ids = ", ".join(t["LaunchTemplateId"] for t in templates)
            raise AmbiguousResourceError(
                f"Multiple launch templates tagged Environment={environment}: {ids}"
            )

        return LaunchTemplateInfo.from_api(templates[0])

    def create_version(
        self,
        template_id: str,
        image_id: str,
        description: str,
        client_token: str | None = None,
    ) -> int:
        """Create a template version that launches the given image.

        The version is based on the template's latest version, so everything
        except the image is carried over. The client token makes the request
        idempotent across transport retries.

        Returns:
            New version number

        Raises:
            LaunchTemplateError: If creation fails
        """
        if len(description) > MAX_VERSION_DESCRIPTION_LENGTH:
            description = description[: MAX_VERSION_DESCRIPTION_LENGTH - 3] + "..."

        cmd = [
            "aws",
            "ec2",
            "create-launch-template-version",
            "--launch-template-id",
            template_id,
            "--source-version",
            "$Latest",
            "--launch-template-data",
            json.dumps({"ImageId": image_id}),
            "--version-description",
            description,
            "--client-token",
            client_token or uuid.uuid4().hex,
        ]

        data = self._run(cmd, f"Failed to create version of launch template {template_id}")

        try:
            version = int(data["LaunchTemplateVersion"]["VersionNumber"])
        except (KeyError, TypeError, ValueError) as e:
            raise LaunchTemplateError(
                f"Unexpected create-launch-template-version response: {data}"
            ) from e

        logger.info(f"Created launch template {template_id} version {version} for {image_id}")
        return version

    def set_default_version(self, template_id: str, version: int) -> None:
        """Make a version the template's default.

        Raises:
            LaunchTemplateError: If the update fails
        """
        cmd = [
            "aws",
            "ec2",
            "modify-launch-template",
            "--launch-template-id",
            template_id,
            "--default-version",
            str(version),
        ]
        self._run(cmd, f"Failed to set default version of launch template {template_id}")
        logger.info(f"Launch template {template_id} default version is now {version}")

    def _run(self, cmd: list[str], failure_message: str) -> dict[str, Any]:
        try:
            return run_aws_json(cmd, region=self.region, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            logger.error(f"{failure_message}: {e.stderr}")
            raise LaunchTemplateError(f"{failure_message}: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise LaunchTemplateError(f"{failure_message}: AWS CLI timed out") from e
        except AwsCliError as e:
            raise LaunchTemplateError(f"{failure_message}: {e}") from e


__all__ = ["LaunchTemplateError", "LaunchTemplateInfo", "LaunchTemplateManager"]
