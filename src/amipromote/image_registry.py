"""Golden image registry access.

This module reads golden AMIs and writes their tags through the AWS CLI.
Images are built elsewhere; this module never creates or deregisters them.

Security:
- Input validation for image IDs and tag keys
- No shell=True
- Tags passed as a JSON document, never through shorthand parsing
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from amipromote.aws_cli_executor import AwsCliError, aws_error_code, run_aws_json

logger = logging.getLogger(__name__)

MAX_TAG_VALUE_LENGTH = 256


class ImageRegistryError(Exception):
    """Raised when image registry operations fail."""

    pass


class ImageState(str, Enum):
    """Lifecycle state of an image as reported by EC2."""

    PENDING = "pending"
    AVAILABLE = "available"
    FAILED = "failed"
    DEREGISTERED = "deregistered"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "ImageState":
        try:
            return cls(value or "")
        except ValueError:
            return cls.UNKNOWN


@dataclass
class ImageInfo:
    """One immutable golden image."""

    id: str
    state: ImageState
    creation_date: datetime
    tags: dict[str, str] = field(default_factory=dict)
    name: str | None = None
    description: str | None = None

    @property
    def is_available(self) -> bool:
        return self.state is ImageState.AVAILABLE

    @property
    def environment(self) -> str | None:
        return self.tags.get(ImageRegistry.TAG_ENVIRONMENT)

    @property
    def is_production(self) -> bool:
        return self.tags.get(ImageRegistry.TAG_PRODUCTION, "").lower() == "true"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ImageInfo":
        """Build from one element of describe-images' Images list."""
        tags = {tag["Key"]: tag.get("Value", "") for tag in data.get("Tags") or []}
        return cls(
            id=data["ImageId"],
            state=ImageState.parse(data.get("State")),
            creation_date=parse_aws_timestamp(data.get("CreationDate")),
            tags=tags,
            name=data.get("Name"),
            description=data.get("Description"),
        )


def parse_aws_timestamp(value: str | None) -> datetime:
    """Parse an AWS ISO 8601 timestamp into an aware UTC datetime.

    A missing timestamp sorts before every real one.
    """
    if not value:
        return datetime.min.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def sort_by_creation_date(images: list[ImageInfo]) -> list[ImageInfo]:
    """Order images oldest first. Ties keep the registry's order."""
    return sorted(images, key=lambda image: image.creation_date)


class ImageRegistry:
    """Query and tag golden images owned by this account."""

    TAG_ENVIRONMENT = "Environment"
    TAG_PRODUCTION = "Production"
    TAG_STATUS = "Status"
    TAG_LAST_DEPLOYED = "LastDeployed"
    TAG_DEPLOYED_TO = "DeployedTo"
    TAG_ROLLED_BACK_DATE = "RolledBackDate"
    TAG_ROLLBACK_REASON = "RollbackReason"
    TAG_SUPERSEDED_DATE = "SupersededDate"

    STATUS_SUPERSEDED = "Superseded"

    TAG_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_.:/=+@ -]{1,128}$")
    IMAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$")

    def __init__(self, region: str, timeout: int = 30):
        self.region = region
        self.timeout = timeout

    @classmethod
    def validate_image_id(cls, image_id: str) -> None:
        """Reject IDs that could be read as CLI options or contain whitespace.

        Raises:
            ImageRegistryError: If the ID is malformed
        """
        if not image_id or not cls.IMAGE_ID_PATTERN.match(image_id):
            raise ImageRegistryError(f"Invalid image ID: {image_id!r}")

    def list_images(
        self,
        environment: str,
        *,
        available_only: bool = True,
        production_only: bool = False,
    ) -> list[ImageInfo]:
        """List images tagged for an environment, oldest first.

        Args:
            environment: Value of the Environment tag
            available_only: Only images in the available state
            production_only: Only images tagged Production=true

        Returns:
            Images sorted by creation date ascending

        Raises:
            ImageRegistryError: If the query fails
        """
        filters = [f"Name=tag:{self.TAG_ENVIRONMENT},Values={environment}"]
        if production_only:
            filters.append(f"Name=tag:{self.TAG_PRODUCTION},Values=true")
        if available_only:
            filters.append(f"Name=state,Values={ImageState.AVAILABLE.value}")

        cmd = ["aws", "ec2", "describe-images", "--owners", "self", "--filters", *filters]

        logger.debug(f"Listing images for {environment}: {filters}")

        data = self._run(cmd, f"Failed to list images for {environment}")
        images = [ImageInfo.from_api(item) for item in data.get("Images", [])]
        return sort_by_creation_date(images)

    def get_image(self, image_id: str) -> ImageInfo | None:
        """Fetch one image by ID.

        Returns:
            ImageInfo, or None if the image does not exist

        Raises:
            ImageRegistryError: If the ID is malformed or the query fails
        """
        self.validate_image_id(image_id)

        cmd = ["aws", "ec2", "describe-images", "--image-ids", image_id]

        try:
            data = run_aws_json(cmd, region=self.region, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            code = aws_error_code(e.stderr)
            if code and code.startswith("InvalidAMIID"):
                logger.debug(f"Image {image_id} not found ({code})")
                return None
            logger.error(f"Failed to describe image {image_id}: {e.stderr}")
            raise ImageRegistryError(f"Failed to describe image {image_id}: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise ImageRegistryError("Image query timed out") from e
        except AwsCliError as e:
            raise ImageRegistryError(str(e)) from e

        images = data.get("Images", [])
        if not images:
            return None
        return ImageInfo.from_api(images[0])

    def set_tags(self, image_id: str, tags: dict[str, str]) -> None:
        """Create or overwrite tags on an image.

        Values longer than the EC2 limit are truncated with a warning.

        Raises:
            ImageRegistryError: If validation or the tag write fails
        """
        self.validate_image_id(image_id)

        tag_list = []
        for key, value in tags.items():
            if not self.TAG_KEY_PATTERN.match(key):
                raise ImageRegistryError(f"Invalid tag key: {key}")
            if len(value) > MAX_TAG_VALUE_LENGTH:
                logger.warning(
                    f"Tag {key} on {image_id} truncated to {MAX_TAG_VALUE_LENGTH} characters"
                )
                value = value[:MAX_TAG_VALUE_LENGTH]
            tag_list.append({"Key": key, "Value": value})

        cmd = [
            "aws",
            "ec2",
            "create-tags",
            "--resources",
            image_id,
            "--tags",
            json.dumps(tag_list),
        ]

        logger.debug(f"Tagging image {image_id}: {tags}")
        self._run(cmd, f"Failed to tag image {image_id}")
        logger.info(f"Tagged image {image_id} ({', '.join(tags)})")

    def _run(self, cmd: list[str], failure_message: str) -> dict[str, Any]:
        try:
            return run_aws_json(cmd, region=self.region, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            logger.error(f"{failure_message}: {e.stderr}")
            raise ImageRegistryError(f"{failure_message}: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise ImageRegistryError(f"{failure_message}: AWS CLI timed out") from e
        except AwsCliError as e:
            raise ImageRegistryError(f"{failure_message}: {e}") from e


__all__ = [
    "ImageInfo",
    "ImageRegistry",
    "ImageRegistryError",
    "ImageState",
    "parse_aws_timestamp",
    "sort_by_creation_date",
]
