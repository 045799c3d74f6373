"""Promotion controller: deploy and roll back golden images.

Selection and validation are read-only and raise before anything is changed.
Execution runs the mutating steps strictly in order and stops at the first
failure; steps already applied are not undone, and re-running the command is
the recovery path.

Deploy:
    1. New launch template version -> default version
    2. Instance refresh (staged, checkpoints at 50% and 100%)
    3. LastDeployed / DeployedTo tags on the image

Rollback:
    1. Superseded tags on the current image
    2. Production tags on the target image
    3. New launch template version -> default version
    4. Instance refresh (single pass)
    5. Rollback record
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from amipromote.config_manager import ConfigManager, PromoteConfig
from amipromote.environments import Environment
from amipromote.errors import (
    ImageNotAvailable,
    InvalidRollbackTarget,
    NoCurrentImage,
    NoImageFound,
    NoPreviousImage,
    SelectionChanged,
)
from amipromote.fleet_manager import (
    DEPLOY_REFRESH,
    ROLLBACK_REFRESH,
    FleetGroupInfo,
    FleetManager,
    RefreshPreferences,
)
from amipromote.image_registry import ImageInfo, ImageRegistry
from amipromote.interaction_handler import InteractionHandler
from amipromote.launch_templates import LaunchTemplateInfo, LaunchTemplateManager
from amipromote.pointer_store import ImagePointerStore
from amipromote.rollback_records import RollbackRecord, RollbackRecordStore

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(when: datetime) -> str:
    """Format a datetime as the UTC timestamp used in tags and records."""
    return when.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class DeployResult:
    """Outcome of a deploy."""

    environment: str
    image_id: str
    timestamp: str
    template_version: int | None = None
    group_name: str | None = None
    refresh_id: str | None = None


@dataclass
class RollbackResult:
    """Outcome of a rollback."""

    environment: str
    from_image_id: str
    to_image_id: str
    reason: str
    timestamp: str
    template_version: int | None = None
    group_name: str | None = None
    refresh_id: str | None = None
    record_path: Path | None = None


class PromotionController:
    """Select, validate and promote golden images for one region."""

    def __init__(
        self,
        registry: ImageRegistry,
        templates: LaunchTemplateManager,
        fleet: FleetManager,
        records: RollbackRecordStore,
        pointer: ImagePointerStore | None = None,
        production_flag_policy: str = "keep",
        handler: InteractionHandler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.templates = templates
        self.fleet = fleet
        self.records = records
        self.pointer = pointer
        self.production_flag_policy = production_flag_policy
        self.handler = handler
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        region: str,
        config: PromoteConfig,
        records_dir: Path | None = None,
        handler: InteractionHandler | None = None,
    ) -> "PromotionController":
        """Wire a controller against the AWS CLI."""
        timeout = config.command_timeout
        pointer = None
        if config.pointer_parameter_prefix:
            pointer = ImagePointerStore(config.pointer_parameter_prefix, region, timeout)

        return cls(
            registry=ImageRegistry(region, timeout),
            templates=LaunchTemplateManager(region, timeout),
            fleet=FleetManager(region, timeout),
            records=RollbackRecordStore(records_dir or ConfigManager.get_records_dir(config)),
            pointer=pointer,
            production_flag_policy=config.production_flag_policy,
            handler=handler,
        )

    # Selection

    def select_deploy_target(
        self, environment: Environment, image_id: str | None = None
    ) -> ImageInfo:
        """Pick the image to deploy.

        With an explicit ID the image must exist and be available. Otherwise
        the most recently created available image of the environment is used.

        Raises:
            ImageNotAvailable: If the explicit image is missing or not available
            NoImageFound: If the environment has no available image
        """
        if image_id:
            return self._require_available(image_id)

        images = self.registry.list_images(environment.value)
        if not images:
            raise NoImageFound(f"No available image found for {environment}")

        latest = images[-1]
        logger.debug(f"Latest available image for {environment}: {latest.id}")
        return latest

    def resolve_current(self, environment: Environment) -> ImageInfo:
        """Find the image currently live in an environment.

        Uses the pointer store when configured and populated, otherwise the
        most recently created image tagged Production=true.

        Raises:
            NoCurrentImage: If no current image can be determined
        """
        if self.pointer is not None:
            pointed_id = self.pointer.get_current(environment.value)
            if pointed_id:
                image = self.registry.get_image(pointed_id)
                if image is not None:
                    return image
                logger.warning(
                    f"Current-image pointer for {environment} names missing image "
                    f"{pointed_id}; falling back to Production tags"
                )

        flagged = self.registry.list_images(
            environment.value, available_only=False, production_only=True
        )
        if not flagged:
            raise NoCurrentImage(f"No image tagged Production=true for {environment}")
        return flagged[-1]

    def select_rollback_target(
        self, environment: Environment, image_id: str | None = None
    ) -> tuple[ImageInfo, ImageInfo]:
        """Resolve the current image and the image to roll back to.

        Without an explicit ID the target is the second most recently created
        available image of the environment.

        Returns:
            (current, target)

        Raises:
            NoCurrentImage: If the current image cannot be determined
            NoPreviousImage: If fewer than two available images exist
            InvalidRollbackTarget: If the target is the current image
            ImageNotAvailable: If the target is missing or not available
        """
        current = self.resolve_current(environment)

        if image_id:
            target_id = image_id
        else:
            images = self.registry.list_images(environment.value)
            if len(images) < 2:
                raise NoPreviousImage(f"No previous image found for rollback in {environment}")
            target_id = images[-2].id

        if target_id == current.id:
            raise InvalidRollbackTarget(
                f"Target image {target_id} is the same as the current image"
            )

        target = self._require_available(target_id)
        return current, target

    def verify_current(self, environment: Environment, current: ImageInfo) -> None:
        """Check that the current image is unchanged since selection.

        Called under the environment lease: a rollback that waited for another
        promotion must not act on the image that promotion already replaced.

        Raises:
            SelectionChanged: If the current image or its tags changed
        """
        latest = self.resolve_current(environment)
        if latest.id != current.id:
            raise SelectionChanged(
                f"Current image of {environment} changed from {current.id} to {latest.id}"
            )

        refreshed = self.registry.get_image(current.id)
        if refreshed is None or refreshed.tags != current.tags:
            raise SelectionChanged(
                f"Image {current.id} was modified by another promotion of {environment}"
            )

    def _require_available(self, image_id: str) -> ImageInfo:
        if not ImageRegistry.IMAGE_ID_PATTERN.match(image_id):
            raise ImageNotAvailable(image_id)

        image = self.registry.get_image(image_id)
        if image is None:
            raise ImageNotAvailable(image_id)
        if not image.is_available:
            raise ImageNotAvailable(image_id, image.state.value)
        return image

    # Launch template and fleet

    def promote(self, environment: Environment, image_id: str, description: str) -> int | None:
        """Point the environment's launch template at an image.

        Returns:
            New default version number, or None if the environment has no template
        """
        return self._promote_template(
            environment, self.templates.find_template(environment.value), image_id, description
        )

    def refresh(self, environment: Environment, preferences: RefreshPreferences) -> str | None:
        """Start an instance refresh of the environment's fleet.

        Returns:
            Refresh ID, or None if the environment has no Auto Scaling Group
        """
        group = self.fleet.find_group(environment.value)
        return self._start_refresh(environment, group, preferences)

    def _promote_template(
        self,
        environment: Environment,
        template: LaunchTemplateInfo | None,
        image_id: str,
        description: str,
    ) -> int | None:
        if template is None:
            self._warn(f"No launch template found for {environment}")
            return None

        # One token per promotion: transport retries reuse it, a re-run gets a new one
        client_token = uuid.uuid4().hex
        version = self.templates.create_version(template.id, image_id, description, client_token)
        self._report(f"✓ Created launch template version: {version}")

        self.templates.set_default_version(template.id, version)
        self._report(f"✓ Set version {version} as default")
        return version

    def _start_refresh(
        self,
        environment: Environment,
        group: FleetGroupInfo | None,
        preferences: RefreshPreferences,
    ) -> str | None:
        if group is None:
            self._warn(f"No Auto Scaling Group found for {environment}")
            return None

        self._report(f"Initiating instance refresh of {group.name}...")
        refresh_id = self.fleet.start_instance_refresh(group.name, preferences)
        self._report(f"✓ Instance refresh started: {refresh_id}")
        return refresh_id

    # Execution

    def execute_deploy(self, environment: Environment, image: ImageInfo) -> DeployResult:
        """Deploy a selected image. The safety gate must already have passed."""
        timestamp = format_timestamp(self.clock())

        template = self.templates.find_template(environment.value)
        group = self.fleet.find_group(environment.value)

        result = DeployResult(environment=environment.value, image_id=image.id, timestamp=timestamp)
        result.template_version = self._promote_template(
            environment, template, image.id, f"Deployed AMI {image.id} on {timestamp}"
        )
        result.refresh_id = self._start_refresh(environment, group, DEPLOY_REFRESH)
        result.group_name = group.name if group else None

        self.registry.set_tags(
            image.id,
            {
                ImageRegistry.TAG_LAST_DEPLOYED: timestamp,
                ImageRegistry.TAG_DEPLOYED_TO: environment.value,
            },
        )
        self._report(f"✓ Tagged {image.id} as deployed to {environment}")

        if self.production_flag_policy == "exclusive":
            self._make_exclusive_production(environment, image)

        self._update_pointer(environment, image.id)
        return result

    def execute_rollback(
        self,
        environment: Environment,
        current: ImageInfo,
        target: ImageInfo,
        reason: str,
        initiated_by: str,
    ) -> RollbackResult:
        """Roll back to a selected target. The safety gate must already have passed."""
        now = self.clock()
        timestamp = format_timestamp(now)

        template = self.templates.find_template(environment.value)
        group = self.fleet.find_group(environment.value)

        superseded_tags = {
            ImageRegistry.TAG_STATUS: ImageRegistry.STATUS_SUPERSEDED,
            ImageRegistry.TAG_SUPERSEDED_DATE: timestamp,
            ImageRegistry.TAG_ROLLBACK_REASON: reason,
        }
        if self.production_flag_policy == "exclusive":
            superseded_tags[ImageRegistry.TAG_PRODUCTION] = "false"

        self._report("Tagging current image as superseded...")
        self.registry.set_tags(current.id, superseded_tags)
        self._report(f"✓ Tagged {current.id} as superseded")

        self._report("Promoting rollback image to production...")
        self.registry.set_tags(
            target.id,
            {
                ImageRegistry.TAG_PRODUCTION: "true",
                ImageRegistry.TAG_ROLLED_BACK_DATE: timestamp,
                ImageRegistry.TAG_ROLLBACK_REASON: reason,
            },
        )
        self._report(f"✓ Promoted {target.id} to production")

        result = RollbackResult(
            environment=environment.value,
            from_image_id=current.id,
            to_image_id=target.id,
            reason=reason,
            timestamp=timestamp,
        )
        result.template_version = self._promote_template(
            environment, template, target.id, f"ROLLBACK: {reason}"
        )
        result.refresh_id = self._start_refresh(environment, group, ROLLBACK_REFRESH)
        result.group_name = group.name if group else None

        record = RollbackRecord(
            timestamp=timestamp,
            environment=environment.value,
            reason=reason,
            from_image_id=current.id,
            to_image_id=target.id,
            initiated_by=initiated_by,
        )
        result.record_path = self.records.write(record, now)
        self._report(f"✓ Rollback record saved: {result.record_path}")

        self._update_pointer(environment, target.id)
        return result

    def _make_exclusive_production(self, environment: Environment, image: ImageInfo) -> None:
        flagged = self.registry.list_images(
            environment.value, available_only=False, production_only=True
        )
        for other in flagged:
            if other.id != image.id:
                self.registry.set_tags(other.id, {ImageRegistry.TAG_PRODUCTION: "false"})
                self._report(f"✓ Cleared Production flag on {other.id}")

        self.registry.set_tags(image.id, {ImageRegistry.TAG_PRODUCTION: "true"})
        self._report(f"✓ Marked {image.id} as the production image of {environment}")

    def _update_pointer(self, environment: Environment, image_id: str) -> None:
        if self.pointer is None:
            return
        self.pointer.set_current(environment.value, image_id)
        self._report(f"✓ Current-image pointer for {environment} set to {image_id}")

    def _report(self, message: str) -> None:
        if self.handler is not None:
            self.handler.show_info(message)
        else:
            logger.info(message)

    def _warn(self, message: str) -> None:
        if self.handler is not None:
            self.handler.show_warning(message)
        else:
            logger.warning(message)


__all__ = [
    "DeployResult",
    "PromotionController",
    "RollbackResult",
    "format_timestamp",
]
