"""Auto Scaling Group instance refresh.

An environment's fleet is the Auto Scaling Group tagged with its name. After
a launch template promotion the fleet is replaced by a rolling instance
refresh. Refreshes are started and reported, never awaited.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from amipromote.aws_cli_executor import AwsCliError, run_aws_json
from amipromote.errors import AmbiguousResourceError
from amipromote.image_registry import parse_aws_timestamp

logger = logging.getLogger(__name__)


class FleetError(Exception):
    """Raised when Auto Scaling Group operations fail."""

    pass


@dataclass(frozen=True)
class RefreshPreferences:
    """Instance refresh preferences."""

    min_healthy_percentage: int = 90
    instance_warmup: int = 300
    checkpoint_percentages: tuple[int, ...] = ()
    checkpoint_delay: int | None = None

    def to_api(self) -> dict[str, Any]:
        prefs: dict[str, Any] = {
            "MinHealthyPercentage": self.min_healthy_percentage,
            "InstanceWarmup": self.instance_warmup,
        }
        if self.checkpoint_percentages:
            prefs["CheckpointPercentages"] = list(self.checkpoint_percentages)
            if self.checkpoint_delay is not None:
                prefs["CheckpointDelay"] = self.checkpoint_delay
        return prefs


# Staged rollout for new images: pause at 50% before finishing.
DEPLOY_REFRESH = RefreshPreferences(checkpoint_percentages=(50, 100), checkpoint_delay=300)

# Single pass for rollbacks.
ROLLBACK_REFRESH = RefreshPreferences()


@dataclass
class FleetGroupInfo:
    """Auto Scaling Group summary."""

    name: str
    environment: str | None = None
    desired_capacity: int | None = None
    min_size: int | None = None
    max_size: int | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "FleetGroupInfo":
        tags = {tag["Key"]: tag.get("Value", "") for tag in data.get("Tags") or []}
        return cls(
            name=data["AutoScalingGroupName"],
            environment=tags.get("Environment"),
            desired_capacity=data.get("DesiredCapacity"),
            min_size=data.get("MinSize"),
            max_size=data.get("MaxSize"),
            tags=tags,
        )


@dataclass
class InstanceRefreshStatus:
    """State of one instance refresh."""

    refresh_id: str
    status: str
    percentage_complete: int | None = None
    status_reason: str | None = None
    start_time: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "InstanceRefreshStatus":
        start = data.get("StartTime")
        return cls(
            refresh_id=data["InstanceRefreshId"],
            status=data.get("Status", "Unknown"),
            percentage_complete=data.get("PercentageComplete"),
            status_reason=data.get("StatusReason"),
            start_time=parse_aws_timestamp(start) if start else None,
        )


class FleetManager:
    """Find an environment's Auto Scaling Group and refresh its instances."""

    def __init__(self, region: str, timeout: int = 30):
        self.region = region
        self.timeout = timeout

    def find_group(self, environment: str) -> FleetGroupInfo | None:
        """Find the Auto Scaling Group tagged for an environment.

        Returns:
            FleetGroupInfo, or None if the environment has no group

        Raises:
            AmbiguousResourceError: If more than one group carries the tag
            FleetError: If the query fails
        """
        cmd = [
            "aws",
            "autoscaling",
            "describe-auto-scaling-groups",
            "--filters",
            f"Name=tag:Environment,Values={environment}",
        ]
        data = self._run(cmd, f"Failed to describe Auto Scaling Groups for {environment}")
        groups = data.get("AutoScalingGroups", [])

        if not groups:
            return None
        if len(groups) > 1:
            names = ", ".join(g["AutoScalingGroupName"] for g in groups)
            raise AmbiguousResourceError(
                f"Multiple Auto Scaling Groups tagged Environment={environment}: {names}"
            )

        return FleetGroupInfo.from_api(groups[0])

    def start_instance_refresh(self, group_name: str, preferences: RefreshPreferences) -> str:
        """Start a rolling instance refresh.

        Returns:
            Instance refresh ID

        Raises:
            FleetError: If the refresh cannot be started
        """
        cmd = [
            "aws",
            "autoscaling",
            "start-instance-refresh",
            "--auto-scaling-group-name",
            group_name,
            "--preferences",
            json.dumps(preferences.to_api()),
        ]
        # A timed-out start may have succeeded; a retry would hit InstanceRefreshInProgress
        data = self._run(
            cmd, f"Failed to start instance refresh for {group_name}", idempotent=False
        )

        refresh_id = data.get("InstanceRefreshId")
        if not refresh_id:
            raise FleetError(f"start-instance-refresh returned no refresh ID for {group_name}")

        logger.info(f"Instance refresh {refresh_id} started for {group_name}")
        return refresh_id

    def describe_instance_refreshes(
        self, group_name: str, refresh_id: str | None = None, max_records: int = 5
    ) -> list[InstanceRefreshStatus]:
        """Describe recent instance refreshes of a group, newest first.

        Raises:
            FleetError: If the query fails
        """
        cmd = [
            "aws",
            "autoscaling",
            "describe-instance-refreshes",
            "--auto-scaling-group-name",
            group_name,
            "--max-records",
            str(max_records),
        ]
        if refresh_id:
            cmd.extend(["--instance-refresh-ids", refresh_id])

        data = self._run(cmd, f"Failed to describe instance refreshes for {group_name}")
        return [InstanceRefreshStatus.from_api(item) for item in data.get("InstanceRefreshes", [])]

    def _run(
        self, cmd: list[str], failure_message: str, idempotent: bool = True
    ) -> dict[str, Any]:
        try:
            return run_aws_json(
                cmd, region=self.region, timeout=self.timeout, idempotent=idempotent
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"{failure_message}: {e.stderr}")
            raise FleetError(f"{failure_message}: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise FleetError(f"{failure_message}: AWS CLI timed out") from e
        except AwsCliError as e:
            raise FleetError(f"{failure_message}: {e}") from e


__all__ = [
    "DEPLOY_REFRESH",
    "ROLLBACK_REFRESH",
    "FleetError",
    "FleetGroupInfo",
    "FleetManager",
    "InstanceRefreshStatus",
    "RefreshPreferences",
]
