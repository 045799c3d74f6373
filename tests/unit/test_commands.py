"""Tests for the status, images, history and config commands."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from amipromote.cli import main
from amipromote.config_manager import ConfigManager
from amipromote.fleet_manager import FleetGroupInfo, InstanceRefreshStatus
from amipromote.image_registry import ImageRegistryError
from amipromote.launch_templates import LaunchTemplateInfo
from amipromote.rollback_records import RollbackRecord, RollbackRecordStore
from tests.conftest import FROZEN_NOW


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def wired(controller):
    with patch(
        "amipromote.commands.status.PromotionController.from_config", return_value=controller
    ) as from_config:
        yield from_config


class TestStatusCommand:
    def test_full_status(
        self, runner, wired, mock_registry, mock_templates, mock_fleet, make_image
    ):
        mock_registry.list_images.return_value = [make_image("img-2", production=True)]
        mock_templates.find_template.return_value = LaunchTemplateInfo(
            id="lt-1", name="staging-golden", default_version=4, latest_version=5
        )
        mock_fleet.find_group.return_value = FleetGroupInfo(
            name="asg-staging", desired_capacity=4, min_size=2, max_size=8
        )
        mock_fleet.describe_instance_refreshes.return_value = [
            InstanceRefreshStatus(refresh_id="r-1", status="InProgress", percentage_complete=50)
        ]

        result = runner.invoke(main, ["status", "staging"])

        assert result.exit_code == 0, result.output
        assert "Current image: img-2 (available)" in result.output
        assert "staging-golden (lt-1) default v4, latest v5" in result.output
        assert "asg-staging (desired 4, min 2, max 8)" in result.output
        assert "Instance refresh: r-1 InProgress (50%)" in result.output
        mock_fleet.describe_instance_refreshes.assert_called_once_with("asg-staging", max_records=1)

    def test_missing_infrastructure(self, runner, wired, mock_registry, mock_templates, mock_fleet):
        mock_registry.list_images.return_value = []
        mock_templates.find_template.return_value = None
        mock_fleet.find_group.return_value = None

        result = runner.invoke(main, ["status", "dev"])

        assert result.exit_code == 0, result.output
        assert "Current image: none tagged Production=true" in result.output
        assert "No launch template found for dev" in result.output
        assert "No Auto Scaling Group found for dev" in result.output

    def test_invalid_environment(self, runner, wired):
        result = runner.invoke(main, ["status", "qa"])

        assert result.exit_code == 1
        assert "Invalid environment 'qa'" in result.output

    def test_registry_failure(self, runner, wired, mock_registry):
        mock_registry.list_images.side_effect = ImageRegistryError("AccessDenied")

        result = runner.invoke(main, ["status", "staging"])

        assert result.exit_code == 1
        assert "AccessDenied" in result.output


class TestImagesCommand:
    def test_lists_images(self, runner, wired, mock_registry, make_image):
        images = [make_image("img-1", 0), make_image("img-2", 1, production=True)]

        def _list(environment, *, available_only=True, production_only=False):
            return [images[1]] if production_only else images

        mock_registry.list_images.side_effect = _list

        result = runner.invoke(main, ["images", "staging"])

        assert result.exit_code == 0, result.output
        assert "Total: 2 image(s)" in result.output

    def test_all_includes_unavailable(self, runner, wired, mock_registry):
        mock_registry.list_images.return_value = []

        result = runner.invoke(main, ["images", "staging", "--all"])

        assert result.exit_code == 0
        assert "No images found for staging" in result.output
        mock_registry.list_images.assert_called_once_with("staging", available_only=False)


class TestHistoryCommand:
    def _write(self, environment, reason):
        store = RollbackRecordStore(ConfigManager.DEFAULT_CONFIG_DIR / "rollback-records")
        record = RollbackRecord(
            timestamp="2025-03-10T08:30:15Z",
            environment=environment,
            reason=reason,
            from_image_id="img-2",
            to_image_id="img-1",
            initiated_by="alice",
        )
        store.write(record, FROZEN_NOW)

    def test_empty(self, runner):
        result = runner.invoke(main, ["history"])

        assert result.exit_code == 0
        assert "No rollback records in" in result.output

    def test_lists_records(self, runner):
        self._write("staging", "broken nginx")
        self._write("production", "5xx spike")

        result = runner.invoke(main, ["history"])

        assert result.exit_code == 0, result.output
        assert "Total: 2 rollback record(s)" in result.output

    def test_filter_by_environment(self, runner):
        self._write("staging", "broken nginx")
        self._write("production", "5xx spike")

        result = runner.invoke(main, ["history", "-e", "production"])

        assert "Total: 1 rollback record(s)" in result.output

    def test_records_dir_option(self, runner, tmp_path):
        self._write("staging", "broken nginx")

        result = runner.invoke(main, ["history", "--records-dir", str(tmp_path / "elsewhere")])

        assert "No rollback records in" in result.output

    def test_invalid_environment(self, runner):
        result = runner.invoke(main, ["history", "-e", "qa"])

        assert result.exit_code == 1


class TestConfigCommands:
    def test_show_defaults(self, runner):
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "default_region = us-east-1" in result.output
        assert "production_flag_policy = keep" in result.output

    def test_set_and_show(self, runner):
        result = runner.invoke(main, ["config", "set", "production_flag_policy", "exclusive"])
        assert result.exit_code == 0, result.output
        assert "✓ production_flag_policy = exclusive" in result.output

        result = runner.invoke(main, ["config", "show"])
        assert "production_flag_policy = exclusive" in result.output

    def test_set_numeric(self, runner):
        result = runner.invoke(main, ["config", "set", "lock_timeout", "2.5"])

        assert result.exit_code == 0, result.output
        assert ConfigManager.load_config().lock_timeout == 2.5

    def test_set_invalid_value(self, runner):
        result = runner.invoke(main, ["config", "set", "production_flag_policy", "sometimes"])

        assert result.exit_code == 1
        assert "Invalid production_flag_policy" in result.output

    def test_set_unknown_key(self, runner):
        result = runner.invoke(main, ["config", "set", "colour", "blue"])

        assert result.exit_code == 2
        assert "colour" in result.output
