"""Tests for the deploy and rollback commands.

The PromotionController is wired to mocked collaborators; prompts are
answered through CliRunner input.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from amipromote import __version__
from amipromote.cli import get_operator, main
from amipromote.config_manager import ConfigManager, PromoteConfig
from amipromote.file_lock_manager import environment_lease
from amipromote.fleet_manager import FleetError, FleetGroupInfo
from amipromote.image_registry import ImageState
from amipromote.launch_templates import LaunchTemplateInfo


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def wired(controller, mock_templates, mock_fleet):
    """Patch the CLI to use the mocked controller."""
    mock_templates.find_template.return_value = LaunchTemplateInfo(id="lt-1", name="golden")
    mock_templates.create_version.return_value = 7
    mock_fleet.find_group.return_value = FleetGroupInfo(name="asg-1")
    mock_fleet.start_instance_refresh.return_value = "refresh-1"

    with patch(
        "amipromote.cli.PromotionController.from_config", return_value=controller
    ) as from_config:
        yield from_config


@pytest.fixture
def staging_images(mock_registry, make_image):
    """img-1 (older) and img-2 (newer, Production=true)."""
    img1 = make_image("img-1", 0)
    img2 = make_image("img-2", 1, production=True)

    def _list(environment, *, available_only=True, production_only=False):
        return [img2] if production_only else [img1, img2]

    mock_registry.list_images.side_effect = _list
    mock_registry.get_image.side_effect = {"img-1": img1, "img-2": img2}.get
    return img1, img2


class TestEnvironmentArgument:
    def test_invalid_environment(self, runner, wired):
        result = runner.invoke(main, ["deploy", "qa"])

        assert result.exit_code == 1
        assert "Invalid environment 'qa'" in result.output
        assert "Usage:" in result.output
        wired.assert_not_called()

    @pytest.mark.parametrize("command", ["deploy", "rollback"])
    def test_missing_environment(self, runner, wired, command):
        result = runner.invoke(main, [command])

        assert result.exit_code == 1
        assert "Environment is required" in result.output
        wired.assert_not_called()


class TestDeployCommand:
    def test_deploy_latest_to_dev(self, runner, wired, mock_registry, mock_templates, make_image):
        mock_registry.list_images.return_value = [make_image("img-1", 0), make_image("img-3", 2)]

        result = runner.invoke(main, ["deploy", "dev"])

        assert result.exit_code == 0, result.output
        assert "Deploying golden image to dev (us-east-1)" in result.output
        assert "Selected latest AMI: img-3" in result.output
        assert "✓ Deployment Complete" in result.output
        assert "AMI img-3 deployed to dev" in result.output
        assert mock_templates.create_version.call_args[0][1] == "img-3"

    def test_explicit_image(self, runner, wired, mock_registry, make_image):
        mock_registry.get_image.return_value = make_image("ami-x")

        result = runner.invoke(main, ["deploy", "staging", "ami-x"])

        assert result.exit_code == 0, result.output
        assert "Using specified AMI: ami-x" in result.output
        mock_registry.list_images.assert_not_called()

    def test_region_option(self, runner, wired, mock_registry, make_image, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        mock_registry.list_images.return_value = [make_image("img-1")]

        result = runner.invoke(main, ["deploy", "dev", "--region", "ap-south-1"])

        assert result.exit_code == 0, result.output
        assert "(ap-south-1)" in result.output
        assert wired.call_args[0][0] == "ap-south-1"

    def test_region_from_environment(self, runner, wired, mock_registry, make_image, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        mock_registry.list_images.return_value = [make_image("img-1")]

        result = runner.invoke(main, ["deploy", "dev"])

        assert "(eu-west-1)" in result.output

    def test_no_image_found(self, runner, wired, mock_registry, mock_templates):
        mock_registry.list_images.return_value = []

        result = runner.invoke(main, ["deploy", "dev"])

        assert result.exit_code == 1
        assert "No available image found for dev" in result.output
        mock_templates.find_template.assert_not_called()

    def test_production_requires_confirmation(
        self, runner, wired, mock_registry, mock_templates, make_image
    ):
        mock_registry.list_images.return_value = [make_image("img-1", environment="production")]

        result = runner.invoke(main, ["deploy", "production"], input="yes\n")

        assert result.exit_code == 0, result.output
        assert "Deploy to PRODUCTION? (yes/no)" in result.output
        assert "✓ Deployment Complete" in result.output
        mock_templates.create_version.assert_called_once()

    @pytest.mark.parametrize("answer", ["no", "y", "YES", ""])
    def test_production_declined(
        self, runner, wired, mock_registry, mock_templates, mock_fleet, make_image, answer
    ):
        mock_registry.list_images.return_value = [make_image("img-1", environment="production")]

        result = runner.invoke(main, ["deploy", "production"], input=f"{answer}\n")

        assert result.exit_code == 0, result.output
        assert "Deployment cancelled." in result.output
        mock_templates.find_template.assert_not_called()
        mock_templates.create_version.assert_not_called()
        mock_fleet.start_instance_refresh.assert_not_called()
        mock_registry.set_tags.assert_not_called()

    def test_non_production_does_not_prompt(self, runner, wired, mock_registry, make_image):
        mock_registry.list_images.return_value = [make_image("img-1")]

        result = runner.invoke(main, ["deploy", "staging"])

        assert result.exit_code == 0, result.output
        assert "(yes/no)" not in result.output

    def test_collaborator_failure(self, runner, wired, mock_registry, mock_fleet, make_image):
        mock_registry.list_images.return_value = [make_image("img-1")]
        mock_fleet.start_instance_refresh.side_effect = FleetError("refresh refused")

        result = runner.invoke(main, ["deploy", "staging"])

        assert result.exit_code == 1
        assert "refresh refused" in result.output
        assert "not reverted" in result.output
        mock_registry.set_tags.assert_not_called()

    def test_lease_held_elsewhere(self, runner, wired, mock_registry, mock_templates, make_image):
        ConfigManager.save_config(PromoteConfig(lock_timeout=0.2))
        mock_registry.list_images.return_value = [make_image("img-1")]

        with environment_lease(ConfigManager.get_lock_dir(), "staging"):
            result = runner.invoke(main, ["deploy", "staging"])

        assert result.exit_code == 1
        assert "in progress" in result.output
        mock_templates.create_version.assert_not_called()


class TestRollbackCommand:
    def test_rollback_with_prompted_reason(
        self, runner, wired, staging_images, records_store, monkeypatch
    ):
        monkeypatch.setenv("USER", "alice")

        result = runner.invoke(main, ["rollback", "staging"], input="broken nginx\nyes\n")

        assert result.exit_code == 0, result.output
        assert "Current production AMI: img-2" in result.output
        assert "Selected previous AMI: img-1" in result.output
        assert "Proceed with rollback from img-2 to img-1? (yes/no)" in result.output
        assert "✓ Rollback Complete" in result.output
        records = records_store.list_records("staging")
        assert len(records) == 1
        assert records[0].reason == "broken nginx"
        assert records[0].initiated_by == "alice"

    def test_reason_option_skips_prompt(self, runner, wired, staging_images, records_store):
        result = runner.invoke(
            main, ["rollback", "staging", "--reason", "  5xx spike  "], input="yes\n"
        )

        assert result.exit_code == 0, result.output
        assert "Enter reason for rollback" not in result.output
        assert records_store.list_records()[0].reason == "5xx spike"

    @pytest.mark.parametrize("reason_input", ["\n", "   \n"])
    def test_empty_reason_aborts(
        self, runner, wired, staging_images, mock_registry, records_store, reason_input
    ):
        result = runner.invoke(main, ["rollback", "staging"], input=reason_input)

        assert result.exit_code == 1
        assert "Rollback reason is required" in result.output
        mock_registry.list_images.assert_not_called()
        mock_registry.set_tags.assert_not_called()
        assert records_store.list_records() == []

    def test_declined(
        self, runner, wired, staging_images, mock_registry, mock_templates, records_store
    ):
        result = runner.invoke(main, ["rollback", "staging"], input="broken nginx\nno\n")

        assert result.exit_code == 0, result.output
        assert "Rollback cancelled." in result.output
        mock_registry.set_tags.assert_not_called()
        mock_templates.create_version.assert_not_called()
        assert records_store.list_records() == []

    def test_target_equal_to_current(self, runner, wired, staging_images, mock_registry):
        result = runner.invoke(
            main, ["rollback", "staging", "img-2", "--reason", "retry"], input="yes\n"
        )

        assert result.exit_code == 1
        assert "same as the current image" in result.output
        mock_registry.set_tags.assert_not_called()

    def test_unavailable_target(self, runner, wired, staging_images, mock_registry, make_image):
        mock_registry.get_image.side_effect = None
        mock_registry.get_image.return_value = make_image("img-0", state=ImageState.PENDING)

        result = runner.invoke(main, ["rollback", "staging", "img-0", "--reason", "bad build"])

        assert result.exit_code == 1
        assert "Image img-0 is not available (state: pending)" in result.output
        mock_registry.set_tags.assert_not_called()

    def test_current_replaced_while_waiting_for_lease(
        self, runner, wired, staging_images, mock_registry, make_image, records_store
    ):
        img1, _ = staging_images
        superseded = make_image("img-2", 1, production=True, Status="Superseded")
        mock_registry.get_image.side_effect = {"img-1": img1, "img-2": superseded}.get

        result = runner.invoke(
            main, ["rollback", "staging", "--reason", "broken nginx"], input="yes\n"
        )

        assert result.exit_code == 1
        assert "img-2 was modified by another promotion of staging" in result.output
        mock_registry.set_tags.assert_not_called()
        assert records_store.list_records() == []


class TestMainGroup:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_unknown_command_shows_help(self, runner):
        result = runner.invoke(main, ["promote"])
        assert result.exit_code == 1
        assert "No such command" in result.output
        assert "deploy" in result.output

    def test_get_operator_fallback(self, monkeypatch):
        monkeypatch.delenv("USER", raising=False)
        monkeypatch.delenv("USERNAME", raising=False)
        assert get_operator() == "unknown"
