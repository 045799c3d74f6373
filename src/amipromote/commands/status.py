"""Read-only inspection commands: status and images.

Neither command changes anything in the account.
"""

import sys

import click
from rich.console import Console

from amipromote.commands._display import print_image_list
from amipromote.config_manager import ConfigError, ConfigManager
from amipromote.environments import parse_environment
from amipromote.errors import NoCurrentImage, PromotionError
from amipromote.fleet_manager import FleetError
from amipromote.image_registry import ImageRegistryError
from amipromote.launch_templates import LaunchTemplateError
from amipromote.pointer_store import PointerStoreError
from amipromote.promotion import PromotionController

__all__ = ["images_command", "status_command"]


@click.command(name="status")
@click.argument("environment", type=str)
@click.option("--region", help="AWS region (overrides AWS_REGION)", type=str)
@click.option("--config", help="Config file path", type=click.Path())
def status_command(environment: str, region: str | None, config: str | None) -> None:
    """Show what an environment is running.

    Prints the current production image, the launch template's default
    version and the most recent instance refresh of the Auto Scaling Group.

    \b
    Examples:
      $ amipromote status staging
      $ amipromote status production --region us-west-2
    """
    try:
        env = parse_environment(environment)
        promote_config = ConfigManager.load_config(config)
        aws_region = ConfigManager.get_region(region, config)
        controller = PromotionController.from_config(aws_region, promote_config)

        click.echo(f"Environment: {env}")
        click.echo(f"AWS Region: {aws_region}")

        try:
            current = controller.resolve_current(env)
            click.echo(f"Current image: {current.id} ({current.state.value})")
        except NoCurrentImage:
            click.echo("Current image: none tagged Production=true")

        template = controller.templates.find_template(env.value)
        if template:
            click.echo(
                f"Launch template: {template.name} ({template.id}) "
                f"default v{template.default_version}, latest v{template.latest_version}"
            )
        else:
            click.echo(f"⚠ No launch template found for {env}")

        group = controller.fleet.find_group(env.value)
        if group is None:
            click.echo(f"⚠ No Auto Scaling Group found for {env}")
            return

        click.echo(
            f"Auto Scaling Group: {group.name} "
            f"(desired {group.desired_capacity}, min {group.min_size}, max {group.max_size})"
        )
        refreshes = controller.fleet.describe_instance_refreshes(group.name, max_records=1)
        if not refreshes:
            click.echo("Instance refresh: none")
            return

        latest = refreshes[0]
        progress = (
            f"{latest.percentage_complete}%" if latest.percentage_complete is not None else "-"
        )
        click.echo(f"Instance refresh: {latest.refresh_id} {latest.status} ({progress})")
        if latest.status_reason:
            click.echo(f"  {latest.status_reason}")

    except PromotionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except (
        ConfigError,
        ImageRegistryError,
        LaunchTemplateError,
        FleetError,
        PointerStoreError,
    ) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command(name="images")
@click.argument("environment", type=str)
@click.option("--all", "show_all", is_flag=True, help="Include images that are not available")
@click.option("--region", help="AWS region (overrides AWS_REGION)", type=str)
@click.option("--config", help="Config file path", type=click.Path())
def images_command(
    environment: str, show_all: bool, region: str | None, config: str | None
) -> None:
    """List images tagged for an environment, newest first.

    The current production image is marked with '*'.

    \b
    Examples:
      $ amipromote images dev
      $ amipromote images production --all
    """
    try:
        env = parse_environment(environment)
        promote_config = ConfigManager.load_config(config)
        aws_region = ConfigManager.get_region(region, config)
        controller = PromotionController.from_config(aws_region, promote_config)

        images = controller.registry.list_images(env.value, available_only=not show_all)
        if not images:
            click.echo(f"No images found for {env}")
            return

        try:
            current_id: str | None = controller.resolve_current(env).id
        except NoCurrentImage:
            current_id = None

        print_image_list(Console(), images, current_id)
        click.echo(f"\nTotal: {len(images)} image(s)")

    except PromotionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except (ConfigError, ImageRegistryError, PointerStoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
