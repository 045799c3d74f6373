"""CLI entry point for amipromote.

Commands:
    amipromote deploy <environment> [image-id]     # Promote an image to an environment
    amipromote rollback <environment> [image-id]   # Roll back to a previous image
    amipromote status <environment>                # Current image, template, refresh
    amipromote images <environment>                # List candidate images
    amipromote history                             # List rollback records
    amipromote config show|set                     # Persistent defaults
"""

import logging
import os
import sys

import click
from rich.console import Console

from amipromote import __version__
from amipromote.click_group import PromoteGroup
from amipromote.commands import config_group, history_command, images_command, status_command
from amipromote.commands._display import print_image_details
from amipromote.config_manager import ConfigError, ConfigManager
from amipromote.environments import Environment, parse_environment
from amipromote.errors import InvalidEnvironment, PromotionError
from amipromote.file_lock_manager import environment_lease
from amipromote.fleet_manager import FleetError
from amipromote.image_registry import ImageRegistryError
from amipromote.interaction_handler import CLIInteractionHandler, confirm_exact, require_reason
from amipromote.launch_templates import LaunchTemplateError
from amipromote.pointer_store import PointerStoreError
from amipromote.promotion import PromotionController
from amipromote.rollback_records import RecordStoreError

logger = logging.getLogger(__name__)

# Collaborator failures: reported, exit 1, nothing is rolled back
COLLABORATOR_ERRORS = (
    ImageRegistryError,
    LaunchTemplateError,
    FleetError,
    RecordStoreError,
    PointerStoreError,
)


def get_operator() -> str:
    """Name recorded as initiated_by in rollback records."""
    return os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"


def resolve_environment(ctx: click.Context, value: str | None) -> Environment:
    """Parse the environment argument; print usage and exit 1 when invalid."""
    try:
        return parse_environment(value)
    except InvalidEnvironment as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("")
        click.echo(ctx.get_help())
        sys.exit(1)


@click.group(
    cls=PromoteGroup,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.version_option(version=__version__)
def main(verbose: bool) -> None:
    """amipromote - golden image promotion and rollback.

    Promotes immutable golden AMIs to an environment's launch template,
    refreshes the environment's Auto Scaling Group, and rolls back with
    an audit trail.

    \b
    COMMANDS:
        deploy        Deploy an image to dev, staging or production
        rollback      Roll back to the previous (or a given) image
        status        Show the current image and latest instance refresh
        images        List images of an environment
        history       List rollback records
        config        Show or change defaults

    \b
    ENVIRONMENT VARIABLES:
        AWS_REGION    AWS region (default: us-east-1)

    \b
    EXAMPLES:
        $ amipromote deploy dev
        $ amipromote deploy staging ami-0123456789abcdef0
        $ AWS_REGION=us-west-2 amipromote deploy production
        $ amipromote rollback production --reason "5xx spike after release"
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
    )


@main.command(name="deploy")
@click.argument("environment", required=False, type=str)
@click.argument("image_id", required=False, type=str)
@click.option("--region", help="AWS region (overrides AWS_REGION)", type=str)
@click.option("--config", help="Config file path", type=click.Path())
@click.pass_context
def deploy(
    ctx: click.Context,
    environment: str | None,
    image_id: str | None,
    region: str | None,
    config: str | None,
) -> None:
    """Deploy a golden image AMI to an environment.

    Creates a launch template version pointing at the image, makes it the
    default, and starts a staged instance refresh of the environment's
    Auto Scaling Group (checkpoints at 50% and 100%).

    \b
    ENVIRONMENT is one of dev, staging, production.
    IMAGE_ID is optional; the latest available image is used by default.

    \b
    Deploys to production ask for confirmation. Type 'yes' to proceed.

    \b
    Examples:
      $ amipromote deploy dev
      $ amipromote deploy staging ami-0123456789abcdef0
      $ AWS_REGION=us-west-2 amipromote deploy production
    """
    env = resolve_environment(ctx, environment)
    handler = CLIInteractionHandler()
    console = Console()

    try:
        promote_config = ConfigManager.load_config(config)
        aws_region = ConfigManager.get_region(region, config)
        controller = PromotionController.from_config(aws_region, promote_config, handler=handler)

        click.echo(f"Deploying golden image to {env} ({aws_region})")

        image = controller.select_deploy_target(env, image_id)
        if image_id:
            click.echo(f"Using specified AMI: {image.id}")
        else:
            click.echo(f"Selected latest AMI: {image.id}")

        if env.requires_confirmation:
            print_image_details(console, [("Deploy", image)])
            if not confirm_exact(handler, "Deploy to PRODUCTION?"):
                click.echo("Deployment cancelled.")
                return

        with environment_lease(
            ConfigManager.get_lock_dir(), env.value, timeout=promote_config.lock_timeout
        ):
            result = controller.execute_deploy(env, image)

    except PromotionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except COLLABORATOR_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Deployment stopped; any steps already applied were not reverted.", err=True)
        sys.exit(1)

    click.echo("")
    click.echo("=" * 42)
    click.echo("✓ Deployment Complete")
    click.echo("=" * 42)
    click.echo(f"AMI {result.image_id} deployed to {result.environment}")
    if result.refresh_id:
        click.echo("")
        click.echo("Monitor progress with:")
        click.echo(f"  amipromote status {result.environment}")


@main.command(name="rollback")
@click.argument("environment", required=False, type=str)
@click.argument("image_id", required=False, type=str)
@click.option("--reason", help="Reason for the rollback (prompted if omitted)", type=str)
@click.option("--region", help="AWS region (overrides AWS_REGION)", type=str)
@click.option("--config", help="Config file path", type=click.Path())
@click.pass_context
def rollback(
    ctx: click.Context,
    environment: str | None,
    image_id: str | None,
    reason: str | None,
    region: str | None,
    config: str | None,
) -> None:
    """Roll back to a previous golden image AMI.

    Marks the current production image as superseded, promotes the
    target image, creates a launch template version for it and starts a
    single-pass instance refresh. A rollback record is saved locally.

    \b
    ENVIRONMENT is one of dev, staging, production.
    IMAGE_ID is optional; the previous available image is used by default.

    \b
    A reason is always required and the rollback must be confirmed by
    typing 'yes'.

    \b
    Examples:
      $ amipromote rollback dev
      $ amipromote rollback production ami-0123456789abcdef0
      $ AWS_REGION=us-west-2 amipromote rollback staging --reason "broken nginx config"
    """
    env = resolve_environment(ctx, environment)
    handler = CLIInteractionHandler()
    console = Console()

    try:
        promote_config = ConfigManager.load_config(config)
        aws_region = ConfigManager.get_region(region, config)

        click.echo("=" * 42)
        click.echo("⚠ AMI Rollback Utility")
        click.echo("=" * 42)
        click.echo(f"Environment: {env}")
        click.echo(f"AWS Region: {aws_region}")
        click.echo("")

        if reason is None:
            reason = handler.prompt_text(
                "⚠ Rollback is a critical operation. Enter reason for rollback"
            )
        reason = require_reason(reason)

        controller = PromotionController.from_config(aws_region, promote_config, handler=handler)
        current, target = controller.select_rollback_target(env, image_id)

        click.echo(f"Current production AMI: {current.id}")
        if image_id:
            click.echo(f"Using specified AMI: {target.id}")
        else:
            click.echo(f"Selected previous AMI: {target.id}")
        click.echo("")
        print_image_details(console, [("Current", current), ("Target", target)])

        if not confirm_exact(
            handler, f"⚠ Proceed with rollback from {current.id} to {target.id}?"
        ):
            click.echo("Rollback cancelled.")
            return

        click.echo("")
        click.echo("Executing rollback...")
        with environment_lease(
            ConfigManager.get_lock_dir(), env.value, timeout=promote_config.lock_timeout
        ):
            controller.verify_current(env, current)
            result = controller.execute_rollback(env, current, target, reason, get_operator())

    except PromotionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except COLLABORATOR_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Rollback stopped; any steps already applied were not reverted.", err=True)
        sys.exit(1)

    click.echo("")
    click.echo("=" * 42)
    click.echo("✓ Rollback Complete")
    click.echo("=" * 42)
    click.echo(f"Environment: {result.environment}")
    click.echo(f"Previous AMI: {result.from_image_id}")
    click.echo(f"Current AMI: {result.to_image_id}")
    click.echo(f"Reason: {result.reason}")
    click.echo("")
    click.echo("⚠ IMPORTANT: Monitor application health and verify successful rollback")


main.add_command(status_command)
main.add_command(images_command)
main.add_command(history_command)
main.add_command(config_group)


if __name__ == "__main__":
    main()
