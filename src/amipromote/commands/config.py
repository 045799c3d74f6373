"""Configuration commands."""

import sys

import click

from amipromote.config_manager import ConfigError, ConfigManager, PromoteConfig

__all__ = ["config_group"]


@click.group(name="config")
def config_group() -> None:
    """Show or change amipromote defaults.

    \b
    KEYS:
        default_region            Region used when neither --region nor AWS_REGION is set
        records_dir               Directory for rollback records
        production_flag_policy    keep | exclusive
        pointer_parameter_prefix  SSM prefix for the current-image pointer
        lock_timeout              Seconds to wait for the environment lease
        command_timeout           Seconds per AWS CLI call

    \b
    EXAMPLES:
        $ amipromote config show
        $ amipromote config set production_flag_policy exclusive
    """
    pass


@config_group.command(name="show")
@click.option("--config", help="Config file path", type=click.Path())
def config_show(config: str | None) -> None:
    """Show the effective configuration."""
    try:
        promote_config = ConfigManager.load_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for key, value in promote_config.to_dict().items():
        click.echo(f"{key} = {value}")


@config_group.command(name="set")
@click.argument("key", type=click.Choice(sorted(PromoteConfig.__dataclass_fields__)))
@click.argument("value", type=str)
@click.option("--config", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config: str | None) -> None:
    """Set one configuration value."""
    try:
        updated = ConfigManager.update_config(config, **{key: value})
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ {key} = {getattr(updated, key)}")
