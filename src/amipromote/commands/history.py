"""Rollback history command."""

import sys

import click
from rich.console import Console

from amipromote.commands._display import print_records
from amipromote.config_manager import ConfigError, ConfigManager
from amipromote.environments import parse_environment
from amipromote.errors import InvalidEnvironment
from amipromote.rollback_records import RollbackRecordStore

__all__ = ["history_command"]


@click.command(name="history")
@click.option("--environment", "-e", help="Only show this environment", type=str)
@click.option("--records-dir", help="Rollback record directory", type=click.Path())
@click.option("--config", help="Config file path", type=click.Path())
def history_command(environment: str | None, records_dir: str | None, config: str | None) -> None:
    """List rollback records, newest first.

    \b
    Examples:
      $ amipromote history
      $ amipromote history -e production
    """
    try:
        env_value = parse_environment(environment).value if environment else None
        promote_config = ConfigManager.load_config(config)
    except (InvalidEnvironment, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    store = RollbackRecordStore(ConfigManager.get_records_dir(promote_config, records_dir))
    records = store.list_records(env_value)

    if not records:
        click.echo(f"No rollback records in {store.records_dir}")
        return

    print_records(Console(), records)
    click.echo(f"\nTotal: {len(records)} rollback record(s)")
