"""Command groups for amipromote CLI."""

from amipromote.commands.config import config_group
from amipromote.commands.history import history_command
from amipromote.commands.status import images_command, status_command

__all__ = ["config_group", "history_command", "images_command", "status_command"]
