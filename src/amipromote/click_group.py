"""Click group that answers usage errors with the relevant help text.

An operator who mistypes `amipromote rolback prod` at a terminal sees the
error followed by the valid syntax instead of a bare one-line usage hint.
"""

from typing import Any, NoReturn

import click


def _fail_with_help(ctx: click.Context, message: str, exit_code: int) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    click.echo("")
    click.echo(ctx.get_help())
    ctx.exit(exit_code)


class PromoteGroup(click.Group):
    """Group printing the failing command's help on usage errors."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            # Subcommand context when the error came from a subcommand
            _fail_with_help(e.ctx or ctx, e.format_message(), e.exit_code)

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        try:
            return super().resolve_command(ctx, args)
        except click.BadParameter:
            raise
        except click.UsageError as e:
            # Unknown command: show this group's command list
            _fail_with_help(ctx, e.format_message(), 1)


# Subgroups created with @main.group() also use PromoteGroup
PromoteGroup.group_class = PromoteGroup

__all__ = ["PromoteGroup"]
