"""Operator interaction and safety gating.

Every mutating operation passes through this gate first: deploys to
production need an explicit "yes", rollbacks need a reason and an explicit
"yes". Only the exact word yes (surrounding whitespace ignored) confirms;
anything else, including "y" and "YES", declines. Rejections have no side
effects.

The InteractionHandler protocol keeps the gate testable: the CLI uses
CLIInteractionHandler, tests use MockInteractionHandler.

Example:
    >>> handler = MockInteractionHandler(text_responses=["bad release", "yes"])
    >>> require_reason(handler.prompt_text("Reason"))
    'bad release'
    >>> confirm_exact(handler, "Proceed?")
    True
"""

from typing import Protocol, runtime_checkable

import click

from amipromote.errors import EmptyReason

CONFIRMATION_WORD = "yes"


@runtime_checkable
class InteractionHandler(Protocol):
    """Protocol for operator interaction."""

    def prompt_text(self, message: str) -> str:
        """Prompt for free text. Returns an empty string on bare Enter."""
        ...

    def show_warning(self, message: str) -> None:
        """Display a warning message."""
        ...

    def show_info(self, message: str) -> None:
        """Display an informational message."""
        ...


class CLIInteractionHandler:
    """Click-based terminal interaction."""

    def prompt_text(self, message: str) -> str:
        """Prompt on the terminal.

        Raises:
            click.Abort: If the operator presses Ctrl+C or input ends
        """
        return click.prompt(
            click.style(message, fg="yellow"),
            default="",
            show_default=False,
            type=str,
        )

    def show_warning(self, message: str) -> None:
        click.secho(f"⚠ {message}", fg="yellow", err=True)

    def show_info(self, message: str) -> None:
        click.echo(message)


class MockInteractionHandler:
    """Interaction handler with pre-programmed answers, for tests.

    Records every interaction in order.
    """

    def __init__(self, text_responses: list[str] | None = None):
        self.text_responses = list(text_responses or [])
        self.interactions: list[dict] = []
        self._text_index = 0

    def prompt_text(self, message: str) -> str:
        """Return the next pre-programmed answer.

        Raises:
            IndexError: If no more answers are available
        """
        if self._text_index >= len(self.text_responses):
            raise IndexError(
                f"No more text responses available. "
                f"Provided {len(self.text_responses)}, needed {self._text_index + 1}"
            )

        response = self.text_responses[self._text_index]
        self._text_index += 1
        self.interactions.append({"type": "prompt", "message": message, "response": response})
        return response

    def show_warning(self, message: str) -> None:
        self.interactions.append({"type": "warning", "message": message})

    def show_info(self, message: str) -> None:
        self.interactions.append({"type": "info", "message": message})

    def get_interactions_by_type(self, interaction_type: str) -> list[dict]:
        return [i for i in self.interactions if i["type"] == interaction_type]


def confirm_exact(handler: InteractionHandler, message: str) -> bool:
    """Ask for confirmation; True only for the literal word yes."""
    answer = handler.prompt_text(f"{message} (yes/no)")
    return answer.strip() == CONFIRMATION_WORD


def require_reason(reason: str | None) -> str:
    """Validate a rollback reason.

    Returns:
        The reason with surrounding whitespace removed

    Raises:
        EmptyReason: If the reason is missing or blank
    """
    if reason is None or not reason.strip():
        raise EmptyReason("Rollback reason is required.")
    return reason.strip()


__all__ = [
    "CONFIRMATION_WORD",
    "CLIInteractionHandler",
    "InteractionHandler",
    "MockInteractionHandler",
    "confirm_exact",
    "require_reason",
]
