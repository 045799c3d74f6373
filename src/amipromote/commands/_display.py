"""Rich rendering helpers shared by the commands."""

from rich.console import Console
from rich.table import Table

from amipromote.image_registry import ImageInfo, ImageRegistry
from amipromote.rollback_records import RollbackRecord


def _format_date(image: ImageInfo) -> str:
    return image.creation_date.strftime("%Y-%m-%d %H:%M:%S")


def print_image_details(console: Console, rows: list[tuple[str, ImageInfo]]) -> None:
    """Print labelled images (e.g. Current / Target) one column per field."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Role", style="bold")
    table.add_column("Image ID", style="cyan")
    table.add_column("Name")
    table.add_column("Created (UTC)")
    table.add_column("State")
    table.add_column("Description", overflow="fold")

    for label, image in rows:
        table.add_row(
            label,
            image.id,
            image.name or "-",
            _format_date(image),
            image.state.value,
            image.description or "-",
        )

    console.print(table)


def print_image_list(console: Console, images: list[ImageInfo], current_id: str | None) -> None:
    """Print images newest first, marking the current one."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("", width=1)
    table.add_column("Image ID", style="cyan")
    table.add_column("Name")
    table.add_column("Created (UTC)")
    table.add_column("State")
    table.add_column("Production")
    table.add_column("Status")
    table.add_column("Last Deployed")

    for image in reversed(images):
        marker = "*" if image.id == current_id else ""
        table.add_row(
            marker,
            image.id,
            image.name or "-",
            _format_date(image),
            image.state.value,
            image.tags.get(ImageRegistry.TAG_PRODUCTION, "-"),
            image.tags.get(ImageRegistry.TAG_STATUS, "-"),
            image.tags.get(ImageRegistry.TAG_LAST_DEPLOYED, "-"),
        )

    console.print(table)


def print_records(console: Console, records: list[RollbackRecord]) -> None:
    """Print rollback records newest first."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Timestamp")
    table.add_column("Environment")
    table.add_column("From", style="red")
    table.add_column("To", style="green")
    table.add_column("By")
    table.add_column("Reason", overflow="fold")

    for record in reversed(records):
        table.add_row(
            record.timestamp,
            record.environment,
            record.from_image_id,
            record.to_image_id,
            record.initiated_by,
            record.reason,
        )

    console.print(table)
