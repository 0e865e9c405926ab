"""Console output helpers for CLI commands."""

import click

from notification_engine.features.notifications.enums import NotificationStatus

# Foreground colour per lifecycle status
STATUS_COLORS: dict[str, str] = {
    NotificationStatus.PENDING: "blue",
    NotificationStatus.SENT: "cyan",
    NotificationStatus.DELIVERED: "green",
    NotificationStatus.READ: "green",
    NotificationStatus.FAILED: "red",
    NotificationStatus.CANCELLED: "yellow",
}


def success(message: str) -> None:
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    """Print to stderr in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    click.secho(f"ℹ {message}", fg="blue")


def header(message: str) -> None:
    click.secho(f"\n{message}", fg="cyan", bold=True)


def status_label(status: str) -> str:
    """Status name styled with its lifecycle colour, padded for table output."""
    return click.style(f"{status:<9}", fg=STATUS_COLORS.get(status))


def enabled_label(enabled: bool) -> str:
    return click.style("enabled", fg="green") if enabled else click.style("disabled", fg="red")
