"""Main CLI entry point for notification-engine management commands."""

import click

from notification_engine.cli.commands import notifications, server
from notification_engine.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="notification-engine")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Notification Engine CLI.

    \b
    Command Groups:
      server         Run the API with consumers and scheduler
      notifications  Retry sweep, housekeeping and provider status

    \b
    Quick Start:
      notification-engine server run
      notification-engine notifications retry-sweep
      notification-engine notifications exhausted --json
    """
    ctx.ensure_object(dict)


cli.add_command(server.server)
cli.add_command(notifications.notifications)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
