"""Operational commands: retry sweep, housekeeping, exhausted records, providers."""

from __future__ import annotations

import json

import click

from notification_engine.cli.utils import (
    coro,
    enabled_label,
    error,
    header,
    info,
    status_label,
    success,
    warning,
)
from notification_engine.features.notifications.service import get_notification_service
from notification_engine.infra.database import get_async_session
from notification_engine.infra.tasks.scheduler import run_housekeeping, run_retry_sweep


@click.group(name="notifications")
def notifications() -> None:
    """Notification maintenance commands."""


@notifications.command(name="retry-sweep")
@coro
async def retry_sweep() -> None:
    """Run one retry sweep now."""
    header("Retry sweep")
    try:
        result = await run_retry_sweep()
    except Exception as exc:
        error(f"Retry sweep failed: {exc}")
        raise SystemExit(1) from exc

    info(f"Selected: {result.selected} in {result.batches} batch(es)")
    success(f"Sent: {result.sent}")
    if result.failed:
        warning(f"Failed again: {result.failed}")
    if result.exhausted:
        warning(f"Exhausted: {result.exhausted}")
    if result.skipped:
        info(f"Skipped: {result.skipped}")
    if result.recovered:
        warning(f"Stale pending failed: {result.recovered}")


@notifications.command()
@coro
async def cleanup() -> None:
    """Delete settled notifications past the retention window."""
    header("Housekeeping")
    try:
        result = await run_housekeeping()
    except Exception as exc:
        error(f"Housekeeping failed: {exc}")
        raise SystemExit(1) from exc

    info(f"Cutoff: {result.cutoff.isoformat()}")
    success(f"Deleted: {result.deleted}")
    if result.exhausted:
        warning(f"Exhausted records removed: {result.exhausted}")


@notifications.command()
@click.option("--user-id", default=None, help="Only records for this user")
@click.option("--limit", default=50, type=click.IntRange(1, 1000), show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON lines")
@coro
async def exhausted(user_id: str | None, limit: int, as_json: bool) -> None:
    """List FAILED notifications that used up their retries."""
    service = get_notification_service()
    async with get_async_session() as session:
        result = await service.list_exhausted(session, user_id=user_id, limit=limit)

    if not result.items:
        info("No exhausted notifications")
        return

    for item in result.items:
        if as_json:
            click.echo(
                json.dumps(
                    {
                        "id": str(item.id),
                        "user_id": item.user_id,
                        "channel": item.channel,
                        "type": item.type,
                        "retry_count": item.retry_count,
                        "error_category": item.error_category,
                        "error_message": item.error_message,
                    }
                )
            )
        else:
            click.echo(
                f"{item.id}  {status_label(item.status)} {item.channel:<6} {item.user_id:<20} "
                f"retries={item.retry_count} {item.error_category or '-'}"
            )
    info(f"{len(result.items)} of {result.total} shown")


@notifications.command()
def providers() -> None:
    """Show registered channel providers and whether they are enabled."""
    service = get_notification_service()
    for provider in service.list_providers():
        click.echo(
            f"{provider.get_channel():<8} {type(provider).__name__:<20} "
            f"{enabled_label(provider.is_enabled())}"
        )
