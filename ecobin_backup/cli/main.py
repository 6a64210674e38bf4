"""
Main CLI entry point for the EcoBin backup engine.

This module provides the ``ecobin-backup`` command-line interface using
Click with Rich formatting.
"""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ecobin_backup import __version__
from ecobin_backup.backup.service import BackupService
from ecobin_backup.core.exceptions import BackupEngineError, ConfigurationError
from ecobin_backup.models.config import BackupSettings, load_settings
from ecobin_backup.models.results import RestoreOptions
from ecobin_backup.utils.helpers import format_bytes, format_timestamp
from ecobin_backup.utils.logging import setup_logging

console = Console()


def _settings(ctx: click.Context) -> BackupSettings:
    if 'settings' not in ctx.obj:
        try:
            ctx.obj['settings'] = load_settings(ctx.obj.get('config'))
        except ConfigurationError as e:
            _fail(f"Configuration error: {e.message}")
    return ctx.obj['settings']


def _service(ctx: click.Context) -> BackupService:
    """Build the service on first use, configuring logging from settings."""
    if 'service' not in ctx.obj:
        settings = _settings(ctx)
        setup_logging(
            level="DEBUG" if ctx.obj.get('verbose') else settings.log_level,
            log_file=settings.log_file
        )
        ctx.obj['service'] = BackupService.from_settings(settings)
    return ctx.obj['service']


def _fail(message: str):
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _print_json(data: Any):
    console.print_json(json.dumps(data, indent=2, default=str))


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              envvar='ECOBIN_BACKUP_CONFIG', help='Configuration file path (YAML or JSON)')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool, config: Optional[str]):
    """
    EcoBin Backup Engine

    Create, list, validate and restore backups of the EcoBin document and
    tree stores, and run the tiered backup schedules.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config'] = config

    if version:
        console.print(f"EcoBin backup engine version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.option('--tier', '-t', default='manual', show_default=True, help='Backup tier')
@click.pass_context
def create(ctx: click.Context, tier: str):
    """Create a backup now."""
    service = _service(ctx)

    with console.status(f"Creating {tier} backup..."):
        result = asyncio.run(service.create(tier))

    if not result.success:
        _fail(f"Backup failed: {result.error}")

    console.print(Panel(
        f"[bold]{result.backup_id}[/bold]\n"
        f"Path: {result.path}\n"
        f"Size: {format_bytes(result.size_bytes or 0)}",
        title="✅ Backup created",
        border_style="green"
    ))


@main.command(name='list')
@click.option('--tier', '-t', help='Only list backups of this tier')
@click.option('--limit', '-l', default=50, show_default=True, type=click.IntRange(min=0))
@click.option('--offset', '-o', default=0, show_default=True, type=click.IntRange(min=0))
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def list_backups(ctx: click.Context, tier: Optional[str], limit: int, offset: int, output_format: str):
    """List backups, newest first."""
    service = _service(ctx)

    try:
        page = asyncio.run(service.list(tier, limit=limit, offset=offset))
    except ValueError as e:
        _fail(f"Error listing backups: {e}")

    if output_format == 'json':
        _print_json(page.model_dump(mode='json'))
        return

    if not page.backups:
        console.print("[yellow]No backups found[/yellow]")
        return

    table = Table(
        title="Backups",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
        title_style="bold blue"
    )
    table.add_column("Backup ID", style="cyan", no_wrap=True)
    table.add_column("Tier", style="green")
    table.add_column("Created", style="blue")
    table.add_column("Size", style="yellow", justify="right")

    for backup in page.backups:
        table.add_row(
            backup.id,
            backup.tier,
            backup.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            format_bytes(backup.size_bytes)
        )

    console.print(table)
    console.print(f"[dim]Showing {len(page.backups)} of {page.total} backups[/dim]")
    if page.has_more:
        console.print(f"[dim]More available: --offset {offset + limit}[/dim]")


@main.command()
@click.argument('backup_id')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def show(ctx: click.Context, backup_id: str, output_format: str):
    """Show details of a backup."""
    service = _service(ctx)
    report = asyncio.run(service.get_details(backup_id))

    if not report.valid:
        _fail(f"Backup not found or invalid: {report.reason}")

    if output_format == 'json':
        _print_json(report.model_dump(mode='json'))
        return

    metadata = report.metadata or {}
    stores = metadata.get('stores') or metadata.get('databases') or []
    console.print(Panel(
        f"[bold]{backup_id}[/bold]\n"
        f"Tier: {metadata.get('type', 'unknown')}\n"
        f"Timestamp: {metadata.get('timestamp', 'unknown')}\n"
        f"Version: {metadata.get('version', 'unknown')}\n"
        f"Stores: {', '.join(stores) or 'none'}\n"
        f"Document store data: {'yes' if report.has_document_store else 'no'}\n"
        f"Tree store data: {'yes' if report.has_tree_store else 'no'}\n"
        f"Size: {format_bytes(report.size_bytes or 0)}\n"
        f"Path: {report.path}",
        title="Backup details",
        border_style="blue"
    ))


@main.command()
@click.argument('backup_id')
@click.option('--dry-run', is_flag=True, help='Count what would be restored without writing')
@click.option('--no-documents', is_flag=True, help='Skip the document store')
@click.option('--no-tree', is_flag=True, help='Skip the tree store')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def restore(ctx: click.Context, backup_id: str, dry_run: bool, no_documents: bool, no_tree: bool, yes: bool):
    """Restore the stores from a backup."""
    if not dry_run and not yes:
        click.confirm(f"Overwrite live data with backup {backup_id}?", abort=True)

    service = _service(ctx)
    options = RestoreOptions(
        restore_document_store=not no_documents,
        restore_tree_store=not no_tree,
        dry_run=dry_run
    )

    with console.status(f"Restoring from {backup_id}..."):
        result = asyncio.run(service.restore(backup_id, options))

    if not result.success:
        for failure in result.failures:
            console.print(f"[red]✗ {failure.store}: {failure.cause}[/red]")
        _fail("Restore failed")

    title = "Dry run completed successfully" if dry_run else "Data restored successfully"
    console.print(Panel(
        f"Documents: {result.documents_written} in {result.batches_committed} batches\n"
        f"Document store: {'restored' if result.restored_document_store else 'skipped'}\n"
        f"Tree store: {'restored' if result.restored_tree_store else 'skipped'}",
        title=f"✅ {title}",
        border_style="green"
    ))


@main.command()
@click.argument('backup_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx: click.Context, backup_id: str, yes: bool):
    """Delete a backup."""
    if not yes:
        click.confirm(f"Delete backup {backup_id}?", abort=True)

    service = _service(ctx)
    try:
        deleted = asyncio.run(service.delete(backup_id))
    except BackupEngineError as e:
        _fail(f"Error deleting backup: {e.message}")

    if not deleted:
        _fail(f"Backup not found: {backup_id}")

    console.print(f"[green]Backup deleted: {backup_id}[/green]")


@main.command()
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def stats(ctx: click.Context, output_format: str):
    """Show backup storage statistics."""
    service = _service(ctx)
    repository_stats = asyncio.run(service.stats())

    if output_format == 'json':
        _print_json(repository_stats.model_dump(mode='json'))
        return

    table = Table(title="Backup statistics", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Tier", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Size", style="yellow", justify="right")

    for tier, tier_stats in sorted(repository_stats.per_tier.items()):
        table.add_row(tier, str(tier_stats.count), format_bytes(tier_stats.size_bytes))
    table.add_row(
        "[bold]total[/bold]",
        f"[bold]{repository_stats.total_count}[/bold]",
        f"[bold]{format_bytes(repository_stats.total_size_bytes)}[/bold]"
    )

    console.print(table)
    if repository_stats.oldest:
        console.print(f"[dim]Oldest: {format_timestamp(repository_stats.oldest)}[/dim]")
        console.print(f"[dim]Newest: {format_timestamp(repository_stats.newest)}[/dim]")


@main.command()
@click.option('--days', '-d', default=30, show_default=True, type=click.IntRange(min=0),
              help='Delete backups older than this many days')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def cleanup(ctx: click.Context, days: int, yes: bool):
    """Delete backups of every tier older than a number of days."""
    if not yes:
        click.confirm(f"Delete all backups older than {days} days?", abort=True)

    service = _service(ctx)
    deleted = asyncio.run(service.cleanup(days))
    console.print(f"[green]Cleanup completed, deleted {deleted} backups[/green]")


@main.command(name='test')
@click.pass_context
def test_backup(ctx: click.Context):
    """Create a test backup and validate it."""
    service = _service(ctx)

    with console.status("Running test backup..."):
        result = asyncio.run(service.test_backup())

    if not result.success:
        _fail(f"Test backup failed: {result.error}")

    console.print(f"[green]✅ Test backup valid: {result.backup_id}[/green]")


@main.group()
def scheduler():
    """Inspect and run the backup schedules."""
    pass


@scheduler.command()
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def status(ctx: click.Context, output_format: str):
    """Show the configured schedules."""
    service = _service(ctx)
    scheduler_status = service.scheduler_status()

    if output_format == 'json':
        _print_json(scheduler_status)
        return

    _print_schedules(scheduler_status)


def _print_schedules(scheduler_status: Dict[str, Any]):
    state = "[green]running[/green]" if scheduler_status['running'] else "[yellow]stopped[/yellow]"
    table = Table(title="Backup schedules", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Tier", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Cron", style="green")
    table.add_column("Retention", justify="right")
    table.add_column("Next run", style="blue")
    table.add_column("Last run")

    for tier, schedule in scheduler_status['schedules'].items():
        last_run = schedule.get('last_run')
        if last_run is None:
            last_run_text = "[dim]-[/dim]"
        elif last_run['success']:
            last_run_text = f"[green]{last_run['backup_id']}[/green]"
        else:
            last_run_text = f"[red]failed: {last_run['error']}[/red]"

        table.add_row(
            tier,
            "✅" if schedule['enabled'] else "❌",
            schedule['cron'],
            str(schedule['retention']),
            schedule.get('next_run') or "[dim]-[/dim]",
            last_run_text
        )

    console.print(f"Scheduler: {state}")
    console.print(table)


@scheduler.command()
@click.argument('tier')
@click.option('--enabled/--disabled', default=None, help='Enable or disable the schedule')
@click.option('--cron', help='Cron expression (UTC)')
@click.option('--retention', type=click.IntRange(min=0), help='Number of retention units to keep')
@click.pass_context
def update(ctx: click.Context, tier: str, enabled: Optional[bool], cron: Optional[str], retention: Optional[int]):
    """Change one tier's schedule."""
    service = _service(ctx)

    try:
        config = asyncio.run(service.update_schedule(tier, enabled=enabled, cron=cron, retention=retention))
    except BackupEngineError as e:
        _fail(f"Error updating schedule: {e.message}")

    console.print(
        f"[green]Updated {tier} schedule:[/green] cron={config.cron} "
        f"retention={config.retention} enabled={config.enabled}"
    )


@scheduler.command()
@click.pass_context
def run(ctx: click.Context):
    """Run the backup schedules in the foreground until interrupted."""
    service = _service(ctx)

    async def _serve():
        await service.start_scheduler()
        _print_schedules(service.scheduler_status())
        console.print("[dim]Press Ctrl+C to stop[/dim]")
        try:
            await asyncio.Event().wait()
        finally:
            await service.shutdown()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped[/yellow]")


if __name__ == '__main__':
    main()
