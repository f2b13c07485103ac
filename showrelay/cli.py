"""Main CLI entry point for showrelay.

Settings come from RELAY_* environment variables; flags only override the
received and archive directories so every command sees the same job tree.
"""

import json
import os
from pathlib import Path
from typing import Optional

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from .config import Settings, configure_logging
from .intake import create_job
from .jobs import COMPLETED, InputError, StatusRecord, StatusStore
from .orchestrator import build_orchestrator
from .organizers import ArchiveManager
from .worker import run_watch_worker


console = Console()


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _store(settings: Settings) -> StatusStore:
    return StatusStore(settings.received_dir, archive_manager=ArchiveManager(settings.archive_dir, settings.received_dir))


def print_status(record: StatusRecord) -> None:
    table = Table(title=f"Job {record.job_id}", show_header=True, header_style="bold cyan")
    table.add_column("Destination", style="dim", width=12)
    table.add_column("Result")
    table.add_column("Reference")
    table.add_column("Details")
    for name, result in sorted((record.destinations or {}).items()):
        ok = result.get("success")
        details = result.get("note") or ""
        if not ok:
            details = f"{result.get('step', '?')}: {result.get('error', '')}"
        table.add_row(
            name,
            "[green]ok[/green]" if ok else "[red]failed[/red]",
            result.get("url") or result.get("path") or result.get("id") or "",
            details,
        )
    console.print(f"[bold]{record.status}[/bold]: {record.message}")
    if record.destinations:
        console.print(table)
    if record.archive:
        console.print(f"Archived to {record.archive}")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--received-dir", type=click.Path(file_okay=False, path_type=Path), help="Job working directories (env: RELAY_RECEIVED_DIR)")
@click.option("--archive-dir", type=click.Path(file_okay=False, path_type=Path), help="Archive root (env: RELAY_ARCHIVE_DIR)")
@click.pass_context
def main_cli(ctx: click.Context, received_dir: Optional[Path], archive_dir: Optional[Path]):
    """Publish recorded shows to AzuraCast, Mixcloud and SoundCloud, then archive them."""
    settings = Settings.from_env()
    if received_dir:
        settings.received_dir = received_dir
    if archive_dir:
        settings.archive_dir = archive_dir
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main_cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Server host")
@click.option("--port", default=8000, show_default=True, type=int, help="Server port")
@click.option("--reload", is_flag=True, help="Restart on code changes (dev)")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, reload: bool):
    """Serve the status API."""
    settings = _settings(ctx)
    settings.ensure_dirs()
    # the app factory reads settings from the environment
    os.environ["RELAY_RECEIVED_DIR"] = str(settings.received_dir)
    os.environ["RELAY_ARCHIVE_DIR"] = str(settings.archive_dir)
    uvicorn.run("showrelay.server:app_factory", host=host, port=port, reload=reload, factory=True, timeout_keep_alive=5)


@main_cli.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tracklist", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Tracklist file (json, csv or text)")
@click.option("--artwork", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", required=True)
@click.option("--owner", required=True, help="DJ / owner display name")
@click.option("--date", "broadcast_date", required=True, help="Broadcast date in UTC (YYYY-MM-DD)")
@click.option("--time", "broadcast_time", default="00:00:00", show_default=True, help="Broadcast time in UTC")
@click.option("--genre", "genres", multiple=True)
@click.option("--description", default="")
@click.option("--destination", "destinations", multiple=True, help="Repeat for several; defaults to RELAY_DESTINATIONS")
@click.option("--confirm-songs", is_flag=True, help="Wait for song confirmation before processing")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Process the job now instead of leaving it for the watch worker")
@click.pass_context
def submit(
    ctx: click.Context,
    audio: Path,
    tracklist: Optional[Path],
    artwork: Optional[Path],
    title: str,
    owner: str,
    broadcast_date: str,
    broadcast_time: str,
    genres: tuple,
    description: str,
    destinations: tuple,
    confirm_songs: bool,
    wait: bool,
):
    """Create a job from local files and optionally process it right away."""
    settings = _settings(ctx)
    settings.ensure_dirs()
    metadata = {
        "title": title,
        "owner": owner,
        "broadcast_date": broadcast_date,
        "broadcast_time": broadcast_time,
        "genres": list(genres),
        "description": description,
        "destinations": list(destinations),
        "confirm_songs": confirm_songs,
    }
    try:
        job_id = create_job(_store(settings), audio, tracklist, metadata, artwork=artwork)
    except InputError as e:
        raise click.ClickException(str(e))
    console.print(f"Created job [bold]{job_id}[/bold]")
    if not wait or confirm_songs:
        return
    configure_logging(settings.log_dir, name=f"job-{job_id}")
    record = build_orchestrator(settings).run(job_id)
    print_status(record)
    if record.status != COMPLETED:
        ctx.exit(1)


@main_cli.command()
@click.argument("job_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw status record")
@click.pass_context
def status(ctx: click.Context, job_id: str, as_json: bool):
    """Show a job's status, falling back to its archive record."""
    record = _store(_settings(ctx)).lookup(job_id)
    if record is None:
        raise click.ClickException(f"Unknown job: {job_id}")
    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2))
    else:
        print_status(record)


@main_cli.command()
@click.argument("job_id")
@click.pass_context
def archive(ctx: click.Context, job_id: str):
    """Retry archival of a completed job whose archive step failed."""
    settings = _settings(ctx)
    store = _store(settings)
    record = store.get(job_id)
    if record is None:
        raise click.ClickException(f"No live job {job_id} (already archived?)")
    if record.status != COMPLETED:
        raise click.ClickException(f"Job {job_id} is {record.status}; only completed jobs can be archived")
    configure_logging(settings.log_dir, name=f"job-{job_id}")
    print_status(build_orchestrator(settings).run(job_id))


@main_cli.command()
@click.option("--limit", default=20, show_default=True, type=int)
@click.option("--status", "statuses", multiple=True, help="Only show jobs in these statuses")
@click.pass_context
def jobs(ctx: click.Context, limit: int, statuses: tuple):
    """List jobs that still have a working directory."""
    store = _store(_settings(ctx))
    counts = store.counts()
    console.print(", ".join(f"{k}: {v}" for k, v in counts.items()))
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Job")
    table.add_column("Status")
    table.add_column("Updated")
    table.add_column("Message")
    for job in store.recent_jobs(limit=limit, statuses=list(statuses) or None):
        table.add_row(job["job_id"], job["status"], job["timestamp"], job["message"])
    console.print(table)


@main_cli.command()
@click.pass_context
def watch(ctx: click.Context):
    """Process jobs as they arrive in the received directory."""
    settings = _settings(ctx)
    configure_logging(settings.log_dir, name="watch_worker")
    run_watch_worker(settings)


def main():
    """Main entry point."""
    main_cli()


if __name__ == "__main__":
    main()
