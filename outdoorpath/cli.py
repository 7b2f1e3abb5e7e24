"""Typer CLI for OutdoorPath."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .crud import create_profile
from .database import get_session
from .errors import ValidationError
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import init_db, upgrade_database
from .waitlist import expire_offers

app = typer.Typer(help="OutdoorPath command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the SQLite database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with the waitlist scheduler."""
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    config = uvicorn.Config(
        "outdoorpath.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting OutdoorPath on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    organizers: int = typer.Option(
        settings.seed_organizers,
        "--organizers",
        min=1,
        help="Number of organizer profiles to create",
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    max_attendees: int = typer.Option(
        settings.seed_attendees_per_event,
        "--max-attendees",
        min=0,
        help="Member profiles available to RSVP to each event",
    ),
    private_percent: int = typer.Option(
        settings.seed_private_percent,
        "--private-percent",
        min=0,
        max=100,
        help="Percentage of events that should be private (0-100)",
    ),
):
    """Populate the database with fake organizers, events and RSVPs."""
    stats = seed_fake_data(
        organizer_count=organizers,
        event_count=events,
        max_attendees_per_event=max_attendees,
        private_percentage=private_percent,
    )
    typer.echo(
        f"Seed complete: {stats['profiles']} profiles, {stats['events']} events, "
        f"{stats['rsvps']} RSVPs created."
    )


@app.command("create-profile")
def create_profile_command(
    full_name: str = typer.Argument(..., help="Display name for the profile"),
    email: str | None = typer.Option(None, "--email", help="Contact email"),
    avatar_url: str | None = typer.Option(None, "--avatar-url", help="Avatar image URL"),
    role: str = typer.Option("member", "--role", help="Profile role label"),
) -> None:
    """Create a profile and print its API token."""
    init_db()
    try:
        with get_session() as session:
            profile = create_profile(
                session,
                full_name=full_name,
                email=email,
                avatar_url=avatar_url,
                role=role,
            )
            token = profile.api_token
            profile_id = profile.id
    except ValidationError as exc:
        typer.secho(exc.message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Created profile {profile_id}")
    typer.echo(token)


@app.command("expire-offers")
def expire_offers_command() -> None:
    """Expire stale waitlist offers and pass the spots along."""
    init_db()
    stats = expire_offers()
    typer.echo(f"Offer sweep complete: {stats}")


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="SQLAlchemy URL; leave empty to use the SQLite file in the data dir",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to outdoorpath.toml (default: ./outdoorpath.toml)",
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle the background waitlist offer sweep",
    ),
    waitlist_claim_hours: int | None = typer.Option(
        None,
        "--waitlist-claim-hours",
        min=1,
        help="Hours a waitlisted user has to claim an offered spot",
    ),
    waitlist_sweep_minutes: int | None = typer.Option(
        None,
        "--waitlist-sweep-minutes",
        min=1,
        help="Minutes between expired-offer sweeps",
    ),
    seed_organizers: int | None = typer.Option(
        None, "--seed-organizers", min=1, help="Default seed-data organizers"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_attendees_per_event: int | None = typer.Option(
        None,
        "--seed-attendees-per-event",
        min=0,
        help="Default seed-data attendees per event",
    ),
    seed_private_percent: int | None = typer.Option(
        None,
        "--seed-private-percent",
        min=0,
        max=100,
        help="Default percent of private events for seed-data",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "app_host": host,
        "app_port": port,
        "database_url": database_url,
        "enable_scheduler": enable_scheduler,
        "waitlist_claim_hours": waitlist_claim_hours,
        "waitlist_sweep_minutes": waitlist_sweep_minutes,
        "seed_organizers": seed_organizers,
        "seed_events": seed_events,
        "seed_attendees_per_event": seed_attendees_per_event,
        "seed_private_percent": seed_private_percent,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the test suite with helpful defaults."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", ".")
    env.setdefault("UV_CACHE_DIR", ".uv-cache")
    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [uv_path, "run", "pytest"]
    else:
        typer.echo("uv not found, falling back to python -m pytest")
        cmd = [sys.executable, "-m", "pytest"]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
