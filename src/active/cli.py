"""Command line interface for local habit tracking."""

from __future__ import annotations

from datetime import datetime

import click

from .clock import as_day
from .config import BaseConfig
from .context import AppContext, create_app_context
from .errors import ActiveError
from .logging_config import setup_logging
from .models.habit import HabitColor, HabitStatus
from .services import habits as habit_rules
from .services.reminders import describe
from .services.tracker import progress_label

DAY = click.DateTime(formats=["%Y-%m-%d"])
FIRE_TIME = click.DateTime(formats=["%H:%M"])


def _app(ctx: click.Context) -> AppContext:
    return ctx.obj["app"]


def _days(values: tuple[datetime, ...]) -> list:
    return [as_day(value) for value in values]


@click.group()
@click.option("--user", "username", default=None, help="User to act as (default: ACTIVE_USERNAME).")
@click.pass_context
def cli(ctx: click.Context, username: str | None) -> None:
    """Track habits as challenges of scheduled days."""

    config = BaseConfig()
    setup_logging(config)
    app = create_app_context(config, username=username)
    ctx.obj = {"app": app}
    ctx.call_on_close(app.close)


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema and the default user."""

    app = _app(ctx)
    click.echo(f"Database ready at {app.config.DATABASE_URL} (user: {app.current_user.username})")


@cli.command()
@click.argument("name")
@click.option(
    "--color",
    type=click.Choice([c.value for c in HabitColor]),
    default=HabitColor.EMERALD.value,
    show_default=True,
)
@click.option("--day", "days", type=DAY, multiple=True, required=True, help="Scheduled day, YYYY-MM-DD.")
@click.option("--remind", "fire_times", type=FIRE_TIME, multiple=True, help="Reminder time, HH:MM.")
@click.pass_context
def create(ctx: click.Context, name: str, color: str, days, fire_times) -> None:
    """Create a habit whose first challenge schedules the given days."""

    tracker = _app(ctx).tracker()
    try:
        result = tracker.create_habit(
            name, color, _days(days), fire_times=[value.time() for value in fire_times]
        )
    except ActiveError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created habit {result.habit.id}: {result.habit.name}")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.argument("habit_id", type=int)
@click.option("--name", default=None)
@click.option("--day", "days", type=DAY, multiple=True, help="Replacement day set, YYYY-MM-DD.")
@click.option("--remind", "fire_times", type=FIRE_TIME, multiple=True, help="Replacement reminder times.")
@click.pass_context
def edit(ctx: click.Context, habit_id: int, name: str | None, days, fire_times) -> None:
    """Rename a habit and/or replace its current challenge's days."""

    tracker = _app(ctx).tracker()
    try:
        result = tracker.edit_habit(
            habit_id,
            name=name,
            days=_days(days) if days else None,
            fire_times=[value.time() for value in fire_times] if fire_times else None,
        )
    except ActiveError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Updated habit {habit_id} (version {result.habit.version})")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command("list")
@click.option("--completed", is_flag=True, default=False, help="Show completed habits instead.")
@click.pass_context
def list_habits(ctx: click.Context, completed: bool) -> None:
    """List in-progress (default) or completed habits."""

    app = _app(ctx)
    catalog = app.catalog()
    today = catalog.today()
    habits = catalog.list_completed() if completed else catalog.list_in_progress()
    if not habits:
        click.echo("No habits.")
        return
    for habit in habits:
        state = habit_rules.status(habit, today)
        label = progress_label(habit_rules.progress(habit, today), state)
        reminders = describe(habit_rules.fire_times(habit))
        if state is HabitStatus.COMPLETED:
            click.echo(f"{habit.id:>4}  {habit.name}  [{habit.color.value}]")
        else:
            click.echo(f"{habit.id:>4}  {habit.name}  [{habit.color.value}]  {label}  reminders: {reminders}")


@cli.command()
@click.argument("habit_id", type=int)
@click.option("--on", "day", type=DAY, default=None, help="Day to mark, default today.")
@click.pass_context
def check(ctx: click.Context, habit_id: int, day) -> None:
    """Mark a scheduled day of a habit as executed."""

    tracker = _app(ctx).tracker()
    try:
        result = tracker.mark_executed(habit_id, as_day(day) if day is not None else None)
    except ActiveError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Marked {result.day.scheduled_on.isoformat()} as executed")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.argument("habit_id", type=int)
@click.pass_context
def delete(ctx: click.Context, habit_id: int) -> None:
    """Delete a habit and its history."""

    tracker = _app(ctx).tracker()
    try:
        warnings = tracker.delete_habit(habit_id)
    except ActiveError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted habit {habit_id}")
    for warning in warnings:
        click.echo(f"Warning: {warning}", err=True)


if __name__ == "__main__":  # pragma: no cover
    cli()
