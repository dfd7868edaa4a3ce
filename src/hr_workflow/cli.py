"""Operator command line for the HR record service."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from hr_workflow import __version__
from hr_workflow.app import AppContext, get_app_context
from hr_workflow.auth.principal import Principal
from hr_workflow.domain.records import Record, RecordId, Schedule
from hr_workflow.errors import WorkflowError
from hr_workflow.filtering import FilterCriteria, filter_records
from hr_workflow.logging_utils import configure_logging
from hr_workflow.notifications import always_confirm
from hr_workflow.page import RecordPage

T = TypeVar("T")


class EchoNotifier:
    """Prints notifications to the terminal."""

    def success(self, message: str) -> None:
        click.echo(click.style(message, fg="green"))

    def error(self, message: str) -> None:
        click.echo(click.style(message, fg="red"), err=True)

    def info(self, message: str) -> None:
        click.echo(click.style(message, fg="yellow"))


async def _prompt_confirm(message: str) -> bool:
    # click.confirm blocks on stdin; keep the loop free for in-flight requests.
    return await asyncio.to_thread(click.confirm, message, default=False)


def cast_int_like_to_int(value: str) -> RecordId:
    """Record ids are integers on the service, but keep anything else verbatim."""
    try:
        return int(value)
    except ValueError:
        return value


def _run(factory: Callable[[], Awaitable[T]]) -> T:
    try:
        return asyncio.run(factory())
    except WorkflowError as exc:
        # Already reported by the notifier.
        raise click.exceptions.Exit(1) from exc


def _format_row(record: Record) -> str:
    start = record.start.strftime("%Y-%m-%d %H:%M") if record.start else "-"
    end = record.end.strftime("%Y-%m-%d %H:%M") if record.end else "-"
    title = record.lookup("title") or record.lookup("type") or record.lookup("destination") or ""
    return f"{record.id!s:>6}  {record.status:<16} {start:<16} {end:<16} {title}"


class _Session:
    def __init__(self, app: AppContext, principal: Principal, assume_yes: bool) -> None:
        self.app = app
        self.principal = principal
        self.assume_yes = assume_yes

    async def with_page(self, kind: str, body: Callable[[RecordPage], Awaitable[T]]) -> T:
        async with self.app.create_client() as client:
            page = RecordPage(
                kind,
                table=self.app.table,
                client=client,
                principal=self.principal,
                notifier=EchoNotifier(),
                confirm=always_confirm if self.assume_yes else _prompt_confirm,
                debounce_seconds=self.app.settings.filtering.debounce_seconds,
                auto_refresh=False,
            )
            try:
                await page.load()
                return await body(page)
            finally:
                await page.aclose()


def _kind_argument(ctx: click.Context, _param: click.Parameter, value: str) -> str:
    app: AppContext = ctx.obj.app
    try:
        app.workflow.kind(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    return value


@click.group()
@click.version_option(__version__, prog_name="hr-workflow")
@click.option("--user-id", default="0", show_default=True, help="Acting user id")
@click.option(
    "--role",
    "roles",
    multiple=True,
    default=("superadmin",),
    show_default=True,
    help="Role name of the acting user, repeatable (superadmin, hrd_manager, department_manager)",
)
@click.option("--department", "departments", multiple=True, help="Department managed by the acting user")
@click.option("--yes", "assume_yes", is_flag=True, help="Confirm destructive actions without asking")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(
    ctx: click.Context,
    user_id: str,
    roles: tuple[str, ...],
    departments: tuple[str, ...],
    assume_yes: bool,
    log_level: str | None,
) -> None:
    """Work HR records (meetings, events, leaves, travel orders) from the terminal."""
    configure_logging(log_level)
    try:
        app = get_app_context()
    except (RuntimeError, FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    principal = Principal.from_role_names(cast_int_like_to_int(user_id), roles, departments)
    ctx.obj = _Session(app, principal, assume_yes)


@cli.command("kinds")
@click.pass_obj
def list_kinds(session: _Session) -> None:
    """Show configured record kinds and their statuses."""
    for kind in session.app.workflow.kinds.values():
        click.echo(click.style(kind.label, fg="green"))
        click.echo(f"  statuses: {', '.join(kind.statuses)}")
        for rule in kind.transitions:
            roles = ", ".join(role.value for role in rule.roles)
            sources = "/".join(rule.from_statuses)
            click.echo(f"  {sources} -> {rule.to} [{roles}]")


@cli.command("list")
@click.argument("kind", callback=_kind_argument)
@click.option("--status", default="all", show_default=True, help="Status tab")
@click.option("--search", default="", help="Case-insensitive text search")
@click.option("--from", "date_from", default=None, help="Start date lower bound (YYYY-MM-DD)")
@click.option("--to", "date_to", default=None, help="Start date upper bound, inclusive (YYYY-MM-DD)")
@click.pass_obj
def list_records(
    session: _Session,
    kind: str,
    status: str,
    search: str,
    date_from: str | None,
    date_to: str | None,
) -> None:
    """List records of KIND matching the filters."""
    try:
        criteria = FilterCriteria(status, search, date_from, date_to)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    async def body(page: RecordPage) -> tuple[Record, ...]:
        return filter_records(page.store.snapshot(), criteria, page.kind)

    records = _run(lambda: session.with_page(kind, body))
    for record in records:
        click.echo(_format_row(record))
    click.echo(f"{len(records)} record(s)")


@cli.command("transition")
@click.argument("kind", callback=_kind_argument)
@click.argument("record_id")
@click.argument("status")
@click.option("--remarks", default="", help="Remarks sent with the status change")
@click.option("--start", default=None, help="New start when rescheduling")
@click.option("--end", default=None, help="New end when rescheduling")
@click.pass_obj
def transition(
    session: _Session,
    kind: str,
    record_id: str,
    status: str,
    remarks: str,
    start: str | None,
    end: str | None,
) -> None:
    """Move record RECORD_ID of KIND to STATUS."""
    schedule = None
    if start or end:
        try:
            schedule = Schedule.parse(start, end)
        except ValueError as exc:
            raise click.BadParameter(str(exc)) from exc

    async def body(page: RecordPage) -> Record | None:
        return await page.controller.transition(
            cast_int_like_to_int(record_id), status, remarks, schedule=schedule
        )

    updated = _run(lambda: session.with_page(kind, body))
    if updated is not None:
        click.echo(_format_row(updated))


@cli.command("export")
@click.argument("kind", callback=_kind_argument)
@click.option("--output", "output", required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--status", default="all", show_default=True)
@click.option("--search", default="")
@click.option("--from", "date_from", default=None)
@click.option("--to", "date_to", default=None)
@click.pass_obj
def export(
    session: _Session,
    kind: str,
    output: Path,
    status: str,
    search: str,
    date_from: str | None,
    date_to: str | None,
) -> None:
    """Download the spreadsheet export of KIND to OUTPUT."""
    try:
        criteria = FilterCriteria(status, search, date_from, date_to)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    async def body(page: RecordPage) -> bytes:
        return await page.controller.export(criteria)

    content = _run(lambda: session.with_page(kind, body))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(content)
    click.echo(f"Wrote {len(content)} bytes to {output}")


def main(argv: list[str] | None = None) -> Any:
    return cli.main(args=argv, prog_name="hr-workflow")


if __name__ == "__main__":  # pragma: no cover
    main()
