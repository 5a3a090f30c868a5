"""OneLine CLI - one line a day, synced through git."""

import asyncio
import json
import logging
import sys
from datetime import date

import click

from .adapters.git_ops import GitError, sanitize_error
from .config import load_config
from .core.entry import DiaryEntry, display_date
from .core.results import MigrationOption, MigrationResult, RepositoryMode
from .factory import RepositoryFactory, create_repository_factory
from .settings import GitSettings


def _parse_date(ctx, param, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}")


async def _open_factory(need_entries: bool = True) -> RepositoryFactory:
    """Open the diary. Exits when entries are needed but the git tree is unavailable."""
    factory = create_repository_factory(load_config())
    if not await factory.initialize():
        if need_entries:
            click.echo(f"Error: could not open the git repository: {factory.git_error}", err=True)
            click.echo("Run 'oneline sync' to retry or 'oneline migrate local' to go back to local storage.", err=True)
            sys.exit(1)
        click.echo(f"Warning: git repository unavailable: {factory.git_error}", err=True)
    return factory


def _report(result: MigrationResult) -> None:
    if result.succeeded:
        click.echo(result.describe())
    else:
        click.echo(f"Error: {result.describe()}", err=True)
        sys.exit(1)


@click.group()
@click.version_option()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """OneLine - a diary with one entry per day."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if debug else logging.WARNING,
    )


@main.command()
def status():
    """Show storage mode and repository state."""

    async def _status():
        factory = await _open_factory(need_entries=False)
        mode = factory.get_current_mode()
        click.echo(f"Mode:     {mode.value}")
        if factory.git_available:
            entries = await factory.list_entries()
            click.echo(f"Entries:  {len(entries)}")
            if entries:
                click.echo(f"Latest:   {entries[0].date.isoformat()}")
        else:
            click.echo("Entries:  unavailable, the git working tree could not be opened")
        git = await factory.settings.get_git_settings()
        if git.repo_url:
            click.echo(f"Remote:   {sanitize_error(git.repo_url)}")
        if not await factory.has_valid_settings():
            click.echo("Git mode is active but settings are incomplete. Run 'oneline configure-git'.")
        if (
            mode is RepositoryMode.GIT
            and factory.git_available
            and await factory.git_repository.has_uncommitted_changes()
        ):
            click.echo("Working tree has uncommitted changes.")

    asyncio.run(_status())


@main.command()
@click.argument("text", nargs=-1, required=True)
@click.option("--date", "-d", "entry_date", default=None, callback=_parse_date,
              help="Entry date (YYYY-MM-DD), defaults to today")
def write(text: tuple[str, ...], entry_date: date | None):
    """Write (or replace) the entry for a day."""
    target = entry_date or date.today()

    async def _write():
        factory = await _open_factory()
        try:
            saved = await factory.save_entry(DiaryEntry(target, " ".join(text)))
        except GitError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        if saved:
            click.echo(f"Saved entry for {display_date(target)}.")
        else:
            click.echo(f"Entry for {display_date(target)} is unchanged.")

    asyncio.run(_write())


@main.command()
@click.option("--date", "-d", "entry_date", default=None, callback=_parse_date,
              help="Entry date (YYYY-MM-DD), defaults to today")
def show(entry_date: date | None):
    """Show the entry for a day."""
    target = entry_date or date.today()

    async def _show():
        factory = await _open_factory()
        entry = await factory.get_entry(target)
        if entry is None:
            click.echo(f"No entry for {display_date(target)}.")
            return
        click.echo(f"{entry.display_date}\n")
        click.echo(entry.content.strip())

    asyncio.run(_show())


@main.command("list")
@click.option("--month", default=None, help="Only this month (YYYY-MM)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_entries(month: str | None, as_json: bool):
    """List entries, most recent first."""

    async def _list():
        factory = await _open_factory()
        entries = await factory.list_entries()
        if month:
            try:
                year, month_number = (int(part) for part in month.split("-"))
                dates = await factory.get_entry_dates_for_month(year, month_number)
            except ValueError:
                raise click.BadParameter(f"expected YYYY-MM, got {month!r}", param_hint="--month")
            entries = [entry for entry in entries if entry.date in dates]

        if as_json:
            click.echo(
                json.dumps(
                    [
                        {
                            "date": e.date.isoformat(),
                            "content": e.content,
                            "last_modified": e.last_modified,
                        }
                        for e in entries
                    ],
                    indent=2,
                )
            )
            return

        if not entries:
            click.echo("No entries yet.")
            return
        for entry in entries:
            first_line = entry.content.strip().splitlines()[0] if entry.content.strip() else ""
            click.echo(f"{entry.date.isoformat()}  {first_line}")

    asyncio.run(_list())


@main.command()
@click.argument("entry_date", callback=_parse_date)
def delete(entry_date: date):
    """Delete the entry for a day."""

    async def _delete():
        factory = await _open_factory()
        try:
            deleted = await factory.delete_entry(entry_date)
        except GitError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        if deleted:
            click.echo(f"Deleted entry for {display_date(entry_date)}.")
        else:
            click.echo(f"No entry for {display_date(entry_date)}.")

    asyncio.run(_delete())


@main.command()
def sync():
    """Pull remote changes (local entries win) and push."""

    async def _sync():
        factory = await _open_factory(need_entries=False)
        result = await factory.sync_repository()
        if result.success:
            click.echo(f"Sync: {result.status.value}")
        else:
            click.echo(f"Error: sync {result.status.value}: {result.error}", err=True)
            sys.exit(1)

    asyncio.run(_sync())


@main.command()
@click.option("--repair", is_flag=True, help="Delete the unreadable or empty entry files")
def check(repair: bool):
    """Check local entry files for unreadable or empty entries."""

    async def _check():
        factory = await _open_factory(need_entries=False)
        report = await factory.local_repository.check_integrity()
        click.echo(f"{report.valid_entries}/{report.total_files} entries OK")
        for name in report.corrupted_files:
            click.echo(f"  bad: {name}")
        if not report.corrupted_files:
            return
        if not repair:
            sys.exit(1)
        if not await factory.local_repository.repair_corrupted_files(report.corrupted_files):
            click.echo("Error: could not delete every bad file.", err=True)
            sys.exit(1)
        click.echo(f"Deleted {len(report.corrupted_files)} bad entries.")

    asyncio.run(_check())


@main.command()
@click.argument("url")
@click.option("--username", prompt=True, help="Account name on the git host")
@click.option("--token", prompt=True, hide_input=True, help="Access token")
def validate(url: str, username: str, token: str):
    """Check whether a remote is safe to use for the diary."""

    async def _validate():
        factory = create_repository_factory(load_config())
        result = await factory.validator.validate_repository_safely(url, username, token)
        click.echo(f"{result.value}: {result.describe()}")
        if result.is_blocking:
            sys.exit(1)

    asyncio.run(_validate())


@main.command("configure-git")
@click.option("--url", prompt="Repository URL", help="HTTPS URL of the remote")
@click.option("--username", prompt=True, help="Account name on the git host")
@click.option("--token", prompt=True, hide_input=True, help="Access token")
@click.option("--name", "commit_name", default="", help="Commit author name")
@click.option("--email", "commit_email", default="", help="Commit author email")
def configure_git(url: str, username: str, token: str, commit_name: str, commit_email: str):
    """Record git settings. Does not switch modes; see 'oneline migrate git'."""

    async def _configure():
        factory = create_repository_factory(load_config())
        if await factory.settings.get_mode() is RepositoryMode.GIT:
            click.echo("Already in git mode. Use 'oneline migrate remote' to change the remote.", err=True)
            sys.exit(1)
        await factory.settings.save_git_settings(
            GitSettings(url, username, token, commit_name, commit_email)
        )
        click.echo("Git settings saved.")

    asyncio.run(_configure())


@main.group()
def migrate():
    """Move the diary between local-only and git storage."""
    pass


@migrate.command("git")
@click.option("--discard", is_flag=True, help="Adopt the remote without copying local entries")
@click.option("--confirm-unknown", is_flag=True, help="Accept a remote with unrecognized content")
def migrate_git(discard: bool, confirm_unknown: bool):
    """Switch to git storage using the configured remote."""
    option = MigrationOption.DISCARD_AND_SWITCH if discard else MigrationOption.MIGRATE_DATA

    async def _migrate():
        factory = await _open_factory()
        _report(await factory.migrate_to_git_mode(option, confirm_unknown=confirm_unknown))

    asyncio.run(_migrate())


@migrate.command("local")
@click.option("--clear-git-data", is_flag=True, help="Delete the working tree and git settings afterwards")
def migrate_local(clear_git_data: bool):
    """Switch back to local-only storage."""

    async def _migrate():
        factory = await _open_factory(need_entries=False)
        _report(await factory.migrate_to_local_mode(clear_git_data=clear_git_data))

    asyncio.run(_migrate())


@migrate.command("remote")
@click.argument("url")
@click.option("--username", prompt=True, help="Account name on the git host")
@click.option("--token", prompt=True, hide_input=True, help="Access token")
@click.option("--discard", is_flag=True, help="Do not carry current entries to the new remote")
def migrate_remote(url: str, username: str, token: str, discard: bool):
    """Move the diary to another remote."""
    option = MigrationOption.DISCARD_AND_SWITCH if discard else MigrationOption.MIGRATE_DATA

    async def _migrate():
        factory = await _open_factory(need_entries=False)
        _report(await factory.switch_remote(url, username, token, option))

    asyncio.run(_migrate())


if __name__ == "__main__":
    main()
