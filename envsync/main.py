"""Entry point: envsync command line (login, link, sync, push/pull, history, watch)."""

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import click
import httpx

from envsync import __version__
from envsync import config as app_config
from envsync.api.client import EnvSyncAPI
from envsync.auth import session as auth_session
from envsync.auth.credentials import CredentialsStore
from envsync.auth.session import Session
from envsync.errors import EnvSyncError, NotFoundError, NotLoggedInError
from envsync.files import find_env_files, is_valid_project_id, suggest_project_id
from envsync.sync.engine import SyncAction, SyncEngine, SyncReport
from envsync.sync.history import HistoryManager, current_version
from envsync.sync.watcher import AutoSyncWatcher

log = logging.getLogger("envsync.main")

_CONFIRM_PROMPTS = {
    SyncAction.CREATE_REMOTE: "{name} not found in cloud. Push it?",
    SyncAction.PUSH: "Your local {name} is newer. Push to cloud?",
    SyncAction.PULL: "Remote {name} is newer. Pull from cloud?",
}


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging to a file in the config dir and to stderr."""
    log_file = app_config.get_log_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("envsync")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.DEBUG if verbose else logging.WARNING)
    ch.setFormatter(fmt)
    root.addHandler(ch)
    root.debug("Logging to %s", log_file)


@dataclass
class AppContext:
    workspace: Path
    api: EnvSyncAPI
    creds: CredentialsStore

    def require_session(self) -> Session:
        try:
            return auth_session.require_session(self.api, self.creds)
        except NotLoggedInError as e:
            raise click.ClickException(str(e)) from e

    def require_project(self) -> str:
        project_id = app_config.read_project_id(self.workspace)
        if not project_id:
            raise click.ClickException("Workspace is not linked to a project (envsync link).")
        return project_id

    def failure(self, message: str, error: BaseException) -> click.ClickException:
        """CLI error for a failed call; a 401 also forgets the stored session."""
        if auth_session.clear_if_unauthorized(self.api, self.creds, error):
            message += "\nSession expired; please login again (envsync login)."
        return click.ClickException(message)

    def env_files(self) -> List[Path]:
        return find_env_files(self.workspace, app_config.get_file_patterns())

    def resolve_file(self, name: Optional[str]) -> Path:
        """File given on the command line, or the only env file of the workspace."""
        if name:
            candidate = Path(name)
            path = candidate if candidate.is_absolute() else self.workspace / candidate
            if not path.is_file():
                matches = [p for p in self.env_files() if p.name == candidate.name]
                if not matches:
                    raise click.ClickException(f"Could not find {name} in workspace")
                path = matches[0]
            return path
        files = self.env_files()
        if not files:
            raise click.ClickException("No .env files found in the workspace")
        if len(files) > 1:
            names = ", ".join(str(p.relative_to(self.workspace)) for p in files)
            raise click.ClickException(f"Several env files found, pick one: {names}")
        return files[0]


pass_app = click.make_pass_decorator(AppContext)


def _print_report(report: SyncReport) -> None:
    if not report.ok:
        click.secho(f"  {report.file_name}: failed ({type(report.error).__name__}: {report.error})", fg="red")
    elif report.action is None:
        click.echo(f"  {report.file_name}: skipped")
    elif report.action is SyncAction.NOOP:
        click.echo(f"  {report.file_name}: in sync")
    elif report.performed:
        click.secho(f"  {report.file_name}: {report.action.value} done", fg="green")
    else:
        click.echo(f"  {report.file_name}: {report.action.value} skipped")


@click.group()
@click.version_option(version=__version__, prog_name="envsync")
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace folder (default: current directory).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, workspace: Path, verbose: bool) -> None:
    """EnvSync: end-to-end encrypted sync of .env files."""
    _setup_logging(verbose)
    ctx.obj = AppContext(workspace=workspace.resolve(), api=EnvSyncAPI(), creds=CredentialsStore())


@cli.command()
@click.option("--email", prompt="Email address")
@pass_app
def login(app: AppContext, email: str) -> None:
    """Log in with a one-time code sent by email."""
    try:
        auth_session.request_login_code(app.api, email)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    except (EnvSyncError, httpx.HTTPError) as e:
        raise click.ClickException(f"Login failed: {e}") from e
    code = click.prompt("Enter the 6-digit code from your email")
    try:
        session = auth_session.login(app.api, app.creds, email, code)
    except (EnvSyncError, httpx.HTTPError) as e:
        raise click.ClickException(f"Login failed: {e}") from e
    click.secho(f"Logged in as {session.email}", fg="green")


@cli.command()
@pass_app
def logout(app: AppContext) -> None:
    """Log out and forget the stored token."""
    if auth_session.load_session(app.api, app.creds) is None:
        click.echo("Not logged in.")
        return
    auth_session.logout(app.api, app.creds)
    click.echo("Logged out.")


@cli.command()
@pass_app
def status(app: AppContext) -> None:
    """Show login, project link and the sync state of each env file."""
    session = auth_session.load_session(app.api, app.creds)
    if session is not None:
        session = auth_session.validate_session(app.api, app.creds, session)
    if session is None:
        click.echo("Not logged in.")
        return
    click.echo(f"Logged in as {session.email} (device {session.device_id})")
    project_id = app_config.read_project_id(app.workspace)
    click.echo(f"Project: {project_id or '(not linked)'}")
    if not project_id:
        return
    engine = SyncEngine(app.api, session, project_id)
    for path in app.env_files():
        try:
            action = engine.check_file(path)
        except (EnvSyncError, httpx.HTTPError, OSError) as e:
            click.secho(f"  {path.name}: error ({e})", fg="red")
            continue
        click.echo(f"  {path.name}: {action.value}")


@cli.command()
@click.argument("project_id", required=False)
@pass_app
def link(app: AppContext, project_id: Optional[str]) -> None:
    """Link this workspace to a remote project (choose or create one)."""
    session = app.require_session()
    if not project_id:
        try:
            projects = app.api.list_projects()
        except (EnvSyncError, httpx.HTTPError) as e:
            log.warning("Could not list projects: %s", e)
            projects = []
        suggested = suggest_project_id(session.username, app.workspace)
        if projects:
            click.echo("Existing projects:")
            for p in projects:
                click.echo(f"  {p.name}")
        project_id = click.prompt("Project name", default=suggested).strip()
    if not is_valid_project_id(project_id):
        raise click.ClickException(
            "Project name can only contain letters, numbers, hyphens, underscores, and slashes"
        )
    app_config.write_project_id(app.workspace, project_id)
    click.echo(f'Linked to project "{project_id}"')


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask before pushing or pulling.")
@pass_app
def sync(app: AppContext, yes: bool) -> None:
    """Check every env file and push, pull or create as needed."""
    session = app.require_session()
    project_id = app.require_project()
    files = app.env_files()
    if not files:
        click.echo("No .env files found in the workspace")
        return

    def confirm(action: SyncAction, name: str) -> bool:
        return yes or click.confirm(_CONFIRM_PROMPTS[action].format(name=name), default=False)

    engine = SyncEngine(app.api, session, project_id)
    reports = engine.sync_all(files, confirm=confirm)
    for report in reports:
        _print_report(report)
    if any(auth_session.clear_if_unauthorized(app.api, app.creds, r.error) for r in reports):
        click.secho("Session expired; please login again (envsync login).", fg="red")
    if any(not r.ok for r in reports):
        sys.exit(1)


@cli.command()
@click.argument("file", required=False)
@pass_app
def push(app: AppContext, file: Optional[str]) -> None:
    """Encrypt and upload one env file."""
    session = app.require_session()
    path = app.resolve_file(file)
    engine = SyncEngine(app.api, session, app.require_project())
    try:
        engine.push_file(path)
    except (EnvSyncError, httpx.HTTPError, OSError) as e:
        raise app.failure(f"Error pushing file: {e}", e) from e
    click.secho(f"Successfully pushed {path.name} to cloud", fg="green")


@cli.command()
@click.argument("file", required=False)
@pass_app
def pull(app: AppContext, file: Optional[str]) -> None:
    """Download, verify and write one env file (previous copy kept as backup)."""
    session = app.require_session()
    path = app.resolve_file(file)
    engine = SyncEngine(app.api, session, app.require_project())
    try:
        pulled = engine.pull_file(path)
    except (EnvSyncError, httpx.HTTPError, OSError) as e:
        raise app.failure(f"Error pulling file: {type(e).__name__}: {e}", e) from e
    if pulled:
        click.secho(f"Successfully pulled {path.name} from cloud", fg="green")
    else:
        click.echo(f"No {path.name} found in cloud")


@cli.command()
@click.argument("file", required=False)
@pass_app
def history(app: AppContext, file: Optional[str]) -> None:
    """List stored versions of an env file (newest first)."""
    session = app.require_session()
    path = app.resolve_file(file)
    manager = HistoryManager(app.api, session, app.require_project())
    try:
        versions = manager.list_versions(path.name)
    except (EnvSyncError, httpx.HTTPError) as e:
        raise app.failure(f"Could not load history: {e}", e) from e
    if not versions:
        click.echo(f"No history for {path.name}")
        return
    live = current_version(versions)
    for version in versions:
        stamp = version.timestamp.strftime("%Y-%m-%d %H:%M:%S") if version.timestamp else "unknown time"
        marker = " (current)" if version is live else ""
        click.echo(f"  {version.id}  {stamp}{marker}")


@cli.command()
@click.argument("file")
@click.argument("version_id")
@pass_app
def restore(app: AppContext, file: str, version_id: str) -> None:
    """Restore VERSION_ID of FILE into the workspace."""
    session = app.require_session()
    path = app.resolve_file(file)
    manager = HistoryManager(app.api, session, app.require_project())
    try:
        manager.restore(path, version_id)
    except NotFoundError as e:
        raise click.ClickException(f"Nothing to restore: {e}") from e
    except (EnvSyncError, httpx.HTTPError, OSError) as e:
        raise app.failure(f"Failed to restore version: {type(e).__name__}: {e}", e) from e
    click.secho(f"Restored {path.name}", fg="green")


@cli.command()
@pass_app
def watch(app: AppContext) -> None:
    """Auto-sync env files when they change (Ctrl-C to stop)."""
    if not app_config.get_auto_sync():
        raise click.ClickException("Auto-sync is disabled; enable it with: envsync config --auto-sync")
    session = app.require_session()
    engine = SyncEngine(app.api, session, app.require_project())
    watcher = AutoSyncWatcher(engine, app.workspace, app_config.get_file_patterns(), on_report=_print_report)
    watcher.start()
    click.echo(f"Watching {app.workspace} (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()


@cli.command("config")
@click.option("--api-url", help="Service base URL.")
@click.option("--auto-sync/--no-auto-sync", default=None, help="Sync files automatically on change.")
@click.option("--pattern", "patterns", multiple=True, help="File pattern to sync (repeatable, replaces the list).")
def config_cmd(api_url: Optional[str], auto_sync: Optional[bool], patterns: tuple) -> None:
    """Show or change client settings."""
    if api_url is not None:
        app_config.set_api_url(api_url)
    if auto_sync is not None:
        app_config.set_auto_sync(auto_sync)
    if patterns:
        app_config.set_file_patterns(list(patterns))
    click.echo(f"api_url: {app_config.get_api_url()}")
    click.echo(f"auto_sync: {app_config.get_auto_sync()}")
    click.echo("file_patterns: " + ", ".join(app_config.get_file_patterns()))


def main() -> None:
    """Run the envsync command line."""
    cli()


if __name__ == "__main__":
    main()
