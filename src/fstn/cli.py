"""CLI for fstn."""

from contextlib import contextmanager
from pathlib import Path
from typing import Optional
import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .client import StoreClient
from .config import ClientConfig, resolve_config
from .constants import DEFAULT_LABEL, LOGIN_PATH
from .credentials import CredentialStore
from .errors import AuthError, FstnError
from .session import SessionManager, login as session_login, save_session


app = typer.Typer(help="""\
A CLI client for interacting with Faasten. Store small values with
get/set, upload and download content-addressed blobs with put/fetch,
and manage directories with ls/mkdir/mkfile/unlink.""")

console = Console(stderr=True)


class AppState:
    """Per-invocation state shared by all commands."""

    def __init__(self, server: Optional[str], profile: Optional[str]):
        self.store = CredentialStore()
        self._server = server
        self._profile = profile
        self._config: Optional[ClientConfig] = None
        self._client: Optional[StoreClient] = None

    @property
    def config(self) -> ClientConfig:
        if self._config is None:
            self._config = resolve_config(self._server, self._profile, store=self.store)
        return self._config

    def client(self) -> StoreClient:
        """Store client bound to the session stored for this server/profile."""
        if self._client is None:
            cfg = self.config
            sessions = SessionManager.from_store(self.store, cfg.server, cfg.profile)
            self._client = StoreClient(sessions, timeout=cfg.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def _status(action: str, message: str, style: str = "green") -> None:
    console.print(f"[bold {style}]{action:>12}[/bold {style}] {escape(message)}")


@contextmanager
def handle_errors(action: str):
    """Report any fstn error as a one-line failure and exit non-zero."""
    try:
        yield
    except AuthError as e:
        console.print(f"[red]✗[/red] {action} failed: {escape(str(e))}")
        console.print("[dim]Hint: run 'fstn login' to store a valid token[/dim]")
        raise typer.Exit(1)
    except FstnError as e:
        console.print(f"[red]✗[/red] {action} failed: {escape(str(e))}")
        raise typer.Exit(1)


def _state(ctx: typer.Context) -> AppState:
    return ctx.obj


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fstn {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    server: Optional[str] = typer.Option(None, "--server", "-s", help="Faasten server URL"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Credential profile to use"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests and digests"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    ctx.obj = AppState(server, user)
    ctx.call_on_close(ctx.obj.close)


@app.command()
def login(
    ctx: typer.Context,
    token: Optional[str] = typer.Option(None, "--token", help="API token (prompted if omitted)"),
    set_default: bool = typer.Option(
        False, "--default", help="Remember this server as the default"
    ),
):
    """Log in to Faasten and save the session.

    Examples:
        fstn login
        fstn --server http://localhost:8080 login --default
    """
    state = _state(ctx)
    with handle_errors("Login"):
        cfg = state.config
        if token is None:
            console.print(
                f"Please paste the API Token found by logging in at {cfg.server}/{LOGIN_PATH} below"
            )
            token = typer.prompt(">", hide_input=True, prompt_suffix=" ")
        session = session_login(cfg.server, token, profile=cfg.profile, timeout=cfg.timeout)
        save_session(state.store, session)
        if set_default:
            state.store.set_default_server(cfg.server)
    _status("Login", f"saved ({session.user} @ {session.endpoint})")


@app.command()
def whoami(ctx: typer.Context):
    """Show who the stored token belongs to."""
    with handle_errors("Whoami"):
        me = _state(ctx).client().whoami()
    typer.echo(json.dumps(me, indent=2))


@app.command()
def ping(ctx: typer.Context):
    """Measure round-trip time to the gateway."""
    with handle_errors("Ping"):
        elapsed = _state(ctx).client().ping()
    typer.echo(f"ping: {elapsed * 1000:.1f}ms elapsed")


@app.command("ping-scheduler")
def ping_scheduler(ctx: typer.Context):
    """Measure round-trip time to the scheduler via the gateway."""
    with handle_errors("Ping"):
        elapsed = _state(ctx).client().ping_scheduler()
    typer.echo(f"ping: {elapsed * 1000:.1f}ms elapsed")


@app.command()
def get(ctx: typer.Context, key: str = typer.Argument(..., help="Key to read, e.g. ~:notes")):
    """Print the value stored at KEY.

    For keys written with put this prints the blob's content id.
    """
    with handle_errors("Get"):
        data = _state(ctx).client().get(key)
    typer.echo(data, nl=False)


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to write"),
    value: Optional[str] = typer.Argument(None, help="Value (read from stdin if omitted)"),
):
    """Store VALUE at KEY as-is."""
    if value is None:
        data = typer.get_binary_stream("stdin").read()
    else:
        data = value.encode("utf-8")
    with handle_errors("Set"):
        _state(ctx).client().set(key, data)
    _status("Set", "OK")


@app.command()
def put(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to bind"),
    file: Path = typer.Argument(..., help="Local file to upload"),
):
    """Upload FILE as a blob and point KEY at it."""
    with handle_errors("Put"):
        content_id = _state(ctx).client().put(key, file)
    _status("Put", f"{file} -> {key}")
    typer.echo(content_id)


@app.command()
def fetch(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Blob-backed key"),
    file: Path = typer.Argument(..., help="Destination file"),
):
    """Download the blob KEY points at into FILE."""
    with handle_errors("Fetch"):
        content_id = _state(ctx).client().fetch(key, file)
    _status("Fetch", f"{key} -> {file}")
    console.print(f"[dim]Digest: {content_id}[/dim]")


@app.command()
def ls(ctx: typer.Context, key: str = typer.Argument("~", help="Directory key")):
    """List entries under KEY."""
    with handle_errors("Ls"):
        entries = _state(ctx).client().ls(key)
    typer.echo(json.dumps(entries, indent=2))


LABEL_OPTION = typer.Option(DEFAULT_LABEL, "--label", "-l", help="Label for the new entry")


@app.command()
def mkdir(
    ctx: typer.Context,
    base: str = typer.Argument(..., help="Parent directory key"),
    name: str = typer.Argument(..., help="Name of the new directory"),
    label: str = LABEL_OPTION,
):
    """Create directory NAME under BASE.

    Examples:
        fstn mkdir ~ photos
        fstn mkdir --label "T,T" ~:photos 2024
    """
    with handle_errors("Mkdir"):
        _state(ctx).client().mkdir(base, name, label=label)
    _status("Mkdir", f"{base}:{name}")


@app.command()
def mkfile(
    ctx: typer.Context,
    base: str = typer.Argument(..., help="Parent directory key"),
    name: str = typer.Argument(..., help="Name of the new file"),
    label: str = LABEL_OPTION,
):
    """Create an empty file NAME under BASE."""
    with handle_errors("Mkfile"):
        _state(ctx).client().mkfile(base, name, label=label)
    _status("Mkfile", f"{base}:{name}")


@app.command()
def unlink(
    ctx: typer.Context,
    base: str = typer.Argument(..., help="Directory key holding the entry"),
    name: str = typer.Argument(..., help="Entry to remove"),
):
    """Remove entry NAME from directory BASE."""
    with handle_errors("Unlink"):
        _state(ctx).client().unlink(base, name)
    _status("Unlink", f"{base}:{name}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
