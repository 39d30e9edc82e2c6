import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.markup import escape

from aqfile import __version__, create_client
from aqfile.client import AqfileClient, blob_cid
from aqfile.config import (
    DEFAULT_SERVICE,
    Settings,
    clear_config,
    get_config_path,
    load_config_file,
    load_settings,
    normalize_service_url,
    save_config,
)
from aqfile.exceptions import AqfileError, ConfigError, FileSystemError, ValidationError
from aqfile.lexicon import main_schema, safe_parse
from aqfile.logging import configure
from aqfile.utils.cli_utils import (
    format_size,
    format_table_header,
    format_table_row,
    get_output_console,
    get_rich_console,
    stdin_is_terminal,
    stdout_is_terminal,
)
from aqfile.utils.content import is_binary_content

T = TypeVar("T")

app = typer.Typer(
    help="Upload files to an AT Protocol PDS and manage their net.altq.aqfile records.",
    no_args_is_help=True,
    add_completion=False,
)
logger = logging.getLogger(__name__)
console = get_rich_console()
out = get_output_console()


@dataclass
class CliState:
    cli_values: dict[str, Any] = field(default_factory=dict)
    debug: bool = False


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"aqfile v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(None, "--service", "-s", help="PDS service URL."),
    handle: Optional[str] = typer.Option(None, "--handle", "-u", help="Handle or DID."),
    app_password: Optional[str] = typer.Option(None, "--app-password", "-p", help="App password."),
    debug: bool = typer.Option(False, "--debug", envvar="AQFILE_DEBUG", help="Print full error details."),
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
):
    """
    Credentials are read from the options above, then AQFILE_SERVICE /
    AQFILE_HANDLE / AQFILE_APP_PASSWORD, then the config file.
    """
    configure("DEBUG" if debug else "WARNING")
    ctx.obj = CliState(
        cli_values={"service": service, "handle": handle, "app_password": app_password},
        debug=debug,
    )


# ――― helpers ――― #

def _state(ctx: typer.Context) -> CliState:
    if ctx.obj is None:
        ctx.obj = CliState()
    return ctx.obj


def _fail(state: CliState, error: AqfileError) -> None:
    console.print(f"[bold red]✖[/bold red] {escape(str(error))}")
    if isinstance(error, ValidationError):
        for issue in error.issues:
            console.print(f"  - {escape(issue.code)} at {escape(issue.path_string)}: {escape(issue.detail)}")
    if state.debug:
        console.print_exception()
    raise typer.Exit(code=1)


def _settings(state: CliState) -> Settings:
    settings = load_settings(**state.cli_values)
    if not state.debug:
        configure(settings.log_level)
    return settings


def _run(ctx: typer.Context, action: Callable[[AqfileClient], Awaitable[T]]) -> T:
    """Build a client, run one command against it and always release the session."""
    state = _state(ctx)

    async def _go() -> T:
        async with create_client(_settings(state)) as client:
            return await action(client)

    try:
        return asyncio.run(_go())
    except AqfileError as e:
        _fail(state, e)


def _print_links(client: AqfileClient, uri: str, cid: Optional[str]) -> None:
    for label, link in client.inspection_links(uri).items():
        out.print(f"  Inspect ({label}): {link}", markup=False)
    if cid:
        out.print(f"  Blob URL: {client.blob_url(cid)}", markup=False)


# ――― commands ――― #

@app.command()
def upload(ctx: typer.Context, file: Path = typer.Argument(..., help="File to upload.")):
    """Upload a file as a blob and create a record referencing it."""

    async def _upload(client: AqfileClient):
        with console.status(f"Uploading {escape(file.name)}...", spinner="dots"):
            result = await client.upload_file(file)
        for warning in result.warnings:
            console.print(f"[yellow]⚠[/yellow] {escape(warning)}")
        descriptor = result.record.file
        console.print(
            f"[bold green]✔[/bold green] Uploaded {escape(descriptor.name)} "
            f"({format_size(descriptor.size)}, {escape(descriptor.mime_type or '?')})"
        )
        out.print(f"  URI: {result.ref.uri}", markup=False)
        out.print(f"  CID: {result.ref.cid}", markup=False)
        out.print(f"  RKey: {result.ref.rkey}", markup=False)
        _print_links(client, result.ref.uri, result.record.blob.cid)

    _run(ctx, _upload)


@app.command("list")
def list_files(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", "-n", min=1, max=100, help="Maximum records to fetch."),
):
    """List uploaded files."""

    async def _list(client: AqfileClient):
        records = await client.list_files(limit)
        if not records:
            out.print("No files found.")
            return
        out.print(format_table_header(), markup=False)
        for record in records:
            descriptor = record.value.get("file") or {}
            created = str(record.value.get("createdAt", ""))[:19].replace("T", " ")
            row = format_table_row(
                record.rkey,
                str(descriptor.get("name", "?")),
                format_size(descriptor.get("size")),
                created,
            )
            out.print(row, markup=False)
        out.print(f"\n{len(records)} file(s)")

    _run(ctx, _list)


@app.command()
def show(ctx: typer.Context, rkey: str = typer.Argument(..., help="Record key.")):
    """Show every field of one record."""

    async def _show(client: AqfileClient):
        record = await client.show_file(rkey)
        value = record.value
        result = safe_parse(main_schema, value)
        if not result.ok:
            logger.warning(f"Record {rkey} does not match {main_schema.name}: {result.message}")
            console.print(f"[yellow]⚠[/yellow] Record does not match the schema: {escape(result.message)}")

        descriptor = value.get("file") or {}
        checksum = value.get("checksum") or {}
        cid = blob_cid(value)
        rows = [
            ("URI", record.uri),
            ("CID", record.cid),
            ("Name", descriptor.get("name")),
            ("Size", f"{format_size(descriptor.get('size'))} ({descriptor.get('size')} bytes)"),
            ("MIME type", descriptor.get("mimeType")),
            ("Modified", descriptor.get("modifiedAt")),
            ("Created", value.get("createdAt")),
            ("Checksum", f"{checksum.get('algo')}:{checksum.get('hash')}" if checksum else None),
            ("Attribution", value.get("attribution")),
            ("Blob", cid),
        ]
        for label, item in rows:
            if item is not None:
                out.print(f"{label + ':':<13} {item}", markup=False)
        _print_links(client, record.uri, cid)

    _run(ctx, _show)


@app.command()
def get(
    ctx: typer.Context,
    rkey: str = typer.Argument(..., help="Record key."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout."),
    force: bool = typer.Option(False, "--force", "-f", help="Print binary content without asking."),
):
    """Download the file behind a record."""
    record, data = _run(ctx, lambda client: client.download_file(rkey))

    if output is not None:
        try:
            with output.open("wb") as fh:
                fh.write(data)
        except OSError as e:
            _fail(_state(ctx), FileSystemError(f"Cannot write {output}: {e}"))
        console.print(f"[bold green]✔[/bold green] Saved {len(data)} bytes to {escape(str(output))}")
        return

    if stdout_is_terminal() and not force and is_binary_content(data):
        if not typer.confirm(
            "Content looks binary and may garble your terminal. Print anyway?", default=False, err=True
        ):
            console.print("Skipped. Use --output to save it to a file.")
            return

    stream = typer.get_binary_stream("stdout")
    stream.write(data)
    stream.flush()


@app.command()
def delete(ctx: typer.Context, rkey: str = typer.Argument(..., help="Record key.")):
    """Delete a record. The blob is garbage-collected by the PDS once unreferenced."""

    async def _delete(client: AqfileClient):
        cid = await client.delete_file(rkey)
        console.print(f"[bold green]✔[/bold green] Deleted record {escape(rkey)}")
        if cid:
            out.print(f"  Blob: {cid}", markup=False)
        out.print(
            "  The blob is no longer referenced by this record; the PDS will garbage-collect it "
            "once no other record references it.",
            markup=False,
        )

    _run(ctx, _delete)


@app.command("config")
def config_cmd(
    ctx: typer.Context,
    action: str = typer.Argument("show", help="show | setup | clear"),
):
    """Show, set up interactively, or clear the saved configuration."""
    state = _state(ctx)
    try:
        if action == "show":
            _config_show(state)
        elif action == "setup":
            _config_setup()
        elif action == "clear":
            if clear_config():
                console.print(f"[bold green]✔[/bold green] Configuration cleared ({escape(str(get_config_path()))})")
            else:
                console.print("No saved configuration to clear.")
        else:
            raise ConfigError(f"Unknown config action: {action}. Use show, setup or clear.")
    except AqfileError as e:
        _fail(state, e)


def _config_show(state: CliState) -> None:
    out.print(f"Config file location: {get_config_path()}", markup=False)
    saved = load_config_file()
    if saved:
        out.print(f"Saved keys: {', '.join(sorted(saved))}", markup=False)
    else:
        out.print("No saved configuration.")
    settings = load_settings(**state.cli_values)
    out.print("\nCurrent configuration:")
    out.print(f"  Service:      {settings.service}", markup=False)
    out.print(f"  Handle:       {settings.handle or '(not set)'}", markup=False)
    out.print(f"  App password: {'***' if settings.app_password else '(not set)'}", markup=False)


def _config_setup() -> None:
    if not stdin_is_terminal():
        raise ConfigError("'config setup' needs an interactive terminal; set AQFILE_* environment variables instead.")

    console.rule("[bold cyan]aqfile configuration[/bold cyan]")
    raw_service = typer.prompt("PDS service URL", default=DEFAULT_SERVICE)
    try:
        service = normalize_service_url(raw_service)
    except ConfigError:
        if not raw_service.strip().lower().startswith("http://"):
            raise
        upgraded = "https://" + raw_service.strip()[len("http://"):]
        if not typer.confirm(f"HTTP is not supported. Use {upgraded} instead?", default=True):
            raise
        service = normalize_service_url(upgraded)

    handle = typer.prompt("Your handle (e.g. alice.bsky.social)")
    console.print("App password required (not your account password).")
    app_password = typer.prompt("App password", hide_input=True)

    if typer.confirm("Save these credentials?", default=True):
        path = save_config(service, handle, app_password)
        console.print(f"[bold green]✔[/bold green] Saved to {escape(str(path))}")
    else:
        console.print("Not saved.")


@app.command("help")
def help_cmd(ctx: typer.Context):
    """Show this help."""
    typer.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


@app.command("version")
def version_cmd():
    """Show the version."""
    typer.echo(f"aqfile v{__version__}")
