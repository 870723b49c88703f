"""storage-lite CLI entry point."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import aiohttp
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from storage_lite import __version__
from storage_lite.config import StorageConfig
from storage_lite.exceptions import StorageError
from storage_lite.payload import FilePayload
from storage_lite.reference import Reference
from storage_lite.transport import AiohttpTransport, BearerTokenAuth
from storage_lite.upload_task import UploadProgress

app = typer.Typer(add_completion=False, help="Cloud storage command line interface.")
console = Console()

T = TypeVar("T")


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the storage-lite version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log requests and upload progress."
    ),
) -> None:
    """Handle global CLI options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_metadata(items: list[str]) -> dict[str, str]:
    """Parse repeated key=value options into a dict."""
    metadata: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(
                f"Expected key=value, got {item!r}", param_hint="--metadata"
            )
        metadata[key] = value
    return metadata


def _run(operation: Callable[[Reference], Awaitable[T]], locator: str) -> T:
    """Run an async operation against a reference and map errors to exit codes."""
    config = StorageConfig.from_env()

    async def _main() -> T:
        auth = BearerTokenAuth(config.bearer_token) if config.bearer_token else None
        async with AiohttpTransport(
            auth=auth, timeout=config.request_timeout
        ) as transport:
            reference = Reference(locator, transport=transport, config=config)
            return await operation(reference)

    try:
        return asyncio.run(_main())
    except StorageError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        typer.echo(f"Error: request failed: {exc!r}", err=True)
        raise typer.Exit(code=1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, sort_keys=True))


@app.command("upload")
def upload(
    locator: str = typer.Argument(..., help="Destination, e.g. gs://bucket/path."),
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    content_type: str | None = typer.Option(
        None, "--content-type", help="MIME type; guessed from the file name."
    ),
    metadata: list[str] = typer.Option(
        [], "--metadata", "-m", help="Custom metadata as key=value, repeatable."
    ),
) -> None:
    """Upload a file and print the resulting object metadata."""
    custom_metadata = _parse_metadata(metadata)
    payload = FilePayload(file, content_type)

    async def _upload(reference: Reference) -> dict[str, Any]:
        if reference.is_root or reference.object_path.endswith("/"):
            reference = reference.child(file.name)

        def _print_progress(progress: UploadProgress) -> None:
            typer.echo(
                f"{progress.offset}/{progress.total} bytes "
                f"({progress.fraction:.0%})",
                err=True,
            )

        task = reference.put(payload, custom_metadata, _print_progress)
        return await task.start()

    _echo_json(_run(_upload, locator))


@app.command("stat")
def stat(locator: str = typer.Argument(..., help="Object to describe.")) -> None:
    """Print an object's metadata."""
    _echo_json(_run(lambda reference: reference.get_metadata(), locator))


@app.command("ls")
def ls(locator: str = typer.Argument(..., help="Bucket or folder to list.")) -> None:
    """List objects and folders directly below a location."""
    listing = _run(lambda reference: reference.list(), locator)

    table = Table(box=box.SIMPLE, show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    for prefix in listing.get("prefixes", []):
        table.add_row(prefix, "folder")
    for item in listing.get("items", []):
        table.add_row(item.get("name", ""), "object")
    console.print(table)


@app.command("rm")
def rm(locator: str = typer.Argument(..., help="Object to delete.")) -> None:
    """Delete an object."""
    _run(lambda reference: reference.delete(), locator)
    typer.echo(f"Deleted {locator}")


@app.command("url")
def url(locator: str = typer.Argument(..., help="Object to link to.")) -> None:
    """Print a download URL for an object."""
    typer.echo(_run(lambda reference: reference.get_download_url(), locator))


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
