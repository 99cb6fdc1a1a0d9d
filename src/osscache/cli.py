"""Typer CLI definition for osscache."""

import asyncio
import sys
from pathlib import Path

import typer

from .cache.paths import CacheDirectory
from .config import generate_config, get_config_path, load_config
from .logging_setup import configure_logging
from .server import build_service, create_app
from .store.errors import ObjectNotFoundError, StoreTransportError

app = typer.Typer(help="Serve object-storage files through a local disk cache")


async def fetch_key(key: str, output: Path | None) -> bool:
    """Read one key through the cache and write it out.

    Args:
        key: Remote object key
        output: Destination file, or None for stdout

    Returns:
        True if the bytes were served from the cache
    """
    config = load_config()
    service = build_service(config)
    await service.start()

    try:
        result = await service.get_stream(key)
        if output:
            with open(output, "wb") as f:
                async for chunk in result.stream:
                    f.write(chunk)
        else:
            async for chunk in result.stream:
                sys.stdout.buffer.write(chunk)
            sys.stdout.buffer.flush()
    finally:
        # Let the background copy finish so the next fetch is a hit
        await service.close()

    return result.served_from_cache


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (from config if omitted)"),
    port: int | None = typer.Option(None, "-p", "--port", help="Port (from config if omitted)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Run the HTTP file server."""
    import uvicorn

    try:
        config = load_config()
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from None

    configure_logging(config.logging, debug=debug)

    uvicorn.run(
        create_app(config=config),
        host=host or config.http.host,
        port=port or config.http.port,
        log_config=None,
    )


@app.command()
def fetch(
    key: str = typer.Argument(..., help="Object key, e.g. audio/q1.mp3"),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Write to file instead of stdout"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Show verbose error messages and cache activity"
    ),
) -> None:
    """Fetch one object through the cache."""
    try:
        config = load_config()
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from None

    configure_logging(config.logging, debug=debug)

    try:
        hit = asyncio.run(fetch_key(key, output))
    except ObjectNotFoundError as e:
        if debug:
            typer.echo(f"Debug - Not found: {e!r}", err=True)
        else:
            typer.echo(f"Error: File not found: {key}", err=True)
        raise typer.Exit(1) from None
    except StoreTransportError as e:
        if debug:
            typer.echo(f"Debug - Storage error: {e!r}", err=True)
        else:
            typer.echo(f"Error: Upstream storage unavailable: {e}", err=True)
        raise typer.Exit(1) from None
    except OSError as e:
        if debug:
            typer.echo(f"Debug - File system error: {e!r}", err=True)
        else:
            typer.echo(f"Error: Failed to write output: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"{'HIT' if hit else 'MISS'} {key}", err=True)
    if output:
        typer.echo(f"Saved to {output}", err=True)


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write the default config file."""
    path = get_config_path()
    if path.exists() and not force:
        typer.echo(f"Config already exists at {path} (use --force to overwrite)")
        raise typer.Exit(1)

    typer.echo(f"Wrote {generate_config(path)}")


@app.command()
def purge() -> None:
    """Delete every file in the cache directory."""
    try:
        config = load_config()
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from None

    directory = CacheDirectory(config.cache.directory)
    if not directory.root.is_dir():
        typer.echo(f"No cache directory at {directory.root}")
        raise typer.Exit(0)

    removed = sum(1 for path in list(directory.scan()) if directory.remove(path))
    typer.echo(f"Removed {removed} files from {directory.root}")
