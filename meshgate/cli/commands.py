"""CLI commands for meshgate."""

import asyncio
import json
import os
import signal
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from meshgate import __logo__, __version__

app = typer.Typer(
    name="meshgate",
    help=f"{__logo__} meshgate - device to cloud registry gateway",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} meshgate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """meshgate - device to cloud registry gateway."""
    pass


# ============================================================================
# Config Commands
# ============================================================================


config_app = typer.Typer(help="Manage meshgate config")
app.add_typer(config_app, name="config")


def _load_config_or_exit(config: Path | None):
    from meshgate.config.loader import get_config_path, load_config

    config_path = (config or get_config_path()).expanduser()
    if not config_path.exists():
        console.print(f"[red]Config file not found:[/red] {config_path}")
        raise typer.Exit(2)
    try:
        return config_path, load_config(config_path)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/red] {exc}")
        raise typer.Exit(2) from exc
    except ValueError as exc:
        console.print(f"[red]Schema validation failed:[/red] {exc}")
        raise typer.Exit(2) from exc
    except OSError as exc:
        console.print(f"[red]Failed to read config:[/red] {exc}")
        raise typer.Exit(2) from exc


@config_app.command("check")
def config_check(
    config: Path | None = typer.Option(None, "--config", "-f", help="Config path to validate"),
):
    """Validate config JSON structure and device credential."""
    from meshgate.cloud import CloudError
    from meshgate.utils.redaction import redact_sensitive_map

    config_path, cfg = _load_config_or_exit(config)
    try:
        cfg.credential()
    except CloudError as exc:
        console.print(f"[red]Invalid credential:[/red] {exc}")
        raise typer.Exit(1) from exc

    cloud = redact_sensitive_map(cfg.cloud.model_dump())
    console.print("[green]✓[/green] Config validation passed")
    console.print(f"path={config_path}")
    console.print(
        f"cloud={cloud['scheme']}://{cloud['host']}:{cloud['port']} "
        f"uuid={cloud['uuid']} token={cloud['token']}"
    )
    console.print(f"proto={cfg.proto} tty={cfg.tty or '-'}")


@config_app.command("init")
def config_init(
    config: Path | None = typer.Option(None, "--config", "-f", help="Config path to create"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a config template to fill in with the device credential."""
    from meshgate.config.loader import get_config_path, save_config
    from meshgate.config.schema import Config

    config_path = (config or get_config_path()).expanduser()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        raise typer.Exit(1)
    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("Fill in cloud.uuid (36 chars) and cloud.token (40 chars) before running.")


# ============================================================================
# Gateway Commands
# ============================================================================


def _relay_update(payload: dict[str, Any], tty: str | None) -> None:
    from loguru import logger

    from meshgate.utils.helpers import truncate_string

    text = json.dumps(payload, ensure_ascii=False)
    logger.info(f"Cloud update for {tty or 'local device'}: {truncate_string(text, 200)}")


async def _run_gateway(
    transport,
    config,
    credential,
    *,
    stop_event: asyncio.Event | None = None,
) -> int:
    """Probe, sign in, watch the device record until stopped. Returns exit code."""
    from meshgate.cloud import CloudError

    stop = stop_event or asyncio.Event()
    connection = None
    try:
        await transport.probe(config.cloud.host, config.cloud.port)
    except CloudError as exc:
        console.print(f"[red]Cloud probe failed:[/red] {exc}")
        return 1

    try:
        connection = await transport.connect()
        await transport.sign_in(connection, credential)
        console.print(f"[green]✓[/green] Signed in as {credential.uuid}")
        handle = transport.register_watch(connection, credential, _relay_update, config.tty)
        await stop.wait()
        handle.cancel()
        return 0
    except CloudError as exc:
        console.print(f"[red]Cloud {exc.kind.value}:[/red] {exc}")
        return 1
    finally:
        if connection is not None:
            await transport.close(connection)
        await transport.remove()


@app.command()
def run(
    config: Path = typer.Option(..., "--config", "-f", help="Configuration file path"),
    host: str | None = typer.Option(None, "--host", help="Cloud server host override"),
    port: int | None = typer.Option(None, "--port", "-p", help="Cloud server port override"),
    proto: str | None = typer.Option(None, "--proto", "-P", help="Cloud protocol, e.g. http"),
    tty: str | None = typer.Option(None, "--tty", "-t", help="Local device TTY, e.g. /dev/ttyUSB0"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show gateway logs"),
    verbose: bool = typer.Option(False, "--verbose", help="Log request and response bodies"),
):
    """Sign the device in and relay cloud updates until interrupted."""
    from loguru import logger

    from meshgate.cloud import CloudError, create_transport
    from meshgate.config.loader import apply_overrides

    _, cfg = _load_config_or_exit(config)
    apply_overrides(cfg, host=host, port=port, proto=proto, tty=tty)

    if logs:
        logger.enable("meshgate")
        logger.remove()
        logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    else:
        logger.disable("meshgate")

    try:
        credential = cfg.credential()
    except CloudError as exc:
        console.print(f"[red]Invalid credential:[/red] {exc}")
        raise typer.Exit(2) from exc

    try:
        transport = create_transport(cfg.proto, scheme=cfg.cloud.scheme)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    console.print(f"{__logo__} meshgate gateway")
    console.print(f"cloud={cfg.cloud.scheme}://{cfg.cloud.host}:{cfg.cloud.port} proto={transport.name}")

    async def _main() -> int:
        stop_event = asyncio.Event()

        def _request_stop() -> None:
            stop_event.set()

        if os.name != "nt":
            signal.signal(signal.SIGINT, lambda *_: _request_stop())
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())
            signal.signal(signal.SIGPIPE, signal.SIG_IGN)

        return await _run_gateway(transport, cfg, credential, stop_event=stop_event)

    code = asyncio.run(_main())
    console.print("Exiting")
    if code:
        raise typer.Exit(code)


if __name__ == "__main__":
    app()
