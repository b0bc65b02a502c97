"""TaskPilot CLI: run and inspect the single-instance background service."""

import asyncio
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from taskpilot import __version__

from .config import TaskPilotConfig, get_config_path, load_config, write_config_template
from .core import Arbitrator, is_pid_alive
from .errors import ArbitrationError, ConfigError
from .logging import configure_logging
from .output import OutputContext
from .service import create_arbitrator, run_service


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"taskpilot {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="taskpilot",
    help="TaskPilot background service with single-instance arbitration",
    no_args_is_help=True,
)

# Global output context
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context."""
    if _ctx is None:
        return OutputContext(Console(stderr=True))
    return _ctx


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
) -> None:
    """TaskPilot - one main instance per port, every other launch proxies to it."""
    global _ctx
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
    )
    _ctx = OutputContext(console=console, json_mode=json_output)


def _load_config(
    config_path: Path | None,
    host: str | None = None,
    port: int | None = None,
    lock_path: Path | None = None,
) -> TaskPilotConfig:
    """Load config and apply command-line overrides, exiting on invalid config."""
    ctx = get_output_context()
    try:
        config = load_config(config_path)
    except ConfigError as e:
        ctx.error(str(e))
        raise typer.Exit(2) from None

    overrides: dict[str, Any] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if lock_path is not None:
        overrides["lock_path"] = lock_path
    if overrides:
        server = config.server.model_copy(update=overrides)
        config = config.model_copy(update={"server": server})
    return config


ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.toml")
PortOption = typer.Option(None, "--port", "-p", help="Well-known port of the main instance")
HostOption = typer.Option(None, "--host", help="Host the main instance listens on")
LockPathOption = typer.Option(None, "--lock-path", help="Lock file path")


# ============================================================================
# taskpilot serve
# ============================================================================


@app.command()
def serve(
    config_path: Path | None = ConfigOption,
    port: int | None = PortOption,
    host: str | None = HostOption,
    lock_path: Path | None = LockPathOption,
) -> None:
    """Become the main instance, or proxy to a compatible one."""
    ctx = get_output_context()
    config = _load_config(config_path, host=host, port=port, lock_path=lock_path)

    arbitrator = create_arbitrator(config)
    try:
        role = asyncio.run(run_service(config, arbitrator=arbitrator))
    except ArbitrationError as e:
        ctx.error(str(e), {"port": config.server.port})
        raise typer.Exit(1) from None
    except OSError as e:
        ctx.error(f"Cannot start service: {e}", {"port": config.server.port})
        raise typer.Exit(3) from None

    ctx.role(role, config.server.port, arbitrator.proxy_port)


# ============================================================================
# taskpilot status
# ============================================================================


async def _collect_status(arbitrator: Arbitrator) -> dict[str, Any]:
    lock = arbitrator.read_lock()
    main_version = await arbitrator.fetch_main_version()
    return {
        "lock_path": str(arbitrator.lock_path),
        "lock_exists": arbitrator.lock_path.exists(),
        "lock_valid": lock is not None,
        "pid": lock.pid if lock else None,
        "pid_alive": is_pid_alive(lock.pid) if lock else False,
        "lock_version": lock.version if lock else None,
        "port": arbitrator.port,
        "main_version": main_version,
        "this_version": arbitrator.version,
        "compatible": main_version == arbitrator.version,
    }


@app.command()
def status(
    config_path: Path | None = ConfigOption,
    port: int | None = PortOption,
    host: str | None = HostOption,
    lock_path: Path | None = LockPathOption,
) -> None:
    """Show the lock file, owner liveness, and the running main's version."""
    ctx = get_output_context()
    config = _load_config(config_path, host=host, port=port, lock_path=lock_path)
    data = asyncio.run(_collect_status(create_arbitrator(config)))

    if ctx.json_mode:
        ctx.print_json(data)
        return

    ctx.console.print()
    ctx.field("Lock file", data["lock_path"])
    if not data["lock_exists"]:
        ctx.field("Lock", "[dim]none[/dim]")
    elif not data["lock_valid"]:
        ctx.field("Lock", "[yellow]unreadable[/yellow]")
    else:
        alive = "[green]alive[/green]" if data["pid_alive"] else "[red]dead[/red]"
        ctx.field("Owner PID", f"{data['pid']} ({alive})")
        ctx.field("Lock version", data["lock_version"])
    ctx.field("Port", data["port"])

    if data["main_version"] is None:
        ctx.console.print("[yellow]Status: No instance answering[/yellow]")
    elif data["compatible"]:
        ctx.console.print(f"[green]Status: Main running v{data['main_version']}[/green]")
    else:
        ctx.console.print(
            f"[yellow]Status: Main runs v{data['main_version']}, "
            f"this build is v{data['this_version']}[/yellow]"
        )
        ctx.console.print("  Next: taskpilot serve (takes over the incompatible main)")


# ============================================================================
# taskpilot stop
# ============================================================================


async def _stop_main(arbitrator: Arbitrator, timeout: float) -> tuple[bool, bool]:
    accepted = await arbitrator.request_main_shutdown()
    if not accepted:
        return False, False
    return True, await arbitrator.wait_for_port(timeout)


@app.command()
def stop(
    config_path: Path | None = ConfigOption,
    port: int | None = PortOption,
    host: str | None = HostOption,
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Seconds to wait for the port (default: arbitration.port_wait_timeout)",
    ),
) -> None:
    """Ask the running main instance to shut down."""
    ctx = get_output_context()
    config = _load_config(config_path, host=host, port=port)
    if timeout is None:
        timeout = config.arbitration.port_wait_timeout
    accepted, freed = asyncio.run(_stop_main(create_arbitrator(config), timeout))

    if not accepted:
        ctx.error(f"No instance accepted shutdown on port {config.server.port}")
        raise typer.Exit(1)
    if not freed:
        ctx.error(f"Port {config.server.port} still in use after {timeout:.1f}s")
        raise typer.Exit(1)
    ctx.success(f"Main instance on port {config.server.port} stopped", {"port": config.server.port})


# ============================================================================
# taskpilot reclaim
# ============================================================================


@app.command()
def reclaim(
    config_path: Path | None = ConfigOption,
    port: int | None = PortOption,
    lock_path: Path | None = LockPathOption,
    force: bool = typer.Option(
        False, "--force", "-f", help="Remove the lock even if its owner is alive"
    ),
) -> None:
    """Remove a lock file left behind by a dead main instance."""
    ctx = get_output_context()
    config = _load_config(config_path, port=port, lock_path=lock_path)
    arbitrator = create_arbitrator(config)

    if not arbitrator.lock_path.exists():
        ctx.result({"removed": False}, f"No lock file at {arbitrator.lock_path}")
        return

    if force:
        arbitrator.remove_lock()
        ctx.success(f"Removed {arbitrator.lock_path}", {"removed": True})
        return

    if not arbitrator.reclaim_stale_lock():
        if not arbitrator.lock_path.exists():
            # Removed by its owner since the first check
            ctx.result({"removed": False}, f"No lock file at {arbitrator.lock_path}")
            return
        lock = arbitrator.read_lock()
        pid = lock.pid if lock else None
        ctx.error(f"Lock is held by live process {pid}; use --force to remove it", {"pid": pid})
        raise typer.Exit(1)
    ctx.success(f"Reclaimed stale lock {arbitrator.lock_path}", {"removed": True})


# ============================================================================
# taskpilot init-config
# ============================================================================


@app.command("init-config")
def init_config(
    config_path: Path | None = ConfigOption,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing configuration"),
) -> None:
    """Write a default config.toml."""
    ctx = get_output_context()
    path = config_path or get_config_path()
    if path.exists() and not force:
        ctx.error(f"Config already exists: {path} (use --force to overwrite)")
        raise typer.Exit(1)
    written = write_config_template(path)
    ctx.success(f"Created config template: {written}", {"path": str(written)})


if __name__ == "__main__":
    app()
