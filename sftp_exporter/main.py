"""
sftp_exporter.main
------------
AUTHOR: carter-vin

CLI entrypoint

Commands:
- `sftp-exporter version`  -> version & runtime env
- `sftp-exporter oneshot`  -> one collection pass, exposition text to stdout
- `sftp-exporter serve`    -> HTTP scrape endpoint (/metrics, /healthz)

Connection options live on the root command so every subcommand shares them;
each is also read from an environment variable.
"""

from __future__ import annotations

import platform
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from prometheus_client import CollectorRegistry, generate_latest

from sftp_exporter import EXPORTER_VERSION
from sftp_exporter.collectors.base import run_collector
from sftp_exporter.collectors.sftp import PrometheusCollector, SFTPCollector
from sftp_exporter.config import ExporterConfig, load_config
from sftp_exporter.errors import ConfigError
from sftp_exporter.logging import configure_logging, emit_event
from sftp_exporter.server import build_server
from sftp_exporter.sftp.session import SFTPSession

app = typer.Typer(
    add_completion=False,
    help="sftp-exporter: Prometheus metrics for a remote tree over SFTP",
)


# -----------------------------
# ROOT COMMAND BEHAVIOR
# -----------------------------
@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None, "--config-file", envvar="SFTP_EXPORTER_CONFIG", help="YAML config file."
    ),
    sftp_host: Optional[str] = typer.Option(None, envvar="SFTP_HOST", help="SFTP server host."),
    sftp_port: Optional[int] = typer.Option(None, envvar="SFTP_PORT", help="SFTP server port."),
    sftp_user: Optional[str] = typer.Option(None, envvar="SFTP_USER", help="Login user."),
    sftp_pass: Optional[str] = typer.Option(None, envvar="SFTP_PASS", help="Login password."),
    sftp_key: Optional[str] = typer.Option(None, envvar="SFTP_KEY", help="Private key file."),
    sftp_key_passphrase: Optional[str] = typer.Option(
        None, envvar="SFTP_KEY_PASSPHRASE", help="Passphrase for the private key."
    ),
    sftp_paths: Optional[str] = typer.Option(
        None, envvar="SFTP_PATHS", help="Comma-separated remote paths to collect."
    ),
    known_hosts_file: Optional[str] = typer.Option(
        None, envvar="SFTP_KNOWN_HOSTS", help="known_hosts file; unknown hosts are rejected."
    ),
    bind_address: Optional[str] = typer.Option(None, envvar="BIND_ADDRESS", help="Listen address."),
    port: Optional[int] = typer.Option(None, envvar="PORT", help="Listen port."),
    scrape_timeout: Optional[float] = typer.Option(
        None, envvar="SCRAPE_TIMEOUT", help="Seconds before a pass is cancelled (0 = none)."
    ),
    log_level: Optional[str] = typer.Option(None, envvar="LOG_LEVEL", help="debug|info|warning|error"),
) -> None:
    """
    Root command behavior.

    Stores the raw option values; subcommands that need a connection
    resolve them into an ExporterConfig.
    """
    ctx.obj = {
        "config_file": config_file,
        "overrides": {
            "sftp_host": sftp_host,
            "sftp_port": sftp_port,
            "sftp_user": sftp_user,
            "sftp_pass": sftp_pass,
            "sftp_key": sftp_key,
            "sftp_key_passphrase": sftp_key_passphrase,
            "sftp_paths": sftp_paths,
            "known_hosts_file": known_hosts_file,
            "bind_address": bind_address,
            "port": port,
            "scrape_timeout": scrape_timeout,
            "log_level": log_level,
        },
    }

    if ctx.invoked_subcommand is None:
        typer.echo("No command provided. Try: sftp-exporter --help")


def _resolve_config(ctx: typer.Context) -> ExporterConfig:
    obj: dict[str, Any] = ctx.obj or {}
    try:
        config = load_config(obj.get("config_file"), **obj.get("overrides", {}))
    except ConfigError as e:
        typer.echo(f"config error: {e}", err=True)
        raise typer.Exit(code=2)

    configure_logging(config.log_level)
    return config


def build_collector(config: ExporterConfig) -> SFTPCollector:
    """
    Wire session -> client -> collector for one host
    """
    return SFTPCollector(config, SFTPSession(config))


def _close_session(collector: SFTPCollector) -> None:
    try:
        collector.session.close()
    except Exception:
        # close failures were already emitted as sftp_close_failed
        pass


# -----------------------------
# CLI COMMANDS
# -----------------------------
@app.command()
def version() -> None:
    """
    Print exporter version & runtime env
    """
    typer.echo(f"sftp-exporter v{EXPORTER_VERSION}")
    typer.echo(f"python={sys.version.split()[0]}")
    typer.echo(f"os={platform.system()} {platform.release()}")
    typer.echo(f"machine={platform.machine()}")


@app.command("oneshot")
def oneshot(ctx: typer.Context) -> None:
    """
    Run one collection pass and print the exposition text

    Failure semantics:
    - failed pass -> nothing printed, exit code 1
    """
    config = _resolve_config(ctx)

    emit_event("exporter_start", exporter_version=EXPORTER_VERSION, mode="oneshot", **config.to_dict())

    collector = build_collector(config)
    registry = CollectorRegistry(auto_describe=False)
    registry.register(PrometheusCollector(collector))

    try:
        outcome = run_collector("sftp", generate_latest, registry)
        if not outcome.ok:
            typer.echo(f"scrape failed: {outcome.error_type}: {outcome.error_message}", err=True)
            raise typer.Exit(code=1)

        typer.echo(outcome.value.decode("utf-8"), nl=False)

    finally:
        _close_session(collector)
        emit_event("exporter_shutdown", exporter_version=EXPORTER_VERSION, mode="oneshot")


@app.command("serve")
def serve(ctx: typer.Context) -> None:
    """
    Serve /metrics and /healthz until interrupted
    """
    config = _resolve_config(ctx)

    collector = build_collector(config)
    server = build_server(config, collector)

    emit_event(
        "exporter_start",
        exporter_version=EXPORTER_VERSION,
        mode="serve",
        listen=f"{config.bind_address}:{config.port}",
        **config.to_dict(),
    )

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        # Graceful shutdown on Ctrl+C
        pass
    finally:
        server.server_close()
        _close_session(collector)
        emit_event("exporter_shutdown", exporter_version=EXPORTER_VERSION, mode="serve")


if __name__ == "__main__":
    app()
