#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from guide.config import CHANNEL, ConfigError, DecodeFailurePolicy, GuideConfig, load_config
from guide.models import EntryUpdate
from guide.store import GuideStore
from guide.timetoken import format_timetoken
from guide.view import GuideView
from shared.log import get_logger, set_level
from shared.pubnub_client import PubNubClient
from shared.pubsub import PublishError

app = typer.Typer(help="Guide pub/sub quickstart client")
console = Console()
logger = get_logger(__name__)


def _resolve_config(config_path: Optional[Path], **overrides) -> GuideConfig:
    try:
        config = load_config(config_path, **overrides)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration[/]: {e}")
        raise typer.Exit(code=2)
    if config.log_level:
        set_level(config.log_level)
    return config


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    publish_key: Optional[str] = typer.Option(None, help="Publish key"),
    subscribe_key: Optional[str] = typer.Option(None, help="Subscribe key"),
    client_id: Optional[str] = typer.Option(None, help="Client identifier; random per session if omitted"),
    auto_publish: Optional[bool] = typer.Option(None, "--auto-publish/--no-auto-publish",
                                                help="Publish a greeting once subscribed"),
    on_decode_failure: Optional[DecodeFailurePolicy] = typer.Option(
        None, case_sensitive=False, help="Drop undecodable messages or show them with null fields"),
    surface_errors: Optional[bool] = typer.Option(None, "--surface-errors/--no-surface-errors",
                                                  help="Show publish and status failures in the log"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Subscribe to the guide channel and publish updates interactively."""
    config = _resolve_config(
        config_path,
        publish_key=publish_key,
        subscribe_key=subscribe_key,
        client_id=client_id,
        auto_publish_on_subscribe=auto_publish,
        decode_failure=on_decode_failure,
        surface_errors=surface_errors,
        log_level=log_level,
    )
    console.print(f"[bold green]Guide client starting[/] as {config.client_id[:8]} on {CHANNEL}")

    async def main_loop() -> None:
        store = GuideStore.connect(config)
        view = GuideView(store, console=console, initial_entry=config.initial_entry)
        try:
            await view.run()
        finally:
            await store.close()

    asyncio.run(main_loop())


@app.command()
def publish(
    update: str = typer.Argument(..., help="Update text"),
    entry: Optional[str] = typer.Option(None, help="Entry the update is about"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    publish_key: Optional[str] = typer.Option(None, help="Publish key"),
    subscribe_key: Optional[str] = typer.Option(None, help="Subscribe key"),
    client_id: Optional[str] = typer.Option(None, help="Client identifier"),
):
    """Publish one update to the guide channel and exit."""
    if not update:
        console.print("[red]Nothing to publish[/]")
        raise typer.Exit(code=2)
    config = _resolve_config(
        config_path,
        publish_key=publish_key,
        subscribe_key=subscribe_key,
        client_id=client_id,
    )
    payload = EntryUpdate(update=update, entry=entry if entry is not None else config.default_entry)

    async def once() -> int:
        client = PubNubClient.connect(config.publish_key, config.subscribe_key, config.client_id)
        try:
            return await client.publish(CHANNEL, payload.to_dict())
        finally:
            await client.close()

    try:
        timetoken = asyncio.run(once())
    except PublishError as e:
        logger.error("failed: %s", e, extra={"client_id": config.client_id, "channel": CHANNEL})
        console.print(f"[red]Publish failed[/]: {e}")
        raise typer.Exit(code=1)
    console.print(f"timetoken: {format_timetoken(timetoken)} ({timetoken})")


@app.command("show-config")
def show_config(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
):
    """Print the resolved configuration."""
    config = _resolve_config(config_path)
    table = Table(title="Configuration")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("channel", CHANNEL)
    for key, value in config.to_dict().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
