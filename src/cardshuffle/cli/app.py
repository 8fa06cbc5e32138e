"""
cardshuffle Typer CLI Application

Manage the card collection and run the shuffle from a terminal:

    cardshuffle list
    cardshuffle add "Cat" --file cat.png --link https://example.com
    cardshuffle speed 75
    cardshuffle shuffle --duration 3
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional, TypeVar

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from cardshuffle.cli.context import CliContext, LogLevel, get_cli_context, set_cli_context
from cardshuffle.config import Settings, get_config, reload_config
from cardshuffle.core.models import (
    CardDraft,
    CardPatch,
    ClearAll,
    CollectionSnapshot,
    CreateCard,
    DeleteCard,
    Item,
    UpdateCard,
)
from cardshuffle.core.speed import map_speed_to_interval_ms
from cardshuffle.services.api_client import CardsApiClient
from cardshuffle.services.cache_store import JSONFileMedium, LocalCacheStore
from cardshuffle.services.compression import file_to_data_url
from cardshuffle.services.sync_controller import SyncController
from cardshuffle.shared.constants import CardFields, CLIDefaults
from cardshuffle.shared.errors import CardShuffleError
from cardshuffle.shared.logging import setup_structured_logger
from cardshuffle.shared.result import Failure, Result
from cardshuffle.shuffle.engine import ShuffleEngine
from cardshuffle.shuffle.scheduler import AsyncioScheduler

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="cardshuffle",
    help="Browse a card collection and shuffle through it.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cardshuffle {CLIDefaults.VERSION}")
        raise typer.Exit


@app.callback()
def main(
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="TOML configuration file.", dir_okay=False),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", case_sensitive=False, help="Logging level."),
    ] = LogLevel.WARNING,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Emit machine-readable JSON."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=_version_callback,
            is_eager=True,
            help="Show version information and exit.",
        ),
    ] = False,
) -> None:
    """Process global options before any command runs."""
    set_cli_context(CliContext(log_level=log_level, json_output=json_output, config_path=config))


def _settings() -> Settings:
    context = get_cli_context()
    try:
        settings = reload_config(context.config_path) if context.config_path else get_config()
    except CardShuffleError as e:
        _fail(e.message, e.code.value)
    setup_structured_logger(
        level=context.log_level.value,
        log_file=settings.logging.file,
        use_rich_console=settings.logging.use_rich,
    )
    return settings


@asynccontextmanager
async def _controller(settings: Settings) -> AsyncIterator[SyncController]:
    api = CardsApiClient(settings.api.base_url, settings.api.timeout)
    controller = SyncController.from_settings(settings, api=api)
    try:
        yield controller
    finally:
        await controller.aclose()
        await api.aclose()


def _run(func: Callable[[SyncController], Awaitable[T]]) -> T:
    settings = _settings()

    async def runner() -> T:
        async with _controller(settings) as controller:
            return await func(controller)

    return asyncio.run(runner())


def _fail(message: str, code: str, exit_code: int = CLIDefaults.EXIT_ERROR) -> NoReturn:
    if get_cli_context().json_output:
        typer.echo(json.dumps({"ok": False, "error": {"code": code, "message": message}}))
    else:
        err_console.print(f"[red]{code}[/red]: {message}")
    raise typer.Exit(exit_code)


def _unwrap(result: Result[T], hint: str | None = None) -> T:
    if isinstance(result, Failure):
        message = result.message if hint is None else f"{result.message} ({hint})"
        _fail(message, result.code.value)
    return result.value


def _emit_json(data: Any) -> None:
    typer.echo(json.dumps({"ok": True, "data": data}, ensure_ascii=False))


def _format_created(created_at: int) -> str:
    if not created_at:
        return "-"
    return datetime.fromtimestamp(created_at / 1000).strftime("%Y-%m-%d %H:%M")


def _short(value: str, width: int = 48) -> str:
    if value.startswith("data:"):
        return f"<embedded image, {len(value)} chars>"
    return value if len(value) <= width else value[: width - 1] + "…"


def _show_snapshot(snapshot: CollectionSnapshot) -> None:
    if get_cli_context().json_output:
        _emit_json(snapshot.to_payload())
        return
    if not snapshot:
        console.print("[yellow]No cards available.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Image")
    table.add_column("Link")
    table.add_column("Created")
    for item in snapshot:
        table.add_row(
            item.id,
            item.display_name,
            _short(item.image_ref),
            _short(item.target_link),
            _format_created(item.created_at),
        )
    console.print(table)


def _image_source(image: str | None, file: Path | None) -> str | None:
    if image and file:
        _fail("Use either --image or --file, not both", "VALIDATION_ERROR")
    if file is not None:
        try:
            return file_to_data_url(file)
        except OSError as e:
            _fail(f"Cannot read image file {file}: {e}", "VALIDATION_ERROR")
    return image


@app.command("list")
def list_command(
    refresh: Annotated[
        bool,
        typer.Option("--refresh", "-r", help="Bypass the cache and refetch."),
    ] = False,
) -> None:
    """Show the card collection."""

    async def run(controller: SyncController) -> CollectionSnapshot:
        result = await (controller.refresh() if refresh else controller.get_snapshot())
        return _unwrap(result, "run `cardshuffle list --refresh` to retry")

    _show_snapshot(_run(run))


@app.command("add")
def add_command(
    name: Annotated[str, typer.Argument(help="Card name.")] = CardFields.DEFAULT_NAME,
    link: Annotated[str, typer.Option("--link", "-l", help="Link opened from the card.")] = "",
    image: Annotated[Optional[str], typer.Option("--image", "-i", help="Image URL.")] = None,
    file: Annotated[
        Optional[Path],
        typer.Option("--file", "-f", help="Image file to upload.", exists=True, dir_okay=False),
    ] = None,
) -> None:
    """Add a card from an image URL or an uploaded file."""
    image_ref = _image_source(image, file) or ""
    draft = CardDraft(image_ref=image_ref, target_link=link, display_name=name)

    async def run(controller: SyncController) -> CollectionSnapshot:
        return _unwrap(await controller.mutate(CreateCard(draft)))

    snapshot = _run(run)
    if not get_cli_context().json_output:
        console.print("[green]Card added.[/green]")
    _show_snapshot(snapshot)


@app.command("update")
def update_command(
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="New name.")] = None,
    link: Annotated[Optional[str], typer.Option("--link", "-l", help="New link.")] = None,
    image: Annotated[Optional[str], typer.Option("--image", "-i", help="New image URL.")] = None,
    file: Annotated[
        Optional[Path],
        typer.Option("--file", "-f", help="New image file.", exists=True, dir_okay=False),
    ] = None,
) -> None:
    """Update fields of an existing card."""
    patch = CardPatch(display_name=name, image_ref=_image_source(image, file), target_link=link)

    async def run(controller: SyncController) -> CollectionSnapshot:
        return _unwrap(await controller.mutate(UpdateCard(card_id, patch)))

    snapshot = _run(run)
    if not get_cli_context().json_output:
        console.print(f"[green]Card {card_id} updated.[/green]")
    _show_snapshot(snapshot)


@app.command("delete")
def delete_command(
    card_id: Annotated[str, typer.Argument(help="Card id.")],
) -> None:
    """Delete a card."""

    async def run(controller: SyncController) -> CollectionSnapshot:
        return _unwrap(await controller.mutate(DeleteCard(card_id)))

    snapshot = _run(run)
    if not get_cli_context().json_output:
        console.print(f"[green]Card {card_id} deleted.[/green]")
    _show_snapshot(snapshot)


@app.command("clear")
def clear_command(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
) -> None:
    """Delete every card in the collection."""
    if not yes and not typer.confirm("Delete ALL cards?"):
        raise typer.Abort

    async def run(controller: SyncController) -> CollectionSnapshot:
        return _unwrap(await controller.mutate(ClearAll()))

    snapshot = _run(run)
    if get_cli_context().json_output:
        _emit_json(snapshot.to_payload())
    else:
        console.print("[green]All cards cleared.[/green]")


@app.command("speed")
def speed_command(
    value: Annotated[
        Optional[int],
        typer.Argument(help="New shuffle speed (1-100); omit to show the current one."),
    ] = None,
) -> None:
    """Show or persist the shuffle speed."""
    settings = _settings()
    controller = SyncController.from_settings(settings)
    speed = controller.get_speed() if value is None else controller.set_speed(value)
    interval = map_speed_to_interval_ms(speed)

    if get_cli_context().json_output:
        _emit_json({"speed": speed, "interval_ms": interval})
    else:
        console.print(f"Speed [bold]{speed}[/bold] ({interval} ms per card)")


def _render_card(item: Item | None, running: bool) -> Panel:
    if item is None:
        return Panel("No card", title="cardshuffle")
    body = f"[bold]{item.display_name}[/bold]\n{_short(item.image_ref, 60)}"
    if not running:
        body += f"\n[blue underline]{item.target_link}[/blue underline]"
    return Panel(body, title="shuffling…" if running else "stopped", width=72)


@app.command("shuffle")
def shuffle_command(
    duration: Annotated[
        float,
        typer.Option("--duration", "-d", min=0.0, help="Seconds to shuffle before stopping."),
    ] = CLIDefaults.SHUFFLE_DURATION,
    speed: Annotated[
        Optional[int],
        typer.Option("--speed", "-s", min=1, max=100, help="Override the persisted speed."),
    ] = None,
) -> None:
    """Shuffle through the cards and stop on a random one."""
    json_output = get_cli_context().json_output

    async def run(controller: SyncController) -> Item | None:
        snapshot = _unwrap(await controller.get_snapshot())
        engine = ShuffleEngine(
            AsyncioScheduler(),
            snapshot,
            speed=speed if speed is not None else controller.get_speed(),
        )
        unsubscribe = controller.subscribe(engine.replace_snapshot)
        try:
            if not engine.start():
                _fail("At least two cards with an image and a link are needed", "VALIDATION_ERROR")

            if json_output:
                await asyncio.sleep(duration)
            else:
                with Live(_render_card(engine.current_item, True), console=console) as live:
                    engine.subscribe(lambda item: live.update(_render_card(item, True)))
                    await asyncio.sleep(duration)
                    engine.stop()
                    live.update(_render_card(engine.current_item, False))
            engine.stop()
            return engine.current_item
        finally:
            unsubscribe()
            engine.dispose()

    item = _run(run)
    if json_output:
        _emit_json(item.to_payload() if item is not None else None)


@app.command("status")
def status_command() -> None:
    """Check whether the collection API is reachable."""
    settings = _settings()

    async def probe() -> bool:
        async with CardsApiClient(settings.api.base_url, settings.api.timeout) as api:
            return await api.check_health()

    online = asyncio.run(probe())
    if get_cli_context().json_output:
        _emit_json({"online": online, "base_url": settings.api.base_url})
    else:
        state = "[green]online[/green]" if online else "[red]offline[/red]"
        console.print(f"Backend {settings.api.base_url}: {state}")
    if not online:
        raise typer.Exit(CLIDefaults.EXIT_ERROR)


@app.command("cache")
def cache_command(
    clear: Annotated[bool, typer.Option("--clear", help="Purge every cache entry.")] = False,
) -> None:
    """Inspect or clear the local cache."""
    settings = _settings()
    store = LocalCacheStore(JSONFileMedium(settings.cache.directory))

    if clear:
        removed = sum(1 for key in store.keys() if store.purge(key))
        if get_cli_context().json_output:
            _emit_json({"purged": removed})
        else:
            console.print(f"[green]Purged {removed} cache entries.[/green]")
        return

    now = store.clock()
    rows = []
    for key in store.keys():
        entry = store.read(key)
        if entry is None:
            continue
        rows.append(
            {
                "key": key,
                "captured_at": entry.captured_at,
                "age_s": round(entry.age_ms(now) / 1000, 1),
                "schema_version": entry.schema_version,
                "valid": store.is_valid(
                    entry, settings.cache.ttl_ms, settings.cache.schema_version
                ),
            }
        )

    if get_cli_context().json_output:
        _emit_json(rows)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Age (s)", justify="right")
    table.add_column("Version", justify="right")
    table.add_column("Valid")
    for row in rows:
        table.add_row(
            row["key"],
            str(row["age_s"]),
            str(row["schema_version"]),
            "[green]yes[/green]" if row["valid"] else "[red]no[/red]",
        )
    console.print(table)


def run() -> None:
    """Console script entry point."""
    try:
        app()
    except KeyboardInterrupt:
        err_console.print("Interrupted")
        sys.exit(CLIDefaults.EXIT_ERROR)
