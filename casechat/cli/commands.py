"""CLI commands for casechat."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from casechat import __logo__, __version__

app = typer.Typer(
    name="casechat",
    help=f"{__logo__} casechat - Conversation history compaction",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} casechat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """casechat - Conversation history compaction."""
    pass


@app.command()
def version():
    """Show the casechat version."""
    console.print(f"{__logo__} casechat v{__version__}")


def _read_messages(path: Path) -> list[dict]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise ValueError("Expected a JSON list of messages (or an object with 'messages')")
    return data


def _load_cache(cache_file: Path | None, capacity: int):
    from casechat.optimizer.cache import SummaryCache

    cache = SummaryCache(capacity)
    if cache_file and cache_file.exists():
        cache.import_entries(json.loads(cache_file.read_text()))
    return cache


# ============================================================================
# Optimize
# ============================================================================


@app.command()
def optimize(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with chat messages"),
    model: str = typer.Option("unknown", "--model", "-m", help="Model label for telemetry"),
    window: int = typer.Option(None, "--window", "-w", min=1, help="User turns to keep verbatim"),
    output: Path = typer.Option(None, "--output", "-o", help="Write optimized messages here"),
    stats: bool = typer.Option(False, "--stats", "-s", help="Show statistics instead of JSON"),
    cache_file: Path = typer.Option(None, "--cache-file", help="Summary cache snapshot to load and update"),
    record: bool = typer.Option(False, "--record/--no-record", help="Persist summarized tool calls"),
):
    """Summarize completed tool calls in the older part of a chat thread."""
    from casechat.config.loader import load_config
    from casechat.optimizer.optimizer import MessageOptimizer
    from casechat.store.tool_calls import JsonlToolCallRecorder

    config = load_config()
    config.storage.record_tool_calls = record
    cache_file = cache_file or (Path(config.cache.file).expanduser() if config.cache.file else None)

    try:
        messages = _read_messages(file)
    except (json.JSONDecodeError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    cache = _load_cache(cache_file, config.cache.capacity)
    # A message file carries no tool definitions, so the recorder registers names itself
    recorder = (
        JsonlToolCallRecorder(config.tool_calls_path / "calls.jsonl", register_unknown=True)
        if record else None
    )
    optimizer = MessageOptimizer.from_config(config, cache=cache, recorder=recorder)

    result = asyncio.run(
        optimizer.optimize_with_result(messages, model=model, preserved_window_size=window)
    )

    if cache_file:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
        cache_file.write_text(json.dumps(cache.export(), indent=2, ensure_ascii=False))

    if output:
        output.write_text(json.dumps(result.messages, indent=2, ensure_ascii=False))
        console.print(f"[green]✓[/green] Wrote {len(result.messages)} messages to {output}")

    if stats:
        _print_stats(result, cache)
    elif not output:
        console.print_json(json.dumps(result.messages, ensure_ascii=False))


def _print_stats(result, cache) -> None:
    table = Table(title="Optimization")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    table.add_row("Messages", str(len(result.messages)))
    table.add_row("Cutoff index", str(result.cutoff_index))
    table.add_row("Preserved tool calls", str(len(result.preserved_tool_ids)))
    table.add_row("Summarized tool calls", str(len(result.tool_calls)))
    table.add_row("Characters", f"{result.original_characters} -> {result.optimized_characters}")
    table.add_row("Reduction", f"{result.character_reduction:.1%}")
    table.add_row("Cache hits", str(sum(1 for o in result.outcomes if o.cache_hit)))
    table.add_row("Fallback summaries", str(sum(1 for o in result.outcomes if o.fallback)))
    table.add_row("Cache hit rate", f"{cache.hit_rate:.1%}")
    table.add_row("Duration", f"{result.duration_ms:.0f} ms")
    console.print(table)

    for error in result.errors:
        console.print(f"[yellow]Warning: {error}[/yellow]")


# ============================================================================
# Summarize a stored message
# ============================================================================


@app.command()
def summarize(
    chat_id: str = typer.Argument(..., help="Chat id"),
    turn_id: int = typer.Argument(..., help="Turn id"),
    message_id: int = typer.Argument(..., help="Message id"),
    write: bool = typer.Option(False, "--write", help="Store the summary and the new title"),
    deep: bool = typer.Option(False, "--deep", help="Use raw prior content as context"),
):
    """Summarize one stored chat message and propose a chat title."""
    from casechat.chat.summary import MessageRecordSummarizer
    from casechat.config.loader import load_config
    from casechat.optimizer.errors import CompactionError
    from casechat.optimizer.summarizer import ProviderSummarizer
    from casechat.providers.litellm_provider import LiteLLMProvider
    from casechat.store.chats import JsonlChatStore

    config = load_config()
    provider = LiteLLMProvider(
        api_key=config.get_api_key(),
        api_base=config.get_api_base(),
        default_model=config.summarizer.model,
    )
    summarizer = MessageRecordSummarizer(
        ProviderSummarizer(
            provider,
            model=config.summarizer.model,
            temperature=config.summarizer.temperature,
            max_tokens=config.summarizer.max_tokens,
        ),
        JsonlChatStore(config.chats_path),
    )

    try:
        summary = asyncio.run(
            summarizer.summarize_message_record(chat_id, turn_id, message_id, write=write, deep=deep)
        )
    except CompactionError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Title:[/bold] {summary.chat_title}" + (" [green](new)[/green]" if summary.new_title else ""))
    console.print(summary.optimized_content)


# ============================================================================
# Cache
# ============================================================================

cache_app = typer.Typer(help="Inspect the summary cache snapshot")
app.add_typer(cache_app, name="cache")


@cache_app.command("stats")
def cache_stats(
    cache_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Cache snapshot file"),
):
    """Show summary cache statistics."""
    from casechat.config.loader import load_config

    cache = _load_cache(cache_file, load_config().cache.capacity)
    info = cache.stats()

    table = Table(title="Summary Cache")
    table.add_column("Key", style="cyan")
    table.add_column("Summary")
    snapshot = cache.export()
    for key in snapshot:
        table.add_row(key[: cache.KEY_PREVIEW], snapshot[key])

    console.print(table)
    console.print(f"Entries: {info.size}/{info.capacity}")


@cache_app.command("clear")
def cache_clear(
    cache_file: Path = typer.Argument(..., help="Cache snapshot file"),
):
    """Empty a summary cache snapshot."""
    cache_file.write_text("{}")
    console.print(f"[green]✓[/green] Cleared {cache_file}")


# ============================================================================
# Tools / Metrics
# ============================================================================


@app.command()
def tools():
    """List tools registered in the tool map."""
    from casechat.config.loader import load_config
    from casechat.store.tool_calls import ToolMap

    config = load_config()
    tool_map = ToolMap(config.tool_calls_path / "tools.json")

    if not len(tool_map):
        console.print("No tools registered.")
        return

    table = Table(title="Tools")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Description")
    for entry in tool_map.entries:
        table.add_row(entry.tool_id, entry.tool_name, entry.description)
    console.print(table)


@app.command()
def metrics():
    """List the metrics casechat emits."""
    from casechat.telemetry.metrics import describe_metrics

    table = Table(title="Metrics")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Unit")
    table.add_column("Description")
    for name, info in describe_metrics().items():
        table.add_row(name, info["kind"], info["unit"], info["description"])
    console.print(table)


if __name__ == "__main__":
    app()
