"""CLI interface for the Equilibrium assistant."""

import asyncio
import json
import logging
import os
import signal

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from ....common.exception_handler import format_exception_json
from ....config.logging import setup_logging
from ....config.settings import settings
from ....core.domain import ConversationTurn

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="equilibrium",
    help="Equilibrium - on-device wellbeing companion with local retrieval",
    add_completion=False,
)

console = Console(force_terminal=True, legacy_windows=False)

# Determine if we're in debug mode (shows full stack traces)
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true"


def handle_cli_error(exc: Exception) -> None:
    """Handle and display errors in CLI with structured format.

    In debug mode, shows full JSON error details.
    In normal mode, shows a user-friendly message with error code.

    Args:
        exc: The exception to handle.
    """
    error_data = format_exception_json(exc, include_trace=DEBUG_MODE)

    if DEBUG_MODE:
        console.print(
            Panel(
                json.dumps(error_data, indent=2, default=str),
                title="[bold red]Error Details[/]",
                border_style="red",
            )
        )
        return

    error_code = error_data["error"].get("code", "UNKNOWN")
    console.print(f"\n[red]Error [{error_code}]:[/] {error_data['error']['message']}")
    console.print(f"[dim]Type: {error_data['error']['type']}[/]")
    console.print("[dim]Set DEBUG=true for full details[/]")


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    setup_logging(settings.log_level, json_format=settings.log_json)


class StreamPrinter:
    """Prints only the newly streamed part of the assistant turn."""

    def __init__(self) -> None:
        self.printed = 0

    def reset(self) -> None:
        self.printed = 0

    def __call__(self, turn: ConversationTurn) -> None:
        new_text = turn.content[self.printed :]
        self.printed = len(turn.content)
        if new_text:
            console.print(new_text, end="", markup=False, highlight=False)


# Ctrl-C cancels still running; each removes itself when done
_pending_cancels: set[asyncio.Task] = set()


def _schedule_cancel(conversation) -> asyncio.Task:
    task = asyncio.get_running_loop().create_task(conversation.cancel())
    _pending_cancels.add(task)
    task.add_done_callback(_pending_cancels.discard)
    return task


def _install_cancel_handler(conversation) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _schedule_cancel, conversation)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable; Ctrl-C will exit instead of cancelling")
        return False
    return True


async def _chat_loop() -> None:
    from ....composition.container import build_conversation

    printer = StreamPrinter()
    conversation = build_conversation(on_update=printer)

    with console.status("[bold green]Loading models...[/]"):
        await conversation.start()

    while True:
        query = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/]")

        if query.lower() in ("quit", "exit", "q"):
            console.print("[dim]Take care.[/]")
            break
        if query.lower() == "/reset":
            conversation.reset()
            console.print("[dim]Conversation cleared[/]")
            continue
        if not query.strip():
            continue

        console.print("\n[bold green]Equilibrium[/]: ", end="")
        printer.reset()
        handler_installed = _install_cancel_handler(conversation)
        try:
            result = await conversation.submit_user_message(query)
        except Exception as exc:
            handle_cli_error(exc)
            continue
        finally:
            if handler_installed:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

        console.print()
        if result.tokens_per_second is not None:
            console.print(f"[dim]{result.tokens_per_second:.1f} tokens/s[/]")
        if result.outcome and result.outcome.documents_used:
            console.print(f"[dim]Context from {len(result.outcome.documents_used)} notes[/]")


@app.command()
def chat() -> None:
    """Start an interactive chat session. Ctrl-C stops the current answer."""
    console.print(
        Panel.fit(
            "[bold green]Equilibrium[/]\n"
            "[dim]A calm, private companion running on your device[/]\n\n"
            "[dim]Ctrl-C stops an answer, '/reset' clears the chat, 'quit' leaves[/]",
            title="Welcome",
            border_style="green",
        )
    )
    try:
        asyncio.run(_chat_loop())
    except KeyboardInterrupt:
        console.print("\n[dim]Take care.[/]")
    except Exception as exc:
        handle_cli_error(exc)
        raise typer.Exit(1)


async def _search(query: str, top_k: int, threshold: float, collection: str | None):
    from ....composition.container import get_retrieval_service

    service = get_retrieval_service()
    await service.initialize()
    try:
        return await service.search_similar(
            query, top_k=top_k, threshold=threshold, collection_name=collection
        )
    finally:
        await service.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to search the local notes for"),
    top_k: int = typer.Option(5, "--top-k", "-k", help="Maximum number of matches"),
    threshold: float = typer.Option(0.0, "--threshold", "-t", help="Minimum cosine similarity"),
    collection: str | None = typer.Option(None, "--collection", "-c", help="Restrict to one collection"),
) -> None:
    """Show the stored notes most similar to QUERY."""
    try:
        results = asyncio.run(_search(query, top_k, threshold, collection))
    except Exception as exc:
        handle_cli_error(exc)
        raise typer.Exit(1)

    if not results:
        console.print("[yellow]No matching notes.[/]")
        return

    table = Table(title=f"Matches for {query!r}")
    table.add_column("#", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Collection")
    table.add_column("Content")
    for rank, result in enumerate(results, 1):
        snippet = result.content[:120] + ("..." if len(result.content) > 120 else "")
        table.add_row(str(rank), f"{result.similarity:.3f}", result.collection_name or "-", snippet)
    console.print(table)


async def _stats():
    from ....composition.container import get_retrieval_service

    service = get_retrieval_service()
    await service.initialize()
    try:
        return await service.get_stats()
    finally:
        await service.close()


@app.command()
def status() -> None:
    """Show the current status of the local knowledge base and models."""
    console.print("[bold]Equilibrium Status[/]\n")

    if settings.llm_model_path.exists():
        console.print(f"✅ Language model: {settings.llm_model_path}")
    else:
        console.print(f"❌ Language model not found: {settings.llm_model_path}")

    if not settings.db_path.exists():
        console.print(f"❌ Document store not found: {settings.db_path}")
        return

    try:
        stats = asyncio.run(_stats())
    except Exception as exc:
        handle_cli_error(exc)
        return

    console.print(f"✅ Embedding model: {stats.model_name}")
    console.print("\n[bold]Knowledge Base:[/]")
    for collection in stats.collections:
        emoji = "✅" if collection.documents > 0 else "⚪"
        console.print(f"  {emoji} {collection.name}: {collection.documents} documents")
    console.print(f"\n[green]Total: {stats.total_documents} documents[/]")


if __name__ == "__main__":
    app()
