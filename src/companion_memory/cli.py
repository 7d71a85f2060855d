"""CLI entry point for the companion memory backend."""

import asyncio
import logging
import sys

import click
import httpx

from .config import Settings, load_settings
from .store import open_store


def _setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_store(settings: Settings):
    store = open_store(settings)
    store.migrate()
    return store


@click.group()
@click.pass_context
def main(ctx):
    """Companion memory. Long-term memory for a chat companion."""
    settings = load_settings()
    _setup_logging(settings)
    ctx.obj = settings


@main.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=3000, help="API server port")
@click.pass_obj
def serve(settings, host, port):
    """Start the HTTP API server."""
    import uvicorn
    uvicorn.run(
        "companion_memory.api.app:app",
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


@main.command()
@click.pass_obj
def migrate(settings):
    """Create or upgrade the storage schema."""
    store = _get_store(settings)
    store.close()
    click.echo("Schema up to date.")


async def _run_turn(settings: Settings, store, aid: str, message: str):
    from .chat import ConversationOrchestrator
    from .llm import CompletionClient, EmbeddingClient

    async with httpx.AsyncClient(timeout=settings.request_timeout) as http:
        orch = ConversationOrchestrator(
            settings, store,
            EmbeddingClient(settings, http),
            CompletionClient(settings, http),
        )
        try:
            return await orch.handle_turn(aid, message)
        finally:
            await orch.tasks.drain()


@main.command()
@click.argument("message")
@click.option("--aid", required=True, help="Anonymous user id to chat as")
@click.pass_obj
def chat(settings, message, aid):
    """Send one message and print the reply."""
    from .chat import EmptyMessageError
    from .llm import CompletionError
    from .store import StorageError

    store = _get_store(settings)
    try:
        result = asyncio.run(_run_turn(settings, store, aid, message))
    except EmptyMessageError:
        click.echo("Message is empty.", err=True)
        sys.exit(1)
    except (CompletionError, StorageError) as e:
        click.echo(f"Turn failed: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    click.echo(result.reply)
    if result.facts:
        click.echo(f"\nRemembered: {'; '.join(result.facts)}")
    if result.summary_scheduled:
        click.echo(f"Session summarized at {result.message_count} messages.")


@main.command()
@click.option("--aid", required=True, help="Anonymous user id")
@click.option("--limit", default=50, help="How many memories to show")
@click.pass_obj
def memories(settings, aid, limit):
    """List stored memories, newest first."""
    store = _get_store(settings)
    try:
        items = store.list_memories(aid, limit)
    finally:
        store.close()
    if not items:
        click.echo("No memories yet.")
        return
    for m in items:
        click.echo(f"[{m.kind.value}] {m.created:%Y-%m-%d %H:%M} {m.text}")
