"""CLI entry point for lexicard."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from lexicard import __version__
from lexicard.config import load_config
from lexicard.models.config import Config
from lexicard.models.task import Task
from lexicard.services.task_manager import TaskManager
from lexicard.services.word_collection import WordCollection
from lexicard.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()

OUTCOME_STYLES = {
    "success": ("green", "Added {added} words."),
    "partial": ("yellow", "Added {added} words, {failed} could not be enriched."),
    "failure": ("red", "No words added, {failed} could not be enriched."),
    "duplicates": ("blue", "Nothing to add: all {skipped} words are already in the collection."),
}


class ProgressObserver:
    """Mirrors task snapshots onto a rich progress bar."""

    def __init__(self, progress: Progress, bar_id):
        self.progress = progress
        self.bar_id = bar_id

    def on_progress(self, task_id: str, snapshot: Task) -> None:
        self.progress.update(
            self.bar_id,
            completed=snapshot.progress,
            description=f"{snapshot.status.value} {snapshot.processed_items}/{snapshot.total_items}",
        )


def _load_config_or_exit(config_path: Optional[Path]) -> Config:
    try:
        return load_config(config_path)
    except (PermissionError, ValueError) as e:
        raise click.ClickException(str(e))


def _load_collection(config: Config) -> WordCollection:
    try:
        return WordCollection.load(config.storage.path)
    except ValueError as e:
        raise click.ClickException(str(e))


async def _run_task(manager: TaskManager, raw_input: str) -> Task:
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        bar_id = progress.add_task("pending", total=100)
        manager.subscribe(ProgressObserver(progress, bar_id))

        task_id = manager.start(raw_input)
        try:
            task = await manager.wait(task_id)
        except asyncio.CancelledError:
            manager.cancel(task_id)
            raise
    return task


def _report(task: Task) -> None:
    if task.cancelled:
        console.print(f"[yellow]Cancelled after {task.processed_items} of {task.total_items} words.[/yellow]")
        return

    if task.error:
        console.print(f"[red]Failed:[/red] {task.error}")
    else:
        style, template = OUTCOME_STYLES[task.outcome]
        console.print(f"[{style}]{template.format(**task.model_dump())}[/{style}]")

    if task.failed_items:
        console.print("Failed: " + ", ".join(task.failed_items))


@click.group()
@click.version_option(version=__version__, prog_name="lexicard")
@click.option(
    "--config", "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: ~/.config/lexicard/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """lexicard: enrich vocabulary lists with transcriptions, translations and examples."""
    configure_logging()
    ctx.obj = _load_config_or_exit(config_path)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_obj
def add(config: Config, source):
    """
    Enrich words from SOURCE (a file, or stdin) and add them to the collection.

    Examples:
        lexicard add words.txt
        echo "שלום" | lexicard add
    """
    raw_input = source.read()
    if not raw_input.strip():
        raise click.ClickException("No words given.")

    collection = _load_collection(config)
    manager = TaskManager.from_config(config, collection)
    logger.info("add_command_started", collection_size=len(collection))

    try:
        task = asyncio.run(_run_task(manager, raw_input))
    except KeyboardInterrupt:
        click.echo("Interrupted.", err=True)
        sys.exit(130)

    _report(task)
    if task.error:
        sys.exit(1)


@cli.command()
@click.option("--limit", type=int, default=None, help="Show only the most recent N words")
@click.pass_obj
def words(config: Config, limit: Optional[int]):
    """List the words in the collection."""
    collection = _load_collection(config)
    stored = collection.words
    if limit is not None:
        stored = stored[-limit:]

    table = Table(title=f"{len(collection)} words")
    table.add_column("Word")
    table.add_column("Transcription")
    table.add_column("Translation")
    table.add_column("Category")

    for word in stored:
        table.add_row(word.source, word.transcription, word.translation, word.category.value)

    console.print(table)


def main():
    cli()


if __name__ == "__main__":
    main()
