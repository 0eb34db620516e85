#!/usr/bin/env python3
"""
Generate embeddings for statute articles, regulation articles and regulations.

Only nodes without an embedding are processed unless --force is given. Each
item is embedded on its own with a short pause; failures are reported at the
end and do not stop the run.

Usage:
    python scripts/backfill_embeddings.py
    python scripts/backfill_embeddings.py --only statutes
    python scripts/backfill_embeddings.py --provider gemini --delay 0.5
"""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress
from rich.table import Table

from lawimpact.config import ImpactConfig
from lawimpact.embeddings.backfill import EmbeddingBackfill
from lawimpact.embeddings.providers import create_embedding_provider
from lawimpact.errors import ConfigurationError
from lawimpact.graph.neo4j_store import neo4j_store
from lawimpact.models import LocalRegulation, RegulationArticle, StatuteArticle

console = Console()


def backfill(config: ImpactConfig, only: str | None = None, force: bool = False) -> int:
    """Embed everything that needs it. Returns the number of failures."""
    provider = create_embedding_provider(config)
    console.print(
        f"[bold]Backfilling embeddings[/bold] with [cyan]{provider.name}/{provider.model}[/cyan] "
        f"({config.canonical_dimension} dims)\n"
    )
    cancel = threading.Event()

    with neo4j_store(config) as store:
        def load(label: str, model):
            if force:
                with store.session() as session:
                    result = session.run(f"MATCH (n:{label}) RETURN n ORDER BY n.id")
                    rows = [dict(r["n"]) for r in result]
            else:
                rows = store.get_articles_missing_embeddings(label)
            return [model.model_validate(row) for row in rows]

        statute_articles = load("StatuteArticle", StatuteArticle) if only in (None, "statutes") else []
        regulation_articles = load("RegulationArticle", RegulationArticle) if only in (None, "regulations") else []
        regulations = load("LocalRegulation", LocalRegulation) if only in (None, "regulations") else []

        table = Table(title="Items to embed")
        table.add_column("Kind", style="cyan")
        table.add_column("Count", style="green", justify="right")
        table.add_row("Statute articles", str(len(statute_articles)))
        table.add_row("Regulation articles", str(len(regulation_articles)))
        table.add_row("Regulations", str(len(regulations)))
        console.print(table)

        job = EmbeddingBackfill(store, provider, config)
        total = len(statute_articles) + len(regulation_articles) + len(regulations)
        with Progress(console=console) as progress:
            task = progress.add_task("Embedding...", total=total)
            try:
                report = job.run(
                    statute_articles,
                    regulation_articles,
                    regulations,
                    force=force,
                    on_progress=lambda done, total, item_id: progress.advance(task),
                    cancel_event=cancel,
                )
            except KeyboardInterrupt:
                cancel.set()
                raise

    console.print("\n[bold green]Backfill complete![/bold green]")
    console.print(f"  Embedded: [green]{report.embedded}[/green]")
    console.print(f"  Already embedded: [cyan]{report.skipped}[/cyan]")
    console.print(f"  Failed: [yellow]{report.failed}[/yellow]")
    for item_id, error in list(report.failures.items())[:20]:
        console.print(f"    [red]{item_id}[/red]: {error}")
    return report.failed


def main():
    parser = argparse.ArgumentParser(description="Generate missing embeddings in Neo4j")
    parser.add_argument("--only", choices=["statutes", "regulations"], help="Limit to one side")
    parser.add_argument("--provider", choices=["openai", "gemini"], help="Embedding provider")
    parser.add_argument("--delay", type=float, help="Seconds between items")
    parser.add_argument("--force", action="store_true", help="Re-embed items that already have a vector")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    overrides = {}
    if args.provider:
        overrides["embedding_provider"] = args.provider
    if args.delay is not None:
        overrides["embedding_delay_seconds"] = args.delay

    try:
        failures = backfill(ImpactConfig.from_env(**overrides), only=args.only, force=args.force)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)
    except ConnectionError as e:
        console.print(f"[red]Database connection error: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
