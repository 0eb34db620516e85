#!/usr/bin/env python3
"""
Link local regulations to the statute articles they are grounded in.

This script:
1. Reads every LocalRegulation node that has a document embedding
2. Queries the statute article vector index for the top-N nearest articles
3. MERGEs a LINKS_TO (basis) relationship for each article above the threshold

Re-running refreshes confidence scores; verified links keep their review state.

Usage:
    python scripts/link_regulations.py
    python scripts/link_regulations.py --threshold 0.7 --top-n 10
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
from lawimpact.graph.neo4j_store import neo4j_store
from lawimpact.linkage.builder import LinkageBuilder

console = Console()


def link_regulations(config: ImpactConfig) -> int:
    """Run the linkage builder against Neo4j. Returns the number of failures."""
    console.print("[bold]Linking Local Regulations to Statute Articles[/bold]\n")
    cancel = threading.Event()

    with neo4j_store(config) as store:
        builder = LinkageBuilder(store, config)
        regulations = store.list_regulations_with_embeddings()
        console.print(f"Found [cyan]{len(regulations)}[/cyan] regulations with embeddings")
        console.print(
            f"Top-N: [cyan]{config.top_n}[/cyan], threshold: [cyan]{config.link_threshold}[/cyan]\n"
        )

        with Progress(console=console) as progress:
            task = progress.add_task("Processing regulations...", total=len(regulations))
            try:
                report = builder.build_all(
                    regulations,
                    on_progress=lambda done, total, reg: progress.advance(task),
                    cancel_event=cancel,
                )
            except KeyboardInterrupt:
                cancel.set()
                raise

        console.print("\n[bold green]Linking complete![/bold green]")
        console.print(f"  Regulations processed: [cyan]{report.processed}[/cyan]")
        console.print(f"  Links written: [green]{report.links_written}[/green]")
        console.print(f"  Regulations with links: [green]{report.regulations_with_links}[/green]")
        console.print(f"  Average links per linked regulation: [cyan]{report.average_links:.2f}[/cyan]")

        if report.failures:
            table = Table(title="Failures")
            table.add_column("Regulation", style="cyan")
            table.add_column("Error", style="red")
            for regulation_id, error in report.failures.items():
                table.add_row(regulation_id, error)
            console.print(table)

        stats = store.get_stats()
        console.print("\n[bold]Relationships in graph:[/bold]")
        for rel_type, count in stats["relationships"].items():
            console.print(f"  {rel_type}: {count}")

    return len(report.failures)


def main():
    parser = argparse.ArgumentParser(description="Link local regulations to statute articles")
    parser.add_argument("--threshold", type=float, help="Minimum cosine similarity for a link")
    parser.add_argument("--top-n", type=int, help="Candidate articles per regulation")
    parser.add_argument("--init-schema", action="store_true", help="Create constraints and the vector index first")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    overrides = {}
    if args.threshold is not None:
        overrides["link_threshold"] = args.threshold
    if args.top_n is not None:
        overrides["top_n"] = args.top_n
    config = ImpactConfig.from_env(**overrides)

    try:
        if args.init_schema:
            with neo4j_store(config) as store:
                store.init_schema()
        failures = link_regulations(config)
    except ConnectionError as e:
        console.print(f"[red]Database connection error: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
