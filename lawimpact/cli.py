"""
Command-line entry point.

Examples:
  python -m lawimpact.cli diff old_articles.json new_articles.json
  python -m lawimpact.cli link dataset.json --output linked.json
  python -m lawimpact.cli link --neo4j
  python -m lawimpact.cli analyze trigger.json --dataset linked.json
  python -m lawimpact.cli screen pair.json

File formats:
  articles   JSON array of statute articles
  dataset    {"statutes": [...], "regulations": [...], "links": [...]}
  trigger    {"statute": {...}, "revision": {...}, "old_articles": [...], "new_articles": [...]}
  pair       {"old_article": {...} | null, "new_article": {...} | null, "regulation_article": {...}}
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress
from rich.table import Table

from .analysis.heuristics import HeuristicFilter
from .analysis.impact_analyzer import create_impact_analyzer
from .analysis.revision_diff import diff_articles
from .config import ImpactConfig
from .errors import LawImpactError
from .graph.memory_store import InMemoryRepository
from .graph.neo4j_store import Neo4jStore
from .linkage.builder import LinkageBuilder
from .models import RegulationArticle, StatuteArticle
from .pipeline import RevisionImpactPipeline, RevisionTrigger

console = Console()

LEVEL_STYLES = {"HIGH": "red", "MEDIUM": "yellow", "LOW": "green"}


def _load_json(path: str):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_statute_articles(path: str) -> list[StatuteArticle]:
    return [StatuteArticle.model_validate(a) for a in _load_json(path)]


def _preview(text: str | None, width: int = 60) -> str:
    if not text:
        return "-"
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 1] + "…"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# =============================================================================
# Commands
# =============================================================================


def cmd_diff(args: argparse.Namespace, config: ImpactConfig) -> int:
    deltas = diff_articles(_load_statute_articles(args.old), _load_statute_articles(args.new))

    table = Table(title="Article Changes", box=box.ROUNDED)
    table.add_column("Article", style="cyan")
    table.add_column("Change", style="magenta")
    table.add_column("Similarity", justify="right")
    table.add_column("Before")
    table.add_column("After")

    for delta in deltas:
        similarity = f"{delta.similarity:.1%}" if delta.change_type.value == "modified" else "-"
        table.add_row(
            delta.article_number,
            delta.change_type.value,
            similarity,
            _preview(delta.old_content),
            _preview(delta.new_content),
        )

    console.print(table)
    console.print(f"[bold]{len(deltas)}[/bold] changed articles")
    return 0


def cmd_link(args: argparse.Namespace, config: ImpactConfig) -> int:
    if args.neo4j:
        repository = Neo4jStore.from_config(config)
        repository.connect()
    elif args.dataset:
        repository = InMemoryRepository.from_json(
            args.dataset,
            dimension=config.canonical_dimension,
            deleted_article_markers=config.deleted_article_markers,
        )
    else:
        console.print("[red]Pass a dataset file or --neo4j[/red]")
        return 2

    try:
        builder = LinkageBuilder(repository, config)
        regulations = repository.list_regulations_with_embeddings()
        console.print(f"Found [cyan]{len(regulations)}[/cyan] regulations with embeddings\n")

        with Progress(console=console) as progress:
            task = progress.add_task("Linking regulations...", total=len(regulations))
            report = builder.build_all(
                regulations,
                on_progress=lambda done, total, reg: progress.advance(task),
            )
    finally:
        if isinstance(repository, Neo4jStore):
            repository.close()

    table = Table(title="Linkage Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Regulations processed", str(report.processed))
    table.add_row("Links written", str(report.links_written))
    table.add_row("Regulations with links", str(report.regulations_with_links))
    table.add_row("Average links per linked regulation", f"{report.average_links:.2f}")
    table.add_row("Failures", str(len(report.failures)))
    console.print(table)

    if args.output and isinstance(repository, InMemoryRepository):
        repository.to_json(args.output)
        console.print(f"Wrote [cyan]{args.output}[/cyan]")
    return 1 if report.failures else 0


def cmd_analyze(args: argparse.Namespace, config: ImpactConfig) -> int:
    trigger = RevisionTrigger.model_validate(_load_json(args.trigger))
    repository = InMemoryRepository.from_json(
        args.dataset,
        dimension=config.canonical_dimension,
        deleted_article_markers=config.deleted_article_markers,
    )
    analyzer = create_impact_analyzer(config)
    pipeline = RevisionImpactPipeline(repository, analyzer, config)

    with Progress(console=console) as progress:
        task = progress.add_task("Analyzing...", total=None)

        def on_progress(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        report = pipeline.run(trigger, on_progress=on_progress)

    table = Table(title=f"Impact of {trigger.statute.name} ({trigger.revision.revision_date})")
    table.add_column("Regulation", style="cyan")
    table.add_column("Article")
    table.add_column("Level", justify="center")
    table.add_column("Action")
    table.add_column("Confidence", justify="right")
    table.add_column("Summary")

    for item in report.analysis.items:
        regulation = repository.get_regulation(item.regulation_id)
        name = regulation.name if regulation else item.regulation_id
        if item.result is None:
            table.add_row(name, item.regulation_article_id, "[red]error[/red]", "-", "-", item.error or "")
            continue
        result = item.result
        style = LEVEL_STYLES[result.impact_level.value]
        table.add_row(
            name,
            item.regulation_article_id,
            f"[{style}]{result.impact_level.value}[/{style}]",
            result.impact_type.value,
            f"{result.confidence_score:.2f}",
            _preview(result.change_summary),
        )

    console.print(table)
    for key, value in report.summary.items():
        console.print(f"  {key}: [cyan]{value}[/cyan]")

    if args.output:
        repository.to_json(args.output)
        console.print(f"Wrote [cyan]{args.output}[/cyan]")
    return 1 if report.analysis.failed else 0


def cmd_screen(args: argparse.Namespace, config: ImpactConfig) -> int:
    data = _load_json(args.pair)
    old = StatuteArticle.model_validate(data["old_article"]) if data.get("old_article") else None
    new = StatuteArticle.model_validate(data["new_article"]) if data.get("new_article") else None
    reg_article = RegulationArticle.model_validate(data["regulation_article"])

    decision = HeuristicFilter(config).should_analyze(old, new, reg_article)
    verdict = "[green]analyze[/green]" if decision.should_analyze else "[yellow]skip[/yellow]"
    console.print(f"{verdict}: {decision.reason}")
    if decision.keywords:
        console.print(f"  shared keywords: {', '.join(decision.keywords)}")
    return 0


# =============================================================================
# CLI Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lawimpact",
        description="Statute revision impact engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--threshold", type=float, help="Override the link threshold")
    parser.add_argument("--top-n", type=int, help="Override candidates per regulation")
    subparsers = parser.add_subparsers(dest="command", required=True)

    diff = subparsers.add_parser("diff", help="Compare two article sets")
    diff.add_argument("old", help="JSON file with the earlier articles")
    diff.add_argument("new", help="JSON file with the later articles")
    diff.set_defaults(func=cmd_diff)

    link = subparsers.add_parser("link", help="Link regulations to statute articles")
    link.add_argument("dataset", nargs="?", help="Dataset JSON file (in-memory run)")
    link.add_argument("--neo4j", action="store_true", help="Run against the configured Neo4j")
    link.add_argument("--output", help="Write the linked dataset here")
    link.set_defaults(func=cmd_link)

    analyze = subparsers.add_parser("analyze", help="Run the revision impact pipeline")
    analyze.add_argument("trigger", help="Revision trigger JSON file")
    analyze.add_argument("--dataset", required=True, help="Linked dataset JSON file")
    analyze.add_argument("--output", help="Write the dataset with analyses here")
    analyze.set_defaults(func=cmd_analyze)

    screen = subparsers.add_parser("screen", help="Run the heuristic pre-filter on one pair")
    screen.add_argument("pair", help="Pair JSON file")
    screen.set_defaults(func=cmd_screen)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    overrides = {}
    if args.threshold is not None:
        overrides["link_threshold"] = args.threshold
    if args.top_n is not None:
        overrides["top_n"] = args.top_n

    try:
        config = ImpactConfig.from_env(**overrides)
        return args.func(args, config)
    except LawImpactError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        return 1
    except ConnectionError as e:
        console.print(f"[red]Database connection error: {e}[/red]")
        return 1
    except (OSError, ValueError) as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
