"""
Link local regulations to the statute articles they are grounded in.

For every regulation with a document embedding the builder asks the
repository for the ``top_n`` most similar statute articles and upserts a
``basis`` link for each candidate whose similarity reaches
``link_threshold``. Candidates below the threshold are never written.

Re-running is idempotent: the link key is derived from the regulation id and
the statute article id, so a second run refreshes ``confidence_score`` and
leaves human verification untouched.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

from pydantic import BaseModel, Field

from ..config import ImpactConfig
from ..errors import LawImpactError
from ..graph.repository import ImpactRepository
from ..matching.similarity import Match
from ..models import Link, LinkType, LocalRegulation, StatuteArticle

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, LocalRegulation], None]


class RegulationLinkResult(BaseModel):
    """Outcome for one regulation."""

    regulation_id: str
    candidates: int = 0
    links: list[Link] = Field(default_factory=list)
    error: str | None = None


class LinkageReport(BaseModel):
    """Summary of a linkage run."""

    processed: int = 0
    links_written: int = 0
    regulations_with_links: int = 0
    failures: dict[str, str] = Field(default_factory=dict)
    cancelled: bool = False
    results: list[RegulationLinkResult] = Field(default_factory=list)

    @property
    def average_links(self) -> float:
        """Average links per regulation that received at least one."""
        if not self.regulations_with_links:
            return 0.0
        return self.links_written / self.regulations_with_links


class LinkageBuilder:
    """
    Batch job that writes the regulation -> statute article graph.

    Usage:
        builder = LinkageBuilder(repository, ImpactConfig())
        report = builder.build_all()
        print(report.links_written)
    """

    def __init__(self, repository: ImpactRepository, config: ImpactConfig | None = None):
        self.repository = repository
        self.config = config or ImpactConfig()

    @property
    def threshold(self) -> float:
        return self.config.link_threshold

    def qualifying(self, matches: list[Match[StatuteArticle]]) -> list[Match[StatuteArticle]]:
        """Candidates that clear the link threshold (inclusive)."""
        return [m for m in matches if m.score >= self.threshold]

    def link_regulation(self, regulation: LocalRegulation) -> RegulationLinkResult:
        """
        Find and persist links for a single regulation.

        Raises:
            LawImpactError: If the regulation has no embedding or lookup fails
        """
        if regulation.embedding is None:
            raise LawImpactError(f"Regulation {regulation.id} has no embedding")

        matches = self.repository.find_articles_by_embedding_similarity(
            regulation.embedding,
            k=self.config.top_n,
            threshold=-1.0,
        )
        result = RegulationLinkResult(regulation_id=regulation.id, candidates=len(matches))

        for rank, match in enumerate(matches, start=1):
            article = match.item
            if match.score < self.threshold:
                logger.debug(
                    f"{regulation.id}: #{rank} {article.statute_id} {article.heading} "
                    f"[{match.score:.3f}] below threshold"
                )
                continue

            link = Link(
                statute_id=article.statute_id,
                regulation_id=regulation.id,
                statute_article_id=article.id,
                link_type=LinkType.BASIS,
                confidence_score=min(1.0, match.score),
            )
            result.links.append(self.repository.upsert_link(link))
            logger.info(
                f"{regulation.id}: #{rank} {article.statute_id} {article.heading} [{match.score:.3f}]"
            )

        return result

    def build_all(
        self,
        regulations: list[LocalRegulation] | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> LinkageReport:
        """
        Link every regulation that has an embedding.

        A failure on one regulation is logged and recorded in the report;
        the run continues with the next one. ``cancel_event`` is checked
        between regulations.
        """
        if regulations is None:
            regulations = self.repository.list_regulations_with_embeddings()
        report = LinkageReport()
        total = len(regulations)
        logger.info(f"Linking {total} regulations (top_n={self.config.top_n}, threshold={self.threshold})")

        for regulation in regulations:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Linkage cancelled after {report.processed}/{total} regulations")
                report.cancelled = True
                break

            report.processed += 1
            try:
                result = self.link_regulation(regulation)
            except Exception as e:
                logger.error(f"Error linking regulation {regulation.id}: {e}")
                report.failures[regulation.id] = str(e)
                report.results.append(RegulationLinkResult(regulation_id=regulation.id, error=str(e)))
            else:
                report.results.append(result)
                if result.links:
                    report.links_written += len(result.links)
                    report.regulations_with_links += 1

            if on_progress is not None:
                on_progress(report.processed, total, regulation)

        logger.info(
            f"Linkage complete: {report.processed} processed, {report.links_written} links, "
            f"{len(report.failures)} failures"
        )
        return report
