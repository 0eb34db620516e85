"""
Revision impact pipeline.

Turns a detected statute revision into persisted impact analyses:

    diff articles -> find linked regulations -> heuristic screen
        -> analyze survivors (highest priority first) -> persist -> notify

Usage:
    pipeline = RevisionImpactPipeline(repository, analyzer, config, notifier=send_alert)
    report = pipeline.run(RevisionTrigger(
        statute=statute,
        revision=revision,
        old_articles=old_articles,
        new_articles=new_articles,
    ))
    print(report.summary)
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

from pydantic import BaseModel, Field

from .analysis.heuristics import HeuristicFilter, analysis_priority
from .analysis.impact_analyzer import BatchAnalysisReport, ImpactAnalyzer, ProgressCallback
from .analysis.revision_diff import diff_articles, summarize_deltas
from .config import ImpactConfig
from .graph.repository import ImpactRepository
from .models import (
    AnalysisRequest,
    ChangeType,
    ImpactAnalysisResult,
    Link,
    RegulationArticle,
    RevisionDelta,
    Statute,
    StatuteArticle,
    StatuteRevision,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[ImpactAnalysisResult], None]


class RevisionTrigger(BaseModel):
    """A statute revision handed over by the ingestion collaborator."""

    statute: Statute
    revision: StatuteRevision
    old_articles: list[StatuteArticle] = Field(default_factory=list)
    new_articles: list[StatuteArticle] = Field(default_factory=list)


class SkippedPair(BaseModel):
    """A (delta, regulation article) pair the heuristic filter rejected."""

    article_number: str
    regulation_id: str
    regulation_article_id: str
    reason: str


class RevisionImpactReport(BaseModel):
    """Everything one pipeline run did."""

    revision_id: str
    deltas: list[RevisionDelta] = Field(default_factory=list)
    candidate_pairs: int = 0
    skipped: list[SkippedPair] = Field(default_factory=list)
    requests: list[AnalysisRequest] = Field(default_factory=list)
    analysis: BatchAnalysisReport = Field(default_factory=BatchAnalysisReport)
    analysis_ids: list[str] = Field(default_factory=list)
    persistence_failures: int = 0
    notification_failures: int = 0

    @property
    def summary(self) -> dict[str, int]:
        counts = summarize_deltas(self.deltas)
        counts.update({
            "candidate_pairs": self.candidate_pairs,
            "skipped": len(self.skipped),
            "analyzed": self.analysis.succeeded,
            "failed": self.analysis.failed,
            "persisted": len(self.analysis_ids),
            "persistence_failures": self.persistence_failures,
        })
        return counts


class RevisionImpactPipeline:
    """
    Orchestrates diff, screening, analysis and persistence for a revision.

    Links come from the repository (written earlier by the linkage builder).
    A link pinned to a regulation article pairs the delta with that article
    only; otherwise every article of the linked regulation is screened.
    """

    def __init__(
        self,
        repository: ImpactRepository,
        analyzer: ImpactAnalyzer,
        config: ImpactConfig | None = None,
        heuristic: HeuristicFilter | None = None,
        notifier: Notifier | None = None,
    ):
        self.repository = repository
        self.analyzer = analyzer
        self.config = config or analyzer.config
        self.heuristic = heuristic or HeuristicFilter(self.config)
        self.notifier = notifier

    def _links_for(self, delta: RevisionDelta, links: list[Link]) -> list[Link]:
        """Links pointing at either snapshot of the delta, or at the whole statute."""
        ids = delta.statute_article_ids
        return [
            link for link in links
            if link.statute_article_id is None or link.statute_article_id in ids
        ]

    def _regulation_articles(self, link: Link) -> list[RegulationArticle]:
        articles = self.repository.get_articles_by_regulation(link.regulation_id)
        if link.regulation_article_id:
            articles = [a for a in articles if a.id == link.regulation_article_id]
        return articles

    def build_requests(
        self,
        trigger: RevisionTrigger,
        deltas: list[RevisionDelta],
        report: RevisionImpactReport,
    ) -> list[AnalysisRequest]:
        """Screen every linked pair; return surviving requests, highest priority first."""
        links = self.repository.get_links_by_statute(trigger.statute.id)
        logger.info(f"{trigger.statute.name}: {len(deltas)} changed articles, {len(links)} links")

        requests: list[AnalysisRequest] = []
        seen: set[tuple[str, str]] = set()

        for delta in deltas:
            priority = analysis_priority(
                delta, trigger.revision.revision_type, delta.new_article or delta.old_article
            )
            for link in self._links_for(delta, links):
                regulation = self.repository.get_regulation(link.regulation_id)
                if regulation is None:
                    logger.warning(f"Link {link.key} points at unknown regulation {link.regulation_id}")
                    continue

                for reg_article in self._regulation_articles(link):
                    pair = (delta.article_number, reg_article.id)
                    if pair in seen:
                        continue
                    seen.add(pair)
                    report.candidate_pairs += 1

                    decision = self.heuristic.screen_delta(delta, reg_article, trigger.statute.id)
                    if not decision.should_analyze:
                        report.skipped.append(SkippedPair(
                            article_number=delta.article_number,
                            regulation_id=regulation.id,
                            regulation_article_id=reg_article.id,
                            reason=decision.reason,
                        ))
                        continue

                    requests.append(self._request(trigger, delta, regulation.id, regulation.name,
                                                  reg_article, priority))

        requests.sort(key=lambda r: r.priority, reverse=True)
        return requests

    def _request(
        self,
        trigger: RevisionTrigger,
        delta: RevisionDelta,
        regulation_id: str,
        regulation_name: str,
        reg_article: RegulationArticle,
        priority: int,
    ) -> AnalysisRequest:
        old, new = delta.old_article, delta.new_article
        if delta.change_type == ChangeType.ADDED:
            old = None
        return AnalysisRequest(
            revision_id=trigger.revision.id,
            statute_name=trigger.statute.name,
            revision_date=trigger.revision.revision_date,
            old_article=old,
            new_article=new,
            regulation_id=regulation_id,
            regulation_name=regulation_name,
            regulation_article=reg_article,
            priority=priority,
        )

    def run(
        self,
        trigger: RevisionTrigger,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RevisionImpactReport:
        """
        Process one revision end to end.

        Args:
            trigger: Statute, revision and both article sets
            on_progress: Forwarded to the analyzer's batch loop
            cancel_event: Stops analysis between items

        Returns:
            RevisionImpactReport with deltas, skipped pairs and analysis ids
        """
        report = RevisionImpactReport(revision_id=trigger.revision.id)
        report.deltas = diff_articles(trigger.old_articles, trigger.new_articles)
        if not report.deltas:
            logger.info(f"{trigger.statute.name}: no article changes in revision {trigger.revision.id}")
            return report

        report.requests = self.build_requests(trigger, report.deltas, report)
        if not report.requests:
            logger.info(f"{trigger.statute.name}: no regulation articles survived screening")
            return report

        report.analysis = self.analyzer.batch_analyze(
            report.requests, on_progress=on_progress, cancel_event=cancel_event
        )

        for result in report.analysis.results:
            try:
                report.analysis_ids.append(self.repository.create_impact_analysis(result))
            except Exception as e:
                logger.error(
                    f"Failed to store analysis of {result.regulation_article_id} "
                    f"against {result.statute_article_id}: {e}"
                )
                report.persistence_failures += 1
                continue
            if self.notifier is None:
                continue
            try:
                self.notifier(result)
            except Exception as e:
                logger.error(f"Notifier failed for {result.regulation_id}: {e}")
                report.notification_failures += 1

        logger.info(f"{trigger.statute.name}: {report.summary}")
        return report
