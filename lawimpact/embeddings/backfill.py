"""
Backfill embeddings for stored articles and regulations that lack them.

Items are embedded one at a time with ``config.embedding_delay_seconds``
between calls. A failing item is logged and counted; the job moves on.

Usage:
    backfill = EmbeddingBackfill(repository, provider, config)
    report = backfill.run(statute_articles, regulation_articles, regulations)
    print(report.embedded, report.failed)
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

from pydantic import BaseModel, Field

from ..config import ImpactConfig
from ..graph.repository import ImpactRepository
from ..models import LocalRegulation, RegulationArticle, StatuteArticle
from ..ratelimit import RateLimiter
from .providers import EmbeddingProvider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class BackfillReport(BaseModel):
    """Counts for one backfill run."""

    total: int = 0
    embedded: int = 0
    skipped: int = 0
    failures: dict[str, str] = Field(default_factory=dict)
    cancelled: bool = False

    @property
    def failed(self) -> int:
        return len(self.failures)


class EmbeddingBackfill:
    """
    Embeds statute articles, regulation articles and regulation documents.

    Statute and regulation articles are embedded from their heading plus
    content; regulations from their name, metadata and article bodies.
    Already-embedded items are skipped unless ``force`` is set.
    """

    def __init__(
        self,
        repository: ImpactRepository,
        provider: EmbeddingProvider,
        config: ImpactConfig | None = None,
    ):
        self.repository = repository
        self.provider = provider
        self.config = config or provider.config
        self.rate_limiter = RateLimiter(self.config.embedding_delay_seconds)

    def _jobs(
        self,
        statute_articles: Sequence[StatuteArticle],
        regulation_articles: Sequence[RegulationArticle],
        regulations: Sequence[LocalRegulation],
        force: bool,
    ) -> list[tuple[str, Callable[[], str], Callable[[list[float]], None]]]:
        jobs = []
        for article in statute_articles:
            if force or article.embedding is None:
                jobs.append((
                    article.id,
                    article.text_for_embedding,
                    lambda v, a=article: self.repository.update_statute_article_embedding(a.id, v),
                ))
        for article in regulation_articles:
            if force or article.embedding is None:
                jobs.append((
                    article.id,
                    article.text_for_embedding,
                    lambda v, a=article: self.repository.update_regulation_article_embedding(a.id, v),
                ))
        for regulation in regulations:
            if force or regulation.embedding is None:
                jobs.append((
                    regulation.id,
                    lambda r=regulation: r.text_for_embedding(
                        [a.content for a in self.repository.get_articles_by_regulation(r.id)]
                    ),
                    lambda v, r=regulation: self.repository.update_regulation_embedding(r.id, v),
                ))
        return jobs

    def run(
        self,
        statute_articles: Sequence[StatuteArticle] = (),
        regulation_articles: Sequence[RegulationArticle] = (),
        regulations: Sequence[LocalRegulation] = (),
        force: bool = False,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BackfillReport:
        """
        Embed every item that needs it.

        Args:
            statute_articles: Statute articles to consider
            regulation_articles: Regulation articles to consider
            regulations: Regulations needing a document-level embedding
            force: Re-embed items that already have a vector
            on_progress: Called with (done, total, item_id) after each item
            cancel_event: Checked between items

        Returns:
            BackfillReport with embedded/skipped/failed counts
        """
        considered = len(statute_articles) + len(regulation_articles) + len(regulations)
        jobs = self._jobs(statute_articles, regulation_articles, regulations, force)
        report = BackfillReport(total=len(jobs), skipped=considered - len(jobs))
        logger.info(f"Backfilling {len(jobs)} embeddings ({report.skipped} already embedded)")

        for done, (item_id, text_fn, store) in enumerate(jobs, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Backfill cancelled after {done - 1}/{len(jobs)} items")
                report.cancelled = True
                break

            self.rate_limiter.wait()
            try:
                vector = self.provider.embed_long_text(text_fn())
                store(vector)
            except Exception as e:
                logger.error(f"Error embedding {item_id}: {e}")
                report.failures[item_id] = str(e)
            else:
                report.embedded += 1

            if on_progress is not None:
                on_progress(done, len(jobs), item_id)

        logger.info(
            f"Backfill complete: {report.embedded} embedded, {report.failed} failed"
        )
        return report
