"""
In-memory implementation of the persistence contract.

Backs the CLI's JSON workflows and the test suite. Statute article search uses
``VectorIndex`` so ranking matches the graph store's semantics.
"""
from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Sequence

from ..config import CANONICAL_DIMENSION
from ..matching.similarity import Match, VectorIndex
from ..models import (
    ImpactAnalysisResult,
    Link,
    LocalRegulation,
    RegulationArticle,
    Statute,
    StatuteArticle,
)


class InMemoryRepository:
    """
    Dict-backed store.

    Usage:
        repo = InMemoryRepository()
        repo.add_statute(statute, articles)
        repo.add_regulation(regulation, reg_articles)
        matches = repo.find_articles_by_embedding_similarity(vector, k=5, threshold=0.65)
    """

    def __init__(
        self,
        dimension: int = CANONICAL_DIMENSION,
        deleted_article_markers: Sequence[str] = ("삭제",),
    ):
        self.dimension = dimension
        self.deleted_article_markers = tuple(deleted_article_markers)
        self.statutes: dict[str, Statute] = {}
        self.statute_articles: dict[str, StatuteArticle] = {}
        self.regulations: dict[str, LocalRegulation] = {}
        self.regulation_articles: dict[str, RegulationArticle] = {}
        self.links: dict[str, Link] = {}
        self.analyses: dict[str, ImpactAnalysisResult] = {}
        self._index: VectorIndex[StatuteArticle] = VectorIndex(dimension)

    # =========================================================================
    # Loading
    # =========================================================================

    def add_statute(self, statute: Statute, articles: Sequence[StatuteArticle] = ()) -> None:
        self.statutes[statute.id] = statute
        for article in articles:
            self.add_statute_article(article)

    def add_statute_article(self, article: StatuteArticle) -> None:
        self.statute_articles[article.id] = article
        self._index.remove(lambda a: a.id == article.id)
        if article.embedding is not None and not article.is_deleted_marker(
            self.deleted_article_markers
        ):
            self._index.add(article, article.embedding)

    def add_regulation(
        self,
        regulation: LocalRegulation,
        articles: Sequence[RegulationArticle] = (),
    ) -> None:
        self.regulations[regulation.id] = regulation
        for article in articles:
            self.regulation_articles[article.id] = article

    @classmethod
    def from_json(cls, path: str | Path, **kwargs) -> InMemoryRepository:
        """
        Load a dataset file shaped like::

            {"statutes": [{..., "articles": [...]}],
             "regulations": [{..., "articles": [...]}],
             "links": [...]}
        """
        data: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
        repo = cls(**kwargs)
        for raw in data.get("statutes", []):
            raw = dict(raw)
            articles = [StatuteArticle.model_validate(a) for a in raw.pop("articles", [])]
            repo.add_statute(Statute.model_validate(raw), articles)
        for raw in data.get("regulations", []):
            raw = dict(raw)
            articles = [RegulationArticle.model_validate(a) for a in raw.pop("articles", [])]
            repo.add_regulation(LocalRegulation.model_validate(raw), articles)
        for raw in data.get("links", []):
            link = Link.model_validate(raw)
            repo.links[link.key] = link
        return repo

    def to_json(self, path: str | Path) -> None:
        """Write the store back out in the :meth:`from_json` layout."""
        statutes = []
        for statute in self.statutes.values():
            entry = statute.model_dump(mode="json")
            entry["articles"] = [
                a.model_dump(mode="json")
                for a in self.statute_articles.values()
                if a.statute_id == statute.id
            ]
            statutes.append(entry)
        regulations = []
        for regulation in self.regulations.values():
            entry = regulation.model_dump(mode="json")
            entry["articles"] = [
                a.model_dump(mode="json")
                for a in self.regulation_articles.values()
                if a.regulation_id == regulation.id
            ]
            regulations.append(entry)
        payload = {
            "statutes": statutes,
            "regulations": regulations,
            "links": [link.model_dump(mode="json") for link in self.links.values()],
            "impact_analyses": [r.model_dump(mode="json") for r in self.analyses.values()],
        }
        Path(path).write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    # =========================================================================
    # ImpactRepository
    # =========================================================================

    def get_statute(self, statute_id: str) -> Statute | None:
        return self.statutes.get(statute_id)

    def get_regulation(self, regulation_id: str) -> LocalRegulation | None:
        return self.regulations.get(regulation_id)

    def get_articles_by_statute(self, statute_id: str) -> list[StatuteArticle]:
        return [a for a in self.statute_articles.values() if a.statute_id == statute_id]

    def get_articles_by_regulation(self, regulation_id: str) -> list[RegulationArticle]:
        return [a for a in self.regulation_articles.values() if a.regulation_id == regulation_id]

    def list_regulations_with_embeddings(self) -> list[LocalRegulation]:
        regulations = [r for r in self.regulations.values() if r.embedding is not None]
        return sorted(regulations, key=lambda r: r.name)

    def find_articles_by_embedding_similarity(
        self,
        vector: Sequence[float],
        k: int,
        threshold: float,
    ) -> list[Match[StatuteArticle]]:
        return self._index.search(vector, k=k, threshold=threshold)

    def upsert_link(self, link: Link) -> Link:
        existing = self.links.get(link.key)
        if existing is None:
            self.links[link.key] = link
            return link
        updated = existing.model_copy(update={"confidence_score": link.confidence_score})
        self.links[link.key] = updated
        return updated

    def get_links_by_statute(self, statute_id: str) -> list[Link]:
        return [link for link in self.links.values() if link.statute_id == statute_id]

    def create_impact_analysis(self, result: ImpactAnalysisResult) -> str:
        analysis_id = f"analysis_{uuid.uuid4().hex}"
        self.analyses[analysis_id] = result
        return analysis_id

    def update_statute_article_embedding(self, article_id: str, embedding: list[float]) -> None:
        article = self.statute_articles[article_id].model_copy(update={"embedding": embedding})
        self.add_statute_article(article)

    def update_regulation_article_embedding(self, article_id: str, embedding: list[float]) -> None:
        article = self.regulation_articles[article_id]
        self.regulation_articles[article_id] = article.model_copy(update={"embedding": embedding})

    def update_regulation_embedding(self, regulation_id: str, embedding: list[float]) -> None:
        regulation = self.regulations[regulation_id]
        self.regulations[regulation_id] = regulation.model_copy(update={"embedding": embedding})
