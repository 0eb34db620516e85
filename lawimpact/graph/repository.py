"""
Persistence contract consumed by the engine.

The linkage builder, embedding backfill and revision pipeline only talk to
storage through this protocol. ``InMemoryRepository`` and ``Neo4jStore``
implement it.
"""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from ..matching.similarity import Match
from ..models import (
    ImpactAnalysisResult,
    Link,
    LocalRegulation,
    RegulationArticle,
    Statute,
    StatuteArticle,
)


@runtime_checkable
class ImpactRepository(Protocol):
    """Storage operations the engine relies on."""

    def get_statute(self, statute_id: str) -> Statute | None: ...

    def get_regulation(self, regulation_id: str) -> LocalRegulation | None: ...

    def get_articles_by_statute(self, statute_id: str) -> list[StatuteArticle]: ...

    def get_articles_by_regulation(self, regulation_id: str) -> list[RegulationArticle]: ...

    def list_regulations_with_embeddings(self) -> list[LocalRegulation]: ...

    def find_articles_by_embedding_similarity(
        self,
        vector: Sequence[float],
        k: int,
        threshold: float,
    ) -> list[Match[StatuteArticle]]: ...

    def upsert_link(self, link: Link) -> Link: ...

    def get_links_by_statute(self, statute_id: str) -> list[Link]: ...

    def create_impact_analysis(self, result: ImpactAnalysisResult) -> str: ...

    def update_statute_article_embedding(self, article_id: str, embedding: list[float]) -> None: ...

    def update_regulation_article_embedding(self, article_id: str, embedding: list[float]) -> None: ...

    def update_regulation_embedding(self, regulation_id: str, embedding: list[float]) -> None: ...
