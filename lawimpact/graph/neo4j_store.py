"""
Neo4j Graph Store - persistence for statutes, regulations, links and analyses.

This module provides:
1. Connection management to Neo4j
2. Schema initialization (constraints, indexes, the article vector index)
3. Upserts for instruments and their articles
4. The ImpactRepository operations used by the engine

The graph schema:
- Nodes: Statute, StatuteArticle, LocalRegulation, RegulationArticle, ImpactAnalysis
- Edges: HAS_ARTICLE, LINKS_TO (regulation -> statute article), ASSESSES, CONCERNS

Neo4j's cosine vector index reports ``(1 + cos) / 2``; scores returned from
:meth:`Neo4jStore.find_articles_by_embedding_similarity` are converted back
to raw cosine similarity so thresholds mean the same as in memory.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from neo4j import Driver, GraphDatabase, Session
from neo4j.exceptions import ClientError, ServiceUnavailable

from ..config import CANONICAL_DIMENSION, ImpactConfig
from ..matching.similarity import Match
from ..models import (
    ImpactAnalysisResult,
    Link,
    LocalRegulation,
    RegulationArticle,
    Statute,
    StatuteArticle,
)

logger = logging.getLogger(__name__)

VECTOR_INDEX_NAME = "statute_article_embedding_idx"


def score_to_cosine(score: float) -> float:
    """Convert Neo4j's normalised cosine score back to [-1, 1]."""
    return max(-1.0, min(1.0, 2.0 * score - 1.0))


def cosine_to_score(cosine: float) -> float:
    return (cosine + 1.0) / 2.0


class Neo4jStore:
    """
    Neo4j graph database implementation of ``ImpactRepository``.

    Usage:
        store = Neo4jStore.from_config(ImpactConfig.from_env())
        store.connect()
        store.init_schema()

        store.upsert_statute(statute, articles)
        matches = store.find_articles_by_embedding_similarity(vector, k=5, threshold=0.65)

        store.close()
    """

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "password",
        dimension: int = CANONICAL_DIMENSION,
        deleted_article_markers: Sequence[str] = ("삭제",),
        driver: Driver | None = None,
    ):
        self.uri = uri
        self.user = user
        self.password = password
        self.dimension = dimension
        self.deleted_article_markers = tuple(deleted_article_markers)
        self._driver: Driver | None = driver

    @classmethod
    def from_config(cls, config: ImpactConfig, **kwargs) -> Neo4jStore:
        return cls(
            uri=config.neo4j_uri,
            user=config.neo4j_user,
            password=config.neo4j_password,
            dimension=config.canonical_dimension,
            deleted_article_markers=config.deleted_article_markers,
            **kwargs,
        )

    def connect(self) -> None:
        """Establish connection to Neo4j."""
        if self._driver is not None:
            return

        self._driver = GraphDatabase.driver(
            self.uri,
            auth=(self.user, self.password),
        )
        # Verify connectivity
        try:
            self._driver.verify_connectivity()
        except ServiceUnavailable as e:
            raise ConnectionError(
                f"Could not connect to Neo4j at {self.uri}. "
                "Make sure Neo4j is running and credentials are correct."
            ) from e

    def close(self) -> None:
        """Close the connection."""
        if self._driver:
            self._driver.close()
            self._driver = None

    @property
    def driver(self) -> Driver:
        """Get the driver, ensuring connection."""
        if self._driver is None:
            self.connect()
        return self._driver  # type: ignore

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Get a session context manager."""
        session = self.driver.session()
        try:
            yield session
        finally:
            session.close()

    # =========================================================================
    # Schema Management
    # =========================================================================

    def init_schema(self) -> None:
        """
        Create uniqueness constraints and the statute article vector index.

        Call this once when setting up a new database.
        """
        with self.session() as session:
            for label in ("Statute", "StatuteArticle", "LocalRegulation",
                          "RegulationArticle", "ImpactAnalysis"):
                self._run_schema(
                    session,
                    f"CREATE CONSTRAINT {label.lower()}_id_unique "
                    f"IF NOT EXISTS FOR (n:{label}) REQUIRE n.id IS UNIQUE",
                )

            self._run_schema(
                session,
                "CREATE INDEX statute_article_number_idx IF NOT EXISTS "
                "FOR (n:StatuteArticle) ON (n.statute_id, n.article_number)",
            )
            self._run_schema(
                session,
                f"CREATE VECTOR INDEX {VECTOR_INDEX_NAME} IF NOT EXISTS "
                "FOR (n:StatuteArticle) ON (n.embedding) "
                "OPTIONS {indexConfig: {"
                f"`vector.dimensions`: {int(self.dimension)}, "
                "`vector.similarity_function`: 'cosine'}}",
            )

    def _run_schema(self, session: Session, statement: str) -> None:
        try:
            session.run(statement)
        except ClientError as e:
            logger.warning(f"Schema statement failed ({e.code}): {statement}")

    # =========================================================================
    # Loading
    # =========================================================================

    def upsert_statute(self, statute: Statute, articles: Sequence[StatuteArticle] = ()) -> int:
        """Insert or update a statute and its articles. Returns the article count."""
        with self.session() as session:
            session.run(
                "MERGE (s:Statute {id: $id}) SET s += $props",
                id=statute.id,
                props=self._to_props(statute),
            )
            if articles:
                session.run(
                    """
                    UNWIND $batch AS item
                    MERGE (a:StatuteArticle {id: item.id})
                    SET a += item.props
                    WITH a, item
                    MATCH (s:Statute {id: item.props.statute_id})
                    MERGE (s)-[:HAS_ARTICLE]->(a)
                    """,
                    batch=[{"id": a.id, "props": self._article_props(a)} for a in articles],
                )
        return len(articles)

    def upsert_regulation(
        self,
        regulation: LocalRegulation,
        articles: Sequence[RegulationArticle] = (),
    ) -> int:
        """Insert or update a regulation and its articles. Returns the article count."""
        with self.session() as session:
            session.run(
                "MERGE (r:LocalRegulation {id: $id}) SET r += $props",
                id=regulation.id,
                props=self._to_props(regulation),
            )
            if articles:
                session.run(
                    """
                    UNWIND $batch AS item
                    MERGE (a:RegulationArticle {id: item.id})
                    SET a += item.props
                    WITH a, item
                    MATCH (r:LocalRegulation {id: item.props.regulation_id})
                    MERGE (r)-[:HAS_ARTICLE]->(a)
                    """,
                    batch=[{"id": a.id, "props": self._to_props(a)} for a in articles],
                )
        return len(articles)

    # =========================================================================
    # ImpactRepository
    # =========================================================================

    def get_statute(self, statute_id: str) -> Statute | None:
        node = self._get_node("Statute", statute_id)
        return Statute.model_validate(node) if node else None

    def get_regulation(self, regulation_id: str) -> LocalRegulation | None:
        node = self._get_node("LocalRegulation", regulation_id)
        return LocalRegulation.model_validate(node) if node else None

    def get_articles_by_statute(self, statute_id: str) -> list[StatuteArticle]:
        with self.session() as session:
            result = session.run(
                """
                MATCH (a:StatuteArticle {statute_id: $statute_id})
                RETURN a
                ORDER BY a.article_number
                """,
                statute_id=statute_id,
            )
            return [StatuteArticle.model_validate(dict(r["a"])) for r in result]

    def get_articles_by_regulation(self, regulation_id: str) -> list[RegulationArticle]:
        with self.session() as session:
            result = session.run(
                """
                MATCH (a:RegulationArticle {regulation_id: $regulation_id})
                RETURN a
                ORDER BY a.article_number
                """,
                regulation_id=regulation_id,
            )
            return [RegulationArticle.model_validate(dict(r["a"])) for r in result]

    def list_regulations_with_embeddings(self) -> list[LocalRegulation]:
        with self.session() as session:
            result = session.run(
                """
                MATCH (r:LocalRegulation)
                WHERE r.embedding IS NOT NULL
                RETURN r
                ORDER BY r.name
                """
            )
            return [LocalRegulation.model_validate(dict(r["r"])) for r in result]

    def find_articles_by_embedding_similarity(
        self,
        vector: Sequence[float],
        k: int,
        threshold: float,
    ) -> list[Match[StatuteArticle]]:
        """
        Nearest statute articles by cosine similarity, best first.

        Deletion-notice articles are flagged at load time and excluded.
        """
        with self.session() as session:
            result = session.run(
                """
                CALL db.index.vector.queryNodes($index, $candidates, $vector)
                YIELD node, score
                WHERE coalesce(node.deleted, false) = false AND score >= $min_score
                RETURN node, score
                ORDER BY score DESC
                LIMIT $k
                """,
                index=VECTOR_INDEX_NAME,
                candidates=k * 2,
                vector=[float(v) for v in vector],
                min_score=cosine_to_score(threshold),
                k=k,
            )
            return [
                Match(StatuteArticle.model_validate(dict(r["node"])), score_to_cosine(r["score"]))
                for r in result
            ]

    def upsert_link(self, link: Link) -> Link:
        """
        MERGE a link on its key.

        A new link is written in full; an existing one only has its
        confidence score refreshed, so human verification survives.
        """
        target_label = "StatuteArticle" if link.statute_article_id else "Statute"
        with self.session() as session:
            result = session.run(
                f"""
                MATCH (r:LocalRegulation {{id: $regulation_id}})
                MATCH (t:{target_label} {{id: $target_id}})
                MERGE (r)-[l:LINKS_TO {{key: $key}}]->(t)
                ON CREATE SET l += $props
                ON MATCH SET l.confidence_score = $confidence_score
                RETURN l
                """,
                regulation_id=link.regulation_id,
                target_id=link.statute_article_id or link.statute_id,
                key=link.key,
                props=self._to_props(link),
                confidence_score=link.confidence_score,
            )
            record = result.single()
        if record is None:
            logger.warning(f"Link {link.key} not written: regulation or statute node missing")
            return link
        return Link.model_validate(dict(record["l"]))

    def get_links_by_statute(self, statute_id: str) -> list[Link]:
        with self.session() as session:
            result = session.run(
                """
                MATCH (:LocalRegulation)-[l:LINKS_TO {statute_id: $statute_id}]->()
                RETURN l
                """,
                statute_id=statute_id,
            )
            return [Link.model_validate(dict(r["l"])) for r in result]

    def create_impact_analysis(self, result: ImpactAnalysisResult) -> str:
        """Store a new ImpactAnalysis node and attach it to both articles."""
        analysis_id = f"analysis_{uuid.uuid4().hex}"
        with self.session() as session:
            session.run(
                """
                CREATE (a:ImpactAnalysis {id: $id})
                SET a += $props
                WITH a
                OPTIONAL MATCH (sa:StatuteArticle {id: $statute_article_id})
                OPTIONAL MATCH (ra:RegulationArticle {id: $regulation_article_id})
                FOREACH (_ IN CASE WHEN sa IS NULL THEN [] ELSE [1] END |
                    MERGE (a)-[:CONCERNS]->(sa))
                FOREACH (_ IN CASE WHEN ra IS NULL THEN [] ELSE [1] END |
                    MERGE (a)-[:ASSESSES]->(ra))
                """,
                id=analysis_id,
                props=self._to_props(result),
                statute_article_id=result.statute_article_id,
                regulation_article_id=result.regulation_article_id,
            )
        return analysis_id

    def update_statute_article_embedding(self, article_id: str, embedding: list[float]) -> None:
        self._set_embedding("StatuteArticle", article_id, embedding)

    def update_regulation_article_embedding(self, article_id: str, embedding: list[float]) -> None:
        self._set_embedding("RegulationArticle", article_id, embedding)

    def update_regulation_embedding(self, regulation_id: str, embedding: list[float]) -> None:
        self._set_embedding("LocalRegulation", regulation_id, embedding)

    # =========================================================================
    # Query Helpers
    # =========================================================================

    def get_articles_missing_embeddings(self, label: str) -> list[dict[str, Any]]:
        """Nodes of ``label`` without an embedding, for the backfill job."""
        with self.session() as session:
            result = session.run(
                f"MATCH (n:{label}) WHERE n.embedding IS NULL RETURN n ORDER BY n.id"
            )
            return [dict(r["n"]) for r in result]

    def get_stats(self) -> dict[str, Any]:
        """Get counts of nodes and relationships."""
        with self.session() as session:
            node_result = session.run(
                """
                MATCH (n)
                RETURN labels(n)[0] as label, count(*) as count
                """
            )
            nodes = {r["label"]: r["count"] for r in node_result}

            rel_result = session.run(
                """
                MATCH ()-[r]->()
                RETURN type(r) as type, count(*) as count
                """
            )
            rels = {r["type"]: r["count"] for r in rel_result}

            return {"nodes": nodes, "relationships": rels}

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _get_node(self, label: str, node_id: str) -> dict[str, Any] | None:
        with self.session() as session:
            result = session.run(
                f"MATCH (n:{label} {{id: $id}}) RETURN n",
                id=node_id,
            )
            record = result.single()
            if record:
                return dict(record["n"])
            return None

    def _set_embedding(self, label: str, node_id: str, embedding: list[float]) -> None:
        with self.session() as session:
            session.run(
                f"MATCH (n:{label} {{id: $id}}) SET n.embedding = $embedding",
                id=node_id,
                embedding=[float(v) for v in embedding],
            )

    def _article_props(self, article: StatuteArticle) -> dict[str, Any]:
        props = self._to_props(article)
        props["deleted"] = article.is_deleted_marker(self.deleted_article_markers)
        return props

    def _to_props(self, model: Any) -> dict[str, Any]:
        """Convert a Pydantic model to a Neo4j-compatible properties dict."""
        data = model.model_dump(mode="json")

        # Neo4j has no null properties; enums and dates arrive as strings
        props = {}
        for key, value in data.items():
            if value is None:
                continue
            props[key] = value
        return props


# =============================================================================
# Context Manager Support
# =============================================================================


@contextmanager
def neo4j_store(config: ImpactConfig, **kwargs) -> Iterator[Neo4jStore]:
    """Context manager for Neo4jStore."""
    store = Neo4jStore.from_config(config, **kwargs)
    store.connect()
    try:
        yield store
    finally:
        store.close()
