"""
Related statute articles for a single article.

Filters on ``search_threshold`` (default 0.8) rather than the linkage
builder's ``link_threshold``.
"""
from __future__ import annotations

import logging

from ..config import ImpactConfig
from ..errors import ValidationError
from ..graph.repository import ImpactRepository
from ..matching.similarity import Match
from ..models import RegulationArticle, StatuteArticle

logger = logging.getLogger(__name__)


def find_related_articles(
    repository: ImpactRepository,
    article: StatuteArticle | RegulationArticle,
    config: ImpactConfig | None = None,
    k: int | None = None,
    threshold: float | None = None,
) -> list[Match[StatuteArticle]]:
    """
    Statute articles most similar to ``article``, best first.

    Args:
        repository: Store holding embedded statute articles
        article: A statute or regulation article with an embedding
        config: Supplies the defaults for ``k`` (top_n) and ``threshold``
            (search_threshold)
        k: Maximum number of results
        threshold: Minimum cosine similarity (inclusive)

    Returns:
        Matches excluding ``article`` itself

    Raises:
        ValidationError: If the article has no embedding
    """
    config = config or ImpactConfig()
    if article.embedding is None:
        raise ValidationError(f"Article {article.id} has no embedding")

    k = k or config.top_n
    if threshold is None:
        threshold = config.search_threshold

    # one extra candidate in case the article finds itself
    matches = repository.find_articles_by_embedding_similarity(
        article.embedding, k=k + 1, threshold=threshold
    )
    related = [m for m in matches if m.item.id != article.id][:k]
    logger.debug(f"{article.id}: {len(related)} related articles (threshold={threshold})")
    return related
