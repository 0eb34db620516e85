"""
Article-level change detection between two revisions of a statute.

The diff is keyed by article number: numbers only in the new set are
``added``, numbers only in the old set are ``deleted``, and numbers in both
whose content differs (exact string comparison) are ``modified``. Identical
articles produce nothing.

Usage:
    from lawimpact.analysis.revision_diff import diff_articles

    deltas = diff_articles(old_articles, new_articles)
    for delta in deltas:
        print(delta.article_number, delta.change_type.value)
"""
from __future__ import annotations

import difflib
from typing import Sequence

from ..models import ChangeType, RevisionDelta, StatuteArticle


def text_similarity(old_text: str | None, new_text: str | None) -> float:
    """Character-level similarity ratio (0-1) of two texts."""
    if not old_text and not new_text:
        return 1.0
    if not old_text or not new_text:
        return 0.0
    return difflib.SequenceMatcher(None, old_text, new_text, autojunk=False).ratio()


def diff_articles(
    old_articles: Sequence[StatuteArticle],
    new_articles: Sequence[StatuteArticle],
) -> list[RevisionDelta]:
    """
    Compare two article sets of the same statute.

    Args:
        old_articles: Articles of the earlier revision
        new_articles: Articles of the later revision

    Returns:
        One RevisionDelta per changed article number; additions and
        modifications in new-set order, then deletions in old-set order
    """
    old_by_number = {a.article_number: a for a in old_articles}
    new_by_number = {a.article_number: a for a in new_articles}
    deltas: list[RevisionDelta] = []

    for number, new in new_by_number.items():
        old = old_by_number.get(number)
        if old is None:
            deltas.append(RevisionDelta(
                article_number=number,
                change_type=ChangeType.ADDED,
                new_content=new.content,
                new_article=new,
            ))
        elif old.content != new.content:
            deltas.append(RevisionDelta(
                article_number=number,
                change_type=ChangeType.MODIFIED,
                old_content=old.content,
                new_content=new.content,
                old_article=old,
                new_article=new,
                similarity=text_similarity(old.content, new.content),
            ))

    for number, old in old_by_number.items():
        if number not in new_by_number:
            deltas.append(RevisionDelta(
                article_number=number,
                change_type=ChangeType.DELETED,
                old_content=old.content,
                old_article=old,
            ))

    return deltas


def summarize_deltas(deltas: Sequence[RevisionDelta]) -> dict[str, int]:
    """Count deltas per change type."""
    counts = {change.value: 0 for change in ChangeType}
    for delta in deltas:
        counts[delta.change_type.value] += 1
    return counts
