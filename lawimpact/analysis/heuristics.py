"""
Cheap pre-filter in front of the generative-model analysis.

The filter decides, without any network call, whether a changed statute
article and a regulation article are related enough to pay for a deep
analysis. Rules, in order:

1. The statute article is new                       -> analyze ("new article")
2. Modified, but old and new content are identical  -> skip ("no content change")
3. The regulation cites the article number          -> analyze ("direct reference")
4. The texts share a legally significant keyword    -> analyze ("shared significant keyword")
   otherwise                                        -> skip

Rule 2 is the only hard negative. False negatives from rule 4 are accepted
to bound analysis cost on large corpora.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from ..config import ImpactConfig
from ..models import (
    ArticleKind,
    ChangeType,
    RegulationArticle,
    RevisionDelta,
    RevisionType,
    StatuteArticle,
)

REASON_NEW_ARTICLE = "new article"
REASON_NO_CHANGE = "no content change"
REASON_DIRECT_REFERENCE = "direct reference"
REASON_SHARED_KEYWORD = "shared significant keyword"
REASON_UNRELATED = "no direct reference or shared keywords"


@dataclass(frozen=True)
class HeuristicDecision:
    """Whether to send a pair to the analyzer, and why."""

    should_analyze: bool
    reason: str
    keywords: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.should_analyze


def reference_pattern(article_number: str) -> re.Pattern[str]:
    """
    Regex matching a citation of ``article_number``.

    Handles Korean citations (``제5조``, ``제5조의2``) and English ones
    (``Article 5``, ``Art. 5-2``). A trailing digit or sub-number suffix
    that the article number does not have breaks the match, so "제5조"
    does not match "제5조의2" and "Article 5" does not match "Article 50".
    """
    base, sep, sub = article_number.strip().partition("의")
    base = re.escape(base.strip())
    if sep:
        sub = re.escape(sub.strip())
        korean = rf"제\s*{base}\s*조\s*의\s*{sub}(?!\d)"
        english = rf"\bArt(?:icle|\.)?\s*{base}[-\s]*{sub}(?![\d-])"
    else:
        korean = rf"제\s*{base}\s*조(?!\s*의\s*\d)"
        english = rf"\bArt(?:icle|\.)?\s*{base}(?![\d-])"
    return re.compile(f"{korean}|{english}", re.IGNORECASE)


def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """
    Case-insensitive pattern for a keyword.

    Latin-script keywords match whole words only ("fine" not in "define");
    Korean keywords match as substrings, e.g. "허가" in "허가를".
    """
    escaped = re.escape(keyword)
    if keyword.isascii():
        escaped = rf"\b{escaped}\b"
    return re.compile(escaped, re.IGNORECASE)


class HeuristicFilter:
    """
    Keyword/reference gate for (statute delta, regulation article) pairs.

    Usage:
        heuristic = HeuristicFilter(ImpactConfig())
        decision = heuristic.should_analyze(old_article, new_article, reg_article)
        if decision.should_analyze:
            ...
    """

    def __init__(self, config: ImpactConfig | None = None, keywords: Iterable[str] | None = None):
        self.config = config or ImpactConfig()
        self.keywords: tuple[str, ...] = tuple(
            keywords if keywords is not None else self.config.all_keywords
        )
        self._keyword_patterns = {kw: keyword_pattern(kw) for kw in self.keywords}

    def references(self, article_number: str, text: str) -> bool:
        """True when ``text`` cites the given article number."""
        return bool(reference_pattern(article_number).search(text))

    def shared_keywords(self, regulation_text: str, *statute_texts: str | None) -> tuple[str, ...]:
        """Keywords present in the regulation and in at least one statute text."""
        texts = [t for t in statute_texts if t]
        return tuple(
            kw for kw, pattern in self._keyword_patterns.items()
            if pattern.search(regulation_text)
            and any(pattern.search(t) for t in texts)
        )

    def should_analyze(
        self,
        old_article: StatuteArticle | None,
        new_article: StatuteArticle | None,
        regulation_article: RegulationArticle,
    ) -> HeuristicDecision:
        """
        Apply the pre-filter rules to one pair.

        ``new_article`` is None for a deleted statute article; the old
        content is then screened instead.
        """
        if old_article is None:
            return HeuristicDecision(True, REASON_NEW_ARTICLE)

        if new_article is not None and old_article.content == new_article.content:
            return HeuristicDecision(False, REASON_NO_CHANGE)

        number = (new_article or old_article).article_number
        if self.references(number, regulation_article.content):
            return HeuristicDecision(True, REASON_DIRECT_REFERENCE)

        shared = self.shared_keywords(
            regulation_article.content,
            old_article.content,
            new_article.content if new_article else None,
        )
        if shared:
            return HeuristicDecision(True, REASON_SHARED_KEYWORD, shared)

        return HeuristicDecision(False, REASON_UNRELATED)

    def screen_delta(
        self,
        delta: RevisionDelta,
        regulation_article: RegulationArticle,
        statute_id: str = "",
    ) -> HeuristicDecision:
        """:meth:`should_analyze` for a RevisionDelta, with or without snapshots."""
        old, new = _snapshots(delta, statute_id)
        if delta.change_type == ChangeType.ADDED:
            old = None
        return self.should_analyze(old, new, regulation_article)


def _snapshots(
    delta: RevisionDelta,
    statute_id: str,
) -> tuple[StatuteArticle | None, StatuteArticle | None]:
    """Old/new articles of a delta, synthesised from its content if needed."""
    old = delta.old_article
    if old is None and delta.old_content is not None:
        old = StatuteArticle(
            id=f"{statute_id}:{delta.article_number}:old",
            statute_id=statute_id,
            article_number=delta.article_number,
            content=delta.old_content,
        )
    new = delta.new_article
    if new is None and delta.new_content is not None:
        new = StatuteArticle(
            id=f"{statute_id}:{delta.article_number}:new",
            statute_id=statute_id,
            article_number=delta.article_number,
            content=delta.new_content,
        )
    return old, new


# =============================================================================
# Priority
# =============================================================================

REVISION_TYPE_WEIGHT = {
    RevisionType.FULL: 30,
    RevisionType.PARTIAL: 15,
    RevisionType.NEW: 10,
}

CHANGE_TYPE_WEIGHT = {
    ChangeType.DELETED: 10,
    ChangeType.ADDED: 5,
    ChangeType.MODIFIED: 0,
}


def analysis_priority(
    delta: RevisionDelta,
    revision_type: RevisionType | None = None,
    statute_article: StatuteArticle | None = None,
) -> int:
    """
    Rank a delta for analysis ordering (0-100, higher first).

    Full revisions outrank partial ones, main-body articles outrank
    addenda and appendices, and longer articles outrank short ones.

    Args:
        delta: The changed article
        revision_type: Type of the revision that produced the delta
        statute_article: Article whose kind is scored; defaults to the
            delta's new (or old) snapshot
    """
    priority = 50
    if revision_type is not None:
        priority += REVISION_TYPE_WEIGHT.get(revision_type, 0)
    priority += CHANGE_TYPE_WEIGHT[delta.change_type]

    article = statute_article or delta.new_article or delta.old_article
    if article is None or article.kind == ArticleKind.MAIN:
        priority += 10

    length = len(delta.new_content or delta.old_content or "")
    if length > 1000:
        priority += 15
    elif length > 500:
        priority += 10
    elif length > 200:
        priority += 5

    return min(priority, 100)
