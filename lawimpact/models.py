"""
Core data models for the statute impact engine.

These Pydantic models define the entities that flow between the linkage
builder, the revision diff, the heuristic filter and the impact analyzer.
They're used for:
1. Validating data handed over by ingestion and persistence collaborators
2. Serialization to/from the graph database and JSON fixtures
3. The typed result of generative-model analysis
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class StatuteType(str, Enum):
    """Kinds of superior law."""

    LAW = "법률"
    ENFORCEMENT_DECREE = "시행령"
    ENFORCEMENT_RULE = "시행규칙"


class RevisionType(str, Enum):
    """How a statute revision changed the statute."""

    NEW = "신규"
    PARTIAL = "일부개정"
    FULL = "전부개정"
    ABOLISH = "폐지"


class RegulationType(str, Enum):
    """Kinds of local regulation."""

    ORDINANCE = "조례"
    RULE = "규칙"


class ArticleKind(str, Enum):
    """Where an article sits in the instrument."""

    MAIN = "main"  # 본문
    ADDENDUM = "addendum"  # 부칙
    APPENDIX = "appendix"  # 별표


class LinkType(str, Enum):
    """Association between a regulation and the statute it relies on."""

    BASIS = "basis"  # 근거법령
    APPLIED_BY_REFERENCE = "applied-by-reference"  # 준용
    REFERENCE = "reference"  # 참조


class ChangeType(str, Enum):
    """Per-article classification between two revisions."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class ImpactLevel(str, Enum):
    """Severity of a revision's effect on a regulation article."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ImpactType(str, Enum):
    """Recommended action category."""

    REQUIRED_AMENDMENT = "required-amendment"  # 필수개정
    RECOMMENDED_AMENDMENT = "recommended-amendment"  # 권고개정
    REVIEW_NEEDED = "review-needed"  # 검토필요
    NO_IMPACT = "no-impact"  # 영향없음


# Labels the models produce when prompted with Korean source material
IMPACT_TYPE_ALIASES: dict[str, ImpactType] = {
    "필수개정": ImpactType.REQUIRED_AMENDMENT,
    "권고개정": ImpactType.RECOMMENDED_AMENDMENT,
    "검토필요": ImpactType.REVIEW_NEEDED,
    "영향없음": ImpactType.NO_IMPACT,
}


# =============================================================================
# Instruments
# =============================================================================


class Statute(BaseModel):
    """A national law, enforcement decree, or enforcement rule."""

    id: str
    name: str
    statute_type: StatuteType = StatuteType.LAW
    law_number: str | None = None
    ministry: str | None = None
    current_version: str | None = None


class StatuteRevision(BaseModel):
    """One promulgated revision of a statute."""

    id: str
    statute_id: str
    revision_type: RevisionType = RevisionType.PARTIAL
    revision_date: date
    enforcement_date: date | None = None
    revision_reason: str | None = None


class LocalRegulation(BaseModel):
    """A municipal ordinance or rule."""

    id: str
    name: str
    regulation_type: RegulationType = RegulationType.ORDINANCE
    local_gov: str | None = None
    department: str | None = None
    embedding: list[float] | None = None

    def text_for_embedding(self, article_texts: list[str] | None = None) -> str:
        """Document-level text: name, metadata, then article bodies."""
        parts = [self.name, ""]
        parts.append(f"법령 종류: {self.regulation_type.value}")
        if self.local_gov:
            parts.append(f"지역: {self.local_gov}")
        if self.department:
            parts.append(f"담당부서: {self.department}")
        if article_texts:
            parts.append("")
            parts.append("\n\n".join(article_texts))
        return "\n".join(parts)


# =============================================================================
# Articles
# =============================================================================


class _ArticleBase(BaseModel):
    id: str
    article_number: str  # "5", "5의2"
    title: str | None = None
    content: str
    kind: ArticleKind = ArticleKind.MAIN
    parent_article_id: str | None = None  # lookup only
    embedding: list[float] | None = None

    @property
    def label(self) -> str:
        """Citation label, e.g. '제5조의2'."""
        base, _, sub = self.article_number.partition("의")
        return f"제{base}조" + (f"의{sub}" if sub else "")

    @property
    def heading(self) -> str:
        """Citation-style heading, e.g. '제5조의2 (정의)'."""
        return f"{self.label} ({self.title})" if self.title else self.label

    def text_for_embedding(self) -> str:
        """Label, title and content, the text fed to the embedding provider."""
        first_line = f"{self.label} {self.title}" if self.title else self.label
        return f"{first_line}\n\n{self.content}"

    def is_deleted_marker(self, markers: list[str] | tuple[str, ...] = ("삭제",)) -> bool:
        """True when the article body is just a deletion notice like '삭제 <2020.1.1>'."""
        body = re.sub(r"<[^>]*>|\s+", "", self.content)
        return any(body.startswith(m) and len(body) <= len(m) + 2 for m in markers)


class StatuteArticle(_ArticleBase):
    """An article of a statute as of one revision."""

    statute_id: str
    revision_id: str | None = None


class RegulationArticle(_ArticleBase):
    """An article of a local regulation."""

    regulation_id: str


# =============================================================================
# Links
# =============================================================================


def link_key(regulation_id: str, statute_article_id: str) -> str:
    """Stable identifier for a regulation -> statute-article link."""
    return f"link_{regulation_id}_{statute_article_id}"


class Link(BaseModel):
    """
    Scored association from a local regulation to a statute article.

    ``verified``/``verified_by``/``verified_at`` are set only by human
    review; the linkage builder never writes them on update.
    """

    statute_id: str
    regulation_id: str
    statute_article_id: str | None = None
    regulation_article_id: str | None = None
    link_type: LinkType = LinkType.BASIS
    confidence_score: float = Field(ge=0.0, le=1.0)
    verified: bool = False
    verified_by: str | None = None
    verified_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return link_key(self.regulation_id, self.statute_article_id or self.statute_id)


# =============================================================================
# Revision deltas
# =============================================================================


class RevisionDelta(BaseModel):
    """
    One changed article between two revisions of the same statute.

    Attributes:
        article_number: The article number shared by both versions
        change_type: added / modified / deleted
        old_content: Content before the revision (None for added)
        new_content: Content after the revision (None for deleted)
        old_article: Full old snapshot when available
        new_article: Full new snapshot when available
        similarity: Character-level similarity of old and new content (0-1)
    """

    article_number: str
    change_type: ChangeType
    old_content: str | None = None
    new_content: str | None = None
    old_article: StatuteArticle | None = None
    new_article: StatuteArticle | None = None
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def statute_article_ids(self) -> set[str]:
        """Ids of the snapshots, used to find precomputed links."""
        return {a.id for a in (self.old_article, self.new_article) if a is not None}


# =============================================================================
# Impact analysis
# =============================================================================


class AnalysisRequest(BaseModel):
    """Everything the analyzer needs for one statute/regulation article pair."""

    revision_id: str
    statute_name: str
    revision_date: date | str
    old_article: StatuteArticle | None = None
    new_article: StatuteArticle | None = None
    regulation_id: str
    regulation_name: str
    regulation_article: RegulationArticle
    priority: int = 50

    @model_validator(mode="after")
    def _needs_one_statute_version(self) -> AnalysisRequest:
        if self.old_article is None and self.new_article is None:
            raise ValueError("an analysis request needs the old or the new statute article")
        return self

    @property
    def statute_article(self) -> StatuteArticle:
        """The article the result is filed against (new version when present)."""
        return self.new_article or self.old_article  # type: ignore[return-value]


class ImpactAssessment(BaseModel):
    """The six fields a generative model must return."""

    impact_level: ImpactLevel
    impact_type: ImpactType
    change_summary: str = Field(min_length=1)
    ai_recommendation: str = Field(min_length=1)
    confidence_score: float = Field(ge=0.0, le=1.0)
    reasoning: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _normalize_labels(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            level = data.get("impact_level")
            if isinstance(level, str):
                data["impact_level"] = level.strip().upper()
            kind = data.get("impact_type")
            if isinstance(kind, str):
                kind = kind.strip()
                alias = IMPACT_TYPE_ALIASES.get(kind)
                data["impact_type"] = alias.value if alias else kind.lower().replace("_", "-")
        return data


class ImpactAnalysisResult(ImpactAssessment):
    """
    Persisted verdict for one (revision, regulation, statute article,
    regulation article) tuple. Immutable: re-analysis creates a new result.
    """

    model_config = ConfigDict(frozen=True)

    revision_id: str
    regulation_id: str
    statute_article_id: str
    regulation_article_id: str
    provider: str | None = None
    model: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_assessment(
        cls,
        assessment: ImpactAssessment,
        request: AnalysisRequest,
        provider: str | None = None,
        model: str | None = None,
    ) -> ImpactAnalysisResult:
        return cls(
            **assessment.model_dump(),
            revision_id=request.revision_id,
            regulation_id=request.regulation_id,
            statute_article_id=request.statute_article.id,
            regulation_article_id=request.regulation_article.id,
            provider=provider,
            model=model,
        )
