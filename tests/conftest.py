"""Shared fixtures: a small-dimension config and a tiny statute/regulation corpus."""

from datetime import date

import pytest

from lawimpact.config import ImpactConfig
from lawimpact.models import (
    LocalRegulation,
    RegulationArticle,
    RevisionType,
    Statute,
    StatuteArticle,
    StatuteRevision,
)


@pytest.fixture
def config():
    """Config with 4-dimensional vectors, no pacing and no retries."""
    return ImpactConfig(
        canonical_dimension=4,
        embedding_batch_size=2,
        embedding_delay_seconds=0,
        analysis_delay_seconds=0,
        max_retries=1,
        openai_api_key="sk-test",
        gemini_api_key="gemini-test",
        anthropic_api_key="anthropic-test",
    )


@pytest.fixture
def statute():
    return Statute(id="law-1", name="주차장법")


@pytest.fixture
def revision():
    return StatuteRevision(
        id="law-1-r2",
        statute_id="law-1",
        revision_type=RevisionType.PARTIAL,
        revision_date=date(2024, 3, 1),
    )


@pytest.fixture
def old_articles():
    return [
        StatuteArticle(
            id="law-1:5",
            statute_id="law-1",
            article_number="5",
            title="과태료",
            content="주차 질서를 위반한 자에게는 50만원 이하의 과태료를 부과한다.",
        ),
        StatuteArticle(
            id="law-1:7",
            statute_id="law-1",
            article_number="7",
            title="설비기준",
            content="주차장의 구조ㆍ설비기준은 국토교통부령으로 정한다.",
        ),
    ]


@pytest.fixture
def new_articles():
    return [
        StatuteArticle(
            id="law-1:5@r2",
            statute_id="law-1",
            article_number="5",
            title="과태료",
            content="주차 질서를 위반한 자에게는 100만원 이하의 과태료를 부과한다.",
        ),
        StatuteArticle(
            id="law-1:7@r2",
            statute_id="law-1",
            article_number="7",
            title="설비기준",
            content="주차장의 구조ㆍ설비기준은 국토교통부령으로 정한다.",
        ),
        StatuteArticle(
            id="law-1:9@r2",
            statute_id="law-1",
            article_number="9",
            title="전기자동차 충전구역",
            content="주차장에는 전기자동차 충전구역을 설치할 수 있다.",
        ),
    ]


@pytest.fixture
def regulation():
    return LocalRegulation(
        id="reg-1",
        name="서울특별시 주차장 설치 및 관리 조례",
        local_gov="서울특별시",
        embedding=[1.0, 0.1, 0.0, 0.0],
    )


@pytest.fixture
def regulation_articles():
    return [
        RegulationArticle(
            id="ra-1",
            regulation_id="reg-1",
            article_number="12",
            title="과태료의 부과",
            content="법 제5조에 따른 과태료는 별표 3의 기준에 따라 부과한다.",
        ),
        RegulationArticle(
            id="ra-2",
            regulation_id="reg-1",
            article_number="20",
            title="시행규칙",
            content="이 조례의 시행에 필요한 사항은 규칙으로 정한다.",
        ),
    ]
