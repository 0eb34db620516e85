"""
Tests for the revision impact pipeline.

Uses the in-memory repository and an Anthropic analyzer with a mocked client.
"""

import json
import threading
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from lawimpact.analysis.heuristics import REASON_UNRELATED
from lawimpact.analysis.impact_analyzer import AnthropicImpactAnalyzer
from lawimpact.graph.memory_store import InMemoryRepository
from lawimpact.models import (
    ChangeType,
    ImpactLevel,
    Link,
    LocalRegulation,
    RegulationArticle,
)
from lawimpact.pipeline import RevisionImpactPipeline, RevisionTrigger


# =============================================================================
# Test Fixtures
# =============================================================================


VALID_RESPONSE = json.dumps({
    "impact_level": "HIGH",
    "impact_type": "required-amendment",
    "change_summary": "과태료 상한이 상향되었습니다.",
    "ai_recommendation": "조례의 과태료 기준을 개정하십시오.",
    "confidence_score": 0.85,
    "reasoning": "조례가 법 제5조를 직접 인용합니다.",
})


@pytest.fixture
def client():
    client = Mock()
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(text=VALID_RESPONSE)]
    )
    return client


@pytest.fixture
def repository(statute, old_articles, regulation, regulation_articles):
    repo = InMemoryRepository(dimension=4)
    repo.add_statute(statute, old_articles)
    repo.add_regulation(regulation, regulation_articles)
    link = Link(
        statute_id="law-1",
        regulation_id="reg-1",
        statute_article_id="law-1:5",
        confidence_score=0.8,
    )
    repo.links[link.key] = link
    return repo


@pytest.fixture
def trigger(statute, revision, old_articles, new_articles):
    return RevisionTrigger(
        statute=statute,
        revision=revision,
        old_articles=old_articles,
        new_articles=new_articles,
    )


@pytest.fixture
def pipeline(repository, config, client):
    return RevisionImpactPipeline(repository, AnthropicImpactAnalyzer(config, client=client), config)


# =============================================================================
# End to end
# =============================================================================


class TestRevisionImpactPipeline:
    """diff -> screen -> analyze -> persist -> notify."""

    def test_run(self, repository, config, client, trigger):
        notifier = Mock()
        pipeline = RevisionImpactPipeline(
            repository, AnthropicImpactAnalyzer(config, client=client), config, notifier=notifier
        )

        report = pipeline.run(trigger)

        assert [(d.article_number, d.change_type) for d in report.deltas] == [
            ("5", ChangeType.MODIFIED),
            ("9", ChangeType.ADDED),
        ]
        assert report.candidate_pairs == 2
        assert len(report.requests) == 1
        assert report.requests[0].regulation_article.id == "ra-1"
        assert [(s.regulation_article_id, s.reason) for s in report.skipped] == [
            ("ra-2", REASON_UNRELATED),
        ]

        assert report.analysis.succeeded == 1
        assert len(report.analysis_ids) == 1
        stored = repository.analyses[report.analysis_ids[0]]
        assert stored.impact_level == ImpactLevel.HIGH
        assert stored.revision_id == "law-1-r2"
        assert stored.statute_article_id == "law-1:5@r2"
        assert stored.regulation_article_id == "ra-1"

        notifier.assert_called_once()
        assert notifier.call_args.args[0].statute_article_id == "law-1:5@r2"
        assert report.summary["persisted"] == 1
        assert report.summary["skipped"] == 1

    def test_request_carries_both_versions(self, pipeline, trigger):
        request = pipeline.run(trigger).requests[0]
        assert request.old_article.content.startswith("주차 질서를 위반한 자에게는 50만원")
        assert request.new_article.id == "law-1:5@r2"
        assert request.regulation_name == "서울특별시 주차장 설치 및 관리 조례"

    def test_no_changes(self, pipeline, client, trigger, old_articles):
        unchanged = trigger.model_copy(update={"new_articles": old_articles})

        report = pipeline.run(unchanged)

        assert report.deltas == []
        assert report.analysis_ids == []
        client.messages.create.assert_not_called()

    def test_nothing_survives_screening(self, repository, pipeline, client, trigger):
        repository.regulation_articles.pop("ra-1")

        report = pipeline.run(trigger)

        assert report.requests == []
        assert len(report.skipped) == 1
        client.messages.create.assert_not_called()

    def test_analysis_failure_is_not_persisted(self, pipeline, client, trigger, repository):
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text="no verdict")]
        )

        report = pipeline.run(trigger)

        assert report.analysis.failed == 1
        assert report.analysis_ids == []
        assert repository.analyses == {}

    def test_notifier_failure_is_counted(self, repository, config, client, trigger):
        pipeline = RevisionImpactPipeline(
            repository,
            AnthropicImpactAnalyzer(config, client=client),
            config,
            notifier=Mock(side_effect=RuntimeError("webhook down")),
        )

        report = pipeline.run(trigger)

        assert report.notification_failures == 1
        assert len(report.analysis_ids) == 1

    def test_cancel(self, pipeline, client, trigger):
        cancel = threading.Event()
        cancel.set()

        report = pipeline.run(trigger, cancel_event=cancel)

        assert report.analysis.cancelled
        assert report.analysis_ids == []
        client.messages.create.assert_not_called()

    def test_link_to_unknown_regulation_is_skipped(self, repository, pipeline, trigger):
        orphan = Link(
            statute_id="law-1",
            regulation_id="reg-missing",
            statute_article_id="law-1:5",
            confidence_score=0.9,
        )
        repository.links[orphan.key] = orphan

        report = pipeline.run(trigger)

        assert report.candidate_pairs == 2
        assert len(report.requests) == 1


class TestRequestOrdering:
    """Statute-wide links and priority ordering."""

    def test_highest_priority_first(self, repository, pipeline, trigger):
        repository.add_regulation(
            LocalRegulation(id="reg-2", name="전기자동차 충전시설 조례"),
            [
                RegulationArticle(
                    id="ra-9",
                    regulation_id="reg-2",
                    article_number="3",
                    content="법 제9조에 따른 전기자동차 충전구역의 설치 기준은 다음과 같다.",
                ),
            ],
        )
        statute_wide = Link(statute_id="law-1", regulation_id="reg-2", confidence_score=0.7)
        repository.links[statute_wide.key] = statute_wide

        report = pipeline.run(trigger)

        # the added article outranks the modified one
        assert [r.regulation_article.id for r in report.requests] == ["ra-9", "ra-1"]
        assert report.requests[0].old_article is None
        priorities = [r.priority for r in report.requests]
        assert priorities == sorted(priorities, reverse=True)
        assert len(report.analysis_ids) == 2

    def test_pairs_are_deduplicated(self, repository, pipeline, trigger):
        duplicate = Link(
            statute_id="law-1",
            regulation_id="reg-1",
            statute_article_id="law-1:5@r2",
            confidence_score=0.7,
        )
        repository.links[duplicate.key] = duplicate

        report = pipeline.run(trigger)

        assert report.candidate_pairs == 2
        assert len(report.requests) == 1


class TestPersistenceFailures:
    """A failed write does not lose the remaining results."""

    def test_remaining_results_are_stored_and_notified(self, repository, config, client, trigger):
        repository.add_regulation(
            LocalRegulation(id="reg-2", name="전기자동차 충전시설 조례"),
            [
                RegulationArticle(
                    id="ra-9",
                    regulation_id="reg-2",
                    article_number="3",
                    content="법 제9조에 따른 전기자동차 충전구역의 설치 기준은 다음과 같다.",
                ),
            ],
        )
        statute_wide = Link(statute_id="law-1", regulation_id="reg-2", confidence_score=0.7)
        repository.links[statute_wide.key] = statute_wide

        store = repository.create_impact_analysis
        calls = []

        def flaky_store(result):
            calls.append(result.regulation_article_id)
            if len(calls) == 1:
                raise ConnectionError("database unavailable")
            return store(result)

        repository.create_impact_analysis = flaky_store
        notifier = Mock()
        pipeline = RevisionImpactPipeline(
            repository, AnthropicImpactAnalyzer(config, client=client), config, notifier=notifier
        )

        report = pipeline.run(trigger)

        assert calls == ["ra-9", "ra-1"]
        assert report.persistence_failures == 1
        assert len(report.analysis_ids) == 1
        assert repository.analyses[report.analysis_ids[0]].regulation_article_id == "ra-1"
        notifier.assert_called_once()
        assert report.summary["persistence_failures"] == 1
