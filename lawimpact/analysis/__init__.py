"""
Revision analysis for the impact engine.

- revision_diff: article-level change detection between two revisions
- heuristics: cheap keyword/reference pre-filter and analysis priority
- impact_analyzer: generative-model impact verdicts (Anthropic, OpenAI, Gemini)
"""

from .revision_diff import diff_articles, summarize_deltas, text_similarity
from .heuristics import HeuristicDecision, HeuristicFilter, analysis_priority
from .impact_analyzer import (
    AnthropicImpactAnalyzer,
    BatchAnalysisReport,
    BatchItem,
    GeminiImpactAnalyzer,
    ImpactAnalyzer,
    OpenAIImpactAnalyzer,
    create_impact_analyzer,
    parse_impact_response,
)

__all__ = [
    # Change detection
    "diff_articles",
    "summarize_deltas",
    "text_similarity",
    # Pre-filter
    "HeuristicDecision",
    "HeuristicFilter",
    "analysis_priority",
    # Generative analysis
    "AnthropicImpactAnalyzer",
    "BatchAnalysisReport",
    "BatchItem",
    "GeminiImpactAnalyzer",
    "ImpactAnalyzer",
    "OpenAIImpactAnalyzer",
    "create_impact_analyzer",
    "parse_impact_response",
]
