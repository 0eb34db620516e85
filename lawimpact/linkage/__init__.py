"""Regulation -> statute article linkage and related-article lookup."""
from .builder import LinkageBuilder, LinkageReport, RegulationLinkResult
from .related import find_related_articles

__all__ = ["LinkageBuilder", "LinkageReport", "RegulationLinkResult", "find_related_articles"]
