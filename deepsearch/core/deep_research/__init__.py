"""
Deep Research Module — recursive, reliability-weighted web research.
Plans queries, scores sources, extracts learnings and recurses into
narrower follow-up questions under one global concurrency limit.
"""

from deepsearch.core.deep_research.deep_research_orchestrator import DeepResearchOrchestrator
from deepsearch.core.deep_research.report_writer import ReportWriter, format_sources_section

__all__ = ["DeepResearchOrchestrator", "ReportWriter", "format_sources_section"]
