"""
Deep Research Models — Pydantic models for the recursive research engine.

Value objects that cross branch boundaries (queries, assessments, learnings,
directions, source metadata) are frozen.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a model-reported number into [low, high]."""
    return max(low, min(high, float(value)))


# ═══════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════

class BranchState(str, Enum):
    """States a research node moves through"""
    PLANNING = "planning"
    DISPATCHING = "dispatching"
    PROCESSING = "processing"
    RECURSING = "recursing"
    TERMINAL = "terminal"
    MERGED = "merged"


# ═══════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════

class ResearchConfig(BaseModel):
    """Engine tuning parameters"""
    concurrency: int = Field(default=2, ge=1, le=32, description="Search+processing units in flight across the whole tree")
    search_timeout: float = Field(default=15.0, gt=0, description="Timeout per search call (seconds)")
    synthesis_timeout: float = Field(default=60.0, gt=0, description="Timeout for the learning synthesis call (seconds)")
    exploratory_result_limit: int = Field(default=5, ge=1, le=20)
    verification_result_limit: int = Field(default=8, ge=1, le=20)
    num_learnings: int = Field(default=3, ge=1, le=20, description="Max learnings per search result set")
    max_content_tokens: int = Field(default=25_000, ge=500, description="Per-document trim budget")
    report_context_tokens: int = Field(default=150_000, ge=1000, description="Trim budget for the learnings block of the report")
    query_similarity_threshold: float = Field(default=0.9, ge=0.0, le=1.0, description="Planned queries at least this similar to an earlier one are dropped")
    default_follow_up_priority: int = Field(default=3, ge=1, le=5)


class ResearchOptions(BaseModel):
    """Per-call options of the public research entry point"""
    token_budget: Optional[int] = Field(default=None, ge=1, description="Soft cap on research-phase tokens; report excluded")
    source_preferences: Optional[str] = Field(default=None, description="Natural-language description of sources to avoid")


# ═══════════════════════════════════════════════════
# Research Domain
# ═══════════════════════════════════════════════════

class ResearchQuery(BaseModel):
    """A search query planned for one tree level"""
    model_config = ConfigDict(frozen=True)

    text: str
    research_goal: str = ""
    reliability_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    is_verification: bool = False
    related_direction: Optional[str] = None


class SourceAssessment(BaseModel):
    """Trustworthiness of a domain for a topic"""
    model_config = ConfigDict(frozen=True)

    domain: str
    score: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class SourceMetadata(BaseModel):
    """One retrieved document and the reliability of its source"""
    model_config = ConfigDict(frozen=True)

    url: str
    domain: str
    title: Optional[str] = None
    reliability_score: float = Field(ge=0.0, le=1.0)
    reliability_reasoning: str = ""


class Learning(BaseModel):
    """A synthesized claim with the synthesizer's confidence in it"""
    model_config = ConfigDict(frozen=True)

    content: str
    reliability: float = Field(ge=0.0, le=1.0)


class ResearchDirection(BaseModel):
    """A prioritized follow-up question handed to the next level's planner"""
    model_config = ConfigDict(frozen=True)

    question: str
    priority: int = Field(default=3, ge=1, le=5)
    parent_goal: Optional[str] = None


class ResearchProgress(BaseModel):
    """Observational progress snapshot sent to the progress sink"""
    current_depth: int
    total_depth: int
    current_breadth: int
    total_breadth: int
    completed_queries: int = 0
    total_queries: int = 0
    current_query: Optional[str] = None
    parent_query: Optional[str] = None
    learnings_count: Optional[int] = None
    learnings: Optional[List[str]] = None
    follow_up_questions: Optional[List[str]] = None


class BudgetState(BaseModel):
    """Token budget bookkeeping carried in a BranchResult"""
    model_config = ConfigDict(frozen=True)

    limit: int
    used: int = 0
    reached: bool = False


class BranchResult(BaseModel):
    """What every recursive call returns and the aggregator merges"""
    model_config = ConfigDict(frozen=True)

    learnings: List[str] = Field(default_factory=list)
    learning_reliabilities: List[float] = Field(default_factory=list)
    visited_urls: List[str] = Field(default_factory=list)
    source_metadata: List[SourceMetadata] = Field(default_factory=list)
    weighted_learnings: List[Learning] = Field(default_factory=list)
    budget: Optional[BudgetState] = None

    @classmethod
    def empty(cls, budget: Optional[BudgetState] = None) -> "BranchResult":
        return cls(budget=budget)


class QueryPlan(BaseModel):
    """Planner output for one tree level"""
    queries: List[ResearchQuery] = Field(default_factory=list)
    token_usage: int = 0


class ProcessedResult(BaseModel):
    """Result processor output for one search"""
    learnings: List[str] = Field(default_factory=list)
    learning_confidences: List[float] = Field(default_factory=list)
    follow_up_questions: List[str] = Field(default_factory=list)
    follow_up_priorities: List[int] = Field(default_factory=list)
    source_metadata: List[SourceMetadata] = Field(default_factory=list)
    weighted_learnings: List[Learning] = Field(default_factory=list)
    token_usage: int = 0


# ═══════════════════════════════════════════════════
# Structured generation schemas (raw model output)
# ═══════════════════════════════════════════════════

class SerpQueryDraft(BaseModel):
    query: str = Field(description="The SERP query")
    research_goal: str = Field(
        default="",
        description="First talk about the goal of the research that this query is meant to accomplish, "
                    "then go deeper into how to advance the research once the results are found, "
                    "mention additional research directions. Be as specific as possible.",
    )
    reliability_threshold: float = Field(
        default=0.3,
        description="Minimum reliability score (between 0 and 1) needed for sources to be considered "
                    "trustworthy for this query. Higher values (e.g. 0.7+) for verification queries, "
                    "lower values (e.g. 0.3) for exploratory queries.",
    )
    is_verification_query: bool = Field(
        default=False,
        description="Whether this query is specifically trying to verify information from less reliable sources",
    )
    related_direction: Optional[str] = Field(
        default=None,
        description="If this query addresses a specific research direction from the input, specify which one. "
                    "Null if not applicable.",
    )


class SerpQueryList(BaseModel):
    queries: List[SerpQueryDraft] = Field(default_factory=list)


class ReliabilityVerdict(BaseModel):
    score: float = Field(description="Reliability score between 0 and 1")
    reasoning: str = Field(default="", description="Brief explanation of the reliability assessment, one or two sentences")
    domain_expertise: str = Field(default="", description="Assessment of domain expertise in this specific topic")


class LearningDraft(BaseModel):
    content: str
    confidence: float = Field(default=0.5, description="Confidence in this learning based on source reliability (between 0 and 1)")
    sources: List[str] = Field(default_factory=list, description="List of source domains that support this learning")


class FollowUpDraft(BaseModel):
    question: str
    priority: Optional[float] = Field(default=None, description="Priority of this question (1-5) based on current source reliability gaps")
    reason: str = Field(default="", description="Why this follow-up is needed, especially regarding source reliability")


class SourceQuality(BaseModel):
    most_reliable_sources: List[str] = Field(default_factory=list)
    content_gaps: List[str] = Field(default_factory=list)
    reliability_analysis: str = ""


class LearningExtraction(BaseModel):
    learnings: List[LearningDraft] = Field(default_factory=list)
    follow_up_questions: List[FollowUpDraft] = Field(default_factory=list)
    source_quality: Optional[SourceQuality] = None


class FinalReport(BaseModel):
    report_markdown: str = Field(description="Final report on the topic in Markdown")
