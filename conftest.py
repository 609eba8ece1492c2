"""Shared fakes for the research engine tests: a scripted generator and search engine."""
import asyncio
import re
from typing import Callable, Dict, List, Optional

import pytest

from deepsearch.core.llm.llm_router import GenerationResult, TokenUsage
from deepsearch.core.web_search.providers.base_provider import (
    SearchDocument,
    SearchProviderError,
    SearchResponse,
)
from deepsearch.core.deep_research.models import (
    LearningExtraction,
    ReliabilityVerdict,
    SerpQueryList,
)

# Mutually dissimilar query texts, so the near-duplicate filter keeps them all
TOPICS = [
    "solar panel efficiency records",
    "lithium battery recycling economics",
    "offshore wind turbine maintenance",
    "green hydrogen electrolyser costs",
    "tokamak fusion reactor milestones",
    "direct air carbon capture pricing",
    "geothermal drilling depth limits",
    "smart grid demand response",
]


def _between(prompt: str, tag: str) -> str:
    match = re.search(rf"<{tag}>(.*?)</{tag}>", prompt, re.S)
    return match.group(1).strip() if match else ""


class FakeGenerator:
    """
    Stands in for LLMRouter. Replies are produced per output schema by a
    handler taking the user prompt; a handler may return a dict, a model
    instance, or an exception to raise.
    """

    def __init__(self, usage: int = 10):
        self.usage = usage
        self.calls: List[tuple] = []
        self.handlers: Dict[type, Callable[[str], object]] = {
            SerpQueryList: self.plan_topics,
            ReliabilityVerdict: self.score_by_domain,
            LearningExtraction: self.learn_from_query,
        }
        self.domain_scores: Dict[str, float] = {}

    def on(self, schema: type, handler: Callable[[str], object]) -> "FakeGenerator":
        self.handlers[schema] = handler
        return self

    def with_model(self, spec):
        return self

    def get_statistics(self) -> dict:
        return {"fake": {"total_requests": len(self.calls)}}

    def calls_for(self, schema: type) -> List[str]:
        return [prompt for s, prompt in self.calls if s is schema]

    async def generate(self, system_prompt, prompt, schema, timeout=None, max_tokens=None):
        self.calls.append((schema, prompt))
        await asyncio.sleep(0)
        value = self.handlers[schema](prompt)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, dict):
            value = schema.model_validate(value)
        return GenerationResult(object=value, usage=TokenUsage(total_tokens=self.usage))

    # Default handlers

    @staticmethod
    def plan_topics(prompt: str) -> dict:
        limit = int(re.search(r"Return a maximum of (\d+) queries", prompt).group(1))
        return {"queries": [
            {"query": t, "research_goal": f"understand {t}", "reliability_threshold": 0.3}
            for t in TOPICS[:limit]
        ]}

    def score_by_domain(self, prompt: str) -> dict:
        domain = re.search(r"Domain: (\S+)", prompt).group(1)
        return {"score": self.domain_scores.get(domain, 0.9), "reasoning": f"scored {domain}"}

    @staticmethod
    def learn_from_query(prompt: str) -> dict:
        query = _between(prompt, "query")
        return {
            "learnings": [{"content": f"learned about {query}", "confidence": 0.75}],
            "follow_up_questions": [{"question": f"what next for {query}?", "priority": 4}],
        }


class FakeSearchEngine:
    """Stands in for WebSearchEngine; tracks calls and peak concurrency."""

    def __init__(
        self,
        documents: Optional[Callable[[str], List[SearchDocument]]] = None,
        fail_when: Optional[Callable[[str], Optional[BaseException]]] = None,
        delay: float = 0.0,
    ):
        self.documents = documents or self.one_document
        self.fail_when = fail_when
        self.delay = delay
        self.calls: List[tuple] = []
        self.active = 0
        self.peak = 0

    async def search(self, query: str, limit: int = 5, timeout: Optional[float] = None) -> SearchResponse:
        self.calls.append((query, limit))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_when is not None:
                error = self.fail_when(query)
                if error is not None:
                    raise error
            return SearchResponse(query=query, documents=self.documents(query), provider="fake")
        finally:
            self.active -= 1

    @staticmethod
    def one_document(query: str) -> List[SearchDocument]:
        slug = re.sub(r"\W+", "-", query.lower()).strip("-")[:60]
        return [SearchDocument(url=f"https://example.org/{slug}", title=query, markdown=f"Facts about {query}.")]

    @staticmethod
    def no_documents(query: str) -> List[SearchDocument]:
        return []


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def search_engine() -> FakeSearchEngine:
    return FakeSearchEngine()


@pytest.fixture
def provider_error():
    return SearchProviderError("fake", "search backend unavailable")
