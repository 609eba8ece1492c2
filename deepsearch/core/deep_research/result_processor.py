"""
Result Processor — turns the documents of one search into weighted learnings
and prioritized follow-up questions.

Pipeline per search:
1. Score each document's domain with the Source Evaluator (failures drop the document)
2. Sort by reliability (highest first), then keep those at or above the query's threshold
3. One synthesis call over the surviving, reliability-annotated content
4. Hard-truncate learnings / follow-ups to the requested counts
"""

import asyncio
import html
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse
from loguru import logger

from deepsearch.core.deep_research.models import (
    Learning,
    LearningExtraction,
    ProcessedResult,
    ResearchConfig,
    SourceMetadata,
    clamp,
)
from deepsearch.core.deep_research.prompts import system_prompt
from deepsearch.core.deep_research.source_evaluator import SourceEvaluator
from deepsearch.core.llm.text_utils import trim_prompt
from deepsearch.core.web_search.providers.base_provider import SearchDocument


def resolve_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of an absolute http(s) URL, or None when it cannot be resolved."""
    if not url:
        return None
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return parsed.hostname


class ResultProcessor:
    """Filters and ranks fetched documents by reliability and extracts learnings."""

    def __init__(self, llm_router, evaluator: SourceEvaluator, config: Optional[ResearchConfig] = None):
        self.llm = llm_router
        self.evaluator = evaluator
        self.config = config or ResearchConfig()

    async def process(
        self,
        query: str,
        documents: Sequence[SearchDocument],
        num_learnings: int = 3,
        num_follow_ups: int = 3,
        reliability_threshold: float = 0.3,
        research_goal: str = "",
    ) -> ProcessedResult:
        """
        Extract learnings and follow-up questions from one search's documents.

        Synthesis failures and timeouts propagate to the caller.
        """
        scored, tokens = await self._score_documents(query, documents)
        source_metadata = [meta for _, meta in scored]

        ranked = sorted(scored, key=lambda item: item[1].reliability_score, reverse=True)
        admitted = [
            (doc, meta) for doc, meta in ranked
            if meta.reliability_score >= reliability_threshold and doc.markdown
        ]

        logger.info(
            f"[ResultProcessor] '{query[:60]}': {len(documents)} documents, {len(scored)} scored, "
            f"{len(admitted)} at or above reliability {reliability_threshold:.2f}"
        )

        if not admitted:
            return ProcessedResult(source_metadata=source_metadata, token_usage=tokens)

        extraction, synthesis_tokens = await self._synthesize(
            query, admitted, num_learnings, num_follow_ups, research_goal
        )
        tokens += synthesis_tokens

        weighted = [
            Learning(content=draft.content.strip(), reliability=clamp(draft.confidence))
            for draft in extraction.learnings
            if draft.content and draft.content.strip()
        ][:num_learnings]
        follow_ups = [f for f in extraction.follow_up_questions if f.question and f.question.strip()][:num_follow_ups]

        return ProcessedResult(
            learnings=[l.content for l in weighted],
            learning_confidences=[l.reliability for l in weighted],
            follow_up_questions=[f.question.strip() for f in follow_ups],
            follow_up_priorities=[self._priority(f.priority) for f in follow_ups],
            source_metadata=source_metadata,
            weighted_learnings=weighted,
            token_usage=tokens,
        )

    async def _score_documents(
        self,
        query: str,
        documents: Sequence[SearchDocument],
    ) -> Tuple[List[Tuple[SearchDocument, SourceMetadata]], int]:
        candidates = [(doc, resolve_domain(doc.url)) for doc in documents]
        candidates = [(doc, domain) for doc, domain in candidates if domain]

        outcomes = await asyncio.gather(
            *[self.evaluator.evaluate_with_usage(domain, query) for _, domain in candidates],
            return_exceptions=True,
        )

        scored = []
        tokens = 0
        for (doc, domain), outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.debug(f"[ResultProcessor] Dropping {doc.url}: source evaluation failed: {outcome}")
                continue
            assessment, used = outcome
            tokens += used
            scored.append((doc, SourceMetadata(
                url=doc.url,
                domain=domain,
                title=doc.title or None,
                reliability_score=assessment.score,
                reliability_reasoning=assessment.reasoning,
            )))
        return scored, tokens

    async def _synthesize(
        self,
        query: str,
        admitted: List[Tuple[SearchDocument, SourceMetadata]],
        num_learnings: int,
        num_follow_ups: int,
        research_goal: str,
    ) -> Tuple[LearningExtraction, int]:
        contents = "\n".join(
            f'<content reliability="{meta.reliability_score:.2f}" reasoning="{html.escape(meta.reliability_reasoning, quote=True)}" source="{meta.domain}">\n'
            f"{trim_prompt(doc.markdown, self.config.max_content_tokens)}\n</content>"
            for doc, meta in admitted
        )

        goal = ""
        if research_goal:
            goal = (
                f"Research Goal: {research_goal}\n"
                f"This research is specifically aimed at: {research_goal}. "
                f"Focus on findings that contribute to this goal.\n\n"
            )

        prompt = f"""Given the following contents from a SERP search for the query <query>{query}</query>, generate a list of learnings from the contents. Return a maximum of {num_learnings} learnings, but feel free to return less if the contents are clear. Make sure each learning is unique and not similar to each other. The learnings should be concise and to the point, as detailed and information dense as possible. Make sure to include any entities like people, places, companies, products, things, etc in the learnings, as well as any exact metrics, numbers, or dates.

{goal}Contents are ordered from most to least reliable source. Weight information by source reliability: be more confident in information from highly reliable sources and more cautious about information from less reliable sources. If possible, verify information from less reliable sources against more reliable ones.

Also generate up to {num_follow_ups} follow-up questions, each with a priority from 1 (low) to 5 (high) based on reliability gaps and research needs{', keeping in mind the research goal' if research_goal else ''}.

<contents>{contents}</contents>"""

        result = await self.llm.generate(
            system_prompt(),
            prompt,
            LearningExtraction,
            timeout=self.config.synthesis_timeout,
        )
        return result.object, result.usage.total_tokens

    def _priority(self, value: Optional[float]) -> int:
        if value is None:
            return self.config.default_follow_up_priority
        return int(round(clamp(value, 1, 5)))
