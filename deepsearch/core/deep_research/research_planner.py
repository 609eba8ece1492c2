"""
Query Planner — Uses the LLM to turn a topic, prior learnings and prioritized
research directions into the next round of search queries.
"""

from difflib import SequenceMatcher
from typing import List, Optional, Sequence
from loguru import logger

from deepsearch.core.deep_research.models import (
    Learning,
    QueryPlan,
    ResearchConfig,
    ResearchDirection,
    ResearchQuery,
    SerpQueryList,
    clamp,
)
from deepsearch.core.deep_research.prompts import system_prompt

# Learnings at or above this reliability are followed up rather than verified
CONFIDENT_RELIABILITY = 0.7


class ResearchPlanner:
    """
    Plans search queries for one level of the research tree.

    The planner:
    1. Shows prior learnings with their reliability so the model follows up
       on reliable leads and emits verification queries for weak ones
    2. Lists research directions highest priority first
    3. Clamps every reliability threshold into [0, 1]
    4. Drops near-duplicate queries and never returns more than asked for
    """

    def __init__(self, llm_router, config: Optional[ResearchConfig] = None, source_preferences: Optional[str] = None):
        self.llm = llm_router
        self.config = config or ResearchConfig()
        self.source_preferences = source_preferences

    async def plan(
        self,
        topic: str,
        prior_learnings: Sequence[Learning] = (),
        prior_directions: Sequence[ResearchDirection] = (),
        max_queries: int = 3,
    ) -> QueryPlan:
        """
        Generate at most `max_queries` distinct search queries.

        Args:
            topic: The research prompt for this level
            prior_learnings: Learnings gathered so far, with reliability
            prior_directions: Follow-up directions from the parent level
            max_queries: Upper bound on returned queries (the breadth)

        Returns:
            QueryPlan with the queries and the tokens spent planning
        """
        if max_queries < 1:
            return QueryPlan()

        prompt = self._build_prompt(topic, prior_learnings, prior_directions, max_queries)
        result = await self.llm.generate(system_prompt(), prompt, SerpQueryList)
        drafts = result.object.queries

        queries = [
            ResearchQuery(
                text=draft.query.strip(),
                research_goal=draft.research_goal,
                reliability_threshold=clamp(draft.reliability_threshold),
                is_verification=draft.is_verification_query,
                related_direction=draft.related_direction or None,
            )
            for draft in drafts
            if draft.query and draft.query.strip()
        ]
        queries = self._drop_similar(queries)[:max_queries]

        verification = [q for q in queries if q.is_verification]
        if verification:
            logger.info(
                f"[ResearchPlanner] Generated {len(verification)} verification queries "
                f"to check information from less reliable sources"
            )
        with_directions = [q for q in queries if q.related_direction]
        if with_directions:
            logger.info(
                "[ResearchPlanner] Queries addressing research directions:\n"
                + "\n".join(f'- "{q.text}" addresses: {q.related_direction}' for q in with_directions)
            )

        logger.info(f"[ResearchPlanner] Planned {len(queries)}/{max_queries} queries for: {topic[:80]}")
        return QueryPlan(queries=queries, token_usage=result.usage.total_tokens)

    def _build_prompt(
        self,
        topic: str,
        prior_learnings: Sequence[Learning],
        prior_directions: Sequence[ResearchDirection],
        max_queries: int,
    ) -> str:
        sections = [
            f"Given the following prompt from the user, generate a list of SERP queries to research the topic. "
            f"Return a maximum of {max_queries} queries, but feel free to return less if the original prompt is clear. "
            f"Make sure each query is unique and covers a distinct topic, not a paraphrase of another query."
        ]

        if prior_learnings:
            lines = "\n".join(f"[Reliability: {l.reliability:.2f}] {l.content}" for l in prior_learnings)
            sections.append(f"""Here are previous learnings with their reliability scores (higher score means more reliable):
{lines}

When generating new queries:
- Follow up on promising leads from reliable sources (reliability >= {CONFIDENT_RELIABILITY})
- For less reliable information (reliability < {CONFIDENT_RELIABILITY}), generate verification queries that are likely to find authoritative sources; mark them as verification queries and give them a higher reliability threshold
- Make each query specific and targeted to advance the research in a clear direction""")

        if prior_directions:
            ordered = sorted(prior_directions, key=lambda d: d.priority, reverse=True)
            lines = "\n".join(
                f"[Priority: {d.priority}] {d.question}"
                + (f"\n  (From previous goal: {d.parent_goal})" if d.parent_goal else "")
                for d in ordered
            )
            sections.append(f"""Prioritized research directions to explore (higher priority = more important):
{lines}

Focus on generating queries that address these research directions, especially the higher priority ones.""")

        if self.source_preferences:
            sections.append(f"Avoid queries likely to surface these kinds of sources: {self.source_preferences}")

        sections.append(f"<prompt>{topic}</prompt>")
        return "\n\n".join(sections)

    def _drop_similar(self, queries: List[ResearchQuery]) -> List[ResearchQuery]:
        """Keep the first of any group of near-identical query texts."""
        threshold = self.config.query_similarity_threshold
        kept: List[ResearchQuery] = []
        for query in queries:
            text = query.text.lower()
            if any(SequenceMatcher(None, text, k.text.lower()).ratio() >= threshold for k in kept):
                logger.debug(f"[ResearchPlanner] Dropped near-duplicate query: {query.text}")
                continue
            kept.append(query)
        return kept
