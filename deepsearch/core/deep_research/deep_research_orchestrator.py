"""
Deep Research Orchestrator — the recursive research tree driver.

Each node of the tree moves through:

    PLANNING → DISPATCHING → PROCESSING → RECURSING | TERMINAL → MERGED

Every planned query becomes one dispatch unit: search + result processing run
under a global ConcurrencyLimiter slot, the slot is released, then the unit
recurses with half the breadth while depth remains and the token budget holds.
A failing unit (search, processing, or anything in its subtree) turns into an
empty BranchResult; siblings continue.
"""

import asyncio
import inspect
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union
from loguru import logger

from deepsearch.models.config import ConfigurationError
from deepsearch.core.deep_research.aggregator import merge
from deepsearch.core.deep_research.concurrency import ConcurrencyLimiter
from deepsearch.core.deep_research.models import (
    BranchResult,
    BranchState,
    BudgetState,
    Learning,
    ResearchConfig,
    ResearchDirection,
    ResearchOptions,
    ResearchProgress,
    ResearchQuery,
    SourceMetadata,
)
from deepsearch.core.deep_research.research_planner import ResearchPlanner
from deepsearch.core.deep_research.result_processor import ResultProcessor
from deepsearch.core.deep_research.source_evaluator import SourceEvaluator

MIN_DEPTH, MAX_DEPTH = 1, 5
MIN_BREADTH, MAX_BREADTH = 1, 5

# Sync or async; the return value is ignored
ProgressCallback = Callable[[ResearchProgress], Union[None, Awaitable[None]]]


@dataclass
class _ResearchRun:
    """Per-call collaborators shared by every node of one research tree."""
    limiter: ConcurrencyLimiter
    planner: ResearchPlanner
    processor: ResultProcessor
    total_depth: int
    total_breadth: int
    token_budget: Optional[int] = None
    on_progress: Optional[ProgressCallback] = None
    # Tokens used by the whole tree so far; single event loop, so no lock
    tokens_used: int = 0

    def budget(self, used: int, reached: bool) -> Optional[BudgetState]:
        if self.token_budget is None:
            return None
        return BudgetState(limit=self.token_budget, used=used, reached=reached)

    def spend(self, tokens: int) -> bool:
        """Record tokens against the run and report whether the cap is now exceeded."""
        self.tokens_used += tokens
        return self.over_budget()

    def over_budget(self) -> bool:
        return self.token_budget is not None and self.tokens_used > self.token_budget


def _budget_used(result: BranchResult) -> int:
    return result.budget.used if result.budget else 0


class DeepResearchOrchestrator:
    """
    Runs recursive, reliability-weighted research over a search engine and an LLM router.

    Features:
    - One global concurrency limit for all search+processing units of a call
    - Geometric breadth decay: children get ceil(breadth / 2) queries
    - Per-query failure isolation
    - Optional soft token budget that stops further expansion once exceeded
    - Fire-and-forget progress notifications (sync or async callbacks)
    """

    def __init__(
        self,
        llm_router,
        web_search_engine,
        config: Optional[ResearchConfig] = None,
    ):
        if llm_router is None:
            raise ConfigurationError("Deep research needs an LLM router; no generation backend is configured")
        if web_search_engine is None:
            raise ConfigurationError("Deep research needs a web search engine; no search backend is configured")

        self.llm_router = llm_router
        self.web_search = web_search_engine
        self.config = config or ResearchConfig()

        # Keeps async progress notifications alive until they finish
        self._notifications: set = set()

    async def research(
        self,
        query: str,
        depth: int,
        breadth: int,
        options: Optional[ResearchOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BranchResult:
        """
        Research a question to the given depth and breadth.

        Args:
            query: The research question
            depth: Recursive levels, 1..5
            breadth: Queries planned at the top level, 1..5
            options: Token budget and source preferences
            on_progress: Observational callback, never allowed to fail the run

        Returns:
            The merged BranchResult of the whole tree. Failures never escape;
            a run where everything failed returns an empty result.
        """
        if not MIN_DEPTH <= depth <= MAX_DEPTH:
            raise ValueError(f"depth must be between {MIN_DEPTH} and {MAX_DEPTH}, got {depth}")
        if not MIN_BREADTH <= breadth <= MAX_BREADTH:
            raise ValueError(f"breadth must be between {MIN_BREADTH} and {MAX_BREADTH}, got {breadth}")

        options = options or ResearchOptions()
        evaluator = SourceEvaluator(self.llm_router, options.source_preferences)
        run = _ResearchRun(
            limiter=ConcurrencyLimiter(self.config.concurrency, name="research"),
            planner=ResearchPlanner(self.llm_router, self.config, options.source_preferences),
            processor=ResultProcessor(self.llm_router, evaluator, self.config),
            total_depth=depth,
            total_breadth=breadth,
            token_budget=options.token_budget,
            on_progress=on_progress,
        )

        logger.info(
            f"[DeepResearch] Starting research: depth={depth}, breadth={breadth}, "
            f"concurrency={self.config.concurrency}, token_budget={options.token_budget}"
        )

        try:
            result = await self._research_branch(query, depth, breadth, run)
        except Exception as e:
            logger.error(f"[DeepResearch] Research failed: {e}")
            return BranchResult.empty(run.budget(run.tokens_used, run.over_budget()))

        # Run-wide totals also count units that failed after spending tokens
        result = result.model_copy(update={"budget": run.budget(run.tokens_used, run.over_budget())})
        logger.info(
            f"[DeepResearch] Research complete: {len(result.learnings)} learnings, "
            f"{len(result.visited_urls)} URLs, {len(result.source_metadata)} sources"
            + (f", {result.budget.used}/{result.budget.limit} tokens" if result.budget else "")
        )
        return result

    async def _research_branch(
        self,
        query: str,
        depth: int,
        breadth: int,
        run: _ResearchRun,
        learnings: Sequence[str] = (),
        learning_reliabilities: Sequence[float] = (),
        visited_urls: Sequence[str] = (),
        source_metadata: Sequence[SourceMetadata] = (),
        weighted_learnings: Sequence[Learning] = (),
        directions: Sequence[ResearchDirection] = (),
        parent_query: Optional[str] = None,
    ) -> BranchResult:
        """
        One node of the tree. The accumulated sequences carry every ancestor's
        findings. Token usage is charged to the run as each call returns, so every
        node sees what the whole tree has spent.

        The returned budget counts only this subtree's usage, so sibling
        results can be summed by the aggregator.
        """
        progress = ResearchProgress(
            current_depth=depth,
            total_depth=run.total_depth,
            current_breadth=breadth,
            total_breadth=run.total_breadth,
            parent_query=parent_query,
        )

        self._transition(BranchState.PLANNING, depth, query)
        plan = await run.planner.plan(
            query,
            prior_learnings=weighted_learnings,
            prior_directions=directions,
            max_queries=breadth,
        )
        reached = run.spend(plan.token_usage)
        if reached:
            logger.info(
                f"[DeepResearch] Token budget reached while planning at depth {depth} "
                f"({run.tokens_used}/{run.token_budget}); finishing this level without recursing"
            )

        progress.total_queries = len(plan.queries)
        progress.current_query = plan.queries[0].text if plan.queries else None
        self._notify(run, progress)

        self._transition(BranchState.DISPATCHING, depth, f"{len(plan.queries)} queries")
        results = await asyncio.gather(*[
            self._run_query(
                q, depth, breadth, run, progress,
                learnings, learning_reliabilities, visited_urls,
                source_metadata, weighted_learnings,
            )
            for q in plan.queries
        ])

        merged = merge(results)
        self._transition(BranchState.MERGED, depth, f"{len(results)} branch results")

        used = plan.token_usage + sum(_budget_used(r) for r in results)
        return merged.model_copy(update={"budget": run.budget(used, run.over_budget())})

    async def _run_query(
        self,
        query: ResearchQuery,
        depth: int,
        breadth: int,
        run: _ResearchRun,
        progress: ResearchProgress,
        learnings: Sequence[str],
        learning_reliabilities: Sequence[float],
        visited_urls: Sequence[str],
        source_metadata: Sequence[SourceMetadata],
        weighted_learnings: Sequence[Learning],
    ) -> BranchResult:
        """Search, process and maybe recurse for one query; failures become an empty result."""
        try:
            async with run.limiter.acquire():
                progress.current_query = query.text
                self._notify(run, progress)

                limit = (
                    self.config.verification_result_limit
                    if query.is_verification
                    else self.config.exploratory_result_limit
                )
                response = await self.web_search.search(
                    query.text, limit=limit, timeout=self.config.search_timeout
                )
                new_urls = [doc.url for doc in response.documents if doc.url]
                logger.info(f"[DeepResearch] Ran '{query.text[:80]}', found {len(response.documents)} documents")

                self._transition(BranchState.PROCESSING, depth, query.text)
                processed = await run.processor.process(
                    query.text,
                    response.documents,
                    num_learnings=self.config.num_learnings,
                    num_follow_ups=math.ceil(breadth / 2),
                    reliability_threshold=query.reliability_threshold,
                    research_goal=query.research_goal,
                )

            all_learnings = [*learnings, *processed.learnings]
            all_reliabilities = [*learning_reliabilities, *processed.learning_confidences]
            all_urls = [*visited_urls, *new_urls]
            all_metadata = [*source_metadata, *processed.source_metadata]
            all_weighted = [*weighted_learnings, *processed.weighted_learnings]

            progress.completed_queries += 1
            progress.learnings_count = len(processed.learnings)
            progress.learnings = list(processed.learnings)
            progress.follow_up_questions = list(processed.follow_up_questions)
            self._notify(run, progress)

            reached = run.spend(processed.token_usage)
            new_depth = depth - 1

            if new_depth > 0 and not reached:
                new_breadth = math.ceil(breadth / 2)
                self._transition(
                    BranchState.RECURSING, depth,
                    f"depth={new_depth}, breadth={new_breadth}",
                )
                child = await self._research_branch(
                    self._child_query(query, processed.follow_up_questions),
                    new_depth,
                    new_breadth,
                    run,
                    learnings=all_learnings,
                    learning_reliabilities=all_reliabilities,
                    visited_urls=all_urls,
                    source_metadata=all_metadata,
                    weighted_learnings=all_weighted,
                    directions=[
                        ResearchDirection(question=q, priority=p, parent_goal=query.research_goal or None)
                        for q, p in zip(processed.follow_up_questions, processed.follow_up_priorities)
                    ],
                    parent_query=query.text,
                )
                return child.model_copy(update={"budget": run.budget(
                    processed.token_usage + _budget_used(child),
                    run.over_budget(),
                )})

            if reached and new_depth > 0:
                logger.info(
                    f"[DeepResearch] Token budget reached ({run.tokens_used}/{run.token_budget}); "
                    f"not expanding '{query.text[:60]}'"
                )
            self._transition(BranchState.TERMINAL, depth, query.text)
            return BranchResult(
                learnings=all_learnings,
                learning_reliabilities=all_reliabilities,
                visited_urls=all_urls,
                source_metadata=all_metadata,
                weighted_learnings=all_weighted,
                budget=run.budget(processed.token_usage, reached),
            )

        except asyncio.TimeoutError:
            logger.warning(f"[DeepResearch] Timed out on '{query.text[:80]}'")
        except Exception as e:
            logger.warning(f"[DeepResearch] Error running '{query.text[:80]}': {e}")
        return BranchResult.empty(run.budget(used=0, reached=run.over_budget()))

    @staticmethod
    def _child_query(query: ResearchQuery, follow_ups: List[str]) -> str:
        directions = "".join(f"\n{q}" for q in follow_ups)
        return f"Previous research goal: {query.research_goal}\nFollow-up research directions: {directions}".strip()

    @staticmethod
    def _transition(state: BranchState, depth: int, detail: str = ""):
        logger.debug(f"[DeepResearch] depth={depth} → {state.value}" + (f": {detail[:80]}" if detail else ""))

    def _notify(self, run: _ResearchRun, progress: ResearchProgress):
        """Send a progress snapshot. Errors are logged and dropped; async callbacks are not awaited."""
        if run.on_progress is None:
            return
        snapshot = progress.model_copy(deep=True)
        try:
            outcome = run.on_progress(snapshot)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._notifications.add(task)
                task.add_done_callback(self._notification_done)
        except Exception as e:
            logger.warning(f"[DeepResearch] Progress callback error: {e}")

    def _notification_done(self, task: asyncio.Future):
        self._notifications.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[DeepResearch] Progress callback error: {task.exception()}")
