"""
Aggregator — merges the BranchResults of sibling branches and recursion levels.
"""

from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from deepsearch.core.deep_research.models import BranchResult, BudgetState, SourceMetadata

T = TypeVar("T")

# Stands in for a learning that arrived without a reliability; matches the extraction default
UNRATED_RELIABILITY = 0.5


def _unique(items: Iterable[T]) -> List[T]:
    """Deduplicate by equality, keeping first-seen order."""
    seen = set()
    unique = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        unique.append(item)
    return unique


def _merge_budgets(budgets: Sequence[Optional[BudgetState]]) -> Optional[BudgetState]:
    present = [b for b in budgets if b is not None]
    if not present:
        return None
    return BudgetState(
        limit=present[0].limit,
        used=sum(b.used for b in present),
        reached=any(b.reached for b in present),
    )


def merge(branch_results: Sequence[BranchResult]) -> BranchResult:
    """
    Merge branch results into one.

    - learnings / visited_urls / weighted_learnings: concatenated, deduplicated
      by value, first-seen order
    - learning_reliabilities: index-aligned with the surviving learnings; the first
      known reliability is kept, UNRATED_RELIABILITY if none was given
    - source_metadata: deduplicated by URL, the LAST-seen entry wins
    - budget: used is summed, reached if any branch reached it

    Pure; no failure modes.
    """
    reliabilities: Dict[str, Optional[float]] = {}
    for result in branch_results:
        for index, learning in enumerate(result.learnings):
            known = (
                result.learning_reliabilities[index]
                if index < len(result.learning_reliabilities)
                else None
            )
            if reliabilities.get(learning) is None:
                reliabilities[learning] = known
    learnings = list(reliabilities)

    by_url: Dict[str, SourceMetadata] = {}
    for result in branch_results:
        for meta in result.source_metadata:
            by_url[meta.url] = meta

    return BranchResult(
        learnings=learnings,
        learning_reliabilities=[
            UNRATED_RELIABILITY if reliabilities[l] is None else reliabilities[l] for l in learnings
        ],
        visited_urls=_unique(url for r in branch_results for url in r.visited_urls),
        source_metadata=list(by_url.values()),
        weighted_learnings=_unique(l for r in branch_results for l in r.weighted_learnings),
        budget=_merge_budgets([r.budget for r in branch_results]),
    )
