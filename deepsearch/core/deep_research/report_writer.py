"""
Report Writer — final Markdown report over the merged research results.

Token usage here is outside the research token budget.
"""

from typing import Dict, List, Optional, Sequence
from loguru import logger

from deepsearch.core.deep_research.models import FinalReport, ResearchConfig, SourceMetadata
from deepsearch.core.deep_research.prompts import system_prompt
from deepsearch.core.llm.text_utils import trim_prompt

HIGH_RELIABILITY = 0.8
MEDIUM_RELIABILITY = 0.5


def group_by_reliability(source_metadata: Sequence[SourceMetadata]) -> Dict[str, List[SourceMetadata]]:
    """Split sources into high (>= 0.8), medium (0.5-0.8) and low (< 0.5) reliability."""
    groups: Dict[str, List[SourceMetadata]] = {"high": [], "medium": [], "low": []}
    for meta in source_metadata:
        if meta.reliability_score >= HIGH_RELIABILITY:
            groups["high"].append(meta)
        elif meta.reliability_score >= MEDIUM_RELIABILITY:
            groups["medium"].append(meta)
        else:
            groups["low"].append(meta)
    return groups


def format_sources_section(source_metadata: Sequence[SourceMetadata]) -> str:
    """Markdown appendix listing sources, most reliable first."""
    if not source_metadata:
        return ""

    ranked = sorted(source_metadata, key=lambda m: m.reliability_score, reverse=True)
    lines = ["## Sources", ""]
    for meta in ranked:
        label = meta.title or meta.url
        line = f"- [{label}]({meta.url}) — reliability {meta.reliability_score:.2f}"
        if meta.reliability_reasoning:
            line += f": {meta.reliability_reasoning}"
        lines.append(line)
    return "\n".join(lines)


class ReportWriter:
    """Writes the final report from learnings and scored sources."""

    def __init__(self, llm_router, config: Optional[ResearchConfig] = None):
        self.llm = llm_router
        self.config = config or ResearchConfig()

    async def write(
        self,
        prompt: str,
        learnings: Sequence[str],
        source_metadata: Sequence[SourceMetadata] = (),
    ) -> str:
        learnings_block = trim_prompt(
            "\n".join(f"<learning>\n{l}\n</learning>" for l in learnings),
            self.config.report_context_tokens,
        )

        groups = group_by_reliability(source_metadata)
        reliability = ""
        if source_metadata:
            reliability = (
                f"\n\nSources consulted: {len(groups['high'])} highly reliable (>= {HIGH_RELIABILITY}), "
                f"{len(groups['medium'])} moderately reliable, {len(groups['low'])} of limited reliability "
                f"(< {MEDIUM_RELIABILITY}). Highly reliable domains: "
                + (", ".join(sorted({m.domain for m in groups["high"]})) or "none")
            )

        report_prompt = f"""Given the following prompt from the user, write a final report on the topic using the learnings from research. Make it as detailed as possible, aim for 3 or more pages, include ALL the learnings from research. Consider source reliability when drawing conclusions.{reliability}

<prompt>{prompt}</prompt>

Here are all the learnings from previous research:

<learnings>
{learnings_block}
</learnings>"""

        result = await self.llm.generate(system_prompt(), report_prompt, FinalReport)
        report: FinalReport = result.object
        logger.info(
            f"[ReportWriter] Wrote report from {len(learnings)} learnings and "
            f"{len(source_metadata)} sources ({result.usage.total_tokens} tokens)"
        )
        return report.report_markdown
