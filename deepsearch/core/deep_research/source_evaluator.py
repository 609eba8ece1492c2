"""
Source Evaluator — scores how trustworthy a domain is for a research topic.
"""

from typing import Optional
from loguru import logger

from deepsearch.core.deep_research.models import ReliabilityVerdict, SourceAssessment, clamp
from deepsearch.core.deep_research.prompts import system_prompt


class SourceEvaluator:
    """
    Asks the LLM for a reliability score of one domain in a topic context.

    Stateless: nothing is cached between calls. Collaborator failures
    propagate; callers decide how to isolate them.
    """

    def __init__(self, llm_router, source_preferences: Optional[str] = None):
        self.llm = llm_router
        self.source_preferences = source_preferences

    async def evaluate(self, domain: str, topic_context: str) -> SourceAssessment:
        """Score a domain; returns the assessment (score clamped into [0, 1])."""
        assessment, _ = await self.evaluate_with_usage(domain, topic_context)
        return assessment

    async def evaluate_with_usage(self, domain: str, topic_context: str):
        """Like `evaluate`, also returning the total tokens the call consumed."""
        preferences = ""
        if self.source_preferences:
            preferences = f"""
The user has these preferences about sources to avoid: "{self.source_preferences}"
If this domain matches them, score it lower and say so in the reasoning.
"""

        prompt = f"""Evaluate the reliability of the following source domain for research about: "{topic_context}"

Domain: {domain}

Consider factors like:
1. Editorial standards and fact-checking processes
2. Domain expertise in the subject matter
3. Reputation for accuracy and objectivity
4. Transparency about sources and methodology
5. Professional vs user-generated content
6. Commercial biases or conflicts of interest
7. Academic or professional credentials
8. Track record in the field
{preferences}
Return a reliability score between 0 and 1, where:
- 0.9-1.0: Highest reliability (e.g. peer-reviewed journals, primary sources)
- 0.7-0.89: Very reliable (e.g. respected news organizations)
- 0.5-0.69: Moderately reliable (e.g. industry blogs with editorial oversight)
- 0.3-0.49: Limited reliability (e.g. personal blogs, commercial sites)
- 0-0.29: Low reliability (e.g. known misinformation sources)"""

        result = await self.llm.generate(system_prompt(), prompt, ReliabilityVerdict)
        verdict: ReliabilityVerdict = result.object

        assessment = SourceAssessment(
            domain=domain,
            score=clamp(verdict.score),
            reasoning=verdict.reasoning,
        )
        logger.debug(f"[SourceEvaluator] {domain}: {assessment.score:.2f}")
        return assessment, result.usage.total_tokens
