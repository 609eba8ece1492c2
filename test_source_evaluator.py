import pytest

from deepsearch.core.deep_research.models import ReliabilityVerdict
from deepsearch.core.deep_research.source_evaluator import SourceEvaluator


async def test_score_is_clamped_and_usage_reported(generator):
    generator.on(ReliabilityVerdict, lambda prompt: {"score": 1.3, "reasoning": "primary source"})

    assessment, tokens = await SourceEvaluator(generator).evaluate_with_usage("who.int", "measles outbreaks")

    assert assessment.domain == "who.int"
    assert assessment.score == 1.0
    assert assessment.reasoning == "primary source"
    assert tokens == generator.usage


async def test_prompt_carries_topic_and_preferences(generator):
    evaluator = SourceEvaluator(generator, source_preferences="content farms")

    assessment = await evaluator.evaluate("listicles.example", "sleep research")

    prompt = generator.calls_for(ReliabilityVerdict)[0]
    assert 'research about: "sleep research"' in prompt
    assert "Domain: listicles.example" in prompt
    assert '"content farms"' in prompt
    assert 0.0 <= assessment.score <= 1.0


async def test_generation_failure_propagates(generator):
    generator.on(ReliabilityVerdict, lambda prompt: RuntimeError("no provider"))

    with pytest.raises(RuntimeError):
        await SourceEvaluator(generator).evaluate("a.org", "topic")
