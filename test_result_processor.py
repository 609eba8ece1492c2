import pytest

from deepsearch.core.deep_research.models import (
    LearningExtraction,
    ReliabilityVerdict,
    ResearchConfig,
)
from deepsearch.core.deep_research.result_processor import ResultProcessor, resolve_domain
from deepsearch.core.deep_research.source_evaluator import SourceEvaluator
from deepsearch.core.web_search.providers.base_provider import SearchDocument


def _processor(generator) -> ResultProcessor:
    return ResultProcessor(generator, SourceEvaluator(generator), ResearchConfig())


def _docs():
    return [
        SearchDocument(url="https://lowtrust.example/post", title="Rumour", markdown="RUMOUR CONTENT"),
        SearchDocument(url="https://journal.example/article", title="Study", markdown="STUDY CONTENT"),
    ]


async def test_only_sources_above_threshold_reach_synthesis(generator):
    generator.domain_scores = {"lowtrust.example": 0.2, "journal.example": 0.8}

    result = await _processor(generator).process(
        "effects of x", _docs(), num_learnings=3, num_follow_ups=2, reliability_threshold=0.5
    )

    synthesis = generator.calls_for(LearningExtraction)
    assert len(synthesis) == 1
    assert "STUDY CONTENT" in synthesis[0]
    assert "RUMOUR CONTENT" not in synthesis[0]
    assert 'reliability="0.80"' in synthesis[0]

    # Both sources are still reported
    assert {m.domain: m.reliability_score for m in result.source_metadata} == {
        "lowtrust.example": 0.2,
        "journal.example": 0.8,
    }
    assert result.learnings == ["learned about effects of x"]
    # Two evaluations and one synthesis
    assert result.token_usage == 3 * generator.usage


async def test_content_is_presented_most_reliable_first(generator):
    generator.domain_scores = {"lowtrust.example": 0.6, "journal.example": 0.95}

    await _processor(generator).process("effects of x", _docs(), reliability_threshold=0.3)

    prompt = generator.calls_for(LearningExtraction)[0]
    assert prompt.index("STUDY CONTENT") < prompt.index("RUMOUR CONTENT")


async def test_quotes_in_reasoning_cannot_break_the_annotation(generator):
    generator.on(ReliabilityVerdict, lambda prompt: {"score": 0.9, "reasoning": 'called "peer reviewed" <b>'})

    await _processor(generator).process("effects of x", _docs()[1:], reliability_threshold=0.5)

    prompt = generator.calls_for(LearningExtraction)[0]
    assert 'reasoning="called &quot;peer reviewed&quot; &lt;b&gt;" source="journal.example"' in prompt


async def test_failed_evaluation_drops_only_that_document(generator):
    def verdict(prompt):
        if "lowtrust.example" in prompt:
            return RuntimeError("evaluator unavailable")
        return {"score": 0.9, "reasoning": "journal"}

    generator.on(ReliabilityVerdict, verdict)

    result = await _processor(generator).process("effects of x", _docs(), reliability_threshold=0.1)

    assert [m.domain for m in result.source_metadata] == ["journal.example"]
    prompt = generator.calls_for(LearningExtraction)[0]
    assert "RUMOUR CONTENT" not in prompt
    assert "STUDY CONTENT" in prompt


async def test_no_admitted_documents_skips_synthesis(generator):
    generator.domain_scores = {"lowtrust.example": 0.1, "journal.example": 0.2}

    result = await _processor(generator).process("effects of x", _docs(), reliability_threshold=0.9)

    assert generator.calls_for(LearningExtraction) == []
    assert result.learnings == []
    assert len(result.source_metadata) == 2
    assert result.token_usage == 2 * generator.usage


async def test_documents_without_resolvable_url_are_ignored(generator):
    docs = [
        SearchDocument(url="not a url", markdown="A"),
        SearchDocument(url="ftp://files.example/x", markdown="B"),
        SearchDocument(url="https://ok.example/y", markdown="C"),
    ]

    result = await _processor(generator).process("q", docs)

    assert [m.url for m in result.source_metadata] == ["https://ok.example/y"]
    assert len(generator.calls_for(ReliabilityVerdict)) == 1


async def test_output_is_truncated_and_sanitized(generator):
    generator.on(LearningExtraction, lambda prompt: {
        "learnings": [
            {"content": "first", "confidence": 1.7},
            {"content": "second", "confidence": -0.2},
            {"content": "third", "confidence": 0.5},
        ],
        "follow_up_questions": [
            {"question": "q1", "priority": 9},
            {"question": "q2"},
            {"question": "q3", "priority": 0},
        ],
    })

    result = await _processor(generator).process(
        "q", _docs(), num_learnings=2, num_follow_ups=2, reliability_threshold=0.0
    )

    assert result.learnings == ["first", "second"]
    assert result.learning_confidences == [1.0, 0.0]
    assert [l.reliability for l in result.weighted_learnings] == [1.0, 0.0]
    assert result.follow_up_questions == ["q1", "q2"]
    assert result.follow_up_priorities == [5, 3]


async def test_synthesis_failure_propagates(generator):
    generator.on(LearningExtraction, lambda prompt: TimeoutError("synthesis timed out"))

    with pytest.raises(TimeoutError):
        await _processor(generator).process("q", _docs(), reliability_threshold=0.0)


def test_resolve_domain():
    assert resolve_domain("https://www.nature.com/articles/1") == "www.nature.com"
    assert resolve_domain("HTTP://Example.org") == "example.org"
    assert resolve_domain("mailto:someone@example.org") is None
    assert resolve_domain("") is None
    assert resolve_domain(None) is None
