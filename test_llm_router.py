import asyncio
import json

import pytest
from pydantic import BaseModel

from deepsearch.core.llm.llm_router import (
    LLMRouter,
    LLMRouterError,
    TokenUsage,
    best_model,
    parse_model_spec,
)
from deepsearch.models.config import APIKeyInstance, LLMConfig, LLMProvider


class Verdict(BaseModel):
    score: float
    reasoning: str = ""


def _router(**keys) -> LLMRouter:
    instances = {}
    for provider_name, names in keys.items():
        provider = LLMProvider(provider_name)
        instances[provider] = [APIKeyInstance(name=n, key=f"key-{n}", provider=provider) for n in names]
    return LLMRouter(LLMConfig(instances=instances))


def _scripted(router: LLMRouter, replies):
    """Replace provider calls with scripted replies keyed by key name."""
    calls = []

    async def fake_call(provider, instance, model, messages, system_prompt, max_tokens, temperature):
        calls.append((provider, instance.name, model))
        reply = replies[instance.name]
        if isinstance(reply, Exception):
            raise reply
        return reply, TokenUsage(prompt_tokens=7, completion_tokens=3, total_tokens=10)

    router._call_provider = fake_call
    return calls


def test_parse_model_spec():
    assert parse_model_spec("google:gemini-2.5-pro") == (LLMProvider.GEMINI, "gemini-2.5-pro")
    assert parse_model_spec("anthropic") == (LLMProvider.ANTHROPIC, None)
    assert parse_model_spec("") == (None, None)
    assert parse_model_spec(None) == (None, None)
    with pytest.raises(ValueError):
        parse_model_spec("nonsense:model")


def test_best_model_uses_catalog_rating():
    assert best_model(LLMProvider.OPENAI) == "o3"
    assert best_model(LLMProvider.GEMINI) == "gemini-2.5-pro"


async def test_invalid_output_moves_to_next_key():
    router = _router(openai=["first", "second"])
    calls = _scripted(router, {"first": "not json at all", "second": json.dumps({"score": 0.8})})

    result = await router.generate("system", "prompt", Verdict)

    assert result.object == Verdict(score=0.8)
    assert result.usage.total_tokens == 10
    assert [name for _, name, _ in calls] == ["first", "second"]
    assert router.config.instances[LLMProvider.OPENAI][0].error_count == 1


async def test_provider_error_moves_to_next_provider():
    router = _router(openai=["first", "second"], anthropic=["claude"])
    calls = _scripted(router, {
        "first": RuntimeError("internal server error"),
        "second": json.dumps({"score": 0.1}),
        "claude": '```json\n{"score": 0.6}\n```',
    })

    result = await router.generate("system", "prompt", Verdict)

    assert result.object.score == 0.6
    assert [name for _, name, _ in calls] == ["first", "claude"]


async def test_rate_limit_moves_to_next_key():
    router = _router(openai=["first", "second"])
    calls = _scripted(router, {
        "first": RuntimeError("Error code: 429 - rate_limit_exceeded"),
        "second": json.dumps({"score": 0.5}),
    })

    result = await router.generate("system", "prompt", Verdict)

    assert result.object.score == 0.5
    assert [name for _, name, _ in calls] == ["first", "second"]


async def test_all_providers_failing_raises():
    router = _router(openai=["first"], groq=["fast"])
    _scripted(router, {"first": RuntimeError("down"), "fast": "{}"})

    with pytest.raises(LLMRouterError):
        await router.generate("system", "prompt", Verdict)


async def test_timeout_bounds_the_call():
    router = _router(openai=["slow"])

    async def slow_call(**kwargs):
        await asyncio.sleep(1)
        return "{}", TokenUsage()

    router._call_provider = slow_call

    with pytest.raises(asyncio.TimeoutError):
        await router.generate("system", "prompt", Verdict, timeout=0.01)


async def test_with_model_prefers_provider_and_model():
    router = _router(openai=["first"], anthropic=["claude"]).with_model("anthropic:claude-3-5-sonnet-20241022")
    calls = _scripted(router, {"first": json.dumps({"score": 0.2}), "claude": json.dumps({"score": 0.9})})

    result = await router.generate("system", "prompt", Verdict)

    assert result.object.score == 0.9
    assert calls == [(LLMProvider.ANTHROPIC, "claude", "claude-3-5-sonnet-20241022")]


def test_with_model_requires_a_key():
    router = _router(openai=["first"])

    with pytest.raises(ValueError):
        router.with_model("groq:llama-3.3-70b-versatile")
    assert router.with_model("") is router


def test_available_models_only_for_configured_providers():
    models = _router(openai=["first"], xai=["grok"]).get_available_models()

    assert {m["provider"] for m in models} == {"openai", "xai"}
    ratings = [m["intelligence"] for m in models]
    assert ratings == sorted(ratings, reverse=True)
    assert models[0] == {"provider": "openai", "model": "o3", "intelligence": 98}
