"""
LLM Router with multi-provider, multi-key fallback logic
Implements structured (schema-validated) generation with token usage reporting
"""
import asyncio
import json
import time
from dataclasses import dataclass
from typing import List, Dict, Optional, Any, Tuple, Type, TypeVar

import openai
from anthropic import AsyncAnthropic
import google.generativeai as genai
from groq import AsyncGroq
from loguru import logger
from pydantic import BaseModel, ValidationError

from deepsearch.core.llm.text_utils import parse_json_response
from deepsearch.models.config import LLMConfig, LLMProvider, APIKeyInstance, PROVIDER_ALIASES

T = TypeVar("T", bound=BaseModel)


# Known models per provider with a rough capability rating (0-100)
MODEL_CATALOG: Dict[LLMProvider, List[Tuple[str, int]]] = {
    LLMProvider.OPENAI: [
        ("o3", 98),
        ("o4-mini-2025-04-16", 95),
        ("gpt-4o", 88),
    ],
    LLMProvider.GEMINI: [
        ("gemini-2.5-pro", 100),
        ("gemini-2.5-flash", 95),
        ("gemini-2.0-flash", 90),
        ("gemini-1.5-pro", 85),
        ("gemini-1.5-flash", 80),
    ],
    LLMProvider.ANTHROPIC: [
        ("claude-sonnet-4-20250514", 97),
        ("claude-3-5-sonnet-20241022", 90),
    ],
    LLMProvider.XAI: [
        ("grok-3", 92),
        ("grok-3-mini", 85),
    ],
    LLMProvider.GROQ: [
        ("llama-3.3-70b-versatile", 80),
    ],
    LLMProvider.OPENROUTER: [
        ("anthropic/claude-3.5-sonnet", 90),
    ],
}


class LLMRouterError(Exception):
    """Raised when no provider could produce a valid structured response."""


@dataclass
class TokenUsage:
    """Token counters reported by a provider for one call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class GenerationResult:
    """A schema-validated object plus the usage of the call that produced it."""
    object: Any
    usage: TokenUsage


def parse_model_spec(spec: Optional[str]) -> Tuple[Optional[LLMProvider], Optional[str]]:
    """
    Parse a "provider:model" specifier.

    "google:gemini-2.5-pro" -> (GEMINI, "gemini-2.5-pro"); "anthropic" -> (ANTHROPIC, None);
    empty -> (None, None), meaning best available.
    """
    if not spec or not spec.strip():
        return None, None
    provider_name, _, model = spec.strip().partition(":")
    provider = PROVIDER_ALIASES.get(provider_name.lower())
    if provider is None:
        raise ValueError(f"Unknown provider in model spec: {spec!r}")
    return provider, (model or None)


def best_model(provider: LLMProvider) -> str:
    return max(MODEL_CATALOG[provider], key=lambda entry: entry[1])[0]


class LLMRouter:
    """
    Multi-provider LLM router with intelligent fallback

    Features:
    - Multiple keys per provider
    - Automatic rate limit handling
    - JSON-schema structured output validated with pydantic
    - Usage tracking
    - Error recovery
    """

    def __init__(self, config: LLMConfig):
        self.config = config

    def with_model(self, spec: Optional[str]) -> "LLMRouter":
        """Return a router that prefers the provider/model named by `spec`."""
        provider, model = parse_model_spec(spec)
        if provider is None:
            return self
        if not self.config.instances.get(provider):
            raise ValueError(f"No API key configured for provider '{provider.value}'")
        config = self.config.model_copy(update={
            "preferred_provider": provider,
            "preferred_model": model,
        })
        return LLMRouter(config)

    def get_available_models(self) -> List[Dict[str, Any]]:
        """List catalogue models for every provider that has an active key, best first."""
        models = []
        for provider, instances in self.config.instances.items():
            if not any(inst.active for inst in instances):
                continue
            for name, intelligence in MODEL_CATALOG.get(provider, []):
                models.append({"provider": provider.value, "model": name, "intelligence": intelligence})
        models.sort(key=lambda m: m["intelligence"], reverse=True)
        return models

    async def generate(
        self,
        system_prompt: str,
        prompt: str,
        schema: Type[T],
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        """
        Generate an object matching `schema`, with automatic provider fallback.

        Tries providers in order:
        1. Preferred provider (all keys)
        2. Other providers, most capable first (all keys)

        `timeout` bounds the whole call including fallbacks.
        """
        coro = self._generate(system_prompt, prompt, schema, max_tokens or self.config.max_tokens)
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=timeout)

    async def _generate(
        self,
        system_prompt: str,
        prompt: str,
        schema: Type[T],
        max_tokens: int,
    ) -> GenerationResult:
        system = (
            f"{system_prompt}\n\n"
            "Respond ONLY with a JSON object, no markdown or extra text, matching this JSON schema:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        messages = [{"role": "user", "content": prompt}]

        last_error = None

        for provider in self._get_provider_order():
            for instance in self.config.instances.get(provider, []):
                if not instance.active:
                    continue

                model = self._model_for(provider, instance)
                try:
                    text, usage = await self._call_provider(
                        provider=provider,
                        instance=instance,
                        model=model,
                        messages=messages,
                        system_prompt=system,
                        max_tokens=max_tokens,
                        temperature=self.config.temperature,
                    )

                    instance.request_count += 1
                    instance.last_used = time.time()

                    data = parse_json_response(text)
                    if data is None:
                        raise ValueError("response was not valid JSON")
                    return GenerationResult(object=schema.model_validate(data), usage=usage)

                except (ValidationError, ValueError) as e:
                    last_error = e
                    instance.error_count += 1
                    logger.warning(f"[LLMRouter] {provider.value}/{model} returned unusable output: {e}")
                    continue

                except Exception as e:
                    last_error = e
                    instance.error_count += 1
                    logger.warning(f"[LLMRouter] Provider {provider.value} key '{instance.name}' failed: {e}")

                    if "rate_limit" in str(e).lower() or "429" in str(e):
                        logger.info(f"[LLMRouter] Rate limit hit for {provider.value}/{instance.name}, trying next key")
                        continue
                    # Anything else: move on to the next provider
                    break

        raise LLMRouterError(f"All LLM providers failed. Last error: {last_error}")

    def _get_provider_order(self) -> List[LLMProvider]:
        """Get provider order (preferred first, then most capable)"""
        configured = [p for p, insts in self.config.instances.items() if insts]
        configured.sort(key=lambda p: max((i for _, i in MODEL_CATALOG.get(p, [])), default=0), reverse=True)

        preferred = self.config.preferred_provider
        if preferred in configured:
            configured.remove(preferred)
            configured.insert(0, preferred)

        return configured

    def _model_for(self, provider: LLMProvider, instance: APIKeyInstance) -> str:
        if provider == self.config.preferred_provider and self.config.preferred_model:
            return self.config.preferred_model
        return instance.model_name or best_model(provider)

    async def _call_provider(
        self,
        provider: LLMProvider,
        instance: APIKeyInstance,
        model: str,
        messages: List[Dict[str, str]],
        system_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> Tuple[str, TokenUsage]:
        """Call specific provider"""

        if provider in (LLMProvider.OPENAI, LLMProvider.XAI, LLMProvider.OPENROUTER):
            return await self._call_openai_compatible(instance, model, messages, system_prompt, max_tokens, temperature)

        elif provider == LLMProvider.ANTHROPIC:
            return await self._call_anthropic(instance.key, model, messages, system_prompt, max_tokens, temperature)

        elif provider == LLMProvider.GROQ:
            return await self._call_groq(instance.key, model, messages, system_prompt, max_tokens, temperature)

        elif provider == LLMProvider.GEMINI:
            return await self._call_gemini(instance.key, model, messages, system_prompt, max_tokens, temperature)

        else:
            raise ValueError(f"Unknown provider: {provider}")

    async def _call_openai_compatible(self, instance: APIKeyInstance, model: str, messages: List[Dict], system: str, max_tokens: int, temp: float) -> Tuple[str, TokenUsage]:
        """OpenAI API call (also xAI and OpenRouter through their OpenAI-compatible endpoints)"""
        client = openai.AsyncOpenAI(api_key=instance.key, base_url=instance.base_url)

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "system", "content": system}] + messages,
        }
        # Reasoning models (o-series) reject sampling parameters
        if model.startswith("o"):
            kwargs["max_completion_tokens"] = max_tokens
        else:
            kwargs["max_tokens"] = max_tokens
            kwargs["temperature"] = temp

        response = await client.chat.completions.create(**kwargs)

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )
        return response.choices[0].message.content or "", usage

    async def _call_anthropic(self, api_key: str, model: str, messages: List[Dict], system: str, max_tokens: int, temp: float) -> Tuple[str, TokenUsage]:
        """Anthropic API call"""
        client = AsyncAnthropic(api_key=api_key)

        response = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temp,
            system=system,
            messages=messages,
        )

        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return response.content[0].text, usage

    async def _call_groq(self, api_key: str, model: str, messages: List[Dict], system: str, max_tokens: int, temp: float) -> Tuple[str, TokenUsage]:
        """Groq API call"""
        client = AsyncGroq(api_key=api_key)

        response = await client.chat.completions.create(
            model=model,
            messages=[{"role": "system", "content": system}] + messages,
            max_tokens=max_tokens,
            temperature=temp,
        )

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )
        return response.choices[0].message.content or "", usage

    async def _call_gemini(self, api_key: str, model_name: str, messages: List[Dict], system: str, max_tokens: int, temp: float) -> Tuple[str, TokenUsage]:
        """Google Gemini API call"""
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name, system_instruction=system)

        prompt = "\n\n".join(msg["content"] for msg in messages)

        response = await model.generate_content_async(
            prompt,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens,
                temperature=temp,
                response_mime_type="application/json",
            ),
        )

        meta = getattr(response, "usage_metadata", None)
        usage = TokenUsage()
        if meta is not None:
            usage = TokenUsage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )
        return response.text, usage

    def get_statistics(self) -> Dict:
        """Get usage statistics"""
        stats = {}

        for provider, instances in self.config.instances.items():
            stats[provider.value] = {
                'total_keys': len(instances),
                'active_keys': sum(1 for i in instances if i.active),
                'total_requests': sum(i.request_count for i in instances),
                'total_errors': sum(i.error_count for i in instances)
            }

        return stats
